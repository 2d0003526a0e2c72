# Overview: Request decorators for API routes; resolve the identity context for each request.

from functools import wraps
from flask import current_app, request, jsonify, g

from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1]


def require_auth(f):
    """
    Require a live session and establish the identity context.

    Sets the following Flask g attributes:
    - g.identity: the SessionContext (user id, staff flag)
    - g.session_token: the plaintext bearer token (for logout)

    Returns 401 if the Authorization header is missing, or the token is
    unknown, expired or revoked.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.identity = context
        g.session_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_staff(f):
    """Require the authenticated session to belong to staff. Apply after @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, "identity"):
            return jsonify({"error": "Authentication required"}), 401
        if not g.identity.is_staff:
            current_app.logger.warning(
                "Staff-only route %s denied for user %s",
                request.path,
                g.identity.get_current_user_id(),
            )
            return jsonify({"error": "Staff access required"}), 403
        return f(*args, **kwargs)
    return decorated_function
