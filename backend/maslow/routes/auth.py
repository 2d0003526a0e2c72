# Overview: Flask API routes for the session lifecycle; identity lookup and logout.

"""
Session API routes

Sessions are issued out of band (the identity provider, or the
`flask sessions issue` command). The API only reports who the bearer is
and lets them end the session.
"""

from flask import Blueprint, jsonify, g

from ..services import session_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/session")


@auth_bp.get("")
@require_auth
def current_session_route():
    """Return the identity bound to the bearer token."""
    return jsonify({
        "user_id": g.identity.get_current_user_id(),
        "is_staff": g.identity.is_staff,
    }), 200


@auth_bp.delete("")
@require_auth
def logout_route():
    """Revoke the bearer token. Later requests with it get 401."""
    session_service.revoke_session(g.session_token)
    return jsonify({"ok": True}), 200
