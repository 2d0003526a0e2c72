# Overview: Service-layer operations for sessions; the identity context handed to the booking core.

"""
Session / Identity Context

WHY: Authentication itself lives with an external identity provider. The
booking core only needs to know "who is the current user" and whether the
session is still alive, so sessions are opaque tokens that resolve to a
SessionContext. The context is passed into the booking service explicitly;
there is no process-wide current-user singleton.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute timeout (SESSION_TTL_HOURS)
- Revocable on logout
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken
from maslow.time_utils import utcnow


@dataclass(frozen=True)
class SessionContext:
    """Resolved identity for one request."""
    user_id: str
    is_staff: bool = False
    session_id: int | None = None

    def get_current_user_id(self) -> str:
        return self.user_id


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy). Never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(user_id: str, is_staff: bool = False) -> tuple[SessionToken, str]:
    """
    Issue a session for an identity-provider user id.

    Returns (session_record, plaintext_token).
    """
    if not user_id or not str(user_id).strip():
        raise ValueError("user_id is required")

    plaintext_token = generate_token()
    now = utcnow()
    ttl = timedelta(hours=current_app.config.get("SESSION_TTL_HOURS", 24))

    session = SessionToken(
        user_id=str(user_id).strip(),
        token_hash=hash_token(plaintext_token),
        is_staff=is_staff,
        created_at=now,
        expires_at=now + ttl,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a token to its SessionContext.

    Returns None if the token is unknown, expired or revoked.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None
    if session.expires_at < utcnow():
        return None

    return SessionContext(user_id=session.user_id, is_staff=session.is_staff, session_id=session.id)


def revoke_session(token: str) -> bool:
    """
    Revoke a session (logout).

    Returns True if a live session was revoked, False if not found.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True
