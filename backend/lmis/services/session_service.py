# Overview: Opaque bearer sessions that resolve to the Actor the transfer engine consumes.

"""
Session tokens.

A token is 32 random bytes shown to the client once; the database keeps
only its SHA-256. A session dies when:
- SESSION_ABSOLUTE_HOURS have passed since login,
- it has been idle longer than SESSION_IDLE_HOURS (default: one shift),
- the user logs out, or the account is deactivated.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from ..permissions import Actor
from lmis.time_utils import utcnow


@dataclass
class SessionContext:
    """What require_auth puts on flask.g."""
    user: User
    session: SessionToken
    actor: Actor


def _hours(key: str) -> timedelta:
    return timedelta(hours=current_app.config[key])


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _live_session(token: str) -> SessionToken | None:
    return (
        db.session.query(SessionToken)
        .filter_by(token_hash=hash_token(token), is_revoked=False)
        .first()
    )


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Open a session for a user and commit it.

    Returns (session_row, plaintext_token).
    """
    if db.session.get(User, user_id) is None:
        raise ValueError("User not found")

    token = secrets.token_hex(32)
    now = utcnow()
    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _hours("SESSION_ABSOLUTE_HOURS"),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its SessionContext, or None.

    Idle or deactivated sessions are revoked on the way out; a live one has
    its last_used_at bumped.
    """
    session = _live_session(token)
    if session is None:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None
    if now - session.last_used_at > _hours("SESSION_IDLE_HOURS"):
        _revoke(session, "Idle timeout")
        return None

    user = session.user
    if user is None or not user.is_active:
        _revoke(session, "User account deactivated")
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(
        user=user,
        session=session,
        actor=Actor(id=user.id, role=user.role, facility_id=user.facility_id),
    )


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """True when a live session was revoked."""
    session = _live_session(token)
    if session is None:
        return False
    _revoke(session, reason)
    return True
