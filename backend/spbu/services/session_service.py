# Overview: Service-layer operations for session tokens; encapsulates business logic and database work.

"""
Session Token Management

WHY: Every money or volume movement is attributed to the user behind the
bearer token, so tokens must be unguessable, revocable and time-limited.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- 24-hour absolute timeout (SESSION_ABSOLUTE_TIMEOUT)
- 2-hour idle timeout (SESSION_IDLE_TIMEOUT)
- Revoked on logout or when the user is deactivated
"""

import hashlib
import secrets
from datetime import timedelta

from ..models import SessionToken, User
from ..time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


def generate_token() -> str:
    """64-character hex string; the plaintext is never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    SHA-256 for storage.

    Tokens are already high-entropy, so a fast hash is sufficient here
    (unlike passwords, which use bcrypt).
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(
    session,
    user: User,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create a session token for user.

    Returns (session_record, plaintext_token).
    """
    plaintext_token = generate_token()
    now = utcnow()

    record = SessionToken(
        user_id=user.id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    session.add(record)
    session.commit()

    return record, plaintext_token


def _revoke(session, record: SessionToken) -> None:
    record.is_revoked = True
    record.revoked_at = utcnow()
    session.commit()


def validate_session(session, token: str) -> User | None:
    """
    Resolve a bearer token to its active user.

    Returns None when the token is unknown, expired, idle too long, revoked,
    or belongs to a deactivated user. Idle and deactivated sessions are
    revoked on the spot. Updates last_used_at on success.
    """
    now = utcnow()
    record = session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if record is None:
        return None

    if record.expires_at < now:
        return None

    if now - record.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, record)
        return None

    user = record.user
    if user is None or not user.is_active:
        _revoke(session, record)
        return None

    record.last_used_at = now
    session.commit()
    return user


def revoke_session(session, token: str) -> bool:
    """Returns True if an active session was revoked."""
    record = session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if record is None:
        return False
    _revoke(session, record)
    return True
