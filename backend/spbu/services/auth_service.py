# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for password hashing
and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12 by default)
- Minimum 8 characters, upper, lower, digit and special character
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt

from ..models import User
from ..permissions.roles import ALL_ROLES, OWNER, SUPERUSER_ROLES
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError, require_text


BCRYPT_ROUNDS = 12


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


class DuplicateUserError(ConflictError):
    """Raised when username or email is already taken."""


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str, *, rounds: int = BCRYPT_ROUNDS) -> str:
    """Validate strength, then bcrypt-hash."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(
    session,
    *,
    username: str,
    email: str,
    password: str,
    role: str,
    owner_id: int | None = None,
    rounds: int = BCRYPT_ROUNDS,
) -> User:
    """
    Create a user with a bcrypt password hash.

    Staff, administrators and owner-group users carry owner_id (the OWNER
    they work for); owners and developers do not.
    """
    username = require_text(username, "username", max_length=64)
    email = require_text(email, "email")
    if role not in ALL_ROLES:
        raise ValidationError(f"Invalid role '{role}'")
    if role in SUPERUSER_ROLES or role == OWNER:
        owner_id = None
    elif owner_id is None:
        raise ValidationError(f"{role} users require owner_id")

    existing = session.query(User).filter(
        (User.username == username) | (User.email == email)
    ).first()
    if existing is not None:
        raise DuplicateUserError("Username or email already exists")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password, rounds=rounds),
        role=role,
        owner_id=owner_id,
        is_active=True,
    )
    session.add(user)
    session.commit()
    return user


def authenticate(session, username: str, password: str) -> User | None:
    """
    Username (or email) + password -> User, or None.

    Updates last_login_at on success.
    """
    if not username or not password:
        return None

    user = session.query(User).filter(
        (User.username == username) | (User.email == username),
        User.is_active.is_(True),
    ).first()
    if user is None:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        session.commit()
        return user
    return None
