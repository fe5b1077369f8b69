from __future__ import annotations
from datetime import datetime
from spbu.time_utils import parse_iso_datetime

from typing import Any


# Monetary amounts and volumes are integers (minor currency units, liters).
# Upper bound keeps sums well inside a 64-bit column.
MAX_AMOUNT = 999_999_999_999


class DomainError(Exception):
    """
    Base for every error the accounting core surfaces to callers.

    status_code maps the error kind onto the HTTP contract; routes never
    need to know the concrete subclass.
    """
    status_code = 400


class ValidationError(DomainError, ValueError):
    """400-level input problem."""


class NotFoundError(DomainError, LookupError):
    """404-level missing entity."""
    status_code = 404


class AuthorizationError(DomainError):
    """403-level role or ownership mismatch."""
    status_code = 403


class ConflictError(DomainError, ValueError):
    """Operation no longer valid given the current state (e.g. already approved)."""


class InvariantViolationError(DomainError):
    """
    A ledger or volume invariant would be broken.

    Indicates a bug upstream of the caller; logged at error level and the
    whole operation is aborted without partial writes.
    """


def coerce_int(value: Any, field: str, *, minimum: int | None = 0, maximum: int = MAX_AMOUNT) -> int:
    """
    Strict integer coercion for amounts and volumes.

    Rejects floats, booleans, decimals in strings and scientific notation:
    repeated floating-point summation would drift the balance invariant.
    """
    if value is None:
        raise ValidationError(f"{field} is required")

    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    if result > maximum:
        raise ValidationError(f"{field} exceeds maximum of {maximum}")
    return result


def coerce_datetime(value: Any, field: str, *, required: bool = True) -> datetime | None:
    """Accept a datetime or an ISO-8601 string; normalize to UTC-naive."""
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if isinstance(value, datetime):
        return parse_iso_datetime(value.isoformat())
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 datetime")
        if dt is None and required:
            raise ValidationError(f"{field} is required")
        return dt
    raise ValidationError(f"{field} must be a datetime")


def require_text(value: Any, field: str, *, max_length: int = 255) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def optional_text(value: Any, field: str, *, max_length: int = 1000) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text
