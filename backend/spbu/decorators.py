# Overview: Request and permission decorators for API routes.

import hmac
from functools import wraps

from flask import current_app, g, jsonify, request

from .extensions import db
from .services import permission_service, session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def _is_authenticated() -> bool:
    return getattr(g, "current_user", None) is not None


def require_auth(f):
    """
    Require a valid bearer session.

    Sets g.current_user and g.session_token. Returns 401 when the header is
    missing, the token is unknown/expired/revoked, or the user is inactive.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            return jsonify({"success": False, "message": "Authentication required"}), 401

        user = session_service.validate_session(db.session, token)
        if user is None:
            return jsonify({"success": False, "message": "Invalid or expired token"}), 401

        g.current_user = user
        g.session_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_roles(*allowed_roles):
    """Role-list gate (permission_service.check_permission). 403 on denial."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"success": False, "message": "Authentication required"}), 401

            result = permission_service.check_permission(g.current_user, allowed_roles)
            if not result.authorized:
                return jsonify({"success": False, "message": result.message}), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_station_roles(*allowed_roles):
    """
    Role-list gate plus access to the gas station named by the
    <gas_station_id> URL parameter.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"success": False, "message": "Authentication required"}), 401

            denied = station_denied(kwargs["gas_station_id"], allowed_roles)
            if denied is not None:
                return denied
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def station_denied(gas_station_id: int, allowed_roles):
    """
    Inline variant for routes that learn the station from an entity.

    Returns a 403 response tuple, or None when access is granted.
    """
    result = permission_service.check_permission_with_gas_station(
        db.session, g.current_user, allowed_roles, gas_station_id
    )
    if not result.authorized:
        return jsonify({"success": False, "message": result.message}), 403
    return None


def require_cron_secret(f):
    """
    Shared-secret gate for the scheduler trigger.

    500 when CRON_SECRET is not configured, 401 when the bearer value does
    not match.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        secret = current_app.config.get("CRON_SECRET")
        if not secret:
            current_app.logger.error("CRON_SECRET is not configured")
            return jsonify({"success": False, "message": "Cron secret not configured"}), 500

        token = _bearer_token()
        if token is None or not hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8")):
            return jsonify({"success": False, "message": "Unauthorized"}), 401
        return f(*args, **kwargs)

    return decorated_function
