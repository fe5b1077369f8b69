# backend/spbu/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- bcrypt password verification
- Opaque bearer tokens, stored hashed (session_service)
- Self-registration disabled: users are provisioned through the CLI
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..extensions import db
from ..services import auth_service, permission_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Request body:
    {
        "username": "finance1",   (or "email")
        "password": "Password123!"
    }

    Returns:
        200: {"success": true, "data": {"token": "...", "user": {...}}}
        400: Missing credentials
        401: Invalid credentials
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"success": False, "message": "username/email and password required"}), 400

        user = auth_service.authenticate(db.session, username, password)
        if user is None:
            return jsonify({"success": False, "message": "Invalid credentials"}), 401

        _, token = session_service.create_session(
            db.session,
            user,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "success": True,
            "message": "Login successful",
            "data": {"token": token, "user": user.to_dict()},
        }), 200

    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to log in")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the current bearer token."""
    try:
        session_service.revoke_session(db.session, g.session_token)
        return jsonify({"success": True, "message": "Logged out"}), 200
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to log out")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user plus the gas stations they can act on."""
    stations = permission_service.accessible_gas_stations(db.session, g.current_user)
    return jsonify({
        "success": True,
        "data": {
            "user": g.current_user.to_dict(),
            "gas_stations": [s.to_dict() for s in stations],
        },
    }), 200
