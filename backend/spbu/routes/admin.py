# backend/spbu/routes/admin.py
"""
Maintenance routes for developers and administrators.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_roles, station_denied
from ..extensions import db
from ..permissions.policies import REPAIR_ROLES
from ..services import unload_service
from ..validation import DomainError, coerce_int


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.post("/repair-delivered-volume")
@require_auth
@require_roles(*REPAIR_ROLES)
def repair_delivered_volume_route():
    """
    Recompute delivered_volume of every fuel purchase from its approved
    unloads. Safe to run repeatedly; a second run reports fixed == 0.

    Request body (optional): {"gas_station_id": 1}

    Returns:
        200: {"checked": n, "fixed": n, "fixes": [...]}
    """
    try:
        data = request.get_json(silent=True) or {}
        station_id = data.get("gas_station_id")
        if station_id is not None:
            station_id = coerce_int(station_id, "gas_station_id", minimum=1)
            denied = station_denied(station_id, REPAIR_ROLES)
            if denied is not None:
                return denied

        report = unload_service.repair_delivered_volumes(db.session, station_id)
        return jsonify({
            "success": True,
            "message": f"Checked {report['checked']} purchase(s), fixed {report['fixed']}",
            "data": report,
        }), 200

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to repair delivered volume")
        return jsonify({"success": False, "message": "Internal server error"}), 500
