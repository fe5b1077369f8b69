# backend/spbu/routes/unloads.py
"""
Unload and tank API Routes

WHY: Physical fuel deliveries are reconciled against purchase orders and
feed tank stock.

DESIGN:
- Unloader records a delivery (PENDING)
- Manager approves (recomputes delivered volume, posts the inventory
  journal, refreshes stock) or rejects
- Over-delivery and tank overflow are refused at request and at approval

SECURITY:
- Every route is scoped to the tank's gas station
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_station_roles, station_denied
from ..extensions import db
from ..permissions.policies import (
    TANK_SALES_ROLES,
    UNLOAD_APPROVE_ROLES,
    UNLOAD_REQUEST_ROLES,
    UNLOAD_VIEW_ROLES,
)
from ..services import tank_service, unload_service
from ..validation import DomainError, coerce_datetime, coerce_int


unloads_bp = Blueprint("unloads", __name__, url_prefix="/api")


# =============================================================================
# UNLOADS
# =============================================================================

@unloads_bp.post("/unloads")
@require_auth
def request_unload_route():
    """
    Record a delivery awaiting approval.

    Request body:
    {
        "purchase_transaction_id": 10,
        "tank_id": 2,
        "delivered_volume": 8000,
        "invoice_number": "INV-77",  (optional)
        "notes": "..."               (optional)
    }

    Returns:
        201: Unload created (PENDING)
        400: Over-delivery, product mismatch, capacity or unapproved purchase
        403: Role cannot request unloads
        404: Tank or purchase not found
    """
    try:
        data = request.get_json(silent=True) or {}
        tank = tank_service.get_tank(db.session, coerce_int(data.get("tank_id"), "tank_id", minimum=1))
        denied = station_denied(tank.gas_station_id, UNLOAD_REQUEST_ROLES)
        if denied is not None:
            return denied

        unload = unload_service.request_unload(
            db.session,
            purchase_transaction_id=data.get("purchase_transaction_id"),
            tank_id=tank.id,
            delivered_volume=data.get("delivered_volume"),
            unloader=g.current_user,
            invoice_number=data.get("invoice_number"),
            notes=data.get("notes"),
        )
        return jsonify({"success": True, "message": "Unload recorded", "data": unload.to_dict()}), 201

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record unload")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@unloads_bp.post("/unloads/<int:unload_id>/approve")
@require_auth
def approve_unload_route(unload_id: int):
    """
    PENDING -> APPROVED.

    Returns:
        200: Approved; purchase delivered_volume recomputed
        400: Already decided, over-delivery or tank capacity
        403: Not a manager of this station
    """
    try:
        unload = unload_service.get_unload(db.session, unload_id)
        denied = station_denied(unload.tank.gas_station_id, UNLOAD_APPROVE_ROLES)
        if denied is not None:
            return denied

        unload = unload_service.approve_unload(db.session, unload_id, g.current_user)
        return jsonify({"success": True, "message": "Unload approved", "data": unload.to_dict()}), 200

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to approve unload")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@unloads_bp.post("/unloads/<int:unload_id>/reject")
@require_auth
def reject_unload_route(unload_id: int):
    """PENDING -> REJECTED. Request body (optional): {"notes": "..."}"""
    try:
        unload = unload_service.get_unload(db.session, unload_id)
        denied = station_denied(unload.tank.gas_station_id, UNLOAD_APPROVE_ROLES)
        if denied is not None:
            return denied

        data = request.get_json(silent=True) or {}
        unload = unload_service.reject_unload(
            db.session, unload_id, g.current_user, notes=data.get("notes")
        )
        return jsonify({"success": True, "message": "Unload rejected", "data": unload.to_dict()}), 200

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reject unload")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@unloads_bp.get("/gas-stations/<int:gas_station_id>/unloads")
@require_auth
@require_station_roles(*UNLOAD_VIEW_ROLES)
def list_unloads_route(gas_station_id: int):
    """Query params: status (PENDING | APPROVED | REJECTED)"""
    try:
        unloads = unload_service.list_unloads(
            db.session, gas_station_id, status=request.args.get("status")
        )
        return jsonify({"success": True, "data": [u.to_dict() for u in unloads]}), 200

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to list unloads")
        return jsonify({"success": False, "message": "Internal server error"}), 500


# =============================================================================
# TANKS
# =============================================================================

@unloads_bp.get("/tanks/<int:tank_id>/remaining")
@require_auth
def tank_remaining_route(tank_id: int):
    """Open purchase volume for the tank's product, oldest order first."""
    try:
        tank = tank_service.get_tank(db.session, tank_id)
        denied = station_denied(tank.gas_station_id, UNLOAD_VIEW_ROLES)
        if denied is not None:
            return denied

        data = unload_service.remaining_by_product(db.session, tank_id)
        return jsonify({"success": True, "data": data}), 200

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to load remaining volume")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@unloads_bp.get("/tanks/<int:tank_id>/stock")
@require_auth
def tank_stock_route(tank_id: int):
    try:
        tank = tank_service.get_tank(db.session, tank_id)
        denied = station_denied(tank.gas_station_id, UNLOAD_VIEW_ROLES + TANK_SALES_ROLES)
        if denied is not None:
            return denied

        return jsonify({"success": True, "data": tank_service.current_stock(db.session, tank_id)}), 200

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to load tank stock")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@unloads_bp.post("/tanks/<int:tank_id>/sales")
@require_auth
def record_sale_route(tank_id: int):
    """
    Record sold volume from shift operations.

    Request body: {"volume": 1200, "sold_at": "2026-01-15T22:00:00Z" (optional)}
    """
    try:
        tank = tank_service.get_tank(db.session, tank_id)
        denied = station_denied(tank.gas_station_id, TANK_SALES_ROLES)
        if denied is not None:
            return denied

        data = request.get_json(silent=True) or {}
        sale = tank_service.record_tank_sale(
            db.session,
            tank_id,
            data.get("volume"),
            g.current_user,
            sold_at=coerce_datetime(data.get("sold_at"), "sold_at", required=False),
        )
        return jsonify({"success": True, "message": "Sale recorded", "data": sale.to_dict()}), 201

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record tank sale")
        return jsonify({"success": False, "message": "Internal server error"}), 500
