# backend/spbu/routes/purchases.py
"""
Fuel purchase order routes (PURCHASE_BBM).

Orders are created PENDING and approved through
POST /api/transactions/<id>/approve like any other transaction.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_station_roles
from ..extensions import db
from ..permissions.policies import UNLOAD_VIEW_ROLES, TRANSACTION_VIEW_ROLES
from ..permissions.roles import ALL_ROLES
from ..services import purchase_service
from ..validation import DomainError, coerce_int


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/gas-stations")


@purchases_bp.get("/<int:gas_station_id>/purchases")
@require_auth
@require_station_roles(*set(TRANSACTION_VIEW_ROLES) | set(UNLOAD_VIEW_ROLES))
def list_purchases_route(gas_station_id: int):
    """
    Query params:
        product_id: filter by product
        open: "true" for APPROVED orders with remaining volume (unload picker)
        approved: "true" for APPROVED orders only
    """
    try:
        product_id = request.args.get("product_id")
        purchases = purchase_service.list_purchases(
            db.session,
            gas_station_id,
            product_id=coerce_int(product_id, "product_id", minimum=1) if product_id else None,
            approved_only=request.args.get("approved", "").lower() == "true",
            open_only=request.args.get("open", "").lower() == "true",
        )
        return jsonify({"success": True, "data": purchases}), 200

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to list purchases")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@purchases_bp.post("/<int:gas_station_id>/purchases")
@require_auth
@require_station_roles(*ALL_ROLES)
def create_purchase_route(gas_station_id: int):
    """
    Create a fuel purchase order.

    Request body:
    {
        "product_id": 1,
        "purchase_volume": 8000,
        "bank_name": "BRI",            (optional)
        "reference_number": "SO-123",  (optional)
        "date": "2026-01-10",          (optional)
        "description": "...",          (optional)
        "notes": "..."                 (optional)
    }

    Returns:
        201: Purchase created (PENDING)
        400: Invalid input
        403: Role cannot create purchases
        404: Product not found
    """
    try:
        data = request.get_json(silent=True) or {}
        tx = purchase_service.create_purchase_transaction(
            db.session,
            gas_station_id=gas_station_id,
            creator=g.current_user,
            payload=data,
        )
        return jsonify({
            "success": True,
            "message": "Purchase created",
            "data": purchase_service.purchase_to_dict(tx),
        }), 201

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"success": False, "message": "Internal server error"}), 500
