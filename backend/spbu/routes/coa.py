# backend/spbu/routes/coa.py
"""
Chart of Accounts API Routes

WHY: Administrators maintain each station's accounts; finance, accounting,
managers and owners read derived balances.

DESIGN:
- Balances are computed from APPROVED journal entries on every read
- Category is locked once journal entries reference the account
- Deletion is a soft deactivate, refused for referenced accounts
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_station_roles, station_denied
from ..extensions import db
from ..permissions.policies import COA_MANAGE_ROLES, COA_VIEW_ROLES
from ..services import coa_service
from ..validation import DomainError, coerce_datetime


coa_bp = Blueprint("coa", __name__, url_prefix="/api")


@coa_bp.get("/gas-stations/<int:gas_station_id>/coas")
@require_auth
@require_station_roles(*COA_VIEW_ROLES)
def list_coas_route(gas_station_id: int):
    """
    List station COAs with derived balances.

    Query params:
        include_inactive: "true" to include deactivated accounts
        as_of: ISO datetime; only transactions dated on or before it count
    """
    try:
        include_inactive = request.args.get("include_inactive", "").lower() == "true"
        as_of = coerce_datetime(request.args.get("as_of"), "as_of", required=False)

        coas = coa_service.list_coas_with_balance(
            db.session, gas_station_id, include_inactive=include_inactive, as_of=as_of
        )
        return jsonify({"success": True, "data": coas}), 200

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to list COAs")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@coa_bp.post("/gas-stations/<int:gas_station_id>/coas")
@require_auth
@require_station_roles(*COA_MANAGE_ROLES)
def create_coa_route(gas_station_id: int):
    """
    Create a COA.

    Request body:
    {
        "name": "Pendapatan Penjualan BBM",
        "category": "REVENUE",
        "code": "4-100",          (optional)
        "description": "..."      (optional)
    }

    Returns:
        201: COA created
        400: Invalid name/category or duplicate name
    """
    try:
        data = request.get_json(silent=True) or {}
        coa = coa_service.create_coa(
            db.session,
            gas_station_id=gas_station_id,
            name=data.get("name"),
            category=data.get("category"),
            code=data.get("code"),
            description=data.get("description"),
            created_by_id=g.current_user.id,
        )
        return jsonify({"success": True, "message": "COA created", "data": coa.to_dict()}), 201

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create COA")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@coa_bp.patch("/coas/<int:coa_id>")
@require_auth
def update_coa_route(coa_id: int):
    """
    Update name, category, code or description.

    Returns:
        200: Updated
        400: Category change on a referenced account
        404: COA not found
    """
    try:
        coa = coa_service.get_coa(db.session, coa_id)
        denied = station_denied(coa.gas_station_id, COA_MANAGE_ROLES)
        if denied is not None:
            return denied

        data = request.get_json(silent=True) or {}
        coa = coa_service.update_coa(
            db.session,
            coa_id,
            name=data.get("name"),
            category=data.get("category"),
            code=data.get("code"),
            description=data.get("description"),
        )
        return jsonify({"success": True, "message": "COA updated", "data": coa.to_dict()}), 200

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update COA")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@coa_bp.delete("/coas/<int:coa_id>")
@require_auth
def deactivate_coa_route(coa_id: int):
    """Soft delete; referenced accounts are refused with 400."""
    try:
        coa = coa_service.get_coa(db.session, coa_id)
        denied = station_denied(coa.gas_station_id, COA_MANAGE_ROLES)
        if denied is not None:
            return denied

        coa = coa_service.deactivate_coa(db.session, coa_id)
        return jsonify({"success": True, "message": "COA deactivated", "data": coa.to_dict()}), 200

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to deactivate COA")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@coa_bp.get("/coas/<int:coa_id>/entries")
@require_auth
def coa_entries_route(coa_id: int):
    """Journal lines of one account (all statuses) with its derived balance."""
    try:
        coa = coa_service.get_coa(db.session, coa_id)
        denied = station_denied(coa.gas_station_id, COA_VIEW_ROLES)
        if denied is not None:
            return denied

        entries = coa_service.get_coa_journal_entries(db.session, coa_id)
        return jsonify({
            "success": True,
            "data": {
                "coa": coa.to_dict(),
                "balance": coa_service.get_coa_balance(db.session, coa_id),
                "entries": entries,
            },
        }), 200

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to load COA entries")
        return jsonify({"success": False, "message": "Internal server error"}), 500
