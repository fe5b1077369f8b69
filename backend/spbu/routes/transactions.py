# backend/spbu/routes/transactions.py
"""
Transaction API Routes

WHY: Expose creation and the approval state machine of journal
transactions over REST.

DESIGN:
- Routes only check station access; which role may create or approve a
  given transaction type is decided by the policy table in the service
- PENDING -> APPROVED | REJECTED, exactly once, never by the creator
- Only approved entries count toward balances

SECURITY:
- All routes require a bearer session
- Station scoping through permission_service
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_station_roles, station_denied
from ..extensions import db
from ..models.accounting import TYPE_ADJUSTMENT
from ..permissions.policies import TRANSACTION_DELETE_ROLES, TRANSACTION_VIEW_ROLES
from ..permissions.roles import ALL_ROLES
from ..services import cash_service, transaction_service
from ..validation import DomainError, coerce_datetime


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api")


# =============================================================================
# LISTING
# =============================================================================

@transactions_bp.get("/gas-stations/<int:gas_station_id>/transactions")
@require_auth
@require_station_roles(*TRANSACTION_VIEW_ROLES)
def list_transactions_route(gas_station_id: int):
    """
    Query params:
        type:   PURCHASE_BBM | CASH | ADJUSTMENT | CLOSING | UNLOAD
        status: PENDING | APPROVED | REJECTED
        start, end: ISO datetimes (inclusive)
    """
    try:
        txs = transaction_service.list_transactions(
            db.session,
            gas_station_id,
            transaction_type=request.args.get("type"),
            status=request.args.get("status"),
            start=coerce_datetime(request.args.get("start"), "start", required=False),
            end=coerce_datetime(request.args.get("end"), "end", required=False),
        )
        return jsonify({"success": True, "data": [tx.to_dict() for tx in txs]}), 200

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@transactions_bp.get("/transactions/<int:transaction_id>")
@require_auth
def get_transaction_route(transaction_id: int):
    try:
        tx = transaction_service.get_transaction(db.session, transaction_id)
        denied = station_denied(tx.gas_station_id, TRANSACTION_VIEW_ROLES)
        if denied is not None:
            return denied
        return jsonify({"success": True, "data": tx.to_dict()}), 200

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to load transaction")
        return jsonify({"success": False, "message": "Internal server error"}), 500


# =============================================================================
# CREATION
# =============================================================================

@transactions_bp.post("/gas-stations/<int:gas_station_id>/transactions/cash")
@require_auth
@require_station_roles(*ALL_ROLES)
def create_cash_route(gas_station_id: int):
    """
    Create a PENDING cash/bank movement.

    Request body:
    {
        "cash_transaction_type": "EXPENSE",   (INCOME | EXPENSE | TRANSFER)
        "amount": 250000,
        "payment_account": "CASH",            (CASH | BANK)
        "bank_name": "BCA",                   (optional, BANK only)
        "coa_id": 12,                         (or new_coa_name + new_coa_category)
        "to_payment_account": "BANK",         (TRANSFER only)
        "description": "Listrik Januari",
        "date": "2026-01-15T08:00:00Z"        (optional)
    }

    Returns:
        201: Transaction created (PENDING)
        400: Invalid input
        403: Role cannot create CASH transactions
    """
    try:
        data = request.get_json(silent=True) or {}
        tx = cash_service.create_cash_transaction(
            db.session,
            gas_station_id=gas_station_id,
            creator=g.current_user,
            payload=data,
        )
        return jsonify({"success": True, "message": "Cash transaction created", "data": tx.to_dict()}), 201

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create cash transaction")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@transactions_bp.post("/gas-stations/<int:gas_station_id>/transactions/adjustment")
@require_auth
@require_station_roles(*ALL_ROLES)
def create_adjustment_route(gas_station_id: int):
    """
    Create an ADJUSTMENT journal with explicit lines.

    Request body:
    {
        "description": "Koreksi saldo awal",
        "entries": [
            {"coa_id": 3, "debit": 100000, "credit": 0},
            {"new_coa": {"name": "Modal", "category": "EQUITY"}, "debit": 0, "credit": 100000}
        ],
        "date": "...", "reference_number": "...", "notes": "..."   (optional)
    }

    Returns:
        201: Created (APPROVED when the creator's role auto-approves)
        400: Unbalanced or malformed entries
        403: Role cannot create ADJUSTMENT transactions
    """
    try:
        data = request.get_json(silent=True) or {}
        tx = transaction_service.create_transaction(
            db.session,
            gas_station_id=gas_station_id,
            transaction_type=TYPE_ADJUSTMENT,
            creator=g.current_user,
            payload=data,
        )
        return jsonify({"success": True, "message": "Adjustment created", "data": tx.to_dict()}), 201

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create adjustment")
        return jsonify({"success": False, "message": "Internal server error"}), 500


# =============================================================================
# APPROVAL WORKFLOW
# =============================================================================

@transactions_bp.post("/transactions/<int:transaction_id>/approve")
@require_auth
def approve_transaction_route(transaction_id: int):
    """
    PENDING -> APPROVED.

    Request body (optional): {"notes": "..."}

    Returns:
        200: Approved
        400: Already finalized, self-approval or unbalanced journal
        403: Role cannot approve this type / no station access
        404: Not found
    """
    try:
        tx = transaction_service.get_transaction(db.session, transaction_id)
        denied = station_denied(tx.gas_station_id, ALL_ROLES)
        if denied is not None:
            return denied

        data = request.get_json(silent=True) or {}
        tx = transaction_service.approve_transaction(
            db.session, transaction_id, g.current_user, notes=data.get("notes")
        )
        return jsonify({"success": True, "message": "Transaction approved", "data": tx.to_dict()}), 200

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to approve transaction")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@transactions_bp.post("/transactions/<int:transaction_id>/reject")
@require_auth
def reject_transaction_route(transaction_id: int):
    """PENDING -> REJECTED. Same checks as approve."""
    try:
        tx = transaction_service.get_transaction(db.session, transaction_id)
        denied = station_denied(tx.gas_station_id, ALL_ROLES)
        if denied is not None:
            return denied

        data = request.get_json(silent=True) or {}
        tx = transaction_service.reject_transaction(
            db.session, transaction_id, g.current_user, notes=data.get("notes")
        )
        return jsonify({"success": True, "message": "Transaction rejected", "data": tx.to_dict()}), 200

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reject transaction")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@transactions_bp.delete("/transactions/<int:transaction_id>")
@require_auth
def delete_transaction_route(transaction_id: int):
    """Delete a non-approved CASH/ADJUSTMENT transaction."""
    try:
        tx = transaction_service.get_transaction(db.session, transaction_id)
        denied = station_denied(tx.gas_station_id, TRANSACTION_DELETE_ROLES)
        if denied is not None:
            return denied

        transaction_service.delete_transaction(db.session, transaction_id, g.current_user)
        return jsonify({"success": True, "message": "Transaction deleted"}), 200

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete transaction")
        return jsonify({"success": False, "message": "Internal server error"}), 500
