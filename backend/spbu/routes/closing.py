# backend/spbu/routes/closing.py
"""
Monthly Closing API Routes

WHY: Books are closed once per station and month; the batch runs from a
scheduler, the single-station form from the finance screen.

DESIGN:
- Closing on date D closes the calendar month before D
- At most one closing per station and period (AlreadyClosedError -> 400)
- Batch isolates per-station failures and reports each outcome

SECURITY:
- Single-station and batch routes require a bearer session
- The scheduler trigger authenticates with CRON_SECRET instead
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_cron_secret, require_roles, require_station_roles
from ..extensions import db
from ..permissions.policies import CLOSING_BATCH_ROLES, CLOSING_RUN_ROLES, CLOSING_STATUS_ROLES
from ..services import closing_service
from ..time_utils import previous_month, utcnow
from ..validation import DomainError, coerce_datetime, coerce_int


closing_bp = Blueprint("closing", __name__, url_prefix="/api")


def _closing_payload(outcome: dict) -> dict:
    tx = outcome["transaction"]
    return {
        "gas_station_id": outcome["gas_station_id"],
        "year": outcome["year"],
        "month": outcome["month"],
        "month_name": outcome["month_name"],
        "balance": outcome["balance"],
        "is_profit": outcome["is_profit"],
        "transaction": tx.to_dict(),
    }


def _retained_earnings_name() -> str:
    return current_app.config.get("RETAINED_EARNINGS_COA_NAME") or closing_service.DEFAULT_RETAINED_EARNINGS_NAME


@closing_bp.post("/gas-stations/<int:gas_station_id>/closing")
@require_auth
@require_station_roles(*CLOSING_RUN_ROLES)
def create_closing_route(gas_station_id: int):
    """
    Close the month before closing_date.

    Request body (optional):
    {
        "closing_date": "2026-03-01"   (default: now; closes February)
    }

    Returns:
        201: Closing transaction posted
        400: Already closed or nothing to close
        404: Gas station not found
    """
    try:
        data = request.get_json(silent=True) or {}
        closing_date = coerce_datetime(data.get("closing_date"), "closing_date", required=False) or utcnow()

        outcome = closing_service.create_closing(
            db.session,
            gas_station_id,
            closing_date,
            g.current_user,
            retained_earnings_name=_retained_earnings_name(),
        )
        return jsonify({
            "success": True,
            "message": f"Closing {outcome['month_name']} completed",
            "data": _closing_payload(outcome),
        }), 201

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to run closing")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@closing_bp.get("/gas-stations/<int:gas_station_id>/closing/status")
@require_auth
@require_station_roles(*CLOSING_STATUS_ROLES)
def closing_status_route(gas_station_id: int):
    """Query params: year, month (default: the previous month)."""
    try:
        default_year, default_month = previous_month(utcnow())
        year = coerce_int(request.args.get("year", default_year), "year", minimum=1)
        month = coerce_int(request.args.get("month", default_month), "month", minimum=1, maximum=12)

        status = closing_service.closing_status(db.session, gas_station_id, year, month)
        return jsonify({"success": True, "data": status}), 200

    except DomainError as e:
        return jsonify({"success": False, "message": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to load closing status")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@closing_bp.post("/closing/run-all")
@require_auth
@require_roles(*CLOSING_BATCH_ROLES)
def run_all_closing_route():
    """Batch closing of the previous month for every active station."""
    try:
        summary = closing_service.auto_close_all(
            db.session, retained_earnings_name=_retained_earnings_name()
        )
        return jsonify({"success": True, "data": summary}), 200
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to run batch closing")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@closing_bp.route("/cron/monthly-closing", methods=["GET", "POST"])
@require_cron_secret
def cron_monthly_closing_route():
    """
    Scheduler trigger, authenticated with Authorization: Bearer <CRON_SECRET>.

    Returns:
        200: Batch summary (per-station success/failure)
        401: Missing or wrong secret
        500: CRON_SECRET not configured
    """
    try:
        summary = closing_service.auto_close_all(
            db.session, retained_earnings_name=_retained_earnings_name()
        )
        current_app.logger.info(
            "Cron monthly closing %s: %s success, %s failed",
            summary["month_name"], summary["success_count"], summary["fail_count"],
        )
        return jsonify({
            "success": True,
            "message": f"Monthly closing {summary['month_name']} processed",
            "data": summary,
        }), 200
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to run cron monthly closing")
        return jsonify({"success": False, "message": "Internal server error"}), 500
