# Overview: Service-layer operations for monthly book closing; encapsulates business logic and database work.

"""
Monthly Closing Engine

================================================================================
PURPOSE: Roll a month's revenue, expense and COGS into retained earnings
================================================================================

PERIOD:
    create_closing(closing_date) closes the calendar month immediately before
    closing_date (closing in March closes February).

ALGORITHM:
    For every REVENUE / EXPENSE / COGS account, take its cumulative balance
    from APPROVED entries dated up to the period end, earlier CLOSING
    transactions included, and post the opposite side to bring it to zero.
    Earlier closings net out, so what remains is the unclosed residue: the
    period's own activity plus anything approved or backdated into an
    already-closed month since its closing.

    A period cannot be closed once a later period is closed.

        REVENUE balance b > 0   -> Debit b
        EXPENSE/COGS balance b  -> Credit b
        (negative balances flip side)

    net P&L = revenue - expense - COGS, posted to the retained earnings
    equity account (created when absent):

        net > 0  -> Credit net     (profit)
        net < 0  -> Debit -net     (loss)

    The journal balances by construction; post_journal re-checks it.

IDEMPOTENCY:
    Key = (gas_station_id, closing_year, closing_month), enforced by a unique
    constraint on transactions. The read-side check and the insert share one
    database transaction; a concurrent insert that loses the race surfaces as
    IntegrityError and is reported as AlreadyClosedError.

BATCH:
    auto_close_all commits per station. One station's failure (domain or
    infrastructure) is rolled back, logged and recorded; the others proceed.
================================================================================
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError

from ..models import COA, GasStation, Transaction, User
from ..models.accounting import (
    CATEGORY_EQUITY,
    CATEGORY_REVENUE,
    NOMINAL_CATEGORIES,
    STATUS_APPROVED,
    TYPE_CLOSING,
)
from ..models.tenancy import STATION_STATUS_ACTIVE
from ..permissions import roles
from ..time_utils import month_bounds, month_name, previous_month, utcnow
from ..validation import ConflictError, DomainError, NotFoundError
from .coa_service import approved_totals_by_coa, balance_from_totals, get_gas_station, get_or_create_coa
from .concurrency import atomic
from .transaction_service import insert_transaction


logger = logging.getLogger(__name__)


DEFAULT_RETAINED_EARNINGS_NAME = "Retained Earnings"


class AlreadyClosedError(ConflictError):
    """Raised when the target period already has a closing transaction."""


class NothingToCloseError(ConflictError):
    """Raised when no revenue, expense or COGS balance is left to close."""


class LaterPeriodClosedError(ConflictError):
    """Raised when closing a month that precedes an already-closed month."""


class ClosingPerformerNotFoundError(NotFoundError):
    """Raised when no active administrator or owner can be attributed to a batch closing."""


def has_closing_been_done(session, gas_station_id: int, year: int, month: int) -> bool:
    """Read-only existence check of an APPROVED CLOSING for the exact period."""
    return session.query(
        session.query(Transaction.id).filter(
            Transaction.gas_station_id == gas_station_id,
            Transaction.transaction_type == TYPE_CLOSING,
            Transaction.approval_status == STATUS_APPROVED,
            Transaction.closing_year == year,
            Transaction.closing_month == month,
        ).exists()
    ).scalar()


def has_later_closing(session, gas_station_id: int, year: int, month: int) -> bool:
    return session.query(
        session.query(Transaction.id).filter(
            Transaction.gas_station_id == gas_station_id,
            Transaction.transaction_type == TYPE_CLOSING,
            Transaction.approval_status == STATUS_APPROVED,
            or_(
                Transaction.closing_year > year,
                and_(Transaction.closing_year == year, Transaction.closing_month > month),
            ),
        ).exists()
    ).scalar()


def period_nominal_balances(session, gas_station_id: int, year: int, month: int) -> list[tuple[COA, int]]:
    """(COA, unclosed balance up to the period end) for every nominal account with a non-zero balance."""
    _, end = month_bounds(year, month)
    totals = approved_totals_by_coa(session, gas_station_id, end=end)
    if not totals:
        return []

    coas = session.query(COA).filter(
        COA.id.in_(list(totals.keys())),
        COA.category.in_(NOMINAL_CATEGORIES),
    ).order_by(COA.category.asc(), COA.name.asc()).all()

    result = []
    for coa in coas:
        debit, credit = totals[coa.id]
        balance = balance_from_totals(coa.category, debit, credit)
        if balance != 0:
            result.append((coa, balance))
    return result


def build_closing_entries(balances: list[tuple[COA, int]], retained_earnings: COA | None, period: str) -> tuple[list[dict], int]:
    """
    Zeroing lines for nominal accounts plus the retained earnings line.

    Returns (entries, net_pnl). retained_earnings may be None only when the
    net is 0.
    """
    entries = []
    net = 0
    for coa, balance in balances:
        if coa.category == CATEGORY_REVENUE:
            net += balance
            # credit-normal: debit to zero a positive balance
            debit, credit = (balance, 0) if balance > 0 else (0, -balance)
        else:
            net -= balance
            # debit-normal: credit to zero a positive balance
            debit, credit = (0, balance) if balance > 0 else (-balance, 0)
        entries.append({
            "coa_id": coa.id,
            "debit": debit,
            "credit": credit,
            "description": f"Closing {coa.name} for {period}",
        })

    if net != 0:
        entries.append({
            "coa_id": retained_earnings.id,
            "debit": -net if net < 0 else 0,
            "credit": net if net > 0 else 0,
            "description": f"Net {'profit' if net > 0 else 'loss'} for {period}",
        })
    return entries, net


def create_closing(
    session,
    gas_station_id: int,
    closing_date: date | datetime,
    performed_by: User,
    *,
    retained_earnings_name: str = DEFAULT_RETAINED_EARNINGS_NAME,
) -> dict:
    """
    Close the month before closing_date for one station.

    Returns {"gas_station_id", "year", "month", "month_name", "balance",
    "is_profit", "transaction"}.

    Raises:
        GasStationNotFoundError, AlreadyClosedError, NothingToCloseError,
        LaterPeriodClosedError
    """
    year, month = previous_month(closing_date)
    period = month_name(year, month)

    try:
        with atomic(session):
            get_gas_station(session, gas_station_id)

            if has_closing_been_done(session, gas_station_id, year, month):
                raise AlreadyClosedError(f"Closing for {period} has already been done")
            if has_later_closing(session, gas_station_id, year, month):
                raise LaterPeriodClosedError(f"A month after {period} is already closed")

            balances = period_nominal_balances(session, gas_station_id, year, month)
            if not balances:
                raise NothingToCloseError(f"No revenue, expense or COGS balance to close for {period}")

            net_preview = sum(b if c.category == CATEGORY_REVENUE else -b for c, b in balances)
            retained_earnings = None
            if net_preview != 0:
                retained_earnings = get_or_create_coa(
                    session,
                    gas_station_id=gas_station_id,
                    name=retained_earnings_name,
                    category=CATEGORY_EQUITY,
                    created_by_id=performed_by.id,
                    description="Accumulated net profit/loss from monthly closings",
                )

            entries, net = build_closing_entries(balances, retained_earnings, period)

            _, period_end = month_bounds(year, month)
            tx = insert_transaction(
                session,
                gas_station_id=gas_station_id,
                transaction_type=TYPE_CLOSING,
                creator=performed_by,
                entries=entries,
                description=f"Monthly closing {period}",
                date=period_end,
                notes=f"Net {'profit' if net >= 0 else 'loss'}: {net:,}",
                approval_status=STATUS_APPROVED,
                closing_year=year,
                closing_month=month,
            )
            tx.approver_id = performed_by.id
    except IntegrityError as exc:
        raise AlreadyClosedError(f"Closing for {period} has already been done") from exc

    logger.info(
        "Closed %s for station %s: net=%s transaction=%s",
        period, gas_station_id, net, tx.id,
    )
    return {
        "gas_station_id": gas_station_id,
        "year": year,
        "month": month,
        "month_name": period,
        "balance": net,
        "is_profit": net >= 0,
        "transaction": tx,
    }


def closing_status(session, gas_station_id: int, year: int, month: int) -> dict:
    get_gas_station(session, gas_station_id)
    tx = session.query(Transaction).filter(
        Transaction.gas_station_id == gas_station_id,
        Transaction.transaction_type == TYPE_CLOSING,
        Transaction.approval_status == STATUS_APPROVED,
        Transaction.closing_year == year,
        Transaction.closing_month == month,
    ).first()
    return {
        "gas_station_id": gas_station_id,
        "year": year,
        "month": month,
        "month_name": month_name(year, month),
        "closed": tx is not None,
        "transaction_id": tx.id if tx else None,
    }


def active_stations(session) -> list[GasStation]:
    return session.query(GasStation).filter(
        GasStation.status == STATION_STATUS_ACTIVE
    ).order_by(GasStation.id.asc()).all()


def stations_needing_closing(session, year: int, month: int) -> list[GasStation]:
    return [
        station for station in active_stations(session)
        if not has_closing_been_done(session, station.id, year, month)
    ]


def closing_performer(session, station: GasStation) -> User:
    """Batch closings are attributed to the owner's administrator, else the owner."""
    admin = session.query(User).filter(
        User.role == roles.ADMINISTRATOR,
        User.owner_id == station.owner_id,
        User.is_active.is_(True),
    ).order_by(User.id.asc()).first()
    if admin is not None:
        return admin

    owner = session.get(User, station.owner_id)
    if owner is not None and owner.is_active:
        return owner
    raise ClosingPerformerNotFoundError(
        f"No active administrator or owner for gas station {station.id}"
    )


def auto_close_all(
    session,
    *,
    now: datetime | None = None,
    retained_earnings_name: str = DEFAULT_RETAINED_EARNINGS_NAME,
) -> dict:
    """
    Close the previous month for every ACTIVE station.

    Returns {"month_name", "results": [{gas_station_id, gas_station_name,
    success, message, balance?, is_profit?, transaction_id?}],
    "success_count", "fail_count"}.
    """
    now = now or utcnow()
    year, month = previous_month(now)
    period = month_name(year, month)

    stations = [(s.id, s.name) for s in active_stations(session)]
    results = []

    for station_id, station_name in stations:
        try:
            station = get_gas_station(session, station_id)
            performer = closing_performer(session, station)
            outcome = create_closing(
                session,
                station_id,
                now,
                performer,
                retained_earnings_name=retained_earnings_name,
            )
        except Exception as exc:  # isolate per-station failures
            session.rollback()
            if isinstance(exc, DomainError):
                logger.info("Closing %s skipped for station %s: %s", period, station_id, exc)
            else:
                logger.exception("Closing %s failed for station %s", period, station_id)
            results.append({
                "gas_station_id": station_id,
                "gas_station_name": station_name,
                "success": False,
                "message": str(exc) or exc.__class__.__name__,
                "error": exc.__class__.__name__,
            })
            continue

        results.append({
            "gas_station_id": station_id,
            "gas_station_name": station_name,
            "success": True,
            "message": f"Closing {period} completed",
            "balance": outcome["balance"],
            "is_profit": outcome["is_profit"],
            "transaction_id": outcome["transaction"].id,
        })

    success_count = sum(1 for r in results if r["success"])
    fail_count = len(results) - success_count
    logger.info(
        "Monthly closing %s finished: %s success, %s failed",
        period, success_count, fail_count,
    )
    return {
        "month_name": period,
        "year": year,
        "month": month,
        "results": results,
        "success_count": success_count,
        "fail_count": fail_count,
    }
