# Overview: Service-layer operations for the chart of accounts; encapsulates business logic and database work.

"""
COA Registry

WHY: Every journal line points at a COA, and the COA category decides how
that line moves the balance. The registry is the leaf dependency of all
transaction logic.

BALANCES ARE DERIVED, NEVER STORED:
- ASSET / EXPENSE / COGS:          balance = sum(debit) - sum(credit)
- LIABILITY / EQUITY / REVENUE:    balance = sum(credit) - sum(debit)
- Only entries of APPROVED transactions are summed. PENDING and REJECTED
  entries contribute exactly 0.
- There is no mutable balance column to drift; every read is an aggregate.

SESSION HANDLING:
- Every function takes the session explicitly.
- Helpers used inside larger operations (get_or_create_coa) only flush.
- Standalone operations (create_coa, update_coa, deactivate_coa) commit
  through concurrency.atomic.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..models import COA, JournalEntry, Transaction
from ..models.accounting import (
    CATEGORY_ASSET,
    COA_CATEGORIES,
    COA_STATUS_ACTIVE,
    COA_STATUS_INACTIVE,
    DEBIT_NORMAL_CATEGORIES,
    STATUS_APPROVED,
)
from ..models.tenancy import GasStation
from ..time_utils import to_utc_z
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    optional_text,
)
from .concurrency import atomic


class COANotFoundError(NotFoundError):
    """Raised when a COA id does not exist."""


class GasStationNotFoundError(NotFoundError):
    """Raised when a gas station id does not exist."""


class InvalidCOASpecError(ValidationError):
    """Raised when a new COA lacks a name or a valid category."""


class DuplicateCOAError(ConflictError):
    """Raised when a station already has a COA with that name."""


class COACategoryLockedError(ConflictError):
    """Raised when changing the category of a COA that journal entries reference."""


class COAInUseError(ConflictError):
    """Raised when deactivating a COA that journal entries reference."""


def balance_from_totals(category: str, total_debit: int, total_credit: int) -> int:
    """Signed balance of an account given its debit/credit totals."""
    if category in DEBIT_NORMAL_CATEGORIES:
        return total_debit - total_credit
    return total_credit - total_debit


def get_gas_station(session, gas_station_id: int) -> GasStation:
    station = session.get(GasStation, gas_station_id)
    if station is None:
        raise GasStationNotFoundError(f"Gas station {gas_station_id} not found")
    return station


def get_coa(session, coa_id: int) -> COA:
    coa = session.get(COA, coa_id)
    if coa is None:
        raise COANotFoundError(f"COA {coa_id} not found")
    return coa


def validate_coa_fields(name, category) -> tuple[str, str]:
    """Normalize and validate the (name, category) pair of a new COA."""
    clean_name = (name or "").strip() if isinstance(name, str) else ""
    if not clean_name:
        raise InvalidCOASpecError("New COA requires a name")
    if len(clean_name) > 120:
        raise InvalidCOASpecError("COA name exceeds max length 120")
    clean_category = (category or "").strip().upper() if isinstance(category, str) else ""
    if not clean_category:
        raise InvalidCOASpecError(f"New COA '{clean_name}' requires a category")
    if clean_category not in COA_CATEGORIES:
        raise InvalidCOASpecError(
            f"Invalid COA category '{category}'. Must be one of: {', '.join(sorted(COA_CATEGORIES))}"
        )
    return clean_name, clean_category


def find_coa_by_name(session, gas_station_id: int, name: str) -> COA | None:
    return session.query(COA).filter(
        COA.gas_station_id == gas_station_id,
        COA.name == name,
    ).first()


def get_or_create_coa(
    session,
    *,
    gas_station_id: int,
    name: str,
    category: str,
    created_by_id: int | None = None,
    description: str | None = None,
    code: str | None = None,
) -> COA:
    """
    Look up a station COA by name, creating it when absent.

    Flushes only; the caller's atomic scope commits. An existing COA with the
    same name but another category is refused rather than silently reused.
    """
    clean_name, clean_category = validate_coa_fields(name, category)

    existing = find_coa_by_name(session, gas_station_id, clean_name)
    if existing is not None:
        if existing.category != clean_category:
            raise InvalidCOASpecError(
                f"COA '{clean_name}' already exists with category {existing.category}, "
                f"not {clean_category}"
            )
        if existing.status != COA_STATUS_ACTIVE:
            raise InvalidCOASpecError(f"COA '{clean_name}' is inactive")
        return existing

    coa = COA(
        gas_station_id=gas_station_id,
        name=clean_name,
        category=clean_category,
        code=code,
        description=description,
        status=COA_STATUS_ACTIVE,
        created_by_id=created_by_id,
    )
    session.add(coa)
    session.flush()
    return coa


def create_coa(
    session,
    *,
    gas_station_id: int,
    name: str,
    category: str,
    created_by_id: int | None = None,
    code: str | None = None,
    description: str | None = None,
) -> COA:
    """
    Create a COA for a station.

    Raises:
        GasStationNotFoundError: station missing
        InvalidCOASpecError: name/category missing or invalid
        DuplicateCOAError: name already used in this station
    """
    with atomic(session):
        get_gas_station(session, gas_station_id)
        clean_name, clean_category = validate_coa_fields(name, category)
        if find_coa_by_name(session, gas_station_id, clean_name) is not None:
            raise DuplicateCOAError(f"COA '{clean_name}' already exists for this gas station")

        coa = COA(
            gas_station_id=gas_station_id,
            name=clean_name,
            category=clean_category,
            code=optional_text(code, "code", max_length=32),
            description=optional_text(description, "description"),
            status=COA_STATUS_ACTIVE,
            created_by_id=created_by_id,
        )
        session.add(coa)
        session.flush()
    return coa


def is_referenced(session, coa_id: int) -> bool:
    """True when any journal entry (of any approval status) points at the COA."""
    return session.query(
        session.query(JournalEntry.id).filter(JournalEntry.coa_id == coa_id).exists()
    ).scalar()


def update_coa(
    session,
    coa_id: int,
    *,
    name: str | None = None,
    category: str | None = None,
    code: str | None = None,
    description: str | None = None,
) -> COA:
    """
    Update COA attributes.

    Category is immutable once referenced by a journal entry: flipping its
    normal side would rewrite every historical balance.
    """
    with atomic(session):
        coa = get_coa(session, coa_id)

        if name is not None:
            clean_name, _ = validate_coa_fields(name, coa.category)
            if clean_name != coa.name:
                clash = find_coa_by_name(session, coa.gas_station_id, clean_name)
                if clash is not None and clash.id != coa.id:
                    raise DuplicateCOAError(f"COA '{clean_name}' already exists for this gas station")
                coa.name = clean_name

        if category is not None:
            _, clean_category = validate_coa_fields(coa.name, category)
            if clean_category != coa.category:
                if is_referenced(session, coa.id):
                    raise COACategoryLockedError(
                        f"Cannot change category of COA '{coa.name}': it is referenced by journal entries"
                    )
                coa.category = clean_category

        if code is not None:
            coa.code = optional_text(code, "code", max_length=32)
        if description is not None:
            coa.description = optional_text(description, "description")

        session.flush()
    return coa


def deactivate_coa(session, coa_id: int) -> COA:
    """Soft delete. Referenced accounts stay active."""
    with atomic(session):
        coa = get_coa(session, coa_id)
        if is_referenced(session, coa.id):
            raise COAInUseError(
                f"COA '{coa.name}' cannot be deactivated: it is used in journal entries"
            )
        coa.status = COA_STATUS_INACTIVE
        session.flush()
    return coa


def approved_totals_by_coa(
    session,
    gas_station_id: int,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    exclude_types: set[str] | None = None,
) -> dict[int, tuple[int, int]]:
    """
    Aggregate (total_debit, total_credit) per COA over APPROVED transactions.

    start/end filter on Transaction.date, both inclusive.
    """
    q = session.query(
        JournalEntry.coa_id,
        func.coalesce(func.sum(JournalEntry.debit), 0),
        func.coalesce(func.sum(JournalEntry.credit), 0),
    ).join(
        Transaction, Transaction.id == JournalEntry.transaction_id
    ).filter(
        Transaction.gas_station_id == gas_station_id,
        Transaction.approval_status == STATUS_APPROVED,
    )

    if start is not None:
        q = q.filter(Transaction.date >= start)
    if end is not None:
        q = q.filter(Transaction.date <= end)
    if exclude_types:
        q = q.filter(Transaction.transaction_type.notin_(exclude_types))

    rows = q.group_by(JournalEntry.coa_id).all()
    return {coa_id: (int(debit), int(credit)) for coa_id, debit, credit in rows}


def get_coa_balance(session, coa_id: int, *, as_of: datetime | None = None) -> int:
    """Derived balance of one COA (APPROVED entries only)."""
    coa = get_coa(session, coa_id)
    totals = approved_totals_by_coa(session, coa.gas_station_id, end=as_of)
    debit, credit = totals.get(coa.id, (0, 0))
    return balance_from_totals(coa.category, debit, credit)


def list_coas_with_balance(
    session,
    gas_station_id: int,
    *,
    include_inactive: bool = False,
    as_of: datetime | None = None,
) -> list[dict]:
    get_gas_station(session, gas_station_id)

    q = session.query(COA).filter(COA.gas_station_id == gas_station_id)
    if not include_inactive:
        q = q.filter(COA.status == COA_STATUS_ACTIVE)
    coas = q.order_by(COA.category.asc(), COA.name.asc()).all()

    totals = approved_totals_by_coa(session, gas_station_id, end=as_of)

    result = []
    for coa in coas:
        debit, credit = totals.get(coa.id, (0, 0))
        item = coa.to_dict()
        item.update({
            "total_debit": debit,
            "total_credit": credit,
            "balance": balance_from_totals(coa.category, debit, credit),
        })
        result.append(item)
    return result


def category_totals(
    session,
    gas_station_id: int,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    exclude_types: set[str] | None = None,
) -> dict[str, int]:
    """Sum of derived balances per category (every category present, 0 when idle)."""
    totals = approved_totals_by_coa(
        session, gas_station_id, start=start, end=end, exclude_types=exclude_types
    )
    result = {category: 0 for category in COA_CATEGORIES}
    if not totals:
        return result

    coas = session.query(COA).filter(COA.id.in_(list(totals.keys()))).all()
    for coa in coas:
        debit, credit = totals[coa.id]
        result[coa.category] += balance_from_totals(coa.category, debit, credit)
    return result


def get_coa_journal_entries(session, coa_id: int, *, limit: int = 200) -> list[dict]:
    """Journal lines of a COA, newest first, with their transaction status."""
    get_coa(session, coa_id)
    rows = (
        session.query(JournalEntry, Transaction)
        .join(Transaction, Transaction.id == JournalEntry.transaction_id)
        .filter(JournalEntry.coa_id == coa_id)
        .order_by(Transaction.date.desc(), JournalEntry.id.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            **entry.to_dict(),
            "transaction_date": to_utc_z(tx.date),
            "transaction_description": tx.description,
            "transaction_type": tx.transaction_type,
            "approval_status": tx.approval_status,
        }
        for entry, tx in rows
    ]


PAYMENT_CASH = "CASH"
PAYMENT_BANK = "BANK"
PAYMENT_ACCOUNTS = {PAYMENT_CASH, PAYMENT_BANK}

CASH_COA_NAME = "Kas"
BANK_COA_NAME = "Bank"
LO_COA_PREFIX = "LO "


def payment_coa_name(payment_account: str, bank_name: str | None = None) -> str:
    """CASH -> "Kas"; BANK -> "Bank" or "Bank <bank_name>"."""
    if payment_account == PAYMENT_CASH:
        return CASH_COA_NAME
    if payment_account == PAYMENT_BANK:
        bank_name = (bank_name or "").strip()
        return f"{BANK_COA_NAME} {bank_name}" if bank_name else BANK_COA_NAME
    raise ValidationError(
        f"Invalid payment account '{payment_account}'. Must be one of: {', '.join(sorted(PAYMENT_ACCOUNTS))}"
    )


def get_or_create_payment_coa(
    session,
    gas_station_id: int,
    payment_account: str,
    *,
    bank_name: str | None = None,
    created_by_id: int | None = None,
) -> COA:
    name = payment_coa_name(payment_account, bank_name)
    return get_or_create_coa(
        session,
        gas_station_id=gas_station_id,
        name=name,
        category=CATEGORY_ASSET,
        created_by_id=created_by_id,
        description="Cash on hand" if payment_account == PAYMENT_CASH else "Bank account",
    )


def get_or_create_lo_coa(session, gas_station_id: int, product_name: str, *, created_by_id: int | None = None) -> COA:
    """Fuel ordered but not yet delivered ("LO <product>", ASSET)."""
    return get_or_create_coa(
        session,
        gas_station_id=gas_station_id,
        name=f"{LO_COA_PREFIX}{product_name.strip()}",
        category=CATEGORY_ASSET,
        created_by_id=created_by_id,
        description=f"Purchase orders of {product_name.strip()} awaiting delivery",
    )
