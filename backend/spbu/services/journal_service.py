# Overview: Service-layer operations for the journal engine; encapsulates business logic and database work.

"""
Journal Engine

WHY: Double-entry bookkeeping holds only if every transaction's lines
balance. This module is the single place journal lines are written.

CONTRACT:
    post_journal(session, transaction, entries, created_by_id=...)

    entries: list of dicts, each one of
        {"coa_id": 12, "debit": 100000, "credit": 0, "description": "..."}
        {"new_coa": {"name": "Bank BCA", "category": "ASSET"}, "debit": 0, "credit": 100000}

RULES:
- At least 2 entries.
- debit and credit are non-negative integers (minor currency units).
- Exactly one of debit/credit is positive per line.
- sum(debit) == sum(credit), else UnbalancedJournalError.
- New COA lines are found-or-created inside the caller's atomic scope.

Validation runs entirely before the first write, so a rejected journal
leaves nothing behind even before the caller rolls back.

post_journal only flushes. The caller owns the commit (concurrency.atomic).
"""

from __future__ import annotations

import logging

from ..models import COA, JournalEntry, Transaction
from ..models.accounting import COA_STATUS_ACTIVE
from ..validation import InvariantViolationError, ValidationError, coerce_int, optional_text
from .coa_service import COANotFoundError, get_or_create_coa


logger = logging.getLogger(__name__)


MIN_ENTRIES = 2


class InvalidJournalEntryError(ValidationError):
    """Raised when a journal line has a bad shape (zero-zero, both sides, unknown COA)."""


class UnbalancedJournalError(InvariantViolationError):
    """Raised when total debit does not equal total credit."""

    def __init__(self, total_debit: int, total_credit: int):
        self.total_debit = total_debit
        self.total_credit = total_credit
        super().__init__(
            f"Journal is unbalanced: total debit {total_debit} != total credit {total_credit}"
        )


def validate_entries(entries) -> list[dict]:
    """
    Normalize raw entry dicts and check the balance invariant.

    Pure function: touches no storage. Returns normalized lines of the form
    {"coa_id": int | None, "new_coa": dict | None, "debit": int,
     "credit": int, "description": str | None}.
    """
    if not isinstance(entries, (list, tuple)):
        raise InvalidJournalEntryError("entries must be a list")
    if len(entries) < MIN_ENTRIES:
        raise InvalidJournalEntryError(f"A journal requires at least {MIN_ENTRIES} entries")

    lines = []
    for index, raw in enumerate(entries, start=1):
        if not isinstance(raw, dict):
            raise InvalidJournalEntryError(f"Entry {index} must be an object")

        debit_raw = raw.get("debit")
        credit_raw = raw.get("credit")
        debit = 0 if debit_raw in (None, "") else coerce_int(debit_raw, f"entries[{index}].debit")
        credit = 0 if credit_raw in (None, "") else coerce_int(credit_raw, f"entries[{index}].credit")

        if debit > 0 and credit > 0:
            raise InvalidJournalEntryError(f"Entry {index} cannot have both debit and credit")
        if debit == 0 and credit == 0:
            raise InvalidJournalEntryError(f"Entry {index} must have a debit or a credit")

        coa_id = raw.get("coa_id")
        new_coa = raw.get("new_coa")
        if coa_id in (None, "") and not new_coa:
            raise InvalidJournalEntryError(f"Entry {index} requires coa_id or new_coa")
        if coa_id not in (None, ""):
            coa_id = coerce_int(coa_id, f"entries[{index}].coa_id", minimum=1)
            new_coa = None
        else:
            coa_id = None
            if not isinstance(new_coa, dict):
                raise InvalidJournalEntryError(f"Entry {index} new_coa must be an object")

        lines.append({
            "coa_id": coa_id,
            "new_coa": new_coa,
            "debit": debit,
            "credit": credit,
            "description": optional_text(raw.get("description"), f"entries[{index}].description", max_length=255),
        })

    total_debit = sum(line["debit"] for line in lines)
    total_credit = sum(line["credit"] for line in lines)
    if total_debit != total_credit:
        raise UnbalancedJournalError(total_debit, total_credit)

    return lines


def _resolve_coa(session, gas_station_id: int, line: dict, created_by_id: int | None) -> COA:
    if line["coa_id"] is not None:
        coa = session.get(COA, line["coa_id"])
        if coa is None:
            raise COANotFoundError(f"COA {line['coa_id']} not found")
        if coa.gas_station_id != gas_station_id:
            raise InvalidJournalEntryError(f"COA {coa.id} does not belong to this gas station")
        if coa.status != COA_STATUS_ACTIVE:
            raise InvalidJournalEntryError(f"COA '{coa.name}' is inactive")
        return coa

    new_coa = line["new_coa"]
    return get_or_create_coa(
        session,
        gas_station_id=gas_station_id,
        name=new_coa.get("name"),
        category=new_coa.get("category"),
        code=new_coa.get("code"),
        description=new_coa.get("description"),
        created_by_id=created_by_id,
    )


def post_journal(
    session,
    transaction: Transaction,
    entries,
    *,
    created_by_id: int | None = None,
) -> list[JournalEntry]:
    """
    Validate and persist the journal lines of one transaction.

    Raises:
        InvalidJournalEntryError: malformed line
        UnbalancedJournalError: debit/credit totals differ (logged at error)
        InvalidCOASpecError: new COA without name/category
        COANotFoundError: coa_id does not exist
    """
    try:
        lines = validate_entries(entries)
    except UnbalancedJournalError as exc:
        logger.error(
            "Unbalanced journal rejected for station %s (%s): debit=%s credit=%s",
            transaction.gas_station_id,
            transaction.transaction_type,
            exc.total_debit,
            exc.total_credit,
        )
        raise

    # Resolve every COA before attaching any line
    resolved = [
        (_resolve_coa(session, transaction.gas_station_id, line, created_by_id), line)
        for line in lines
    ]

    posted = []
    for coa, line in resolved:
        entry = JournalEntry(
            coa_id=coa.id,
            debit=line["debit"],
            credit=line["credit"],
            description=line["description"],
            created_by_id=created_by_id,
        )
        transaction.journal_entries.append(entry)
        posted.append(entry)

    session.flush()
    return posted
