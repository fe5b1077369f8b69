# Overview: Service-layer operations for cash/bank transactions (CASH); encapsulates business logic and database work.

"""
Cash and bank movements.

Every cash movement goes through the approval queue (PENDING); nothing is
auto-approved here regardless of who enters it.

KINDS:
    INCOME:   Debit payment account / Credit counter COA
    EXPENSE:  Debit counter COA      / Credit payment account
    TRANSFER: Debit target account   / Credit source account

The counter COA of INCOME/EXPENSE is either an existing coa_id or a new COA
definition (new_coa_name, new_coa_category), found-or-created in the same atomic
operation as the transaction.

Expenses are ordinary CASH transactions; there is no separate expense record.
"""

from __future__ import annotations

import logging

from ..models import Transaction, User
from ..models.accounting import STATUS_PENDING, TYPE_CASH
from ..validation import (
    ValidationError,
    coerce_datetime,
    coerce_int,
    optional_text,
    require_text,
)
from .coa_service import PAYMENT_ACCOUNTS, get_or_create_payment_coa
from .concurrency import atomic
from .transaction_service import insert_transaction, prepare_creation


logger = logging.getLogger(__name__)


KIND_INCOME = "INCOME"
KIND_EXPENSE = "EXPENSE"
KIND_TRANSFER = "TRANSFER"

CASH_KINDS = {KIND_INCOME, KIND_EXPENSE, KIND_TRANSFER}


def _payment_account(value, field: str) -> str:
    clean = value.strip().upper() if isinstance(value, str) else ""
    if clean not in PAYMENT_ACCOUNTS:
        raise ValidationError(f"{field} must be one of: {', '.join(sorted(PAYMENT_ACCOUNTS))}")
    return clean


def _counter_line(payload: dict) -> dict:
    """coa_id or new COA definition for the non-payment side of INCOME/EXPENSE."""
    coa_id = payload.get("coa_id")
    if coa_id not in (None, ""):
        return {"coa_id": coerce_int(coa_id, "coa_id", minimum=1)}

    name = payload.get("new_coa_name")
    category = payload.get("new_coa_category")
    if not name and not category:
        raise ValidationError("coa_id or new_coa_name/new_coa_category is required")
    return {
        "new_coa": {
            "name": name,
            "category": category,
            "description": payload.get("new_coa_description"),
        }
    }


def build_cash_entries(session, gas_station_id: int, payload: dict, *, created_by_id: int) -> list[dict]:
    kind = payload.get("cash_transaction_type")
    kind = kind.strip().upper() if isinstance(kind, str) else ""
    if kind not in CASH_KINDS:
        raise ValidationError(f"cash_transaction_type must be one of: {', '.join(sorted(CASH_KINDS))}")

    amount = coerce_int(payload.get("amount"), "amount", minimum=1)

    source = get_or_create_payment_coa(
        session,
        gas_station_id,
        _payment_account(payload.get("payment_account"), "payment_account"),
        bank_name=optional_text(payload.get("bank_name"), "bank_name", max_length=100),
        created_by_id=created_by_id,
    )

    if kind == KIND_TRANSFER:
        target = get_or_create_payment_coa(
            session,
            gas_station_id,
            _payment_account(payload.get("to_payment_account"), "to_payment_account"),
            bank_name=optional_text(payload.get("to_bank_name"), "to_bank_name", max_length=100),
            created_by_id=created_by_id,
        )
        if target.id == source.id:
            raise ValidationError("Cannot transfer to the same account")
        return [
            {"coa_id": target.id, "debit": amount, "credit": 0, "description": f"Transfer from {source.name}"},
            {"coa_id": source.id, "debit": 0, "credit": amount, "description": f"Transfer to {target.name}"},
        ]

    counter = _counter_line(payload)
    if kind == KIND_INCOME:
        return [
            {"coa_id": source.id, "debit": amount, "credit": 0, "description": f"Income into {source.name}"},
            {**counter, "debit": 0, "credit": amount, "description": "Income"},
        ]
    return [
        {**counter, "debit": amount, "credit": 0, "description": "Expense"},
        {"coa_id": source.id, "debit": 0, "credit": amount, "description": f"Paid from {source.name}"},
    ]


def create_cash_transaction(session, *, gas_station_id: int, creator: User, payload: dict) -> Transaction:
    """
    Create a PENDING CASH transaction.

    payload:
        cash_transaction_type (INCOME | EXPENSE | TRANSFER), amount,
        payment_account (CASH | BANK), bank_name, description,
        to_payment_account / to_bank_name (TRANSFER),
        coa_id or new_coa_name + new_coa_category (INCOME/EXPENSE),
        date, reference_number, notes
    """
    with atomic(session):
        prepare_creation(session, gas_station_id, TYPE_CASH, creator)

        description = require_text(payload.get("description"), "description")
        entries = build_cash_entries(session, gas_station_id, payload, created_by_id=creator.id)

        tx = insert_transaction(
            session,
            gas_station_id=gas_station_id,
            transaction_type=TYPE_CASH,
            creator=creator,
            entries=entries,
            description=description,
            date=coerce_datetime(payload.get("date"), "date", required=False),
            reference_number=optional_text(payload.get("reference_number"), "reference_number", max_length=64),
            notes=optional_text(payload.get("notes"), "notes"),
            approval_status=STATUS_PENDING,
        )

    logger.info("Cash transaction %s created by user %s", tx.id, creator.id)
    return tx
