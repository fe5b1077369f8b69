# Overview: Service-layer operations for the transaction lifecycle; encapsulates business logic and database work.

"""
Transaction Lifecycle Manager

================================================================================
PURPOSE: Create typed transactions and run the approval state machine
================================================================================

STATE MACHINE:
    PENDING -> APPROVED
    PENDING -> REJECTED

    PENDING:  entries exist but contribute 0 to every balance
    APPROVED: terminal, entries count toward COA balances from this moment
    REJECTED: terminal, entries are permanently excluded

    CLOSING transactions are system-generated and start APPROVED.
    ADJUSTMENT created by an auto-approve role starts APPROVED.

RULES:
1. Approve/reject exactly once (AlreadyFinalizedError otherwise)
2. Approver must not be the creator (SelfApprovalError)
3. Approver role must be in the type's can_approve set (policy table)
4. Creator and approver must reach the gas station (StationAccessDeniedError)
5. No automatic retry of any money-affecting action

Role rules are looked up once in permissions.policies.TRANSACTION_POLICIES;
this module never branches on role names.
================================================================================
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..models import Transaction, User
from ..models.accounting import (
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_REJECTED,
    TRANSACTION_TYPES,
    TYPE_PURCHASE_BBM,
)
from ..permissions import get_policy
from ..permissions.roles import SUPERUSER_ROLES
from ..time_utils import utcnow
from ..validation import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
    coerce_datetime,
    optional_text,
    require_text,
)
from .coa_service import get_gas_station
from .concurrency import atomic, lock_for_update
from .journal_service import UnbalancedJournalError, post_journal
from .permission_service import check_gas_station_access


logger = logging.getLogger(__name__)


class TransactionNotFoundError(NotFoundError):
    """Raised when a transaction id does not exist (or is outside the station)."""


class AlreadyFinalizedError(ConflictError):
    """Raised when approving/rejecting a transaction that is not PENDING."""


class SelfApprovalError(ConflictError):
    """Raised when the approver is the creator."""


class UnauthorizedApproverError(AuthorizationError):
    """Raised when the approver role lacks approval capability for the type."""


class UnauthorizedCreatorError(AuthorizationError):
    """Raised when the creator role may not create the type."""


class StationAccessDeniedError(AuthorizationError):
    """Raised when the acting user has no access to the transaction's gas station."""


class TransactionNotDeletableError(ConflictError):
    """Raised when deleting an approved or non-deletable transaction."""


def _role_allowed(role: str, allowed) -> bool:
    return role in SUPERUSER_ROLES or role in allowed


def validate_transaction_type(transaction_type: str) -> str:
    clean = (transaction_type or "").strip().upper() if isinstance(transaction_type, str) else ""
    if clean not in TRANSACTION_TYPES:
        raise ValidationError(
            f"Invalid transaction type '{transaction_type}'. "
            f"Must be one of: {', '.join(sorted(TRANSACTION_TYPES))}"
        )
    return clean


def get_transaction(session, transaction_id: int, *, gas_station_id: int | None = None) -> Transaction:
    tx = session.get(Transaction, transaction_id)
    if tx is None or (gas_station_id is not None and tx.gas_station_id != gas_station_id):
        raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
    return tx


def _lock_transaction(session, transaction_id: int) -> Transaction:
    tx = lock_for_update(
        session.query(Transaction).filter(Transaction.id == transaction_id)
    ).first()
    if tx is None:
        raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
    return tx


def insert_transaction(
    session,
    *,
    gas_station_id: int,
    transaction_type: str,
    creator: User,
    entries,
    description: str,
    date: datetime | None = None,
    reference_number: str | None = None,
    notes: str | None = None,
    approval_status: str = STATUS_PENDING,
    **extra,
) -> Transaction:
    """
    Add a transaction header and post its journal. Flushes only.

    extra carries type-specific columns (product_id, purchase_volume,
    delivered_volume, closing_year, closing_month). Callers run this inside
    their own atomic scope; any failure leaves nothing persisted once that
    scope rolls back.
    """
    now = utcnow()
    tx = Transaction(
        gas_station_id=gas_station_id,
        date=date or now,
        transaction_type=transaction_type,
        description=description,
        reference_number=reference_number,
        notes=notes,
        approval_status=approval_status,
        created_by_id=creator.id,
        created_by_role=creator.role,
        **extra,
    )
    if approval_status == STATUS_APPROVED:
        tx.approved_at = now

    session.add(tx)
    session.flush()

    post_journal(session, tx, entries, created_by_id=creator.id)
    return tx


def prepare_creation(session, gas_station_id: int, transaction_type: str, creator: User):
    """
    Shared pre-checks for every human-created transaction.

    Returns (policy, initial_status).
    """
    get_gas_station(session, gas_station_id)
    if not check_gas_station_access(session, creator, gas_station_id):
        raise StationAccessDeniedError(f"User {creator.id} has no access to gas station {gas_station_id}")
    policy = get_policy(transaction_type)
    if policy.system_generated:
        raise UnauthorizedCreatorError(f"{transaction_type} transactions are system-generated")
    if not _role_allowed(creator.role, policy.can_create):
        raise UnauthorizedCreatorError(
            f"Role {creator.role} cannot create {transaction_type} transactions"
        )
    initial_status = STATUS_APPROVED if creator.role in policy.auto_approve_creators else STATUS_PENDING
    return policy, initial_status


def create_transaction(session, *, gas_station_id: int, transaction_type: str, creator: User, payload: dict) -> Transaction:
    """
    Create a transaction with explicit journal entries.

    payload:
        description (required), entries (required, >= 2 lines),
        date (ISO, default now), reference_number, notes

    Returns the transaction PENDING, or APPROVED when the creator's role is
    in the type's auto-approve set (ADJUSTMENT by ADMINISTRATOR/DEVELOPER).

    PURCHASE_BBM goes through purchase_service, which computes its lines.
    """
    transaction_type = validate_transaction_type(transaction_type)
    if transaction_type == TYPE_PURCHASE_BBM:
        raise ValidationError("Use the purchase endpoint to create PURCHASE_BBM transactions")

    with atomic(session):
        _, initial_status = prepare_creation(session, gas_station_id, transaction_type, creator)

        tx = insert_transaction(
            session,
            gas_station_id=gas_station_id,
            transaction_type=transaction_type,
            creator=creator,
            entries=payload.get("entries"),
            description=require_text(payload.get("description"), "description"),
            date=coerce_datetime(payload.get("date"), "date", required=False),
            reference_number=optional_text(payload.get("reference_number"), "reference_number", max_length=64),
            notes=optional_text(payload.get("notes"), "notes"),
            approval_status=initial_status,
        )

    logger.info(
        "Transaction %s (%s) created by user %s as %s",
        tx.id, tx.transaction_type, creator.id, tx.approval_status,
    )
    return tx


def _check_decision(session, tx: Transaction, approver: User) -> None:
    """Authorization shared by approve and reject. Order of checks is part of the contract."""
    if tx.approval_status != STATUS_PENDING:
        raise AlreadyFinalizedError(
            f"Transaction {tx.id} is already {tx.approval_status}"
        )

    if approver.id == tx.created_by_id:
        raise SelfApprovalError("You cannot approve or reject your own transaction")

    policy = get_policy(tx.transaction_type)
    if not _role_allowed(approver.role, policy.can_approve):
        raise UnauthorizedApproverError(
            f"Role {approver.role} cannot approve {tx.transaction_type} transactions"
        )

    if not check_gas_station_access(session, approver, tx.gas_station_id):
        raise StationAccessDeniedError(f"User {approver.id} has no access to gas station {tx.gas_station_id}")


def approve_transaction(session, transaction_id: int, approver: User, *, notes: str | None = None) -> Transaction:
    """
    PENDING -> APPROVED.

    From the commit of this operation the transaction's journal entries count
    toward COA balances. Totals are re-checked under the row lock.

    Raises:
        TransactionNotFoundError, AlreadyFinalizedError,
        UnauthorizedApproverError, SelfApprovalError, UnbalancedJournalError
    """
    with atomic(session):
        tx = _lock_transaction(session, transaction_id)
        _check_decision(session, tx, approver)

        if tx.total_debit != tx.total_credit or len(tx.journal_entries) < 2:
            logger.error(
                "Refusing to approve transaction %s: stored journal is unbalanced (debit=%s credit=%s)",
                tx.id, tx.total_debit, tx.total_credit,
            )
            raise UnbalancedJournalError(tx.total_debit, tx.total_credit)

        tx.approval_status = STATUS_APPROVED
        tx.approver_id = approver.id
        tx.approved_at = utcnow()
        tx.approval_notes = optional_text(notes, "notes")
        session.flush()

    logger.info("Transaction %s approved by user %s", tx.id, approver.id)
    return tx


def reject_transaction(session, transaction_id: int, approver: User, *, notes: str | None = None) -> Transaction:
    """PENDING -> REJECTED. Same authorization as approve; entries never count."""
    with atomic(session):
        tx = _lock_transaction(session, transaction_id)
        _check_decision(session, tx, approver)

        tx.approval_status = STATUS_REJECTED
        tx.approver_id = approver.id
        tx.rejected_at = utcnow()
        tx.approval_notes = optional_text(notes, "notes")
        session.flush()

    logger.info("Transaction %s rejected by user %s", tx.id, approver.id)
    return tx


def delete_transaction(session, transaction_id: int, actor: User) -> None:
    """
    Remove a non-approved CASH/ADJUSTMENT transaction and its entries.

    Approved transactions are append-only; reverse them with a new
    ADJUSTMENT instead.
    """
    with atomic(session):
        tx = _lock_transaction(session, transaction_id)
        policy = get_policy(tx.transaction_type)
        if not policy.deletable:
            raise TransactionNotDeletableError(
                f"{tx.transaction_type} transactions cannot be deleted"
            )
        if tx.approval_status == STATUS_APPROVED:
            raise TransactionNotDeletableError("Approved transactions cannot be deleted")

        session.delete(tx)
        session.flush()

    logger.info("Transaction %s deleted by user %s", transaction_id, actor.id)


def list_transactions(
    session,
    gas_station_id: int,
    *,
    transaction_type: str | None = None,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 200,
) -> list[Transaction]:
    get_gas_station(session, gas_station_id)

    q = session.query(Transaction).filter(Transaction.gas_station_id == gas_station_id)
    if transaction_type:
        q = q.filter(Transaction.transaction_type == validate_transaction_type(transaction_type))
    if status:
        clean_status = status.strip().upper()
        if clean_status not in (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED):
            raise ValidationError(f"Invalid approval status '{status}'")
        q = q.filter(Transaction.approval_status == clean_status)
    if start is not None:
        q = q.filter(Transaction.date >= start)
    if end is not None:
        q = q.filter(Transaction.date <= end)

    return q.order_by(Transaction.date.desc(), Transaction.id.desc()).limit(limit).all()
