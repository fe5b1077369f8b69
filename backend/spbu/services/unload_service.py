# Overview: Service-layer operations for purchase/unload reconciliation; encapsulates business logic and database work.

"""
Purchase / Unload Reconciliation

================================================================================
PURPOSE: Match physical fuel deliveries against PURCHASE_BBM orders
================================================================================

INVARIANT:
    For every purchase P:
        P.delivered_volume == sum(delivered_volume of APPROVED unloads of P)
                           <= P.purchase_volume

FULL RECOMPUTATION, NEVER INCREMENTS:
- delivered_volume is rewritten from the aggregate of approved unloads on
  every approval (recompute_delivered_volume). Two concurrent approvals that
  both commit leave the same value whichever commits last.
- repair_delivered_volumes runs the same recomputation over every purchase
  and only writes rows whose stored value differs. Running it twice changes
  nothing the second time.

LOCKING:
- request_unload and approve_unload lock the purchase row before summing
  approved unloads, so the over-delivery check and the write share one
  database transaction.

UNLOAD LIFECYCLE:
    PENDING -> APPROVED   (manager; posts the UNLOAD journal, refreshes stock)
    PENDING -> REJECTED   (nothing else changes)
================================================================================
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..models import Tank, Transaction, Unload, User
from ..models.accounting import CATEGORY_ASSET, STATUS_APPROVED, TYPE_PURCHASE_BBM, TYPE_UNLOAD
from ..models.operations import (
    UNLOAD_STATUS_APPROVED,
    UNLOAD_STATUS_PENDING,
    UNLOAD_STATUS_REJECTED,
)
from ..time_utils import to_utc_z, utcnow
from ..validation import (
    ConflictError,
    InvariantViolationError,
    NotFoundError,
    ValidationError,
    coerce_int,
    optional_text,
)
from .coa_service import LO_COA_PREFIX, get_or_create_coa
from .concurrency import atomic, lock_for_update
from .tank_service import ensure_capacity, get_tank, recompute_stock
from .transaction_service import (
    AlreadyFinalizedError,
    TransactionNotFoundError,
    insert_transaction,
)


logger = logging.getLogger(__name__)


INVENTORY_COA_PREFIX = "Persediaan "

UNLOAD_STATUSES = {UNLOAD_STATUS_PENDING, UNLOAD_STATUS_APPROVED, UNLOAD_STATUS_REJECTED}


class UnloadNotFoundError(NotFoundError):
    """Raised when an unload id does not exist."""


class PurchaseNotApprovedError(ConflictError):
    """Raised when unloading against a purchase that is not an APPROVED PURCHASE_BBM."""


class ProductMismatchError(ConflictError):
    """Raised when the tank holds a different product than the purchase."""


class OverDeliveryError(ConflictError):
    """Raised when approved deliveries would exceed the purchase volume."""

    def __init__(self, purchase_volume: int, approved_volume: int, requested_volume: int):
        self.purchase_volume = purchase_volume
        self.approved_volume = approved_volume
        self.requested_volume = requested_volume
        super().__init__(
            f"Delivery of {requested_volume:,} L exceeds remaining order volume: "
            f"{approved_volume:,} L of {purchase_volume:,} L already delivered"
        )


def remaining_volume(purchase: Transaction) -> int:
    """
    purchase_volume - delivered_volume, never reported below 0.

    A negative raw value means delivered_volume drifted upstream; it is
    logged at error level and reported as 0.
    """
    raw = int(purchase.purchase_volume or 0) - int(purchase.delivered_volume or 0)
    if raw < 0:
        logger.error(
            "VolumeInvariantViolation: purchase %s remaining volume computes to %s "
            "(purchase_volume=%s delivered_volume=%s)",
            purchase.id, raw, purchase.purchase_volume, purchase.delivered_volume,
        )
        return 0
    return raw


def approved_unload_total(session, purchase_transaction_id: int) -> int:
    return int(
        session.query(func.coalesce(func.sum(Unload.delivered_volume), 0)).filter(
            Unload.purchase_transaction_id == purchase_transaction_id,
            Unload.status == UNLOAD_STATUS_APPROVED,
        ).scalar()
    )


def recompute_delivered_volume(session, purchase: Transaction) -> tuple[int, int]:
    """
    Rewrite purchase.delivered_volume from its approved unloads.

    Returns (old_value, new_value). Writes only when they differ.
    """
    old_value = purchase.delivered_volume
    new_value = approved_unload_total(session, purchase.id)
    if old_value != new_value:
        purchase.delivered_volume = new_value
        session.flush()
    if new_value > (purchase.purchase_volume or 0):
        logger.error(
            "VolumeInvariantViolation: purchase %s has %s L approved against an order of %s L",
            purchase.id, new_value, purchase.purchase_volume,
        )
    return old_value, new_value


def _lock_purchase(session, purchase_transaction_id: int) -> Transaction:
    purchase = lock_for_update(
        session.query(Transaction).filter(Transaction.id == purchase_transaction_id)
    ).first()
    if purchase is None:
        raise TransactionNotFoundError(f"Purchase transaction {purchase_transaction_id} not found")
    return purchase


def _check_purchase(purchase: Transaction) -> None:
    if purchase.transaction_type != TYPE_PURCHASE_BBM or purchase.approval_status != STATUS_APPROVED:
        raise PurchaseNotApprovedError(
            f"Transaction {purchase.id} is not an approved fuel purchase"
        )


def _check_over_delivery(session, purchase: Transaction, volume: int) -> None:
    approved = approved_unload_total(session, purchase.id)
    if approved + volume > (purchase.purchase_volume or 0):
        raise OverDeliveryError(purchase.purchase_volume or 0, approved, volume)


def get_unload(session, unload_id: int, *, for_update: bool = False) -> Unload:
    q = session.query(Unload).filter(Unload.id == unload_id)
    if for_update:
        q = lock_for_update(q)
    unload = q.first()
    if unload is None:
        raise UnloadNotFoundError(f"Unload {unload_id} not found")
    return unload


def request_unload(
    session,
    *,
    purchase_transaction_id,
    tank_id,
    delivered_volume,
    unloader: User,
    invoice_number: str | None = None,
    notes: str | None = None,
) -> Unload:
    """
    Record a delivery awaiting manager approval.

    Raises:
        TransactionNotFoundError, TankNotFoundError, PurchaseNotApprovedError,
        ProductMismatchError, OverDeliveryError, TankCapacityError
    """
    purchase_transaction_id = coerce_int(purchase_transaction_id, "purchase_transaction_id", minimum=1)
    tank_id = coerce_int(tank_id, "tank_id", minimum=1)
    volume = coerce_int(delivered_volume, "delivered_volume", minimum=1)

    with atomic(session):
        purchase = _lock_purchase(session, purchase_transaction_id)
        _check_purchase(purchase)

        tank = get_tank(session, tank_id)
        if tank.gas_station_id != purchase.gas_station_id:
            raise ValidationError("Tank and purchase belong to different gas stations")
        if tank.product_id != purchase.product_id:
            raise ProductMismatchError(
                f"Tank {tank.id} holds product {tank.product_id}, purchase {purchase.id} is for product {purchase.product_id}"
            )

        _check_over_delivery(session, purchase, volume)
        ensure_capacity(session, tank, volume)

        unload = Unload(
            tank_id=tank.id,
            unloader_id=unloader.id,
            purchase_transaction_id=purchase.id,
            initial_order_volume=purchase.purchase_volume,
            delivered_volume=volume,
            status=UNLOAD_STATUS_PENDING,
            invoice_number=optional_text(invoice_number, "invoice_number", max_length=64),
            notes=optional_text(notes, "notes"),
        )
        session.add(unload)
        session.flush()

    logger.info(
        "Unload %s requested: purchase=%s tank=%s volume=%s by user %s",
        unload.id, purchase.id, tank.id, volume, unloader.id,
    )
    return unload


def _purchase_lo_entry(purchase: Transaction):
    """The "LO <product>" debit line the purchase was posted with."""
    for entry in purchase.journal_entries:
        if entry.debit > 0 and entry.coa is not None and entry.coa.name.startswith(LO_COA_PREFIX):
            return entry
    logger.error("Purchase %s has no LO debit line", purchase.id)
    raise InvariantViolationError(f"Purchase {purchase.id} has no LO journal line")


def _post_delivery_journal(session, unload: Unload, purchase: Transaction, manager: User) -> Transaction:
    """
    UNLOAD transaction: Debit Persediaan <product> / Credit LO <product>.

    Valued at the unit price the purchase was booked with, so a later change
    of the product's price does not leave residue on the LO account.
    """
    lo_entry = _purchase_lo_entry(purchase)
    unit_price = lo_entry.debit // purchase.purchase_volume
    value = unload.delivered_volume * unit_price
    product_name = lo_entry.coa.name[len(LO_COA_PREFIX):]

    inventory_coa = get_or_create_coa(
        session,
        gas_station_id=purchase.gas_station_id,
        name=f"{INVENTORY_COA_PREFIX}{product_name}",
        category=CATEGORY_ASSET,
        created_by_id=unload.unloader_id,
        description=f"Fuel inventory of {product_name}",
    )

    tx = insert_transaction(
        session,
        gas_station_id=purchase.gas_station_id,
        transaction_type=TYPE_UNLOAD,
        creator=unload.unloader,
        entries=[
            {
                "coa_id": inventory_coa.id,
                "debit": value,
                "credit": 0,
                "description": f"{product_name} into tank: {unload.delivered_volume:,} L",
            },
            {
                "coa_id": lo_entry.coa_id,
                "debit": 0,
                "credit": value,
                "description": f"LO {product_name} delivered: {unload.delivered_volume:,} L",
            },
        ],
        description=f"Unload {product_name} - {unload.delivered_volume:,} L",
        reference_number=unload.invoice_number,
        notes=f"Posted on approval of unload {unload.id}",
        approval_status=STATUS_APPROVED,
        product_id=purchase.product_id,
    )
    tx.approver_id = manager.id
    return tx


def approve_unload(session, unload_id: int, manager: User) -> Unload:
    """
    PENDING -> APPROVED.

    Re-checks over-delivery and tank capacity under the purchase row lock,
    then recomputes the purchase's delivered_volume from all approved
    unloads. On OverDeliveryError nothing is written and the unload stays
    PENDING.
    """
    with atomic(session):
        unload = get_unload(session, unload_id, for_update=True)
        if unload.status != UNLOAD_STATUS_PENDING:
            raise AlreadyFinalizedError(f"Unload {unload.id} is already {unload.status}")

        purchase = _lock_purchase(session, unload.purchase_transaction_id)
        _check_purchase(purchase)
        _check_over_delivery(session, purchase, unload.delivered_volume)

        tank = get_tank(session, unload.tank_id, for_update=True)
        ensure_capacity(session, tank, unload.delivered_volume)

        unload.status = UNLOAD_STATUS_APPROVED
        unload.manager_id = manager.id
        unload.decided_at = utcnow()
        session.flush()

        _, delivered = recompute_delivered_volume(session, purchase)
        recompute_stock(session, tank)

        delivery = _post_delivery_journal(session, unload, purchase, manager)
        unload.delivery_transaction_id = delivery.id
        session.flush()

    logger.info(
        "Unload %s approved by user %s; purchase %s delivered_volume=%s",
        unload.id, manager.id, purchase.id, delivered,
    )
    return unload


def reject_unload(session, unload_id: int, manager: User, *, notes: str | None = None) -> Unload:
    """PENDING -> REJECTED. Purchase volumes and stock are untouched."""
    with atomic(session):
        unload = get_unload(session, unload_id, for_update=True)
        if unload.status != UNLOAD_STATUS_PENDING:
            raise AlreadyFinalizedError(f"Unload {unload.id} is already {unload.status}")

        unload.status = UNLOAD_STATUS_REJECTED
        unload.manager_id = manager.id
        unload.decided_at = utcnow()
        if notes:
            unload.notes = optional_text(notes, "notes")
        session.flush()

    logger.info("Unload %s rejected by user %s", unload.id, manager.id)
    return unload


def repair_delivered_volumes(session, gas_station_id: int | None = None) -> dict:
    """
    Recompute delivered_volume of every PURCHASE_BBM (optionally one station).

    Idempotent: rows already matching their aggregate are not written.
    Returns {"checked": n, "fixed": n, "fixes": [{transaction_id, old, new}]}.
    """
    with atomic(session):
        q = session.query(Transaction).filter(Transaction.transaction_type == TYPE_PURCHASE_BBM)
        if gas_station_id is not None:
            q = q.filter(Transaction.gas_station_id == gas_station_id)

        fixes = []
        purchases = lock_for_update(q.order_by(Transaction.id.asc())).all()
        for purchase in purchases:
            old_value, new_value = recompute_delivered_volume(session, purchase)
            if old_value != new_value:
                fixes.append({
                    "transaction_id": purchase.id,
                    "gas_station_id": purchase.gas_station_id,
                    "old_delivered_volume": old_value,
                    "new_delivered_volume": new_value,
                })

    if fixes:
        logger.warning("Repaired delivered_volume on %s purchase(s): %s", len(fixes), fixes)
    else:
        logger.info("delivered_volume consistent on %s purchase(s)", len(purchases))

    return {"checked": len(purchases), "fixed": len(fixes), "fixes": fixes}


def remaining_by_product(session, tank_id: int) -> dict:
    """
    Open purchase orders for the product held in a tank, oldest first (FIFO).

    Only APPROVED purchases with remaining volume are listed.
    """
    tank = get_tank(session, tank_id)
    purchases = session.query(Transaction).filter(
        Transaction.gas_station_id == tank.gas_station_id,
        Transaction.transaction_type == TYPE_PURCHASE_BBM,
        Transaction.approval_status == STATUS_APPROVED,
        Transaction.product_id == tank.product_id,
        Transaction.purchase_volume.isnot(None),
    ).order_by(Transaction.date.asc(), Transaction.id.asc()).all()

    open_orders = []
    total = 0
    for purchase in purchases:
        remaining = remaining_volume(purchase)
        if remaining <= 0:
            continue
        total += remaining
        open_orders.append({
            "transaction_id": purchase.id,
            "date": to_utc_z(purchase.date),
            "reference_number": purchase.reference_number,
            "purchase_volume": purchase.purchase_volume,
            "delivered_volume": purchase.delivered_volume or 0,
            "remaining_volume": remaining,
        })

    return {
        "tank_id": tank.id,
        "product_id": tank.product_id,
        "product_name": tank.product.name if tank.product else None,
        "remaining_volume": total,
        "purchases": open_orders,
    }


def list_unloads(session, gas_station_id: int, *, status: str | None = None) -> list[Unload]:
    q = session.query(Unload).join(Tank, Tank.id == Unload.tank_id).filter(
        Tank.gas_station_id == gas_station_id
    )
    if status:
        clean = status.strip().upper()
        if clean not in UNLOAD_STATUSES:
            raise ValidationError(f"Invalid unload status '{status}'")
        q = q.filter(Unload.status == clean)
    return q.order_by(Unload.created_at.desc(), Unload.id.desc()).all()
