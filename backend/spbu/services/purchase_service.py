# Overview: Service-layer operations for fuel purchase orders (PURCHASE_BBM); encapsulates business logic and database work.

"""
Fuel purchase orders.

A PURCHASE_BBM transaction records an order of purchase_volume liters of one
product at the product's purchase price:

    Debit  LO <product>        volume x purchase_price
    Credit Bank [<bank name>]  volume x purchase_price

delivered_volume starts at 0 and is only ever rewritten by unload
reconciliation (see unload_service.recompute_delivered_volume).
"""

from __future__ import annotations

import logging

from ..models import Product, Transaction, User
from ..models.accounting import STATUS_APPROVED, TYPE_PURCHASE_BBM
from ..validation import (
    NotFoundError,
    ValidationError,
    coerce_datetime,
    coerce_int,
    optional_text,
)
from .coa_service import LO_COA_PREFIX, PAYMENT_BANK, get_or_create_lo_coa, get_or_create_payment_coa
from .concurrency import atomic
from .transaction_service import insert_transaction, prepare_creation
from .unload_service import remaining_volume


logger = logging.getLogger(__name__)


class ProductNotFoundError(NotFoundError):
    """Raised when a product id does not exist for the station."""


def get_product(session, product_id: int, *, gas_station_id: int | None = None) -> Product:
    product = session.get(Product, product_id)
    if product is None or (gas_station_id is not None and product.gas_station_id != gas_station_id):
        raise ProductNotFoundError(f"Product {product_id} not found")
    return product


def create_purchase_transaction(session, *, gas_station_id: int, creator: User, payload: dict) -> Transaction:
    """
    Create a PENDING PURCHASE_BBM order.

    payload:
        product_id (required), purchase_volume (required, liters > 0),
        date, description, reference_number, notes, bank_name

    Raises:
        UnauthorizedCreatorError, ProductNotFoundError, ValidationError
    """
    with atomic(session):
        _, initial_status = prepare_creation(session, gas_station_id, TYPE_PURCHASE_BBM, creator)

        product = get_product(
            session,
            coerce_int(payload.get("product_id"), "product_id", minimum=1),
            gas_station_id=gas_station_id,
        )
        if not product.is_active:
            raise ValidationError(f"Product '{product.name}' is inactive")
        if product.purchase_price <= 0:
            raise ValidationError(f"Product '{product.name}' has no purchase price")

        volume = coerce_int(payload.get("purchase_volume"), "purchase_volume", minimum=1)
        total_value = coerce_int(volume * product.purchase_price, "purchase value")
        product_name = product.name.strip()

        lo_coa = get_or_create_lo_coa(session, gas_station_id, product_name, created_by_id=creator.id)
        bank_coa = get_or_create_payment_coa(
            session,
            gas_station_id,
            PAYMENT_BANK,
            bank_name=optional_text(payload.get("bank_name"), "bank_name", max_length=100),
            created_by_id=creator.id,
        )

        entries = [
            {
                "coa_id": lo_coa.id,
                "debit": total_value,
                "credit": 0,
                "description": f"LO {product_name} {volume:,} L",
            },
            {
                "coa_id": bank_coa.id,
                "debit": 0,
                "credit": total_value,
                "description": f"Payment for {product_name} purchase",
            },
        ]

        description = optional_text(payload.get("description"), "description", max_length=255)
        tx = insert_transaction(
            session,
            gas_station_id=gas_station_id,
            transaction_type=TYPE_PURCHASE_BBM,
            creator=creator,
            entries=entries,
            description=description or f"Fuel purchase {product_name} - {volume:,} L",
            date=coerce_datetime(payload.get("date"), "date", required=False),
            reference_number=optional_text(payload.get("reference_number"), "reference_number", max_length=64),
            notes=optional_text(payload.get("notes"), "notes"),
            approval_status=initial_status,
            product_id=product.id,
            purchase_volume=volume,
            delivered_volume=0,
        )

    logger.info(
        "Purchase %s created: station=%s product=%s volume=%s value=%s",
        tx.id, gas_station_id, product.id, volume, total_value,
    )
    return tx


def purchase_to_dict(tx: Transaction) -> dict:
    """Purchase header with product, order value and remaining volume."""
    lo_entry = next(
        (
            e for e in tx.journal_entries
            if e.debit > 0 and e.coa is not None and e.coa.name.startswith(LO_COA_PREFIX)
        ),
        None,
    )
    data = tx.to_dict(include_entries=False)
    data.update({
        "product_name": tx.product.name if tx.product else None,
        "total_value": lo_entry.debit if lo_entry else 0,
        "remaining_volume": remaining_volume(tx),
    })
    return data


def list_purchases(
    session,
    gas_station_id: int,
    *,
    product_id: int | None = None,
    approved_only: bool = False,
    open_only: bool = False,
) -> list[dict]:
    """
    Purchase orders of a station, newest first.

    open_only keeps APPROVED orders that still have remaining volume.
    """
    q = session.query(Transaction).filter(
        Transaction.gas_station_id == gas_station_id,
        Transaction.transaction_type == TYPE_PURCHASE_BBM,
        Transaction.purchase_volume.isnot(None),
    )
    if product_id is not None:
        q = q.filter(Transaction.product_id == product_id)
    if approved_only or open_only:
        q = q.filter(Transaction.approval_status == STATUS_APPROVED)

    result = [purchase_to_dict(tx) for tx in q.order_by(Transaction.date.desc(), Transaction.id.desc()).all()]
    if open_only:
        result = [p for p in result if p["remaining_volume"] > 0]
    return result
