# Overview: Service-layer operations for tank stock; encapsulates business logic and database work.

"""
Tank stock.

current_stock = initial_stock
              + sum(delivered_volume of APPROVED unloads into the tank)
              - sum(volume of recorded sales)

Tank.current_stock is a cache of that aggregate. It is only ever rewritten
from a fresh aggregate (recompute_stock), never adjusted by deltas.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func

from ..models import Tank, TankSale, Unload, User
from ..models.operations import UNLOAD_STATUS_APPROVED
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, coerce_int
from .concurrency import atomic, lock_for_update


logger = logging.getLogger(__name__)


class TankNotFoundError(NotFoundError):
    """Raised when a tank id does not exist."""


class TankCapacityError(ConflictError):
    """Raised when a delivery would overflow the tank."""


class InsufficientStockError(ConflictError):
    """Raised when a sale exceeds the tank's current stock."""


def get_tank(session, tank_id: int, *, for_update: bool = False) -> Tank:
    q = session.query(Tank).filter(Tank.id == tank_id)
    if for_update:
        q = lock_for_update(q)
    tank = q.first()
    if tank is None:
        raise TankNotFoundError(f"Tank {tank_id} not found")
    return tank


def compute_stock(session, tank: Tank) -> int:
    """Fresh stock aggregate, clamped at 0 (a negative result is logged)."""
    unloaded = session.query(func.coalesce(func.sum(Unload.delivered_volume), 0)).filter(
        Unload.tank_id == tank.id,
        Unload.status == UNLOAD_STATUS_APPROVED,
    ).scalar()
    sold = session.query(func.coalesce(func.sum(TankSale.volume), 0)).filter(
        TankSale.tank_id == tank.id,
    ).scalar()

    raw = int(tank.initial_stock or 0) + int(unloaded) - int(sold)
    if raw < 0:
        logger.error(
            "VolumeInvariantViolation: tank %s stock computes to %s (initial=%s unloaded=%s sold=%s)",
            tank.id, raw, tank.initial_stock, unloaded, sold,
        )
        return 0
    return raw


def recompute_stock(session, tank: Tank) -> int:
    """Rewrite the cached current_stock from the aggregate. Flushes only."""
    stock = compute_stock(session, tank)
    if tank.current_stock != stock:
        tank.current_stock = stock
        session.flush()
    return stock


def ensure_capacity(session, tank: Tank, incoming_volume: int) -> None:
    stock = compute_stock(session, tank)
    if stock + incoming_volume > tank.capacity:
        available = max(tank.capacity - stock, 0)
        raise TankCapacityError(
            f"Tank capacity exceeded: incoming {incoming_volume:,} L, available space {available:,} L"
        )


def current_stock(session, tank_id: int) -> dict:
    tank = get_tank(session, tank_id)
    stock = compute_stock(session, tank)
    return {
        "tank_id": tank.id,
        "product_id": tank.product_id,
        "capacity": tank.capacity,
        "current_stock": stock,
        "available_space": max(tank.capacity - stock, 0),
    }


def record_tank_sale(
    session,
    tank_id: int,
    volume,
    recorded_by: User,
    *,
    sold_at: datetime | None = None,
) -> TankSale:
    """Record sold volume fed from shift operations; refreshes the stock cache."""
    with atomic(session):
        tank = get_tank(session, tank_id, for_update=True)
        volume = coerce_int(volume, "volume", minimum=1)

        stock = compute_stock(session, tank)
        if volume > stock:
            raise InsufficientStockError(
                f"Sale of {volume:,} L exceeds current stock {stock:,} L"
            )

        sale = TankSale(
            tank_id=tank.id,
            sold_at=sold_at or utcnow(),
            volume=volume,
            recorded_by_id=recorded_by.id,
        )
        session.add(sale)
        session.flush()
        recompute_stock(session, tank)

    return sale
