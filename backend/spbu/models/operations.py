from __future__ import annotations

from ..extensions import db
from spbu.time_utils import to_utc_z


UNLOAD_STATUS_PENDING = "PENDING"
UNLOAD_STATUS_APPROVED = "APPROVED"
UNLOAD_STATUS_REJECTED = "REJECTED"


class Product(db.Model):
    """Fuel product sold at a station. Prices are integer minor units per liter."""
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("gas_station_id", "name", name="uq_products_station_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    gas_station_id = db.Column(db.Integer, db.ForeignKey("gas_stations.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    purchase_price = db.Column(db.BigInteger, nullable=False, default=0)
    selling_price = db.Column(db.BigInteger, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    gas_station = db.relationship("GasStation", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} station={self.gas_station_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "gas_station_id": self.gas_station_id,
            "name": self.name,
            "purchase_price": self.purchase_price,
            "selling_price": self.selling_price,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Tank(db.Model):
    """
    Fuel tank holding one product.

    current_stock is a cache of initial_stock + approved unloads - sales,
    rewritten by tank_service.recompute_stock and never adjusted by deltas.
    0 <= current_stock <= capacity.
    """
    __tablename__ = "tanks"
    __table_args__ = (
        db.CheckConstraint("capacity > 0", name="ck_tanks_capacity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    gas_station_id = db.Column(db.Integer, db.ForeignKey("gas_stations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True)

    capacity = db.Column(db.BigInteger, nullable=False)
    initial_stock = db.Column(db.BigInteger, nullable=False, default=0)
    current_stock = db.Column(db.BigInteger, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    gas_station = db.relationship("GasStation", backref=db.backref("tanks", lazy=True))
    product = db.relationship("Product", backref=db.backref("tanks", lazy=True))

    def __repr__(self) -> str:
        return f"<Tank id={self.id} name={self.name!r} product_id={self.product_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "gas_station_id": self.gas_station_id,
            "product_id": self.product_id,
            "name": self.name,
            "code": self.code,
            "capacity": self.capacity,
            "initial_stock": self.initial_stock,
            "current_stock": self.current_stock,
        }


class TankSale(db.Model):
    """Sold volume fed from shift/nozzle operations (tracked outside the ledger core)."""
    __tablename__ = "tank_sales"
    __table_args__ = (
        db.CheckConstraint("volume > 0", name="ck_tank_sales_volume_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tank_id = db.Column(db.Integer, db.ForeignKey("tanks.id"), nullable=False, index=True)
    sold_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    volume = db.Column(db.BigInteger, nullable=False)
    recorded_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    tank = db.relationship("Tank", backref=db.backref("sales", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tank_id": self.tank_id,
            "sold_at": to_utc_z(self.sold_at),
            "volume": self.volume,
            "recorded_by_id": self.recorded_by_id,
        }


class Unload(db.Model):
    """
    Physical delivery of fuel into a tank against a PURCHASE_BBM order.

    INVARIANT: sum(delivered_volume of APPROVED unloads of a purchase) is
    never greater than that purchase's purchase_volume.

    purchase_transaction_id is a lookup reference only; the unload does not
    own the purchase.
    """
    __tablename__ = "unloads"
    __table_args__ = (
        db.CheckConstraint("delivered_volume > 0", name="ck_unloads_delivered_positive"),
        db.Index("ix_unloads_purchase_status", "purchase_transaction_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tank_id = db.Column(db.Integer, db.ForeignKey("tanks.id"), nullable=False, index=True)
    unloader_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    manager_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    purchase_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    # UNLOAD journal posted on approval (Persediaan / LO)
    delivery_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True)

    initial_order_volume = db.Column(db.BigInteger, nullable=False)
    delivered_volume = db.Column(db.BigInteger, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=UNLOAD_STATUS_PENDING, index=True)
    invoice_number = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    tank = db.relationship("Tank", backref=db.backref("unloads", lazy=True))
    purchase_transaction = db.relationship(
        "Transaction",
        foreign_keys=[purchase_transaction_id],
        backref=db.backref("purchase_unloads", lazy=True),
    )
    delivery_transaction = db.relationship("Transaction", foreign_keys=[delivery_transaction_id])
    unloader = db.relationship("User", foreign_keys=[unloader_id])
    manager = db.relationship("User", foreign_keys=[manager_id])

    def __repr__(self) -> str:
        return f"<Unload id={self.id} tank_id={self.tank_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tank_id": self.tank_id,
            "unloader_id": self.unloader_id,
            "manager_id": self.manager_id,
            "purchase_transaction_id": self.purchase_transaction_id,
            "delivery_transaction_id": self.delivery_transaction_id,
            "initial_order_volume": self.initial_order_volume,
            "delivered_volume": self.delivered_volume,
            "status": self.status,
            "invoice_number": self.invoice_number,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "decided_at": to_utc_z(self.decided_at) if self.decided_at else None,
        }
