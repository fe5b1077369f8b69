from __future__ import annotations

from ..extensions import db
from spbu.time_utils import to_utc_z


# COA categories and their normal balance side
CATEGORY_ASSET = "ASSET"
CATEGORY_LIABILITY = "LIABILITY"
CATEGORY_EQUITY = "EQUITY"
CATEGORY_REVENUE = "REVENUE"
CATEGORY_EXPENSE = "EXPENSE"
CATEGORY_COGS = "COGS"

COA_CATEGORIES = {
    CATEGORY_ASSET,
    CATEGORY_LIABILITY,
    CATEGORY_EQUITY,
    CATEGORY_REVENUE,
    CATEGORY_EXPENSE,
    CATEGORY_COGS,
}

# balance = debit - credit
DEBIT_NORMAL_CATEGORIES = {CATEGORY_ASSET, CATEGORY_EXPENSE, CATEGORY_COGS}
# balance = credit - debit
CREDIT_NORMAL_CATEGORIES = {CATEGORY_LIABILITY, CATEGORY_EQUITY, CATEGORY_REVENUE}

# Categories zeroed into equity by the monthly closing
NOMINAL_CATEGORIES = {CATEGORY_REVENUE, CATEGORY_EXPENSE, CATEGORY_COGS}

COA_STATUS_ACTIVE = "ACTIVE"
COA_STATUS_INACTIVE = "INACTIVE"

TYPE_PURCHASE_BBM = "PURCHASE_BBM"
TYPE_CASH = "CASH"
TYPE_ADJUSTMENT = "ADJUSTMENT"
TYPE_CLOSING = "CLOSING"
# Delivery of a purchase into a tank: moves value from LO to inventory
TYPE_UNLOAD = "UNLOAD"

TRANSACTION_TYPES = {TYPE_PURCHASE_BBM, TYPE_CASH, TYPE_ADJUSTMENT, TYPE_CLOSING, TYPE_UNLOAD}

# Posted already APPROVED by the system, never through the approval queue
SYSTEM_TRANSACTION_TYPES = {TYPE_CLOSING, TYPE_UNLOAD}

STATUS_PENDING = "PENDING"
STATUS_APPROVED = "APPROVED"
STATUS_REJECTED = "REJECTED"

APPROVAL_STATUSES = {STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED}


class COA(db.Model):
    """
    Chart-of-account entry, scoped to one gas station.

    There is deliberately no stored balance column: balances are derived by
    aggregating journal entries of APPROVED transactions (see coa_service).

    INVARIANT: category is immutable once any journal entry references the
    account, since it decides the sign of every historical balance.
    """
    __tablename__ = "coas"
    __table_args__ = (
        db.UniqueConstraint("gas_station_id", "name", name="uq_coas_station_name"),
        db.Index("ix_coas_station_category", "gas_station_id", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    gas_station_id = db.Column(db.Integer, db.ForeignKey("gas_stations.id"), nullable=False, index=True)

    code = db.Column(db.String(32), nullable=True)
    name = db.Column(db.String(120), nullable=False)
    category = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=COA_STATUS_ACTIVE, index=True)
    description = db.Column(db.Text, nullable=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    gas_station = db.relationship("GasStation", backref=db.backref("coas", lazy=True))

    @property
    def is_debit_normal(self) -> bool:
        return self.category in DEBIT_NORMAL_CATEGORIES

    def __repr__(self) -> str:
        return f"<COA id={self.id} name={self.name!r} category={self.category}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "gas_station_id": self.gas_station_id,
            "code": self.code,
            "name": self.name,
            "category": self.category,
            "status": self.status,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Transaction(db.Model):
    """
    Accounting transaction header. Owns 1..N balanced journal entries.

    LIFECYCLE:
        PENDING -> APPROVED | REJECTED (terminal)

    Only entries of APPROVED transactions count toward COA balances. After a
    terminal state the header is immutable except delivered_volume, which
    unload reconciliation recomputes from approved unloads.

    CLOSING transactions carry (closing_year, closing_month); the unique
    constraint makes at most one closing per station and period.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint(
            "gas_station_id", "closing_year", "closing_month",
            name="uq_transactions_station_closing_period",
        ),
        db.Index("ix_transactions_station_type_status", "gas_station_id", "transaction_type", "approval_status"),
        db.Index("ix_transactions_station_date", "gas_station_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    gas_station_id = db.Column(db.Integer, db.ForeignKey("gas_stations.id"), nullable=False, index=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    description = db.Column(db.String(255), nullable=False)
    reference_number = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    approval_status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_by_role = db.Column(db.String(32), nullable=True)
    approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approval_notes = db.Column(db.Text, nullable=True)

    # Fuel purchase order tracking (PURCHASE_BBM only), liters
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    purchase_volume = db.Column(db.BigInteger, nullable=True)
    delivered_volume = db.Column(db.BigInteger, nullable=True)

    # Closing period key (CLOSING only)
    closing_year = db.Column(db.Integer, nullable=True)
    closing_month = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    gas_station = db.relationship("GasStation", backref=db.backref("transactions", lazy=True))
    product = db.relationship("Product")
    created_by = db.relationship("User", foreign_keys=[created_by_id])
    approver = db.relationship("User", foreign_keys=[approver_id])
    journal_entries = db.relationship(
        "JournalEntry",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="JournalEntry.id",
        lazy=True,
    )

    @property
    def is_final(self) -> bool:
        return self.approval_status in (STATUS_APPROVED, STATUS_REJECTED)

    @property
    def total_debit(self) -> int:
        return sum(e.debit for e in self.journal_entries)

    @property
    def total_credit(self) -> int:
        return sum(e.credit for e in self.journal_entries)

    def __repr__(self) -> str:
        return (
            f"<Transaction id={self.id} type={self.transaction_type} "
            f"status={self.approval_status} station={self.gas_station_id}>"
        )

    def to_dict(self, include_entries: bool = True) -> dict:
        data = {
            "id": self.id,
            "gas_station_id": self.gas_station_id,
            "date": to_utc_z(self.date),
            "transaction_type": self.transaction_type,
            "description": self.description,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "approval_status": self.approval_status,
            "created_by_id": self.created_by_id,
            "created_by_role": self.created_by_role,
            "approver_id": self.approver_id,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "rejected_at": to_utc_z(self.rejected_at) if self.rejected_at else None,
            "approval_notes": self.approval_notes,
            "product_id": self.product_id,
            "purchase_volume": self.purchase_volume,
            "delivered_volume": self.delivered_volume,
            "closing_year": self.closing_year,
            "closing_month": self.closing_month,
            "created_at": to_utc_z(self.created_at),
        }
        if include_entries:
            data["journal_entries"] = [e.to_dict() for e in self.journal_entries]
            data["total_debit"] = self.total_debit
            data["total_credit"] = self.total_credit
        return data


class JournalEntry(db.Model):
    """
    One debit line or one credit line against a COA.

    Amounts are non-negative integers in minor currency units; exactly one of
    debit/credit is positive.
    """
    __tablename__ = "journal_entries"
    __table_args__ = (
        db.CheckConstraint("debit >= 0 AND credit >= 0", name="ck_journal_entries_non_negative"),
        db.Index("ix_journal_entries_coa_tx", "coa_id", "transaction_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(
        db.Integer,
        db.ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    coa_id = db.Column(db.Integer, db.ForeignKey("coas.id"), nullable=False, index=True)

    debit = db.Column(db.BigInteger, nullable=False, default=0)
    credit = db.Column(db.BigInteger, nullable=False, default=0)
    description = db.Column(db.String(255), nullable=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    transaction = db.relationship("Transaction", back_populates="journal_entries")
    coa = db.relationship("COA", backref=db.backref("journal_entries", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "coa_id": self.coa_id,
            "coa_name": self.coa.name if self.coa else None,
            "debit": self.debit,
            "credit": self.credit,
            "description": self.description,
        }
