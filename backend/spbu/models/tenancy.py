from __future__ import annotations

from ..extensions import db
from spbu.time_utils import to_utc_z


STATION_STATUS_ACTIVE = "ACTIVE"
STATION_STATUS_INACTIVE = "INACTIVE"


class GasStation(db.Model):
    """
    Gas station (SPBU) owned by an OWNER user.

    MULTI-TENANT: The owner is the tenant boundary. Administrators and
    owner-group users act on every ACTIVE station of their owner; other staff
    act only on stations they are assigned to (UserGasStation).
    """
    __tablename__ = "gas_stations"
    __table_args__ = (
        db.UniqueConstraint("owner_id", "name", name="uq_gas_stations_owner_name"),
        db.UniqueConstraint("code", name="uq_gas_stations_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, index=True)
    address = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=STATION_STATUS_ACTIVE, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    owner = db.relationship("User", foreign_keys=[owner_id], backref=db.backref("owned_gas_stations", lazy=True))

    @property
    def is_active(self) -> bool:
        return self.status == STATION_STATUS_ACTIVE

    def __repr__(self) -> str:
        return f"<GasStation id={self.id} name={self.name!r} owner_id={self.owner_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "code": self.code,
            "address": self.address,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class UserGasStation(db.Model):
    """Staff assignment of a user to a gas station."""
    __tablename__ = "user_gas_stations"
    __table_args__ = (
        db.UniqueConstraint("user_id", "gas_station_id", name="uq_user_gas_station"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    gas_station_id = db.Column(db.Integer, db.ForeignKey("gas_stations.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=STATION_STATUS_ACTIVE)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("gas_station_assignments", lazy=True))
    gas_station = db.relationship("GasStation", backref=db.backref("staff_assignments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "gas_station_id": self.gas_station_id,
            "status": self.status,
            "assigned_at": to_utc_z(self.assigned_at),
        }
