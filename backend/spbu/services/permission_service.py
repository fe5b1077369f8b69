# Overview: Service-layer operations for permission; encapsulates business logic and database work.

"""
Permission gate

WHY: Routes need one allow/deny answer per request. The accounting core
never re-derives role logic; it only consults the transaction policy table
for its own domain rules (approver roles, approver != creator).

RULES:
- Fail closed: deny unless a rule grants access
- DEVELOPER passes every check and reaches every station
- ADMINISTRATOR passes role lists; stations limited to its owner's
- ADMINISTRATOR / OWNER_GROUP reach every ACTIVE station of their owner
- OWNER reaches its own ACTIVE stations
- Other staff reach ACTIVE stations they are assigned to
"""

from __future__ import annotations

from dataclasses import dataclass

from ..models import GasStation, User, UserGasStation
from ..models.tenancy import STATION_STATUS_ACTIVE
from ..permissions.roles import OWNER, OWNER_SCOPED_ROLES, ROLE_CHECK_BYPASS, SUPERUSER_ROLES


@dataclass
class PermissionResult:
    authorized: bool
    user: User | None
    message: str = ""


def check_permission(user: User | None, allowed_roles) -> PermissionResult:
    if user is None or not user.is_active:
        return PermissionResult(False, None, "Unauthorized")
    if user.role in ROLE_CHECK_BYPASS or user.role in allowed_roles:
        return PermissionResult(True, user)
    return PermissionResult(False, user, "Forbidden: insufficient role")


def check_gas_station_access(session, user: User, gas_station_id: int) -> bool:
    if user.role in SUPERUSER_ROLES:
        return session.get(GasStation, gas_station_id) is not None

    station = session.get(GasStation, gas_station_id)
    if station is None or station.status != STATION_STATUS_ACTIVE:
        return False

    if user.role in OWNER_SCOPED_ROLES:
        return user.owner_id is not None and station.owner_id == user.owner_id
    if user.role == OWNER:
        return station.owner_id == user.id

    assignment = session.query(UserGasStation).filter_by(
        user_id=user.id,
        gas_station_id=gas_station_id,
        status=STATION_STATUS_ACTIVE,
    ).first()
    return assignment is not None


def check_permission_with_gas_station(session, user: User | None, allowed_roles, gas_station_id: int) -> PermissionResult:
    result = check_permission(user, allowed_roles)
    if not result.authorized:
        return result
    if not check_gas_station_access(session, user, gas_station_id):
        return PermissionResult(False, user, "Forbidden: no access to this gas station")
    return result


def accessible_gas_stations(session, user: User) -> list[GasStation]:
    q = session.query(GasStation)
    if user.role in SUPERUSER_ROLES:
        return q.order_by(GasStation.id.asc()).all()

    q = q.filter(GasStation.status == STATION_STATUS_ACTIVE)
    if user.role in OWNER_SCOPED_ROLES:
        q = q.filter(GasStation.owner_id == user.owner_id)
    elif user.role == OWNER:
        q = q.filter(GasStation.owner_id == user.id)
    else:
        q = q.join(UserGasStation, UserGasStation.gas_station_id == GasStation.id).filter(
            UserGasStation.user_id == user.id,
            UserGasStation.status == STATION_STATUS_ACTIVE,
        )
    return q.order_by(GasStation.id.asc()).all()
