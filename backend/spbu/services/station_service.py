# Overview: Service-layer operations for station setup (stations, staff, products, tanks).

from __future__ import annotations

from ..models import GasStation, Product, Tank, User, UserGasStation
from ..models.tenancy import STATION_STATUS_ACTIVE
from ..permissions.roles import OWNER
from ..validation import ConflictError, ValidationError, coerce_int, optional_text, require_text
from .coa_service import get_gas_station
from .concurrency import atomic


def create_gas_station(session, *, owner: User, name: str, code: str | None = None, address: str | None = None) -> GasStation:
    if owner.role != OWNER:
        raise ValidationError("Gas stations must be owned by an OWNER user")
    with atomic(session):
        station = GasStation(
            owner_id=owner.id,
            name=require_text(name, "name", max_length=120),
            code=optional_text(code, "code", max_length=32),
            address=optional_text(address, "address", max_length=255),
            status=STATION_STATUS_ACTIVE,
        )
        session.add(station)
        session.flush()
    return station


def assign_user(session, *, user: User, gas_station_id: int) -> UserGasStation:
    with atomic(session):
        station = get_gas_station(session, gas_station_id)
        if user.owner_id != station.owner_id:
            raise ValidationError("User works for a different owner")
        existing = session.query(UserGasStation).filter_by(
            user_id=user.id, gas_station_id=station.id
        ).first()
        if existing is not None:
            if existing.status == STATION_STATUS_ACTIVE:
                raise ConflictError("User is already assigned to this gas station")
            existing.status = STATION_STATUS_ACTIVE
            session.flush()
            return existing

        assignment = UserGasStation(user_id=user.id, gas_station_id=station.id, status=STATION_STATUS_ACTIVE)
        session.add(assignment)
        session.flush()
    return assignment


def create_product(session, *, gas_station_id: int, name: str, purchase_price, selling_price=0) -> Product:
    with atomic(session):
        get_gas_station(session, gas_station_id)
        product = Product(
            gas_station_id=gas_station_id,
            name=require_text(name, "name", max_length=120),
            purchase_price=coerce_int(purchase_price, "purchase_price"),
            selling_price=coerce_int(selling_price, "selling_price"),
            is_active=True,
        )
        session.add(product)
        session.flush()
    return product


def create_tank(session, *, gas_station_id: int, product_id: int, name: str, capacity, initial_stock=0, code: str | None = None) -> Tank:
    with atomic(session):
        get_gas_station(session, gas_station_id)
        product = session.get(Product, product_id)
        if product is None or product.gas_station_id != gas_station_id:
            raise ValidationError("Product does not belong to this gas station")

        capacity = coerce_int(capacity, "capacity", minimum=1)
        initial_stock = coerce_int(initial_stock, "initial_stock")
        if initial_stock > capacity:
            raise ValidationError("initial_stock exceeds capacity")

        tank = Tank(
            gas_station_id=gas_station_id,
            product_id=product.id,
            name=require_text(name, "name", max_length=120),
            code=optional_text(code, "code", max_length=32),
            capacity=capacity,
            initial_stock=initial_stock,
            current_stock=initial_stock,
        )
        session.add(tank)
        session.flush()
    return tank
