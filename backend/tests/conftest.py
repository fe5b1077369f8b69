"""
Pytest fixtures for SPBU backend tests.

Provides the in-memory database, one owner with three gas stations, a user
for every role, and a product with a tank on the first station.
"""

import pytest

from spbu import create_app
from spbu.extensions import db
from spbu.models.accounting import TYPE_ADJUSTMENT
from spbu.permissions import roles
from spbu.services import purchase_service, transaction_service
from spbu.services.auth_service import create_user
from spbu.services.coa_service import get_or_create_coa
from spbu.services.station_service import assign_user, create_gas_station, create_product, create_tank


PASSWORD = "Password123!"
TEST_BCRYPT_ROUNDS = 4
CRON_SECRET = "test-cron-secret"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CRON_SECRET': CRON_SECRET,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def make_user(session, username, role, owner=None):
    return create_user(
        session,
        username=username,
        email=f"{username}@spbu.test",
        password=PASSWORD,
        role=role,
        owner_id=owner.id if owner is not None else None,
        rounds=TEST_BCRYPT_ROUNDS,
    )


def make_staff(session, username, role, owner, stations):
    """Staff user of owner, assigned to every given station."""
    user = make_user(session, username, role, owner)
    if role not in roles.OWNER_SCOPED_ROLES:
        for station in stations:
            assign_user(session, user=user, gas_station_id=station.id)
    return user


@pytest.fixture(scope='function')
def owner(db_session):
    return make_user(db_session, "owner", roles.OWNER)


@pytest.fixture(scope='function')
def stations(db_session, owner):
    """Three ACTIVE stations of the same owner."""
    return [
        create_gas_station(db_session, owner=owner, name=f"SPBU {n}", code=f"SPBU-0{n}")
        for n in (1, 2, 3)
    ]


@pytest.fixture(scope='function')
def station(stations):
    return stations[0]


@pytest.fixture(scope='function')
def developer(db_session):
    return make_user(db_session, "developer", roles.DEVELOPER)


@pytest.fixture(scope='function')
def administrator(db_session, owner, stations):
    return make_staff(db_session, "administrator", roles.ADMINISTRATOR, owner, stations)


@pytest.fixture(scope='function')
def owner_group(db_session, owner, stations):
    return make_staff(db_session, "owner_group", roles.OWNER_GROUP, owner, stations)


@pytest.fixture(scope='function')
def manager(db_session, owner, stations):
    return make_staff(db_session, "manager", roles.MANAGER, owner, stations)


@pytest.fixture(scope='function')
def finance(db_session, owner, stations):
    return make_staff(db_session, "finance", roles.FINANCE, owner, stations)


@pytest.fixture(scope='function')
def accounting(db_session, owner, stations):
    return make_staff(db_session, "accounting", roles.ACCOUNTING, owner, stations)


@pytest.fixture(scope='function')
def unloader(db_session, owner, stations):
    return make_staff(db_session, "unloader", roles.UNLOADER, owner, stations)


@pytest.fixture(scope='function')
def operator(db_session, owner, stations):
    return make_staff(db_session, "operator", roles.OPERATOR, owner, stations)


@pytest.fixture(scope='function')
def foreign_owner(db_session):
    """A second tenant."""
    return make_user(db_session, "foreign_owner", roles.OWNER)


@pytest.fixture(scope='function')
def foreign_station(db_session, foreign_owner):
    return create_gas_station(db_session, owner=foreign_owner, name="SPBU Foreign", code="FOREIGN-01")


@pytest.fixture(scope='function')
def foreign_administrator(db_session, foreign_owner, foreign_station):
    return make_staff(db_session, "foreign_admin", roles.ADMINISTRATOR, foreign_owner, [foreign_station])


@pytest.fixture(scope='function')
def product(db_session, station):
    return create_product(
        db_session, gas_station_id=station.id, name="Pertalite", purchase_price=10000, selling_price=10500
    )


@pytest.fixture(scope='function')
def tank(db_session, station, product):
    return create_tank(
        db_session, gas_station_id=station.id, product_id=product.id, name="Tank 1", capacity=20000
    )


@pytest.fixture(scope='function')
def make_approved_purchase(db_session, owner_group, manager):
    """Factory: PURCHASE_BBM created by owner_group and approved by manager."""
    def _make(station, product, volume, **payload):
        tx = purchase_service.create_purchase_transaction(
            db_session,
            gas_station_id=station.id,
            creator=owner_group,
            payload={"product_id": product.id, "purchase_volume": volume, **payload},
        )
        return transaction_service.approve_transaction(db_session, tx.id, manager)
    return _make


@pytest.fixture(scope='function')
def post_adjustment(db_session, administrator):
    """
    Factory: auto-approved ADJUSTMENT by the administrator.

    lines: [(coa_name, category, debit, credit), ...]
    """
    def _post(station, lines, date=None, description="Test adjustment"):
        entries = []
        for name, category, debit, credit in lines:
            coa = get_or_create_coa(
                db_session, gas_station_id=station.id, name=name, category=category
            )
            entries.append({"coa_id": coa.id, "debit": debit, "credit": credit})
        db_session.commit()
        return transaction_service.create_transaction(
            db_session,
            gas_station_id=station.id,
            transaction_type=TYPE_ADJUSTMENT,
            creator=administrator,
            payload={"description": description, "date": date, "entries": entries},
        )
    return _post


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json['data']['token']
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def login(client, username: str) -> dict:
    return auth_headers(get_auth_token(client, username))
