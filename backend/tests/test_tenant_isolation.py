# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that access to a gas station follows the owner and
assignment rules, and that ledgers never leak across stations.

Test Coverage:
- Role gates: DEVELOPER / ADMINISTRATOR bypass, others need a listed role
- Station access: owner-scoped roles, assignments, inactive stations
- Cross-tenant: a foreign administrator reaches none of our stations
- Ledgers: balances and transaction lists are per station
"""

import pytest

from conftest import make_staff
from spbu.models.accounting import CATEGORY_ASSET, CATEGORY_REVENUE
from spbu.models.tenancy import STATION_STATUS_INACTIVE
from spbu.permissions import policies, roles
from spbu.services import coa_service, permission_service, transaction_service
from spbu.services.transaction_service import UnauthorizedCreatorError
from spbu.validation import AuthorizationError


class TestRoleGate:
    """permission_service.check_permission"""

    def test_listed_role_allowed(self, manager):
        """A listed role passes the gate."""
        assert permission_service.check_permission(manager, policies.UNLOAD_APPROVE_ROLES).authorized

    def test_unlisted_role_denied(self, operator):
        """An unlisted role is denied."""
        result = permission_service.check_permission(operator, policies.COA_MANAGE_ROLES)
        assert not result.authorized
        assert result.message == "Forbidden: insufficient role"

    @pytest.mark.parametrize("fixture_name", ["developer", "administrator"])
    def test_bypass_roles(self, request, fixture_name):
        """Developer and administrator pass any role list."""
        user = request.getfixturevalue(fixture_name)
        assert permission_service.check_permission(user, ()).authorized

    def test_inactive_user_denied(self, db_session, manager):
        """Inactive users are denied."""
        manager.is_active = False
        db_session.commit()
        assert not permission_service.check_permission(manager, policies.UNLOAD_APPROVE_ROLES).authorized

    def test_missing_user_denied(self):
        """No user, no access."""
        assert not permission_service.check_permission(None, roles.ALL_ROLES).authorized


class TestStationAccess:
    """permission_service.check_gas_station_access"""

    def test_assigned_staff(self, db_session, owner, stations):
        """Staff reach assigned stations only."""
        clerk = make_staff(db_session, "single_station", roles.FINANCE, owner, [stations[0]])

        assert permission_service.check_gas_station_access(db_session, clerk, stations[0].id)
        assert not permission_service.check_gas_station_access(db_session, clerk, stations[1].id)

    def test_owner_scoped_roles_reach_all_owner_stations(self, db_session, stations, administrator, owner_group):
        """Administrator and owner group reach every station of their owner."""
        for user in (administrator, owner_group):
            for station in stations:
                assert permission_service.check_gas_station_access(db_session, user, station.id)

    def test_owner_reaches_own_stations(self, db_session, owner, stations, foreign_station):
        """Owners reach their own stations only."""
        assert permission_service.check_gas_station_access(db_session, owner, stations[2].id)
        assert not permission_service.check_gas_station_access(db_session, owner, foreign_station.id)

    def test_developer_reaches_every_station(self, db_session, developer, station, foreign_station):
        """Developer reaches stations of every owner."""
        assert permission_service.check_gas_station_access(db_session, developer, station.id)
        assert permission_service.check_gas_station_access(db_session, developer, foreign_station.id)

    def test_inactive_station_closed_to_staff(self, db_session, station, manager, administrator):
        """Inactive stations are closed to staff and administrators."""
        station.status = STATION_STATUS_INACTIVE
        db_session.commit()

        assert not permission_service.check_gas_station_access(db_session, manager, station.id)
        assert not permission_service.check_gas_station_access(db_session, administrator, station.id)

    def test_unknown_station(self, db_session, administrator):
        """Unknown station ids are denied."""
        assert not permission_service.check_gas_station_access(db_session, administrator, 99999)

    def test_accessible_stations_listing(self, db_session, owner, stations, foreign_station, developer, manager):
        """Station listing follows the access rules."""
        assert [s.id for s in permission_service.accessible_gas_stations(db_session, owner)] == [
            s.id for s in stations
        ]
        assert foreign_station.id in [
            s.id for s in permission_service.accessible_gas_stations(db_session, developer)
        ]
        assert foreign_station.id not in [
            s.id for s in permission_service.accessible_gas_stations(db_session, manager)
        ]


class TestCrossTenant:
    def test_foreign_administrator_denied(self, db_session, stations, foreign_administrator):
        """Another owner's administrator is denied on every station."""
        for station in stations:
            result = permission_service.check_permission_with_gas_station(
                db_session, foreign_administrator, policies.COA_MANAGE_ROLES, station.id
            )
            assert not result.authorized
            assert result.message == "Forbidden: no access to this gas station"

    def test_foreign_administrator_cannot_post(self, db_session, station, foreign_administrator):
        """Another owner's administrator cannot post to our station."""
        with pytest.raises(AuthorizationError):
            transaction_service.create_transaction(
                db_session,
                gas_station_id=station.id,
                transaction_type="CASH",
                creator=foreign_administrator,
                payload={"cash_transaction_type": "INCOME", "amount": 1000, "payment_account": "CASH"},
            )

    def test_creator_role_checked_before_posting(self, db_session, station, operator):
        """Creator role is checked before any line is posted."""
        with pytest.raises(UnauthorizedCreatorError):
            transaction_service.create_transaction(
                db_session,
                gas_station_id=station.id,
                transaction_type="ADJUSTMENT",
                creator=operator,
                payload={"entries": []},
            )


class TestLedgerIsolation:
    def test_same_name_accounts_are_separate(self, db_session, stations, post_adjustment):
        """Same-named accounts on two stations keep separate balances."""
        post_adjustment(stations[0], [
            ("Kas", CATEGORY_ASSET, 100_000, 0),
            ("Pendapatan BBM", CATEGORY_REVENUE, 0, 100_000),
        ])
        post_adjustment(stations[1], [
            ("Kas", CATEGORY_ASSET, 7_000, 0),
            ("Pendapatan BBM", CATEGORY_REVENUE, 0, 7_000),
        ])

        kas_1 = coa_service.find_coa_by_name(db_session, stations[0].id, "Kas")
        kas_2 = coa_service.find_coa_by_name(db_session, stations[1].id, "Kas")
        assert kas_1.id != kas_2.id
        assert coa_service.get_coa_balance(db_session, kas_1.id) == 100_000
        assert coa_service.get_coa_balance(db_session, kas_2.id) == 7_000

        listed = transaction_service.list_transactions(db_session, stations[1].id)
        assert {tx.gas_station_id for tx in listed} == {stations[1].id}
        assert transaction_service.list_transactions(db_session, stations[2].id) == []
