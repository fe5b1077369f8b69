"""
Authorization tests for the SPBU API.

Verifies:
- Unauthenticated requests return 401
- Roles outside a capability list are denied (403)
- Cross-tenant access is denied (403)
- The cron trigger is guarded by its shared secret
"""

import pytest

from conftest import CRON_SECRET, auth_headers, login, make_staff


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("POST", "/api/auth/logout"),
            ("GET", "/api/gas-stations/1/coas"),
            ("POST", "/api/gas-stations/1/coas"),
            ("GET", "/api/gas-stations/1/transactions"),
            ("POST", "/api/gas-stations/1/transactions/cash"),
            ("POST", "/api/transactions/1/approve"),
            ("GET", "/api/gas-stations/1/purchases"),
            ("POST", "/api/unloads"),
            ("POST", "/api/gas-stations/1/closing"),
            ("POST", "/api/closing/run-all"),
            ("POST", "/api/admin/repair-delivered-volume"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        """Endpoint returns 401 without a token."""
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        """Unknown bearer token returns 401."""
        resp = client.get("/api/auth/me", headers=auth_headers("not-a-real-token"))
        assert resp.status_code == 401

    def test_logged_out_token(self, client, manager):
        """Token stops working after logout."""
        headers = login(client, "manager")
        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401


# =============================================================================
# ROLE GATES (403)
# =============================================================================


class TestRoleGates:
    def test_operator_cannot_view_coas(self, client, station, operator):
        """Operator cannot read the chart of accounts."""
        resp = client.get(f"/api/gas-stations/{station.id}/coas", headers=login(client, "operator"))
        assert resp.status_code == 403

    def test_finance_cannot_create_coa(self, client, station, finance):
        """Finance cannot create accounts."""
        resp = client.post(
            f"/api/gas-stations/{station.id}/coas",
            json={"name": "Beban Gaji", "category": "EXPENSE"},
            headers=login(client, "finance"),
        )
        assert resp.status_code == 403

    def test_manager_cannot_run_closing(self, client, station, manager):
        """Manager cannot run a station closing."""
        resp = client.post(f"/api/gas-stations/{station.id}/closing", headers=login(client, "manager"))
        assert resp.status_code == 403

    def test_finance_cannot_run_batch_closing(self, client, finance):
        """Finance cannot run the batch closing."""
        resp = client.post("/api/closing/run-all", headers=login(client, "finance"))
        assert resp.status_code == 403

    def test_finance_cannot_repair(self, client, finance):
        """Finance cannot run the delivered volume repair."""
        resp = client.post("/api/admin/repair-delivered-volume", headers=login(client, "finance"))
        assert resp.status_code == 403

    def test_operator_cannot_create_cash(self, client, station, operator):
        """Operator cannot create cash transactions."""
        resp = client.post(
            f"/api/gas-stations/{station.id}/transactions/cash",
            json={"cash_transaction_type": "INCOME", "amount": 1000, "payment_account": "CASH",
                  "new_coa_name": "Pendapatan Lain", "new_coa_category": "REVENUE",
                  "description": "Tip"},
            headers=login(client, "operator"),
        )
        assert resp.status_code == 403
        assert resp.json["success"] is False


# =============================================================================
# CROSS-TENANT (403)
# =============================================================================


class TestCrossTenant:
    def test_foreign_admin_cannot_read_coas(self, client, station, foreign_administrator):
        """Another owner's administrator cannot read our accounts."""
        resp = client.get(f"/api/gas-stations/{station.id}/coas", headers=login(client, "foreign_admin"))
        assert resp.status_code == 403

    def test_foreign_admin_cannot_repair_our_station(self, client, station, foreign_administrator):
        """Another owner's administrator cannot repair our station."""
        resp = client.post(
            "/api/admin/repair-delivered-volume",
            json={"gas_station_id": station.id},
            headers=login(client, "foreign_admin"),
        )
        assert resp.status_code == 403

    def test_unassigned_station_denied(self, client, db_session, owner, stations):
        """Staff reach only the stations they are assigned to."""
        make_staff(db_session, "finance_one", "FINANCE", owner, [stations[0]])
        headers = login(client, "finance_one")

        assert client.get(f"/api/gas-stations/{stations[0].id}/transactions", headers=headers).status_code == 200
        assert client.get(f"/api/gas-stations/{stations[1].id}/transactions", headers=headers).status_code == 403


# =============================================================================
# CRON SECRET
# =============================================================================


class TestCronSecret:
    def test_missing_secret(self, client, db_session):
        """Cron trigger without a secret returns 401."""
        assert client.post("/api/cron/monthly-closing").status_code == 401

    def test_wrong_secret(self, client, db_session):
        """Cron trigger with a wrong secret returns 401."""
        resp = client.post("/api/cron/monthly-closing", headers=auth_headers("wrong"))
        assert resp.status_code == 401

    def test_valid_secret(self, client, stations):
        """Cron trigger with the right secret runs every station."""
        resp = client.get("/api/cron/monthly-closing", headers=auth_headers(CRON_SECRET))
        assert resp.status_code == 200
        assert len(resp.json["data"]["results"]) == 3

    def test_unconfigured_secret(self, app, client, db_session, monkeypatch):
        """Cron trigger returns 500 when no secret is configured."""
        monkeypatch.setitem(app.config, "CRON_SECRET", None)
        resp = client.post("/api/cron/monthly-closing", headers=auth_headers(CRON_SECRET))
        assert resp.status_code == 500
