# Overview: End-to-end API tests for the accounting flows.

from conftest import PASSWORD, login


class TestSystemAndAuth:
    def test_health(self, client, db_session):
        """Health check reports a reachable database."""
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["checks"]["database"]["status"] == "healthy"

    def test_login_failures(self, client, manager):
        """Missing password is 400, wrong password is 401."""
        assert client.post("/api/auth/login", json={"username": "manager"}).status_code == 400
        resp = client.post("/api/auth/login", json={"username": "manager", "password": "Wrong123!"})
        assert resp.status_code == 401
        assert resp.json["success"] is False

    def test_login_and_me(self, client, stations, manager):
        """Login returns a token that resolves to the user and their stations."""
        resp = client.post("/api/auth/login", json={"username": "manager", "password": PASSWORD})
        assert resp.status_code == 200
        token = resp.json["data"]["token"]
        assert resp.json["data"]["user"]["role"] == "MANAGER"

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert [s["id"] for s in me.json["data"]["gas_stations"]] == [s.id for s in stations]


class TestCashFlow:
    def test_create_approve_and_balance(self, client, station, finance, manager, administrator):
        """Cash income is created, approved once by a manager and shows in balances."""
        created = client.post(
            f"/api/gas-stations/{station.id}/transactions/cash",
            json={
                "cash_transaction_type": "INCOME",
                "amount": 500000,
                "payment_account": "CASH",
                "new_coa_name": "Pendapatan Sewa",
                "new_coa_category": "REVENUE",
                "description": "Sewa kios",
            },
            headers=login(client, "finance"),
        )
        assert created.status_code == 201
        tx_id = created.json["data"]["id"]
        assert created.json["data"]["approval_status"] == "PENDING"

        # Creator cannot approve
        finance_approve = client.post(f"/api/transactions/{tx_id}/approve", headers=login(client, "finance"))
        assert finance_approve.status_code == 400
        assert "own transaction" in finance_approve.json["message"]

        manager_headers = login(client, "manager")
        approved = client.post(f"/api/transactions/{tx_id}/approve", headers=manager_headers)
        assert approved.status_code == 200
        assert approved.json["data"]["approval_status"] == "APPROVED"

        again = client.post(f"/api/transactions/{tx_id}/approve", headers=manager_headers)
        assert again.status_code == 400

        coas = client.get(f"/api/gas-stations/{station.id}/coas", headers=login(client, "administrator"))
        assert coas.status_code == 200
        balances = {c["name"]: c["balance"] for c in coas.json["data"]}
        assert balances["Kas"] == 500000
        assert balances["Pendapatan Sewa"] == 500000

    def test_invalid_payload(self, client, station, finance):
        """Unknown cash kind is rejected with 400."""
        resp = client.post(
            f"/api/gas-stations/{station.id}/transactions/cash",
            json={"cash_transaction_type": "GIFT", "amount": 1000},
            headers=login(client, "finance"),
        )
        assert resp.status_code == 400

    def test_adjustment_validation_and_approved_delete(self, client, station, accounting, administrator, post_adjustment):
        """Empty adjustment is rejected; an approved adjustment cannot be deleted."""
        created = client.post(
            f"/api/gas-stations/{station.id}/transactions/adjustment",
            json={"description": "Koreksi", "entries": []},
            headers=login(client, "accounting"),
        )
        assert created.status_code == 400

        tx = post_adjustment(station, [
            ("Kas", "ASSET", 1000, 0),
            ("Modal", "EQUITY", 0, 1000),
        ])
        resp = client.delete(f"/api/transactions/{tx.id}", headers=login(client, "administrator"))
        assert resp.status_code == 400


class TestFuelFlow:
    def test_purchase_unload_and_repair(self, client, db_session, station, product, tank,
                                        owner_group, manager, unloader, developer, finance):
        """Purchase, unload and repair flow over HTTP."""
        purchase = client.post(
            f"/api/gas-stations/{station.id}/purchases",
            json={"product_id": product.id, "purchase_volume": 8000},
            headers=login(client, "owner_group"),
        )
        assert purchase.status_code == 201
        purchase_id = purchase.json["data"]["id"]
        assert purchase.json["data"]["total_value"] == 80_000_000

        # Unloader cannot create purchases
        refused = client.post(
            f"/api/gas-stations/{station.id}/purchases",
            json={"product_id": product.id, "purchase_volume": 100},
            headers=login(client, "unloader"),
        )
        assert refused.status_code == 403

        manager_headers = login(client, "manager")
        early = client.post("/api/unloads", json={
            "purchase_transaction_id": purchase_id, "tank_id": tank.id, "delivered_volume": 1000,
        }, headers=login(client, "unloader"))
        assert early.status_code == 400

        assert client.post(f"/api/transactions/{purchase_id}/approve", headers=manager_headers).status_code == 200

        unloader_headers = login(client, "unloader")
        unload = client.post("/api/unloads", json={
            "purchase_transaction_id": purchase_id, "tank_id": tank.id, "delivered_volume": 5000,
            "invoice_number": "DO-778",
        }, headers=unloader_headers)
        assert unload.status_code == 201
        unload_id = unload.json["data"]["id"]

        over = client.post("/api/unloads", json={
            "purchase_transaction_id": purchase_id, "tank_id": tank.id, "delivered_volume": 9000,
        }, headers=unloader_headers)
        assert over.status_code == 400

        approved = client.post(f"/api/unloads/{unload_id}/approve", headers=manager_headers)
        assert approved.status_code == 200
        assert approved.json["data"]["delivery_transaction_id"] is not None

        remaining = client.get(f"/api/tanks/{tank.id}/remaining", headers=unloader_headers)
        assert remaining.status_code == 200
        assert remaining.json["data"]["remaining_volume"] == 3000

        stock = client.get(f"/api/tanks/{tank.id}/stock", headers=manager_headers)
        assert stock.json["data"]["current_stock"] == 5000

        repair = client.post("/api/admin/repair-delivered-volume", headers=login(client, "developer"))
        assert repair.status_code == 200
        assert repair.json["data"]["fixed"] == 0
        assert repair.json["data"]["checked"] == 1


class TestClosingFlow:
    def test_close_and_status(self, client, station, administrator, finance, post_adjustment):
        """Closing a month flips its status and cannot be repeated."""
        post_adjustment(station, [
            ("Kas", "ASSET", 250_000, 0),
            ("Pendapatan BBM", "REVENUE", 0, 250_000),
        ], date="2026-05-12T00:00:00Z")
        headers = login(client, "finance")

        before = client.get(
            f"/api/gas-stations/{station.id}/closing/status?year=2026&month=5", headers=headers
        )
        assert before.status_code == 200
        assert before.json["data"]["closed"] is False

        closed = client.post(
            f"/api/gas-stations/{station.id}/closing",
            json={"closing_date": "2026-06-01T00:00:00Z"},
            headers=headers,
        )
        assert closed.status_code == 201
        assert closed.json["data"]["balance"] == 250_000
        assert closed.json["data"]["transaction"]["transaction_type"] == "CLOSING"

        again = client.post(
            f"/api/gas-stations/{station.id}/closing",
            json={"closing_date": "2026-06-20T00:00:00Z"},
            headers=headers,
        )
        assert again.status_code == 400

        after = client.get(
            f"/api/gas-stations/{station.id}/closing/status?year=2026&month=5", headers=headers
        )
        assert after.json["data"]["closed"] is True
