# Overview: Pytest coverage for purchase/unload reconciliation and tank stock.

"""
Purchase / Unload Reconciliation Tests

INVARIANT: delivered_volume of a purchase equals the sum of its APPROVED
unloads and never exceeds purchase_volume.
"""

import logging

import pytest

from spbu.models import Transaction, Unload
from spbu.models.accounting import STATUS_APPROVED, STATUS_PENDING, TYPE_PURCHASE_BBM, TYPE_UNLOAD
from spbu.models.operations import UNLOAD_STATUS_APPROVED, UNLOAD_STATUS_PENDING, UNLOAD_STATUS_REJECTED
from spbu.services import coa_service, purchase_service, tank_service, unload_service
from spbu.services.station_service import create_product, create_tank
from spbu.services.tank_service import InsufficientStockError, TankCapacityError
from spbu.services.transaction_service import AlreadyFinalizedError, UnauthorizedCreatorError
from spbu.services.unload_service import (
    OverDeliveryError,
    ProductMismatchError,
    PurchaseNotApprovedError,
)


def _request(db_session, purchase, tank, volume, unloader, **kwargs):
    return unload_service.request_unload(
        db_session,
        purchase_transaction_id=purchase.id,
        tank_id=tank.id,
        delivered_volume=volume,
        unloader=unloader,
        **kwargs,
    )


class TestPurchases:
    def test_purchase_entries_and_volumes(self, db_session, station, product, owner_group):
        """Purchase debits LO and credits the bank at the product price."""
        tx = purchase_service.create_purchase_transaction(
            db_session,
            gas_station_id=station.id,
            creator=owner_group,
            payload={"product_id": product.id, "purchase_volume": 8000, "bank_name": "BRI"},
        )

        assert tx.transaction_type == TYPE_PURCHASE_BBM
        assert tx.approval_status == STATUS_PENDING
        assert tx.purchase_volume == 8000
        assert tx.delivered_volume == 0

        names = {e.coa.name: (e.debit, e.credit) for e in tx.journal_entries}
        assert names == {
            "LO Pertalite": (80_000_000, 0),
            "Bank BRI": (0, 80_000_000),
        }

        data = purchase_service.purchase_to_dict(tx)
        assert data["total_value"] == 80_000_000
        assert data["remaining_volume"] == 8000
        assert data["product_name"] == "Pertalite"

    def test_finance_cannot_create_purchase(self, db_session, station, product, finance):
        """Finance cannot create fuel purchases."""
        with pytest.raises(UnauthorizedCreatorError):
            purchase_service.create_purchase_transaction(
                db_session,
                gas_station_id=station.id,
                creator=finance,
                payload={"product_id": product.id, "purchase_volume": 100},
            )

    def test_open_purchases_listing(self, db_session, station, product, tank, unloader, manager,
                                    make_approved_purchase):
        """Fully delivered purchases drop out of the open list."""
        full = make_approved_purchase(station, product, 1000)
        open_order = make_approved_purchase(station, product, 2000)
        unload = _request(db_session, full, tank, 1000, unloader)
        unload_service.approve_unload(db_session, unload.id, manager)

        open_ids = [p["id"] for p in purchase_service.list_purchases(db_session, station.id, open_only=True)]
        assert open_ids == [open_order.id]


class TestUnloadRequest:
    def test_pending_purchase_cannot_be_unloaded(self, db_session, station, product, tank, owner_group, unloader):
        """Unloads need an approved purchase."""
        tx = purchase_service.create_purchase_transaction(
            db_session,
            gas_station_id=station.id,
            creator=owner_group,
            payload={"product_id": product.id, "purchase_volume": 8000},
        )
        with pytest.raises(PurchaseNotApprovedError):
            _request(db_session, tx, tank, 1000, unloader)

    def test_request_over_remaining_rejected(self, db_session, station, product, tank, unloader,
                                             make_approved_purchase):
        """A request over the remaining volume is refused."""
        purchase = make_approved_purchase(station, product, 8000)
        with pytest.raises(OverDeliveryError) as exc_info:
            _request(db_session, purchase, tank, 8001, unloader)
        assert exc_info.value.purchase_volume == 8000
        assert exc_info.value.requested_volume == 8001
        assert db_session.query(Unload).count() == 0

    def test_product_mismatch(self, db_session, station, product, unloader, make_approved_purchase):
        """Tank must hold the purchased product."""
        solar = create_product(db_session, gas_station_id=station.id, name="Solar", purchase_price=6800)
        solar_tank = create_tank(db_session, gas_station_id=station.id, product_id=solar.id,
                                 name="Tank Solar", capacity=10000)
        purchase = make_approved_purchase(station, product, 8000)

        with pytest.raises(ProductMismatchError):
            _request(db_session, purchase, solar_tank, 1000, unloader)

    def test_tank_capacity(self, db_session, station, product, tank, unloader, make_approved_purchase):
        """Delivery cannot exceed tank space."""
        purchase = make_approved_purchase(station, product, 30000)
        with pytest.raises(TankCapacityError):
            _request(db_session, purchase, tank, 25000, unloader)


class TestUnloadApproval:
    def test_approve_recomputes_and_posts_delivery(self, db_session, station, product, tank, unloader, manager,
                                                   make_approved_purchase):
        """Approval recomputes delivered volume and posts inventory."""
        purchase = make_approved_purchase(station, product, 8000)
        unload = _request(db_session, purchase, tank, 5000, unloader, invoice_number="INV-1")

        approved = unload_service.approve_unload(db_session, unload.id, manager)

        assert approved.status == UNLOAD_STATUS_APPROVED
        assert approved.manager_id == manager.id
        db_session.refresh(purchase)
        assert purchase.delivered_volume == 5000
        assert unload_service.remaining_volume(purchase) == 3000
        assert tank_service.current_stock(db_session, tank.id)["current_stock"] == 5000
        db_session.refresh(tank)
        assert tank.current_stock == 5000

        delivery = db_session.get(Transaction, approved.delivery_transaction_id)
        assert delivery.transaction_type == TYPE_UNLOAD
        assert delivery.approval_status == STATUS_APPROVED
        lo = coa_service.find_coa_by_name(db_session, station.id, "LO Pertalite")
        inventory = coa_service.find_coa_by_name(db_session, station.id, "Persediaan Pertalite")
        assert coa_service.get_coa_balance(db_session, inventory.id) == 50_000_000
        assert coa_service.get_coa_balance(db_session, lo.id) == 30_000_000

    def test_concurrent_pending_unloads_cannot_over_deliver(self, db_session, station, product, tank, unloader,
                                                            manager, make_approved_purchase):
        """The second of two pending unloads cannot push delivery past the order."""
        purchase = make_approved_purchase(station, product, 8000)
        first = _request(db_session, purchase, tank, 5000, unloader)
        second = _request(db_session, purchase, tank, 4000, unloader)

        unload_service.approve_unload(db_session, first.id, manager)
        with pytest.raises(OverDeliveryError):
            unload_service.approve_unload(db_session, second.id, manager)

        db_session.expire_all()
        assert db_session.get(Unload, second.id).status == UNLOAD_STATUS_PENDING
        assert db_session.get(Transaction, purchase.id).delivered_volume == 5000

    def test_reject_leaves_volumes(self, db_session, station, product, tank, unloader, manager,
                                   make_approved_purchase):
        """Rejection changes no volumes and is final."""
        purchase = make_approved_purchase(station, product, 8000)
        unload = _request(db_session, purchase, tank, 5000, unloader)

        rejected = unload_service.reject_unload(db_session, unload.id, manager, notes="Segel rusak")
        assert rejected.status == UNLOAD_STATUS_REJECTED
        assert rejected.delivery_transaction_id is None
        db_session.refresh(purchase)
        assert purchase.delivered_volume == 0
        assert tank_service.current_stock(db_session, tank.id)["current_stock"] == 0

        with pytest.raises(AlreadyFinalizedError):
            unload_service.approve_unload(db_session, unload.id, manager)

    def test_remaining_by_product_fifo(self, db_session, station, product, tank, unloader, manager,
                                       make_approved_purchase):
        """Open orders are listed oldest first."""
        older = make_approved_purchase(station, product, 3000, date="2026-01-05T00:00:00Z")
        newer = make_approved_purchase(station, product, 4000, date="2026-01-20T00:00:00Z")
        unload = _request(db_session, older, tank, 1000, unloader)
        unload_service.approve_unload(db_session, unload.id, manager)

        data = unload_service.remaining_by_product(db_session, tank.id)
        assert data["remaining_volume"] == 2000 + 4000
        assert [p["transaction_id"] for p in data["purchases"]] == [older.id, newer.id]
        assert data["purchases"][0]["remaining_volume"] == 2000


class TestRepair:
    def test_repair_is_idempotent(self, db_session, station, product, tank, unloader, manager,
                                  make_approved_purchase):
        """Repair fixes drift once and then changes nothing."""
        purchase = make_approved_purchase(station, product, 8000)
        unload = _request(db_session, purchase, tank, 5000, unloader)
        unload_service.approve_unload(db_session, unload.id, manager)
        untouched = make_approved_purchase(station, product, 1000)

        # Simulate historical drift
        purchase.delivered_volume = 9999
        db_session.commit()

        first = unload_service.repair_delivered_volumes(db_session)
        assert first["checked"] == 2
        assert first["fixed"] == 1
        assert first["fixes"] == [{
            "transaction_id": purchase.id,
            "gas_station_id": station.id,
            "old_delivered_volume": 9999,
            "new_delivered_volume": 5000,
        }]

        second = unload_service.repair_delivered_volumes(db_session)
        assert second["fixed"] == 0
        assert second["fixes"] == []

        db_session.expire_all()
        assert db_session.get(Transaction, purchase.id).delivered_volume == 5000
        assert db_session.get(Transaction, untouched.id).delivered_volume == 0

    def test_repair_scoped_to_station(self, db_session, stations, make_approved_purchase):
        """Repair can be limited to one station."""
        product_2 = create_product(db_session, gas_station_id=stations[1].id, name="Pertamax", purchase_price=12000)
        purchase = make_approved_purchase(stations[1], product_2, 1000)
        purchase.delivered_volume = 50
        db_session.commit()

        report = unload_service.repair_delivered_volumes(db_session, stations[0].id)
        assert report["checked"] == 0

        report = unload_service.repair_delivered_volumes(db_session, stations[1].id)
        assert report["fixed"] == 1

    def test_negative_remaining_clamped_and_logged(self, caplog):
        """Negative remaining volume reports 0 and logs an error."""
        purchase = Transaction(id=42, purchase_volume=100, delivered_volume=150)
        with caplog.at_level(logging.ERROR, logger="spbu.services.unload_service"):
            assert unload_service.remaining_volume(purchase) == 0
        assert "VolumeInvariantViolation" in caplog.text


class TestTankSales:
    def test_sale_reduces_stock(self, db_session, station, product, tank, unloader, manager, operator,
                                make_approved_purchase):
        """Sales reduce stock and cannot oversell."""
        purchase = make_approved_purchase(station, product, 8000)
        unload = _request(db_session, purchase, tank, 6000, unloader)
        unload_service.approve_unload(db_session, unload.id, manager)

        tank_service.record_tank_sale(db_session, tank.id, 2500, operator)
        stock = tank_service.current_stock(db_session, tank.id)
        assert stock["current_stock"] == 3500
        assert stock["available_space"] == 20000 - 3500

        with pytest.raises(InsufficientStockError):
            tank_service.record_tank_sale(db_session, tank.id, 4000, operator)
