# Overview: Pytest coverage for the journal engine.

"""
Journal Engine Tests

Every journal must balance and a rejected journal must leave nothing
behind: no transaction header, no entries, no auto-created COA.
"""

import logging

import pytest

from spbu.models import COA, JournalEntry, Transaction
from spbu.models.accounting import CATEGORY_ASSET, CATEGORY_EXPENSE, TYPE_ADJUSTMENT
from spbu.services import journal_service, transaction_service
from spbu.services.coa_service import InvalidCOASpecError, create_coa
from spbu.services.journal_service import InvalidJournalEntryError, UnbalancedJournalError
from spbu.validation import ValidationError


class TestValidateEntries:
    """validate_entries is pure and needs no database."""

    def test_balanced_entries_normalized(self):
        """Balanced lines pass and come back normalized."""
        lines = journal_service.validate_entries([
            {"coa_id": "1", "debit": 500, "credit": 0},
            {"new_coa": {"name": "Modal", "category": "EQUITY"}, "debit": None, "credit": "500"},
        ])
        assert lines[0]["coa_id"] == 1
        assert lines[0]["new_coa"] is None
        assert lines[1]["coa_id"] is None
        assert lines[1]["credit"] == 500
        assert lines[1]["debit"] == 0

    def test_unbalanced_raises_with_totals(self):
        """Unbalanced lines report both totals."""
        with pytest.raises(UnbalancedJournalError) as exc_info:
            journal_service.validate_entries([
                {"coa_id": 1, "debit": 100, "credit": 0},
                {"coa_id": 2, "debit": 0, "credit": 90},
            ])
        assert exc_info.value.total_debit == 100
        assert exc_info.value.total_credit == 90

    def test_single_entry_rejected(self):
        """A journal needs at least two lines."""
        with pytest.raises(InvalidJournalEntryError):
            journal_service.validate_entries([{"coa_id": 1, "debit": 100, "credit": 0}])

    def test_both_sides_rejected(self):
        """A line cannot carry both debit and credit."""
        with pytest.raises(InvalidJournalEntryError):
            journal_service.validate_entries([
                {"coa_id": 1, "debit": 100, "credit": 100},
                {"coa_id": 2, "debit": 0, "credit": 0},
            ])

    def test_zero_line_rejected(self):
        """A line with neither debit nor credit is rejected."""
        with pytest.raises(InvalidJournalEntryError):
            journal_service.validate_entries([
                {"coa_id": 1, "debit": 0, "credit": 0},
                {"coa_id": 2, "debit": 0, "credit": 0},
            ])

    def test_negative_amount_rejected(self):
        """Negative amounts are rejected."""
        with pytest.raises(ValidationError):
            journal_service.validate_entries([
                {"coa_id": 1, "debit": -100, "credit": 0},
                {"coa_id": 2, "debit": 0, "credit": -100},
            ])

    def test_decimal_amount_rejected(self):
        """Fractional amounts are rejected."""
        with pytest.raises(ValidationError):
            journal_service.validate_entries([
                {"coa_id": 1, "debit": 100.5, "credit": 0},
                {"coa_id": 2, "debit": 0, "credit": 100.5},
            ])

    def test_line_without_account_rejected(self):
        """Every line names an account or a new account."""
        with pytest.raises(InvalidJournalEntryError):
            journal_service.validate_entries([
                {"debit": 100, "credit": 0},
                {"coa_id": 2, "debit": 0, "credit": 100},
            ])

    def test_entries_must_be_list(self):
        """Entries must be a list."""
        with pytest.raises(InvalidJournalEntryError):
            journal_service.validate_entries({"coa_id": 1})


class TestPostJournalAtomicity:
    def _adjust(self, db_session, station, creator, entries):
        return transaction_service.create_transaction(
            db_session,
            gas_station_id=station.id,
            transaction_type=TYPE_ADJUSTMENT,
            creator=creator,
            payload={"description": "Adjustment", "entries": entries},
        )

    def test_unbalanced_leaves_nothing(self, db_session, station, administrator, caplog):
        """Unbalanced posting leaves no transaction, entries or accounts."""
        kas = create_coa(db_session, gas_station_id=station.id, name="Kas", category=CATEGORY_ASSET)

        with caplog.at_level(logging.ERROR, logger="spbu.services.journal_service"):
            with pytest.raises(UnbalancedJournalError):
                self._adjust(db_session, station, administrator, [
                    {"coa_id": kas.id, "debit": 1000, "credit": 0},
                    {"new_coa": {"name": "Beban Baru", "category": "EXPENSE"}, "debit": 0, "credit": 900},
                ])

        assert db_session.query(Transaction).count() == 0
        assert db_session.query(JournalEntry).count() == 0
        assert db_session.query(COA).filter_by(name="Beban Baru").count() == 0
        assert "Unbalanced journal" in caplog.text

    def test_new_coa_without_category_leaves_nothing(self, db_session, station, administrator):
        """New account without a category aborts the posting."""
        kas = create_coa(db_session, gas_station_id=station.id, name="Kas", category=CATEGORY_ASSET)

        with pytest.raises(InvalidCOASpecError):
            self._adjust(db_session, station, administrator, [
                {"new_coa": {"name": "Pendapatan Lain"}, "debit": 0, "credit": 1000},
                {"coa_id": kas.id, "debit": 1000, "credit": 0},
            ])

        assert db_session.query(Transaction).count() == 0
        assert db_session.query(COA).count() == 1

    def test_new_coa_created_with_transaction(self, db_session, station, administrator):
        """New account is created in the same posting."""
        kas = create_coa(db_session, gas_station_id=station.id, name="Kas", category=CATEGORY_ASSET)

        tx = self._adjust(db_session, station, administrator, [
            {"new_coa": {"name": "Beban Listrik", "category": "expense"}, "debit": 1000, "credit": 0},
            {"coa_id": kas.id, "debit": 0, "credit": 1000},
        ])

        listrik = db_session.query(COA).filter_by(gas_station_id=station.id, name="Beban Listrik").one()
        assert listrik.category == CATEGORY_EXPENSE
        assert {e.coa_id for e in tx.journal_entries} == {kas.id, listrik.id}
        assert tx.total_debit == tx.total_credit == 1000

    def test_coa_of_other_station_rejected(self, db_session, stations, administrator):
        """Lines cannot post to another station's account."""
        kas_1 = create_coa(db_session, gas_station_id=stations[0].id, name="Kas", category=CATEGORY_ASSET)
        kas_2 = create_coa(db_session, gas_station_id=stations[1].id, name="Kas", category=CATEGORY_ASSET)

        with pytest.raises(InvalidJournalEntryError):
            self._adjust(db_session, stations[0], administrator, [
                {"coa_id": kas_1.id, "debit": 1000, "credit": 0},
                {"coa_id": kas_2.id, "debit": 0, "credit": 1000},
            ])

        assert db_session.query(Transaction).count() == 0
