"""
Tests for the EntryStore and sequence allocation.
"""

from datetime import date
from decimal import Decimal

import pytest

from party_ledger.exceptions import (
    ConcurrencyConflictError,
    EntryNotFoundError,
    LedgerValidationError,
)
from party_ledger.models.enums import EntryType, PartyKind
from party_ledger.models.ledger_entry import LedgerEntry
from party_ledger.models.party import Party
from party_ledger.services.entry_store import EntryStore
from party_ledger.services.sequence_service import SequenceService


def make_entry(party, credit="0", debit="0", day=1):
    credit, debit = Decimal(credit), Decimal(debit)
    return LedgerEntry(
        user_id=party.user_id,
        party=party,
        party_name=party.name,
        entry_type=EntryType.CREDIT if credit else EntryType.DEBIT,
        credit=credit,
        debit=debit,
        entry_date=date(2026, 1, day),
    )


@pytest.fixture
def store(db_session):
    return EntryStore(db_session)


@pytest.fixture
def alpha(store, user_id):
    return store.upsert_party(Party(user_id=user_id, name="Alpha"))


class TestSequenceService:

    def test_values_strictly_increase(self, db_session):
        service = SequenceService(db_session)
        values = [service.next_value() for _ in range(5)]

        assert values == sorted(values)
        assert len(set(values)) == 5

    def test_allocate_returns_consecutive_block(self, db_session):
        service = SequenceService(db_session)
        first = service.next_value()
        block = service.allocate(3)

        assert block == [first + 1, first + 2, first + 3]
        assert service.current_value() == first + 3

    def test_rollback_returns_values(self, db_session):
        service = SequenceService(db_session)
        service.next_value()
        db_session.commit()
        service.allocate(10)
        db_session.rollback()

        assert service.current_value() == 1

    def test_named_sequences_are_independent(self, db_session):
        service = SequenceService(db_session)
        service.allocate(5)

        assert service.next_value("other") == 1

    def test_unused_sequence_is_zero(self, db_session):
        assert SequenceService(db_session).current_value("never") == 0


class TestInsertEntries:

    def test_sequences_follow_batch_order(self, store, alpha):
        batch = store.insert_entries([
            make_entry(alpha, credit="10"),
            make_entry(alpha, debit="5"),
        ])

        assert batch[0].sequence < batch[1].sequence

    def test_both_sides_rejected(self, store, alpha):
        with pytest.raises(LedgerValidationError, match="not both"):
            store.insert_entries([make_entry(alpha, credit="10", debit="10")])

    def test_negative_amount_rejected(self, store, alpha):
        with pytest.raises(LedgerValidationError, match="negative"):
            store.insert_entries([make_entry(alpha, debit="-10")])

    def test_malformed_entry_rejects_whole_batch(self, store, alpha, user_id):
        with pytest.raises(LedgerValidationError):
            store.insert_entries([
                make_entry(alpha, credit="10"),
                make_entry(alpha, credit="10", debit="1"),
            ])

        assert store.list_entries(user_id) == []


class TestListAndUpdate:

    def test_list_orders_by_date_then_sequence(self, store, alpha, user_id):
        late, early = store.insert_entries([
            make_entry(alpha, credit="1", day=5),
            make_entry(alpha, credit="2", day=2),
        ])

        assert store.list_entries(user_id, "Alpha") == [early, late]

    def test_update_entries(self, store, alpha):
        (entry,) = store.insert_entries([make_entry(alpha, credit="10")])

        store.update_entries([{"id": entry.id, "remarks": "checked"}])

        assert entry.remarks == "checked"

    def test_amounts_cannot_be_updated(self, store, alpha):
        (entry,) = store.insert_entries([make_entry(alpha, credit="10")])

        with pytest.raises(LedgerValidationError, match="cannot be updated"):
            store.update_entries([{"id": entry.id, "credit": Decimal("99")}])

    def test_update_unknown_entry(self, store):
        with pytest.raises(EntryNotFoundError):
            store.update_entries([{"id": 404, "remarks": "x"}])

    def test_revise_reports_changed_fields(self, store, alpha):
        (entry,) = store.insert_entries([make_entry(alpha, credit="10")])

        changed = store.revise_entry(entry, credit=Decimal("10"), remarks="new")

        assert changed == {"remarks"}
        assert entry.remarks == "new"

    def test_revise_keeps_entry_valid(self, store, alpha):
        (entry,) = store.insert_entries([make_entry(alpha, credit="10")])

        with pytest.raises(LedgerValidationError, match="not both"):
            store.revise_entry(entry, debit=Decimal("5"))

    def test_settled_entry_cannot_be_revised(self, store, alpha):
        (entry,) = store.insert_entries([make_entry(alpha, credit="10")])
        store.update_entries([{"id": entry.id, "is_settled": True}])

        with pytest.raises(LedgerValidationError, match="Settled"):
            store.revise_entry(entry, remarks="late")


class TestParties:

    def test_upsert_updates_existing(self, store, alpha, user_id):
        same = store.upsert_party(Party(
            user_id=user_id, name="Alpha", commission_rate=Decimal("0.1")
        ))

        assert same.id == alpha.id
        assert same.commission_rate == Decimal("0.1")

    def test_ensure_party_creates_once(self, store, user_id):
        first = store.ensure_party(user_id, "Commission", PartyKind.COMMISSION)
        second = store.ensure_party(user_id, "Commission", PartyKind.COMMISSION)

        assert first.id == second.id
        assert first.kind == PartyKind.COMMISSION

    def test_lock_party_returns_row(self, store, alpha, user_id):
        assert store.lock_party(user_id, "Alpha").id == alpha.id

    def test_lock_failure_is_a_conflict(self, store, alpha, user_id, monkeypatch):
        from sqlalchemy.exc import OperationalError

        def busy(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("could not obtain lock"))

        monkeypatch.setattr(store.db, "execute", busy)

        with pytest.raises(ConcurrencyConflictError):
            store.lock_party(user_id, "Alpha", nowait=True)

    def test_user_config_defaults(self, store, user_id):
        config = store.get_user_config(user_id)

        assert config.company_name == "Company"
        assert config.default_commission_rate == Decimal("0.03")
