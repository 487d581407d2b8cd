"""
Tests for the SettlementService (Monday Final).

Tests cover:
- Freezing live entries and linking them to the settlement
- Settlement chaining through the seed balance
- Idempotent re-settlement
- Two sessions settling the same party
- Settlement state and listing
- Undoing the latest settlement
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from party_ledger.config import get_settings
from party_ledger.exceptions import (
    LedgerValidationError,
    SettlementError,
    SettlementNotFoundError,
)
from party_ledger.models.audit_log import AuditLog
from party_ledger.models.enums import EntryKind, EntryType, SettlementState
from party_ledger.models.ledger_entry import LedgerEntry
from party_ledger.models.settlement import Settlement
from party_ledger.schemas.ledger import TransactionCreate
from party_ledger.schemas.party import PartyCreate
from party_ledger.services.entry_store import EntryStore
from party_ledger.services.ledger_service import LedgerService
from party_ledger.services.party_service import PartyService
from party_ledger.services.settlement_service import SettlementService


# --- Helpers ---

def make_party(db, user_id, name):
    return PartyService(db).create_party(user_id, PartyCreate(name=name))


def post(db, user_id, party_name, entry_type, amount, day=1):
    return LedgerService(db).post_transaction(user_id, TransactionCreate(
        party_name=party_name,
        entry_type=entry_type,
        amount=Decimal(amount),
        entry_date=date(2026, 1, day),
    ))


def settle(db, user_id, party_name, day=10):
    return SettlementService(db).settle_party(user_id, party_name, date(2026, 1, day))


def party_entries(db, party_name):
    return db.execute(
        select(LedgerEntry)
        .where(LedgerEntry.party_name == party_name)
        .order_by(LedgerEntry.sequence)
    ).scalars().all()


def settlement_count(db):
    return len(db.execute(select(Settlement)).scalars().all())


# --- Settle Tests ---

class TestSettleParty:

    def test_settlement_freezes_and_links_entries(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        first, _ = post(db_session, user_id, "Alpha", EntryType.CREDIT, "1000", day=1)
        second, _ = post(db_session, user_id, "Alpha", EntryType.DEBIT, "300", day=2)

        settlement = settle(db_session, user_id, "Alpha")
        db_session.commit()

        assert settlement.closing_balance == Decimal("700")
        assert settlement.seed_balance == Decimal("0")
        assert settlement.entry_count == 2
        for entry in (first, second):
            db_session.refresh(entry)
            assert entry.is_settled is True
            assert entry.settlement_id == settlement.id
        assert first.balance_snapshot == Decimal("1000")
        assert second.balance_snapshot == Decimal("700")

    def test_settlement_is_recorded_as_ledger_entry(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "1000")
        settlement = settle(db_session, user_id, "Alpha")
        db_session.commit()

        markers = [
            e for e in party_entries(db_session, "Alpha")
            if e.entry_kind == EntryKind.SETTLEMENT
        ]
        assert len(markers) == 1
        marker = markers[0]
        assert marker.is_settled is True
        assert marker.settlement_id == settlement.id
        assert marker.credit == Decimal("1000")
        assert marker.balance_snapshot == Decimal("1000")
        assert marker.sequence == settlement.sequence
        assert marker.remarks == "Monday Final Settlement - 1 transactions settled"

    def test_negative_balance_recorded_as_debit(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", EntryType.DEBIT, "250")
        settlement = settle(db_session, user_id, "Alpha")
        db_session.commit()

        marker = next(
            e for e in party_entries(db_session, "Alpha")
            if e.entry_kind == EntryKind.SETTLEMENT
        )
        assert settlement.closing_balance == Decimal("-250")
        assert marker.entry_type == EntryType.DEBIT
        assert marker.debit == Decimal("250")

    def test_no_live_entries_left_after_settlement(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "10")
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "20")
        settle(db_session, user_id, "Alpha")
        db_session.commit()

        assert all(e.is_settled for e in party_entries(db_session, "Alpha"))

    def test_settlement_marks_party(self, db_session, user_id):
        party = make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "10")
        settle(db_session, user_id, "Alpha")
        db_session.commit()

        assert party.monday_final is True

    def test_nothing_to_settle(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")

        with pytest.raises(SettlementError, match="Nothing to settle"):
            settle(db_session, user_id, "Alpha")

    def test_date_before_latest_settlement_rejected(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "10")
        settle(db_session, user_id, "Alpha", day=10)
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "10", day=11)

        with pytest.raises(LedgerValidationError):
            settle(db_session, user_id, "Alpha", day=9)


# --- Chaining Tests ---

class TestSettlementChain:

    def test_new_posting_is_seeded_by_settlement(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "1000", day=1)
        settle(db_session, user_id, "Alpha", day=2)
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "200", day=3)
        db_session.commit()

        view = LedgerService(db_session).get_party_ledger(user_id, "Alpha")

        assert view.seed_balance == Decimal("1000")
        assert view.closing_balance == Decimal("1200")
        assert len(view.lines) == 1

    def test_second_settlement_chains_from_first(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "1000", day=1)
        first = settle(db_session, user_id, "Alpha", day=2)
        post(db_session, user_id, "Alpha", EntryType.DEBIT, "300", day=3)
        second = settle(db_session, user_id, "Alpha", day=4)
        db_session.commit()

        assert second.id != first.id
        assert second.seed_balance == first.closing_balance
        assert second.closing_balance == Decimal("700")
        assert second.entry_count == 1

    def test_posting_reopens_party(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "100")
        settle(db_session, user_id, "Alpha")
        service = SettlementService(db_session)
        assert service.party_state(user_id, "Alpha") == SettlementState.SETTLED_CURRENT

        post(db_session, user_id, "Alpha", EntryType.CREDIT, "5", day=11)

        assert service.party_state(user_id, "Alpha") == SettlementState.UNSETTLED


# --- Idempotence and Concurrency Tests ---

class TestIdempotentSettlement:

    def test_settling_twice_returns_same_settlement(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "1000")
        first = settle(db_session, user_id, "Alpha")
        db_session.commit()

        second = settle(db_session, user_id, "Alpha")
        db_session.commit()

        assert second.id == first.id
        assert settlement_count(db_session) == 1

    def test_two_sessions_create_one_settlement(self, session_factory, user_id):
        setup = session_factory()
        make_party(setup, user_id, "Alpha")
        post(setup, user_id, "Alpha", EntryType.CREDIT, "1000")
        setup.commit()

        first_session = session_factory()
        second_session = session_factory()
        # The second request has already read the live entries
        assert LedgerService(second_session).store.list_entries(user_id, "Alpha")

        first = settle(first_session, user_id, "Alpha")
        first_session.commit()

        second = settle(second_session, user_id, "Alpha")
        second_session.commit()

        assert second.id == first.id
        check = session_factory()
        assert settlement_count(check) == 1


# --- Listing and State Tests ---

class TestSettlementQueries:

    def test_list_settlements_in_chain_order(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "100", day=1)
        first = settle(db_session, user_id, "Alpha", day=2)
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "100", day=3)
        second = settle(db_session, user_id, "Alpha", day=4)

        settlements = SettlementService(db_session).list_settlements(user_id, "Alpha")

        assert [s.id for s in settlements] == [first.id, second.id]

    def test_party_without_entries_is_unsettled(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        state = SettlementService(db_session).party_state(user_id, "Alpha")
        assert state == SettlementState.UNSETTLED


# --- Undo Tests ---

class TestUndoLatestSettlement:

    def test_undo_reopens_entries(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        primary, _ = post(db_session, user_id, "Alpha", EntryType.CREDIT, "1000")
        settlement = settle(db_session, user_id, "Alpha")
        db_session.commit()

        settlement_id, reopened = SettlementService(db_session).undo_latest_settlement(
            user_id, "Alpha"
        )
        db_session.commit()

        assert settlement_id == settlement.id
        assert reopened == 1
        db_session.refresh(primary)
        assert primary.is_settled is False
        assert primary.settlement_id is None
        assert primary.balance_snapshot is None
        assert settlement_count(db_session) == 0
        kinds = {e.entry_kind for e in party_entries(db_session, "Alpha")}
        assert EntryKind.SETTLEMENT not in kinds

    def test_undo_restores_previous_seed(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "1000", day=1)
        settle(db_session, user_id, "Alpha", day=2)
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "200", day=3)
        settle(db_session, user_id, "Alpha", day=4)
        SettlementService(db_session).undo_latest_settlement(user_id, "Alpha")
        db_session.commit()

        view = LedgerService(db_session).get_party_ledger(user_id, "Alpha")

        assert view.seed_balance == Decimal("1000")
        assert view.closing_balance == Decimal("1200")

    def test_undo_is_audited(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "10")
        settle(db_session, user_id, "Alpha")
        SettlementService(db_session).undo_latest_settlement(user_id, "Alpha")
        db_session.commit()

        events = db_session.execute(select(AuditLog)).scalars().all()
        assert [e.event_type for e in events] == ["UNDO_SETTLEMENT"]
        assert events[0].party_name == "Alpha"

    def test_undo_without_settlement(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")

        with pytest.raises(SettlementNotFoundError):
            SettlementService(db_session).undo_latest_settlement(user_id, "Alpha")


# --- Locking Tests ---

class TestSettlementLock:

    def test_waits_for_party_lock_by_default(self, db_session, user_id, monkeypatch):
        make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "100")
        calls = []
        original = EntryStore.lock_party

        def recording_lock(self, user_id, name, nowait=False):
            calls.append((name, nowait))
            return original(self, user_id, name, nowait=nowait)

        monkeypatch.setattr(EntryStore, "lock_party", recording_lock)
        settle(db_session, user_id, "Alpha")

        assert get_settings().SETTLEMENT_LOCK_NOWAIT is False
        assert calls == [("Alpha", False)]


# --- Monday Final Flag After Undo ---

class TestUndoMondayFinal:

    def test_undo_clears_flag(self, db_session, user_id):
        party = make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "100", day=1)
        settle(db_session, user_id, "Alpha", day=2)
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "50", day=3)
        settle(db_session, user_id, "Alpha", day=4)
        assert party.monday_final is True

        SettlementService(db_session).undo_latest_settlement(user_id, "Alpha")
        db_session.commit()

        db_session.refresh(party)
        assert party.monday_final is False
        state = SettlementService(db_session).party_state(user_id, "Alpha")
        assert state == SettlementState.UNSETTLED

    def test_flag_kept_when_nothing_is_reopened(self, db_session, user_id):
        party = make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "100", day=1)
        first = settle(db_session, user_id, "Alpha", day=2)
        second_entry, _ = post(db_session, user_id, "Alpha", EntryType.CREDIT, "50", day=3)
        settle(db_session, user_id, "Alpha", day=4)
        # The later posting was folded into the first settlement
        second_entry.settlement_id = first.id
        db_session.commit()

        _, reopened = SettlementService(db_session).undo_latest_settlement(
            user_id, "Alpha"
        )
        db_session.commit()

        assert reopened == 0
        db_session.refresh(party)
        assert party.monday_final is True
        state = SettlementService(db_session).party_state(user_id, "Alpha")
        assert state == SettlementState.SETTLED_CURRENT


# --- Settling Several Parties ---

class TestSettleParties:

    def test_settles_each_party(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        make_party(db_session, user_id, "Beta")
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "100")
        post(db_session, user_id, "Beta", EntryType.DEBIT, "40")

        settlements, skipped = SettlementService(db_session).settle_parties(
            user_id, ["Beta", "Alpha", "Beta"], date(2026, 1, 10)
        )
        db_session.commit()

        assert [s.party_name for s in settlements] == ["Alpha", "Beta"]
        assert [s.closing_balance for s in settlements] == [
            Decimal("100"), Decimal("-40")
        ]
        assert skipped == []
        assert settlement_count(db_session) == 2

    def test_skips_unknown_and_empty_parties(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        make_party(db_session, user_id, "Empty")
        post(db_session, user_id, "Alpha", EntryType.CREDIT, "100")

        settlements, skipped = SettlementService(db_session).settle_parties(
            user_id, ["Alpha", "Empty", "Nobody"], date(2026, 1, 10)
        )

        assert [s.party_name for s in settlements] == ["Alpha"]
        assert skipped == ["Empty", "Nobody"]
