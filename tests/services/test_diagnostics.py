"""
Tests for the diagnostics sweep and the repair operations.

Broken states are produced by writing to the tables directly,
the way a partial write or a manual edit would.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select, update

from party_ledger.exceptions import PartyNotFoundError, SettlementError
from party_ledger.models.audit_log import AuditLog
from party_ledger.models.enums import EntryKind, EntryType, FindingCategory
from party_ledger.models.ledger_entry import LedgerEntry
from party_ledger.models.settlement import Settlement
from party_ledger.schemas.ledger import TransactionCreate
from party_ledger.schemas.party import PartyCreate
from party_ledger.services.diagnostics import DiagnosticsService, RepairService
from party_ledger.services.ledger_service import LedgerService
from party_ledger.services.party_service import PartyService
from party_ledger.services.settlement_service import SettlementService


def make_party(db, user_id, name):
    return PartyService(db).create_party(user_id, PartyCreate(name=name))


def post(db, user_id, party_name, amount, day=1):
    primary, _ = LedgerService(db).post_transaction(user_id, TransactionCreate(
        party_name=party_name,
        entry_type=EntryType.CREDIT,
        amount=Decimal(amount),
        entry_date=date(2026, 1, day),
    ))
    return primary


def settle(db, user_id, party_name, day):
    return SettlementService(db).settle_party(user_id, party_name, date(2026, 1, day))


def set_fields(db, entry_id, **values):
    db.execute(update(LedgerEntry).where(LedgerEntry.id == entry_id).values(**values))
    db.commit()


class TestRunDiagnostics:

    def test_clean_ledger_has_no_findings(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", "100", day=1)
        settle(db_session, user_id, "Alpha", day=2)
        post(db_session, user_id, "Alpha", "50", day=3)
        settle(db_session, user_id, "Alpha", day=4)
        db_session.commit()

        report = DiagnosticsService(db_session).run_diagnostics(user_id)

        assert report.is_clean

    def test_link_to_missing_settlement_is_one_orphan(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        primary = post(db_session, user_id, "Alpha", "100")
        settle(db_session, user_id, "Alpha", day=2)
        db_session.commit()

        set_fields(db_session, primary.id, settlement_id=9999)
        report = DiagnosticsService(db_session).run_diagnostics(user_id)

        assert len(report.orphans) == 1
        finding = report.orphans[0]
        assert finding.category == FindingCategory.ORPHAN
        assert finding.entry_id == primary.id
        assert finding.settlement_id == 9999

    def test_settled_without_link_is_orphan(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        primary = post(db_session, user_id, "Alpha", "100")
        db_session.commit()

        set_fields(db_session, primary.id, is_settled=True)
        report = DiagnosticsService(db_session).run_diagnostics(user_id, "Alpha")

        assert [f.entry_id for f in report.orphans] == [primary.id]

    def test_live_entry_with_link_is_orphan(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", "100", day=1)
        settlement = settle(db_session, user_id, "Alpha", day=2)
        later = post(db_session, user_id, "Alpha", "10", day=3)
        db_session.commit()

        set_fields(db_session, later.id, settlement_id=settlement.id)
        report = DiagnosticsService(db_session).run_diagnostics(user_id, "Alpha")

        assert [f.entry_id for f in report.orphans] == [later.id]

    def test_link_to_other_partys_settlement_is_orphan(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        make_party(db_session, user_id, "Beta")
        post(db_session, user_id, "Alpha", "100")
        beta_entry = post(db_session, user_id, "Beta", "100")
        alpha_settlement = settle(db_session, user_id, "Alpha", day=2)
        settle(db_session, user_id, "Beta", day=2)
        db_session.commit()

        set_fields(db_session, beta_entry.id, settlement_id=alpha_settlement.id)
        report = DiagnosticsService(db_session).run_diagnostics(user_id, "Beta")

        assert [f.entry_id for f in report.orphans] == [beta_entry.id]
        assert "Alpha" in report.orphans[0].detail

    def test_unreferenced_older_settlement_is_dangling(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        first_entry = post(db_session, user_id, "Alpha", "100", day=1)
        first = settle(db_session, user_id, "Alpha", day=2)
        post(db_session, user_id, "Alpha", "50", day=3)
        settle(db_session, user_id, "Alpha", day=4)
        db_session.commit()

        # Re-point the only entry of the first settlement elsewhere
        set_fields(db_session, first_entry.id, settlement_id=None, is_settled=False)
        report = DiagnosticsService(db_session).run_diagnostics(user_id)

        assert [f.settlement_id for f in report.dangling_settlements] == [first.id]

    def test_latest_settlement_is_never_dangling(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        primary = post(db_session, user_id, "Alpha", "100")
        settle(db_session, user_id, "Alpha", day=2)
        db_session.commit()

        set_fields(db_session, primary.id, settlement_id=None, is_settled=False)
        report = DiagnosticsService(db_session).run_diagnostics(user_id)

        assert report.dangling_settlements == []

    def test_live_entry_older_than_settlement_is_stale(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        primary = post(db_session, user_id, "Alpha", "100")
        settlement = settle(db_session, user_id, "Alpha", day=2)
        db_session.commit()

        set_fields(db_session, primary.id, settlement_id=None, is_settled=False)
        report = DiagnosticsService(db_session).run_diagnostics(user_id)

        assert [f.entry_id for f in report.stale_unsettled] == [primary.id]
        assert report.stale_unsettled[0].settlement_id == settlement.id

    def test_sweep_does_not_write(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        primary = post(db_session, user_id, "Alpha", "100")
        db_session.commit()
        set_fields(db_session, primary.id, settlement_id=42)

        DiagnosticsService(db_session).run_diagnostics(user_id)

        assert not db_session.dirty
        assert not db_session.new

    def test_unknown_party(self, db_session, user_id):
        with pytest.raises(PartyNotFoundError):
            DiagnosticsService(db_session).run_diagnostics(user_id, "Nobody")


class TestRepair:

    def test_repair_orphans_reopens_entries(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        primary = post(db_session, user_id, "Alpha", "100")
        settle(db_session, user_id, "Alpha", day=2)
        db_session.commit()
        set_fields(db_session, primary.id, settlement_id=9999)

        repaired = RepairService(db_session).repair_orphan_links(user_id)
        db_session.commit()

        assert repaired == [primary.id]
        db_session.refresh(primary)
        assert primary.is_settled is False
        assert primary.settlement_id is None
        assert DiagnosticsService(db_session).run_diagnostics(user_id).orphans == []

    def test_repair_is_audited(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        primary = post(db_session, user_id, "Alpha", "100")
        db_session.commit()
        set_fields(db_session, primary.id, is_settled=True)

        RepairService(db_session).repair_orphan_links(user_id)
        db_session.commit()

        events = db_session.execute(select(AuditLog)).scalars().all()
        assert [e.event_type for e in events] == ["REPAIR_ORPHAN_LINKS"]

    def test_nothing_to_repair(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", "100")

        assert RepairService(db_session).repair_orphan_links(user_id) == []
        assert db_session.execute(select(AuditLog)).scalars().all() == []

    def test_remove_dangling_settlement(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        first_entry = post(db_session, user_id, "Alpha", "100", day=1)
        first = settle(db_session, user_id, "Alpha", day=2)
        post(db_session, user_id, "Alpha", "50", day=3)
        settle(db_session, user_id, "Alpha", day=4)
        db_session.commit()
        first_id = first.id
        set_fields(db_session, first_entry.id, settlement_id=None, is_settled=False)

        RepairService(db_session).remove_dangling_settlement(user_id, first_id)
        db_session.commit()

        assert db_session.get(Settlement, first_id) is None
        markers = db_session.execute(
            select(LedgerEntry).where(LedgerEntry.settlement_id == first_id)
        ).scalars().all()
        assert markers == []
        events = db_session.execute(select(AuditLog)).scalars().all()
        assert [e.event_type for e in events] == ["REPAIR_REMOVE_SETTLEMENT"]

    def test_referenced_settlement_is_not_removed(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", "100")
        settlement = settle(db_session, user_id, "Alpha", day=2)
        db_session.commit()

        with pytest.raises(SettlementError):
            RepairService(db_session).remove_dangling_settlement(user_id, settlement.id)

    def test_settlement_marker_kind_is_kept_out_of_repair(self, db_session, user_id):
        make_party(db_session, user_id, "Alpha")
        post(db_session, user_id, "Alpha", "100")
        settlement = settle(db_session, user_id, "Alpha", day=2)
        db_session.commit()
        marker = db_session.execute(
            select(LedgerEntry).where(LedgerEntry.entry_kind == EntryKind.SETTLEMENT)
        ).scalar_one()
        set_fields(db_session, marker.id, settlement_id=settlement.id + 100)

        repaired = RepairService(db_session).repair_orphan_links(user_id)

        assert marker.id not in repaired
