"""
Settlement link diagnostics and administrative repair.

The sweep is read-only and reports three kinds of findings:

- ORPHAN: an entry whose settlement link breaks the pairing rule
  (links to a missing settlement, or to another party's; settled
  without a link; live with a link).
- DANGLING_SETTLEMENT: a settlement that no entry other than its own
  marker references, and that is not the party's latest.
- STALE_UNSETTLED: a live entry older (by sequence) than a settlement
  of the same party, which that settlement should have frozen.

Repairs are separate, explicit calls. Each one is written to the
audit log and logged at WARNING.
"""

from collections import defaultdict

from sqlalchemy.orm import Session

from party_ledger.exceptions import SettlementError, SettlementNotFoundError
from party_ledger.logging_config import get_logger
from party_ledger.models.enums import FindingCategory
from party_ledger.models.ledger_entry import LedgerEntry
from party_ledger.models.settlement import Settlement
from party_ledger.schemas.report import DiagnosticsReport, Finding
from party_ledger.services.audit_service import AuditService
from party_ledger.services.cache import BalanceCache, balance_cache
from party_ledger.services.entry_store import EntryStore

logger = get_logger("services.diagnostics")


class DiagnosticsService:

    def __init__(self, db: Session, cache: BalanceCache = balance_cache):
        self.db = db
        self.cache = cache
        self.store = EntryStore(db)

    def run_diagnostics(
        self, user_id: str, party_name: str | None = None
    ) -> DiagnosticsReport:
        party_id = None
        if party_name is not None:
            party_id = self.store.require_party(user_id, party_name).id

        entries = self.store.list_entries(user_id, party_name)
        # All of the user's settlements, so cross-party links resolve
        settlements = {s.id: s for s in self.store.list_settlements(user_id)}
        report = DiagnosticsReport(
            orphans=self._orphans(entries, settlements),
            dangling_settlements=self._dangling(entries, settlements, party_id),
            stale_unsettled=self._stale(entries, settlements),
        )

        if not report.is_clean:
            logger.warning(
                "diagnostics_findings",
                extra={
                    "orphans": len(report.orphans),
                    "dangling_settlements": len(report.dangling_settlements),
                    "stale_unsettled": len(report.stale_unsettled),
                },
            )
        return report

    @staticmethod
    def _orphans(
        entries: list[LedgerEntry], settlements: dict[int, Settlement]
    ) -> list[Finding]:
        findings = []
        for entry in entries:
            detail = None
            if entry.settlement_id is None:
                if entry.is_settled:
                    detail = "Settled entry has no settlement link"
            else:
                settlement = settlements.get(entry.settlement_id)
                if settlement is None:
                    detail = f"Links to missing settlement {entry.settlement_id}"
                elif settlement.party_id != entry.party_id:
                    detail = (
                        f"Links to settlement {settlement.id} of party "
                        f"'{settlement.party_name}'"
                    )
                elif not entry.is_settled:
                    detail = f"Live entry links to settlement {settlement.id}"

            if detail is not None:
                findings.append(Finding(
                    category=FindingCategory.ORPHAN,
                    party_name=entry.party_name,
                    entry_id=entry.id,
                    settlement_id=entry.settlement_id,
                    detail=detail,
                ))
        return findings

    @staticmethod
    def _dangling(
        entries: list[LedgerEntry],
        settlements: dict[int, Settlement],
        party_id: int | None,
    ) -> list[Finding]:
        referenced = {
            entry.settlement_id
            for entry in entries
            if entry.settlement_id is not None and not entry.is_settlement
        }

        latest: dict[int, Settlement] = {}
        for settlement in settlements.values():
            current = latest.get(settlement.party_id)
            key = (settlement.settlement_date, settlement.sequence)
            if current is None or key > (current.settlement_date, current.sequence):
                latest[settlement.party_id] = settlement

        findings = []
        for settlement in sorted(settlements.values(), key=lambda s: s.sequence):
            if party_id is not None and settlement.party_id != party_id:
                continue
            if settlement.id in referenced:
                continue
            if latest[settlement.party_id].id == settlement.id:
                continue
            findings.append(Finding(
                category=FindingCategory.DANGLING_SETTLEMENT,
                party_name=settlement.party_name,
                settlement_id=settlement.id,
                detail=(
                    f"Settlement of {settlement.settlement_date} is referenced "
                    f"by no entry and is not the latest"
                ),
            ))
        return findings

    @staticmethod
    def _stale(
        entries: list[LedgerEntry], settlements: dict[int, Settlement]
    ) -> list[Finding]:
        by_party: dict[int, list[Settlement]] = defaultdict(list)
        for settlement in settlements.values():
            by_party[settlement.party_id].append(settlement)

        findings = []
        for entry in entries:
            if entry.is_settled or entry.is_settlement:
                continue
            later = [
                s for s in by_party.get(entry.party_id, [])
                if s.sequence > entry.sequence
            ]
            if not later:
                continue
            first = min(later, key=lambda s: s.sequence)
            findings.append(Finding(
                category=FindingCategory.STALE_UNSETTLED,
                party_name=entry.party_name,
                entry_id=entry.id,
                settlement_id=first.id,
                detail=(
                    f"Live entry predates settlement {first.id} of "
                    f"{first.settlement_date}"
                ),
            ))
        return findings


class RepairService:
    """Administrator-invoked fixes for diagnostics findings."""

    def __init__(self, db: Session, cache: BalanceCache = balance_cache):
        self.db = db
        self.cache = cache
        self.store = EntryStore(db)
        self.diagnostics = DiagnosticsService(db, cache)
        self.audit = AuditService(db)

    def repair_orphan_links(
        self, user_id: str, party_name: str | None = None
    ) -> list[int]:
        """
        Reopen every entry with a broken settlement link.

        Settlement markers are left alone; a marker whose settlement
        is gone is reported again on the next sweep.
        Returns the ids of the reopened entries.
        """
        report = self.diagnostics.run_diagnostics(user_id, party_name)
        orphan_ids = {finding.entry_id for finding in report.orphans}

        targets = [
            entry
            for entry in self.store.list_entries(user_id, party_name)
            if entry.id in orphan_ids and not entry.is_settlement
        ]
        if not targets:
            return []

        self.store.update_entries([
            {
                "id": entry.id,
                "is_settled": False,
                "settlement_id": None,
                "balance_snapshot": None,
            }
            for entry in targets
        ])

        repaired_ids = [entry.id for entry in targets]
        parties = sorted({entry.party_name for entry in targets})
        self.audit.record(
            AuditService.REPAIR_ORPHAN_LINKS,
            user_id,
            party_name=party_name,
            entry_ids=repaired_ids,
            parties=parties,
        )
        self.cache.invalidate_on_commit(self.db, user_id, *parties)
        logger.warning(
            "orphan_links_repaired",
            extra={"entry_ids": repaired_ids},
        )
        return repaired_ids

    def remove_dangling_settlement(self, user_id: str, settlement_id: int) -> int:
        """
        Delete a settlement that no entry references, with its marker.

        Raises SettlementError if the settlement is still in use.
        """
        settlement = self.store.get_settlement(user_id, settlement_id)
        if settlement is None:
            raise SettlementNotFoundError(settlement_id=settlement_id)

        report = self.diagnostics.run_diagnostics(user_id)
        dangling_ids = {f.settlement_id for f in report.dangling_settlements}
        if settlement_id not in dangling_ids:
            raise SettlementError(
                f"Settlement {settlement_id} is referenced or is the latest "
                f"settlement of its party",
                party_name=settlement.party_name,
            )

        party_name = settlement.party_name
        markers = [
            entry
            for entry in self.store.list_entries(user_id, party_name)
            if entry.is_settlement and entry.settlement_id == settlement_id
        ]
        for marker in markers:
            self.store.delete_entry(marker)
        self.db.delete(settlement)
        self.db.flush()

        self.audit.record(
            AuditService.REPAIR_REMOVE_SETTLEMENT,
            user_id,
            party_name=party_name,
            settlement_id=settlement_id,
            marker_entry_ids=[marker.id for marker in markers],
        )
        self.cache.invalidate_on_commit(self.db, user_id, party_name)
        logger.warning(
            "dangling_settlement_removed",
            extra={"settlement_id": settlement_id},
        )
        return settlement_id
