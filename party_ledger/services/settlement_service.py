"""
Settlement service: the Monday Final.

Settling a party freezes its live entries into a checkpoint:

    UNSETTLED --settle--> SETTLING --> SETTLED_CURRENT --post--> UNSETTLED

The settlement row, its SETTLEMENT ledger entry and the links from
every frozen entry are written in the caller's transaction. They
commit together or not at all; a settlement without its links (or
links without their settlement) is the orphan state the diagnostics
sweep looks for.

Settlements of one party are serialized by a row lock on the
party, taken before anything is read. The cache is never consulted
here: every decision is made on rows read under that lock.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from party_ledger.config import get_settings
from party_ledger.exceptions import (
    LedgerValidationError,
    PartyNotFoundError,
    SettlementError,
    SettlementNotFoundError,
)
from party_ledger.logging_config import get_logger, LogContext
from party_ledger.models.enums import EntryKind, EntryType, SettlementState
from party_ledger.models.ledger_entry import LedgerEntry
from party_ledger.models.party import Party
from party_ledger.models.settlement import Settlement
from party_ledger.services import balance
from party_ledger.services.audit_service import AuditService
from party_ledger.services.cache import BalanceCache, balance_cache
from party_ledger.services.entry_store import EntryStore

logger = get_logger("services.settlement")

SETTLEMENT_REMARK = "Monday Final Settlement"


def settlement_remarks(entry_count: int) -> str:
    return f"{SETTLEMENT_REMARK} - {entry_count} transactions settled"


class SettlementService:

    def __init__(self, db: Session, cache: BalanceCache = balance_cache):
        self.db = db
        self.cache = cache
        self.store = EntryStore(db)

    def settle_party(
        self,
        user_id: str,
        party_name: str,
        settlement_date: date | None = None,
    ) -> Settlement:
        """
        Freeze the party's live entries into a new settlement.

        With no live entries this is a no-op returning the latest
        settlement. Raises SettlementError when there is neither a
        live entry nor an earlier settlement, and
        ConcurrencyConflictError when another transaction holds the
        party's lock.
        """
        with LogContext.bind(user_id=user_id, party_name=party_name):
            party = self.store.lock_party(
                user_id, party_name, nowait=get_settings().SETTLEMENT_LOCK_NOWAIT
            )
            entries = self.store.list_entries(user_id, party.name, refresh=True)
            unsettled, _ = balance.partition(entries)
            unsettled = [entry for entry in unsettled if not entry.is_settlement]
            latest = self.store.latest_settlement(user_id, party.id)

            if not unsettled:
                if latest is None:
                    raise SettlementError(
                        "Nothing to settle: party has no live entries",
                        party_name=party.name,
                    )
                logger.info(
                    "settlement_noop",
                    extra={"settlement_id": latest.id},
                )
                return latest

            settlement_date = settlement_date or date.today()
            if latest is not None and settlement_date < latest.settlement_date:
                raise LedgerValidationError(
                    f"Settlement date {settlement_date} is before the latest "
                    f"settlement on {latest.settlement_date}",
                    party_name=party.name,
                )

            logger.debug(
                "settlement_state",
                extra={"state": SettlementState.SETTLING.value},
            )
            seed = latest.closing_balance if latest is not None else balance.ZERO
            lines = balance.running_balances(unsettled, seed)
            closing = lines[-1].balance if lines else seed

            settlement = self._create_settlement(
                party, settlement_date, seed, closing, len(unsettled)
            )
            self.store.update_entries([
                {
                    "id": line.entry.id,
                    "is_settled": True,
                    "settlement_id": settlement.id,
                    "balance_snapshot": line.balance,
                }
                for line in lines
            ])

            party.monday_final = True
            self.db.flush()
            self.cache.invalidate_on_commit(self.db, user_id, party.name)

            logger.info(
                "party_settled",
                extra={
                    "settlement_id": settlement.id,
                    "seed_balance": seed,
                    "closing_balance": closing,
                    "entry_count": settlement.entry_count,
                },
            )
            return settlement

    def settle_parties(
        self,
        user_id: str,
        party_names: list[str],
        settlement_date: date | None = None,
    ) -> tuple[list[Settlement], list[str]]:
        """
        Settle several parties in one transaction.

        Parties are settled one at a time in name order, each under its
        own lock. Unknown parties and parties with nothing to settle are
        skipped. Returns ``(settlements, skipped_party_names)``.
        """
        settlements, skipped = [], []
        for name in sorted(set(party_names)):
            try:
                settlements.append(
                    self.settle_party(user_id, name, settlement_date)
                )
            except (PartyNotFoundError, SettlementError) as e:
                logger.info(
                    "settlement_skipped",
                    extra={"party_name": name, "reason": e.code},
                )
                skipped.append(name)
        return settlements, skipped

    def _create_settlement(
        self,
        party: Party,
        settlement_date: date,
        seed: Decimal,
        closing: Decimal,
        entry_count: int,
    ) -> Settlement:
        sequence = self.store.sequences.next_value()
        settlement = Settlement(
            user_id=party.user_id,
            party_id=party.id,
            party_name=party.name,
            settlement_date=settlement_date,
            seed_balance=seed,
            closing_balance=closing,
            entry_count=entry_count,
            sequence=sequence,
        )
        self.db.add(settlement)
        self.db.flush()

        entry_type = EntryType.CREDIT if closing >= 0 else EntryType.DEBIT
        self.store.insert_entries([
            LedgerEntry(
                user_id=party.user_id,
                party=party,
                party_name=party.name,
                entry_type=entry_type,
                entry_kind=EntryKind.SETTLEMENT,
                credit=closing if entry_type == EntryType.CREDIT else Decimal("0"),
                debit=-closing if entry_type == EntryType.DEBIT else Decimal("0"),
                entry_date=settlement_date,
                sequence=sequence,
                remarks=settlement_remarks(entry_count),
                is_settled=True,
                settlement_id=settlement.id,
                balance_snapshot=closing,
            )
        ])
        return settlement

    def list_settlements(self, user_id: str, party_name: str) -> list[Settlement]:
        party = self.store.require_party(user_id, party_name)
        return self.store.list_settlements(user_id, party.id)

    def party_state(self, user_id: str, party_name: str) -> SettlementState:
        party = self.store.require_party(user_id, party_name)
        if self._is_settled_current(user_id, party):
            return SettlementState.SETTLED_CURRENT
        return SettlementState.UNSETTLED

    def _is_settled_current(self, user_id: str, party: Party) -> bool:
        """A settlement exists and no entry has been posted since."""
        if self.store.latest_settlement(user_id, party.id) is None:
            return False
        return all(
            entry.is_settled
            for entry in self.store.list_entries(user_id, party.name)
        )

    def undo_latest_settlement(
        self, user_id: str, party_name: str
    ) -> tuple[int, int]:
        """
        Reopen the entries frozen by the party's latest settlement and
        delete the settlement with its ledger entry.

        Only the latest settlement can be undone; an earlier one seeds
        the settlements after it. Returns ``(settlement_id,
        reopened_entry_count)``.
        """
        party = self.store.lock_party(
            user_id, party_name, nowait=get_settings().SETTLEMENT_LOCK_NOWAIT
        )
        latest = self.store.latest_settlement(user_id, party.id)
        if latest is None:
            raise SettlementNotFoundError(party_name=party.name)

        linked = [
            entry
            for entry in self.store.list_entries(user_id, party.name, refresh=True)
            if entry.settlement_id == latest.id
        ]
        frozen = [entry for entry in linked if not entry.is_settlement]
        markers = [entry for entry in linked if entry.is_settlement]

        self.store.update_entries([
            {
                "id": entry.id,
                "is_settled": False,
                "settlement_id": None,
                "balance_snapshot": None,
            }
            for entry in frozen
        ])
        for marker in markers:
            self.store.delete_entry(marker)

        settlement_id = latest.id
        closing_balance = latest.closing_balance
        self.db.delete(latest)
        self.db.flush()
        party.monday_final = self._is_settled_current(user_id, party)
        self.db.flush()

        AuditService(self.db).record(
            AuditService.UNDO_SETTLEMENT,
            user_id,
            party_name=party.name,
            settlement_id=settlement_id,
            closing_balance=closing_balance,
            reopened_entry_ids=[entry.id for entry in frozen],
        )
        self.cache.invalidate_on_commit(self.db, user_id, party.name)
        logger.info(
            "settlement_undone",
            extra={
                "settlement_id": settlement_id,
                "reopened_count": len(frozen),
            },
        )
        return settlement_id, len(frozen)
