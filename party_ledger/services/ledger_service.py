"""
Ledger service: postings and party ledger views.

This service enforces the posting rules:
1. A posting names a known, active party and a positive amount
2. Every primary posting to a regular party carries its derived
   entries, written in the same unit of work
3. Settled entries are frozen; only live primary postings can be
   edited or deleted, and their derived entries follow them
4. Every write holds the row lock of each party it touches until
   commit, the same lock a settlement takes

All user postings go through this service. The caller owns the
transaction: methods flush, the caller commits or rolls back.
"""

from decimal import Decimal

from sqlalchemy.orm import Session

from party_ledger.exceptions import LedgerValidationError
from party_ledger.logging_config import get_logger
from party_ledger.models.enums import EntryKind, EntryType
from party_ledger.models.ledger_entry import LedgerEntry
from party_ledger.schemas.ledger import (
    LedgerEntryResponse,
    LedgerLineResponse,
    PartyLedgerResponse,
    EntryUpdate,
    TransactionCreate,
)
from party_ledger.services import balance
from party_ledger.services.cache import BalanceCache, balance_cache
from party_ledger.services.entry_store import EntryStore
from party_ledger.services.virtual_entries import VirtualEntryGenerator

logger = get_logger("services.ledger")


class LedgerService:

    def __init__(self, db: Session, cache: BalanceCache = balance_cache):
        self.db = db
        self.cache = cache
        self.store = EntryStore(db)
        self.generator = VirtualEntryGenerator(db, self.store)

    def post_transaction(
        self, user_id: str, request: TransactionCreate
    ) -> tuple[LedgerEntry, list[LedgerEntry]]:
        """
        Post one credit or debit and generate its derived entries.

        Raises LedgerValidationError (or PartyNotFoundError) before
        anything is written if the posting is malformed.
        """
        amount = Decimal(request.amount)
        if amount <= 0:
            raise LedgerValidationError(
                "Amount must be positive",
                party_name=request.party_name,
                amount=amount,
            )

        # Held until commit, so a settlement cannot run between the
        # sequence allocation and the commit of this posting
        party = self.store.lock_party(user_id, request.party_name)
        if not party.is_active:
            raise LedgerValidationError(
                f"Party '{party.name}' is not active", party_name=party.name
            )

        entry_type = EntryType(request.entry_type)
        primary = LedgerEntry(
            user_id=user_id,
            party=party,
            party_name=party.name,
            entry_type=entry_type,
            entry_kind=EntryKind.PRIMARY,
            credit=amount if entry_type == EntryType.CREDIT else Decimal("0"),
            debit=amount if entry_type == EntryType.DEBIT else Decimal("0"),
            entry_date=request.entry_date,
            remarks=request.remarks,
            is_settled=False,
        )
        self.store.insert_entries([primary])
        derived = self.generator.generate(primary)

        # Posting reopens a settled party
        if party.monday_final:
            party.monday_final = False
            self.db.flush()

        self.cache.invalidate_on_commit(
            self.db, user_id, party.name, *{entry.party_name for entry in derived}
        )
        logger.info(
            "transaction_posted",
            extra={
                "entry_id": primary.id,
                "party_name": party.name,
                "entry_type": entry_type.value,
                "amount": amount,
                "derived_count": len(derived),
            },
        )
        return primary, derived

    def delete_entry(self, user_id: str, entry_id: int) -> list[int]:
        """
        Delete a live primary posting and its derived entries.

        Returns the ids of every deleted entry.
        """
        entry = self._live_primary(user_id, entry_id, "deleted")
        derived = list(entry.derived_entries)

        deleted_ids = [entry.id] + [child.id for child in derived]
        affected = {entry.party_name} | {child.party_name for child in derived}
        self.store.delete_entry(entry)

        self.cache.invalidate_on_commit(self.db, user_id, *affected)
        logger.info(
            "entry_deleted",
            extra={"entry_id": entry_id, "deleted_ids": deleted_ids},
        )
        return deleted_ids

    def update_entry(
        self, user_id: str, entry_id: int, request: EntryUpdate
    ) -> tuple[LedgerEntry, list[LedgerEntry]]:
        """
        Edit a live primary posting.

        A change of amount, direction or date replaces the derived
        entries, so commission and counter-legs follow the new values.
        The posting keeps its sequence and its place in the ledger.
        """
        entry = self._live_primary(user_id, entry_id, "edited")
        changes = request.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            return entry, list(entry.derived_entries)

        entry_type = EntryType(changes.get("entry_type", entry.entry_type))
        amount = Decimal(changes.get("amount", entry.amount))
        revised = self.store.revise_entry(
            entry,
            entry_type=entry_type,
            credit=amount if entry_type == EntryType.CREDIT else Decimal("0"),
            debit=amount if entry_type == EntryType.DEBIT else Decimal("0"),
            entry_date=changes.get("entry_date", entry.entry_date),
            remarks=changes.get("remarks", entry.remarks),
        )

        affected = {entry.party_name} | {
            child.party_name for child in entry.derived_entries
        }
        if revised & {"entry_type", "credit", "debit", "entry_date"}:
            entry.derived_entries.clear()
            self.db.flush()
        derived = self.generator.generate(entry)
        affected |= {child.party_name for child in derived}

        self.cache.invalidate_on_commit(self.db, user_id, *affected)
        logger.info(
            "entry_updated",
            extra={"entry_id": entry.id, "fields": sorted(revised)},
        )
        return entry, derived

    def _live_primary(self, user_id: str, entry_id: int, action: str) -> LedgerEntry:
        """Load a primary posting that may still change, under its party's lock."""
        entry = self.store.get_entry(user_id, entry_id)
        if entry.entry_kind != EntryKind.PRIMARY:
            raise LedgerValidationError(
                f"Only primary postings can be {action}; derived entries "
                f"and settlements follow what produced them",
                party_name=entry.party_name,
            )
        self.store.lock_party(user_id, entry.party_name)
        self.db.refresh(entry)
        for name in sorted({child.party_name for child in entry.derived_entries}):
            self.store.lock_party(user_id, name)
        for child in entry.derived_entries:
            self.db.refresh(child)

        if entry.is_settled:
            raise LedgerValidationError(
                f"Settled entries cannot be {action}", party_name=entry.party_name
            )
        if any(child.is_settled for child in entry.derived_entries):
            raise LedgerValidationError(
                "A derived entry of this posting is already settled",
                party_name=entry.party_name,
            )
        return entry

    def regenerate_derived(self, user_id: str, entry_id: int) -> list[LedgerEntry]:
        """Back-fill missing derived entries for one primary posting."""
        entry = self.store.get_entry(user_id, entry_id)
        if entry.entry_kind != EntryKind.PRIMARY:
            raise LedgerValidationError(
                "Derived entries can only be generated from a primary posting",
                party_name=entry.party_name,
            )
        self.store.lock_party(user_id, entry.party_name)

        derived = self.generator.generate(entry)
        self.cache.invalidate_on_commit(
            self.db, user_id, entry.party_name, *{child.party_name for child in derived}
        )
        return derived

    def get_party_ledger(self, user_id: str, party_name: str) -> PartyLedgerResponse:
        """
        Live view of one party: settled history, then live entries
        with a running balance seeded by the latest settlement.
        """
        cached = self.cache.get(user_id, party_name)
        if cached is not None:
            logger.debug("party_ledger_cache_hit", extra={"party_name": party_name})
            return cached
        version = self.cache.version(user_id)

        party = self.store.require_party(user_id, party_name)
        entries = self.store.list_entries(user_id, party.name)
        unsettled, settled = balance.partition(entries)

        latest = self.store.latest_settlement(user_id, party.id)
        seed = latest.closing_balance if latest is not None else balance.ZERO
        lines = balance.running_balances(unsettled, seed)
        total_credit, total_debit = balance.totals(unsettled)

        view = PartyLedgerResponse(
            party_name=party.name,
            seed_balance=seed,
            lines=[
                LedgerLineResponse(
                    entry=LedgerEntryResponse.model_validate(line.entry),
                    balance=line.balance,
                )
                for line in lines
            ],
            settled_entries=[
                LedgerEntryResponse.model_validate(entry) for entry in settled
            ],
            total_credit=total_credit,
            total_debit=total_debit,
            closing_balance=lines[-1].balance if lines else seed,
            latest_settlement_id=latest.id if latest is not None else None,
        )
        self.cache.set(user_id, party_name, view, version=version)
        return view
