"""
Entry store: the one place that reads and writes ledger rows.

Services above this layer never build queries against
``ledger_entries``, ``parties`` or ``settlements`` themselves. Every
batch of inserts or updates lands in the caller's transaction and is
only flushed here, so a failure anywhere in an operation rolls the
whole batch back when the caller rolls back.
"""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from party_ledger.config import get_settings
from party_ledger.exceptions import (
    ConcurrencyConflictError,
    EntryNotFoundError,
    LedgerValidationError,
    PartyNotFoundError,
)
from party_ledger.logging_config import get_logger
from party_ledger.models.enums import PartyKind, CommissionMode
from party_ledger.models.ledger_entry import LedgerEntry
from party_ledger.models.party import Party
from party_ledger.models.settlement import Settlement
from party_ledger.models.user_settings import UserSettings
from party_ledger.services.sequence_service import SequenceService

logger = get_logger("services.entry_store")

# Columns a batch update may touch. Amounts and dates only change
# through revise_entry, and only while the entry is live.
UPDATABLE_FIELDS = frozenset(
    {"is_settled", "settlement_id", "balance_snapshot", "remarks", "party_name"}
)

# Columns a live entry may still change through an edit.
REVISABLE_FIELDS = frozenset(
    {"entry_type", "credit", "debit", "entry_date", "remarks"}
)


@dataclass(frozen=True)
class UserConfig:
    company_name: str
    default_commission_rate: Decimal


class EntryStore:

    def __init__(self, db: Session):
        self.db = db
        self.sequences = SequenceService(db)

    # --- Entries ---

    def list_entries(
        self,
        user_id: str,
        party_name: str | None = None,
        refresh: bool = False,
    ) -> list[LedgerEntry]:
        """
        Entries of a user, or of one party, in ledger order.

        ``refresh`` overwrites any copies already held by the session.
        Callers that just took a lock pass it so they do not decide on
        rows they read before another transaction committed.
        """
        query = select(LedgerEntry).where(LedgerEntry.user_id == user_id)
        if party_name is not None:
            query = query.where(LedgerEntry.party_name == party_name)
        query = query.order_by(LedgerEntry.entry_date, LedgerEntry.sequence)
        if refresh:
            query = query.execution_options(populate_existing=True)
        return list(self.db.execute(query).scalars().all())

    def get_entry(self, user_id: str, entry_id: int) -> LedgerEntry:
        entry = self.db.execute(
            select(LedgerEntry).where(
                LedgerEntry.id == entry_id,
                LedgerEntry.user_id == user_id,
            )
        ).scalar_one_or_none()
        if entry is None:
            raise EntryNotFoundError(entry_id)
        return entry

    def insert_entries(self, batch: list[LedgerEntry]) -> list[LedgerEntry]:
        """
        Validate and add a batch of new entries.

        Entries without a sequence get one from the ledger counter, in
        batch order. Nothing is added if any entry is malformed.
        """
        for entry in batch:
            self._validate(entry)

        unassigned = [entry for entry in batch if entry.sequence is None]
        for entry, value in zip(
            unassigned, self.sequences.allocate(len(unassigned))
        ):
            entry.sequence = value

        self.db.add_all(batch)
        self.db.flush()
        logger.debug(
            "entries_inserted",
            extra={"entry_ids": [entry.id for entry in batch]},
        )
        return batch

    def update_entries(self, batch: list[dict]) -> list[LedgerEntry]:
        """
        Apply ``{"id": ..., field: value}`` changes to existing entries.

        The whole batch is checked before anything is changed.
        """
        if not batch:
            return []

        ids = [change["id"] for change in batch]
        entries = {
            entry.id: entry
            for entry in self.db.execute(
                select(LedgerEntry).where(LedgerEntry.id.in_(ids))
            ).scalars().all()
        }

        for change in batch:
            if change["id"] not in entries:
                raise EntryNotFoundError(change["id"])
            unknown = set(change) - UPDATABLE_FIELDS - {"id"}
            if unknown:
                raise LedgerValidationError(
                    f"Fields {sorted(unknown)} cannot be updated"
                )

        for change in batch:
            entry = entries[change["id"]]
            for field, value in change.items():
                if field != "id":
                    setattr(entry, field, value)

        self.db.flush()
        return [entries[i] for i in ids]

    def revise_entry(self, entry: LedgerEntry, **fields) -> set[str]:
        """
        Change the amounts, direction, date or remarks of a live entry.

        Returns the names of the fields whose value changed.
        """
        if entry.is_settled:
            raise LedgerValidationError(
                "Settled entries cannot be revised", party_name=entry.party_name
            )
        unknown = set(fields) - REVISABLE_FIELDS
        if unknown:
            raise LedgerValidationError(
                f"Fields {sorted(unknown)} cannot be revised"
            )

        changed = {
            field for field, value in fields.items()
            if getattr(entry, field) != value
        }
        for field in changed:
            setattr(entry, field, fields[field])
        self._validate(entry)

        self.db.flush()
        return changed

    def delete_entry(self, entry: LedgerEntry) -> None:
        """Delete an entry together with the entries derived from it."""
        self.db.delete(entry)
        self.db.flush()

    def _validate(self, entry: LedgerEntry) -> None:
        credit = entry.credit or Decimal("0")
        debit = entry.debit or Decimal("0")

        if credit < 0 or debit < 0:
            raise LedgerValidationError(
                "Amounts cannot be negative",
                party_name=entry.party_name,
                amount=min(credit, debit),
            )
        if credit and debit:
            raise LedgerValidationError(
                "An entry is either a credit or a debit, not both",
                party_name=entry.party_name,
            )
        if entry.entry_date is None:
            raise LedgerValidationError(
                "Entry date is required", party_name=entry.party_name
            )
        if entry.party_id is None and entry.party is None:
            raise LedgerValidationError(
                "Entry has no party", party_name=entry.party_name
            )

    # --- Parties ---

    def list_parties(self, user_id: str) -> list[Party]:
        return list(
            self.db.execute(
                select(Party).where(Party.user_id == user_id).order_by(Party.name)
            ).scalars().all()
        )

    def get_party(self, user_id: str, name: str) -> Party | None:
        return self.db.execute(
            select(Party).where(Party.user_id == user_id, Party.name == name)
        ).scalar_one_or_none()

    def require_party(self, user_id: str, name: str) -> Party:
        party = self.get_party(user_id, name)
        if party is None:
            raise PartyNotFoundError(name)
        return party

    def find_party_by_kind(self, user_id: str, kind: PartyKind) -> Party | None:
        return self.db.execute(
            select(Party)
            .where(Party.user_id == user_id, Party.kind == kind)
            .order_by(Party.id)
            .limit(1)
        ).scalar_one_or_none()

    def upsert_party(self, party: Party) -> Party:
        """
        Insert a party, or copy its settings onto the existing row of
        the same name.
        """
        existing = self.get_party(party.user_id, party.name)
        if existing is None:
            self.db.add(party)
            self.db.flush()
            return party

        existing.commission_mode = party.commission_mode or existing.commission_mode
        existing.commission_rate = party.commission_rate
        if party.is_active is not None:
            existing.is_active = party.is_active
        self.db.flush()
        return existing

    def ensure_party(self, user_id: str, name: str, kind: PartyKind) -> Party:
        """Return the named party, creating it when the user has none."""
        party = self.get_party(user_id, name)
        if party is not None:
            return party

        party = Party(
            user_id=user_id,
            name=name,
            kind=kind,
            commission_mode=(
                CommissionMode.TAKE if kind == PartyKind.REGULAR
                else CommissionMode.NONE
            ),
        )
        self.db.add(party)
        self.db.flush()
        logger.info(
            "party_auto_created",
            extra={"party_name": name, "kind": kind.value},
        )
        return party

    def lock_party(self, user_id: str, name: str, nowait: bool = False) -> Party:
        """
        Take a row lock on the party for the rest of the transaction.

        Settlement of one party is serialized through this lock. With
        ``nowait`` a held lock fails immediately as a conflict instead
        of blocking. Databases without row locks ignore the clause.
        """
        try:
            party = self.db.execute(
                select(Party)
                .where(Party.user_id == user_id, Party.name == name)
                .with_for_update(nowait=nowait)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        except OperationalError as e:
            logger.warning(
                "party_lock_unavailable",
                extra={"party_name": name},
            )
            raise ConcurrencyConflictError(name) from e

        if party is None:
            raise PartyNotFoundError(name)
        return party

    # --- Settlements ---

    def list_settlements(
        self,
        user_id: str,
        party_id: int | None = None,
    ) -> list[Settlement]:
        """Settlements in the order they apply: by date, then sequence."""
        query = select(Settlement).where(Settlement.user_id == user_id)
        if party_id is not None:
            query = query.where(Settlement.party_id == party_id)
        query = query.order_by(Settlement.settlement_date, Settlement.sequence)
        return list(self.db.execute(query).scalars().all())

    def latest_settlement(self, user_id: str, party_id: int) -> Settlement | None:
        return self.db.execute(
            select(Settlement)
            .where(Settlement.user_id == user_id, Settlement.party_id == party_id)
            .order_by(
                Settlement.settlement_date.desc(), Settlement.sequence.desc()
            )
            .limit(1)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_settlement(self, user_id: str, settlement_id: int) -> Settlement | None:
        return self.db.execute(
            select(Settlement).where(
                Settlement.id == settlement_id,
                Settlement.user_id == user_id,
            )
        ).scalar_one_or_none()

    # --- User configuration ---

    def get_user_settings(self, user_id: str) -> UserSettings | None:
        return self.db.get(UserSettings, user_id)

    def get_user_config(self, user_id: str) -> UserConfig:
        """The user's company name and commission rate, with defaults."""
        settings = get_settings()
        row = self.get_user_settings(user_id)
        if row is None:
            return UserConfig(
                company_name=settings.DEFAULT_COMPANY_NAME,
                default_commission_rate=settings.DEFAULT_COMMISSION_RATE,
            )
        return UserConfig(
            company_name=row.company_name,
            default_commission_rate=row.default_commission_rate,
        )
