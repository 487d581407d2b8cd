"""
Party and user settings management.

Parties are unique by name within a user. The Commission and
company parties are reserved: they are created on first use by the
virtual entry generator and cannot be created by hand.
"""

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from party_ledger.config import get_settings
from party_ledger.exceptions import LedgerValidationError
from party_ledger.logging_config import get_logger
from party_ledger.models.enums import PartyKind
from party_ledger.models.ledger_entry import LedgerEntry
from party_ledger.models.party import Party
from party_ledger.models.settlement import Settlement
from party_ledger.models.user_settings import UserSettings
from party_ledger.schemas.party import (
    PartyCreate,
    PartyUpdate,
    UserSettingsUpdate,
)
from party_ledger.services.audit_service import AuditService
from party_ledger.services.cache import BalanceCache, balance_cache
from party_ledger.services.entry_store import EntryStore

logger = get_logger("services.party")


class PartyService:

    def __init__(self, db: Session, cache: BalanceCache = balance_cache):
        self.db = db
        self.store = EntryStore(db)
        self.cache = cache

    def reserved_names(self, user_id: str) -> set[str]:
        names = {
            get_settings().COMMISSION_PARTY_NAME,
            self.store.get_user_config(user_id).company_name,
        }
        company = self.store.find_party_by_kind(user_id, PartyKind.COMPANY)
        if company is not None:
            names.add(company.name)
        return names

    def create_party(self, user_id: str, request: PartyCreate) -> Party:
        """
        Create a regular party.

        Raises LedgerValidationError if the name is taken or reserved.
        """
        name = request.name.strip()
        if not name:
            raise LedgerValidationError("Party name cannot be blank")
        if name in self.reserved_names(user_id):
            raise LedgerValidationError(
                f"'{name}' is a reserved party name", party_name=name
            )
        if self.store.get_party(user_id, name) is not None:
            raise LedgerValidationError(
                f"Party '{name}' already exists", party_name=name
            )

        party = self.store.upsert_party(Party(
            user_id=user_id,
            name=name,
            kind=PartyKind.REGULAR,
            commission_mode=request.commission_mode,
            commission_rate=request.commission_rate,
        ))
        logger.info("party_created", extra={"party_id": party.id})
        return party

    def list_parties(self, user_id: str, include_inactive: bool = True) -> list[Party]:
        parties = self.store.list_parties(user_id)
        if include_inactive:
            return parties
        return [party for party in parties if party.is_active]

    def get_party(self, user_id: str, name: str) -> Party:
        return self.store.require_party(user_id, name)

    def update_party(self, user_id: str, name: str, request: PartyUpdate) -> Party:
        party = self.store.require_party(user_id, name)
        changes = request.model_dump(exclude_unset=True)

        # An explicit null rate means "fall back to the user's default"
        if "commission_rate" in changes:
            party.commission_rate = changes["commission_rate"]
        for field in ("commission_mode", "monday_final", "is_active"):
            if changes.get(field) is not None:
                setattr(party, field, changes[field])

        self.db.flush()
        self.cache.invalidate_on_commit(self.db, user_id, party.name)
        logger.info(
            "party_updated",
            extra={"party_id": party.id, "fields": sorted(changes)},
        )
        return party

    def remove_party(self, user_id: str, name: str) -> tuple[bool, bool]:
        """
        Delete a party, or deactivate it when it has ledger entries.

        Returns ``(deleted, deactivated)``.
        """
        party = self.store.require_party(user_id, name)
        entry_count = self.db.execute(
            select(func.count(LedgerEntry.id)).where(
                LedgerEntry.party_id == party.id
            )
        ).scalar_one()

        if entry_count:
            party.is_active = False
            self.db.flush()
            self.cache.invalidate_on_commit(self.db, user_id, name)
            logger.info(
                "party_deactivated",
                extra={"party_id": party.id, "entry_count": entry_count},
            )
            return False, True

        self.db.delete(party)
        self.db.flush()
        self.cache.invalidate_on_commit(self.db, user_id, name)
        logger.info("party_deleted", extra={"party_name": name})
        return True, False

    def remove_parties(
        self, user_id: str, party_names: list[str]
    ) -> tuple[list[tuple[str, bool, bool]], list[str]]:
        """
        Remove several parties, each the way ``remove_party`` does.

        Unknown names are skipped. Returns ``([(name, deleted,
        deactivated), ...], skipped_names)``.
        """
        known = {party.name for party in self.store.list_parties(user_id)}
        requested = list(dict.fromkeys(party_names))
        skipped = [name for name in requested if name not in known]
        if len(skipped) == len(requested):
            raise LedgerValidationError("No known parties to remove")

        removed = [
            (name, *self.remove_party(user_id, name))
            for name in requested
            if name in known
        ]
        return removed, skipped

    # --- User settings ---

    def get_user_settings(self, user_id: str) -> UserSettings:
        """The stored settings, or unsaved defaults when there are none."""
        row = self.store.get_user_settings(user_id)
        if row is not None:
            return row
        config = self.store.get_user_config(user_id)
        return UserSettings(
            user_id=user_id,
            company_name=config.company_name,
            default_commission_rate=config.default_commission_rate,
        )

    def update_user_settings(
        self, user_id: str, request: UserSettingsUpdate
    ) -> UserSettings:
        row = self.store.get_user_settings(user_id)
        if row is None:
            row = self.get_user_settings(user_id)
            self.db.add(row)

        if request.default_commission_rate is not None:
            row.default_commission_rate = request.default_commission_rate

        if request.company_name is not None:
            new_name = request.company_name.strip()
            if new_name != row.company_name:
                self._rename_company(user_id, row.company_name, new_name)
                row.company_name = new_name

        self.db.flush()
        self.cache.invalidate_on_commit(self.db, user_id)
        return row

    def _rename_company(self, user_id: str, old_name: str, new_name: str) -> None:
        if not new_name:
            raise LedgerValidationError("Company name cannot be blank")

        company = self.store.find_party_by_kind(user_id, PartyKind.COMPANY)
        taken = self.store.get_party(user_id, new_name)
        if taken is not None and taken is not company:
            raise LedgerValidationError(
                f"Party '{new_name}' already exists", party_name=new_name
            )
        if new_name == get_settings().COMMISSION_PARTY_NAME:
            raise LedgerValidationError(
                f"'{new_name}' is a reserved party name", party_name=new_name
            )
        if company is None:
            return

        previous = company.name
        company.name = new_name
        self.db.execute(
            update(LedgerEntry)
            .where(LedgerEntry.party_id == company.id)
            .values(party_name=new_name)
            .execution_options(synchronize_session="fetch")
        )
        self.db.execute(
            update(Settlement)
            .where(Settlement.party_id == company.id)
            .values(party_name=new_name)
            .execution_options(synchronize_session="fetch")
        )
        self.db.flush()
        self.cache.invalidate_on_commit(self.db, user_id, previous, new_name)

        AuditService(self.db).record(
            AuditService.COMPANY_RENAMED,
            user_id,
            party_name=new_name,
            previous_name=previous,
        )
        logger.info(
            "company_renamed",
            extra={"previous_name": previous, "new_name": new_name},
        )
