"""
Virtual entry generation.

A primary posting against a regular party drags derived postings
along with it, all on the primary's business date:

    COMMISSION  primary amount x rate, same direction, to the Commission party
    COMPANY     primary amount, opposite direction, to the company party
    MIRROR      primary amount, opposite direction, to the other party of
                the mirror pair; replaces the COMPANY entry, since the
                opposite leg is then already posted to a party

Every derived entry points back at its primary through
``derived_from_entry_id``. That link is what makes generation
idempotent (existing kinds are not generated again) and what lets a
deleted primary take its derived entries with it.
"""

from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.orm import Session

from party_ledger.config import get_settings
from party_ledger.logging_config import get_logger
from party_ledger.models.enums import (
    CommissionMode, EntryKind, EntryType, PartyKind,
)
from party_ledger.models.ledger_entry import LedgerEntry
from party_ledger.models.party import Party
from party_ledger.services.entry_store import EntryStore, UserConfig

logger = get_logger("services.virtual_entries")

CENT = Decimal("0.01")


def commission_amount(amount: Decimal, rate: Decimal) -> Decimal:
    return (amount * rate).quantize(CENT, rounding=ROUND_HALF_UP)


def resolve_commission_rate(party: Party, config: UserConfig) -> Decimal:
    """The party's own rate wins over the user's default."""
    if party.commission_rate is not None:
        return party.commission_rate
    return config.default_commission_rate


def mirror_of(party_name: str) -> str | None:
    """The other party of the configured mirror pair, if any."""
    pair = get_settings().MIRROR_PARTIES
    if len(pair) != 2 or party_name not in pair:
        return None
    return pair[1] if party_name == pair[0] else pair[0]


class VirtualEntryGenerator:

    def __init__(self, db: Session, store: EntryStore | None = None):
        self.db = db
        self.store = store or EntryStore(db)

    def should_generate(self, primary: LedgerEntry) -> bool:
        if primary.entry_kind != EntryKind.PRIMARY:
            return False
        if primary.derived_from_entry_id is not None:
            return False
        return primary.party.kind == PartyKind.REGULAR

    def generate(self, primary: LedgerEntry) -> list[LedgerEntry]:
        """
        Insert whatever derived entries ``primary`` is missing.

        Returns every derived entry of the primary, existing ones
        included, so a second call returns the same list as the first.
        """
        if not self.should_generate(primary):
            return list(primary.derived_entries)

        existing = {entry.entry_kind: entry for entry in primary.derived_entries}
        config = self.store.get_user_config(primary.user_id)

        missing = [
            draft
            for draft in self._drafts(primary, config)
            if draft.entry_kind not in existing
        ]
        if missing:
            # Linking a draft to the persistent primary makes it pending,
            # so it must hold its sequence before the next flush.
            values = self.store.sequences.allocate(len(missing))
            for draft, value in zip(missing, values):
                draft.sequence = value
                primary.derived_entries.append(draft)
            self.store.insert_entries(missing)
            logger.info(
                "derived_entries_generated",
                extra={
                    "entry_id": primary.id,
                    "kinds": [draft.entry_kind.value for draft in missing],
                },
            )
        else:
            logger.debug(
                "derived_entries_present",
                extra={"entry_id": primary.id},
            )

        return list(primary.derived_entries)

    def _drafts(self, primary: LedgerEntry, config: UserConfig) -> list[LedgerEntry]:
        settings = get_settings()
        party = primary.party
        drafts = []

        if party.commission_mode != CommissionMode.NONE:
            rate = resolve_commission_rate(party, config)
            amount = commission_amount(primary.amount, rate)
            if amount > 0:
                commission_party = self.store.ensure_party(
                    primary.user_id,
                    settings.COMMISSION_PARTY_NAME,
                    PartyKind.COMMISSION,
                )
                commission_party = self._lock(commission_party)
                drafts.append(self._draft(
                    primary,
                    commission_party,
                    EntryKind.COMMISSION,
                    primary.entry_type,
                    amount,
                    f"Commission {(rate * 100).normalize():f}% "
                    f"({party.commission_mode.value}) - {party.name}",
                ))

        counter_name = mirror_of(party.name)
        if counter_name is not None:
            counter_party = self.store.ensure_party(
                primary.user_id, counter_name, PartyKind.REGULAR
            )
            counter_party = self._lock(counter_party)
            drafts.append(self._draft(
                primary,
                counter_party,
                EntryKind.MIRROR,
                primary.entry_type.opposite(),
                primary.amount,
                f"Transaction with {party.name}",
            ))
        else:
            company_party = self._company_party(primary.user_id, config)
            company_party = self._lock(company_party)
            drafts.append(self._draft(
                primary,
                company_party,
                EntryKind.COMPANY,
                primary.entry_type.opposite(),
                primary.amount,
                f"Transaction with {party.name}",
            ))

        return drafts

    def _company_party(self, user_id: str, config: UserConfig) -> Party:
        party = self.store.find_party_by_kind(user_id, PartyKind.COMPANY)
        if party is not None:
            return party
        return self.store.ensure_party(
            user_id, config.company_name, PartyKind.COMPANY
        )

    def _lock(self, party: Party) -> Party:
        """Hold the target party for the rest of the posting, as a settlement would."""
        return self.store.lock_party(party.user_id, party.name)

    @staticmethod
    def _draft(
        primary: LedgerEntry,
        party: Party,
        kind: EntryKind,
        entry_type: EntryType,
        amount: Decimal,
        remarks: str,
    ) -> LedgerEntry:
        return LedgerEntry(
            user_id=primary.user_id,
            party=party,
            party_name=party.name,
            entry_type=entry_type,
            entry_kind=kind,
            credit=amount if entry_type == EntryType.CREDIT else Decimal("0"),
            debit=amount if entry_type == EntryType.DEBIT else Decimal("0"),
            entry_date=primary.entry_date,
            remarks=remarks,
            is_settled=False,
        )
