"""
Trial balance across all of a user's parties.

Each party's closing balance is the sum of its credits minus its
debits over every entry it has ever had, settled or not. Settlement
entries are left out: they restate balances the frozen entries
already carry.

Regular and company parties are sorted into a credit bucket and a
debit bucket, and the two totals must be equal. Commission is a
one-sided accrual with no counter-leg, so it is reported on its own
row and in ``commission_balance`` but kept out of both buckets.

An imbalance is a defect in the data, reported with its size. It is
logged, never raised.
"""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from party_ledger.logging_config import get_logger
from party_ledger.models.enums import EntryKind, PartyKind
from party_ledger.models.ledger_entry import LedgerEntry
from party_ledger.models.party import Party
from party_ledger.schemas.report import TrialBalanceReport, TrialBalanceRow
from party_ledger.services.cache import BalanceCache, TRIAL_BALANCE, balance_cache

logger = get_logger("services.trial_balance")

ZERO = Decimal("0")
CENT = Decimal("0.01")


class TrialBalanceService:

    def __init__(self, db: Session, cache: BalanceCache = balance_cache):
        self.db = db
        self.cache = cache

    def get_party_totals(self, user_id: str) -> list[tuple[Party, Decimal, int]]:
        """(party, closing balance, entry count) for every party with entries."""
        rows = self.db.execute(
            select(
                Party,
                func.coalesce(func.sum(LedgerEntry.credit), 0),
                func.coalesce(func.sum(LedgerEntry.debit), 0),
                func.count(LedgerEntry.id),
            )
            .join(LedgerEntry, LedgerEntry.party_id == Party.id)
            .where(
                Party.user_id == user_id,
                LedgerEntry.entry_kind != EntryKind.SETTLEMENT,
            )
            .group_by(Party.id)
            .order_by(Party.name)
        ).all()

        return [
            (
                party,
                (Decimal(str(credit)) - Decimal(str(debit))).quantize(CENT),
                count,
            )
            for party, credit, debit, count in rows
        ]

    def get_trial_balance(self, user_id: str) -> TrialBalanceReport:
        cached = self.cache.get(user_id, TRIAL_BALANCE)
        if cached is not None:
            logger.debug("trial_balance_cache_hit")
            return cached
        version = self.cache.version(user_id)

        rows = []
        credit_total = debit_total = commission_balance = ZERO

        for party, closing, count in self.get_party_totals(user_id):
            if closing == 0:
                continue
            rows.append(TrialBalanceRow(
                party_name=party.name,
                kind=party.kind,
                balance=closing,
                entry_count=count,
            ))
            if party.kind == PartyKind.COMMISSION:
                commission_balance += closing
            elif closing > 0:
                credit_total += closing
            else:
                debit_total += -closing

        difference = credit_total - debit_total
        report = TrialBalanceReport(
            parties=rows,
            credit_total=credit_total,
            debit_total=debit_total,
            difference=difference,
            is_balanced=difference == 0,
            commission_balance=commission_balance,
        )

        if difference != 0:
            logger.warning(
                "trial_balance_imbalance",
                extra={
                    "credit_total": credit_total,
                    "debit_total": debit_total,
                    "difference": difference,
                },
            )

        self.cache.set(user_id, TRIAL_BALANCE, report, version=version)
        return report
