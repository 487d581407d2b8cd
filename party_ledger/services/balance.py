"""
Balance accumulation over a party's entries.

Pure functions: no session, no writes. A party's balance is
the running sum of credit minus debit over its live (unsettled)
entries in ledger order, seeded with the closing balance of its
latest settlement. Settlement entries are markers of a closed
period and never contribute to a running balance.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from party_ledger.models.ledger_entry import LedgerEntry

ZERO = Decimal("0")


@dataclass(frozen=True)
class BalanceLine:
    entry: LedgerEntry
    balance: Decimal


def ledger_order(entry: LedgerEntry) -> tuple:
    return (entry.entry_date, entry.sequence)


def sort_entries(entries: Iterable[LedgerEntry]) -> list[LedgerEntry]:
    return sorted(entries, key=ledger_order)


def partition(
    entries: Iterable[LedgerEntry],
) -> tuple[list[LedgerEntry], list[LedgerEntry]]:
    """Split into (unsettled, settled), each in ledger order."""
    unsettled, settled = [], []
    for entry in sort_entries(entries):
        (settled if entry.is_settled else unsettled).append(entry)
    return unsettled, settled


def running_balances(
    entries: Iterable[LedgerEntry],
    seed: Decimal = ZERO,
) -> list[BalanceLine]:
    """
    Balance after each entry, starting from ``seed``.

    Settlement entries are skipped entirely.
    """
    balance = seed
    lines = []
    for entry in sort_entries(entries):
        if entry.is_settlement:
            continue
        balance += entry.signed_amount
        lines.append(BalanceLine(entry=entry, balance=balance))
    return lines


def closing_balance(
    entries: Iterable[LedgerEntry],
    seed: Decimal = ZERO,
) -> Decimal:
    """Final running balance, or the seed when there is nothing to add."""
    lines = running_balances(entries, seed)
    return lines[-1].balance if lines else seed


def totals(entries: Iterable[LedgerEntry]) -> tuple[Decimal, Decimal]:
    """Sum of credits and sum of debits, settlement entries excluded."""
    credit = debit = ZERO
    for entry in entries:
        if entry.is_settlement:
            continue
        credit += entry.credit
        debit += entry.debit
    return credit, debit
