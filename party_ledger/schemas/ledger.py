"""
Pydantic schemas for ledger postings and party ledger views.

These define the API contract. They are separate from the
database models because the API shape and the storage shape
differ: a posting request carries one amount and a direction,
the stored entry carries a credit and a debit column.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from party_ledger.models.enums import EntryType, EntryKind


# --- Request Schemas ---

class TransactionCreate(BaseModel):
    """A user-entered credit or debit against one party."""
    party_name: str = Field(min_length=1, max_length=255)
    entry_type: EntryType
    amount: Decimal = Field(gt=0, max_digits=15, decimal_places=2)
    entry_date: date
    remarks: str = Field(default="", max_length=1000)


class EntryUpdate(BaseModel):
    """Fields left out are not changed."""
    entry_type: EntryType | None = None
    amount: Decimal | None = Field(default=None, gt=0, max_digits=15, decimal_places=2)
    entry_date: date | None = None
    remarks: str | None = Field(default=None, max_length=1000)


# --- Response Schemas ---

class LedgerEntryResponse(BaseModel):
    id: int
    party_name: str
    entry_type: EntryType
    entry_kind: EntryKind
    credit: Decimal
    debit: Decimal
    entry_date: date
    sequence: int
    remarks: str
    is_settled: bool
    settlement_id: int | None
    balance_snapshot: Decimal | None
    derived_from_entry_id: int | None
    created_at: datetime

    model_config = {"from_attributes": True}


class PostTransactionResponse(BaseModel):
    """The primary entry and everything derived from it."""
    primary: LedgerEntryResponse
    derived: list[LedgerEntryResponse]


class LedgerLineResponse(BaseModel):
    """An entry with the running balance after it."""
    entry: LedgerEntryResponse
    balance: Decimal


class PartyLedgerResponse(BaseModel):
    party_name: str
    seed_balance: Decimal
    lines: list[LedgerLineResponse]
    settled_entries: list[LedgerEntryResponse]
    total_credit: Decimal
    total_debit: Decimal
    closing_balance: Decimal
    latest_settlement_id: int | None
