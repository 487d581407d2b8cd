"""
Pydantic schemas for Monday Final settlements.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from party_ledger.models.enums import SettlementState


class SettlementRequest(BaseModel):
    """Defaults to today when no date is given."""
    settlement_date: date | None = None


class SettlementResponse(BaseModel):
    id: int
    party_name: str
    settlement_date: date
    seed_balance: Decimal
    closing_balance: Decimal
    entry_count: int
    sequence: int
    created_at: datetime

    model_config = {"from_attributes": True}


class PartySettlementsResponse(BaseModel):
    party_name: str
    state: SettlementState
    settlements: list[SettlementResponse]


class UndoSettlementResponse(BaseModel):
    settlement_id: int
    party_name: str
    unsettled_entries: int


class BulkSettlementRequest(BaseModel):
    party_names: list[str] = Field(min_length=1)
    settlement_date: date | None = None


class BulkSettlementResponse(BaseModel):
    settlements: list[SettlementResponse]
    skipped: list[str]
