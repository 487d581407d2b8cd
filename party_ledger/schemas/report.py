"""
Pydantic schemas for cross-party reports.

Both reports are returned, never raised: a trial balance that is
off, or a diagnostics sweep with findings, describes the data as
it is, and operators need to see by how much and where.
"""

import json
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from party_ledger.models.enums import PartyKind, FindingCategory


# --- Trial Balance ---

class TrialBalanceRow(BaseModel):
    party_name: str
    kind: PartyKind
    balance: Decimal
    entry_count: int


class TrialBalanceReport(BaseModel):
    parties: list[TrialBalanceRow]
    credit_total: Decimal
    debit_total: Decimal
    difference: Decimal
    is_balanced: bool
    commission_balance: Decimal


# --- Diagnostics ---

class Finding(BaseModel):
    category: FindingCategory
    party_name: str
    entry_id: int | None = None
    settlement_id: int | None = None
    detail: str


class DiagnosticsReport(BaseModel):
    orphans: list[Finding] = Field(default_factory=list)
    dangling_settlements: list[Finding] = Field(default_factory=list)
    stale_unsettled: list[Finding] = Field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not (
            self.orphans or self.dangling_settlements or self.stale_unsettled
        )


class RepairResponse(BaseModel):
    action: str
    affected_entry_ids: list[int]
    removed_settlement_id: int | None = None


# --- Audit ---

class AuditEventResponse(BaseModel):
    id: int
    event_type: str
    party_name: str | None
    details: dict
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("details", mode="before")
    @classmethod
    def parse_details(cls, value):
        if isinstance(value, str):
            return json.loads(value)
        return value
