"""
Pydantic schemas for parties and user settings.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from party_ledger.models.enums import PartyKind, CommissionMode


# --- Party Schemas ---

class PartyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    commission_mode: CommissionMode = CommissionMode.TAKE
    commission_rate: Decimal | None = Field(default=None, ge=0, le=1)


class PartyUpdate(BaseModel):
    """Fields left as None are not changed."""
    commission_mode: CommissionMode | None = None
    commission_rate: Decimal | None = Field(default=None, ge=0, le=1)
    monday_final: bool | None = None
    is_active: bool | None = None


class PartyResponse(BaseModel):
    id: int
    name: str
    kind: PartyKind
    commission_mode: CommissionMode
    commission_rate: Decimal | None
    monday_final: bool
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class PartyRemovalResponse(BaseModel):
    name: str
    deleted: bool
    deactivated: bool


class BulkPartyRemovalRequest(BaseModel):
    party_names: list[str] = Field(min_length=1)


class BulkPartyRemovalResponse(BaseModel):
    removed: list[PartyRemovalResponse]
    skipped: list[str]


# --- User Settings Schemas ---

class UserSettingsUpdate(BaseModel):
    company_name: str | None = Field(default=None, min_length=1, max_length=255)
    default_commission_rate: Decimal | None = Field(default=None, ge=0, le=1)


class UserSettingsResponse(BaseModel):
    user_id: str
    company_name: str
    default_commission_rate: Decimal

    model_config = {"from_attributes": True}
