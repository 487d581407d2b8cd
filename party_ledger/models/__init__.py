"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from party_ledger.models.base import Base
from party_ledger.models.enums import (
    EntryType,
    EntryKind,
    PartyKind,
    CommissionMode,
    SettlementState,
    FindingCategory,
)
from party_ledger.models.audit_log import AuditLog
from party_ledger.models.user_settings import UserSettings
from party_ledger.models.party import Party
from party_ledger.models.ledger_entry import LedgerEntry
from party_ledger.models.settlement import Settlement
from party_ledger.models.sequence_counter import SequenceCounter

__all__ = [
    "Base",
    "EntryType",
    "EntryKind",
    "PartyKind",
    "CommissionMode",
    "SettlementState",
    "FindingCategory",
    "AuditLog",
    "UserSettings",
    "Party",
    "LedgerEntry",
    "Settlement",
    "SequenceCounter",
]
