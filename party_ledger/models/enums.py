"""
Shared enumerations for database models.

Mapping Python enums to database enums means an unknown
entry type or party kind is rejected by the database, not
just by request validation.
"""

import enum


class EntryType(str, enum.Enum):
    """Direction of a ledger entry."""
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"

    def opposite(self) -> "EntryType":
        return EntryType.DEBIT if self is EntryType.CREDIT else EntryType.CREDIT


class EntryKind(str, enum.Enum):
    """
    What produced a ledger entry.

    PRIMARY entries are posted by the user. COMMISSION, COMPANY and
    MIRROR entries are derived from a primary entry and point back
    at it. SETTLEMENT entries record a Monday Final checkpoint.
    """
    PRIMARY = "PRIMARY"
    COMMISSION = "COMMISSION"
    COMPANY = "COMPANY"
    MIRROR = "MIRROR"
    SETTLEMENT = "SETTLEMENT"


class PartyKind(str, enum.Enum):
    """Set once when the party is created."""
    REGULAR = "REGULAR"
    COMMISSION = "COMMISSION"
    COMPANY = "COMPANY"


class CommissionMode(str, enum.Enum):
    TAKE = "TAKE"
    GIVE = "GIVE"
    NONE = "NONE"


class SettlementState(str, enum.Enum):
    """Settlement lifecycle of a single (user, party) pair."""
    UNSETTLED = "UNSETTLED"
    SETTLING = "SETTLING"
    SETTLED_CURRENT = "SETTLED_CURRENT"


class FindingCategory(str, enum.Enum):
    ORPHAN = "ORPHAN"
    DANGLING_SETTLEMENT = "DANGLING_SETTLEMENT"
    STALE_UNSETTLED = "STALE_UNSETTLED"
