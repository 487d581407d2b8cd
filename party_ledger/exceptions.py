"""
Typed exceptions for the party ledger.

Every error carries a machine-readable ``code``, the HTTP status the API
layer should answer with, and the structured fields (party, amount,
reason) a caller needs to correct or retry the operation.

    LedgerError (base, also a ValueError)
    |
    +-- LedgerValidationError       VALIDATION_ERROR          400
    |   +-- PartyNotFoundError      PARTY_NOT_FOUND           404
    +-- SettlementError             SETTLEMENT_ERROR          400
    +-- EntryNotFoundError          ENTRY_NOT_FOUND           404
    +-- SettlementNotFoundError     SETTLEMENT_NOT_FOUND      404
    +-- PartyReferencedError        PARTY_REFERENCED          409
    +-- ConcurrencyConflictError    CONCURRENCY_CONFLICT      409

Orphaned settlement links and trial balance differences are NOT
exceptions. They describe existing data, not a failed operation, and are
returned as report fields by the diagnostics and trial balance services.
"""

from decimal import Decimal
from typing import Any


class LedgerError(ValueError):
    """Base class for all ledger errors."""

    code: str = "LEDGER_ERROR"
    status_code: int = 400

    def __init__(self, message: str, **fields: Any):
        self.message = message
        self.fields = {k: v for k, v in fields.items() if v is not None}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        details = {
            k: str(v) if isinstance(v, Decimal) else v
            for k, v in self.fields.items()
        }
        return {"code": self.code, "message": self.message, "details": details}


class LedgerValidationError(LedgerError):
    """Malformed entry or request, rejected before any write."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        reason: str,
        party_name: str | None = None,
        amount: Decimal | None = None,
    ):
        super().__init__(reason, party_name=party_name, amount=amount)
        self.reason = reason
        self.party_name = party_name
        self.amount = amount


class SettlementError(LedgerError):
    """A settlement operation cannot be applied to the party's current state."""

    code = "SETTLEMENT_ERROR"

    def __init__(self, reason: str, party_name: str | None = None):
        super().__init__(reason, party_name=party_name)
        self.party_name = party_name


class PartyNotFoundError(LedgerValidationError):
    """An entry or request names a party the user does not have."""

    code = "PARTY_NOT_FOUND"
    status_code = 404

    def __init__(self, party_name: str):
        super().__init__(f"Party '{party_name}' not found", party_name=party_name)


class EntryNotFoundError(LedgerError):
    code = "ENTRY_NOT_FOUND"
    status_code = 404

    def __init__(self, entry_id: int):
        super().__init__(f"Entry {entry_id} not found", entry_id=entry_id)
        self.entry_id = entry_id


class SettlementNotFoundError(LedgerError):
    code = "SETTLEMENT_NOT_FOUND"
    status_code = 404

    def __init__(self, settlement_id: int | None = None, party_name: str | None = None):
        if settlement_id is not None:
            message = f"Settlement {settlement_id} not found"
        else:
            message = f"Party '{party_name}' has no settlement"
        super().__init__(
            message, settlement_id=settlement_id, party_name=party_name
        )
        self.settlement_id = settlement_id
        self.party_name = party_name


class PartyReferencedError(LedgerError):
    """A party with ledger entries cannot be physically deleted."""

    code = "PARTY_REFERENCED"
    status_code = 409

    def __init__(self, party_name: str, entry_count: int):
        super().__init__(
            f"Party '{party_name}' has {entry_count} ledger entries "
            f"and cannot be deleted",
            party_name=party_name,
            entry_count=entry_count,
        )
        self.party_name = party_name
        self.entry_count = entry_count


class ConcurrencyConflictError(LedgerError):
    """Another settlement for the same party is in flight."""

    code = "CONCURRENCY_CONFLICT"
    status_code = 409

    def __init__(self, party_name: str):
        super().__init__(
            f"Another operation is settling party '{party_name}'",
            party_name=party_name,
        )
        self.party_name = party_name
