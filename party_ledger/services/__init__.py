"""Business logic services."""

from party_ledger.services.ledger_service import LedgerService
from party_ledger.services.party_service import PartyService
from party_ledger.services.settlement_service import SettlementService
from party_ledger.services.trial_balance import TrialBalanceService
from party_ledger.services.diagnostics import DiagnosticsService, RepairService

__all__ = [
    "LedgerService",
    "PartyService",
    "SettlementService",
    "TrialBalanceService",
    "DiagnosticsService",
    "RepairService",
]
