"""
Diagnostics and repair endpoints.

The sweep only reads. Repairs are separate administrative calls
and each one lands in the audit log.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from party_ledger.api.deps import get_current_user_id, http_error
from party_ledger.exceptions import LedgerError
from party_ledger.models.base import get_db
from party_ledger.schemas.report import (
    AuditEventResponse,
    DiagnosticsReport,
    RepairResponse,
)
from party_ledger.services.audit_service import AuditService
from party_ledger.services.diagnostics import DiagnosticsService, RepairService

router = APIRouter(prefix="/diagnostics", tags=["Diagnostics"])


@router.get("", response_model=DiagnosticsReport)
def run_diagnostics(
    party_name: str | None = None,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return DiagnosticsService(db).run_diagnostics(user_id, party_name)
    except LedgerError as e:
        raise http_error(e)


@router.post("/repair/orphans", response_model=RepairResponse)
def repair_orphan_links(
    party_name: str | None = None,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Reopen every entry whose settlement link is broken."""
    service = RepairService(db)
    try:
        entry_ids = service.repair_orphan_links(user_id, party_name)
        db.commit()
        return RepairResponse(action="repair_orphan_links", affected_entry_ids=entry_ids)
    except LedgerError as e:
        db.rollback()
        raise http_error(e)


@router.delete("/settlements/{settlement_id}", response_model=RepairResponse)
def remove_dangling_settlement(
    settlement_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Delete a settlement that nothing references."""
    service = RepairService(db)
    try:
        removed = service.remove_dangling_settlement(user_id, settlement_id)
        db.commit()
        return RepairResponse(
            action="remove_dangling_settlement",
            affected_entry_ids=[],
            removed_settlement_id=removed,
        )
    except LedgerError as e:
        db.rollback()
        raise http_error(e)


@router.get("/audit", response_model=list[AuditEventResponse])
def list_audit_events(
    event_type: str | None = None,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Undo, repair and rename events, oldest first."""
    return AuditService(db).list_events(user_id, event_type)
