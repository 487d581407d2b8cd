"""
Monday Final settlement endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from party_ledger.api.deps import get_current_user_id, http_error
from party_ledger.exceptions import ConcurrencyConflictError, LedgerError
from party_ledger.logging_config import get_logger
from party_ledger.models.base import get_db
from party_ledger.schemas.settlement import (
    BulkSettlementRequest,
    BulkSettlementResponse,
    PartySettlementsResponse,
    SettlementRequest,
    SettlementResponse,
    UndoSettlementResponse,
)
from party_ledger.services.settlement_service import SettlementService

router = APIRouter(prefix="/parties/{party_name}/settlements", tags=["Settlements"])
bulk_router = APIRouter(prefix="/settlements", tags=["Settlements"])

logger = get_logger("api.settlements")

# A settlement that finds a party lock busy is retried once
SETTLE_ATTEMPTS = 2


def _with_retry(db: Session, party_label: str, operation):
    """Run and commit ``operation``, retrying once if a party lock was busy."""
    for attempt in range(1, SETTLE_ATTEMPTS + 1):
        try:
            result = operation()
            db.commit()
            return result
        except ConcurrencyConflictError as e:
            db.rollback()
            if attempt == SETTLE_ATTEMPTS:
                raise http_error(e)
            logger.info(
                "settlement_retry",
                extra={"party_name": party_label, "attempt": attempt},
            )
        except LedgerError as e:
            db.rollback()
            raise http_error(e)


@router.post("", response_model=SettlementResponse)
def settle_party(
    party_name: str,
    request: SettlementRequest | None = None,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Freeze the party's live entries into a new settlement.

    Settling again with no new entries returns the existing
    settlement unchanged.
    """
    settlement_date = request.settlement_date if request is not None else None
    service = SettlementService(db)
    return _with_retry(
        db,
        party_name,
        lambda: service.settle_party(user_id, party_name, settlement_date),
    )


@bulk_router.post("", response_model=BulkSettlementResponse)
def settle_parties(
    request: BulkSettlementRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Monday Final for several parties in one go.

    Parties that are unknown or have nothing to settle are listed as
    skipped; the others are settled together or not at all.
    """
    service = SettlementService(db)
    settlements, skipped = _with_retry(
        db,
        ",".join(request.party_names),
        lambda: service.settle_parties(
            user_id, request.party_names, request.settlement_date
        ),
    )
    return BulkSettlementResponse(
        settlements=[SettlementResponse.model_validate(s) for s in settlements],
        skipped=skipped,
    )


@router.get("", response_model=PartySettlementsResponse)
def list_settlements(
    party_name: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    service = SettlementService(db)
    try:
        return PartySettlementsResponse(
            party_name=party_name,
            state=service.party_state(user_id, party_name),
            settlements=[
                SettlementResponse.model_validate(s)
                for s in service.list_settlements(user_id, party_name)
            ],
        )
    except LedgerError as e:
        raise http_error(e)


@router.delete("/latest", response_model=UndoSettlementResponse)
def undo_latest_settlement(
    party_name: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Reopen the entries of the party's latest settlement and remove it.

    Administrative correction; recorded in the audit log.
    """
    service = SettlementService(db)
    try:
        settlement_id, reopened = service.undo_latest_settlement(user_id, party_name)
        db.commit()
        return UndoSettlementResponse(
            settlement_id=settlement_id,
            party_name=party_name,
            unsettled_entries=reopened,
        )
    except LedgerError as e:
        db.rollback()
        raise http_error(e)
