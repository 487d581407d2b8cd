"""
Party API endpoints.

Parties are addressed by name within the calling user. A party's
ledger view lives here too, since it is read per party.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from party_ledger.api.deps import get_current_user_id, http_error
from party_ledger.exceptions import LedgerError
from party_ledger.models.base import get_db
from party_ledger.schemas.ledger import PartyLedgerResponse
from party_ledger.schemas.party import (
    BulkPartyRemovalRequest,
    BulkPartyRemovalResponse,
    PartyCreate,
    PartyUpdate,
    PartyResponse,
    PartyRemovalResponse,
)
from party_ledger.services.ledger_service import LedgerService
from party_ledger.services.party_service import PartyService

router = APIRouter(prefix="/parties", tags=["Parties"])


@router.post("", response_model=PartyResponse, status_code=201)
def create_party(
    request: PartyCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    service = PartyService(db)
    try:
        party = service.create_party(user_id, request)
        db.commit()
        return party
    except LedgerError as e:
        db.rollback()
        raise http_error(e)


@router.get("", response_model=list[PartyResponse])
def list_parties(
    include_inactive: bool = True,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return PartyService(db).list_parties(user_id, include_inactive)


@router.get("/{party_name}", response_model=PartyResponse)
def get_party(
    party_name: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return PartyService(db).get_party(user_id, party_name)
    except LedgerError as e:
        raise http_error(e)


@router.patch("/{party_name}", response_model=PartyResponse)
def update_party(
    party_name: str,
    request: PartyUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    service = PartyService(db)
    try:
        party = service.update_party(user_id, party_name, request)
        db.commit()
        return party
    except LedgerError as e:
        db.rollback()
        raise http_error(e)


@router.delete("/{party_name}", response_model=PartyRemovalResponse)
def remove_party(
    party_name: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Delete a party, or deactivate it if it has ledger entries.

    Ledger history is never removed with a party.
    """
    service = PartyService(db)
    try:
        deleted, deactivated = service.remove_party(user_id, party_name)
        db.commit()
        return PartyRemovalResponse(
            name=party_name, deleted=deleted, deactivated=deactivated
        )
    except LedgerError as e:
        db.rollback()
        raise http_error(e)


@router.post("/bulk-delete", response_model=BulkPartyRemovalResponse)
def remove_parties(
    request: BulkPartyRemovalRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Remove several parties at once. Unknown names are reported as skipped."""
    service = PartyService(db)
    try:
        removed, skipped = service.remove_parties(user_id, request.party_names)
        db.commit()
        return BulkPartyRemovalResponse(
            removed=[
                PartyRemovalResponse(name=name, deleted=deleted, deactivated=deactivated)
                for name, deleted, deactivated in removed
            ],
            skipped=skipped,
        )
    except LedgerError as e:
        db.rollback()
        raise http_error(e)


@router.get("/{party_name}/ledger", response_model=PartyLedgerResponse)
def get_party_ledger(
    party_name: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Live entries with running balance, seeded by the latest
    settlement, plus the settled history.
    """
    try:
        return LedgerService(db).get_party_ledger(user_id, party_name)
    except LedgerError as e:
        raise http_error(e)
