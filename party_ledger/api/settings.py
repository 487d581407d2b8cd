"""
Per-user ledger settings: company name and default commission rate.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from party_ledger.api.deps import get_current_user_id, http_error
from party_ledger.exceptions import LedgerError
from party_ledger.models.base import get_db
from party_ledger.schemas.party import UserSettingsResponse, UserSettingsUpdate
from party_ledger.services.party_service import PartyService

router = APIRouter(prefix="/settings", tags=["Settings"])


@router.get("", response_model=UserSettingsResponse)
def get_user_settings(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return PartyService(db).get_user_settings(user_id)


@router.put("", response_model=UserSettingsResponse)
def update_user_settings(
    request: UserSettingsUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Changing the company name renames the company party in place."""
    service = PartyService(db)
    try:
        settings = service.update_user_settings(user_id, request)
        db.commit()
        return settings
    except LedgerError as e:
        db.rollback()
        raise http_error(e)
