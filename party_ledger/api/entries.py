"""
Ledger entry API endpoints.

A posting and its derived entries are committed together; if
anything fails, nothing is written.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from party_ledger.api.deps import get_current_user_id, http_error
from party_ledger.exceptions import LedgerError
from party_ledger.models.base import get_db
from party_ledger.schemas.ledger import (
    EntryUpdate,
    LedgerEntryResponse,
    PostTransactionResponse,
    TransactionCreate,
)
from party_ledger.services.ledger_service import LedgerService

router = APIRouter(prefix="/entries", tags=["Entries"])


@router.post("", response_model=PostTransactionResponse, status_code=201)
def post_transaction(
    request: TransactionCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    service = LedgerService(db)
    try:
        primary, derived = service.post_transaction(user_id, request)
        db.commit()
        return PostTransactionResponse(
            primary=LedgerEntryResponse.model_validate(primary),
            derived=[LedgerEntryResponse.model_validate(e) for e in derived],
        )
    except LedgerError as e:
        db.rollback()
        raise http_error(e)


@router.patch("/{entry_id}", response_model=PostTransactionResponse)
def update_entry(
    entry_id: int,
    request: EntryUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Edit a live posting. Its derived entries are rebuilt when the
    amount, direction or date changes.
    """
    service = LedgerService(db)
    try:
        primary, derived = service.update_entry(user_id, entry_id, request)
        db.commit()
        return PostTransactionResponse(
            primary=LedgerEntryResponse.model_validate(primary),
            derived=[LedgerEntryResponse.model_validate(e) for e in derived],
        )
    except LedgerError as e:
        db.rollback()
        raise http_error(e)


@router.delete("/{entry_id}")
def delete_entry(
    entry_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Delete a live posting together with its derived entries."""
    service = LedgerService(db)
    try:
        deleted_ids = service.delete_entry(user_id, entry_id)
        db.commit()
        return {"deleted_entry_ids": deleted_ids}
    except LedgerError as e:
        db.rollback()
        raise http_error(e)


@router.post("/{entry_id}/regenerate", response_model=list[LedgerEntryResponse])
def regenerate_derived(
    entry_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Create any derived entries the posting is missing. Safe to repeat."""
    service = LedgerService(db)
    try:
        derived = service.regenerate_derived(user_id, entry_id)
        db.commit()
        return [LedgerEntryResponse.model_validate(e) for e in derived]
    except LedgerError as e:
        db.rollback()
        raise http_error(e)
