"""
Cross-party report endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from party_ledger.api.deps import get_current_user_id
from party_ledger.models.base import get_db
from party_ledger.schemas.report import TrialBalanceReport
from party_ledger.services.trial_balance import TrialBalanceService

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/trial-balance", response_model=TrialBalanceReport)
def get_trial_balance(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Closing balance of every party, bucketed into credit and debit.

    A non-zero ``difference`` means the ledger is out of balance; it
    is reported, not treated as a request error.
    """
    return TrialBalanceService(db).get_trial_balance(user_id)
