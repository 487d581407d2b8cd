"""
Shared request dependencies for the API routers.
"""

from fastapi import Header, HTTPException

from party_ledger.exceptions import LedgerError


def get_current_user_id(
    x_user_id: str = Header(alias="X-User-Id", min_length=1, max_length=64),
) -> str:
    """
    The calling user, taken from the X-User-Id header.

    Authentication happens in front of this service; whoever
    forwards the request is trusted to set the header.
    """
    return x_user_id


def http_error(error: LedgerError) -> HTTPException:
    """Map a ledger error onto its HTTP status and structured detail."""
    return HTTPException(status_code=error.status_code, detail=error.to_dict())
