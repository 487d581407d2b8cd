"""
Health check endpoint.

Used by load balancers and monitoring to verify the service is
running and can reach its database.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from party_ledger.logging_config import get_logger
from party_ledger.models.base import get_db

router = APIRouter(tags=["Health"])

logger = get_logger("api.health")


@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Report application and database status; degraded if the database is down."""
    try:
        db.execute(text("SELECT 1"))
        db_status = "healthy"
    except SQLAlchemyError:
        logger.exception("health_database_unreachable")
        db_status = "unhealthy"

    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "service": "party-ledger",
        "database": db_status,
    }
