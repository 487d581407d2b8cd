"""
Audit trail for administrative changes to settled history.
"""

import json
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from party_ledger.logging_config import get_logger
from party_ledger.models.audit_log import AuditLog

logger = get_logger("services.audit")


class AuditService:

    UNDO_SETTLEMENT = "UNDO_SETTLEMENT"
    REPAIR_ORPHAN_LINKS = "REPAIR_ORPHAN_LINKS"
    REPAIR_REMOVE_SETTLEMENT = "REPAIR_REMOVE_SETTLEMENT"
    COMPANY_RENAMED = "COMPANY_RENAMED"

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        event_type: str,
        user_id: str,
        party_name: str | None = None,
        **details: Any,
    ) -> AuditLog:
        event = AuditLog(
            event_type=event_type,
            user_id=user_id,
            party_name=party_name,
            details=json.dumps(details, default=str, sort_keys=True),
        )
        self.db.add(event)
        self.db.flush()
        logger.info(
            "audit_recorded",
            extra={"event_type": event_type, "audit_id": event.id},
        )
        return event

    def list_events(self, user_id: str, event_type: str | None = None) -> list[AuditLog]:
        query = select(AuditLog).where(AuditLog.user_id == user_id)
        if event_type is not None:
            query = query.where(AuditLog.event_type == event_type)
        return list(self.db.execute(query.order_by(AuditLog.id)).scalars().all())
