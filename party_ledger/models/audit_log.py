"""
Audit log model.

Administrative actions that change settled history (undoing a
settlement, repairing orphaned links, removing a dangling
settlement) are recorded here as distinct audit events.
"""

from datetime import datetime

from sqlalchemy import String, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from party_ledger.models.base import Base


class AuditLog(Base):
    """Append-only record of an administrative action."""

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    party_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # JSON document describing what was changed
    details: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.event_type} {self.party_name}>"
