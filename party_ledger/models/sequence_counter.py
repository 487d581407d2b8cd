"""
Named sequence counters.

One row per sequence. The row is locked while it is incremented,
which makes the allocated values strictly increasing across
concurrent processes.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from party_ledger.models.base import Base


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.current_value}>"
