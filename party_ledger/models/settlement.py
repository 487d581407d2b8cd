"""
Settlement ("Monday Final") model.

A settlement freezes a party's live entries and records the
party's balance at that moment. It is mirrored by exactly one
SETTLEMENT ledger entry carrying the same balance, and every
entry it froze points at it through ``settlement_id``.

Settlements chain: ``seed_balance`` is the closing balance of
the settlement before it, so ``closing_balance`` is always the
party's full running balance, not just the last period's net.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String, Date, DateTime, Numeric, Integer, BigInteger, ForeignKey,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from party_ledger.models.base import Base


class Settlement(Base):
    __tablename__ = "settlements"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    party_id: Mapped[int] = mapped_column(
        ForeignKey("parties.id"), nullable=False, index=True
    )
    party_name: Mapped[str] = mapped_column(String(255), nullable=False)
    settlement_date: Mapped[date] = mapped_column(Date, nullable=False)
    seed_balance: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0")
    )
    closing_balance: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False
    )
    entry_count: Mapped[int] = mapped_column(Integer, nullable=False)
    # Same value as the sequence of the settlement's own ledger entry
    sequence: Mapped[int] = mapped_column(
        BigInteger, nullable=False, unique=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    party: Mapped["Party"] = relationship()

    def __repr__(self) -> str:
        return (
            f"<Settlement {self.id} {self.party_name} "
            f"{self.settlement_date} balance={self.closing_balance}>"
        )
