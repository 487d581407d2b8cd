"""
Ledger entry model.

Each entry is a single credit or debit against one party.
Exactly one of ``credit``/``debit`` is non-zero. Entries are
ordered by business date, then by ``sequence``, an integer
allocated from a locked counter at insert time.

``is_settled``/``settlement_id`` must agree: a settled entry
links to a settlement of its own party, a live entry links to
nothing. ``settlement_id`` is deliberately a plain indexed
column rather than a foreign key so that a broken link stays
visible to the diagnostics sweep instead of being cascaded away.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String, Date, DateTime, Numeric, Boolean, BigInteger,
    ForeignKey, Integer, Text, Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from party_ledger.models.base import Base
from party_ledger.models.enums import EntryType, EntryKind


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    party_id: Mapped[int] = mapped_column(
        ForeignKey("parties.id"), nullable=False, index=True
    )
    # Denormalized copy of Party.name
    party_name: Mapped[str] = mapped_column(String(255), nullable=False)
    entry_type: Mapped[EntryType] = mapped_column(
        SAEnum(EntryType, name="entry_type_enum", create_constraint=True),
        nullable=False,
    )
    entry_kind: Mapped[EntryKind] = mapped_column(
        SAEnum(EntryKind, name="entry_kind_enum", create_constraint=True),
        nullable=False,
        default=EntryKind.PRIMARY,
    )
    credit: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0")
    )
    debit: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0")
    )
    entry_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    sequence: Mapped[int] = mapped_column(
        BigInteger, nullable=False, unique=True
    )
    remarks: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_settled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    settlement_id: Mapped[int | None] = mapped_column(
        Integer, nullable=True, index=True
    )
    balance_snapshot: Mapped[Decimal | None] = mapped_column(
        Numeric(15, 2), nullable=True
    )
    derived_from_entry_id: Mapped[int | None] = mapped_column(
        ForeignKey("ledger_entries.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    party: Mapped["Party"] = relationship(back_populates="entries")
    derived_entries: Mapped[list["LedgerEntry"]] = relationship(
        back_populates="derived_from",
        cascade="all, delete-orphan",
    )
    derived_from: Mapped["LedgerEntry | None"] = relationship(
        back_populates="derived_entries",
        remote_side=[id],
    )

    @property
    def amount(self) -> Decimal:
        return self.credit if self.entry_type == EntryType.CREDIT else self.debit

    @property
    def signed_amount(self) -> Decimal:
        """Credits add to a party's balance, debits subtract."""
        return self.credit - self.debit

    @property
    def is_settlement(self) -> bool:
        return self.entry_kind == EntryKind.SETTLEMENT

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry #{self.sequence} {self.party_name} "
            f"{self.entry_type.value} {self.amount}>"
        )
