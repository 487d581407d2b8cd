"""
Party model.

A party is a counter-party the user trades with. Parties are
unique by name within a user. The reserved Commission and
company parties are ordinary rows distinguished by ``kind``.

A party that is referenced by ledger entries is never deleted,
only deactivated. The before_delete guard below refuses the
DELETE at flush time, so the rule holds for every code path
that goes through the ORM.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, Boolean, DateTime, Numeric, UniqueConstraint,
    Enum as SAEnum, event, select, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from party_ledger.exceptions import PartyReferencedError
from party_ledger.models.base import Base
from party_ledger.models.enums import PartyKind, CommissionMode


class Party(Base):
    __tablename__ = "parties"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_parties_user_name"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[PartyKind] = mapped_column(
        SAEnum(PartyKind, name="party_kind_enum", create_constraint=True),
        nullable=False,
        default=PartyKind.REGULAR,
    )
    commission_mode: Mapped[CommissionMode] = mapped_column(
        SAEnum(
            CommissionMode,
            name="commission_mode_enum",
            create_constraint=True,
        ),
        nullable=False,
        default=CommissionMode.TAKE,
    )
    # Overrides the user's default commission rate when set
    commission_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(7, 4), nullable=True, default=None
    )
    monday_final: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    entries: Mapped[list["LedgerEntry"]] = relationship(
        back_populates="party", passive_deletes="all"
    )

    def __repr__(self) -> str:
        return f"<Party {self.name} ({self.kind.value})>"


@event.listens_for(Party, "before_delete")
def _refuse_referenced_party_delete(mapper, connection, target: Party) -> None:
    from party_ledger.models.ledger_entry import LedgerEntry

    entry_count = connection.execute(
        select(func.count(LedgerEntry.id)).where(
            LedgerEntry.party_id == target.id
        )
    ).scalar_one()
    if entry_count:
        raise PartyReferencedError(target.name, entry_count)
