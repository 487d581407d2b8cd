"""
Sequence allocation for ledger ordering.

Entries are ordered by business date first and by ``sequence``
second, so two entries on the same day keep the order they were
written in. Sequences come from a counter row read with
``SELECT ... FOR UPDATE``; the increment only becomes visible when
the caller commits, and a rollback gives the values back.

Never compute the next value as MAX(sequence) + 1: two concurrent
writers would read the same maximum.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from party_ledger.exceptions import ConcurrencyConflictError
from party_ledger.logging_config import get_logger
from party_ledger.models.sequence_counter import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """Hands out strictly increasing integers per named sequence."""

    # Shared by ledger entries and settlements so that a settlement
    # sorts against the entries it closed.
    LEDGER = "ledger"

    def __init__(self, db: Session):
        self.db = db

    def next_value(self, sequence_name: str = LEDGER) -> int:
        return self.allocate(1, sequence_name)[0]

    def allocate(self, count: int, sequence_name: str = LEDGER) -> list[int]:
        """
        Reserve ``count`` consecutive values with a single lock.

        The counter row stays locked until the caller's transaction
        ends. On first use the row is created; if another writer
        creates it at the same moment the unique constraint fails
        and the operation is reported as a conflict to retry.
        """
        if count < 1:
            return []

        counter = self.db.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self.db.add(counter)
            try:
                self.db.flush()
            except IntegrityError as e:
                logger.info(
                    "sequence_counter_race",
                    extra={"sequence_name": sequence_name},
                )
                raise ConcurrencyConflictError(sequence_name) from e

        start = counter.current_value + 1
        counter.current_value += count
        self.db.flush()

        logger.debug(
            "sequence_allocated",
            extra={
                "sequence_name": sequence_name,
                "first": start,
                "last": counter.current_value,
            },
        )
        return list(range(start, counter.current_value + 1))

    def current_value(self, sequence_name: str = LEDGER) -> int:
        """Last value handed out, 0 when the sequence was never used."""
        value = self.db.execute(
            select(SequenceCounter.current_value).where(
                SequenceCounter.name == sequence_name
            )
        ).scalar_one_or_none()
        return value or 0
