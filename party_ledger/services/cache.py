"""
Advisory read cache for party ledgers and trial balances.

Entries live in process memory for ``CACHE_TTL_SECONDS``. A hit only
saves recomputing a read-only view; settlement and every other write
path read the database directly, and each write drops the keys it
made stale.

Writes drop their keys twice: at once, and again when the writing
session commits or rolls back. A view computed by another request
before the commit therefore never outlives it. Every invalidation
also bumps the user's version, and ``set`` refuses a view that was
computed under an older version.
"""

import threading
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import event
from sqlalchemy.orm import Session

from party_ledger.config import get_settings
from party_ledger.logging_config import get_logger

logger = get_logger("services.cache")

# Key under which a user's trial balance is stored.
TRIAL_BALANCE = "__trial_balance__"

# Session.info key holding invalidations to repeat when the transaction ends
PENDING_INVALIDATIONS = "party_ledger.pending_invalidations"


class BalanceCache:

    def __init__(self, ttl_seconds: int | None = None):
        self._ttl_seconds = ttl_seconds
        self._store: dict[tuple[str, str], dict] = {}
        self._versions: dict[str, int] = {}
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> int:
        if self._ttl_seconds is None:
            return get_settings().CACHE_TTL_SECONDS
        return self._ttl_seconds

    def version(self, user_id: str) -> int:
        """Read before computing a view; pass it back to ``set``."""
        with self._lock:
            return self._versions.get(user_id, 0)

    def get(self, user_id: str, key: str) -> Any | None:
        with self._lock:
            item = self._store.get((user_id, key))
            if item is None:
                return None
            if datetime.utcnow() > item["expires_at"]:
                del self._store[(user_id, key)]
                return None
            return item["data"]

    def set(
        self, user_id: str, key: str, data: Any, version: int | None = None
    ) -> None:
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            if version is not None and version != self._versions.get(user_id, 0):
                logger.debug("cache_set_skipped", extra={"key": key})
                return
            self._store[(user_id, key)] = {
                "data": data,
                "expires_at": datetime.utcnow()
                + timedelta(seconds=self.ttl_seconds),
            }

    def invalidate(self, user_id: str, *party_names: str) -> None:
        """Drop the given parties' ledgers and the user's trial balance."""
        with self._lock:
            self._versions[user_id] = self._versions.get(user_id, 0) + 1
            for key in (*party_names, TRIAL_BALANCE):
                self._store.pop((user_id, key), None)
        logger.debug(
            "cache_invalidated",
            extra={"parties": list(party_names)},
        )

    def invalidate_on_commit(
        self, session: Session, user_id: str, *party_names: str
    ) -> None:
        """Invalidate now and again once ``session``'s transaction ends."""
        self.invalidate(user_id, *party_names)
        session.info.setdefault(PENDING_INVALIDATIONS, []).append(
            (self, user_id, party_names)
        )

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._versions.clear()

    def __len__(self) -> int:
        return len(self._store)


@event.listens_for(Session, "after_commit")
@event.listens_for(Session, "after_rollback")
def _drain_pending_invalidations(session: Session) -> None:
    for cache, user_id, party_names in session.info.pop(PENDING_INVALIDATIONS, []):
        cache.invalidate(user_id, *party_names)


balance_cache = BalanceCache()
