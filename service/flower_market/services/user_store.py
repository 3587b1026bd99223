"""
User Record Store.

In-memory map of user id -> UserRecord, guarded by a single lock.
Callers that read-modify-write hold `store.lock` for the whole sequence
and call `mark_dirty()` before releasing it. Persistence is deferred:
`flush()` writes a snapshot when something changed, and is driven by
`run_periodic_flush()` plus a final flush at shutdown.
"""

import asyncio
import threading
from typing import Optional

from flower_market.errors import PersistenceError
from flower_market.logging_config import get_logger
from flower_market.models import UserRecord
from flower_market.services.persistence import Persistence

logger = get_logger("store")


class UserStore:
    """Owns every UserRecord in the process."""

    def __init__(self, persistence: Optional[Persistence] = None):
        self.persistence = persistence
        self.lock = threading.RLock()
        self._users: dict[str, UserRecord] = {}
        self._version = 0
        self._saved_version = 0

    # =========================================================================
    # LOADING
    # =========================================================================

    def load(self) -> int:
        """Replace in-memory state with what persistence holds."""
        if self.persistence is None:
            return 0

        records = self.persistence.load_all()
        with self.lock:
            self._users = {record.id: record for record in records}
            self._version = 0
            self._saved_version = 0
        return len(records)

    # =========================================================================
    # ACCESS (hold self.lock around read-modify-write sequences)
    # =========================================================================

    def get(self, user_id: str) -> Optional[UserRecord]:
        with self.lock:
            return self._users.get(user_id)

    def exists(self, user_id: str) -> bool:
        with self.lock:
            return user_id in self._users

    def get_or_create(
        self,
        user_id: str,
        channel_id: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> UserRecord:
        with self.lock:
            record = self._users.get(user_id)
            if record is None:
                record = UserRecord(
                    id=user_id,
                    contact_channel_id=channel_id or user_id,
                    display_name=display_name,
                )
                self._users[user_id] = record
                self.mark_dirty()
                logger.info(f"Created user record user_id={user_id}")
            return record

    def snapshot(self, user_id: str) -> Optional[UserRecord]:
        """Deep copy, safe to use after the lock is released."""
        with self.lock:
            record = self._users.get(user_id)
            return record.model_copy(deep=True) if record else None

    def all_records(self) -> list[UserRecord]:
        with self.lock:
            return [record.model_copy(deep=True) for record in self._users.values()]

    def count(self) -> int:
        with self.lock:
            return len(self._users)

    def mark_dirty(self) -> None:
        with self.lock:
            self._version += 1

    @property
    def dirty(self) -> bool:
        with self.lock:
            return self._version != self._saved_version

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def flush(self, force: bool = False) -> bool:
        """
        Write all records if anything changed since the last save.

        Returns True when a write happened. A failed write is logged and
        leaves the store dirty so the next cycle retries it.
        """
        if self.persistence is None:
            return False

        with self.lock:
            if not force and self._version == self._saved_version:
                return False
            version = self._version
            records = [record.model_copy(deep=True) for record in self._users.values()]

        try:
            self.persistence.save_all(records)
        except PersistenceError as e:
            logger.error(f"Persisting {len(records)} users failed, will retry: {e}", exc_info=True)
            return False

        with self.lock:
            self._saved_version = max(self._saved_version, version)
        return True

    async def run_periodic_flush(self, interval_seconds: float) -> None:
        """Background task: flush every interval until cancelled."""
        logger.info(f"Periodic flush every {interval_seconds}s")
        while True:
            await asyncio.sleep(interval_seconds)
            await asyncio.to_thread(self.flush)
