import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from connector_sync.integrations.core.exceptions import ConcurrencyError

logger = logging.getLogger(__name__)


class SyncLockRegistry:
    """Process-wide single-flight guard keyed by connection id.

    Acquisition never waits: a held lock raises ``ConcurrencyError``.
    Not shared between processes.
    """

    def __init__(self):
        self._locks: dict[int, asyncio.Lock] = {}

    def _lock_for(self, connection_id: int) -> asyncio.Lock:
        lock = self._locks.get(connection_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[connection_id] = lock
        return lock

    def is_in_progress(self, connection_id: int) -> bool:
        lock = self._locks.get(connection_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, connection_id: int) -> AsyncIterator[None]:
        lock = self._lock_for(connection_id)
        if lock.locked():
            logger.warning(f"Sync already in progress for connection {connection_id}")
            raise ConcurrencyError(connection_id)

        # an unlocked asyncio.Lock is taken without yielding to the loop
        await lock.acquire()
        try:
            yield
        finally:
            lock.release()
            if not lock.locked():
                self._locks.pop(connection_id, None)


sync_lock_registry = SyncLockRegistry()
