import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from connector_sync.integrations.core.exceptions import ConcurrencyError
from connector_sync.models.connection import Connection
from connector_sync.utils.dates import utcnow

logger = logging.getLogger(__name__)

SyncJob = Callable[[int, int], Awaitable[object]]
ConnectionLoader = Callable[[], Awaitable[list[Connection]]]

_TICK_JOB_ID = "connector_sync_tick"


def is_due(
    connection: Connection,
    now: datetime,
    default_interval_minutes: int,
) -> bool:
    """Whether a scheduled sync should be dispatched for ``connection`` at ``now``."""
    if not connection.is_active or not connection.sync_settings.auto_sync:
        return False

    reference = connection.last_sync_reference
    if reference is None:
        return True

    interval = (
        connection.sync_settings.sync_interval_minutes or default_interval_minutes
    )
    return now - reference >= timedelta(minutes=interval)


class SyncDispatcher:
    """Bounded queue drained by a fixed pool of sync workers.

    A connection id already queued or running is not enqueued twice.
    When the queue is full the submission is rejected and counted.
    """

    def __init__(
        self,
        sync_job: SyncJob,
        max_concurrent: int = 4,
        queue_size: int = 100,
    ):
        self._sync_job = sync_job
        self._max_concurrent = max_concurrent
        self._queue: asyncio.Queue[tuple[int, int]] = asyncio.Queue(maxsize=queue_size)
        self._pending: set[int] = set()
        self._workers: list[asyncio.Task] = []

        self.completed = 0
        self.failed = 0
        self.rejected = 0

    @property
    def is_running(self) -> bool:
        return bool(self._workers)

    @property
    def queued(self) -> int:
        return self._queue.qsize()

    def is_pending(self, connection_id: int) -> bool:
        return connection_id in self._pending

    def submit(self, tenant_id: int, connection_id: int) -> bool:
        if connection_id in self._pending:
            logger.debug(f"Connection {connection_id} already queued, skipping")
            return False

        try:
            self._queue.put_nowait((tenant_id, connection_id))
        except asyncio.QueueFull:
            self.rejected += 1
            logger.warning(
                f"Sync queue full ({self._queue.maxsize}); "
                f"rejected connection {connection_id}"
            )
            return False

        self._pending.add(connection_id)
        return True

    async def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"sync-worker-{index}")
            for index in range(self._max_concurrent)
        ]
        logger.info(f"Sync dispatcher started with {self._max_concurrent} workers")

    async def stop(self, grace_seconds: float = 0.0) -> None:
        if grace_seconds > 0 and self._workers:
            try:
                await asyncio.wait_for(self.join(), timeout=grace_seconds)
            except asyncio.TimeoutError:
                logger.warning(
                    f"Sync dispatcher grace period of {grace_seconds}s elapsed, "
                    f"cancelling with {self._queue.qsize()} syncs still queued"
                )
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info(
            f"Sync dispatcher stopped: completed={self.completed} "
            f"failed={self.failed} rejected={self.rejected}"
        )

    async def join(self) -> None:
        await self._queue.join()

    async def _worker(self, index: int) -> None:
        while True:
            tenant_id, connection_id = await self._queue.get()
            try:
                await self._sync_job(tenant_id, connection_id)
                self.completed += 1
            except ConcurrencyError:
                logger.info(
                    f"Worker {index}: connection {connection_id} already syncing"
                )
            except Exception as e:
                self.failed += 1
                logger.error(
                    f"Worker {index}: scheduled sync failed for connection "
                    f"{connection_id}: {e}"
                )
            finally:
                self._pending.discard(connection_id)
                self._queue.task_done()


class SyncScheduler:
    def __init__(
        self,
        connection_loader: ConnectionLoader,
        dispatcher: SyncDispatcher,
        default_interval_minutes: int = 15,
        tick_seconds: int = 600,
        is_in_progress: Callable[[int], bool] | None = None,
    ):
        self._connection_loader = connection_loader
        self._dispatcher = dispatcher
        self._default_interval_minutes = default_interval_minutes
        self._tick_seconds = tick_seconds
        self._is_in_progress = is_in_progress or (lambda _connection_id: False)
        self._scheduler = AsyncIOScheduler()

    @property
    def running(self) -> bool:
        return self._scheduler.running

    async def tick(self, now: datetime | None = None) -> list[int]:
        now = now or utcnow()
        dispatched: list[int] = []

        try:
            connections = await self._connection_loader()
        except Exception as e:
            logger.error(f"Scheduler tick could not load connections: {e}")
            return dispatched

        for connection in connections:
            try:
                if not is_due(connection, now, self._default_interval_minutes):
                    continue
                if self._is_in_progress(connection.id):
                    logger.debug(f"Connection {connection.id} is syncing, not due")
                    continue
                if self._dispatcher.submit(connection.tenant_id, connection.id):
                    dispatched.append(connection.id)
            except Exception as e:
                logger.error(f"Scheduler skipped connection {connection.id}: {e}")

        logger.info(
            f"Scheduler tick: {len(connections)} connections checked, "
            f"{len(dispatched)} dispatched"
        )
        return dispatched

    def start(self) -> None:
        if self._scheduler.running:
            return
        self._scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self._tick_seconds),
            id=_TICK_JOB_ID,
            name="Connector sync tick",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.start()
        logger.info(f"Sync scheduler started (tick every {self._tick_seconds}s)")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Sync scheduler stopped")
