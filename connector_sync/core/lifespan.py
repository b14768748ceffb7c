import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from connector_sync.core.dependencies import load_active_connections, run_scheduled_sync
from connector_sync.core.logging import setup_logging
from connector_sync.core.settings import settings
from connector_sync.database import db_connection
from connector_sync.repositories.sync_run_repository import SyncRunRepository
from connector_sync.services.scheduler import SyncDispatcher, SyncScheduler
from connector_sync.services.sync_lock import sync_lock_registry

logger = logging.getLogger(__name__)


async def _cancel_abandoned_runs() -> None:
    async with db_connection.get_connection() as conn:
        cancelled = await SyncRunRepository(conn).cancel_abandoned_runs(
            "abandoned by process exit"
        )
    if cancelled:
        logger.warning(f"Marked {cancelled} abandoned sync runs as cancelled")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging(settings.log_level)
    logger.info("Application startup initiated")
    await db_connection.connect()
    await _cancel_abandoned_runs()

    dispatcher = SyncDispatcher(
        run_scheduled_sync,
        max_concurrent=settings.sync_max_concurrent,
        queue_size=settings.sync_queue_size,
    )
    scheduler = SyncScheduler(
        load_active_connections,
        dispatcher,
        default_interval_minutes=settings.default_sync_interval_minutes,
        tick_seconds=settings.sync_scheduler_tick_seconds,
        is_in_progress=sync_lock_registry.is_in_progress,
    )
    app.state.sync_dispatcher = dispatcher
    app.state.sync_scheduler = scheduler

    if settings.sync_scheduler_enabled:
        await dispatcher.start()
        scheduler.start()
    else:
        logger.info("Sync scheduler disabled")

    yield

    logger.info("Application shutdown initiated")
    scheduler.shutdown()
    await dispatcher.stop(settings.sync_shutdown_grace_seconds)
    await db_connection.close()
