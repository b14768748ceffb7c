from connector_sync.services.connection_service import ConnectionService
from connector_sync.services.fetch_loop import PaginatedFetchLoop, SyncRunStats
from connector_sync.services.scheduler import SyncDispatcher, SyncScheduler, is_due
from connector_sync.services.sync_lock import SyncLockRegistry, sync_lock_registry
from connector_sync.services.sync_orchestrator import SyncOrchestrator, select_sync_mode
from connector_sync.services.upsert_engine import UpsertEngine
from connector_sync.services.webhook_ingestor import WebhookIngestor, WebhookResult

__all__ = [
    "ConnectionService",
    "PaginatedFetchLoop",
    "SyncDispatcher",
    "SyncLockRegistry",
    "SyncOrchestrator",
    "SyncRunStats",
    "SyncScheduler",
    "UpsertEngine",
    "WebhookIngestor",
    "WebhookResult",
    "is_due",
    "select_sync_mode",
    "sync_lock_registry",
]
