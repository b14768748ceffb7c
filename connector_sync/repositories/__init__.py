from connector_sync.repositories.connection_repository import ConnectionRepository
from connector_sync.repositories.parent_unit_repository import ParentUnitRepository
from connector_sync.repositories.remote_entity_repository import RemoteEntityRepository
from connector_sync.repositories.sync_run_repository import SyncRunRepository

__all__ = [
    "ConnectionRepository",
    "ParentUnitRepository",
    "RemoteEntityRepository",
    "SyncRunRepository",
]
