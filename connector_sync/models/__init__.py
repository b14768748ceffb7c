from connector_sync.models.connection import Connection, SyncSettings
from connector_sync.models.parent_unit import ParentUnit
from connector_sync.models.remote_entity import RemoteEntity
from connector_sync.models.sync_run import SyncRun

__all__ = [
    "Connection",
    "ParentUnit",
    "RemoteEntity",
    "SyncRun",
    "SyncSettings",
]
