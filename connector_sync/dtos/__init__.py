from connector_sync.dtos.connection_dtos import (
    CreateConnectionDTO,
    ReauthorizeConnectionDTO,
    UpdateTokensDTO,
)
from connector_sync.dtos.entity_dtos import UpsertParentUnitDTO, UpsertRemoteEntityDTO
from connector_sync.dtos.sync_run_dtos import CreateSyncRunDTO, FinalizeSyncRunDTO

__all__ = [
    "CreateConnectionDTO",
    "CreateSyncRunDTO",
    "FinalizeSyncRunDTO",
    "ReauthorizeConnectionDTO",
    "UpdateTokensDTO",
    "UpsertParentUnitDTO",
    "UpsertRemoteEntityDTO",
]
