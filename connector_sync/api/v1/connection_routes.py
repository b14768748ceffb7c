import logging

from fastapi import APIRouter, Query

from connector_sync.core.dependencies import (
    ConnectionServiceDep,
    SyncOrchestratorDep,
    TenantIdDep,
)
from connector_sync.models.connection import SyncSettings
from connector_sync.schemas.common import ApiResponse, create_success_response
from connector_sync.schemas.connection import (
    ConnectionListResponse,
    ConnectionResponse,
    RevokeResponse,
)
from connector_sync.schemas.entity import RemoteEntityResponse
from connector_sync.schemas.sync import (
    SyncHistoryResponse,
    SyncRunResponse,
    SyncStatusResponse,
    SyncTriggerRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/connections", tags=["connections"])


@router.get("", response_model=ApiResponse)
async def list_connections(tenant_id: TenantIdDep, service: ConnectionServiceDep):
    connections = await service.list_connections(tenant_id)
    response = ConnectionListResponse(
        connections=[ConnectionResponse.model_validate(c) for c in connections]
    )
    return create_success_response(data=response.model_dump(mode="json"))


@router.get("/{connection_id}", response_model=ApiResponse)
async def get_connection(
    connection_id: int, tenant_id: TenantIdDep, service: ConnectionServiceDep
):
    connection = await service.get_connection(tenant_id, connection_id)
    return create_success_response(
        data=ConnectionResponse.model_validate(connection).model_dump(mode="json")
    )


@router.patch("/{connection_id}/settings", response_model=ApiResponse)
async def update_sync_settings(
    connection_id: int,
    sync_settings: SyncSettings,
    tenant_id: TenantIdDep,
    service: ConnectionServiceDep,
):
    connection = await service.update_sync_settings(
        tenant_id, connection_id, sync_settings
    )
    return create_success_response(
        data=ConnectionResponse.model_validate(connection).model_dump(mode="json")
    )


@router.delete("/{connection_id}", response_model=ApiResponse)
async def revoke_connection(
    connection_id: int, tenant_id: TenantIdDep, service: ConnectionServiceDep
):
    revoked = await service.revoke_connection(tenant_id, connection_id)
    response = RevokeResponse(
        success=revoked,
        message="Connection revoked" if revoked else "Connection was already revoked",
    )
    return create_success_response(data=response.model_dump())


@router.post("/{connection_id}/refresh", response_model=ApiResponse)
async def refresh_token(
    connection_id: int, tenant_id: TenantIdDep, service: ConnectionServiceDep
):
    connection = await service.refresh_token(tenant_id, connection_id)
    return create_success_response(
        data=ConnectionResponse.model_validate(connection).model_dump(mode="json")
    )


@router.get("/{connection_id}/entities/{external_id}", response_model=ApiResponse)
async def get_entity(
    connection_id: int,
    external_id: str,
    tenant_id: TenantIdDep,
    service: ConnectionServiceDep,
):
    entity = await service.get_entity(tenant_id, connection_id, external_id)
    return create_success_response(
        data=RemoteEntityResponse.model_validate(entity).model_dump(mode="json")
    )


@router.post("/{connection_id}/sync", response_model=ApiResponse)
async def trigger_sync(
    connection_id: int,
    tenant_id: TenantIdDep,
    orchestrator: SyncOrchestratorDep,
    request: SyncTriggerRequest | None = None,
):
    request = request or SyncTriggerRequest()
    logger.info(
        f"Manual sync requested for connection {connection_id} "
        f"(force_full={request.force_full})"
    )
    run = await orchestrator.sync_connection(
        tenant_id,
        connection_id,
        force_full=request.force_full,
        parent_keys=request.parent_keys,
    )
    return create_success_response(
        data=SyncRunResponse.model_validate(run).model_dump(mode="json")
    )


@router.get("/{connection_id}/sync/history", response_model=ApiResponse)
async def get_sync_history(
    connection_id: int,
    tenant_id: TenantIdDep,
    service: ConnectionServiceDep,
    limit: int = Query(10, ge=1, le=100),
):
    runs = await service.get_sync_history(tenant_id, connection_id, limit)
    response = SyncHistoryResponse(
        runs=[SyncRunResponse.model_validate(run) for run in runs]
    )
    return create_success_response(data=response.model_dump(mode="json"))


@router.get("/{connection_id}/sync/status", response_model=ApiResponse)
async def get_sync_status(
    connection_id: int,
    tenant_id: TenantIdDep,
    service: ConnectionServiceDep,
    orchestrator: SyncOrchestratorDep,
):
    connection = await service.get_connection(tenant_id, connection_id)
    runs = await service.get_sync_history(tenant_id, connection_id, limit=1)
    current_run = await service.get_current_run(tenant_id, connection_id)
    response = SyncStatusResponse(
        connection_id=connection.id,
        in_progress=(
            orchestrator.is_sync_in_progress(connection.id) or current_run is not None
        ),
        last_sync_at=connection.last_sync_at,
        last_successful_sync_at=connection.last_successful_sync_at,
        last_sync_error=connection.last_sync_error,
        failed_sync_attempts=connection.failed_sync_attempts,
        total_items_synced=connection.total_items_synced,
        latest_run=SyncRunResponse.model_validate(runs[0]) if runs else None,
        current_run=(
            SyncRunResponse.model_validate(current_run) if current_run else None
        ),
    )
    return create_success_response(data=response.model_dump(mode="json"))
