import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Query
from fastapi.responses import RedirectResponse

from connector_sync.core.dependencies import ConnectionServiceDep, TenantIdDep
from connector_sync.core.exceptions import AppException
from connector_sync.core.settings import settings
from connector_sync.integrations.providers.factory import supported_provider_slugs
from connector_sync.schemas.common import ApiResponse, create_success_response
from connector_sync.schemas.connection import AuthorizeRequest, AuthorizeResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/connectors", tags=["connectors"])


def _callback_uri(provider_slug: str) -> str:
    return f"{settings.backend_url}/api/v1/connectors/{provider_slug}/callback"


@router.get("", response_model=ApiResponse)
async def list_connectors():
    return create_success_response(data={"providers": supported_provider_slugs()})


@router.post("/{provider_slug}/authorize", response_model=ApiResponse)
async def authorize_connector(
    provider_slug: str,
    request: AuthorizeRequest,
    tenant_id: TenantIdDep,
    service: ConnectionServiceDep,
):
    logger.info(f"Authorize requested for {provider_slug} by tenant {tenant_id}")
    authorization_url = service.get_authorization_url(
        provider_slug,
        tenant_id,
        request.redirect_uri or _callback_uri(provider_slug),
        request.workspace_hint,
    )
    response = AuthorizeResponse(
        provider_slug=provider_slug, authorization_url=authorization_url
    )
    return create_success_response(data=response.model_dump())


@router.get(
    "/{provider_slug}/callback",
    summary="OAuth Callback",
    description="Exchanges the authorization code, stores the connection and redirects to the frontend",
)
async def oauth_callback(
    provider_slug: str,
    service: ConnectionServiceDep,
    code: str = Query(..., description="Authorization code from the vendor"),
    state: str = Query(..., description="State issued by the authorize endpoint"),
) -> RedirectResponse:
    logger.info(f"Received OAuth callback for {provider_slug}")
    frontend_callback = f"{settings.frontend_url}/connectors/callback"

    try:
        connection = await service.complete_oauth_flow(
            provider_slug, code, state, _callback_uri(provider_slug)
        )
    except AppException as e:
        logger.warning(f"OAuth callback for {provider_slug} failed: {e.message}")
        params = urlencode({"error": e.code, "error_message": e.message})
        return RedirectResponse(url=f"{frontend_callback}?{params}")

    params = urlencode({"success": "true", "connection_id": str(connection.id)})
    return RedirectResponse(url=f"{frontend_callback}?{params}")
