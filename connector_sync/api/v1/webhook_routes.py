import json
import logging
from dataclasses import asdict

from fastapi import APIRouter, Query, Request
from fastapi.responses import PlainTextResponse

from connector_sync.core.dependencies import WebhookIngestorScopeDep
from connector_sync.schemas.common import ApiResponse, create_success_response
from connector_sync.schemas.sync import WebhookAckResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/{provider_slug}", response_model=ApiResponse)
async def receive_webhook(
    provider_slug: str,
    request: Request,
    ingestor_scope: WebhookIngestorScopeDep,
    connection_id: int | None = Query(None, description="Pin events to one connection"),
    validation_token: str | None = Query(None, alias="validationToken"),
):
    # Graph subscription handshake
    if validation_token is not None:
        return PlainTextResponse(content=validation_token)

    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning(f"Non-JSON {provider_slug} webhook body ignored")
        payload = {}
    if not isinstance(payload, dict):
        payload = {"items": payload}

    try:
        async with ingestor_scope() as ingestor:
            results = await ingestor.handle(provider_slug, payload, connection_id)
    except Exception as e:
        logger.error(f"Could not ingest {provider_slug} webhook, acknowledging anyway: {e}")
        results = []

    response = WebhookAckResponse(
        received=len(results),
        results=[
            {**asdict(result), "status": result.status.value} for result in results
        ],
    )
    return create_success_response(data=response.model_dump())
