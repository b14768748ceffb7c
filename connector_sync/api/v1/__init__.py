from fastapi import APIRouter

from connector_sync.api.v1.connection_routes import router as connection_router
from connector_sync.api.v1.connector_routes import router as connector_router
from connector_sync.api.v1.webhook_routes import router as webhook_router

api_v1_router = APIRouter(prefix="/api/v1")

api_v1_router.include_router(connector_router)
api_v1_router.include_router(connection_router)
api_v1_router.include_router(webhook_router)
