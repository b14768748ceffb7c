import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from connector_sync.api.v1 import api_v1_router
from connector_sync.core.exceptions import AppException, ValidationException
from connector_sync.core.lifespan import lifespan
from connector_sync.core.settings import settings
from connector_sync.database import db_connection
from connector_sync.schemas.common import create_error_response

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan,
)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    logger.warning(
        f"AppException on {request.method} {request.url.path}: "
        f"code={exc.code} message={exc.message}"
    )
    details = exc.details if isinstance(exc, ValidationException) else None
    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=details,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.warning(
        f"Validation error on {request.method} {request.url.path}: {exc.errors()}"
    )
    return create_error_response(
        code="VALIDATION_ERROR",
        message="Request validation failed",
        status_code=422,
        details=[
            {"loc": list(error.get("loc", ())), "msg": error.get("msg")}
            for error in exc.errors()
        ],
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    return create_error_response(
        code="INTERNAL_ERROR",
        message="An unexpected error occurred",
        status_code=500,
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {
        "status": "healthy",
        "database": "connected" if db_connection.is_connected else "disconnected",
    }


if __name__ == "__main__":
    uvicorn.run(
        "connector_sync.main:app",
        host="localhost",
        port=8000,
        reload=settings.debug,
    )
