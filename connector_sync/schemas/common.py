import logging
from datetime import datetime
from typing import Any, Generic, TypeVar
from uuid import uuid4

from fastapi.responses import JSONResponse
from pydantic import BaseModel

from connector_sync.utils.dates import utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MetaResponse(BaseModel):
    request_id: str
    timestamp: datetime


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: list[Any] | None = None


class ApiResponse(BaseModel, Generic[T]):
    meta: MetaResponse
    data: T | None = None
    error: ErrorResponse | None = None


def _meta() -> MetaResponse:
    return MetaResponse(request_id=str(uuid4()), timestamp=utcnow())


def create_success_response(data: T) -> ApiResponse[T]:
    return ApiResponse(meta=_meta(), data=data, error=None)


def create_error_response(
    code: str,
    message: str,
    status_code: int = 400,
    details: list[Any] | None = None,
) -> JSONResponse:
    meta = _meta()
    response = ApiResponse(
        meta=meta,
        data=None,
        error=ErrorResponse(code=code, message=message, details=details),
    )
    logger.warning(
        f"Error response [{meta.request_id}] status={status_code} "
        f"code={code} message={message}"
    )
    return JSONResponse(
        status_code=status_code,
        content=response.model_dump(mode="json"),
    )
