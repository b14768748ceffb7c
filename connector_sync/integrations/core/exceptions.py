from connector_sync.core.exceptions import AppException


class IntegrationException(AppException):
    def __init__(self, code: str, message: str, status_code: int = 400):
        super().__init__(code, message, status_code)


class NotFoundError(IntegrationException):
    def __init__(self, code: str, message: str):
        super().__init__(code=code, message=message, status_code=404)


class ProviderNotFoundError(NotFoundError):
    def __init__(self, provider_slug: str):
        super().__init__(
            code="PROVIDER_NOT_FOUND",
            message=f"Provider '{provider_slug}' not found or not supported",
        )


class ConnectionNotFoundError(NotFoundError):
    def __init__(self, connection_id: int):
        super().__init__(
            code="CONNECTION_NOT_FOUND",
            message=f"Connection {connection_id} not found",
        )


class RemoteEntityNotFoundError(NotFoundError):
    def __init__(self, connection_id: int, external_id: str):
        super().__init__(
            code="ENTITY_NOT_FOUND",
            message=f"Entity {external_id} not found for connection {connection_id}",
        )


class RemoteItemNotFoundError(NotFoundError):
    def __init__(self, url: str):
        super().__init__(
            code="REMOTE_ITEM_NOT_FOUND",
            message=f"Remote item not found at {url}",
        )


class AuthError(IntegrationException):
    def __init__(self, message: str):
        super().__init__(
            code="AUTH_FAILED",
            message=message,
            status_code=401,
        )


class TransientApiError(IntegrationException):
    def __init__(self, message: str, upstream_status: int | None = None):
        self.upstream_status = upstream_status
        super().__init__(
            code="TRANSIENT_API_ERROR",
            message=message,
            status_code=503,
        )


class ApiRequestError(IntegrationException):
    def __init__(self, status_code: int, message: str):
        super().__init__(
            code="API_REQUEST_FAILED",
            message=message,
            status_code=status_code if 400 <= status_code < 600 else 502,
        )


class ItemUpsertError(IntegrationException):
    def __init__(self, external_id: str | None, message: str):
        self.external_id = external_id
        super().__init__(
            code="ITEM_UPSERT_FAILED",
            message=f"Failed to upsert item {external_id or '<unknown>'}: {message}",
            status_code=422,
        )


class ConcurrencyError(IntegrationException):
    def __init__(self, connection_id: int):
        super().__init__(
            code="SYNC_IN_PROGRESS",
            message=f"Sync already in progress for connection {connection_id}",
            status_code=409,
        )


class InvalidOAuthStateError(IntegrationException):
    def __init__(self, message: str = "Invalid OAuth state. Please try again."):
        super().__init__(
            code="INVALID_STATE",
            message=message,
            status_code=400,
        )


class ConfigurationError(IntegrationException):
    def __init__(self, message: str):
        super().__init__(
            code="CONFIGURATION_ERROR",
            message=message,
            status_code=500,
        )
