class AppException(Exception):
    def __init__(self, code: str, message: str, status_code: int = 400):
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ValidationException(AppException):
    def __init__(self, code: str, message: str, details: list | None = None):
        super().__init__(code, message, status_code=400)
        self.details = details or []


class TenantRequiredException(AppException):
    def __init__(self):
        super().__init__(
            code="TENANT_REQUIRED",
            message="X-Tenant-Id header is required",
            status_code=400,
        )
