"""Error taxonomy shared by services and the HTTP boundary.

Services raise these; ``main.py`` maps ``ServiceError.kind`` to a status code in
one place instead of inspecting message text.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    INVALID_OR_EXPIRED_CODE = "invalid_or_expired_code"
    ACCOUNT_NOT_FOUND = "account_not_found"
    ALREADY_VERIFIED = "already_verified"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    STORAGE = "storage"
    TRANSPORT = "transport"
    NOT_CONFIGURED = "not_configured"


HTTP_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.INVALID_OR_EXPIRED_CODE: 400,
    ErrorKind.ALREADY_VERIFIED: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.ACCOUNT_NOT_FOUND: 404,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.STORAGE: 500,
    ErrorKind.TRANSPORT: 500,
    ErrorKind.NOT_CONFIGURED: 503,
}

# Kinds whose detail stays in the server log
INFRASTRUCTURE_KINDS = frozenset({ErrorKind.STORAGE, ErrorKind.TRANSPORT})


class ServiceError(Exception):
    kind: ErrorKind = ErrorKind.VALIDATION
    default_message: str = "Request failed"

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND.get(self.kind, 500)

    @property
    def is_infrastructure(self) -> bool:
        return self.kind in INFRASTRUCTURE_KINDS


class ValidationError(ServiceError):
    kind = ErrorKind.VALIDATION
    default_message = "Invalid request"


class InvalidOrExpiredCode(ServiceError):
    """Wrong, expired and already-used codes all look the same to the caller."""

    kind = ErrorKind.INVALID_OR_EXPIRED_CODE
    default_message = "Invalid or expired OTP"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(self.default_message, detail)


class AccountNotFound(ServiceError):
    kind = ErrorKind.ACCOUNT_NOT_FOUND
    default_message = "User not found"


class AlreadyVerified(ServiceError):
    kind = ErrorKind.ALREADY_VERIFIED
    default_message = "Email is already verified"


class ConflictError(ServiceError):
    kind = ErrorKind.CONFLICT
    default_message = "Resource already exists"


class UnauthorizedError(ServiceError):
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Could not validate credentials"


class ForbiddenError(ServiceError):
    kind = ErrorKind.FORBIDDEN
    default_message = "Forbidden"


class NotFoundError(ServiceError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Not found"


class RateLimitedError(ServiceError):
    kind = ErrorKind.RATE_LIMITED
    default_message = "Too many requests, please try again later"

    def __init__(self, message: Optional[str] = None, retry_after: int = 0):
        super().__init__(message)
        self.retry_after = max(int(retry_after), 0)


class StorageError(ServiceError):
    kind = ErrorKind.STORAGE
    default_message = "Internal server error"


class TransportError(ServiceError):
    kind = ErrorKind.TRANSPORT
    default_message = "Failed to send email"


class NotConfiguredError(ServiceError):
    kind = ErrorKind.NOT_CONFIGURED
    default_message = "Service is not configured"
