"""API error definitions.

All API errors are defined here with their corresponding HTTP status codes.
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    """Standardized error codes for the API.

    Format: E_CATEGORY_NAME
    """

    # Authentication errors (401)
    E_UNAUTHENTICATED = "E_UNAUTHENTICATED"

    # Authorization errors (403)
    E_FORBIDDEN = "E_FORBIDDEN"
    E_INTERNAL_ONLY = "E_INTERNAL_ONLY"
    E_ACCOUNT_DELETED = "E_ACCOUNT_DELETED"
    E_PURCHASE_REQUIRED = "E_PURCHASE_REQUIRED"

    # Not found errors (404)
    E_NOT_FOUND = "E_NOT_FOUND"
    E_CASE_NOT_FOUND = "E_CASE_NOT_FOUND"

    # Validation errors (400)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_AUTH_REJECTED = "E_AUTH_REJECTED"

    # Payment errors
    E_PAYMENT_FAILED = "E_PAYMENT_FAILED"  # 402
    E_PAYMENT_PROVIDER_ERROR = "E_PAYMENT_PROVIDER_ERROR"  # 502

    # Server errors
    E_AUTH_UNAVAILABLE = "E_AUTH_UNAVAILABLE"  # 503
    E_INTERNAL = "E_INTERNAL"  # 500
    E_DATABASE_ERROR = "E_DATABASE_ERROR"  # 500
    E_STORAGE_ERROR = "E_STORAGE_ERROR"  # 500


# Error code to HTTP status mapping
ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_UNAUTHENTICATED: 401,
    ApiErrorCode.E_FORBIDDEN: 403,
    ApiErrorCode.E_INTERNAL_ONLY: 403,
    ApiErrorCode.E_ACCOUNT_DELETED: 403,
    ApiErrorCode.E_PURCHASE_REQUIRED: 403,
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_CASE_NOT_FOUND: 404,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_AUTH_REJECTED: 400,
    ApiErrorCode.E_PAYMENT_FAILED: 402,
    ApiErrorCode.E_PAYMENT_PROVIDER_ERROR: 502,
    ApiErrorCode.E_AUTH_UNAVAILABLE: 503,
    ApiErrorCode.E_INTERNAL: 500,
    ApiErrorCode.E_DATABASE_ERROR: 500,
    ApiErrorCode.E_STORAGE_ERROR: 500,
}


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        status_code: HTTP status code (derived from code)
    """

    def __init__(self, code: ApiErrorCode, message: str):
        self.code = code
        self.message = message
        self.status_code = ERROR_CODE_TO_STATUS.get(code, 500)
        super().__init__(message)


class NotFoundError(ApiError):
    """Resource not found error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_NOT_FOUND, message: str = "Not found"):
        super().__init__(code, message)


class ForbiddenError(ApiError):
    """Authorization failure error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_FORBIDDEN, message: str = "Forbidden"):
        super().__init__(code, message)


class InvalidRequestError(ApiError):
    """Invalid request error."""

    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_INVALID_REQUEST, message: str = "Invalid request"
    ):
        super().__init__(code, message)


class CatalogError(Exception):
    """The case store could not be read.

    The store's own message is embedded so callers can surface it.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)
