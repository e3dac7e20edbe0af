"""Authentication middleware for FastAPI.

Provides:
- AuthMiddleware: bearer token verification for every non-public path
- get_viewer: Dependency for accessing authenticated viewer identity

Public surface (no token required):
- /health and the API docs
- GET /cases and GET /cases/{case_id} (the catalog)
- /api/* (payment verification, account deletion, email checks; these
  identify the user from the request body or query, as the site expects)
- POST /auth/password/reset
"""

import hmac
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from casefile.auth.verifier import TokenVerifier
from casefile.errors import ApiError, ApiErrorCode
from casefile.responses import error_response

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "authorization"
INTERNAL_HEADER = "x-casefile-internal"

PUBLIC_PATHS = {"/health", "/docs", "/redoc", "/openapi.json", "/auth/password/reset"}
PUBLIC_PREFIXES = ("/api/",)
PUBLIC_CATALOG_PATH = re.compile(r"^/cases(/[^/]+)?/?$")
INTERNAL_PREFIX = "/internal/"

# Bootstrap returns False when the account has been soft-deleted.
BootstrapCallback = Callable[[UUID, str | None], bool]


@dataclass
class Viewer:
    """Authenticated viewer identity.

    Attributes:
        user_id: The viewer's user ID (from JWT sub claim).
        email: Email claim, when the token carries one.
        access_token: The raw bearer token, forwarded to the auth provider
            for self-service calls such as password changes.
    """

    user_id: UUID
    email: str | None
    access_token: str


def is_public_path(method: str, path: str) -> bool:
    if path in PUBLIC_PATHS or path.startswith(PUBLIC_PREFIXES):
        return True
    return method == "GET" and bool(PUBLIC_CATALOG_PATH.match(path))


class AuthMiddleware(BaseHTTPMiddleware):
    """Authentication middleware.

    Order of checks:
    1. Skip if public path (or CORS preflight)
    2. Verify internal header on /internal/* (if required)
    3. Extract and verify bearer token
    4. Bootstrap the users/user_preferences rows; refuse deleted accounts
    5. Attach Viewer to request state
    """

    def __init__(
        self,
        app: ASGIApp,
        verifier: TokenVerifier,
        requires_internal_header: bool = False,
        internal_secret: str | None = None,
        bootstrap_callback: BootstrapCallback | None = None,
    ):
        super().__init__(app)
        self.verifier = verifier
        self.requires_internal_header = requires_internal_header
        self.internal_secret = internal_secret
        self.bootstrap_callback = bootstrap_callback

    async def dispatch(self, request: Request, call_next) -> JSONResponse:
        path = request.url.path
        if request.method == "OPTIONS" or is_public_path(request.method, path):
            return await call_next(request)

        if self.requires_internal_header and path.startswith(INTERNAL_PREFIX):
            failure = self._verify_internal_header(request)
            if failure:
                return failure

        token, failure = self._extract_bearer_token(request)
        if failure:
            return failure

        try:
            payload = self.verifier.verify(token)
        except ApiError as e:
            return _error_json_response(e.code, e.message, e.status_code)

        user_id = UUID(payload["sub"])
        email = payload.get("email")

        if self.bootstrap_callback:
            try:
                active = self.bootstrap_callback(user_id, email)
            except Exception as e:
                logger.exception("Bootstrap failed for user %s: %s", user_id, e)
                return _error_json_response(ApiErrorCode.E_INTERNAL, "Internal server error", 500)

            if not active:
                logger.warning("auth_failure", extra={"reason": "account_deleted"})
                return _error_json_response(
                    ApiErrorCode.E_ACCOUNT_DELETED, "This account has been deleted", 403
                )

        request.state.viewer = Viewer(user_id=user_id, email=email, access_token=token)

        return await call_next(request)

    def _verify_internal_header(self, request: Request) -> JSONResponse | None:
        """Constant-time check of the internal secret header."""
        header_value = request.headers.get(INTERNAL_HEADER)

        if not self.internal_secret:
            logger.error("Internal secret not configured but header required")
            return _error_json_response(ApiErrorCode.E_INTERNAL, "Internal server error", 500)

        if header_value is None or not hmac.compare_digest(
            header_value.encode(), self.internal_secret.encode()
        ):
            logger.warning(
                "auth_failure",
                extra={"reason": "internal_header_invalid", "request_path": request.url.path},
            )
            return _error_json_response(
                ApiErrorCode.E_INTERNAL_ONLY, "Internal API access required", 403
            )

        return None

    def _extract_bearer_token(self, request: Request) -> tuple[str, JSONResponse | None]:
        auth_header = request.headers.get(AUTHORIZATION_HEADER)

        if not auth_header:
            logger.warning(
                "auth_failure",
                extra={"reason": "missing_header", "request_path": request.url.path},
            )
            return "", _error_json_response(
                ApiErrorCode.E_UNAUTHENTICATED, "Authentication required", 401
            )

        scheme, _, token = auth_header.partition(" ")
        token = token.strip()
        if scheme.lower() != "bearer" or not token:
            logger.warning(
                "auth_failure",
                extra={"reason": "invalid_header_format", "request_path": request.url.path},
            )
            return "", _error_json_response(
                ApiErrorCode.E_UNAUTHENTICATED, "Invalid authorization header format", 401
            )

        return token, None


def _error_json_response(code: ApiErrorCode, message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_response(code, message))


def get_viewer(request: Request) -> Viewer:
    """FastAPI dependency returning the authenticated viewer.

    Raises:
        ApiError: If viewer is not set (middleware didn't run or path is public).
    """
    viewer = getattr(request.state, "viewer", None)
    if viewer is None:
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")
    return viewer


ViewerDep = Depends(get_viewer)
