"""FastAPI application creation and configuration.

Registers exception handlers, routes, and the middleware stack.

Middleware Ordering:
- Middleware runs in reverse order of registration
- AuthMiddleware is registered first (innermost)
- ApiCORSMiddleware next, so /api/* preflights never reach auth
- RequestIDMiddleware last via add_request_id_middleware (outermost), so
  every response, auth failures included, carries X-Request-ID

Shared resources (app.state, built in the lifespan):
- httpx_client: one AsyncClient for PayPal and the verification hop
- catalog: CaseCatalog owning the process-wide CatalogCache
- storage / auth_provider / payment_provider: Supabase + PayPal clients,
  or in-memory fakes when the project is not configured
- checkout: CheckoutOrchestrator
Anything already set on app.state before startup is kept, which is how
tests substitute fakes.
"""

from contextlib import asynccontextmanager
from uuid import UUID

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from casefile.api.routes import create_api_router
from casefile.auth.middleware import AuthMiddleware, BootstrapCallback
from casefile.auth.provider import get_auth_provider
from casefile.auth.verifier import SupabaseJwksVerifier, TokenVerifier
from casefile.cache import CatalogCache
from casefile.config import Settings, get_settings
from casefile.db.session import get_session_factory
from casefile.errors import ApiError, ApiErrorCode, CatalogError
from casefile.logging import configure_logging, get_logger
from casefile.middleware.cors import ApiCORSMiddleware
from casefile.middleware.request_id import RequestIDMiddleware
from casefile.responses import (
    api_error_handler,
    catalog_error_handler,
    error_response,
    http_exception_handler,
    unhandled_exception_handler,
)
from casefile.services.accounts import ensure_user
from casefile.services.catalog import CaseCatalog
from casefile.services.checkout import (
    CheckoutOrchestrator,
    VerificationClient,
    make_direct_purchase_writer,
)
from casefile.services.payments import get_payment_provider
from casefile.storage.client import get_storage_client

# Configure structured logging at import time
configure_logging()

logger = get_logger(__name__)

VERIFY_PATH = "/api/payments/verify"


def create_bootstrap_callback(
    session_factory: sessionmaker[Session] | None = None,
) -> BootstrapCallback:
    """Bootstrap callback for the auth middleware, with its own session per call."""
    factory = session_factory or get_session_factory()

    def bootstrap(user_id: UUID, email: str | None) -> bool:
        db = factory()
        try:
            return ensure_user(db, user_id, email)
        finally:
            db.close()

    return bootstrap


def create_token_verifier(settings: Settings) -> SupabaseJwksVerifier:
    """Supabase JWKS verifier; the same in every environment.

    Raises:
        ValueError: If the Supabase auth settings are incomplete.
    """
    missing = settings.missing_auth_settings
    if missing:
        raise ValueError(f"Auth middleware requires {', '.join(missing)}")

    return SupabaseJwksVerifier(
        jwks_url=settings.supabase_jwks_url,  # type: ignore[arg-type]
        issuer=settings.normalized_issuer,  # type: ignore[arg-type]
        audiences=settings.audience_list,
    )


def _init_state(app: FastAPI, settings: Settings, http_client: httpx.AsyncClient) -> None:
    state = app.state

    if getattr(state, "catalog", None) is None:
        state.catalog = CaseCatalog(
            CatalogCache(ttl_seconds=settings.catalog_cache_ttl_s),
            static_session_factory=get_session_factory(),
        )
    if getattr(state, "storage", None) is None:
        state.storage = get_storage_client(settings)
    if getattr(state, "auth_provider", None) is None:
        state.auth_provider = get_auth_provider(settings)
    if getattr(state, "payment_provider", None) is None:
        state.payment_provider = get_payment_provider(settings, http_client)
    if getattr(state, "checkout", None) is None:
        state.checkout = CheckoutOrchestrator(
            state.payment_provider,
            VerificationClient(http_client, f"{settings.normalized_api_url}{VERIFY_PATH}"),
            make_direct_purchase_writer(get_session_factory()),
            capture_timeout_s=settings.capture_timeout_s,
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the shared httpx client and services; close the client on shutdown."""
    settings = get_settings()

    app.state.httpx_client = httpx.AsyncClient(
        timeout=httpx.Timeout(30.0, connect=10.0),
        limits=httpx.Limits(max_connections=50, max_keepalive_connections=10),
    )
    _init_state(app, settings, app.state.httpx_client)
    logger.info(
        "services_initialized",
        storage=type(app.state.storage).__name__,
        auth_provider=type(app.state.auth_provider).__name__,
        payment_provider=type(app.state.payment_provider).__name__,
    )

    yield

    await app.state.httpx_client.aclose()
    logger.info("httpx_client_closed")


def create_app(
    skip_auth_middleware: bool = False,
    token_verifier: TokenVerifier | None = None,
    bootstrap_callback: BootstrapCallback | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        skip_auth_middleware: If True, skip adding auth middleware (for testing).
        token_verifier: Optional custom token verifier (for testing).
        bootstrap_callback: Optional users-row bootstrap (defaults to ensure_user
            with a session from the default factory).

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Casefile API",
        description="Detective case catalog, purchases and evidence",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(CatalogError, catalog_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Malformed JSON and schema failures both become 400 E_INVALID_REQUEST."""
        return JSONResponse(
            status_code=400,
            content=error_response(ApiErrorCode.E_INVALID_REQUEST, "Invalid request body"),
        )

    app.include_router(create_api_router())

    if not skip_auth_middleware:
        app.add_middleware(
            AuthMiddleware,
            verifier=token_verifier or create_token_verifier(settings),
            requires_internal_header=settings.requires_internal_header,
            internal_secret=settings.casefile_internal_secret,
            bootstrap_callback=bootstrap_callback or create_bootstrap_callback(),
        )
        logger.info(
            "auth_middleware_enabled",
            env=settings.casefile_env.value,
            internal_header_required=settings.requires_internal_header,
        )

    app.add_middleware(ApiCORSMiddleware, allowed_origins=settings.cors_origin_list)

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Add request-id middleware; call after all other middleware is added."""
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
    logger.info("request_id_middleware_enabled")
