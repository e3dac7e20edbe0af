"""API route definitions.

Uses a factory pattern to avoid import-time settings loading.
This allows tests to import modules without requiring all environment
variables to be configured upfront.
"""

from fastapi import APIRouter

from casefile.api.routes.account import router as account_router
from casefile.api.routes.api_auth import router as api_auth_router
from casefile.api.routes.api_payments import router as api_payments_router
from casefile.api.routes.api_user import router as api_user_router
from casefile.api.routes.cases import router as cases_router
from casefile.api.routes.checkout import router as checkout_router
from casefile.api.routes.health import router as health_router
from casefile.api.routes.internal import router as internal_router


def create_api_router() -> APIRouter:
    """Create and configure the API router."""
    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    api_router.include_router(cases_router, tags=["cases"])
    api_router.include_router(checkout_router, tags=["checkout"])
    api_router.include_router(account_router, tags=["account"])
    api_router.include_router(internal_router, tags=["internal"])

    # Site endpoints with their own flat response bodies
    api_router.include_router(api_payments_router, tags=["site"])
    api_router.include_router(api_user_router, tags=["site"])
    api_router.include_router(api_auth_router, tags=["site"])

    return api_router


__all__ = ["create_api_router"]
