"""FastAPI dependencies for route handlers.

Shared clients and services are created once in the app lifespan and
stored on app.state; these dependencies hand them to routes.
"""

from fastapi import Request

from casefile.auth.provider import AuthProviderBase
from casefile.db.session import get_db, get_session_factory
from casefile.services.catalog import CaseCatalog
from casefile.services.checkout import CheckoutOrchestrator
from casefile.storage.client import StorageClientBase

__all__ = [
    "get_auth_provider",
    "get_catalog",
    "get_checkout",
    "get_db",
    "get_session_factory",
    "get_storage",
]


def get_catalog(request: Request) -> CaseCatalog:
    """The app-wide catalog, which owns the catalog cache."""
    return request.app.state.catalog


def get_storage(request: Request) -> StorageClientBase:
    return request.app.state.storage


def get_auth_provider(request: Request) -> AuthProviderBase:
    return request.app.state.auth_provider


def get_checkout(request: Request) -> CheckoutOrchestrator:
    """The checkout orchestrator, bound to the shared httpx.AsyncClient."""
    return request.app.state.checkout
