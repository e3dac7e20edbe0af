"""Pytest configuration and fixtures for Casefile tests.

Test isolation strategy:
- db_session runs each test in a savepoint that is rolled back
- Apps built by the app fixture share that session through a get_db override
- Auth uses MockJwtVerifier and tokens minted by tests.helpers
- Storage, auth provider and payment provider are in-memory fakes
"""

import os

# Settings are read at app creation; give tests a complete environment.
os.environ.setdefault("CASEFILE_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("APP_URL", "http://testserver")
os.environ.setdefault("CORS_ALLOWED_ORIGINS", "http://localhost:3000,https://casefile.example.com")

from collections.abc import Generator  # noqa: E402
from uuid import UUID  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import Engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from casefile.app import add_request_id_middleware, create_app  # noqa: E402
from casefile.auth.provider import FakeAuthProvider  # noqa: E402
from casefile.cache import CatalogCache  # noqa: E402
from casefile.config import clear_settings_cache  # noqa: E402
from casefile.db.session import get_db  # noqa: E402
from casefile.services.accounts import ensure_user  # noqa: E402
from casefile.services.catalog import CaseCatalog  # noqa: E402
from casefile.services.checkout import CheckoutOrchestrator, VerificationClient  # noqa: E402
from casefile.services.payments import FakePaymentProvider  # noqa: E402
from casefile.services.purchases import FALLBACK_NOTE, upsert_purchase  # noqa: E402
from casefile.storage.client import FakeStorageClient  # noqa: E402
from tests.factories import create_test_case  # noqa: E402
from tests.helpers import create_test_user_id  # noqa: E402
from tests.support.token_verifier import MockJwtVerifier  # noqa: E402
from tests.utils.db import TestDatabaseManager, create_test_engine  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_settings() -> Generator[None, None, None]:
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_test_engine(os.environ.get("DATABASE_URL"))
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine: Engine) -> Generator[Session, None, None]:
    """Session rolled back after the test."""
    with TestDatabaseManager(engine) as session:
        yield session


@pytest.fixture
def cases(db_session: Session):
    """Two catalog entries: case-001 (9.99) and case-002 (14.99)."""
    return [
        create_test_case(db_session, "case-001", "The Missing Artifact", "9.99"),
        create_test_case(db_session, "case-002", "The Encrypted Message", "14.99"),
    ]


@pytest.fixture
def storage() -> FakeStorageClient:
    return FakeStorageClient()


@pytest.fixture
def auth_provider() -> FakeAuthProvider:
    return FakeAuthProvider()


@pytest.fixture
def payment_provider() -> FakePaymentProvider:
    return FakePaymentProvider()


@pytest.fixture
def test_user_id() -> UUID:
    return create_test_user_id()


@pytest.fixture
def app(
    db_session: Session,
    storage: FakeStorageClient,
    auth_provider: FakeAuthProvider,
    payment_provider: FakePaymentProvider,
) -> FastAPI:
    """App with auth (MockJwtVerifier) and every backend bound to the test session.

    The checkout verification hop is served by the app itself through an
    in-process ASGI transport; the fallback writer uses the test session.
    """

    def bootstrap(user_id: UUID, email: str | None) -> bool:
        return ensure_user(db_session, user_id, email)

    app = create_app(token_verifier=MockJwtVerifier(), bootstrap_callback=bootstrap)
    add_request_id_middleware(app, log_requests=False)

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    def fallback_writer(user_id, case_id, order_id, amount) -> None:
        upsert_purchase(
            db_session,
            user_id=user_id,
            case_id=case_id,
            payment_id=order_id,
            amount=amount,
            note=FALLBACK_NOTE,
        )

    loopback = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    )
    app.state.catalog = CaseCatalog(CatalogCache())
    app.state.storage = storage
    app.state.auth_provider = auth_provider
    app.state.payment_provider = payment_provider
    app.state.checkout = CheckoutOrchestrator(
        payment_provider,
        VerificationClient(loopback, "http://testserver/api/payments/verify"),
        fallback_writer,
        capture_timeout_s=2.0,
    )
    return app


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    with TestClient(app) as client:
        yield client
