"""Supabase JWT verification.

Provides:
- TokenVerifier: Protocol for token verification
- SupabaseJwksVerifier: Verifier backed by the project's JWKS endpoint

Test-only verifiers live in tests/support/token_verifier.py.
"""

import logging
import threading
from typing import Any, Protocol
from uuid import UUID

import jwt
from jwt import PyJWKClient
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidSignatureError,
    InvalidTokenError,
    PyJWKClientError,
)

from casefile.errors import ApiError, ApiErrorCode

logger = logging.getLogger(__name__)

# Clock skew allowance in seconds
CLOCK_SKEW_SECONDS = 60

# Checked in order; subclasses before InvalidTokenError.
_DECODE_FAILURES: list[tuple[type[InvalidTokenError], str, str]] = [
    (ExpiredSignatureError, "expired_token", "Token expired"),
    (InvalidSignatureError, "invalid_signature", "Invalid token signature"),
    (InvalidIssuerError, "invalid_issuer", "Invalid token issuer"),
    (InvalidAudienceError, "invalid_audience", "Invalid token audience"),
    (DecodeError, "decode_error", "Invalid token format"),
    (InvalidTokenError, "invalid_token", "Invalid token"),
]


class TokenVerifier(Protocol):
    """Verifies a bearer token and returns its claims.

    Raises:
        ApiError(E_UNAUTHENTICATED): Token is invalid, expired, or malformed.
        ApiError(E_AUTH_UNAVAILABLE): Key material could not be fetched.
    """

    def verify(self, token: str) -> dict[str, Any]: ...


def check_subject(payload: dict[str, Any]) -> None:
    """Require a UUID sub claim (Supabase user ids are UUIDs)."""
    sub = payload.get("sub")
    if not sub:
        logger.warning("auth_failure", extra={"reason": "missing_sub"})
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Invalid token: missing sub")
    try:
        UUID(sub)
    except (ValueError, TypeError) as e:
        logger.warning("auth_failure", extra={"reason": "invalid_sub"})
        raise ApiError(
            ApiErrorCode.E_UNAUTHENTICATED, "Invalid token: sub is not a valid UUID"
        ) from e


def decode_or_raise(token: str, key: Any, *, issuer: str, audiences: list[str]) -> dict[str, Any]:
    """Decode a JWT, translating PyJWT failures into E_UNAUTHENTICATED."""
    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=["RS256", "ES256"],
            audience=audiences,
            issuer=issuer,
            leeway=CLOCK_SKEW_SECONDS,
            options={"require": ["exp", "iss", "sub"], "verify_aud": True},
        )
    except InvalidTokenError as e:
        for exc_type, reason, message in _DECODE_FAILURES:
            if isinstance(e, exc_type):
                logger.warning("auth_failure", extra={"reason": reason})
                raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, message) from e
        raise

    check_subject(payload)
    return payload


class SupabaseJwksVerifier:
    """Production verifier.

    Validates signature (RS256 or ES256 via JWKS), exp with 60s skew,
    iss, aud against the allow-list, and a UUID sub.
    """

    def __init__(self, jwks_url: str, issuer: str, audiences: list[str], cache_ttl: int = 3600):
        self.jwks_url = jwks_url
        self.issuer = issuer.rstrip("/")
        self.audiences = audiences
        self.cache_ttl = cache_ttl
        self._jwks_client: PyJWKClient | None = None
        self._jwks_lock = threading.Lock()

    def _client(self, refresh: bool = False) -> PyJWKClient:
        with self._jwks_lock:
            if self._jwks_client is None or refresh:
                self._jwks_client = PyJWKClient(
                    self.jwks_url, cache_keys=True, lifespan=self.cache_ttl
                )
            return self._jwks_client

    def verify(self, token: str) -> dict[str, Any]:
        try:
            signing_key = self._signing_key(token)
        except DecodeError as e:
            logger.warning("auth_failure", extra={"reason": "decode_error"})
            raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Invalid token format") from e
        except PyJWKClientError as e:
            logger.warning("auth_failure", extra={"reason": "jwks_unavailable", "error": str(e)})
            raise ApiError(
                ApiErrorCode.E_AUTH_UNAVAILABLE, "Authentication service unavailable"
            ) from e

        return decode_or_raise(
            token, signing_key.key, issuer=self.issuer, audiences=self.audiences
        )

    def _signing_key(self, token: str) -> Any:
        """Look up the signing key, refreshing the key set once on a kid miss."""
        try:
            return self._client().get_signing_key_from_jwt(token)
        except PyJWKClientError as e:
            if "Unable to find" not in str(e) and "kid" not in str(e).lower():
                raise

        logger.info("jwks_refresh_on_kid_miss")
        try:
            return self._client(refresh=True).get_signing_key_from_jwt(token)
        except PyJWKClientError as e:
            logger.warning("auth_failure", extra={"reason": "kid_not_found"})
            raise ApiError(
                ApiErrorCode.E_UNAUTHENTICATED, "Invalid token: signing key not found"
            ) from e
