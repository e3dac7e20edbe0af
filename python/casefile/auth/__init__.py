"""Authentication module.

This module provides:
- Token verification (Supabase JWKS verifier)
- Auth middleware for FastAPI and the Viewer identity
- A client for the Supabase auth REST API (emails, password changes)

Note: Test-only verifiers are in tests/support/token_verifier.py
"""

from casefile.auth.middleware import AuthMiddleware, Viewer, get_viewer
from casefile.auth.provider import (
    AuthProviderBase,
    AuthProviderError,
    AuthUser,
    FakeAuthProvider,
    SupabaseAuthClient,
    get_auth_provider,
)
from casefile.auth.verifier import SupabaseJwksVerifier, TokenVerifier

__all__ = [
    "AuthMiddleware",
    "Viewer",
    "get_viewer",
    "SupabaseJwksVerifier",
    "TokenVerifier",
    "AuthProviderBase",
    "AuthProviderError",
    "AuthUser",
    "FakeAuthProvider",
    "SupabaseAuthClient",
    "get_auth_provider",
]
