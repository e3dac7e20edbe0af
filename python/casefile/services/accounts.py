"""Account management service.

Provides:
- ensure_user: idempotent users/user_preferences bootstrap on sign-in
- soft_delete_user: account deletion (flags only, nothing is removed)
- check_email / resend_verification: signup helpers behind /api/auth/*
- reset_password / update_password: pass-throughs to the auth provider
- normalize_auth_error: closed taxonomy for auth provider messages
- get_preferences / set_preferences: the onboarding flag
"""

import re
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from casefile.auth.provider import AuthProviderBase, AuthProviderError
from casefile.db.models import User, UserPreferences
from casefile.db.session import dialect_insert, transaction
from casefile.errors import ApiError, ApiErrorCode
from casefile.logging import get_logger
from casefile.schemas.account import PreferencesOut

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# =============================================================================
# Auth error taxonomy
# =============================================================================


class AuthErrorType(str, Enum):
    EMAIL_ALREADY_EXISTS = "email-already-exists"
    INVALID_CREDENTIALS = "invalid-credentials"
    WEAK_PASSWORD = "weak-password"
    EXPIRED_TOKEN = "expired-token"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class AuthError:
    type: AuthErrorType
    message: str


AUTH_ERROR_MESSAGES = {
    AuthErrorType.EMAIL_ALREADY_EXISTS: "This email is already registered. Please sign in instead.",
    AuthErrorType.INVALID_CREDENTIALS: "The email or password you entered is incorrect.",
    AuthErrorType.WEAK_PASSWORD: "Password must be at least 6 characters long.",
    AuthErrorType.EXPIRED_TOKEN: "This link has expired. Please request a new one.",
    AuthErrorType.UNKNOWN: "An error occurred. Please try again.",
}

_EXISTS_PATTERNS = ("already registered", "already in use", "already exists")
_CREDENTIAL_PATTERNS = ("invalid login credentials", "invalid email", "incorrect password")
_WEAK_PASSWORD_PATTERNS = ("too weak", "too short", "should be")
_EXPIRED_PATTERNS = ("expired", "otp_expired", "invalid token", "token has been used")


def normalize_auth_error(error: object) -> AuthError:
    """Map an auth provider error (or its message) onto AuthErrorType.

    Total: every input yields exactly one type; UNKNOWN when nothing matches.
    """
    message = error.message if isinstance(error, AuthProviderError) else str(error)
    lowered = message.lower()

    if any(p in lowered for p in _EXISTS_PATTERNS):
        error_type = AuthErrorType.EMAIL_ALREADY_EXISTS
    elif any(p in lowered for p in _CREDENTIAL_PATTERNS):
        error_type = AuthErrorType.INVALID_CREDENTIALS
    elif "password" in lowered and any(p in lowered for p in _WEAK_PASSWORD_PATTERNS):
        error_type = AuthErrorType.WEAK_PASSWORD
    elif any(p in lowered for p in _EXPIRED_PATTERNS):
        error_type = AuthErrorType.EXPIRED_TOKEN
    else:
        error_type = AuthErrorType.UNKNOWN

    return AuthError(type=error_type, message=AUTH_ERROR_MESSAGES[error_type])


class AuthRejectedError(ApiError):
    """Auth provider refused a self-service call; carries the normalized type."""

    def __init__(self, auth_error: AuthError):
        super().__init__(ApiErrorCode.E_AUTH_REJECTED, auth_error.message)
        self.error_type = auth_error.type


# =============================================================================
# Users
# =============================================================================


def ensure_user(db: Session, user_id: UUID, email: str | None = None) -> bool:
    """Create the users and user_preferences rows if missing.

    Race-safe: both inserts are ON CONFLICT DO NOTHING.

    Returns:
        False if the account has been soft-deleted, True otherwise.
    """
    insert = dialect_insert(db)
    with transaction(db):
        db.execute(
            insert(User)
            .values(id=user_id, email=email.strip().lower() if email else None, is_deleted=False)
            .on_conflict_do_nothing(index_elements=["id"])
        )
        db.execute(
            insert(UserPreferences)
            .values(user_id=user_id, has_completed_onboarding=False)
            .on_conflict_do_nothing(index_elements=["user_id"])
        )
        is_deleted = db.scalar(select(User.is_deleted).where(User.id == user_id))

    return not is_deleted


def soft_delete_user(db: Session, user_id: UUID) -> bool:
    """Mark the user row deleted.

    Only is_deleted and deleted_at change. Purchases and preferences are
    left in place, and the auth session is not revoked (callers sign out).

    Returns:
        True if a row was updated.
    """
    with transaction(db):
        result = db.execute(
            update(User)
            .where(User.id == user_id)
            .values(is_deleted=True, deleted_at=datetime.now(UTC))
        )
    updated = result.rowcount > 0
    logger.info("user_soft_deleted", user_id=str(user_id), updated=updated)
    return updated


def check_email(db: Session, auth: AuthProviderBase, email: str) -> dict:
    """Whether an account exists for email.

    The auth provider is authoritative; if it cannot be queried the
    application users table is consulted instead, and provider is then
    "unknown" (or None when no row exists).
    """
    normalized = email.strip().lower()
    try:
        user = auth.find_user_by_email(normalized)
    except AuthProviderError as e:
        logger.warning("auth_lookup_failed", error=e.message)
    else:
        if user is not None:
            return {
                "exists": True,
                "provider": user.provider,
                "email_confirmed": user.email_confirmed,
            }

    found = db.scalar(select(User.id).where(func.lower(User.email) == normalized).limit(1))
    return {"exists": found is not None, "provider": "unknown" if found is not None else None}


def resend_verification(auth: AuthProviderBase, email: str, *, app_url: str) -> None:
    """Re-send the signup confirmation email.

    Raises:
        AuthProviderError: The provider refused or could not be reached.
    """
    auth.resend_signup_confirmation(email, redirect_to=f"{app_url}/auth/callback?next=/dashboard")
    logger.info("verification_email_resent")


def reset_password(auth: AuthProviderBase, email: str, *, app_url: str) -> None:
    """Send a password recovery email.

    Raises:
        AuthRejectedError: With the normalized provider error.
    """
    try:
        auth.send_password_recovery(
            email.strip(), redirect_to=f"{app_url}/auth/callback?type=recovery"
        )
    except AuthProviderError as e:
        logger.warning("password_reset_rejected", error=e.message)
        raise AuthRejectedError(normalize_auth_error(e)) from e


def update_password(auth: AuthProviderBase, access_token: str, new_password: str) -> None:
    """Change the signed-in user's password.

    Raises:
        AuthRejectedError: With the normalized provider error.
    """
    try:
        auth.update_password(access_token, new_password)
    except AuthProviderError as e:
        logger.warning("password_update_rejected", error=e.message)
        raise AuthRejectedError(normalize_auth_error(e)) from e


# =============================================================================
# Preferences
# =============================================================================


def get_preferences(db: Session, user_id: UUID) -> PreferencesOut:
    completed = db.scalar(
        select(UserPreferences.has_completed_onboarding).where(UserPreferences.user_id == user_id)
    )
    return PreferencesOut(has_completed_onboarding=bool(completed))


def set_preferences(db: Session, user_id: UUID, has_completed_onboarding: bool) -> PreferencesOut:
    insert = dialect_insert(db)
    with transaction(db):
        stmt = insert(UserPreferences).values(
            user_id=user_id, has_completed_onboarding=has_completed_onboarding
        )
        db.execute(
            stmt.on_conflict_do_update(
                index_elements=["user_id"],
                set_={
                    "has_completed_onboarding": stmt.excluded.has_completed_onboarding,
                    "updated_at": func.now(),
                },
            )
        )
    return PreferencesOut(has_completed_onboarding=has_completed_onboarding)
