"""Pydantic schemas for request/response models.

All schemas are re-exported here for convenient imports.
"""

from casefile.schemas.account import (
    PasswordResetRequest,
    PasswordUpdateRequest,
    PreferencesOut,
    PreferencesUpdateRequest,
)
from casefile.schemas.cases import AccessOut, CaseMediaOut, CaseOut, MediaWithUrlOut
from casefile.schemas.checkout import (
    CaptureOrderRequest,
    CheckoutAttemptOut,
    CreateOrderOut,
    CreateOrderRequest,
)

__all__ = [
    "AccessOut",
    "CaptureOrderRequest",
    "CaseMediaOut",
    "CaseOut",
    "CheckoutAttemptOut",
    "CreateOrderOut",
    "CreateOrderRequest",
    "MediaWithUrlOut",
    "PasswordResetRequest",
    "PasswordUpdateRequest",
    "PreferencesOut",
    "PreferencesUpdateRequest",
]
