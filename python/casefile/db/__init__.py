"""Database module for Casefile.

Provides engine creation, session management, transaction helpers, and ORM models.
"""

from casefile.db.models import (
    Base,
    CaseMedia,
    DetectiveCase,
    Difficulty,
    MediaType,
    User,
    UserPreferences,
    UserPurchase,
)
from casefile.db.session import create_db_engine, get_db, get_engine, transaction

__all__ = [
    # Engine and session
    "create_db_engine",
    "get_engine",
    "get_db",
    "transaction",
    # Base
    "Base",
    # Enums
    "Difficulty",
    "MediaType",
    # Models
    "User",
    "UserPreferences",
    "DetectiveCase",
    "CaseMedia",
    "UserPurchase",
]
