"""SQLAlchemy ORM models for Casefile.

Defines all database tables using SQLAlchemy 2.x declarative patterns.
Column types are the portable ones (Uuid, DateTime, Numeric) so the same
metadata backs PostgreSQL in deployment and SQLite in tests.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    Uuid,
    false,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Enums
# =============================================================================


class Difficulty(str, PyEnum):
    """How hard a case is to solve."""

    easy = "easy"
    medium = "medium"
    hard = "hard"


class MediaType(str, PyEnum):
    """Kinds of evidence attached to a case.

    video items point at an external host; the others live in private storage.
    """

    image = "image"
    document = "document"
    audio = "audio"
    video = "video"


def _enum_values(enum_cls: type[PyEnum]) -> list[str]:
    return [member.value for member in enum_cls]


# =============================================================================
# Models
# =============================================================================


class User(Base):
    """Application user row.

    The id matches the Supabase auth user id (sub claim). Rows are never
    hard-deleted by the application; account deletion sets is_deleted and
    deleted_at.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, server_default=false(), default=False, nullable=False
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    preferences: Mapped["UserPreferences | None"] = relationship(
        "UserPreferences", back_populates="user", uselist=False
    )

    __table_args__ = (Index("ix_users_email", "email"),)


class UserPreferences(Base):
    """Per-user UI preferences, one row per user."""

    __tablename__ = "user_preferences"

    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    has_completed_onboarding: Mapped[bool] = mapped_column(
        Boolean, server_default=false(), default=False, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    user: Mapped["User"] = relationship("User", back_populates="preferences")


class DetectiveCase(Base):
    """Catalog entry.

    The id is the stable slug used in URLs and is immutable once published.
    Rows are written by the seeding script only.
    """

    __tablename__ = "detective_cases"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    difficulty: Mapped[Difficulty] = mapped_column(
        Enum(Difficulty, name="case_difficulty", values_callable=_enum_values),
        nullable=False,
    )
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    media: Mapped[list["CaseMedia"]] = relationship(
        "CaseMedia",
        back_populates="detective_case",
        cascade="all, delete-orphan",
        order_by="CaseMedia.display_order",
    )

    __table_args__ = (CheckConstraint("price >= 0", name="ck_detective_cases_price"),)


class CaseMedia(Base):
    """Evidence item belonging to a case."""

    __tablename__ = "case_media"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    case_id: Mapped[str] = mapped_column(
        Text, ForeignKey("detective_cases.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    media_type: Mapped[MediaType] = mapped_column(
        Enum(MediaType, name="case_media_type", values_callable=_enum_values),
        nullable=False,
    )
    storage_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    cover_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    display_order: Mapped[int] = mapped_column(
        Integer, server_default="0", default=0, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    detective_case: Mapped["DetectiveCase"] = relationship(
        "DetectiveCase", back_populates="media"
    )

    __table_args__ = (
        CheckConstraint(
            "storage_path IS NOT NULL OR external_url IS NOT NULL",
            name="ck_case_media_has_source",
        ),
        Index("ix_case_media_case_order", "case_id", "display_order"),
    )


class UserPurchase(Base):
    """Proof that a user paid for a case.

    At most one row per (user_id, case_id); repeat purchases upsert over
    payment_id, amount, verified_at and notes.
    """

    __tablename__ = "user_purchases"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    case_id: Mapped[str] = mapped_column(
        Text, ForeignKey("detective_cases.id", ondelete="CASCADE"), nullable=False
    )
    payment_id: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "case_id", name="uq_user_purchases_user_case"),
        Index("ix_user_purchases_user_id", "user_id"),
    )
