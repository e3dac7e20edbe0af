"""Initial schema - users, user_preferences, detective_cases, case_media, user_purchases

Revision ID: 0001
Revises:
Create Date: 2026-10-19

users.id is the Supabase auth user id. user_purchases.user_id carries no
foreign key: purchases are recorded for auth users whether or not their
users row has been bootstrapped yet.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    case_difficulty = sa.Enum("easy", "medium", "hard", name="case_difficulty")
    case_media_type = sa.Enum("image", "document", "audio", "video", name="case_media_type")

    # ==========================================================================
    # users table
    # ==========================================================================
    op.create_table(
        "users",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("is_deleted", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"])

    # ==========================================================================
    # user_preferences table (one row per user)
    # ==========================================================================
    op.create_table(
        "user_preferences",
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column(
            "has_completed_onboarding", sa.Boolean(), server_default="false", nullable=False
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("user_id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )

    # ==========================================================================
    # detective_cases table (catalog, written by scripts/seed_cases.py)
    # ==========================================================================
    op.create_table(
        "detective_cases",
        sa.Column("id", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("difficulty", case_difficulty, nullable=False),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("price >= 0", name="ck_detective_cases_price"),
    )

    # ==========================================================================
    # case_media table (evidence items)
    # ==========================================================================
    op.create_table(
        "case_media",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("case_id", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("media_type", case_media_type, nullable=False),
        sa.Column("storage_path", sa.Text(), nullable=True),
        sa.Column("external_url", sa.Text(), nullable=True),
        sa.Column("cover_image_url", sa.Text(), nullable=True),
        sa.Column("display_order", sa.Integer(), server_default="0", nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["case_id"], ["detective_cases.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "storage_path IS NOT NULL OR external_url IS NOT NULL",
            name="ck_case_media_has_source",
        ),
    )
    op.create_index("ix_case_media_case_order", "case_media", ["case_id", "display_order"])

    # ==========================================================================
    # user_purchases table (one row per user and case)
    # ==========================================================================
    op.create_table(
        "user_purchases",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("case_id", sa.Text(), nullable=False),
        sa.Column("payment_id", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("verified_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["case_id"], ["detective_cases.id"], ondelete="CASCADE"),
        # Upserts conflict on this pair
        sa.UniqueConstraint("user_id", "case_id", name="uq_user_purchases_user_case"),
    )
    op.create_index("ix_user_purchases_user_id", "user_purchases", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_user_purchases_user_id", table_name="user_purchases")
    op.drop_table("user_purchases")
    op.drop_index("ix_case_media_case_order", table_name="case_media")
    op.drop_table("case_media")
    op.drop_table("detective_cases")
    op.drop_table("user_preferences")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    sa.Enum(name="case_media_type").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="case_difficulty").drop(op.get_bind(), checkfirst=True)
