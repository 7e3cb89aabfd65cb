"""create_entitlement_tables

Create users, entitlements, verification_tokens, batch_access_passwords and
enrollments.

Revision ID: a7c1e0f2b934
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a7c1e0f2b934"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.VARCHAR(21), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("basic_mode", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "entitlements",
        sa.Column("id", sa.VARCHAR(21), primary_key=True),
        sa.Column(
            "user_id",
            sa.VARCHAR(21),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("granted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source", sa.String(20), nullable=False, server_default="admin"),
        sa.Column("granted_by", sa.VARCHAR(21), nullable=True),
        *_timestamps(),
    )
    # One grant per user; the upsert in the grant issuer targets this index
    op.create_index("ix_entitlements_user_id", "entitlements", ["user_id"], unique=True)
    op.create_index("ix_entitlements_expires_at", "entitlements", ["expires_at"])

    op.create_table(
        "verification_tokens",
        sa.Column("id", sa.VARCHAR(21), primary_key=True),
        sa.Column(
            "user_id",
            sa.VARCHAR(21),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("token", sa.String(255), nullable=False),
        sa.Column("code", sa.String(12), nullable=True),
        sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("code_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_verification_tokens_token", "verification_tokens", ["token"], unique=True)
    op.create_index("ix_verification_tokens_user_id", "verification_tokens", ["user_id"])
    op.create_index("ix_verification_tokens_code", "verification_tokens", ["code"])

    op.create_table(
        "batch_access_passwords",
        sa.Column("id", sa.VARCHAR(21), primary_key=True),
        sa.Column("batch_id", sa.String(64), nullable=False),
        sa.Column("password", sa.String(64), nullable=False),
        sa.Column("valid_hours", sa.Integer(), nullable=False, server_default="24"),
        sa.Column("max_uses", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("current_uses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_by", sa.VARCHAR(21), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("current_uses <= max_uses", name="batch_access_passwords_uses_check"),
    )
    op.create_index("ix_batch_access_passwords_batch_id", "batch_access_passwords", ["batch_id"])
    op.create_index("ix_batch_access_passwords_password", "batch_access_passwords", ["password"])

    op.create_table(
        "enrollments",
        sa.Column("id", sa.VARCHAR(21), primary_key=True),
        sa.Column(
            "user_id",
            sa.VARCHAR(21),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("batch_id", sa.String(64), nullable=False),
        sa.Column(
            "enrolled_via_password_id",
            sa.VARCHAR(21),
            sa.ForeignKey("batch_access_passwords.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("enrolled_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "batch_id", name="enrollments_user_batch_key"),
    )
    op.create_index("ix_enrollments_user_id", "enrollments", ["user_id"])
    op.create_index("ix_enrollments_batch_id", "enrollments", ["batch_id"])


def downgrade() -> None:
    op.drop_table("enrollments")
    op.drop_table("batch_access_passwords")
    op.drop_table("verification_tokens")
    op.drop_table("entitlements")
    op.drop_table("users")
