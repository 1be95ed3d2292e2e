"""create users, provider_keys and rotation_settings

Revision ID: 3f2a9c1d7e40
Revises:
Create Date: 2026-10-18 09:12:44.318205

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f2a9c1d7e40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("username", sa.String(length=255), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False),
        sa.Column("plan_type", sa.String(length=32), nullable=False),
        sa.Column("plan_status", sa.String(length=32), nullable=False),
        sa.Column("plan_expiry", sa.DateTime(timezone=True), nullable=True),
        sa.Column("daily_video_limit", sa.Integer(), nullable=True),
        sa.Column("bulk_max_prompts", sa.Integer(), nullable=True),
        sa.Column("bulk_max_batch", sa.Integer(), nullable=True),
        sa.Column("bulk_delay_seconds", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_username"), "users", ["username"], unique=True)

    op.create_table(
        "provider_keys",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("label", sa.String(length=255), nullable=False),
        sa.Column("secret", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("units_used", sa.Integer(), nullable=False),
        sa.Column("units_limit", sa.Integer(), nullable=False),
        sa.Column("error_count", sa.Integer(), nullable=False),
        sa.Column("success_count", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("provider", "secret", name="uq_provider_keys_provider_secret"),
    )
    op.create_index(op.f("ix_provider_keys_provider"), "provider_keys", ["provider"], unique=False)

    op.create_table(
        "rotation_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("rotation_enabled", sa.Boolean(), nullable=False),
        sa.Column("rotation_interval_minutes", sa.Integer(), nullable=False),
        sa.Column("max_requests_per_token", sa.Integer(), nullable=False),
        sa.Column("videos_per_batch", sa.Integer(), nullable=False),
        sa.Column("batch_delay_seconds", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("rotation_settings")
    op.drop_index(op.f("ix_provider_keys_provider"), table_name="provider_keys")
    op.drop_table("provider_keys")
    op.drop_index(op.f("ix_users_username"), table_name="users")
    op.drop_table("users")
