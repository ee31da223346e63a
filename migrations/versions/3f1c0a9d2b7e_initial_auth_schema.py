"""initial_auth_schema

Revision ID: 3f1c0a9d2b7e
Revises:
Create Date: 2026-10-16 10:00:00.000000

Users, verification sessions and the audit tables.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "3f1c0a9d2b7e"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=21), nullable=False),
        sa.Column("wa_phone", sa.String(length=16), nullable=True),
        sa.Column("telegram_user_id", sa.String(length=64), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("username", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_wa_phone", "users", ["wa_phone"], unique=True)
    op.create_index("ix_users_telegram_user_id", "users", ["telegram_user_id"], unique=True)

    op.create_table(
        "auth_sessions",
        sa.Column("id", sa.String(length=21), nullable=False),
        sa.Column("channel", sa.String(length=20), nullable=False),
        sa.Column("phone", sa.String(length=16), nullable=True),
        sa.Column("token_hash", sa.String(length=255), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("state", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("session_token", sa.String(length=64), nullable=True),
        sa.Column("tg_chat_id", sa.String(length=64), nullable=True),
        sa.Column("tg_user_id", sa.String(length=64), nullable=True),
        sa.Column("user_id", sa.String(length=21), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_auth_sessions_lookup", "auth_sessions", ["phone", "channel", "state"])
    op.create_index("ix_auth_sessions_session_token", "auth_sessions", ["session_token"], unique=True)
    op.create_index("ix_auth_sessions_tg_chat_id", "auth_sessions", ["tg_chat_id"])

    op.create_table(
        "login_events",
        sa.Column("id", sa.String(length=21), nullable=False),
        sa.Column("user_id", sa.String(length=21), nullable=True),
        sa.Column("channel", sa.String(length=20), nullable=False),
        sa.Column("ip", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_login_events_user_id", "login_events", ["user_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=21), nullable=False),
        sa.Column("channel", sa.String(length=20), nullable=False),
        sa.Column("event", sa.String(length=64), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_event", "audit_logs", ["event"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_event", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_login_events_user_id", table_name="login_events")
    op.drop_table("login_events")
    op.drop_index("ix_auth_sessions_tg_chat_id", table_name="auth_sessions")
    op.drop_index("ix_auth_sessions_session_token", table_name="auth_sessions")
    op.drop_index("ix_auth_sessions_lookup", table_name="auth_sessions")
    op.drop_table("auth_sessions")
    op.drop_index("ix_users_telegram_user_id", table_name="users")
    op.drop_index("ix_users_wa_phone", table_name="users")
    op.drop_table("users")
