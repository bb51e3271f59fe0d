"""access control core tables

Revision ID: 202610170001
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "202610170001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_created_at", "users", ["created_at"])

    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_groups_name", "groups", ["name"], unique=True)
    op.create_index("ix_groups_created_at", "groups", ["created_at"])

    op.create_table(
        "tokens",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tokens_name", "tokens", ["name"], unique=True)
    op.create_index("ix_tokens_created_at", "tokens", ["created_at"])

    op.create_table(
        "users_groups",
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["group_id"], ["groups.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("group_id", "user_id"),
    )
    op.create_index("ix_users_groups_user_id", "users_groups", ["user_id"])

    op.create_table(
        "group_token_permissions",
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("token_id", sa.Integer(), nullable=False),
        sa.Column("permission_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["group_id"], ["groups.id"]),
        sa.ForeignKeyConstraint(["token_id"], ["tokens.id"]),
        sa.PrimaryKeyConstraint("group_id", "token_id"),
    )
    op.create_index("ix_group_token_permissions_token_id", "group_token_permissions", ["token_id"])

    op.create_table(
        "user_token_permissions",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("token_id", sa.Integer(), nullable=False),
        sa.Column("permission_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["token_id"], ["tokens.id"]),
        sa.PrimaryKeyConstraint("user_id", "token_id"),
    )
    op.create_index("ix_user_token_permissions_token_id", "user_token_permissions", ["token_id"])

    op.create_table(
        "post_tokens",
        sa.Column("token_id", sa.Integer(), nullable=False),
        sa.Column("post_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("token_id", "post_id"),
    )
    op.create_index("ix_post_tokens_post_id", "post_tokens", ["post_id"])

    op.create_table(
        "event_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("message", sa.String(), nullable=False),
        sa.Column("severity", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_event_log_ts", "event_log", ["ts"])
    op.create_index("ix_event_log_severity", "event_log", ["severity"])
    op.create_index("ix_event_log_category", "event_log", ["category"])
    op.create_index("ix_event_log_source", "event_log", ["source"])


def downgrade() -> None:
    op.drop_index("ix_event_log_source", table_name="event_log")
    op.drop_index("ix_event_log_category", table_name="event_log")
    op.drop_index("ix_event_log_severity", table_name="event_log")
    op.drop_index("ix_event_log_ts", table_name="event_log")
    op.drop_table("event_log")

    op.drop_index("ix_post_tokens_post_id", table_name="post_tokens")
    op.drop_table("post_tokens")

    op.drop_index("ix_user_token_permissions_token_id", table_name="user_token_permissions")
    op.drop_table("user_token_permissions")

    op.drop_index("ix_group_token_permissions_token_id", table_name="group_token_permissions")
    op.drop_table("group_token_permissions")

    op.drop_index("ix_users_groups_user_id", table_name="users_groups")
    op.drop_table("users_groups")

    op.drop_index("ix_tokens_created_at", table_name="tokens")
    op.drop_index("ix_tokens_name", table_name="tokens")
    op.drop_table("tokens")

    op.drop_index("ix_groups_created_at", table_name="groups")
    op.drop_index("ix_groups_name", table_name="groups")
    op.drop_table("groups")

    op.drop_index("ix_users_created_at", table_name="users")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")
