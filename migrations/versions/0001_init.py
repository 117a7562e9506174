"""Initial schema

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    conn = op.get_bind()
    dialect = conn.dialect.name if conn is not None else "sqlite"
    true_def = sa.text("TRUE") if dialect == "postgresql" else sa.text("1")
    false_def = sa.text("FALSE") if dialect == "postgresql" else sa.text("0")

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("login", sa.String(length=100), nullable=False, unique=True),
        sa.Column("firstname", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("lastname", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("api_key", sa.String(length=64), unique=True),
        sa.Column("admin", sa.Boolean(), nullable=False, server_default=false_def),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=true_def),
    )
    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("identifier", sa.String(length=100), nullable=False, unique=True),
    )
    op.create_table(
        "issue_statuses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=30), nullable=False, unique=True),
        sa.Column("description", sa.String(length=255)),
        sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=false_def),
        sa.Column("position", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("default_done_ratio", sa.Integer()),
    )
    op.create_table(
        "trackers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=30), nullable=False, unique=True),
        sa.Column("description", sa.String(length=255)),
        sa.Column("default_status_id", sa.Integer(), sa.ForeignKey("issue_statuses.id")),
        sa.Column("is_in_roadmap", sa.Boolean(), nullable=False, server_default=true_def),
        sa.Column("position", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("assignable", sa.Boolean(), nullable=False, server_default=true_def),
        sa.Column("issues_visibility", sa.String(length=30), nullable=False, server_default="default"),
        sa.Column("permissions", sa.JSON()),
    )
    op.create_table(
        "enumerations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=30), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=false_def),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=true_def),
    )
    op.create_index("ix_enumerations_type", "enumerations", ["type"])
    op.create_table(
        "issues",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id")),
        sa.Column("tracker_id", sa.Integer(), sa.ForeignKey("trackers.id"), nullable=False),
        sa.Column("status_id", sa.Integer(), sa.ForeignKey("issue_statuses.id"), nullable=False),
        sa.Column("priority_id", sa.Integer(), sa.ForeignKey("enumerations.id")),
        sa.Column("subject", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("author_id", sa.Integer(), sa.ForeignKey("users.id")),
        sa.Column("created_on", sa.DateTime()),
        sa.Column("updated_on", sa.DateTime()),
        sa.Column("closed_on", sa.DateTime()),
    )
    op.create_table(
        "journals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("journalized_id", sa.Integer(), sa.ForeignKey("issues.id"), nullable=False),
        sa.Column("journalized_type", sa.String(length=30), nullable=False, server_default="Issue"),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id")),
        sa.Column("updated_by_id", sa.Integer(), sa.ForeignKey("users.id")),
        sa.Column("notes", sa.Text()),
        sa.Column("details", sa.JSON()),
        sa.Column("created_on", sa.DateTime()),
        sa.Column("updated_on", sa.DateTime()),
    )
    op.create_index("ix_journals_journalized_id", "journals", ["journalized_id"])
    op.create_table(
        "issue_relations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("issue_from_id", sa.Integer(), sa.ForeignKey("issues.id"), nullable=False),
        sa.Column("issue_to_id", sa.Integer(), sa.ForeignKey("issues.id"), nullable=False),
        sa.Column("relation_type", sa.String(length=30), nullable=False, server_default="relates"),
        sa.Column("delay", sa.Integer()),
    )
    op.create_table(
        "attachments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("container_id", sa.Integer()),
        sa.Column("container_type", sa.String(length=30)),
        sa.Column("filename", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("filesize", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("content_type", sa.String(length=255)),
        sa.Column("digest", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("token", sa.String(length=80)),
        sa.Column("description", sa.String(length=255)),
        sa.Column("author_id", sa.Integer(), sa.ForeignKey("users.id")),
        sa.Column("created_on", sa.DateTime()),
    )
    op.create_table(
        "custom_fields",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("field_format", sa.String(length=30), nullable=False),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=false_def),
        sa.Column("position", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_for_all", sa.Boolean(), nullable=False, server_default=false_def),
        sa.Column("is_filter", sa.Boolean(), nullable=False, server_default=false_def),
        sa.Column("searchable", sa.Boolean(), nullable=False, server_default=false_def),
        sa.Column("visible", sa.Boolean(), nullable=False, server_default=true_def),
        sa.Column("editable", sa.Boolean(), nullable=False, server_default=true_def),
        sa.Column("multiple", sa.Boolean(), nullable=False, server_default=false_def),
        sa.Column("default_value", sa.Text()),
        sa.Column("possible_values", sa.JSON()),
        sa.Column("role_ids", sa.JSON()),
        sa.Column("tracker_ids", sa.JSON()),
        sa.Column("project_ids", sa.JSON()),
        sa.Column("format_store", sa.JSON()),
    )
    op.create_table(
        "custom_field_enumerations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("custom_field_id", sa.Integer(), sa.ForeignKey("custom_fields.id"), nullable=False),
        sa.Column("name", sa.String(length=60), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=true_def),
        sa.Column("position", sa.Integer(), nullable=False, server_default="1"),
    )


def downgrade() -> None:
    for table in (
        "custom_field_enumerations",
        "custom_fields",
        "attachments",
        "issue_relations",
        "journals",
        "issues",
        "enumerations",
        "roles",
        "trackers",
        "issue_statuses",
        "projects",
        "users",
    ):
        op.drop_table(table)
