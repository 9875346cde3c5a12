"""Initial schema: settings, components, branches, analyses, task activity, deliveries.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "properties",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("prop_key", sa.String(), nullable=False),
        sa.Column("component_uuid", sa.String(), nullable=True),
        sa.Column("text_value", sa.Text(), nullable=True),
        sa.Column("created_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_properties_key_component",
        "properties",
        ["prop_key", "component_uuid"],
        unique=False,
    )

    op.create_table(
        "components",
        sa.Column("uuid", sa.String(), nullable=False),
        sa.Column("kee", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("root_uuid", sa.String(), nullable=False),
        sa.Column("main_branch_project_uuid", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("uuid"),
    )
    op.create_index(
        "idx_components_root_uuid", "components", ["root_uuid"], unique=False
    )

    op.create_table(
        "project_branches",
        sa.Column("uuid", sa.String(), nullable=False),
        sa.Column("project_uuid", sa.String(), nullable=False),
        sa.Column("kee", sa.String(), nullable=False),
        sa.Column("branch_type", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("uuid"),
    )
    op.create_index(
        "idx_project_branches_project_kee",
        "project_branches",
        ["project_uuid", "kee"],
        unique=True,
    )

    op.create_table(
        "snapshots",
        sa.Column("uuid", sa.String(), nullable=False),
        sa.Column("component_uuid", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("islast", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("uuid"),
    )
    op.create_index(
        "idx_snapshots_component_islast",
        "snapshots",
        ["component_uuid", "islast"],
        unique=False,
    )

    op.create_table(
        "ce_activity",
        sa.Column("uuid", sa.String(), nullable=False),
        sa.Column("task_type", sa.String(), nullable=False),
        sa.Column("component_uuid", sa.String(), nullable=True),
        sa.Column("analysis_uuid", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("is_last", sa.Boolean(), nullable=False),
        sa.Column("submitted_at", sa.String(), nullable=False),
        sa.Column("executed_at", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("uuid"),
    )
    op.create_index(
        "idx_ce_activity_analysis_uuid",
        "ce_activity",
        ["analysis_uuid"],
        unique=False,
    )

    op.create_table(
        "webhook_deliveries",
        sa.Column("uuid", sa.String(), nullable=False),
        sa.Column("project_uuid", sa.String(), nullable=False),
        sa.Column("ce_task_uuid", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("url", sa.String(), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("http_status", sa.Integer(), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("error_stacktrace", sa.Text(), nullable=True),
        sa.Column("created_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("uuid"),
    )
    op.create_index(
        "idx_webhook_deliveries_project_created_at",
        "webhook_deliveries",
        ["project_uuid", "created_at"],
        unique=False,
    )
    op.create_index(
        "idx_webhook_deliveries_ce_task_uuid",
        "webhook_deliveries",
        ["ce_task_uuid"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(
        "idx_webhook_deliveries_ce_task_uuid", table_name="webhook_deliveries"
    )
    op.drop_index(
        "idx_webhook_deliveries_project_created_at", table_name="webhook_deliveries"
    )
    op.drop_table("webhook_deliveries")
    op.drop_index("idx_ce_activity_analysis_uuid", table_name="ce_activity")
    op.drop_table("ce_activity")
    op.drop_index("idx_snapshots_component_islast", table_name="snapshots")
    op.drop_table("snapshots")
    op.drop_index("idx_project_branches_project_kee", table_name="project_branches")
    op.drop_table("project_branches")
    op.drop_index("idx_components_root_uuid", table_name="components")
    op.drop_table("components")
    op.drop_index("idx_properties_key_component", table_name="properties")
    op.drop_table("properties")
