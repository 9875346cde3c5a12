"""Add analysis uuid column to webhook deliveries.

Revision ID: 0002_add_analysis_uuid_to_webhook_deliveries
Revises: 0001_initial
Create Date: 2026-10-18 09:10:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0002_add_analysis_uuid_to_webhook_deliveries"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("webhook_deliveries") as batch:
        batch.add_column(sa.Column("analysis_uuid", sa.String(), nullable=True))

    op.create_index(
        "idx_webhook_deliveries_analysis_uuid",
        "webhook_deliveries",
        ["analysis_uuid"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(
        "idx_webhook_deliveries_analysis_uuid", table_name="webhook_deliveries"
    )
    with op.batch_alter_table("webhook_deliveries") as batch:
        batch.drop_column("analysis_uuid")
