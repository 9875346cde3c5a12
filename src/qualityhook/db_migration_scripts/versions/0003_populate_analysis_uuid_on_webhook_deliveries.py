"""Backfill analysis uuid of webhook deliveries from compute-task activity.

Revision ID: 0003_populate_analysis_uuid_on_webhook_deliveries
Revises: 0002_add_analysis_uuid_to_webhook_deliveries
Create Date: 2026-10-18 09:20:00
"""

from __future__ import annotations

from alembic import op

from qualityhook.storage.backfill import populate_analysis_uuid


# revision identifiers, used by Alembic.
revision = "0003_populate_analysis_uuid_on_webhook_deliveries"
down_revision = "0002_add_analysis_uuid_to_webhook_deliveries"
branch_labels = None
depends_on = None


def upgrade() -> None:
    populate_analysis_uuid(op.get_bind())


def downgrade() -> None:
    # deleted rows cannot be restored, filled values are harmless
    pass
