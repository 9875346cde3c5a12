from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.engine import Connection


def populate_analysis_uuid(conn: Connection) -> int:
    """Fill ``webhook_deliveries.analysis_uuid`` from the compute-task records.

    Rows whose task cannot be resolved to an analysis are deleted. Safe to run
    again on an already migrated table. Returns the number of deleted rows.
    """
    conn.execute(
        sa.text(
            """
            UPDATE webhook_deliveries
            SET analysis_uuid = (
                SELECT ce_activity.analysis_uuid
                FROM ce_activity
                WHERE ce_activity.uuid = webhook_deliveries.ce_task_uuid
            )
            WHERE analysis_uuid IS NULL
              AND ce_task_uuid IS NOT NULL
            """
        )
    )
    result = conn.execute(
        sa.text("DELETE FROM webhook_deliveries WHERE analysis_uuid IS NULL")
    )
    return result.rowcount
