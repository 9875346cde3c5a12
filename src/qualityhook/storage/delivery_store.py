from __future__ import annotations

from pathlib import Path
from typing import List, Optional
import uuid

from sanic.log import logger

from qualityhook.metric import webhook_delivery_pruned_total
from qualityhook.model import WebhookDelivery
from qualityhook.storage.database import SqliteStore, format_timestamp
from qualityhook.storage.types import WebhookDeliveryRow

MAX_ERROR_LENGTH = 4000

_LIST_COLUMNS = """
    uuid,
    project_uuid,
    ce_task_uuid,
    analysis_uuid,
    name,
    url,
    success,
    http_status,
    duration_ms,
    error_stacktrace,
    created_at
"""


class WebhookDeliveryStore(SqliteStore):
    def __init__(self, db_path: str | Path, retention_count: int = 10):
        super().__init__(db_path)
        self.retention_count = max(1, retention_count)

    def persist(self, delivery: WebhookDelivery) -> str:
        delivery_uuid = uuid.uuid4().hex
        webhook = delivery.webhook
        error = delivery.error_message
        if error is not None:
            error = error[:MAX_ERROR_LENGTH]

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO webhook_deliveries (
                    uuid,
                    project_uuid,
                    ce_task_uuid,
                    analysis_uuid,
                    name,
                    url,
                    success,
                    http_status,
                    duration_ms,
                    payload,
                    error_stacktrace,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    delivery_uuid,
                    webhook.project_uuid,
                    webhook.ce_task_uuid,
                    webhook.analysis_uuid,
                    webhook.name,
                    webhook.url,
                    delivery.success,
                    delivery.http_status,
                    delivery.duration_ms,
                    delivery.payload.json_body,
                    error,
                    format_timestamp(delivery.at),
                ),
            )
        return delivery_uuid

    def purge(self, project_uuid: str) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                DELETE FROM webhook_deliveries
                WHERE project_uuid = ?
                  AND uuid NOT IN (
                    SELECT uuid FROM webhook_deliveries
                    WHERE project_uuid = ?
                    ORDER BY created_at DESC, rowid DESC
                    LIMIT ?
                  )
                """,
                (project_uuid, project_uuid, self.retention_count),
            )
            count = cursor.rowcount

        if count > 0:
            webhook_delivery_pruned_total.inc(count)
            logger.debug(
                "Purged %d webhook deliveries of project %s", count, project_uuid
            )
        return count

    def list_deliveries(
        self,
        *,
        project_uuid: Optional[str] = None,
        ce_task_uuid: Optional[str] = None,
        limit: int = 100,
    ) -> List[WebhookDeliveryRow]:
        clauses = []
        params: list = []
        if project_uuid is not None:
            clauses.append("project_uuid = ?")
            params.append(project_uuid)
        if ce_task_uuid is not None:
            clauses.append("ce_task_uuid = ?")
            params.append(ce_task_uuid)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(max(1, limit))

        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {_LIST_COLUMNS}
                FROM webhook_deliveries
                {where}
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                params,
            ).fetchall()
        return [WebhookDeliveryRow(**dict(row)) for row in rows]

    def get_delivery(self, delivery_uuid: str) -> Optional[WebhookDeliveryRow]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_LIST_COLUMNS}, payload FROM webhook_deliveries WHERE uuid = ?",
                (delivery_uuid,),
            ).fetchone()
        if row is None:
            return None
        return WebhookDeliveryRow(**dict(row))

    def count(self, project_uuid: Optional[str] = None) -> int:
        with self._connect() as conn:
            if project_uuid is None:
                row = conn.execute("SELECT COUNT(*) FROM webhook_deliveries").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) FROM webhook_deliveries WHERE project_uuid = ?",
                    (project_uuid,),
                ).fetchone()
        return int(row[0])
