from __future__ import annotations

from typing import Dict, Optional

from qualityhook.storage.database import SqliteStore, utcnow_iso
from qualityhook.webhook.properties import MapConfiguration


class PropertyStore(SqliteStore):
    """Global and per-project settings, merged into one configuration per project."""

    def set_property(
        self, key: str, value: str, component_uuid: Optional[str] = None
    ) -> None:
        with self._connect() as conn:
            self._delete(conn, key, component_uuid)
            conn.execute(
                """
                INSERT INTO properties (prop_key, component_uuid, text_value, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (key, component_uuid, value, utcnow_iso()),
            )

    def delete_property(self, key: str, component_uuid: Optional[str] = None) -> int:
        with self._connect() as conn:
            return self._delete(conn, key, component_uuid)

    def global_properties(self) -> Dict[str, str]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT prop_key, text_value FROM properties
                WHERE component_uuid IS NULL
                """
            ).fetchall()
        return {row["prop_key"]: row["text_value"] for row in rows}

    def component_properties(self, component_uuid: str) -> Dict[str, str]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT prop_key, text_value FROM properties
                WHERE component_uuid = ?
                """,
                (component_uuid,),
            ).fetchall()
        return {row["prop_key"]: row["text_value"] for row in rows}

    def configuration_for(self, project_uuid: Optional[str]) -> MapConfiguration:
        values = self.global_properties()
        if project_uuid is not None:
            values.update(self.component_properties(project_uuid))
        return MapConfiguration(values)

    @staticmethod
    def _delete(conn, key: str, component_uuid: Optional[str]) -> int:
        if component_uuid is None:
            cursor = conn.execute(
                "DELETE FROM properties WHERE prop_key = ? AND component_uuid IS NULL",
                (key,),
            )
        else:
            cursor = conn.execute(
                "DELETE FROM properties WHERE prop_key = ? AND component_uuid = ?",
                (key, component_uuid),
            )
        return cursor.rowcount
