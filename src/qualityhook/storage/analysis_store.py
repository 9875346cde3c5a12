from __future__ import annotations

from datetime import datetime
from typing import Collection, List, Optional

from qualityhook.model import BranchType, CeTaskStatus
from qualityhook.storage.database import SqliteStore, format_timestamp, utcnow_iso
from qualityhook.storage.types import (
    BranchRow,
    CeActivityRow,
    ComponentRow,
    SnapshotRow,
)

REPORT_TASK_TYPE = "REPORT"


def _placeholders(values: Collection) -> str:
    return ", ".join("?" for _ in values)


class AnalysisStore(SqliteStore):
    """Read access to components, branches, analyses and compute-task records."""

    def select_components_by_uuids(
        self, uuids: Collection[str]
    ) -> List[ComponentRow]:
        if not uuids:
            return []
        uuids = list(uuids)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT uuid, kee AS key, name, root_uuid, main_branch_project_uuid
                FROM components
                WHERE uuid IN ({_placeholders(uuids)})
                """,
                uuids,
            ).fetchall()
        return [ComponentRow(**dict(row)) for row in rows]

    def select_branches_by_uuids(self, uuids: Collection[str]) -> List[BranchRow]:
        if not uuids:
            return []
        uuids = list(uuids)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT uuid, project_uuid, kee AS key, branch_type
                FROM project_branches
                WHERE uuid IN ({_placeholders(uuids)})
                """,
                uuids,
            ).fetchall()
        return [BranchRow(**dict(row)) for row in rows]

    def select_last_analyses_by_root_component_uuids(
        self, component_uuids: Collection[str]
    ) -> List[SnapshotRow]:
        if not component_uuids:
            return []
        component_uuids = list(component_uuids)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT uuid, component_uuid, status, islast, created_at
                FROM snapshots
                WHERE islast = 1
                  AND component_uuid IN ({_placeholders(component_uuids)})
                """,
                component_uuids,
            ).fetchall()
        return [SnapshotRow(**dict(row)) for row in rows]

    def select_ce_activity_by_uuid(self, ce_task_uuid: str) -> Optional[CeActivityRow]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT uuid, task_type, component_uuid, analysis_uuid, status,
                       is_last, submitted_at, executed_at
                FROM ce_activity
                WHERE uuid = ?
                """,
                (ce_task_uuid,),
            ).fetchone()
        if row is None:
            return None
        return CeActivityRow(**dict(row))

    def select_ce_activity_by_analysis_uuids(
        self, analysis_uuids: Collection[str]
    ) -> List[CeActivityRow]:
        if not analysis_uuids:
            return []
        analysis_uuids = list(analysis_uuids)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT uuid, task_type, component_uuid, analysis_uuid, status,
                       is_last, submitted_at, executed_at
                FROM ce_activity
                WHERE analysis_uuid IN ({_placeholders(analysis_uuids)})
                """,
                analysis_uuids,
            ).fetchall()
        return [CeActivityRow(**dict(row)) for row in rows]

    def upsert_component(
        self,
        *,
        uuid: str,
        key: str,
        name: str,
        root_uuid: Optional[str] = None,
        main_branch_project_uuid: Optional[str] = None,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO components (
                    uuid, kee, name, root_uuid, main_branch_project_uuid
                ) VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(uuid) DO UPDATE SET
                    kee = excluded.kee,
                    name = excluded.name,
                    root_uuid = excluded.root_uuid,
                    main_branch_project_uuid = excluded.main_branch_project_uuid
                """,
                (uuid, key, name, root_uuid or uuid, main_branch_project_uuid),
            )

    def upsert_branch(
        self, *, uuid: str, project_uuid: str, key: str, branch_type: BranchType
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO project_branches (uuid, project_uuid, kee, branch_type)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(uuid) DO UPDATE SET
                    project_uuid = excluded.project_uuid,
                    kee = excluded.kee,
                    branch_type = excluded.branch_type
                """,
                (uuid, project_uuid, key, BranchType(branch_type).value),
            )

    def insert_snapshot(
        self,
        *,
        uuid: str,
        component_uuid: str,
        created_at: datetime,
        status: str = "P",
    ) -> None:
        with self._connect() as conn:
            if status == "P":
                conn.execute(
                    "UPDATE snapshots SET islast = 0 WHERE component_uuid = ?",
                    (component_uuid,),
                )
            conn.execute(
                """
                INSERT INTO snapshots (uuid, component_uuid, status, islast, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    uuid,
                    component_uuid,
                    status,
                    status == "P",
                    format_timestamp(created_at),
                ),
            )

    def insert_ce_activity(
        self,
        *,
        uuid: str,
        component_uuid: Optional[str],
        status: CeTaskStatus,
        analysis_uuid: Optional[str] = None,
        task_type: str = REPORT_TASK_TYPE,
        submitted_at: Optional[datetime] = None,
    ) -> None:
        now = utcnow_iso()
        with self._connect() as conn:
            if component_uuid is not None:
                conn.execute(
                    """
                    UPDATE ce_activity SET is_last = 0
                    WHERE component_uuid = ? AND task_type = ?
                    """,
                    (component_uuid, task_type),
                )
            conn.execute(
                """
                INSERT INTO ce_activity (
                    uuid,
                    task_type,
                    component_uuid,
                    analysis_uuid,
                    status,
                    is_last,
                    submitted_at,
                    executed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(uuid) DO UPDATE SET
                    analysis_uuid = excluded.analysis_uuid,
                    status = excluded.status,
                    is_last = excluded.is_last,
                    executed_at = excluded.executed_at
                """,
                (
                    uuid,
                    task_type,
                    component_uuid,
                    analysis_uuid,
                    CeTaskStatus(status).value,
                    True,
                    format_timestamp(submitted_at) if submitted_at else now,
                    now,
                ),
            )
