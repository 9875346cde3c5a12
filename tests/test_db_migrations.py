import sqlite3

import sqlalchemy as sa

from qualityhook.db_migrations import current_revision, migrate_db
from qualityhook.storage.backfill import populate_analysis_uuid

HEAD = "0003_populate_analysis_uuid_on_webhook_deliveries"
BEFORE_BACKFILL = "0002_add_analysis_uuid_to_webhook_deliveries"


def insert_activity(conn, uuid: str, analysis_uuid: str | None):
    conn.execute(
        """
        INSERT INTO ce_activity (
            uuid, task_type, component_uuid, analysis_uuid, status, is_last,
            submitted_at
        ) VALUES (?, 'REPORT', 'p1', ?, 'SUCCESS', 1, '2026-10-18T09:00:00.000000Z')
        """,
        (uuid, analysis_uuid),
    )


def insert_delivery(conn, uuid: str, ce_task_uuid: str | None, analysis_uuid=None):
    conn.execute(
        """
        INSERT INTO webhook_deliveries (
            uuid, project_uuid, ce_task_uuid, analysis_uuid, name, url, success,
            payload, created_at
        ) VALUES (?, 'p1', ?, ?, 'ci', 'http://hooks.example.com', 1, '{}',
                  '2026-10-18T09:00:00.000000Z')
        """,
        (uuid, ce_task_uuid, analysis_uuid),
    )


def seed_legacy_deliveries(db_path):
    with sqlite3.connect(str(db_path)) as conn:
        insert_activity(conn, "task-1", "a1")
        insert_activity(conn, "task-2", None)
        insert_delivery(conn, "d1", "task-1")
        insert_delivery(conn, "d2", "task-2")
        insert_delivery(conn, "d3", "task-unknown")
        insert_delivery(conn, "d4", None)
        insert_delivery(conn, "d5", "task-2", analysis_uuid="a-kept")


def delivery_analysis_uuids(db_path):
    with sqlite3.connect(str(db_path)) as conn:
        return dict(
            conn.execute(
                "SELECT uuid, analysis_uuid FROM webhook_deliveries ORDER BY uuid"
            ).fetchall()
        )


def test_migrate_db_runs_from_packaged_scripts(tmp_path, monkeypatch):
    db_path = tmp_path / "runtime" / "qualityhook.sqlite3"
    monkeypatch.chdir(tmp_path)

    assert migrate_db(db_path, revision="head") == HEAD

    with sqlite3.connect(str(db_path)) as conn:
        tables = {
            row[0]
            for row in conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
        }
        revision = conn.execute("SELECT version_num FROM alembic_version").fetchone()[0]
        columns = {
            row[1]: row
            for row in conn.execute("PRAGMA table_info(webhook_deliveries)").fetchall()
        }

    assert {
        "properties",
        "components",
        "project_branches",
        "snapshots",
        "ce_activity",
        "webhook_deliveries",
    } <= tables
    assert revision == HEAD
    # deliveries of tasks without an analysis keep a null analysis uuid
    assert columns["analysis_uuid"][3] == 0


def test_migrate_db_is_idempotent(tmp_path):
    db_path = tmp_path / "qualityhook.sqlite3"
    assert current_revision(db_path) is None
    assert migrate_db(db_path) == HEAD
    assert migrate_db(db_path) == HEAD
    assert current_revision(db_path) == HEAD


def test_migrate_db_to_intermediate_revision(tmp_path):
    db_path = tmp_path / "qualityhook.sqlite3"
    assert migrate_db(db_path, revision=BEFORE_BACKFILL) == BEFORE_BACKFILL
    assert migrate_db(db_path) == HEAD


def test_backfill_resolves_or_deletes_rows(tmp_path):
    db_path = tmp_path / "qualityhook.sqlite3"
    migrate_db(db_path, revision=BEFORE_BACKFILL)
    seed_legacy_deliveries(db_path)

    engine = sa.create_engine(f"sqlite:///{db_path}")
    try:
        with engine.begin() as conn:
            assert populate_analysis_uuid(conn) == 3
        with engine.begin() as conn:
            assert populate_analysis_uuid(conn) == 0
    finally:
        engine.dispose()

    assert delivery_analysis_uuids(db_path) == {"d1": "a1", "d5": "a-kept"}


def test_upgrade_to_head_backfills(tmp_path):
    db_path = tmp_path / "qualityhook.sqlite3"
    migrate_db(db_path, revision=BEFORE_BACKFILL)
    seed_legacy_deliveries(db_path)

    migrate_db(db_path)

    assert delivery_analysis_uuids(db_path) == {"d1": "a1", "d5": "a-kept"}

    with sqlite3.connect(str(db_path)) as conn:
        insert_delivery(conn, "d6", "task-2", analysis_uuid=None)
    assert delivery_analysis_uuids(db_path)["d6"] is None
