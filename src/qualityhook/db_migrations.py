from __future__ import annotations

from contextlib import ExitStack
from importlib import resources
from pathlib import Path
from typing import Optional

from alembic import command as alembic_command
from alembic.config import Config as AlembicConfig
from alembic.runtime.migration import MigrationContext
import sqlalchemy as sa
from sqlalchemy.pool import NullPool
from sanic.log import logger


_MIGRATIONS_PACKAGE = "qualityhook.db_migration_scripts"


def _database_url(db_path: Path) -> str:
    return f"sqlite:///{db_path}"


def _build_alembic_config(db_path: Path, script_location: Path) -> AlembicConfig:
    alembic_cfg = AlembicConfig()
    alembic_cfg.set_main_option("script_location", str(script_location))
    alembic_cfg.set_main_option("sqlalchemy.url", _database_url(db_path))
    return alembic_cfg


def current_revision(path: str | Path) -> Optional[str]:
    engine = sa.create_engine(_database_url(Path(path)), poolclass=NullPool)
    try:
        with engine.connect() as conn:
            return MigrationContext.configure(conn).get_current_revision()
    finally:
        engine.dispose()


def migrate_db(path: str | Path, revision: str = "head") -> Optional[str]:
    """Upgrade the database at ``path`` and return the revision it ends up at."""
    db_path = Path(path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    before = current_revision(db_path)
    with ExitStack() as stack:
        script_location = stack.enter_context(
            resources.as_file(resources.files(_MIGRATIONS_PACKAGE))
        )
        alembic_cfg = _build_alembic_config(db_path, script_location)
        alembic_command.upgrade(alembic_cfg, revision)

    after = current_revision(db_path)
    if after != before:
        logger.info("Database %s migrated from %s to %s", db_path, before, after)
    else:
        logger.debug("Database %s already at revision %s", db_path, after)
    return after
