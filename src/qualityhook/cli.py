import logging
from typing import Optional

import typer
from tabulate import tabulate

from qualityhook.config import SETTINGS
from qualityhook.db_migrations import migrate_db
from qualityhook.logger import get_log_handlers
from qualityhook.storage import WebhookDeliveryStore


logging.basicConfig(
    format="%(asctime)s %(name)s %(levelname)s - %(message)s", level=logging.INFO
)
logger = logging.getLogger("qualityhook")

app = typer.Typer()


def _delivery_store() -> WebhookDeliveryStore:
    store = WebhookDeliveryStore(
        SETTINGS.DB_PATH, retention_count=SETTINGS.WEBHOOK_DELIVERY_RETENTION_COUNT
    )
    store.initialize()
    return store


@app.callback()
def init():
    logging.getLogger().setLevel(SETTINGS.log_level)
    logger.setLevel(SETTINGS.log_level)
    get_log_handlers(logger)


@app.command()
def serve(
    host: str = typer.Option(SETTINGS.HOST),
    port: int = typer.Option(SETTINGS.PORT),
    debug: bool = False,
):
    from qualityhook.web import create_app

    create_app().run(host=host, port=port, debug=debug, single_process=True)


@app.command()
def migrate(revision: str = "head"):
    applied = migrate_db(SETTINGS.DB_PATH, revision=revision)
    typer.echo(f"{SETTINGS.DB_PATH} is at revision {applied}")


@app.command()
def deliveries(
    project: Optional[str] = typer.Option(None, help="Project uuid"),
    task: Optional[str] = typer.Option(None, help="Compute task uuid"),
    limit: int = 20,
):
    if project is None and task is None:
        raise typer.BadParameter("Either --project or --task must be given")

    rows = _delivery_store().list_deliveries(
        project_uuid=project, ce_task_uuid=task, limit=limit
    )
    table = [
        (
            row.uuid,
            row.name,
            row.url,
            row.ce_task_uuid or "",
            row.http_status if row.http_status is not None else "",
            row.duration_ms if row.duration_ms is not None else "",
            "yes" if row.success else "no",
            row.created_at.isoformat(),
        )
        for row in rows
    ]
    typer.echo(
        tabulate(
            table,
            headers=("id", "name", "url", "task", "status", "ms", "success", "at"),
        )
    )


@app.command()
def purge(project_uuid: str):
    deleted = _delivery_store().purge(project_uuid)
    typer.echo(f"Deleted {deleted} delivery record(s) of project {project_uuid}")
