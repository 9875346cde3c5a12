from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Tuple

import aiohttp
import pydantic
from prometheus_client import core
from prometheus_client.exposition import CONTENT_TYPE_LATEST, generate_latest
from sanic import Request, Sanic, response
from sanic.exceptions import BadRequest, NotFound
from sanic.log import logger
import sanic.log

from qualityhook.config import SETTINGS, Settings
from qualityhook.issue.webhook import IssueChangeWebhook
from qualityhook.logger import get_log_handlers
from qualityhook.metric import error_counter, request_counter
from qualityhook.model import (
    BranchType,
    CeTaskStatus,
    ComponentRef,
    IssueChangeContext,
    IssueChangeSet,
    IssueRef,
    Model,
    ProjectAnalysis,
)
from qualityhook.posttask import (
    AnalysisReport,
    PostProjectAnalysisTasksExecutor,
    WebhookPostTask,
)
from qualityhook.storage import AnalysisStore, PropertyStore, WebhookDeliveryStore
from qualityhook.webhook.caller import WebhookCaller
from qualityhook.webhook.payload import WebhookPayloadFactory
from qualityhook.webhook.webhooks import WebHooks


logging.basicConfig(
    format="%(asctime)s %(name)s %(levelname)s - %(message)s", level=logging.INFO
)


class AnalysisFinishedRequest(AnalysisReport):
    all_steps_executed: bool = True
    main_branch_project_uuid: Optional[str] = None


class _IssueChangeRequest(Model):
    issues: Tuple[IssueRef, ...] = ()
    components: Tuple[ComponentRef, ...] = ()
    login: Optional[str] = None

    def change_set(self) -> IssueChangeSet:
        return IssueChangeSet(issues=self.issues, components=self.components)

    def context(self) -> IssueChangeContext:
        if self.login:
            return IssueChangeContext.user(self.login)
        return IssueChangeContext.scan()


class IssueTransitionRequest(_IssueChangeRequest):
    transition: Optional[str] = None


class IssueTypeRequest(_IssueChangeRequest):
    type: str


class SetSettingRequest(Model):
    key: str
    value: Optional[str] = None
    values: Optional[List[str]] = None
    component: Optional[str] = None

    @pydantic.model_validator(mode="after")
    def _one_value(self) -> "SetSettingRequest":
        if (self.value is None) == (self.values is None):
            raise ValueError("Exactly one of 'value' and 'values' must be provided")
        return self

    @property
    def text_value(self) -> str:
        if self.values is not None:
            return ",".join(v.strip() for v in self.values if v.strip())
        return self.value or ""


class ResetSettingRequest(Model):
    key: str
    component: Optional[str] = None


def _parse(model: type[Model], body: Any) -> Any:
    if not isinstance(body, Mapping):
        raise BadRequest("Expected a JSON object")
    try:
        return model.model_validate(body)
    except pydantic.ValidationError as e:
        raise BadRequest(str(e))


def configure_context(ctx, settings: Settings, session: aiohttp.ClientSession) -> None:
    ctx.settings = settings
    ctx.analysis_store = AnalysisStore(settings.DB_PATH)
    ctx.property_store = PropertyStore(settings.DB_PATH)
    ctx.delivery_store = WebhookDeliveryStore(
        settings.DB_PATH, retention_count=settings.WEBHOOK_DELIVERY_RETENTION_COUNT
    )
    # all stores share one database file
    ctx.analysis_store.initialize()

    payload_factory = WebhookPayloadFactory(settings.SERVER_BASE_URL)
    ctx.webhooks = WebHooks(
        WebhookCaller(session, timeout_seconds=settings.WEBHOOK_TIMEOUT_SECONDS),
        ctx.delivery_store,
    )
    ctx.post_analysis_executor = PostProjectAnalysisTasksExecutor(
        [
            WebhookPostTask(
                configuration_provider=ctx.property_store,
                payload_factory=payload_factory,
                webhooks=ctx.webhooks,
                analysis_store=ctx.analysis_store,
                settings=settings,
            )
        ]
    )
    ctx.issue_change_webhook = IssueChangeWebhook(
        analysis_store=ctx.analysis_store,
        webhooks=ctx.webhooks,
        configuration_provider=ctx.property_store,
        payload_factory=payload_factory,
        settings=settings,
    )


def record_analysis(store: AnalysisStore, report: AnalysisFinishedRequest) -> None:
    project = report.project
    branch = report.branch
    on_side_branch = (
        branch is not None
        and not branch.is_main
        and report.main_branch_project_uuid is not None
    )

    store.upsert_component(
        uuid=project.uuid,
        key=project.key,
        name=project.name,
        main_branch_project_uuid=(
            report.main_branch_project_uuid if on_side_branch else None
        ),
    )
    if branch is not None:
        store.upsert_branch(
            uuid=project.uuid,
            project_uuid=(
                report.main_branch_project_uuid if on_side_branch else project.uuid
            ),
            key=branch.name or project.key,
            branch_type=branch.type if on_side_branch else BranchType.LONG,
        )

    analysis_uuid = None
    if report.all_steps_executed and report.analysis is not None:
        analysis_uuid = report.analysis.uuid
        store.insert_snapshot(
            uuid=analysis_uuid,
            component_uuid=project.uuid,
            created_at=report.analysis.date,
        )
    store.insert_ce_activity(
        uuid=report.ce_task_id,
        component_uuid=project.uuid,
        analysis_uuid=analysis_uuid,
        status=(
            CeTaskStatus.SUCCESS if report.all_steps_executed else CeTaskStatus.FAILED
        ),
    )


async def process_analysis_finished(app, body: Any) -> Optional[ProjectAnalysis]:
    report = _parse(AnalysisFinishedRequest, body)
    record_analysis(app.ctx.analysis_store, report)
    logger.debug("Compute task %s finished", report.ce_task_id)
    return await app.ctx.post_analysis_executor.finished(
        report, report.all_steps_executed
    )


async def process_issue_transition(app, body: Any) -> int:
    change = _parse(IssueTransitionRequest, body)
    try:
        return await app.ctx.issue_change_webhook.on_transition(
            change.change_set(), change.transition, change.context()
        )
    except Exception:  # noqa: BLE001
        error_counter.labels(context="issue_transition").inc()
        logger.error("Exception raised when notifying issue transition", exc_info=True)
        return 0


async def process_issue_type_change(app, body: Any) -> int:
    change = _parse(IssueTypeRequest, body)
    try:
        return await app.ctx.issue_change_webhook.on_type_change(
            change.change_set(), change.type, change.context()
        )
    except Exception:  # noqa: BLE001
        error_counter.labels(context="issue_type_change").inc()
        logger.error("Exception raised when notifying issue type change", exc_info=True)
        return 0


def create_app(settings: Settings = SETTINGS) -> Sanic:
    app = Sanic("qualityhook")
    app.update_config(settings.model_dump())

    logging.getLogger().setLevel(settings.log_level)

    get_log_handlers(sanic.log.logger, settings)

    @app.listener("before_server_start")
    async def init(app, loop):
        logger.debug("Creating aiohttp session")
        app.ctx.aiohttp_session = aiohttp.ClientSession()
        configure_context(app.ctx, settings, app.ctx.aiohttp_session)

    @app.listener("after_server_stop")
    async def close(app, loop):
        await app.ctx.aiohttp_session.close()

    @app.on_request
    async def on_request(request: Request):
        if request.path == "/metrics":
            return
        request_counter.labels(path=request.path).inc()

    @app.get("/status")
    async def status(request):
        return response.text("ok")

    @app.get("/metrics")
    async def metrics(request):
        return response.raw(
            generate_latest(core.REGISTRY), content_type=CONTENT_TYPE_LATEST
        )

    @app.post("/api/ce/analysis_finished")
    async def analysis_finished(request):
        await process_analysis_finished(app, request.json)
        return response.empty(204)

    @app.post("/api/issues/do_transition")
    async def do_transition(request):
        await process_issue_transition(app, request.json)
        return response.empty(204)

    @app.post("/api/issues/set_type")
    async def set_type(request):
        await process_issue_type_change(app, request.json)
        return response.empty(204)

    @app.get("/api/webhooks/deliveries")
    async def deliveries(request):
        project_uuid = request.args.get("projectUuid")
        ce_task_uuid = request.args.get("ceTaskId")
        if project_uuid is None and ce_task_uuid is None:
            raise BadRequest("Either 'projectUuid' or 'ceTaskId' must be provided")
        rows = app.ctx.delivery_store.list_deliveries(
            project_uuid=project_uuid, ce_task_uuid=ce_task_uuid
        )
        return response.json(
            {"deliveries": [row.model_dump(mode="json", exclude={"payload"}) for row in rows]}
        )

    @app.get("/api/webhooks/delivery")
    async def delivery(request):
        delivery_uuid = request.args.get("deliveryId")
        if not delivery_uuid:
            raise BadRequest("Parameter 'deliveryId' is missing")
        row = app.ctx.delivery_store.get_delivery(delivery_uuid)
        if row is None:
            raise NotFound(f"Webhook delivery {delivery_uuid} not found")
        return response.json({"delivery": row.model_dump(mode="json")})

    @app.post("/api/settings/set")
    async def set_setting(request):
        setting = _parse(SetSettingRequest, request.json)
        app.ctx.property_store.set_property(
            setting.key, setting.text_value, component_uuid=setting.component
        )
        return response.empty(204)

    @app.post("/api/settings/reset")
    async def reset_setting(request):
        setting = _parse(ResetSettingRequest, request.json)
        app.ctx.property_store.delete_property(
            setting.key, component_uuid=setting.component
        )
        return response.empty(204)

    return app
