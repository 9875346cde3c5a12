from __future__ import annotations

from typing import Awaitable, Callable, Dict, Optional, Protocol, Sequence

import pydantic
from sanic.log import logger

from qualityhook.config import Settings
from qualityhook.metric import (
    error_counter,
    post_task_error_total,
    webhook_dispatch_total,
)
from qualityhook.model import (
    Analysis,
    AnalysisInfo,
    Branch,
    CeTask,
    CeTaskStatus,
    Model,
    Project,
    ProjectAnalysis,
    QualityGate,
)
from qualityhook.storage.analysis_store import AnalysisStore
from qualityhook.webhook.payload import WebhookPayloadFactory
from qualityhook.webhook.properties import Configuration
from qualityhook.webhook.webhooks import WebHooks

PostProjectAnalysisTask = Callable[[ProjectAnalysis], Awaitable[None]]


class ConfigurationProvider(Protocol):
    def configuration_for(self, project_uuid: Optional[str]) -> Configuration: ...


class AnalysisReport(Model):
    """What the compute tier knows once it finished processing an analysis report."""

    ce_task_id: str
    project: Project
    branch: Optional[Branch] = None
    analysis: Optional[AnalysisInfo] = None
    quality_gate: Optional[QualityGate] = None
    scanner_properties: Dict[str, str] = pydantic.Field(default_factory=dict)


def _task_name(task: PostProjectAnalysisTask) -> str:
    return getattr(task, "__qualname__", None) or type(task).__name__


class PostProjectAnalysisTasksExecutor:
    def __init__(self, tasks: Sequence[PostProjectAnalysisTask] = ()):
        self.tasks = list(tasks)

    def create_project_analysis(
        self, report: AnalysisReport, all_steps_executed: bool
    ) -> ProjectAnalysis:
        status = CeTaskStatus.SUCCESS if all_steps_executed else CeTaskStatus.FAILED
        return ProjectAnalysis(
            ce_task=CeTask(id=report.ce_task_id, status=status),
            project=report.project,
            branch=report.branch,
            analysis=report.analysis,
            quality_gate=report.quality_gate if status == CeTaskStatus.SUCCESS else None,
            scanner_properties=report.scanner_properties,
        )

    async def finished(
        self, report: AnalysisReport, all_steps_executed: bool
    ) -> Optional[ProjectAnalysis]:
        if not self.tasks:
            return None

        project_analysis = self.create_project_analysis(report, all_steps_executed)
        for task in self.tasks:
            try:
                await task(project_analysis)
            except Exception:  # noqa: BLE001
                name = _task_name(task)
                post_task_error_total.labels(task=name).inc()
                logger.error("Execution of task %s failed", name, exc_info=True)
        return project_analysis


class WebhookPostTask:
    """Post-analysis task notifying the project's webhooks of the task outcome."""

    def __init__(
        self,
        *,
        configuration_provider: ConfigurationProvider,
        payload_factory: WebhookPayloadFactory,
        webhooks: WebHooks,
        analysis_store: AnalysisStore,
        settings: Settings,
    ):
        self.configuration_provider = configuration_provider
        self.payload_factory = payload_factory
        self.webhooks = webhooks
        self.analysis_store = analysis_store
        self.settings = settings

    def _resolve_analysis_uuid(self, analysis: ProjectAnalysis) -> Optional[str]:
        activity = self.analysis_store.select_ce_activity_by_uuid(analysis.ce_task.id)
        if activity is not None and activity.analysis_uuid is not None:
            return activity.analysis_uuid
        if analysis.analysis is not None:
            return analysis.analysis.uuid
        return None

    async def __call__(self, analysis: ProjectAnalysis) -> None:
        if not self.settings.WEBHOOKS_ENABLED:
            webhook_dispatch_total.labels(trigger="analysis", result="disabled").inc()
            return

        analysis_uuid = self._resolve_analysis_uuid(analysis)
        if analysis_uuid is None:
            logger.debug(
                "Task %s of project %s produced no analysis",
                analysis.ce_task.id,
                analysis.project.key,
            )

        configuration = self.configuration_provider.configuration_for(
            analysis.project.uuid
        )
        try:
            await self.webhooks.send_project_analysis_update(
                configuration,
                Analysis(
                    project_uuid=analysis.project.uuid,
                    analysis_uuid=analysis_uuid,
                    ce_task_uuid=analysis.ce_task.id,
                ),
                lambda: self.payload_factory.create(analysis),
            )
        except Exception:
            error_counter.labels(context="analysis_webhooks").inc()
            webhook_dispatch_total.labels(trigger="analysis", result="error").inc()
            raise
        webhook_dispatch_total.labels(trigger="analysis", result="dispatched").inc()
