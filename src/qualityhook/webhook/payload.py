from __future__ import annotations

from datetime import datetime, timezone
import json
from typing import Any, Callable, Dict, Mapping
from urllib.parse import quote_plus

from qualityhook.model import (
    Branch,
    BranchType,
    CeTask,
    EvaluationStatus,
    Project,
    ProjectAnalysis,
    QualityGate,
    WebhookPayload,
)
from qualityhook.webhook.properties import ANALYSIS_PROPERTY_PREFIX


def format_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S%z")


def _encode(value: str) -> str:
    return quote_plus(value, encoding="utf-8")


def _without_none(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


class WebhookPayloadFactory:
    """Serializes a :class:`ProjectAnalysis` into the JSON body POSTed to webhooks.

    Output depends only on the analysis, the public server URL and the clock,
    which is only consulted when the analysis carries no date.
    """

    def __init__(
        self,
        server_url: str,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.server_url = server_url.rstrip("/")
        self.clock = clock

    def create(self, analysis: ProjectAnalysis) -> WebhookPayload:
        body: Dict[str, Any] = {"serverUrl": self.server_url}
        body.update(self._task(analysis.ce_task))
        body.update(self._dates(analysis))
        body["project"] = self._project(analysis.project)
        if analysis.branch is not None:
            body["branch"] = self._branch(analysis.project, analysis.branch)
        if analysis.quality_gate is not None:
            body["qualityGate"] = self._quality_gate(analysis.quality_gate)
        body["properties"] = self._analysis_properties(analysis.scanner_properties)

        return WebhookPayload(
            project_key=analysis.project.key,
            json_body=json.dumps(body, separators=(",", ":")),
        )

    @staticmethod
    def _task(ce_task: CeTask) -> Dict[str, Any]:
        return {"taskId": ce_task.id, "status": ce_task.status.value}

    def _dates(self, analysis: ProjectAnalysis) -> Dict[str, Any]:
        dates: Dict[str, Any] = {}
        analysis_date = analysis.analysis_date
        if analysis_date is not None:
            dates["analysedAt"] = format_datetime(analysis_date)
            dates["changedAt"] = format_datetime(analysis_date)
        else:
            dates["changedAt"] = format_datetime(self.clock())
        return dates

    def _project(self, project: Project) -> Dict[str, Any]:
        return {
            "key": project.key,
            "name": project.name,
            "url": self.project_url(project),
        }

    def _branch(self, project: Project, branch: Branch) -> Dict[str, Any]:
        return _without_none(
            {
                "name": branch.name,
                "type": branch.type.value,
                "isMain": branch.is_main,
                "url": self.branch_url(project, branch),
            }
        )

    @staticmethod
    def _quality_gate(gate: QualityGate) -> Dict[str, Any]:
        conditions = []
        for condition in gate.conditions:
            item: Dict[str, Any] = {
                "metric": condition.metric_key,
                "operator": condition.operator.value,
            }
            if condition.status != EvaluationStatus.NO_VALUE:
                item["value"] = condition.value
            item["status"] = condition.status.value
            item["onLeakPeriod"] = condition.on_leak_period
            item["errorThreshold"] = condition.error_threshold
            item["warningThreshold"] = condition.warning_threshold
            conditions.append(_without_none(item))

        return {
            "name": gate.name,
            "status": gate.status.value,
            "conditions": conditions,
        }

    @staticmethod
    def _analysis_properties(properties: Mapping[str, str]) -> Dict[str, str]:
        # scanner context may hold credentials, only the analysis namespace leaves
        return {
            key: value
            for key, value in properties.items()
            if key.startswith(ANALYSIS_PROPERTY_PREFIX)
        }

    def project_url(self, project: Project) -> str:
        return f"{self.server_url}/project/dashboard?id={_encode(project.key)}"

    def branch_url(self, project: Project, branch: Branch) -> str:
        branch_name = _encode(branch.name or "")
        if branch.type == BranchType.LONG:
            if branch.is_main:
                return self.project_url(project)
            return (
                f"{self.server_url}/project/dashboard"
                f"?branch={branch_name}&id={_encode(project.key)}"
            )
        return (
            f"{self.server_url}/project/issues"
            f"?branch={branch_name}&id={_encode(project.key)}&resolved=false"
        )
