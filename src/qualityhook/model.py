from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

import pydantic
from pydantic.alias_generators import to_camel


class Model(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(
        extra="forbid",
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class CeTaskStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class BranchType(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class QualityGateStatus(str, Enum):
    OK = "OK"
    WARN = "WARN"
    ERROR = "ERROR"


class Operator(str, Enum):
    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    GREATER_THAN = "GREATER_THAN"
    LESS_THAN = "LESS_THAN"


class EvaluationStatus(str, Enum):
    NO_VALUE = "NO_VALUE"
    OK = "OK"
    WARN = "WARN"
    ERROR = "ERROR"


class CeTask(Model):
    id: str
    status: CeTaskStatus


class Project(Model):
    uuid: str
    key: str
    name: str


class Branch(Model):
    is_main: bool
    name: Optional[str] = None
    type: BranchType


class Condition(Model):
    status: EvaluationStatus
    metric_key: str
    operator: Operator
    error_threshold: Optional[str] = None
    warning_threshold: Optional[str] = None
    on_leak_period: bool = False
    value: Optional[str] = None

    @pydantic.model_validator(mode="before")
    @classmethod
    def _drop_value_without_measure(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and data.get("status") in (
            EvaluationStatus.NO_VALUE,
            EvaluationStatus.NO_VALUE.value,
        ):
            data = {k: v for k, v in data.items() if k != "value"}
        return data

    @pydantic.model_validator(mode="after")
    def _check_thresholds_and_value(self) -> "Condition":
        if self.error_threshold is None and self.warning_threshold is None:
            raise ValueError(
                "At least one of error_threshold and warning_threshold must be set"
            )
        if self.status != EvaluationStatus.NO_VALUE and self.value is None:
            raise ValueError(f"Condition on {self.metric_key} must carry a value")
        return self


class QualityGate(Model):
    id: str
    name: str
    status: QualityGateStatus
    conditions: Tuple[Condition, ...] = ()


class AnalysisInfo(Model):
    uuid: str
    date: datetime


class ProjectAnalysis(Model):
    """Outcome of one compute task, as handed to post-analysis tasks."""

    ce_task: CeTask
    project: Project
    branch: Optional[Branch] = None
    analysis: Optional[AnalysisInfo] = None
    quality_gate: Optional[QualityGate] = None
    scanner_properties: Dict[str, str] = pydantic.Field(default_factory=dict)

    @pydantic.model_validator(mode="after")
    def _quality_gate_only_on_success(self) -> "ProjectAnalysis":
        if self.quality_gate is not None and self.ce_task.status != CeTaskStatus.SUCCESS:
            raise ValueError("A quality gate is only available for successful tasks")
        return self

    @property
    def analysis_date(self) -> Optional[datetime]:
        if self.analysis is None:
            return None
        return self.analysis.date


class Analysis(Model):
    project_uuid: str
    ce_task_uuid: Optional[str] = None
    analysis_uuid: Optional[str] = None


class WebhookPayload(Model):
    project_key: str
    json_body: str


class Webhook(Model):
    project_uuid: str
    name: str
    url: str
    ce_task_uuid: Optional[str] = None
    analysis_uuid: Optional[str] = None


class WebhookDelivery(Model):
    webhook: Webhook
    payload: WebhookPayload
    at: datetime
    http_status: Optional[int] = None
    duration_ms: Optional[int] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return (
            self.error is None
            and self.http_status is not None
            and 200 <= self.http_status < 300
        )

    @property
    def error_message(self) -> Optional[str]:
        if self.error is not None:
            return self.error
        if self.http_status is not None and not self.success:
            return f"Server responded with HTTP {self.http_status}"
        return None


class IssueRef(Model):
    key: str
    component_uuid: str


class ComponentRef(Model):
    uuid: str
    key: str
    name: str
    root_uuid: str
    main_branch_project_uuid: Optional[str] = None


class IssueChangeSet(Model):
    issues: Tuple[IssueRef, ...] = ()
    components: Tuple[ComponentRef, ...] = ()

    @property
    def is_empty(self) -> bool:
        return len(self.issues) == 0


class IssueChangeContext(Model):
    date: datetime
    login: Optional[str] = None

    @property
    def is_user_change(self) -> bool:
        return self.login is not None

    @classmethod
    def scan(cls, date: Optional[datetime] = None) -> "IssueChangeContext":
        return cls(date=date or datetime.now(timezone.utc))

    @classmethod
    def user(cls, login: str, date: Optional[datetime] = None) -> "IssueChangeContext":
        return cls(date=date or datetime.now(timezone.utc), login=login)
