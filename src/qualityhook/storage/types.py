from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any

import pydantic
from pydantic import BeforeValidator, PlainSerializer

from qualityhook.model import BranchType, CeTaskStatus, ComponentRef


def _parse_utc_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        dt = datetime.fromisoformat(raw)
    else:
        raise ValueError(f"Unsupported datetime value type: {type(value)!r}")
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _format_utc_datetime(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


UTCDateTime = Annotated[
    datetime,
    BeforeValidator(_parse_utc_datetime),
    PlainSerializer(_format_utc_datetime, return_type=str, when_used="always"),
]


class StorageModel(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(extra="ignore", validate_assignment=True)


class ComponentRow(StorageModel):
    uuid: str
    key: str
    name: str
    root_uuid: str
    main_branch_project_uuid: str | None = None

    def to_ref(self) -> ComponentRef:
        return ComponentRef(
            uuid=self.uuid,
            key=self.key,
            name=self.name,
            root_uuid=self.root_uuid,
            main_branch_project_uuid=self.main_branch_project_uuid,
        )


class BranchRow(StorageModel):
    uuid: str
    project_uuid: str
    key: str
    branch_type: BranchType


class SnapshotRow(StorageModel):
    uuid: str
    component_uuid: str
    status: str
    islast: bool
    created_at: UTCDateTime


class CeActivityRow(StorageModel):
    uuid: str
    task_type: str
    component_uuid: str | None
    analysis_uuid: str | None = None
    status: CeTaskStatus
    is_last: bool
    submitted_at: UTCDateTime
    executed_at: UTCDateTime | None = None


class WebhookDeliveryRow(StorageModel):
    uuid: str
    project_uuid: str
    ce_task_uuid: str | None = None
    analysis_uuid: str | None = None
    name: str
    url: str
    success: bool
    http_status: int | None = None
    duration_ms: int | None = None
    payload: str | None = None
    error_stacktrace: str | None = None
    created_at: UTCDateTime
