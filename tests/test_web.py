from datetime import datetime, timezone
import json
from types import SimpleNamespace

import aiohttp
import pytest
from sanic.exceptions import BadRequest

from qualityhook.config import SETTINGS
from qualityhook.model import CeTaskStatus, WebhookDelivery
from qualityhook.webhook.properties import GLOBAL_KEY
from qualityhook.web import (
    SetSettingRequest,
    configure_context,
    create_app,
    process_analysis_finished,
    process_issue_transition,
    process_issue_type_change,
)

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)


class FakeCaller:
    def __init__(self):
        self.calls = []

    async def call(self, webhook, payload):
        self.calls.append((webhook, payload))
        return WebhookDelivery(
            webhook=webhook, payload=payload, at=NOW, http_status=200, duration_ms=3
        )


def make_app(tmp_path, session, **overrides):
    settings = SETTINGS.model_copy(
        update={
            "DB_PATH": tmp_path / "qualityhook.sqlite3",
            "SERVER_BASE_URL": "http://quality.example.com",
            **overrides,
        }
    )
    app = SimpleNamespace(ctx=SimpleNamespace())
    configure_context(app.ctx, settings, session)
    app.ctx.webhooks.caller = FakeCaller()

    app.ctx.property_store.set_property(GLOBAL_KEY, "1")
    app.ctx.property_store.set_property(f"{GLOBAL_KEY}.1.name", "ci")
    app.ctx.property_store.set_property(
        f"{GLOBAL_KEY}.1.url", "http://hooks.example.com/ci"
    )
    return app


def analysis_body(**overrides):
    body = {
        "ceTaskId": "task-1",
        "project": {"uuid": "p1", "key": "k1", "name": "Proj"},
        "analysis": {"uuid": "a1", "date": "2026-10-18T11:59:00Z"},
        "qualityGate": {
            "id": "gate-1",
            "name": "Default",
            "status": "OK",
            "conditions": [
                {
                    "status": "OK",
                    "metricKey": "coverage",
                    "operator": "LESS_THAN",
                    "errorThreshold": "80",
                    "value": "91.5",
                }
            ],
        },
        "scannerProperties": {
            "sonar.analysis.revision": "abc123",
            "sonar.login": "secret",
        },
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_analysis_finished_records_and_notifies(tmp_path):
    async with aiohttp.ClientSession() as session:
        app = make_app(tmp_path, session)

        result = await process_analysis_finished(app, analysis_body())

    assert result.ce_task.status == CeTaskStatus.SUCCESS

    activity = app.ctx.analysis_store.select_ce_activity_by_uuid("task-1")
    assert activity.analysis_uuid == "a1"
    assert activity.is_last
    snapshots = app.ctx.analysis_store.select_last_analyses_by_root_component_uuids(
        ["p1"]
    )
    assert [s.uuid for s in snapshots] == ["a1"]

    calls = app.ctx.webhooks.caller.calls
    assert len(calls) == 1
    body = json.loads(calls[0][1].json_body)
    assert body["analysedAt"] == "2026-10-18T11:59:00+0000"
    assert body["qualityGate"]["conditions"][0]["value"] == "91.5"
    assert body["properties"] == {"sonar.analysis.revision": "abc123"}

    rows = app.ctx.delivery_store.list_deliveries(project_uuid="p1")
    assert [(r.ce_task_uuid, r.analysis_uuid) for r in rows] == [("task-1", "a1")]


@pytest.mark.asyncio
async def test_failed_analysis_notifies_without_quality_gate(tmp_path):
    async with aiohttp.ClientSession() as session:
        app = make_app(tmp_path, session)

        result = await process_analysis_finished(
            app, analysis_body(allStepsExecuted=False)
        )

    assert result.ce_task.status == CeTaskStatus.FAILED
    assert result.quality_gate is None
    activity = app.ctx.analysis_store.select_ce_activity_by_uuid("task-1")
    assert activity.status == CeTaskStatus.FAILED
    assert activity.analysis_uuid is None

    body = json.loads(app.ctx.webhooks.caller.calls[0][1].json_body)
    assert body["status"] == "FAILED"
    assert "qualityGate" not in body


@pytest.mark.asyncio
async def test_failed_task_without_analysis_notifies(tmp_path):
    body = analysis_body(allStepsExecuted=False)
    del body["analysis"]
    del body["qualityGate"]

    async with aiohttp.ClientSession() as session:
        app = make_app(tmp_path, session)

        await process_analysis_finished(app, body)

    calls = app.ctx.webhooks.caller.calls
    assert len(calls) == 1
    assert calls[0][0].analysis_uuid is None
    payload = json.loads(calls[0][1].json_body)
    assert payload["status"] == "FAILED"
    assert payload["taskId"] == "task-1"

    rows = app.ctx.delivery_store.list_deliveries(ce_task_uuid="task-1")
    assert [r.analysis_uuid for r in rows] == [None]


@pytest.mark.asyncio
async def test_invalid_analysis_is_rejected(tmp_path):
    async with aiohttp.ClientSession() as session:
        app = make_app(tmp_path, session)

        with pytest.raises(BadRequest):
            await process_analysis_finished(app, {"ceTaskId": "task-1"})
        with pytest.raises(BadRequest):
            await process_analysis_finished(app, ["not", "an", "object"])

    assert app.ctx.webhooks.caller.calls == []


@pytest.mark.asyncio
async def test_issue_changes_on_short_branch(tmp_path):
    async with aiohttp.ClientSession() as session:
        app = make_app(tmp_path, session)
        await process_analysis_finished(
            app,
            analysis_body(
                ceTaskId="task-2",
                project={"uuid": "b1", "key": "k1", "name": "Proj"},
                branch={"isMain": False, "name": "feature/x", "type": "SHORT"},
                analysis={"uuid": "a2", "date": "2026-10-18T11:59:00Z"},
                mainBranchProjectUuid="p1",
            ),
        )
        app.ctx.webhooks.caller.calls.clear()

        change = {
            "issues": [{"key": "issue-1", "componentUuid": "b1"}],
            "transition": "resolve",
            "login": "alice",
        }
        assert await process_issue_transition(app, change) == 1
        assert await process_issue_transition(app, {**change, "login": None}) == 0
        assert await process_issue_transition(app, {**change, "transition": "confirm"}) == 0
        assert (
            await process_issue_type_change(
                app,
                {
                    "issues": change["issues"],
                    "type": "VULNERABILITY",
                    "login": "alice",
                },
            )
            == 1
        )

    calls = app.ctx.webhooks.caller.calls
    assert len(calls) == 2
    assert {w.analysis_uuid for w, _ in calls} == {"a2"}
    assert {w.project_uuid for w, _ in calls} == {"p1"}
    body = json.loads(calls[0][1].json_body)
    assert body["taskId"] == "task-2"
    assert body["branch"]["name"] == "feature/x"


@pytest.mark.asyncio
async def test_issue_change_errors_are_contained(tmp_path, monkeypatch):
    async with aiohttp.ClientSession() as session:
        app = make_app(tmp_path, session)

        async def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(app.ctx.issue_change_webhook, "on_transition", broken)

        result = await process_issue_transition(
            app,
            {
                "issues": [{"key": "issue-1", "componentUuid": "b1"}],
                "transition": "resolve",
                "login": "alice",
            },
        )

    assert result == 0


def test_set_setting_request_accepts_one_value_kind():
    assert SetSettingRequest(key="k", values=[" a", "", "b "]).text_value == "a,b"
    assert SetSettingRequest(key="k", value="x").text_value == "x"
    with pytest.raises(ValueError):
        SetSettingRequest(key="k")
    with pytest.raises(ValueError):
        SetSettingRequest(key="k", value="x", values=["y"])


def test_routes_registered():
    app = create_app()
    paths = {route.path for route in app.router.routes}
    assert "status" in paths
    assert "metrics" in paths
    assert "api/ce/analysis_finished" in paths
    assert "api/issues/do_transition" in paths
    assert "api/issues/set_type" in paths
    assert "api/webhooks/deliveries" in paths
    assert "api/webhooks/delivery" in paths
    assert "api/settings/set" in paths
    assert "api/settings/reset" in paths
