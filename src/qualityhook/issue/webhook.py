from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from sanic.log import logger

from qualityhook.config import Settings
from qualityhook.metric import error_counter, webhook_dispatch_total
from qualityhook.model import (
    Analysis,
    Branch,
    BranchType,
    CeTask,
    ComponentRef,
    IssueChangeContext,
    IssueChangeSet,
    Project,
    ProjectAnalysis,
    WebhookPayload,
)
from qualityhook.posttask import ConfigurationProvider
from qualityhook.storage.analysis_store import AnalysisStore
from qualityhook.storage.types import BranchRow, CeActivityRow, SnapshotRow
from qualityhook.webhook.payload import WebhookPayloadFactory
from qualityhook.webhook.properties import Configuration
from qualityhook.webhook.webhooks import WebHooks

CONFIRM = "confirm"
UNCONFIRM = "unconfirm"
REOPEN = "reopen"
RESOLVE = "resolve"
FALSE_POSITIVE = "falsepositive"
WONT_FIX = "wontfix"
CLOSE = "close"

DEFAULT_TRANSITIONS = (
    CONFIRM,
    UNCONFIRM,
    REOPEN,
    RESOLVE,
    FALSE_POSITIVE,
    WONT_FIX,
    CLOSE,
)
MEANINGFUL_TRANSITIONS = frozenset({RESOLVE, FALSE_POSITIVE, WONT_FIX, REOPEN})


@dataclass(frozen=True)
class _ShortBranchAnalysis:
    component: ComponentRef
    branch: BranchRow
    snapshot: SnapshotRow
    activity: CeActivityRow


class IssueChangeWebhook:
    """Notifies webhooks when a user changes issues of a short-lived branch.

    The branch's last analysis is resolved from the database so the payload
    describes the analysis the changed issues belong to.
    """

    def __init__(
        self,
        *,
        analysis_store: AnalysisStore,
        webhooks: WebHooks,
        configuration_provider: ConfigurationProvider,
        payload_factory: WebhookPayloadFactory,
        settings: Settings,
    ):
        self.analysis_store = analysis_store
        self.webhooks = webhooks
        self.configuration_provider = configuration_provider
        self.payload_factory = payload_factory
        self.settings = settings

    async def on_type_change(
        self,
        change_set: IssueChangeSet,
        rule_type: str,
        context: IssueChangeContext,
    ) -> int:
        if change_set.is_empty or not context.is_user_change:
            return 0
        logger.debug("Issue type changed to %s by %s", rule_type, context.login)
        return await self._call_webhooks(change_set)

    async def on_transition(
        self,
        change_set: IssueChangeSet,
        transition_key: Optional[str],
        context: IssueChangeContext,
    ) -> int:
        if (
            change_set.is_empty
            or transition_key not in MEANINGFUL_TRANSITIONS
            or not context.is_user_change
        ):
            return 0
        return await self._call_webhooks(change_set)

    async def _call_webhooks(self, change_set: IssueChangeSet) -> int:
        if not self.settings.WEBHOOKS_ENABLED:
            webhook_dispatch_total.labels(trigger="issue", result="disabled").inc()
            return 0

        try:
            components = self._branch_components(change_set)
            configurations = self._configured_projects(components)
            if not configurations:
                webhook_dispatch_total.labels(
                    trigger="issue", result="no_webhooks"
                ).inc()
                return 0
            targets = [
                target
                for target in self._resolve_short_branch_analyses(components)
                if target.branch.project_uuid in configurations
            ]
        except Exception:  # noqa: BLE001
            error_counter.labels(context="issue_webhooks_lookup").inc()
            logger.error("Failed to resolve short-lived branch analyses", exc_info=True)
            return 0

        dispatched = 0
        for target in targets:
            try:
                await self.webhooks.send_project_analysis_update(
                    configurations[target.branch.project_uuid],
                    Analysis(
                        project_uuid=target.branch.project_uuid,
                        analysis_uuid=target.snapshot.uuid,
                        ce_task_uuid=target.activity.uuid,
                    ),
                    lambda target=target: self._build_payload(target),
                )
            except Exception:  # noqa: BLE001
                error_counter.labels(context="issue_webhooks").inc()
                webhook_dispatch_total.labels(trigger="issue", result="error").inc()
                logger.error(
                    "Webhooks for branch %s of project %s failed",
                    target.branch.key,
                    target.branch.project_uuid,
                    exc_info=True,
                )
                continue
            webhook_dispatch_total.labels(trigger="issue", result="dispatched").inc()
            dispatched += 1
        return dispatched

    def _branch_components(self, change_set: IssueChangeSet) -> Dict[str, ComponentRef]:
        component_uuids = {issue.component_uuid for issue in change_set.issues}
        components = {c.uuid: c for c in change_set.components}
        missing = component_uuids - components.keys()
        if missing:
            for row in self.analysis_store.select_components_by_uuids(missing):
                components[row.uuid] = row.to_ref()

        return {
            uuid: component
            for uuid, component in components.items()
            if uuid in component_uuids
            and component.main_branch_project_uuid is not None
        }

    def _configured_projects(
        self, components: Dict[str, ComponentRef]
    ) -> Dict[str, Configuration]:
        configurations = {}
        for project_uuid in {c.main_branch_project_uuid for c in components.values()}:
            configuration = self.configuration_provider.configuration_for(project_uuid)
            if WebHooks.is_enabled(configuration):
                configurations[project_uuid] = configuration
        return configurations

    def _resolve_short_branch_analyses(
        self, components: Dict[str, ComponentRef]
    ) -> List[_ShortBranchAnalysis]:
        if not components:
            return []

        root_uuids: Set[str] = {c.root_uuid for c in components.values()}
        short_branches = [
            branch
            for branch in self.analysis_store.select_branches_by_uuids(root_uuids)
            if branch.branch_type == BranchType.SHORT
        ]
        if not short_branches:
            return []

        roots = {
            row.uuid: row.to_ref()
            for row in self.analysis_store.select_components_by_uuids(
                {b.uuid for b in short_branches}
            )
        }
        snapshots = {
            s.component_uuid: s
            for s in self.analysis_store.select_last_analyses_by_root_component_uuids(
                {b.uuid for b in short_branches}
            )
        }
        activities = {
            a.analysis_uuid: a
            for a in self.analysis_store.select_ce_activity_by_analysis_uuids(
                {s.uuid for s in snapshots.values()}
            )
        }

        resolved = []
        for branch in sorted(short_branches, key=lambda b: b.uuid):
            root = roots.get(branch.uuid)
            snapshot = snapshots.get(branch.uuid)
            activity = activities.get(snapshot.uuid) if snapshot is not None else None
            if root is None or snapshot is None or activity is None:
                logger.debug(
                    "Short-lived branch %s has no completed analysis, skipping",
                    branch.uuid,
                )
                continue
            resolved.append(
                _ShortBranchAnalysis(
                    component=root, branch=branch, snapshot=snapshot, activity=activity
                )
            )
        return resolved

    def _build_payload(self, target: _ShortBranchAnalysis) -> WebhookPayload:
        project_analysis = ProjectAnalysis(
            ce_task=CeTask(id=target.activity.uuid, status=target.activity.status),
            project=Project(
                uuid=target.component.uuid,
                key=target.component.key,
                name=target.component.name,
            ),
            branch=Branch(is_main=False, name=target.branch.key, type=BranchType.SHORT),
        )
        return self.payload_factory.create(project_analysis)
