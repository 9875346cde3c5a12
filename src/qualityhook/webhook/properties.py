from __future__ import annotations

from typing import List, Mapping, Optional, Protocol

from qualityhook.model import Analysis, Webhook

GLOBAL_KEY = "sonar.webhooks.global"
PROJECT_KEY = "sonar.webhooks.project"
NAME_FIELD = "name"
URL_FIELD = "url"
MAX_WEBHOOKS_PER_TYPE = 10
ANALYSIS_PROPERTY_PREFIX = "sonar.analysis."


class Configuration(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def get_string_array(self, key: str) -> List[str]: ...


class MapConfiguration:
    """Read-only configuration over a flat ``key -> value`` mapping.

    Array properties are stored comma separated, like multi-value settings.
    """

    def __init__(self, values: Mapping[str, str] | None = None):
        self._values = dict(values or {})

    def get(self, key: str) -> Optional[str]:
        value = self._values.get(key)
        if value is None:
            return None
        value = value.strip()
        return value or None

    def get_string_array(self, key: str) -> List[str]:
        raw = self._values.get(key)
        if not raw:
            return []
        return [item.strip() for item in raw.split(",") if item.strip()]

    def __repr__(self) -> str:
        return f"MapConfiguration({self._values!r})"


def webhook_property_keys(config: Configuration, scope_key: str) -> List[str]:
    ids = config.get_string_array(scope_key)
    return [f"{scope_key}.{webhook_id}" for webhook_id in ids[:MAX_WEBHOOKS_PER_TYPE]]


def load_webhooks(config: Configuration, analysis: Analysis) -> List[Webhook]:
    webhooks = []
    for property_key in webhook_property_keys(
        config, GLOBAL_KEY
    ) + webhook_property_keys(config, PROJECT_KEY):
        name = config.get(f"{property_key}.{NAME_FIELD}")
        url = config.get(f"{property_key}.{URL_FIELD}")
        if name is None or url is None:
            continue
        webhooks.append(
            Webhook(
                project_uuid=analysis.project_uuid,
                ce_task_uuid=analysis.ce_task_uuid,
                analysis_uuid=analysis.analysis_uuid,
                name=name,
                url=url,
            )
        )
    return webhooks
