from qualityhook.webhook.properties import (
    Configuration,
    MapConfiguration,
    load_webhooks,
)
from qualityhook.webhook.payload import WebhookPayloadFactory
from qualityhook.webhook.caller import WebhookCaller
from qualityhook.webhook.webhooks import WebHooks

__all__ = [
    "Configuration",
    "MapConfiguration",
    "WebHooks",
    "WebhookCaller",
    "WebhookPayloadFactory",
    "load_webhooks",
]
