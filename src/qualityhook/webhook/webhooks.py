from __future__ import annotations

from typing import Callable, List

from sanic.log import logger

from qualityhook.metric import observe_delivery
from qualityhook.model import Analysis, WebhookDelivery, WebhookPayload
from qualityhook.storage.delivery_store import WebhookDeliveryStore
from qualityhook.webhook.caller import WebhookCaller
from qualityhook.webhook.properties import (
    GLOBAL_KEY,
    PROJECT_KEY,
    Configuration,
    load_webhooks,
)


def _log(delivery: WebhookDelivery) -> None:
    webhook = delivery.webhook
    error = delivery.error_message
    if error is not None:
        logger.debug(
            "Failed to send webhook '%s' | url=%s | message=%s",
            webhook.name,
            webhook.url,
            error,
        )
    else:
        logger.debug(
            "Sent webhook '%s' | url=%s | time=%sms | status=%s",
            webhook.name,
            webhook.url,
            delivery.duration_ms if delivery.duration_ms is not None else -1,
            delivery.http_status if delivery.http_status is not None else -1,
        )


class WebHooks:
    """Fans one analysis update out to every configured webhook.

    Deliveries are attempted once each, in configuration order, and recorded
    before the project's delivery history is trimmed.
    """

    def __init__(self, caller: WebhookCaller, delivery_store: WebhookDeliveryStore):
        self.caller = caller
        self.delivery_store = delivery_store

    @staticmethod
    def is_enabled(configuration: Configuration) -> bool:
        return any(
            len(configuration.get_string_array(key)) > 0
            for key in (GLOBAL_KEY, PROJECT_KEY)
        )

    async def send_project_analysis_update(
        self,
        configuration: Configuration,
        analysis: Analysis,
        payload_supplier: Callable[[], WebhookPayload],
    ) -> List[WebhookDelivery]:
        webhooks = load_webhooks(configuration, analysis)
        if not webhooks:
            return []

        payload = payload_supplier()
        deliveries = []
        for webhook in webhooks:
            delivery = await self.caller.call(webhook, payload)
            _log(delivery)
            observe_delivery(success=delivery.success, duration_ms=delivery.duration_ms)
            self.delivery_store.persist(delivery)
            deliveries.append(delivery)

        self.delivery_store.purge(analysis.project_uuid)
        return deliveries
