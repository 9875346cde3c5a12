from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import time
from typing import Callable, Optional

import aiohttp
from sanic.log import logger

from qualityhook import __version__
from qualityhook.model import Webhook, WebhookDelivery, WebhookPayload

PROJECT_KEY_HEADER = "X-Analysis-Project"


def _describe_error(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "Timeout while waiting for the webhook endpoint"
    message = str(exc)
    if not message:
        return type(exc).__name__
    return f"{type(exc).__name__}: {message}"


class WebhookCaller:
    session: aiohttp.ClientSession

    def __init__(
        self,
        session: aiohttp.ClientSession,
        timeout_seconds: float = 10.0,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.clock = clock

    async def call(self, webhook: Webhook, payload: WebhookPayload) -> WebhookDelivery:
        at = self.clock()
        started = time.monotonic()
        http_status: Optional[int] = None
        error: Optional[str] = None

        try:
            async with self.session.post(
                webhook.url,
                data=payload.json_body.encode("utf-8"),
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": f"qualityhook/{__version__}",
                    PROJECT_KEY_HEADER: payload.project_key,
                },
                timeout=self.timeout,
                allow_redirects=False,
            ) as response:
                http_status = response.status
                await response.read()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.debug("Webhook call to %s failed", webhook.url, exc_info=True)
            error = _describe_error(exc)

        return WebhookDelivery(
            webhook=webhook,
            payload=payload,
            at=at,
            http_status=http_status,
            duration_ms=int((time.monotonic() - started) * 1000),
            error=error,
        )
