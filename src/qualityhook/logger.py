import logging

import notifiers.logging

from qualityhook.config import SETTINGS, Settings

ALERT_FORMAT = "[%(server)s] %(levelname)s %(name)s: %(message)s"


class ServerTag(logging.Filter):
    """Stamps alert records with the base URL of the emitting instance."""

    def __init__(self, server_base_url: str):
        super().__init__()
        self.server_base_url = server_base_url

    def filter(self, record: logging.LogRecord) -> bool:
        record.server = self.server_base_url
        return True


def get_log_handlers(logger, settings: Settings = SETTINGS):
    if settings.TELEGRAM_TOKEN is None or settings.TELEGRAM_CHAT_ID is None:
        return []
    handler = notifiers.logging.NotificationHandler(
        "telegram",
        defaults={
            "token": settings.TELEGRAM_TOKEN,
            "chat_id": settings.TELEGRAM_CHAT_ID,
        },
    )
    handler.setLevel(settings.alert_level)
    handler.addFilter(ServerTag(settings.SERVER_BASE_URL))
    handler.setFormatter(logging.Formatter(ALERT_FORMAT))
    logger.addHandler(handler)
    return [handler]
