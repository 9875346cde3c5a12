from qualityhook.issue.webhook import (
    DEFAULT_TRANSITIONS,
    MEANINGFUL_TRANSITIONS,
    IssueChangeWebhook,
)

__all__ = ["DEFAULT_TRANSITIONS", "IssueChangeWebhook", "MEANINGFUL_TRANSITIONS"]
