from qualityhook.storage.analysis_store import AnalysisStore
from qualityhook.storage.delivery_store import WebhookDeliveryStore
from qualityhook.storage.property_store import PropertyStore
from qualityhook.storage.types import (
    BranchRow,
    CeActivityRow,
    ComponentRow,
    SnapshotRow,
    WebhookDeliveryRow,
)

__all__ = [
    "AnalysisStore",
    "BranchRow",
    "CeActivityRow",
    "ComponentRow",
    "PropertyStore",
    "SnapshotRow",
    "WebhookDeliveryRow",
    "WebhookDeliveryStore",
]
