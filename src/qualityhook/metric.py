from prometheus_client import Counter, Histogram

request_counter = Counter(
    "qualityhook_num_req", "Total number of requests", labelnames=["path"]
)

error_counter = Counter(
    "qualityhook_error_counter", "Total number of errors", labelnames=["context"]
)

webhook_dispatch_total = Counter(
    "qualityhook_webhook_dispatch_total",
    "Number of webhook dispatch decisions per trigger",
    labelnames=["trigger", "result"],
)

webhook_delivery_total = Counter(
    "qualityhook_webhook_delivery_total",
    "Number of webhook delivery attempts",
    labelnames=["result"],
)

webhook_delivery_seconds = Histogram(
    "qualityhook_webhook_delivery_seconds",
    "Duration of outbound webhook calls",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

webhook_delivery_pruned_total = Counter(
    "qualityhook_webhook_delivery_pruned_total",
    "Number of webhook delivery rows removed by retention",
)

post_task_error_total = Counter(
    "qualityhook_post_task_error_total",
    "Number of post-analysis tasks which raised",
    labelnames=["task"],
)


def observe_delivery(*, success: bool, duration_ms: int | None) -> None:
    webhook_delivery_total.labels(result="success" if success else "failure").inc()
    if duration_ms is not None:
        webhook_delivery_seconds.observe(max(0, duration_ms) / 1000.0)
