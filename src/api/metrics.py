from prometheus_client import Counter, Histogram, Gauge, REGISTRY


# Reuse already registered collectors so re-imports (tests, reloads) don't fail
def get_or_create_metric(name, documentation, metric_type, **kwargs):
    try:
        return metric_type(name, documentation, **kwargs)
    except ValueError:
        # Counters register under the name without the _total suffix
        collectors = REGISTRY._names_to_collectors
        return collectors.get(name) or collectors[name.removesuffix("_total")]


REQUESTS_TOTAL = get_or_create_metric(
    "taskspace_requests_total",
    "Total HTTP requests",
    Counter,
    labelnames=["endpoint", "method", "status"],
)

REQUEST_LATENCY_SECONDS = get_or_create_metric(
    "taskspace_request_latency_seconds",
    "HTTP request latency",
    Histogram,
    labelnames=["endpoint"],
)

TASKS_CREATED_TOTAL = get_or_create_metric(
    "taskspace_tasks_created_total", "Tasks created (including AI subtasks)", Counter
)

TASKS_MOVED_TOTAL = get_or_create_metric(
    "taskspace_tasks_moved_total", "Tasks moved between workspaces", Counter
)

UNDO_TOTAL = get_or_create_metric(
    "taskspace_undo_total", "Undo attempts", Counter, labelnames=["outcome"]
)

LLM_CALLS_TOTAL = get_or_create_metric(
    "taskspace_llm_calls_total",
    "AI helper calls",
    Counter,
    labelnames=["operation", "outcome"],
)

REALTIME_SUBSCRIBERS = get_or_create_metric(
    "taskspace_realtime_subscribers", "Open realtime change streams", Gauge
)
