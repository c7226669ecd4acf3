"""
Prometheus metrics for the fantasy sync service.

Metrics exposed:
- Sync run outcomes and synced record counters
- Partner API request outcomes
- Campaign dispatch and trigger evaluation outcomes
- Scheduler status gauge
"""
from prometheus_client import Counter, Gauge, Histogram

# Sync Metrics
sync_runs_total = Counter(
    "sync_runs_total",
    "Total game sync runs",
    ["sync_type", "status"]
)

sync_run_duration_seconds = Histogram(
    "sync_run_duration_seconds",
    "Duration of one game sync run in seconds",
    buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1200, 1800)
)

sync_records_total = Counter(
    "sync_records_total",
    "Total records upserted by sync runs",
    ["record_type"]
)

sync_failed_pages_total = Counter(
    "sync_failed_pages_total",
    "Total user pages that could not be fetched or persisted"
)

sync_failed_batches_total = Counter(
    "sync_failed_batches_total",
    "Total element batches that could not be persisted"
)

# External API Metrics
partner_api_requests_total = Counter(
    "partner_api_requests_total",
    "Total partner API requests",
    ["endpoint", "outcome"]
)

campaign_dispatch_total = Counter(
    "campaign_dispatch_total",
    "Total campaign dispatch attempts",
    ["outcome"]
)

trigger_evaluations_total = Counter(
    "trigger_evaluations_total",
    "Total trigger evaluations",
    ["trigger_type", "status"]
)

# Scheduler Metrics
scheduler_running = Gauge(
    "scheduler_running",
    "Whether the automation scheduler is running (1=running, 0=stopped)"
)

scheduler_jobs_total = Gauge(
    "scheduler_jobs_total",
    "Total number of scheduled jobs"
)


def record_partner_request(endpoint: str, outcome: str) -> None:
    """Record a partner API request outcome (success, transient, permanent)."""
    partner_api_requests_total.labels(endpoint=endpoint, outcome=outcome).inc()


def record_sync_run(sync_type: str, status: str, duration_seconds: float) -> None:
    """Record a finished sync run."""
    sync_runs_total.labels(sync_type=sync_type, status=status).inc()
    sync_run_duration_seconds.observe(duration_seconds)


def update_scheduler_metrics(scheduler) -> None:
    """
    Update scheduler metrics.

    Args:
        scheduler: AutomationScheduler instance or None
    """
    if scheduler and scheduler.running:
        scheduler_running.set(1)
        if scheduler.scheduler:
            scheduler_jobs_total.set(len(scheduler.scheduler.get_jobs()))
    else:
        scheduler_running.set(0)
        scheduler_jobs_total.set(0)
