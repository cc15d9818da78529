from __future__ import annotations

from prometheus_client import Counter, Histogram

# Request labels use the route template so per-contact paths collapse into one series.
HTTP_REQUESTS = Counter(
    "crm_http_requests_total",
    "HTTP requests served, by route template and status.",
    labelnames=("method", "path", "status_code"),
)
HTTP_LATENCY = Histogram(
    "crm_http_request_duration_seconds",
    "Wall-clock time spent serving a request.",
    labelnames=("method", "path"),
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)
HTTP_THROTTLED = Counter(
    "crm_http_rate_limited_total",
    "Requests rejected by the per-client throttle.",
    labelnames=("method", "path"),
)
SYNC_JOBS = Counter(
    "crm_sync_jobs_total",
    "Gmail sync jobs by requested type and final status.",
    labelnames=("type", "status"),
)
SYNC_MESSAGES = Counter(
    "crm_sync_messages_processed_total",
    "Gmail messages written by sync jobs, by resolved mode.",
    labelnames=("mode",),
)
IMPORT_ROWS = Counter(
    "crm_contact_import_rows_total",
    "Contact import rows by outcome.",
    labelnames=("overwrite_mode", "outcome"),
)


def observe_http_request(*, method: str, path: str, status_code: int, duration_ms: int, rate_limited: bool) -> None:
    method = method or "UNKNOWN"
    path = path or "unknown"
    HTTP_REQUESTS.labels(method=method, path=path, status_code=str(status_code)).inc()
    HTTP_LATENCY.labels(method=method, path=path).observe(max(duration_ms, 0) / 1000)
    if rate_limited:
        HTTP_THROTTLED.labels(method=method, path=path).inc()


def observe_sync_job(*, job_type: str, status: str, mode: str | None, processed_messages: int) -> None:
    SYNC_JOBS.labels(type=job_type, status=status).inc()
    if mode and processed_messages > 0:
        SYNC_MESSAGES.labels(mode=mode).inc(processed_messages)


def observe_contact_import(*, overwrite_mode: str, imported: int, skipped: int, errors: int) -> None:
    for outcome, count in (("imported", imported), ("skipped", skipped), ("error", errors)):
        if count:
            IMPORT_ROWS.labels(overwrite_mode=overwrite_mode, outcome=outcome).inc(count)
