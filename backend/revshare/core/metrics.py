# Centralized Prometheus metrics. Jobs call the record_* helpers so
# dashboards can track commission flow, transfer outcomes and grants.

from time import monotonic

from fastapi import Request
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

# Generic API latency + request counters, labelled by method and route.
REQUEST_LATENCY = Histogram(
    "api_request_latency_seconds",
    "Latency of API requests in seconds",
    ["method", "endpoint"],
)
REQUEST_COUNT = Counter(
    "api_request_count_total",
    "Total API requests",
    ["method", "endpoint", "http_status"],
)

JOB_RUN_TOTAL = Counter(
    "job_run_total",
    "Background job runs",
    ["job_name", "status"],
)

# outcome: created|duplicate|rejected
PURCHASES_INGESTED_TOTAL = Counter(
    "purchases_ingested_total",
    "Sale events processed by ingestion",
    ["outcome"],
)

COMMISSION_TRANSITIONS_TOTAL = Counter(
    "commission_transitions_total",
    "Commission status transitions",
    ["from_status", "to_status"],
)

TRANSFERS_TOTAL = Counter(
    "payout_transfers_total",
    "Payout groups by kind and result",
    ["kind", "status"],
)
TRANSFER_AMOUNT = Histogram(
    "payout_transfer_amount_minor",
    "Issued transfer amounts in minor units",
    ["currency"],
    buckets=[100, 1000, 5000, 10000, 50000, 100000, 500000, 1000000],
)
TRANSFER_LATENCY = Histogram(
    "payout_transfer_latency_seconds",
    "Latency of external transfer calls",
    buckets=[0.1, 0.25, 0.5, 1, 2, 5, 10, 30],
)

REWARD_GRANTS_TOTAL = Counter(
    "reward_grants_total",
    "Reward milestone grants by milestone type",
    ["milestone_type"],
)


def _label(value: object | None, default: str = "unknown") -> str:
    if value is None:
        return default
    if isinstance(value, str) and not value.strip():
        return default
    return str(getattr(value, "value", value))


def record_job_run(*, job_name: str, success: bool) -> None:
    JOB_RUN_TOTAL.labels(
        job_name=_label(job_name),
        status="success" if success else "failure",
    ).inc()


def record_purchase_ingested(outcome: str) -> None:
    PURCHASES_INGESTED_TOTAL.labels(outcome=_label(outcome)).inc()


def record_commission_transition(from_status, to_status) -> None:
    COMMISSION_TRANSITIONS_TOTAL.labels(
        from_status=_label(from_status, "none"),
        to_status=_label(to_status),
    ).inc()


def record_transfer(*, kind: str, status: str, amount: int | None = None, currency: str | None = None) -> None:
    TRANSFERS_TOTAL.labels(kind=_label(kind), status=_label(status)).inc()
    if amount is not None and status == "PAID":
        TRANSFER_AMOUNT.labels(currency=_label(currency)).observe(amount)


def record_transfer_latency(seconds: float) -> None:
    TRANSFER_LATENCY.observe(seconds)


def record_reward_grant(milestone_type: str, count: int = 1) -> None:
    REWARD_GRANTS_TOTAL.labels(milestone_type=_label(milestone_type)).inc(count)


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = monotonic()
        response = await call_next(request)
        duration = monotonic() - start
        route = request.scope.get("route")
        route_path = getattr(route, "path", None) or request.url.path
        REQUEST_LATENCY.labels(request.method, route_path).observe(duration)
        REQUEST_COUNT.labels(request.method, route_path, response.status_code).inc()
        return response
