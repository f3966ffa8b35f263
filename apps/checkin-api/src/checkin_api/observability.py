from __future__ import annotations

from contextvars import ContextVar
from dataclasses import asdict, dataclass
from typing import Protocol

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

_trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")


def set_trace_id(trace_id: str) -> None:
    _trace_id_ctx.set(trace_id)


def get_trace_id() -> str:
    return _trace_id_ctx.get()


@dataclass(frozen=True)
class ApiRequestMetric:
    method: str
    path: str
    status_code: int
    duration_ms: float
    trace_id: str


@dataclass(frozen=True)
class CheckinOutcome:
    badge: str
    passed: bool
    total_score: int
    methods: tuple[str, ...]


class ApiMetricCollector(Protocol):
    def observe(self, metric: ApiRequestMetric) -> None: ...


class CheckinOutcomeRecorder(Protocol):
    def record_outcome(self, outcome: CheckinOutcome) -> None: ...


class InMemoryApiMetricsCollector(ApiMetricCollector):
    def __init__(self) -> None:
        self._metrics: list[ApiRequestMetric] = []

    def observe(self, metric: ApiRequestMetric) -> None:
        self._metrics.append(metric)

    def snapshot(self) -> list[dict]:
        return [asdict(item) for item in self._metrics]


class PrometheusApiMetricsCollector(ApiMetricCollector):
    """HTTP request metrics plus check-in verification outcomes on one registry."""

    def __init__(self) -> None:
        self._registry = CollectorRegistry()
        self._request_counter = Counter(
            "checkin_http_requests_total",
            "Total check-in API HTTP requests",
            labelnames=("method", "path", "status_code"),
            registry=self._registry,
        )
        self._latency_histogram = Histogram(
            "checkin_http_request_duration_ms",
            "Check-in API HTTP request latency in milliseconds",
            labelnames=("method", "path"),
            buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 3000),
            registry=self._registry,
        )
        self._outcome_counter = Counter(
            "checkin_verifications_total",
            "Check-in verifications by summary badge",
            labelnames=("badge",),
            registry=self._registry,
        )
        self._method_counter = Counter(
            "checkin_verification_methods_total",
            "Verification factors attempted per check-in",
            labelnames=("method",),
            registry=self._registry,
        )
        self._score_histogram = Histogram(
            "checkin_verification_score",
            "Total verification score per check-in",
            buckets=(0, 20, 40, 60, 70, 80, 100),
            registry=self._registry,
        )

    def observe(self, metric: ApiRequestMetric) -> None:
        status = str(metric.status_code)
        self._request_counter.labels(metric.method, metric.path, status).inc()
        self._latency_histogram.labels(metric.method, metric.path).observe(metric.duration_ms)

    def record_outcome(self, outcome: CheckinOutcome) -> None:
        self._outcome_counter.labels(outcome.badge).inc()
        for method in outcome.methods:
            self._method_counter.labels(method).inc()
        self._score_histogram.observe(outcome.total_score)

    def render(self) -> str:
        return generate_latest(self._registry).decode("utf-8")


class CompositeApiMetricsCollector(ApiMetricCollector):
    def __init__(self, collectors: list[ApiMetricCollector]) -> None:
        self._collectors = collectors

    def observe(self, metric: ApiRequestMetric) -> None:
        for collector in self._collectors:
            collector.observe(metric)
