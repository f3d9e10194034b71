"""Prometheus instrumentation for the RPC layer and discovery engine."""

from __future__ import annotations

from typing import Sequence

from prometheus_client import Counter, Histogram
from prometheus_client.registry import REGISTRY


def _get_metric(factory, name: str, documentation: str, labelnames: Sequence[str]):
    try:
        return factory(name, documentation, labelnames=tuple(labelnames))
    except ValueError:
        # Already registered, e.g. when the module is reloaded in tests.
        return REGISTRY._names_to_collectors.get(name)  # type: ignore[attr-defined]


RPC_ATTEMPTS = _get_metric(
    Counter,
    "solreward_rpc_attempts_total",
    "JSON-RPC attempts issued per endpoint",
    ("op", "endpoint", "outcome"),
)
RPC_RETRIES = _get_metric(
    Counter,
    "solreward_rpc_retries_total",
    "Backoff retries scheduled after retryable provider errors",
    ("op", "endpoint"),
)
RPC_ROTATIONS = _get_metric(
    Counter,
    "solreward_rpc_rotations_total",
    "Endpoint rotations after exhausting attempts on an endpoint",
    ("endpoint",),
)
RPC_LATENCY = _get_metric(
    Histogram,
    "solreward_rpc_latency_seconds",
    "Latency of single JSON-RPC attempts",
    ("op",),
)
DISCOVERY_SCANS = _get_metric(
    Counter,
    "solreward_discovery_scans_total",
    "Position discovery runs by final strategy",
    ("strategy",),
)
DECODE_FAILURES = _get_metric(
    Counter,
    "solreward_decode_failures_total",
    "Account payloads skipped because they failed to decode",
    ("kind",),
)


def observe(metric, value: float = 1.0, **labels: str) -> None:
    """Increment a counter or observe a histogram value."""

    if metric is None:
        return
    child = metric.labels(**labels) if labels else metric
    if hasattr(child, "observe"):
        child.observe(value)
    else:
        child.inc(value)


__all__ = [
    "RPC_ATTEMPTS",
    "RPC_RETRIES",
    "RPC_ROTATIONS",
    "RPC_LATENCY",
    "DISCOVERY_SCANS",
    "DECODE_FAILURES",
    "observe",
]
