"""Prometheus metrics configuration."""

from __future__ import annotations

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
)


# Application info
APP_INFO = Info("lifecycle", "Deployment lifecycle coordinator info")
APP_INFO.info({
    "version": "1.0.0",
    "service": "deployment-lifecycle-coordinator",
})

# Attempt metrics
ATTEMPTS_TOTAL = Counter(
    "lifecycle_attempts_total",
    "Total number of finished deployment attempts",
    ["outcome"],  # "succeeded", "failed", "rolled_back"
)

ACTIVE_ATTEMPTS = Gauge(
    "lifecycle_active_attempts",
    "Number of deployment attempts currently in flight",
)

ROLLBACKS_TOTAL = Counter(
    "lifecycle_rollbacks_total",
    "Total number of rollback passes",
    ["result"],  # "rolled_back", "exhausted"
)

# Phase metrics
PHASE_DURATION = Histogram(
    "lifecycle_phase_duration_seconds",
    "Time spent in each lifecycle phase",
    ["phase"],
    buckets=[0.1, 0.5, 1, 5, 10, 30, 60, 120, 300],
)

PHASE_FAILURES = Counter(
    "lifecycle_phase_failures_total",
    "Total number of failed phases",
    ["phase", "error_type"],
)

STOP_RETRIES = Counter(
    "lifecycle_stop_retries_total",
    "Total number of container stop retries",
)

PROBES_TOTAL = Counter(
    "lifecycle_probes_total",
    "Total number of liveness probe rounds",
    ["result"],  # "healthy", "unhealthy"
)
