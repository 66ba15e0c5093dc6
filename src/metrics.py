"""
Prometheus metrics for Evict to Rollout.

The pass runs as a short-lived job, so metrics live in a registry owned by
a single run and are pushed to a Pushgateway when one is configured.
"""

import time
from typing import Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, push_to_gateway

logger = structlog.get_logger(__name__)


class RunMetrics:
    """Metric families for one reconciliation run."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        # =====================================================================
        # METRICS DEFINITIONS
        # =====================================================================

        self.runs_total = Counter(
            "evict_to_rollout_runs_total",
            "Reconciliation runs executed",
            ["result"],
            registry=self.registry,
        )
        self.unschedulable_nodes = Gauge(
            "evict_to_rollout_unschedulable_nodes",
            "Unschedulable nodes seen by the last run",
            registry=self.registry,
        )
        self.candidates_total = Counter(
            "evict_to_rollout_candidates_total",
            "Annotated pods evaluated on unschedulable nodes",
            registry=self.registry,
        )
        self.pod_outcomes_total = Counter(
            "evict_to_rollout_pod_outcomes_total",
            "Terminal outcome per candidate pod",
            ["outcome"],
            registry=self.registry,
        )
        self.restarts_total = Counter(
            "evict_to_rollout_restarts_total",
            "Rollout restarts issued",
            ["result"],
            registry=self.registry,
        )
        self.run_duration_seconds = Gauge(
            "evict_to_rollout_run_duration_seconds",
            "Duration of the last run in seconds",
            registry=self.registry,
        )
        self.last_success_timestamp = Gauge(
            "evict_to_rollout_last_success_timestamp_seconds",
            "Unix time the last run completed without a fatal error",
            registry=self.registry,
        )

        self._started: Optional[float] = None

    def start(self):
        self._started = time.perf_counter()

    def finish(self, result: str):
        """Record run completion; ``result`` is "success" or "error"."""
        if self._started is not None:
            self.run_duration_seconds.set(time.perf_counter() - self._started)
        self.runs_total.labels(result=result).inc()
        if result == "success":
            self.last_success_timestamp.set_to_current_time()

    def push(self, gateway: str, job: str) -> bool:
        """Push the registry to a Pushgateway; failures are logged, not raised."""
        try:
            push_to_gateway(gateway, job=job, registry=self.registry)
            return True
        except Exception as exc:
            logger.warning("Failed to push metrics", gateway=gateway, error=str(exc))
            return False
