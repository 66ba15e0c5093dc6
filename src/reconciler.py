"""
Reconciliation pass for Evict to Rollout.

For every unschedulable node, finds opted-in pods, resolves their owning
Deployment, checks it is stable and triggers a rollout restart at most
once per Deployment per run. Only a failure to list nodes aborts the run;
every other problem skips the affected node or pod and is logged.
"""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import structlog

from .candidates import CandidateFinder
from .k8s_client import ClusterClient, ClusterClientError
from .metrics import RunMetrics
from .models import DedupRecord, DeploymentKey, Pod
from .node_scanner import NodeScanner
from .ownership import IneligibleReason, OwnershipResolver
from .stability import StabilityChecker, UnstableReason

logger = structlog.get_logger(__name__)


class PodOutcome(str, Enum):
    """Terminal state reached by a candidate pod."""

    TRIGGERED = "triggered"
    DRY_RUN = "dry_run"
    ALREADY_TRIGGERED = "already_triggered"
    RESTART_FAILED = "restart_failed"
    SKIPPED_NO_REPLICASET_OWNER = "skipped_no_replicaset_owner"
    SKIPPED_REPLICASET_UNAVAILABLE = "skipped_replicaset_unavailable"
    SKIPPED_NO_DEPLOYMENT_OWNER = "skipped_no_deployment_owner"
    SKIPPED_DEPLOYMENT_UNAVAILABLE = "skipped_deployment_unavailable"
    SKIPPED_UNSTABLE = "skipped_unstable"


_INELIGIBLE_OUTCOMES = {
    IneligibleReason.NO_REPLICASET_OWNER: PodOutcome.SKIPPED_NO_REPLICASET_OWNER,
    IneligibleReason.REPLICASET_UNAVAILABLE: PodOutcome.SKIPPED_REPLICASET_UNAVAILABLE,
    IneligibleReason.NO_DEPLOYMENT_OWNER: PodOutcome.SKIPPED_NO_DEPLOYMENT_OWNER,
}


@dataclass
class PodResult:
    node: str
    namespace: str
    pod: str
    outcome: PodOutcome
    deployment: Optional[DeploymentKey] = None
    reason: Optional[str] = None


@dataclass
class RunSummary:
    """What a single run saw and did."""

    dry_run: bool = False
    nodes: List[str] = field(default_factory=list)
    failed_nodes: List[str] = field(default_factory=list)
    results: List[PodResult] = field(default_factory=list)
    restarted: List[DeploymentKey] = field(default_factory=list)

    @property
    def outcomes(self) -> Dict[str, int]:
        return dict(Counter(r.outcome.value for r in self.results))

    @property
    def has_failures(self) -> bool:
        return any(r.outcome == PodOutcome.RESTART_FAILED for r in self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "nodes": len(self.nodes),
            "failed_nodes": self.failed_nodes,
            "candidates": len(self.results),
            "outcomes": self.outcomes,
            "restarted": [str(k) for k in self.restarted],
        }


class ReconciliationRun:
    """
    One stateless pass over the cluster.

    Each instance owns a fresh DedupRecord, so separate runs never share
    dedup state. Nodes and candidates are processed sequentially.
    """

    def __init__(
        self,
        k8s_client: ClusterClient,
        annotation_key: str,
        annotation_value: str,
        dry_run: bool = False,
        metrics: Optional[RunMetrics] = None,
    ):
        self._k8s = k8s_client
        self.dry_run = dry_run
        self.metrics = metrics
        self.dedup = DedupRecord()

        self.node_scanner = NodeScanner(k8s_client)
        self.candidate_finder = CandidateFinder(k8s_client, annotation_key, annotation_value)
        self.resolver = OwnershipResolver(k8s_client)
        self.stability = StabilityChecker(k8s_client)

        self.summary = RunSummary(dry_run=dry_run)

    def execute(self) -> RunSummary:
        """Run the pass. Raises ClusterClientError if nodes cannot be listed."""
        if self.metrics:
            self.metrics.start()

        logger.info("Checking for unschedulable nodes", dry_run=self.dry_run)
        try:
            nodes = self.node_scanner.scan()
        except ClusterClientError as e:
            logger.error("Cannot list nodes, aborting run", error=str(e))
            if self.metrics:
                self.metrics.finish("error")
            raise

        self.summary.nodes = list(nodes)
        if self.metrics:
            self.metrics.unschedulable_nodes.set(len(nodes))

        if not nodes:
            logger.info("No unschedulable nodes found")
        else:
            for node in nodes:
                self.process_node(node)
            logger.info("Reconciliation run complete", **self.summary.to_dict())

        if self.metrics:
            self.metrics.finish("success")
        return self.summary

    def process_node(self, node: str) -> List[PodResult]:
        logger.info("Processing node", node=node)
        try:
            candidates = self.candidate_finder.find(node)
        except ClusterClientError as e:
            logger.warning("Skipping node: could not list pods", node=node, error=str(e))
            self.summary.failed_nodes.append(node)
            return []

        if not candidates:
            logger.info(
                "No candidate pods on node",
                node=node,
                annotation_key=self.candidate_finder.annotation_key,
                annotation_value=self.candidate_finder.annotation_value,
            )
            return []

        return [self.process_pod(node, pod) for pod in candidates]

    def process_pod(self, node: str, pod: Pod) -> PodResult:
        log = logger.bind(node=node, namespace=pod.namespace, pod=pod.name)
        log.info("Analyzing pod")
        if self.metrics:
            self.metrics.candidates_total.inc()

        resolution = self.resolver.resolve(pod)
        if not resolution.eligible:
            return self._record(
                PodResult(
                    node=node,
                    namespace=pod.namespace,
                    pod=pod.name,
                    outcome=_INELIGIBLE_OUTCOMES[resolution.reason],
                    reason=resolution.reason.value,
                )
            )

        key = resolution.deployment
        log = log.bind(deployment=key.name)
        result = PodResult(
            node=node,
            namespace=pod.namespace,
            pod=pod.name,
            outcome=PodOutcome.SKIPPED_UNSTABLE,
            deployment=key,
        )

        stability = self.stability.check(key)
        if not stability.stable:
            result.reason = stability.reason.value
            if stability.reason == UnstableReason.DEPLOYMENT_UNAVAILABLE:
                result.outcome = PodOutcome.SKIPPED_DEPLOYMENT_UNAVAILABLE
                log.warning(
                    "Skipping deployment: could not fetch Deployment",
                    reason=result.reason,
                    error=stability.error,
                )
            else:
                result.outcome = PodOutcome.SKIPPED_UNSTABLE
                log.info("Skipping deployment: not stable", reason=result.reason)
            return self._record(result)

        result.outcome = self._restart(key, log)
        return self._record(result)

    def _restart(self, key: DeploymentKey, log) -> PodOutcome:
        """Issue (or simulate) the restart unless this run already did."""
        if not self.dedup.claim(key):
            log.info("Skipping deployment: already restarted during this run")
            return PodOutcome.ALREADY_TRIGGERED

        if self.dry_run:
            log.info("[DRY-RUN] Would trigger rollout restart", dry_run=True)
            self.summary.restarted.append(key)
            return PodOutcome.DRY_RUN

        log.info("Triggering rollout restart")
        restart = self._k8s.trigger_rollout_restart(key.namespace, key.name)
        if not restart.success:
            log.error("Rollout restart failed", error=restart.error)
            if self.metrics:
                self.metrics.restarts_total.labels(result="failed").inc()
            return PodOutcome.RESTART_FAILED

        log.info("Rollout triggered")
        if self.metrics:
            self.metrics.restarts_total.labels(result="success").inc()
        self.summary.restarted.append(key)
        return PodOutcome.TRIGGERED

    def _record(self, result: PodResult) -> PodResult:
        self.summary.results.append(result)
        if self.metrics:
            self.metrics.pod_outcomes_total.labels(outcome=result.outcome.value).inc()
        return result
