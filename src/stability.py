"""
Deployment stability gate.

A restart is only triggered for a Deployment that is fully rolled out,
fully ready, scaled above zero and not paused. Anything else is left
alone so an in-flight rollout or an intentional scale-down is not
disturbed further.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from .k8s_client import ClusterClient, ClusterClientError
from .models import Deployment, DeploymentKey

logger = structlog.get_logger(__name__)


class UnstableReason(str, Enum):
    GENERATION_NOT_OBSERVED = "observedGeneration != generation"
    REPLICAS_NOT_READY = "replicas != readyReplicas"
    REPLICAS_NOT_UPDATED = "replicas != updatedReplicas"
    SCALED_TO_ZERO = "replicas == 0"
    PAUSED = "paused"
    DEPLOYMENT_UNAVAILABLE = "Deployment unavailable"


@dataclass
class StabilityResult:
    stable: bool
    reason: Optional[UnstableReason] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "StabilityResult":
        return cls(stable=True)

    @classmethod
    def unstable(
        cls, reason: UnstableReason, error: Optional[str] = None
    ) -> "StabilityResult":
        return cls(stable=False, reason=reason, error=error)


def evaluate_stability(deployment: Deployment) -> StabilityResult:
    """Evaluate the stability predicate; the first failing term is reported."""
    if deployment.observed_generation != deployment.generation:
        return StabilityResult.unstable(UnstableReason.GENERATION_NOT_OBSERVED)
    if deployment.replicas != deployment.ready_replicas:
        return StabilityResult.unstable(UnstableReason.REPLICAS_NOT_READY)
    if deployment.replicas != deployment.updated_replicas:
        return StabilityResult.unstable(UnstableReason.REPLICAS_NOT_UPDATED)
    if deployment.replicas <= 0:
        return StabilityResult.unstable(UnstableReason.SCALED_TO_ZERO)
    if deployment.paused:
        return StabilityResult.unstable(UnstableReason.PAUSED)
    return StabilityResult.ok()


class StabilityChecker:
    """Fetches a Deployment and applies the stability predicate."""

    def __init__(self, k8s_client: ClusterClient):
        self._k8s = k8s_client

    def check(self, key: DeploymentKey) -> StabilityResult:
        """Fetch and evaluate ``key``; a failed fetch is reported, not raised."""
        try:
            deployment = self._k8s.get_deployment(key.namespace, key.name)
        except ClusterClientError as e:
            return StabilityResult.unstable(
                UnstableReason.DEPLOYMENT_UNAVAILABLE, error=str(e)
            )

        result = evaluate_stability(deployment)
        if not result.stable:
            logger.debug(
                "Deployment status",
                namespace=key.namespace,
                deployment=key.name,
                generation=deployment.generation,
                observed_generation=deployment.observed_generation,
                replicas=deployment.replicas,
                ready_replicas=deployment.ready_replicas,
                updated_replicas=deployment.updated_replicas,
                paused=deployment.paused,
            )
        return result
