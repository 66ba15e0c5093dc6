"""
Ownership resolution: Pod -> ReplicaSet -> Deployment.

Topology mismatches and vanished ReplicaSets are expected conditions, so
resolution reports them as an ineligible result instead of raising.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from .k8s_client import ClusterClient, ClusterClientError, ObjectNotFoundError
from .models import DeploymentKey, Pod, first_owner_of_kind

logger = structlog.get_logger(__name__)


class IneligibleReason(str, Enum):
    NO_REPLICASET_OWNER = "no ReplicaSet owner"
    REPLICASET_UNAVAILABLE = "ReplicaSet unavailable"
    NO_DEPLOYMENT_OWNER = "ReplicaSet has no Deployment owner"


@dataclass
class Resolution:
    """Result of walking a pod's owners up to a Deployment."""

    deployment: Optional[DeploymentKey] = None
    replica_set: Optional[str] = None
    reason: Optional[IneligibleReason] = None

    @property
    def eligible(self) -> bool:
        return self.deployment is not None


class OwnershipResolver:
    """Resolves the Deployment that ultimately owns a pod."""

    def __init__(self, k8s_client: ClusterClient):
        self._k8s = k8s_client

    def resolve(self, pod: Pod) -> Resolution:
        log = logger.bind(node=pod.node_name, namespace=pod.namespace, pod=pod.name)

        rs_ref = first_owner_of_kind(pod.owner_references, "ReplicaSet")
        if rs_ref is None:
            log.info(
                "Skipping pod: not owned by a ReplicaSet",
                reason=IneligibleReason.NO_REPLICASET_OWNER.value,
            )
            return Resolution(reason=IneligibleReason.NO_REPLICASET_OWNER)

        # The ReplicaSet may already be garbage collected after a rollout
        try:
            rs = self._k8s.get_replica_set(pod.namespace, rs_ref.name)
        except ObjectNotFoundError:
            log.warning(
                "Skipping pod: ReplicaSet not found",
                replica_set=rs_ref.name,
                reason=IneligibleReason.REPLICASET_UNAVAILABLE.value,
            )
            return Resolution(
                replica_set=rs_ref.name,
                reason=IneligibleReason.REPLICASET_UNAVAILABLE,
            )
        except ClusterClientError as e:
            log.warning(
                "Skipping pod: could not fetch ReplicaSet",
                replica_set=rs_ref.name,
                reason=IneligibleReason.REPLICASET_UNAVAILABLE.value,
                error=str(e),
            )
            return Resolution(
                replica_set=rs_ref.name,
                reason=IneligibleReason.REPLICASET_UNAVAILABLE,
            )

        deploy_ref = first_owner_of_kind(rs.owner_references, "Deployment")
        if deploy_ref is None:
            log.info(
                "Skipping pod: ReplicaSet is not owned by a Deployment",
                replica_set=rs.name,
                reason=IneligibleReason.NO_DEPLOYMENT_OWNER.value,
            )
            return Resolution(
                replica_set=rs.name,
                reason=IneligibleReason.NO_DEPLOYMENT_OWNER,
            )

        key = DeploymentKey(pod.namespace, deploy_ref.name)
        log.info(
            "Found parent Deployment",
            replica_set=rs.name,
            deployment=deploy_ref.name,
        )
        return Resolution(deployment=key, replica_set=rs.name)
