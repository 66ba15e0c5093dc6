"""Selection of opted-in pods on a draining node."""

from typing import List

import structlog

from .k8s_client import ClusterClient
from .models import Pod

logger = structlog.get_logger(__name__)


class CandidateFinder:
    """Finds pods on a node that carry the opt-in annotation."""

    def __init__(self, k8s_client: ClusterClient, annotation_key: str, annotation_value: str):
        self._k8s = k8s_client
        self.annotation_key = annotation_key
        self.annotation_value = annotation_value

    def matches(self, pod: Pod) -> bool:
        """True if the pod's annotations hold exactly key=value."""
        return pod.annotations.get(self.annotation_key) == self.annotation_value

    def find(self, node: str) -> List[Pod]:
        """Return candidate pods scheduled on ``node``.

        Raises ClusterClientError if the pods on the node cannot be listed;
        the caller decides whether that aborts anything beyond this node.
        """
        pods = self._k8s.list_pods_on_node(node)
        candidates = [p for p in pods if self.matches(p)]
        logger.debug(
            "Filtered pods on node",
            node=node,
            pods=len(pods),
            candidates=len(candidates),
        )
        return candidates
