"""Discovery of cordoned (unschedulable) nodes."""

from typing import List

import structlog

from .k8s_client import ClusterClient

logger = structlog.get_logger(__name__)


class NodeScanner:
    """Lists nodes and keeps the ones marked unschedulable."""

    def __init__(self, k8s_client: ClusterClient):
        self._k8s = k8s_client

    def scan(self) -> List[str]:
        """Return the names of unschedulable nodes.

        A failed listing propagates: without the node list the pass
        cannot tell which nodes are draining.
        """
        nodes = self._k8s.list_unschedulable_nodes()
        logger.debug("Scanned nodes", unschedulable=nodes)
        return nodes
