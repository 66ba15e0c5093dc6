"""
Kubernetes client wrapper for the reconciliation pass.

Defines the ClusterClient port the core logic depends on and the
kubernetes-backed implementation used in production.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import structlog

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from .config import Settings, settings
from .models import Deployment, Node, OwnerReference, Pod, ReplicaSet

logger = structlog.get_logger(__name__)


class ClusterClientError(Exception):
    """A cluster API call failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ObjectNotFoundError(ClusterClientError):
    """The requested object does not exist (HTTP 404)."""


@dataclass
class RestartResult:
    """Outcome of a rollout restart request."""

    success: bool
    message: str = ""
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "message": self.message}
        return {"success": False, "error": self.error}


class ClusterClient(ABC):
    """Read/write boundary to the cluster control plane."""

    @abstractmethod
    def list_nodes(self) -> List[Node]:
        """List every node. Raises ClusterClientError on failure."""

    @abstractmethod
    def list_pods_on_node(self, node: str) -> List[Pod]:
        """List pods scheduled on ``node`` across all namespaces."""

    @abstractmethod
    def get_replica_set(self, namespace: str, name: str) -> ReplicaSet:
        """Fetch a ReplicaSet. Raises ObjectNotFoundError if it is gone."""

    @abstractmethod
    def get_deployment(self, namespace: str, name: str) -> Deployment:
        """Fetch a Deployment. Raises ObjectNotFoundError if it is gone."""

    @abstractmethod
    def trigger_rollout_restart(self, namespace: str, name: str) -> RestartResult:
        """Stamp the pod template with a restart marker."""

    def list_unschedulable_nodes(self) -> List[str]:
        """Names of nodes with spec.unschedulable set."""
        return [node.name for node in self.list_nodes() if node.unschedulable]


def _wrap_api_error(e: ApiException, what: str) -> ClusterClientError:
    if e.status == 404:
        return ObjectNotFoundError(f"{what} not found", status=404)
    return ClusterClientError(f"Failed to {what}: {e.reason}", status=e.status)


def _wrap_error(e: Exception, what: str) -> ClusterClientError:
    """Map API and transport (connection, timeout) failures to ClusterClientError."""
    if isinstance(e, ApiException):
        return _wrap_api_error(e, what)
    return ClusterClientError(f"Failed to {what}: {e}", status=None)


# Errors raised by the kubernetes client: API responses and urllib3 transport
_CLIENT_ERRORS = (ApiException, HTTPError)


def _owner_refs(metadata) -> List[OwnerReference]:
    return [
        OwnerReference(kind=ref.kind, name=ref.name)
        for ref in (metadata.owner_references or [])
    ]


def restart_patch(annotation: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Pod template patch equivalent to ``kubectl rollout restart``."""
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    return {
        "spec": {
            "template": {
                "metadata": {
                    "annotations": {annotation: stamp}
                }
            }
        }
    }


class K8sClient(ClusterClient):
    """
    ClusterClient backed by the official Kubernetes API client.

    Reads raise ClusterClientError (ObjectNotFoundError for 404s) for API
    errors as well as connection failures and timeouts; the restart write
    reports failures through its result instead.
    """

    def __init__(self, cfg: Optional[Settings] = None):
        self.settings = cfg or settings

        # Load kubeconfig
        try:
            if self.settings.kubeconfig_path:
                config.load_kube_config(self.settings.kubeconfig_path)
            else:
                config.load_incluster_config()
        except config.ConfigException:
            logger.warning("Failed to load in-cluster config, trying kubeconfig")
            config.load_kube_config()

        self.core_v1 = client.CoreV1Api()
        self.apps_v1 = client.AppsV1Api()

    def _request_kwargs(self) -> Dict[str, Any]:
        if self.settings.api_timeout_seconds:
            return {"_request_timeout": self.settings.api_timeout_seconds}
        return {}

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    def list_nodes(self) -> List[Node]:
        try:
            node_list = self.core_v1.list_node(**self._request_kwargs())
        except _CLIENT_ERRORS as e:
            logger.error("Failed to list nodes", error=str(e))
            raise _wrap_error(e, "list nodes") from e
        return [
            Node(
                name=node.metadata.name,
                unschedulable=bool(node.spec and node.spec.unschedulable),
            )
            for node in node_list.items
        ]

    def list_pods_on_node(self, node: str) -> List[Pod]:
        try:
            pod_list = self.core_v1.list_pod_for_all_namespaces(
                field_selector=f"spec.nodeName={node}",
                **self._request_kwargs(),
            )
        except _CLIENT_ERRORS as e:
            logger.error("Failed to list pods", node=node, error=str(e))
            raise _wrap_error(e, f"list pods on node {node}") from e
        return [
            Pod(
                name=pod.metadata.name,
                namespace=pod.metadata.namespace,
                node_name=pod.spec.node_name if pod.spec else None,
                annotations=dict(pod.metadata.annotations or {}),
                owner_references=_owner_refs(pod.metadata),
            )
            for pod in pod_list.items
        ]

    def get_replica_set(self, namespace: str, name: str) -> ReplicaSet:
        try:
            rs = self.apps_v1.read_namespaced_replica_set(
                name, namespace, **self._request_kwargs()
            )
        except _CLIENT_ERRORS as e:
            raise _wrap_error(e, f"get ReplicaSet {namespace}/{name}") from e
        return ReplicaSet(
            name=rs.metadata.name,
            namespace=rs.metadata.namespace,
            owner_references=_owner_refs(rs.metadata),
        )

    def get_deployment(self, namespace: str, name: str) -> Deployment:
        try:
            deploy = self.apps_v1.read_namespaced_deployment(
                name, namespace, **self._request_kwargs()
            )
        except _CLIENT_ERRORS as e:
            raise _wrap_error(e, f"get Deployment {namespace}/{name}") from e
        status = deploy.status
        return Deployment(
            name=deploy.metadata.name,
            namespace=deploy.metadata.namespace,
            generation=deploy.metadata.generation or 0,
            paused=bool(deploy.spec and deploy.spec.paused),
            observed_generation=(status.observed_generation or 0) if status else 0,
            replicas=(status.replicas or 0) if status else 0,
            ready_replicas=(status.ready_replicas or 0) if status else 0,
            updated_replicas=(status.updated_replicas or 0) if status else 0,
        )

    # =========================================================================
    # WRITE OPERATIONS
    # =========================================================================

    def trigger_rollout_restart(self, namespace: str, name: str) -> RestartResult:
        """Trigger a rollout restart for a deployment."""
        try:
            patch = restart_patch(self.settings.restart_annotation)
            self.apps_v1.patch_namespaced_deployment(
                name, namespace, patch, **self._request_kwargs()
            )
            logger.info("Rollout restart", namespace=namespace, name=name)
            return RestartResult(
                success=True,
                message=f"Deployment {name} rollout restart triggered",
            )
        except _CLIENT_ERRORS as e:
            logger.error(
                "Rollout restart failed", namespace=namespace, name=name, error=str(e)
            )
            return RestartResult(success=False, error=str(e))


# Global client instance
_k8s_client: Optional[K8sClient] = None


def get_k8s_client(cfg: Optional[Settings] = None) -> K8sClient:
    """Get or create K8s client singleton.

    ``cfg`` only applies when the singleton is first created.
    """
    global _k8s_client
    if _k8s_client is None:
        _k8s_client = K8sClient(cfg)
    return _k8s_client
