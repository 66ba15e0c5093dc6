"""Shared test fixtures for evict-to-rollout."""

import sys
from typing import Dict, List, Optional, Tuple
from unittest.mock import MagicMock, patch

import pytest
import structlog

from src.k8s_client import (
    ClusterClient,
    ClusterClientError,
    ObjectNotFoundError,
    RestartResult,
)
from src.models import Deployment, Node, OwnerReference, Pod, ReplicaSet

ANNOTATION_KEY = "evict-with-rollout"
ANNOTATION_VALUE = "true"


# ---------------------------------------------------------------------------
# Environment fixture (needed by any test that instantiates Settings)
# ---------------------------------------------------------------------------


@pytest.fixture
def settings_env(monkeypatch):
    """Clear environment overrides so Settings loads its defaults."""
    for var in [
        "EVICT_TO_ROLLOUT_ANNOTATION_KEY",
        "EVICT_TO_ROLLOUT_ANNOTATION_VALUE",
        "EVICT_TO_ROLLOUT_DRY_RUN",
        "EVICT_TO_ROLLOUT_KUBECONFIG_PATH",
        "EVICT_TO_ROLLOUT_PUSHGATEWAY_URL",
    ]:
        monkeypatch.delenv(var, raising=False)


# ---------------------------------------------------------------------------
# Singleton reset fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Reset module-level singletons between tests."""
    yield
    mod = sys.modules.get("src.k8s_client")
    if mod is not None:
        setattr(mod, "_k8s_client", None)


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo global structlog configuration applied by a test."""
    yield
    structlog.reset_defaults()
    for name, mod in list(sys.modules.items()):
        if name == "src" or name.startswith("src."):
            for value in vars(mod).values():
                if isinstance(value, structlog._config.BoundLoggerLazyProxy):
                    value.__dict__.pop("bind", None)


# ---------------------------------------------------------------------------
# In-memory cluster
# ---------------------------------------------------------------------------


def make_pod(
    name: str,
    namespace: str = "prod",
    node: str = "worker-1",
    replica_set: Optional[str] = "app-77f",
    annotations: Optional[Dict[str, str]] = None,
    owners: Optional[List[OwnerReference]] = None,
) -> Pod:
    """Build an annotated pod owned by ``replica_set`` unless told otherwise."""
    if annotations is None:
        annotations = {ANNOTATION_KEY: ANNOTATION_VALUE}
    if owners is None:
        owners = [OwnerReference("ReplicaSet", replica_set)] if replica_set else []
    return Pod(
        name=name,
        namespace=namespace,
        node_name=node,
        annotations=annotations,
        owner_references=owners,
    )


def stable_deployment(name: str = "app", namespace: str = "prod", **overrides) -> Deployment:
    fields = dict(
        generation=3,
        observed_generation=3,
        replicas=3,
        ready_replicas=3,
        updated_replicas=3,
        paused=False,
    )
    fields.update(overrides)
    return Deployment(name=name, namespace=namespace, **fields)


class FakeClusterClient(ClusterClient):
    """Dict-backed ClusterClient stand-in for tests."""

    def __init__(self):
        self.nodes: List[Node] = []
        self.pods: List[Pod] = []
        self.replica_sets: Dict[Tuple[str, str], ReplicaSet] = {}
        self.deployments: Dict[Tuple[str, str], Deployment] = {}

        self.fail_list_nodes = False
        self.fail_list_pods_on: set = set()
        self.fail_get_replica_set = False
        self.fail_restart_for: set = set()

        self.replica_set_fetches: List[Tuple[str, str]] = []
        self.deployment_fetches: List[Tuple[str, str]] = []
        self.restart_calls: List[Tuple[str, str]] = []

    # -- population helpers --------------------------------------------------

    def add_node(self, name: str, unschedulable: bool = True) -> "FakeClusterClient":
        self.nodes.append(Node(name=name, unschedulable=unschedulable))
        return self

    def add_pod(self, pod: Pod) -> "FakeClusterClient":
        self.pods.append(pod)
        return self

    def add_replica_set(
        self, name: str, namespace: str = "prod", deployment: Optional[str] = "app"
    ) -> "FakeClusterClient":
        owners = [OwnerReference("Deployment", deployment)] if deployment else []
        self.replica_sets[(namespace, name)] = ReplicaSet(name, namespace, owners)
        return self

    def add_deployment(self, deployment: Deployment) -> "FakeClusterClient":
        self.deployments[(deployment.namespace, deployment.name)] = deployment
        return self

    # -- ClusterClient -------------------------------------------------------

    def list_nodes(self) -> List[Node]:
        if self.fail_list_nodes:
            raise ClusterClientError("Failed to list nodes: Forbidden", status=403)
        return list(self.nodes)

    def list_pods_on_node(self, node: str) -> List[Pod]:
        if node in self.fail_list_pods_on:
            raise ClusterClientError(f"Failed to list pods on node {node}", status=500)
        return [p for p in self.pods if p.node_name == node]

    def get_replica_set(self, namespace: str, name: str) -> ReplicaSet:
        self.replica_set_fetches.append((namespace, name))
        if self.fail_get_replica_set:
            raise ClusterClientError("connection reset", status=None)
        try:
            return self.replica_sets[(namespace, name)]
        except KeyError:
            raise ObjectNotFoundError(f"ReplicaSet {namespace}/{name} not found", status=404)

    def get_deployment(self, namespace: str, name: str) -> Deployment:
        self.deployment_fetches.append((namespace, name))
        try:
            return self.deployments[(namespace, name)]
        except KeyError:
            raise ObjectNotFoundError(f"Deployment {namespace}/{name} not found", status=404)

    def trigger_rollout_restart(self, namespace: str, name: str) -> RestartResult:
        self.restart_calls.append((namespace, name))
        if (namespace, name) in self.fail_restart_for:
            return RestartResult(success=False, error="admission webhook denied")
        return RestartResult(success=True, message=f"Deployment {name} rollout restart triggered")


@pytest.fixture
def fake_cluster():
    """Return an empty FakeClusterClient."""
    return FakeClusterClient()


@pytest.fixture
def scenario_a(fake_cluster):
    """worker-1 cordoned with one annotated pod of a stable prod/app."""
    return (
        fake_cluster.add_node("worker-1")
        .add_node("worker-2", unschedulable=False)
        .add_pod(make_pod("app-abc"))
        .add_replica_set("app-77f")
        .add_deployment(stable_deployment())
    )


# ---------------------------------------------------------------------------
# Mock K8s client
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_k8s_client(settings_env):
    """Return a K8sClient with all K8s API objects mocked."""
    with patch("src.k8s_client.config"):
        with patch("src.k8s_client.client") as mock_client:
            mock_client.CoreV1Api.return_value = MagicMock()
            mock_client.AppsV1Api.return_value = MagicMock()

            from src.k8s_client import K8sClient

            k = K8sClient()
            yield k
