"""
Cluster object views used by the reconciliation pass.

These are read-only snapshots of the few fields the pass needs, decoupled
from the kubernetes client models so the core logic can be driven by any
ClusterClient implementation.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, NamedTuple, Optional


@dataclass(frozen=True)
class OwnerReference:
    """Controller reference from metadata.ownerReferences."""

    kind: str
    name: str


def first_owner_of_kind(
    owners: List[OwnerReference], kind: str
) -> Optional[OwnerReference]:
    """Return the first owner reference of the given kind, if any."""
    for ref in owners:
        if ref.kind == kind:
            return ref
    return None


@dataclass
class Node:
    name: str
    unschedulable: bool = False


@dataclass
class Pod:
    name: str
    namespace: str
    node_name: Optional[str] = None
    annotations: Dict[str, str] = field(default_factory=dict)
    owner_references: List[OwnerReference] = field(default_factory=list)


@dataclass
class ReplicaSet:
    name: str
    namespace: str
    owner_references: List[OwnerReference] = field(default_factory=list)


@dataclass
class Deployment:
    """Deployment spec/status fields relevant to the stability check.

    Status counters the API server leaves unset are zero, and an unset
    ``spec.paused`` is False. Conversions from API objects must apply
    those defaults rather than passing None through.
    """

    name: str
    namespace: str
    generation: int = 0
    paused: bool = False
    observed_generation: int = 0
    replicas: int = 0
    ready_replicas: int = 0
    updated_replicas: int = 0


class DeploymentKey(NamedTuple):
    """Identity of a Deployment within one cluster."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class DedupRecord:
    """Deployments already restarted during a single reconciliation run.

    Created empty for each run and discarded with it; never shared between
    runs. Access is serialized so the at-most-once guarantee holds even if
    candidates are processed from several threads.
    """

    def __init__(self):
        self._keys: set = set()
        self._lock = threading.Lock()

    def claim(self, key: DeploymentKey) -> bool:
        """Atomically record ``key``; False if it was already recorded."""
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def __iter__(self) -> Iterator[DeploymentKey]:
        with self._lock:
            return iter(sorted(self._keys))
