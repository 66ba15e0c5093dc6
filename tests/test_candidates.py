"""Tests for annotation-based candidate selection."""

import pytest

from conftest import ANNOTATION_KEY, ANNOTATION_VALUE, make_pod
from src.candidates import CandidateFinder
from src.k8s_client import ClusterClientError
from src.models import OwnerReference


@pytest.fixture
def finder(fake_cluster):
    return CandidateFinder(fake_cluster, ANNOTATION_KEY, ANNOTATION_VALUE)


def test_exact_match_selected(fake_cluster, finder):
    fake_cluster.add_pod(make_pod("app-abc"))

    assert [p.name for p in finder.find("worker-1")] == ["app-abc"]


@pytest.mark.parametrize(
    "annotations",
    [
        {},
        {"unrelated": "true"},
        {ANNOTATION_KEY: "false"},
        {ANNOTATION_KEY: "True"},
        {ANNOTATION_KEY: ""},
        {"evict-with-rollout-extra": "true"},
    ],
)
def test_non_matching_annotations_excluded(fake_cluster, finder, annotations):
    fake_cluster.add_pod(make_pod("app-abc", annotations=annotations))

    assert finder.find("worker-1") == []


@pytest.mark.parametrize(
    "owners",
    [
        [],
        [OwnerReference("StatefulSet", "db")],
        [OwnerReference("ReplicaSet", "app-77f")],
    ],
)
def test_owner_topology_does_not_affect_selection(fake_cluster, finder, owners):
    fake_cluster.add_pod(make_pod("unannotated", annotations={}, owners=owners))
    fake_cluster.add_pod(make_pod("annotated", owners=owners))

    assert [p.name for p in finder.find("worker-1")] == ["annotated"]


def test_only_pods_on_requested_node(fake_cluster, finder):
    fake_cluster.add_pod(make_pod("on-1", node="worker-1"))
    fake_cluster.add_pod(make_pod("on-2", node="worker-2"))

    assert [p.name for p in finder.find("worker-2")] == ["on-2"]


def test_spans_namespaces(fake_cluster, finder):
    fake_cluster.add_pod(make_pod("a", namespace="prod"))
    fake_cluster.add_pod(make_pod("b", namespace="staging"))

    assert {p.namespace for p in finder.find("worker-1")} == {"prod", "staging"}


def test_custom_selector(fake_cluster):
    fake_cluster.add_pod(make_pod("app-abc", annotations={"example.com/rollout": "yes"}))
    finder = CandidateFinder(fake_cluster, "example.com/rollout", "yes")

    assert len(finder.find("worker-1")) == 1


def test_listing_failure_raises(fake_cluster, finder):
    fake_cluster.fail_list_pods_on.add("worker-1")

    with pytest.raises(ClusterClientError):
        finder.find("worker-1")
