import copy

import pytest

from etcdop.constants import PVC_CLEANUP_FINALIZER
from etcdop.store.base import ObjectKind, PeerKey
from etcdop.store.memory import InMemoryObjectStore
from etcdop.utils.deadline import Deadline

BASE_PEER = {
    "apiVersion": "etcd.improbable.io/v1alpha1",
    "kind": "EtcdPeer",
    "metadata": {"name": "one", "namespace": "default"},
    "spec": {
        "clusterName": "magic",
        "bootstrap": {
            "static": {
                "initialCluster": [
                    {"name": "one", "host": "one.magic.default.svc"},
                    {"name": "two", "host": "two.magic.default.svc"},
                ]
            },
            "initialClusterState": "New",
        },
        "storage": {
            "volumeClaimTemplate": {
                "storageClassName": "standard",
                "resources": {"requests": {"storage": "1Gi"}},
            }
        },
    },
}


@pytest.fixture
def peer_manifest():
    """Factory for EtcdPeer manifests; keyword arguments override metadata or spec fields"""

    def _make(name="one", namespace="default", finalizers=None, spec=None, **metadata):
        manifest = copy.deepcopy(BASE_PEER)
        manifest["metadata"].update(name=name, namespace=namespace, **metadata)
        if finalizers is not None:
            manifest["metadata"]["finalizers"] = list(finalizers)
        if spec:
            manifest["spec"].update(spec)
        return manifest

    return _make


@pytest.fixture
def store():
    return InMemoryObjectStore()


@pytest.fixture
def deadline():
    return Deadline.after(10)


@pytest.fixture
def peer_key():
    return PeerKey(namespace="default", name="one")


@pytest.fixture
def seeded_peer(store, peer_manifest):
    """A live peer carrying the volume claim cleanup finalizer"""
    return store.put(ObjectKind.PEER, peer_manifest(finalizers=[PVC_CLEANUP_FINALIZER]))
