"""
Unit tests for action execution against the store.

The cleanup tests pin down the ordering guarantee: the cleanup finalizer is only
released once the volume claim is gone or already on its way out.
"""

from unittest.mock import MagicMock

import pytest

from etcdop.constants import PVC_CLEANUP_FINALIZER
from etcdop.exceptions import NotFoundError, ReconcileError, StoreError
from etcdop.peer.actions import Action, execute_action
from etcdop.schema import EtcdPeer
from etcdop.store.base import ObjectKind, PeerKey

CLAIM = {
    "apiVersion": "v1",
    "kind": "PersistentVolumeClaim",
    "metadata": {"name": "one", "namespace": "default"},
    "spec": {},
}


def _deleting_peer(store, peer_manifest, deadline, finalizers=(PVC_CLEANUP_FINALIZER,)):
    store.put(
        ObjectKind.PEER,
        peer_manifest(finalizers=list(finalizers), deletionTimestamp="2025-01-01T00:00:00Z"),
    )
    return EtcdPeer.from_manifest(store.get(ObjectKind.PEER, PeerKey("default", "one"), deadline))


class TestCreateAction:
    def test_creates_missing_object(self, store, deadline, peer_key):
        execute_action(Action.create(ObjectKind.CLAIM, CLAIM), store, deadline)

        assert store.exists(ObjectKind.CLAIM, peer_key)

    def test_already_exists_is_tolerated(self, store, deadline, peer_key):
        store.put(ObjectKind.CLAIM, CLAIM)

        execute_action(Action.create(ObjectKind.CLAIM, CLAIM), store, deadline)

        assert store.mutations == []

    def test_other_failures_are_surfaced(self, deadline):
        store = MagicMock()
        store.create.side_effect = StoreError("PersistentVolumeClaim", "default/one", "create", "boom")

        with pytest.raises(ReconcileError, match="failed to create PersistentVolumeClaim default/one"):
            execute_action(Action.create(ObjectKind.CLAIM, CLAIM), store, deadline)


class TestNoopAction:
    def test_does_nothing(self, deadline):
        store = MagicMock()

        execute_action(Action.noop("converged"), store, deadline)

        assert store.mock_calls == []


class TestCleanupAction:
    def test_deletes_live_claim_and_keeps_finalizer(self, store, deadline, peer_manifest, peer_key):
        peer = _deleting_peer(store, peer_manifest, deadline)
        store.put(ObjectKind.CLAIM, CLAIM)

        execute_action(Action.cleanup(peer), store, deadline)

        assert not store.exists(ObjectKind.CLAIM, peer_key)
        stored_peer = store.get(ObjectKind.PEER, peer_key, deadline)
        assert stored_peer["metadata"]["finalizers"] == [PVC_CLEANUP_FINALIZER]

    def test_never_releases_finalizer_while_claim_is_live(self, peer_manifest, deadline):
        peer = EtcdPeer.from_manifest(
            peer_manifest(finalizers=[PVC_CLEANUP_FINALIZER], deletionTimestamp="2025-01-01T00:00:00Z")
        )
        store = MagicMock()
        store.get.return_value = dict(CLAIM)

        execute_action(Action.cleanup(peer), store, deadline)

        store.delete.assert_called_once_with(ObjectKind.CLAIM, PeerKey("default", "one"), deadline)
        store.update_finalizers.assert_not_called()

    def test_claim_already_deleting_releases_finalizer(self, store, deadline, peer_manifest, peer_key):
        peer = _deleting_peer(store, peer_manifest, deadline)
        claim = dict(CLAIM, metadata=dict(CLAIM["metadata"], finalizers=["kubernetes.io/pvc-protection"]))
        store.put(ObjectKind.CLAIM, claim)
        store.delete(ObjectKind.CLAIM, peer_key, deadline)

        execute_action(Action.cleanup(peer), store, deadline)

        # Releasing the last finalizer lets the peer go
        assert not store.exists(ObjectKind.PEER, peer_key)
        assert store.exists(ObjectKind.CLAIM, peer_key)

    def test_claim_absent_releases_finalizer(self, store, deadline, peer_manifest, peer_key):
        peer = _deleting_peer(store, peer_manifest, deadline)

        execute_action(Action.cleanup(peer), store, deadline)

        assert not store.exists(ObjectKind.PEER, peer_key)

    def test_other_finalizers_are_kept(self, store, deadline, peer_manifest, peer_key):
        peer = _deleting_peer(store, peer_manifest, deadline, finalizers=["example.com/other", PVC_CLEANUP_FINALIZER])

        execute_action(Action.cleanup(peer), store, deadline)

        stored_peer = store.get(ObjectKind.PEER, peer_key, deadline)
        assert stored_peer["metadata"]["finalizers"] == ["example.com/other"]

    def test_stale_peer_conflicts(self, store, deadline, peer_manifest, peer_key):
        peer = _deleting_peer(store, peer_manifest, deadline)
        # Someone else touched the peer after we read it
        store.update_finalizers(ObjectKind.PEER, peer_key, peer.metadata.finalizers, None, deadline)

        with pytest.raises(ReconcileError, match="failed to remove volume claim cleanup finalizer"):
            execute_action(Action.cleanup(peer), store, deadline)

        assert store.exists(ObjectKind.PEER, peer_key)

    def test_peer_gone_at_release_is_tolerated(self, peer_manifest, deadline):
        peer = EtcdPeer.from_manifest(
            peer_manifest(finalizers=[PVC_CLEANUP_FINALIZER], deletionTimestamp="2025-01-01T00:00:00Z")
        )
        store = MagicMock()
        store.get.side_effect = NotFoundError("PersistentVolumeClaim", "default/one", "get")
        store.update_finalizers.side_effect = NotFoundError("EtcdPeer", "default/one", "update finalizers of")

        execute_action(Action.cleanup(peer), store, deadline)

    def test_read_failure_is_surfaced(self, peer_manifest, deadline):
        peer = EtcdPeer.from_manifest(
            peer_manifest(finalizers=[PVC_CLEANUP_FINALIZER], deletionTimestamp="2025-01-01T00:00:00Z")
        )
        store = MagicMock()
        store.get.side_effect = StoreError("PersistentVolumeClaim", "default/one", "get", "connection refused")

        with pytest.raises(ReconcileError, match="connection refused"):
            execute_action(Action.cleanup(peer), store, deadline)

        store.update_finalizers.assert_not_called()
