"""
Unit tests for mapping watch events back to peer identities.
"""

from etcdop.constants import API_VERSION, PEER_LABEL
from etcdop.peer.event_router import peer_for_claim, peer_for_owned_object, peer_for_peer, route_event
from etcdop.store.base import ObjectKind, PeerKey


def _owner(**overrides):
    ref = {"apiVersion": API_VERSION, "kind": "EtcdPeer", "name": "one", "uid": "u", "controller": True}
    ref.update(overrides)
    return ref


class TestClaimRouting:
    def test_by_peer_label(self):
        metadata = {"name": "data", "namespace": "prod", "labels": {PEER_LABEL: "one"}}

        assert peer_for_claim(metadata) == PeerKey("prod", "one")

    def test_unlabelled_claim_is_ignored(self):
        assert peer_for_claim({"name": "data", "namespace": "prod"}) is None
        assert peer_for_claim({"name": "data", "labels": {"app": "etcd"}}) is None

    def test_owner_reference_is_not_used_for_claims(self):
        metadata = {"name": "one", "namespace": "prod", "ownerReferences": [_owner()]}

        assert route_event(ObjectKind.CLAIM, metadata) is None


class TestOwnedObjectRouting:
    def test_controller_reference(self):
        metadata = {"name": "one", "namespace": "prod", "ownerReferences": [_owner()]}

        assert peer_for_owned_object(metadata) == PeerKey("prod", "one")

    def test_picks_the_peer_among_several_owners(self):
        refs = [_owner(kind="Deployment", apiVersion="apps/v1", name="other"), _owner(name="two")]

        assert peer_for_owned_object({"namespace": "prod", "ownerReferences": refs}) == PeerKey("prod", "two")

    def test_ignores_non_controller_and_foreign_owners(self):
        refs = [_owner(controller=False), _owner(apiVersion="etcd.example.com/v1")]

        assert peer_for_owned_object({"namespace": "prod", "ownerReferences": refs}) is None

    def test_no_owners(self):
        assert peer_for_owned_object({"name": "one", "namespace": "prod"}) is None


class TestRouteEvent:
    def test_peer_routes_to_itself(self):
        metadata = {"name": "one", "namespace": "prod"}

        assert route_event(ObjectKind.PEER, metadata) == PeerKey("prod", "one")
        assert peer_for_peer({"name": "one"}) == PeerKey("default", "one")
        assert peer_for_peer({}) is None

    def test_replica_set(self):
        metadata = {"name": "one", "namespace": "prod", "ownerReferences": [_owner()]}

        assert route_event(ObjectKind.REPLICA_SET, metadata) == PeerKey("prod", "one")

    def test_claim(self):
        metadata = {"name": "one", "namespace": "prod", "labels": {PEER_LABEL: "one"}}

        assert route_event(ObjectKind.CLAIM, metadata) == PeerKey("prod", "one")
