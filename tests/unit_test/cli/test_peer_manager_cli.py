"""
Unit tests for the peer manager CLI, run against the in-memory store.
"""

import json
from unittest.mock import patch

from etcdop.cli import peer_manager
from etcdop.cli.peer_manager import main, run_reconciliation, run_resync, show_peer_status
from etcdop.store.base import ObjectKind


class TestStatus:
    def test_shows_next_action_without_acting(self, store, seeded_peer, capsys):
        status = show_peer_status(store, "one", "default")

        printed = json.loads(capsys.readouterr().out)
        assert printed["next_action"] == "create PersistentVolumeClaim default/one"
        assert printed["desired_claim"]["metadata"]["name"] == "one"
        assert status["claim"] is None
        assert store.mutations == []

    def test_missing_peer(self, store, capsys):
        status = show_peer_status(store, "ghost", "default")

        assert status["peer"] is None
        assert status["next_action"].startswith("noop")


class TestReconcile:
    def test_single_pass(self, store, seeded_peer, peer_key, capsys):
        result = run_reconciliation(store, "one", "default")

        assert not result.failed
        assert json.loads(capsys.readouterr().out)["phase"] == "done"
        assert store.exists(ObjectKind.CLAIM, peer_key)
        assert not store.exists(ObjectKind.REPLICA_SET, peer_key)

    def test_resync_reconciles_every_peer(self, store, peer_manifest, capsys):
        store.put(ObjectKind.PEER, peer_manifest(name="one"))
        store.put(ObjectKind.PEER, peer_manifest(name="two"))

        assert run_resync(store) == 0

        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 2
        assert len(store.mutations) == 2


class TestMain:
    def test_no_command(self, capsys):
        assert main([]) == 1

    def test_reconcile_command(self, store, seeded_peer, capsys):
        with patch.object(peer_manager, "_create_store", return_value=store):
            assert main(["reconcile", "--name", "one"]) == 0

    def test_store_failure_exits_non_zero(self, capsys):
        with patch.object(peer_manager, "_create_store", side_effect=RuntimeError("no kubeconfig")):
            assert main(["status", "--name", "one"]) == 1
