"""
Unit tests for reconcile scheduling and the Celery task entry points.

Tasks are called directly (not through a worker) with the reconciler patched in,
so no broker or cluster is needed.
"""

import threading
import time
from unittest.mock import MagicMock, patch

import pytest
from celery.exceptions import Retry

from etcdop.exceptions import StoreError
from etcdop.peer.reconciler import PeerReconciler, ReconcilePhase, ReconcileResult
from etcdop.store.base import ObjectKind, PeerKey
from etcdop.tasks import celery_tasks
from etcdop.tasks.celery_tasks import reconcile_peer_task, resync_peers_task
from etcdop.tasks.scheduler import (
    CeleryReconcileScheduler,
    LocalReconcileScheduler,
    create_reconcile_scheduler,
)
from etcdop.tasks.utils import TaskConfig


class TestLocalScheduler:
    def test_runs_pass_immediately(self, store, seeded_peer, peer_key):
        scheduler = LocalReconcileScheduler(PeerReconciler(store))

        task_id = scheduler.schedule_reconcile(peer_key)

        assert task_id == "local_task_1"
        status = scheduler.get_task_status(task_id)
        assert status.success
        assert status.data["phase"] == "done"
        assert store.exists(ObjectKind.CLAIM, peer_key)

    def test_records_failures(self, peer_key):
        reconciler = MagicMock()
        reconciler.reconcile.return_value = ReconcileResult(
            key=peer_key, phase=ReconcilePhase.FAILED, error=StoreError("EtcdPeer", peer_key, "get", "boom")
        )
        scheduler = LocalReconcileScheduler(reconciler)

        status = scheduler.get_task_status(scheduler.schedule_reconcile(peer_key))

        assert not status.success
        assert "boom" in status.error

    def test_keeps_only_recent_results(self, store, seeded_peer, peer_key):
        scheduler = LocalReconcileScheduler(PeerReconciler(store), max_results=3)

        task_ids = [scheduler.schedule_reconcile(peer_key) for _ in range(10)]

        assert len(scheduler._results) == 3
        assert scheduler.get_task_status(task_ids[0]) is None
        assert scheduler.get_task_status(task_ids[-1]).success

    def test_passes_for_one_peer_never_overlap(self, peer_key):
        active = []
        overlaps = []
        guard = threading.Lock()

        def reconcile(key):
            with guard:
                active.append(key)
                if active.count(key) > 1:
                    overlaps.append(key)
            time.sleep(0.01)
            with guard:
                active.remove(key)
            return ReconcileResult(key=key, phase=ReconcilePhase.DONE)

        reconciler = MagicMock()
        reconciler.reconcile.side_effect = reconcile
        scheduler = LocalReconcileScheduler(reconciler)
        task_ids = []

        threads = [
            threading.Thread(target=lambda: task_ids.append(scheduler.schedule_reconcile(peer_key)))
            for _ in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert overlaps == []
        assert len(set(task_ids)) == 8

    def test_unknown_task(self, store):
        assert LocalReconcileScheduler(PeerReconciler(store)).get_task_status("nope") is None


class TestCreateScheduler:
    def test_celery(self):
        assert isinstance(create_reconcile_scheduler("celery"), CeleryReconcileScheduler)

    def test_local_needs_reconciler(self, store):
        with pytest.raises(ValueError):
            create_reconcile_scheduler("local")

        assert isinstance(create_reconcile_scheduler("local", PeerReconciler(store)), LocalReconcileScheduler)

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown scheduler type"):
            create_reconcile_scheduler("cron")

    def test_celery_scheduler_enqueues_task(self, peer_key):
        with patch.object(reconcile_peer_task, "delay") as delay:
            delay.return_value.id = "task-1"

            assert CeleryReconcileScheduler().schedule_reconcile(peer_key) == "task-1"

        delay.assert_called_once_with("one", "default")


class TestRetryBackoff:
    def test_exponential_and_capped(self):
        assert TaskConfig.retry_countdown(0) == TaskConfig.RETRY_COUNTDOWN
        assert TaskConfig.retry_countdown(1) == TaskConfig.RETRY_COUNTDOWN * 2
        assert TaskConfig.retry_countdown(50) == TaskConfig.RETRY_MAX_COUNTDOWN


class TestReconcilePeerTask:
    def test_success(self, store, seeded_peer):
        with patch.object(celery_tasks, "get_peer_reconciler", return_value=PeerReconciler(store)):
            result = reconcile_peer_task("one", "default")

        assert result["phase"] == "done"
        assert result["action"] == "create PersistentVolumeClaim default/one"

    def test_failed_pass_is_retried(self):
        error = StoreError("EtcdPeer", PeerKey("default", "one"), "get", "connection refused")
        reconciler = MagicMock()
        reconciler.reconcile.return_value = ReconcileResult(
            key=PeerKey("default", "one"), phase=ReconcilePhase.FAILED, error=error
        )

        with (
            patch.object(celery_tasks, "get_peer_reconciler", return_value=reconciler),
            patch.object(reconcile_peer_task, "retry", side_effect=Retry()) as retry,
        ):
            with pytest.raises(Retry):
                reconcile_peer_task("one", "default")

        kwargs = retry.call_args.kwargs
        assert kwargs["exc"] is error
        assert kwargs["countdown"] == TaskConfig.retry_countdown(0)
        assert kwargs["max_retries"] == TaskConfig.RETRY_MAX_RETRIES

    def test_invalid_peer_is_not_retried(self, store, peer_manifest):
        store.put(ObjectKind.PEER, peer_manifest(spec={"clusterName": ""}))

        with (
            patch.object(celery_tasks, "get_peer_reconciler", return_value=PeerReconciler(store)),
            patch.object(reconcile_peer_task, "retry") as retry,
        ):
            result = reconcile_peer_task("one", "default")

        assert result["phase"] == "done"
        retry.assert_not_called()


class TestResyncPeersTask:
    def test_enqueues_every_peer(self, store, peer_manifest):
        store.put(ObjectKind.PEER, peer_manifest(name="one"))
        store.put(ObjectKind.PEER, peer_manifest(name="two", namespace="prod"))

        with (
            patch.object(celery_tasks, "get_peer_reconciler", return_value=PeerReconciler(store)),
            patch.object(reconcile_peer_task, "delay") as delay,
        ):
            assert resync_peers_task() == 2

        delay.assert_any_call("one", "default")
        delay.assert_any_call("two", "prod")
