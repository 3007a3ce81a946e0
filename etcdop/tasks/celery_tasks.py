# Copyright 2025 ApeCloud, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import logging
from typing import Any, Optional

from config.celery import app
from etcdop.config import settings
from etcdop.peer.reconciler import PeerReconciler
from etcdop.store.base import ObjectKind, PeerKey, object_key
from etcdop.tasks.utils import TaskConfig
from etcdop.utils.deadline import Deadline

logger = logging.getLogger(__name__)

_peer_reconciler: Optional[PeerReconciler] = None


def get_peer_reconciler() -> PeerReconciler:
    """Worker-wide reconciler, created on first use"""
    global _peer_reconciler
    if _peer_reconciler is None:
        from etcdop.store.kubernetes_store import create_kubernetes_store

        store = create_kubernetes_store(settings.kubeconfig, settings.in_cluster)
        _peer_reconciler = PeerReconciler(
            store, timeout=settings.reconcile_timeout_seconds, image=settings.etcd_image
        )
    return _peer_reconciler


@app.task(bind=True)
def reconcile_peer_task(self, name: str, namespace: str) -> Any:
    """
    Reconcile task entry point

    Args:
        name: EtcdPeer name
        namespace: EtcdPeer namespace
    """
    key = PeerKey(namespace=namespace, name=name)
    result = get_peer_reconciler().reconcile(key)

    if result.requeue:
        countdown = TaskConfig.retry_countdown(self.request.retries)
        logger.warning(f"Reconcile of peer {key} failed, retrying in {countdown}s: {result.error}")
        raise self.retry(exc=result.error, countdown=countdown, max_retries=TaskConfig.RETRY_MAX_RETRIES)

    return result.to_dict()


@app.task
def resync_peers_task() -> int:
    """Periodic task to re-queue every known peer, catching anything the watch missed"""
    try:
        logger.info("Starting peer resync")
        reconciler = get_peer_reconciler()
        deadline = Deadline.after(settings.reconcile_timeout_seconds)
        peers = reconciler.store.list(ObjectKind.PEER, settings.watch_namespace, deadline)

        for manifest in peers:
            key = object_key(manifest)
            reconcile_peer_task.delay(key.name, key.namespace)

        logger.info(f"Peer resync scheduled {len(peers)} reconcile tasks")
        return len(peers)

    except Exception as e:
        logger.error(f"Peer resync failed: {e}", exc_info=True)
        raise
