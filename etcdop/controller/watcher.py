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
import threading
from typing import Any, Dict, List, Optional

import urllib3
from kubernetes import watch
from kubernetes.client.rest import ApiException

from etcdop.peer.event_router import route_event
from etcdop.store.base import ObjectKind
from etcdop.store.kubernetes_store import KubernetesObjectStore
from etcdop.tasks.scheduler import ReconcileScheduler

logger = logging.getLogger(__name__)


class PeerWatcher:
    """
    Watches EtcdPeers, their ReplicaSets and their volume claims, and schedules a
    reconciliation pass for the peer behind every event.

    One thread per kind. A stream that ends or fails is restarted after `restart_delay`.
    Delivery is at-least-once: the same peer may be scheduled several times for one change.
    """

    KINDS = (ObjectKind.PEER, ObjectKind.REPLICA_SET, ObjectKind.CLAIM)

    def __init__(
        self,
        store: KubernetesObjectStore,
        scheduler: ReconcileScheduler,
        namespace: Optional[str] = None,
        stream_timeout: int = 300,
        restart_delay: float = 5.0,
    ):
        self.store = store
        self.scheduler = scheduler
        self.namespace = namespace
        self.stream_timeout = stream_timeout
        self.restart_delay = restart_delay
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._watches: List[watch.Watch] = []
        self._threads: List[threading.Thread] = []

    def handle_event(self, kind: ObjectKind, event: Dict[str, Any]):
        raw = event.get("raw_object") or {}
        metadata = raw.get("metadata") or {}
        key = route_event(kind, metadata)
        if key is None:
            logger.debug(f"Ignoring {event.get('type')} {kind.value} {metadata.get('name')}, not related to a peer")
            return

        logger.debug(f"{event.get('type')} {kind.value} {metadata.get('name')} -> peer {key}")
        try:
            self.scheduler.schedule_reconcile(key)
        except Exception as e:
            # The next event or periodic resync picks the peer up again
            logger.error(f"Failed to schedule reconcile for peer {key}: {e}", exc_info=True)

    def _watch_kind(self, kind: ObjectKind):
        while not self._stop.is_set():
            w = watch.Watch()
            with self._lock:
                self._watches.append(w)
            try:
                list_func = self.store.list_function(kind, self.namespace)
                for event in w.stream(list_func, timeout_seconds=self.stream_timeout):
                    if self._stop.is_set():
                        break
                    if event.get("type") == "ERROR":
                        logger.warning(f"{kind.value} watch returned an error, restarting: {event.get('raw_object')}")
                        break
                    self.handle_event(kind, event)
            except (ApiException, urllib3.exceptions.HTTPError) as e:
                logger.warning(f"{kind.value} watch failed, restarting in {self.restart_delay}s: {e}")
                self._stop.wait(self.restart_delay)
            except Exception:
                # Never let a watch thread die; claim events only arrive through here
                logger.exception(f"{kind.value} watch crashed, restarting in {self.restart_delay}s")
                self._stop.wait(self.restart_delay)
            finally:
                w.stop()
                with self._lock:
                    self._watches.remove(w)

    def start(self):
        for kind in self.KINDS:
            thread = threading.Thread(target=self._watch_kind, args=(kind,), name=f"watch-{kind.value}", daemon=True)
            thread.start()
            self._threads.append(thread)
        logger.info(f"Watching EtcdPeers in {self.namespace or 'all namespaces'}")

    def stop(self):
        self._stop.set()
        with self._lock:
            for w in self._watches:
                w.stop()

    def run_forever(self):
        self.start()
        try:
            for thread in self._threads:
                thread.join()
        except KeyboardInterrupt:
            logger.info("Stopping watcher")
            self.stop()
