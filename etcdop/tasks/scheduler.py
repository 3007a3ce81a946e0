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
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Dict, Optional

from etcdop.store.base import PeerKey

logger = logging.getLogger(__name__)


class TaskResult:
    """Represents the result of a task execution"""

    def __init__(self, task_id: str, success: bool = True, error: str = None, data: Any = None):
        self.task_id = task_id
        self.success = success
        self.error = error
        self.data = data


class ReconcileScheduler(ABC):
    """Abstract base class for reconcile schedulers"""

    @abstractmethod
    def schedule_reconcile(self, key: PeerKey) -> str:
        """
        Schedule a reconciliation pass for a peer

        Args:
            key: Identity of the peer to reconcile

        Returns:
            Task ID for tracking
        """
        pass

    @abstractmethod
    def get_task_status(self, task_id: str) -> Optional[TaskResult]:
        """
        Get task execution status

        Args:
            task_id: Task ID to check

        Returns:
            TaskResult or None if task not found
        """
        pass


class LocalReconcileScheduler(ReconcileScheduler):
    """
    Local synchronous implementation for testing or single-machine deployments

    Passes for the same peer never overlap. Only the most recent `max_results` task
    results are kept.
    """

    def __init__(self, reconciler, max_results: int = 1000):
        self.reconciler = reconciler
        self.max_results = max_results
        self._task_counter = 0
        self._results: "OrderedDict[str, TaskResult]" = OrderedDict()
        self._lock = threading.Lock()
        self._peer_locks: Dict[PeerKey, threading.Lock] = {}

    def _peer_lock(self, key: PeerKey) -> threading.Lock:
        with self._lock:
            return self._peer_locks.setdefault(key, threading.Lock())

    def schedule_reconcile(self, key: PeerKey) -> str:
        with self._lock:
            self._task_counter += 1
            task_id = f"local_task_{self._task_counter}"

        with self._peer_lock(key):
            result = self.reconciler.reconcile(key)

        if result.failed:
            # No backoff queue here; the next event or resync retries
            task_result = TaskResult(task_id, success=False, error=str(result.error), data=result.to_dict())
        else:
            task_result = TaskResult(task_id, success=True, data=result.to_dict())

        with self._lock:
            self._results[task_id] = task_result
            while len(self._results) > self.max_results:
                self._results.popitem(last=False)
        return task_id

    def get_task_status(self, task_id: str) -> Optional[TaskResult]:
        with self._lock:
            return self._results.get(task_id)


class CeleryReconcileScheduler(ReconcileScheduler):
    """Celery implementation of ReconcileScheduler"""

    def schedule_reconcile(self, key: PeerKey) -> str:
        from etcdop.tasks.celery_tasks import reconcile_peer_task

        task = reconcile_peer_task.delay(key.name, key.namespace)
        logger.debug(f"Scheduled reconcile task {task.id} for peer {key}")
        return task.id

    def get_task_status(self, task_id: str) -> Optional[TaskResult]:
        """Get Celery task status"""
        try:
            from celery.result import AsyncResult

            result = AsyncResult(task_id)

            if result.state == "PENDING":
                return TaskResult(task_id, success=False, error="Task pending")
            elif result.state == "SUCCESS":
                return TaskResult(task_id, success=True, data=result.result)
            elif result.state == "FAILURE":
                return TaskResult(task_id, success=False, error=str(result.info))
            else:
                return TaskResult(task_id, success=False, error=f"Unknown state: {result.state}")

        except Exception as e:
            logger.error(f"Failed to get task status for {task_id}: {str(e)}")
            return TaskResult(task_id, success=False, error=str(e))


def create_reconcile_scheduler(scheduler_type: str = "celery", reconciler=None) -> ReconcileScheduler:
    if scheduler_type == "celery":
        return CeleryReconcileScheduler()
    elif scheduler_type == "local":
        if reconciler is None:
            raise ValueError("A local scheduler needs a reconciler")
        return LocalReconcileScheduler(reconciler)
    raise ValueError(f"Unknown scheduler type: {scheduler_type}")
