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
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from etcdop.constants import DEFAULT_ETCD_IMAGE
from etcdop.exceptions import ConflictError, InvalidPeerError, ReconcileError, StoreError
from etcdop.peer.actions import Action, execute_action
from etcdop.peer.collector import StateCollector
from etcdop.peer.decision import decide
from etcdop.store.base import ObjectStore, PeerKey
from etcdop.utils.deadline import Deadline

logger = logging.getLogger(__name__)

DEFAULT_RECONCILE_TIMEOUT = 10.0


class ReconcilePhase(str, Enum):
    COLLECTING = "collecting"
    DECIDING = "deciding"
    ACTING = "acting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ReconcileResult:
    key: PeerKey
    phase: ReconcilePhase = ReconcilePhase.COLLECTING
    action: Optional[Action] = None
    error: Optional[Exception] = None

    @property
    def failed(self) -> bool:
        return self.phase == ReconcilePhase.FAILED

    @property
    def requeue(self) -> bool:
        """Failed passes are handed back to the dispatcher for a retry with backoff"""
        return self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": str(self.key),
            "phase": self.phase.value,
            "action": self.action.describe() if self.action else None,
            "error": str(self.error) if self.error else None,
        }


class PeerReconciler:
    """
    Drives one EtcdPeer towards its desired state, one pass at a time.

    A pass is collect -> decide -> act under a single deadline. It performs at
    most one store mutation and never retries on its own: failures come back as
    a FAILED result for the dispatcher to re-queue.
    """

    def __init__(
        self,
        store: ObjectStore,
        timeout: float = DEFAULT_RECONCILE_TIMEOUT,
        image: str = DEFAULT_ETCD_IMAGE,
    ):
        self.store = store
        self.timeout = timeout
        self.collector = StateCollector(store, image)

    def reconcile(self, key: PeerKey) -> ReconcileResult:
        deadline = Deadline.after(self.timeout)
        result = ReconcileResult(key=key)

        try:
            state = self.collector.get_state(key, deadline)
        except InvalidPeerError as e:
            logger.error(f"Invalid EtcdPeer {key}: {e}")
            result.phase = ReconcilePhase.DONE
            return result
        except StoreError as e:
            logger.error(f"Error while getting current state of peer {key}: {e}")
            result.phase = ReconcilePhase.FAILED
            result.error = e
            return result

        if state.peer is None:
            logger.info(f"EtcdPeer {key} not found")
        else:
            # The admission webhook should have rejected this already, but it may not be deployed
            try:
                state.peer.validate_create()
            except InvalidPeerError as e:
                logger.error(f"Invalid EtcdPeer {key}: {e}")
                result.phase = ReconcilePhase.DONE
                return result

        result.phase = ReconcilePhase.DECIDING
        action = decide(state)
        result.action = action
        logger.info(f"Reconciling peer {key}: {action.describe()}")

        result.phase = ReconcilePhase.ACTING
        try:
            execute_action(action, self.store, deadline)
        except ReconcileError as e:
            if isinstance(e.__cause__, ConflictError):
                logger.info(f"Reconcile of peer {key} raced with another update, requeueing: {e}")
            else:
                logger.error(f"Reconcile of peer {key} failed: {e}")
            result.phase = ReconcilePhase.FAILED
            result.error = e
            return result

        result.phase = ReconcilePhase.DONE
        return result
