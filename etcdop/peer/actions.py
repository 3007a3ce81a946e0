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

from etcdop.constants import PVC_CLEANUP_FINALIZER
from etcdop.exceptions import AlreadyExistsError, ConflictError, NotFoundError, ReconcileError, StoreError
from etcdop.peer.desired_state import pvc_for_peer
from etcdop.schema import EtcdPeer
from etcdop.store.base import ObjectKind, ObjectStore, is_being_deleted, object_key
from etcdop.utils.deadline import Deadline

logger = logging.getLogger(__name__)


class ActionKind(str, Enum):
    NOOP = "noop"
    CREATE = "create"
    CLEANUP = "cleanup"


@dataclass(frozen=True)
class Action:
    """The single corrective step chosen for a reconciliation pass"""

    kind: ActionKind
    reason: str
    object_kind: Optional[ObjectKind] = None
    manifest: Optional[Dict[str, Any]] = None
    peer: Optional[EtcdPeer] = None

    @classmethod
    def noop(cls, reason: str) -> "Action":
        return cls(kind=ActionKind.NOOP, reason=reason)

    @classmethod
    def create(cls, object_kind: ObjectKind, manifest: Dict[str, Any]) -> "Action":
        return cls(
            kind=ActionKind.CREATE,
            reason=f"{object_kind.value} missing",
            object_kind=object_kind,
            manifest=manifest,
        )

    @classmethod
    def cleanup(cls, peer: EtcdPeer) -> "Action":
        return cls(kind=ActionKind.CLEANUP, reason="peer deleted, volume claim cleanup pending", peer=peer)

    def describe(self) -> str:
        if self.kind == ActionKind.CREATE:
            return f"create {self.object_kind.value} {object_key(self.manifest)}"
        return f"{self.kind.value} ({self.reason})"


def execute_action(action: Action, store: ObjectStore, deadline: Deadline):
    """
    Perform the action's single side effect against the store

    Every write is create-if-absent or conditional, so a retried pass is safe.

    Raises:
        ReconcileError: the action failed and the pass should be re-queued
    """
    match action.kind:
        case ActionKind.NOOP:
            logger.debug(f"Nothing to do: {action.reason}")
        case ActionKind.CREATE:
            _create_object(action.object_kind, action.manifest, store, deadline)
        case ActionKind.CLEANUP:
            _cleanup_claim(action.peer, store, deadline)
        case _:
            raise ValueError(f"Unknown action kind: {action.kind}")


def _create_object(kind: ObjectKind, manifest: Dict[str, Any], store: ObjectStore, deadline: Deadline):
    key = object_key(manifest)
    try:
        store.create(kind, manifest, deadline)
        logger.info(f"Created {kind.value} {key}")
    except AlreadyExistsError:
        # Another pass or another actor got there first
        logger.debug(f"{kind.value} {key} already exists")
    except StoreError as e:
        raise ReconcileError(f"failed to create {kind.value} {key}: {e}") from e


def _cleanup_claim(peer: EtcdPeer, store: ObjectStore, deadline: Deadline):
    """
    Delete the peer's volume claim, then release the cleanup finalizer on a later pass.

    The claim is only removed for real once the pod using it is gone, which in turn waits on
    the peer itself being deleted. A claim already marked for deletion therefore counts as done.
    """
    key = object_key(pvc_for_peer(peer))
    logger.debug(f"Deleting volume claim for peer {peer.key} prior to deletion")

    try:
        claim = store.get(ObjectKind.CLAIM, key, deadline)
    except NotFoundError:
        logger.debug(f"Volume claim {key} not found, already deleted or never created")
    except StoreError as e:
        raise ReconcileError(f"failed to get volume claim {key} for deleted peer: {e}") from e
    else:
        if not is_being_deleted(claim):
            try:
                store.delete(ObjectKind.CLAIM, key, deadline)
            except NotFoundError:
                # Vanished between get and delete; the next pass releases the finalizer
                logger.debug(f"Volume claim {key} disappeared before deletion")
                return
            except StoreError as e:
                raise ReconcileError(f"failed to delete volume claim {key} for peer: {e}") from e
            logger.info(f"Deleted volume claim {key} for peer {peer.key}")
            return
        logger.debug(f"Volume claim {key} has already been marked for deletion")

    _remove_cleanup_finalizer(peer, store, deadline)


def _remove_cleanup_finalizer(peer: EtcdPeer, store: ObjectStore, deadline: Deadline):
    finalizers = [f for f in peer.metadata.finalizers if f != PVC_CLEANUP_FINALIZER]
    try:
        store.update_finalizers(
            ObjectKind.PEER, peer.key, finalizers, peer.metadata.resource_version, deadline
        )
    except NotFoundError:
        logger.debug(f"Peer {peer.key} already gone, nothing to release")
        return
    except ConflictError as e:
        # The peer changed since it was read; the next pass retries with a fresh copy
        logger.debug(f"Peer {peer.key} changed before its finalizer could be released: {e}")
        raise ReconcileError(f"failed to remove volume claim cleanup finalizer from peer {peer.key}: {e}") from e
    except StoreError as e:
        raise ReconcileError(f"failed to remove volume claim cleanup finalizer from peer {peer.key}: {e}") from e
    logger.info(f"Removed volume claim cleanup finalizer from peer {peer.key}")
