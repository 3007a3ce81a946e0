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

from etcdop.constants import PVC_CLEANUP_FINALIZER
from etcdop.peer.actions import Action
from etcdop.peer.collector import PeerState
from etcdop.store.base import ObjectKind


def decide(state: PeerState) -> Action:
    """
    Pick exactly one action for the collected state. First match wins.

    Deletion is checked before anything is provisioned, so a peer being deleted
    never gets a fresh claim or ReplicaSet.

    Existing objects that drifted from the desired state are left alone; only
    missing ones are created.
    """
    peer = state.peer
    if peer is None:
        return Action.noop("peer not found")

    if peer.has_deletion_marker():
        if peer.has_finalizer(PVC_CLEANUP_FINALIZER):
            return Action.cleanup(peer)
        return Action.noop("peer deleted, no volume claim cleanup required")

    if state.claim is None:
        return Action.create(ObjectKind.CLAIM, state.desired_claim)

    if state.replica_set is None:
        return Action.create(ObjectKind.REPLICA_SET, state.desired_replica_set)

    return Action.noop("converged")
