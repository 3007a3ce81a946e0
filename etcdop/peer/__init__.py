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

"""
EtcdPeer reconciliation

Each EtcdPeer owns one PersistentVolumeClaim and one single-replica ReplicaSet.
A pass collects the current objects (StateCollector), derives the desired ones
(desired_state), picks a single action (decide) and executes it (execute_action).
Deleting a peer first deletes its claim, then releases the cleanup finalizer.
"""

from .actions import Action, ActionKind, execute_action
from .collector import PeerState, StateCollector
from .decision import decide
from .event_router import peer_for_claim, peer_for_owned_object, peer_for_peer, route_event
from .reconciler import PeerReconciler, ReconcilePhase, ReconcileResult

__all__ = [
    "Action",
    "ActionKind",
    "execute_action",
    "PeerState",
    "StateCollector",
    "decide",
    "peer_for_claim",
    "peer_for_owned_object",
    "peer_for_peer",
    "route_event",
    "PeerReconciler",
    "ReconcilePhase",
    "ReconcileResult",
]
