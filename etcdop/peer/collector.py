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
from typing import Any, Dict, Optional

from etcdop.constants import DEFAULT_ETCD_IMAGE
from etcdop.exceptions import NotFoundError
from etcdop.peer.desired_state import define_replica_set, pvc_for_peer
from etcdop.schema import EtcdPeer
from etcdop.store.base import ObjectKind, ObjectStore, PeerKey
from etcdop.utils.deadline import Deadline

logger = logging.getLogger(__name__)


@dataclass
class PeerState:
    """Point-in-time view of one peer identity, plus the desired state derived from it"""

    key: PeerKey
    peer: Optional[EtcdPeer] = None
    claim: Optional[Dict[str, Any]] = None
    replica_set: Optional[Dict[str, Any]] = None
    desired_claim: Optional[Dict[str, Any]] = None
    desired_replica_set: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": str(self.key),
            "peer": self.peer.to_manifest() if self.peer else None,
            "claim": self.claim,
            "replica_set": self.replica_set,
            "desired_claim": self.desired_claim,
            "desired_replica_set": self.desired_replica_set,
        }


class StateCollector:
    """Reads the current objects for a peer identity; never writes"""

    def __init__(self, store: ObjectStore, image: str = DEFAULT_ETCD_IMAGE):
        self.store = store
        self.image = image

    def _get_optional(self, kind: ObjectKind, key: PeerKey, deadline: Deadline) -> Optional[Dict[str, Any]]:
        try:
            return self.store.get(kind, key, deadline)
        except NotFoundError:
            return None

    def get_state(self, key: PeerKey, deadline: Deadline) -> PeerState:
        """
        Collect peer, claim and replica set for `key`

        Not-found reads are recorded as None; any other store error propagates.

        Raises:
            StoreError: a read failed
            InvalidPeerError: the stored peer cannot be parsed
        """
        peer_manifest = self._get_optional(ObjectKind.PEER, key, deadline)
        state = PeerState(
            key=key,
            claim=self._get_optional(ObjectKind.CLAIM, key, deadline),
            replica_set=self._get_optional(ObjectKind.REPLICA_SET, key, deadline),
        )

        if peer_manifest is not None:
            state.peer = EtcdPeer.from_manifest(peer_manifest).default()
            state.desired_claim = pvc_for_peer(state.peer)
            state.desired_replica_set = define_replica_set(state.peer, self.image)

        logger.debug(
            f"Collected state for peer {key}: peer={state.peer is not None} "
            f"claim={state.claim is not None} replica_set={state.replica_set is not None}"
        )
        return state
