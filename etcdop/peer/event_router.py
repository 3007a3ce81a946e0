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
Map watch events on related objects back to the peer that must be reconciled.

Volume claims are deliberately not owned by their peer (so they are not garbage
collected along with it), which rules out the owner-reference path for them.
They carry the peer-name label instead.
"""

from typing import Any, Dict, Optional

from etcdop.constants import API_VERSION, PEER_KIND, PEER_LABEL
from etcdop.store.base import ObjectKind, PeerKey


def peer_for_claim(metadata: Dict[str, Any]) -> Optional[PeerKey]:
    peer_name = (metadata.get("labels") or {}).get(PEER_LABEL)
    if not peer_name:
        return None
    return PeerKey(namespace=metadata.get("namespace", "default"), name=peer_name)


def peer_for_owned_object(metadata: Dict[str, Any]) -> Optional[PeerKey]:
    for ref in metadata.get("ownerReferences") or []:
        if ref.get("controller") and ref.get("kind") == PEER_KIND and ref.get("apiVersion") == API_VERSION:
            return PeerKey(namespace=metadata.get("namespace", "default"), name=ref["name"])
    return None


def peer_for_peer(metadata: Dict[str, Any]) -> Optional[PeerKey]:
    if not metadata.get("name"):
        return None
    return PeerKey(namespace=metadata.get("namespace", "default"), name=metadata["name"])


def route_event(kind: ObjectKind, metadata: Dict[str, Any]) -> Optional[PeerKey]:
    match kind:
        case ObjectKind.PEER:
            return peer_for_peer(metadata)
        case ObjectKind.REPLICA_SET:
            return peer_for_owned_object(metadata)
        case ObjectKind.CLAIM:
            return peer_for_claim(metadata)
    return None
