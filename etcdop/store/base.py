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

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional


class ObjectKind(str, Enum):
    PEER = "EtcdPeer"
    CLAIM = "PersistentVolumeClaim"
    REPLICA_SET = "ReplicaSet"


class PeerKey(NamedTuple):
    """Identity shared by a peer, its volume claim and its replica set"""

    namespace: str
    name: str

    def __str__(self):
        return f"{self.namespace}/{self.name}"


def object_key(manifest: Dict[str, Any]) -> PeerKey:
    metadata = manifest.get("metadata") or {}
    return PeerKey(namespace=metadata.get("namespace", "default"), name=metadata.get("name", ""))


def is_being_deleted(manifest: Dict[str, Any]) -> bool:
    return bool((manifest.get("metadata") or {}).get("deletionTimestamp"))


class ObjectStore(ABC):
    """
    The control-plane store, seen through the handful of operations the operator needs.

    Objects are exchanged as plain manifest dicts in the Kubernetes wire format.
    Every operation is bounded by the Deadline passed in.
    """

    @abstractmethod
    def get(self, kind: ObjectKind, key: PeerKey, deadline) -> Dict[str, Any]:
        """
        Read a single object

        Raises:
            NotFoundError: the object does not exist
            StoreError: any other failure
        """
        pass

    @abstractmethod
    def create(self, kind: ObjectKind, manifest: Dict[str, Any], deadline) -> Dict[str, Any]:
        """
        Create an object if it does not exist yet

        Raises:
            AlreadyExistsError: an object with the same identity exists
            StoreError: any other failure
        """
        pass

    @abstractmethod
    def delete(self, kind: ObjectKind, key: PeerKey, deadline):
        """
        Delete an object. Objects carrying finalizers are only marked for deletion.

        Raises:
            NotFoundError: the object does not exist
            StoreError: any other failure
        """
        pass

    @abstractmethod
    def update_finalizers(
        self,
        kind: ObjectKind,
        key: PeerKey,
        finalizers: List[str],
        resource_version: Optional[str],
        deadline,
    ) -> Dict[str, Any]:
        """
        Replace metadata.finalizers and nothing else

        Raises:
            ConflictError: resource_version is given and no longer current
            NotFoundError: the object does not exist
            StoreError: any other failure
        """
        pass

    @abstractmethod
    def list(self, kind: ObjectKind, namespace: Optional[str], deadline) -> List[Dict[str, Any]]:
        """List objects of a kind, in one namespace or in all of them when namespace is None"""
        pass
