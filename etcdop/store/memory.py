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

import copy
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from etcdop.exceptions import AlreadyExistsError, ConflictError, NotFoundError
from etcdop.store.base import ObjectKind, ObjectStore, PeerKey, object_key

logger = logging.getLogger(__name__)


class Mutation(NamedTuple):
    operation: str
    kind: ObjectKind
    key: PeerKey


class InMemoryObjectStore(ObjectStore):
    """
    Local store for testing or single-process runs.

    Mimics the parts of the API server the operator relies on: finalizers block
    removal, owner references drive garbage collection and resourceVersion guards
    conditional updates. Every mutation is recorded in `mutations`.
    """

    def __init__(self):
        self._objects: Dict[Tuple[ObjectKind, str, str], Dict[str, Any]] = {}
        self._version = 0
        self._lock = threading.RLock()
        self.mutations: List[Mutation] = []

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def put(self, kind: ObjectKind, manifest: Dict[str, Any]) -> Dict[str, Any]:
        """Seed or overwrite an object directly, bypassing create semantics (not recorded)"""
        with self._lock:
            obj = copy.deepcopy(manifest)
            metadata = obj.setdefault("metadata", {})
            metadata.setdefault("namespace", "default")
            metadata.setdefault("uid", str(uuid.uuid4()))
            metadata["resourceVersion"] = self._next_version()
            key = object_key(obj)
            self._objects[(kind, key.namespace, key.name)] = obj
            return copy.deepcopy(obj)

    def exists(self, kind: ObjectKind, key: PeerKey) -> bool:
        with self._lock:
            return (kind, key.namespace, key.name) in self._objects

    def get(self, kind: ObjectKind, key: PeerKey, deadline) -> Dict[str, Any]:
        deadline.check(kind.value, key, "get")
        with self._lock:
            obj = self._objects.get((kind, key.namespace, key.name))
            if obj is None:
                raise NotFoundError(kind.value, key, "get")
            return copy.deepcopy(obj)

    def create(self, kind: ObjectKind, manifest: Dict[str, Any], deadline) -> Dict[str, Any]:
        key = object_key(manifest)
        deadline.check(kind.value, key, "create")
        with self._lock:
            if (kind, key.namespace, key.name) in self._objects:
                raise AlreadyExistsError(kind.value, key, "create", "already exists")
            obj = copy.deepcopy(manifest)
            metadata = obj.setdefault("metadata", {})
            metadata["uid"] = str(uuid.uuid4())
            metadata["resourceVersion"] = self._next_version()
            metadata["creationTimestamp"] = _now()
            self._objects[(kind, key.namespace, key.name)] = obj
            self.mutations.append(Mutation("create", kind, key))
            return copy.deepcopy(obj)

    def delete(self, kind: ObjectKind, key: PeerKey, deadline):
        deadline.check(kind.value, key, "delete")
        with self._lock:
            obj = self._objects.get((kind, key.namespace, key.name))
            if obj is None:
                raise NotFoundError(kind.value, key, "delete")
            self.mutations.append(Mutation("delete", kind, key))
            metadata = obj["metadata"]
            if metadata.get("finalizers"):
                if not metadata.get("deletionTimestamp"):
                    metadata["deletionTimestamp"] = _now()
                    metadata["resourceVersion"] = self._next_version()
                return
            self._remove(kind, key)

    def update_finalizers(
        self,
        kind: ObjectKind,
        key: PeerKey,
        finalizers: List[str],
        resource_version: Optional[str],
        deadline,
    ) -> Dict[str, Any]:
        deadline.check(kind.value, key, "update finalizers of")
        with self._lock:
            obj = self._objects.get((kind, key.namespace, key.name))
            if obj is None:
                raise NotFoundError(kind.value, key, "update finalizers of")
            metadata = obj["metadata"]
            if resource_version is not None and metadata.get("resourceVersion") != resource_version:
                raise ConflictError(
                    kind.value,
                    key,
                    "update finalizers of",
                    f"resourceVersion {resource_version} is stale, current is {metadata.get('resourceVersion')}",
                )
            metadata["finalizers"] = list(finalizers)
            metadata["resourceVersion"] = self._next_version()
            self.mutations.append(Mutation("update_finalizers", kind, key))
            result = copy.deepcopy(obj)
            if metadata.get("deletionTimestamp") and not finalizers:
                self._remove(kind, key)
            return result

    def list(self, kind: ObjectKind, namespace: Optional[str], deadline) -> List[Dict[str, Any]]:
        deadline.check(kind.value, PeerKey(namespace or "", "*"), "list")
        with self._lock:
            return [
                copy.deepcopy(obj)
                for (k, ns, _), obj in sorted(self._objects.items(), key=lambda item: item[0][1:])
                if k == kind and (namespace is None or ns == namespace)
            ]

    def _remove(self, kind: ObjectKind, key: PeerKey):
        obj = self._objects.pop((kind, key.namespace, key.name))
        uid = obj["metadata"].get("uid")
        logger.debug(f"Removed {kind.value} {key}")
        self._collect_garbage(uid)

    def _collect_garbage(self, owner_uid: Optional[str]):
        """Delete every object owned by owner_uid, the way the control plane's garbage collector does"""
        if owner_uid is None:
            return
        dependents = [
            (kind, PeerKey(ns, name))
            for (kind, ns, name), obj in self._objects.items()
            if any(ref.get("uid") == owner_uid for ref in obj["metadata"].get("ownerReferences") or [])
        ]
        for kind, key in dependents:
            if (kind, key.namespace, key.name) not in self._objects:
                continue
            metadata = self._objects[(kind, key.namespace, key.name)]["metadata"]
            if metadata.get("finalizers"):
                metadata.setdefault("deletionTimestamp", _now())
                continue
            self._remove(kind, key)


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
