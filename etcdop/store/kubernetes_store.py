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

import functools
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from etcdop.constants import GROUP, PEER_PLURAL, VERSION
from etcdop.exceptions import AlreadyExistsError, ConflictError, NotFoundError, StoreError
from etcdop.store.base import ObjectKind, ObjectStore, PeerKey, object_key

logger = logging.getLogger(__name__)

MERGE_PATCH = "application/merge-patch+json"


@contextmanager
def translate_errors(kind: ObjectKind, key: PeerKey, operation: str):
    """Map client failures onto the store error taxonomy"""
    try:
        yield
    except ApiException as e:
        if e.status == 404:
            raise NotFoundError(kind.value, key, operation, e.reason) from e
        if e.status == 409:
            if operation == "create":
                raise AlreadyExistsError(kind.value, key, operation, e.reason) from e
            raise ConflictError(kind.value, key, operation, e.reason) from e
        raise StoreError(kind.value, key, operation, f"HTTP {e.status} {e.reason}") from e
    except urllib3.exceptions.HTTPError as e:
        raise StoreError(kind.value, key, operation, str(e)) from e


class KubernetesObjectStore(ObjectStore):
    """ObjectStore backed by the Kubernetes API server"""

    def __init__(self, api_client: Optional[client.ApiClient] = None):
        self.api_client = api_client or client.ApiClient()
        self.core_v1 = client.CoreV1Api(self.api_client)
        self.apps_v1 = client.AppsV1Api(self.api_client)
        self.custom_objects = client.CustomObjectsApi(self.api_client)

    def _to_dict(self, obj) -> Dict[str, Any]:
        if isinstance(obj, dict):
            return obj
        return self.api_client.sanitize_for_serialization(obj)

    def get(self, kind: ObjectKind, key: PeerKey, deadline) -> Dict[str, Any]:
        deadline.check(kind.value, key, "get")
        timeout = deadline.remaining()
        with translate_errors(kind, key, "get"):
            match kind:
                case ObjectKind.PEER:
                    obj = self.custom_objects.get_namespaced_custom_object(
                        GROUP, VERSION, key.namespace, PEER_PLURAL, key.name, _request_timeout=timeout
                    )
                case ObjectKind.CLAIM:
                    obj = self.core_v1.read_namespaced_persistent_volume_claim(
                        key.name, key.namespace, _request_timeout=timeout
                    )
                case ObjectKind.REPLICA_SET:
                    obj = self.apps_v1.read_namespaced_replica_set(key.name, key.namespace, _request_timeout=timeout)
        return self._to_dict(obj)

    def create(self, kind: ObjectKind, manifest: Dict[str, Any], deadline) -> Dict[str, Any]:
        key = object_key(manifest)
        deadline.check(kind.value, key, "create")
        timeout = deadline.remaining()
        with translate_errors(kind, key, "create"):
            match kind:
                case ObjectKind.PEER:
                    obj = self.custom_objects.create_namespaced_custom_object(
                        GROUP, VERSION, key.namespace, PEER_PLURAL, manifest, _request_timeout=timeout
                    )
                case ObjectKind.CLAIM:
                    obj = self.core_v1.create_namespaced_persistent_volume_claim(
                        key.namespace, manifest, _request_timeout=timeout
                    )
                case ObjectKind.REPLICA_SET:
                    obj = self.apps_v1.create_namespaced_replica_set(key.namespace, manifest, _request_timeout=timeout)
        return self._to_dict(obj)

    def delete(self, kind: ObjectKind, key: PeerKey, deadline):
        deadline.check(kind.value, key, "delete")
        timeout = deadline.remaining()
        with translate_errors(kind, key, "delete"):
            match kind:
                case ObjectKind.PEER:
                    self.custom_objects.delete_namespaced_custom_object(
                        GROUP, VERSION, key.namespace, PEER_PLURAL, key.name, _request_timeout=timeout
                    )
                case ObjectKind.CLAIM:
                    self.core_v1.delete_namespaced_persistent_volume_claim(
                        key.name, key.namespace, _request_timeout=timeout
                    )
                case ObjectKind.REPLICA_SET:
                    self.apps_v1.delete_namespaced_replica_set(key.name, key.namespace, _request_timeout=timeout)

    def update_finalizers(
        self,
        kind: ObjectKind,
        key: PeerKey,
        finalizers: List[str],
        resource_version: Optional[str],
        deadline,
    ) -> Dict[str, Any]:
        operation = "update finalizers of"
        deadline.check(kind.value, key, operation)
        timeout = deadline.remaining()
        # A merge patch touching only metadata.finalizers; resourceVersion turns it into a conditional update
        body = {"metadata": {"finalizers": list(finalizers)}}
        if resource_version is not None:
            body["metadata"]["resourceVersion"] = resource_version
        with translate_errors(kind, key, operation):
            match kind:
                case ObjectKind.PEER:
                    obj = self.custom_objects.patch_namespaced_custom_object(
                        GROUP,
                        VERSION,
                        key.namespace,
                        PEER_PLURAL,
                        key.name,
                        body,
                        _request_timeout=timeout,
                        _content_type=MERGE_PATCH,
                    )
                case ObjectKind.CLAIM:
                    obj = self.core_v1.patch_namespaced_persistent_volume_claim(
                        key.name, key.namespace, body, _request_timeout=timeout, _content_type=MERGE_PATCH
                    )
                case ObjectKind.REPLICA_SET:
                    obj = self.apps_v1.patch_namespaced_replica_set(
                        key.name, key.namespace, body, _request_timeout=timeout, _content_type=MERGE_PATCH
                    )
        return self._to_dict(obj)

    def list(self, kind: ObjectKind, namespace: Optional[str], deadline) -> List[Dict[str, Any]]:
        key = PeerKey(namespace or "", "*")
        deadline.check(kind.value, key, "list")
        with translate_errors(kind, key, "list"):
            result = self.list_function(kind, namespace)(_request_timeout=deadline.remaining())
        result = self._to_dict(result)
        return list(result.get("items") or [])

    def list_function(self, kind: ObjectKind, namespace: Optional[str]) -> Callable[..., Any]:
        """The list call for a kind, suitable for kubernetes.watch.Watch().stream"""
        match kind:
            case ObjectKind.PEER:
                if namespace:
                    return functools.partial(
                        self.custom_objects.list_namespaced_custom_object, GROUP, VERSION, namespace, PEER_PLURAL
                    )
                return functools.partial(self.custom_objects.list_cluster_custom_object, GROUP, VERSION, PEER_PLURAL)
            case ObjectKind.CLAIM:
                if namespace:
                    return functools.partial(self.core_v1.list_namespaced_persistent_volume_claim, namespace)
                return self.core_v1.list_persistent_volume_claim_for_all_namespaces
            case ObjectKind.REPLICA_SET:
                if namespace:
                    return functools.partial(self.apps_v1.list_namespaced_replica_set, namespace)
                return self.apps_v1.list_replica_set_for_all_namespaces
        raise ValueError(f"Unknown object kind: {kind}")


def create_kubernetes_store(kubeconfig: Optional[str] = None, in_cluster: bool = False) -> KubernetesObjectStore:
    """Load client configuration and build a store"""
    if in_cluster:
        config.load_incluster_config()
    else:
        config.load_kube_config(config_file=kubeconfig)
    logger.info(f"Connected Kubernetes client (in_cluster={in_cluster})")
    return KubernetesObjectStore()
