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
Control-plane store access

- ObjectStore: the abstract read/create/delete/update-finalizers contract
- KubernetesObjectStore: backed by the Kubernetes API server
- InMemoryObjectStore: local store for tests and single-process runs
"""

from .base import ObjectKind, ObjectStore, PeerKey, is_being_deleted, object_key
from .kubernetes_store import KubernetesObjectStore, create_kubernetes_store
from .memory import InMemoryObjectStore

__all__ = [
    "ObjectKind",
    "ObjectStore",
    "PeerKey",
    "is_being_deleted",
    "object_key",
    "KubernetesObjectStore",
    "create_kubernetes_store",
    "InMemoryObjectStore",
]
