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

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from etcdop.constants import (
    API_VERSION,
    MAX_CLUSTER_NAME_LENGTH,
    PEER_KIND,
    RESERVED_ANNOTATION_PREFIX,
)
from etcdop.exceptions import InvalidPeerError
from etcdop.store.base import PeerKey


def is_invalid_user_provided_annotation_name(name: str) -> bool:
    """Annotations under the operator's own prefix are reserved"""
    return name.startswith(RESERVED_ANNOTATION_PREFIX)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class InitialClusterState(str, Enum):
    NEW = "New"
    EXISTING = "Existing"


class ObjectMeta(CamelModel):
    name: str
    namespace: str = "default"
    uid: Optional[str] = None
    resource_version: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    finalizers: List[str] = Field(default_factory=list)
    deletion_timestamp: Optional[datetime] = None


class InitialClusterMember(CamelModel):
    name: str = ""
    # Forms part of the advertise URL, so it must be resolvable by the other peers
    host: str = ""


class StaticBootstrap(CamelModel):
    initial_cluster: List[InitialClusterMember] = Field(default_factory=list)


class Bootstrap(CamelModel):
    static: Optional[StaticBootstrap] = None
    # Unknown values are kept and rendered as an empty ETCD_INITIAL_CLUSTER_STATE
    initial_cluster_state: Optional[Union[InitialClusterState, str]] = None


class EtcdPeerStorage(CamelModel):
    # Passed through verbatim as the PersistentVolumeClaim spec
    volume_claim_template: Optional[Dict[str, Any]] = None


class PodMetadata(CamelModel):
    annotations: Dict[str, str] = Field(default_factory=dict)


class ResourceRequirements(CamelModel):
    # Quantities are kept as given; only the cpu limit is interpreted
    limits: Optional[Dict[str, Any]] = None
    requests: Optional[Dict[str, Any]] = None
    claims: Optional[List[Dict[str, Any]]] = None


class EtcdPodTemplate(CamelModel):
    metadata: Optional[PodMetadata] = None
    resources: Optional[ResourceRequirements] = None


class EtcdPeerSpec(CamelModel):
    cluster_name: str = ""
    bootstrap: Optional[Bootstrap] = None
    storage: Optional[EtcdPeerStorage] = None
    pod_template: Optional[EtcdPodTemplate] = None


class EtcdPeer(CamelModel):
    """A single member of an etcd cluster, as declared by the EtcdPeer custom resource"""

    api_version: str = API_VERSION
    kind: str = PEER_KIND
    metadata: ObjectMeta
    spec: EtcdPeerSpec = Field(default_factory=EtcdPeerSpec)

    @classmethod
    def from_manifest(cls, manifest: Dict[str, Any]) -> "EtcdPeer":
        """Parse the wire format; a structurally broken manifest is an invalid declaration"""
        try:
            return cls.model_validate(manifest)
        except PydanticValidationError as e:
            name = (manifest.get("metadata") or {}).get("name", "<unknown>")
            problems = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
            raise InvalidPeerError(name, problems) from e

    def to_manifest(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    @property
    def key(self) -> PeerKey:
        return PeerKey(namespace=self.metadata.namespace, name=self.metadata.name)

    def has_deletion_marker(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    def has_finalizer(self, finalizer: str) -> bool:
        return finalizer in self.metadata.finalizers

    def default(self) -> "EtcdPeer":
        """
        Return a copy with defaulting rules applied.

        The copy is only ever used in memory; it is never written back to the store.
        """
        peer = self.model_copy(deep=True)
        if peer.spec.storage is None:
            peer.spec.storage = EtcdPeerStorage()
        if peer.spec.storage.volume_claim_template is None:
            peer.spec.storage.volume_claim_template = {}
        template = peer.spec.storage.volume_claim_template
        if not template.get("accessModes"):
            template["accessModes"] = ["ReadWriteOnce"]
        template.setdefault("volumeMode", "Filesystem")
        return peer

    def validate_create(self):
        """Raise InvalidPeerError listing every problem found in the declaration"""
        problems = []
        spec = self.spec

        if not spec.cluster_name:
            problems.append("spec.clusterName is required")
        elif len(spec.cluster_name) > MAX_CLUSTER_NAME_LENGTH:
            problems.append(f"spec.clusterName must be at most {MAX_CLUSTER_NAME_LENGTH} characters")

        static = spec.bootstrap.static if spec.bootstrap else None
        if static is None:
            problems.append("spec.bootstrap.static is required")
        elif not static.initial_cluster:
            problems.append("spec.bootstrap.static.initialCluster must have at least one member")
        else:
            seen = set()
            for i, member in enumerate(static.initial_cluster):
                if not member.name:
                    problems.append(f"spec.bootstrap.static.initialCluster[{i}].name is required")
                if not member.host:
                    problems.append(f"spec.bootstrap.static.initialCluster[{i}].host is required")
                if member.name and member.name in seen:
                    problems.append(f"spec.bootstrap.static.initialCluster[{i}].name {member.name!r} is duplicated")
                seen.add(member.name)

        if spec.pod_template and spec.pod_template.metadata:
            for name in sorted(spec.pod_template.metadata.annotations):
                if is_invalid_user_provided_annotation_name(name):
                    problems.append(
                        f"spec.podTemplate.metadata.annotations[{name!r}] uses the reserved "
                        f"{RESERVED_ANNOTATION_PREFIX} prefix"
                    )

        if problems:
            raise InvalidPeerError(self.metadata.name, problems)
