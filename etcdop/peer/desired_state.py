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
Desired state of a peer's PersistentVolumeClaim and ReplicaSet.

Everything here is a pure function of the EtcdPeer declaration: the same peer always
renders to the same manifests, so re-deriving them on every pass never causes drift.
"""

import copy
import logging
import math
from typing import Any, Dict, Optional

from kubernetes.utils import parse_quantity

from etcdop.constants import (
    API_VERSION,
    APP_LABEL,
    APP_NAME,
    CLUSTER_LABEL,
    DEFAULT_ETCD_IMAGE,
    ETCD_CLIENT_PORT,
    ETCD_DATA_MOUNT_PATH,
    ETCD_DATA_VOLUME,
    ETCD_PEER_PORT,
    ETCD_SCHEME,
    PEER_KIND,
    PEER_LABEL,
    EtcdEnvVar,
)
from etcdop.schema import (
    EtcdPeer,
    InitialClusterMember,
    InitialClusterState,
    StaticBootstrap,
    is_invalid_user_provided_annotation_name,
)

logger = logging.getLogger(__name__)


def initial_member_url(member: InitialClusterMember) -> str:
    return f"{ETCD_SCHEME}://{member.host}:{ETCD_PEER_PORT}"


def static_bootstrap_initial_cluster(static: Optional[StaticBootstrap]) -> str:
    """Value of ETCD_INITIAL_CLUSTER, e.g. `one=http://one.magic.default.svc:2380,two=...`"""
    if static is None:
        return ""
    return ",".join(f"{member.name}={initial_member_url(member)}" for member in static.initial_cluster)


def advertise_url(peer: EtcdPeer, port: int) -> str:
    """Canonical URL of this peer, resolvable through the cluster's headless service"""
    return f"{ETCD_SCHEME}://{peer.metadata.name}.{peer.spec.cluster_name}.{peer.metadata.namespace}.svc:{port}"


def bind_all_address(port: int) -> str:
    return f"{ETCD_SCHEME}://0.0.0.0:{port}"


def cluster_state_value(state) -> str:
    if state == InitialClusterState.NEW:
        return "new"
    elif state == InitialClusterState.EXISTING:
        return "existing"
    else:
        return ""


def go_max_procs(cpu_limit) -> Optional[int]:
    """
    GOMAXPROCS for a CPU limit.

    Go sizes its thread pool from the host's CPU count rather than the container's quota,
    so with a positive limit we pin it to floor(limit) cores, and never below one.
    No limit, or a zero or negative one, means no hint.
    """
    if cpu_limit is None:
        return None
    try:
        quantity = parse_quantity(cpu_limit)
    except ValueError:
        logger.warning(f"Ignoring unparsable CPU limit {cpu_limit!r}")
        return None
    if quantity <= 0:
        return None
    milli_cores = math.ceil(quantity * 1000)
    return max(1, milli_cores // 1000)


def peer_labels(peer: EtcdPeer) -> Dict[str, str]:
    return {
        APP_LABEL: APP_NAME,
        CLUSTER_LABEL: peer.spec.cluster_name,
        PEER_LABEL: peer.metadata.name,
    }


def owner_reference(peer: EtcdPeer) -> Dict[str, Any]:
    return {
        "apiVersion": API_VERSION,
        "kind": PEER_KIND,
        "name": peer.metadata.name,
        "uid": peer.metadata.uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }


def pvc_for_peer(peer: EtcdPeer) -> Dict[str, Any]:
    """
    The claim is deliberately not owned by the peer, so it outlives the ReplicaSet
    and its pod and is removed explicitly by the cleanup finalizer instead.
    """
    template = {}
    if peer.spec.storage and peer.spec.storage.volume_claim_template:
        template = peer.spec.storage.volume_claim_template
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": {
            "name": peer.metadata.name,
            "namespace": peer.metadata.namespace,
            "labels": peer_labels(peer),
        },
        "spec": copy.deepcopy(template),
    }


def _etcd_env(peer: EtcdPeer):
    bootstrap = peer.spec.bootstrap
    return [
        {
            "name": EtcdEnvVar.INITIAL_CLUSTER,
            "value": static_bootstrap_initial_cluster(bootstrap.static if bootstrap else None),
        },
        {"name": EtcdEnvVar.NAME, "value": peer.metadata.name},
        {"name": EtcdEnvVar.INITIAL_CLUSTER_TOKEN, "value": peer.spec.cluster_name},
        {"name": EtcdEnvVar.INITIAL_ADVERTISE_PEER_URLS, "value": advertise_url(peer, ETCD_PEER_PORT)},
        {"name": EtcdEnvVar.ADVERTISE_CLIENT_URLS, "value": advertise_url(peer, ETCD_CLIENT_PORT)},
        {"name": EtcdEnvVar.LISTEN_PEER_URLS, "value": bind_all_address(ETCD_PEER_PORT)},
        {"name": EtcdEnvVar.LISTEN_CLIENT_URLS, "value": bind_all_address(ETCD_CLIENT_PORT)},
        {
            "name": EtcdEnvVar.INITIAL_CLUSTER_STATE,
            "value": cluster_state_value(bootstrap.initial_cluster_state if bootstrap else None),
        },
        {"name": EtcdEnvVar.DATA_DIR, "value": ETCD_DATA_MOUNT_PATH},
    ]


def define_replica_set(peer: EtcdPeer, image: str = DEFAULT_ETCD_IMAGE) -> Dict[str, Any]:
    """Single-replica ReplicaSet running one etcd member, owned by the peer"""
    # The ReplicaSet, its selector and its pod template all share these labels
    labels = peer_labels(peer)

    container = {
        "name": APP_NAME,
        "image": image,
        "env": _etcd_env(peer),
        "ports": [
            {"name": "etcd-client", "containerPort": ETCD_CLIENT_PORT},
            {"name": "etcd-peer", "containerPort": ETCD_PEER_PORT},
        ],
        "volumeMounts": [{"name": ETCD_DATA_VOLUME, "mountPath": ETCD_DATA_MOUNT_PATH}],
    }

    pod_template = peer.spec.pod_template
    if pod_template is not None and pod_template.resources is not None:
        resources = pod_template.resources.model_dump(by_alias=True, exclude_none=True)
        container["resources"] = resources
        cpu_limit = (resources.get("limits") or {}).get("cpu")
        procs = go_max_procs(cpu_limit)
        if procs is not None:
            container["env"].append({"name": EtcdEnvVar.GOMAXPROCS, "value": str(procs)})

    pod_annotations: Dict[str, str] = {}
    if pod_template is not None and pod_template.metadata is not None:
        for name, value in sorted(pod_template.metadata.annotations.items()):
            if is_invalid_user_provided_annotation_name(name):
                # Validation rejects these before we get here
                logger.debug(f"Ignoring annotation {name} on peer {peer.key}, reserved annotation prefix")
            else:
                pod_annotations[name] = value

    return {
        "apiVersion": "apps/v1",
        "kind": "ReplicaSet",
        "metadata": {
            "name": peer.metadata.name,
            "namespace": peer.metadata.namespace,
            "labels": dict(labels),
            "annotations": {},
            "ownerReferences": [owner_reference(peer)],
        },
        "spec": {
            # Always 1; every other member is handled by its own EtcdPeer
            "replicas": 1,
            "selector": {"matchLabels": dict(labels)},
            "template": {
                "metadata": {
                    "name": peer.metadata.name,
                    "namespace": peer.metadata.namespace,
                    "labels": dict(labels),
                    "annotations": pod_annotations,
                },
                "spec": {
                    "hostname": peer.metadata.name,
                    "subdomain": peer.spec.cluster_name,
                    "containers": [container],
                    "volumes": [
                        {
                            "name": ETCD_DATA_VOLUME,
                            "persistentVolumeClaim": {"claimName": peer.metadata.name},
                        }
                    ],
                },
            },
        },
    }
