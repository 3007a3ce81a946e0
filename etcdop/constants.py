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

GROUP = "etcd.improbable.io"
VERSION = "v1alpha1"
API_VERSION = f"{GROUP}/{VERSION}"
PEER_KIND = "EtcdPeer"
PEER_PLURAL = "etcdpeers"

DEFAULT_ETCD_IMAGE = "quay.io/coreos/etcd:v3.2.28"
ETCD_SCHEME = "http"
ETCD_PEER_PORT = 2380
ETCD_CLIENT_PORT = 2379
ETCD_DATA_MOUNT_PATH = "/var/lib/etcd"
ETCD_DATA_VOLUME = "etcd-data"

APP_NAME = "etcd"
APP_LABEL = "app.kubernetes.io/name"
CLUSTER_LABEL = "etcd.improbable.io/cluster-name"
PEER_LABEL = "etcd.improbable.io/peer-name"

# Users may not set annotations under this prefix on the pod template
RESERVED_ANNOTATION_PREFIX = "etcd.improbable.io/"

PVC_CLEANUP_FINALIZER = "etcdpeer.etcd.improbable.io/pvc-cleanup"

MAX_CLUSTER_NAME_LENGTH = 64


class EtcdEnvVar:
    INITIAL_CLUSTER = "ETCD_INITIAL_CLUSTER"
    NAME = "ETCD_NAME"
    INITIAL_CLUSTER_TOKEN = "ETCD_INITIAL_CLUSTER_TOKEN"
    INITIAL_ADVERTISE_PEER_URLS = "ETCD_INITIAL_ADVERTISE_PEER_URLS"
    ADVERTISE_CLIENT_URLS = "ETCD_ADVERTISE_CLIENT_URLS"
    LISTEN_PEER_URLS = "ETCD_LISTEN_PEER_URLS"
    LISTEN_CLIENT_URLS = "ETCD_LISTEN_CLIENT_URLS"
    INITIAL_CLUSTER_STATE = "ETCD_INITIAL_CLUSTER_STATE"
    DATA_DIR = "ETCD_DATA_DIR"
    GOMAXPROCS = "GOMAXPROCS"
