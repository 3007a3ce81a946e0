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
Celery Beat schedule configuration for periodic peer resync
"""

from etcdop.config import settings

CELERY_BEAT_SCHEDULE = {
    # Re-queue every EtcdPeer so missed watch events still converge
    "resync-etcd-peers": {
        "task": "etcdop.tasks.celery_tasks.resync_peers_task",
        "schedule": settings.resync_interval_seconds,
        "options": {
            # Expire before the next run to avoid overlap
            "expires": max(1.0, settings.resync_interval_seconds - 5),
        },
    },
}

CELERY_TIMEZONE = "UTC"
