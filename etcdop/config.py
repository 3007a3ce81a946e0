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

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from etcdop.constants import DEFAULT_ETCD_IMAGE


class Settings(BaseSettings):
    """Operator settings, read from ETCDOP_* environment variables or a .env file"""

    model_config = SettingsConfigDict(env_prefix="ETCDOP_", env_file=".env", extra="ignore")

    etcd_image: str = DEFAULT_ETCD_IMAGE

    # Upper bound for a single reconciliation pass, store calls included
    reconcile_timeout_seconds: float = Field(default=10.0, gt=0)

    # None means all namespaces
    watch_namespace: Optional[str] = None
    kubeconfig: Optional[str] = None
    in_cluster: bool = False

    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/0"

    resync_interval_seconds: float = 300.0
    retry_countdown_seconds: int = 5
    retry_max_countdown_seconds: int = 300
    retry_max_retries: int = 10

    log_level: str = "INFO"


settings = Settings()
