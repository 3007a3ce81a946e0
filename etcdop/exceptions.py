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

from typing import List, Optional


class EtcdOperatorError(Exception):
    """Base error of the etcd peer operator"""


class InvalidPeerError(EtcdOperatorError):
    """The EtcdPeer declaration is invalid and retrying will not help"""

    def __init__(self, name: str, problems: List[str]):
        self.name = name
        self.problems = list(problems)
        super().__init__(f"invalid EtcdPeer {name}: {'; '.join(self.problems)}")


class StoreError(EtcdOperatorError):
    """A control-plane store operation failed; transient unless a subclass says otherwise"""

    def __init__(self, kind, key, operation: str, message: Optional[str] = None):
        self.kind = kind
        self.key = key
        self.operation = operation
        detail = f"{operation} {kind} {key} failed"
        if message:
            detail = f"{detail}: {message}"
        super().__init__(detail)


class NotFoundError(StoreError):
    pass


class AlreadyExistsError(StoreError):
    pass


class ConflictError(StoreError):
    """The object changed since it was read (resourceVersion mismatch)"""


class DeadlineExceededError(StoreError):
    pass


class ReconcileError(EtcdOperatorError):
    """An action failed; the pass should be re-queued"""
