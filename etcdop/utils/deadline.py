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

import time
from typing import Callable

from etcdop.exceptions import DeadlineExceededError


class Deadline:
    """
    Absolute wall-clock deadline for one reconciliation pass.

    A Deadline is passed explicitly to every store call; there is no ambient timeout.
    """

    def __init__(self, expires_at: float, clock: Callable[[], float] = time.monotonic):
        self.expires_at = expires_at
        self._clock = clock

    @classmethod
    def after(cls, seconds: float, clock: Callable[[], float] = time.monotonic) -> "Deadline":
        return cls(clock() + seconds, clock)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._clock() >= self.expires_at

    def check(self, kind, key, operation: str):
        """Raise DeadlineExceededError if no time is left for the given store operation"""
        if self.expired:
            raise DeadlineExceededError(kind, key, operation, "reconcile deadline exceeded")

    def __repr__(self):
        return f"Deadline(remaining={self.remaining():.3f}s)"
