# Copyright 2025 Google LLC
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
# ==============================================================================

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from shared.constants import DEFAULT_RETRY_DELAY_SECONDS, DEFAULT_UPLOAD_ATTEMPTS

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try a remote call and how long to wait in between."""

    attempts: int = DEFAULT_UPLOAD_ATTEMPTS
    delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS
    exponential: bool = False
    max_delay_seconds: float = 30.0


def is_retryable(error: BaseException) -> bool:
    # Only our own taxonomy carries the flag; anything else is a bug, not a blip.
    return bool(getattr(error, "retryable", False))


def call_with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    on_attempt: Optional[Callable[[int], None]] = None,
) -> T:
    """
    Runs `operation` until it succeeds, raises a non-retryable error, or the
    policy's attempts are used up. The last error is re-raised unchanged.
    """
    if policy.exponential:
        wait = wait_exponential(
            multiplier=policy.delay_seconds,
            min=policy.delay_seconds,
            max=policy.max_delay_seconds,
        )
    else:
        wait = wait_fixed(policy.delay_seconds)

    def _before(retry_state) -> None:
        if on_attempt:
            on_attempt(retry_state.attempt_number)

    retryer = Retrying(
        stop=stop_after_attempt(max(1, policy.attempts)),
        wait=wait,
        retry=retry_if_exception(is_retryable),
        sleep=sleep,
        before=_before,
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    return retryer(operation)
