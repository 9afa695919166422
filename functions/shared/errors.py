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

from typing import Optional


class MemorialError(Exception):
    """Base class for every failure surfaced by the memorial pipeline.

    `user_message` is the text safe to show in a toast; `retryable` tells the
    retry helpers whether another attempt may succeed.
    """

    retryable = False

    def __init__(self, message: str, *, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message


class ValidationFailure(MemorialError):
    """Local input problem, raised before any network call."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class UploadFailure(MemorialError):
    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retryable: bool = False,
        file_name: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable
        self.file_name = file_name


class PersistenceFailure(MemorialError):
    retryable = True


class NotFoundFailure(PersistenceFailure):
    """The record does not exist (any more); retrying cannot help."""

    retryable = False


class PublishFailure(PersistenceFailure):
    """A publish step failed after its retries were exhausted."""

    retryable = False

    def __init__(self, stage: str, message: str):
        super().__init__(
            f"Publish failed during {stage}: {message}",
            user_message="We couldn't publish the memorial. Your draft is safe, please try again.",
        )
        self.stage = stage


class TimeoutFailure(MemorialError):
    retryable = True

    def __init__(self, message: str = "Request timeout. Please try again."):
        super().__init__(message)


class AuthorizationFailure(MemorialError):
    def __init__(self, message: str = "Please sign in to continue."):
        super().__init__(message)
