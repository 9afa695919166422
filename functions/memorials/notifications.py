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
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

from shared.errors import MemorialError, UploadFailure

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again."

# Substrings of low-level error text mapped to something a person can act on.
KNOWN_ERROR_MESSAGES = {
    "Invalid login credentials": "Email or password is incorrect. Please try again.",
    "Email not confirmed": "Please verify your email before logging in.",
    "NetworkError": "Connection error. Please check your internet and try again.",
    "Failed to fetch": "Unable to connect to our servers. Please try again.",
    "Connection refused": "Unable to connect to our servers. Please try again.",
    "Upload preset not found": "Upload configuration error. Please contact support.",
    "Resource not found": "The requested file could not be found.",
}

STATUS_MESSAGES = {
    400: "Invalid request. Please check your input.",
    401: "You need to be logged in to perform this action.",
    403: "You don't have permission to perform this action.",
    404: "The requested resource was not found.",
    500: "Something went wrong on our end. Please try again later.",
    502: "Something went wrong on our end. Please try again later.",
    503: "Something went wrong on our end. Please try again later.",
}


class Level(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Notifier(Protocol):
    def notify(self, message: str, level: Level = Level.INFO) -> None:
        ...


class LoggingNotifier:
    """Routes user notifications to the log; the default outside a UI."""

    _LOG_LEVELS = {
        Level.INFO: logging.INFO,
        Level.SUCCESS: logging.INFO,
        Level.WARNING: logging.WARNING,
        Level.ERROR: logging.ERROR,
    }

    def notify(self, message: str, level: Level = Level.INFO) -> None:
        logger.log(self._LOG_LEVELS.get(Level(level), logging.INFO), "[%s] %s", level, message)


@dataclass
class RecordingNotifier:
    """Test double that keeps every notification in order."""

    messages: list[tuple[str, Level]] = field(default_factory=list)

    def notify(self, message: str, level: Level = Level.INFO) -> None:
        self.messages.append((message, Level(level)))

    def at(self, level: Level) -> list[str]:
        return [message for message, lvl in self.messages if lvl == level]


def notify_safely(notifier: Notifier, message: str, level: Level = Level.INFO) -> None:
    """Fire-and-forget; a broken notification surface never breaks the caller."""
    try:
        notifier.notify(message, level)
    except Exception:
        logger.exception("Notifier failed for message %r", message)


def describe_error(error: BaseException) -> str:
    """Maps any exception to text that is safe to show to the user."""
    if isinstance(error, UploadFailure) and error.status_code in STATUS_MESSAGES:
        if error.status_code >= 500:
            return STATUS_MESSAGES[error.status_code]
        return error.user_message
    if isinstance(error, MemorialError):
        return error.user_message

    error_text = str(error)
    for needle, message in KNOWN_ERROR_MESSAGES.items():
        if needle in error_text:
            return message
    status = getattr(error, "status_code", None)
    if status in STATUS_MESSAGES:
        return STATUS_MESSAGES[status]
    return GENERIC_ERROR_MESSAGE


def report_error(
    notifier: Notifier,
    error: BaseException,
    context: str = "",
    level: Level = Level.ERROR,
) -> str:
    message = describe_error(error)
    logger.warning("[Error%s]: %s", f" in {context}" if context else "", error)
    notify_safely(notifier, message, level)
    return message
