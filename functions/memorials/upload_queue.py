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
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Callable, Iterable, Optional

from memorials.notifications import Level, Notifier, notify_safely, report_error
from memorials.session import SessionProvider
from memorials.upload_client import AssetUploadClient, MediaFile, UploadOptions
from shared.constants import ASSET_FOLDER_ROOT, MAX_UPLOAD_BYTES
from shared.errors import MemorialError, ValidationFailure
from shared.types import AssetDescriptor, Draft, Moment, MomentType, UploadState

logger = logging.getLogger(__name__)


class QueueState(StrEnum):
    IDLE = "idle"
    DRAINING = "draining"


@dataclass
class UploadTask:
    file: MediaFile
    moment_id: str
    local_url: str
    state: UploadState = UploadState.QUEUED
    attempts: int = 0

    def record_attempt(self, attempt: int) -> None:
        self.attempts = attempt


@dataclass
class UploadProgress:
    current: int
    total: int
    percent: int
    file_name: str


@dataclass
class BatchResult:
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def summary(self) -> tuple[str, Level]:
        if not self.failed:
            return "All uploads complete!", Level.SUCCESS
        if not self.succeeded:
            return f"{len(self.failed)} upload(s) failed.", Level.ERROR
        return (
            f"{len(self.succeeded)} uploaded, {len(self.failed)} failed.",
            Level.WARNING,
        )


@dataclass
class LocalPreviewRegistry:
    """Tracks the transient preview handles shown while a file uploads."""

    active: set[str] = field(default_factory=set)

    def create(self, file: MediaFile) -> str:
        url = f"local://{uuid.uuid4().hex}/{file.name}"
        self.active.add(url)
        return url

    def revoke(self, url: Optional[str]) -> None:
        if url:
            self.active.discard(url)


def upload_folder(draft: Draft, user_id: Optional[str]) -> str:
    if draft.id:
        return f"{ASSET_FOLDER_ROOT}/memorials/{draft.id}/moments"
    return f"{ASSET_FOLDER_ROOT}/drafts/{user_id or 'anonymous'}/moments"


def upload_tags(draft: Draft) -> tuple[str, ...]:
    return (f"memorial_{draft.id or 'draft'}", "moments")


class UploadQueue:
    """
    Uploads moments one at a time, in the order they were added.

    Placeholders are added to the draft as soon as files are accepted so the
    board can show them; each one is either completed with its remote asset or
    removed again when its upload fails. Only one drain runs at a time: files
    enqueued during a drain join the running batch.
    """

    def __init__(
        self,
        client: AssetUploadClient,
        get_draft: Callable[[], Draft],
        *,
        notifier: Notifier,
        session: Optional[SessionProvider] = None,
        previews: Optional[LocalPreviewRegistry] = None,
        on_progress: Optional[Callable[[UploadProgress], None]] = None,
        on_complete: Optional[Callable[[BatchResult], None]] = None,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
    ):
        self.client = client
        self.get_draft = get_draft
        self.notifier = notifier
        self.session = session
        self.previews = previews or LocalPreviewRegistry()
        self.on_progress = on_progress
        self.on_complete = on_complete
        self.max_upload_bytes = max_upload_bytes
        self.state = QueueState.IDLE
        self._lock = threading.Lock()
        self._backlog: deque[UploadTask] = deque()
        self._batch_total = 0
        self._batch_done = 0

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._backlog)

    def options(self) -> UploadOptions:
        draft = self.get_draft()
        user = self.session.get_current_user() if self.session else None
        return UploadOptions(
            folder=upload_folder(draft, user.id if user else None),
            tags=upload_tags(draft),
            max_size_bytes=self.max_upload_bytes,
        )

    def enqueue(self, files: Iterable[MediaFile], *, drain: bool = True) -> list[ValidationFailure]:
        """
        Accepts files for upload and starts draining when the queue is idle.

        Returns:
            list[ValidationFailure]: One entry per rejected file.
        """
        options = self.options()
        draft = self.get_draft()
        rejected = []
        accepted = 0
        for file in files:
            try:
                self.client.validate(file, options)
            except ValidationFailure as e:
                rejected.append(e)
                notify_safely(self.notifier, e.user_message, Level.ERROR)
                continue

            local_url = self.previews.create(file)
            moment = Moment(
                type=MomentType.VIDEO if file.is_video else MomentType.PHOTO,
                file_name=file.name,
                uploading=True,
                local_url=local_url,
            )
            draft.moments.append(moment)
            with self._lock:
                self._backlog.append(UploadTask(file, moment.id, local_url))
                self._batch_total += 1
            accepted += 1

        logger.info("Queued %d file(s), rejected %d", accepted, len(rejected))
        if drain and accepted:
            self.drain()
        return rejected

    def drain(self) -> Optional[BatchResult]:
        """Processes the backlog; returns None when a drain is already running."""
        with self._lock:
            if self.state == QueueState.DRAINING:
                return None
            self.state = QueueState.DRAINING
        logger.debug("Upload queue draining")

        result = BatchResult()
        try:
            while True:
                with self._lock:
                    if not self._backlog:
                        self.state = QueueState.IDLE
                        total = self._batch_total
                        self._batch_total = 0
                        self._batch_done = 0
                        break
                    task = self._backlog.popleft()
                self._process(task, result)
        except BaseException:
            with self._lock:
                self.state = QueueState.IDLE
            raise

        logger.info(
            "Upload batch finished: %d succeeded, %d failed of %d",
            len(result.succeeded),
            len(result.failed),
            total,
        )
        if result.total:
            message, level = result.summary()
            notify_safely(self.notifier, message, level)
            if self.on_complete:
                self.on_complete(result)
        return result

    def _process(self, task: UploadTask, result: BatchResult) -> None:
        task.state = UploadState.UPLOADING
        draft = self.get_draft()
        try:
            descriptor = self.client.upload(
                task.file, self.options(), on_attempt=task.record_attempt
            )
        except MemorialError as e:
            task.state = UploadState.FAILED
            self._discard_placeholder(draft, task)
            result.failed.append(task.file.name)
            logger.warning("Upload of %s failed: %s", task.file.name, e)
            notify_safely(self.notifier, f"Failed to upload {task.file.name}", Level.ERROR)
        except Exception as e:
            task.state = UploadState.FAILED
            self._discard_placeholder(draft, task)
            result.failed.append(task.file.name)
            report_error(self.notifier, e, f"upload of {task.file.name}")
        else:
            task.state = UploadState.SUCCEEDED
            self._complete_placeholder(draft, task, descriptor)
            result.succeeded.append(task.file.name)

        with self._lock:
            self._batch_done += 1
            current, total = self._batch_done, self._batch_total
        if self.on_progress:
            self.on_progress(
                UploadProgress(
                    current=current,
                    total=total,
                    percent=round(current * 100 / total) if total else 100,
                    file_name=task.file.name,
                )
            )

    def _complete_placeholder(
        self, draft: Draft, task: UploadTask, descriptor: AssetDescriptor
    ) -> None:
        moment = draft.find_moment(task.moment_id)
        self.previews.revoke(task.local_url)
        if moment is None:
            # Removed from the board while uploading.
            logger.info("Placeholder for %s is gone; keeping upload orphaned", task.file.name)
            return
        moment.remote_url = descriptor.url
        moment.thumbnail_url = descriptor.thumbnail_url
        moment.remote_public_id = descriptor.public_id
        moment.resource_type = descriptor.resource_type
        moment.type = MomentType.VIDEO if descriptor.resource_type == "video" else MomentType.PHOTO
        moment.uploading = False
        moment.local_url = None

    def _discard_placeholder(self, draft: Draft, task: UploadTask) -> None:
        self.previews.revoke(task.local_url)
        draft.moments = [m for m in draft.moments if m.id != task.moment_id]
