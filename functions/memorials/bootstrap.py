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
from typing import Callable, Optional

from backend.config import Settings, get_settings
from backend.db import InMemoryMemorialStore, MemorialStore, SqlMemorialStore
from memorials.local_store import FileLocalStore, InMemoryLocalStore, LocalStore
from memorials.notifications import LoggingNotifier, Notifier
from memorials.persistence import AutosaveDebouncer, DraftPersistence
from memorials.publish import PublishOrchestrator
from memorials.retry import RetryPolicy
from memorials.session import SessionProvider, StaticSessionProvider
from memorials.upload_client import AssetUploadClient
from memorials.upload_queue import BatchResult, UploadProgress, UploadQueue
from memorials.wizard import Wizard

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> MemorialStore:
    if settings.use_in_memory_backends or not settings.database_url:
        return InMemoryMemorialStore()
    return SqlMemorialStore(settings.database_url)


def build_local_store(settings: Settings) -> LocalStore:
    if settings.use_in_memory_backends:
        return InMemoryLocalStore()
    return FileLocalStore(settings.local_store_dir)


def build_wizard(
    settings: Optional[Settings] = None,
    *,
    session: Optional[SessionProvider] = None,
    notifier: Optional[Notifier] = None,
    store: Optional[MemorialStore] = None,
    local_store: Optional[LocalStore] = None,
    upload_client: Optional[AssetUploadClient] = None,
    on_progress: Optional[Callable[[UploadProgress], None]] = None,
    hydrate: bool = True,
) -> Wizard:
    """
    Wires a wizard with every collaborator built from `settings`.

    Any collaborator passed in explicitly is used as is.
    """
    settings = settings or get_settings()
    session = session or StaticSessionProvider()
    notifier = notifier or LoggingNotifier()
    store = store or build_store(settings)
    local_store = local_store or build_local_store(settings)

    if upload_client is None:
        upload_client = AssetUploadClient(
            settings.cloudinary_cloud_name or "",
            settings.cloudinary_upload_preset or "",
            delete_endpoint=f"{settings.api_base_url.rstrip('/')}/delete-asset",
            session_provider=session,
            retry_policy=RetryPolicy(
                attempts=settings.upload_max_attempts,
                delay_seconds=settings.upload_retry_delay_seconds,
            ),
            delete_retry_policy=RetryPolicy(
                attempts=settings.delete_max_attempts,
                delay_seconds=settings.upload_retry_delay_seconds,
            ),
            timeout=settings.request_timeout_seconds,
        )

    persistence = DraftPersistence(store, local_store, session, notifier)
    # Timer saves go through the wizard so they wait for a running save or publish.
    debouncer = AutosaveDebouncer(
        lambda: wizard.autosave(), delay=settings.autosave_debounce_seconds
    )

    def _after_batch(result: BatchResult) -> None:
        if result.succeeded:
            debouncer.touch()

    queue = UploadQueue(
        upload_client,
        lambda: persistence.draft,
        notifier=notifier,
        session=session,
        on_progress=on_progress,
        on_complete=_after_batch,
        max_upload_bytes=settings.max_upload_bytes,
    )
    orchestrator = PublishOrchestrator(
        store,
        persistence,
        session,
        notifier,
        retry_policy=RetryPolicy(
            attempts=settings.publish_max_attempts,
            delay_seconds=settings.upload_retry_delay_seconds,
        ),
    )
    if hydrate:
        persistence.hydrate()
    wizard = Wizard(
        persistence,
        orchestrator,
        notifier,
        debouncer=debouncer,
        queue=queue,
    )
    logger.info("Wizard ready with %d steps", wizard.total_steps)
    return wizard
