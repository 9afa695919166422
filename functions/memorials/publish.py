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
from datetime import date
from typing import Callable, Optional

from backend.db import MemorialStore
from memorials.moments import moments_for_save
from memorials.notifications import Level, Notifier, notify_safely, report_error
from memorials.persistence import DraftPersistence, service_records
from memorials.retry import RetryPolicy, call_with_retry
from memorials.session import SessionProvider
from shared.constants import DEFAULT_PUBLISH_ATTEMPTS
from shared.errors import AuthorizationFailure, MemorialError, PublishFailure
from shared.types import Draft, PublishedRecord
from shared.validation import sanitize_draft, validate_for_publish

logger = logging.getLogger(__name__)


class PublishOrchestrator:
    """
    Turns a draft into a published memorial.

    The stages run in order and each is retried on its own: parent record,
    slug, services, moments. Local markers are cleared only after every stage
    succeeds, so a failed publish can be retried from the same draft.
    """

    def __init__(
        self,
        store: MemorialStore,
        persistence: DraftPersistence,
        session: SessionProvider,
        notifier: Notifier,
        *,
        retry_policy: RetryPolicy = RetryPolicy(attempts=DEFAULT_PUBLISH_ATTEMPTS),
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.persistence = persistence
        self.session = session
        self.notifier = notifier
        self.retry_policy = retry_policy
        self.sleep = sleep
        self.clock = clock

    def _stage(self, stage: str, operation: Callable):
        try:
            return call_with_retry(operation, self.retry_policy, sleep=self.sleep)
        except MemorialError as e:
            raise PublishFailure(stage, str(e)) from e

    def _assign_slug(self, owner_id: str, memorial_id: str, draft: Draft) -> str:
        # A retry picks a fresh slug; the previous one may have been taken meanwhile.
        slug = self.store.generate_unique_slug(draft.basic.display_name, memorial_id)
        self.store.update_memorial(owner_id, memorial_id, {"slug": slug})
        return slug

    def publish(self, draft: Draft, *, today: Optional[date] = None) -> PublishedRecord:
        """
        Validates, saves and publishes `draft`.

        Raises:
            ValidationFailure: A local precondition failed; nothing was sent.
            AuthorizationFailure: Nobody is signed in.
            PublishFailure: A stage failed after its retries.
        """
        validate_for_publish(draft, today=today)
        user = self.session.get_current_user()
        if user is None:
            error = AuthorizationFailure("Please sign in to publish your memorial.")
            report_error(self.notifier, error, "publish")
            raise error

        clean = sanitize_draft(draft)
        notify_safely(self.notifier, "Publishing memorial...", Level.INFO)
        try:
            record = self._stage(
                "memorial",
                lambda: self.persistence.upsert(
                    user.id,
                    clean,
                    {
                        "is_published": True,
                        "is_draft": False,
                        "published_at": self.clock(),
                    },
                ),
            )
            draft.id = record.id
            slug = record.slug
            if not slug:
                slug = self._stage(
                    "slug", lambda: self._assign_slug(user.id, record.id, clean)
                )
            self._stage(
                "services",
                lambda: self.store.replace_services(
                    user.id, record.id, service_records(clean)
                ),
            )
            self._stage(
                "moments",
                lambda: self.store.replace_moments(
                    user.id, record.id, moments_for_save(clean)
                ),
            )
        except PublishFailure as e:
            logger.warning("Publish failed at stage %s: %s", e.stage, e)
            notify_safely(self.notifier, e.user_message, Level.ERROR)
            raise

        self.persistence.clear_markers()
        logger.info("Published memorial %s as %s", record.id, slug)
        notify_safely(self.notifier, "Memorial published successfully!", Level.SUCCESS)
        return PublishedRecord(id=record.id, slug=slug, is_published=True)
