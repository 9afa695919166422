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
from dataclasses import dataclass
from typing import Iterable, Optional

from memorials import moments
from memorials.notifications import Level, Notifier, notify_safely, report_error
from memorials.persistence import AutosaveDebouncer, DraftPersistence
from memorials.publish import PublishOrchestrator
from memorials.steps import WizardStep, clean_story_html, default_steps
from memorials.upload_client import MediaFile
from memorials.upload_queue import UploadQueue
from shared.errors import MemorialError, ValidationFailure
from shared.types import Draft, PublishedRecord

logger = logging.getLogger(__name__)


@dataclass
class WizardPreview:
    display_name: str
    life_dates: str
    headline: Optional[str]
    photo_count: int
    video_count: int
    service_count: int
    privacy: str


def _long_date(value) -> str:
    return f"{value:%B} {value.day}, {value.year}" if value else ""


def build_preview(draft: Draft) -> WizardPreview:
    basic = draft.basic
    birth = _long_date(basic.birth_date)
    death = _long_date(basic.death_date)
    counts = moments.counts(draft)
    return WizardPreview(
        display_name=basic.display_name,
        life_dates=" - ".join(d for d in (birth, death) if d),
        headline=basic.headline,
        photo_count=counts["photos"],
        video_count=counts["videos"],
        service_count=len(draft.services),
        privacy=draft.settings.privacy.value,
    )


class Wizard:
    """
    Step-by-step memorial editor.

    Steps are numbered from 1. `next` validates and collects the current form
    before advancing; `previous` and `skip` (optional steps only) move without
    validation. Save and publish refuse to start while another one runs.
    """

    def __init__(
        self,
        persistence: DraftPersistence,
        orchestrator: PublishOrchestrator,
        notifier: Notifier,
        *,
        steps: Optional[list[WizardStep]] = None,
        debouncer: Optional[AutosaveDebouncer] = None,
        queue: Optional[UploadQueue] = None,
    ):
        self.persistence = persistence
        self.orchestrator = orchestrator
        self.notifier = notifier
        self.steps = steps if steps is not None else default_steps()
        if not self.steps:
            raise ValueError("A wizard needs at least one step")
        self.debouncer = debouncer
        self.queue = queue
        self.current = 1
        self.forms: dict[str, dict] = {}
        self.autosave_active = False
        self.last_preview: Optional[WizardPreview] = None
        self.last_error: Optional[ValidationFailure] = None
        self.published: Optional[PublishedRecord] = None
        self._busy = threading.Lock()
        self._load_form(self.current_step)

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def current_step(self) -> WizardStep:
        return self.steps[self.current - 1]

    @property
    def draft(self) -> Draft:
        return self.persistence.draft

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    @property
    def progress_percent(self) -> float:
        return self.current / self.total_steps * 100

    @property
    def form(self) -> dict:
        return self.forms.setdefault(self.current_step.name, {})

    def _load_form(self, step: WizardStep) -> None:
        if not self.forms.get(step.name):
            self.forms[step.name] = dict(step.form_from_draft(self.draft))

    def reload(self) -> None:
        """Re-reads every form from the (re)hydrated draft."""
        self.forms.clear()
        self._load_form(self.current_step)

    def _go_to(self, index: int) -> None:
        self.current = index
        step = self.current_step
        self._load_form(step)
        logger.debug("Wizard at step %d/%d (%s)", index, self.total_steps, step.name)
        step.on_enter(self)

    # Navigation ------------------------------------------------------------

    def next(self) -> bool:
        step = self.current_step
        try:
            step.validate(self.form, self.draft)
            step.collect(self.form, self.persistence)
        except ValidationFailure as e:
            self.last_error = e
            notify_safely(self.notifier, e.user_message, Level.ERROR)
            return False
        self.last_error = None
        if self.current < self.total_steps:
            self._go_to(self.current + 1)
        return True

    def previous(self) -> bool:
        if self.current <= 1:
            return False
        self._go_to(self.current - 1)
        return True

    def skip(self) -> bool:
        if not self.current_step.optional or self.current >= self.total_steps:
            return False
        self._go_to(self.current + 1)
        return True

    # Editing ---------------------------------------------------------------

    def fill(self, **fields) -> dict:
        self.form.update(fields)
        return self.form

    def edit_story(self, obituary_html: str) -> None:
        # The form keeps what was typed; the draft only ever holds clean HTML.
        self.forms.setdefault("story", {})["obituary_html"] = obituary_html
        self.persistence.mutate(story={"obituary_html": clean_story_html(obituary_html)})
        if self.autosave_active and self.debouncer is not None:
            self.debouncer.touch()

    def start_autosave(self) -> None:
        if self.published is None:
            self.autosave_active = True

    def stop_autosave(self) -> None:
        self.autosave_active = False
        if self.debouncer is not None:
            self.debouncer.cancel()

    def add_moments(self, files: Iterable[MediaFile]) -> list[ValidationFailure]:
        if self.queue is None:
            raise RuntimeError("This wizard has no upload queue")
        return self.queue.enqueue(files)

    def render_preview(self) -> WizardPreview:
        self.last_preview = build_preview(self.draft)
        return self.last_preview

    def preview(self) -> WizardPreview:
        return self.render_preview()

    # Saving ----------------------------------------------------------------

    def autosave(self) -> bool:
        """
        Debounced save. Yields to a running save or publish by rescheduling
        itself, and does nothing once the memorial is published.
        """
        if self.published is not None:
            return False
        if not self._busy.acquire(blocking=False):
            logger.debug("Autosave deferred, wizard busy")
            if self.debouncer is not None:
                self.debouncer.touch()
            return False
        try:
            if self.published is not None:
                return False
            return self.persistence.autosave()
        finally:
            self._busy.release()

    def save_draft(self) -> bool:
        if not self._busy.acquire(blocking=False):
            notify_safely(self.notifier, "Please wait, still saving...", Level.INFO)
            return False
        try:
            if self.debouncer is not None:
                self.debouncer.cancel()
            try:
                self.current_step.collect(self.form, self.persistence)
            except (ValidationFailure, ValueError) as e:
                # Half-filled fields are left for the step's own validation.
                logger.info("Saving draft without the current form: %s", e)
            saved = self.persistence.autosave()
            if saved:
                notify_safely(self.notifier, "Draft saved successfully!", Level.SUCCESS)
            return saved
        finally:
            self._busy.release()

    def publish(self) -> Optional[PublishedRecord]:
        if self.current != self.total_steps:
            notify_safely(
                self.notifier, "Please complete every step before publishing.", Level.ERROR
            )
            return None
        if not self._busy.acquire(blocking=False):
            notify_safely(self.notifier, "Please wait, still saving...", Level.INFO)
            return None
        try:
            if self.debouncer is not None:
                self.debouncer.cancel()
            step = self.current_step
            try:
                step.validate(self.form, self.draft)
                step.collect(self.form, self.persistence)
            except ValidationFailure as e:
                self.last_error = e
                notify_safely(self.notifier, e.user_message, Level.ERROR)
                return None
            try:
                record = self.orchestrator.publish(self.draft)
            except ValidationFailure as e:
                self.last_error = e
                notify_safely(self.notifier, e.user_message, Level.ERROR)
                return None
            except MemorialError as e:
                # Already reported by the orchestrator.
                logger.warning("Publish did not complete: %s", e)
                return None
            self.published = record
            self.stop_autosave()
            return record
        except Exception as e:
            report_error(self.notifier, e, "publish")
            raise
        finally:
            self._busy.release()
