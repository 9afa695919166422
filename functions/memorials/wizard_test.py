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

import json
import unittest
from datetime import date
from unittest.mock import MagicMock

from backend.db import InMemoryMemorialStore
from memorials.local_store import InMemoryLocalStore
from memorials.notifications import Level, RecordingNotifier
from memorials.persistence import AutosaveDebouncer, DraftPersistence
from memorials.publish import PublishOrchestrator
from memorials.session import CurrentUser, StaticSessionProvider
from memorials.wizard import Wizard, build_preview
from shared.constants import LOCAL_DRAFT_KEY
from shared.types import Draft, Moment, MomentType, Privacy, Service, ServiceType

STORY = "<p>" + "She loved her garden and her grandchildren dearly. " * 2 + "</p>"


class WizardTest(unittest.TestCase):

    def setUp(self):
        self.store = InMemoryMemorialStore()
        self.local = InMemoryLocalStore()
        self.session = StaticSessionProvider(CurrentUser("user-1"), "token")
        self.notifier = RecordingNotifier()
        self.persistence = DraftPersistence(
            self.store, self.local, self.session, self.notifier
        )
        self.orchestrator = PublishOrchestrator(
            self.store, self.persistence, self.session, self.notifier, sleep=lambda _: None
        )
        self.debouncer = MagicMock(spec=AutosaveDebouncer)
        self.wizard = Wizard(
            self.persistence, self.orchestrator, self.notifier, debouncer=self.debouncer
        )

    def _complete_basic(self):
        self.wizard.fill(
            first_name="Jane",
            last_name="Doe",
            birth_date="1950-01-01",
            death_date="2024-12-31",
        )
        self.assertTrue(self.wizard.next())

    def test_starts_on_the_first_step(self):
        self.assertEqual(self.wizard.current, 1)
        self.assertEqual(self.wizard.total_steps, 5)
        self.assertEqual(self.wizard.progress_percent, 20)
        self.assertEqual(self.wizard.current_step.name, "basic")

    def test_next_is_blocked_by_validation(self):
        self.wizard.fill(first_name="Jane", last_name="")

        self.assertFalse(self.wizard.next())

        self.assertEqual(self.wizard.current, 1)
        self.assertEqual(self.wizard.last_error.field, "last_name")
        self.assertEqual(self.notifier.at(Level.ERROR), ["Please enter a last name"])

    def test_future_birth_date_is_rejected(self):
        self.wizard.fill(first_name="Jane", last_name="Doe", birth_date="2999-01-01")
        self.assertFalse(self.wizard.next())
        self.assertEqual(self.wizard.last_error.field, "birth_date")

    def test_next_collects_the_form_into_the_draft(self):
        self._complete_basic()

        self.assertEqual(self.wizard.current, 2)
        basic = self.wizard.draft.basic
        self.assertEqual(basic.display_name, "Jane Doe")
        self.assertEqual(basic.birth_date, date(1950, 1, 1))

    def test_story_step_rejects_script_like_content(self):
        self._complete_basic()
        self.wizard.fill(obituary_html=STORY + "<script>alert(1)</script>")

        self.assertFalse(self.wizard.next())
        self.assertEqual(self.wizard.last_error.user_message, "Invalid content detected.")

    def test_previous_and_skip(self):
        self.assertFalse(self.wizard.previous())
        self.assertFalse(self.wizard.skip())

        self._complete_basic()
        self.assertFalse(self.wizard.skip())
        self.wizard.fill(obituary_html=STORY)
        self.assertTrue(self.wizard.next())

        self.assertEqual(self.wizard.current_step.name, "services")
        self.assertTrue(self.wizard.skip())
        self.assertTrue(self.wizard.skip())
        self.assertEqual(self.wizard.current_step.name, "settings")
        self.assertFalse(self.wizard.skip())

        self.assertTrue(self.wizard.previous())
        self.assertEqual(self.wizard.current_step.name, "moments")

    def test_story_edits_autosave_once_the_story_step_was_entered(self):
        self.wizard.edit_story("<p>Draft</p>")
        self.debouncer.touch.assert_not_called()

        self._complete_basic()
        self.assertTrue(self.wizard.autosave_active)
        self.wizard.edit_story("<p>Draft two</p>")

        self.debouncer.touch.assert_called_once()
        self.assertEqual(self.wizard.draft.story.obituary_html, "<p>Draft two</p>")
        self.assertEqual(self.wizard.form["obituary_html"], "<p>Draft two</p>")

    def test_story_edits_keep_only_clean_markup_on_the_draft(self):
        self._complete_basic()
        raw = STORY + "<script>steal()</script>"

        self.wizard.edit_story(raw)
        self.persistence.save_local_fallback()

        self.assertEqual(self.wizard.form["obituary_html"], raw)
        self.assertNotIn("<script", self.wizard.draft.story.obituary_html)
        self.assertNotIn("steal()", self.wizard.draft.story.obituary_html)
        snapshot = json.loads(self.local.get(LOCAL_DRAFT_KEY))
        self.assertNotIn("<script", snapshot["draft"]["story"]["obituary_html"])

    def test_story_step_collects_sanitized_markup(self):
        self._complete_basic()
        self.wizard.fill(
            obituary_html=STORY + '<p onclick="steal()">Hi</p>',
            life_story_html='<p>Born</p><iframe src="https://evil.test"></iframe>',
        )

        self.assertTrue(self.wizard.next())

        story = self.wizard.draft.story
        self.assertNotIn("onclick", story.obituary_html)
        self.assertIn("Hi", story.obituary_html)
        self.assertNotIn("iframe", story.life_story_html)
        self.assertIn("Born", story.life_story_html)

    def test_services_step_validates_virtual_links(self):
        self._complete_basic()
        self.wizard.fill(obituary_html=STORY)
        self.wizard.next()
        self.wizard.fill(services=[{"type": "memorial", "is_virtual": True}, {}])

        self.assertFalse(self.wizard.next())
        self.assertEqual(self.wizard.last_error.field, "services[0].virtual_url")

        self.wizard.fill(
            services=[{"type": "memorial", "is_virtual": True, "virtual_url": "https://zoom.us/j/1"}, {}]
        )
        self.assertTrue(self.wizard.next())
        self.assertEqual(len(self.wizard.draft.services), 1)

    def test_save_draft_saves_remotely(self):
        self.wizard.fill(first_name="Jane", last_name="Doe")

        self.assertTrue(self.wizard.save_draft())

        self.debouncer.cancel.assert_called_once()
        self.assertEqual(len(self.store.memorials), 1)
        self.assertEqual(self.notifier.at(Level.SUCCESS), ["Draft saved successfully!"])

    def test_save_draft_refuses_while_busy(self):
        self.wizard._busy.acquire()
        try:
            self.assertTrue(self.wizard.busy)
            self.assertFalse(self.wizard.save_draft())
            self.assertIsNone(self.wizard.publish())
        finally:
            self.wizard._busy.release()
        self.assertEqual(self.store.memorials, {})

    def test_save_draft_never_stores_private_without_a_valid_password(self):
        self._complete_basic()
        self.wizard.fill(obituary_html=STORY)
        self.wizard.next()
        self.wizard.skip()
        self.wizard.skip()
        self.wizard.fill(privacy="private", password="abc")

        self.assertTrue(self.wizard.save_draft())

        stored = next(iter(self.store.memorials.values()))
        self.assertEqual(stored.privacy_setting, "public")
        self.assertIsNone(stored.access_password)
        self.assertEqual(self.wizard.draft.settings.privacy, Privacy.PUBLIC)

    def test_timer_autosave_waits_for_a_running_save(self):
        self.wizard.fill(first_name="Jane", last_name="Doe")
        self.wizard.next()
        self.wizard._busy.acquire()
        try:
            self.assertFalse(self.wizard.autosave())
        finally:
            self.wizard._busy.release()

        self.debouncer.touch.assert_called_once()
        self.assertEqual(self.store.memorials, {})

        self.assertTrue(self.wizard.autosave())
        self.assertEqual(len(self.store.memorials), 1)

    def test_publish_only_from_the_last_step(self):
        self.assertIsNone(self.wizard.publish())
        self.assertEqual(
            self.notifier.at(Level.ERROR), ["Please complete every step before publishing."]
        )

    def test_publish_end_to_end(self):
        self._complete_basic()
        self.wizard.fill(obituary_html=STORY)
        self.wizard.next()
        self.wizard.skip()
        self.wizard.skip()
        self.assertIsNotNone(self.wizard.last_preview)
        self.wizard.fill(privacy="private", password="abc")

        self.assertIsNone(self.wizard.publish())
        self.assertEqual(self.wizard.last_error.field, "password")

        self.wizard.fill(password="secret1")
        record = self.wizard.publish()

        self.assertEqual(record.slug, "jane-doe")
        self.assertIs(self.wizard.published, record)
        stored = self.store.memorials[record.id]
        self.assertTrue(stored.is_published)
        self.assertEqual(stored.privacy_setting, "private")
        self.assertEqual(stored.access_password, "secret1")
        self.assertFalse(self.wizard.busy)

    def test_nothing_is_saved_after_publishing(self):
        self._complete_basic()
        self.wizard.fill(obituary_html=STORY)
        self.wizard.next()
        self.wizard.skip()
        self.wizard.skip()
        record = self.wizard.publish()
        self.assertIsNotNone(record)

        self.assertFalse(self.wizard.autosave_active)
        self.debouncer.cancel.assert_called()
        self.debouncer.touch.reset_mock()

        self.wizard.start_autosave()
        self.wizard.edit_story(STORY)
        self.assertFalse(self.wizard.autosave())

        self.debouncer.touch.assert_not_called()
        self.assertEqual(self.local.items, {})
        self.assertEqual(list(self.store.memorials), [record.id])


class BuildPreviewTest(unittest.TestCase):

    def test_summarizes_the_draft(self):
        draft = Draft()
        draft.basic.first_name = "Jane"
        draft.basic.last_name = "Doe"
        draft.basic.birth_date = date(1950, 1, 1)
        draft.basic.death_date = date(2024, 12, 31)
        draft.services.append(Service(type=ServiceType.FUNERAL))
        draft.moments = [
            Moment(type=MomentType.PHOTO),
            Moment(type=MomentType.VIDEO),
            Moment(type=MomentType.PHOTO, uploading=True),
        ]
        draft.set_privacy(Privacy.UNLISTED)

        preview = build_preview(draft)

        self.assertEqual(preview.display_name, "Jane Doe")
        self.assertEqual(preview.life_dates, "January 1, 1950 - December 31, 2024")
        self.assertEqual((preview.photo_count, preview.video_count), (1, 1))
        self.assertEqual(preview.service_count, 1)
        self.assertEqual(preview.privacy, "unlisted")

    def test_single_date(self):
        draft = Draft()
        draft.basic.death_date = date(2024, 3, 9)
        self.assertEqual(build_preview(draft).life_dates, "March 9, 2024")


if __name__ == "__main__":
    unittest.main()
