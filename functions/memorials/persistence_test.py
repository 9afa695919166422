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
import tempfile
import unittest
from datetime import date
from unittest.mock import MagicMock

from backend.db import InMemoryMemorialStore
from memorials.local_store import FileLocalStore, InMemoryLocalStore
from memorials.notifications import Level, RecordingNotifier
from memorials.persistence import (
    LOCAL_SAVE_MESSAGE,
    RESTORED_MESSAGE,
    AutosaveDebouncer,
    DraftPersistence,
)
from memorials.session import CurrentUser, StaticSessionProvider
from shared.constants import LOCAL_DRAFT_ID_KEY, LOCAL_DRAFT_KEY
from shared.errors import PersistenceFailure, ValidationFailure
from shared.types import Draft, Moment, MomentType, Privacy, ServiceType


class FakeTimer:

    def __init__(self, delay, function):
        self.delay = delay
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function()


class DraftPersistenceTest(unittest.TestCase):

    def setUp(self):
        self.store = InMemoryMemorialStore()
        self.local = InMemoryLocalStore()
        self.session = StaticSessionProvider(CurrentUser("user-1"), "token")
        self.notifier = RecordingNotifier()
        self.persistence = self._persistence(self.store)

    def _persistence(self, store):
        return DraftPersistence(
            store, self.local, self.session, self.notifier, clock=lambda: 1000.0
        )

    def _fill(self):
        self.persistence.mutate(
            basic={"first_name": "Jane", "last_name": "Doe", "birth_date": "1950-01-01"},
            services=[{"type": "funeral", "date": "2025-01-10", "location_name": "Chapel"}],
        )
        self.persistence.draft.moments.append(
            Moment(
                type=MomentType.PHOTO,
                remote_url="https://cdn.test/a.jpg",
                remote_public_id="tayvu/a",
            )
        )

    def test_autosave_creates_one_record_and_then_updates_it(self):
        self._fill()

        self.assertTrue(self.persistence.autosave())
        self.persistence.mutate(basic={"headline": "Beloved mother"})
        self.assertTrue(self.persistence.autosave())

        self.assertEqual(len(self.store.memorials), 1)
        record = next(iter(self.store.memorials.values()))
        self.assertEqual(record.user_id, "user-1")
        self.assertEqual(record.deceased_name, "Jane Doe")
        self.assertEqual(record.headline, "Beloved mother")
        self.assertTrue(record.is_draft)
        self.assertEqual(self.persistence.draft.id, record.id)
        self.assertEqual(self.persistence.cached_remote_id("user-1"), record.id)

        services = self.store.list_services(record.id)
        self.assertEqual([s.service_type for s in services], ["funeral"])
        self.assertEqual(services[0].service_date, date(2025, 1, 10))
        self.assertEqual(
            [m.cloudinary_public_id for m in self.store.list_moments(record.id)], ["tayvu/a"]
        )
        self.assertEqual(self.notifier.messages, [])

    def test_autosave_saves_a_sanitized_copy(self):
        self.persistence.mutate(basic={"first_name": "<b>Jane</b>", "last_name": "Doe"})
        self.persistence.autosave()

        record = next(iter(self.store.memorials.values()))
        self.assertEqual(record.first_name, "Jane")
        self.assertEqual(self.persistence.draft.basic.first_name, "<b>Jane</b>")

    def test_retry_after_a_child_failure_does_not_insert_twice(self):
        self._fill()
        store = MagicMock(wraps=self.store)
        store.replace_services.side_effect = [PersistenceFailure("down"), None]
        persistence = self._persistence(store)
        persistence.draft = self.persistence.draft

        self.assertFalse(persistence.autosave())
        self.assertTrue(persistence.autosave())

        store.insert_memorial.assert_called_once()
        store.update_memorial.assert_called_once()
        self.assertEqual(len(self.store.memorials), 1)

    def test_anonymous_autosave_keeps_the_draft_locally(self):
        self.session.sign_out()
        self._fill()

        self.assertFalse(self.persistence.autosave())

        self.assertEqual(self.store.memorials, {})
        self.assertEqual(self.notifier.at(Level.WARNING), [LOCAL_SAVE_MESSAGE])
        snapshot = json.loads(self.local.get(LOCAL_DRAFT_KEY))
        self.assertEqual(snapshot["saved_at"], 1000.0)
        self.assertEqual(snapshot["draft"]["basic"]["first_name"], "Jane")

    def test_store_failure_falls_back_without_raising(self):
        store = MagicMock()
        store.insert_memorial.side_effect = RuntimeError("socket closed")
        persistence = self._persistence(store)
        persistence.mutate(basic={"first_name": "Jane"})

        self.assertFalse(persistence.autosave())

        self.assertEqual(self.notifier.at(Level.WARNING), [LOCAL_SAVE_MESSAGE])
        self.assertIsNotNone(self.local.get(LOCAL_DRAFT_KEY))

    def test_hydrate_prefers_the_remote_draft(self):
        self._fill()
        self.persistence.autosave()
        memorial_id = self.persistence.draft.id
        local_draft = Draft()
        local_draft.basic.first_name = "Local"
        self.local.set(LOCAL_DRAFT_KEY, json.dumps({"saved_at": 1, "draft": local_draft.to_dict()}))

        draft = self._persistence(self.store).hydrate()

        self.assertEqual(draft.id, memorial_id)
        self.assertEqual(draft.basic.first_name, "Jane")
        self.assertEqual(draft.basic.birth_date, date(1950, 1, 1))
        self.assertEqual(draft.services[0].type, ServiceType.FUNERAL)
        self.assertEqual(draft.moments[0].remote_public_id, "tayvu/a")

    def test_hydrate_falls_back_to_the_local_snapshot(self):
        self.persistence.remember_remote_id("gone", "user-1")
        local_draft = Draft()
        local_draft.basic.first_name = "Local"
        self.local.set(LOCAL_DRAFT_KEY, json.dumps({"saved_at": 1, "draft": local_draft.to_dict()}))

        draft = self.persistence.hydrate()

        self.assertEqual(draft.basic.first_name, "Local")
        self.assertIsNone(self.local.get(LOCAL_DRAFT_ID_KEY))
        self.assertEqual(self.notifier.at(Level.INFO), [RESTORED_MESSAGE])

    def test_hydrate_survives_a_remote_error(self):
        store = MagicMock()
        store.get_memorial.side_effect = PersistenceFailure("down")
        self.persistence.remember_remote_id("m1", "user-1")

        draft = self._persistence(store).hydrate()

        self.assertEqual(draft, Draft())
        self.assertEqual(self.persistence.cached_remote_id("user-1"), "m1")

    def test_unreadable_snapshot_is_discarded(self):
        self.local.set(LOCAL_DRAFT_KEY, "{not json")
        self.assertIsNone(self.persistence.load_local_fallback())
        self.assertIsNone(self.local.get(LOCAL_DRAFT_KEY))

    def _snapshot(self, saved_at, user_id=None, memorial_id=None):
        draft = Draft(id=memorial_id)
        draft.basic.first_name = "Local"
        payload = {"saved_at": saved_at, "user_id": user_id, "draft": draft.to_dict()}
        self.local.set(LOCAL_DRAFT_KEY, json.dumps(payload))

    def test_snapshot_older_than_a_day_is_removed(self):
        self._snapshot(1000.0 - 24 * 60 * 60 - 1, "user-1")

        self.assertEqual(self.persistence.hydrate(), Draft())

        self.assertIsNone(self.local.get(LOCAL_DRAFT_KEY))
        self.assertEqual(self.notifier.messages, [])

    def test_snapshot_of_another_user_is_left_alone(self):
        self._snapshot(999.0, "user-2", "m-bob")

        self.assertIsNone(self.persistence.load_local_fallback("user-1"))
        self.assertIsNotNone(self.local.get(LOCAL_DRAFT_KEY))
        self.assertEqual(self.persistence.load_local_fallback("user-2").id, "m-bob")

    def test_anonymous_snapshot_is_adopted_without_its_id(self):
        self._snapshot(999.0, None, "m-old")

        draft = self.persistence.load_local_fallback("user-1")

        self.assertEqual(draft.basic.first_name, "Local")
        self.assertIsNone(draft.id)

    def test_cached_id_is_scoped_to_its_user(self):
        self.persistence.remember_remote_id("m1", "user-1")
        self.assertEqual(self.persistence.cached_remote_id("user-1"), "m1")
        self.assertIsNone(self.persistence.cached_remote_id("user-2"))
        self.assertIsNone(self.persistence.cached_remote_id(None))

        self.local.set(LOCAL_DRAFT_ID_KEY, "m1")
        self.assertIsNone(self.persistence.cached_remote_id("user-1"))
        self.assertIsNone(self.local.get(LOCAL_DRAFT_ID_KEY))

    def test_another_user_on_the_same_device_gets_a_fresh_record(self):
        self._fill()
        self.assertTrue(self.persistence.autosave())
        alice_id = self.persistence.draft.id

        self.session.sign_in(CurrentUser("user-2"), "token-2")
        bob = self._persistence(self.store)
        draft = bob.hydrate()

        self.assertIsNone(draft.id)
        self.assertEqual(draft.basic.first_name, "")
        bob.mutate(basic={"first_name": "John", "last_name": "Roe"})
        self.assertTrue(bob.autosave())

        self.assertNotEqual(bob.draft.id, alice_id)
        self.assertEqual(self.store.memorials[bob.draft.id].user_id, "user-2")
        self.assertEqual(self.store.memorials[alice_id].first_name, "Jane")
        self.assertEqual(bob.cached_remote_id("user-2"), bob.draft.id)
        self.assertIsNone(bob.cached_remote_id("user-1"))

    def test_update_of_a_foreign_or_deleted_record_inserts_instead(self):
        self._fill()
        self.persistence.autosave()
        alice_id = self.persistence.draft.id

        self.session.sign_in(CurrentUser("user-2"), "token-2")
        self.assertTrue(self.persistence.autosave())

        self.assertNotEqual(self.persistence.draft.id, alice_id)
        self.assertEqual(self.store.memorials[alice_id].user_id, "user-1")
        self.assertEqual(len(self.store.memorials), 2)

        del self.store.memorials[self.persistence.draft.id]
        self.assertTrue(self.persistence.autosave())
        self.assertEqual(len(self.store.memorials), 2)
        self.assertEqual(self.notifier.messages, [])

    def test_mutate_rejects_private_without_a_valid_password(self):
        with self.assertRaises(ValidationFailure) as ctx:
            self.persistence.mutate(settings={"privacy": "private", "password": "abc"})

        self.assertEqual(ctx.exception.field, "password")
        self.assertEqual(self.persistence.draft.settings.privacy, Privacy.PUBLIC)
        self.assertIsNone(self.persistence.draft.settings.password)

    def test_mutate_routes_privacy_through_the_draft(self):
        self.persistence.mutate(settings={"privacy": "private", "password": "secret1"})
        self.assertEqual(self.persistence.draft.settings.password, "secret1")

        self.persistence.mutate(settings={"privacy": "public"})
        self.assertEqual(self.persistence.draft.settings.privacy, Privacy.PUBLIC)
        self.assertIsNone(self.persistence.draft.settings.password)

    def test_mutate_rejects_unknown_names(self):
        with self.assertRaises(ValueError):
            self.persistence.mutate(biography={"x": 1})
        with self.assertRaises(ValueError):
            self.persistence.mutate(basic={"nickname": "JJ"})
        with self.assertRaises(ValueError):
            self.persistence.mutate(id="m1")

    def test_clear_markers(self):
        self.local.set(LOCAL_DRAFT_KEY, "{}")
        self.local.set(LOCAL_DRAFT_ID_KEY, "m1")
        self.persistence.clear_markers()
        self.assertEqual(self.local.items, {})


class AutosaveDebouncerTest(unittest.TestCase):

    def setUp(self):
        self.calls = []
        self.timers = []

        def factory(delay, function):
            timer = FakeTimer(delay, function)
            self.timers.append(timer)
            return timer

        self.debouncer = AutosaveDebouncer(
            lambda: self.calls.append("save"), delay=2.0, timer_factory=factory
        )

    def test_activity_restarts_the_timer(self):
        self.debouncer.touch()
        self.debouncer.touch()

        self.assertTrue(self.timers[0].cancelled)
        self.assertTrue(self.timers[1].started)
        self.assertEqual(self.timers[1].delay, 2.0)

        self.timers[0].fire()
        self.assertEqual(self.calls, [])
        self.timers[1].fire()
        self.assertEqual(self.calls, ["save"])
        self.assertFalse(self.debouncer.pending)

    def test_flush_runs_a_pending_save_now(self):
        self.assertFalse(self.debouncer.flush())
        self.debouncer.touch()
        self.assertTrue(self.debouncer.flush())
        self.assertEqual(self.calls, ["save"])
        self.assertTrue(self.timers[0].cancelled)

    def test_cancel_drops_the_pending_save(self):
        self.debouncer.touch()
        self.debouncer.cancel()
        self.timers[0].fire()
        self.assertEqual(self.calls, [])


class FileLocalStoreTest(unittest.TestCase):

    def test_values_survive_a_new_instance(self):
        with tempfile.TemporaryDirectory() as root:
            store = FileLocalStore(root)
            self.assertIsNone(store.get(LOCAL_DRAFT_KEY))
            store.set(LOCAL_DRAFT_KEY, '{"a": 1}')
            store.set("odd/key name", "x")

            reopened = FileLocalStore(root)
            self.assertEqual(reopened.get(LOCAL_DRAFT_KEY), '{"a": 1}')
            self.assertEqual(reopened.get("odd/key name"), "x")

            reopened.remove(LOCAL_DRAFT_KEY)
            reopened.remove(LOCAL_DRAFT_KEY)
            self.assertIsNone(store.get(LOCAL_DRAFT_KEY))


if __name__ == "__main__":
    unittest.main()
