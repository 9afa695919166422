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

import unittest
from datetime import date
from unittest.mock import MagicMock

from memorials import moments
from memorials.notifications import Level, RecordingNotifier
from shared.errors import UploadFailure, ValidationFailure
from shared.types import Draft, Moment, MomentType


def board(*names):
    return Draft(
        moments=[
            Moment(
                type=MomentType.PHOTO,
                file_name=name,
                remote_url=f"https://cdn.test/{name}",
                remote_public_id=f"tayvu/{name}",
            )
            for name in names
        ]
    )


def names(draft):
    return [m.file_name for m in draft.moments]


class MoveMomentTest(unittest.TestCase):

    def test_dropping_later_lands_before_the_slot(self):
        draft = board("a", "b", "c", "d")
        self.assertTrue(moments.move_moment(draft, 0, 2))
        self.assertEqual(names(draft), ["b", "a", "c", "d"])

    def test_dropping_at_the_end(self):
        draft = board("a", "b", "c")
        moments.move_moment(draft, 0, 3)
        self.assertEqual(names(draft), ["b", "c", "a"])

    def test_dropping_earlier(self):
        draft = board("a", "b", "c", "d")
        moments.move_moment(draft, 3, 1)
        self.assertEqual(names(draft), ["a", "d", "b", "c"])

    def test_noop_and_out_of_range(self):
        draft = board("a", "b")
        self.assertFalse(moments.move_moment(draft, 1, 1))
        self.assertFalse(moments.move_moment(draft, 5, 0))
        self.assertFalse(moments.move_moment(draft, 0, 9))
        self.assertEqual(names(draft), ["a", "b"])


class EditMomentTest(unittest.TestCase):

    def test_caption_is_sanitized(self):
        draft = board("a")
        self.assertTrue(moments.update_caption(draft, 0, "<b>Beach</b> <script>x()</script>day"))
        self.assertEqual(draft.moments[0].caption, "Beach day")

        moments.update_caption(draft, 0, "   ")
        self.assertIsNone(draft.moments[0].caption)
        self.assertFalse(moments.update_caption(draft, 3, "x"))

    def test_date_is_parsed(self):
        draft = board("a")
        moments.update_date(draft, 0, "1999-07-04")
        self.assertEqual(draft.moments[0].date_taken, date(1999, 7, 4))

        moments.update_date(draft, 0, "")
        self.assertIsNone(draft.moments[0].date_taken)

        with self.assertRaises(ValidationFailure):
            moments.update_date(draft, 0, "July 4th")


class RemoveMomentTest(unittest.TestCase):

    def test_remote_asset_is_deleted(self):
        draft = board("a", "b")
        client = MagicMock()

        removed = moments.remove_moment(draft, 0, client=client)

        self.assertEqual(removed.file_name, "a")
        self.assertEqual(names(draft), ["b"])
        client.delete.assert_called_once_with("tayvu/a", "image")

    def test_failed_delete_is_reported_and_the_moment_stays_removed(self):
        draft = board("a", "b")
        client = MagicMock()
        client.delete.side_effect = UploadFailure("Failed to delete", status_code=404)
        notifier = RecordingNotifier()

        moments.remove_moment(draft, 1, client=client, notifier=notifier)

        self.assertEqual(names(draft), ["a"])
        self.assertEqual(notifier.at(Level.ERROR), ["Failed to delete"])

    def test_without_a_client_only_the_board_changes(self):
        draft = board("a")
        self.assertIsNotNone(moments.remove_moment(draft, 0))
        self.assertEqual(draft.moments, [])
        self.assertIsNone(moments.remove_moment(draft, 0))


class CountsTest(unittest.TestCase):

    def test_counts_ignore_uploads_in_flight(self):
        draft = board("a", "b")
        draft.moments[1].type = MomentType.VIDEO
        draft.moments.append(Moment(type=MomentType.PHOTO, uploading=True))

        self.assertEqual(moments.counts(draft), {"moments": 2, "photos": 1, "videos": 1})
        self.assertEqual(moments.count_label(draft), "2 moments")
        self.assertEqual(moments.count_label(board("a")), "1 moment")


class MomentsForSaveTest(unittest.TestCase):

    def test_rows_follow_board_order_without_gaps(self):
        draft = board("a", "b", "c")
        draft.moments.insert(1, Moment(type=MomentType.PHOTO, uploading=True))
        draft.moments[2].caption = "Second"
        draft.moments[3].date_taken = date(2001, 1, 1)

        rows = moments.moments_for_save(draft)

        self.assertEqual([r.url for r in rows], [
            "https://cdn.test/a", "https://cdn.test/b", "https://cdn.test/c",
        ])
        self.assertEqual([r.display_order for r in rows], [0, 1, 2])
        self.assertEqual(rows[1].caption, "Second")
        self.assertEqual(rows[2].date_taken, date(2001, 1, 1))
        self.assertEqual(rows[0].cloudinary_public_id, "tayvu/a")
        self.assertEqual(rows[0].type, "photo")


if __name__ == "__main__":
    unittest.main()
