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
from typing import Optional

from backend.db import MomentRecord
from memorials.notifications import Notifier, report_error
from memorials.upload_client import AssetUploadClient
from shared import sanitizer
from shared.errors import MemorialError
from shared.types import Draft, Moment, MomentType
from shared.validation import parse_date

logger = logging.getLogger(__name__)


def move_moment(draft: Draft, from_index: int, drop_index: int) -> bool:
    """
    Moves a moment the way a drag-and-drop onto the slot at `drop_index` does.

    `drop_index` refers to positions before the dragged item is lifted, so
    dropping onto a later slot lands one position earlier than the slot.
    """
    moments = draft.moments
    if from_index == drop_index:
        return False
    if not (0 <= from_index < len(moments)) or not (0 <= drop_index <= len(moments)):
        return False
    dragged = moments.pop(from_index)
    if from_index < drop_index:
        moments.insert(drop_index - 1, dragged)
    else:
        moments.insert(drop_index, dragged)
    return True


def _moment_at(draft: Draft, index: int) -> Optional[Moment]:
    if 0 <= index < len(draft.moments):
        return draft.moments[index]
    return None


def update_caption(draft: Draft, index: int, caption: str) -> bool:
    moment = _moment_at(draft, index)
    if moment is None:
        return False
    moment.caption = sanitizer.sanitize_plain_text(caption) or None
    return True


def update_date(draft: Draft, index: int, value) -> bool:
    moment = _moment_at(draft, index)
    if moment is None:
        return False
    moment.date_taken = parse_date(value, "date_taken")
    return True


def remove_moment(
    draft: Draft,
    index: int,
    *,
    client: Optional[AssetUploadClient] = None,
    notifier: Optional[Notifier] = None,
) -> Optional[Moment]:
    """
    Removes a moment from the board.

    With a client the remote asset is deleted too. A failed delete is
    reported, and the moment stays off the board.
    """
    moment = _moment_at(draft, index)
    if moment is None:
        return None
    del draft.moments[index]

    if client is not None and moment.remote_public_id:
        try:
            client.delete(moment.remote_public_id, moment.resource_type or "image")
        except MemorialError as e:
            if notifier is not None:
                report_error(notifier, e, "remove moment")
            else:
                logger.warning("Could not delete asset %s: %s", moment.remote_public_id, e)
    return moment


def counts(draft: Draft) -> dict[str, int]:
    settled = draft.settled_moments()
    return {
        "moments": len(settled),
        "photos": sum(1 for m in settled if m.type == MomentType.PHOTO),
        "videos": sum(1 for m in settled if m.type == MomentType.VIDEO),
    }


def count_label(draft: Draft) -> str:
    n = counts(draft)["moments"]
    return f"{n} {'moment' if n == 1 else 'moments'}"


def moments_for_save(draft: Draft) -> list[MomentRecord]:
    """Rows for the moments collection, in board order, without uploads in flight."""
    saved = [m for m in draft.settled_moments() if m.remote_url]
    return [
        MomentRecord(
            type=moment.type.value,
            url=moment.remote_url,
            thumbnail_url=moment.thumbnail_url,
            cloudinary_public_id=moment.remote_public_id,
            caption=moment.caption,
            date_taken=moment.date_taken,
            display_order=order,
        )
        for order, moment in enumerate(saved)
    ]
