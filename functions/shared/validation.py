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

import copy
from datetime import date
from typing import Optional

from shared import sanitizer
from shared.constants import (
    MAX_AGE_YEARS,
    MAX_RICH_TEXT_LENGTH,
    MIN_DATE,
    MIN_PASSWORD_LENGTH,
    MIN_STORY_TEXT_LENGTH,
)
from shared.errors import ValidationFailure
from shared.types import Draft, Privacy, Service


def parse_date(value, field: str) -> Optional[date]:
    """Accepts a date, an ISO "YYYY-MM-DD" string or an empty value."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationFailure(field, "Please enter a valid date") from None


def validate_dates(
    birth_date: Optional[date],
    death_date: Optional[date],
    *,
    today: Optional[date] = None,
    require_one: bool = True,
) -> None:
    """
    Checks the life dates of a memorial.

    Args:
        birth_date (date | None): Date of birth.
        death_date (date | None): Date of passing.
        today (date | None): Reference day, defaults to the current date.
        require_one (bool): Whether at least one of the dates must be present.

    Raises:
        ValidationFailure: Naming `birth_date`, `death_date` or `dates`.
    """
    today = today or date.today()
    if require_one and birth_date is None and death_date is None:
        raise ValidationFailure(
            "dates", "Please enter a date of birth or a date of passing"
        )

    if birth_date is not None:
        if birth_date < MIN_DATE:
            raise ValidationFailure("birth_date", "Date of birth cannot be before 1850")
        if birth_date > today:
            raise ValidationFailure(
                "birth_date", "Date of birth cannot be in the future"
            )

    if death_date is not None:
        if death_date < MIN_DATE:
            raise ValidationFailure(
                "death_date", "Date of passing cannot be before 1850"
            )
        if death_date > today:
            raise ValidationFailure(
                "death_date", "Date of passing cannot be in the future"
            )

    if birth_date is not None and death_date is not None:
        if death_date < birth_date:
            raise ValidationFailure(
                "death_date", "Date of passing cannot be before date of birth"
            )
        age_days = (death_date - birth_date).days
        if age_days / 365.25 > MAX_AGE_YEARS:
            raise ValidationFailure(
                "death_date", "Please verify the dates (age exceeds 150 years)"
            )


def validate_names(first_name: str, last_name: str) -> None:
    if not sanitizer.sanitize_plain_text(first_name):
        raise ValidationFailure("first_name", "Please enter a first name")
    if not sanitizer.sanitize_plain_text(last_name):
        raise ValidationFailure("last_name", "Please enter a last name")


def validate_privacy(privacy, password: Optional[str]) -> Privacy:
    try:
        privacy = Privacy(privacy)
    except ValueError:
        raise ValidationFailure(
            "privacy", "Privacy must be one of: public, unlisted, private"
        ) from None
    if privacy == Privacy.PRIVATE and len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationFailure(
            "password",
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.",
        )
    return privacy


def validate_story(html_value: str) -> None:
    if len(html_value or "") > MAX_RICH_TEXT_LENGTH:
        raise ValidationFailure(
            "obituary", "The obituary is too long. Please shorten it."
        )
    cleaned = sanitizer.sanitize_rich_text(html_value, sanitizer.OBITUARY)
    if len(sanitizer.html_to_text(cleaned)) < MIN_STORY_TEXT_LENGTH:
        raise ValidationFailure(
            "obituary",
            f"Please write at least {MIN_STORY_TEXT_LENGTH} characters for the obituary",
        )


def validate_service(service: Service, index: int) -> None:
    if service.is_virtual and not sanitizer.sanitize_url(service.virtual_url):
        raise ValidationFailure(
            f"services[{index}].virtual_url",
            "Please enter a valid link (http or https) for the virtual service",
        )


def validate_for_publish(draft: Draft, *, today: Optional[date] = None) -> None:
    """Local publish preconditions; the first violation wins."""
    if not sanitizer.sanitize_plain_text(draft.basic.display_name):
        raise ValidationFailure("name", "Please enter the name of your loved one")
    validate_dates(draft.basic.birth_date, draft.basic.death_date, today=today)
    validate_privacy(draft.settings.privacy, draft.settings.password)
    for index, service in enumerate(draft.services):
        validate_service(service, index)


def sanitize_draft(draft: Draft) -> Draft:
    """Returns a copy of the draft with every user-supplied string sanitized."""
    clean = copy.deepcopy(draft)
    text = sanitizer.sanitize_plain_text

    basic = clean.basic
    basic.first_name = text(basic.first_name)
    basic.middle_name = text(basic.middle_name) or None
    basic.last_name = text(basic.last_name)
    basic.full_name = text(basic.full_name) or basic.display_name
    basic.headline = text(basic.headline) or None
    basic.opening_statement = text(basic.opening_statement) or None
    basic.profile_photo_url = sanitizer.sanitize_url(basic.profile_photo_url) or None
    basic.background_photo_url = (
        sanitizer.sanitize_url(basic.background_photo_url) or None
    )

    clean.story.obituary_html = sanitizer.sanitize_rich_text(
        clean.story.obituary_html, sanitizer.OBITUARY
    )
    clean.story.life_story_html = sanitizer.sanitize_rich_text(
        clean.story.life_story_html, sanitizer.RICH_TEXT
    )

    for service in clean.services:
        service.time = text(service.time) or None
        service.location_name = text(service.location_name) or None
        service.address = text(service.address) or None
        service.additional_info = text(service.additional_info) or None
        service.virtual_url = sanitizer.sanitize_url(service.virtual_url) or None

    for moment in clean.moments:
        moment.caption = text(moment.caption) or None
        moment.file_name = text(moment.file_name) or None

    clean.additional_info = text(clean.additional_info)
    return clean
