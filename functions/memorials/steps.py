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

"""The steps of the memorial wizard.

Each step owns a flat form (a dict of field values). `validate` checks the
form against the draft and raises `ValidationFailure`; `collect` copies the
form into the draft; `on_enter` runs when the wizard arrives at the step.
"""

import re
from dataclasses import asdict
from typing import TYPE_CHECKING, Optional

from memorials.persistence import DraftPersistence
from shared import sanitizer
from shared.errors import ValidationFailure
from shared.types import Draft, Service, ServiceType
from shared.validation import (
    parse_date,
    validate_dates,
    validate_names,
    validate_privacy,
    validate_service,
    validate_story,
)

if TYPE_CHECKING:
    from memorials.wizard import Wizard

_SCRIPT_LIKE = re.compile(r"<script|javascript:", re.IGNORECASE)

BASIC_FIELDS = (
    "first_name",
    "middle_name",
    "last_name",
    "birth_date",
    "death_date",
    "headline",
    "opening_statement",
    "profile_photo_url",
    "background_photo_url",
)


def clean_story_html(value: Optional[str]) -> str:
    """Editor HTML as it may be kept on the draft and in local snapshots."""
    return sanitizer.sanitize_rich_text(value, sanitizer.OBITUARY)


class WizardStep:
    name = "step"
    title = ""
    optional = False

    def form_from_draft(self, draft: Draft) -> dict:
        return {}

    def validate(self, form: dict, draft: Draft) -> None:
        pass

    def collect(self, form: dict, persistence: DraftPersistence) -> None:
        pass

    def on_enter(self, wizard: "Wizard") -> None:
        pass


class BasicInfoStep(WizardStep):
    name = "basic"
    title = "Basic information"

    def form_from_draft(self, draft: Draft) -> dict:
        return {key: getattr(draft.basic, key) for key in BASIC_FIELDS}

    def validate(self, form: dict, draft: Draft) -> None:
        validate_names(form.get("first_name", ""), form.get("last_name", ""))
        validate_dates(
            parse_date(form.get("birth_date"), "birth_date"),
            parse_date(form.get("death_date"), "death_date"),
        )

    def collect(self, form: dict, persistence: DraftPersistence) -> None:
        basic = {key: form[key] for key in BASIC_FIELDS if key in form}
        # Derived from the parts again on every collect.
        basic["full_name"] = ""
        persistence.mutate(basic=basic)


class StoryStep(WizardStep):
    name = "story"
    title = "Life story"

    def form_from_draft(self, draft: Draft) -> dict:
        return {
            "obituary_html": draft.story.obituary_html,
            "life_story_html": draft.story.life_story_html,
        }

    def validate(self, form: dict, draft: Draft) -> None:
        raw = form.get("obituary_html") or ""
        if _SCRIPT_LIKE.search(raw):
            raise ValidationFailure("obituary", "Invalid content detected.")
        validate_story(raw)

    def collect(self, form: dict, persistence: DraftPersistence) -> None:
        persistence.mutate(
            story={
                "obituary_html": clean_story_html(form.get("obituary_html")),
                "life_story_html": sanitizer.sanitize_rich_text(
                    form.get("life_story_html"), sanitizer.RICH_TEXT
                ),
            }
        )

    def on_enter(self, wizard: "Wizard") -> None:
        wizard.start_autosave()


def _service_from_form(item, index: int) -> Optional[Service]:
    if isinstance(item, Service):
        return item
    values = dict(item)
    if not any(values.values()):
        return None
    try:
        service_type = ServiceType(values.get("type") or "")
    except ValueError:
        raise ValidationFailure(
            f"services[{index}].type", "Please choose a service type"
        ) from None
    return Service(
        type=service_type,
        date=parse_date(values.get("date"), f"services[{index}].date"),
        time=values.get("time") or None,
        location_name=values.get("location_name") or None,
        address=values.get("address") or None,
        additional_info=values.get("additional_info") or None,
        is_virtual=bool(values.get("is_virtual")),
        virtual_url=values.get("virtual_url") or None,
    )


def services_from_form(form: dict) -> list[Service]:
    services = []
    for index, item in enumerate(form.get("services") or []):
        service = _service_from_form(item, index)
        if service is not None:
            services.append(service)
    return services


class ServicesStep(WizardStep):
    name = "services"
    title = "Services"
    optional = True

    def form_from_draft(self, draft: Draft) -> dict:
        return {
            "services": [asdict(s) for s in draft.services],
            "additional_info": draft.additional_info,
        }

    def validate(self, form: dict, draft: Draft) -> None:
        for index, service in enumerate(services_from_form(form)):
            validate_service(service, index)

    def collect(self, form: dict, persistence: DraftPersistence) -> None:
        persistence.mutate(
            services=services_from_form(form),
            additional_info=form.get("additional_info") or "",
        )


class MomentsStep(WizardStep):
    """Moments live on the draft itself; the upload queue fills them in."""

    name = "moments"
    title = "Moments"
    optional = True


class SettingsStep(WizardStep):
    name = "settings"
    title = "Settings & preview"

    def form_from_draft(self, draft: Draft) -> dict:
        return {
            "privacy": draft.settings.privacy.value,
            "password": draft.settings.password,
        }

    def validate(self, form: dict, draft: Draft) -> None:
        validate_privacy(form.get("privacy"), form.get("password"))

    def collect(self, form: dict, persistence: DraftPersistence) -> None:
        persistence.mutate(
            settings={
                "privacy": form.get("privacy") or persistence.draft.settings.privacy,
                "password": form.get("password"),
            }
        )

    def on_enter(self, wizard: "Wizard") -> None:
        wizard.render_preview()


def default_steps() -> list[WizardStep]:
    return [
        BasicInfoStep(),
        StoryStep(),
        ServicesStep(),
        MomentsStep(),
        SettingsStep(),
    ]
