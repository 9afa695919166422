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
import logging
import threading
import time
from dataclasses import fields, is_dataclass
from typing import Callable, Optional

from dacite import DaciteError, from_dict

from backend.db import MemorialRecord, MemorialStore, MomentRecord, ServiceRecord
from memorials.local_store import LocalStore
from memorials.moments import moments_for_save
from memorials.notifications import Level, Notifier, notify_safely
from memorials.session import CurrentUser, SessionProvider
from shared.constants import (
    AUTOSAVE_DEBOUNCE_SECONDS,
    LOCAL_DRAFT_ID_KEY,
    LOCAL_DRAFT_KEY,
    LOCAL_DRAFT_MAX_AGE_SECONDS,
)
from shared.errors import AuthorizationFailure, MemorialError, NotFoundFailure
from shared.types import (
    DACITE_CONFIG,
    Draft,
    Moment,
    MomentType,
    Service,
    ServiceType,
)
from shared.validation import parse_date, sanitize_draft, validate_privacy

logger = logging.getLogger(__name__)

LOCAL_SAVE_MESSAGE = "Draft saved on this device. We'll save it online when the connection is back."
RESTORED_MESSAGE = "Draft restored from previous session"

_DATE_FIELDS = {"birth_date", "death_date", "date", "date_taken"}


def memorial_values(draft: Draft) -> dict:
    """Parent-record columns for a (sanitized) draft."""
    basic = draft.basic
    return {
        "deceased_name": basic.display_name,
        "first_name": basic.first_name,
        "middle_name": basic.middle_name,
        "last_name": basic.last_name,
        "birth_date": basic.birth_date,
        "death_date": basic.death_date,
        "headline": basic.headline,
        "opening_statement": basic.opening_statement,
        "obituary": draft.story.obituary_html,
        "life_story": draft.story.life_story_html,
        "profile_photo_url": basic.profile_photo_url,
        "background_photo_url": basic.background_photo_url,
        "additional_info": draft.additional_info,
        "privacy_setting": draft.settings.privacy.value,
        "access_password": draft.settings.password,
    }


def service_records(draft: Draft) -> list[ServiceRecord]:
    return [
        ServiceRecord(
            service_type=service.type.value,
            service_date=service.date,
            service_time=service.time,
            location_name=service.location_name,
            address=service.address,
            additional_info=service.additional_info,
            is_virtual=service.is_virtual,
            virtual_link=service.virtual_url,
            display_order=order,
        )
        for order, service in enumerate(draft.services)
    ]


def draft_from_records(
    record: MemorialRecord,
    services: list[ServiceRecord],
    moments: list[MomentRecord],
) -> Draft:
    draft = Draft(id=record.id, additional_info=record.additional_info or "")
    basic = draft.basic
    basic.full_name = record.deceased_name or ""
    basic.first_name = record.first_name or ""
    basic.middle_name = record.middle_name
    basic.last_name = record.last_name or ""
    basic.birth_date = record.birth_date
    basic.death_date = record.death_date
    basic.headline = record.headline
    basic.opening_statement = record.opening_statement
    basic.profile_photo_url = record.profile_photo_url
    basic.background_photo_url = record.background_photo_url
    draft.story.obituary_html = record.obituary or ""
    draft.story.life_story_html = record.life_story or ""
    draft.set_privacy(record.privacy_setting or "public", record.access_password)

    for row in services:
        try:
            service_type = ServiceType(row.service_type)
        except ValueError:
            service_type = ServiceType.OTHER
        draft.services.append(
            Service(
                type=service_type,
                date=row.service_date,
                time=row.service_time,
                location_name=row.location_name,
                address=row.address,
                additional_info=row.additional_info,
                is_virtual=row.is_virtual,
                virtual_url=row.virtual_link,
            )
        )

    for row in moments:
        moment_type = MomentType.VIDEO if row.type == MomentType.VIDEO else MomentType.PHOTO
        draft.moments.append(
            Moment(
                type=moment_type,
                remote_url=row.url,
                thumbnail_url=row.thumbnail_url,
                remote_public_id=row.cloudinary_public_id,
                resource_type="video" if moment_type == MomentType.VIDEO else "image",
                caption=row.caption,
                date_taken=row.date_taken,
            )
        )
    return draft


def _coerce_item(cls, item):
    if isinstance(item, cls):
        return item
    return from_dict(data_class=cls, data=item, config=DACITE_CONFIG)


class DraftPersistence:
    """
    Owns the draft being edited and keeps it saved.

    Remote saves go to the memorial store under the signed-in user; when that
    is not possible the draft is kept in the local store so nothing typed is
    lost. The remote id of the draft is cached locally so a reload resumes the
    same record.
    """

    def __init__(
        self,
        store: MemorialStore,
        local_store: LocalStore,
        session: SessionProvider,
        notifier: Notifier,
        *,
        draft: Optional[Draft] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.local_store = local_store
        self.session = session
        self.notifier = notifier
        self.draft = draft or Draft()
        self.clock = clock
        self._lock = threading.Lock()

    # Markers ---------------------------------------------------------------

    def _current_user_id(self) -> Optional[str]:
        user = self.session.get_current_user()
        return user.id if user else None

    def cached_remote_id(self, owner_id: Optional[str]) -> Optional[str]:
        """The cached draft id, only when it was cached for `owner_id`."""
        raw = self.local_store.get(LOCAL_DRAFT_ID_KEY)
        if not raw or owner_id is None:
            return None
        try:
            marker = json.loads(raw)
            if marker["user_id"] != owner_id:
                return None
            return marker["memorial_id"] or None
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding unreadable cached draft id")
            self.forget_remote_id()
            return None

    def remember_remote_id(self, memorial_id: str, owner_id: str) -> None:
        marker = {"user_id": owner_id, "memorial_id": memorial_id}
        self.local_store.set(LOCAL_DRAFT_ID_KEY, json.dumps(marker))

    def forget_remote_id(self) -> None:
        self.local_store.remove(LOCAL_DRAFT_ID_KEY)

    def save_local_fallback(self) -> None:
        payload = {
            "saved_at": self.clock(),
            "user_id": self._current_user_id(),
            "draft": self.draft.to_dict(),
        }
        self.local_store.set(LOCAL_DRAFT_KEY, json.dumps(payload))
        logger.debug("Draft snapshot written to local store")

    def load_local_fallback(self, owner_id: Optional[str] = None) -> Optional[Draft]:
        """
        Reads the local snapshot for `owner_id`.

        Snapshots older than a day are removed. A snapshot written by another
        signed-in user is left alone and not returned. An anonymous snapshot
        can be adopted, but without its remote id.
        """
        raw = self.local_store.get(LOCAL_DRAFT_KEY)
        if not raw:
            return None
        try:
            payload = json.loads(raw)
            saved_at = float(payload.get("saved_at") or 0)
            snapshot_owner = payload.get("user_id")
            draft = Draft.from_dict(payload["draft"])
        except (ValueError, KeyError, TypeError, AttributeError, DaciteError):
            logger.warning("Discarding unreadable local draft snapshot", exc_info=True)
            self.local_store.remove(LOCAL_DRAFT_KEY)
            return None

        if self.clock() - saved_at > LOCAL_DRAFT_MAX_AGE_SECONDS:
            logger.info("Discarding local draft snapshot older than a day")
            self.local_store.remove(LOCAL_DRAFT_KEY)
            return None
        if snapshot_owner is not None and snapshot_owner != owner_id:
            logger.info("Ignoring local draft snapshot of another user")
            return None
        if snapshot_owner is None:
            draft.id = None
        return draft

    def clear_markers(self) -> None:
        self.local_store.remove(LOCAL_DRAFT_KEY)
        self.forget_remote_id()

    # Loading ---------------------------------------------------------------

    def hydrate(self) -> Draft:
        """Loads the remote draft, else the local snapshot, else a new draft."""
        draft = None
        stale_id = None
        owner_id = self._current_user_id()
        remote_id = self.cached_remote_id(owner_id)
        if remote_id:
            try:
                draft = self._load_remote(owner_id, remote_id)
            except MemorialError as e:
                logger.warning("Could not load draft %s, using local copy: %s", remote_id, e)
            else:
                if draft is None:
                    logger.info("Draft %s is gone or not owned; forgetting it", remote_id)
                    stale_id = remote_id
                    self.forget_remote_id()

        if draft is None:
            draft = self.load_local_fallback(owner_id)
            if draft is not None:
                if stale_id is not None and draft.id == stale_id:
                    draft.id = None
                notify_safely(self.notifier, RESTORED_MESSAGE, Level.INFO)
        if draft is None:
            draft = Draft()

        self.draft = draft
        logger.info("Hydrated draft (remote id: %s)", draft.id)
        return draft

    def _load_remote(self, owner_id: str, memorial_id: str) -> Optional[Draft]:
        record = self.store.get_memorial(owner_id, memorial_id)
        if record is None:
            return None
        return draft_from_records(
            record,
            self.store.list_services(memorial_id),
            self.store.list_moments(memorial_id),
        )

    # Editing ---------------------------------------------------------------

    def mutate(self, **sections) -> Draft:
        """
        Applies a patch to the draft.

        A mapping is merged field by field into its section, a list replaces
        the section, and anything else replaces a plain attribute. Privacy
        changes are validated before `Draft.set_privacy`; a rejected one
        raises ValidationFailure and leaves the settings untouched.
        """
        draft = self.draft
        for name, value in sections.items():
            if name not in {f.name for f in fields(Draft)} or name == "id":
                raise ValueError(f"Unknown draft section: {name}")
            if name == "settings" and isinstance(value, dict):
                settings = draft.settings
                privacy = value.get("privacy", settings.privacy)
                password = value.get("password", settings.password)
                draft.set_privacy(validate_privacy(privacy, password), password)
            elif isinstance(value, dict):
                section = getattr(draft, name)
                if not is_dataclass(section):
                    raise ValueError(f"Section {name} cannot be merged")
                known = {f.name for f in fields(section)}
                for key, item in value.items():
                    if key not in known:
                        raise ValueError(f"Unknown field {name}.{key}")
                    if key in _DATE_FIELDS:
                        item = parse_date(item, key)
                    setattr(section, key, item)
            elif name == "services":
                draft.services = [_coerce_item(Service, s) for s in value]
            elif name == "moments":
                draft.moments = [_coerce_item(Moment, m) for m in value]
            else:
                setattr(draft, name, value)
        return draft

    # Saving ----------------------------------------------------------------

    def _require_user(self) -> CurrentUser:
        user = self.session.get_current_user()
        if user is None:
            raise AuthorizationFailure("Sign in to save your memorial online.")
        return user

    def upsert(
        self, owner_id: str, draft: Draft, extra: Optional[dict] = None
    ) -> MemorialRecord:
        """
        Writes the parent record: update when an id is known, else insert.

        A newly created id is cached at once, so a retried call updates the
        same record instead of inserting a second one. An id that is gone or
        belongs to someone else is forgotten and a new record is created.
        """
        values = {**memorial_values(draft), **(extra or {})}
        memorial_id = draft.id or self.draft.id or self.cached_remote_id(owner_id)
        record = None
        if memorial_id:
            try:
                record = self.store.update_memorial(owner_id, memorial_id, values)
            except (AuthorizationFailure, NotFoundFailure) as e:
                logger.warning(
                    "Memorial %s cannot be updated by %s, creating a new one: %s",
                    memorial_id,
                    owner_id,
                    e,
                )
                self.forget_remote_id()
        if record is None:
            values.setdefault("is_draft", True)
            record = self.store.insert_memorial(owner_id, values)
            logger.info("Created memorial draft %s", record.id)
        draft.id = record.id
        self.draft.id = record.id
        self.remember_remote_id(record.id, owner_id)
        return record

    def save_children(self, owner_id: str, memorial_id: str, draft: Draft) -> None:
        self.store.replace_services(owner_id, memorial_id, service_records(draft))
        self.store.replace_moments(owner_id, memorial_id, moments_for_save(draft))

    def autosave(self) -> bool:
        """
        Saves the draft remotely, falling back to the local store.

        Returns:
            bool: True when the remote save succeeded. Never raises.
        """
        with self._lock:
            try:
                user = self._require_user()
                clean = sanitize_draft(self.draft)
                record = self.upsert(user.id, clean)
                self.save_children(user.id, record.id, clean)
                self.save_local_fallback()
            except Exception as e:
                if isinstance(e, MemorialError):
                    logger.warning("Autosave failed, keeping draft locally: %s", e)
                else:
                    logger.exception("Unexpected autosave failure")
                self._save_local_quietly()
                notify_safely(self.notifier, LOCAL_SAVE_MESSAGE, Level.WARNING)
                return False
        logger.info("Autosaved draft %s", record.id)
        return True

    def _save_local_quietly(self) -> None:
        try:
            self.save_local_fallback()
        except Exception:
            logger.exception("Local draft snapshot failed too")


class AutosaveDebouncer:
    """Runs `callback` once activity has been quiet for `delay` seconds."""

    def __init__(
        self,
        callback: Callable[[], object],
        delay: float = AUTOSAVE_DEBOUNCE_SECONDS,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        self.callback = callback
        self.delay = delay
        self.timer_factory = timer_factory
        self._timer = None
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def touch(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = self.timer_factory(self.delay, lambda: self._fire(timer))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _fire(self, timer) -> None:
        with self._lock:
            if self._timer is not timer:
                return
            self._timer = None
        self.callback()

    def flush(self) -> bool:
        """Runs a pending callback now; returns whether one was pending."""
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is None:
            return False
        timer.cancel()
        self.callback()
        return True

    def cancel(self) -> None:
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
