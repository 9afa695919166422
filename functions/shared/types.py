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

import datetime as dt
import json
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum, StrEnum
from typing import List, Optional

from dacite import Config, from_dict


class Privacy(StrEnum):
    PUBLIC = "public"
    UNLISTED = "unlisted"
    PRIVATE = "private"


class ServiceType(StrEnum):
    FUNERAL = "funeral"
    MEMORIAL = "memorial"
    CELEBRATION = "celebration"
    VISITATION = "visitation"
    BURIAL = "burial"
    RECEPTION = "reception"
    OTHER = "other"


class MomentType(StrEnum):
    PHOTO = "photo"
    VIDEO = "video"


class UploadState(StrEnum):
    QUEUED = "queued"
    UPLOADING = "uploading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class BasicInfo:
    full_name: str = ""
    first_name: str = ""
    middle_name: Optional[str] = None
    last_name: str = ""
    birth_date: Optional[dt.date] = None
    death_date: Optional[dt.date] = None
    headline: Optional[str] = None
    opening_statement: Optional[str] = None
    profile_photo_url: Optional[str] = None
    background_photo_url: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.full_name.strip():
            return self.full_name.strip()
        parts = [self.first_name, self.middle_name or "", self.last_name]
        return " ".join(p.strip() for p in parts if p and p.strip())


@dataclass
class Story:
    obituary_html: str = ""
    life_story_html: str = ""


@dataclass
class Service:
    type: ServiceType
    date: Optional[dt.date] = None
    time: Optional[str] = None
    location_name: Optional[str] = None
    address: Optional[str] = None
    additional_info: Optional[str] = None
    is_virtual: bool = False
    virtual_url: Optional[str] = None


@dataclass
class Moment:
    type: MomentType
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    remote_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    remote_public_id: Optional[str] = None
    resource_type: Optional[str] = None
    caption: Optional[str] = None
    date_taken: Optional[dt.date] = None
    file_name: Optional[str] = None
    uploading: bool = False
    # Transient local preview reference; only set while uploading.
    local_url: Optional[str] = None

    @property
    def preview_url(self) -> Optional[str]:
        return self.thumbnail_url or self.remote_url or self.local_url


@dataclass
class Settings:
    privacy: Privacy = Privacy.PUBLIC
    password: Optional[str] = None


@dataclass
class Draft:
    """The in-progress memorial edited by the wizard."""

    id: Optional[str] = None
    basic: BasicInfo = field(default_factory=BasicInfo)
    story: Story = field(default_factory=Story)
    services: List[Service] = field(default_factory=list)
    moments: List[Moment] = field(default_factory=list)
    settings: Settings = field(default_factory=Settings)
    additional_info: str = ""

    def set_privacy(self, privacy: Privacy | str, password: Optional[str] = None) -> None:
        """Switch privacy; leaving private always drops the stored password."""
        privacy = Privacy(privacy)
        self.settings.privacy = privacy
        self.settings.password = password if privacy == Privacy.PRIVATE else None

    def settled_moments(self) -> List[Moment]:
        return [m for m in self.moments if not m.uploading]

    def find_moment(self, moment_id: str) -> Optional[Moment]:
        for moment in self.moments:
            if moment.id == moment_id:
                return moment
        return None

    def to_dict(self) -> dict:
        # Round-trip through JSON so dates and enums become plain strings.
        return json.loads(json.dumps(asdict(self), default=str))

    @classmethod
    def from_dict(cls, data: dict) -> "Draft":
        draft = from_dict(data_class=cls, data=data, config=DACITE_CONFIG)
        # Local preview URLs never survive a reload.
        draft.moments = [m for m in draft.moments if not m.uploading]
        return draft


@dataclass
class AssetDescriptor:
    url: str
    public_id: str
    resource_type: str
    format: Optional[str] = None
    bytes: int = 0
    width: Optional[int] = None
    height: Optional[int] = None
    thumbnail_url: Optional[str] = None


@dataclass
class PublishedRecord:
    id: str
    slug: str
    is_published: bool = True


DACITE_CONFIG = Config(type_hooks={dt.date: dt.date.fromisoformat}, cast=[Enum])
