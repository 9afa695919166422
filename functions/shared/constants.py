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

from datetime import date

# Free-text fields (names, captions, notes)
MAX_TEXT_LENGTH = 1000
# Obituary / life story HTML
MAX_RICH_TEXT_LENGTH = 50000
MIN_STORY_TEXT_LENGTH = 50

MIN_PASSWORD_LENGTH = 6
MIN_DATE = date(1850, 1, 1)
MAX_AGE_YEARS = 150

MAX_UPLOAD_BYTES = 50 * 1024 * 1024
ALLOWED_MEDIA_PREFIXES = ("image/", "video/")

REQUEST_TIMEOUT_SECONDS = 30
DEFAULT_UPLOAD_ATTEMPTS = 3
DEFAULT_DELETE_ATTEMPTS = 2
DEFAULT_PUBLISH_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 2.0

AUTOSAVE_DEBOUNCE_SECONDS = 2.0

LOCAL_DRAFT_KEY = "tayvu_memorial_draft"
LOCAL_DRAFT_ID_KEY = "tayvu_draft_memorial_id"
LOCAL_DRAFT_MAX_AGE_SECONDS = 24 * 60 * 60

CLOUDINARY_API_BASE = "https://api.cloudinary.com/v1_1"
ASSET_FOLDER_ROOT = "tayvu"
