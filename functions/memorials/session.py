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

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: Optional[str] = None


class SessionProvider(Protocol):
    """Read-only view of the auth session; sign-in itself lives elsewhere."""

    def get_current_user(self) -> Optional[CurrentUser]:
        ...

    def get_access_token(self) -> Optional[str]:
        ...


@dataclass
class StaticSessionProvider:
    """Session holder for local runs and tests."""

    user: Optional[CurrentUser] = None
    access_token: Optional[str] = None

    def get_current_user(self) -> Optional[CurrentUser]:
        return self.user

    def get_access_token(self) -> Optional[str]:
        return self.access_token if self.user else None

    def sign_in(self, user: CurrentUser, access_token: Optional[str] = None) -> None:
        self.user = user
        self.access_token = access_token

    def sign_out(self) -> None:
        self.user = None
        self.access_token = None
