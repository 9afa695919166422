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
import mimetypes
import os
import time
from dataclasses import dataclass
from typing import Callable, Optional

import requests

from memorials.retry import RetryPolicy, call_with_retry
from memorials.session import SessionProvider
from shared.constants import (
    ALLOWED_MEDIA_PREFIXES,
    CLOUDINARY_API_BASE,
    DEFAULT_DELETE_ATTEMPTS,
    MAX_UPLOAD_BYTES,
    REQUEST_TIMEOUT_SECONDS,
)
from shared.errors import (
    AuthorizationFailure,
    TimeoutFailure,
    UploadFailure,
    ValidationFailure,
)
from shared.types import AssetDescriptor

logger = logging.getLogger(__name__)

TRANSFORMATIONS = {
    "thumbnail": "c_thumb,w_150,h_150,g_face",
    "profilePhoto": "c_fill,w_400,h_400,g_face,q_auto",
    "backgroundImage": "c_fill,w_1600,h_600,q_auto",
    "momentPhoto": "c_limit,w_1200,h_1200,q_auto",
    "momentThumbnail": "c_fill,w_300,h_300,q_auto",
}


def transformed_url(url: Optional[str], transformation: Optional[str]) -> Optional[str]:
    """
    Applies a named (or literal) transformation to a delivery URL.

    This is a string substitution into the URL path, not a network call.
    """
    if not url or not transformation:
        return url
    transformation = TRANSFORMATIONS.get(transformation, transformation)
    return url.replace("/upload/", f"/upload/{transformation}/", 1)


@dataclass
class MediaFile:
    """A file picked by the user, held in memory until it is uploaded."""

    name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def is_video(self) -> bool:
        return self.content_type.startswith("video/")

    @classmethod
    def from_path(cls, path: str, content_type: Optional[str] = None) -> "MediaFile":
        guessed, _ = mimetypes.guess_type(path)
        with open(path, "rb") as f:
            data = f.read()
        return cls(
            name=os.path.basename(path),
            content_type=content_type or guessed or "application/octet-stream",
            data=data,
        )


@dataclass
class UploadOptions:
    folder: str = "tayvu/drafts/anonymous/moments"
    tags: tuple[str, ...] = ()
    max_size_bytes: int = MAX_UPLOAD_BYTES
    allowed_type_prefixes: tuple[str, ...] = ALLOWED_MEDIA_PREFIXES


def _error_reason(response) -> str:
    try:
        payload = response.json()
        message = (payload.get("error") or {}).get("message")
        if message:
            return message
    except (ValueError, AttributeError):
        pass
    return getattr(response, "reason", None) or f"HTTP {response.status_code}"


class AssetUploadClient:
    """Uploads media to a Cloudinary-compatible asset store with unsigned presets."""

    def __init__(
        self,
        cloud_name: str,
        upload_preset: str,
        *,
        delete_endpoint: Optional[str] = None,
        session_provider: Optional[SessionProvider] = None,
        http: Optional[requests.Session] = None,
        retry_policy: RetryPolicy = RetryPolicy(),
        delete_retry_policy: RetryPolicy = RetryPolicy(attempts=DEFAULT_DELETE_ATTEMPTS),
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        thumbnail_transformation: str = "momentThumbnail",
    ):
        self.cloud_name = cloud_name
        self.upload_preset = upload_preset
        self.delete_endpoint = delete_endpoint
        self.session_provider = session_provider
        self.http = http or requests.Session()
        self.retry_policy = retry_policy
        self.delete_retry_policy = delete_retry_policy
        self.timeout = timeout
        self.sleep = sleep
        self.thumbnail_transformation = thumbnail_transformation

    def upload_url(self, resource_type: str) -> str:
        return f"{CLOUDINARY_API_BASE}/{self.cloud_name}/{resource_type}/upload"

    def validate(self, file: MediaFile, options: UploadOptions) -> None:
        if not any(file.content_type.startswith(p) for p in options.allowed_type_prefixes):
            raise ValidationFailure("file", f"{file.name} is not an image or video")
        if file.size > options.max_size_bytes:
            max_mb = options.max_size_bytes // (1024 * 1024)
            raise ValidationFailure("file", f"{file.name} is too large (max {max_mb}MB)")

    def upload(
        self,
        file: MediaFile,
        options: Optional[UploadOptions] = None,
        *,
        on_attempt: Optional[Callable[[int], None]] = None,
    ) -> AssetDescriptor:
        """
        Uploads one file, retrying transport errors and 5xx responses.

        Raises:
            ValidationFailure: The file is too large or of the wrong type.
            UploadFailure: The store rejected the file or retries ran out.
            TimeoutFailure: The last attempt timed out.
        """
        options = options or UploadOptions()
        self.validate(file, options)
        endpoint = self.upload_url("video" if file.is_video else "image")
        descriptor = call_with_retry(
            lambda: self._post_upload(file, options, endpoint),
            self.retry_policy,
            sleep=self.sleep,
            on_attempt=on_attempt,
        )
        logger.info("Uploaded %s as %s", file.name, descriptor.public_id)
        return descriptor

    def _post_upload(
        self, file: MediaFile, options: UploadOptions, endpoint: str
    ) -> AssetDescriptor:
        form = {"upload_preset": self.upload_preset, "folder": options.folder}
        if options.tags:
            form["tags"] = ",".join(options.tags)
        try:
            response = self.http.post(
                endpoint,
                data=form,
                files={"file": (file.name, file.data, file.content_type)},
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise TimeoutFailure() from exc
        except requests.RequestException as exc:
            raise UploadFailure(
                f"Failed to upload {file.name}: {exc}",
                retryable=True,
                file_name=file.name,
            ) from exc

        if response.status_code >= 400:
            raise UploadFailure(
                f"Failed to upload {file.name}: {_error_reason(response)}",
                status_code=response.status_code,
                retryable=response.status_code >= 500,
                file_name=file.name,
            )

        try:
            return self._to_descriptor(response.json(), file)
        except (ValueError, KeyError, TypeError) as exc:
            raise UploadFailure(
                f"Failed to upload {file.name}: unexpected response from asset store",
                status_code=response.status_code,
                retryable=True,
                file_name=file.name,
            ) from exc

    def _to_descriptor(self, payload: dict, file: MediaFile) -> AssetDescriptor:
        url = payload["secure_url"]
        resource_type = payload.get("resource_type") or (
            "video" if file.is_video else "image"
        )
        thumbnail_url = None
        if resource_type == "video":
            thumbnail_url = payload.get("thumbnail_url")
        if not thumbnail_url:
            thumbnail_url = transformed_url(url, self.thumbnail_transformation)
        return AssetDescriptor(
            url=url,
            public_id=payload["public_id"],
            resource_type=resource_type,
            format=payload.get("format"),
            bytes=payload.get("bytes") or file.size,
            width=payload.get("width"),
            height=payload.get("height"),
            thumbnail_url=thumbnail_url,
        )

    def delete(self, public_id: str, resource_type: str = "image") -> dict:
        """Asks the backend proxy to delete an asset the current user owns."""
        if not self.delete_endpoint:
            raise UploadFailure("Asset deletion is not configured")
        token = self.session_provider.get_access_token() if self.session_provider else None
        if not token:
            raise AuthorizationFailure("Please sign in to remove photos and videos.")

        def _call() -> dict:
            try:
                response = self.http.post(
                    self.delete_endpoint,
                    json={"publicId": public_id, "resourceType": resource_type},
                    headers={"Authorization": f"Bearer {token}"},
                    timeout=self.timeout,
                )
            except requests.Timeout as exc:
                raise TimeoutFailure() from exc
            except requests.RequestException as exc:
                raise UploadFailure(
                    f"Failed to delete {public_id}: {exc}", retryable=True
                ) from exc
            if response.status_code == 401:
                raise AuthorizationFailure(
                    "You need to be logged in to perform this action."
                )
            if response.status_code == 403:
                raise AuthorizationFailure(
                    "You don't have permission to perform this action."
                )
            if response.status_code >= 400:
                raise UploadFailure(
                    f"Failed to delete {public_id}: {_error_reason(response)}",
                    status_code=response.status_code,
                    retryable=response.status_code >= 500,
                )
            try:
                return response.json()
            except ValueError:
                return {}

        result = call_with_retry(_call, self.delete_retry_policy, sleep=self.sleep)
        logger.info("Deleted asset %s", public_id)
        return result
