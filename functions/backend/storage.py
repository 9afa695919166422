"""
Asset store administration (Cloudinary signed API) and an in-memory test double.
"""

from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol

import requests

from shared.constants import CLOUDINARY_API_BASE, REQUEST_TIMEOUT_SECONDS
from shared.errors import UploadFailure


class AssetAdminClient(Protocol):
    """Operations the API needs from the asset store with admin credentials."""

    def destroy(self, public_id: str, resource_type: str = "image") -> dict:
        ...


@dataclass
class InMemoryAssetAdminClient:
    """Test double that records destroyed assets."""

    assets: set = field(default_factory=set)
    destroyed: list = field(default_factory=list)

    def destroy(self, public_id: str, resource_type: str = "image") -> dict:
        self.destroyed.append((public_id, resource_type))
        if public_id in self.assets:
            self.assets.discard(public_id)
            return {"result": "ok"}
        return {"result": "not found"}


def sign_params(params: dict, api_secret: str) -> str:
    """Cloudinary request signature: sorted `k=v` pairs joined by `&`, plus the secret."""
    payload = "&".join(f"{key}={params[key]}" for key in sorted(params))
    return hashlib.sha1(f"{payload}{api_secret}".encode("utf-8")).hexdigest()


@dataclass
class CloudinaryAdminClient:
    """
    Signed Cloudinary REST client. Only the destroy call is needed.
    """

    cloud_name: str
    api_key: str
    api_secret: str
    timeout: float = REQUEST_TIMEOUT_SECONDS
    http: requests.Session = field(default_factory=requests.Session)
    clock: Callable[[], float] = time.time

    def destroy(self, public_id: str, resource_type: str = "image") -> dict:
        params = {"public_id": public_id, "timestamp": int(self.clock())}
        data = {
            **params,
            "api_key": self.api_key,
            "signature": sign_params(params, self.api_secret),
        }
        url = f"{CLOUDINARY_API_BASE}/{self.cloud_name}/{resource_type}/destroy"
        try:
            response = self.http.post(url, data=data, timeout=self.timeout)
        except requests.RequestException as e:
            raise UploadFailure(f"Asset store unreachable: {e}", retryable=True) from e
        if response.status_code >= 400:
            raise UploadFailure(
                f"Asset store rejected destroy of {public_id}: HTTP {response.status_code}",
                status_code=response.status_code,
                retryable=response.status_code >= 500,
            )
        return response.json()
