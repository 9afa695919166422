"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from backend.config import get_settings
from backend.db import InMemoryMemorialStore, MemorialStore, SqlMemorialStore
from backend.storage import (
    AssetAdminClient,
    CloudinaryAdminClient,
    InMemoryAssetAdminClient,
)

_memorial_store: MemorialStore | None = None
_asset_admin_client: AssetAdminClient | None = None


def get_memorial_store() -> MemorialStore:
    """
    Return a singleton store so memorial state persists across requests.
    """
    global _memorial_store
    if _memorial_store:
        return _memorial_store

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _memorial_store = InMemoryMemorialStore()
    else:
        _memorial_store = SqlMemorialStore(settings.database_url)
    return _memorial_store


def get_asset_admin_client() -> AssetAdminClient:
    global _asset_admin_client
    if _asset_admin_client:
        return _asset_admin_client

    settings = get_settings()
    if (
        settings.use_in_memory_backends
        or not settings.cloudinary_cloud_name
        or not settings.cloudinary_api_secret
    ):
        _asset_admin_client = InMemoryAssetAdminClient()
    else:
        _asset_admin_client = CloudinaryAdminClient(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key or "",
            api_secret=settings.cloudinary_api_secret,
            timeout=settings.request_timeout_seconds,
        )
    return _asset_admin_client
