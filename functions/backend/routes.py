"""
HTTP routes for the memorial server functions.
"""

from __future__ import annotations

import logging
import re

from dacite import DaciteError
from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse

from backend.auth import get_current_user_id
from backend.config import Settings, get_settings
from backend.db import MemorialStore
from backend.dependencies import get_asset_admin_client, get_memorial_store
from backend.schemas import (
    ClientConfigResponse,
    DeleteAssetRequest,
    DeleteAssetResponse,
    ValidateMemorialResponse,
    ValidationErrorResponse,
)
from backend.storage import AssetAdminClient
from shared.constants import ASSET_FOLDER_ROOT
from shared.errors import MemorialError, ValidationFailure
from shared.types import Draft
from shared.validation import sanitize_draft, validate_for_publish

logger = logging.getLogger(__name__)

router = APIRouter()

_MEMORIAL_FOLDER = re.compile(rf"^{ASSET_FOLDER_ROOT}/memorials/([^/]+)/")


def caller_owns_asset(store: MemorialStore, user_id: str, public_id: str) -> bool:
    """
    An asset is the caller's when one of their moments uses it, or when it
    sits in one of their memorial folders or in their own drafts folder.
    """
    if ".." in public_id.split("/"):
        return False
    if store.find_asset_owner(public_id) == user_id:
        return True
    match = _MEMORIAL_FOLDER.match(public_id)
    if match and store.get_memorial(user_id, match.group(1)) is not None:
        return True
    return public_id.startswith(f"{ASSET_FOLDER_ROOT}/drafts/{user_id}/")


@router.get("/config", response_model=ClientConfigResponse)
def get_client_config(settings: Settings = Depends(get_settings)):
    """
    Public configuration the browser needs; never includes secrets.
    """
    return ClientConfigResponse(
        supabase_url=settings.supabase_url,
        supabase_anon_key=settings.supabase_anon_key,
        cloudinary_cloud_name=settings.cloudinary_cloud_name,
        cloudinary_upload_preset=settings.cloudinary_upload_preset,
    )


@router.post("/delete-asset", response_model=DeleteAssetResponse)
def delete_asset(
    payload: DeleteAssetRequest,
    user_id: str = Depends(get_current_user_id),
    store: MemorialStore = Depends(get_memorial_store),
    assets: AssetAdminClient = Depends(get_asset_admin_client),
):
    try:
        owns = caller_owns_asset(store, user_id, payload.public_id)
    except MemorialError as e:
        logger.exception("Ownership lookup failed for %s", payload.public_id)
        raise HTTPException(status_code=503, detail="Please try again later.") from e
    if not owns:
        logger.warning("User %s may not delete %s", user_id, payload.public_id)
        raise HTTPException(status_code=403, detail="Forbidden")

    try:
        result = assets.destroy(payload.public_id, payload.resource_type)
    except MemorialError as e:
        logger.warning("Asset store failed to delete %s: %s", payload.public_id, e)
        raise HTTPException(status_code=502, detail="Could not delete the asset.") from e

    logger.info("User %s deleted asset %s", user_id, payload.public_id)
    return DeleteAssetResponse(success=True, result=result)


@router.post(
    "/validate-memorial",
    response_model=ValidateMemorialResponse,
    responses={400: {"model": ValidationErrorResponse}},
)
def validate_memorial(payload: dict = Body(...)):
    """
    Server-side counterpart of the wizard checks: validates a draft and
    returns it sanitized.
    """
    try:
        draft = Draft.from_dict(payload)
        validate_for_publish(draft)
    except ValidationFailure as e:
        return JSONResponse(
            status_code=400,
            content=ValidationErrorResponse(field=e.field, message=e.user_message).model_dump(),
        )
    except (DaciteError, ValueError, TypeError) as e:
        logger.info("Rejected malformed memorial payload: %s", e)
        return JSONResponse(
            status_code=400,
            content=ValidationErrorResponse(
                field="draft", message="The memorial data is malformed."
            ).model_dump(),
        )
    return ValidateMemorialResponse(valid=True, draft=sanitize_draft(draft).to_dict())
