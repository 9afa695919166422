"""
Pydantic schemas for the memorial server functions.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ClientConfigResponse(BaseModel):
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    cloudinary_cloud_name: Optional[str] = None
    cloudinary_upload_preset: Optional[str] = None


class DeleteAssetRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    public_id: str = Field(..., alias="publicId", min_length=1, max_length=255)
    resource_type: Literal["image", "video", "raw"] = Field(
        default="image", alias="resourceType"
    )


class DeleteAssetResponse(BaseModel):
    success: bool
    result: dict


class ValidationErrorResponse(BaseModel):
    field: str
    message: str


class ValidateMemorialResponse(BaseModel):
    valid: bool
    draft: dict
