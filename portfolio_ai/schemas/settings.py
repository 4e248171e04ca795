"""Tenant setting request/response schemas."""
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class SettingKind(str, Enum):
    """Declared value type of a setting. Values are always stored as text."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    JSON = "json"


class SettingCreate(BaseModel):
    """Body for POST /settings."""

    key: str = Field(..., min_length=1, max_length=100, pattern=r"^\w+$")
    value: str = ""
    kind: SettingKind = SettingKind.STRING
    category: Optional[str] = Field("general", max_length=100)
    description: Optional[str] = None


class SettingUpdate(BaseModel):
    """Body for PATCH /settings/{key}."""

    value: str


class SettingOut(BaseModel):
    """One setting as returned by repositories and the API."""

    id: UUID
    tenant_id: UUID
    key: str
    value: str
    kind: SettingKind = SettingKind.STRING
    category: Optional[str] = None
    description: Optional[str] = None

    model_config = {"from_attributes": True}


class BannerOut(BaseModel):
    """Response GET /settings/banner."""

    ascii_banner: str
