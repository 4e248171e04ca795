"""Personality template request/response schemas."""
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class PersonalityCreate(BaseModel):
    """Body for POST /personalities."""

    slug: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9][a-z0-9_-]*$")
    name: str = Field(..., min_length=1, max_length=255)
    mode: str = Field("assistant", min_length=1, max_length=50)
    system_prompt_template: str = Field(..., min_length=1)
    greeting: Optional[str] = None
    active: bool = True
    is_default: bool = False


class PersonalityUpdate(BaseModel):
    """Body for PATCH /personalities/{id}."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    mode: Optional[str] = Field(None, min_length=1, max_length=50)
    system_prompt_template: Optional[str] = Field(None, min_length=1)
    greeting: Optional[str] = None
    active: Optional[bool] = None


class PersonalityOut(BaseModel):
    """One template. tenant_id None means a global (shared) template."""

    id: UUID
    tenant_id: Optional[UUID] = None
    slug: str
    name: str
    mode: str
    system_prompt_template: str
    greeting: Optional[str] = None
    active: bool = True
    is_default: bool = False

    model_config = {"from_attributes": True}

    @property
    def is_global(self) -> bool:
        return self.tenant_id is None
