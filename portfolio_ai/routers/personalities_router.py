"""Personality API: tenant templates (globals are read-only and cloned on write)."""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from portfolio_ai.dependencies import get_personality_service
from portfolio_ai.schemas.personality import PersonalityCreate, PersonalityOut, PersonalityUpdate
from portfolio_ai.services.personality_service import PersonalityService

router = APIRouter(prefix="/personalities", tags=["personalities"])


@router.get("", response_model=List[PersonalityOut])
async def list_personalities(
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: PersonalityService = Depends(get_personality_service),
) -> List[PersonalityOut]:
    return await service.list_templates(tenant_id)


@router.get("/{template_id}", response_model=PersonalityOut)
async def get_personality(
    template_id: UUID,
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: PersonalityService = Depends(get_personality_service),
) -> PersonalityOut:
    return await service.get(tenant_id, template_id)


@router.post("", response_model=PersonalityOut, status_code=status.HTTP_201_CREATED)
async def create_personality(
    payload: PersonalityCreate,
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: PersonalityService = Depends(get_personality_service),
) -> PersonalityOut:
    return await service.create(tenant_id, payload)


@router.patch("/{template_id}", response_model=PersonalityOut)
async def update_personality(
    template_id: UUID,
    payload: PersonalityUpdate,
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: PersonalityService = Depends(get_personality_service),
) -> PersonalityOut:
    """Editing a global template updates the tenant's own copy instead."""
    return await service.update(tenant_id, template_id, payload)


@router.post("/{template_id}/default", response_model=PersonalityOut)
async def set_default_personality(
    template_id: UUID,
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: PersonalityService = Depends(get_personality_service),
) -> PersonalityOut:
    return await service.set_default(tenant_id, template_id)


@router.post("/{template_id}/materialize", response_model=PersonalityOut)
async def materialize_personality(
    template_id: UUID,
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: PersonalityService = Depends(get_personality_service),
) -> PersonalityOut:
    return await service.materialize(tenant_id, template_id)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_personality(
    template_id: UUID,
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: PersonalityService = Depends(get_personality_service),
) -> Response:
    await service.delete(tenant_id, template_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
