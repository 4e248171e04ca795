"""Settings API: tenant key/values, public subset, banner."""
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Response, status

from portfolio_ai.dependencies import get_settings_service
from portfolio_ai.schemas.settings import BannerOut, SettingCreate, SettingOut, SettingUpdate
from portfolio_ai.services.settings_service import SettingsService

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=List[SettingOut])
async def list_settings(
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    category: Optional[str] = Query(None),
    service: SettingsService = Depends(get_settings_service),
) -> List[SettingOut]:
    return await service.list_settings(tenant_id, category=category)


@router.get("/public", response_model=List[SettingOut])
async def list_public_settings(
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: SettingsService = Depends(get_settings_service),
) -> List[SettingOut]:
    return await service.list_public(tenant_id)


@router.get("/banner", response_model=BannerOut)
async def get_banner(
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: SettingsService = Depends(get_settings_service),
) -> BannerOut:
    """Stored banner; regenerated when it no longer matches owner_name."""
    return BannerOut(ascii_banner=await service.banner(tenant_id))


@router.post("/banner/regenerate", response_model=BannerOut)
async def regenerate_banner(
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: SettingsService = Depends(get_settings_service),
) -> BannerOut:
    return BannerOut(ascii_banner=await service.regenerate_banner(tenant_id))


@router.post("/seed", response_model=Dict[str, int])
async def seed_settings(
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    overrides: Optional[Dict[str, str]] = Body(None),
    service: SettingsService = Depends(get_settings_service),
) -> Dict[str, int]:
    """Create the default settings that are missing for this tenant."""
    created = await service.seed_defaults(tenant_id, overrides)
    return {"created": created}


@router.get("/key/{key}", response_model=SettingOut)
async def get_setting(
    key: str,
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: SettingsService = Depends(get_settings_service),
) -> SettingOut:
    return await service.get(tenant_id, key)


@router.post("", response_model=SettingOut, status_code=status.HTTP_201_CREATED)
async def create_setting(
    payload: SettingCreate,
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: SettingsService = Depends(get_settings_service),
) -> SettingOut:
    return await service.create(tenant_id, payload)


@router.patch("/key/{key}", response_model=SettingOut)
async def update_setting(
    key: str,
    payload: SettingUpdate,
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: SettingsService = Depends(get_settings_service),
) -> SettingOut:
    return await service.update(tenant_id, key, payload.value)


@router.delete("/key/{key}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_setting(
    key: str,
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: SettingsService = Depends(get_settings_service),
) -> Response:
    await service.delete(tenant_id, key)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
