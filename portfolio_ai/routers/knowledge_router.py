"""Knowledge API: entry CRUD, project summaries, generated summary/keywords."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from portfolio_ai.dependencies import get_knowledge_service
from portfolio_ai.schemas.knowledge import (
    KnowledgeEntryCreate,
    KnowledgeEntryOut,
    KnowledgeEntryUpdate,
    KnowledgeKind,
    ProjectSummary,
)
from portfolio_ai.services.knowledge_service import KnowledgeService

router = APIRouter(prefix="/knowledge", tags=["knowledge"])


@router.get("", response_model=List[KnowledgeEntryOut])
async def list_entries(
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    kind: Optional[KnowledgeKind] = Query(None),
    active_only: bool = Query(False),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> List[KnowledgeEntryOut]:
    return await service.list_entries(tenant_id, kind=kind, active_only=active_only)


@router.get("/projects", response_model=List[ProjectSummary])
async def list_project_summaries(
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> List[ProjectSummary]:
    return await service.project_summaries(tenant_id)


@router.get("/slug/{slug}", response_model=KnowledgeEntryOut)
async def get_entry_by_slug(
    slug: str,
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> KnowledgeEntryOut:
    return await service.get_by_slug(tenant_id, slug)


@router.get("/{entry_id}", response_model=KnowledgeEntryOut)
async def get_entry(
    entry_id: UUID,
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    raw: bool = Query(False, description="Return stored text without placeholder hydration"),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> KnowledgeEntryOut:
    return await service.get(tenant_id, entry_id, hydrate=not raw)


@router.post("", response_model=KnowledgeEntryOut, status_code=status.HTTP_201_CREATED)
async def create_entry(
    payload: KnowledgeEntryCreate,
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> KnowledgeEntryOut:
    return await service.create(tenant_id, payload)


@router.patch("/{entry_id}", response_model=KnowledgeEntryOut)
async def update_entry(
    entry_id: UUID,
    payload: KnowledgeEntryUpdate,
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> KnowledgeEntryOut:
    """Partial update; keywords, when sent, replace the old set."""
    return await service.update(tenant_id, entry_id, payload)


@router.post("/{entry_id}/deactivate", response_model=KnowledgeEntryOut)
async def deactivate_entry(
    entry_id: UUID,
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> KnowledgeEntryOut:
    return await service.deactivate(tenant_id, entry_id)


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_entry(
    entry_id: UUID,
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> Response:
    await service.delete(tenant_id, entry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{entry_id}/summary", response_model=KnowledgeEntryOut)
async def summarize_entry(
    entry_id: UUID,
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> KnowledgeEntryOut:
    return await service.summarize_entry(tenant_id, entry_id)


@router.post("/{entry_id}/keywords", response_model=List[str])
async def regenerate_keywords(
    entry_id: UUID,
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> List[str]:
    return await service.regenerate_keywords(tenant_id, entry_id)
