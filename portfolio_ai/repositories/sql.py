"""SQLAlchemy implementations of the repository interfaces. One session per call."""
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portfolio_ai.exceptions import EntityConflict, EntityNotFound
from portfolio_ai.models import KeywordTag, KnowledgeEntry, PersonalityTemplate, TenantSetting
from portfolio_ai.schemas.knowledge import KnowledgeEntryOut
from portfolio_ai.schemas.personality import PersonalityOut
from portfolio_ai.schemas.settings import SettingOut


class SqlKnowledgeRepository:
    """Knowledge entries + keyword tags (Postgres)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_active_tags(self, tenant_id: UUID) -> List[Tuple[UUID, str]]:
        q = (
            select(KeywordTag.entry_id, KeywordTag.token)
            .join(KnowledgeEntry, KnowledgeEntry.id == KeywordTag.entry_id)
            .where(KnowledgeEntry.tenant_id == tenant_id)
            .where(KnowledgeEntry.active.is_(True))
        )
        async with self._session_factory() as db:
            r = await db.execute(q)
            return [(row.entry_id, row.token) for row in r.all()]

    async def get_entries(self, tenant_id: UUID, entry_ids: Sequence[UUID], active_only: bool = True) -> List[KnowledgeEntryOut]:
        if not entry_ids:
            return []
        q = (
            select(KnowledgeEntry)
            .where(KnowledgeEntry.tenant_id == tenant_id)
            .where(KnowledgeEntry.id.in_(list(entry_ids)))
            .order_by(KnowledgeEntry.priority.desc(), KnowledgeEntry.slug)
        )
        if active_only:
            q = q.where(KnowledgeEntry.active.is_(True))
        async with self._session_factory() as db:
            r = await db.execute(q)
            return [KnowledgeEntryOut.model_validate(e) for e in r.scalars().all()]

    async def list_entries(
        self,
        tenant_id: UUID,
        kinds: Optional[Sequence[str]] = None,
        active_only: bool = True,
    ) -> List[KnowledgeEntryOut]:
        q = (
            select(KnowledgeEntry)
            .where(KnowledgeEntry.tenant_id == tenant_id)
            .order_by(KnowledgeEntry.priority.desc(), KnowledgeEntry.slug)
        )
        if kinds:
            q = q.where(KnowledgeEntry.kind.in_([getattr(k, "value", k) for k in kinds]))
        if active_only:
            q = q.where(KnowledgeEntry.active.is_(True))
        async with self._session_factory() as db:
            r = await db.execute(q)
            return [KnowledgeEntryOut.model_validate(e) for e in r.scalars().all()]

    async def get_entry(self, tenant_id: UUID, entry_id: UUID) -> Optional[KnowledgeEntryOut]:
        q = select(KnowledgeEntry).where(KnowledgeEntry.tenant_id == tenant_id, KnowledgeEntry.id == entry_id)
        async with self._session_factory() as db:
            r = await db.execute(q)
            entry = r.scalar_one_or_none()
            return KnowledgeEntryOut.model_validate(entry) if entry else None

    async def get_by_slug(self, tenant_id: UUID, slug: str) -> Optional[KnowledgeEntryOut]:
        q = select(KnowledgeEntry).where(KnowledgeEntry.tenant_id == tenant_id, KnowledgeEntry.slug == slug)
        async with self._session_factory() as db:
            r = await db.execute(q)
            entry = r.scalar_one_or_none()
            return KnowledgeEntryOut.model_validate(entry) if entry else None

    async def create_entry(self, tenant_id: UUID, fields: Mapping[str, Any], keywords: Sequence[str]) -> KnowledgeEntryOut:
        async with self._session_factory() as db:
            entry = KnowledgeEntry(
                tenant_id=tenant_id,
                keywords=[KeywordTag(token=t) for t in keywords],
                **fields,
            )
            db.add(entry)
            try:
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                raise EntityConflict(f"knowledge entry '{fields.get('slug')}' already exists") from e
            entry_id = entry.id
        created = await self.get_entry(tenant_id, entry_id)
        if created is None:
            # removed by a concurrent writer between commit and read-back
            raise EntityNotFound(f"knowledge entry {entry_id} not found")
        return created

    async def update_entry(
        self,
        tenant_id: UUID,
        entry_id: UUID,
        changes: Mapping[str, Any],
        keywords: Optional[Sequence[str]] = None,
    ) -> Optional[KnowledgeEntryOut]:
        async with self._session_factory() as db:
            exists = await db.execute(
                select(KnowledgeEntry.id).where(KnowledgeEntry.tenant_id == tenant_id, KnowledgeEntry.id == entry_id)
            )
            if exists.scalar_one_or_none() is None:
                return None
            if changes:
                await db.execute(update(KnowledgeEntry).where(KnowledgeEntry.id == entry_id).values(**changes))
            if keywords is not None:
                # Replace wholesale, never merge
                await db.execute(delete(KeywordTag).where(KeywordTag.entry_id == entry_id))
                db.add_all([KeywordTag(entry_id=entry_id, token=t) for t in keywords])
            await db.commit()
        return await self.get_entry(tenant_id, entry_id)

    async def delete_entry(self, tenant_id: UUID, entry_id: UUID) -> bool:
        async with self._session_factory() as db:
            r = await db.execute(
                delete(KnowledgeEntry).where(KnowledgeEntry.tenant_id == tenant_id, KnowledgeEntry.id == entry_id)
            )
            await db.commit()
            return (r.rowcount or 0) > 0


class SqlSettingsRepository:
    """Tenant settings (Postgres)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def load_map(self, tenant_id: UUID) -> Dict[str, str]:
        q = select(TenantSetting.key, TenantSetting.value).where(TenantSetting.tenant_id == tenant_id)
        async with self._session_factory() as db:
            r = await db.execute(q)
            return {row.key: row.value for row in r.all()}

    async def list_settings(self, tenant_id: UUID, category: Optional[str] = None) -> List[SettingOut]:
        q = (
            select(TenantSetting)
            .where(TenantSetting.tenant_id == tenant_id)
            .order_by(TenantSetting.category, TenantSetting.key)
        )
        if category is not None:
            q = q.where(TenantSetting.category == category)
        async with self._session_factory() as db:
            r = await db.execute(q)
            return [SettingOut.model_validate(s) for s in r.scalars().all()]

    async def get_setting(self, tenant_id: UUID, key: str) -> Optional[SettingOut]:
        q = select(TenantSetting).where(TenantSetting.tenant_id == tenant_id, TenantSetting.key == key)
        async with self._session_factory() as db:
            r = await db.execute(q)
            s = r.scalar_one_or_none()
            return SettingOut.model_validate(s) if s else None

    async def create_setting(self, tenant_id: UUID, fields: Mapping[str, Any]) -> SettingOut:
        async with self._session_factory() as db:
            setting = TenantSetting(tenant_id=tenant_id, **fields)
            db.add(setting)
            try:
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                raise EntityConflict(f"setting '{fields.get('key')}' already exists") from e
            return SettingOut.model_validate(setting)

    async def update_value(self, tenant_id: UUID, key: str, value: str) -> Optional[SettingOut]:
        async with self._session_factory() as db:
            r = await db.execute(
                select(TenantSetting).where(TenantSetting.tenant_id == tenant_id, TenantSetting.key == key)
            )
            setting = r.scalar_one_or_none()
            if setting is None:
                return None
            setting.value = value
            await db.commit()
            return SettingOut.model_validate(setting)

    async def upsert_value(self, tenant_id: UUID, key: str, value: str, category: Optional[str] = None) -> SettingOut:
        updated = await self.update_value(tenant_id, key, value)
        if updated is not None:
            return updated
        return await self.create_setting(tenant_id, {"key": key, "value": value, "category": category})

    async def delete_setting(self, tenant_id: UUID, key: str) -> bool:
        async with self._session_factory() as db:
            r = await db.execute(
                delete(TenantSetting).where(TenantSetting.tenant_id == tenant_id, TenantSetting.key == key)
            )
            await db.commit()
            return (r.rowcount or 0) > 0


def _scope(tenant_id: Optional[UUID]):
    """WHERE clause for one personality scope (tenant-owned or global)."""
    if tenant_id is None:
        return PersonalityTemplate.tenant_id.is_(None)
    return PersonalityTemplate.tenant_id == tenant_id


class SqlPersonalityRepository:
    """Personality templates (Postgres)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_templates(self, tenant_id: Optional[UUID]) -> List[PersonalityOut]:
        q = (
            select(PersonalityTemplate)
            .where(_scope(tenant_id))
            .order_by(PersonalityTemplate.is_default.desc(), PersonalityTemplate.name)
        )
        async with self._session_factory() as db:
            r = await db.execute(q)
            return [PersonalityOut.model_validate(p) for p in r.scalars().all()]

    async def get_template(self, template_id: UUID) -> Optional[PersonalityOut]:
        async with self._session_factory() as db:
            p = await db.get(PersonalityTemplate, template_id)
            return PersonalityOut.model_validate(p) if p else None

    async def find_by_mode(self, tenant_id: Optional[UUID], mode: str) -> Optional[PersonalityOut]:
        q = (
            select(PersonalityTemplate)
            .where(_scope(tenant_id))
            .where(PersonalityTemplate.mode == mode, PersonalityTemplate.active.is_(True))
            .order_by(PersonalityTemplate.is_default.desc(), PersonalityTemplate.created_at)
            .limit(1)
        )
        async with self._session_factory() as db:
            r = await db.execute(q)
            p = r.scalar_one_or_none()
            return PersonalityOut.model_validate(p) if p else None

    async def find_default(self, tenant_id: Optional[UUID]) -> Optional[PersonalityOut]:
        q = (
            select(PersonalityTemplate)
            .where(_scope(tenant_id))
            .where(PersonalityTemplate.is_default.is_(True), PersonalityTemplate.active.is_(True))
            .limit(1)
        )
        async with self._session_factory() as db:
            r = await db.execute(q)
            p = r.scalar_one_or_none()
            return PersonalityOut.model_validate(p) if p else None

    async def create_template(self, tenant_id: Optional[UUID], fields: Mapping[str, Any]) -> PersonalityOut:
        async with self._session_factory() as db:
            p = PersonalityTemplate(tenant_id=tenant_id, **fields)
            db.add(p)
            await db.commit()
            return PersonalityOut.model_validate(p)

    async def update_template(self, template_id: UUID, changes: Mapping[str, Any]) -> Optional[PersonalityOut]:
        async with self._session_factory() as db:
            p = await db.get(PersonalityTemplate, template_id)
            if p is None:
                return None
            for field, value in changes.items():
                setattr(p, field, value)
            await db.commit()
            return PersonalityOut.model_validate(p)

    async def clear_default(self, tenant_id: Optional[UUID]) -> None:
        async with self._session_factory() as db:
            await db.execute(update(PersonalityTemplate).where(_scope(tenant_id)).values(is_default=False))
            await db.commit()

    async def delete_template(self, template_id: UUID) -> bool:
        async with self._session_factory() as db:
            r = await db.execute(delete(PersonalityTemplate).where(PersonalityTemplate.id == template_id))
            await db.commit()
            return (r.rowcount or 0) > 0
