from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from devrelcore.domain.models import Developer
from devrelcore.persistence.guards import tenant_predicate


async def get_developer(
    session: AsyncSession,
    *,
    tenant_id: str,
    developer_id: str,
) -> Developer | None:
    stmt = select(Developer).where(Developer.id == developer_id, tenant_predicate(tenant_id, Developer))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_by_primary_email(
    session: AsyncSession,
    *,
    tenant_id: str,
    email: str,
) -> Developer | None:
    stmt = (
        select(Developer)
        .where(Developer.primary_email == email, tenant_predicate(tenant_id, Developer))
        .order_by(Developer.created_at, Developer.id)
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_by_primary_email(
    session: AsyncSession,
    *,
    tenant_id: str,
    email: str,
) -> list[Developer]:
    # Imported data can bypass the unique constraint, so callers may see several rows.
    stmt = (
        select(Developer)
        .where(Developer.primary_email == email, tenant_predicate(tenant_id, Developer))
        .order_by(Developer.created_at, Developer.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_many(
    session: AsyncSession,
    *,
    tenant_id: str,
    developer_ids: list[str],
) -> dict[str, Developer]:
    if not developer_ids:
        return {}
    stmt = select(Developer).where(
        Developer.id.in_(developer_ids), tenant_predicate(tenant_id, Developer)
    )
    result = await session.execute(stmt)
    return {developer.id: developer for developer in result.scalars().all()}


async def delete_developer(
    session: AsyncSession,
    *,
    tenant_id: str,
    developer_id: str,
) -> int:
    stmt = delete(Developer).where(Developer.id == developer_id, tenant_predicate(tenant_id, Developer))
    result = await session.execute(stmt)
    return int(result.rowcount or 0)
