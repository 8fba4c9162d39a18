from __future__ import annotations

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from devrelcore.domain.models import DeveloperIdentifier
from devrelcore.persistence.guards import tenant_predicate


async def get_by_value(
    session: AsyncSession,
    *,
    tenant_id: str,
    kind: str,
    value_normalized: str,
) -> DeveloperIdentifier | None:
    stmt = (
        select(DeveloperIdentifier)
        .where(
            DeveloperIdentifier.kind == kind,
            DeveloperIdentifier.value_normalized == value_normalized,
            tenant_predicate(tenant_id, DeveloperIdentifier),
        )
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_by_value(
    session: AsyncSession,
    *,
    tenant_id: str,
    kind: str,
    value_normalized: str,
) -> list[DeveloperIdentifier]:
    stmt = (
        select(DeveloperIdentifier)
        .where(
            DeveloperIdentifier.kind == kind,
            DeveloperIdentifier.value_normalized == value_normalized,
            tenant_predicate(tenant_id, DeveloperIdentifier),
        )
        .order_by(DeveloperIdentifier.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_for_developer(
    session: AsyncSession,
    *,
    tenant_id: str,
    developer_id: str,
) -> list[DeveloperIdentifier]:
    # Newest evidence first; id breaks ties between rows seen at the same instant.
    stmt = (
        select(DeveloperIdentifier)
        .where(
            DeveloperIdentifier.developer_id == developer_id,
            tenant_predicate(tenant_id, DeveloperIdentifier),
        )
        .order_by(DeveloperIdentifier.first_seen.desc(), DeveloperIdentifier.id.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def reassign_developer(
    session: AsyncSession,
    *,
    tenant_id: str,
    from_developer_id: str,
    into_developer_id: str,
) -> int:
    stmt = (
        update(DeveloperIdentifier)
        .where(
            DeveloperIdentifier.developer_id == from_developer_id,
            tenant_predicate(tenant_id, DeveloperIdentifier),
        )
        .values(developer_id=into_developer_id)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return int(result.rowcount or 0)


async def delete_identifier(
    session: AsyncSession,
    *,
    tenant_id: str,
    identifier_id: str,
) -> int:
    stmt = delete(DeveloperIdentifier).where(
        DeveloperIdentifier.id == identifier_id,
        tenant_predicate(tenant_id, DeveloperIdentifier),
    )
    result = await session.execute(stmt)
    return int(result.rowcount or 0)
