from __future__ import annotations

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from devrelcore.domain.models import DeveloperMergeLog
from devrelcore.persistence.guards import tenant_predicate


async def list_merge_logs(
    session: AsyncSession,
    *,
    tenant_id: str,
    developer_id: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[DeveloperMergeLog]:
    # Scope all audit queries to a tenant to prevent cross-tenant leakage.
    stmt = select(DeveloperMergeLog).where(tenant_predicate(tenant_id, DeveloperMergeLog))
    if developer_id:
        stmt = stmt.where(
            or_(
                DeveloperMergeLog.into_developer_id == developer_id,
                DeveloperMergeLog.from_developer_id == developer_id,
            )
        )
    stmt = stmt.order_by(DeveloperMergeLog.merged_at.desc(), DeveloperMergeLog.id.desc())
    result = await session.execute(stmt.offset(offset).limit(limit))
    return list(result.scalars().all())
