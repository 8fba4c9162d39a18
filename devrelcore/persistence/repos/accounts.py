from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from devrelcore.domain.models import Account
from devrelcore.persistence.guards import tenant_predicate


async def get_by_external_id(
    session: AsyncSession,
    *,
    tenant_id: str,
    provider: str,
    external_user_id: str,
) -> Account | None:
    stmt = (
        select(Account)
        .where(
            Account.provider == provider,
            Account.external_user_id == external_user_id,
            tenant_predicate(tenant_id, Account),
        )
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_by_external_id(
    session: AsyncSession,
    *,
    tenant_id: str,
    provider: str,
    external_user_id: str,
) -> list[Account]:
    stmt = (
        select(Account)
        .where(
            Account.provider == provider,
            Account.external_user_id == external_user_id,
            tenant_predicate(tenant_id, Account),
        )
        .order_by(Account.created_at, Account.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_resolved_by_email(
    session: AsyncSession,
    *,
    tenant_id: str,
    email: str,
) -> Account | None:
    # Only accounts already bound to a developer can answer an identity lookup.
    stmt = (
        select(Account)
        .where(
            Account.email == email,
            Account.developer_id.is_not(None),
            tenant_predicate(tenant_id, Account),
        )
        .order_by(Account.created_at, Account.id)
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_for_developer(
    session: AsyncSession,
    *,
    tenant_id: str,
    developer_id: str,
) -> list[Account]:
    stmt = (
        select(Account)
        .where(Account.developer_id == developer_id, tenant_predicate(tenant_id, Account))
        .order_by(Account.created_at, Account.id)
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
        update(Account)
        .where(Account.developer_id == from_developer_id, tenant_predicate(tenant_id, Account))
        .values(developer_id=into_developer_id)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return int(result.rowcount or 0)
