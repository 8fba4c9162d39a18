from __future__ import annotations

import importlib
import os
from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError

from devrelcore.core.config import Settings
from devrelcore.domain.models import Base, Developer, new_id
from devrelcore.persistence.db import build_engine, build_sessionmaker
from devrelcore.persistence.repos import funnel as funnel_repo
from devrelcore.persistence.tenant_context import (
    MODE_SETTING,
    TenantContextExecutor,
    TenantSession,
    current_marker,
)
from devrelcore.services.funnel import get_funnel_time_series, set_action_stage
from devrelcore.tests.utils.factories import add_activity, add_developer


DATABASE_URL = os.getenv("DEVREL_TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(
    not DATABASE_URL, reason="DEVREL_TEST_DATABASE_URL is not set"
)

rls_migration = importlib.import_module("devrelcore.persistence.alembic.versions.0002_tenant_rls")

# Superusers bypass RLS, so policy checks switch to this unprivileged role with SET LOCAL ROLE.
RLS_ROLE = "devrelcore_rls_app"


@pytest.fixture
async def pg_engine():
    # A single pooled connection makes every unit of work reuse the same backend session.
    settings = Settings(database_url=DATABASE_URL, db_pool_size=1, db_max_overflow=0)
    engine = build_engine(settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        for statement in rls_migration.drop_statements():
            await conn.execute(text(statement))
        for statement in rls_migration.policy_statements(settings.tenant_setting_name):
            await conn.execute(text(statement))
        await conn.execute(
            text(
                f"DO $$ BEGIN CREATE ROLE {RLS_ROLE} NOLOGIN; "
                "EXCEPTION WHEN duplicate_object THEN NULL; END $$"
            )
        )
        await conn.execute(text(f"GRANT USAGE ON SCHEMA public TO {RLS_ROLE}"))
        await conn.execute(
            text(f"GRANT SELECT, INSERT, UPDATE, DELETE ON ALL TABLES IN SCHEMA public TO {RLS_ROLE}")
        )
    async with build_sessionmaker(engine)() as session:
        async with session.begin():
            await funnel_repo.seed_stages(session)
    yield engine
    await engine.dispose()


@pytest.fixture
def pg_executor(pg_engine) -> TenantContextExecutor:
    return TenantContextExecutor(build_sessionmaker(pg_engine))


async def _raw_marker(engine) -> str | None:
    async with engine.connect() as conn:
        result = await conn.execute(text("SELECT current_setting('app.current_tenant_id', true)"))
        return result.scalar_one_or_none() or None


async def _visible_developer_tenants(tx: TenantSession) -> set[str]:
    # No tenant predicate here; only the RLS policy filters the rows.
    await tx.session.execute(text(f"SET LOCAL ROLE {RLS_ROLE}"))
    result = await tx.session.execute(text("SELECT tenant_id FROM developers"))
    return set(result.scalars().all())


@pytest.mark.asyncio
async def test_marker_is_visible_inside_the_transaction(pg_executor) -> None:
    tenant_id = f"t-{uuid4().hex}"

    async def _work(tx: TenantSession) -> str | None:
        assert pg_executor.resolve_mode(tx.session) == MODE_SETTING
        return await current_marker(tx)

    assert await pg_executor.run(tenant_id, _work) == tenant_id


@pytest.mark.asyncio
async def test_marker_does_not_survive_commit(pg_engine, pg_executor) -> None:
    async def _work(tx: TenantSession) -> None:
        return None

    await pg_executor.run(f"t-{uuid4().hex}", _work)

    assert await _raw_marker(pg_engine) is None


@pytest.mark.asyncio
async def test_marker_does_not_survive_rollback(pg_engine, pg_executor) -> None:
    async def _work(tx: TenantSession) -> None:
        raise RuntimeError("abort")

    with pytest.raises(RuntimeError):
        await pg_executor.run(f"t-{uuid4().hex}", _work)

    assert await _raw_marker(pg_engine) is None


@pytest.mark.asyncio
async def test_next_tenant_sees_only_its_own_marker(pg_executor) -> None:
    first, second = f"t-{uuid4().hex}", f"t-{uuid4().hex}"

    async def _marker(tx: TenantSession) -> str | None:
        return await current_marker(tx)

    assert await pg_executor.run(first, _marker) == first
    assert await pg_executor.run(second, _marker) == second


@pytest.mark.asyncio
async def test_weekly_time_series_on_postgres(pg_executor) -> None:
    tenant_id = f"t-{uuid4().hex}"
    await set_action_stage(pg_executor, tenant_id, "click", "awareness")
    developer = await add_developer(pg_executor, tenant_id)
    await add_activity(
        pg_executor,
        tenant_id,
        action="click",
        developer_id=developer.id,
        occurred_at=datetime(2024, 1, 3, 12, tzinfo=timezone.utc),
    )

    points = await get_funnel_time_series(
        pg_executor,
        tenant_id,
        datetime(2024, 1, 1, tzinfo=timezone.utc),
        datetime(2024, 1, 31, tzinfo=timezone.utc),
        "week",
    )

    assert len(points) == 1
    assert points[0].date.date().isoformat() == "2024-01-01"
    assert points[0].stages[0].unique_developers == 1


@pytest.mark.asyncio
async def test_rls_policy_filters_rows_by_marker(pg_executor) -> None:
    tenant_a, tenant_b = f"t-{uuid4().hex}", f"t-{uuid4().hex}"
    await add_developer(pg_executor, tenant_a, display_name="A")
    await add_developer(pg_executor, tenant_b, display_name="B")

    assert await pg_executor.run(tenant_a, _visible_developer_tenants) == {tenant_a}
    assert await pg_executor.run(tenant_b, _visible_developer_tenants) == {tenant_b}


@pytest.mark.asyncio
async def test_rls_policy_rejects_writes_for_another_tenant(pg_executor) -> None:
    tenant_a, tenant_b = f"t-{uuid4().hex}", f"t-{uuid4().hex}"

    async def _insert_foreign(tx: TenantSession) -> None:
        await tx.session.execute(text(f"SET LOCAL ROLE {RLS_ROLE}"))
        tx.session.add(Developer(id=new_id(), tenant_id=tenant_b, tags=[]))
        await tx.session.flush()

    with pytest.raises(DBAPIError):
        await pg_executor.run(tenant_a, _insert_foreign)


@pytest.mark.asyncio
async def test_unmarked_connection_sees_no_rows_after_commit(pg_engine, pg_executor) -> None:
    await add_developer(pg_executor, f"t-{uuid4().hex}", display_name="Committed")

    async with pg_engine.connect() as conn:
        async with conn.begin():
            await conn.execute(text(f"SET LOCAL ROLE {RLS_ROLE}"))
            result = await conn.execute(text("SELECT count(*) FROM developers"))
            visible = result.scalar_one()

    assert visible == 0


@pytest.mark.asyncio
async def test_daily_buckets_ignore_session_time_zone(pg_engine, pg_executor) -> None:
    tenant_id = f"t-{uuid4().hex}"
    await set_action_stage(pg_executor, tenant_id, "click", "awareness")
    developer = await add_developer(pg_executor, tenant_id)
    # 01:00 UTC on 2 Jan is still 1 Jan in New York.
    await add_activity(
        pg_executor,
        tenant_id,
        action="click",
        developer_id=developer.id,
        occurred_at=datetime(2024, 1, 2, 1, tzinfo=timezone.utc),
    )
    async with pg_engine.connect() as conn:
        await conn.execute(text("SET TIME ZONE 'America/New_York'"))
        await conn.commit()
    try:
        points = await get_funnel_time_series(
            pg_executor,
            tenant_id,
            datetime(2024, 1, 1, tzinfo=timezone.utc),
            datetime(2024, 1, 3, tzinfo=timezone.utc),
            "day",
        )
    finally:
        async with pg_engine.connect() as conn:
            await conn.execute(text("RESET TIME ZONE"))
            await conn.commit()

    assert [point.date for point in points] == [datetime(2024, 1, 2, tzinfo=timezone.utc)]
