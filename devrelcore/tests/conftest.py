from __future__ import annotations

from uuid import uuid4

import pytest

from devrelcore.core.config import get_settings
from devrelcore.domain.models import Base
from devrelcore.persistence.db import build_engine, build_sessionmaker
from devrelcore.persistence.repos import funnel as funnel_repo
from devrelcore.persistence.tenant_context import MODE_PREDICATE, TenantContextExecutor


@pytest.fixture(autouse=True)
def reset_settings_cache() -> None:
    # Settings are cached process-wide; monkeypatched env vars need a fresh read.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
async def engine(tmp_path):
    # One SQLite file per test keeps rows isolated without cleanup passes.
    engine = build_engine(database_url=f"sqlite+aiosqlite:///{tmp_path / 'devrel.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with build_sessionmaker(engine)() as session:
        async with session.begin():
            await funnel_repo.seed_stages(session)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return build_sessionmaker(engine)


@pytest.fixture
def executor(sessionmaker) -> TenantContextExecutor:
    return TenantContextExecutor(sessionmaker, mode=MODE_PREDICATE)


@pytest.fixture
def tenant_id() -> str:
    return f"t-{uuid4().hex}"
