"""Transaction-scoped tenant execution.

Every read or write in devrelcore goes through :meth:`TenantContextExecutor.run`.
It opens exactly one transaction, marks it with the tenant id, runs the unit of
work and then commits or rolls back.

The marker is set with ``SET LOCAL`` so Postgres drops it at commit or rollback.
Pooled connections are reused across tenants, and a session-level ``SET``
would survive on the connection into the next, unrelated checkout.

Backends without transaction-scoped settings run in ``predicate`` mode: no
marker is written and isolation relies on the tenant predicate that every
repository query adds through :func:`devrelcore.persistence.guards.tenant_predicate`.
Both modes add the predicate, so the RLS policy is a second line of defence
rather than the only one.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import Awaitable, Callable, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from devrelcore.core.config import get_settings
from devrelcore.core.errors import ValidationError
from devrelcore.persistence.guards import tenant_predicate


logger = logging.getLogger(__name__)

T = TypeVar("T")

MODE_AUTO = "auto"
MODE_SETTING = "setting"
MODE_PREDICATE = "predicate"
_MODES = {MODE_AUTO, MODE_SETTING, MODE_PREDICATE}

# SET LOCAL takes no bind parameters, so only this charset may reach the statement.
TENANT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_SETTING_NAME_PATTERN = re.compile(r"^[a-z_][a-z0-9_]*\.[a-z_][a-z0-9_]*$")
_SETTING_DIALECTS = {"postgresql"}


def validate_tenant_id(tenant_id: str | None) -> str:
    if not isinstance(tenant_id, str) or not tenant_id.strip():
        raise ValidationError("Tenant ID cannot be empty", field="tenant_id")
    if not TENANT_ID_PATTERN.match(tenant_id):
        raise ValidationError(f"Tenant ID contains invalid characters: {tenant_id!r}", field="tenant_id")
    return tenant_id


def validate_setting_name(setting_name: str) -> str:
    # The name is rendered into SET LOCAL and the RLS policies, so it must be a plain dotted identifier.
    if not _SETTING_NAME_PATTERN.match(setting_name):
        raise ValueError(f"Unsafe tenant setting name: {setting_name}")
    return setting_name


@dataclass(frozen=True)
class TenantSession:
    # Handle passed to units of work; bound to one transaction and one tenant.
    session: AsyncSession
    tenant_id: str

    def where(self, *models) -> object:
        return tenant_predicate(self.tenant_id, *models)


UnitOfWork = Callable[[TenantSession], Awaitable[T]]


class TenantContextExecutor:
    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        *,
        mode: str | None = None,
        setting_name: str | None = None,
    ) -> None:
        settings = get_settings()
        resolved_mode = (mode or settings.tenant_context_mode).lower()
        if resolved_mode not in _MODES:
            raise ValueError(f"Unsupported tenant context mode: {resolved_mode}")
        resolved_setting = validate_setting_name(setting_name or settings.tenant_setting_name)
        self._sessionmaker = sessionmaker
        self._mode = resolved_mode
        self._setting_name = resolved_setting

    @property
    def setting_name(self) -> str:
        return self._setting_name

    def resolve_mode(self, session: AsyncSession) -> str:
        if self._mode != MODE_AUTO:
            return self._mode
        bind = session.bind
        dialect = getattr(getattr(bind, "dialect", None), "name", None)
        return MODE_SETTING if dialect in _SETTING_DIALECTS else MODE_PREDICATE

    async def run(self, tenant_id: str, unit_of_work: UnitOfWork[T]) -> T:
        # Validation happens before a connection is checked out of the pool.
        tenant_id = validate_tenant_id(tenant_id)
        async with self._sessionmaker() as session:
            try:
                # session.begin() commits on normal exit and rolls back on any exception.
                async with session.begin():
                    if self.resolve_mode(session) == MODE_SETTING:
                        await session.execute(
                            text(f"SET LOCAL {self._setting_name} = '{tenant_id}'")
                        )
                    return await unit_of_work(TenantSession(session=session, tenant_id=tenant_id))
            except SQLAlchemyError as exc:
                logger.error(
                    "tenant_unit_of_work_failed tenant_id=%s error=%s",
                    tenant_id,
                    type(exc).__name__,
                    exc_info=exc,
                )
                raise


async def run_in_tenant(executor: TenantContextExecutor, tenant_id: str, fn: UnitOfWork[T]) -> T:
    return await executor.run(tenant_id, fn)


async def current_marker(tx: TenantSession, setting_name: str | None = None) -> str | None:
    # Read the marker back through current_setting; missing settings come back as None.
    name = setting_name or get_settings().tenant_setting_name
    result = await tx.session.execute(
        text("SELECT current_setting(:name, true)"), {"name": name}
    )
    value = result.scalar_one_or_none()
    return value or None
