from __future__ import annotations

from typing import Any, Mapping
import logging

from sqlalchemy.exc import IntegrityError

from devrelcore.core.errors import ConflictError
from devrelcore.domain.inputs import validate_new_developer
from devrelcore.domain.models import Developer, new_id
from devrelcore.persistence.integrity import is_unique_violation
from devrelcore.persistence.repos import developers as developers_repo
from devrelcore.persistence.tenant_context import TenantContextExecutor, TenantSession


logger = logging.getLogger(__name__)


async def create_developer(
    executor: TenantContextExecutor,
    tenant_id: str,
    data: Mapping[str, Any],
) -> Developer:
    payload = validate_new_developer(data).unwrap()

    async def _work(tx: TenantSession) -> Developer:
        developer = Developer(
            id=new_id(),
            tenant_id=tx.tenant_id,
            display_name=payload.display_name,
            primary_email=payload.primary_email,
            org_id=payload.org_id,
            consent_analytics=payload.consent_analytics,
            tags=list(payload.tags),
        )
        tx.session.add(developer)
        try:
            await tx.session.flush()
        except IntegrityError as exc:
            if is_unique_violation(exc):
                raise ConflictError("Developer with this email already exists") from exc
            raise
        logger.info("developer_created tenant_id=%s developer_id=%s", tx.tenant_id, developer.id)
        return developer

    return await executor.run(tenant_id, _work)


async def get_developer(
    executor: TenantContextExecutor,
    tenant_id: str,
    developer_id: str,
) -> Developer | None:
    async def _work(tx: TenantSession) -> Developer | None:
        return await developers_repo.get_developer(
            tx.session, tenant_id=tx.tenant_id, developer_id=developer_id
        )

    return await executor.run(tenant_id, _work)
