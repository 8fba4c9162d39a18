from __future__ import annotations

from decimal import Decimal
import logging
from typing import Any, Mapping

from sqlalchemy.exc import IntegrityError

from devrelcore.core.errors import ConflictError
from devrelcore.domain.inputs import validate_new_activity
from devrelcore.domain.models import Activity, new_id
from devrelcore.persistence.integrity import is_unique_violation
from devrelcore.persistence.tenant_context import TenantContextExecutor, TenantSession


logger = logging.getLogger(__name__)


async def record_activity(
    executor: TenantContextExecutor,
    tenant_id: str,
    data: Mapping[str, Any],
) -> Activity:
    payload = validate_new_activity(data).unwrap()

    async def _work(tx: TenantSession) -> Activity:
        activity = Activity(
            id=new_id(),
            tenant_id=tx.tenant_id,
            developer_id=payload.developer_id,
            account_id=payload.account_id,
            anon_id=payload.anon_id,
            resource_id=payload.resource_id,
            action=payload.action,
            occurred_at=payload.occurred_at,
            source=payload.source,
            source_ref=payload.source_ref,
            metadata_json=payload.metadata,
            confidence=payload.confidence,
            value=Decimal(str(payload.value)) if payload.value is not None else None,
            dedup_key=payload.dedup_key,
        )
        tx.session.add(activity)
        try:
            await tx.session.flush()
        except IntegrityError as exc:
            if is_unique_violation(exc):
                raise ConflictError("Duplicate activity detected (dedupKey already exists)") from exc
            raise
        logger.info(
            "activity_recorded tenant_id=%s activity_id=%s action=%s",
            tx.tenant_id,
            activity.id,
            activity.action,
        )
        return activity

    return await executor.run(tenant_id, _work)
