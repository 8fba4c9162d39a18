from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging

from devrelcore.core.errors import ValidationError
from devrelcore.domain.models import ActivityFunnelMap
from devrelcore.persistence.repos import funnel as funnel_repo
from devrelcore.persistence.tenant_context import TenantContextExecutor, TenantSession


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Classification:
    activity_id: str
    developer_id: str | None
    action: str
    source: str
    occurred_at: datetime
    # None when the tenant has not mapped this action to a stage.
    stage_key: str | None


async def classify_activity_stage(
    executor: TenantContextExecutor,
    tenant_id: str,
    activity_id: str,
) -> Classification | None:
    async def _work(tx: TenantSession) -> Classification | None:
        activity = await funnel_repo.get_activity(
            tx.session, tenant_id=tx.tenant_id, activity_id=activity_id
        )
        if activity is None:
            return None
        mapping = await funnel_repo.get_mapping(
            tx.session, tenant_id=tx.tenant_id, action=activity.action
        )
        return Classification(
            activity_id=activity.id,
            developer_id=activity.developer_id,
            action=activity.action,
            source=activity.source,
            occurred_at=activity.occurred_at,
            stage_key=mapping.stage_key if mapping is not None else None,
        )

    return await executor.run(tenant_id, _work)


async def set_action_stage(
    executor: TenantContextExecutor,
    tenant_id: str,
    action: str,
    stage_key: str,
) -> ActivityFunnelMap:
    action = (action or "").strip()
    if not action:
        raise ValidationError("Action cannot be empty", field="action")

    async def _work(tx: TenantSession) -> ActivityFunnelMap:
        stages = {stage.stage_key for stage in await funnel_repo.list_stages(tx.session)}
        if stage_key not in stages:
            raise ValidationError(f"Unknown funnel stage: {stage_key}", field="stage_key")
        mapping = await funnel_repo.get_mapping(tx.session, tenant_id=tx.tenant_id, action=action)
        if mapping is None:
            mapping = ActivityFunnelMap(tenant_id=tx.tenant_id, action=action, stage_key=stage_key)
            tx.session.add(mapping)
        else:
            mapping.stage_key = stage_key
        await tx.session.flush()
        logger.info(
            "funnel_mapping_set tenant_id=%s action=%s stage_key=%s", tx.tenant_id, action, stage_key
        )
        return mapping

    return await executor.run(tenant_id, _work)


async def remove_action_stage(
    executor: TenantContextExecutor,
    tenant_id: str,
    action: str,
) -> bool:
    async def _work(tx: TenantSession) -> bool:
        deleted = await funnel_repo.delete_mapping(tx.session, tenant_id=tx.tenant_id, action=action)
        return deleted > 0

    return await executor.run(tenant_id, _work)


async def list_action_stages(
    executor: TenantContextExecutor,
    tenant_id: str,
) -> list[ActivityFunnelMap]:
    async def _work(tx: TenantSession) -> list[ActivityFunnelMap]:
        return await funnel_repo.list_mappings(tx.session, tenant_id=tx.tenant_id)

    return await executor.run(tenant_id, _work)
