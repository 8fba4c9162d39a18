"""Developer merges.

A merge folds the source developer into the target inside one tenant
transaction: identifiers and accounts move to the target, attributes are
combined with target-wins precedence, a merge log row is written and the
source row is physically deleted. There is no undo. Any failure rolls the
whole transaction back, so partial reassignment never persists.

Activities that reference the source developer directly are not rewritten;
the ``ON DELETE SET NULL`` foreign key clears them when the source row goes.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any

from devrelcore.core.config import get_settings
from devrelcore.core.errors import NotFoundError
from devrelcore.domain.inputs import validate_merge_request
from devrelcore.domain.models import Developer, DeveloperMergeLog, new_id
from devrelcore.persistence.repos import accounts as accounts_repo
from devrelcore.persistence.repos import developers as developers_repo
from devrelcore.persistence.repos import identifiers as identifiers_repo
from devrelcore.persistence.repos import merge_logs as merge_logs_repo
from devrelcore.persistence.tenant_context import TenantContextExecutor, TenantSession


logger = logging.getLogger(__name__)

METHOD_MANUAL = "manual"
METHOD_AUTOMATIC = "automatic"


def merge_tags(target_tags: list[str] | None, source_tags: list[str] | None) -> list[str]:
    # Set union that keeps first-seen order, target tags first.
    return list(dict.fromkeys([*(target_tags or []), *(source_tags or [])]))


def merged_attributes(target: Developer, source: Developer) -> dict[str, Any]:
    return {
        "tags": merge_tags(target.tags, source.tags),
        "display_name": target.display_name or source.display_name,
        "org_id": target.org_id or source.org_id,
        "primary_email": target.primary_email or source.primary_email,
    }


def _label(developer: Developer) -> str:
    return developer.display_name or developer.id


async def merge_developers(
    executor: TenantContextExecutor,
    tenant_id: str,
    into_id: str,
    from_id: str,
    reason: str | None = None,
    merged_by: str | None = None,
) -> Developer:
    request = validate_merge_request(
        {
            "into_developer_id": into_id,
            "from_developer_id": from_id,
            "reason": reason,
            "merged_by": merged_by,
        }
    ).unwrap()
    default_reason = get_settings().merge_default_reason

    async def _work(tx: TenantSession) -> Developer:
        target = await developers_repo.get_developer(
            tx.session, tenant_id=tx.tenant_id, developer_id=request.into_developer_id
        )
        if target is None:
            raise NotFoundError(
                "Target developer not found",
                resource="developer",
                resource_id=request.into_developer_id,
            )
        source = await developers_repo.get_developer(
            tx.session, tenant_id=tx.tenant_id, developer_id=request.from_developer_id
        )
        if source is None:
            raise NotFoundError(
                "Source developer not found",
                resource="developer",
                resource_id=request.from_developer_id,
            )

        moved_identifiers = await identifiers_repo.reassign_developer(
            tx.session,
            tenant_id=tx.tenant_id,
            from_developer_id=source.id,
            into_developer_id=target.id,
        )
        moved_accounts = await accounts_repo.reassign_developer(
            tx.session,
            tenant_id=tx.tenant_id,
            from_developer_id=source.id,
            into_developer_id=target.id,
        )

        attributes = merged_attributes(target, source)
        method = METHOD_MANUAL if request.merged_by else METHOD_AUTOMATIC
        tx.session.add(
            DeveloperMergeLog(
                id=new_id(),
                tenant_id=tx.tenant_id,
                into_developer_id=target.id,
                from_developer_id=source.id,
                reason=request.reason or default_reason,
                evidence_json={
                    "method": method,
                    "merged_from": _label(source),
                    "merged_into": _label(target),
                    "moved_identifiers": moved_identifiers,
                    "moved_accounts": moved_accounts,
                },
                merged_at=datetime.now(timezone.utc),
                merged_by=request.merged_by,
            )
        )

        # The source goes before the target takes its email: (tenant_id, primary_email) is unique.
        await developers_repo.delete_developer(
            tx.session, tenant_id=tx.tenant_id, developer_id=source.id
        )

        for name, value in attributes.items():
            setattr(target, name, value)
        target.updated_at = datetime.now(timezone.utc)
        await tx.session.flush()

        logger.info(
            "developers_merged tenant_id=%s into=%s from=%s method=%s identifiers=%s accounts=%s",
            tx.tenant_id,
            target.id,
            source.id,
            method,
            moved_identifiers,
            moved_accounts,
        )
        return target

    return await executor.run(tenant_id, _work)


async def list_merge_logs(
    executor: TenantContextExecutor,
    tenant_id: str,
    developer_id: str | None = None,
    *,
    offset: int = 0,
    limit: int = 50,
) -> list[DeveloperMergeLog]:
    async def _work(tx: TenantSession) -> list[DeveloperMergeLog]:
        return await merge_logs_repo.list_merge_logs(
            tx.session,
            tenant_id=tx.tenant_id,
            developer_id=developer_id,
            offset=offset,
            limit=limit,
        )

    return await executor.run(tenant_id, _work)
