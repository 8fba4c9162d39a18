from __future__ import annotations

from datetime import datetime, timezone
import logging

from sqlalchemy.exc import IntegrityError

from devrelcore.core.errors import ConflictError, NotFoundError, ValidationError
from devrelcore.domain.inputs import validate_identifier_lookup
from devrelcore.domain.models import DeveloperIdentifier, new_id
from devrelcore.persistence.integrity import is_unique_violation
from devrelcore.persistence.repos import developers as developers_repo
from devrelcore.persistence.repos import identifiers as identifiers_repo
from devrelcore.persistence.tenant_context import TenantContextExecutor, TenantSession
from devrelcore.services.identity.normalization import normalize_identifier


logger = logging.getLogger(__name__)


def _conflict(kind: str, value: str, owner_id: str | None) -> ConflictError:
    owner = f" ({owner_id})" if owner_id else ""
    return ConflictError(
        f"Identifier conflict: {kind}:{value} already belongs to another developer{owner}. "
        "Consider merging developers."
    )


async def add_identifier(
    executor: TenantContextExecutor,
    tenant_id: str,
    developer_id: str,
    kind: str,
    value: str,
    confidence: float = 1.0,
) -> DeveloperIdentifier:
    lookup = validate_identifier_lookup({"kind": kind, "value": value}).unwrap()
    if not 0.0 <= confidence <= 1.0:
        raise ValidationError("Confidence must be between 0.0 and 1.0", field="confidence")
    normalized = normalize_identifier(lookup.kind, lookup.value)

    async def _work(tx: TenantSession) -> DeveloperIdentifier:
        developer = await developers_repo.get_developer(
            tx.session, tenant_id=tx.tenant_id, developer_id=developer_id
        )
        if developer is None:
            raise NotFoundError(
                "Developer not found", resource="developer", resource_id=developer_id
            )

        now = datetime.now(timezone.utc)
        existing = await identifiers_repo.get_by_value(
            tx.session, tenant_id=tx.tenant_id, kind=lookup.kind, value_normalized=normalized
        )
        if existing is not None:
            if existing.developer_id != developer_id:
                raise _conflict(lookup.kind, normalized, existing.developer_id)
            # Re-attaching to the same owner refreshes confidence and last_seen only.
            existing.confidence = confidence
            existing.last_seen = now
            await tx.session.flush()
            return existing

        identifier = DeveloperIdentifier(
            id=new_id(),
            tenant_id=tx.tenant_id,
            developer_id=developer_id,
            kind=lookup.kind,
            value_normalized=normalized,
            confidence=confidence,
            first_seen=now,
            last_seen=now,
        )
        tx.session.add(identifier)
        try:
            await tx.session.flush()
        except IntegrityError as exc:
            # A concurrent attach won the race between our read and this insert.
            if is_unique_violation(exc):
                raise _conflict(lookup.kind, normalized, None) from exc
            raise
        logger.info(
            "identifier_attached tenant_id=%s developer_id=%s kind=%s",
            tx.tenant_id,
            developer_id,
            lookup.kind,
        )
        return identifier

    return await executor.run(tenant_id, _work)


async def list_identifiers(
    executor: TenantContextExecutor,
    tenant_id: str,
    developer_id: str,
) -> list[DeveloperIdentifier]:
    async def _work(tx: TenantSession) -> list[DeveloperIdentifier]:
        return await identifiers_repo.list_for_developer(
            tx.session, tenant_id=tx.tenant_id, developer_id=developer_id
        )

    return await executor.run(tenant_id, _work)


async def remove_identifier(
    executor: TenantContextExecutor,
    tenant_id: str,
    identifier_id: str,
) -> bool:
    async def _work(tx: TenantSession) -> bool:
        deleted = await identifiers_repo.delete_identifier(
            tx.session, tenant_id=tx.tenant_id, identifier_id=identifier_id
        )
        return deleted > 0

    return await executor.run(tenant_id, _work)
