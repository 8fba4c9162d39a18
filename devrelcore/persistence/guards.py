from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import and_

from devrelcore.core.config import get_settings


@dataclass(frozen=True)
class TenantPredicateError(RuntimeError):
    # Raised when a repository query is about to run without a tenant filter.
    message: str


def require_tenant_id(tenant_id: str | None) -> None:
    settings = get_settings()
    if not settings.authz_require_tenant_predicate:
        return
    if not tenant_id:
        raise TenantPredicateError("Tenant predicate required but tenant_id is missing")


def tenant_predicate(tenant_id: str, *models) -> object:
    # Every table touched by a statement gets its own tenant clause, joins included.
    require_tenant_id(tenant_id)
    if not models:
        raise TenantPredicateError("Tenant predicate requires at least one model")
    clauses = [model.tenant_id == tenant_id for model in models]
    if len(clauses) == 1:
        return clauses[0]
    return and_(*clauses)
