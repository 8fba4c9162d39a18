"""Identity resolution.

Accounts are the primary path: an exact (provider, external_user_id) match
with no ranking. Identifier lookups fall back through three tiers in a fixed
order, and the first hit wins:

1. ``developer_identifiers`` on (kind, normalized value)
2. for emails, ``accounts.email`` on an account already bound to a developer
3. for emails, ``developers.primary_email``

The order is the tie-break when older and newer identity data disagree, so
it must not be reshuffled. Lookups return ``None`` for "not found" and never
raise ``NotFoundError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging

from devrelcore.domain.inputs import validate_account_lookup, validate_identifier_lookup
from devrelcore.domain.models import Developer
from devrelcore.persistence.repos import accounts as accounts_repo
from devrelcore.persistence.repos import developers as developers_repo
from devrelcore.persistence.repos import identifiers as identifiers_repo
from devrelcore.persistence.tenant_context import TenantContextExecutor, TenantSession
from devrelcore.services.identity.normalization import combine_confidences, normalize_identifier


logger = logging.getLogger(__name__)

ACCOUNT_MATCH_CONFIDENCE = 1.0
EMAIL_MATCH_CONFIDENCE = 1.0


@dataclass(frozen=True)
class MatchedEvidence:
    kind: str
    value: str
    confidence: float


@dataclass(frozen=True)
class DuplicateCandidate:
    developer: Developer
    confidence: float
    matched_identifiers: tuple[MatchedEvidence, ...] = field(default_factory=tuple)


def rank_duplicate_candidates(
    matches: dict[str, list[MatchedEvidence]],
    developers: dict[str, Developer],
) -> list[DuplicateCandidate]:
    # Rows deleted since the evidence was read are dropped; ties fall back to id order.
    candidates = [
        DuplicateCandidate(
            developer=developers[other_id],
            confidence=combine_confidences(e.confidence for e in evidence),
            matched_identifiers=tuple(evidence),
        )
        for other_id, evidence in matches.items()
        if other_id in developers
    ]
    candidates.sort(key=lambda c: (-c.confidence, c.developer.id))
    return candidates


async def resolve_developer_by_account(
    executor: TenantContextExecutor,
    tenant_id: str,
    provider: str,
    external_user_id: str,
) -> Developer | None:
    lookup = validate_account_lookup(
        {"provider": provider, "external_user_id": external_user_id}
    ).unwrap()

    async def _work(tx: TenantSession) -> Developer | None:
        account = await accounts_repo.get_by_external_id(
            tx.session,
            tenant_id=tx.tenant_id,
            provider=lookup.provider,
            external_user_id=lookup.external_user_id,
        )
        if account is None or account.developer_id is None:
            return None
        return await developers_repo.get_developer(
            tx.session, tenant_id=tx.tenant_id, developer_id=account.developer_id
        )

    return await executor.run(tenant_id, _work)


async def resolve_developer_by_identifier(
    executor: TenantContextExecutor,
    tenant_id: str,
    kind: str,
    value: str,
) -> Developer | None:
    lookup = validate_identifier_lookup({"kind": kind, "value": value}).unwrap()
    normalized = normalize_identifier(lookup.kind, lookup.value)

    async def _work(tx: TenantSession) -> Developer | None:
        identifier = await identifiers_repo.get_by_value(
            tx.session, tenant_id=tx.tenant_id, kind=lookup.kind, value_normalized=normalized
        )
        if identifier is not None:
            developer = await developers_repo.get_developer(
                tx.session, tenant_id=tx.tenant_id, developer_id=identifier.developer_id
            )
            if developer is not None:
                return developer

        if lookup.kind != "email":
            return None

        account = await accounts_repo.get_resolved_by_email(
            tx.session, tenant_id=tx.tenant_id, email=normalized
        )
        if account is not None and account.developer_id is not None:
            developer = await developers_repo.get_developer(
                tx.session, tenant_id=tx.tenant_id, developer_id=account.developer_id
            )
            if developer is not None:
                return developer

        return await developers_repo.get_by_primary_email(
            tx.session, tenant_id=tx.tenant_id, email=normalized
        )

    return await executor.run(tenant_id, _work)


async def find_duplicate_developers(
    executor: TenantContextExecutor,
    tenant_id: str,
    developer_id: str,
) -> list[DuplicateCandidate]:
    # Read-only. Unique constraints normally keep this empty; imports are the usual exception.

    async def _work(tx: TenantSession) -> list[DuplicateCandidate]:
        matches: dict[str, list[MatchedEvidence]] = {}

        def _add(other_id: str | None, evidence: MatchedEvidence) -> None:
            if not other_id or other_id == developer_id:
                return
            matches.setdefault(other_id, []).append(evidence)

        own_accounts = await accounts_repo.list_for_developer(
            tx.session, tenant_id=tx.tenant_id, developer_id=developer_id
        )
        for account in own_accounts:
            for other in await accounts_repo.list_by_external_id(
                tx.session,
                tenant_id=tx.tenant_id,
                provider=account.provider,
                external_user_id=account.external_user_id,
            ):
                _add(
                    other.developer_id,
                    MatchedEvidence(
                        kind="account",
                        value=f"{account.provider}:{account.external_user_id}",
                        confidence=ACCOUNT_MATCH_CONFIDENCE,
                    ),
                )

        own_identifiers = await identifiers_repo.list_for_developer(
            tx.session, tenant_id=tx.tenant_id, developer_id=developer_id
        )
        for identifier in own_identifiers:
            for other in await identifiers_repo.list_by_value(
                tx.session,
                tenant_id=tx.tenant_id,
                kind=identifier.kind,
                value_normalized=identifier.value_normalized,
            ):
                _add(
                    other.developer_id,
                    MatchedEvidence(
                        kind=identifier.kind,
                        value=identifier.value_normalized,
                        confidence=float(other.confidence),
                    ),
                )

        current = await developers_repo.get_developer(
            tx.session, tenant_id=tx.tenant_id, developer_id=developer_id
        )
        if current is not None and current.primary_email:
            for other in await developers_repo.list_by_primary_email(
                tx.session, tenant_id=tx.tenant_id, email=current.primary_email
            ):
                _add(
                    other.id,
                    MatchedEvidence(
                        kind="email",
                        value=current.primary_email,
                        confidence=EMAIL_MATCH_CONFIDENCE,
                    ),
                )

        developers = await developers_repo.get_many(
            tx.session, tenant_id=tx.tenant_id, developer_ids=list(matches)
        )
        candidates = rank_duplicate_candidates(matches, developers)
        if candidates:
            logger.info(
                "duplicate_developers_found tenant_id=%s developer_id=%s count=%s",
                tx.tenant_id,
                developer_id,
                len(candidates),
            )
        return candidates

    return await executor.run(tenant_id, _work)
