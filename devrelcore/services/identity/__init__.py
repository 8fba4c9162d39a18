from __future__ import annotations

# Re-export identity services for centralized imports.

from devrelcore.services.identity.developers import create_developer, get_developer
from devrelcore.services.identity.identifiers import add_identifier, list_identifiers, remove_identifier
from devrelcore.services.identity.merge import list_merge_logs, merge_developers
from devrelcore.services.identity.normalization import combine_confidences, normalize_identifier
from devrelcore.services.identity.resolver import (
    DuplicateCandidate,
    MatchedEvidence,
    find_duplicate_developers,
    rank_duplicate_candidates,
    resolve_developer_by_account,
    resolve_developer_by_identifier,
)

__all__ = [
    "create_developer",
    "get_developer",
    "add_identifier",
    "list_identifiers",
    "remove_identifier",
    "list_merge_logs",
    "merge_developers",
    "combine_confidences",
    "normalize_identifier",
    "DuplicateCandidate",
    "MatchedEvidence",
    "find_duplicate_developers",
    "rank_duplicate_candidates",
    "resolve_developer_by_account",
    "resolve_developer_by_identifier",
]
