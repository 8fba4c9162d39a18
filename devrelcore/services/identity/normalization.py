from __future__ import annotations

import re
from typing import Iterable


_PHONE_STRIP = re.compile(r"[^0-9+]")
_CASE_FOLDED_KINDS = {"email", "domain"}


def normalize_identifier(kind: str, value: str) -> str:
    # Stored identifiers are always normalized, so lookups must apply the same rules.
    normalized = value.strip()
    if kind in _CASE_FOLDED_KINDS:
        normalized = normalized.lower()
    if kind == "phone":
        normalized = _PHONE_STRIP.sub("", normalized)
    return normalized


def combine_confidences(confidences: Iterable[float]) -> float:
    # Independent evidence: 1 - product(1 - c). One match keeps its own score.
    values = [min(1.0, max(0.0, float(c))) for c in confidences]
    if not values:
        return 0.0
    remaining = 1.0
    for value in values:
        remaining *= 1.0 - value
    return 1.0 - remaining
