from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from devrelcore.core.errors import ValidationError
from devrelcore.domain.inputs import (
    validate_account_lookup,
    validate_identifier_lookup,
    validate_merge_request,
    validate_new_activity,
    validate_new_developer,
    validate_time_series_query,
)


def test_merge_request_rejects_self_merge() -> None:
    result = validate_merge_request({"into_developer_id": "d1", "from_developer_id": "d1"})
    assert not result.ok
    assert result.value is None
    assert result.errors[0].message == "Cannot merge developer with itself"
    with pytest.raises(ValidationError, match="Cannot merge developer with itself"):
        result.unwrap()


def test_merge_request_accepts_distinct_ids() -> None:
    request = validate_merge_request(
        {"into_developer_id": "d1", "from_developer_id": "d2", "merged_by": "user-1"}
    ).unwrap()
    assert request.reason is None
    assert request.merged_by == "user-1"


def test_identifier_lookup_rejects_unknown_kind() -> None:
    result = validate_identifier_lookup({"kind": "fax", "value": "123"})
    assert not result.ok
    assert result.errors[0].field == "kind"


def test_account_lookup_requires_values() -> None:
    result = validate_account_lookup({"provider": "", "external_user_id": "1"})
    assert not result.ok
    assert result.errors[0].field == "provider"


def test_time_series_query_rejects_unknown_granularity() -> None:
    result = validate_time_series_query(
        {
            "from_date": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "to_date": datetime(2024, 2, 1, tzinfo=timezone.utc),
            "granularity": "hour",
        }
    )
    assert not result.ok
    assert result.errors[0].field == "granularity"


def test_time_series_query_rejects_inverted_range() -> None:
    result = validate_time_series_query(
        {
            "from_date": datetime(2024, 2, 1, tzinfo=timezone.utc),
            "to_date": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "granularity": "day",
        }
    )
    assert not result.ok
    assert "Invalid date range" in result.errors[0].message


def test_time_series_query_treats_naive_datetimes_as_utc() -> None:
    query = validate_time_series_query(
        {"from_date": datetime(2024, 1, 1), "to_date": datetime(2024, 1, 1), "granularity": "week"}
    ).unwrap()
    assert query.from_date.tzinfo is timezone.utc
    assert query.from_date == query.to_date


def test_new_activity_converts_offset_timestamps_to_utc() -> None:
    eastern = timezone(timedelta(hours=-5))
    activity = validate_new_activity(
        {
            "action": "click",
            "occurred_at": datetime(2024, 1, 1, 20, tzinfo=eastern),
            "source": "web",
            "anon_id": "anon-1",
        }
    ).unwrap()
    assert activity.occurred_at.tzinfo is timezone.utc
    assert activity.occurred_at == datetime(2024, 1, 2, 1, tzinfo=timezone.utc)


def test_new_developer_folds_email_and_dedupes_tags() -> None:
    developer = validate_new_developer(
        {"primary_email": "  Ada@Example.com ", "tags": ["oss", "speaker", "oss"]}
    ).unwrap()
    assert developer.primary_email == "ada@example.com"
    assert developer.tags == ["oss", "speaker"]


def test_new_activity_requires_an_actor() -> None:
    result = validate_new_activity(
        {"action": "click", "occurred_at": datetime(2024, 1, 1), "source": "web"}
    )
    assert not result.ok
    assert "At least one of" in result.errors[0].message


def test_new_activity_rejects_confidence_out_of_range() -> None:
    result = validate_new_activity(
        {
            "action": "click",
            "occurred_at": datetime(2024, 1, 1),
            "source": "web",
            "anon_id": "anon-1",
            "confidence": 1.5,
        }
    )
    assert not result.ok
    assert result.errors[0].field == "confidence"
