from __future__ import annotations

import pytest

from devrelcore.core.errors import ValidationError
from devrelcore.services.funnel import (
    calculate_drop_rate,
    get_funnel_drop_rates,
    get_funnel_stats,
    set_action_stage,
)
from devrelcore.services.funnel.stats import conversion_rate, drop_rate
from devrelcore.tests.utils.factories import add_activity, add_developer


async def _map_default_actions(executor, tenant_id: str) -> None:
    await set_action_stage(executor, tenant_id, "click", "awareness")
    await set_action_stage(executor, tenant_id, "attend", "engagement")
    await set_action_stage(executor, tenant_id, "signup", "adoption")
    await set_action_stage(executor, tenant_id, "talk", "advocacy")


def test_drop_rate_arithmetic() -> None:
    assert drop_rate(2, 1) == pytest.approx(50.0)
    assert drop_rate(4, 4) == 0.0
    assert drop_rate(0, 3) is None
    assert conversion_rate(0, 0) == 0.0
    assert conversion_rate(4, 1) == pytest.approx(25.0)


@pytest.mark.asyncio
async def test_single_developer_through_two_stages(executor, tenant_id) -> None:
    await _map_default_actions(executor, tenant_id)
    developer = await add_developer(executor, tenant_id)
    await add_activity(executor, tenant_id, action="click", developer_id=developer.id)
    await add_activity(executor, tenant_id, action="attend", developer_id=developer.id)

    stats = await get_funnel_stats(executor, tenant_id)
    by_key = {stage.stage_key: stage for stage in stats.stages}

    assert [stage.stage_key for stage in stats.stages] == [
        "awareness",
        "engagement",
        "adoption",
        "advocacy",
    ]
    assert by_key["awareness"].unique_developers == 1
    assert by_key["engagement"].unique_developers == 1
    assert by_key["adoption"].unique_developers == 0
    assert stats.total_developers == 1

    engagement = await calculate_drop_rate(executor, tenant_id, "engagement")
    assert engagement.drop_rate == 0.0
    assert engagement.previous_stage_count == 1


@pytest.mark.asyncio
async def test_half_of_aware_developers_drop_before_engagement(executor, tenant_id) -> None:
    await _map_default_actions(executor, tenant_id)
    dev_a = await add_developer(executor, tenant_id)
    dev_b = await add_developer(executor, tenant_id)
    await add_activity(executor, tenant_id, action="click", developer_id=dev_a.id)
    await add_activity(executor, tenant_id, action="click", developer_id=dev_b.id)
    await add_activity(executor, tenant_id, action="attend", developer_id=dev_b.id)

    rates = await get_funnel_drop_rates(executor, tenant_id)

    assert rates.stages[0].drop_rate is None
    assert rates.stages[0].previous_stage_count == 0
    assert rates.stages[1].drop_rate == pytest.approx(50.0)
    assert rates.stages[2].drop_rate == pytest.approx(100.0)
    # Adoption is empty, so advocacy has no predecessor to divide by.
    assert rates.stages[3].drop_rate is None
    assert rates.overall_conversion_rate == 0.0


@pytest.mark.asyncio
async def test_overall_conversion_rate(executor, tenant_id) -> None:
    await _map_default_actions(executor, tenant_id)
    developers = [await add_developer(executor, tenant_id) for _ in range(4)]
    for developer in developers:
        await add_activity(executor, tenant_id, action="click", developer_id=developer.id)
    await add_activity(executor, tenant_id, action="talk", developer_id=developers[0].id)

    rates = await get_funnel_drop_rates(executor, tenant_id)

    assert rates.overall_conversion_rate == pytest.approx(25.0)


@pytest.mark.asyncio
async def test_empty_funnel_has_no_rates(executor, tenant_id) -> None:
    rates = await get_funnel_drop_rates(executor, tenant_id)

    assert [stage.drop_rate for stage in rates.stages] == [None, None, None, None]
    assert rates.overall_conversion_rate == 0.0


@pytest.mark.asyncio
async def test_stats_are_tenant_isolated(executor) -> None:
    for tenant in ("tenant-a", "tenant-b"):
        await set_action_stage(executor, tenant, "click", "awareness")
    dev_x = await add_developer(executor, "tenant-a")
    dev_y = await add_developer(executor, "tenant-b")
    await add_activity(executor, "tenant-a", action="click", developer_id=dev_x.id)
    await add_activity(executor, "tenant-b", action="click", developer_id=dev_y.id)
    await add_activity(executor, "tenant-b", action="click", developer_id=dev_y.id)

    stats = await get_funnel_stats(executor, "tenant-a")

    assert stats.stages[0].unique_developers == 1
    assert stats.stages[0].total_activities == 1
    assert stats.total_developers == 1


@pytest.mark.asyncio
async def test_mapping_of_another_tenant_does_not_apply(executor) -> None:
    await set_action_stage(executor, "tenant-a", "click", "awareness")
    developer = await add_developer(executor, "tenant-b")
    await add_activity(executor, "tenant-b", action="click", developer_id=developer.id)

    stats = await get_funnel_stats(executor, "tenant-b")

    assert stats.total_developers == 0
    assert all(stage.total_activities == 0 for stage in stats.stages)


@pytest.mark.asyncio
async def test_anonymous_activities_count_toward_totals_only(executor, tenant_id) -> None:
    await _map_default_actions(executor, tenant_id)
    developer = await add_developer(executor, tenant_id)
    await add_activity(executor, tenant_id, action="click", developer_id=developer.id)
    await add_activity(executor, tenant_id, action="click", developer_id=developer.id)
    await add_activity(executor, tenant_id, action="click", anon_id="anon-1")
    await add_activity(executor, tenant_id, action="unmapped", developer_id=developer.id)

    stats = await get_funnel_stats(executor, tenant_id)

    assert stats.stages[0].unique_developers == 1
    assert stats.stages[0].total_activities == 3


@pytest.mark.asyncio
async def test_calculate_drop_rate_rejects_first_and_unknown_stages(executor, tenant_id) -> None:
    with pytest.raises(ValidationError, match="awareness"):
        await calculate_drop_rate(executor, tenant_id, "awareness")
    with pytest.raises(ValidationError, match="Unknown funnel stage"):
        await calculate_drop_rate(executor, tenant_id, "retention")


@pytest.mark.asyncio
async def test_calculate_drop_rate_null_when_predecessor_empty(executor, tenant_id) -> None:
    await _map_default_actions(executor, tenant_id)
    developer = await add_developer(executor, tenant_id)
    await add_activity(executor, tenant_id, action="signup", developer_id=developer.id)

    adoption = await calculate_drop_rate(executor, tenant_id, "adoption")

    assert adoption.previous_stage_count == 0
    assert adoption.unique_developers == 1
    assert adoption.drop_rate is None
    assert adoption.title == "Adoption"
    assert adoption.order_no == 3
