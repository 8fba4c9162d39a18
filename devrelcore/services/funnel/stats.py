"""Funnel aggregates.

Stage counts join activities to the tenant's action map. Unique developer
counts use ``COUNT(DISTINCT developer_id)``, so anonymous activities add to a
stage's activity total but never to its developer count.

Drop rates compare each stage with its predecessor in ``order_no`` order::

    drop_rate = (previous - current) / previous * 100

The first stage has no predecessor and a predecessor with zero developers
gives ``None`` rather than an infinite or NaN rate.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any

from devrelcore.core.errors import ValidationError
from devrelcore.domain.inputs import validate_time_series_query
from devrelcore.domain.models import FunnelStage
from devrelcore.persistence.repos import funnel as funnel_repo
from devrelcore.persistence.tenant_context import TenantContextExecutor, TenantSession


logger = logging.getLogger(__name__)

FIRST_STAGE_KEY = funnel_repo.DEFAULT_STAGES[0][0]


@dataclass(frozen=True)
class StageStats:
    stage_key: str
    title: str
    order_no: int
    unique_developers: int
    total_activities: int


@dataclass(frozen=True)
class FunnelStats:
    stages: list[StageStats]
    total_developers: int


@dataclass(frozen=True)
class DropRateStats:
    stage_key: str
    title: str
    order_no: int
    unique_developers: int
    previous_stage_count: int
    drop_rate: float | None


@dataclass(frozen=True)
class FunnelDropRates:
    stages: list[DropRateStats]
    overall_conversion_rate: float


@dataclass(frozen=True)
class StageBucketStats:
    stage_key: str
    unique_developers: int
    drop_rate: float | None


@dataclass(frozen=True)
class TimeSeriesPoint:
    # Start of the bucket in UTC.
    date: datetime
    stages: list[StageBucketStats]


def drop_rate(previous: int, current: int) -> float | None:
    if previous == 0:
        return None
    return (previous - current) / previous * 100


def conversion_rate(first: int, last: int) -> float:
    if first == 0:
        return 0.0
    return last / first * 100


async def _collect_stats(tx: TenantSession) -> FunnelStats:
    stages: list[StageStats] = []
    for stage in await funnel_repo.list_stages(tx.session):
        unique_developers, total_activities = await funnel_repo.count_stage(
            tx.session, tenant_id=tx.tenant_id, stage_key=stage.stage_key
        )
        stages.append(
            StageStats(
                stage_key=stage.stage_key,
                title=stage.title,
                order_no=stage.order_no,
                unique_developers=unique_developers,
                total_activities=total_activities,
            )
        )
    total = await funnel_repo.count_mapped_developers(tx.session, tenant_id=tx.tenant_id)
    return FunnelStats(stages=stages, total_developers=total)


async def get_funnel_stats(executor: TenantContextExecutor, tenant_id: str) -> FunnelStats:
    # Per-stage counts are separate statements in one transaction, so they share a snapshot.
    return await executor.run(tenant_id, _collect_stats)


def _drop_rates(stats: FunnelStats) -> FunnelDropRates:
    rows: list[DropRateStats] = []
    previous: StageStats | None = None
    for stage in stats.stages:
        previous_count = previous.unique_developers if previous is not None else 0
        rows.append(
            DropRateStats(
                stage_key=stage.stage_key,
                title=stage.title,
                order_no=stage.order_no,
                unique_developers=stage.unique_developers,
                previous_stage_count=previous_count,
                drop_rate=(
                    drop_rate(previous_count, stage.unique_developers)
                    if previous is not None
                    else None
                ),
            )
        )
        previous = stage
    overall = 0.0
    if rows:
        overall = conversion_rate(rows[0].unique_developers, rows[-1].unique_developers)
    return FunnelDropRates(stages=rows, overall_conversion_rate=overall)


async def get_funnel_drop_rates(executor: TenantContextExecutor, tenant_id: str) -> FunnelDropRates:
    async def _work(tx: TenantSession) -> FunnelDropRates:
        return _drop_rates(await _collect_stats(tx))

    return await executor.run(tenant_id, _work)


async def calculate_drop_rate(
    executor: TenantContextExecutor,
    tenant_id: str,
    stage_key: str,
) -> DropRateStats:
    if stage_key == FIRST_STAGE_KEY:
        raise ValidationError(
            f"Cannot calculate drop rate for {FIRST_STAGE_KEY} stage (first stage has no previous stage)",
            field="stage_key",
        )

    async def _work(tx: TenantSession) -> DropRateStats:
        stages = await funnel_repo.list_stages(tx.session)
        index = next((i for i, s in enumerate(stages) if s.stage_key == stage_key), None)
        if index is None:
            raise ValidationError(f"Unknown funnel stage: {stage_key}", field="stage_key")
        if index == 0:
            raise ValidationError(
                f"Cannot calculate drop rate for {stage_key} stage (first stage has no previous stage)",
                field="stage_key",
            )
        current: FunnelStage = stages[index]
        current_count, _ = await funnel_repo.count_stage(
            tx.session, tenant_id=tx.tenant_id, stage_key=current.stage_key
        )
        previous_count, _ = await funnel_repo.count_stage(
            tx.session, tenant_id=tx.tenant_id, stage_key=stages[index - 1].stage_key
        )
        return DropRateStats(
            stage_key=current.stage_key,
            title=current.title,
            order_no=current.order_no,
            unique_developers=current_count,
            previous_stage_count=previous_count,
            drop_rate=drop_rate(previous_count, current_count),
        )

    return await executor.run(tenant_id, _work)


def _bucket_start(value: Any) -> datetime:
    # Postgres returns datetimes; SQLite's strftime buckets come back as text.
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def get_funnel_time_series(
    executor: TenantContextExecutor,
    tenant_id: str,
    from_date: datetime,
    to_date: datetime,
    granularity: str,
) -> list[TimeSeriesPoint]:
    query = validate_time_series_query(
        {"from_date": from_date, "to_date": to_date, "granularity": granularity}
    ).unwrap()

    async def _work(tx: TenantSession) -> list[TimeSeriesPoint]:
        stages = await funnel_repo.list_stages(tx.session)
        rows = await funnel_repo.stage_counts_by_bucket(
            tx.session,
            tenant_id=tx.tenant_id,
            from_date=query.from_date,
            to_date=query.to_date,
            granularity=query.granularity,
        )
        # Rows arrive ordered by bucket; buckets with no activity never appear.
        buckets: dict[datetime, dict[str, int]] = {}
        for bucket, stage_key, unique_developers in rows:
            buckets.setdefault(_bucket_start(bucket), {})[stage_key] = unique_developers

        points: list[TimeSeriesPoint] = []
        for start, counts in buckets.items():
            stage_rows: list[StageBucketStats] = []
            for index, stage in enumerate(stages):
                current = counts.get(stage.stage_key, 0)
                rate = None
                if index > 0:
                    rate = drop_rate(counts.get(stages[index - 1].stage_key, 0), current)
                stage_rows.append(
                    StageBucketStats(stage_key=stage.stage_key, unique_developers=current, drop_rate=rate)
                )
            points.append(TimeSeriesPoint(date=start, stages=stage_rows))
        logger.debug(
            "funnel_time_series tenant_id=%s granularity=%s points=%s",
            tx.tenant_id,
            query.granularity,
            len(points),
        )
        return points

    return await executor.run(tenant_id, _work)
