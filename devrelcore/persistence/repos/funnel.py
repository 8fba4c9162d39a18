from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import and_, delete, func, literal_column, select
from sqlalchemy.ext.asyncio import AsyncSession

from devrelcore.domain.models import Activity, ActivityFunnelMap, FunnelStage
from devrelcore.persistence.guards import tenant_predicate


# Global stage dictionary seeded by 0001_init; order_no defines the funnel order.
DEFAULT_STAGES: tuple[tuple[str, int, str], ...] = (
    ("awareness", 1, "Awareness"),
    ("engagement", 2, "Engagement"),
    ("adoption", 3, "Adoption"),
    ("advocacy", 4, "Advocacy"),
)

# Only these fixed literals are ever rendered into the bucket expression.
_PG_TRUNC_UNITS = {
    "day": literal_column("'day'"),
    "week": literal_column("'week'"),
    "month": literal_column("'month'"),
}
_UTC = literal_column("'UTC'")


def _mapped_activities_join():
    return and_(
        Activity.action == ActivityFunnelMap.action,
        Activity.tenant_id == ActivityFunnelMap.tenant_id,
    )


async def list_stages(session: AsyncSession) -> list[FunnelStage]:
    result = await session.execute(select(FunnelStage).order_by(FunnelStage.order_no))
    return list(result.scalars().all())


async def seed_stages(session: AsyncSession) -> None:
    # Insert any missing default stages; existing rows are left untouched.
    existing = {stage.stage_key for stage in await list_stages(session)}
    for stage_key, order_no, title in DEFAULT_STAGES:
        if stage_key not in existing:
            session.add(FunnelStage(stage_key=stage_key, order_no=order_no, title=title))
    await session.flush()


async def get_activity(
    session: AsyncSession,
    *,
    tenant_id: str,
    activity_id: str,
) -> Activity | None:
    stmt = select(Activity).where(Activity.id == activity_id, tenant_predicate(tenant_id, Activity))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_mapping(
    session: AsyncSession,
    *,
    tenant_id: str,
    action: str,
) -> ActivityFunnelMap | None:
    stmt = select(ActivityFunnelMap).where(
        ActivityFunnelMap.action == action,
        tenant_predicate(tenant_id, ActivityFunnelMap),
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_mappings(session: AsyncSession, *, tenant_id: str) -> list[ActivityFunnelMap]:
    stmt = (
        select(ActivityFunnelMap)
        .where(tenant_predicate(tenant_id, ActivityFunnelMap))
        .order_by(ActivityFunnelMap.action)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def delete_mapping(session: AsyncSession, *, tenant_id: str, action: str) -> int:
    stmt = delete(ActivityFunnelMap).where(
        ActivityFunnelMap.action == action,
        tenant_predicate(tenant_id, ActivityFunnelMap),
    )
    result = await session.execute(stmt)
    return int(result.rowcount or 0)


async def count_stage(
    session: AsyncSession,
    *,
    tenant_id: str,
    stage_key: str,
) -> tuple[int, int]:
    # Returns (unique developers, total activities); anonymous rows count only toward the total.
    stmt = (
        select(
            func.count(func.distinct(Activity.developer_id)),
            func.count(Activity.id),
        )
        .select_from(Activity)
        .join(ActivityFunnelMap, _mapped_activities_join())
        .where(
            ActivityFunnelMap.stage_key == stage_key,
            tenant_predicate(tenant_id, Activity, ActivityFunnelMap),
        )
    )
    result = await session.execute(stmt)
    unique_developers, total_activities = result.one()
    return int(unique_developers or 0), int(total_activities or 0)


async def count_mapped_developers(session: AsyncSession, *, tenant_id: str) -> int:
    stmt = (
        select(func.count(func.distinct(Activity.developer_id)))
        .select_from(Activity)
        .join(ActivityFunnelMap, _mapped_activities_join())
        .where(tenant_predicate(tenant_id, Activity, ActivityFunnelMap))
    )
    result = await session.execute(stmt)
    return int(result.scalar_one() or 0)


def bucket_expression(dialect_name: str, granularity: str, column) -> Any:
    # Callers validate granularity first; unknown values never build SQL.
    if dialect_name == "postgresql":
        # Truncate the UTC wall time so buckets do not follow the session TimeZone.
        return func.date_trunc(_PG_TRUNC_UNITS[granularity], func.timezone(_UTC, column))
    if dialect_name == "sqlite":
        if granularity == "day":
            return func.strftime("%Y-%m-%d 00:00:00", column)
        if granularity == "week":
            # ISO weeks start on Monday, matching date_trunc('week').
            return func.strftime("%Y-%m-%d 00:00:00", column, "weekday 0", "-6 days")
        if granularity == "month":
            return func.strftime("%Y-%m-01 00:00:00", column)
        raise KeyError(granularity)
    raise NotImplementedError(f"Time bucketing is not supported for dialect {dialect_name}")


async def stage_counts_by_bucket(
    session: AsyncSession,
    *,
    tenant_id: str,
    from_date: datetime,
    to_date: datetime,
    granularity: str,
) -> list[tuple[Any, str, int]]:
    # One row per (bucket, stage) with at least one mapped activity in range.
    scope = tenant_predicate(tenant_id, Activity, ActivityFunnelMap)
    bucket = bucket_expression(session.bind.dialect.name, granularity, Activity.occurred_at).label("bucket")
    stmt = (
        select(
            bucket,
            ActivityFunnelMap.stage_key,
            func.count(func.distinct(Activity.developer_id)),
        )
        .select_from(Activity)
        .join(ActivityFunnelMap, _mapped_activities_join())
        .where(
            scope,
            Activity.occurred_at >= from_date,
            Activity.occurred_at <= to_date,
        )
        .group_by(bucket, ActivityFunnelMap.stage_key)
        .order_by(bucket, ActivityFunnelMap.stage_key)
    )
    result = await session.execute(stmt)
    return [(row[0], str(row[1]), int(row[2] or 0)) for row in result.all()]
