from __future__ import annotations

# Re-export funnel services for centralized imports.

from devrelcore.services.funnel.activities import record_activity
from devrelcore.services.funnel.classification import (
    Classification,
    classify_activity_stage,
    list_action_stages,
    remove_action_stage,
    set_action_stage,
)
from devrelcore.services.funnel.stats import (
    DropRateStats,
    FunnelDropRates,
    FunnelStats,
    StageBucketStats,
    StageStats,
    TimeSeriesPoint,
    calculate_drop_rate,
    get_funnel_drop_rates,
    get_funnel_stats,
    get_funnel_time_series,
)

__all__ = [
    "record_activity",
    "Classification",
    "classify_activity_stage",
    "list_action_stages",
    "remove_action_stage",
    "set_action_stage",
    "DropRateStats",
    "FunnelDropRates",
    "FunnelStats",
    "StageBucketStats",
    "StageStats",
    "TimeSeriesPoint",
    "calculate_drop_rate",
    "get_funnel_drop_rates",
    "get_funnel_stats",
    "get_funnel_time_series",
]
