"""
Analytics Module for lw-analyzer
================================

Turns LoRaWAN gateway exports into per-device and fleet-wide link
quality analytics: packet loss reconstructed from frame counters,
no-data gaps, frequency/gateway usage, silent-day backfill and a
two-tier device classification.

Architecture Overview
---------------------
The engine is one pure function, build_analytics(records, options).
Every call recomputes everything from the records it is given; nothing
is cached between calls and no input is modified.

Components
----------
    records:
        RawRecord / FrameDirection, the canonical input row.

    time_window:
        Filter window clipping, overall time range and date axis.

    counters:
        Segment-based frame-counter reconstruction (expected, lost,
        duplicates, resets, span).

    gaps:
        Inter-arrival silences above a minute threshold.

    usage:
        Frequency/gateway catalog and zero-filled usage counts.

    node_stats / global_stats:
        Per-device total, timeline and daily series; fleet-stream
        totals.

    backfill:
        100% loss entries for device-days with no traffic, and the
        fleet daily rebuild from per-device entries.

    classification:
        Priority-ordered rules, exception tags and threshold views.

    processor:
        The pipeline and the AnalyticsContainer it returns.

Sentinels
---------
    lossRatePercent -1   nothing expected
    frameCounterSpan -1  fewer than two records
    maxGapMinutes -1     no gap found / gap detection off
    avgRSSI / avgSNR / timestamps None when no data

Usage Example
-------------
    from lwanalyzer.analytics import build_analytics, build_classification_config
    from lwanalyzer.data_acquisition import read_csv_records

    records = read_csv_records("gateway_export.csv", timezone="Europe/Berlin")
    container = build_analytics(records, {
        "gapThresholdMinutes": 60,
        "classification": build_classification_config(
            loss_rate_threshold=5, reset_threshold=2, gap_threshold_minutes=60,
        ),
    })
    print(container.threshold.total.exception)
"""

from .records import (
    RawRecord,
    FrameDirection,
    sort_by_time,
    uplink_only,
)
from .time_window import (
    FilterWindow,
    FilterResult,
    TimeRange,
    apply_filter_window,
    calc_time_range,
)
from .counters import (
    FrameCounterStats,
    compute_counters,
    loss_rate,
    LOSS_RATE_NOT_APPLICABLE,
    SPAN_NOT_APPLICABLE,
)
from .gaps import (
    GapInterval,
    GapReport,
    detect_gaps,
    NO_GAP,
)
from .usage import (
    UsageCatalog,
    UsageCounts,
    compute_usage,
)
from .node_stats import (
    SequenceStats,
    NodeStat,
    NodeId,
    NodeTimeline,
    NodeTotalStat,
    NodeDailyStat,
    ExceptionMarks,
    aggregate_nodes,
    calc_node_stat,
)
from .global_stats import (
    GlobalStat,
    GlobalTotalStat,
    GlobalDailyStat,
    calc_global,
)
from .backfill import (
    DailyFillPolicy,
    fill_missing_days,
    rebuild_global_daily,
)
from .classification import (
    Category,
    ComparisonOp,
    MetricKey,
    Rule,
    ClassificationConfig,
    ThresholdView,
    build_classification_config,
    build_threshold_view,
    classify_metrics,
    get_exception_matches,
)
from .processor import (
    AnalyticsOptions,
    AnalyticsContainer,
    AnalyticsMeta,
    build_analytics,
)
from .errors import (
    ErrorCode,
    AnalyticsError,
    error_result,
    error_result_from_exception,
    exit_status_for,
)
from .config import Config, reload_config
from .validation import (
    ValidationError,
    validate_positive_int,
    validate_positive_float,
    validate_bool,
    validate_string_choice,
    validate_datetime,
)

__all__ = [
    # Records
    "RawRecord",
    "FrameDirection",
    "sort_by_time",
    "uplink_only",
    # Time window
    "FilterWindow",
    "FilterResult",
    "TimeRange",
    "apply_filter_window",
    "calc_time_range",
    # Counters
    "FrameCounterStats",
    "compute_counters",
    "loss_rate",
    "LOSS_RATE_NOT_APPLICABLE",
    "SPAN_NOT_APPLICABLE",
    # Gaps
    "GapInterval",
    "GapReport",
    "detect_gaps",
    "NO_GAP",
    # Usage
    "UsageCatalog",
    "UsageCounts",
    "compute_usage",
    # Aggregation
    "SequenceStats",
    "NodeStat",
    "NodeId",
    "NodeTimeline",
    "NodeTotalStat",
    "NodeDailyStat",
    "ExceptionMarks",
    "aggregate_nodes",
    "calc_node_stat",
    "GlobalStat",
    "GlobalTotalStat",
    "GlobalDailyStat",
    "calc_global",
    # Backfill
    "DailyFillPolicy",
    "fill_missing_days",
    "rebuild_global_daily",
    # Classification
    "Category",
    "ComparisonOp",
    "MetricKey",
    "Rule",
    "ClassificationConfig",
    "ThresholdView",
    "build_classification_config",
    "build_threshold_view",
    "classify_metrics",
    "get_exception_matches",
    # Processor
    "AnalyticsOptions",
    "AnalyticsContainer",
    "AnalyticsMeta",
    "build_analytics",
    # Errors
    "ErrorCode",
    "AnalyticsError",
    "error_result",
    "error_result_from_exception",
    "exit_status_for",
    # Config
    "Config",
    "reload_config",
    # Validation
    "ValidationError",
    "validate_positive_int",
    "validate_positive_float",
    "validate_bool",
    "validate_string_choice",
    "validate_datetime",
]
