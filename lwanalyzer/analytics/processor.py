"""
Analytics Processor - one rebuild from records to container
===========================================================

build_analytics() is the single entry point of the engine. It is a
pure function of (records, options): it holds no state between calls,
never mutates its inputs and always returns a structurally complete
AnalyticsContainer, including for empty or fully filtered-out input.

Pipeline
--------
    1. Clip records to the filter window (all directions).
    2. Keep uplink records for every quality/loss computation.
    3. Build the fleet-wide frequency/gateway catalog.
    4. Aggregate per device (total, timeline, daily).
    5. Derive the overall time range and its UTC date list.
    6. Backfill silent device-days (when enabled).
    7. Rerun the counters over the fleet stream (global.total).
    8. Rebuild global.daily from per-device daily entries.
    9. Classify every device per day and overall.
   10. Attach run metadata.

Options
-------
    {
        "filterWindow": {"start": ..., "end": ...,
                         "inclusiveStart": false, "inclusiveEnd": false},
        "classification": {...} | ClassificationConfig,
        "gapThresholdMinutes": 60,
        "dailyFill": {"enabled": true,
                      "expectedBaseline": "per-node-daily-median",
                      "fixedExpected": 1, "minExpected": 1}
    }

Every key is optional. Loose values are normalised, not rejected: an
unparseable date opens that side of the window, a non-positive gap
threshold disables gap detection, bad fill numbers use the defaults.
"""

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Union

from .backfill import DailyFillPolicy, fill_missing_days, rebuild_global_daily
from .classification import ClassificationConfig, ThresholdView, build_threshold_view
from .config import Config
from .global_stats import GlobalStat, calc_global
from .node_stats import NodeStat, aggregate_nodes
from .records import RawRecord, uplink_only
from .time_window import FilterWindow, TimeRange, apply_filter_window, calc_time_range
from .usage import UsageCatalog
from .utils import to_iso

logger = logging.getLogger("Analytics.Processor")

INCLUDE_DOWNLINK_IN_QUALITY = False
LOSS_RATE_SCOPE = "uplink-only"
RESET_RULE = "any-decrease"


def _gap_threshold(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        minutes = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring invalid gap threshold: {value!r}")
        return None
    if math.isnan(minutes) or minutes <= 0:
        return None
    return minutes


@dataclass(frozen=True)
class AnalyticsOptions:
    """Normalised options of one rebuild."""
    filter_window: FilterWindow = field(default_factory=FilterWindow)
    classification: ClassificationConfig = field(default_factory=ClassificationConfig.default)
    gap_threshold_minutes: Optional[float] = None
    daily_fill: DailyFillPolicy = field(default_factory=DailyFillPolicy.defaults)

    @classmethod
    def from_dict(cls, options: Optional[Mapping[str, Any]]) -> "AnalyticsOptions":
        if isinstance(options, AnalyticsOptions):
            return options
        options = options or {}

        window = options.get("filterWindow", options.get("filter_window"))
        classification = options.get("classification")
        fill = options.get("dailyFill", options.get("daily_fill"))
        if "gapThresholdMinutes" in options or "gap_threshold_minutes" in options:
            gap = options.get("gapThresholdMinutes", options.get("gap_threshold_minutes"))
        else:
            gap = Config.GAP.DEFAULT_THRESHOLD_MINUTES

        return cls(
            filter_window=FilterWindow.from_options(window),
            classification=ClassificationConfig.from_dict(classification),
            gap_threshold_minutes=_gap_threshold(gap),
            daily_fill=DailyFillPolicy.from_options(fill),
        )


@dataclass
class RecordCounts:
    input: int = 0
    filtered: int = 0
    uplink: int = 0
    nodes: int = 0

    def to_dict(self) -> dict:
        return {
            "input": self.input,
            "filtered": self.filtered,
            "uplink": self.uplink,
            "nodes": self.nodes,
        }


@dataclass
class AnalyticsMeta:
    """Run metadata echoed alongside the results."""
    generated_at: datetime
    options: AnalyticsOptions
    excluded_count: int = 0
    time_range: TimeRange = field(default_factory=TimeRange)
    counts: RecordCounts = field(default_factory=RecordCounts)
    backfilled_count: int = 0
    analysis_duration_ms: float = 0.0
    version: str = field(default_factory=lambda: Config.ANALYTICS.VERSION)

    def to_dict(self) -> dict:
        return {
            "generatedAt": to_iso(self.generated_at),
            "version": self.version,
            "includeDownlinkInQuality": INCLUDE_DOWNLINK_IN_QUALITY,
            "lossRateScope": LOSS_RATE_SCOPE,
            "resetRule": RESET_RULE,
            "classification": self.options.classification.to_dict(),
            "dailyFill": dict(self.options.daily_fill.to_dict(), created=self.backfilled_count),
            "filterWindow": self.options.filter_window.to_dict(excluded=self.excluded_count),
            "timeRange": self.time_range.to_dict(),
            "gapThresholdMinutes": self.options.gap_threshold_minutes,
            "counts": self.counts.to_dict(),
            "analysisDurationMs": round(self.analysis_duration_ms, 2),
        }


@dataclass
class AnalyticsContainer:
    """Filtered records plus every analytics view derived from them."""
    records: List[RawRecord]
    per_node: List[NodeStat]
    global_stat: GlobalStat
    threshold: ThresholdView
    meta: AnalyticsMeta

    def node(self, device_address: str) -> Optional[NodeStat]:
        for node in self.per_node:
            if node.id.device_address == device_address:
                return node
        return None

    def to_dict(self) -> dict:
        return {
            "records": [r.to_dict() for r in self.records],
            "analytics": {
                "perNode": [n.to_dict() for n in self.per_node],
                "global": self.global_stat.to_dict(),
                "threshold": self.threshold.to_dict(),
                "meta": self.meta.to_dict(),
            },
        }


def build_analytics(
    records: List[RawRecord],
    options: Union[AnalyticsOptions, Mapping[str, Any], None] = None,
) -> AnalyticsContainer:
    """
    Run the full analytics pipeline.

    Args:
        records: Canonical records in any order (not modified)
        options: AnalyticsOptions or a loose options mapping

    Returns:
        AnalyticsContainer with records, perNode, global, threshold, meta
    """
    start_time = time.time()
    opts = AnalyticsOptions.from_dict(options)

    meta = AnalyticsMeta(generated_at=datetime.now(timezone.utc), options=opts)
    meta.counts.input = len(records)

    # Time window
    filtered = apply_filter_window(records, opts.filter_window)
    meta.excluded_count = filtered.excluded_count
    meta.counts.filtered = len(filtered.records)

    uplink = uplink_only(filtered.records)
    meta.counts.uplink = len(uplink)

    logger.info(
        f"Rebuilding analytics: {len(records)} records in, "
        f"{filtered.excluded_count} excluded by window, {len(uplink)} uplink"
    )

    # Per device
    catalog = UsageCatalog.from_records(uplink)
    per_node = aggregate_nodes(uplink, catalog, opts.gap_threshold_minutes)
    meta.counts.nodes = len(per_node)

    meta.time_range = calc_time_range(filtered.records)
    dates = meta.time_range.dates

    if opts.daily_fill.enabled:
        meta.backfilled_count = fill_missing_days(per_node, dates, opts.daily_fill, catalog)

    # Fleet
    global_stat = calc_global(uplink, catalog, opts.gap_threshold_minutes)
    if per_node:
        global_stat.daily = rebuild_global_daily(per_node, dates, catalog)

    # Classification
    if opts.filter_window.end is not None:
        overall_last = opts.filter_window.end
    elif uplink:
        overall_last = max(r.time for r in uplink)
    else:
        overall_last = None
    threshold = build_threshold_view(per_node, opts.classification, overall_last)

    meta.analysis_duration_ms = (time.time() - start_time) * 1000

    logger.info(
        f"Analytics ready: {len(per_node)} nodes over {len(dates)} days, "
        f"{len(threshold.total.exception)} exception, "
        f"{len(threshold.total.abnormal)} abnormal "
        f"({meta.analysis_duration_ms:.1f}ms)"
    )

    return AnalyticsContainer(
        records=filtered.records,
        per_node=per_node,
        global_stat=global_stat,
        threshold=threshold,
        meta=meta,
    )
