"""
Missing-Day Backfill - 100% loss entries for silent days
========================================================

A device that sends nothing on a given day has no daily entry, which
would make a full-day outage invisible to daily classification. The
backfill gives every device one entry per calendar day of the overall
time range, synthesising the missing ones as total loss.

Baseline
--------
The synthetic entry needs an "expected" packet count:

    per-node-daily-median:
        Median of the device's real, non-zero daily expected counts,
        floored to an integer (at least 1). A device with no usable
        sample falls back to the fixed value.

    fixed:
        The configured fixed_expected value.

Either baseline is then raised to min_expected.

Synthetic Entry
---------------
    unique_packet_count = 0
    expected_count = lost_count = baseline
    loss_rate_percent = 100
    no_data = True
    expected_source = "baseline-median" | "baseline-fixed"
    baseline_expected = baseline
    usage maps zero-filled against the catalog
    averages / timestamps None, frame_counter_span -1

Global Daily Rebuild
--------------------
After the fill, the fleet daily series is rebuilt from the per-device
entries rather than from raw records, so fleet days with no traffic at
all still show up with their synthetic loss:

    counts                additive
    loss_rate_percent     lost / expected over the sums
    avg_rssi / avg_snr    weighted by per-entry sample counts
    first/last time       min / max
    data rates, gateways  set union
    nodes_with_data       entries not flagged no_data
    nodes_total           number of devices
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from .config import Config
from .counters import loss_rate
from .global_stats import GlobalDailyStat
from .node_stats import NodeDailyStat, NodeStat
from .usage import UsageCatalog, UsageCounts
from .utils import median

logger = logging.getLogger("Analytics.Backfill")

BASELINE_MEDIAN = "per-node-daily-median"
BASELINE_FIXED = "fixed"

SOURCE_MEDIAN = "baseline-median"
SOURCE_FIXED = "baseline-fixed"

FILL_MODE = "no-data-100-loss"


def _positive_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number) or number <= 0:
        return default
    return int(math.floor(number))


@dataclass(frozen=True)
class DailyFillPolicy:
    """How (and whether) missing days are synthesised."""
    enabled: bool = True
    expected_baseline: str = BASELINE_MEDIAN
    fixed_expected: int = 1
    min_expected: int = 1

    @classmethod
    def defaults(cls) -> "DailyFillPolicy":
        return cls.from_options(None)

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]]) -> "DailyFillPolicy":
        """
        Normalise a loose options mapping.

        Unknown baselines become the median baseline; non-positive or
        non-numeric counts fall back to the configured defaults.
        """
        if isinstance(options, DailyFillPolicy):
            return options
        options = options or {}
        fill = Config.FILL

        enabled = options.get("enabled", fill.ENABLED)
        baseline = options.get("expectedBaseline", options.get("expected_baseline", fill.EXPECTED_BASELINE))
        fixed = options.get("fixedExpected", options.get("fixed_expected"))
        minimum = options.get("minExpected", options.get("min_expected"))

        return cls(
            enabled=enabled is not False,
            expected_baseline=BASELINE_FIXED if baseline == BASELINE_FIXED else BASELINE_MEDIAN,
            fixed_expected=_positive_int(fixed, _positive_int(fill.FIXED_EXPECTED, 1)),
            min_expected=_positive_int(minimum, _positive_int(fill.MIN_EXPECTED, 1)),
        )

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "mode": FILL_MODE,
            "expectedBaseline": self.expected_baseline,
            "fixedExpected": self.fixed_expected,
            "minExpected": self.min_expected,
        }


def node_baseline(node: NodeStat, policy: DailyFillPolicy) -> tuple:
    """
    Expected-count baseline for one device.

    Returns:
        (baseline, expected_source)
    """
    samples = [d.expected_count for d in node.daily if not d.no_data and d.expected_count > 0]
    med = median(samples)

    if policy.expected_baseline == BASELINE_MEDIAN and med is not None:
        baseline, source = max(int(math.floor(med)), 1), SOURCE_MEDIAN
    else:
        baseline, source = policy.fixed_expected, SOURCE_FIXED

    return max(baseline, policy.min_expected), source


def synthetic_day(date_key: str, baseline: int, source: str, catalog: UsageCatalog) -> NodeDailyStat:
    return NodeDailyStat(
        date=date_key,
        unique_packet_count=0,
        expected_count=baseline,
        lost_count=baseline,
        loss_rate_percent=100,
        usage=UsageCounts.empty(catalog),
        no_data=True,
        expected_source=source,
        baseline_expected=baseline,
    )


def fill_missing_days(
    per_node: List[NodeStat],
    dates: List[str],
    policy: DailyFillPolicy,
    catalog: UsageCatalog,
) -> int:
    """
    Give every device one daily entry per date, in place.

    Args:
        per_node: Aggregated devices (daily lists are extended)
        dates: Every date key of the overall range
        policy: Baseline policy
        catalog: Usage catalog for zero-filled maps

    Returns:
        Number of synthetic entries created
    """
    created = 0
    for node in per_node:
        existing = {d.date for d in node.daily}
        missing = [d for d in dates if d not in existing]
        if not missing:
            continue

        baseline, source = node_baseline(node, policy)
        for date_key in missing:
            node.daily.append(synthetic_day(date_key, baseline, source, catalog))
        node.daily.sort(key=lambda d: d.date)
        created += len(missing)

        logger.debug(
            f"Backfilled {len(missing)} day(s) for {node.id.display_name} "
            f"with expected={baseline} ({source})"
        )

    if created:
        logger.info(f"Backfilled {created} missing daily entries across {len(per_node)} nodes")
    return created


def rebuild_global_daily(
    per_node: List[NodeStat],
    dates: List[str],
    catalog: UsageCatalog,
) -> List[GlobalDailyStat]:
    """Fleet daily series summed from per-device daily entries."""
    by_node = [{d.date: d for d in node.daily} for node in per_node]
    daily = []

    for date_key in dates:
        day = GlobalDailyStat(date=date_key, nodes_total_count=len(per_node))
        day.usage = UsageCounts.empty(catalog)
        rssi_sum = snr_sum = 0.0
        data_rates = set()

        for entries in by_node:
            entry = entries.get(date_key)
            if entry is None:
                continue
            if not entry.no_data:
                day.nodes_with_data_count += 1

            day.unique_packet_count += entry.unique_packet_count
            day.total_with_duplicates += entry.total_with_duplicates
            day.duplicate_count += entry.duplicate_count
            day.expected_count += entry.expected_count
            day.lost_count += entry.lost_count
            day.reset_count += entry.reset_count

            if entry.first_time and (day.first_time is None or entry.first_time < day.first_time):
                day.first_time = entry.first_time
            if entry.last_time and (day.last_time is None or entry.last_time > day.last_time):
                day.last_time = entry.last_time

            if entry.avg_rssi is not None and entry.rssi_samples:
                rssi_sum += entry.avg_rssi * entry.rssi_samples
                day.rssi_samples += entry.rssi_samples
            if entry.avg_snr is not None and entry.snr_samples:
                snr_sum += entry.avg_snr * entry.snr_samples
                day.snr_samples += entry.snr_samples

            data_rates.update(entry.data_rates_used)
            if entry.usage is not None:
                day.usage.add(entry.usage)

        day.loss_rate_percent = loss_rate(day.lost_count, day.expected_count)
        day.avg_rssi = rssi_sum / day.rssi_samples if day.rssi_samples else None
        day.avg_snr = snr_sum / day.snr_samples if day.snr_samples else None
        day.data_rates_used = sorted(data_rates)
        daily.append(day)

    return daily
