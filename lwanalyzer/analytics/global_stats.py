"""
Global Statistics - fleet-wide totals
=====================================

Fleet totals are not the sum of per-device totals. The counters and the
gap scan are rerun over the whole uplink stream as if every device's
frame counters belonged to one sequence, interleaved by time.

Consequences worth knowing when reading the numbers:

    - global reset_count counts every backward counter step between
      consecutive fleet records, including steps that only reflect a
      different device transmitting next;
    - global frame_counter_span is last minus first counter of the
      stream, whichever devices those were;
    - global gaps are silences of the whole fleet.

Downstream dashboards already read these figures, so they are kept as
is.

The raw-stream daily series computed here is replaced by the backfilled
per-device aggregation (see backfill.rebuild_global_daily) whenever at
least one device exists.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .node_stats import SequenceStats, group_by_date, summarize_sequence
from .records import RawRecord, sort_by_time
from .usage import UsageCatalog

logger = logging.getLogger("Analytics.GlobalStats")


@dataclass
class GlobalDailyStat(SequenceStats):
    """Fleet figures for one UTC calendar day."""
    date: str = ""
    nodes_with_data_count: int = 0
    nodes_total_count: int = 0

    def to_dict(self) -> dict:
        result = {
            "date": self.date,
            "nodesWithDataCount": self.nodes_with_data_count,
            "nodesTotalCount": self.nodes_total_count,
        }
        result.update(super().to_dict())
        return result


@dataclass
class GlobalTotalStat(SequenceStats):
    """Fleet figures over the whole filtered window."""
    node_count: int = 0

    def to_dict(self) -> dict:
        result = {"nodeCount": self.node_count}
        result.update(super().to_dict())
        return result


@dataclass
class GlobalStat:
    total: GlobalTotalStat = field(default_factory=GlobalTotalStat)
    daily: List[GlobalDailyStat] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total": self.total.to_dict(),
            "daily": [d.to_dict() for d in self.daily],
        }


def calc_global(
    uplink_records: List[RawRecord],
    catalog: UsageCatalog,
    gap_threshold_minutes: Optional[float] = None,
) -> GlobalStat:
    """
    Rerun the sequence computations over the fleet uplink stream.

    Args:
        uplink_records: All filtered uplink records
        catalog: Fleet-wide usage catalog; its frequencies and gateways
            are reported as global.total frequenciesUsed / gatewaysUsed
        gap_threshold_minutes: Enables the fleet gap scan when > 0
    """
    ordered = sort_by_time(uplink_records)
    node_total = len({r.device_address for r in ordered})

    total = GlobalTotalStat(node_count=node_total)
    summarize_sequence(total, ordered, catalog, gap_threshold_minutes)
    total.usage.frequencies_used = list(catalog.frequencies)
    total.usage.gateways_used = list(catalog.gateways)

    daily = []
    for date_key, day_records in group_by_date(ordered).items():
        day = GlobalDailyStat(
            date=date_key,
            nodes_with_data_count=len({r.device_address for r in day_records}),
            nodes_total_count=node_total,
        )
        summarize_sequence(day, day_records, catalog)
        daily.append(day)
    daily.sort(key=lambda d: d.date)

    logger.debug(
        f"Fleet stream: {total.total_with_duplicates} counted records, "
        f"{total.reset_count} resets, {len(daily)} days"
    )
    return GlobalStat(total=total, daily=daily)
