"""
Node Statistics - per-device lifetime and daily aggregation
===========================================================

Groups uplink records by device address and produces, for every
device, a lifetime total, a timeline and a per-day series.

Granularities
-------------
    total:
        Frame-counter reconstruction over the device's whole history,
        quality averages, data rates, usage and (optionally) gaps.

    daily:
        The same computation rerun independently for each UTC calendar
        day. Segment state never carries across midnight, so a reset
        detected in the total may not appear in any single day, and a
        silence spanning midnight belongs to no day.

    timeline:
        first/last frame-counter timestamps, span and resets from the
        total pass, plus the device's last uplink time of any kind
        (used for the inactivity metric).

Device Identity
---------------
Records are grouped by device_address. The first record seen for an
address supplies the display name. Output order is the order in which
addresses are first seen in the input.

Quality
-------
RSSI/SNR averages use every record carrying a value, including records
without a frame counter. Records with no value never contribute. Sample
counts are kept so the fleet daily series can re-weight the averages
exactly.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .counters import FrameCounterStats, compute_counters, LOSS_RATE_NOT_APPLICABLE, SPAN_NOT_APPLICABLE
from .gaps import GapReport, detect_gaps
from .records import RawRecord, sort_by_time
from .usage import UsageCatalog, UsageCounts, compute_usage
from .utils import is_valid_number, round_or_none, to_date_key, to_iso

logger = logging.getLogger("Analytics.NodeStats")

EXPECTED_SOURCE_FCNT = "fcnt"


@dataclass
class SequenceStats:
    """Metrics shared by every granularity (node/global, total/daily)."""
    unique_packet_count: int = 0
    total_with_duplicates: int = 0
    duplicate_count: int = 0
    expected_count: int = 0
    lost_count: int = 0
    loss_rate_percent: float = LOSS_RATE_NOT_APPLICABLE
    reset_count: int = 0
    frame_counter_span: int = SPAN_NOT_APPLICABLE
    first_time: Optional[datetime] = None
    last_time: Optional[datetime] = None
    avg_rssi: Optional[float] = None
    avg_snr: Optional[float] = None
    rssi_samples: int = 0
    snr_samples: int = 0
    data_rates_used: List[str] = field(default_factory=list)
    usage: Optional[UsageCounts] = None
    gaps: Optional[GapReport] = None

    @property
    def max_gap_minutes(self) -> float:
        return self.gaps.max_gap_minutes if self.gaps is not None else -1

    def apply_counters(self, counters: FrameCounterStats) -> None:
        self.unique_packet_count = counters.unique_packet_count
        self.total_with_duplicates = counters.total_with_duplicates
        self.duplicate_count = counters.duplicate_count
        self.expected_count = counters.expected_count
        self.lost_count = counters.lost_count
        self.loss_rate_percent = counters.loss_rate_percent
        self.reset_count = counters.reset_count
        self.frame_counter_span = counters.frame_counter_span
        self.first_time = counters.first_time
        self.last_time = counters.last_time

    def to_dict(self) -> dict:
        result = {
            "uniquePacketCount": self.unique_packet_count,
            "totalWithDuplicates": self.total_with_duplicates,
            "duplicateCount": self.duplicate_count,
            "expectedCount": self.expected_count,
            "lostCount": self.lost_count,
            "lossRatePercent": self.loss_rate_percent,
            "resetCount": self.reset_count,
            "frameCounterSpan": self.frame_counter_span,
            "firstTime": to_iso(self.first_time),
            "lastTime": to_iso(self.last_time),
            "avgRSSI": round_or_none(self.avg_rssi),
            "avgSNR": round_or_none(self.avg_snr),
            "dataRatesUsed": list(self.data_rates_used),
        }
        if self.usage is not None:
            result.update(self.usage.to_dict())
        if self.gaps is not None:
            result.update(self.gaps.to_dict())
        return result


@dataclass
class ExceptionMarks:
    """Exception-tier rule hits attached to a stat for display."""
    tags: List[str] = field(default_factory=list)
    labels: List[str] = field(default_factory=list)
    notes: Dict[str, List[str]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        result = {"exceptionTags": list(self.tags), "exceptionLabels": list(self.labels)}
        if self.notes:
            result["exceptionNotes"] = {k: list(v) for k, v in self.notes.items()}
        return result


@dataclass
class NodeDailyStat(SequenceStats):
    """One device on one UTC calendar day."""
    date: str = ""
    no_data: bool = False
    expected_source: str = EXPECTED_SOURCE_FCNT
    baseline_expected: Optional[int] = None
    exceptions: ExceptionMarks = field(default_factory=ExceptionMarks)

    def to_dict(self) -> dict:
        result = {"date": self.date}
        result.update(super().to_dict())
        result["noData"] = self.no_data
        result["expectedSource"] = self.expected_source
        if self.baseline_expected is not None:
            result["baselineExpected"] = self.baseline_expected
        result.update(self.exceptions.to_dict())
        return result


@dataclass
class NodeTotalStat(SequenceStats):
    """One device over the whole filtered window."""
    inactive_since_minutes: Optional[float] = None
    exceptions: ExceptionMarks = field(default_factory=ExceptionMarks)

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["inactiveSinceMinutes"] = round_or_none(self.inactive_since_minutes, 3)
        result.update(self.exceptions.to_dict())
        return result


@dataclass(frozen=True)
class NodeId:
    device_name: str
    device_address: str

    @property
    def display_name(self) -> str:
        return self.device_name or self.device_address

    def to_dict(self) -> dict:
        return {"deviceName": self.device_name, "deviceAddress": self.device_address}


@dataclass
class NodeTimeline:
    first_time: Optional[datetime] = None
    last_time: Optional[datetime] = None
    frame_counter_span: int = SPAN_NOT_APPLICABLE
    reset_count: int = 0
    last_seen: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "firstTime": to_iso(self.first_time),
            "lastTime": to_iso(self.last_time),
            "frameCounterSpan": self.frame_counter_span,
            "resetCount": self.reset_count,
            "lastSeen": to_iso(self.last_seen),
        }


@dataclass
class NodeStat:
    """Lifetime record of one device."""
    id: NodeId
    total: NodeTotalStat
    timeline: NodeTimeline
    daily: List[NodeDailyStat] = field(default_factory=list)

    def daily_for(self, date_key: str) -> Optional[NodeDailyStat]:
        for day in self.daily:
            if day.date == date_key:
                return day
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id.to_dict(),
            "total": self.total.to_dict(),
            "timeline": self.timeline.to_dict(),
            "daily": [d.to_dict() for d in self.daily],
        }


def summarize_sequence(
    stats: SequenceStats,
    records: List[RawRecord],
    catalog: Optional[UsageCatalog] = None,
    gap_threshold_minutes: Optional[float] = None,
) -> SequenceStats:
    """
    Fill stats from one time-sorted record run.

    Args:
        stats: Target instance (any SequenceStats subclass)
        records: Uplink records, already sorted by time
        catalog: Usage catalog; usage is skipped when None
        gap_threshold_minutes: Enables gap detection when > 0

    Returns:
        The same stats instance
    """
    rssi_sum = snr_sum = 0.0
    rssi_count = snr_count = 0
    data_rates = set()

    for record in records:
        if is_valid_number(record.rssi):
            rssi_sum += record.rssi
            rssi_count += 1
        if is_valid_number(record.snr):
            snr_sum += record.snr
            snr_count += 1
        if record.data_rate:
            data_rates.add(record.data_rate)

    stats.apply_counters(compute_counters(records))
    stats.rssi_samples = rssi_count
    stats.snr_samples = snr_count
    stats.avg_rssi = rssi_sum / rssi_count if rssi_count else None
    stats.avg_snr = snr_sum / snr_count if snr_count else None
    stats.data_rates_used = sorted(data_rates)

    if catalog is not None:
        stats.usage = compute_usage(records, catalog)
    if gap_threshold_minutes:
        stats.gaps = detect_gaps(records, gap_threshold_minutes)

    return stats


def group_by_date(records: List[RawRecord]) -> "OrderedDict[str, List[RawRecord]]":
    """Bucket time-sorted records by UTC date key, keeping order."""
    by_date: "OrderedDict[str, List[RawRecord]]" = OrderedDict()
    for record in records:
        by_date.setdefault(to_date_key(record.time), []).append(record)
    return by_date


def group_by_node(uplink_records: List[RawRecord]) -> "OrderedDict[str, dict]":
    """
    Group records by device address in first-seen order.

    Returns:
        OrderedDict address -> {"name": first-seen name, "records": [...]}
    """
    groups: "OrderedDict[str, dict]" = OrderedDict()
    for record in uplink_records:
        entry = groups.get(record.device_address)
        if entry is None:
            entry = {"name": record.device_name, "records": []}
            groups[record.device_address] = entry
        entry["records"].append(record)
    return groups


def build_node_daily(
    records: List[RawRecord],
    catalog: UsageCatalog,
    gap_threshold_minutes: Optional[float] = None,
) -> List[NodeDailyStat]:
    """Per-day stats for one device, sorted by date."""
    daily = []
    for date_key, day_records in group_by_date(records).items():
        day = NodeDailyStat(date=date_key)
        summarize_sequence(day, day_records, catalog, gap_threshold_minutes)
        daily.append(day)
    daily.sort(key=lambda d: d.date)
    return daily


def calc_node_stat(
    device_address: str,
    device_name: str,
    records: List[RawRecord],
    catalog: UsageCatalog,
    gap_threshold_minutes: Optional[float] = None,
) -> NodeStat:
    """
    Build the NodeStat of one device.

    Args:
        device_address: Grouping key
        device_name: Display name (first seen)
        records: The device's uplink records in any order
        catalog: Fleet-wide usage catalog
        gap_threshold_minutes: Enables gap detection when > 0
    """
    ordered = sort_by_time(records)

    total = NodeTotalStat()
    summarize_sequence(total, ordered, catalog, gap_threshold_minutes)

    timeline = NodeTimeline(
        first_time=total.first_time,
        last_time=total.last_time,
        frame_counter_span=total.frame_counter_span,
        reset_count=total.reset_count,
        last_seen=ordered[-1].time if ordered else None,
    )

    node = NodeStat(
        id=NodeId(device_name=device_name, device_address=device_address),
        total=total,
        timeline=timeline,
        daily=build_node_daily(ordered, catalog, gap_threshold_minutes),
    )

    logger.debug(
        f"Node {node.id.display_name} ({device_address}): "
        f"unique={total.unique_packet_count} expected={total.expected_count} "
        f"resets={total.reset_count} days={len(node.daily)}"
    )
    return node


def aggregate_nodes(
    uplink_records: List[RawRecord],
    catalog: UsageCatalog,
    gap_threshold_minutes: Optional[float] = None,
) -> List[NodeStat]:
    """NodeStat for every device, in first-seen address order."""
    return [
        calc_node_stat(address, entry["name"], entry["records"], catalog, gap_threshold_minutes)
        for address, entry in group_by_node(uplink_records).items()
    ]
