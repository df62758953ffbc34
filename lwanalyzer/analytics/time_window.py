"""
Time Window - record clipping and calendar range
================================================

Clips the record set to a caller-supplied [start, end] window and
derives the overall calendar range that daily series must cover.

Boundary Semantics
------------------
    inclusive_start=False:  keep t >  start
    inclusive_start=True:   keep t >= start
    inclusive_end=False:    keep t <  end
    inclusive_end=True:     keep t <= end

Either bound may be None (open). Every record dropped by the window is
counted in excluded_count, so that

    excluded_count == len(records) - len(filtered_records)

always holds.

Time Range
----------
The time range spans the earliest to latest timestamp of the filtered
records (all directions). Its date list is every UTC calendar day from
the first record's date to the last record's date inclusive, and is the
axis that per-node daily series are backfilled against.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Mapping, Optional

from .records import RawRecord
from .utils import date_key_range, parse_datetime, to_date_key, to_iso

logger = logging.getLogger("Analytics.TimeWindow")


@dataclass(frozen=True)
class FilterWindow:
    """Caller-specified clipping window."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    inclusive_start: bool = False
    inclusive_end: bool = False

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]]) -> "FilterWindow":
        """
        Build a window from a loose options mapping.

        Unparseable start/end values are treated as absent.
        """
        if options is None:
            return cls()
        if isinstance(options, FilterWindow):
            return options

        start = parse_datetime(options.get("start"))
        end = parse_datetime(options.get("end"))
        if options.get("start") and start is None:
            logger.warning(f"Ignoring unparseable filter start: {options.get('start')!r}")
        if options.get("end") and end is None:
            logger.warning(f"Ignoring unparseable filter end: {options.get('end')!r}")

        return cls(
            start=start,
            end=end,
            inclusive_start=bool(options.get("inclusiveStart", options.get("inclusive_start", False))),
            inclusive_end=bool(options.get("inclusiveEnd", options.get("inclusive_end", False))),
        )

    @property
    def is_open(self) -> bool:
        return self.start is None and self.end is None

    def contains(self, moment: datetime) -> bool:
        if self.start is not None:
            if self.inclusive_start:
                if moment < self.start:
                    return False
            elif moment <= self.start:
                return False
        if self.end is not None:
            if self.inclusive_end:
                if moment > self.end:
                    return False
            elif moment >= self.end:
                return False
        return True

    def to_dict(self, excluded: Optional[int] = None) -> dict:
        result = {
            "start": to_iso(self.start),
            "end": to_iso(self.end),
            "inclusiveStart": self.inclusive_start,
            "inclusiveEnd": self.inclusive_end,
        }
        if excluded is not None:
            result["excluded"] = excluded
        return result


@dataclass
class FilterResult:
    records: List[RawRecord] = field(default_factory=list)
    excluded_count: int = 0


@dataclass
class TimeRange:
    """Overall span of the filtered records."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @property
    def dates(self) -> List[str]:
        if self.start is None or self.end is None:
            return []
        return date_key_range(to_date_key(self.start), to_date_key(self.end))

    @property
    def days(self) -> int:
        return len(self.dates)

    def to_dict(self) -> dict:
        return {
            "start": to_iso(self.start),
            "end": to_iso(self.end),
            "days": self.days,
        }


def apply_filter_window(records: List[RawRecord], window: FilterWindow) -> FilterResult:
    """
    Clip records to the window, preserving input order.

    Args:
        records: Canonical records in any order
        window: Clipping window (open window keeps everything)

    Returns:
        FilterResult with the kept records and the excluded count
    """
    if window.is_open:
        return FilterResult(records=list(records), excluded_count=0)

    kept = [r for r in records if window.contains(r.time)]
    excluded = len(records) - len(kept)

    logger.debug(f"Filter window kept {len(kept)} of {len(records)} records")
    return FilterResult(records=kept, excluded_count=excluded)


def calc_time_range(records: List[RawRecord]) -> TimeRange:
    if not records:
        return TimeRange()
    times = [r.time for r in records]
    return TimeRange(start=min(times), end=max(times))
