"""
Gap Detector - inter-arrival silences above a minute threshold
==============================================================

Flags adjacent record pairs whose arrival times are further apart than
a configured number of minutes. Each qualifying adjacent pair is its
own gap; consecutive silences are not merged.

    records at 00:00, 00:59, 02:00 with threshold 60
        00:00 -> 00:59   59 min   no gap
        00:59 -> 02:00   61 min   gap

The comparison is strict: a pair exactly threshold minutes apart is not
a gap. max_gap_minutes is -1 when no gap was found.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .records import RawRecord, sort_by_time
from .utils import minutes_between, to_iso

logger = logging.getLogger("Analytics.Gaps")

NO_GAP = -1


@dataclass
class GapInterval:
    """One silence between two consecutive records."""
    start_time: datetime
    end_time: datetime
    start_frame_counter: Optional[int] = None
    end_frame_counter: Optional[int] = None

    @property
    def minutes(self) -> float:
        return minutes_between(self.start_time, self.end_time)

    def to_dict(self) -> dict:
        return {
            "startTime": to_iso(self.start_time),
            "endTime": to_iso(self.end_time),
            "startFrameCounter": self.start_frame_counter,
            "endFrameCounter": self.end_frame_counter,
            "minutes": round(self.minutes, 3),
        }


@dataclass
class GapReport:
    """All gaps of one sequence for one threshold."""
    threshold_minutes: float
    intervals: List[GapInterval] = field(default_factory=list)
    max_gap_minutes: float = NO_GAP

    @property
    def gap_count(self) -> int:
        return len(self.intervals)

    def to_dict(self) -> dict:
        return {
            "gapThresholdMinutes": self.threshold_minutes,
            "gapCount": self.gap_count,
            "maxGapMinutes": round(self.max_gap_minutes, 3) if self.max_gap_minutes != NO_GAP else NO_GAP,
            "gapIntervals": [g.to_dict() for g in self.intervals],
        }


def _counter_or_none(record: RawRecord) -> Optional[int]:
    return int(record.frame_counter) if record.has_frame_counter else None


def detect_gaps(records: List[RawRecord], threshold_minutes: float) -> GapReport:
    """
    Scan adjacent record pairs for silences longer than the threshold.

    Args:
        records: Records of one device (direction filtering is the
            caller's choice); sorted stably by time before scanning
        threshold_minutes: Gap threshold, must be > 0

    Returns:
        GapReport with one interval per qualifying adjacent pair
    """
    report = GapReport(threshold_minutes=threshold_minutes)
    ordered = sort_by_time(records)
    threshold_seconds = threshold_minutes * 60.0

    for current, following in zip(ordered, ordered[1:]):
        elapsed = (following.time - current.time).total_seconds()
        if elapsed <= threshold_seconds:
            continue
        interval = GapInterval(
            start_time=current.time,
            end_time=following.time,
            start_frame_counter=_counter_or_none(current),
            end_frame_counter=_counter_or_none(following),
        )
        report.intervals.append(interval)
        if interval.minutes > report.max_gap_minutes:
            report.max_gap_minutes = interval.minutes

    return report
