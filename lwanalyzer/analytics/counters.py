"""
Frame-Sequence Counters - expected vs received packet reconstruction
====================================================================

Reconstructs how many packets a device (or the fleet stream) should
have delivered from its frame counters, and derives loss, duplicate
and reset figures from that expectation.

Segment Model
-------------
LoRaWAN frame counters are fixed-width and restart on device reboot, so
a plain (last - first + 1) over-counts loss whenever a counter goes
backwards. The sequence is therefore split into segments:

    Segment:
        Maximal run of records whose frame counter never decreases.
        A record whose counter is strictly lower than the previous
        record's counter closes the current segment and opens a new one
        (one reset).

    Expected:
        Sum over segments of (last_counter - segment_start + 1).

    Unique:
        Number of distinct counter values across the whole input.

    Lost:
        max(0, expected - unique).

Example
-------
    counters [10, 11, 12, 3, 4, 5]
        segments: [10..12], [3..5]
        expected = 3 + 3 = 6, unique = 6, lost = 0, resets = 1

    counters [5, 5, 6, 7]
        expected = 3, unique = 3, total = 4, duplicates = 1

Sentinels
---------
    loss_rate_percent  -1 when expected == 0 (never 0, never NaN)
    frame_counter_span -1 with fewer than two records
    first_time/last_time None for empty input
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from .records import RawRecord, sort_by_time

logger = logging.getLogger("Analytics.Counters")

LOSS_RATE_NOT_APPLICABLE = -1
SPAN_NOT_APPLICABLE = -1


@dataclass
class FrameCounterStats:
    """Output of one counter reconstruction pass."""
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


def loss_rate(lost: int, expected: int) -> float:
    """Loss percentage with the -1 sentinel for an empty expectation."""
    if expected <= 0:
        return LOSS_RATE_NOT_APPLICABLE
    return (lost / expected) * 100


def compute_counters(records: List[RawRecord]) -> FrameCounterStats:
    """
    Run the segment reconstruction over one time-ordered sequence.

    Records without a valid frame counter are ignored. The input is
    sorted (stably) by time before the scan, so callers may pass an
    already-sorted list at no cost to correctness.

    Args:
        records: Records of one device or of the whole fleet

    Returns:
        FrameCounterStats (all-zero/sentinel for an empty sequence)
    """
    sequence = sort_by_time([r for r in records if r.has_frame_counter])
    if not sequence:
        return FrameCounterStats()

    first_counter = int(sequence[0].frame_counter)
    last_counter = int(sequence[-1].frame_counter)
    span = (last_counter - first_counter) if len(sequence) >= 2 else SPAN_NOT_APPLICABLE

    occurrences: Dict[int, int] = {}
    resets = 0
    expected = 0
    segment_start = first_counter
    prev_counter = first_counter

    for index, record in enumerate(sequence):
        counter = int(record.frame_counter)
        occurrences[counter] = occurrences.get(counter, 0) + 1
        if index == 0:
            continue
        if counter < prev_counter:
            expected += prev_counter - segment_start + 1
            segment_start = counter
            resets += 1
        prev_counter = counter

    expected += prev_counter - segment_start + 1

    unique = len(occurrences)
    total = len(sequence)
    lost = max(0, expected - unique)

    return FrameCounterStats(
        unique_packet_count=unique,
        total_with_duplicates=total,
        duplicate_count=total - unique,
        expected_count=expected,
        lost_count=lost,
        loss_rate_percent=loss_rate(lost, expected),
        reset_count=resets,
        frame_counter_span=span,
        first_time=sequence[0].time,
        last_time=sequence[-1].time,
    )
