"""
Usage Tracker - frequency and gateway distribution
==================================================

Counts how often each device used each radio frequency and each
gateway, against one fixed catalog built from the whole filtered
uplink set. Because every count map starts from the same catalog,
charts drawn from any device or any day share identical categories.

Key Concepts
------------
    Catalog:
        Sorted, de-duplicated frequencies (numeric ascending) and
        gateway identifiers (lexical) observed anywhere in the
        filtered uplink records.

    Frequency key:
        Frequencies are keyed by their normalised numeric string
        (868.1 -> "868.1", 868.0 -> "868"), see utils.freq_key.

    Gateway count:
        A record heard by several gateways adds one to each of them;
        a gateway listed twice on the same record counts once.

Count maps always contain every catalog key, zero-filled.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from .records import RawRecord
from .utils import freq_key, is_valid_number, uniq_sorted_numeric

logger = logging.getLogger("Analytics.Usage")


@dataclass(frozen=True)
class UsageCatalog:
    """Fixed axis categories for every usage chart."""
    frequencies: tuple = ()
    gateways: tuple = ()

    @classmethod
    def from_records(cls, records: Iterable[RawRecord]) -> "UsageCatalog":
        records = list(records)
        frequencies = uniq_sorted_numeric(
            r.frequency for r in records if is_valid_number(r.frequency)
        )
        gateways = sorted({gw for r in records for gw in r.gateway_ids if gw})
        return cls(frequencies=tuple(frequencies), gateways=tuple(gateways))

    def frequency_template(self) -> Dict[str, int]:
        return {freq_key(f): 0 for f in self.frequencies}

    def gateway_template(self) -> Dict[str, int]:
        return {gw: 0 for gw in self.gateways}


@dataclass
class UsageCounts:
    """Per-device (or per-day) usage against the catalog."""
    frequency_counts: Dict[str, int] = field(default_factory=dict)
    frequencies_used: List[float] = field(default_factory=list)
    gateway_counts: Dict[str, int] = field(default_factory=dict)
    gateways_used: List[str] = field(default_factory=list)

    @classmethod
    def empty(cls, catalog: UsageCatalog) -> "UsageCounts":
        """Zero-filled counts for a day with no traffic."""
        return cls(
            frequency_counts=catalog.frequency_template(),
            gateway_counts=catalog.gateway_template(),
        )

    def add(self, other: "UsageCounts") -> None:
        """Accumulate another count set into this one."""
        for key, count in other.frequency_counts.items():
            self.frequency_counts[key] = self.frequency_counts.get(key, 0) + count
        for key, count in other.gateway_counts.items():
            self.gateway_counts[key] = self.gateway_counts.get(key, 0) + count
        self.frequencies_used = uniq_sorted_numeric(
            list(self.frequencies_used) + list(other.frequencies_used)
        )
        self.gateways_used = sorted(set(self.gateways_used) | set(other.gateways_used))

    def to_dict(self) -> dict:
        return {
            "frequencyCounts": dict(self.frequency_counts),
            "frequenciesUsed": list(self.frequencies_used),
            "gatewayCounts": dict(self.gateway_counts),
            "gatewaysUsed": list(self.gateways_used),
        }


def compute_usage(records: Iterable[RawRecord], catalog: UsageCatalog) -> UsageCounts:
    """
    Count frequency and gateway usage of records against the catalog.

    Args:
        records: Uplink records of one device / day
        catalog: Fleet-wide catalog

    Returns:
        UsageCounts containing every catalog key
    """
    usage = UsageCounts.empty(catalog)
    freqs_seen = []
    gateways_seen = set()

    for record in records:
        if is_valid_number(record.frequency):
            key = freq_key(record.frequency)
            if key not in usage.frequency_counts:
                logger.debug(f"Frequency {key} missing from catalog, adding")
                usage.frequency_counts[key] = 0
            usage.frequency_counts[key] += 1
            freqs_seen.append(record.frequency)

        for gateway in dict.fromkeys(g for g in record.gateway_ids if g):
            if gateway not in usage.gateway_counts:
                logger.debug(f"Gateway {gateway} missing from catalog, adding")
                usage.gateway_counts[gateway] = 0
            usage.gateway_counts[gateway] += 1
            gateways_seen.add(gateway)

    usage.frequencies_used = uniq_sorted_numeric(freqs_seen)
    usage.gateways_used = sorted(gateways_seen)
    return usage
