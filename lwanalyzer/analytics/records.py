"""
Raw Records - canonical transmission events
===========================================

A RawRecord is one row of a gateway export after canonicalisation:
typed fields, a timezone-resolved timestamp and a parsed frame
direction. Header aliasing and text parsing happen once, upstream, in
lwanalyzer.data_acquisition.csv_reader; everything in the analytics
package reads these attributes directly.

Only uplink records (frame_direction.is_uplink) take part in loss, gap,
frequency and gateway statistics. Downlinks pass through the time
filter and are returned to the caller for raw display.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from .utils import ensure_utc, is_valid_number, to_iso


@dataclass(frozen=True)
class FrameDirection:
    """Parsed LoRaWAN message type, e.g. Confirmed_Up."""
    is_uplink: bool
    is_confirmed: bool = False

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["FrameDirection"]:
        """
        Parse "<Confirmed|Unconfirmed>_<Up|Down>".

        Returns None for anything else.
        """
        if not raw:
            return None
        parts = raw.strip().split("_")
        if len(parts) != 2:
            return None
        confirmation, direction = parts[0].lower(), parts[1].lower()
        if direction not in ("up", "down"):
            return None
        return cls(is_uplink=direction == "up", is_confirmed=confirmation == "confirmed")

    def to_dict(self) -> dict:
        return {"isUplink": self.is_uplink, "isConfirmed": self.is_confirmed}


@dataclass(frozen=True)
class RawRecord:
    """One parsed transmission event."""
    time: datetime
    device_name: str
    device_address: str
    frame_counter: Optional[int] = None
    frequency: Optional[float] = None
    rssi: Optional[float] = None
    snr: Optional[float] = None
    port: Optional[int] = None
    frame_direction: Optional[FrameDirection] = None
    data_rate: Optional[str] = None
    gateway_ids: Tuple[str, ...] = ()
    payload_hex: Optional[str] = None
    ack: Optional[bool] = None
    mac_command: Optional[str] = None

    def __post_init__(self):
        # Comparisons across devices need one clock: everything is held in UTC.
        object.__setattr__(self, "time", ensure_utc(self.time))
        object.__setattr__(self, "gateway_ids", tuple(self.gateway_ids or ()))

    @property
    def is_uplink(self) -> bool:
        return self.frame_direction is not None and self.frame_direction.is_uplink

    @property
    def has_frame_counter(self) -> bool:
        return is_valid_number(self.frame_counter)

    def to_dict(self) -> dict:
        return {
            "time": to_iso(self.time),
            "deviceName": self.device_name,
            "deviceAddress": self.device_address,
            "frameCounter": self.frame_counter,
            "frequency": self.frequency,
            "rssi": self.rssi,
            "snr": self.snr,
            "port": self.port,
            "frameDirection": self.frame_direction.to_dict() if self.frame_direction else None,
            "dataRate": self.data_rate,
            "gatewayIds": list(self.gateway_ids),
            "payloadHex": self.payload_hex,
            "ack": self.ack,
            "macCommand": self.mac_command,
        }


def sort_by_time(records: List[RawRecord]) -> List[RawRecord]:
    """Stable chronological copy; ties keep their input order."""
    return sorted(records, key=lambda r: r.time)


def uplink_only(records: List[RawRecord]) -> List[RawRecord]:
    return [r for r in records if r.is_uplink]
