"""
Shared fixtures for the analytics tests.

Records are built relative to BASE_TIME (2024-05-01T00:00:00Z) so day
boundaries are easy to reason about: days=1 is 2024-05-02.
"""

from datetime import datetime, timedelta, timezone

import pytest

from lwanalyzer.analytics.records import FrameDirection, RawRecord

BASE_TIME = datetime(2024, 5, 1, tzinfo=timezone.utc)
UPLINK = FrameDirection(is_uplink=True)
DOWNLINK = FrameDirection(is_uplink=False)


def build_record(
    minutes=0.0,
    fcnt=None,
    addr="0001",
    name=None,
    days=0,
    uplink=True,
    rssi=-100.0,
    snr=5.0,
    freq=868.1,
    gateways=("gw-1",),
    data_rate="SF7BW125",
):
    return RawRecord(
        time=BASE_TIME + timedelta(days=days, minutes=minutes),
        device_name=name if name is not None else f"node-{addr}",
        device_address=addr,
        frame_counter=fcnt,
        frequency=freq,
        rssi=rssi,
        snr=snr,
        frame_direction=UPLINK if uplink else DOWNLINK,
        data_rate=data_rate,
        gateway_ids=gateways,
    )


# ── Fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def make_record():
    """Factory for a single RawRecord."""
    return build_record


@pytest.fixture
def sequence():
    """Factory for one device's records, one counter every step_minutes."""
    def _sequence(counters, addr="0001", step_minutes=10.0, start_minutes=0.0, days=0, **kwargs):
        return [
            build_record(start_minutes + i * step_minutes, fcnt=c, addr=addr, days=days, **kwargs)
            for i, c in enumerate(counters)
        ]
    return _sequence
