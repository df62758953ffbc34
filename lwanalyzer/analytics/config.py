"""
Analytics Configuration Module
==============================

Centralized defaults for the analytics engine. Everything that used to be a
magic number in the rebuild path (loss threshold, backfill baseline, gap
threshold, ingest timezone) is defined here.

Usage
-----
    from lwanalyzer.analytics.config import Config

    threshold = Config.ANALYTICS.DEFAULT_LOSS_RATE_THRESHOLD
    fill = Config.FILL

Environment Override
-------------------
Values can be overridden via environment variables using the pattern
LWA_{GROUP}_{NAME}, for example:

    LWA_FILL_EXPECTED_BASELINE=fixed
    LWA_FILL_FIXED_EXPECTED=96
    LWA_GAP_DEFAULT_THRESHOLD_MINUTES=120

Hot Reload
----------
    from lwanalyzer.analytics.config import reload_config, Config

    os.environ["LWA_FILL_MIN_EXPECTED"] = "4"
    reload_config()
    Config.FILL.MIN_EXPECTED  # -> 4
"""

import logging
import os
import threading
from dataclasses import dataclass
from typing import Dict, Any

logger = logging.getLogger("Analytics.Config")

_config_lock = threading.RLock()


def _env_int(key: str, default: int) -> int:
    """Get integer from environment or use default."""
    val = os.environ.get(key)
    if val is not None:
        try:
            return int(val)
        except ValueError:
            logger.warning(f"Invalid int value for {key}: {val}, using default {default}")
    return default


def _env_float(key: str, default: float) -> float:
    """Get float from environment or use default."""
    val = os.environ.get(key)
    if val is not None:
        try:
            return float(val)
        except ValueError:
            logger.warning(f"Invalid float value for {key}: {val}, using default {default}")
    return default


def _env_bool(key: str, default: bool) -> bool:
    """Get boolean from environment or use default."""
    val = os.environ.get(key)
    if val is not None:
        return val.lower() in ('true', '1', 'yes', 'on')
    return default


def _env_str(key: str, default: str) -> str:
    val = os.environ.get(key)
    if val is not None and val.strip():
        return val.strip()
    return default


@dataclass(frozen=True)
class AnalyticsConfig:
    """Container metadata and classification defaults."""

    # Reported as meta.version
    VERSION: str = _env_str("LWA_ANALYTICS_VERSION", "2.1.0")

    # Category returned when no rule matches
    DEFAULT_CATEGORY: str = _env_str("LWA_ANALYTICS_DEFAULT_CATEGORY", "normal")

    # lossRatePercent above this is abnormal in the default rule set
    DEFAULT_LOSS_RATE_THRESHOLD: float = _env_float(
        "LWA_ANALYTICS_DEFAULT_LOSS_RATE_THRESHOLD", 5.0
    )


@dataclass(frozen=True)
class DailyFillConfig:
    """Missing-day backfill defaults."""

    ENABLED: bool = _env_bool("LWA_FILL_ENABLED", True)

    # "per-node-daily-median" or "fixed"
    EXPECTED_BASELINE: str = _env_str(
        "LWA_FILL_EXPECTED_BASELINE", "per-node-daily-median"
    )

    FIXED_EXPECTED: int = _env_int("LWA_FILL_FIXED_EXPECTED", 1)

    MIN_EXPECTED: int = _env_int("LWA_FILL_MIN_EXPECTED", 1)


@dataclass(frozen=True)
class GapConfig:
    """No-data gap detection defaults."""

    # 0 disables gap detection
    DEFAULT_THRESHOLD_MINUTES: float = _env_float(
        "LWA_GAP_DEFAULT_THRESHOLD_MINUTES", 0.0
    )


@dataclass(frozen=True)
class IngestConfig:
    """CSV ingestion defaults."""

    # IANA zone used for naive "YYYY-MM-DD HH:MM:SS" timestamps
    DEFAULT_TIMEZONE: str = _env_str("LWA_INGEST_DEFAULT_TIMEZONE", "UTC")


class Config:
    """
    Main configuration container.

    Access via Config.GROUP.CONSTANT, e.g.:
        Config.FILL.MIN_EXPECTED
        Config.GAP.DEFAULT_THRESHOLD_MINUTES
    """

    ANALYTICS = AnalyticsConfig()
    FILL = DailyFillConfig()
    GAP = GapConfig()
    INGEST = IngestConfig()

    _version: int = 0

    @classmethod
    def to_dict(cls) -> Dict[str, Dict[str, Any]]:
        """Export all config as dict (useful for debugging)."""
        from dataclasses import asdict
        return {
            "analytics": asdict(cls.ANALYTICS),
            "fill": asdict(cls.FILL),
            "gap": asdict(cls.GAP),
            "ingest": asdict(cls.INGEST),
            "_version": cls._version,
        }

    @classmethod
    def get_version(cls) -> int:
        """Get current config version (increments on reload)."""
        return cls._version


def reload_config() -> None:
    """
    Reload configuration from environment variables.

    Readers see either the old or the new groups, never a mix of both.
    """
    with _config_lock:
        Config.ANALYTICS = AnalyticsConfig(
            VERSION=_env_str("LWA_ANALYTICS_VERSION", "2.1.0"),
            DEFAULT_CATEGORY=_env_str("LWA_ANALYTICS_DEFAULT_CATEGORY", "normal"),
            DEFAULT_LOSS_RATE_THRESHOLD=_env_float(
                "LWA_ANALYTICS_DEFAULT_LOSS_RATE_THRESHOLD", 5.0
            ),
        )
        Config.FILL = DailyFillConfig(
            ENABLED=_env_bool("LWA_FILL_ENABLED", True),
            EXPECTED_BASELINE=_env_str(
                "LWA_FILL_EXPECTED_BASELINE", "per-node-daily-median"
            ),
            FIXED_EXPECTED=_env_int("LWA_FILL_FIXED_EXPECTED", 1),
            MIN_EXPECTED=_env_int("LWA_FILL_MIN_EXPECTED", 1),
        )
        Config.GAP = GapConfig(
            DEFAULT_THRESHOLD_MINUTES=_env_float(
                "LWA_GAP_DEFAULT_THRESHOLD_MINUTES", 0.0
            ),
        )
        Config.INGEST = IngestConfig(
            DEFAULT_TIMEZONE=_env_str("LWA_INGEST_DEFAULT_TIMEZONE", "UTC"),
        )
        Config._version += 1

        logger.info(f"Configuration reloaded (version {Config._version})")
