import copy
import logging
import os
from typing import Any, Dict, Optional

import yaml

from .analytics.backfill import BASELINE_FIXED, BASELINE_MEDIAN, DailyFillPolicy
from .analytics.classification import ClassificationConfig, build_classification_config
from .analytics.config import Config
from .analytics.processor import AnalyticsOptions
from .analytics.time_window import FilterWindow
from .analytics.validation import (
    ValidationError,
    validate_bool,
    validate_datetime,
    validate_positive_float,
    validate_positive_int,
    validate_string_choice,
)

logger = logging.getLogger("Config")

DEFAULT_CONFIG_PATH = "/etc/lw_analyzer/config.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "logging": {
        "level": "INFO",
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    },
    "input": {
        "timezone": None,
    },
    "analysis": {
        "filter_window": {
            "start": None,
            "end": None,
            "inclusive_start": False,
            "inclusive_end": False,
        },
        "gap_threshold_minutes": None,
        "classification": {
            "loss_rate_threshold": None,
            "reset_threshold": None,
            "inactive_since_minutes": None,
            # Explicit rule list; replaces the thresholds above when set
            "rules": None,
            "default_category": "normal",
        },
        "daily_fill": {
            "enabled": None,
            "expected_baseline": None,
            "fixed_expected": None,
            "min_expected": None,
        },
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load a YAML config file over the built-in defaults.

    With no path, the default location is used when it exists, otherwise
    the defaults alone are returned. An explicit path must exist.
    """
    if config_path is None:
        config_path = os.environ.get("LWA_CONFIG")
        if config_path is None and os.path.exists(DEFAULT_CONFIG_PATH):
            config_path = DEFAULT_CONFIG_PATH
    if config_path is None:
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(config_path, "r") as f:
            loaded = yaml.safe_load(f) or {}
    except OSError as e:
        raise ValidationError("config", f"cannot read config file: {e}", config_path)
    except yaml.YAMLError as e:
        raise ValidationError("config", f"invalid YAML: {e}", config_path)

    if not isinstance(loaded, dict):
        raise ValidationError("config", "top level must be a mapping", config_path)

    logger.debug(f"Loaded configuration from {config_path}")
    return _deep_merge(DEFAULT_CONFIG, loaded)


def save_config(config: Dict[str, Any], config_path: str) -> None:
    with open(config_path, "w") as f:
        yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
    logger.info(f"Configuration saved to {config_path}")


def _filter_window(section: Dict[str, Any]) -> FilterWindow:
    start = validate_datetime(section.get("start"), "filter_window.start")
    end = validate_datetime(section.get("end"), "filter_window.end")
    if start is not None and end is not None and start > end:
        raise ValidationError("filter_window", "start must not be after end", f"{start} > {end}")
    return FilterWindow(
        start=start,
        end=end,
        inclusive_start=validate_bool(section.get("inclusive_start"), "filter_window.inclusive_start"),
        inclusive_end=validate_bool(section.get("inclusive_end"), "filter_window.inclusive_end"),
    )


def _classification(section: Dict[str, Any], gap_minutes: float) -> ClassificationConfig:
    rules = section.get("rules")
    if rules is not None:
        if not isinstance(rules, list):
            raise ValidationError("classification.rules", "must be a list of rules", rules)
        return ClassificationConfig.from_dict({
            "rules": rules,
            "defaultCategory": validate_string_choice(
                section.get("default_category"), "classification.default_category",
                ["normal", "abnormal", "exception"], default="normal",
            ),
            "version": section.get("version", "custom"),
        })

    return build_classification_config(
        loss_rate_threshold=validate_positive_float(
            section.get("loss_rate_threshold"), "classification.loss_rate_threshold",
            default=Config.ANALYTICS.DEFAULT_LOSS_RATE_THRESHOLD, max_value=100.0,
        ),
        reset_threshold=validate_positive_int(
            section.get("reset_threshold"), "classification.reset_threshold",
            default=0, min_value=0,
        ),
        gap_threshold_minutes=gap_minutes,
        inactive_since_minutes=validate_positive_float(
            section.get("inactive_since_minutes"), "classification.inactive_since_minutes",
            default=0.0,
        ),
    )


def _daily_fill(section: Dict[str, Any]) -> DailyFillPolicy:
    fill = Config.FILL
    return DailyFillPolicy(
        enabled=validate_bool(section.get("enabled"), "daily_fill.enabled", default=fill.ENABLED),
        expected_baseline=validate_string_choice(
            section.get("expected_baseline"), "daily_fill.expected_baseline",
            [BASELINE_MEDIAN, BASELINE_FIXED], default=fill.EXPECTED_BASELINE,
        ),
        fixed_expected=validate_positive_int(
            section.get("fixed_expected"), "daily_fill.fixed_expected", default=fill.FIXED_EXPECTED,
        ),
        min_expected=validate_positive_int(
            section.get("min_expected"), "daily_fill.min_expected", default=fill.MIN_EXPECTED,
        ),
    )


def options_from_config(config: Dict[str, Any]) -> AnalyticsOptions:
    """
    Strictly validated AnalyticsOptions from the 'analysis' section.

    Raises:
        ValidationError: On the first invalid value
    """
    analysis = config.get("analysis") or {}

    gap_minutes = validate_positive_float(
        analysis.get("gap_threshold_minutes"), "gap_threshold_minutes",
        default=Config.GAP.DEFAULT_THRESHOLD_MINUTES,
    )

    return AnalyticsOptions(
        filter_window=_filter_window(analysis.get("filter_window") or {}),
        classification=_classification(analysis.get("classification") or {}, gap_minutes),
        gap_threshold_minutes=gap_minutes if gap_minutes > 0 else None,
        daily_fill=_daily_fill(analysis.get("daily_fill") or {}),
    )
