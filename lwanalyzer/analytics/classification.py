"""
Classification - hierarchical rule evaluation and threshold views
=================================================================

Sorts devices into normal / abnormal / exception buckets, once per day
and once over the whole window.

Rule Tiers
----------
    Priority 1 (exception tier):
        Evaluated first, in list order. The first matching rule makes
        the device an exception, whatever the rule's category says.

    Priority 2 (normal/abnormal tier):
        Evaluated only when no exception rule matched. The first
        matching rule's category is returned.

    No match:
        The config's default_category (normally "normal").

Skipped Values
--------------
A rule whose metric value is missing (None / NaN) is skipped, not
treated as a failed comparison. Two sentinels are skipped as well:

    maxGapMinutes     -1  no gap data (or no gap found)
    lossRatePercent   -1  nothing expected, loss not applicable

A rule with an operator or metric that could not be parsed never
matches; it is reported once, when the config is parsed.

Metrics
-------
    lossRatePercent, resetCount, avgRSSI, avgSNR, duplicateCount,
    maxGapMinutes, inactiveSinceMinutes

inactiveSinceMinutes is the time from a device's last uplink to the end
of the observation window (the filter end if one was given, otherwise
the latest uplink of the fleet). It only exists at total granularity.

Daily and total classifications are independent: a device may be
normal on every day and still an exception overall, e.g. because of a
gap spanning midnight.

Config Format
-------------
    {
        "version": "hierarchical-2",
        "defaultCategory": "normal",
        "rules": [
            {"metric": "resetCount", "op": ">=", "value": 3,
             "category": "exception", "priority": 1,
             "note": "resetCount >= 3"},
            {"metric": "lossRatePercent", "op": ">", "value": 5,
             "category": "abnormal", "priority": 2},
            {"metric": "avgSNR", "op": "between", "min": -20, "max": -10,
             "category": "abnormal", "priority": 2}
        ]
    }
"""

import logging
import math
import operator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .config import Config
from .node_stats import ExceptionMarks, NodeDailyStat, NodeStat
from .utils import minutes_between

logger = logging.getLogger("Analytics.Classification")

EXCEPTION_TIER = 1
CLASSIFY_TIER = 2


class Category(str, Enum):
    """Classification buckets."""
    NORMAL = "normal"
    ABNORMAL = "abnormal"
    EXCEPTION = "exception"

    @classmethod
    def parse(cls, raw: Any, default: "Category") -> "Category":
        if isinstance(raw, Category):
            return raw
        try:
            return cls(str(raw).lower())
        except ValueError:
            if raw not in (None, ""):
                logger.warning(f"Unknown category {raw!r}, bucketing as abnormal")
                return cls.ABNORMAL
            return default


class ComparisonOp(str, Enum):
    """Closed set of rule operators."""
    GT = ">"
    GE = ">="
    LT = "<"
    LE = "<="
    EQ = "=="
    NE = "!="
    BETWEEN = "between"
    OUTSIDE = "outside"

    @classmethod
    def parse(cls, raw: Any) -> Optional["ComparisonOp"]:
        if isinstance(raw, ComparisonOp):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return None


class MetricKey(str, Enum):
    """Metrics a rule can test."""
    LOSS_RATE = "lossRatePercent"
    RESET_COUNT = "resetCount"
    AVG_RSSI = "avgRSSI"
    AVG_SNR = "avgSNR"
    DUPLICATE_COUNT = "duplicateCount"
    MAX_GAP = "maxGapMinutes"
    INACTIVE_SINCE = "inactiveSinceMinutes"

    @classmethod
    def parse(cls, raw: Any) -> Optional["MetricKey"]:
        if isinstance(raw, MetricKey):
            return raw
        raw = METRIC_ALIASES.get(raw, raw)
        try:
            return cls(raw)
        except ValueError:
            return None


# Spellings used by older saved configs
METRIC_ALIASES = {
    "lossRate": "lossRatePercent",
    "duplicatePackets": "duplicateCount",
}

METRIC_LABELS = {
    MetricKey.RESET_COUNT: "FCNT Reset",
    MetricKey.MAX_GAP: "No Data Gap",
    MetricKey.INACTIVE_SINCE: "Inactive Since",
}

# Metric sentinels meaning "not applicable"
SKIP_NEGATIVE = (MetricKey.MAX_GAP, MetricKey.LOSS_RATE)


def _between(value: float, low: float, high: float) -> bool:
    return low <= value <= high


def _outside(value: float, low: float, high: float) -> bool:
    return value < low or value > high


_SCALAR_OPS: Dict[ComparisonOp, Callable[[float, float], bool]] = {
    ComparisonOp.GT: operator.gt,
    ComparisonOp.GE: operator.ge,
    ComparisonOp.LT: operator.lt,
    ComparisonOp.LE: operator.le,
    ComparisonOp.EQ: operator.eq,
    ComparisonOp.NE: operator.ne,
}

_RANGE_OPS: Dict[ComparisonOp, Callable[[float, float, float], bool]] = {
    ComparisonOp.BETWEEN: _between,
    ComparisonOp.OUTSIDE: _outside,
}


def _number_or_none(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


@dataclass(frozen=True)
class Rule:
    """One classification rule."""
    metric: Optional[MetricKey]
    op: Optional[ComparisonOp]
    threshold: Optional[float] = None
    category: Category = Category.ABNORMAL
    priority: int = CLASSIFY_TIER
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    note: Optional[str] = None

    @property
    def is_exception_rule(self) -> bool:
        return self.priority == EXCEPTION_TIER or self.category == Category.EXCEPTION

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Rule":
        metric = MetricKey.parse(raw.get("metric"))
        if metric is None:
            logger.warning(f"Rule has unknown metric {raw.get('metric')!r}; it will never match")

        op = ComparisonOp.parse(raw.get("op", raw.get("comparisonOp")))
        if op is None:
            logger.warning(f"Rule has unknown operator {raw.get('op')!r}; it will never match")

        category = Category.parse(raw.get("category"), Category.ABNORMAL)
        priority = raw.get("priority")
        if priority not in (EXCEPTION_TIER, CLASSIFY_TIER):
            priority = EXCEPTION_TIER if category == Category.EXCEPTION else CLASSIFY_TIER

        return cls(
            metric=metric,
            op=op,
            threshold=_number_or_none(raw.get("value", raw.get("thresholdValue"))),
            category=category,
            priority=priority,
            min_value=_number_or_none(raw.get("min")),
            max_value=_number_or_none(raw.get("max")),
            note=raw.get("note"),
        )

    def matches(self, value: float) -> bool:
        """Compare a present metric value against this rule."""
        if self.op in _SCALAR_OPS:
            if self.threshold is None:
                return False
            return _SCALAR_OPS[self.op](value, self.threshold)
        if self.op in _RANGE_OPS:
            if self.min_value is None or self.max_value is None:
                return False
            return _RANGE_OPS[self.op](value, self.min_value, self.max_value)
        return False

    def to_dict(self) -> dict:
        result = {
            "metric": self.metric.value if self.metric else None,
            "op": self.op.value if self.op else None,
            "category": self.category.value,
            "priority": self.priority,
        }
        if self.op in _RANGE_OPS:
            result["min"] = self.min_value
            result["max"] = self.max_value
        else:
            result["value"] = self.threshold
        if self.note:
            result["note"] = self.note
        return result


@dataclass(frozen=True)
class ClassificationConfig:
    """Ordered, prioritised rule list."""
    rules: Tuple[Rule, ...] = ()
    default_category: Category = Category.NORMAL
    version: str = "1.0.0"

    @classmethod
    def default(cls) -> "ClassificationConfig":
        threshold = Config.ANALYTICS.DEFAULT_LOSS_RATE_THRESHOLD
        return cls(
            rules=(
                Rule(
                    metric=MetricKey.LOSS_RATE,
                    op=ComparisonOp.GT,
                    threshold=threshold,
                    category=Category.ABNORMAL,
                    priority=CLASSIFY_TIER,
                    note=f"lossRate > {threshold:g}%",
                ),
            ),
            default_category=Category.parse(Config.ANALYTICS.DEFAULT_CATEGORY, Category.NORMAL),
        )

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> "ClassificationConfig":
        if raw is None:
            return cls.default()
        if isinstance(raw, ClassificationConfig):
            return raw
        if not isinstance(raw, Mapping):
            logger.warning(f"Ignoring classification config of type {type(raw).__name__}; using defaults")
            return cls.default()

        raw_rules = raw.get("rules") or []
        if not isinstance(raw_rules, (list, tuple)):
            logger.warning(f"Ignoring classification rules {raw_rules!r}; expected a list")
            raw_rules = []
        rules = []
        for entry in raw_rules:
            if isinstance(entry, Rule):
                rules.append(entry)
                continue
            if not isinstance(entry, Mapping):
                logger.warning(f"Skipping classification rule {entry!r}; expected a mapping")
                continue
            rules.append(Rule.from_dict(entry))

        return cls(
            rules=tuple(rules),
            default_category=Category.parse(
                raw.get("defaultCategory", raw.get("default_category")), Category.NORMAL
            ),
            version=str(raw.get("version", "1.0.0")),
        )

    def tier(self, priority: int) -> List[Rule]:
        return [r for r in self.rules if r.priority == priority]

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "defaultCategory": self.default_category.value,
            "hierarchical": True,
            "rules": [r.to_dict() for r in self.rules],
        }


def build_classification_config(
    loss_rate_threshold: Optional[float] = None,
    reset_threshold: Optional[int] = None,
    gap_threshold_minutes: Optional[float] = None,
    inactive_since_minutes: Optional[float] = None,
) -> ClassificationConfig:
    """
    Assemble the standard two-tier rule set from operator thresholds.

    Exception rules are added only for thresholds > 0. The loss rule is
    added for any threshold >= 0 (0 flags every device with any loss);
    None uses the configured default threshold.
    """
    rules = []

    if reset_threshold and reset_threshold > 0:
        rules.append(Rule(
            metric=MetricKey.RESET_COUNT, op=ComparisonOp.GE, threshold=reset_threshold,
            category=Category.EXCEPTION, priority=EXCEPTION_TIER,
            note=f"resetCount >= {reset_threshold:g}",
        ))

    if gap_threshold_minutes and gap_threshold_minutes > 0:
        rules.append(Rule(
            metric=MetricKey.MAX_GAP, op=ComparisonOp.GE, threshold=gap_threshold_minutes,
            category=Category.EXCEPTION, priority=EXCEPTION_TIER,
            note=f"No data gap >= {gap_threshold_minutes:g} minutes",
        ))

    if inactive_since_minutes and inactive_since_minutes > 0:
        rules.append(Rule(
            metric=MetricKey.INACTIVE_SINCE, op=ComparisonOp.GE, threshold=inactive_since_minutes,
            category=Category.EXCEPTION, priority=EXCEPTION_TIER,
            note=f"Inactive since >= {inactive_since_minutes:g} minutes (node.last -> overall.last)",
        ))

    if loss_rate_threshold is None:
        loss_rate_threshold = Config.ANALYTICS.DEFAULT_LOSS_RATE_THRESHOLD
    if loss_rate_threshold >= 0:
        rules.append(Rule(
            metric=MetricKey.LOSS_RATE, op=ComparisonOp.GT, threshold=loss_rate_threshold,
            category=Category.ABNORMAL, priority=CLASSIFY_TIER,
            note=f"lossRate > {loss_rate_threshold:g}%",
        ))

    return ClassificationConfig(
        rules=tuple(rules),
        default_category=Category.NORMAL,
        version="hierarchical-2",
    )


# =============================
# Evaluation
# =============================

def metric_value(metrics: Mapping[str, Any], rule: Rule) -> Optional[float]:
    """
    Value a rule should be tested against, or None to skip the rule.
    """
    if rule.metric is None or rule.op is None:
        return None
    value = _number_or_none(metrics.get(rule.metric.value))
    if value is None:
        return None
    if rule.metric in SKIP_NEGATIVE and value < 0:
        return None
    return value


def rule_applies(metrics: Mapping[str, Any], rule: Rule) -> bool:
    value = metric_value(metrics, rule)
    if value is None:
        return False
    return rule.matches(value)


def classify_metrics(metrics: Mapping[str, Any], config: ClassificationConfig) -> Category:
    """
    Classify one metric bag.

    Args:
        metrics: Mapping of MetricKey values to numbers (or None)
        config: Rule set

    Returns:
        Category of the first matching rule by tier, else the default
    """
    for rule in config.tier(EXCEPTION_TIER):
        if rule_applies(metrics, rule):
            return Category.EXCEPTION

    for rule in config.tier(CLASSIFY_TIER):
        if rule_applies(metrics, rule):
            return rule.category

    return config.default_category


def get_exception_matches(metrics: Mapping[str, Any], config: ClassificationConfig) -> List[Rule]:
    """Every matching exception rule (for tags), not just the first."""
    return [r for r in config.rules if r.is_exception_rule and rule_applies(metrics, r)]


def exception_marks(matches: List[Rule]) -> ExceptionMarks:
    marks = ExceptionMarks()
    for rule in matches:
        tag = rule.metric.value
        if tag not in marks.tags:
            marks.tags.append(tag)
            marks.labels.append(METRIC_LABELS.get(rule.metric, tag))
        if rule.note:
            marks.notes.setdefault(tag, []).append(rule.note)
    return marks


def daily_metrics(day: NodeDailyStat) -> Dict[str, Optional[float]]:
    return {
        MetricKey.LOSS_RATE.value: day.loss_rate_percent,
        MetricKey.RESET_COUNT.value: day.reset_count,
        MetricKey.AVG_RSSI.value: day.avg_rssi,
        MetricKey.AVG_SNR.value: day.avg_snr,
        MetricKey.DUPLICATE_COUNT.value: day.duplicate_count,
        MetricKey.MAX_GAP.value: day.max_gap_minutes,
    }


def inactive_since_minutes(node: NodeStat, overall_last: Optional[datetime]) -> Optional[float]:
    last_seen = node.timeline.last_seen
    if overall_last is None or last_seen is None:
        return None
    return max(0.0, minutes_between(last_seen, overall_last))


def total_metrics(node: NodeStat) -> Dict[str, Optional[float]]:
    total = node.total
    return {
        MetricKey.LOSS_RATE.value: total.loss_rate_percent,
        MetricKey.RESET_COUNT.value: total.reset_count,
        MetricKey.AVG_RSSI.value: total.avg_rssi,
        MetricKey.AVG_SNR.value: total.avg_snr,
        MetricKey.DUPLICATE_COUNT.value: total.duplicate_count,
        MetricKey.MAX_GAP.value: total.max_gap_minutes,
        MetricKey.INACTIVE_SINCE.value: total.inactive_since_minutes,
    }


# =============================
# Threshold view
# =============================

@dataclass
class CategoryBuckets:
    """Device names per category."""
    normal: List[str] = field(default_factory=list)
    abnormal: List[str] = field(default_factory=list)
    exception: List[str] = field(default_factory=list)

    def add(self, category: Category, name: str) -> None:
        if category == Category.NORMAL:
            self.normal.append(name)
        elif category == Category.EXCEPTION:
            self.exception.append(name)
        else:
            self.abnormal.append(name)

    def sort(self) -> None:
        self.normal.sort()
        self.abnormal.sort()
        self.exception.sort()

    def to_dict(self) -> dict:
        return {
            "normalCount": len(self.normal),
            "abnormalCount": len(self.abnormal),
            "exceptionCount": len(self.exception),
            "normal": list(self.normal),
            "abnormal": list(self.abnormal),
            "exception": list(self.exception),
        }


@dataclass
class ThresholdDay(CategoryBuckets):
    date: str = ""

    def to_dict(self) -> dict:
        result = {"date": self.date}
        result.update(super().to_dict())
        return result


@dataclass
class ThresholdView:
    """Classification output: overall buckets plus one entry per date."""
    total: CategoryBuckets = field(default_factory=CategoryBuckets)
    list: List[ThresholdDay] = field(default_factory=list)
    threshold_value: Optional[float] = None
    exception_reset_threshold: Optional[float] = None
    exception_rule: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "total": self.total.to_dict(),
            "list": [d.to_dict() for d in self.list],
            "thresholdValue": self.threshold_value,
            "exceptionResetThreshold": self.exception_reset_threshold,
            "exceptionRule": self.exception_rule,
        }


def extract_threshold_hints(config: ClassificationConfig) -> Tuple[Optional[float], Optional[float], Optional[str]]:
    """Loss threshold and reset-exception threshold for chart annotations."""
    threshold_value = reset_threshold = reset_rule = None
    for rule in config.rules:
        lower_bound = rule.op in (ComparisonOp.GT, ComparisonOp.GE)
        if threshold_value is None and rule.metric == MetricKey.LOSS_RATE and lower_bound:
            threshold_value = rule.threshold
        if (reset_threshold is None and rule.metric == MetricKey.RESET_COUNT
                and rule.category == Category.EXCEPTION and lower_bound
                and rule.threshold is not None):
            reset_threshold = rule.threshold
            reset_rule = rule.note or f"resetCount {rule.op.value} {rule.threshold:g}"
    return threshold_value, reset_threshold, reset_rule


def build_threshold_view(
    per_node: List[NodeStat],
    config: ClassificationConfig,
    overall_last: Optional[datetime] = None,
) -> ThresholdView:
    """
    Classify every device per day and overall.

    Also records inactive_since_minutes and the exception marks on the
    node totals and daily entries, for table display.

    Args:
        per_node: Devices after backfill
        config: Rule set
        overall_last: End of the observation window (None disables
            the inactivity metric)
    """
    by_date: Dict[str, ThresholdDay] = {}
    view = ThresholdView()

    for node in per_node:
        name = node.id.display_name

        for day in node.daily:
            metrics = daily_metrics(day)
            day.exceptions = exception_marks(get_exception_matches(metrics, config))
            category = classify_metrics(metrics, config)
            by_date.setdefault(day.date, ThresholdDay(date=day.date)).add(category, name)

        node.total.inactive_since_minutes = inactive_since_minutes(node, overall_last)
        metrics = total_metrics(node)
        node.total.exceptions = exception_marks(get_exception_matches(metrics, config))
        category = classify_metrics(metrics, config)
        view.total.add(category, name)

        if category != Category.NORMAL:
            logger.debug(
                f"Node {name}: {category.value} "
                f"(loss={node.total.loss_rate_percent:.2f}% resets={node.total.reset_count} "
                f"maxGap={node.total.max_gap_minutes:.1f})"
            )

    view.total.sort()
    for day in by_date.values():
        day.sort()
    view.list = sorted(by_date.values(), key=lambda d: d.date)

    view.threshold_value, view.exception_reset_threshold, view.exception_rule = (
        extract_threshold_hints(config)
    )
    return view
