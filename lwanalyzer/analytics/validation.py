"""
Input Validation for Analytics Options
======================================

Validation helpers for option values read from config files and the
command line. The analytics core normalises loose option dicts on its
own; these helpers are for the strict paths where a bad value should be
reported back to the operator.

Usage
-----
    from lwanalyzer.analytics.validation import (
        ValidationError, validate_positive_float, validate_datetime
    )

    try:
        gap = validate_positive_float(raw, "gap_threshold_minutes", default=0.0)
        start = validate_datetime(raw_start, "start", required=False)
    except ValidationError as e:
        payload = e.to_response()

Error Response Format
--------------------
    {
        "success": False,
        "error": {
            "code": "INVALID_PARAMETER",
            "message": "...",
            "exitStatus": 2,
            "details": { "parameter": "...", "value": "..." }
        }
    }
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Dict

from .errors import ErrorCode, error_result
from .utils import parse_datetime


@dataclass
class ValidationError(Exception):
    """Validation error with details for the error payload."""

    parameter: str
    message: str
    value: Any = None

    def to_response(self) -> Dict[str, Any]:
        return error_result(
            ErrorCode.INVALID_PARAMETER,
            self.message,
            details={
                "parameter": self.parameter,
                "value": str(self.value) if self.value is not None else None,
            }
        )

    def __str__(self) -> str:
        return f"Invalid '{self.parameter}': {self.message}"


def validate_positive_int(
    value: Any,
    name: str,
    default: Optional[int] = None,
    min_value: int = 1,
    max_value: Optional[int] = None,
) -> int:
    """
    Validate and convert value to an integer within bounds.

    Raises:
        ValidationError: If value is missing (and no default) or invalid
    """
    if value is None or value == "":
        if default is not None:
            return default
        raise ValidationError(name, f"'{name}' is required", value)

    if isinstance(value, bool):
        raise ValidationError(name, f"must be an integer, got '{value}'", value)

    try:
        int_val = int(value)
    except (ValueError, TypeError):
        raise ValidationError(name, f"must be an integer, got '{value}'", value)

    if int_val < min_value:
        raise ValidationError(
            name,
            f"must be at least {min_value}, got {int_val}",
            value
        )

    if max_value is not None and int_val > max_value:
        raise ValidationError(
            name,
            f"must be at most {max_value}, got {int_val}",
            value
        )

    return int_val


def validate_positive_float(
    value: Any,
    name: str,
    default: Optional[float] = None,
    min_value: float = 0.0,
    max_value: Optional[float] = None,
) -> float:
    """
    Validate and convert value to a float within bounds.

    Raises:
        ValidationError: If value is missing (and no default) or invalid
    """
    if value is None or value == "":
        if default is not None:
            return default
        raise ValidationError(name, f"'{name}' is required", value)

    if isinstance(value, bool):
        raise ValidationError(name, f"must be a number, got '{value}'", value)

    try:
        float_val = float(value)
    except (ValueError, TypeError):
        raise ValidationError(name, f"must be a number, got '{value}'", value)

    if float_val != float_val:
        raise ValidationError(name, "must be a number, got NaN", value)

    if float_val < min_value:
        raise ValidationError(
            name,
            f"must be at least {min_value}, got {float_val}",
            value
        )

    if max_value is not None and float_val > max_value:
        raise ValidationError(
            name,
            f"must be at most {max_value}, got {float_val}",
            value
        )

    return float_val


def validate_bool(
    value: Any,
    name: str,
    default: bool = False,
) -> bool:
    """
    Validate boolean parameter.

    Accepts: true/false, 1/0, yes/no (case insensitive) and real bools.
    """
    if value is None or value == "":
        return default

    if isinstance(value, bool):
        return value

    str_val = str(value).lower().strip()

    if str_val in ("true", "1", "yes"):
        return True
    if str_val in ("false", "0", "no"):
        return False

    raise ValidationError(
        name,
        f"must be a boolean (true/false), got '{value}'",
        value
    )


def validate_string_choice(
    value: Any,
    name: str,
    choices: list,
    default: Optional[str] = None,
    case_sensitive: bool = False,
) -> str:
    """
    Validate string is one of allowed choices.

    Returns the canonical spelling from choices.
    """
    if value is None or value == "":
        if default is not None:
            return default
        raise ValidationError(name, f"'{name}' is required", value)

    str_val = str(value)

    if case_sensitive:
        if str_val in choices:
            return str_val
    else:
        lower_val = str_val.lower()
        for choice in choices:
            if choice.lower() == lower_val:
                return choice

    choices_str = ", ".join(f"'{c}'" for c in choices)
    raise ValidationError(
        name,
        f"must be one of [{choices_str}], got '{value}'",
        value
    )


def validate_datetime(
    value: Any,
    name: str,
    required: bool = False,
) -> Optional[datetime]:
    """
    Validate a timestamp given as datetime or ISO-8601 string.

    Naive values are taken as UTC.
    """
    if value is None or value == "":
        if required:
            raise ValidationError(name, f"'{name}' is required", value)
        return None

    parsed = parse_datetime(value)
    if parsed is None:
        raise ValidationError(
            name,
            f"must be an ISO-8601 timestamp (e.g., '2024-05-01T00:00:00Z'), got '{value}'",
            value
        )
    return parsed
