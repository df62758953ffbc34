"""
Error Handling for the Analytics Engine
=======================================

The analytics core does not raise for degenerate data: empty inputs,
zero expected packets and unusable metric values are all expressed as
sentinels (-1 / None). The error types here cover the edges of the
system, where options and files are read.

Error Codes
-----------
    INVALID_PARAMETER (2): Bad option value
    MISSING_PARAMETER (2): Required option missing
    INVALID_INPUT (3): Input file could not be read as records
    INTERNAL_ERROR (1): Unexpected internal error

Usage
-----
    from lwanalyzer.analytics.errors import ErrorCode, AnalyticsError

    raise AnalyticsError(ErrorCode.INVALID_INPUT, f"No header row in {path}")

    # CLI side
    payload = error_result_from_exception(exc)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Standard error codes with their CLI exit status."""

    INVALID_PARAMETER = ("INVALID_PARAMETER", 2, "Invalid or malformed parameter")
    MISSING_PARAMETER = ("MISSING_PARAMETER", 2, "Required parameter missing")
    INVALID_INPUT = ("INVALID_INPUT", 3, "Input could not be parsed")
    INTERNAL_ERROR = ("INTERNAL_ERROR", 1, "An internal error occurred")

    def __init__(self, code: str, exit_status: int, default_message: str):
        self.code = code
        self.exit_status = exit_status
        self.default_message = default_message


@dataclass
class AnalyticsError(Exception):
    """Exception with error code for CLI / caller responses."""

    error_code: ErrorCode
    message: str
    details: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        return f"[{self.error_code.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "success": False,
            "error": {
                "code": self.error_code.code,
                "message": self.message,
                "exitStatus": self.error_code.exit_status,
            }
        }
        if self.details:
            result["error"]["details"] = self.details
        return result


def error_result(
    error_code: ErrorCode,
    message: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build an error payload.

    Args:
        error_code: The ErrorCode enum value
        message: Custom error message (uses default if not provided)
        details: Additional error details

    Returns:
        Dict with success=False and error info
    """
    msg = message or error_code.default_message

    result = {
        "success": False,
        "error": {
            "code": error_code.code,
            "message": msg,
            "exitStatus": error_code.exit_status,
        }
    }

    if details:
        result["error"]["details"] = details

    return result


def error_result_from_exception(
    exc: Exception,
    default_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
) -> Dict[str, Any]:
    """
    Build an error payload from an exception.

    AnalyticsError and ValidationError carry their own code; anything
    else is reported under default_code with the exception message.
    """
    if isinstance(exc, AnalyticsError):
        return exc.to_dict()

    to_response = getattr(exc, "to_response", None)
    if callable(to_response):
        return to_response()

    return error_result(default_code, str(exc))


def exit_status_for(exc: Exception) -> int:
    """Exit status the CLI should use for an exception."""
    if isinstance(exc, AnalyticsError):
        return exc.error_code.exit_status
    if hasattr(exc, "to_response"):
        return ErrorCode.INVALID_PARAMETER.exit_status
    return ErrorCode.INTERNAL_ERROR.exit_status
