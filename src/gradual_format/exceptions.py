"""Custom exception hierarchy for gradual-format."""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(str, Enum):
    """Standardized error codes surfaced in reports and logs."""

    # Configuration errors
    INVALID_COUNT = "INVALID_COUNT"
    INVALID_PATTERN = "INVALID_PATTERN"
    INVALID_SETTING = "INVALID_SETTING"
    NOT_A_REPOSITORY = "NOT_A_REPOSITORY"

    # History errors
    HISTORY_UNAVAILABLE = "HISTORY_UNAVAILABLE"

    # Formatter errors
    FORMATTER_NOT_FOUND = "FORMATTER_NOT_FOUND"
    FORMATTER_TIMEOUT = "FORMATTER_TIMEOUT"
    FORMATTER_CRASHED = "FORMATTER_CRASHED"
    FILE_FORMAT_FAILED = "FILE_FORMAT_FAILED"


class GradualFormatError(Exception):
    """
    Base exception for all gradual-format errors.

    Provides structured error information with:
    - Human-readable message
    - Machine-readable error code
    - Process exit code for the CLI
    - Optional additional details
    """

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a JSON-friendly dictionary."""
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


class ConfigurationError(GradualFormatError):
    """Invocation configuration is invalid. Raised before any work begins."""

    exit_code = 2

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INVALID_SETTING,
        field: Optional[str] = None
    ):
        details = {"field": field} if field else {}
        super().__init__(message, error_code, details=details)


class InvalidPatternError(ConfigurationError):
    """An ignore/include pattern failed to compile."""

    def __init__(self, pattern: str, reason: str):
        super().__init__(
            f"Invalid file pattern {pattern!r}: {reason}",
            ErrorCode.INVALID_PATTERN,
            field="pattern",
        )
        self.details["pattern"] = pattern


class HistoryUnavailable(GradualFormatError):
    """Revision history is shallow or missing.

    Non-fatal: the scanner records it as a diagnostic and continues with a
    best-effort ordering.
    """

    def __init__(self, reason: str):
        super().__init__(
            f"Revision history unavailable: {reason}",
            ErrorCode.HISTORY_UNAVAILABLE,
        )


class PerFileFormatError(GradualFormatError):
    """The formatter could not process one file. Recovered locally."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            f"Cannot format {path}: {reason}",
            ErrorCode.FILE_FORMAT_FAILED,
            details={"path": path, "reason": reason}
        )
        self.path = path
        self.reason = reason


class ToolInvocationFailure(GradualFormatError):
    """The formatter could not be run at all, crashed, or hung."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.FORMATTER_CRASHED,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details=details)
