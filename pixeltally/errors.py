"""
Error types raised by the aggregation engine.

I/O failures are not wrapped: ``OSError`` reaches the caller unchanged.
"""

from enum import Enum


class ParseErrorKind(Enum):
    """What was wrong with a persisted file."""

    MISSING_HEADER = "missing_header"
    BAD_HEADER = "bad_header"
    BAD_TIMESTAMP = "bad_timestamp"
    BAD_INTERVAL = "bad_interval"
    SHORT_ROW = "short_row"
    BAD_VALUE = "bad_value"
    RAGGED_ROW = "ragged_row"
    TRUNCATED = "truncated"
    TRAILING_DATA = "trailing_data"
    DUPLICATE_ROW = "duplicate_row"
    BAD_LOG_PREFIX = "bad_log_prefix"


class AnalyticsError(Exception):
    """Base class for engine errors."""


class ParseError(AnalyticsError):
    """Persisted data could not be decoded."""

    def __init__(self, kind: ParseErrorKind, message: str, line: int | None = None):
        self.kind = kind
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class MergeError(AnalyticsError):
    """Two snapshots cannot be folded together."""


class ConfigError(AnalyticsError):
    """Engine used without, or with invalid, configuration."""
