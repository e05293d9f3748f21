"""
pixeltally
==========

Self-hosted, cookie-less web analytics.

    pixeltally/
    ├── frame.py       # Frame, Row: sorted named time series
    ├── stats.py       # Stats: five frames, text codec, daily merge
    ├── log.py         # Hit, Appender: append-only period log
    ├── collector.py   # Collector: rollover and locking
    ├── hit.py         # request -> Hit normalization
    ├── geo.py         # IP -> country lookup
    ├── report.py      # dashboard
    └── app.py         # Flask routes
"""

from pixeltally.collector import Collector, ReportContext, is_tracked
from pixeltally.errors import (
    AnalyticsError,
    ConfigError,
    MergeError,
    ParseError,
    ParseErrorKind,
)
from pixeltally.frame import Frame, Row
from pixeltally.log import Appender, Hit, parse_log
from pixeltally.stats import Stats, decode, encode

__all__ = [
    "Appender",
    "AnalyticsError",
    "Collector",
    "ConfigError",
    "Frame",
    "Hit",
    "MergeError",
    "ParseError",
    "ParseErrorKind",
    "ReportContext",
    "Row",
    "Stats",
    "decode",
    "encode",
    "is_tracked",
    "parse_log",
]

__version__ = "1.0.0"
