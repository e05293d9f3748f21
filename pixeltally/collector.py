"""
Collector: owns the period log and the historical snapshot of one directory.

Hits are appended to ``log.csv``. When a hit arrives on a new calendar day
the finished log is re-read into hourly Stats, folded into ``stats.csv`` and
only then truncated, so a crash at any point leaves either the log or the
already persisted history to recover from.

Thread Safety:
    All public methods take one lock for their whole duration.
"""

import logging
import os
import posixpath
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, timezone, tzinfo
from pathlib import Path
from typing import Mapping, Optional, Tuple

from .errors import ConfigError, ParseError, ParseErrorKind
from .log import Appender, Hit, parse_log
from .stats import Stats, decode

logger = logging.getLogger(__name__)

LOG_NAME = "log.csv"
STATS_NAME = "stats.csv"


def is_tracked(path: str) -> bool:
    """False for static assets (any file extension) and internal ``/_`` paths."""
    if not path:
        return False
    if posixpath.splitext(path)[1]:
        return False
    return "/_" not in path


@dataclass(frozen=True)
class ReportContext:
    """Everything a dashboard renderer may use."""

    daily: Stats
    history: Stats
    extra: Mapping[str, str] = field(default_factory=dict)


class Collector:
    """
    Aggregation engine for one data directory.

    Usage:
        collector = Collector("data", tz=ZoneInfo("Europe/Berlin"))
        collector.add(hit)
        daily, history = collector.stats()
        collector.close()
    """

    def __init__(self, directory, tz: tzinfo = timezone.utc, fsync: bool = False):
        if not directory:
            raise ConfigError("Collector needs a data directory")
        self._dir = Path(directory)
        self._tz = tz
        self._fsync = fsync
        self._lock = threading.Lock()
        self._appender: Optional[Appender] = None
        self._history: Optional[Stats] = None

    @property
    def directory(self) -> Path:
        return self._dir

    @property
    def tz(self) -> tzinfo:
        return self._tz

    @property
    def log_path(self) -> Path:
        return self._dir / LOG_NAME

    @property
    def stats_path(self) -> Path:
        return self._dir / STATS_NAME

    def add(self, hit: Hit) -> bool:
        """
        Record a hit, rolling the period over first if its day has ended.

        Returns:
            False if the hit was filtered out, True if it was logged
        """
        if not is_tracked(hit.path):
            logger.debug(f"Ignoring hit for {hit.path!r}")
            return False
        with self._lock:
            self._open_appender(truncate=False)
            start = self._appender.start_time
            if start is not None and self._day(hit.timestamp) != self._day(start):
                self._rollover()
            self._appender.append(hit)
        return True

    def stats(self) -> Tuple[Stats, Stats]:
        """
        Current period (hourly) and history including the current period (daily).

        Nothing is written: the live log is merged into a copy of the history.
        """
        with self._lock:
            history = self._load_history().copy()
            daily = parse_log(self.log_path, self._tz)
            history.merge(daily)
            return daily, history

    def report_context(self, extra: Optional[Mapping[str, str]] = None) -> ReportContext:
        extra = dict(extra or {})
        for key, value in extra.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise TypeError(f"Report extras must map str to str, got {key!r}: {value!r}")
        daily, history = self.stats()
        return ReportContext(daily=daily, history=history, extra=extra)

    def close(self) -> None:
        with self._lock:
            self._close_appender()

    def __enter__(self) -> "Collector":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Internals, called with the lock held
    # -------------------------------------------------------------------------
    def _day(self, t: datetime) -> date:
        return t.astimezone(self._tz).date()

    def _rollover(self) -> None:
        # Persisting history must happen before the log is truncated
        self._close_appender()
        history = self._load_history()
        daily = parse_log(self.log_path, self._tz)
        history.merge(daily)
        self._save_history()
        logger.info(f"Rolled over {daily.start.date() if daily.start else 'empty log'} "
                    f"into {self.stats_path}")
        self._open_appender(truncate=True)

    def _open_appender(self, truncate: bool) -> None:
        if self._appender is None:
            self._appender = Appender.open(self.log_path, truncate=truncate, fsync=self._fsync)

    def _close_appender(self) -> None:
        if self._appender is not None:
            self._appender.close()
            self._appender = None

    def _load_history(self) -> Stats:
        if self._history is None:
            try:
                text = self.stats_path.read_text(encoding="utf-8")
            except FileNotFoundError:
                logger.info(f"No history at {self.stats_path}, starting fresh")
                self._history = Stats()
            else:
                if text == "":
                    raise ParseError(ParseErrorKind.TRUNCATED, f"{self.stats_path} is empty")
                self._history = decode(text)
        return self._history

    def _save_history(self) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        tmp = self.stats_path.with_name(STATS_NAME + ".tmp")
        with open(tmp, "w", encoding="utf-8", newline="\n") as f:
            f.write(self._history.encode())
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.stats_path)
        logger.info(f"Saved history ({self._history.width} days) to {self.stats_path}")
