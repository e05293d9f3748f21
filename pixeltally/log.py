"""
Append-only event log for the current period.

Each hit is one line:

    unixSeconds,path,session,referrer,country,device

The log is the source of truth for the open day. Its hourly Stats are always
recomputed by re-reading the file, never kept in memory.
"""

import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import BinaryIO, Optional

from .errors import ParseError, ParseErrorKind
from .stats import Stats, midnight

logger = logging.getLogger(__name__)

# Enough bytes to hold the leading timestamp of the first line
PREFIX_SIZE = 64

_LEADING_DIGITS = re.compile(rb"[0-9]+")


@dataclass(frozen=True)
class Hit:
    """A single normalized page visit."""

    timestamp: datetime
    path: str = ""
    session: str = ""
    referrer: str = ""
    country: str = ""
    device: str = ""

    def to_line(self) -> str:
        return ",".join([
            str(int(self.timestamp.timestamp())),
            self.path,
            self.session,
            self.referrer,
            self.country,
            self.device,
        ]) + "\n"


class Appender:
    """
    Append-only writer for the period log.

    ``start_time`` is the timestamp of the first hit in the file, or None if
    the file is empty. On reopen it is recovered from the first line without
    scanning the rest of the file.

    Usage:
        with Appender.open("data/log.csv") as ap:
            ap.append(hit)
    """

    def __init__(self, f: BinaryIO, start: Optional[datetime] = None, fsync: bool = False):
        self._file = f
        self._start = start
        self._fsync = fsync

    @classmethod
    def open(cls, path, truncate: bool = False, fsync: bool = False) -> "Appender":
        """
        Open (creating if needed) the log at ``path``.

        Args:
            path: Log file location; parent directories are created
            truncate: Discard existing content, used when a new period begins
            fsync: Force every appended line to disk

        Raises:
            OSError: If the file cannot be opened or read
            ParseError: If the file is non-empty but does not begin with a timestamp
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        f = open(path, "w+b" if truncate else "a+b")
        try:
            start = None
            if not truncate:
                f.seek(0)
                prefix = f.read(PREFIX_SIZE)
                if prefix:
                    start = _leading_timestamp(prefix, path)
                f.seek(0, os.SEEK_END)
        except BaseException:
            f.close()
            raise
        return cls(f, start, fsync)

    @property
    def start_time(self) -> Optional[datetime]:
        return self._start

    @property
    def closed(self) -> bool:
        return self._file.closed

    def append(self, hit: Hit) -> None:
        """Write one hit as a single complete line."""
        self._file.write(hit.to_line().encode("utf-8"))
        self._file.flush()
        if self._fsync:
            os.fsync(self._file.fileno())
        if self._start is None:
            self._start = hit.timestamp

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> "Appender":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _leading_timestamp(prefix: bytes, path: Path) -> datetime:
    m = _LEADING_DIGITS.match(prefix)
    if m is None:
        raise ParseError(
            ParseErrorKind.BAD_LOG_PREFIX,
            f"{path} does not start with a unix timestamp",
            1,
        )
    try:
        return datetime.fromtimestamp(int(m.group()), tz=timezone.utc)
    except (OverflowError, ValueError, OSError) as e:
        raise ParseError(
            ParseErrorKind.BAD_LOG_PREFIX,
            f"{path} starts with an out of range timestamp",
            1,
        ) from e


def parse_log(path, tz: tzinfo) -> Stats:
    """
    Re-read a period log into hourly Stats.

    Timestamps are bucketed by their hour in ``tz`` and ``start`` is local
    midnight of the first hit. Paths count every hit; referrer, country and
    device count once per session. A missing file gives empty Stats.

    Lines that are incomplete, do not have six fields or carry an out of
    range timestamp are skipped: a crash can leave a torn last line behind.
    """
    stats = Stats.hourly()
    try:
        f = open(path, encoding="utf-8", errors="replace", newline="\n")
    except FileNotFoundError:
        return stats

    seen = set()
    with f:
        for lineno, line in enumerate(f, start=1):
            if not line.endswith("\n"):
                logger.warning(f"{path}:{lineno}: skipping incomplete line")
                continue
            fields = line[:-1].split(",")
            if len(fields) != 6 or not (fields[0].isascii() and fields[0].isdigit()):
                logger.warning(f"{path}:{lineno}: skipping malformed line")
                continue
            unix, uri, session, ref, country, device = fields

            try:
                timestamp = datetime.fromtimestamp(int(unix), tz=tz)
            except (OverflowError, ValueError, OSError):
                logger.warning(f"{path}:{lineno}: skipping out of range timestamp")
                continue
            if stats.start is None:
                stats.start = midnight(timestamp)
            hour = timestamp.hour

            if uri:
                stats.paths.row(uri).values[hour] += 1
            if session == "" or session not in seen:
                seen.add(session)
                stats.sessions.row("sessions").values[hour] += 1
                if ref:
                    stats.referrers.row(ref).values[hour] += 1
                if country:
                    stats.countries.row(country).values[hour] += 1
                if device:
                    stats.devices.row(device).values[hour] += 1
    return stats
