"""
Period snapshots: five frames over one time range.

A Stats value holds counters for paths, sessions, referrers, countries and
device types, bucketed at a fixed interval from ``start``. The live period
uses hourly buckets, history uses one bucket per calendar day.

Text format (one blank line closes each frame, frames in fixed order):

    #2021-01-01T00:00:00Z,24h0m0s
    /about,3,0,7
    /blog,1,1,0

    sessions,4,1,6
    ...
"""

import copy
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List, Optional

from .errors import MergeError, ParseError, ParseErrorKind
from .frame import Frame

HOUR = timedelta(hours=1)
DAY = timedelta(hours=24)

FRAME_NAMES = ("paths", "sessions", "referrers", "countries", "devices")

# Written for an unset start
ZERO_TIME = "0001-01-01T00:00:00Z"

_RFC3339 = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{1,6})?(Z|[+-]\d{2}:\d{2})$"
)
_DURATION = re.compile(r"^[+-]?((\d+\.?\d*|\.\d+)(ns|us|µs|ms|s|m|h))+$")
_DURATION_PART = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|ms|s|m|h)")
_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_INTEGER = re.compile(r"-?[0-9]+")


def midnight(t: datetime) -> datetime:
    """Start of the calendar day ``t`` falls on, in ``t``'s own time zone."""
    return t.replace(hour=0, minute=0, second=0, microsecond=0)


def format_timestamp(t: Optional[datetime]) -> str:
    if t is None:
        return ZERO_TIME
    if t.tzinfo is None:
        raise ValueError(f"Timestamp must be timezone-aware: {t!r}")
    s = t.isoformat(timespec="seconds")
    if s.endswith("+00:00"):
        s = s[:-6] + "Z"
    return s


def parse_timestamp(s: str) -> Optional[datetime]:
    if not _RFC3339.match(s):
        raise ValueError(f"Invalid RFC3339 timestamp: {s!r}")
    if s == ZERO_TIME:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return datetime.fromisoformat(s)


def format_duration(d: timedelta) -> str:
    """Render a duration as ``<h>h<m>m<s>s``, e.g. ``24h0m0s`` or ``45s``."""
    micros = d // timedelta(microseconds=1)
    if micros == 0:
        return "0s"
    sign = "-" if micros < 0 else ""
    hours, rest = divmod(abs(micros), 3600 * 10**6)
    minutes, rest = divmod(rest, 60 * 10**6)
    if rest % 10**6 == 0:
        seconds = str(rest // 10**6)
    else:
        seconds = f"{rest / 10**6:.6f}".rstrip("0")
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{sign}{minutes}m{seconds}s"
    return f"{sign}{seconds}s"


def parse_duration(s: str) -> timedelta:
    if s in ("0", "+0", "-0"):
        return timedelta(0)
    if not _DURATION.match(s):
        raise ValueError(f"Invalid duration: {s!r}")
    seconds = sum(
        float(amount) * _UNITS[unit] for amount, unit in _DURATION_PART.findall(s)
    )
    total = timedelta(seconds=seconds)
    return -total if s.startswith("-") else total


@dataclass
class Stats:
    """
    Counters for one time range.

    Attributes:
        start: Midnight of the first day covered, or None if nothing was merged yet
        interval: Width of one bucket
        paths/sessions/referrers/countries/devices: One Frame per dimension
    """

    start: Optional[datetime] = None
    interval: timedelta = DAY
    paths: Frame = field(default_factory=Frame)
    sessions: Frame = field(default_factory=Frame)
    referrers: Frame = field(default_factory=Frame)
    countries: Frame = field(default_factory=Frame)
    devices: Frame = field(default_factory=Frame)

    @classmethod
    def hourly(cls, start: Optional[datetime] = None) -> "Stats":
        """Empty snapshot of one day at hourly resolution."""
        stats = cls(start=start, interval=HOUR)
        for frame in stats.frames():
            frame.grow(24)
        return stats

    def frames(self) -> List[Frame]:
        return [getattr(self, name) for name in FRAME_NAMES]

    @property
    def width(self) -> int:
        return max(frame.width for frame in self.frames())

    def copy(self) -> "Stats":
        return copy.deepcopy(self)

    def day_index(self, day: date) -> int:
        """1-based count of calendar days from ``start`` through ``day``."""
        return (day - self.start.date()).days + 1

    def merge(self, daily: "Stats") -> None:
        """
        Fold a finished period into this daily-resolution history.

        Every row of ``daily`` is summed into one number that replaces the
        history value for that day, so merging the same period twice leaves
        the history unchanged. Days after the merged one are kept.
        """
        if daily.start is None:
            return
        if self.start is None:
            self.start = midnight(daily.start)
        n = self.day_index(daily.start.date())
        if n < 1:
            raise MergeError(
                f"Period {daily.start.date()} precedes history start {self.start.date()}"
            )
        # Never shrink to n: a period re-merged after a clock step backwards
        # must not drop the later days already in the history.
        width = max(n, self.width)
        for frame, source in zip(self.frames(), daily.frames()):
            frame.grow(width)
            for row in source:
                frame.row(row.name).values[n - 1] = row.total()

    def encode(self) -> str:
        return encode(self)

    @classmethod
    def decode(cls, text: str) -> "Stats":
        return decode(text)

    def __str__(self) -> str:
        return encode(self)


def encode(stats: Stats) -> str:
    """Serialize to the line-oriented text format."""
    lines = [f"#{format_timestamp(stats.start)},{format_duration(stats.interval)}"]
    for frame in stats.frames():
        for row in frame:
            lines.append(",".join([row.name, *map(str, row.values)]))
        lines.append("")
    return "\n".join(lines) + "\n"


def decode(text: str) -> Stats:
    """
    Parse the text format.

    Empty input means there is no history yet and gives an empty Stats.

    Raises:
        ParseError: On any malformed line, with the reason in ``kind``
    """
    if text == "":
        return Stats()

    lines = text.split("\n")
    stats = _decode_header(lines[0])

    width = None
    pos = 1
    for frame in stats.frames():
        terminated = False
        while pos < len(lines):
            line = lines[pos]
            pos += 1
            if line == "":
                terminated = True
                break
            name, *values = line.split(",")
            if not values:
                raise ParseError(
                    ParseErrorKind.SHORT_ROW, "expected at least two fields per row", pos
                )
            if width is None:
                width = len(values)
            elif len(values) != width:
                raise ParseError(
                    ParseErrorKind.RAGGED_ROW,
                    f"row {name!r} has {len(values)} values, expected {width}",
                    pos,
                )
            if name in frame:
                raise ParseError(
                    ParseErrorKind.DUPLICATE_ROW, f"row {name!r} appears twice", pos
                )
            frame.grow(width)
            frame.row(name).values[:] = [_decode_value(v, pos) for v in values]
        if not terminated:
            raise ParseError(
                ParseErrorKind.TRUNCATED, "input ends before all frames are closed", pos
            )

    for i, line in enumerate(lines[pos:], start=pos + 1):
        if line:
            raise ParseError(
                ParseErrorKind.TRAILING_DATA, "unexpected data after the last frame", i
            )

    for frame in stats.frames():
        frame.grow(width or 0)
    return stats


def _decode_header(line: str) -> Stats:
    if not line.startswith("#"):
        raise ParseError(
            ParseErrorKind.MISSING_HEADER, "first line must be a '#' header", 1
        )
    fields = line[1:].split(",")
    if len(fields) != 2:
        raise ParseError(
            ParseErrorKind.BAD_HEADER, "header must contain a timestamp and interval", 1
        )
    try:
        start = parse_timestamp(fields[0])
    except ValueError as e:
        raise ParseError(ParseErrorKind.BAD_TIMESTAMP, str(e), 1) from e
    try:
        interval = parse_duration(fields[1])
    except ValueError as e:
        raise ParseError(ParseErrorKind.BAD_INTERVAL, str(e), 1) from e
    return Stats(start=start, interval=interval)


def _decode_value(value: str, line: int) -> int:
    if not _INTEGER.fullmatch(value):
        raise ParseError(ParseErrorKind.BAD_VALUE, f"not an integer: {value!r}", line)
    return int(value)
