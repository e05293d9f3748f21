import random
import string
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from pixeltally.errors import MergeError, ParseError, ParseErrorKind
from pixeltally.stats import (
    DAY,
    HOUR,
    Stats,
    decode,
    encode,
    format_duration,
    format_timestamp,
    parse_duration,
    parse_timestamp,
)

UTC = timezone.utc
HEADER = "#2021-01-01T00:00:00Z,24h0m0s\n"


def random_name(rng, n=8):
    return "".join(rng.choice(string.ascii_letters) for _ in range(n))


def test_encode_format():
    stats = Stats(start=datetime(2021, 1, 1, tzinfo=UTC))
    for frame in stats.frames():
        frame.grow(2)
    stats.paths.row("/b").values[:] = [1, 2]
    stats.paths.row("/a").values[:] = [3, 4]
    stats.sessions.row("sessions").values[:] = [5, 6]

    assert encode(stats) == (
        "#2021-01-01T00:00:00Z,24h0m0s\n"
        "/a,3,4\n"
        "/b,1,2\n"
        "\n"
        "sessions,5,6\n"
        "\n"
        "\n"
        "\n"
        "\n"
    )


@pytest.mark.parametrize("seed", range(5))
def test_round_trip(seed):
    rng = random.Random(seed)
    start = datetime(2021, 3, 28, tzinfo=ZoneInfo("Europe/Berlin"))
    stats = Stats(start=start, interval=3 * HOUR)
    for frame in stats.frames():
        frame.grow(30)
        for _ in range(rng.randint(0, 4)):
            row = frame.row(random_name(rng))
            row.values[:] = [rng.randint(0, 100) for _ in range(30)]

    parsed = decode(encode(stats))
    assert parsed == stats
    assert parsed.start == start
    assert parsed.interval == 3 * HOUR
    assert encode(parsed) == encode(stats)


def test_round_trip_canonical_order():
    a = Stats(start=datetime(2021, 1, 1, tzinfo=UTC))
    b = Stats(start=datetime(2021, 1, 1, tzinfo=UTC))
    a.paths.grow(1)
    b.paths.grow(1)
    for name in ("/z", "/m", "/a"):
        a.paths.row(name).values[0] = 1
    for name in ("/a", "/z", "/m"):
        b.paths.row(name).values[0] = 1
    assert encode(a) == encode(b)
    assert decode(encode(a)) == b


def test_decode_empty_input():
    stats = decode("")
    assert stats.start is None
    assert stats.interval == DAY
    assert all(len(frame) == 0 for frame in stats.frames())


def test_unset_start_round_trips():
    stats = decode(encode(Stats()))
    assert stats.start is None
    assert stats.interval == DAY


def test_decode_sets_width_on_empty_frames():
    stats = decode(HEADER + "/a,1,2,3\n\n\n\n\n\n")
    assert [frame.width for frame in stats.frames()] == [3, 3, 3, 3, 3]
    assert stats.sessions.row("sessions").values == [0, 0, 0]


@pytest.mark.parametrize("text, kind, line", [
    ("foo\n", ParseErrorKind.MISSING_HEADER, 1),
    ("\n\n", ParseErrorKind.MISSING_HEADER, 1),
    ("#2021-01-01T00:00:00Z\n", ParseErrorKind.BAD_HEADER, 1),
    ("#2021-01-01T00:00:00Z,24h,x\n", ParseErrorKind.BAD_HEADER, 1),
    ("#yesterday,24h0m0s\n", ParseErrorKind.BAD_TIMESTAMP, 1),
    ("#2021-01-01T00:00:00,24h0m0s\n", ParseErrorKind.BAD_TIMESTAMP, 1),
    ("#2021-01-01T00:00:00Z,forever\n", ParseErrorKind.BAD_INTERVAL, 1),
    (HEADER + "/a\n\n\n\n\n\n", ParseErrorKind.SHORT_ROW, 2),
    (HEADER + "/a,1,x\n\n\n\n\n\n", ParseErrorKind.BAD_VALUE, 2),
    (HEADER + "/a,1.5\n\n\n\n\n\n", ParseErrorKind.BAD_VALUE, 2),
    (HEADER + "/a,\n\n\n\n\n\n", ParseErrorKind.BAD_VALUE, 2),
    (HEADER + "/a,1,2\n/b,1\n\n\n\n\n\n", ParseErrorKind.RAGGED_ROW, 3),
    (HEADER + "/a,1\n\nsessions,1,2\n\n\n\n\n", ParseErrorKind.RAGGED_ROW, 4),
    (HEADER + "/a,1\n/a,2\n\n\n\n\n\n", ParseErrorKind.DUPLICATE_ROW, 3),
    (HEADER + "/a,1\n", ParseErrorKind.TRUNCATED, 3),
    (HEADER + "/a,1\n\n\n", ParseErrorKind.TRUNCATED, 5),
    (HEADER + "\n\n\n\n\nextra\n", ParseErrorKind.TRAILING_DATA, 7),
])
def test_decode_rejects_malformed_input(text, kind, line):
    with pytest.raises(ParseError) as e:
        decode(text)
    assert e.value.kind is kind
    assert e.value.line == line


def test_decode_accepts_negative_values():
    stats = decode(HEADER + "/a,-1\n\n\n\n\n\n")
    assert stats.paths.row("/a").values == [-1]


@pytest.mark.parametrize("d, s", [
    (DAY, "24h0m0s"),
    (HOUR, "1h0m0s"),
    (timedelta(minutes=90), "1h30m0s"),
    (timedelta(minutes=30), "30m0s"),
    (timedelta(seconds=45), "45s"),
    (timedelta(milliseconds=1500), "1.5s"),
    (timedelta(0), "0s"),
    (-HOUR, "-1h0m0s"),
])
def test_format_duration(d, s):
    assert format_duration(d) == s
    assert parse_duration(s) == d


@pytest.mark.parametrize("s, d", [
    ("1h30m", timedelta(minutes=90)),
    ("1.5h", timedelta(minutes=90)),
    ("500ms", timedelta(milliseconds=500)),
    ("2h45m10s", timedelta(hours=2, minutes=45, seconds=10)),
    ("0", timedelta(0)),
])
def test_parse_duration(s, d):
    assert parse_duration(s) == d


@pytest.mark.parametrize("s", ["", "h", "1x", "1h 30m", "24"])
def test_parse_duration_rejects(s):
    with pytest.raises(ValueError):
        parse_duration(s)


def test_timestamps():
    berlin = datetime(2021, 1, 1, tzinfo=ZoneInfo("Europe/Berlin"))
    assert format_timestamp(berlin) == "2021-01-01T00:00:00+01:00"
    assert format_timestamp(datetime(2021, 1, 1, tzinfo=UTC)) == "2021-01-01T00:00:00Z"
    assert parse_timestamp("2021-01-01T00:00:00+01:00") == berlin
    assert parse_timestamp("2021-01-01T00:00:00Z") == datetime(2021, 1, 1, tzinfo=UTC)
    with pytest.raises(ValueError):
        format_timestamp(datetime(2021, 1, 1))


def daily_stats(day: datetime, paths: dict) -> Stats:
    stats = Stats.hourly(start=day)
    for name, values in paths.items():
        stats.paths.row(name).values[:] = values
    return stats


def hours(**buckets):
    values = [0] * 24
    for key, v in buckets.items():
        values[int(key[1:])] = v
    return values


def test_merge_into_empty_history():
    day = datetime(2021, 1, 1, tzinfo=UTC)
    daily = daily_stats(day, {"/a": hours(h0=1, h23=2)})
    history = Stats()
    history.merge(daily)

    assert history.start == day
    assert history.interval == DAY
    assert history.paths.width == 1
    assert history.paths.row("/a").values == [3]
    assert all(frame.width == 1 for frame in history.frames())


def test_merge_is_idempotent():
    day = datetime(2021, 1, 1, tzinfo=UTC)
    daily = daily_stats(day, {"/a": hours(h3=4), "/b": hours(h9=1)})
    daily.sessions.row("sessions").values[3] = 2

    once = Stats()
    once.merge(daily)
    twice = Stats()
    twice.merge(daily)
    twice.merge(daily)
    assert encode(once) == encode(twice)


def test_merge_consecutive_and_gap_days():
    history = Stats()
    history.merge(daily_stats(datetime(2021, 1, 1, tzinfo=UTC), {"/a": hours(h1=1)}))
    history.merge(daily_stats(datetime(2021, 1, 3, tzinfo=UTC), {"/b": hours(h1=5, h2=1)}))

    assert history.start == datetime(2021, 1, 1, tzinfo=UTC)
    assert history.paths.row("/a").values == [1, 0, 0]
    assert history.paths.row("/b").values == [0, 0, 6]
    assert history.sessions.width == 3


def test_merge_overwrites_day_and_keeps_later_days():
    history = Stats()
    history.merge(daily_stats(datetime(2021, 1, 1, tzinfo=UTC), {"/a": hours(h1=1)}))
    history.merge(daily_stats(datetime(2021, 1, 3, tzinfo=UTC), {"/a": hours(h1=2)}))
    history.merge(daily_stats(datetime(2021, 1, 1, tzinfo=UTC), {"/a": hours(h1=7)}))
    assert history.paths.row("/a").values == [7, 0, 2]


def test_merge_counts_calendar_days_across_dst():
    berlin = ZoneInfo("Europe/Berlin")
    history = Stats()
    history.merge(daily_stats(datetime(2021, 3, 27, tzinfo=berlin), {"/a": hours(h1=1)}))
    history.merge(daily_stats(datetime(2021, 3, 29, tzinfo=berlin), {"/a": hours(h1=1)}))
    assert history.paths.row("/a").values == [1, 0, 1]


def test_merge_empty_daily_is_noop():
    history = Stats()
    history.merge(Stats.hourly())
    assert history.start is None
    assert history.width == 0


def test_merge_rejects_period_before_history():
    history = Stats()
    history.merge(daily_stats(datetime(2021, 1, 5, tzinfo=UTC), {"/a": hours(h1=1)}))
    with pytest.raises(MergeError):
        history.merge(daily_stats(datetime(2021, 1, 1, tzinfo=UTC), {"/a": hours(h1=1)}))


def test_merge_survives_encode_decode():
    history = Stats()
    history.merge(daily_stats(datetime(2021, 1, 1, tzinfo=UTC), {"/a": hours(h1=1)}))
    history = decode(encode(history))
    history.merge(daily_stats(datetime(2021, 1, 2, tzinfo=UTC), {"/a": hours(h5=3)}))
    assert history.paths.row("/a").values == [1, 3]
