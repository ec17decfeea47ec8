import re
from datetime import datetime

import pytest

from chfsclient.timespec import NSEC_PER_SEC, Timespec, timespec_str, timespec_sub

FORMAT = re.compile(r"^\d{4}-\d\d-\d\d \d\d:\d\d:\d\d\.\d{9} [+-]\d{4}$")


def test_format_shape():
    text = timespec_str(Timespec(1_000_000_000, 42))
    assert bool(FORMAT.match(text)) is True
    assert len(text) == 35
    assert text[19:30] == ".000000042 "


def test_format_round_trips_through_datetime():
    ts = Timespec(1_000_000_000, 123_456_789)
    text = timespec_str(ts)
    date, clock, zone = text.split(" ")
    hms, frac = clock.split(".")
    parsed = datetime.strptime(f"{date} {hms} {zone}", "%Y-%m-%d %H:%M:%S %z")
    assert int(parsed.timestamp()) == ts.sec
    assert int(frac) == ts.nsec


def test_now_is_normalised_and_formats():
    now = Timespec.now()
    assert 0 <= now.nsec < NSEC_PER_SEC
    assert bool(FORMAT.match(timespec_str(now))) is True


def test_sub_with_borrow():
    assert timespec_sub(Timespec(1, 500_000_000), Timespec(3, 200_000_000)) == Timespec(1, 700_000_000)


@pytest.mark.parametrize(
    ("t1", "t2"),
    [
        (Timespec(0, 0), Timespec(5, 10)),
        (Timespec(7, 999_999_999), Timespec(8, 0)),
        (Timespec(2, 5), Timespec(2, 5)),
        (Timespec(10, 300), Timespec(4, 100)),
    ],
)
def test_sub_adds_back_to_later_time(t1, t2):
    diff = timespec_sub(t1, t2)
    assert 0 <= diff.nsec < NSEC_PER_SEC
    total = (t1.sec + diff.sec) * NSEC_PER_SEC + t1.nsec + diff.nsec
    assert total == t2.sec * NSEC_PER_SEC + t2.nsec


def test_sub_of_equal_times_is_zero_span():
    t = Timespec(3, 4)
    assert timespec_sub(t, t) == Timespec(0, 0)


def test_ordering():
    assert Timespec(1, 999) < Timespec(2, 0)
    assert max(Timespec(1, 5), Timespec(1, 7)) == Timespec(1, 7)