import pickle
from copy import copy, deepcopy

import pytest
from hypothesis import given
from hypothesis.strategies import integers

from temporalis import (
    Duration,
    Instant,
    PlainDateTime,
    ZonedDateTime,
)

from .common import AlwaysEqual, AlwaysLarger, AlwaysSmaller, NeverEqual

NS_PER_DAY = 86_400_000_000_000


class TestInit:

    def test_epoch_nanoseconds(self):
        i = Instant(1_600_000_000_123_456_789)
        assert i.epoch_nanoseconds == 1_600_000_000_123_456_789
        assert i.epoch_microseconds == 1_600_000_000_123_456
        assert i.epoch_milliseconds == 1_600_000_000_123
        assert i.epoch_seconds == 1_600_000_000

    def test_negative_floors(self):
        i = Instant(-1)
        assert i.epoch_seconds == -1
        assert i.epoch_milliseconds == -1
        assert i.epoch_nanoseconds == -1

    def test_range(self):
        Instant(100_000_000 * NS_PER_DAY)
        Instant(-100_000_000 * NS_PER_DAY)
        with pytest.raises(ValueError, match="range"):
            Instant(100_000_000 * NS_PER_DAY + 1)
        with pytest.raises(ValueError, match="range"):
            Instant(-100_000_000 * NS_PER_DAY - 1)
        assert Instant.MAX.epoch_nanoseconds == 100_000_000 * NS_PER_DAY
        assert Instant.MIN.epoch_nanoseconds == -100_000_000 * NS_PER_DAY

    def test_invalid_type(self):
        with pytest.raises(TypeError):
            Instant("0")  # type: ignore[arg-type]
        with pytest.raises(ValueError):
            Instant(0.5)  # type: ignore[arg-type]

    def test_from_epoch(self):
        assert Instant.from_epoch_seconds(1) == Instant(1_000_000_000)
        assert Instant.from_epoch_milliseconds(-5) == Instant(-5_000_000)
        assert Instant.from_epoch_microseconds(7) == Instant(7_000)
        assert Instant.from_epoch_nanoseconds(9) == Instant(9)
        with pytest.raises(ValueError, match="range"):
            Instant.from_epoch_seconds(10**16)

    def test_from_utc(self):
        assert Instant.from_utc(1970, 1, 1) == Instant(0)
        assert Instant.from_utc(
            2020, 8, 15, 23, 12, 9, nanosecond=987_654_321
        ) == Instant(1597533129_987_654_321)
        assert Instant.from_utc(
            2020, 8, 15, millisecond=1, microsecond=2
        ).epoch_nanoseconds % 10**9 == 1_002_000

    @pytest.mark.parametrize(
        "args",
        [
            (2021, 2, 29),
            (2021, 13, 1),
            (2021, 1, 1, 24),
            (2021, 1, 1, 0, 60),
            (2021, 1, 1, 0, 0, 60),
            (300_000, 1, 1),
        ],
    )
    def test_from_utc_invalid(self, args):
        with pytest.raises(ValueError):
            Instant.from_utc(*args)

    def test_now(self):
        assert Instant.from_utc(2020, 1, 1) < Instant.now()


class TestComparison:

    def test_equality(self):
        a = Instant(1_000)
        same = Instant(1_000)
        later = Instant(1_001)
        assert a == same
        assert not a == later
        assert a != later
        assert hash(a) == hash(same)
        assert a.equals(same)
        assert not a.equals(later)
        assert a == AlwaysEqual()
        assert a != NeverEqual()
        assert a != 1_000  # type: ignore[comparison-overlap]

    def test_equals_type(self):
        with pytest.raises(TypeError):
            Instant(0).equals(0)  # type: ignore[arg-type]

    def test_ordering(self):
        a = Instant(1_000)
        b = Instant(2_000)
        assert a < b
        assert a <= b
        assert b > a
        assert b >= a
        assert a <= Instant(1_000)
        assert a < AlwaysLarger()
        assert a > AlwaysSmaller()
        with pytest.raises(TypeError):
            a < 1_000  # type: ignore[operator]

    def test_compare(self):
        a = Instant(1_000)
        assert Instant.compare(a, Instant(2_000)) == -1
        assert Instant.compare(a, Instant(1_000)) == 0
        assert Instant.compare(Instant(2_000), a) == 1
        with pytest.raises(TypeError):
            Instant.compare(a, 1)  # type: ignore[arg-type]


class TestAddSubtract:

    def test_exact_units(self):
        i = Instant.from_utc(2020, 8, 15, 23)
        assert i.add(Duration(hours=4)) == Instant.from_utc(2020, 8, 16, 3)
        assert i + Duration(minutes=30) == Instant.from_utc(
            2020, 8, 15, 23, 30
        )
        assert i.subtract(Duration(hours=24)) == Instant.from_utc(
            2020, 8, 14, 23
        )
        assert i - Duration(nanoseconds=1) == Instant.from_utc(
            2020, 8, 15, 22, 59, 59, nanosecond=999_999_999
        )

    @pytest.mark.parametrize(
        "d",
        [
            Duration(days=1),
            Duration(weeks=1),
            Duration(months=-1),
            Duration(years=1),
        ],
    )
    def test_calendar_units_not_allowed(self, d):
        i = Instant(0)
        with pytest.raises(TypeError, match="days"):
            i.add(d)
        with pytest.raises(TypeError, match="days"):
            i.subtract(d)
        with pytest.raises(TypeError, match="days"):
            i + d

    def test_out_of_range(self):
        with pytest.raises(ValueError, match="range"):
            Instant.MAX.add(Duration(nanoseconds=1))
        with pytest.raises(ValueError, match="range"):
            Instant.MIN - Duration(nanoseconds=1)

    def test_invalid(self):
        with pytest.raises(TypeError):
            Instant(0).add(5)  # type: ignore[arg-type]
        with pytest.raises(TypeError):
            Instant(0) + 5  # type: ignore[operator]
        with pytest.raises(TypeError):
            Instant(0) - 5  # type: ignore[operator]

    @given(integers(-(10**15), 10**15))
    def test_add_then_subtract(self, n):
        i = Instant.from_utc(2000, 1, 1)
        d = Duration(nanoseconds=n)
        assert i.add(d).subtract(d) == i


class TestDifference:

    def test_default_seconds(self):
        a = Instant.from_utc(2020, 1, 1)
        b = Instant.from_utc(2020, 1, 2, 3)
        assert a.until(b) == Duration(seconds=97_200)
        assert b.since(a) == Duration(seconds=97_200)
        assert b - a == Duration(seconds=97_200)
        assert a - b == Duration(seconds=-97_200)

    def test_largest_unit(self):
        a = Instant.from_utc(2020, 1, 1)
        b = Instant.from_utc(2020, 1, 2, 3, 4, 5, millisecond=6)
        assert a.until(b, largest_unit="hour") == Duration(
            hours=27, minutes=4, seconds=5, milliseconds=6
        )
        assert a.until(b, largest_unit="minutes") == Duration(
            minutes=1624, seconds=5, milliseconds=6
        )
        assert a.until(b, largest_unit="millisecond") == Duration(
            milliseconds=97_445_006
        )

    def test_rounding(self):
        a = Instant.from_utc(2020, 1, 1)
        b = Instant.from_utc(2020, 1, 1, 1, 29, 30)
        assert a.until(b, smallest_unit="minute") == Duration(minutes=89)
        assert a.until(
            b, smallest_unit="minute", rounding_mode="halfExpand"
        ) == Duration(minutes=90)
        assert a.until(
            b,
            largest_unit="hour",
            smallest_unit="minute",
            rounding_increment=15,
        ) == Duration(hours=1, minutes=15)
        # since() rounds in the opposite direction of until()
        assert b.since(
            a, smallest_unit="hour", rounding_mode="floor"
        ) == Duration(hours=1)
        assert a.since(
            b, smallest_unit="hour", rounding_mode="floor"
        ) == Duration(hours=-2)
        assert a.until(b, smallest_unit="hour", rounding_mode="ceil") == (
            Duration(hours=2)
        )

    @pytest.mark.parametrize("unit", ["day", "week", "month", "year"])
    def test_no_date_units(self, unit):
        a, b = Instant(0), Instant(NS_PER_DAY)
        with pytest.raises(ValueError):
            a.until(b, largest_unit=unit)
        with pytest.raises(ValueError):
            a.since(b, smallest_unit=unit)

    def test_invalid_options(self):
        a, b = Instant(0), Instant(NS_PER_DAY)
        with pytest.raises(ValueError, match="smaller"):
            a.until(b, largest_unit="minute", smallest_unit="hour")
        with pytest.raises(ValueError, match="rounding_mode"):
            a.until(b, rounding_mode="nearest")  # type: ignore[arg-type]
        with pytest.raises(ValueError, match="increment"):
            a.until(b, smallest_unit="minute", rounding_increment=7)
        with pytest.raises(TypeError):
            a.until(0)  # type: ignore[arg-type]
        with pytest.raises(TypeError):
            a.since(0)  # type: ignore[arg-type]


class TestRound:

    def test_default(self):
        i = Instant(1_600_000_000 * 10**9)
        assert i.round("hour") == Instant.from_utc(2020, 9, 13, 12)
        assert i.round("minute") == Instant.from_utc(2020, 9, 13, 12, 27)
        assert i.round("second") == i

    @pytest.mark.parametrize(
        "mode, expect",
        [
            ("halfExpand", (12, 30)),
            ("ceil", (12, 30)),
            ("floor", (12, 15)),
            ("trunc", (12, 15)),
        ],
    )
    def test_modes(self, mode, expect):
        i = Instant.from_utc(2020, 9, 13, 12, 22, 30)
        assert i.round(
            "minute", rounding_increment=15, rounding_mode=mode
        ) == Instant.from_utc(2020, 9, 13, *expect)

    def test_before_epoch(self):
        i = Instant.from_utc(1969, 12, 31, 23, 30)
        # ties round away from zero, i.e. away from the epoch
        assert i.round("hour") == Instant.from_utc(1969, 12, 31, 23)
        assert i.round("hour", rounding_mode="ceil") == Instant(0)
        assert i.round("hour", rounding_mode="trunc") == Instant(0)
        assert i.round("hour", rounding_mode="floor") == Instant.from_utc(
            1969, 12, 31, 23
        )

    def test_increment_must_divide_day(self):
        i = Instant(0)
        assert i.round("hour", rounding_increment=8) == i
        assert i.round("minute", rounding_increment=1440) == i
        with pytest.raises(ValueError, match="increment"):
            i.round("hour", rounding_increment=7)
        with pytest.raises(ValueError, match="increment"):
            i.round("hour", rounding_increment=48)

    def test_invalid(self):
        with pytest.raises(ValueError, match="smallest_unit"):
            Instant(0).round("day")  # type: ignore[arg-type]
        with pytest.raises(ValueError, match="rounding_mode"):
            Instant(0).round("hour", rounding_mode="up")  # type: ignore


class TestConversion:

    def test_to_zoned(self):
        i = Instant.from_utc(2024, 7, 1, 12)
        d = i.to_zoned_date_time("Europe/Amsterdam")
        assert isinstance(d, ZonedDateTime)
        assert d.to_instant() == i
        assert d.to_plain_date_time() == PlainDateTime(2024, 7, 1, 14)
        assert d.calendar_id == "iso8601"

        d_iso = i.to_zoned_date_time_iso("Asia/Tokyo")
        assert d_iso.to_plain_date_time() == PlainDateTime(2024, 7, 1, 21)

    def test_to_zoned_calendar(self):
        d = Instant.from_utc(2024, 7, 1).to_zoned_date_time(
            "Asia/Tokyo", "japanese"
        )
        assert d.calendar_id == "japanese"
        assert d.era == "reiwa"
        assert d.era_year == 6


class TestFormat:

    @pytest.mark.parametrize(
        "i, expect",
        [
            (Instant(0), "1970-01-01T00:00:00Z"),
            (
                Instant.from_utc(2024, 2, 3, 4, 5, 6, millisecond=700),
                "2024-02-03T04:05:06.7Z",
            ),
            (Instant(-1), "1969-12-31T23:59:59.999999999Z"),
            (Instant.MAX, "+275760-09-13T00:00:00Z"),
            (Instant.MIN, "-271821-04-20T00:00:00Z"),
        ],
    )
    def test_common_iso(self, i, expect):
        assert i.format_common_iso() == expect
        assert str(i) == expect
        assert i.to_json() == expect
        assert i.to_string() == expect
        assert i.to_locale_string("en-US") == expect

    def test_with_time_zone(self):
        i = Instant.from_utc(2024, 2, 3, 4)
        assert i.to_string(time_zone="Europe/Paris") == (
            "2024-02-03T05:00:00+01:00"
        )
        assert i.to_string(time_zone="America/St_Johns") == (
            "2024-02-03T00:30:00-03:30"
        )

    def test_repr(self):
        assert repr(Instant.from_utc(2024, 3, 1, 12)) == (
            "Instant(2024-03-01T12:00:00Z)"
        )


def test_immutable():
    i = Instant(0)
    with pytest.raises(AttributeError):
        i.foo = 3  # type: ignore[attr-defined]


def test_pickle():
    i = Instant.from_utc(2020, 8, 15, 23, 12, 9, nanosecond=987_654_321)
    assert pickle.loads(pickle.dumps(i)) == i
    assert len(pickle.dumps(i)) < 100


def test_copy():
    i = Instant(1)
    assert copy(i) is i
    assert deepcopy(i) is i


def test_cannot_subclass():
    with pytest.raises(TypeError):

        class Subclass(Instant):  # type: ignore[misc]
            pass
