import pickle
from copy import copy, deepcopy
from datetime import timedelta

import pytest
from hypothesis import given
from hypothesis.strategies import dates, integers

from temporalis import (
    Duration,
    PlainDate,
    PlainDateTime,
    PlainTime,
    ZonedDateTime,
)

from .common import AlwaysEqual, AlwaysLarger, AlwaysSmaller, NeverEqual


class TestInit:

    def test_fields(self):
        d = PlainDate(2024, 2, 29)
        assert d.year == d.iso_year == 2024
        assert d.month == d.iso_month == 2
        assert d.day == d.iso_day == 29
        assert d.month_code == "M02"
        assert d.calendar_id == "iso8601"
        assert d.era is None
        assert d.era_year is None

    def test_derived_fields(self):
        d = PlainDate(2024, 2, 29)
        assert d.day_of_week == 4
        assert d.day_of_year == 60
        assert d.week_of_year == 9
        assert d.days_in_week == 7
        assert d.days_in_month == 29
        assert d.days_in_year == 366
        assert d.months_in_year == 12
        assert d.in_leap_year
        assert not PlainDate(2023, 1, 1).in_leap_year

    @pytest.mark.parametrize(
        "args, msg",
        [
            ((2023, 2, 29), "day"),
            ((2023, 4, 31), "day"),
            ((2023, 0, 1), "month"),
            ((2023, 13, 1), "month"),
            ((2023, 1, 0), "day"),
            ((300_000, 1, 1), "range"),
            ((-300_000, 1, 1), "range"),
        ],
    )
    def test_invalid(self, args, msg):
        with pytest.raises(ValueError, match=msg):
            PlainDate(*args)

    def test_invalid_types(self):
        with pytest.raises(TypeError):
            PlainDate("2020", 1, 1)  # type: ignore[arg-type]
        with pytest.raises(ValueError, match="calendar"):
            PlainDate(2020, 1, 1, calendar="julian")
        with pytest.raises(TypeError):
            PlainDate(2020, 1, 1, calendar=5)  # type: ignore[arg-type]

    def test_extremes(self):
        assert PlainDate.MIN == PlainDate(-271821, 4, 19)
        assert PlainDate.MAX == PlainDate(275760, 9, 13)
        with pytest.raises(ValueError, match="range"):
            PlainDate(275760, 9, 14)
        with pytest.raises(ValueError, match="range"):
            PlainDate(-271821, 4, 18)

    def test_get_iso_fields(self):
        d = PlainDate(2024, 5, 1, calendar="japanese")
        fields = d.get_iso_fields()
        assert fields["iso_year"] == 2024
        assert fields["iso_month"] == 5
        assert fields["iso_day"] == 1
        assert fields["calendar"].id == "japanese"


class TestFromFields:

    def test_constrain(self):
        assert PlainDate.from_fields(
            {"year": 2021, "month": 2, "day": 31}
        ) == PlainDate(2021, 2, 28)
        assert PlainDate.from_fields(
            {"year": 2021, "month": 14, "day": 1}
        ) == PlainDate(2021, 12, 1)

    def test_reject(self):
        with pytest.raises(ValueError, match="day"):
            PlainDate.from_fields(
                {"year": 2021, "month": 2, "day": 31}, overflow="reject"
            )

    def test_month_code(self):
        assert PlainDate.from_fields(
            {"year": 2021, "month_code": "M03", "day": 1}
        ) == PlainDate(2021, 3, 1)
        assert PlainDate.from_fields(
            {"year": 2021, "month": 3, "month_code": "M03", "day": 1}
        ) == PlainDate(2021, 3, 1)
        with pytest.raises(ValueError, match="match"):
            PlainDate.from_fields(
                {"year": 2021, "month": 4, "month_code": "M03", "day": 1}
            )
        with pytest.raises(ValueError, match="month_code"):
            PlainDate.from_fields(
                {"year": 2021, "month_code": "M13", "day": 1}
            )

    @pytest.mark.parametrize(
        "fields, msg",
        [
            ({"month": 1, "day": 1}, "year"),
            ({"year": 2021, "day": 1}, "month"),
            ({"year": 2021, "month": 1}, "day"),
            ({"year": 2021, "month": 1, "day": 1, "hour": 3}, "hour"),
        ],
    )
    def test_missing_or_unknown(self, fields, msg):
        with pytest.raises(TypeError, match=msg):
            PlainDate.from_fields(fields)


class TestReplace:

    def test_constrain(self):
        d = PlainDate(2021, 1, 31)
        assert d.replace(month=2) == PlainDate(2021, 2, 28)
        assert d.replace(year=2020, month=2) == PlainDate(2020, 2, 29)
        assert d.replace(day=1) == PlainDate(2021, 1, 1)

    def test_reject(self):
        with pytest.raises(ValueError, match="day out of range: 31"):
            PlainDate(2021, 1, 31).replace(month=2, overflow="reject")

    def test_month_code_replaces_month(self):
        assert PlainDate(2021, 1, 31).replace(month_code="M03") == PlainDate(
            2021, 3, 31
        )

    def test_nothing(self):
        d = PlainDate(2021, 1, 31)
        assert d.replace() is d

    def test_keeps_calendar(self):
        d = PlainDate(2021, 1, 31, calendar="buddhist")
        assert d.replace(day=2).calendar_id == "buddhist"

    def test_invalid(self):
        with pytest.raises(TypeError, match="hour"):
            PlainDate(2021, 1, 31).replace(hour=3)
        with pytest.raises(ValueError, match="overflow"):
            PlainDate(2021, 1, 31).replace(
                day=3, overflow="wrap"  # type: ignore[arg-type]
            )


class TestAdd:

    @pytest.mark.parametrize(
        "d, duration, expect",
        [
            (
                PlainDate(2020, 2, 29),
                Duration(years=1),
                PlainDate(2021, 2, 28),
            ),
            (
                PlainDate(2024, 1, 31),
                Duration(months=1),
                PlainDate(2024, 2, 29),
            ),
            (
                PlainDate(2024, 1, 31),
                Duration(months=1, days=1),
                PlainDate(2024, 3, 1),
            ),
            (PlainDate(2024, 1, 1), Duration(weeks=2), PlainDate(2024, 1, 15)),
            (PlainDate(2024, 3, 1), Duration(days=-1), PlainDate(2024, 2, 29)),
            # time units count in whole days
            (PlainDate(2024, 1, 1), Duration(hours=47), PlainDate(2024, 1, 2)),
            (
                PlainDate(2024, 1, 1),
                Duration(hours=-47),
                PlainDate(2023, 12, 31),
            ),
        ],
    )
    def test_add(self, d, duration, expect):
        assert d.add(duration) == expect

    def test_subtract(self):
        assert PlainDate(2024, 3, 31).subtract(
            Duration(months=1)
        ) == PlainDate(2024, 2, 29)
        assert PlainDate(2024, 3, 1).subtract(
            Duration(years=1, days=1)
        ) == PlainDate(2023, 2, 28)

    def test_reject(self):
        with pytest.raises(ValueError, match="day"):
            PlainDate(2024, 1, 31).add(Duration(months=1), overflow="reject")
        assert PlainDate(2024, 1, 29).add(
            Duration(months=1), overflow="reject"
        ) == PlainDate(2024, 2, 29)

    def test_out_of_range(self):
        with pytest.raises(ValueError, match="range"):
            PlainDate.MAX.add(Duration(days=1))
        with pytest.raises(ValueError, match="range"):
            PlainDate(2020, 1, 1).add(Duration(years=300_000))

    def test_invalid(self):
        with pytest.raises(TypeError):
            PlainDate(2020, 1, 1).add(3)  # type: ignore[arg-type]

    @given(dates(), integers(-10_000, 10_000))
    def test_add_days_matches_stdlib(self, d, n):
        try:
            expect = d + timedelta(days=n)
        except OverflowError:
            return
        result = PlainDate(d.year, d.month, d.day).add(Duration(days=n))
        assert (result.year, result.month, result.day) == (
            expect.year,
            expect.month,
            expect.day,
        )


class TestDifference:

    def test_default_days(self):
        a = PlainDate(2020, 1, 31)
        b = PlainDate(2020, 3, 1)
        assert a.until(b) == Duration(days=30)
        assert b.since(a) == Duration(days=30)
        assert b.until(a) == Duration(days=-30)

    @pytest.mark.parametrize(
        "largest, expect",
        [
            ("year", Duration(years=2, months=2, days=5)),
            ("month", Duration(months=26, days=5)),
            ("week", Duration(weeks=113, days=4)),
            ("day", Duration(days=795)),
        ],
    )
    def test_largest_unit(self, largest, expect):
        a = PlainDate(2019, 1, 15)
        b = PlainDate(2021, 3, 20)
        assert a.until(b, largest_unit=largest) == expect
        assert b.since(a, largest_unit=largest) == expect

    def test_end_of_month(self):
        assert PlainDate(2020, 1, 31).until(
            PlainDate(2020, 3, 1), largest_unit="month"
        ) == Duration(months=1, days=1)
        assert PlainDate(2020, 3, 31).until(
            PlainDate(2020, 2, 29), largest_unit="month"
        ) == Duration(months=-1)

    def test_rounding(self):
        a = PlainDate(2024, 1, 1)
        b = PlainDate(2024, 2, 20)
        assert a.until(b, smallest_unit="month") == Duration(months=1)
        assert a.until(
            b, smallest_unit="month", rounding_mode="halfExpand"
        ) == Duration(months=2)
        assert a.until(
            b, smallest_unit="week", rounding_mode="ceil"
        ) == Duration(weeks=8)
        assert b.since(
            a, smallest_unit="month", rounding_mode="ceil"
        ) == Duration(months=2)

    def test_different_calendars(self):
        a = PlainDate(2024, 1, 1)
        b = PlainDate(2024, 2, 1, calendar="buddhist")
        with pytest.raises(ValueError, match="calendars"):
            a.until(b)
        with pytest.raises(ValueError, match="calendars"):
            a.since(b)
        assert a.with_calendar("buddhist").until(b) == Duration(days=31)

    def test_invalid(self):
        a = PlainDate(2024, 1, 1)
        with pytest.raises(ValueError, match="smallest_unit"):
            a.until(PlainDate(2024, 1, 2), smallest_unit="hour")
        with pytest.raises(TypeError):
            a.until(PlainDateTime(2024, 1, 2))  # type: ignore[arg-type]


class TestConversion:

    def test_at(self):
        d = PlainDate(2024, 1, 1, calendar="roc")
        assert d.at() == PlainDateTime(2024, 1, 1, calendar="roc")
        assert d.at(PlainTime(12, 30)) == PlainDateTime(
            2024, 1, 1, 12, 30, calendar="roc"
        )
        assert d.to_plain_date_time() == d.at()
        with pytest.raises(TypeError):
            d.at(12)  # type: ignore[arg-type]

    def test_to_zoned_start_of_day(self):
        # Midnight is skipped in Havana on this day
        d = PlainDate(2024, 3, 10).to_zoned_date_time("America/Havana")
        assert isinstance(d, ZonedDateTime)
        assert d.to_plain_date_time() == PlainDateTime(2024, 3, 10, 1)
        assert d.offset == "-04:00"

    def test_to_zoned_with_time(self):
        d = PlainDate(2024, 3, 31).to_zoned_date_time(
            "Europe/Amsterdam", time=PlainTime(2, 30)
        )
        assert d.to_plain_date_time() == PlainDateTime(2024, 3, 31, 3, 30)
        d = PlainDate(2024, 3, 31).to_zoned_date_time(
            "Europe/Amsterdam",
            time=PlainTime(2, 30),
            disambiguation="earlier",
        )
        assert d.to_plain_date_time() == PlainDateTime(2024, 3, 31, 1, 30)

    def test_with_calendar(self):
        d = PlainDate(2024, 1, 1).with_calendar("japanese")
        assert d.calendar_id == "japanese"
        assert d.iso_year == 2024
        assert d.era == "reiwa"


class TestComparison:

    def test_equality(self):
        d = PlainDate(2024, 1, 1)
        assert d == PlainDate(2024, 1, 1)
        assert hash(d) == hash(PlainDate(2024, 1, 1))
        assert d != PlainDate(2024, 1, 2)
        assert d.equals(PlainDate(2024, 1, 1))
        assert d == AlwaysEqual()
        assert d != NeverEqual()
        with pytest.raises(TypeError):
            d.equals(PlainDateTime(2024, 1, 1))  # type: ignore[arg-type]

    def test_calendar_matters_for_equality(self):
        d = PlainDate(2024, 1, 1)
        other = PlainDate(2024, 1, 1, calendar="gregory")
        assert d != other
        assert not d.equals(other)
        assert PlainDate.compare(d, other) == 0

    def test_ordering(self):
        a = PlainDate(2024, 1, 1)
        b = PlainDate(2024, 1, 2, calendar="gregory")
        assert a < b
        assert a <= b
        assert b > a
        assert b >= a
        assert a < AlwaysLarger()
        assert a > AlwaysSmaller()
        assert PlainDate.compare(a, b) == -1
        assert PlainDate.compare(b, a) == 1
        with pytest.raises(TypeError):
            a < PlainDateTime(2024, 1, 2)  # type: ignore[operator]
        with pytest.raises(TypeError):
            PlainDate.compare(a, 1)  # type: ignore[arg-type]


class TestFormat:

    @pytest.mark.parametrize(
        "d, expect",
        [
            (PlainDate(2021, 1, 2), "2021-01-02"),
            (PlainDate(2021, 1, 2, calendar="roc"), "2021-01-02[u-ca=roc]"),
            (PlainDate(1, 1, 1), "0001-01-01"),
            (PlainDate(0, 1, 1), "0000-01-01"),
            (PlainDate(-1, 12, 31), "-000001-12-31"),
            (PlainDate(10_000, 1, 1), "+010000-01-01"),
        ],
    )
    def test_common_iso(self, d, expect):
        assert d.format_common_iso() == expect
        assert str(d) == expect
        assert d.to_string() == expect
        assert d.to_json() == expect
        assert d.to_locale_string("ja-JP") == expect

    def test_repr(self):
        assert repr(PlainDate(2021, 1, 2)) == "PlainDate(2021-01-02)"
        assert repr(PlainDate(2021, 1, 2, calendar="japanese")) == (
            "PlainDate(2021-01-02[u-ca=japanese])"
        )


def test_immutable():
    d = PlainDate(2021, 1, 2)
    with pytest.raises(AttributeError):
        d.year = 2022  # type: ignore[misc]
    with pytest.raises(AttributeError):
        d.foo = 2022  # type: ignore[attr-defined]


@pytest.mark.parametrize("calendar", ["iso8601", "japanese", "roc"])
def test_pickle(calendar):
    d = PlainDate(2021, 1, 2, calendar=calendar)
    unpickled = pickle.loads(pickle.dumps(d))
    assert unpickled == d
    assert unpickled.calendar is d.calendar


def test_copy():
    d = PlainDate(2021, 1, 2)
    assert copy(d) is d
    assert deepcopy(d) is d


def test_cannot_subclass():
    with pytest.raises(TypeError):

        class Subclass(PlainDate):  # type: ignore[misc]
            pass
