import pytest

from temporalis import (
    Duration,
    Environment,
    IncomparableTimeZones,
    Instant,
    Observance,
    PlainDate,
    PlainDateTime,
    Recurrence,
    RepeatedTime,
    RuleTimeZone,
    SkippedTime,
    TimeZone,
    TimeZoneNotFoundError,
    UnsupportedOperation,
    resolve_time_zone,
)
from temporalis._tz.posix import LastWeekday, NthWeekday
from temporalis._tz.rules import (
    DayOfMonth,
    ObservanceTable,
    Onsets,
    WeekdayOnOrAfter,
)

from .common import (
    AMS_TZ_POSIX,
    PACIFIC_OBSERVANCES,
    pacific_rules,
    tzif_data,
)

HOUR_NS = 3_600_000_000_000


class TestRecurrence:

    def test_parse(self):
        r = Recurrence.parse("FREQ=YEARLY;BYMONTH=3;BYDAY=2SU")
        assert r == Recurrence(3, (2, 0))
        assert r.until is None
        assert r.count is None

    def test_parse_prefix_and_case(self):
        assert Recurrence.parse(
            "RRULE:freq=yearly;bymonth=10;byday=-1su"
        ) == Recurrence(10, (-1, 0))

    def test_parse_bymonthday(self):
        r = Recurrence.parse(
            "FREQ=YEARLY;BYMONTH=4;BYDAY=SU;BYMONTHDAY=14,8,9,10,11,12,13"
        )
        assert r.bymonthday == (8, 9, 10, 11, 12, 13, 14)
        assert r.byday == (None, 0)

    def test_parse_until(self):
        r = Recurrence.parse(
            "FREQ=YEARLY;BYMONTH=4;BYDAY=1SU;UNTIL=20060402T100000Z"
        )
        # 2006-04-02T10:00:00Z
        assert r.until == 1143972000
        assert r.until_utc

    def test_parse_until_local(self):
        r = Recurrence.parse(
            "FREQ=YEARLY;BYMONTH=4;BYDAY=1SU;UNTIL=20060402T100000"
        )
        assert r.until == 1143972000
        assert not r.until_utc
        assert r != Recurrence(4, (1, 0), until=1143972000)

    def test_parse_until_date(self):
        r = Recurrence.parse("FREQ=YEARLY;BYMONTH=4;BYDAY=1SU;UNTIL=20060402")
        assert r.until == 1143936000 + 86399
        assert not r.until_utc

    def test_parse_count(self):
        r = Recurrence.parse("FREQ=YEARLY;BYMONTH=4;BYDAY=1SU;COUNT=3")
        assert r.count == 3

    @pytest.mark.parametrize(
        "s",
        [
            "FREQ=MONTHLY;BYDAY=1SU",
            "BYMONTH=3;BYDAY=2SU",
            "FREQ=YEARLY;INTERVAL=2;BYMONTH=3",
            "FREQ=YEARLY;BYMONTH=13",
            "FREQ=YEARLY;BYMONTH=x",
            "FREQ=YEARLY;BYDAY=2XX",
            "FREQ=YEARLY;BYDAY=SU,MO",
            "FREQ=YEARLY;UNTIL=2006",
            "FREQ=YEARLY;COUNT=0",
            "FREQ=YEARLY;COUNT=2;UNTIL=20060402",
            "FREQ=YEARLY;BYMONTH",
            "FREQ=YEARLY;BYMONTH=3;BYDAY=2SU;BYMONTHDAY=8",
        ],
    )
    def test_parse_invalid(self, s):
        with pytest.raises(ValueError):
            Recurrence.parse(s)

    def test_rule(self):
        assert Recurrence(3, (2, 0)).rule(1, 1) == NthWeekday(3, 2, 0)
        assert Recurrence(10, (-1, 0)).rule(1, 1) == LastWeekday(10, 0)
        assert Recurrence(10, (5, 0)).rule(1, 1) == LastWeekday(10, 0)
        assert Recurrence(
            4, (None, 0), bymonthday=range(8, 15)
        ).rule(1, 1) == WeekdayOnOrAfter(4, 8, 0)

    def test_rule_defaults_from_start(self):
        assert Recurrence().rule(6, 15) == DayOfMonth(6, 15)
        assert Recurrence(bymonthday=[20]).rule(6, 15) == DayOfMonth(6, 20)
        assert Recurrence(byday=(1, 0)).rule(6, 15) == NthWeekday(6, 1, 0)

    def test_rule_unsupported(self):
        with pytest.raises(ValueError, match="BYMONTHDAY"):
            Recurrence(4, (None, 0)).rule(1, 1)
        with pytest.raises(ValueError, match="BYMONTHDAY"):
            Recurrence(4, bymonthday=[1, 2]).rule(1, 1)
        with pytest.raises(ValueError, match="ordinal"):
            Recurrence(4, (-2, 0)).rule(1, 1)

    def test_ordinal_byday_with_bymonthday(self):
        with pytest.raises(ValueError, match="BYMONTHDAY"):
            Recurrence(3, (2, 0), bymonthday=[8])
        with pytest.raises(ValueError, match="BYMONTHDAY"):
            Recurrence.parse("FREQ=YEARLY;BYMONTH=3;BYDAY=2SU;BYMONTHDAY=8")


class TestYearlyRules:

    def test_day_of_month_clamped(self):
        # 2023 has no February 29th
        assert DayOfMonth(2, 29).apply(2023) == DayOfMonth(2, 28).apply(2023)
        assert (
            DayOfMonth(2, 29).apply(2024)
            == PlainDate(2024, 2, 29)._epoch_days()
        )

    def test_weekday_on_or_after(self):
        # first Sunday on or after April 8th, 2024 is the 14th
        assert (
            WeekdayOnOrAfter(4, 8, 0).apply(2024)
            == PlainDate(2024, 4, 14)._epoch_days()
        )
        # the 8th itself, if it's the right weekday
        assert (
            WeekdayOnOrAfter(4, 8, 1).apply(2024)
            == PlainDate(2024, 4, 8)._epoch_days()
        )


class TestObservanceTable:

    def test_empty(self):
        with pytest.raises(ValueError, match="observance"):
            ObservanceTable([])

    def test_single_onset(self):
        table = ObservanceTable([Onsets(1000, 3600, 7200)])
        assert table.offset_for_instant(-(10**6)) == 3600
        # the onset is local time, in the "from" offset
        assert table.offset_for_instant(1000 - 3600 - 1) == 3600
        assert table.offset_for_instant(1000 - 3600) == 7200
        assert table.offset_for_instant(10**9) == 7200

    def test_extra_onsets(self):
        table = ObservanceTable(
            [
                Onsets(0, 0, 3600, extra=[86400 * 365]),
                Onsets(86400 * 100 + 3600, 3600, 0),
            ]
        )
        assert table.offset_for_instant(-1) == 0
        assert table.offset_for_instant(86400) == 3600
        assert table.offset_for_instant(86400 * 101) == 0
        assert table.offset_for_instant(86400 * 366) == 3600

    def test_count(self):
        # Yearly on January 1st, three times in total
        table = ObservanceTable(
            [
                Onsets(_jan1(2000), 0, 3600, Recurrence(count=3)),
                Onsets(_jan1(2000) + 180 * 86400, 3600, 0, Recurrence()),
            ]
        )
        assert table.offset_for_instant(_jan1(2000) + 10) == 3600
        assert table.offset_for_instant(_jan1(2002) + 10) == 3600
        assert table.offset_for_instant(_jan1(2003) + 10) == 0

    def test_until(self):
        table = ObservanceTable(
            [
                Onsets(_jan1(2000), 0, 3600, Recurrence(until=_jan1(2002))),
                Onsets(_jan1(2000) + 180 * 86400, 3600, 0, Recurrence()),
            ]
        )
        assert table.offset_for_instant(_jan1(2001) + 10) == 3600
        # an onset exactly at UNTIL is included
        assert table.offset_for_instant(_jan1(2002) + 10) == 3600
        assert table.offset_for_instant(_jan1(2003) + 10) == 0

    @pytest.mark.parametrize("until_utc, included", [(True, 1), (False, 0)])
    def test_until_local(self, until_utc, included):
        # the 2002 onset is at 23:00 UTC on Dec 31st. The bound of
        # 23:30 lies after it in UTC, but before it as local +01:00 time.
        bound = _jan1(2002) - 1800
        table = ObservanceTable(
            [
                Onsets(
                    _jan1(2000),
                    3600,
                    0,
                    Recurrence(until=bound, until_utc=until_utc),
                ),
                Onsets(_jan1(2000) + 180 * 86400, 0, 3600, Recurrence()),
            ]
        )
        assert table.offset_for_instant(_jan1(2001) + 10) == 0
        offset = table.offset_for_instant(_jan1(2002) + 10)
        assert offset == (0 if included else 3600)


def _jan1(year: int) -> int:
    return PlainDate(year, 1, 1)._epoch_days() * 86400


class TestObservance:

    def test_offsets(self):
        obs = Observance("standard", PlainDateTime(2000, 1, 1), "-0800", 3600)
        assert obs.offset_from == -8 * 3600
        assert obs.offset_to == 3600
        assert obs.recurrence is None
        assert obs.extra_onsets == ()
        assert obs.name is None

    def test_recurrence_string(self):
        obs = PACIFIC_OBSERVANCES[0]
        assert obs.recurrence == Recurrence(3, (2, 0))
        assert obs.kind == "daylight"
        assert obs.name == "PDT"

    def test_invalid_kind(self):
        with pytest.raises(ValueError, match="kind"):
            Observance("summer", PlainDateTime(2000, 1, 1), 0, 3600)

    def test_invalid_recurrence(self):
        with pytest.raises(TypeError):
            Observance(
                "standard", PlainDateTime(2000, 1, 1), 0, 3600, recurrence=4
            )
        with pytest.raises(ValueError):
            Observance(
                "standard",
                PlainDateTime(2000, 1, 1),
                0,
                3600,
                recurrence="FREQ=DAILY",
            )

    @pytest.mark.parametrize("offset", [86400, -86400, "+25:00", "0800"])
    def test_invalid_offset(self, offset):
        with pytest.raises(ValueError):
            Observance("standard", PlainDateTime(2000, 1, 1), 0, offset)

    def test_invalid_start(self):
        with pytest.raises(TypeError):
            Observance("standard", PlainDate(2000, 1, 1), 0, 3600)

    def test_repr(self):
        assert repr(PACIFIC_OBSERVANCES[1]) == (
            "Observance('standard', 2007-11-04T02:00:00, -07:00, -08:00)"
        )


class TestRuleTimeZone:

    def test_invalid(self):
        with pytest.raises(ValueError):
            RuleTimeZone("Custom/Empty", [])
        with pytest.raises(TypeError):
            RuleTimeZone("Custom/Wrong", [object()])  # type: ignore[list-item]
        with pytest.raises(TypeError):
            RuleTimeZone(5, PACIFIC_OBSERVANCES)  # type: ignore[arg-type]

    def test_id_and_repr(self):
        tz = pacific_rules()
        assert tz.id == "Custom/Pacific"
        assert repr(tz) == "RuleTimeZone('Custom/Pacific')"

    def test_utc_offset(self):
        tz = pacific_rules()
        assert tz.utc_offset(PlainDateTime(2024, 7, 1)) == -7 * 3600
        assert tz.utc_offset(PlainDateTime(2024, 1, 1)) == -8 * 3600
        # before the first observance
        assert tz.utc_offset(PlainDateTime(1990, 7, 1)) == -8 * 3600

    def test_offset_for_instant(self):
        tz = pacific_rules()
        # 2024-03-10T10:00Z is the switch to daylight time
        switch = Instant.from_utc(2024, 3, 10, 10)
        assert tz.get_offset_nanoseconds_for(
            switch.subtract(Duration(nanoseconds=1))
        ) == -8 * HOUR_NS
        assert tz.get_offset_nanoseconds_for(switch) == -7 * HOUR_NS
        assert tz.get_offset_string_for(switch) == "-07:00"

    def test_possible_instants(self):
        tz = pacific_rules()
        gap = PlainDateTime(2024, 3, 10, 2, 30)
        assert tz.get_possible_instants_for(gap) == []
        assert tz.get_possible_instants_for(
            PlainDateTime(2024, 11, 3, 1, 30)
        ) == [
            Instant.from_utc(2024, 11, 3, 8, 30),
            Instant.from_utc(2024, 11, 3, 9, 30),
        ]
        assert tz.get_possible_instants_for(PlainDateTime(2024, 6, 1)) == [
            Instant.from_utc(2024, 6, 1, 7)
        ]

    def test_get_instant_for(self):
        tz = pacific_rules()
        gap = PlainDateTime(2024, 3, 10, 2, 30)
        assert tz.get_instant_for(gap) == Instant.from_utc(2024, 3, 10, 10, 30)
        assert tz.get_instant_for(
            gap, disambiguation="earlier"
        ) == Instant.from_utc(2024, 3, 10, 9, 30)
        with pytest.raises(SkippedTime, match="Custom/Pacific"):
            tz.get_instant_for(gap, disambiguation="reject")

        fold = PlainDateTime(2024, 11, 3, 1, 30)
        assert tz.get_instant_for(
            fold, disambiguation="later"
        ) == Instant.from_utc(2024, 11, 3, 9, 30)
        with pytest.raises(RepeatedTime, match="is repeated"):
            tz.get_instant_for(fold, disambiguation="reject")

    def test_get_plain_date_time_for(self):
        tz = pacific_rules()
        assert tz.get_plain_date_time_for(
            Instant.from_utc(2024, 7, 1, 12)
        ) == PlainDateTime(2024, 7, 1, 5)

    def test_unsupported(self):
        tz = pacific_rules()
        with pytest.raises(UnsupportedOperation, match="Custom/Pacific"):
            tz.get_next_transition(Instant.from_utc(2024, 1, 1))
        with pytest.raises(UnsupportedOperation):
            tz.get_previous_transition(Instant.from_utc(2024, 1, 1))
        with pytest.raises(NotImplementedError):
            tz.to_string()
        with pytest.raises(UnsupportedOperation):
            tz.to_json()

    def test_equals(self):
        tz = pacific_rules()
        with pytest.raises(IncomparableTimeZones):
            tz.equals(tz)
        with pytest.raises(TypeError):
            tz.equals(TimeZone("America/Los_Angeles"))
        with pytest.raises(IncomparableTimeZones):
            TimeZone("America/Los_Angeles").equals(tz)

    def test_identity_equality(self):
        tz = pacific_rules()
        assert tz == tz
        assert tz != pacific_rules()

    def test_fixed(self):
        tz = RuleTimeZone.fixed("Custom/Fixed", -7 * 3600)
        assert repr(tz) == "RuleTimeZone('Custom/Fixed')"
        assert tz.utc_offset(PlainDateTime(2022, 12, 21, 9)) == -7 * 3600
        assert RuleTimeZone.fixed("Custom/Fixed", "+05:30").utc_offset(
            PlainDateTime(2022, 1, 1)
        ) == 19800
        with pytest.raises(ValueError):
            RuleTimeZone.fixed("Custom/Fixed", 86400)

    def test_from_posix(self):
        tz = RuleTimeZone.from_posix("Custom/Ams", AMS_TZ_POSIX)
        assert tz.utc_offset(PlainDateTime(2024, 7, 1)) == 7200
        assert tz.utc_offset(PlainDateTime(2024, 1, 1)) == 3600
        assert tz.get_possible_instants_for(
            PlainDateTime(2024, 3, 31, 2, 30)
        ) == []

    def test_extra_onsets(self):
        tz = RuleTimeZone(
            "Custom/Once",
            [
                Observance(
                    "daylight",
                    PlainDateTime(2020, 4, 1),
                    0,
                    3600,
                    extra_onsets=[PlainDateTime(2021, 4, 1)],
                ),
                Observance(
                    "standard",
                    PlainDateTime(2020, 10, 1),
                    3600,
                    0,
                    extra_onsets=[PlainDateTime(2021, 10, 1)],
                ),
            ],
        )
        assert tz.utc_offset(PlainDateTime(2020, 1, 1)) == 0
        assert tz.utc_offset(PlainDateTime(2020, 6, 1)) == 3600
        assert tz.utc_offset(PlainDateTime(2021, 1, 1)) == 0
        assert tz.utc_offset(PlainDateTime(2021, 6, 1)) == 3600
        assert tz.utc_offset(PlainDateTime(2022, 6, 1)) == 0


class TestZonedInRuleZone:

    def test_fixed_offset(self):
        tz = RuleTimeZone.fixed("Custom/Fixed", -7 * 3600)
        d = PlainDateTime(2022, 12, 21, 9).to_zoned_date_time(tz)
        assert d.offset_nanoseconds == -7 * HOUR_NS
        assert d.offset == "-07:00"
        assert d.time_zone is tz
        assert d.time_zone_id == "Custom/Fixed"
        with pytest.raises(UnsupportedOperation):
            d.to_string()
        with pytest.raises(NotImplementedError):
            str(d)
        # repr always works
        assert repr(d) == (
            "ZonedDateTime(2022-12-21T09:00:00-07:00[Custom/Fixed])"
        )

    def test_arithmetic_order_matters(self):
        tz = pacific_rules()
        start = PlainDateTime(2022, 11, 2, 0, 30).to_zoned_date_time(tz)
        assert start.offset == "-07:00"

        at_once = start.add(Duration(years=1, days=3, hours=2, minutes=30))
        assert at_once.to_plain_date_time() == PlainDateTime(2023, 11, 5, 2)
        assert at_once.offset == "-08:00"

        stepwise = start.add(Duration(hours=2, minutes=30)).add(
            Duration(years=1, days=3)
        )
        assert stepwise.to_plain_date_time() == PlainDateTime(2023, 11, 5, 3)
        assert stepwise.offset == "-08:00"

        assert stepwise.until(at_once) == Duration(hours=-1)

    def test_unsupported_operations(self):
        tz = pacific_rules()
        d = PlainDateTime(2024, 6, 1, 12).to_zoned_date_time(tz)
        with pytest.raises(UnsupportedOperation, match="replace"):
            d.replace(hour=3)
        with pytest.raises(UnsupportedOperation, match="round"):
            d.round("hour")
        with pytest.raises(UnsupportedOperation, match="Transition"):
            d.get_time_zone_transition("next")
        with pytest.raises(UnsupportedOperation, match="Calendar-unit"):
            d.until(d.add(Duration(days=2)), largest_unit="day")
        with pytest.raises(IncomparableTimeZones):
            d.equals(d)

    def test_time_units_supported(self):
        tz = pacific_rules()
        d = PlainDateTime(2024, 3, 9, 12).to_zoned_date_time(tz)
        later = d.add(Duration(days=1))
        assert later.to_plain_date_time() == PlainDateTime(2024, 3, 10, 12)
        assert d.until(later) == Duration(hours=23)
        assert later.since(d) == Duration(hours=23)
        assert d < later
        assert d.hours_in_day == 24.0
        assert later.hours_in_day == 23.0

    def test_relative_rounding(self):
        tz = pacific_rules()
        anchor = PlainDateTime(2024, 3, 9, 12).to_zoned_date_time(tz)
        assert Duration(hours=23).round(
            largest_unit="day", relative_to=anchor
        ) == Duration(days=1)
        assert Duration(days=1).total(
            "hour", relative_to=anchor
        ) == 23


class TestResolveTimeZone:

    def test_iana_preferred(self):
        tz = resolve_time_zone(
            "America/Los_Angeles",
            PACIFIC_OBSERVANCES,
            environment=Environment(),
        )
        assert type(tz) is TimeZone
        assert tz == TimeZone("America/Los_Angeles")

    def test_rules_fallback(self):
        tz = resolve_time_zone(
            "Custom/Pacific", PACIFIC_OBSERVANCES, environment=Environment()
        )
        assert type(tz) is RuleTimeZone
        assert tz.id == "Custom/Pacific"

    def test_not_found(self):
        with pytest.raises(TimeZoneNotFoundError, match="Custom/Nowhere"):
            resolve_time_zone("Custom/Nowhere", environment=Environment())

    def test_tzpath_respected(self, tmp_path):
        (tmp_path / "Custom").mkdir()
        (tmp_path / "Custom" / "Pacific").write_bytes(
            tzif_data("America/Los_Angeles")
        )
        tz = resolve_time_zone(
            "Custom/Pacific",
            PACIFIC_OBSERVANCES,
            environment=Environment([str(tmp_path)]),
        )
        assert type(tz) is TimeZone
        assert tz.id == "Custom/Pacific"
