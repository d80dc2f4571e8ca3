# The MIT License (MIT)
#
# Copyright (c) Arie Bovenberg
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
"""Offset tables for rule-based zones, such as iCalendar VTIMEZONE data.

A zone is described by a set of observances. Each observance switches the
offset from ``offset_from`` to ``offset_to`` at its onsets: a first onset
at its start time, optionally repeated yearly by a recurrence rule and
extended with explicit extra dates. At any instant, the offset is that of
the observance with the most recent onset.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Literal, Optional, Sequence, Union

from .._math import days_in_month, epoch_days_from_iso, iso_from_epoch_days
from .posix import (
    DayOfYear,
    EpochDays,
    EpochSecs,
    JulianDayOfYear,
    LastWeekday,
    NthWeekday,
    Weekday,
    weekday_for_epoch_days,
    year_for_epoch,
)

ObservanceKind = Literal["standard", "daylight"]

_WEEKDAYS: dict[str, Weekday] = {
    "SU": 0,
    "MO": 1,
    "TU": 2,
    "WE": 3,
    "TH": 4,
    "FR": 5,
    "SA": 6,
}
_match_byday = re.compile(
    r"([+-]?\d)?(SU|MO|TU|WE|TH|FR|SA)", re.ASCII
).fullmatch
_match_until = re.compile(
    r"(\d{4})(\d{2})(\d{2})(?:T(\d{2})(\d{2})(\d{2})(Z)?)?", re.ASCII
).fullmatch


class DayOfMonth:
    """A fixed day of a month, clamped to the length of the month"""

    month: int
    day: int

    __slots__ = ("month", "day")

    def __init__(self, month: int, day: int):
        self.month = month
        self.day = day

    def apply(self, year: int) -> EpochDays:
        return epoch_days_from_iso(
            year, self.month, min(self.day, days_in_month(year, self.month))
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DayOfMonth):
            return NotImplemented
        return self.month == other.month and self.day == other.day

    def __hash__(self) -> int:
        return hash((DayOfMonth, self.month, self.day))

    def __repr__(self) -> str:
        return f"DayOfMonth({self.month}, {self.day})"


class WeekdayOnOrAfter:
    """The first given weekday on or after a day of the month,
    e.g. ``BYDAY=SU;BYMONTHDAY=8,9,10,11,12,13,14``"""

    month: int
    day: int
    weekday: Weekday

    __slots__ = ("month", "day", "weekday")

    def __init__(self, month: int, day: int, weekday: Weekday):
        self.month = month
        self.day = day
        self.weekday = weekday

    def apply(self, year: int) -> EpochDays:
        start = epoch_days_from_iso(year, self.month, self.day)
        return start + (self.weekday - weekday_for_epoch_days(start)) % 7

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WeekdayOnOrAfter):
            return NotImplemented
        return (
            self.month == other.month
            and self.day == other.day
            and self.weekday == other.weekday
        )

    def __hash__(self) -> int:
        return hash((WeekdayOnOrAfter, self.month, self.day, self.weekday))

    def __repr__(self) -> str:
        return f"WeekdayOnOrAfter({self.month}, {self.day}, {self.weekday})"


YearlyRule = Union[
    LastWeekday,
    NthWeekday,
    DayOfYear,
    JulianDayOfYear,
    DayOfMonth,
    WeekdayOnOrAfter,
]


@lru_cache(maxsize=2048)
def yearly_onset(rule: YearlyRule, year: int) -> EpochDays:
    return rule.apply(year)


class Recurrence:
    """The subset of RFC 5545 recurrence rules used by VTIMEZONE components:
    yearly, on a given day of a month, optionally bounded."""

    __slots__ = (
        "bymonth",
        "byday",
        "bymonthday",
        "until",
        "until_utc",
        "count",
    )

    bymonth: Optional[int]
    # ordinal (None if not given) and weekday
    byday: Optional[tuple[Optional[int], Weekday]]
    bymonthday: tuple[int, ...]
    # UTC, or local time in the observance's "from" offset
    until: Optional[EpochSecs]
    until_utc: bool
    count: Optional[int]

    def __init__(
        self,
        bymonth: Optional[int] = None,
        byday: Optional[tuple[Optional[int], Weekday]] = None,
        bymonthday: Sequence[int] = (),
        until: Optional[EpochSecs] = None,
        count: Optional[int] = None,
        until_utc: bool = True,
    ):
        if bymonth is not None and not 1 <= bymonth <= 12:
            raise ValueError(f"Invalid BYMONTH: {bymonth}")
        if byday is not None and byday[0] is not None and bymonthday:
            raise ValueError(
                "BYMONTHDAY can't be combined with an ordinal BYDAY"
            )
        if until is not None and count is not None:
            raise ValueError("UNTIL and COUNT can't both be given")
        if count is not None and count < 1:
            raise ValueError(f"Invalid COUNT: {count}")
        self.bymonth = bymonth
        self.byday = byday
        self.bymonthday = tuple(sorted(bymonthday))
        self.until = until
        self.until_utc = until_utc
        self.count = count

    @classmethod
    def parse(cls, s: str) -> Recurrence:
        """Parse the value of an ``RRULE`` property,
        e.g. ``FREQ=YEARLY;BYMONTH=3;BYDAY=2SU``"""
        if s[:6].upper() == "RRULE:":
            s = s[6:]
        parts: dict[str, str] = {}
        for item in s.split(";"):
            key, sep, value = item.partition("=")
            if not sep:
                raise ValueError(f"Invalid recurrence rule part: {item!r}")
            parts[key.strip().upper()] = value.strip().upper()

        if parts.get("FREQ") != "YEARLY":
            raise ValueError("Only yearly recurrence rules are supported")
        if parts.get("INTERVAL", "1") != "1":
            raise ValueError(
                "Only recurrence rules with INTERVAL=1 are supported"
            )

        try:
            bymonth = int(parts["BYMONTH"]) if "BYMONTH" in parts else None
            bymonthday = (
                tuple(map(int, parts["BYMONTHDAY"].split(",")))
                if "BYMONTHDAY" in parts
                else ()
            )
            count = int(parts["COUNT"]) if "COUNT" in parts else None
        except ValueError:
            raise ValueError(f"Invalid recurrence rule: {s!r}") from None

        byday = None
        if "BYDAY" in parts:
            if (match := _match_byday(parts["BYDAY"])) is None:
                raise ValueError(f"Unsupported BYDAY: {parts['BYDAY']!r}")
            nth, weekday = match.groups()
            byday = (None if nth is None else int(nth), _WEEKDAYS[weekday])

        until, until_utc = (
            _parse_until(parts["UNTIL"]) if "UNTIL" in parts else (None, True)
        )
        return cls(bymonth, byday, bymonthday, until, count, until_utc)

    def rule(self, month: int, day: int) -> YearlyRule:
        """The yearly rule, falling back to the given start date's
        month and day where the recurrence doesn't specify them"""
        month = self.bymonth or month
        if self.byday is None:
            if len(self.bymonthday) > 1:
                raise ValueError("Multiple BYMONTHDAY values need a BYDAY")
            if self.bymonthday:
                day = self.bymonthday[0]
            return DayOfMonth(month, day)
        nth, weekday = self.byday
        if nth is None:
            days = self.bymonthday
            if len(days) != 7 or days != tuple(range(days[0], days[0] + 7)):
                raise ValueError(
                    "A BYDAY without ordinal needs "
                    "seven consecutive BYMONTHDAY values"
                )
            return WeekdayOnOrAfter(month, days[0], weekday)
        elif nth in (-1, 5):
            return LastWeekday(month, weekday)
        elif 1 <= nth <= 4:
            return NthWeekday(month, nth, weekday)
        raise ValueError(f"Unsupported BYDAY ordinal: {nth}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Recurrence):
            return NotImplemented
        return (
            self.bymonth == other.bymonth
            and self.byday == other.byday
            and self.bymonthday == other.bymonthday
            and self.until == other.until
            and self.until_utc == other.until_utc
            and self.count == other.count
        )

    def __repr__(self) -> str:
        return (
            f"Recurrence(bymonth={self.bymonth}, byday={self.byday}, "
            f"bymonthday={self.bymonthday}, until={self.until}, "
            f"until_utc={self.until_utc}, count={self.count})"
        )


def _parse_until(s: str) -> tuple[EpochSecs, bool]:
    """The bound in epoch seconds, and whether it's UTC (``Z`` suffix)
    rather than local time"""
    if (match := _match_until(s)) is None:
        raise ValueError(f"Invalid UNTIL: {s!r}")
    year, month, day, hour, minute, second, utc = match.groups()
    days = epoch_days_from_iso(int(year), int(month), int(day))
    if hour is None:
        # a date bound includes the whole day
        return days * 86400 + 86399, False
    return (
        days * 86400 + int(hour) * 3600 + int(minute) * 60 + int(second),
        utc is not None,
    )


class Onsets:
    """The onsets of a single observance, in epoch seconds"""

    __slots__ = (
        "start",
        "offset_from",
        "offset_to",
        "_rule",
        "_until",
        "_count",
        "_start_year",
        "_time_of_day",
        "_count_shift",
        "_extra",
    )

    def __init__(
        self,
        start: EpochSecs,  # local time, in the offset_from offset
        offset_from: int,
        offset_to: int,
        recurrence: Optional[Recurrence] = None,
        extra: Sequence[EpochSecs] = (),  # local times
    ):
        self.start = start
        self.offset_from = offset_from
        self.offset_to = offset_to
        self._extra = tuple(sorted(extra))
        days, self._time_of_day = divmod(start, 86400)
        self._start_year = year_for_epoch(start)
        if recurrence is None:
            self._rule = None
            self._until = self._count = None
            self._count_shift = 0
        else:
            _, month, day = iso_from_epoch_days(days)
            self._rule = recurrence.rule(month, day)
            self._until = recurrence.until
            if self._until is not None and not recurrence.until_utc:
                self._until -= offset_from
            self._count = recurrence.count
            # the start itself counts as the first occurrence
            self._count_shift = int(
                self._local_onset(self._start_year) > start
            )

    def _local_onset(self, year: int) -> EpochSecs:
        assert self._rule is not None
        return yearly_onset(self._rule, year) * 86400 + self._time_of_day

    def _onset_in(self, year: int) -> Optional[EpochSecs]:
        local = self._local_onset(year)
        if local < self.start:
            return None
        if (
            self._count is not None
            and year - self._start_year + self._count_shift >= self._count
        ):
            return None
        utc = local - self.offset_from
        if self._until is not None and utc > self._until:
            return None
        return utc

    @property
    def first(self) -> EpochSecs:
        return self.start - self.offset_from

    def last_onset(self, t: EpochSecs) -> Optional[EpochSecs]:
        """The latest onset at or before the given UTC time"""
        best = self.first
        if t < best:
            return None
        if self._rule is not None:
            year = year_for_epoch(t + self.offset_from)
            for y in (year + 1, year, year - 1):
                onset = self._onset_in(y)
                if onset is not None and onset <= t:
                    best = max(best, onset)
                    break
        for local in self._extra:
            utc = local - self.offset_from
            if best < utc <= t:
                best = utc
        return best


class ObservanceTable:
    """Maps instants to offsets by finding the most recent onset"""

    __slots__ = ("_onsets", "_initial")

    def __init__(self, onsets: Sequence[Onsets]):
        if not onsets:
            raise ValueError("At least one observance is required")
        self._onsets = tuple(onsets)
        # Before any onset, the offset in force is the one the
        # earliest observance switches away from.
        self._initial = min(onsets, key=lambda o: o.first).offset_from

    def offset_for_instant(self, t: EpochSecs) -> int:
        best: Optional[EpochSecs] = None
        offset = self._initial
        for onsets in self._onsets:
            onset = onsets.last_onset(t)
            if onset is not None and (best is None or onset > best):
                best = onset
                offset = onsets.offset_to
        return offset
