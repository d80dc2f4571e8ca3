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
"""POSIX TZ strings: a standard offset with an optional yearly DST rule.

They appear at the end of TZif files, describing the offsets after the
last listed transition, and may also be used directly as rule-based zones.
The day-of-year rules are shared with recurrence-based zones.
"""

from __future__ import annotations

import re
from typing import Optional, Union

from .._math import (
    days_in_month,
    epoch_days_from_iso,
    is_leap,
    iso_from_epoch_days,
)
from .common import Ambiguity, Fold, Gap, Unambiguous

DEFAULT_DST = 3600
DEFAULT_RULE_TIME = 2 * 3600
MAX_OFFSET = 24 * 3600
Weekday = int  # Different than usual! Sunday=0, Saturday=6
EpochDays = int
EpochSecs = int


def year_for_epoch(ts: EpochSecs) -> int:
    return iso_from_epoch_days(ts // 86400)[0]


def weekday_for_epoch_days(days: EpochDays) -> Weekday:
    return (days + 4) % 7  # 1970-01-01 was a Thursday


class LastWeekday:
    """The last given weekday of the month, e.g. the last Sunday of March"""

    month: int
    weekday: Weekday

    __slots__ = ("month", "weekday")

    def __init__(self, month: int, weekday: Weekday):
        self.month = month
        self.weekday = weekday

    def apply(self, year: int) -> EpochDays:
        last = epoch_days_from_iso(
            year, self.month, days_in_month(year, self.month)
        )
        return last - (weekday_for_epoch_days(last) - self.weekday) % 7

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LastWeekday):
            return NotImplemented  # pragma: no cover
        return self.month == other.month and self.weekday == other.weekday

    def __hash__(self) -> int:
        return hash((LastWeekday, self.month, self.weekday))

    def __repr__(self) -> str:
        return f"LastWeekday({self.month}, {self.weekday})"


class NthWeekday:
    """The n-th (1-4) given weekday of the month"""

    month: int
    nth: int
    weekday: Weekday

    __slots__ = ("month", "nth", "weekday")

    def __init__(self, month: int, nth: int, weekday: Weekday):
        self.month = month
        self.nth = nth
        self.weekday = weekday

    def apply(self, year: int) -> EpochDays:
        first = epoch_days_from_iso(year, self.month, 1)
        return (
            first
            + (self.weekday - weekday_for_epoch_days(first)) % 7
            + 7 * (self.nth - 1)
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NthWeekday):
            return NotImplemented  # pragma: no cover
        return (
            self.month == other.month
            and self.nth == other.nth
            and self.weekday == other.weekday
        )

    def __hash__(self) -> int:
        return hash((NthWeekday, self.month, self.nth, self.weekday))

    def __repr__(self) -> str:
        return f"NthWeekday({self.month}, {self.nth}, {self.weekday})"


class DayOfYear:
    nth: int  # 1-365, 366 for leap years

    __slots__ = ("nth",)

    def __init__(self, nth: int):
        self.nth = nth

    def apply(self, year: int) -> EpochDays:
        return (
            epoch_days_from_iso(year, 1, 1)
            + min(self.nth, 365 + is_leap(year))
            - 1
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DayOfYear):
            return NotImplemented  # pragma: no cover
        return self.nth == other.nth

    def __hash__(self) -> int:
        return hash((DayOfYear, self.nth))

    def __repr__(self) -> str:
        return f"DayOfYear({self.nth})"


class JulianDayOfYear:
    """Day of the year, never counting February 29th"""

    nth: int  # 1-365

    __slots__ = ("nth",)

    def __init__(self, nth: int):
        self.nth = nth

    def apply(self, year: int) -> EpochDays:
        day = self.nth
        if is_leap(year) and day > 59:
            day += 1
        return epoch_days_from_iso(year, 1, 1) + day - 1

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, JulianDayOfYear):
            return NotImplemented  # pragma: no cover
        return self.nth == other.nth

    def __hash__(self) -> int:
        return hash((JulianDayOfYear, self.nth))

    def __repr__(self) -> str:
        return f"JulianDayOfYear({self.nth})"


Rule = Union[LastWeekday, NthWeekday, DayOfYear, JulianDayOfYear]


class Dst:
    offset: int
    start: tuple[Rule, int]
    end: tuple[Rule, int]

    __slots__ = ("offset", "start", "end")

    def __init__(
        self, offset: int, start: tuple[Rule, int], end: tuple[Rule, int]
    ):
        self.offset = offset
        self.start = start
        self.end = end

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Dst):
            return NotImplemented  # pragma: no cover
        return (
            self.offset == other.offset
            and self.start == other.start
            and self.end == other.end
        )

    def __repr__(self) -> str:
        return f"Dst(offset={self.offset}, start={self.start}, end={self.end})"


class TzStr:
    """A standard offset, and optionally a yearly DST period.

    Offsets are in seconds east of UTC, the opposite of how POSIX
    writes them.
    """

    std: int
    dst: Optional[Dst]

    __slots__ = ("std", "dst")

    def __init__(self, std: int, dst: Optional[Dst] = None):
        self.std = std
        self.dst = dst

    def offset_for_instant(self, epoch: EpochSecs) -> int:
        if not self.dst:
            return self.std
        # The year of a DST change is taken in standard time. This is
        # also what zoneinfo assumes.
        start, end = self._transitions(year_for_epoch(epoch + self.std))
        if start < end:
            in_dst = start <= epoch < end
        else:  # DST spans the new year
            in_dst = not end <= epoch < start
        return self.dst.offset if in_dst else self.std

    def _transitions(self, year: int) -> tuple[EpochSecs, EpochSecs]:
        """The UTC moments DST starts and ends in the given year"""
        assert self.dst
        start, end = self._local_changes(year)
        return start - self.std, end - self.dst.offset

    def _local_changes(self, year: int) -> tuple[EpochSecs, EpochSecs]:
        """The wall-clock moments DST starts and ends, each in the
        offset that applies just before it"""
        assert self.dst
        (start_rule, start_time), (end_rule, end_time) = (
            self.dst.start,
            self.dst.end,
        )
        return (
            start_rule.apply(year) * 86400 + start_time,
            end_rule.apply(year) * 86400 + end_time,
        )

    def next_transition(self, epoch: EpochSecs) -> Optional[EpochSecs]:
        """The first transition strictly after the given time"""
        if not self.dst or self.dst.offset == self.std:
            return None
        year = year_for_epoch(epoch + self.std)
        for y in (year - 1, year, year + 1):
            for t in sorted(self._transitions(y)):
                if t > epoch:
                    return t
        return None  # pragma: no cover

    def prev_transition(self, epoch: EpochSecs) -> Optional[EpochSecs]:
        """The last transition strictly before the given time"""
        if not self.dst or self.dst.offset == self.std:
            return None
        year = year_for_epoch(epoch + self.std)
        for y in (year + 1, year, year - 1):
            for t in sorted(self._transitions(y), reverse=True):
                if t < epoch:
                    return t
        return None  # pragma: no cover

    # NOTE: `epoch` is the datetime in seconds since the LOCAL epoch.
    def ambiguity_for_local(self, epoch: EpochSecs) -> Ambiguity:
        if not self.dst:
            return Unambiguous(self.std)
        start, end = self._local_changes(year_for_epoch(epoch))
        changes = sorted(
            [
                (start, self.std, self.dst.offset),
                (end, self.dst.offset, self.std),
            ]
        )
        # A forward change skips the wall-clock times just after it,
        # a backward change repeats the ones just before it.
        for local, before, after in changes:
            if after > before:
                if epoch < local:
                    return Unambiguous(before)
                elif epoch < local + after - before:
                    return Gap(after, before)
            else:
                if epoch < local - (before - after):
                    return Unambiguous(before)
                elif epoch < local:
                    return Fold(before, after)
        return Unambiguous(changes[-1][2])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TzStr):
            return NotImplemented  # pragma: no cover
        return self.std == other.std and self.dst == other.dst

    def __repr__(self) -> str:
        if not self.dst:
            return f"TzStr(std={self.std})"
        return f"TzStr(std={self.std}, dst={self.dst})"

    @classmethod
    def parse(cls, s: str) -> TzStr:
        """Parse a string like ``CET-1CEST,M3.5.0,M10.5.0/3``.

        The DST offset defaults to one hour ahead of standard time,
        and the time of each change to 02:00.
        """
        if not s.isascii() or (match := _match_tzstr(s)) is None:
            raise ValueError(f"Invalid POSIX TZ string: {s!r}")
        std_str, dst_str, start, end = match.groups()
        std = _parse_offset(std_str)
        if start is None:
            return cls(std)
        if dst_str is None:
            dst = std + DEFAULT_DST
            if dst >= MAX_OFFSET:
                raise ValueError(
                    "Invalid POSIX TZ string: DST offset out of range"
                )
        else:
            dst = _parse_offset(dst_str)
        return cls(std, Dst(dst, _parse_rule(start), _parse_rule(end)))


_NAME = r"(?:[A-Za-z]+|<[^<>]+>)"
_HMS = r"[+-]?\d{1,3}(?::\d{2}(?::\d{2})?)?"
_RULE = rf"(?:M\d{{1,2}}\.\d\.\d|J\d{{1,3}}|\d{{1,3}})(?:/{_HMS})?"

_match_tzstr = re.compile(
    rf"{_NAME}({_HMS})(?:{_NAME}({_HMS})?,({_RULE}),({_RULE}))?", re.ASCII
).fullmatch
_match_hms = re.compile(
    r"([+-])?(\d{1,3})(?::(\d{2})(?::(\d{2}))?)?", re.ASCII
).fullmatch
_match_rule = re.compile(
    r"(?:M(\d{1,2})\.(\d)\.(\d)|J(\d{1,3})|(\d{1,3}))(?:/(.+))?", re.ASCII
).fullmatch


def _parse_hms(s: str) -> int:
    """Seconds in a ``[+-]h[hh][:mm[:ss]]`` string"""
    if (match := _match_hms(s)) is None:
        raise ValueError(f"Invalid TZ string time: {s!r}")
    sign, hrs, mins, secs = match.groups()
    if int(mins or 0) > 59 or int(secs or 0) > 59:
        raise ValueError(f"Invalid TZ string time: {s!r}")
    total = int(hrs) * 3600 + int(mins or 0) * 60 + int(secs or 0)
    return -total if sign == "-" else total


def _parse_offset(s: str) -> int:
    total = _parse_hms(s)
    if abs(total) >= MAX_OFFSET:
        raise ValueError("Invalid POSIX TZ string: offset out of range")
    # POSIX counts offsets west of UTC as positive
    return -total


def _parse_rule(s: str) -> tuple[Rule, int]:
    if (match := _match_rule(s)) is None:
        raise ValueError(f"Invalid DST rule: {s!r}")  # pragma: no cover
    month, week, weekday, julian, zero_based, time = match.groups()
    rule: Rule
    if month is not None:
        m, n, d = int(month), int(week), int(weekday)
        if not 1 <= m <= 12 or not 1 <= n <= 5 or d > 6:
            raise ValueError(f"Invalid DST rule: {s!r}")
        rule = LastWeekday(m, d) if n == 5 else NthWeekday(m, n, d)
    elif julian is not None:
        if not 1 <= (nth := int(julian)) <= 365:
            raise ValueError(f"Invalid Julian day of year: {nth}")
        rule = JulianDayOfYear(nth)
    else:
        if (nth := int(zero_based)) > 365:
            raise ValueError(f"Invalid day of year: {nth}")
        rule = DayOfYear(nth + 1)
    return rule, DEFAULT_RULE_TIME if time is None else _parse_hms(time)
