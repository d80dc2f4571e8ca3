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
"""Date, calendar, and time arithmetic helpers.

All functions work on plain integers: ISO year/month/day triples and
nanosecond counts. Dates are proleptic Gregorian and may lie far outside the
range supported by the standard library.
"""

from __future__ import annotations

from fractions import Fraction
from typing import Union

from ._common import Overflow, RoundingMode

NS_PER_US = 1_000
NS_PER_MS = 1_000_000
NS_PER_SEC = 1_000_000_000
NS_PER_MIN = 60 * NS_PER_SEC
NS_PER_HOUR = 60 * NS_PER_MIN
NS_PER_DAY = 24 * NS_PER_HOUR

# The instant range: 100 million days either side of the epoch
EPOCH_NS_LIMIT = 100_000_000 * NS_PER_DAY
# Dates are allowed whenever their noon is within one day of the limit
EPOCH_DAYS_MIN = -100_000_001
EPOCH_DAYS_MAX = 100_000_000

UNIT_NANOS = {
    "week": 7 * NS_PER_DAY,
    "day": NS_PER_DAY,
    "hour": NS_PER_HOUR,
    "minute": NS_PER_MIN,
    "second": NS_PER_SEC,
    "millisecond": NS_PER_MS,
    "microsecond": NS_PER_US,
    "nanosecond": 1,
}

# Rounding increments of time units must evenly divide the next larger unit
MAX_INCREMENT_FOR_UNIT = {
    "hour": 24,
    "minute": 60,
    "second": 60,
    "millisecond": 1_000,
    "microsecond": 1_000,
    "nanosecond": 1_000,
}

Number = Union[int, Fraction]
YMD = tuple[int, int, int]


def is_leap(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


# 1-indexed days per month
_MONTHDAYS = [0, 31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31]
# days before the start of each month, in a common year
_DAYS_BEFORE_MONTH = [0, 0, 31, 59, 90, 120, 151, 181, 212, 243, 273, 304, 334]


def days_in_month(year: int, month: int) -> int:
    return _MONTHDAYS[month] + (month == 2 and is_leap(year))


def days_in_year(year: int) -> int:
    return 366 if is_leap(year) else 365


def epoch_days_from_iso(year: int, month: int, day: int) -> int:
    """Days since 1970-01-01 for the given proleptic Gregorian date"""
    # See howardhinnant.github.io/date_algorithms.html#days_from_civil
    year -= month <= 2
    era = year // 400
    yoe = year - era * 400
    doy = (153 * (month + (-3 if month > 2 else 9)) + 2) // 5 + day - 1
    doe = yoe * 365 + yoe // 4 - yoe // 100 + doy
    return era * 146_097 + doe - 719_468


def iso_from_epoch_days(days: int) -> YMD:
    """Inverse of :func:`epoch_days_from_iso`"""
    days += 719_468
    era = days // 146_097
    doe = days - era * 146_097
    yoe = (doe - doe // 1460 + doe // 36_524 - doe // 146_096) // 365
    doy = doe - (365 * yoe + yoe // 4 - yoe // 100)
    mp = (5 * doy + 2) // 153
    day = doy - (153 * mp + 2) // 5 + 1
    month = mp + (3 if mp < 10 else -9)
    return yoe + era * 400 + (month <= 2), month, day


def iso_day_of_week(year: int, month: int, day: int) -> int:
    """ISO day of the week: Monday=1, Sunday=7"""
    return (epoch_days_from_iso(year, month, day) + 3) % 7 + 1


def iso_day_of_year(year: int, month: int, day: int) -> int:
    return (
        _DAYS_BEFORE_MONTH[month] + (month > 2 and is_leap(year)) + day
    )


def _iso_weeks_in_year(year: int) -> int:
    def p(y: int) -> int:
        return (y + y // 4 - y // 100 + y // 400) % 7

    return 53 if p(year) == 4 or p(year - 1) == 3 else 52


def iso_week_of_year(year: int, month: int, day: int) -> tuple[int, int]:
    """The ISO week number and the year that week belongs to"""
    week = (
        iso_day_of_year(year, month, day)
        - iso_day_of_week(year, month, day)
        + 10
    ) // 7
    if week < 1:
        return _iso_weeks_in_year(year - 1), year - 1
    elif week > _iso_weeks_in_year(year):
        return 1, year + 1
    return week, year


def balance_year_month(year: int, month: int) -> tuple[int, int]:
    year_delta, month0 = divmod(month - 1, 12)
    return year + year_delta, month0 + 1


def regulate_iso_date(
    year: int, month: int, day: int, overflow: Overflow
) -> YMD:
    if overflow == "constrain":
        month = min(max(month, 1), 12)
        return year, month, min(max(day, 1), days_in_month(year, month))
    if not 1 <= month <= 12:
        raise ValueError(f"month out of range: {month}")
    if not 1 <= day <= days_in_month(year, month):
        raise ValueError(f"day out of range: {day}")
    return year, month, day


def check_epoch_days(days: int) -> int:
    if not EPOCH_DAYS_MIN <= days <= EPOCH_DAYS_MAX:
        raise ValueError("Date out of range")
    return days


def add_iso_date(
    date: YMD,
    years: int,
    months: int,
    weeks: int,
    days: int,
    overflow: Overflow,
) -> YMD:
    """Add calendar units: first years and months, then weeks and days"""
    y, m, d = date
    y, m = balance_year_month(y + years, m + months)
    y, m, d = regulate_iso_date(y, m, d, overflow)
    if not (weeks or days):
        check_epoch_days(epoch_days_from_iso(y, m, d))
        return y, m, d
    return iso_from_epoch_days(
        check_epoch_days(epoch_days_from_iso(y, m, d) + weeks * 7 + days)
    )


def compare_iso_date(a: YMD, b: YMD) -> int:
    return (a > b) - (a < b)


def _surpasses(sign: int, y1: int, m1: int, d1: int, target: YMD) -> bool:
    """Whether the (possibly unregulated) date lies beyond the target
    when moving in the direction of the sign"""
    y2, m2, d2 = target
    if y1 != y2:
        return sign * (y1 - y2) > 0
    elif m1 != m2:
        return sign * (m1 - m2) > 0
    return sign * (d1 - d2) > 0


def difference_iso_date(
    one: YMD, two: YMD, largest_unit: str
) -> tuple[int, int, int, int]:
    """The (years, months, weeks, days) between two dates,
    counting the largest unit greedily before descending"""
    sign = -compare_iso_date(one, two)
    if sign == 0:
        return 0, 0, 0, 0

    y1, m1, d1 = one
    years = months = 0
    if largest_unit in ("year", "month"):
        candidate = two[0] - y1
        if candidate:
            candidate -= sign
        while not _surpasses(sign, y1 + candidate, m1, d1, two):
            years = candidate
            candidate += sign

        candidate = sign
        y_mid, m_mid = balance_year_month(y1 + years, m1 + candidate)
        while not _surpasses(sign, y_mid, m_mid, d1, two):
            months = candidate
            candidate += sign
            y_mid, m_mid = balance_year_month(y_mid, m_mid + sign)

        if largest_unit == "month":
            months += years * 12
            years = 0

    y_mid, m_mid = balance_year_month(y1 + years, m1 + months)
    mid = regulate_iso_date(y_mid, m_mid, d1, "constrain")
    days = epoch_days_from_iso(*two) - epoch_days_from_iso(*mid)
    weeks = 0
    if largest_unit == "week":
        weeks = trunc_div(days, 7)
        days -= weeks * 7
    return years, months, weeks, days


def trunc_div(a: Number, b: int) -> int:
    """Division rounding toward zero"""
    q = abs(a) // b
    return int(-q if a < 0 else q)


def sign_of(n: Number) -> int:
    return (n > 0) - (n < 0)


def round_to_increment(x: Number, increment: int, mode: RoundingMode) -> int:
    """Round to a multiple of the increment.

    The modes are signed: ``ceil`` rounds toward positive infinity,
    ``floor`` toward negative infinity, ``trunc`` toward zero and
    ``halfExpand`` to the nearest multiple with ties away from zero.
    """
    quotient, remainder = divmod(x, increment)
    quotient = int(quotient)
    if not remainder:
        return quotient * increment
    if mode == "floor":
        pass
    elif mode == "ceil":
        quotient += 1
    elif mode == "trunc":
        quotient += x < 0
    else:  # halfExpand
        twice = remainder * 2
        if twice > increment or (twice == increment and x > 0):
            quotient += 1
    return quotient * increment


def check_increment_for_unit(
    unit: str, increment: int, *, inclusive: bool = False
) -> None:
    """Time unit increments must evenly divide the next larger unit"""
    try:
        max_divisor = MAX_INCREMENT_FOR_UNIT[unit]
    except KeyError:
        return
    if max_divisor % increment or (not inclusive and increment == max_divisor):
        raise ValueError(
            f"Invalid increment for {unit}. "
            f"Must divide {max_divisor} and be smaller than it."
        )


def check_increment_for_datetime(unit: str, increment: int) -> int:
    """Rounding increment in nanoseconds for rounding a point in time.
    Day rounding only allows an increment of 1."""
    if unit == "day":
        if increment != 1:
            raise ValueError("Rounding increment for day can only be 1")
    else:
        check_increment_for_unit(unit, increment)
    return UNIT_NANOS[unit] * increment


def check_increment_for_instant(unit: str, increment: int) -> int:
    """Rounding increment for instants: it must divide a 24-hour day"""
    ns = UNIT_NANOS[unit] * increment
    if NS_PER_DAY % ns:
        raise ValueError(
            f"Invalid increment for {unit}. Must evenly divide a 24-hour day."
        )
    return ns
