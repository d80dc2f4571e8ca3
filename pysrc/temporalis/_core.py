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

# Maintainer's notes:
#
# - Why is everything in one file?
#   - The value types, calendars and zones all 'know' about each other,
#     and one module prevents circular imports
#   - Flat is better than nested
# - Calendars and time zones are capabilities: any object following
#   CalendarProtocol or TimeZoneProtocol may be passed in. The built-in
#   implementations are final classes that don't inherit from each other.
#   Internally, the built-in ones are dispatched to directly for speed.
# - Wall-clock fields of ZonedDateTime are never stored. They're derived
#   from the instant, zone and calendar on every access.
# - The difference and rounding engine (bottom of the file) works on
#   tuples of (years, months, weeks, days, time_ns) so that intermediate
#   results don't need to be valid Durations.
from __future__ import annotations

__version__ = "0.1.0"

from fractions import Fraction
from time import time_ns
from typing import (
    Any,
    ClassVar,
    Iterable,
    Literal,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Union,
    overload,
    runtime_checkable,
)

from ._common import (
    CALENDAR_UNITS,
    DATE_UNITS,
    TIME_UNITS,
    UNITS,
    IncomparableTimeZones,
    InvalidOffsetError,
    OffsetOption,
    Overflow,
    RoundingMode,
    Unit,
    UnsupportedOperation,
    _ImmutableBase,
    check_disambiguation,
    check_increment,
    check_offset_option,
    check_overflow,
    check_rounding_mode,
    check_unit,
    final,
    format_offset,
    larger_unit,
    negate_rounding_mode,
    parse_offset,
    unit_index,
)
from ._math import (
    EPOCH_DAYS_MAX,
    EPOCH_DAYS_MIN,
    EPOCH_NS_LIMIT,
    NS_PER_DAY,
    NS_PER_HOUR,
    NS_PER_MIN,
    NS_PER_MS,
    NS_PER_SEC,
    NS_PER_US,
    UNIT_NANOS,
    YMD,
    add_iso_date,
    check_epoch_days,
    check_increment_for_datetime,
    check_increment_for_instant,
    check_increment_for_unit,
    compare_iso_date,
    days_in_month,
    days_in_year,
    difference_iso_date,
    epoch_days_from_iso,
    is_leap,
    iso_day_of_week,
    iso_day_of_year,
    iso_from_epoch_days,
    iso_week_of_year,
    regulate_iso_date,
    round_to_increment,
    sign_of,
    trunc_div,
)
from ._tz.ambiguity import (
    RepeatedTime,
    SkippedTime,
    possible_instants_by_offsets,
    possible_instants_tzif,
    resolve_ambiguity,
)
from ._tz.common import Disambiguate
from ._tz.posix import TzStr
from ._tz.rules import ObservanceKind, ObservanceTable, Onsets, Recurrence
from ._tz.store import DEFAULT_ENVIRONMENT, Environment, TimeZoneNotFoundError
from ._tz.tzif import Tzif

__all__ = [
    # Values
    "Instant",
    "Duration",
    "PlainDate",
    "PlainTime",
    "PlainDateTime",
    "PlainYearMonth",
    "PlainMonthDay",
    "ZonedDateTime",
    # Calendars
    "CalendarProtocol",
    "IsoCalendar",
    "EraCalendar",
    "Era",
    "calendar_from",
    # Time zones
    "TimeZoneProtocol",
    "TimeZone",
    "RuleTimeZone",
    "Observance",
    "Recurrence",
    "Environment",
    "resolve_time_zone",
    # Exceptions
    "SkippedTime",
    "RepeatedTime",
    "InvalidOffsetError",
    "TimeZoneNotFoundError",
    "UnsupportedOperation",
    "IncomparableTimeZones",
]

_object_new = object.__new__
_DURATION_FIELDS = (
    "years",
    "months",
    "weeks",
    "days",
    "hours",
    "minutes",
    "seconds",
    "milliseconds",
    "microseconds",
    "nanoseconds",
)
_TIME_FIELDS = (
    ("hour", 23),
    ("minute", 59),
    ("second", 59),
    ("millisecond", 999),
    ("microsecond", 999),
    ("nanosecond", 999),
)
_TIME_FIELD_NANOS = (
    NS_PER_HOUR,
    NS_PER_MIN,
    NS_PER_SEC,
    NS_PER_MS,
    NS_PER_US,
    1,
)
_DATE_FIELD_NAMES = frozenset(
    ["year", "month", "month_code", "day", "era", "era_year"]
)
_TIME_FIELD_NAMES = frozenset(name for name, _ in _TIME_FIELDS)
_MAX_DATE_UNIT_VALUE = 1 << 32
_MAX_DURATION_NS = (1 << 53) * NS_PER_SEC

# (years, months, weeks, days, time in nanoseconds)
_DurationTuple = tuple[int, int, int, int, int]


def _check_int(value: object, name: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    elif isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValueError(f"{name} must be an integer, got {value!r}")
    raise TypeError(f"{name} must be an integer, got {type(value)!r}")


def _check_instant_ns(ns: int) -> int:
    if not -EPOCH_NS_LIMIT <= ns <= EPOCH_NS_LIMIT:
        raise ValueError("Instant out of range")
    return ns


def _check_local_ns(ns: int) -> int:
    if not -EPOCH_NS_LIMIT - NS_PER_DAY < ns < EPOCH_NS_LIMIT + NS_PER_DAY:
        raise ValueError("Date and time out of range")
    return ns


def _check_field_names(
    fields: Mapping[str, object], allowed: frozenset[str]
) -> None:
    if invalid := fields.keys() - allowed:
        raise TypeError(f"Unknown field(s): {', '.join(sorted(invalid))}")


def _format_year(year: int) -> str:
    if 0 <= year <= 9999:
        return f"{year:04d}"
    return f"{'+' if year > 0 else '-'}{abs(year):06d}"


def _format_date(y: int, m: int, d: int) -> str:
    return f"{_format_year(y)}-{m:02d}-{d:02d}"


def _format_time(tod: int) -> str:
    secs, frac = divmod(tod, NS_PER_SEC)
    hrs, secs = divmod(secs, 3600)
    mins, secs = divmod(secs, 60)
    if frac:
        return f"{hrs:02d}:{mins:02d}:{secs:02d}.{frac:09d}".rstrip("0")
    return f"{hrs:02d}:{mins:02d}:{secs:02d}"


def _format_local(local: int) -> str:
    days, tod = divmod(local, NS_PER_DAY)
    return f"{_format_date(*iso_from_epoch_days(days))}T{_format_time(tod)}"


def _calendar_annotation(cal: CalendarProtocol) -> str:
    return "" if cal.id == "iso8601" else f"[u-ca={cal.id}]"


def _time_ns_from_fields(values: Sequence[object], overflow: Overflow) -> int:
    total = 0
    for (name, maximum), value, nanos in zip(
        _TIME_FIELDS, values, _TIME_FIELD_NANOS
    ):
        value = _check_int(value, name)
        if not 0 <= value <= maximum:
            if overflow == "reject":
                raise ValueError(f"{name} out of range: {value}")
            value = min(max(value, 0), maximum)
        total += value * nanos
    return total


# Duration


@final
class Duration(_ImmutableBase):
    """A quantity of time in calendar units (years, months, weeks, days)
    and exact units (hours down to nanoseconds).

    All nonzero fields must have the same sign. Fields are kept as given:
    ``Duration(minutes=90)`` is not balanced into hours. Use :meth:`round`
    to balance.

    Example
    -------
    >>> d = Duration(hours=1, minutes=30)
    >>> d
    Duration(PT1H30M)
    >>> d.sign
    1
    >>> -d
    Duration(-PT1H30M)
    """

    __slots__ = (
        "_years",
        "_months",
        "_weeks",
        "_days",
        "_hours",
        "_minutes",
        "_seconds",
        "_milliseconds",
        "_microseconds",
        "_nanoseconds",
    )

    def __init__(
        self,
        *,
        years: int = 0,
        months: int = 0,
        weeks: int = 0,
        days: int = 0,
        hours: int = 0,
        minutes: int = 0,
        seconds: int = 0,
        milliseconds: int = 0,
        microseconds: int = 0,
        nanoseconds: int = 0,
    ) -> None:
        values = tuple(
            _check_int(v, name)
            for v, name in zip(
                (
                    years,
                    months,
                    weeks,
                    days,
                    hours,
                    minutes,
                    seconds,
                    milliseconds,
                    microseconds,
                    nanoseconds,
                ),
                _DURATION_FIELDS,
            )
        )
        self._set(_check_duration(values))

    def _set(self, values: Sequence[int]) -> None:
        (
            self._years,
            self._months,
            self._weeks,
            self._days,
            self._hours,
            self._minutes,
            self._seconds,
            self._milliseconds,
            self._microseconds,
            self._nanoseconds,
        ) = values

    @classmethod
    def _from_values(cls, values: Sequence[int]) -> Duration:
        self = _object_new(cls)
        self._set(_check_duration(values))
        return self

    @classmethod
    def _from_tuple(
        cls, dur: _DurationTuple, largest: Unit = "hour"
    ) -> Duration:
        """Create from a date part and a time part balanced up to
        ``largest``"""
        years, months, weeks, days, time_ns = dur
        return cls._from_values(
            (years, months, weeks, days, *_balance_time(time_ns, largest))
        )

    @property
    def years(self) -> int:
        return self._years

    @property
    def months(self) -> int:
        return self._months

    @property
    def weeks(self) -> int:
        return self._weeks

    @property
    def days(self) -> int:
        return self._days

    @property
    def hours(self) -> int:
        return self._hours

    @property
    def minutes(self) -> int:
        return self._minutes

    @property
    def seconds(self) -> int:
        return self._seconds

    @property
    def milliseconds(self) -> int:
        return self._milliseconds

    @property
    def microseconds(self) -> int:
        return self._microseconds

    @property
    def nanoseconds(self) -> int:
        return self._nanoseconds

    def _values(self) -> tuple[int, ...]:
        return (
            self._years,
            self._months,
            self._weeks,
            self._days,
            self._hours,
            self._minutes,
            self._seconds,
            self._milliseconds,
            self._microseconds,
            self._nanoseconds,
        )

    def _time_ns(self) -> int:
        return (
            self._hours * NS_PER_HOUR
            + self._minutes * NS_PER_MIN
            + self._seconds * NS_PER_SEC
            + self._milliseconds * NS_PER_MS
            + self._microseconds * NS_PER_US
            + self._nanoseconds
        )

    def _tuple(self) -> _DurationTuple:
        return (
            self._years,
            self._months,
            self._weeks,
            self._days,
            self._time_ns(),
        )

    def _has_calendar_units(self) -> bool:
        return bool(self._years or self._months or self._weeks)

    def _largest_unit(self) -> Unit:
        for value, unit in zip(self._values(), UNITS):
            if value:
                return unit
        return "nanosecond"

    @property
    def sign(self) -> int:
        """-1, 0 or 1, depending on the sign of the nonzero fields"""
        for value in self._values():
            if value:
                return 1 if value > 0 else -1
        return 0

    @property
    def blank(self) -> bool:
        """Whether all fields are zero"""
        return not any(self._values())

    def negated(self) -> Duration:
        return Duration._from_values([-v for v in self._values()])

    def abs(self) -> Duration:
        return Duration._from_values([abs(v) for v in self._values()])

    def replace(self, **fields: int) -> Duration:
        """Create a new duration with the given fields replaced

        Example
        -------
        >>> Duration(hours=2, minutes=30).replace(minutes=15)
        Duration(PT2H15M)
        """
        _check_field_names(fields, frozenset(_DURATION_FIELDS))
        values = dict(zip(_DURATION_FIELDS, self._values()))
        values.update(
            {name: _check_int(v, name) for name, v in fields.items()}
        )
        return Duration._from_values(list(values.values()))

    def add(
        self, other: Duration, /, *, relative_to: RelativeTo | None = None
    ) -> Duration:
        """Add two durations.

        Without ``relative_to``, only days and smaller units may be nonzero,
        and days count as 24 hours. With it, both durations are added to the
        anchor in turn, and the result is the difference from the anchor.
        """
        if not isinstance(other, Duration):
            raise TypeError(f"Expected a Duration, got {type(other)!r}")
        largest = larger_unit(self._largest_unit(), other._largest_unit())
        anchor = _relative_anchor(relative_to)
        if anchor is None:
            if self._has_calendar_units() or other._has_calendar_units():
                raise ValueError(
                    "relative_to is required to add durations "
                    "with years, months, or weeks"
                )
            total = (
                (self._days + other._days) * NS_PER_DAY
                + self._time_ns()
                + other._time_ns()
            )
            return Duration._from_tuple(_exact_tuple(total, largest), largest)
        elif type(anchor) is ZonedDateTime:
            tz, cal = anchor._tz, anchor._cal
            mid = _add_zoned(anchor._ns, tz, cal, self._tuple(), "constrain")
            end = _add_zoned(mid, tz, cal, other._tuple(), "constrain")
            return _difference_zoned_rounded(
                anchor._ns, end, tz, cal, largest, 1, "nanosecond", "trunc"
            )
        else:
            mid_dt = _add_plain(anchor, self._tuple(), "constrain")
            end_dt = _add_plain(mid_dt, other._tuple(), "constrain")
            return _difference_plain_rounded(
                anchor, end_dt, largest, 1, "nanosecond", "trunc"
            )

    def subtract(
        self, other: Duration, /, *, relative_to: RelativeTo | None = None
    ) -> Duration:
        """Subtract a duration. See :meth:`add` for the use of ``relative_to``."""
        if not isinstance(other, Duration):
            raise TypeError(f"Expected a Duration, got {type(other)!r}")
        return self.add(other.negated(), relative_to=relative_to)

    def round(
        self,
        smallest_unit: Unit | None = None,
        *,
        largest_unit: Unit | Literal["auto"] | None = None,
        rounding_increment: int = 1,
        rounding_mode: RoundingMode = "halfExpand",
        relative_to: RelativeTo | None = None,
    ) -> Duration:
        """Round and balance the duration.

        At least one of ``smallest_unit`` and ``largest_unit`` is required.
        Years, months and weeks can only be handled given ``relative_to``.
        Relative to a :class:`ZonedDateTime`, days have their real length
        in its zone: they may be 23 or 25 hours at DST transitions.
        Otherwise, a day is always 24 hours.

        Example
        -------
        >>> Duration(minutes=130).round(largest_unit="hour")
        Duration(PT2H10M)
        >>> Duration(hours=25).round("day", relative_to=PlainDate(2024, 1, 1))
        Duration(P1D)
        """
        if smallest_unit is None and largest_unit is None:
            raise ValueError("smallest_unit or largest_unit is required")
        smallest = check_unit(
            "nanosecond" if smallest_unit is None else smallest_unit,
            "smallest_unit",
        )
        default_largest = larger_unit(self._largest_unit(), smallest)
        largest = (
            default_largest
            if largest_unit in (None, "auto")
            else check_unit(largest_unit, "largest_unit")
        )
        if larger_unit(largest, smallest) != largest:
            raise ValueError(
                f"largest_unit {largest!r} can't be smaller than "
                f"smallest_unit {smallest!r}"
            )
        mode = check_rounding_mode(rounding_mode)
        increment = check_increment(rounding_increment)
        check_increment_for_unit(smallest, increment)
        if increment > 1 and largest != smallest and smallest in DATE_UNITS:
            raise ValueError(
                "A rounding increment for a date unit is only allowed "
                "when largest_unit equals smallest_unit"
            )

        anchor = _relative_anchor(relative_to)
        if anchor is None:
            if (
                self._has_calendar_units()
                or largest in CALENDAR_UNITS
                or smallest in CALENDAR_UNITS
            ):
                raise ValueError(
                    "relative_to is required to round durations "
                    "with years, months, or weeks"
                )
            total = self._days * NS_PER_DAY + self._time_ns()
            rounded = round_to_increment(
                total, UNIT_NANOS[smallest] * increment, mode
            )
            return Duration._from_tuple(
                _exact_tuple(rounded, largest), largest
            )
        elif type(anchor) is ZonedDateTime:
            tz, cal = anchor._tz, anchor._cal
            end = _add_zoned(anchor._ns, tz, cal, self._tuple(), "constrain")
            return _difference_zoned_rounded(
                anchor._ns, end, tz, cal, largest, increment, smallest, mode
            )
        else:
            end_dt = _add_plain(anchor, self._tuple(), "constrain")
            return _difference_plain_rounded(
                anchor, end_dt, largest, increment, smallest, mode
            )

    def total(
        self, unit: Unit, /, *, relative_to: RelativeTo | None = None
    ) -> float:
        """The duration expressed as a (fractional) number of the given unit

        Example
        -------
        >>> Duration(hours=1, minutes=30).total("hour")
        1.5
        """
        unit = check_unit(unit, "unit")
        anchor = _relative_anchor(relative_to)
        if anchor is None:
            if self._has_calendar_units() or unit in CALENDAR_UNITS:
                raise ValueError(
                    "relative_to is required for the total of durations "
                    "with years, months, or weeks"
                )
            total = self._days * NS_PER_DAY + self._time_ns()
            return float(Fraction(total, UNIT_NANOS[unit]))
        elif type(anchor) is ZonedDateTime:
            tz, cal = anchor._tz, anchor._cal
            end = _add_zoned(anchor._ns, tz, cal, self._tuple(), "constrain")
            return float(_total_zoned(anchor._ns, end, tz, cal, unit))
        else:
            end_dt = _add_plain(anchor, self._tuple(), "constrain")
            return float(_total_plain(anchor, end_dt, unit))

    @staticmethod
    def compare(
        a: Duration, b: Duration, /, *, relative_to: RelativeTo | None = None
    ) -> int:
        """Compare the lengths of two durations, returning -1, 0 or 1.

        ``relative_to`` is needed if years, months or weeks are involved.
        Relative to a :class:`ZonedDateTime`, days have their real length.
        """
        if not (isinstance(a, Duration) and isinstance(b, Duration)):
            raise TypeError("Can only compare two Durations")
        if a._values() == b._values():
            return 0
        anchor = _relative_anchor(relative_to)
        if type(anchor) is ZonedDateTime and (a._days or b._days):
            tz, cal = anchor._tz, anchor._cal
            x = _add_zoned(anchor._ns, tz, cal, a._tuple(), "constrain")
            y = _add_zoned(anchor._ns, tz, cal, b._tuple(), "constrain")
        elif a._has_calendar_units() or b._has_calendar_units():
            if anchor is None:
                raise ValueError(
                    "relative_to is required to compare durations "
                    "with years, months, or weeks"
                )
            elif type(anchor) is ZonedDateTime:
                tz, cal = anchor._tz, anchor._cal
                x = _add_zoned(anchor._ns, tz, cal, a._tuple(), "constrain")
                y = _add_zoned(anchor._ns, tz, cal, b._tuple(), "constrain")
            else:
                x = _add_plain(anchor, a._tuple(), "constrain")._local_ns()
                y = _add_plain(anchor, b._tuple(), "constrain")._local_ns()
        else:
            x = a._days * NS_PER_DAY + a._time_ns()
            y = b._days * NS_PER_DAY + b._time_ns()
        return (x > y) - (x < y)

    def format_common_iso(self) -> str:
        """Format as an ISO 8601 duration, e.g. ``P1Y2M3DT4H5M6.7S``

        Example
        -------
        >>> Duration(days=1, hours=12).format_common_iso()
        'P1DT12H'
        """
        if self.blank:
            return "PT0S"
        years, months, weeks, days, hours, minutes, *_ = map(
            abs, self._values()
        )
        subsec_ns = (
            abs(self._seconds) * NS_PER_SEC
            + abs(self._milliseconds) * NS_PER_MS
            + abs(self._microseconds) * NS_PER_US
            + abs(self._nanoseconds)
        )
        secs, frac = divmod(subsec_ns, NS_PER_SEC)
        date_part = "".join(
            f"{value}{designator}"
            for value, designator in (
                (years, "Y"),
                (months, "M"),
                (weeks, "W"),
                (days, "D"),
            )
            if value
        )
        time_part = "".join(
            f"{value}{designator}"
            for value, designator in ((hours, "H"), (minutes, "M"))
            if value
        )
        if frac:
            time_part += f"{secs}.{frac:09d}".rstrip("0") + "S"
        elif secs:
            time_part += f"{secs}S"
        return (
            ("-" if self.sign < 0 else "")
            + "P"
            + date_part
            + ("T" + time_part if time_part else "")
        )

    to_string = format_common_iso
    to_json = format_common_iso
    __str__ = format_common_iso

    def to_locale_string(self, locale: str | None = None) -> str:
        """Locale-aware presentation isn't provided:
        this gives the ISO 8601 format for any locale."""
        return self.format_common_iso()

    def __repr__(self) -> str:
        return f"Duration({self})"

    def __eq__(self, other: object) -> bool:
        """Compare field by field. ``PT1H`` and ``PT60M`` are not equal:
        use :meth:`compare` to compare lengths.
        """
        if not isinstance(other, Duration):
            return NotImplemented
        return self._values() == other._values()

    def __hash__(self) -> int:
        return hash(self._values())

    def __neg__(self) -> Duration:
        return self.negated()

    def __pos__(self) -> Duration:
        return self

    def __abs__(self) -> Duration:
        return self.abs()

    def __bool__(self) -> bool:
        return not self.blank

    def __reduce__(self):
        return _unpkl_duration, self._values()


def _unpkl_duration(*values: int) -> Duration:
    return Duration._from_values(values)


def _check_duration(values: Sequence[int]) -> Sequence[int]:
    if len({v > 0 for v in values if v}) > 1:
        raise ValueError("Mixed-sign durations are not allowed")
    years, months, weeks, days, hrs, mins, secs, ms, us, ns = values
    if max(abs(years), abs(months), abs(weeks)) >= _MAX_DATE_UNIT_VALUE:
        raise ValueError("Duration out of range")
    if (
        abs(
            days * NS_PER_DAY
            + hrs * NS_PER_HOUR
            + mins * NS_PER_MIN
            + secs * NS_PER_SEC
            + ms * NS_PER_MS
            + us * NS_PER_US
            + ns
        )
        >= _MAX_DURATION_NS
    ):
        raise ValueError("Duration out of range")
    return values


def _balance_time(time_ns: int, largest: Unit) -> list[int]:
    """Split nanoseconds into hours, minutes, ..., nanoseconds,
    with nothing above the largest unit"""
    sign = -1 if time_ns < 0 else 1
    remaining = abs(time_ns)
    result = []
    for unit in UNITS[4:]:
        if unit_index(unit) < unit_index(largest):
            result.append(0)
        else:
            value, remaining = divmod(remaining, UNIT_NANOS[unit])
            result.append(sign * value)
    return result


# Instant


@final
class Instant(_ImmutableBase):
    """An exact point on the timeline, without a time zone or calendar.

    Stored as nanoseconds since the Unix epoch (1970-01-01T00:00Z),
    limited to 100 million days either side of it.

    Example
    -------
    >>> Instant.from_utc(2024, 3, 1, 12)
    Instant(2024-03-01T12:00:00Z)
    >>> Instant(1_000_000_000).epoch_seconds
    1
    """

    __slots__ = ("_ns",)

    MIN: ClassVar[Instant]
    MAX: ClassVar[Instant]

    def __init__(self, epoch_nanoseconds: int) -> None:
        self._ns = _check_instant_ns(
            _check_int(epoch_nanoseconds, "epoch_nanoseconds")
        )

    @classmethod
    def _from_ns_unchecked(cls, ns: int) -> Instant:
        self = _object_new(cls)
        self._ns = ns
        return self

    @classmethod
    def now(cls) -> Instant:
        """The current time, from the system clock"""
        return cls._from_ns_unchecked(time_ns())

    @classmethod
    def from_epoch_seconds(cls, s: int, /) -> Instant:
        return cls(_check_int(s, "epoch_seconds") * NS_PER_SEC)

    @classmethod
    def from_epoch_milliseconds(cls, ms: int, /) -> Instant:
        return cls(_check_int(ms, "epoch_milliseconds") * NS_PER_MS)

    @classmethod
    def from_epoch_microseconds(cls, us: int, /) -> Instant:
        return cls(_check_int(us, "epoch_microseconds") * NS_PER_US)

    @classmethod
    def from_epoch_nanoseconds(cls, ns: int, /) -> Instant:
        return cls(ns)

    @classmethod
    def from_utc(
        cls,
        year: int,
        month: int,
        day: int,
        hour: int = 0,
        minute: int = 0,
        second: int = 0,
        *,
        millisecond: int = 0,
        microsecond: int = 0,
        nanosecond: int = 0,
    ) -> Instant:
        """Create an instant from a UTC date and time"""
        y, m, d = regulate_iso_date(
            _check_int(year, "year"),
            _check_int(month, "month"),
            _check_int(day, "day"),
            "reject",
        )
        tod = _time_ns_from_fields(
            (hour, minute, second, millisecond, microsecond, nanosecond),
            "reject",
        )
        return cls(epoch_days_from_iso(y, m, d) * NS_PER_DAY + tod)

    @property
    def epoch_seconds(self) -> int:
        """Whole seconds since the epoch, rounded toward negative infinity"""
        return self._ns // NS_PER_SEC

    @property
    def epoch_milliseconds(self) -> int:
        return self._ns // NS_PER_MS

    @property
    def epoch_microseconds(self) -> int:
        return self._ns // NS_PER_US

    @property
    def epoch_nanoseconds(self) -> int:
        return self._ns

    def add(self, duration: Duration, /) -> Instant:
        """Add an exact duration. Years, months, weeks and days have no
        fixed length on the bare timeline, so they aren't allowed.

        Example
        -------
        >>> Instant.from_utc(2020, 8, 15).add(Duration(hours=4))
        Instant(2020-08-15T04:00:00Z)
        >>> Instant.from_utc(2020, 8, 15).add(Duration(days=1))
        Traceback (most recent call last):
          ...
        TypeError: Instant can't be shifted by years, months, weeks, or days
        """
        if not isinstance(duration, Duration):
            raise TypeError(f"Expected a Duration, got {type(duration)!r}")
        if duration._has_calendar_units() or duration._days:
            raise TypeError(
                "Instant can't be shifted by years, months, weeks, or days"
            )
        return Instant(self._ns + duration._time_ns())

    def subtract(self, duration: Duration, /) -> Instant:
        """Subtract an exact duration. See :meth:`add`."""
        if not isinstance(duration, Duration):
            raise TypeError(f"Expected a Duration, got {type(duration)!r}")
        return self.add(duration.negated())

    def until(
        self,
        other: Instant,
        /,
        *,
        largest_unit: Unit | Literal["auto"] = "auto",
        smallest_unit: Unit = "nanosecond",
        rounding_increment: int = 1,
        rounding_mode: RoundingMode = "trunc",
    ) -> Duration:
        """The exact time from this instant to another.
        The result is expressed in hours and smaller units only;
        by default, in seconds and smaller.

        Example
        -------
        >>> a = Instant.from_utc(2020, 1, 1)
        >>> a.until(Instant.from_utc(2020, 1, 2, 3), largest_unit="hour")
        Duration(PT27H)
        """
        if not isinstance(other, Instant):
            raise TypeError(f"Expected an Instant, got {type(other)!r}")
        largest, smallest, increment, mode = _difference_options(
            largest_unit,
            smallest_unit,
            rounding_increment,
            rounding_mode,
            allowed=TIME_UNITS,
            default_largest="second",
        )
        return _difference_instant(
            self._ns, other._ns, largest, increment, smallest, mode
        )

    def since(
        self,
        other: Instant,
        /,
        *,
        largest_unit: Unit | Literal["auto"] = "auto",
        smallest_unit: Unit = "nanosecond",
        rounding_increment: int = 1,
        rounding_mode: RoundingMode = "trunc",
    ) -> Duration:
        """The exact time from another instant to this one. See :meth:`until`."""
        if not isinstance(other, Instant):
            raise TypeError(f"Expected an Instant, got {type(other)!r}")
        largest, smallest, increment, mode = _difference_options(
            largest_unit,
            smallest_unit,
            rounding_increment,
            rounding_mode,
            allowed=TIME_UNITS,
            default_largest="second",
        )
        return _difference_instant(
            self._ns,
            other._ns,
            largest,
            increment,
            smallest,
            negate_rounding_mode(mode),
        ).negated()

    def round(
        self,
        smallest_unit: Unit,
        /,
        *,
        rounding_increment: int = 1,
        rounding_mode: RoundingMode = "halfExpand",
    ) -> Instant:
        """Round to a multiple of the given unit, counted from the epoch.
        The increment must evenly divide a 24-hour day.

        Example
        -------
        >>> Instant(1_600_000_000 * 10**9).round("hour")
        Instant(2020-09-13T12:00:00Z)
        """
        unit = check_unit(smallest_unit, "smallest_unit", TIME_UNITS)
        increment = check_increment_for_instant(
            unit, check_increment(rounding_increment)
        )
        return Instant(
            round_to_increment(
                self._ns, increment, check_rounding_mode(rounding_mode)
            )
        )

    def to_zoned_date_time(
        self,
        time_zone: TimeZoneProtocol | str,
        calendar: CalendarProtocol | str = "iso8601",
    ) -> ZonedDateTime:
        """The same instant, viewed in a zone and calendar"""
        return ZonedDateTime._from_parts_unchecked(
            self._ns, _time_zone_from(time_zone), _calendar_from(calendar)
        )

    def to_zoned_date_time_iso(
        self, time_zone: TimeZoneProtocol | str
    ) -> ZonedDateTime:
        """The same instant, viewed in a zone and the ISO 8601 calendar"""
        return self.to_zoned_date_time(time_zone, ISO)

    def equals(self, other: Instant, /) -> bool:
        if not isinstance(other, Instant):
            raise TypeError(f"Expected an Instant, got {type(other)!r}")
        return self._ns == other._ns

    @staticmethod
    def compare(a: Instant, b: Instant, /) -> int:
        """Compare two instants, returning -1, 0 or 1"""
        if not (isinstance(a, Instant) and isinstance(b, Instant)):
            raise TypeError("Can only compare two Instants")
        return (a._ns > b._ns) - (a._ns < b._ns)

    def format_common_iso(self) -> str:
        """Format as ``YYYY-MM-DDTHH:MM:SS[.fff]Z``

        Example
        -------
        >>> Instant.from_utc(2024, 2, 3, 4, 5, 6).format_common_iso()
        '2024-02-03T04:05:06Z'
        """
        return _format_local(self._ns) + "Z"

    def to_string(
        self, *, time_zone: TimeZoneProtocol | str | None = None
    ) -> str:
        """Format in ISO 8601. Given a zone, the local time in that zone
        is shown with its offset instead of ``Z``.

        Example
        -------
        >>> Instant.from_utc(2024, 2, 3, 4).to_string(time_zone="Europe/Paris")
        '2024-02-03T05:00:00+01:00'
        """
        if time_zone is None:
            return self.format_common_iso()
        tz = _time_zone_from(time_zone)
        offset = _offset_ns(tz, self._ns)
        return _format_local(self._ns + offset) + format_offset(offset)

    to_json = format_common_iso
    __str__ = format_common_iso

    def to_locale_string(self, locale: str | None = None) -> str:
        """Locale-aware presentation isn't provided:
        this gives the ISO 8601 format for any locale."""
        return self.format_common_iso()

    def __repr__(self) -> str:
        return f"Instant({self})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Instant):
            return NotImplemented
        return self._ns == other._ns

    def __hash__(self) -> int:
        return hash(self._ns)

    def __lt__(self, other: Instant) -> bool:
        if not isinstance(other, Instant):
            return NotImplemented
        return self._ns < other._ns

    def __le__(self, other: Instant) -> bool:
        if not isinstance(other, Instant):
            return NotImplemented
        return self._ns <= other._ns

    def __gt__(self, other: Instant) -> bool:
        if not isinstance(other, Instant):
            return NotImplemented
        return self._ns > other._ns

    def __ge__(self, other: Instant) -> bool:
        if not isinstance(other, Instant):
            return NotImplemented
        return self._ns >= other._ns

    def __add__(self, other: Duration) -> Instant:
        if not isinstance(other, Duration):
            return NotImplemented
        return self.add(other)

    @overload
    def __sub__(self, other: Duration) -> Instant: ...

    @overload
    def __sub__(self, other: Instant) -> Duration: ...

    def __sub__(self, other: Duration | Instant) -> Instant | Duration:
        """Subtract a duration, or get the duration since another instant"""
        if isinstance(other, Duration):
            return self.subtract(other)
        elif isinstance(other, Instant):
            return self.since(other)
        return NotImplemented

    def __reduce__(self):
        return _unpkl_instant, (self._ns,)


def _unpkl_instant(ns: int) -> Instant:
    return Instant._from_ns_unchecked(ns)


Instant.MIN = Instant._from_ns_unchecked(-EPOCH_NS_LIMIT)
Instant.MAX = Instant._from_ns_unchecked(EPOCH_NS_LIMIT)


# Calendars


@runtime_checkable
class CalendarProtocol(Protocol):
    """The interface of a calendar system.

    Calendars interpret the ISO fields of a :class:`PlainDate` (always
    stored in the proleptic Gregorian calendar) as their own years,
    months and days, and do calendar arithmetic.
    Any object implementing these methods can be used as a calendar.
    """

    @property
    def id(self) -> str: ...

    def year(self, date: PlainDate) -> int: ...

    def month(self, date: PlainDate) -> int: ...

    def month_code(self, date: PlainDate) -> str: ...

    def day(self, date: PlainDate) -> int: ...

    def era(self, date: PlainDate) -> Optional[str]: ...

    def era_year(self, date: PlainDate) -> Optional[int]: ...

    def day_of_week(self, date: PlainDate) -> int: ...

    def day_of_year(self, date: PlainDate) -> int: ...

    def week_of_year(self, date: PlainDate) -> Optional[int]: ...

    def days_in_week(self, date: PlainDate) -> int: ...

    def days_in_month(self, date: PlainDate) -> int: ...

    def days_in_year(self, date: PlainDate) -> int: ...

    def months_in_year(self, date: PlainDate) -> int: ...

    def in_leap_year(self, date: PlainDate) -> bool: ...

    def date_from_fields(
        self, fields: Mapping[str, Any], overflow: Overflow = "constrain"
    ) -> PlainDate: ...

    def date_add(
        self,
        date: PlainDate,
        duration: Duration,
        overflow: Overflow = "constrain",
    ) -> PlainDate: ...

    def date_until(
        self, one: PlainDate, two: PlainDate, largest_unit: Unit = "day"
    ) -> Duration: ...

    def fields(self, names: Iterable[str]) -> list[str]: ...

    def merge_fields(
        self, fields: Mapping[str, Any], additional: Mapping[str, Any]
    ) -> dict[str, Any]: ...


def _required_field(fields: Mapping[str, Any], name: str) -> int:
    try:
        value = fields[name]
    except KeyError:
        raise TypeError(f"Missing required field: {name}") from None
    if value is None:
        raise TypeError(f"Missing required field: {name}")
    return _check_int(value, name)


def _month_from_fields(fields: Mapping[str, Any]) -> int:
    month = fields.get("month")
    code = fields.get("month_code")
    if code is not None:
        if not (
            isinstance(code, str)
            and len(code) == 3
            and code[0] == "M"
            and code[1:].isdigit()
            and 1 <= int(code[1:]) <= 12
        ):
            raise ValueError(f"Invalid month_code: {code!r}")
        if month is not None and _check_int(month, "month") != int(code[1:]):
            raise ValueError("month and month_code don't match")
        return int(code[1:])
    elif month is None:
        raise TypeError("Missing required field: month or month_code")
    return _check_int(month, "month")


def _merge_field_groups(
    fields: Mapping[str, Any],
    additional: Mapping[str, Any],
    groups: Sequence[frozenset[str]],
) -> dict[str, Any]:
    """Overlay the additional fields. Fields that are interdependent
    (e.g. month and month_code) are replaced as a group."""
    merged = {k: v for k, v in fields.items() if v is not None}
    for group in groups:
        if group & additional.keys():
            for name in group:
                merged.pop(name, None)
    merged.update({k: v for k, v in additional.items() if v is not None})
    return merged


def _iso_date_add(
    cal: CalendarProtocol,
    date: PlainDate,
    duration: Duration,
    overflow: Overflow,
) -> PlainDate:
    """Add years and months with day clamping (or rejection),
    then weeks and days. Time units are truncated to whole days."""
    if not isinstance(duration, Duration):
        raise TypeError(f"Expected a Duration, got {type(duration)!r}")
    y, m, d = add_iso_date(
        date._iso(),
        duration._years,
        duration._months,
        duration._weeks,
        duration._days + trunc_div(duration._time_ns(), NS_PER_DAY),
        check_overflow(overflow),
    )
    return PlainDate._from_iso_unchecked(y, m, d, cal)


def _iso_date_until(
    one: PlainDate, two: PlainDate, largest_unit: Unit
) -> Duration:
    largest = check_unit(largest_unit, "largest_unit", DATE_UNITS)
    years, months, weeks, days = difference_iso_date(
        one._iso(), two._iso(), largest
    )
    return Duration._from_values(
        (years, months, weeks, days, 0, 0, 0, 0, 0, 0)
    )


_MONTH_GROUP = frozenset(["month", "month_code"])
_YEAR_GROUP = frozenset(["year", "era", "era_year"])


@final
class IsoCalendar(_ImmutableBase):
    """The ISO 8601 calendar: the proleptic Gregorian calendar,
    without eras. This is the default calendar everywhere.

    >>> PlainDate(2024, 2, 29).calendar
    IsoCalendar()
    """

    __slots__ = ()

    id: ClassVar[str] = "iso8601"

    def year(self, date: PlainDate) -> int:
        return date._y

    def month(self, date: PlainDate) -> int:
        return date._m

    def month_code(self, date: PlainDate) -> str:
        return f"M{date._m:02d}"

    def day(self, date: PlainDate) -> int:
        return date._d

    def era(self, date: PlainDate) -> None:
        return None

    def era_year(self, date: PlainDate) -> None:
        return None

    def day_of_week(self, date: PlainDate) -> int:
        return iso_day_of_week(*date._iso())

    def day_of_year(self, date: PlainDate) -> int:
        return iso_day_of_year(*date._iso())

    def week_of_year(self, date: PlainDate) -> int:
        return iso_week_of_year(*date._iso())[0]

    def year_of_week(self, date: PlainDate) -> int:
        return iso_week_of_year(*date._iso())[1]

    def days_in_week(self, date: PlainDate) -> int:
        return 7

    def days_in_month(self, date: PlainDate) -> int:
        return days_in_month(date._y, date._m)

    def days_in_year(self, date: PlainDate) -> int:
        return days_in_year(date._y)

    def months_in_year(self, date: PlainDate) -> int:
        return 12

    def in_leap_year(self, date: PlainDate) -> bool:
        return is_leap(date._y)

    def date_from_fields(
        self, fields: Mapping[str, Any], overflow: Overflow = "constrain"
    ) -> PlainDate:
        """Create a date from ``year``, ``month`` (or ``month_code``)
        and ``day``. Out-of-range months and days are clamped or rejected
        according to ``overflow``."""
        overflow = check_overflow(overflow)
        year = _required_field(fields, "year")
        month = _month_from_fields(fields)
        day = _required_field(fields, "day")
        return PlainDate._from_iso_checked(
            *regulate_iso_date(year, month, day, overflow), self
        )

    def date_add(
        self,
        date: PlainDate,
        duration: Duration,
        overflow: Overflow = "constrain",
    ) -> PlainDate:
        return _iso_date_add(self, date, duration, overflow)

    def date_until(
        self, one: PlainDate, two: PlainDate, largest_unit: Unit = "day"
    ) -> Duration:
        return _iso_date_until(one, two, largest_unit)

    def fields(self, names: Iterable[str]) -> list[str]:
        return list(names)

    def merge_fields(
        self, fields: Mapping[str, Any], additional: Mapping[str, Any]
    ) -> dict[str, Any]:
        return _merge_field_groups(fields, additional, [_MONTH_GROUP])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IsoCalendar):
            return NotImplemented
        return True

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return "IsoCalendar()"

    def __str__(self) -> str:
        return self.id

    def __reduce__(self):
        return _calendar_from, (self.id,)


@final
class Era(_ImmutableBase):
    """An era of an :class:`EraCalendar`.

    Parameters
    ----------
    code
        The era's identifier, e.g. ``"reiwa"``
    start
        The ISO date on which the era begins. ``None`` for the
        earliest era, which extends indefinitely into the past.
    anchor
        The ISO year that counts as year 0 of the era.
    inverse
        Whether years count backwards, like years BCE.
    """

    __slots__ = ("code", "start", "anchor", "inverse")

    code: str
    start: Optional[YMD]
    anchor: int
    inverse: bool

    def __init__(
        self,
        code: str,
        start: Optional[YMD],
        anchor: int,
        inverse: bool = False,
    ) -> None:
        self.code = code
        self.start = start
        self.anchor = anchor
        self.inverse = inverse

    def era_year(self, iso_year: int) -> int:
        if self.inverse:
            return self.anchor - iso_year
        return iso_year - self.anchor

    def iso_year(self, era_year: int) -> int:
        if self.inverse:
            return self.anchor - era_year
        return era_year + self.anchor

    def __repr__(self) -> str:
        return f"Era({self.code!r}, start={self.start!r})"


@final
class EraCalendar(_ImmutableBase):
    """A solar calendar with the ISO months and days, but its own
    year numbering and eras. Gregorian, Buddhist, ROC (Minguo) and
    Japanese calendars are built in.

    Parameters
    ----------
    id
        The calendar's identifier, e.g. ``"japanese"``
    eras
        The eras, from latest to earliest start.
    year_offset
        The ISO year that counts as year 0 of the arithmetic year
        (the ``year`` field), which is independent of eras.

    Example
    -------
    >>> d = PlainDate(2019, 5, 1, calendar="japanese")
    >>> d.era, d.era_year
    ('reiwa', 1)
    """

    __slots__ = ("_id", "_eras", "_year_offset")

    def __init__(
        self, id: str, eras: Sequence[Era], year_offset: int = 0
    ) -> None:
        if not eras:
            raise ValueError("At least one era is required")
        if any(era.start is None for era in eras[:-1]):
            raise ValueError("Only the earliest era may have no start date")
        for later, earlier in zip(eras, eras[1:]):
            assert later.start is not None
            if earlier.start is not None and earlier.start >= later.start:
                raise ValueError(
                    "Eras must be ordered from latest to earliest"
                )
        self._id = id
        self._eras = tuple(eras)
        self._year_offset = year_offset

    @property
    def id(self) -> str:
        return self._id

    def _era_for(self, date: PlainDate) -> Era:
        ymd = date._iso()
        for era in self._eras:
            if era.start is None or ymd >= era.start:
                return era
        # dates before the earliest era still count in it
        return self._eras[-1]

    def _era_by_code(self, code: object) -> Era:
        for era in self._eras:
            if era.code == code:
                return era
        raise ValueError(f"Unknown era for calendar {self._id!r}: {code!r}")

    def year(self, date: PlainDate) -> int:
        return date._y - self._year_offset

    def month(self, date: PlainDate) -> int:
        return date._m

    def month_code(self, date: PlainDate) -> str:
        return f"M{date._m:02d}"

    def day(self, date: PlainDate) -> int:
        return date._d

    def era(self, date: PlainDate) -> str:
        return self._era_for(date).code

    def era_year(self, date: PlainDate) -> int:
        return self._era_for(date).era_year(date._y)

    def day_of_week(self, date: PlainDate) -> int:
        return iso_day_of_week(*date._iso())

    def day_of_year(self, date: PlainDate) -> int:
        return iso_day_of_year(*date._iso())

    def week_of_year(self, date: PlainDate) -> None:
        return None

    def days_in_week(self, date: PlainDate) -> int:
        return 7

    def days_in_month(self, date: PlainDate) -> int:
        return days_in_month(date._y, date._m)

    def days_in_year(self, date: PlainDate) -> int:
        return days_in_year(date._y)

    def months_in_year(self, date: PlainDate) -> int:
        return 12

    def in_leap_year(self, date: PlainDate) -> bool:
        return is_leap(date._y)

    def date_from_fields(
        self, fields: Mapping[str, Any], overflow: Overflow = "constrain"
    ) -> PlainDate:
        """Create a date from ``year`` or ``era`` with ``era_year``,
        and ``month`` (or ``month_code``) and ``day``.

        >>> cal = calendar_from("japanese")
        >>> cal.date_from_fields(
        ...     {"era": "heisei", "era_year": 1, "month": 1, "day": 8}
        ... )
        PlainDate(1989-01-08[u-ca=japanese])
        """
        overflow = check_overflow(overflow)
        era_code = fields.get("era")
        era_year = fields.get("era_year")
        year = fields.get("year")
        if era_code is not None or era_year is not None:
            if era_code is None or era_year is None:
                raise TypeError("era and era_year must be given together")
            iso_year = self._era_by_code(era_code).iso_year(
                _check_int(era_year, "era_year")
            )
            if (
                year is not None
                and _check_int(year, "year") + self._year_offset != iso_year
            ):
                raise ValueError("year doesn't match era and era_year")
        elif year is None:
            raise TypeError("Missing required field: year or era and era_year")
        else:
            iso_year = _check_int(year, "year") + self._year_offset
        month = _month_from_fields(fields)
        day = _required_field(fields, "day")
        return PlainDate._from_iso_checked(
            *regulate_iso_date(iso_year, month, day, overflow), self
        )

    def date_add(
        self,
        date: PlainDate,
        duration: Duration,
        overflow: Overflow = "constrain",
    ) -> PlainDate:
        return _iso_date_add(self, date, duration, overflow)

    def date_until(
        self, one: PlainDate, two: PlainDate, largest_unit: Unit = "day"
    ) -> Duration:
        return _iso_date_until(one, two, largest_unit)

    def fields(self, names: Iterable[str]) -> list[str]:
        result = list(names)
        if "year" in result:
            result.extend(("era", "era_year"))
        return result

    def merge_fields(
        self, fields: Mapping[str, Any], additional: Mapping[str, Any]
    ) -> dict[str, Any]:
        return _merge_field_groups(
            fields, additional, [_MONTH_GROUP, _YEAR_GROUP]
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EraCalendar):
            return NotImplemented
        return self._id == other._id

    def __hash__(self) -> int:
        return hash(self._id)

    def __repr__(self) -> str:
        return f"EraCalendar({self._id!r})"

    def __str__(self) -> str:
        return self._id

    def __reduce__(self):
        if _CALENDARS.get(self._id) is self:
            return _calendar_from, (self._id,)
        return EraCalendar, (self._id, self._eras, self._year_offset)


ISO = IsoCalendar()
_CALENDARS: dict[str, CalendarProtocol] = {
    cal.id: cal
    for cal in (
        ISO,
        EraCalendar(
            "gregory",
            [Era("ce", (1, 1, 1), 0), Era("bce", None, 1, inverse=True)],
        ),
        EraCalendar("buddhist", [Era("be", None, -543)], year_offset=-543),
        EraCalendar(
            "roc",
            [
                Era("roc", (1912, 1, 1), 1911),
                Era("broc", None, 1912, inverse=True),
            ],
            year_offset=1911,
        ),
        EraCalendar(
            "japanese",
            [
                Era("reiwa", (2019, 5, 1), 2018),
                Era("heisei", (1989, 1, 8), 1988),
                Era("showa", (1926, 12, 25), 1925),
                Era("taisho", (1912, 7, 30), 1911),
                Era("meiji", (1868, 9, 8), 1867),
                Era("ce", (1, 1, 1), 0),
                Era("bce", None, 1, inverse=True),
            ],
        ),
    )
}


def calendar_from(value: CalendarProtocol | str) -> CalendarProtocol:
    """Look up a built-in calendar by identifier,
    or check that an object implements the calendar interface.

    >>> calendar_from("gregory")
    EraCalendar('gregory')
    """
    if isinstance(value, str):
        try:
            return _CALENDARS[value.lower()]
        except KeyError:
            raise ValueError(f"Unknown calendar: {value!r}") from None
    elif type(value) in (IsoCalendar, EraCalendar):
        return value
    elif isinstance(value, CalendarProtocol):
        return value
    raise TypeError(
        f"Expected a calendar or calendar identifier, got {type(value)!r}"
    )


_calendar_from = calendar_from


def _same_calendar(a: CalendarProtocol, b: CalendarProtocol) -> bool:
    return a is b or a.id == b.id


def _check_same_calendar(a: CalendarProtocol, b: CalendarProtocol) -> None:
    if not _same_calendar(a, b):
        raise ValueError(
            "Can't compute differences between calendars "
            f"{a.id!r} and {b.id!r}"
        )


# Plain (wall clock) types


def _difference_options(
    largest_unit: object,
    smallest_unit: object,
    rounding_increment: object,
    rounding_mode: object,
    *,
    allowed: frozenset[str],
    default_largest: Unit,
) -> tuple[Unit, Unit, int, RoundingMode]:
    smallest = check_unit(smallest_unit, "smallest_unit", allowed)
    if largest_unit == "auto":
        largest = larger_unit(default_largest, smallest)
    else:
        largest = check_unit(largest_unit, "largest_unit", allowed)
    if larger_unit(largest, smallest) != largest:
        raise ValueError(
            f"largest_unit {largest!r} can't be smaller than "
            f"smallest_unit {smallest!r}"
        )
    mode = check_rounding_mode(rounding_mode)
    increment = check_increment(rounding_increment)
    check_increment_for_unit(smallest, increment)
    if increment > 1 and largest != smallest and smallest in DATE_UNITS:
        raise ValueError(
            "A rounding increment for a date unit is only allowed "
            "when largest_unit equals smallest_unit"
        )
    return largest, smallest, increment, mode


def _date_duration(years: int, months: int, weeks: int, days: int) -> Duration:
    return Duration._from_values(
        (years, months, weeks, days, 0, 0, 0, 0, 0, 0)
    )


@final
class PlainTime(_ImmutableBase):
    """A time of day without a date or time zone

    Example
    -------
    >>> t = PlainTime(12, 30)
    >>> t
    PlainTime(12:30:00)
    >>> t.add(Duration(hours=13))
    PlainTime(01:30:00)
    """

    __slots__ = ("_ns",)

    MIDNIGHT: ClassVar[PlainTime]
    NOON: ClassVar[PlainTime]

    def __init__(
        self,
        hour: int = 0,
        minute: int = 0,
        second: int = 0,
        *,
        millisecond: int = 0,
        microsecond: int = 0,
        nanosecond: int = 0,
    ) -> None:
        self._ns = _time_ns_from_fields(
            (hour, minute, second, millisecond, microsecond, nanosecond),
            "reject",
        )

    @classmethod
    def _from_ns_unchecked(cls, ns: int) -> PlainTime:
        self = _object_new(cls)
        self._ns = ns
        return self

    @classmethod
    def from_fields(
        cls, fields: Mapping[str, int], /, *, overflow: Overflow = "constrain"
    ) -> PlainTime:
        """Create from a mapping of time fields. Missing fields are zero,
        and out-of-range fields are clamped or rejected per ``overflow``.

        >>> PlainTime.from_fields({"hour": 25, "minute": 30})
        PlainTime(23:30:00)
        """
        _check_field_names(fields, _TIME_FIELD_NAMES)
        return cls._from_ns_unchecked(
            _time_ns_from_fields(
                [fields.get(name, 0) for name, _ in _TIME_FIELDS],
                check_overflow(overflow),
            )
        )

    def _fields(self) -> tuple[int, int, int, int, int, int]:
        secs, frac = divmod(self._ns, NS_PER_SEC)
        hrs, secs = divmod(secs, 3600)
        mins, secs = divmod(secs, 60)
        ms, frac = divmod(frac, NS_PER_MS)
        us, ns = divmod(frac, NS_PER_US)
        return hrs, mins, secs, ms, us, ns

    @property
    def hour(self) -> int:
        return self._ns // NS_PER_HOUR

    @property
    def minute(self) -> int:
        return self._ns % NS_PER_HOUR // NS_PER_MIN

    @property
    def second(self) -> int:
        return self._ns % NS_PER_MIN // NS_PER_SEC

    @property
    def millisecond(self) -> int:
        return self._ns % NS_PER_SEC // NS_PER_MS

    @property
    def microsecond(self) -> int:
        return self._ns % NS_PER_MS // NS_PER_US

    @property
    def nanosecond(self) -> int:
        return self._ns % NS_PER_US

    def replace(
        self, *, overflow: Overflow = "constrain", **fields: int
    ) -> PlainTime:
        """Create a new time with the given fields replaced

        >>> PlainTime(12, 30).replace(minute=45)
        PlainTime(12:45:00)
        """
        _check_field_names(fields, _TIME_FIELD_NAMES)
        values = dict(zip((name for name, _ in _TIME_FIELDS), self._fields()))
        values.update(fields)
        return PlainTime._from_ns_unchecked(
            _time_ns_from_fields(
                list(values.values()), check_overflow(overflow)
            )
        )

    def add(self, duration: Duration, /) -> PlainTime:
        """Add the time units of a duration, wrapping around midnight.
        Years, months, weeks and days have no effect."""
        if not isinstance(duration, Duration):
            raise TypeError(f"Expected a Duration, got {type(duration)!r}")
        return PlainTime._from_ns_unchecked(
            (self._ns + duration._time_ns()) % NS_PER_DAY
        )

    def subtract(self, duration: Duration, /) -> PlainTime:
        if not isinstance(duration, Duration):
            raise TypeError(f"Expected a Duration, got {type(duration)!r}")
        return self.add(duration.negated())

    def until(
        self,
        other: PlainTime,
        /,
        *,
        largest_unit: Unit | Literal["auto"] = "auto",
        smallest_unit: Unit = "nanosecond",
        rounding_increment: int = 1,
        rounding_mode: RoundingMode = "trunc",
    ) -> Duration:
        """The time from this time of day to another, within the same day.
        By default, the result is expressed in hours and smaller units."""
        if not isinstance(other, PlainTime):
            raise TypeError(f"Expected a PlainTime, got {type(other)!r}")
        largest, smallest, increment, mode = _difference_options(
            largest_unit,
            smallest_unit,
            rounding_increment,
            rounding_mode,
            allowed=TIME_UNITS,
            default_largest="hour",
        )
        return _difference_instant(
            self._ns, other._ns, largest, increment, smallest, mode
        )

    def since(
        self,
        other: PlainTime,
        /,
        *,
        largest_unit: Unit | Literal["auto"] = "auto",
        smallest_unit: Unit = "nanosecond",
        rounding_increment: int = 1,
        rounding_mode: RoundingMode = "trunc",
    ) -> Duration:
        if not isinstance(other, PlainTime):
            raise TypeError(f"Expected a PlainTime, got {type(other)!r}")
        largest, smallest, increment, mode = _difference_options(
            largest_unit,
            smallest_unit,
            rounding_increment,
            rounding_mode,
            allowed=TIME_UNITS,
            default_largest="hour",
        )
        return _difference_instant(
            self._ns,
            other._ns,
            largest,
            increment,
            smallest,
            negate_rounding_mode(mode),
        ).negated()

    def round(
        self,
        smallest_unit: Unit,
        /,
        *,
        rounding_increment: int = 1,
        rounding_mode: RoundingMode = "halfExpand",
    ) -> PlainTime:
        """Round to a multiple of the given unit, wrapping around midnight

        >>> PlainTime(23, 59, 31).round("minute")
        PlainTime(00:00:00)
        """
        unit = check_unit(smallest_unit, "smallest_unit", TIME_UNITS)
        increment = check_increment(rounding_increment)
        check_increment_for_unit(unit, increment)
        return PlainTime._from_ns_unchecked(
            round_to_increment(
                self._ns,
                UNIT_NANOS[unit] * increment,
                check_rounding_mode(rounding_mode),
            )
            % NS_PER_DAY
        )

    def on(self, date: PlainDate, /) -> PlainDateTime:
        """Combine with a date to create a datetime

        >>> PlainTime(12, 30).on(PlainDate(2021, 1, 2))
        PlainDateTime(2021-01-02T12:30:00)
        """
        if not isinstance(date, PlainDate):
            raise TypeError(f"Expected a PlainDate, got {type(date)!r}")
        return PlainDateTime._from_parts(date, self._ns)

    def get_iso_fields(self) -> dict[str, int]:
        return dict(zip((name for name, _ in _TIME_FIELDS), self._fields()))

    def equals(self, other: PlainTime, /) -> bool:
        if not isinstance(other, PlainTime):
            raise TypeError(f"Expected a PlainTime, got {type(other)!r}")
        return self._ns == other._ns

    @staticmethod
    def compare(a: PlainTime, b: PlainTime, /) -> int:
        if not (isinstance(a, PlainTime) and isinstance(b, PlainTime)):
            raise TypeError("Can only compare two PlainTimes")
        return (a._ns > b._ns) - (a._ns < b._ns)

    def format_common_iso(self) -> str:
        """Format as ``HH:MM:SS[.fff]``

        >>> PlainTime(12, 30, 0, nanosecond=500).format_common_iso()
        '12:30:00.0000005'
        """
        return _format_time(self._ns)

    to_string = format_common_iso
    to_json = format_common_iso
    __str__ = format_common_iso

    def to_locale_string(self, locale: str | None = None) -> str:
        """Locale-aware presentation isn't provided:
        this gives the ISO 8601 format for any locale."""
        return self.format_common_iso()

    def __repr__(self) -> str:
        return f"PlainTime({self})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PlainTime):
            return NotImplemented
        return self._ns == other._ns

    def __hash__(self) -> int:
        return hash(self._ns)

    def __lt__(self, other: PlainTime) -> bool:
        if not isinstance(other, PlainTime):
            return NotImplemented
        return self._ns < other._ns

    def __le__(self, other: PlainTime) -> bool:
        if not isinstance(other, PlainTime):
            return NotImplemented
        return self._ns <= other._ns

    def __gt__(self, other: PlainTime) -> bool:
        if not isinstance(other, PlainTime):
            return NotImplemented
        return self._ns > other._ns

    def __ge__(self, other: PlainTime) -> bool:
        if not isinstance(other, PlainTime):
            return NotImplemented
        return self._ns >= other._ns

    def __reduce__(self):
        return _unpkl_time, (self._ns,)


def _unpkl_time(ns: int) -> PlainTime:
    return PlainTime._from_ns_unchecked(ns)


PlainTime.MIDNIGHT = PlainTime()
PlainTime.NOON = PlainTime(12)


@final
class PlainDate(_ImmutableBase):
    """A calendar date without a time or time zone.

    The date is stored as ISO 8601 year, month and day.
    Its calendar determines how these are presented and how arithmetic
    works: :attr:`year` and :attr:`month` are calendar fields, while
    :attr:`iso_year` and :attr:`iso_month` are always ISO.

    Example
    -------
    >>> d = PlainDate(2024, 1, 31)
    >>> d.add(Duration(months=1))
    PlainDate(2024-02-29)
    >>> PlainDate(2024, 1, 31, calendar="buddhist").year
    2567
    """

    __slots__ = ("_y", "_m", "_d", "_cal")

    MIN: ClassVar[PlainDate]
    MAX: ClassVar[PlainDate]

    def __init__(
        self,
        year: int,
        month: int,
        day: int,
        *,
        calendar: CalendarProtocol | str = "iso8601",
    ) -> None:
        y, m, d = regulate_iso_date(
            _check_int(year, "year"),
            _check_int(month, "month"),
            _check_int(day, "day"),
            "reject",
        )
        check_epoch_days(epoch_days_from_iso(y, m, d))
        self._y = y
        self._m = m
        self._d = d
        self._cal = _calendar_from(calendar)

    @classmethod
    def _from_iso_unchecked(
        cls, y: int, m: int, d: int, cal: CalendarProtocol
    ) -> PlainDate:
        self = _object_new(cls)
        self._y = y
        self._m = m
        self._d = d
        self._cal = cal
        return self

    @classmethod
    def _from_iso_checked(
        cls, y: int, m: int, d: int, cal: CalendarProtocol
    ) -> PlainDate:
        check_epoch_days(epoch_days_from_iso(y, m, d))
        return cls._from_iso_unchecked(y, m, d, cal)

    @classmethod
    def _from_epoch_days(cls, days: int, cal: CalendarProtocol) -> PlainDate:
        return cls._from_iso_unchecked(*iso_from_epoch_days(days), cal)

    @classmethod
    def from_fields(
        cls,
        fields: Mapping[str, Any],
        /,
        *,
        calendar: CalendarProtocol | str = "iso8601",
        overflow: Overflow = "constrain",
    ) -> PlainDate:
        """Create a date from calendar fields, interpreted by the calendar

        >>> PlainDate.from_fields({"year": 2021, "month": 2, "day": 31})
        PlainDate(2021-02-28)
        >>> PlainDate.from_fields(
        ...     {"era": "reiwa", "era_year": 2, "month_code": "M03", "day": 1},
        ...     calendar="japanese",
        ... )
        PlainDate(2020-03-01[u-ca=japanese])
        """
        _check_field_names(fields, _DATE_FIELD_NAMES)
        return _calendar_from(calendar).date_from_fields(
            fields, check_overflow(overflow)
        )

    def _iso(self) -> YMD:
        return self._y, self._m, self._d

    def _epoch_days(self) -> int:
        return epoch_days_from_iso(self._y, self._m, self._d)

    @property
    def iso_year(self) -> int:
        return self._y

    @property
    def iso_month(self) -> int:
        return self._m

    @property
    def iso_day(self) -> int:
        return self._d

    @property
    def calendar(self) -> CalendarProtocol:
        return self._cal

    @property
    def calendar_id(self) -> str:
        return self._cal.id

    @property
    def era(self) -> Optional[str]:
        return self._cal.era(self)

    @property
    def era_year(self) -> Optional[int]:
        return self._cal.era_year(self)

    @property
    def year(self) -> int:
        return self._cal.year(self)

    @property
    def month(self) -> int:
        return self._cal.month(self)

    @property
    def month_code(self) -> str:
        return self._cal.month_code(self)

    @property
    def day(self) -> int:
        return self._cal.day(self)

    @property
    def day_of_week(self) -> int:
        """The day of the week, Monday being 1 and Sunday 7"""
        return self._cal.day_of_week(self)

    @property
    def day_of_year(self) -> int:
        return self._cal.day_of_year(self)

    @property
    def week_of_year(self) -> Optional[int]:
        """The ISO week number. ``None`` for calendars without week numbering."""
        return self._cal.week_of_year(self)

    @property
    def days_in_week(self) -> int:
        return self._cal.days_in_week(self)

    @property
    def days_in_month(self) -> int:
        return self._cal.days_in_month(self)

    @property
    def days_in_year(self) -> int:
        return self._cal.days_in_year(self)

    @property
    def months_in_year(self) -> int:
        return self._cal.months_in_year(self)

    @property
    def in_leap_year(self) -> bool:
        return self._cal.in_leap_year(self)

    def get_iso_fields(self) -> dict[str, Any]:
        return {
            "calendar": self._cal,
            "iso_year": self._y,
            "iso_month": self._m,
            "iso_day": self._d,
        }

    def _calendar_fields(self) -> dict[str, Any]:
        names = self._cal.fields(["day", "month", "month_code", "year"])
        return {name: getattr(self, name) for name in names}

    def replace(
        self, *, overflow: Overflow = "constrain", **fields: Any
    ) -> PlainDate:
        """Create a new date with the given calendar fields replaced

        >>> PlainDate(2021, 1, 31).replace(month=2)
        PlainDate(2021-02-28)
        >>> PlainDate(2021, 1, 31).replace(month=2, overflow="reject")
        Traceback (most recent call last):
          ...
        ValueError: day out of range: 31
        """
        _check_field_names(fields, _DATE_FIELD_NAMES)
        overflow = check_overflow(overflow)
        if not fields:
            return self
        merged = self._cal.merge_fields(self._calendar_fields(), fields)
        return self._cal.date_from_fields(merged, overflow)

    def with_calendar(self, calendar: CalendarProtocol | str, /) -> PlainDate:
        """The same ISO date in another calendar"""
        return PlainDate._from_iso_unchecked(
            self._y, self._m, self._d, _calendar_from(calendar)
        )

    def add(
        self, duration: Duration, /, *, overflow: Overflow = "constrain"
    ) -> PlainDate:
        """Add a duration. Years and months are added first, clamping the
        day to the end of the month (or failing, with ``overflow="reject"``),
        then weeks and days. Time units count only in whole days.

        >>> PlainDate(2020, 2, 29).add(Duration(years=1))
        PlainDate(2021-02-28)
        """
        if not isinstance(duration, Duration):
            raise TypeError(f"Expected a Duration, got {type(duration)!r}")
        return self._cal.date_add(
            self,
            _date_duration(
                duration._years,
                duration._months,
                duration._weeks,
                duration._days + trunc_div(duration._time_ns(), NS_PER_DAY),
            ),
            check_overflow(overflow),
        )

    def subtract(
        self, duration: Duration, /, *, overflow: Overflow = "constrain"
    ) -> PlainDate:
        if not isinstance(duration, Duration):
            raise TypeError(f"Expected a Duration, got {type(duration)!r}")
        return self.add(duration.negated(), overflow=overflow)

    def until(
        self,
        other: PlainDate,
        /,
        *,
        largest_unit: Unit | Literal["auto"] = "auto",
        smallest_unit: Unit = "day",
        rounding_increment: int = 1,
        rounding_mode: RoundingMode = "trunc",
    ) -> Duration:
        """The calendar duration from this date to another,
        in days by default. Both dates must have the same calendar.

        >>> d = PlainDate(2020, 1, 31)
        >>> d.until(PlainDate(2020, 3, 1), largest_unit="month")
        Duration(P1M1D)
        """
        if not isinstance(other, PlainDate):
            raise TypeError(f"Expected a PlainDate, got {type(other)!r}")
        _check_same_calendar(self._cal, other._cal)
        largest, smallest, increment, mode = _difference_options(
            largest_unit,
            smallest_unit,
            rounding_increment,
            rounding_mode,
            allowed=DATE_UNITS,
            default_largest="day",
        )
        return _difference_plain_rounded(
            self.at(), other.at(), largest, increment, smallest, mode
        )

    def since(
        self,
        other: PlainDate,
        /,
        *,
        largest_unit: Unit | Literal["auto"] = "auto",
        smallest_unit: Unit = "day",
        rounding_increment: int = 1,
        rounding_mode: RoundingMode = "trunc",
    ) -> Duration:
        """The calendar duration from another date to this one.
        See :meth:`until`."""
        if not isinstance(other, PlainDate):
            raise TypeError(f"Expected a PlainDate, got {type(other)!r}")
        _check_same_calendar(self._cal, other._cal)
        largest, smallest, increment, mode = _difference_options(
            largest_unit,
            smallest_unit,
            rounding_increment,
            rounding_mode,
            allowed=DATE_UNITS,
            default_largest="day",
        )
        return _difference_plain_rounded(
            self.at(),
            other.at(),
            largest,
            increment,
            smallest,
            negate_rounding_mode(mode),
        ).negated()

    def at(self, time: PlainTime | None = None, /) -> PlainDateTime:
        """Combine with a time (midnight by default) to create a datetime"""
        if time is None:
            return PlainDateTime._from_parts(self, 0)
        elif not isinstance(time, PlainTime):
            raise TypeError(f"Expected a PlainTime, got {type(time)!r}")
        return PlainDateTime._from_parts(self, time._ns)

    to_plain_date_time = at

    def to_plain_year_month(self) -> PlainYearMonth:
        """The year and month of this date

        >>> PlainDate(2024, 3, 15).to_plain_year_month()
        PlainYearMonth(2024-03)
        """
        return _year_month_of(self)

    def to_plain_month_day(self) -> PlainMonthDay:
        return _month_day_of(self)

    def to_zoned_date_time(
        self,
        time_zone: TimeZoneProtocol | str,
        /,
        *,
        time: PlainTime | None = None,
        disambiguation: Disambiguate = "compatible",
    ) -> ZonedDateTime:
        """Place this date in a time zone. Without a time,
        the result is the first instant of the day in that zone.

        >>> PlainDate(2024, 3, 10).to_zoned_date_time("America/Havana")
        ZonedDateTime(2024-03-10T01:00:00-04:00[America/Havana])
        """
        tz = _time_zone_from(time_zone)
        if time is None:
            return ZonedDateTime._from_parts_unchecked(
                _start_of_day(tz, self._epoch_days()), tz, self._cal
            )
        return self.at(time).to_zoned_date_time(
            tz, disambiguation=disambiguation
        )

    def equals(self, other: PlainDate, /) -> bool:
        """Whether the dates and calendars are the same"""
        if not isinstance(other, PlainDate):
            raise TypeError(f"Expected a PlainDate, got {type(other)!r}")
        return self == other

    @staticmethod
    def compare(a: PlainDate, b: PlainDate, /) -> int:
        """Compare the ISO dates, returning -1, 0 or 1. Calendars are ignored."""
        if not (isinstance(a, PlainDate) and isinstance(b, PlainDate)):
            raise TypeError("Can only compare two PlainDates")
        return compare_iso_date(a._iso(), b._iso())

    def format_common_iso(self) -> str:
        """Format as ``YYYY-MM-DD``, with a calendar annotation
        if the calendar isn't ISO 8601

        >>> PlainDate(2021, 1, 2).format_common_iso()
        '2021-01-02'
        >>> PlainDate(2021, 1, 2, calendar="roc").format_common_iso()
        '2021-01-02[u-ca=roc]'
        """
        return _format_date(self._y, self._m, self._d) + _calendar_annotation(
            self._cal
        )

    to_string = format_common_iso
    to_json = format_common_iso
    __str__ = format_common_iso

    def to_locale_string(self, locale: str | None = None) -> str:
        """Locale-aware presentation isn't provided:
        this gives the ISO 8601 format for any locale."""
        return self.format_common_iso()

    def __repr__(self) -> str:
        return f"PlainDate({self})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PlainDate):
            return NotImplemented
        return self._iso() == other._iso() and _same_calendar(
            self._cal, other._cal
        )

    def __hash__(self) -> int:
        return hash((self._y, self._m, self._d, self._cal.id))

    def __lt__(self, other: PlainDate) -> bool:
        if not isinstance(other, PlainDate):
            return NotImplemented
        return self._iso() < other._iso()

    def __le__(self, other: PlainDate) -> bool:
        if not isinstance(other, PlainDate):
            return NotImplemented
        return self._iso() <= other._iso()

    def __gt__(self, other: PlainDate) -> bool:
        if not isinstance(other, PlainDate):
            return NotImplemented
        return self._iso() > other._iso()

    def __ge__(self, other: PlainDate) -> bool:
        if not isinstance(other, PlainDate):
            return NotImplemented
        return self._iso() >= other._iso()

    def __reduce__(self):
        return _unpkl_date, (self._y, self._m, self._d, self._cal)


def _unpkl_date(y: int, m: int, d: int, cal: CalendarProtocol) -> PlainDate:
    return PlainDate._from_iso_unchecked(y, m, d, cal)


PlainDate.MIN = PlainDate._from_epoch_days(EPOCH_DAYS_MIN, ISO)
PlainDate.MAX = PlainDate._from_epoch_days(EPOCH_DAYS_MAX, ISO)


# A leap year, so that every month-day exists in it
_REFERENCE_ISO_YEAR = 1972
_YEAR_MONTH_FIELD_NAMES = frozenset(
    ["year", "month", "month_code", "era", "era_year"]
)
_YEAR_MONTH_UNITS = frozenset(["year", "month"])


def _year_month_of(date: PlainDate) -> PlainYearMonth:
    cal = date._cal
    first = cal.date_from_fields(
        {"year": cal.year(date), "month_code": cal.month_code(date), "day": 1},
        "reject",
    )
    return PlainYearMonth._from_date_unchecked(first)


def _month_day_of(date: PlainDate) -> PlainMonthDay:
    cal = date._cal
    reference = cal.date_from_fields(
        {
            "year": cal.year(
                PlainDate._from_iso_unchecked(_REFERENCE_ISO_YEAR, 1, 1, cal)
            ),
            "month_code": cal.month_code(date),
            "day": cal.day(date),
        },
        "constrain",
    )
    return PlainMonthDay._from_date_unchecked(reference)


@final
class PlainYearMonth(_ImmutableBase):
    """A month of a particular year, like "the June 2019 meeting".

    It's stored as the first day of the calendar month, the reference
    day. Like :class:`PlainDate`, its calendar interprets the fields.

    Example
    -------
    >>> ym = PlainYearMonth(2024, 1)
    >>> ym.add(Duration(months=13))
    PlainYearMonth(2025-02)
    >>> ym.to_plain_date(31)
    PlainDate(2024-01-31)
    """

    __slots__ = ("_date",)

    def __init__(
        self,
        year: int,
        month: int,
        *,
        calendar: CalendarProtocol | str = "iso8601",
        reference_day: int = 1,
    ) -> None:
        self._date = PlainDate(year, month, reference_day, calendar=calendar)

    @classmethod
    def _from_date_unchecked(cls, date: PlainDate) -> PlainYearMonth:
        self = _object_new(cls)
        self._date = date
        return self

    @classmethod
    def from_fields(
        cls,
        fields: Mapping[str, Any],
        /,
        *,
        calendar: CalendarProtocol | str = "iso8601",
        overflow: Overflow = "constrain",
    ) -> PlainYearMonth:
        """Create from ``year`` (or ``era`` and ``era_year``) and ``month``
        (or ``month_code``)

        >>> PlainYearMonth.from_fields({"year": 2021, "month": 13})
        PlainYearMonth(2021-12)
        """
        _check_field_names(fields, _YEAR_MONTH_FIELD_NAMES)
        date = _calendar_from(calendar).date_from_fields(
            {**fields, "day": 1}, check_overflow(overflow)
        )
        return cls._from_date_unchecked(date)

    @property
    def calendar(self) -> CalendarProtocol:
        return self._date._cal

    @property
    def calendar_id(self) -> str:
        return self._date._cal.id

    @property
    def iso_year(self) -> int:
        return self._date._y

    @property
    def iso_month(self) -> int:
        return self._date._m

    @property
    def era(self) -> Optional[str]:
        return self._date.era

    @property
    def era_year(self) -> Optional[int]:
        return self._date.era_year

    @property
    def year(self) -> int:
        return self._date.year

    @property
    def month(self) -> int:
        return self._date.month

    @property
    def month_code(self) -> str:
        return self._date.month_code

    @property
    def days_in_month(self) -> int:
        return self._date.days_in_month

    @property
    def days_in_year(self) -> int:
        return self._date.days_in_year

    @property
    def months_in_year(self) -> int:
        return self._date.months_in_year

    @property
    def in_leap_year(self) -> bool:
        return self._date.in_leap_year

    def get_iso_fields(self) -> dict[str, Any]:
        return self._date.get_iso_fields()

    def _calendar_fields(self) -> dict[str, Any]:
        names = self._date._cal.fields(["month", "month_code", "year"])
        return {name: getattr(self._date, name) for name in names}

    def replace(
        self, *, overflow: Overflow = "constrain", **fields: Any
    ) -> PlainYearMonth:
        """Create a new year-month with the given calendar fields replaced

        >>> PlainYearMonth(2021, 1).replace(year=2000)
        PlainYearMonth(2000-01)
        """
        _check_field_names(fields, _YEAR_MONTH_FIELD_NAMES)
        overflow = check_overflow(overflow)
        if not fields:
            return self
        cal = self._date._cal
        merged = cal.merge_fields(self._calendar_fields(), fields)
        merged["day"] = 1
        return PlainYearMonth._from_date_unchecked(
            cal.date_from_fields(merged, overflow)
        )

    def add(
        self, duration: Duration, /, *, overflow: Overflow = "constrain"
    ) -> PlainYearMonth:
        """Add a duration. Weeks, days and time units count from the
        start of the month when adding, and from its end when subtracting.

        >>> PlainYearMonth(2019, 6).add(Duration(days=35))
        PlainYearMonth(2019-07)
        >>> PlainYearMonth(2019, 6).add(Duration(days=-1))
        PlainYearMonth(2019-06)
        """
        if not isinstance(duration, Duration):
            raise TypeError(f"Expected a Duration, got {type(duration)!r}")
        overflow = check_overflow(overflow)
        cal = self._date._cal
        days = duration._days + trunc_div(duration._time_ns(), NS_PER_DAY)
        date = cal.date_add(
            self._date,
            _date_duration(duration._years, duration._months, 0, 0),
            overflow,
        )
        if duration._weeks or days:
            if duration.sign < 0:
                date = cal.date_add(
                    date,
                    _date_duration(0, 0, 0, cal.days_in_month(date) - 1),
                    overflow,
                )
            date = cal.date_add(
                date, _date_duration(0, 0, duration._weeks, days), overflow
            )
        return _year_month_of(date)

    def subtract(
        self, duration: Duration, /, *, overflow: Overflow = "constrain"
    ) -> PlainYearMonth:
        if not isinstance(duration, Duration):
            raise TypeError(f"Expected a Duration, got {type(duration)!r}")
        return self.add(duration.negated(), overflow=overflow)

    def until(
        self,
        other: PlainYearMonth,
        /,
        *,
        largest_unit: Unit | Literal["auto"] = "auto",
        smallest_unit: Unit = "month",
        rounding_increment: int = 1,
        rounding_mode: RoundingMode = "trunc",
    ) -> Duration:
        """The duration in years and months from this year-month to another

        >>> PlainYearMonth(2019, 6).until(PlainYearMonth(2021, 2))
        Duration(P1Y8M)
        """
        if not isinstance(other, PlainYearMonth):
            raise TypeError(f"Expected a PlainYearMonth, got {type(other)!r}")
        _check_same_calendar(self._date._cal, other._date._cal)
        largest, smallest, increment, mode = _difference_options(
            largest_unit,
            smallest_unit,
            rounding_increment,
            rounding_mode,
            allowed=_YEAR_MONTH_UNITS,
            default_largest="year",
        )
        return _difference_plain_rounded(
            self._date.at(),
            other._date.at(),
            largest,
            increment,
            smallest,
            mode,
        )

    def since(
        self,
        other: PlainYearMonth,
        /,
        *,
        largest_unit: Unit | Literal["auto"] = "auto",
        smallest_unit: Unit = "month",
        rounding_increment: int = 1,
        rounding_mode: RoundingMode = "trunc",
    ) -> Duration:
        if not isinstance(other, PlainYearMonth):
            raise TypeError(f"Expected a PlainYearMonth, got {type(other)!r}")
        _check_same_calendar(self._date._cal, other._date._cal)
        largest, smallest, increment, mode = _difference_options(
            largest_unit,
            smallest_unit,
            rounding_increment,
            rounding_mode,
            allowed=_YEAR_MONTH_UNITS,
            default_largest="year",
        )
        return _difference_plain_rounded(
            self._date.at(),
            other._date.at(),
            largest,
            increment,
            smallest,
            negate_rounding_mode(mode),
        ).negated()

    def to_plain_date(
        self, day: int, /, *, overflow: Overflow = "constrain"
    ) -> PlainDate:
        """The date on the given day of this month"""
        fields = self._calendar_fields()
        fields["day"] = day
        return self._date._cal.date_from_fields(
            fields, check_overflow(overflow)
        )

    def equals(self, other: PlainYearMonth, /) -> bool:
        if not isinstance(other, PlainYearMonth):
            raise TypeError(f"Expected a PlainYearMonth, got {type(other)!r}")
        return self == other

    @staticmethod
    def compare(a: PlainYearMonth, b: PlainYearMonth, /) -> int:
        """Compare the ISO reference dates. Calendars are ignored."""
        if not (
            isinstance(a, PlainYearMonth) and isinstance(b, PlainYearMonth)
        ):
            raise TypeError("Can only compare two PlainYearMonths")
        return compare_iso_date(a._date._iso(), b._date._iso())

    def format_common_iso(self) -> str:
        """Format as ``YYYY-MM``. Other calendars include the reference
        day and an annotation, e.g. ``2021-01-01[u-ca=roc]``."""
        date = self._date
        if date._cal.id == "iso8601":
            return f"{_format_year(date._y)}-{date._m:02d}"
        return date.format_common_iso()

    to_string = format_common_iso
    to_json = format_common_iso
    __str__ = format_common_iso

    def to_locale_string(self, locale: str | None = None) -> str:
        return self.format_common_iso()

    def __repr__(self) -> str:
        return f"PlainYearMonth({self})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PlainYearMonth):
            return NotImplemented
        return self._date == other._date

    def __hash__(self) -> int:
        return hash((PlainYearMonth, self._date))

    def __lt__(self, other: PlainYearMonth) -> bool:
        if not isinstance(other, PlainYearMonth):
            return NotImplemented
        return self._date._iso() < other._date._iso()

    def __le__(self, other: PlainYearMonth) -> bool:
        if not isinstance(other, PlainYearMonth):
            return NotImplemented
        return self._date._iso() <= other._date._iso()

    def __gt__(self, other: PlainYearMonth) -> bool:
        if not isinstance(other, PlainYearMonth):
            return NotImplemented
        return self._date._iso() > other._date._iso()

    def __ge__(self, other: PlainYearMonth) -> bool:
        if not isinstance(other, PlainYearMonth):
            return NotImplemented
        return self._date._iso() >= other._date._iso()

    def __reduce__(self):
        d = self._date
        return _unpkl_year_month, (d._y, d._m, d._d, d._cal)


def _unpkl_year_month(
    y: int, m: int, d: int, cal: CalendarProtocol
) -> PlainYearMonth:
    return PlainYearMonth._from_date_unchecked(
        PlainDate._from_iso_unchecked(y, m, d, cal)
    )


@final
class PlainMonthDay(_ImmutableBase):
    """A day of the year without a year, like a birthday.

    It's stored as a date in a leap reference year (1972 in ISO terms),
    so that February 29th exists.

    Example
    -------
    >>> md = PlainMonthDay(2, 29)
    >>> md.to_plain_date(2023)
    PlainDate(2023-02-28)
    >>> md.to_plain_date(2024)
    PlainDate(2024-02-29)
    """

    __slots__ = ("_date",)

    def __init__(
        self,
        month: int,
        day: int,
        *,
        calendar: CalendarProtocol | str = "iso8601",
        reference_year: int = _REFERENCE_ISO_YEAR,
    ) -> None:
        self._date = PlainDate(reference_year, month, day, calendar=calendar)

    @classmethod
    def _from_date_unchecked(cls, date: PlainDate) -> PlainMonthDay:
        self = _object_new(cls)
        self._date = date
        return self

    @classmethod
    def from_fields(
        cls,
        fields: Mapping[str, Any],
        /,
        *,
        calendar: CalendarProtocol | str = "iso8601",
        overflow: Overflow = "constrain",
    ) -> PlainMonthDay:
        """Create from ``month`` (or ``month_code``) and ``day``.
        A year is optional, and only used to check the day.

        >>> PlainMonthDay.from_fields({"month": 2, "day": 30})
        PlainMonthDay(02-29)
        >>> PlainMonthDay.from_fields({"year": 2021, "month": 2, "day": 29})
        PlainMonthDay(02-28)
        """
        _check_field_names(fields, _DATE_FIELD_NAMES)
        cal = _calendar_from(calendar)
        overflow = check_overflow(overflow)
        if fields.get("year") is None and fields.get("era_year") is None:
            fields = {
                **fields,
                "year": cal.year(
                    PlainDate._from_iso_unchecked(
                        _REFERENCE_ISO_YEAR, 1, 1, cal
                    )
                ),
            }
        return _month_day_of(cal.date_from_fields(fields, overflow))

    @property
    def calendar(self) -> CalendarProtocol:
        return self._date._cal

    @property
    def calendar_id(self) -> str:
        return self._date._cal.id

    @property
    def iso_month(self) -> int:
        return self._date._m

    @property
    def iso_day(self) -> int:
        return self._date._d

    @property
    def month_code(self) -> str:
        return self._date.month_code

    @property
    def day(self) -> int:
        return self._date.day

    def get_iso_fields(self) -> dict[str, Any]:
        return self._date.get_iso_fields()

    def replace(
        self, *, overflow: Overflow = "constrain", **fields: Any
    ) -> PlainMonthDay:
        """Create a new month-day with the given calendar fields replaced

        >>> PlainMonthDay(3, 31).replace(month=4)
        PlainMonthDay(04-30)
        """
        _check_field_names(fields, _DATE_FIELD_NAMES)
        overflow = check_overflow(overflow)
        if not fields:
            return self
        cal = self._date._cal
        merged = cal.merge_fields(
            {"month_code": self.month_code, "day": self.day}, fields
        )
        return PlainMonthDay.from_fields(
            merged, calendar=cal, overflow=overflow
        )

    def to_plain_date(
        self, year: int, /, *, overflow: Overflow = "constrain"
    ) -> PlainDate:
        """The date in the given (calendar) year"""
        return self._date._cal.date_from_fields(
            {"year": year, "month_code": self.month_code, "day": self.day},
            check_overflow(overflow),
        )

    def equals(self, other: PlainMonthDay, /) -> bool:
        if not isinstance(other, PlainMonthDay):
            raise TypeError(f"Expected a PlainMonthDay, got {type(other)!r}")
        return self == other

    def format_common_iso(self) -> str:
        """Format as ``MM-DD``. Other calendars include the reference
        year and an annotation, e.g. ``1972-02-29[u-ca=japanese]``."""
        date = self._date
        if date._cal.id == "iso8601":
            return f"{date._m:02d}-{date._d:02d}"
        return date.format_common_iso()

    to_string = format_common_iso
    to_json = format_common_iso
    __str__ = format_common_iso

    def to_locale_string(self, locale: str | None = None) -> str:
        return self.format_common_iso()

    def __repr__(self) -> str:
        return f"PlainMonthDay({self})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PlainMonthDay):
            return NotImplemented
        return self._date == other._date

    def __hash__(self) -> int:
        return hash((PlainMonthDay, self._date))

    def __reduce__(self):
        d = self._date
        return _unpkl_month_day, (d._y, d._m, d._d, d._cal)


def _unpkl_month_day(
    y: int, m: int, d: int, cal: CalendarProtocol
) -> PlainMonthDay:
    return PlainMonthDay._from_date_unchecked(
        PlainDate._from_iso_unchecked(y, m, d, cal)
    )


@final
class PlainDateTime(_ImmutableBase):
    """A date and time of day without a time zone.

    It represents a wall-clock reading, not an exact moment.
    Place it in a time zone with :meth:`to_zoned_date_time`
    to get an exact moment.

    Example
    -------
    >>> dt = PlainDateTime(2024, 3, 10, 2, 30)
    >>> dt.add(Duration(days=1, hours=12))
    PlainDateTime(2024-03-11T14:30:00)
    """

    __slots__ = ("_date", "_tod")

    def __init__(
        self,
        year: int,
        month: int,
        day: int,
        hour: int = 0,
        minute: int = 0,
        second: int = 0,
        *,
        millisecond: int = 0,
        microsecond: int = 0,
        nanosecond: int = 0,
        calendar: CalendarProtocol | str = "iso8601",
    ) -> None:
        date = PlainDate(year, month, day, calendar=calendar)
        tod = _time_ns_from_fields(
            (hour, minute, second, millisecond, microsecond, nanosecond),
            "reject",
        )
        _check_local_ns(date._epoch_days() * NS_PER_DAY + tod)
        self._date = date
        self._tod = tod

    @classmethod
    def _from_parts(cls, date: PlainDate, tod: int) -> PlainDateTime:
        _check_local_ns(date._epoch_days() * NS_PER_DAY + tod)
        self = _object_new(cls)
        self._date = date
        self._tod = tod
        return self

    @classmethod
    def _from_local_ns(
        cls, local: int, cal: CalendarProtocol
    ) -> PlainDateTime:
        _check_local_ns(local)
        days, tod = divmod(local, NS_PER_DAY)
        self = _object_new(cls)
        self._date = PlainDate._from_epoch_days(days, cal)
        self._tod = tod
        return self

    @classmethod
    def from_fields(
        cls,
        fields: Mapping[str, Any],
        /,
        *,
        calendar: CalendarProtocol | str = "iso8601",
        overflow: Overflow = "constrain",
    ) -> PlainDateTime:
        """Create from calendar date fields and time fields.
        Missing time fields are zero.

        >>> PlainDateTime.from_fields(
        ...     {"year": 2021, "month": 1, "day": 2, "hour": 3}
        ... )
        PlainDateTime(2021-01-02T03:00:00)
        """
        _check_field_names(fields, _DATE_FIELD_NAMES | _TIME_FIELD_NAMES)
        overflow = check_overflow(overflow)
        date = _calendar_from(calendar).date_from_fields(
            {k: v for k, v in fields.items() if k in _DATE_FIELD_NAMES},
            overflow,
        )
        return cls._from_parts(
            date,
            _time_ns_from_fields(
                [fields.get(name, 0) for name, _ in _TIME_FIELDS], overflow
            ),
        )

    def _local_ns(self) -> int:
        return self._date._epoch_days() * NS_PER_DAY + self._tod

    @property
    def calendar(self) -> CalendarProtocol:
        return self._date._cal

    @property
    def calendar_id(self) -> str:
        return self._date._cal.id

    @property
    def iso_year(self) -> int:
        return self._date._y

    @property
    def iso_month(self) -> int:
        return self._date._m

    @property
    def iso_day(self) -> int:
        return self._date._d

    @property
    def era(self) -> Optional[str]:
        return self._date.era

    @property
    def era_year(self) -> Optional[int]:
        return self._date.era_year

    @property
    def year(self) -> int:
        return self._date.year

    @property
    def month(self) -> int:
        return self._date.month

    @property
    def month_code(self) -> str:
        return self._date.month_code

    @property
    def day(self) -> int:
        return self._date.day

    @property
    def hour(self) -> int:
        return self._tod // NS_PER_HOUR

    @property
    def minute(self) -> int:
        return self._tod % NS_PER_HOUR // NS_PER_MIN

    @property
    def second(self) -> int:
        return self._tod % NS_PER_MIN // NS_PER_SEC

    @property
    def millisecond(self) -> int:
        return self._tod % NS_PER_SEC // NS_PER_MS

    @property
    def microsecond(self) -> int:
        return self._tod % NS_PER_MS // NS_PER_US

    @property
    def nanosecond(self) -> int:
        return self._tod % NS_PER_US

    @property
    def day_of_week(self) -> int:
        return self._date.day_of_week

    @property
    def day_of_year(self) -> int:
        return self._date.day_of_year

    @property
    def week_of_year(self) -> Optional[int]:
        return self._date.week_of_year

    @property
    def days_in_week(self) -> int:
        return self._date.days_in_week

    @property
    def days_in_month(self) -> int:
        return self._date.days_in_month

    @property
    def days_in_year(self) -> int:
        return self._date.days_in_year

    @property
    def months_in_year(self) -> int:
        return self._date.months_in_year

    @property
    def in_leap_year(self) -> bool:
        return self._date.in_leap_year

    def get_iso_fields(self) -> dict[str, Any]:
        return {
            **self._date.get_iso_fields(),
            **{
                f"iso_{name}": value
                for name, value in PlainTime._from_ns_unchecked(self._tod)
                .get_iso_fields()
                .items()
            },
        }

    def to_plain_date(self) -> PlainDate:
        return self._date

    def to_plain_time(self) -> PlainTime:
        return PlainTime._from_ns_unchecked(self._tod)

    def to_plain_year_month(self) -> PlainYearMonth:
        return _year_month_of(self._date)

    def to_plain_month_day(self) -> PlainMonthDay:
        return _month_day_of(self._date)

    def replace(
        self, *, overflow: Overflow = "constrain", **fields: Any
    ) -> PlainDateTime:
        """Create a new datetime with the given fields replaced

        >>> PlainDateTime(2021, 1, 31, 12).replace(month=2, hour=15)
        PlainDateTime(2021-02-28T15:00:00)
        """
        _check_field_names(fields, _DATE_FIELD_NAMES | _TIME_FIELD_NAMES)
        overflow = check_overflow(overflow)
        date_fields = {
            k: v for k, v in fields.items() if k in _DATE_FIELD_NAMES
        }
        time_fields = {
            k: v for k, v in fields.items() if k in _TIME_FIELD_NAMES
        }
        return PlainDateTime._from_parts(
            self._date.replace(overflow=overflow, **date_fields),
            (
                self.to_plain_time()
                .replace(overflow=overflow, **time_fields)
                ._ns
                if time_fields
                else self._tod
            ),
        )

    def with_plain_time(
        self, time: PlainTime | None = None, /
    ) -> PlainDateTime:
        """Replace the time of day, with midnight by default"""
        return self._date.at(time)

    def with_plain_date(self, date: PlainDate, /) -> PlainDateTime:
        """Replace the date. The calendar is taken from the new date
        unless it is ISO 8601, in which case the current one is kept."""
        if not isinstance(date, PlainDate):
            raise TypeError(f"Expected a PlainDate, got {type(date)!r}")
        cal = _consolidate_calendars(self._date._cal, date._cal)
        return PlainDateTime._from_parts(
            PlainDate._from_iso_unchecked(date._y, date._m, date._d, cal),
            self._tod,
        )

    def with_calendar(
        self, calendar: CalendarProtocol | str, /
    ) -> PlainDateTime:
        return PlainDateTime._from_parts(
            self._date.with_calendar(calendar), self._tod
        )

    def add(
        self, duration: Duration, /, *, overflow: Overflow = "constrain"
    ) -> PlainDateTime:
        """Add a duration. Time units are added first; whole days of
        overflow then join the date units, which are added by the calendar.

        >>> PlainDateTime(2020, 1, 31, 23).add(Duration(months=1, hours=2))
        PlainDateTime(2020-03-01T01:00:00)
        """
        if not isinstance(duration, Duration):
            raise TypeError(f"Expected a Duration, got {type(duration)!r}")
        return _add_plain(self, duration._tuple(), check_overflow(overflow))

    def subtract(
        self, duration: Duration, /, *, overflow: Overflow = "constrain"
    ) -> PlainDateTime:
        if not isinstance(duration, Duration):
            raise TypeError(f"Expected a Duration, got {type(duration)!r}")
        return self.add(duration.negated(), overflow=overflow)

    def until(
        self,
        other: PlainDateTime,
        /,
        *,
        largest_unit: Unit | Literal["auto"] = "auto",
        smallest_unit: Unit = "nanosecond",
        rounding_increment: int = 1,
        rounding_mode: RoundingMode = "trunc",
    ) -> Duration:
        """The duration from this datetime to another, with days as the
        largest unit by default. Days are always 24 hours here.

        >>> a = PlainDateTime(2020, 1, 1, 12)
        >>> a.until(PlainDateTime(2020, 2, 3), largest_unit="month")
        Duration(P1M1DT12H)
        """
        if not isinstance(other, PlainDateTime):
            raise TypeError(f"Expected a PlainDateTime, got {type(other)!r}")
        _check_same_calendar(self._date._cal, other._date._cal)
        largest, smallest, increment, mode = _difference_options(
            largest_unit,
            smallest_unit,
            rounding_increment,
            rounding_mode,
            allowed=UNITS,
            default_largest="day",
        )
        return _difference_plain_rounded(
            self, other, largest, increment, smallest, mode
        )

    def since(
        self,
        other: PlainDateTime,
        /,
        *,
        largest_unit: Unit | Literal["auto"] = "auto",
        smallest_unit: Unit = "nanosecond",
        rounding_increment: int = 1,
        rounding_mode: RoundingMode = "trunc",
    ) -> Duration:
        """The duration from another datetime to this one. See :meth:`until`."""
        if not isinstance(other, PlainDateTime):
            raise TypeError(f"Expected a PlainDateTime, got {type(other)!r}")
        _check_same_calendar(self._date._cal, other._date._cal)
        largest, smallest, increment, mode = _difference_options(
            largest_unit,
            smallest_unit,
            rounding_increment,
            rounding_mode,
            allowed=UNITS,
            default_largest="day",
        )
        return _difference_plain_rounded(
            self,
            other,
            largest,
            increment,
            smallest,
            negate_rounding_mode(mode),
        ).negated()

    def round(
        self,
        smallest_unit: Unit,
        /,
        *,
        rounding_increment: int = 1,
        rounding_mode: RoundingMode = "halfExpand",
    ) -> PlainDateTime:
        """Round the time of day to a multiple of the given unit,
        carrying into the date if needed

        >>> PlainDateTime(2021, 1, 1, 23, 59, 45).round("minute")
        PlainDateTime(2021-01-02T00:00:00)
        """
        unit = check_unit(
            smallest_unit, "smallest_unit", TIME_UNITS | {"day"}
        )
        increment = check_increment_for_datetime(
            unit, check_increment(rounding_increment)
        )
        return PlainDateTime._from_local_ns(
            round_to_increment(
                self._local_ns(), increment, check_rounding_mode(rounding_mode)
            ),
            self._date._cal,
        )

    def to_zoned_date_time(
        self,
        time_zone: TimeZoneProtocol | str,
        /,
        *,
        disambiguation: Disambiguate = "compatible",
    ) -> ZonedDateTime:
        """Place this wall-clock reading in a time zone.

        ``disambiguation`` decides what happens if the time is skipped
        or repeated there:

        - ``"compatible"``: the earlier of two repeated times, or a skipped
          time shifted forward by the length of the gap
        - ``"earlier"`` and ``"later"``: pick the earlier or later option
        - ``"reject"``: raise :class:`SkippedTime` or :class:`RepeatedTime`

        >>> d = PlainDateTime(2023, 3, 26, 2, 30)
        >>> d.to_zoned_date_time("Europe/Amsterdam")
        ZonedDateTime(2023-03-26T03:30:00+02:00[Europe/Amsterdam])
        """
        tz = _time_zone_from(time_zone)
        return ZonedDateTime._from_parts_unchecked(
            _resolve_local(
                tz, self._local_ns(), check_disambiguation(disambiguation)
            ),
            tz,
            self._date._cal,
        )

    def equals(self, other: PlainDateTime, /) -> bool:
        """Whether the dates, times and calendars are the same"""
        if not isinstance(other, PlainDateTime):
            raise TypeError(f"Expected a PlainDateTime, got {type(other)!r}")
        return self == other

    @staticmethod
    def compare(a: PlainDateTime, b: PlainDateTime, /) -> int:
        """Compare the ISO fields, returning -1, 0 or 1. Calendars are ignored."""
        if not (isinstance(a, PlainDateTime) and isinstance(b, PlainDateTime)):
            raise TypeError("Can only compare two PlainDateTimes")
        x, y = a._local_ns(), b._local_ns()
        return (x > y) - (x < y)

    def format_common_iso(self) -> str:
        """Format as ``YYYY-MM-DDTHH:MM:SS[.fff]``, with a calendar
        annotation if the calendar isn't ISO 8601"""
        return (
            f"{_format_date(*self._date._iso())}T{_format_time(self._tod)}"
            + _calendar_annotation(self._date._cal)
        )

    to_string = format_common_iso
    to_json = format_common_iso
    __str__ = format_common_iso

    def to_locale_string(self, locale: str | None = None) -> str:
        """Locale-aware presentation isn't provided:
        this gives the ISO 8601 format for any locale."""
        return self.format_common_iso()

    def __repr__(self) -> str:
        return f"PlainDateTime({self})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PlainDateTime):
            return NotImplemented
        return self._tod == other._tod and self._date == other._date

    def __hash__(self) -> int:
        return hash((self._date, self._tod))

    def __lt__(self, other: PlainDateTime) -> bool:
        if not isinstance(other, PlainDateTime):
            return NotImplemented
        return self._local_ns() < other._local_ns()

    def __le__(self, other: PlainDateTime) -> bool:
        if not isinstance(other, PlainDateTime):
            return NotImplemented
        return self._local_ns() <= other._local_ns()

    def __gt__(self, other: PlainDateTime) -> bool:
        if not isinstance(other, PlainDateTime):
            return NotImplemented
        return self._local_ns() > other._local_ns()

    def __ge__(self, other: PlainDateTime) -> bool:
        if not isinstance(other, PlainDateTime):
            return NotImplemented
        return self._local_ns() >= other._local_ns()

    def __reduce__(self):
        return _unpkl_datetime, (self._date, self._tod)


def _unpkl_datetime(date: PlainDate, tod: int) -> PlainDateTime:
    return PlainDateTime._from_parts(date, tod)


def _consolidate_calendars(
    a: CalendarProtocol, b: CalendarProtocol
) -> CalendarProtocol:
    """The calendar to keep when combining values. ISO 8601 gives way
    to any other calendar, but two different non-ISO calendars conflict."""
    if _same_calendar(a, b) or b.id == "iso8601":
        return a
    elif a.id == "iso8601":
        return b
    raise ValueError(f"Calendars {a.id!r} and {b.id!r} conflict")


# Time zones


@runtime_checkable
class TimeZoneProtocol(Protocol):
    """The interface of a time zone: a mapping between exact time and
    wall-clock time. Any object implementing these methods can be used
    as a time zone.
    """

    @property
    def id(self) -> str: ...

    def get_offset_nanoseconds_for(self, instant: Instant, /) -> int: ...

    def get_possible_instants_for(
        self, dt: PlainDateTime, /
    ) -> list[Instant]: ...


def _check_instant(value: object) -> Instant:
    if not isinstance(value, Instant):
        raise TypeError(f"Expected an Instant, got {type(value)!r}")
    return value


def _check_plain_datetime(value: object) -> PlainDateTime:
    if not isinstance(value, PlainDateTime):
        raise TypeError(f"Expected a PlainDateTime, got {type(value)!r}")
    return value


@final
class TimeZone(_ImmutableBase):
    """A time zone from the IANA database, e.g. ``Europe/Paris``.

    ``"UTC"`` and fixed offsets such as ``"+05:30"`` are also accepted.
    The zone data is loaded from the environment: by default the
    directories on ``TZPATH``, then the ``tzdata`` package.

    Example
    -------
    >>> tz = TimeZone("America/Los_Angeles")
    >>> tz.get_offset_string_for(Instant.from_utc(2012, 9, 11, 17, 30))
    '-07:00'
    """

    __slots__ = ("_tzif",)

    def __init__(
        self, key: str, /, *, environment: Environment | None = None
    ) -> None:
        self._tzif = (
            DEFAULT_ENVIRONMENT if environment is None else environment
        ).get(key)

    @classmethod
    def _from_tzif(cls, tzif: Tzif) -> TimeZone:
        self = _object_new(cls)
        self._tzif = tzif
        return self

    @classmethod
    def from_tzif_data(cls, key: str, data: bytes, /) -> TimeZone:
        """Create a zone from the contents of a TZif file"""
        return cls._from_tzif(Tzif.parse_tzif(data, key))

    @classmethod
    def system(cls) -> TimeZone:
        """The system's time zone, from ``TZ`` or the operating system"""
        return cls._from_tzif(DEFAULT_ENVIRONMENT.system_tz())

    @property
    def id(self) -> str:
        """The IANA ID. The system zone may have no known ID:
        it is then called ``localtime``."""
        return self._tzif.key or "localtime"

    def _offset_ns(self, epoch_ns: int) -> int:
        secs = epoch_ns // NS_PER_SEC
        return self._tzif.offset_for_instant(secs) * NS_PER_SEC

    def _possible_ns(self, local: int) -> list[int]:
        return possible_instants_tzif(self._tzif, local)

    def get_offset_nanoseconds_for(self, instant: Instant, /) -> int:
        return self._offset_ns(_check_instant(instant)._ns)

    def get_offset_string_for(self, instant: Instant, /) -> str:
        return format_offset(self._offset_ns(_check_instant(instant)._ns))

    def get_plain_date_time_for(
        self,
        instant: Instant,
        /,
        calendar: CalendarProtocol | str = "iso8601",
    ) -> PlainDateTime:
        ns = _check_instant(instant)._ns
        return PlainDateTime._from_local_ns(
            ns + self._offset_ns(ns), _calendar_from(calendar)
        )

    def get_possible_instants_for(self, dt: PlainDateTime, /) -> list[Instant]:
        """The exact times at which the wall clock shows the given time.
        Empty in a gap, two in a fold, otherwise one."""
        return [
            Instant._from_ns_unchecked(_check_instant_ns(ns))
            for ns in self._possible_ns(_check_plain_datetime(dt)._local_ns())
        ]

    def get_instant_for(
        self,
        dt: PlainDateTime,
        /,
        *,
        disambiguation: Disambiguate = "compatible",
    ) -> Instant:
        """The exact time at which the wall clock shows the given time.
        See :meth:`PlainDateTime.to_zoned_date_time` for ``disambiguation``."""
        return Instant._from_ns_unchecked(
            _resolve_local(
                self,
                _check_plain_datetime(dt)._local_ns(),
                check_disambiguation(disambiguation),
            )
        )

    def get_next_transition(self, instant: Instant, /) -> Optional[Instant]:
        """The first offset change after the given instant, if any"""
        secs = _check_instant(instant)._ns // NS_PER_SEC
        return _transition_instant(self._tzif.next_transition(secs))

    def get_previous_transition(
        self, instant: Instant, /
    ) -> Optional[Instant]:
        """The last offset change before the given instant, if any"""
        # round up: a transition in the same second but earlier counts
        secs = -(-_check_instant(instant)._ns // NS_PER_SEC)
        return _transition_instant(self._tzif.prev_transition(secs))

    def equals(self, other: TimeZoneProtocol, /) -> bool:
        """Whether the zones have the same ID.
        Raises :class:`IncomparableTimeZones` for rule-based zones."""
        if type(other) is RuleTimeZone:
            raise IncomparableTimeZones(
                f"Rule-based time zone {other.id!r} can't be compared"
            )
        elif isinstance(other, TimeZone):
            return self == other
        return self.id == _time_zone_from(other).id

    def to_string(self) -> str:
        return self.id

    to_json = to_string
    to_locale_string = to_string
    __str__ = to_string

    def __repr__(self) -> str:
        return f"TimeZone({self.id})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TimeZone):
            return NotImplemented
        if self._tzif.key is None or other._tzif.key is None:
            return self._tzif == other._tzif
        return self._tzif.key == other._tzif.key

    def __hash__(self) -> int:
        return hash(self.id)

    def __reduce__(self):
        if self._tzif.key is None:
            return TimeZone._from_tzif, (self._tzif,)
        return _unpkl_tz, (self._tzif.key,)


def _unpkl_tz(key: str) -> TimeZone:
    return TimeZone(key)


def _transition_instant(secs: Optional[int]) -> Optional[Instant]:
    if secs is None:
        return None
    ns = secs * NS_PER_SEC
    if not -EPOCH_NS_LIMIT <= ns <= EPOCH_NS_LIMIT:
        return None
    return Instant._from_ns_unchecked(ns)


def _offset_seconds(value: object, name: str) -> int:
    if isinstance(value, str):
        ns = parse_offset(value)
        if ns % NS_PER_SEC:
            raise ValueError(f"{name} must be a whole number of seconds")
        return ns // NS_PER_SEC
    secs = _check_int(value, name)
    if not -86400 < secs < 86400:
        raise ValueError(f"{name} out of range: {secs}")
    return secs


@final
class Observance(_ImmutableBase):
    """One ``STANDARD`` or ``DAYLIGHT`` component of a rule-based time zone,
    as found in an iCalendar ``VTIMEZONE``.

    From ``start`` (a wall-clock time in the ``offset_from`` offset),
    the offset changes to ``offset_to``, and again on every recurrence
    and extra onset.

    Parameters
    ----------
    kind
        ``"standard"`` or ``"daylight"``
    start
        The first onset (``DTSTART``), as a local time
    offset_from, offset_to
        The offsets (``TZOFFSETFROM``, ``TZOFFSETTO``), in seconds or
        as strings like ``"-0800"`` or ``"+05:30"``
    recurrence
        A yearly recurrence rule (``RRULE``), as string or :class:`Recurrence`
    extra_onsets
        Additional onsets (``RDATE``), as local times
    name
        The abbreviation (``TZNAME``), e.g. ``"PDT"``

    Example
    -------
    >>> Observance(
    ...     "daylight",
    ...     PlainDateTime(2007, 3, 11, 2),
    ...     "-0800",
    ...     "-0700",
    ...     recurrence="FREQ=YEARLY;BYMONTH=3;BYDAY=2SU",
    ...     name="PDT",
    ... )
    """

    __slots__ = (
        "kind",
        "start",
        "offset_from",
        "offset_to",
        "recurrence",
        "extra_onsets",
        "name",
    )

    kind: ObservanceKind
    start: PlainDateTime
    offset_from: int
    offset_to: int
    recurrence: Optional[Recurrence]
    extra_onsets: tuple[PlainDateTime, ...]
    name: Optional[str]

    def __init__(
        self,
        kind: ObservanceKind,
        start: PlainDateTime,
        offset_from: int | str,
        offset_to: int | str,
        *,
        recurrence: Recurrence | str | None = None,
        extra_onsets: Iterable[PlainDateTime] = (),
        name: str | None = None,
    ) -> None:
        if kind not in ("standard", "daylight"):
            raise ValueError(
                f"kind must be 'standard' or 'daylight', got {kind!r}"
            )
        if isinstance(recurrence, str):
            recurrence = Recurrence.parse(recurrence)
        elif recurrence is not None and not isinstance(recurrence, Recurrence):
            raise TypeError(
                f"Expected a recurrence rule, got {type(recurrence)!r}"
            )
        self.kind = kind
        self.start = _check_plain_datetime(start)
        self.offset_from = _offset_seconds(offset_from, "offset_from")
        self.offset_to = _offset_seconds(offset_to, "offset_to")
        self.recurrence = recurrence
        self.extra_onsets = tuple(map(_check_plain_datetime, extra_onsets))
        self.name = name

    def _onsets(self) -> Onsets:
        return Onsets(
            self.start._local_ns() // NS_PER_SEC,
            self.offset_from,
            self.offset_to,
            self.recurrence,
            [dt._local_ns() // NS_PER_SEC for dt in self.extra_onsets],
        )

    def __repr__(self) -> str:
        return (
            f"Observance({self.kind!r}, {self.start}, "
            f"{format_offset(self.offset_from * NS_PER_SEC)}, "
            f"{format_offset(self.offset_to * NS_PER_SEC)})"
        )


@final
class RuleTimeZone(_ImmutableBase):
    """A time zone defined by its own rules rather than an IANA entry,
    like those in iCalendar ``VTIMEZONE`` components.

    Such zones have no agreed identity or serialization:
    :meth:`equals` raises :class:`IncomparableTimeZones`, and
    :meth:`to_string` and transition lookups raise
    :class:`UnsupportedOperation`.

    Example
    -------
    >>> tz = RuleTimeZone("Custom/Pacific", [
    ...     Observance(
    ...         "standard", PlainDateTime(2007, 11, 4, 2), "-0700", "-0800",
    ...         recurrence="FREQ=YEARLY;BYMONTH=11;BYDAY=1SU",
    ...     ),
    ...     Observance(
    ...         "daylight", PlainDateTime(2007, 3, 11, 2), "-0800", "-0700",
    ...         recurrence="FREQ=YEARLY;BYMONTH=3;BYDAY=2SU",
    ...     ),
    ... ])
    >>> tz.utc_offset(PlainDateTime(2024, 7, 1))
    -25200
    """

    __slots__ = ("_id", "_rules")

    def __init__(self, tzid: str, observances: Iterable[Observance]) -> None:
        if not isinstance(tzid, str):
            raise TypeError(f"tzid must be a string, got {type(tzid)!r}")
        onsets = []
        for obs in observances:
            if not isinstance(obs, Observance):
                raise TypeError(f"Expected an Observance, got {type(obs)!r}")
            onsets.append(obs._onsets())
        self._id = tzid
        self._rules: Union[ObservanceTable, TzStr] = ObservanceTable(onsets)

    @classmethod
    def _from_rules(
        cls, tzid: str, rules: Union[ObservanceTable, TzStr]
    ) -> RuleTimeZone:
        if not isinstance(tzid, str):
            raise TypeError(f"tzid must be a string, got {type(tzid)!r}")
        self = _object_new(cls)
        self._id = tzid
        self._rules = rules
        return self

    @classmethod
    def fixed(cls, tzid: str, offset: int | str) -> RuleTimeZone:
        """A zone with a constant offset, given in seconds or as a string

        >>> RuleTimeZone.fixed("Custom/Fixed", -7 * 3600)
        RuleTimeZone('Custom/Fixed')
        """
        return cls._from_rules(tzid, TzStr(_offset_seconds(offset, "offset")))

    @classmethod
    def from_posix(cls, tzid: str, tzstr: str) -> RuleTimeZone:
        """A zone following a POSIX TZ string, e.g. ``PST8PDT,M3.2.0,M11.1.0``"""
        return cls._from_rules(tzid, TzStr.parse(tzstr))

    @property
    def id(self) -> str:
        return self._id

    def _offset_ns(self, epoch_ns: int) -> int:
        secs = epoch_ns // NS_PER_SEC
        return self._rules.offset_for_instant(secs) * NS_PER_SEC

    def _possible_ns(self, local: int) -> list[int]:
        return possible_instants_by_offsets(
            self._rules.offset_for_instant, local
        )

    def get_offset_nanoseconds_for(self, instant: Instant, /) -> int:
        return self._offset_ns(_check_instant(instant)._ns)

    def get_offset_string_for(self, instant: Instant, /) -> str:
        return format_offset(self._offset_ns(_check_instant(instant)._ns))

    def get_plain_date_time_for(
        self,
        instant: Instant,
        /,
        calendar: CalendarProtocol | str = "iso8601",
    ) -> PlainDateTime:
        ns = _check_instant(instant)._ns
        return PlainDateTime._from_local_ns(
            ns + self._offset_ns(ns), _calendar_from(calendar)
        )

    def get_possible_instants_for(self, dt: PlainDateTime, /) -> list[Instant]:
        return [
            Instant._from_ns_unchecked(_check_instant_ns(ns))
            for ns in self._possible_ns(_check_plain_datetime(dt)._local_ns())
        ]

    def get_instant_for(
        self,
        dt: PlainDateTime,
        /,
        *,
        disambiguation: Disambiguate = "compatible",
    ) -> Instant:
        return Instant._from_ns_unchecked(
            _resolve_local(
                self,
                _check_plain_datetime(dt)._local_ns(),
                check_disambiguation(disambiguation),
            )
        )

    def utc_offset(self, dt: PlainDateTime, /) -> int:
        """The offset in seconds for a local time.
        Skipped and repeated times are resolved as with ``"compatible"``."""
        return (
            self._offset_ns(
                _resolve_local(
                    self, _check_plain_datetime(dt)._local_ns(), "compatible"
                )
            )
            // NS_PER_SEC
        )

    def get_next_transition(self, instant: Instant, /) -> Optional[Instant]:
        raise UnsupportedOperation.for_rule_zone("Transition lookup", self._id)

    def get_previous_transition(
        self, instant: Instant, /
    ) -> Optional[Instant]:
        raise UnsupportedOperation.for_rule_zone("Transition lookup", self._id)

    def equals(self, other: TimeZoneProtocol, /) -> bool:
        raise IncomparableTimeZones(
            f"Rule-based time zone {self._id!r} can't be compared"
        )

    def to_string(self) -> str:
        raise UnsupportedOperation.for_rule_zone("Serialization", self._id)

    to_json = to_string
    to_locale_string = to_string

    def __repr__(self) -> str:
        return f"RuleTimeZone({self._id!r})"


def resolve_time_zone(
    tzid: str,
    observances: Iterable[Observance] = (),
    *,
    environment: Environment,
) -> Union[TimeZone, RuleTimeZone]:
    """Pick the zone for an ID found in external data, such as an
    iCalendar ``TZID``: the IANA zone if the environment knows the ID,
    otherwise a rule-based zone from the given observances.

    >>> resolve_time_zone("Europe/Paris", environment=Environment())
    TimeZone(Europe/Paris)
    """
    if environment.is_available(tzid):
        return TimeZone(tzid, environment=environment)
    observances = list(observances)
    if not observances:
        raise TimeZoneNotFoundError.for_key(tzid)
    return RuleTimeZone(tzid, observances)


def _time_zone_from(value: TimeZoneProtocol | str) -> TimeZoneProtocol:
    if isinstance(value, str):
        return TimeZone(value)
    elif type(value) is TimeZone or type(value) is RuleTimeZone:
        return value
    elif isinstance(value, TimeZoneProtocol):
        return value
    raise TypeError(
        f"Expected a time zone or time zone ID, got {type(value)!r}"
    )


def _offset_ns(tz: TimeZoneProtocol, epoch_ns: int) -> int:
    if type(tz) is TimeZone or type(tz) is RuleTimeZone:
        return tz._offset_ns(epoch_ns)
    offset = tz.get_offset_nanoseconds_for(
        Instant._from_ns_unchecked(epoch_ns)
    )
    if not isinstance(offset, int) or isinstance(offset, bool):
        raise TypeError(
            f"Time zone {tz.id!r} returned a non-integer offset: {offset!r}"
        )
    elif not -NS_PER_DAY < offset < NS_PER_DAY:
        raise ValueError(f"Time zone {tz.id!r} returned an invalid offset")
    return offset


def _possible_ns(tz: TimeZoneProtocol, local: int) -> list[int]:
    if type(tz) is TimeZone or type(tz) is RuleTimeZone:
        return tz._possible_ns(local)
    result = []
    for instant in tz.get_possible_instants_for(
        PlainDateTime._from_local_ns(local, ISO)
    ):
        result.append(_check_instant(instant)._ns)
    return sorted(result)


def _resolve_local(
    tz: TimeZoneProtocol, local: int, disambiguation: str
) -> int:
    return _check_instant_ns(
        resolve_ambiguity(
            local,
            disambiguation,  # type: ignore[arg-type]
            lambda t: _possible_ns(tz, t),
            lambda t: _offset_ns(tz, t),
            lambda: f"{_format_local(local)} in time zone {tz.id!r}",
        )
    )


def _start_of_day(tz: TimeZoneProtocol, epoch_days: int) -> int:
    return _resolve_local(tz, epoch_days * NS_PER_DAY, "compatible")


def _interpret_offset(
    tz: TimeZoneProtocol,
    local: int,
    offset: Optional[int],
    option: OffsetOption,
    disambiguation: str,
) -> int:
    """Resolve a local time, taking into account an explicit offset.

    - ``use``: the offset determines the exact time, whatever the zone says
    - ``prefer``: the offset picks one of the zone's candidates, if it can
    - ``ignore``: the offset plays no role
    - ``reject``: the offset must be one the zone uses at this local time
    """
    if offset is None or option == "ignore":
        return _resolve_local(tz, local, disambiguation)
    elif option == "use":
        return _check_instant_ns(local - offset)
    for candidate in _possible_ns(tz, local):
        if candidate == local - offset:
            return _check_instant_ns(candidate)
    if option == "reject":
        raise InvalidOffsetError(
            f"Offset {format_offset(offset)} is invalid for "
            f"{_format_local(local)} in time zone {tz.id!r}"
        )
    return _resolve_local(tz, local, disambiguation)


def _offset_ns_from(value: object) -> int:
    if isinstance(value, str):
        return parse_offset(value)
    offset = _check_int(value, "offset")
    if not -NS_PER_DAY < offset < NS_PER_DAY:
        raise ValueError(f"offset out of range: {offset}")
    return offset


def _check_not_rule_zone(tz: TimeZoneProtocol, what: str) -> None:
    if type(tz) is RuleTimeZone:
        raise UnsupportedOperation.for_rule_zone(what, tz.id)


def _same_zone(a: TimeZoneProtocol, b: TimeZoneProtocol) -> bool:
    if a is b:
        return True
    elif isinstance(a, TimeZone) and isinstance(b, TimeZone):
        # zones without a known ID are compared by their data
        return a == b
    return a.id == b.id


# ZonedDateTime


@final
class ZonedDateTime(_ImmutableBase):
    """An exact time in a time zone and calendar.

    Only the instant, zone and calendar are stored. The wall-clock fields
    are computed from them on every access.

    Arithmetic with calendar units (years to days) works on the wall clock,
    and arithmetic with time units (hours and smaller) on the exact
    timeline. This means that a day isn't always 24 hours.

    Example
    -------
    >>> d = ZonedDateTime.from_fields(
    ...     {"year": 2012, "month": 9, "day": 11, "hour": 10, "minute": 30},
    ...     "America/Los_Angeles",
    ... )
    >>> d
    ZonedDateTime(2012-09-11T10:30:00-07:00[America/Los_Angeles])
    >>> d.offset
    '-07:00'
    >>> d.until(d.replace(hour=11))
    Duration(PT30M)

    Note
    ----
    ``==`` and ordering compare only the exact time, so that values in
    different zones can be compared. Use :meth:`equals` to also compare
    the zone and calendar.
    """

    __slots__ = ("_ns", "_tz", "_cal")

    def __init__(
        self,
        epoch_nanoseconds: int,
        time_zone: TimeZoneProtocol | str,
        calendar: CalendarProtocol | str = "iso8601",
    ) -> None:
        self._ns = _check_instant_ns(
            _check_int(epoch_nanoseconds, "epoch_nanoseconds")
        )
        self._tz = _time_zone_from(time_zone)
        self._cal = _calendar_from(calendar)

    @classmethod
    def _from_parts_unchecked(
        cls, ns: int, tz: TimeZoneProtocol, cal: CalendarProtocol
    ) -> ZonedDateTime:
        self = _object_new(cls)
        self._ns = ns
        self._tz = tz
        self._cal = cal
        return self

    def _with_ns(self, ns: int) -> ZonedDateTime:
        return ZonedDateTime._from_parts_unchecked(ns, self._tz, self._cal)

    @classmethod
    def now(
        cls,
        time_zone: TimeZoneProtocol | str | None = None,
        calendar: CalendarProtocol | str = "iso8601",
    ) -> ZonedDateTime:
        """The current time in the given zone, the system zone by default"""
        return cls._from_parts_unchecked(
            time_ns(),
            (
                TimeZone.system()
                if time_zone is None
                else _time_zone_from(time_zone)
            ),
            _calendar_from(calendar),
        )

    @classmethod
    def from_fields(
        cls,
        fields: Mapping[str, Any],
        time_zone: TimeZoneProtocol | str,
        /,
        *,
        calendar: CalendarProtocol | str = "iso8601",
        disambiguation: Disambiguate = "compatible",
        offset: OffsetOption = "reject",
        overflow: Overflow = "constrain",
    ) -> ZonedDateTime:
        """Create from wall-clock fields in a zone. The fields may include
        an ``offset`` (a string like ``"-07:00"`` or nanoseconds); the
        ``offset`` option decides how it's used when it doesn't match the
        zone. See :meth:`replace`.

        >>> ZonedDateTime.from_fields(
        ...     {"year": 2023, "month": 10, "day": 29, "hour": 2,
        ...      "offset": "+01:00"},
        ...     "Europe/Amsterdam",
        ... )
        ZonedDateTime(2023-10-29T02:00:00+01:00[Europe/Amsterdam])
        """
        _check_field_names(
            fields, _DATE_FIELD_NAMES | _TIME_FIELD_NAMES | {"offset"}
        )
        tz = _time_zone_from(time_zone)
        cal = _calendar_from(calendar)
        offset_value = fields.get("offset")
        dt = PlainDateTime.from_fields(
            {k: v for k, v in fields.items() if k != "offset"},
            calendar=cal,
            overflow=overflow,
        )
        return cls._from_parts_unchecked(
            _interpret_offset(
                tz,
                dt._local_ns(),
                (
                    None
                    if offset_value is None
                    else _offset_ns_from(offset_value)
                ),
                check_offset_option(offset),
                check_disambiguation(disambiguation),
            ),
            tz,
            cal,
        )

    def _offset(self) -> int:
        return _offset_ns(self._tz, self._ns)

    def _local_ns(self) -> int:
        return self._ns + _offset_ns(self._tz, self._ns)

    def _plain(self) -> PlainDateTime:
        return PlainDateTime._from_local_ns(self._local_ns(), self._cal)

    @property
    def time_zone(self) -> TimeZoneProtocol:
        return self._tz

    @property
    def time_zone_id(self) -> str:
        return self._tz.id

    @property
    def calendar(self) -> CalendarProtocol:
        return self._cal

    @property
    def calendar_id(self) -> str:
        return self._cal.id

    @property
    def offset_nanoseconds(self) -> int:
        return self._offset()

    @property
    def offset(self) -> str:
        """The offset from UTC as ``±HH:MM``, with seconds only if nonzero"""
        return format_offset(self._offset())

    @property
    def epoch_seconds(self) -> int:
        return self._ns // NS_PER_SEC

    @property
    def epoch_milliseconds(self) -> int:
        return self._ns // NS_PER_MS

    @property
    def epoch_microseconds(self) -> int:
        return self._ns // NS_PER_US

    @property
    def epoch_nanoseconds(self) -> int:
        return self._ns

    @property
    def era(self) -> Optional[str]:
        return self._plain().era

    @property
    def era_year(self) -> Optional[int]:
        return self._plain().era_year

    @property
    def year(self) -> int:
        return self._plain().year

    @property
    def month(self) -> int:
        return self._plain().month

    @property
    def month_code(self) -> str:
        return self._plain().month_code

    @property
    def day(self) -> int:
        return self._plain().day

    @property
    def hour(self) -> int:
        return self._plain().hour

    @property
    def minute(self) -> int:
        return self._plain().minute

    @property
    def second(self) -> int:
        return self._plain().second

    @property
    def millisecond(self) -> int:
        return self._plain().millisecond

    @property
    def microsecond(self) -> int:
        return self._plain().microsecond

    @property
    def nanosecond(self) -> int:
        return self._plain().nanosecond

    @property
    def day_of_week(self) -> int:
        return self._plain().day_of_week

    @property
    def day_of_year(self) -> int:
        return self._plain().day_of_year

    @property
    def week_of_year(self) -> Optional[int]:
        return self._plain().week_of_year

    @property
    def days_in_week(self) -> int:
        return self._plain().days_in_week

    @property
    def days_in_month(self) -> int:
        return self._plain().days_in_month

    @property
    def days_in_year(self) -> int:
        return self._plain().days_in_year

    @property
    def months_in_year(self) -> int:
        return self._plain().months_in_year

    @property
    def in_leap_year(self) -> bool:
        return self._plain().in_leap_year

    @property
    def hours_in_day(self) -> float:
        """The length of this calendar day in this zone.
        Usually 24, but e.g. 23 or 25 on days with a DST transition.

        >>> d = PlainDate(2024, 3, 31).to_zoned_date_time("Europe/Berlin")
        >>> d.hours_in_day
        23.0
        """
        days = self._local_ns() // NS_PER_DAY
        return (
            _start_of_day(self._tz, days + 1) - _start_of_day(self._tz, days)
        ) / NS_PER_HOUR

    def get_iso_fields(self) -> dict[str, Any]:
        return {
            **self._plain().get_iso_fields(),
            "offset": self.offset,
            "time_zone": self._tz,
        }

    def to_instant(self) -> Instant:
        return Instant._from_ns_unchecked(self._ns)

    def to_plain_date_time(self) -> PlainDateTime:
        return self._plain()

    def to_plain_date(self) -> PlainDate:
        return self._plain()._date

    def to_plain_time(self) -> PlainTime:
        return self._plain().to_plain_time()

    def to_plain_year_month(self) -> PlainYearMonth:
        return _year_month_of(self._plain()._date)

    def to_plain_month_day(self) -> PlainMonthDay:
        return _month_day_of(self._plain()._date)

    def replace(
        self,
        *,
        disambiguation: Disambiguate = "compatible",
        offset: OffsetOption = "prefer",
        overflow: Overflow = "constrain",
        **fields: Any,
    ) -> ZonedDateTime:
        """Create a new value with the given wall-clock fields replaced,
        in the same zone and calendar.

        The ``offset`` option decides how the current offset is applied
        to the new fields (see :meth:`from_fields`). By default, it's kept
        if it's still valid, and ``disambiguation`` decides otherwise.

        >>> d = PlainDateTime(2023, 10, 29, 2, 30).to_zoned_date_time(
        ...     "Europe/Amsterdam", disambiguation="later"
        ... )
        >>> d.replace(minute=45)
        ZonedDateTime(2023-10-29T02:45:00+01:00[Europe/Amsterdam])
        """
        _check_not_rule_zone(self._tz, "replace()")
        _check_field_names(fields, _DATE_FIELD_NAMES | _TIME_FIELD_NAMES)
        dt = self._plain().replace(overflow=overflow, **fields)
        return self._with_ns(
            _interpret_offset(
                self._tz,
                dt._local_ns(),
                self._offset(),
                check_offset_option(offset),
                check_disambiguation(disambiguation),
            )
        )

    def with_time_zone(
        self, time_zone: TimeZoneProtocol | str, /
    ) -> ZonedDateTime:
        """The same exact time in another zone"""
        return ZonedDateTime._from_parts_unchecked(
            self._ns, _time_zone_from(time_zone), self._cal
        )

    def with_calendar(
        self, calendar: CalendarProtocol | str, /
    ) -> ZonedDateTime:
        """The same exact time in another calendar"""
        return ZonedDateTime._from_parts_unchecked(
            self._ns, self._tz, _calendar_from(calendar)
        )

    def with_plain_time(
        self, time: PlainTime | None = None, /
    ) -> ZonedDateTime:
        """Replace the wall-clock time, keeping the date. Without a time,
        this is :meth:`start_of_day`."""
        if time is None:
            return self.start_of_day()
        elif not isinstance(time, PlainTime):
            raise TypeError(f"Expected a PlainTime, got {type(time)!r}")
        dt = self._plain()._date.at(time)
        return self._with_ns(
            _resolve_local(self._tz, dt._local_ns(), "compatible")
        )

    def with_plain_date(self, date: PlainDate, /) -> ZonedDateTime:
        """Replace the date, keeping the wall-clock time"""
        if not isinstance(date, PlainDate):
            raise TypeError(f"Expected a PlainDate, got {type(date)!r}")
        cal = _consolidate_calendars(self._cal, date._cal)
        local = _check_local_ns(
            date._epoch_days() * NS_PER_DAY + self._local_ns() % NS_PER_DAY
        )
        return ZonedDateTime._from_parts_unchecked(
            _resolve_local(self._tz, local, "compatible"), self._tz, cal
        )

    def start_of_day(self) -> ZonedDateTime:
        """The first moment of this calendar day in this zone

        >>> d = PlainDateTime(2024, 3, 10, 12)
        >>> d.to_zoned_date_time("America/Havana").start_of_day()
        ZonedDateTime(2024-03-10T01:00:00-04:00[America/Havana])
        """
        return self._with_ns(
            _start_of_day(self._tz, self._local_ns() // NS_PER_DAY)
        )

    def add(
        self, duration: Duration, /, *, overflow: Overflow = "constrain"
    ) -> ZonedDateTime:
        """Add a duration. The calendar units (years to days) are added
        to the wall-clock date first, keeping the wall-clock time if
        possible. Then the time units are added as exact time.

        >>> d = PlainDateTime(2024, 3, 9, 2, 30).to_zoned_date_time(
        ...     "America/New_York"
        ... )
        >>> d.add(Duration(days=1))  # 02:30 doesn't exist on March 10
        ZonedDateTime(2024-03-10T03:30:00-04:00[America/New_York])
        >>> d.add(Duration(hours=24))
        ZonedDateTime(2024-03-10T03:30:00-04:00[America/New_York])
        """
        if not isinstance(duration, Duration):
            raise TypeError(f"Expected a Duration, got {type(duration)!r}")
        return self._with_ns(
            _add_zoned(
                self._ns,
                self._tz,
                self._cal,
                duration._tuple(),
                check_overflow(overflow),
            )
        )

    def subtract(
        self, duration: Duration, /, *, overflow: Overflow = "constrain"
    ) -> ZonedDateTime:
        """Subtract a duration. Equivalent to adding its negation."""
        if not isinstance(duration, Duration):
            raise TypeError(f"Expected a Duration, got {type(duration)!r}")
        return self.add(duration.negated(), overflow=overflow)

    def _difference(
        self,
        other: ZonedDateTime,
        largest: Unit,
        increment: int,
        smallest: Unit,
        mode: RoundingMode,
    ) -> Duration:
        if largest in TIME_UNITS:
            return _difference_instant(
                self._ns, other._ns, largest, increment, smallest, mode
            )
        _check_not_rule_zone(self._tz, "Calendar-unit difference")
        _check_not_rule_zone(other._tz, "Calendar-unit difference")
        if not _same_zone(self._tz, other._tz):
            raise ValueError(
                "Calendar-unit differences require the same time zone, "
                f"got {self._tz.id!r} and {other._tz.id!r}"
            )
        return _difference_zoned_rounded(
            self._ns,
            other._ns,
            self._tz,
            self._cal,
            largest,
            increment,
            smallest,
            mode,
        )

    def until(
        self,
        other: ZonedDateTime,
        /,
        *,
        largest_unit: Unit | Literal["auto"] = "auto",
        smallest_unit: Unit = "nanosecond",
        rounding_increment: int = 1,
        rounding_mode: RoundingMode = "trunc",
    ) -> Duration:
        """The duration from this value to another.

        By default, the result is exact time in hours and smaller.
        With a ``largest_unit`` of days or larger, the difference is
        calendar-aware: both values must be in the same zone, and days
        may be 23 or 25 hours.

        >>> a = PlainDateTime(2024, 3, 9, 12).to_zoned_date_time(
        ...     "America/New_York"
        ... )
        >>> a.until(a.add(Duration(days=1)))
        Duration(PT23H)
        >>> a.until(a.add(Duration(days=1)), largest_unit="day")
        Duration(P1D)
        """
        if not isinstance(other, ZonedDateTime):
            raise TypeError(f"Expected a ZonedDateTime, got {type(other)!r}")
        _check_same_calendar(self._cal, other._cal)
        largest, smallest, increment, mode = _difference_options(
            largest_unit,
            smallest_unit,
            rounding_increment,
            rounding_mode,
            allowed=UNITS,
            default_largest="hour",
        )
        return self._difference(other, largest, increment, smallest, mode)

    def since(
        self,
        other: ZonedDateTime,
        /,
        *,
        largest_unit: Unit | Literal["auto"] = "auto",
        smallest_unit: Unit = "nanosecond",
        rounding_increment: int = 1,
        rounding_mode: RoundingMode = "trunc",
    ) -> Duration:
        """The duration from another value to this one. See :meth:`until`."""
        if not isinstance(other, ZonedDateTime):
            raise TypeError(f"Expected a ZonedDateTime, got {type(other)!r}")
        _check_same_calendar(self._cal, other._cal)
        largest, smallest, increment, mode = _difference_options(
            largest_unit,
            smallest_unit,
            rounding_increment,
            rounding_mode,
            allowed=UNITS,
            default_largest="hour",
        )
        return self._difference(
            other, largest, increment, smallest, negate_rounding_mode(mode)
        ).negated()

    def round(
        self,
        smallest_unit: Unit,
        /,
        *,
        rounding_increment: int = 1,
        rounding_mode: RoundingMode = "halfExpand",
    ) -> ZonedDateTime:
        """Round the wall-clock time. Rounding to days uses the real length
        of the day in this zone. The offset is kept if still valid.

        >>> d = PlainDateTime(2024, 3, 31, 12, 31)
        >>> d.to_zoned_date_time("Europe/Berlin").round("hour")
        ZonedDateTime(2024-03-31T13:00:00+02:00[Europe/Berlin])
        """
        _check_not_rule_zone(self._tz, "round()")
        unit = check_unit(
            smallest_unit, "smallest_unit", TIME_UNITS | {"day"}
        )
        increment = check_increment_for_datetime(
            unit, check_increment(rounding_increment)
        )
        mode = check_rounding_mode(rounding_mode)
        tz = self._tz
        if unit == "day":
            days = self._local_ns() // NS_PER_DAY
            start = _start_of_day(tz, days)
            end = _start_of_day(tz, days + 1)
            return self._with_ns(
                start + round_to_increment(self._ns - start, end - start, mode)
            )
        local = _check_local_ns(
            round_to_increment(self._local_ns(), increment, mode)
        )
        return self._with_ns(
            _interpret_offset(
                tz, local, self._offset(), "prefer", "compatible"
            )
        )

    def get_time_zone_transition(
        self, direction: Literal["next", "previous"], /
    ) -> Optional[ZonedDateTime]:
        """The next or previous offset change in this zone, if any"""
        if direction not in ("next", "previous"):
            raise ValueError(
                f"direction must be 'next' or 'previous', got {direction!r}"
            )
        tz = self._tz
        _check_not_rule_zone(tz, "Transition lookup")
        method = getattr(tz, f"get_{direction}_transition", None)
        if method is None:
            raise UnsupportedOperation(
                f"Time zone {tz.id!r} doesn't provide transitions"
            )
        instant = method(Instant._from_ns_unchecked(self._ns))
        return None if instant is None else self._with_ns(instant._ns)

    def equals(self, other: ZonedDateTime, /) -> bool:
        """Whether the exact time, time zone and calendar are the same.

        Raises :class:`IncomparableTimeZones` if either value is in a
        rule-based zone, since those have no identity to compare.
        """
        if not isinstance(other, ZonedDateTime):
            raise TypeError(f"Expected a ZonedDateTime, got {type(other)!r}")
        for tz in (self._tz, other._tz):
            if type(tz) is RuleTimeZone:
                raise IncomparableTimeZones(
                    f"Rule-based time zone {tz.id!r} can't be compared"
                )
        return (
            self._ns == other._ns
            and _same_zone(self._tz, other._tz)
            and _same_calendar(self._cal, other._cal)
        )

    @staticmethod
    def compare(a: ZonedDateTime, b: ZonedDateTime, /) -> int:
        """Compare the exact times, returning -1, 0 or 1"""
        if not (isinstance(a, ZonedDateTime) and isinstance(b, ZonedDateTime)):
            raise TypeError("Can only compare two ZonedDateTimes")
        return (a._ns > b._ns) - (a._ns < b._ns)

    def _format(self) -> str:
        offset = self._offset()
        return (
            _format_local(self._ns + offset)
            + format_offset(
                round_to_increment(offset, NS_PER_MIN, "halfExpand")
            )
            + f"[{self._tz.id}]"
            + _calendar_annotation(self._cal)
        )

    def to_string(self) -> str:
        """Format as ISO 8601 with the offset, zone ID and (if not ISO)
        calendar, e.g. ``2012-09-11T10:30:00-07:00[America/Los_Angeles]``.
        Not supported for rule-based zones."""
        _check_not_rule_zone(self._tz, "Serialization")
        return self._format()

    def to_json(self) -> str:
        _check_not_rule_zone(self._tz, "Serialization")
        return self._format()

    def to_locale_string(self, locale: str | None = None) -> str:
        """Locale-aware presentation isn't provided:
        this gives the ISO 8601 format for any locale."""
        _check_not_rule_zone(self._tz, "Serialization")
        return self._format()

    __str__ = to_string

    def __repr__(self) -> str:
        offset = self._offset()
        return (
            f"ZonedDateTime({_format_local(self._ns + offset)}"
            f"{format_offset(offset)}[{self._tz.id}]"
            f"{_calendar_annotation(self._cal)})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ZonedDateTime):
            return NotImplemented
        return self._ns == other._ns

    def __hash__(self) -> int:
        return hash(self._ns)

    def __lt__(self, other: ZonedDateTime) -> bool:
        if not isinstance(other, ZonedDateTime):
            return NotImplemented
        return self._ns < other._ns

    def __le__(self, other: ZonedDateTime) -> bool:
        if not isinstance(other, ZonedDateTime):
            return NotImplemented
        return self._ns <= other._ns

    def __gt__(self, other: ZonedDateTime) -> bool:
        if not isinstance(other, ZonedDateTime):
            return NotImplemented
        return self._ns > other._ns

    def __ge__(self, other: ZonedDateTime) -> bool:
        if not isinstance(other, ZonedDateTime):
            return NotImplemented
        return self._ns >= other._ns

    def __add__(self, other: Duration) -> ZonedDateTime:
        if not isinstance(other, Duration):
            return NotImplemented
        return self.add(other)

    def __sub__(self, other: Duration) -> ZonedDateTime:
        if not isinstance(other, Duration):
            return NotImplemented
        return self.subtract(other)

    def __reduce__(self):
        return _unpkl_zoned, (self._ns, self._tz, self._cal)


def _unpkl_zoned(
    ns: int, tz: TimeZoneProtocol, cal: CalendarProtocol
) -> ZonedDateTime:
    return ZonedDateTime._from_parts_unchecked(ns, tz, cal)


RelativeTo = Union[PlainDate, PlainDateTime, ZonedDateTime]


def _relative_anchor(
    value: object,
) -> Union[PlainDateTime, ZonedDateTime, None]:
    if value is None or type(value) in (PlainDateTime, ZonedDateTime):
        return value  # type: ignore[return-value]
    elif type(value) is PlainDate:
        return value.at()
    raise TypeError(
        "relative_to must be a PlainDate, PlainDateTime or ZonedDateTime, "
        f"got {type(value)!r}"
    )


# Difference and rounding engine
#
# Durations are handled as (years, months, weeks, days, time_ns) tuples.
# Plain values are measured on the local timeline (local nanoseconds,
# days always 24 hours), zoned values on the exact timeline.


def _tuple_sign(dur: _DurationTuple) -> int:
    for value in dur:
        if value:
            return sign_of(value)
    return 0


def _exact_tuple(total: int, largest: Unit) -> _DurationTuple:
    """Split nanoseconds into days (of 24 hours) and time"""
    if largest in DATE_UNITS:
        days = trunc_div(total, NS_PER_DAY)
        return 0, 0, 0, days, total - days * NS_PER_DAY
    return 0, 0, 0, 0, total


def _add_date_to_origin(
    origin: PlainDateTime,
    cal: CalendarProtocol,
    years: int,
    months: int,
    weeks: int,
    days: int,
) -> int:
    """Local nanoseconds of the origin with date units added"""
    date = cal.date_add(
        origin._date, _date_duration(years, months, weeks, days), "constrain"
    )
    return _check_local_ns(date._epoch_days() * NS_PER_DAY + origin._tod)


def _anchor_ns(tz: Optional[TimeZoneProtocol], local: int) -> int:
    return local if tz is None else _resolve_local(tz, local, "compatible")


def _add_plain(
    dt: PlainDateTime, dur: _DurationTuple, overflow: Overflow
) -> PlainDateTime:
    years, months, weeks, days, time_ns = dur
    day_carry, tod = divmod(dt._tod + time_ns, NS_PER_DAY)
    date = dt._date._cal.date_add(
        dt._date,
        _date_duration(years, months, weeks, days + day_carry),
        overflow,
    )
    return PlainDateTime._from_parts(date, tod)


def _add_zoned(
    ns: int,
    tz: TimeZoneProtocol,
    cal: CalendarProtocol,
    dur: _DurationTuple,
    overflow: Overflow,
) -> int:
    years, months, weeks, days, time_ns = dur
    if not (years or months or weeks or days):
        return _check_instant_ns(ns + time_ns)
    local_days, tod = divmod(ns + _offset_ns(tz, ns), NS_PER_DAY)
    date = cal.date_add(
        PlainDate._from_epoch_days(local_days, cal),
        _date_duration(years, months, weeks, days),
        overflow,
    )
    local = _check_local_ns(date._epoch_days() * NS_PER_DAY + tod)
    return _check_instant_ns(_resolve_local(tz, local, "compatible") + time_ns)


def _difference_instant(
    ns1: int,
    ns2: int,
    largest: Unit,
    increment: int,
    smallest: Unit,
    mode: RoundingMode,
) -> Duration:
    diff = round_to_increment(
        ns2 - ns1, UNIT_NANOS[smallest] * increment, mode
    )
    return Duration._from_tuple((0, 0, 0, 0, diff), largest)


def _difference_plain(
    one: PlainDateTime, two: PlainDateTime, largest: Unit
) -> _DurationTuple:
    time_ns = two._tod - one._tod
    time_sign = sign_of(time_ns)
    end = two._date
    # Borrow a day if the time runs against the direction of the dates
    if time_sign and time_sign == -compare_iso_date(
        end._iso(), one._date._iso()
    ):
        end = PlainDate._from_epoch_days(
            end._epoch_days() + time_sign, end._cal
        )
        time_ns -= time_sign * NS_PER_DAY
    date_diff = one._date._cal.date_until(
        one._date, end, larger_unit("day", largest)
    )
    days = date_diff.days
    if largest in TIME_UNITS:
        time_ns += days * NS_PER_DAY
        days = 0
    return date_diff.years, date_diff.months, date_diff.weeks, days, time_ns


def _difference_plain_rounded(
    one: PlainDateTime,
    two: PlainDateTime,
    largest: Unit,
    increment: int,
    smallest: Unit,
    mode: RoundingMode,
) -> Duration:
    dest = two._local_ns()
    if one._local_ns() == dest:
        return Duration()
    dur = _difference_plain(one, two, largest)
    if smallest != "nanosecond" or increment != 1:
        dur = _round_relative(
            dur,
            dest,
            one,
            None,
            one._date._cal,
            largest,
            increment,
            smallest,
            mode,
        )
    return Duration._from_tuple(dur, largest)


def _difference_zoned(
    ns1: int,
    ns2: int,
    tz: TimeZoneProtocol,
    cal: CalendarProtocol,
    largest: Unit,
) -> _DurationTuple:
    if ns1 == ns2:
        return 0, 0, 0, 0, 0
    start = PlainDateTime._from_local_ns(ns1 + _offset_ns(tz, ns1), cal)
    end = PlainDateTime._from_local_ns(ns2 + _offset_ns(tz, ns2), cal)
    sign = sign_of(ns2 - ns1)
    # Going forward, the wall clock may need to be corrected twice: once
    # for the time of day, and once for a DST transition.
    max_correction = 1 if sign == -1 else 2
    correction = int(sign_of(end._tod - start._tod) == -sign)
    end_days = end._date._epoch_days()
    while True:
        mid_date = PlainDate._from_epoch_days(
            end_days - correction * sign, cal
        )
        mid_ns = _resolve_local(
            tz, mid_date._epoch_days() * NS_PER_DAY + start._tod, "compatible"
        )
        time_ns = ns2 - mid_ns
        correction += 1
        if sign_of(time_ns) != -sign:
            break
        elif correction > max_correction:
            raise ValueError("Difference can't be computed in this time zone")
    date_diff = cal.date_until(
        start._date, mid_date, larger_unit("day", largest)
    )
    return (
        date_diff.years,
        date_diff.months,
        date_diff.weeks,
        date_diff.days,
        time_ns,
    )


def _difference_zoned_rounded(
    ns1: int,
    ns2: int,
    tz: TimeZoneProtocol,
    cal: CalendarProtocol,
    largest: Unit,
    increment: int,
    smallest: Unit,
    mode: RoundingMode,
) -> Duration:
    if largest in TIME_UNITS:
        return _difference_instant(
            ns1, ns2, largest, increment, smallest, mode
        )
    dur = _difference_zoned(ns1, ns2, tz, cal, largest)
    if (smallest != "nanosecond" or increment != 1) and ns1 != ns2:
        origin = PlainDateTime._from_local_ns(ns1 + _offset_ns(tz, ns1), cal)
        dur = _round_relative(
            dur, ns2, origin, tz, cal, largest, increment, smallest, mode
        )
    return Duration._from_tuple(dur, largest)


def _total_plain(
    one: PlainDateTime, two: PlainDateTime, unit: Unit
) -> Fraction:
    dest = two._local_ns()
    if one._local_ns() == dest:
        return Fraction(0)
    dur = _difference_plain(one, two, unit)
    if unit not in CALENDAR_UNITS:
        return Fraction(dur[3] * NS_PER_DAY + dur[4], UNIT_NANOS[unit])
    sign = -1 if _tuple_sign(dur) < 0 else 1
    return _nudge_calendar(
        sign, dur, dest, one, None, one._date._cal, 1, unit, "trunc"
    )[3]


def _total_zoned(
    ns1: int,
    ns2: int,
    tz: TimeZoneProtocol,
    cal: CalendarProtocol,
    unit: Unit,
) -> Fraction:
    if unit in TIME_UNITS:
        return Fraction(ns2 - ns1, UNIT_NANOS[unit])
    elif ns1 == ns2:
        return Fraction(0)
    dur = _difference_zoned(ns1, ns2, tz, cal, unit)
    origin = PlainDateTime._from_local_ns(ns1 + _offset_ns(tz, ns1), cal)
    sign = -1 if _tuple_sign(dur) < 0 else 1
    return _nudge_calendar(
        sign, dur, ns2, origin, tz, cal, 1, unit, "trunc"
    )[3]


def _round_relative(
    dur: _DurationTuple,
    dest: int,
    origin: PlainDateTime,
    tz: Optional[TimeZoneProtocol],
    cal: CalendarProtocol,
    largest: Unit,
    increment: int,
    smallest: Unit,
    mode: RoundingMode,
) -> _DurationTuple:
    """Round a difference from the origin to the destination.

    ``dest`` is in local nanoseconds without a zone, and in epoch
    nanoseconds with one. Units without a fixed length (calendar units,
    and days in a zone) are rounded by measuring the actual span between
    the two candidate results. After rounding up, the result is bubbled
    up into larger units where it reaches them (e.g. P1M30D -> P2M).
    """
    sign = -1 if _tuple_sign(dur) < 0 else 1
    if smallest in CALENDAR_UNITS or (tz is not None and smallest == "day"):
        dur, nudged, expanded, _ = _nudge_calendar(
            sign, dur, dest, origin, tz, cal, increment, smallest, mode
        )
    elif tz is not None:
        dur, nudged, expanded = _nudge_zoned_time(
            sign, dur, origin, tz, cal, increment, smallest, mode
        )
    else:
        dur, nudged, expanded = _nudge_day_or_time(
            dur, dest, largest, increment, smallest, mode
        )
    if expanded and smallest != "week":
        dur = _bubble(
            sign,
            dur,
            nudged,
            origin,
            tz,
            cal,
            largest,
            larger_unit(smallest, "day"),
        )
    return dur


def _nudge_calendar(
    sign: int,
    dur: _DurationTuple,
    dest: int,
    origin: PlainDateTime,
    tz: Optional[TimeZoneProtocol],
    cal: CalendarProtocol,
    increment: int,
    unit: Unit,
    mode: RoundingMode,
) -> tuple[_DurationTuple, int, bool, Fraction]:
    """Round to a calendar unit (or day in a zone) by interpolating
    between the truncated result and the next increment"""
    years, months, weeks, days, _ = dur
    if unit == "year":
        r1 = round_to_increment(years, increment, "trunc")
        r2 = r1 + increment * sign
        start, end = (r1, 0, 0, 0), (r2, 0, 0, 0)
    elif unit == "month":
        r1 = round_to_increment(months, increment, "trunc")
        r2 = r1 + increment * sign
        start, end = (years, r1, 0, 0), (years, r2, 0, 0)
    elif unit == "week":
        weeks_start = cal.date_add(
            origin._date, _date_duration(years, months, 0, 0), "constrain"
        )
        weeks_end = PlainDate._from_epoch_days(
            weeks_start._epoch_days() + days, cal
        )
        extra = cal.date_until(weeks_start, weeks_end, "week").weeks
        r1 = round_to_increment(weeks + extra, increment, "trunc")
        r2 = r1 + increment * sign
        start, end = (years, months, r1, 0), (years, months, r2, 0)
    else:
        r1 = round_to_increment(days, increment, "trunc")
        r2 = r1 + increment * sign
        start, end = (years, months, weeks, r1), (years, months, weeks, r2)

    start_ns = _anchor_ns(tz, _add_date_to_origin(origin, cal, *start))
    end_ns = _anchor_ns(tz, _add_date_to_origin(origin, cal, *end))
    if start_ns == end_ns:
        raise ValueError(f"Can't round to {unit}: it has no length here")
    progress = Fraction(dest - start_ns, end_ns - start_ns)
    total = r1 + progress * increment * sign
    if round_to_increment(total, increment, mode) == r2:
        return (*end, 0), end_ns, True, total
    return (*start, 0), start_ns, False, total


def _nudge_zoned_time(
    sign: int,
    dur: _DurationTuple,
    origin: PlainDateTime,
    tz: TimeZoneProtocol,
    cal: CalendarProtocol,
    increment: int,
    unit: Unit,
    mode: RoundingMode,
) -> tuple[_DurationTuple, int, bool]:
    """Round the time part, which may not exceed the real length of the
    last day. If it reaches it, the day is counted and the remainder rounded."""
    years, months, weeks, days, time_ns = dur
    start_local = _add_date_to_origin(origin, cal, years, months, weeks, days)
    start_ns = _resolve_local(tz, start_local, "compatible")
    end_ns = _resolve_local(
        tz, _check_local_ns(start_local + sign * NS_PER_DAY), "compatible"
    )
    increment_ns = UNIT_NANOS[unit] * increment
    rounded = round_to_increment(time_ns, increment_ns, mode)
    beyond = rounded - (end_ns - start_ns)
    if sign_of(beyond) != -sign:
        rounded = round_to_increment(beyond, increment_ns, mode)
        return (
            (years, months, weeks, days + sign, rounded),
            end_ns + rounded,
            True,
        )
    return (years, months, weeks, days, rounded), start_ns + rounded, False


def _nudge_day_or_time(
    dur: _DurationTuple,
    dest: int,
    largest: Unit,
    increment: int,
    unit: Unit,
    mode: RoundingMode,
) -> tuple[_DurationTuple, int, bool]:
    """Round days and time together, with days of 24 hours"""
    years, months, weeks, days, time_ns = dur
    total = time_ns + days * NS_PER_DAY
    rounded = round_to_increment(total, UNIT_NANOS[unit] * increment, mode)
    whole_days = trunc_div(total, NS_PER_DAY)
    rounded_days = trunc_div(rounded, NS_PER_DAY)
    expanded = sign_of(rounded_days - whole_days) == sign_of(total)
    nudged = dest + rounded - total
    if largest in DATE_UNITS:
        return (
            (
                years,
                months,
                weeks,
                rounded_days,
                rounded - rounded_days * NS_PER_DAY,
            ),
            nudged,
            expanded,
        )
    return (years, months, weeks, 0, rounded), nudged, expanded


def _bubble(
    sign: int,
    dur: _DurationTuple,
    nudged: int,
    origin: PlainDateTime,
    tz: Optional[TimeZoneProtocol],
    cal: CalendarProtocol,
    largest: Unit,
    start_unit: Unit,
) -> _DurationTuple:
    """Carry a rounded result into larger units, e.g. P1M30D -> P2M,
    as long as the rounded end point reaches them"""
    result = dur
    for unit in reversed(UNITS[unit_index(largest) : unit_index(start_unit)]):
        if unit == "week" and largest != "week":
            continue
        years, months, weeks, _, _ = result
        if unit == "year":
            end = (years + sign, 0, 0, 0)
        elif unit == "month":
            end = (years, months + sign, 0, 0)
        else:
            end = (years, months, weeks + sign, 0)
        end_ns = _anchor_ns(tz, _add_date_to_origin(origin, cal, *end))
        if sign_of(nudged - end_ns) == -sign:
            break
        result = (*end, 0)
    return result
