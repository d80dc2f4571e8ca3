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
"""Building blocks shared by all modules: base classes, options and exceptions."""

from __future__ import annotations

import re
from math import floor
from typing import TYPE_CHECKING, Literal, no_type_check

__all__ = [
    "Unit",
    "RoundingMode",
    "Overflow",
    "OffsetOption",
    "UnsupportedOperation",
    "IncomparableTimeZones",
    "InvalidOffsetError",
]

Unit = Literal[
    "year",
    "month",
    "week",
    "day",
    "hour",
    "minute",
    "second",
    "millisecond",
    "microsecond",
    "nanosecond",
]
RoundingMode = Literal["halfExpand", "ceil", "trunc", "floor"]
Overflow = Literal["constrain", "reject"]
OffsetOption = Literal["use", "prefer", "ignore", "reject"]

UNITS: tuple[Unit, ...] = (
    "year",
    "month",
    "week",
    "day",
    "hour",
    "minute",
    "second",
    "millisecond",
    "microsecond",
    "nanosecond",
)
CALENDAR_UNITS = frozenset(UNITS[:3])
DATE_UNITS = frozenset(UNITS[:4])
TIME_UNITS = frozenset(UNITS[4:])

_UNIT_INDEX = {u: i for i, u in enumerate(UNITS)}
_PLURALS = {u + "s": u for u in UNITS}
_ROUNDING_MODES = ("halfExpand", "ceil", "trunc", "floor")
_NEGATED_MODES = {"ceil": "floor", "floor": "ceil"}
_MAX_INCREMENT = 1_000_000_000


class _ImmutableBase:
    __slots__ = ()

    # Immutable classes don't need to be copied
    @no_type_check
    def __copy__(self):
        return self

    @no_type_check
    def __deepcopy__(self, _):
        return self


if TYPE_CHECKING:
    from typing import final
else:

    def final(cls):

        def init_subclass_not_allowed(cls, **kwargs):  # pragma: no cover
            raise TypeError("Subclassing not allowed")

        cls.__init_subclass__ = init_subclass_not_allowed
        return cls


class UnsupportedOperation(NotImplementedError):
    """The operation is not available for this kind of value.

    Raised for operations on rule-based time zones that have no agreed
    definition, such as serialization or calendar-unit differences.
    """

    @classmethod
    def for_rule_zone(cls, what: str, tzid: str) -> UnsupportedOperation:
        return cls(
            f"{what} is not supported for rule-based time zone {tzid!r}"
        )


class IncomparableTimeZones(TypeError):
    """Two time zones can't be compared for equality

    Only IANA and offset time zones have an identity that can be compared.
    """


class InvalidOffsetError(ValueError):
    """An explicit offset is not valid for the given zone and local time"""


def larger_unit(a: Unit, b: Unit) -> Unit:
    return a if _UNIT_INDEX[a] <= _UNIT_INDEX[b] else b


def unit_index(u: Unit) -> int:
    return _UNIT_INDEX[u]


def check_unit(
    value: object,
    name: str,
    allowed: frozenset[str] | tuple[str, ...] = UNITS,
) -> Unit:
    """Normalize a unit option, accepting plural spellings"""
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a string, got {type(value)!r}")
    unit = _PLURALS.get(value, value)
    if unit not in allowed:
        raise ValueError(f"Invalid {name}: {value!r}")
    return unit  # type: ignore[return-value]


def check_rounding_mode(value: object) -> RoundingMode:
    if value not in _ROUNDING_MODES:
        raise ValueError(
            f"rounding_mode must be one of {', '.join(_ROUNDING_MODES)}; "
            f"got {value!r}"
        )
    return value  # type: ignore[return-value]


def negate_rounding_mode(mode: RoundingMode) -> RoundingMode:
    return _NEGATED_MODES.get(mode, mode)  # type: ignore[return-value]


def check_increment(value: object) -> int:
    """Check a rounding increment. Fractional values are floored."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"rounding_increment must be a number, got {value!r}")
    if value != value or value in (float("inf"), float("-inf")):
        raise ValueError(f"Invalid rounding_increment: {value!r}")
    increment = floor(value)
    if increment < 1 or increment > _MAX_INCREMENT:
        raise ValueError(f"rounding_increment out of range: {value!r}")
    return increment


def check_overflow(value: object) -> Overflow:
    if value not in ("constrain", "reject"):
        raise ValueError(
            f"overflow must be 'constrain' or 'reject', got {value!r}"
        )
    return value  # type: ignore[return-value]


def check_disambiguation(value: object) -> str:
    if value not in ("compatible", "earlier", "later", "reject"):
        raise ValueError(
            "disambiguation must be 'compatible', 'earlier', 'later', "
            f"or 'reject', got {value!r}"
        )
    return value  # type: ignore[return-value]


def check_offset_option(value: object) -> OffsetOption:
    if value not in ("use", "prefer", "ignore", "reject"):
        raise ValueError(
            "offset must be 'use', 'prefer', 'ignore', or 'reject', "
            f"got {value!r}"
        )
    return value  # type: ignore[return-value]


def format_offset(ns: int) -> str:
    """Format an offset as ``±HH:MM``, adding seconds only when nonzero"""
    sign = "-" if ns < 0 else "+"
    secs, frac = divmod(abs(ns), 1_000_000_000)
    hrs, secs = divmod(secs, 3600)
    mins, secs = divmod(secs, 60)
    if frac:
        fraction = f"{frac:09d}".rstrip("0")
        return f"{sign}{hrs:02d}:{mins:02d}:{secs:02d}.{fraction}"
    elif secs:
        return f"{sign}{hrs:02d}:{mins:02d}:{secs:02d}"
    return f"{sign}{hrs:02d}:{mins:02d}"


_match_offset = re.compile(
    r"([+-])(\d{2}):?(\d{2})(?::?(\d{2})(?:[.,](\d{1,9}))?)?", re.ASCII
).fullmatch


def parse_offset(s: str) -> int:
    """Parse ``±HH:MM[:SS[.fff]]`` into nanoseconds"""
    if (match := _match_offset(s)) is None:
        raise ValueError(f"Invalid offset: {s!r}")
    sign, hrs, mins, secs, frac = match.groups()
    if int(hrs) > 23 or int(mins) > 59 or int(secs or 0) > 59:
        raise ValueError(f"Invalid offset: {s!r}")
    total = (
        (int(hrs) * 3600 + int(mins) * 60 + int(secs or 0)) * 1_000_000_000
        + int((frac or "").ljust(9, "0"))
    )
    return -total if sign == "-" else total
