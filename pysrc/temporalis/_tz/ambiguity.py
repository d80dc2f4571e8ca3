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
"""Resolving local times to exact times.

A local time corresponds to zero (a gap), one, or two (a fold) exact
times in a zone. Disambiguation picks exactly one of them, or raises.
"""

from __future__ import annotations

from typing import Callable

from .._math import NS_PER_DAY, NS_PER_SEC
from .common import Disambiguate
from .tzif import Tzif

EpochNs = int
LocalNs = int


class RepeatedTime(ValueError):
    """A local time is repeated in a timezone, e.g. because of DST"""

    @classmethod
    def _for_tz(cls, description: str) -> RepeatedTime:
        return cls(f"{description} is repeated")


class SkippedTime(ValueError):
    """A local time is skipped in a timezone, e.g. because of DST"""

    @classmethod
    def _for_tz(cls, description: str) -> SkippedTime:
        return cls(f"{description} is skipped")


def possible_instants_tzif(tz: Tzif, local: LocalNs) -> list[EpochNs]:
    secs, subsec = divmod(local, NS_PER_SEC)
    return [
        c * NS_PER_SEC + subsec
        for c in tz.ambiguity_for_local(secs).candidates(secs)
    ]


def possible_instants_by_offsets(
    offset_for_instant: Callable[[int], int], local: LocalNs
) -> list[EpochNs]:
    """Find the possible instants given only a way to look up the offset
    (in seconds) at an exact time.

    The candidates are the offsets in force a day before and a day after.
    This finds all solutions as long as offsets don't change more than once
    within two days.
    """
    secs, subsec = divmod(local, NS_PER_SEC)
    offsets = {
        offset_for_instant(secs - 86400),
        offset_for_instant(secs + 86400),
    }
    # A larger offset gives an earlier instant
    return [
        (secs - offset) * NS_PER_SEC + subsec
        for offset in sorted(offsets, reverse=True)
        if offset_for_instant(secs - offset) == offset
    ]


def resolve_ambiguity(
    local: LocalNs,
    disambiguate: Disambiguate,
    possible_for: Callable[[LocalNs], list[EpochNs]],
    offset_for: Callable[[EpochNs], int],
    describe: Callable[[], str],
) -> EpochNs:
    """Pick one exact time for a local time.

    ``offset_for`` gives the offset in nanoseconds at an exact time.
    In a fold, ``compatible`` picks the earlier time. In a gap, the local
    time is shifted by the size of the gap: ``compatible`` and ``later``
    shift forward, ``earlier`` shifts backward.
    """
    possible = possible_for(local)
    if len(possible) == 1:
        return possible[0]
    elif possible:
        if disambiguate in ("compatible", "earlier"):
            return possible[0]
        elif disambiguate == "later":
            return possible[-1]
        raise RepeatedTime._for_tz(describe())

    if disambiguate == "reject":
        raise SkippedTime._for_tz(describe())
    gap = offset_for(local + NS_PER_DAY) - offset_for(local - NS_PER_DAY)
    if disambiguate == "earlier":
        shifted = possible_for(local - gap)
        if shifted:
            return shifted[0]
    elif shifted := possible_for(local + gap):
        return shifted[-1]
    # only possible with several transitions close together
    raise SkippedTime._for_tz(describe())  # pragma: no cover
