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
"""Parsing of TZif files into transition tables

The tables answer both directions of the offset question: which offset
applies at an exact time, and which offset(s) may apply to a local time.
"""

from __future__ import annotations

import struct
from bisect import bisect_left, bisect_right
from io import BytesIO
from typing import IO, NamedTuple, Optional, Sequence, final

from .common import Ambiguity, Fold, Gap, Unambiguous
from .posix import TzStr

EpochSecs = int
Offset = int

EPOCH_SECS_MIN = -62135596800
EPOCH_SECS_MAX = 253402300799


@final
class Tzif:
    """The offsets of a zone over time, enough to represent a TZif file.

    After the last explicit transition, the POSIX TZ string (if any)
    takes over. A table without transitions represents a bare POSIX TZ
    string, and a table without a ``key`` an anonymous zone.
    """

    __slots__ = (
        "__weakref__",
        "key",
        "_utc_times",
        "_utc_offsets",
        "_local_ends",
        "_local_offsets",
        "_local_shifts",
        "_change_times",
        "_posix",
    )

    # The IANA tz ID (e.g. "Europe/Amsterdam"). Not part of the file,
    # but always the ID the data was loaded for.
    key: Optional[str]

    # From _utc_times[i] onwards, the offset is _utc_offsets[i]
    _utc_times: tuple[EpochSecs, ...]
    _utc_offsets: tuple[Offset, ...]

    # Until the local time _local_ends[i], the offset is
    # _local_offsets[i]. At that moment it shifts by _local_shifts[i].
    _local_ends: tuple[EpochSecs, ...]
    _local_offsets: tuple[Offset, ...]
    _local_shifts: tuple[Offset, ...]

    # The UTC times at which the offset actually changes
    _change_times: tuple[EpochSecs, ...]

    # Without a POSIX TZ string, there is at least one transition
    _posix: Optional[TzStr]

    def __init__(
        self,
        key: Optional[str],
        transitions: Sequence[tuple[EpochSecs, Offset]],
        posix: Optional[TzStr] = None,
    ):
        self.key = key
        self._utc_times = tuple(t for t, _ in transitions)
        self._utc_offsets = tuple(offset for _, offset in transitions)
        self._local_ends, self._local_offsets, self._local_shifts = (
            _local_transitions(transitions)
        )
        self._change_times = tuple(
            t
            for (t, offset), (_, prev) in zip(transitions[1:], transitions)
            if offset != prev and t != EPOCH_SECS_MIN
        )
        self._posix = posix

    @classmethod
    def fixed(cls, key: Optional[str], offset: Offset) -> Tzif:
        return cls(key, (), TzStr(offset))

    def offset_for_instant(self, t: EpochSecs) -> Offset:
        """The UTC offset at the given exact time"""
        idx = bisect_right(self._utc_times, t)
        if idx < len(self._utc_times):
            return self._utc_offsets[max(0, idx - 1)]
        elif self._posix is not None:
            return self._posix.offset_for_instant(t)
        # Without a POSIX TZ string, the last offset continues
        return self._utc_offsets[-1]

    def ambiguity_for_local(self, t: EpochSecs) -> Ambiguity:
        """The offset(s) at the given local time, in local epoch seconds"""
        idx = bisect_right(self._local_ends, t)
        if idx < len(self._local_ends):
            offset = self._local_offsets[idx]
            shift = self._local_shifts[idx]
            # Only the last |shift| seconds before a change are ambiguous
            if t < self._local_ends[idx] - abs(shift) or shift == 0:
                return Unambiguous(offset)
            elif shift < 0:
                return Fold(offset, offset + shift)
            return Gap(offset + shift, offset)
        elif self._posix is not None:
            return self._posix.ambiguity_for_local(t)
        return Unambiguous(self._utc_offsets[-1])

    def next_transition(self, t: EpochSecs) -> Optional[EpochSecs]:
        """The first offset change strictly after the given time"""
        changes = self._change_times
        idx = bisect_right(changes, t)
        if idx < len(changes):
            return changes[idx]
        elif self._posix is None:
            return None
        elif self._utc_times:
            t = max(t, self._utc_times[-1])
        return self._posix.next_transition(t)

    def prev_transition(self, t: EpochSecs) -> Optional[EpochSecs]:
        """The last offset change strictly before the given time"""
        last_explicit = self._utc_times[-1] if self._utc_times else None
        if self._posix is not None and (
            last_explicit is None or t > last_explicit
        ):
            candidate = self._posix.prev_transition(t)
            if candidate is not None and (
                last_explicit is None or candidate > last_explicit
            ):
                return candidate
        idx = bisect_left(self._change_times, t)
        return self._change_times[idx - 1] if idx else None

    # NOTE: this equality check needs to be fast, since it's used to check
    # whether two zoned values share a zone.
    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        # Two instances may represent the same zone due to cache clearing.
        elif type(other) is Tzif:
            return (
                self.key == other.key
                and self._utc_times == other._utc_times
                and self._utc_offsets == other._utc_offsets
                and self._posix == other._posix
            )
        return NotImplemented  # pragma: no cover

    __hash__ = object.__hash__

    def __repr__(self) -> str:
        return f"Tzif({self.key!r})"

    @classmethod
    def parse_posix(cls, s: str, key: Optional[str] = None) -> Tzif:
        """Create a table from a POSIX TZ string"""
        return cls(key, (), TzStr.parse(s))

    @classmethod
    def parse_tzif(cls, data: bytes, key: Optional[str] = None) -> Tzif:
        """Create a table from TZif file data"""
        stream = BytesIO(data)
        try:
            return _read_body(_read_header(stream), stream, key)
        except struct.error:
            raise ValueError("Truncated TZif data") from None


def clamp_epoch_secs(value: int) -> EpochSecs:
    return max(EPOCH_SECS_MIN, min(EPOCH_SECS_MAX, value))


# magic, version, 15 reserved bytes, then six counts
_HEADER = struct.Struct(">4sc15x6l")


class _Header(NamedTuple):
    version: int
    isutcnt: int
    isstdcnt: int
    leapcnt: int
    timecnt: int
    typecnt: int
    charcnt: int

    @property
    def v1_body_size(self) -> int:
        return (
            self.timecnt * 5
            + self.typecnt * 6
            + self.charcnt
            + self.leapcnt * 8
            + self.isstdcnt
            + self.isutcnt
        )


def _read_header(data: IO[bytes]) -> _Header:
    raw = data.read(_HEADER.size)
    if raw[:4] != b"TZif":
        raise ValueError("Invalid header value")
    elif len(raw) < _HEADER.size:
        raise ValueError("Truncated TZif header")
    _, version, *counts = _HEADER.unpack(raw)
    if version == b"\x00":
        return _Header(1, *counts)
    elif version.isdigit():
        return _Header(int(version), *counts)
    raise ValueError("Invalid header value")  # pragma: no cover


def _read_body(
    header: _Header, data: IO[bytes], key: Optional[str]
) -> Tzif:
    if header.version >= 2:
        # The 32-bit body is followed by a header and 64-bit body
        if len(data.read(header.v1_body_size)) < header.v1_body_size:
            raise ValueError("Truncated TZif data")
        header = _read_header(data)
        times = map(
            clamp_epoch_secs,
            struct.unpack(
                f">{header.timecnt}q", data.read(8 * header.timecnt)
            ),
        )
    else:
        times = iter(
            struct.unpack(
                f">{header.timecnt}l", data.read(4 * header.timecnt)
            )
        )
    indices = data.read(header.timecnt)
    offsets = [
        utoff
        for utoff, in struct.iter_unpack(
            ">l2x", data.read(6 * header.typecnt)
        )
    ]
    if not offsets:
        raise ValueError("TZif data without any offsets")
    data.read(header.charcnt)  # abbreviations aren't used

    transitions = [(t, offsets[i]) for t, i in zip(times, indices)]

    posix = None
    if header.version >= 2:
        # Skip leap seconds, indicators and the newline before the footer
        data.read(header.leapcnt * 12 + header.isstdcnt + header.isutcnt + 1)
        footer = data.read().split(b"\n", 1)[0]
        if footer:  # pragma: no branch
            posix = TzStr.parse(footer.decode("ascii"))
    if transitions or posix is None:
        # The first offset applies before any transition
        transitions.insert(0, (EPOCH_SECS_MIN, offsets[0]))
    return Tzif(key, transitions, posix)


def _local_transitions(
    transitions: Sequence[tuple[EpochSecs, Offset]],
) -> tuple[tuple[EpochSecs, ...], tuple[Offset, ...], tuple[Offset, ...]]:
    """The local-time view of the transitions: for each, the local time
    at which the change is complete, the offset before and the shift"""
    ends: list[EpochSecs] = []
    before: list[Offset] = []
    shifts: list[Offset] = []
    for (_, prev), (t, offset) in zip(transitions, transitions[1:]):
        ends.append(clamp_epoch_secs(t + max(prev, offset)))
        before.append(prev)
        shifts.append(offset - prev)
    return tuple(ends), tuple(before), tuple(shifts)
