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
"""Time zone database access and caching."""

from __future__ import annotations

import logging
import os
import os.path
import sys
import sysconfig
from collections import OrderedDict
from importlib.resources import files
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Iterator, NewType, Optional
from weakref import WeakValueDictionary

from .._common import parse_offset
from . import system
from .tzif import Tzif

__all__ = [
    "Environment",
    "TimeZoneNotFoundError",
    "DEFAULT_ENVIRONMENT",
]

_log = logging.getLogger(__name__)

_NOGIL = hasattr(sys, "_is_gil_enabled") and not sys._is_gil_enabled()

# OrderedDict is thread-unsafe in Python < 3.14 under free-threading.
# Thus we need an extra lock to ensure thread-safety of our LRU cache.
if TYPE_CHECKING or (
    _NOGIL and sys.version_info < (3, 14)
):  # pragma: no cover
    from threading import Lock as _Lock
else:

    class _Lock:
        def __enter__(self) -> None:
            pass

        def __exit__(self, *args) -> None:
            pass


# Alias for a TZ key that has been confirmed not to be a path traversal
# or contain other "bad" characters.
SafeTzId = NewType("SafeTzId", str)


class TimeZoneNotFoundError(ValueError):
    """A time zone with the given ID was not found"""

    @classmethod
    def for_key(cls, key: str) -> TimeZoneNotFoundError:
        return cls(f"No time zone found for key: {key!r}")


class Environment:
    """The source of IANA time zone data.

    Zones are looked up in the directories of the ``tzpath`` first, then in
    the ``tzdata`` package. Loaded zones are cached: the design is based
    off that of :mod:`zoneinfo`, keeping a few recently used zones alive
    and sharing all others for as long as they're referenced.

    Whether an identifier is an IANA zone is always decided by asking an
    environment, never by guessing from the identifier itself.
    """

    _LRU_SIZE = 8

    __slots__ = ("_tzpath", "_lru", "_lookup", "_lock", "_system_tz")

    def __init__(self, tzpath: Optional[Iterable[str]] = None) -> None:
        self._tzpath: tuple[str, ...] = ()
        self._lru: OrderedDict[str, Tzif] = OrderedDict()
        self._lookup: WeakValueDictionary[str, Tzif] = WeakValueDictionary()
        self._lock = _Lock()
        self._system_tz: Optional[Tzif] = None
        self.reset_tzpath(tzpath)

    @property
    def tzpath(self) -> tuple[str, ...]:
        return self._tzpath

    def reset_tzpath(self, to: Optional[Iterable[str]] = None) -> None:
        """Set the directories to search for TZif files.
        Without an argument, read them from the ``PYTHONTZPATH`` variable
        or the interpreter's configuration."""
        if to is None:
            tzpath = tzpath_from_env()
        elif isinstance(to, (str, bytes)):
            raise TypeError(
                "tzpath must be an iterable of paths, not a string"
            )
        else:
            tzpath = tuple(map(os.fspath, to))  # type: ignore[arg-type]
            if not all(map(os.path.isabs, tzpath)):
                raise ValueError("tzpath must contain only absolute paths")
        _log.debug("tzpath set to %r", tzpath)
        self._tzpath = tzpath
        self.clear_cache()

    def clear_cache(self, only_keys: Optional[Iterable[str]] = None) -> None:
        if only_keys is None:
            self._lookup.clear()
            with self._lock:
                self._lru.clear()
            _log.debug("tz cache cleared")
        else:
            keys = tuple(only_keys)
            with self._lock:
                for k in keys:
                    self._lookup.pop(k, None)
                    self._lru.pop(k, None)
            _log.debug("tz cache cleared for %r", keys)

    def get(self, key: str) -> Tzif:
        """Load the zone with the given ID.

        Raises :class:`TimeZoneNotFoundError` if it can't be found.
        """
        if not isinstance(key, str):
            raise TypeError(
                f"time zone ID must be a string, got {type(key)!r}"
            )
        instance = self._lookup.get(key)
        if instance is None:
            # Concurrency note: we accept the possibility of multiple threads
            # loading the same zone at the same time, since Tzif instances
            # are immutable after construction. The last one to write wins.
            instance = self._lookup.setdefault(key, self._load(key))

        with self._lock:
            self._lru[key] = self._lru.pop(key, instance)
            if len(self._lru) > self._LRU_SIZE:
                try:
                    self._lru.popitem(last=False)
                except KeyError:  # pragma: no cover
                    pass  # possible if other threads are clearing too

        return instance

    def is_available(self, key: str) -> bool:
        """Whether the given ID names a zone in this environment"""
        try:
            self.get(key)
        except TimeZoneNotFoundError:
            return False
        return True

    def available_timezones(self) -> set[str]:
        """Gather the set of all available IANA time zone IDs.

        Warning
        -------
        This may open a large number of files, since the first few bytes
        of zone files must be read to determine if they are valid.
        """
        zones = set()
        try:
            zones.update(
                map(
                    str.strip,
                    files("tzdata").joinpath("zones").read_text().splitlines(),
                )
            )
        except (ImportError, FileNotFoundError):
            pass

        for base in self._tzpath:
            zones.update(_find_all_tznames(Path(base)))

        zones.discard("posixrules")  # a special file that shouldn't be included
        zones.discard("")
        return zones

    def system_tz(self) -> Tzif:
        # Lock-free: loading is side-effect free and the last writer wins.
        if self._system_tz is None:
            self._system_tz = self._read_system_tz()
        return self._system_tz

    def reset_system_tz(self) -> None:
        """Re-read the system time zone"""
        self._system_tz = self._read_system_tz()

    def _read_system_tz(self) -> Tzif:
        kind, tz_value = system.detect()
        _log.debug("system time zone detected as %s %r", kind, tz_value)
        if kind == "key":
            return self.get(tz_value)
        elif kind == "key_or_posix":
            try:
                return self.get(tz_value)
            except TimeZoneNotFoundError:
                return Tzif.parse_posix(tz_value)
        else:  # a file without a known ID
            with open(tz_value, "rb") as f:
                return Tzif.parse_tzif(f.read())

    def _load(self, key: str) -> Tzif:
        if key == "UTC":
            return Tzif.fixed(key, 0)
        elif key[:1] in "+-":
            return _fixed_offset_tz(key)
        safe_key = validate_tzid(key)
        tzif = self._try_tzif_from_path(safe_key) or _tzif_from_tzdata(
            safe_key
        )
        if not tzif.startswith(b"TZif"):
            # We've found a file, but doesn't look like a TZif file.
            # Stop here instead of getting a cryptic error later.
            raise TimeZoneNotFoundError.for_key(key)
        return Tzif.parse_tzif(tzif, key)

    def _try_tzif_from_path(self, key: SafeTzId) -> Optional[bytes]:
        for search_path in self._tzpath:
            target = os.path.join(search_path, key)
            if os.path.isfile(target):
                _log.debug("loading %r from %s", key, target)
                with open(target, "rb") as f:
                    return f.read()
        return None

    def __repr__(self) -> str:
        return f"Environment(tzpath={self._tzpath!r})"


def _fixed_offset_tz(key: str) -> Tzif:
    try:
        offset_ns = parse_offset(key)
    except ValueError:
        raise TimeZoneNotFoundError.for_key(key) from None
    secs, subsec = divmod(offset_ns, 1_000_000_000)
    if subsec:
        raise TimeZoneNotFoundError.for_key(key)
    return Tzif.fixed(key, secs)


def validate_tzid(key: str) -> SafeTzId:
    """Checks for invalid characters and path traversal in the key."""
    if (
        key.isascii()
        # There's no standard limit on IANA tz IDs, but we have to draw
        # the line somewhere to prevent abuse.
        and 0 < len(key) < 100
        and all(b.isalnum() or b in "-_+/." for b in key)
        # specific sequences not allowed
        and ".." not in key
        and "//" not in key
        and "/./" not in key
        # specific restrictions on the first and list characters
        and key[0] not in ".-+/"
        and key[-1] != "/"
    ):
        return SafeTzId(key)
    else:
        raise TimeZoneNotFoundError.for_key(key)


def _tzif_from_tzdata(key: SafeTzId) -> bytes:
    try:
        tzdata_path = __import__("tzdata.zoneinfo").zoneinfo.__path__[0]
        # We check before we read, since the resulting exceptions vary
        # on different platforms
        if os.path.isfile(
            relpath := os.path.join(tzdata_path, *key.split("/"))
        ):
            _log.debug("loading %r from tzdata", key)
            with open(relpath, "rb") as f:
                return f.read()
        else:
            raise FileNotFoundError()
    # Several exceptions amount to "can't find the key"
    except (
        ImportError,
        FileNotFoundError,
        UnicodeEncodeError,
    ):
        raise TimeZoneNotFoundError.for_key(key)


def tzpath_from_env() -> tuple[str, ...]:
    try:
        env_var = os.environ["PYTHONTZPATH"]
    except KeyError:
        env_var = sysconfig.get_config_var("TZPATH")

    if not env_var:
        return ()

    # invalid (relative) paths are silently ignored, like zoneinfo does
    return tuple(filter(os.path.isabs, env_var.split(os.pathsep)))


# Recursively find all tzfiles in the tzpath directories.
# Recursion is safe here since the file tree is trusted, and nesting doesn't
# even approach the recursion limit.
def _find_all_tznames(base: Path) -> Iterator[str]:
    if not base.is_dir():
        return
    for entry in base.iterdir():
        if entry.is_dir():
            if entry.name in ("right", "posix"):
                # These directories contain special files that shouldn't be included
                continue
            else:
                for p in _find_nested_tzfiles(entry):
                    yield p.relative_to(base).as_posix()
        elif _is_tzifile(entry):
            yield entry.name


def _find_nested_tzfiles(path: Path) -> Iterator[Path]:
    for entry in path.iterdir():
        if entry.is_dir():
            yield from _find_nested_tzfiles(entry)
        elif _is_tzifile(entry):
            yield entry


def _is_tzifile(p: Path) -> bool:
    try:
        with p.open("rb") as f:
            return f.read(4) == b"TZif"
    except OSError:
        return False


DEFAULT_ENVIRONMENT = Environment()
