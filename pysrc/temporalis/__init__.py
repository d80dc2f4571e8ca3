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
from __future__ import annotations

import logging as _logging
import os as _os
from typing import Iterable as _Iterable

from ._core import *
from ._core import (  # for pickling and the docs
    __all__,
    __version__,
    _unpkl_date,
    _unpkl_datetime,
    _unpkl_duration,
    _unpkl_instant,
    _unpkl_month_day,
    _unpkl_time,
    _unpkl_tz,
    _unpkl_year_month,
    _unpkl_zoned,
)
from ._tz.store import DEFAULT_ENVIRONMENT as _DEFAULT_ENVIRONMENT

# Library logging stays silent unless the application configures it
_logging.getLogger(__name__).addHandler(_logging.NullHandler())

TZPATH: tuple[str, ...] = _DEFAULT_ENVIRONMENT.tzpath
"""The paths in which ``temporalis`` searches for time zone data.
By default, this is determined the same way as :data:`zoneinfo.TZPATH`,
although you can override it using :func:`temporalis.reset_tzpath`.
"""


def reset_tzpath(
    target: _Iterable[str | _os.PathLike[str]] | None = None, /
) -> None:
    """Reset or set the paths in which ``temporalis`` searches for
    time zone data. It doesn't affect :mod:`zoneinfo` or other libraries.

    Note
    ----
    This clears the cache of loaded zones, so that all zones are
    loaded from the new path. Existing values keep the zone data they
    were created with.

    Behaves similarly to :func:`zoneinfo.reset_tzpath`
    """
    global TZPATH
    _DEFAULT_ENVIRONMENT.reset_tzpath(target)  # type: ignore[arg-type]
    TZPATH = _DEFAULT_ENVIRONMENT.tzpath


def clear_tzcache(*, only_keys: _Iterable[str] | None = None) -> None:
    """Clear the time zone cache. If ``only_keys`` is provided, only the
    cache for those keys is cleared.

    Caution
    -------
    Zones loaded after clearing are new objects. Values created before
    keep using the old ones.

    Behaves similarly to :meth:`zoneinfo.ZoneInfo.clear_cache`.
    """
    _DEFAULT_ENVIRONMENT.clear_cache(only_keys)


def available_timezones() -> set[str]:
    """Gather the set of all available time zone IDs, from ``TZPATH``
    and the ``tzdata`` package.

    Warning
    -------
    This may open a large number of files, since the first few bytes
    of time zone files must be read to determine if they are valid.
    """
    return _DEFAULT_ENVIRONMENT.available_timezones()


def reset_system_tz() -> None:
    """Re-read the system time zone, e.g. after changing the ``TZ``
    environment variable. It's read once and cached otherwise.
    """
    _DEFAULT_ENVIRONMENT.reset_system_tz()
