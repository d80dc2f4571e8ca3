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
"""Detecting the system time zone

The ``TZ`` environment variable takes precedence. Without it, Linux and
macOS are asked through the ``/etc/localtime`` link, and other
platforms through ``tzlocal``.
"""

from __future__ import annotations

import os
import platform
from typing import Literal, NamedTuple

LOCALTIME = "/etc/localtime"


class SystemTz(NamedTuple):
    """How the system names its zone. ``kind`` is one of:

    - ``key``: ``value`` is an IANA zone ID
    - ``file``: ``value`` is the path of a TZif file with unknown ID
    - ``key_or_posix``: ``value`` is an IANA zone ID or a POSIX TZ string
    """

    kind: Literal["key", "file", "key_or_posix"]
    value: str


if platform.system() in ("Linux", "Darwin"):  # pragma: no cover

    def _from_os() -> SystemTz:
        target = os.path.realpath(LOCALTIME)
        if target != LOCALTIME and (key := key_from_path(target)):
            return SystemTz("key", key)
        return SystemTz("file", target)

else:  # pragma: no cover
    import tzlocal

    def _from_os() -> SystemTz:
        return SystemTz("key", tzlocal.get_localzone_name())


def key_from_path(path: str) -> str | None:
    """The zone ID of a file in a ``zoneinfo`` directory (or a variant
    like ``zoneinfo.default``), if it is in one.

    >>> key_from_path("/usr/share/zoneinfo/Europe/Amsterdam")
    'Europe/Amsterdam'
    """
    _, marker, rest = path.rpartition("zoneinfo")
    if not marker or "/" not in rest:
        return None
    return rest.split("/", 1)[1] or None


def detect() -> SystemTz:
    if (value := os.environ.get("TZ")) is None:
        return _from_os()  # pragma: no cover
    value = value.removeprefix(":")
    if os.path.isabs(value):
        return SystemTz("file", value)
    # Zone IDs like Etc/GMT+5 contain digits too, so it's only a hint
    elif any(c.isdigit() for c in value):
        return SystemTz("key_or_posix", value)
    return SystemTz("key", value)
