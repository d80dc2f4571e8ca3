import os
from contextlib import contextmanager
from importlib.resources import files
from unittest.mock import patch

from temporalis import (
    Observance,
    PlainDateTime,
    RuleTimeZone,
    reset_system_tz,
)

# The POSIX TZ string for the Amsterdam timezone.
AMS_TZ_POSIX = "CET-1CEST,M3.5.0,M10.5.0/3"

# US Pacific time, as it would appear in an iCalendar VTIMEZONE
PACIFIC_OBSERVANCES = [
    Observance(
        "daylight",
        PlainDateTime(2007, 3, 11, 2),
        "-0800",
        "-0700",
        recurrence="FREQ=YEARLY;BYMONTH=3;BYDAY=2SU",
        name="PDT",
    ),
    Observance(
        "standard",
        PlainDateTime(2007, 11, 4, 2),
        "-0700",
        "-0800",
        recurrence="FREQ=YEARLY;BYMONTH=11;BYDAY=1SU",
        name="PST",
    ),
]


def pacific_rules(tzid: str = "Custom/Pacific") -> RuleTimeZone:
    return RuleTimeZone(tzid, PACIFIC_OBSERVANCES)


def tzif_data(key: str) -> bytes:
    """Raw TZif data from the tzdata package"""
    return files("tzdata.zoneinfo").joinpath(key).read_bytes()


class AlwaysEqual:
    def __eq__(self, _):
        return True


class NeverEqual:
    def __eq__(self, _):
        return False


class AlwaysLarger:
    def __lt__(self, _):
        return False

    def __le__(self, _):
        return False

    def __gt__(self, _):
        return True

    def __ge__(self, _):
        return True


class AlwaysSmaller:
    def __lt__(self, _):
        return True

    def __le__(self, _):
        return True

    def __gt__(self, _):
        return False

    def __ge__(self, _):
        return False


@contextmanager
def system_tz(name):
    try:
        with patch.dict(os.environ, {"TZ": name}):
            reset_system_tz()
            yield
    finally:
        reset_system_tz()  # don't forget to reset the timezone after the patch!


@contextmanager
def system_tz_ams():
    with system_tz("Europe/Amsterdam"):
        yield
