import logging
import os
import pickle

import pytest

import temporalis
from temporalis import (
    Environment,
    Instant,
    PlainDateTime,
    TimeZone,
    TimeZoneNotFoundError,
    ZonedDateTime,
    available_timezones,
    clear_tzcache,
    reset_tzpath,
)

from temporalis._tz.system import detect, key_from_path

from .common import system_tz, system_tz_ams, tzif_data


class TestLookup:

    def test_iana(self):
        env = Environment()
        tzif = env.get("Europe/Amsterdam")
        assert tzif.key == "Europe/Amsterdam"
        # cached
        assert env.get("Europe/Amsterdam") is tzif

    def test_utc_and_offsets(self):
        env = Environment()
        assert env.get("UTC").offset_for_instant(0) == 0
        assert env.get("+05:30").offset_for_instant(0) == 19800
        assert env.get("-0800").offset_for_instant(0) == -28800
        assert TimeZone("+05:30").id == "+05:30"

    @pytest.mark.parametrize(
        "key",
        [
            "America/Nowhere",  # non-existent
            "/America/New_York",  # slash at the beginning
            "America/New_York/",  # slash at the end
            "America/New\0York",  # null byte
            "America\\New_York",  # backslash
            "../America/New_York/",  # relative path
            "America/New_York/..",  # other dots
            "America//New_York",  # double slash
            "America/../America/New_York",  # not normalized
            "America/./America/New_York",  # not normalized
            "+VERSION",  # not an offset
            "Europe",  # a directory
            "__init__.py",  # file in tzdata package
            "",
            ".",
            "/",
            " ",
            "Foo" * 100,  # too long
            # invalid file path characters
            "foo:bar",
            "bla*",
            "*",
            "&",
            # non-ascii
            "America/Bogotá",
            # invalid start characters
            "+B",
            "+",
            "-",
            "-foo",
            # offsets with sub-second precision
            "+01:00:00.5",
        ],
    )
    def test_invalid_key(self, key):
        with pytest.raises(TimeZoneNotFoundError):
            Environment().get(key)
        with pytest.raises(ValueError):
            TimeZone(key)

    def test_not_found_message(self):
        with pytest.raises(TimeZoneNotFoundError, match="'America/Nowhere'"):
            TimeZone("America/Nowhere")

    def test_invalid_type(self):
        with pytest.raises(TypeError):
            Environment().get(5)  # type: ignore[arg-type]

    def test_is_available(self):
        env = Environment()
        assert env.is_available("America/New_York")
        assert env.is_available("UTC")
        assert not env.is_available("Custom/Pacific")
        assert not env.is_available("../etc/passwd")

    def test_available_timezones(self):
        zones = Environment().available_timezones()
        assert "Europe/Amsterdam" in zones
        assert "America/New_York" in zones
        assert "posixrules" not in zones
        assert "" not in zones


class TestTzPath:

    def test_custom_directory(self, tmp_path):
        (tmp_path / "Custom").mkdir()
        (tmp_path / "Custom" / "Ams").write_bytes(
            tzif_data("Europe/Amsterdam")
        )
        (tmp_path / "Custom" / "README").write_bytes(b"not a tzif file")
        env = Environment([str(tmp_path)])
        assert env.tzpath == (str(tmp_path),)

        tz = TimeZone("Custom/Ams", environment=env)
        assert tz.id == "Custom/Ams"
        assert tz.get_offset_string_for(Instant.from_utc(2024, 7, 1)) == (
            "+02:00"
        )
        assert "Custom/Ams" in env.available_timezones()
        assert "Custom/README" not in env.available_timezones()
        with pytest.raises(TimeZoneNotFoundError):
            env.get("Custom/README")

        # the default environment doesn't see it
        assert not Environment().is_available("Custom/Ams")

    def test_reset_clears_cache(self, tmp_path):
        env = Environment()
        tzif = env.get("Europe/Amsterdam")
        env.reset_tzpath([str(tmp_path)])
        assert env.tzpath == (str(tmp_path),)
        assert env.get("Europe/Amsterdam") is not tzif

    def test_invalid(self):
        env = Environment()
        with pytest.raises(TypeError, match="iterable"):
            env.reset_tzpath("/usr/share/zoneinfo")  # type: ignore[arg-type]
        with pytest.raises(ValueError, match="absolute"):
            env.reset_tzpath(["../../share/zoneinfo"])
        with pytest.raises(ValueError, match="absolute"):
            Environment(["share/zoneinfo"])

    def test_from_env_var(self, monkeypatch, tmp_path):
        other = tmp_path / "other"
        monkeypatch.setenv(
            "PYTHONTZPATH",
            os.pathsep.join([str(tmp_path), "relative/ignored", str(other)]),
        )
        assert Environment().tzpath == (str(tmp_path), str(other))

    def test_empty_env_var(self, monkeypatch):
        monkeypatch.setenv("PYTHONTZPATH", "")
        assert Environment().tzpath == ()

    def test_logging(self, tmp_path, caplog):
        with caplog.at_level(logging.DEBUG, logger="temporalis"):
            Environment([str(tmp_path)])
        assert "tzpath set to" in caplog.text


class TestCache:

    def test_clear_only_keys(self):
        env = Environment()
        ams = env.get("Europe/Amsterdam")
        nyc = env.get("America/New_York")
        env.clear_cache(only_keys=["America/New_York"])
        assert env.get("Europe/Amsterdam") is ams
        assert env.get("America/New_York") is not nyc
        # ...but still equal
        assert env.get("America/New_York") == nyc

    def test_clear_all(self):
        env = Environment()
        ams = env.get("Europe/Amsterdam")
        env.clear_cache()
        assert env.get("Europe/Amsterdam") is not ams

    def test_lru_keeps_recent(self):
        env = Environment()
        keys = [
            "Europe/Amsterdam",
            "Europe/Berlin",
            "Europe/Paris",
            "Europe/London",
            "Europe/Madrid",
            "Europe/Rome",
            "Europe/Vienna",
            "Europe/Oslo",
            "Europe/Prague",
            "Europe/Warsaw",
        ]
        for k in keys:
            env.get(k)
        assert len(env._lru) == Environment._LRU_SIZE
        assert "Europe/Warsaw" in env._lru
        assert "Europe/Amsterdam" not in env._lru

    def test_module_level_functions(self, tmp_path):
        d = PlainDateTime(2020, 8, 15, 5, 12).to_zoned_date_time(
            "America/New_York"
        )
        prev_tzpath = temporalis.TZPATH
        reset_tzpath([tmp_path])
        try:
            assert temporalis.TZPATH == (str(tmp_path),)
            clear_tzcache(only_keys=["America/New_York"])
            # tzdata remains a fallback
            assert "America/New_York" in available_timezones()
            # existing values are unaffected
            assert d.add(temporalis.Duration(hours=24)).offset == "-04:00"
            clear_tzcache()
        finally:
            reset_tzpath()
        assert temporalis.TZPATH == prev_tzpath
        with pytest.raises(TypeError, match="iterable"):
            reset_tzpath("/usr/share/zoneinfo")  # type: ignore[arg-type]

        # new zones are equal to the old ones
        assert (
            PlainDateTime(2020, 8, 15, 5, 12)
            .to_zoned_date_time("America/New_York")
            .equals(d)
        )


class TestSystemTz:

    def test_iana_key(self):
        with system_tz_ams():
            tz = TimeZone.system()
            assert tz.id == "Europe/Amsterdam"
            assert tz == TimeZone("Europe/Amsterdam")
            d = ZonedDateTime.now()
            assert d.time_zone_id == "Europe/Amsterdam"

        with system_tz("America/New_York"):
            assert TimeZone.system().id == "America/New_York"

    def test_leading_colon(self):
        with system_tz(":Asia/Tokyo"):
            assert TimeZone.system().id == "Asia/Tokyo"

    def test_posix_string(self):
        with system_tz("CET-1CEST,M3.5.0,M10.5.0/3"):
            tz = TimeZone.system()
            # A TZ string has no ID
            assert tz.id == "localtime"
            assert tz.get_offset_string_for(
                Instant.from_utc(2024, 7, 1)
            ) == "+02:00"
            # pickled by value, since there's no ID to look up
            unpickled = pickle.loads(pickle.dumps(tz))
            assert unpickled == tz
            assert unpickled.id == "localtime"

    def test_digits_in_key(self):
        with system_tz("Etc/GMT+5"):
            assert TimeZone.system().id == "Etc/GMT+5"

    def test_file(self, tmp_path):
        path = tmp_path / "zonefile"
        path.write_bytes(tzif_data("Asia/Kolkata"))
        with system_tz(str(path)):
            tz = TimeZone.system()
            assert tz.id == "localtime"
            assert tz.get_offset_string_for(Instant.from_utc(2024, 1, 1)) == (
                "+05:30"
            )

    def test_key_from_path(self):
        assert (
            key_from_path("/usr/share/zoneinfo/Europe/Amsterdam")
            == "Europe/Amsterdam"
        )
        assert (
            key_from_path("/usr/share/zoneinfo.default/Asia/Tokyo")
            == "Asia/Tokyo"
        )
        assert key_from_path("/etc/localtime") is None
        assert key_from_path("/usr/share/zoneinfo") is None

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("Europe/Paris", ("key", "Europe/Paris")),
            (":Europe/Paris", ("key", "Europe/Paris")),
            ("/tmp/zonefile", ("file", "/tmp/zonefile")),
            ("EST5EDT", ("key_or_posix", "EST5EDT")),
        ],
    )
    def test_detect(self, monkeypatch, value, expected):
        monkeypatch.setenv("TZ", value)
        assert detect() == expected

    def test_unknown_key(self):
        with pytest.raises(TimeZoneNotFoundError):
            with system_tz("Mars/Olympus_Mons"):
                pass
