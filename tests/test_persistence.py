"""Tests for terrarium.persistence - save layout and lenient decoding."""
from __future__ import annotations

import logging

import pytest

from terrarium import persistence
from terrarium.config import ClockConfig
from terrarium.persistence import SavedWorld, decode, encode, from_dict, to_dict
from terrarium.types import ResourceKind, Season, WeatherKind

CLOCK = ClockConfig()
SEASON_SECONDS = CLOCK.seconds_per_game_day * CLOCK.days_per_season


class TestLayout:
    def test_to_dict_keys(self) -> None:
        saved = SavedWorld(
            elapsed_seconds=123.0,
            season=Season.SUMMER,
            weather=WeatherKind.MISTY,
            population_by_species={"dew_beetle": 4},
            resource_counts={ResourceKind.CRYSTAL: 2},
            saved_at=1_700_000_000.0,
        )
        assert to_dict(saved) == {
            "world.elapsedSeconds": 123.0,
            "world.season": 1,
            "weather.current": 4,
            "ecosystem.populationBySpecies": {"dew_beetle": 4},
            "resources.countByKind": {"4": 2},
            "world.savedAt": 1_700_000_000.0,
        }

    def test_bytes_are_json_utf8(self) -> None:
        raw = encode({"world.elapsedSeconds": 1.5})
        assert raw == b'{"world.elapsedSeconds": 1.5}'
        assert decode(raw) == {"world.elapsedSeconds": 1.5}

    def test_full_cycle_through_bytes(self) -> None:
        saved = SavedWorld(
            elapsed_seconds=SEASON_SECONDS * 2 + 10,
            season=Season.AUTUMN,
            weather=WeatherKind.STORMY,
            population_by_species={"moth_wisp": 3},
            resource_counts={ResourceKind.MOTE: 7},
            saved_at=42.0,
        )
        assert from_dict(decode(encode(to_dict(saved))), CLOCK) == saved


class TestFallbacks:
    def test_empty_mapping_is_fresh_world(self) -> None:
        saved = from_dict({})
        assert saved == SavedWorld()
        assert saved.fallbacks == ()

    def test_missing_keys_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="terrarium.persistence"):
            from_dict({})
        assert "world.elapsedSeconds" in caplog.text

    @pytest.mark.parametrize("value", ["abc", -5.0, None, True, float("inf")])
    def test_bad_elapsed(self, value) -> None:
        saved = from_dict({"world.elapsedSeconds": value})
        assert saved.elapsed_seconds == 0.0
        assert "world.elapsedSeconds" in saved.fallbacks

    @pytest.mark.parametrize("value", [99, -1, 1.5, "spring"])
    def test_bad_weather_ordinal(self, value) -> None:
        saved = from_dict({"weather.current": value})
        assert saved.weather is None
        assert saved.fallbacks == ("weather.current",)

    def test_every_weather_ordinal(self) -> None:
        for kind in WeatherKind:
            assert from_dict({"weather.current": kind.value}).weather is kind

    def test_season_derived_from_elapsed(self, caplog: pytest.LogCaptureFixture) -> None:
        """Elapsed time wins over a saved season that disagrees with it."""
        data = {"world.elapsedSeconds": SEASON_SECONDS * 3 + 1, "world.season": 0}
        with caplog.at_level(logging.WARNING, logger="terrarium.persistence"):
            saved = from_dict(data, CLOCK)
        assert saved.season is Season.WINTER
        assert "disagrees" in caplog.text

    def test_season_ordinal_without_clock(self) -> None:
        assert from_dict({"world.season": 2}).season is Season.AUTUMN

    def test_bad_population_entries_skipped(self) -> None:
        """Negative and non-numeric counts are dropped; whole-number floats are kept."""
        saved = from_dict(
            {"ecosystem.populationBySpecies": {"a": 3, "b": -1, "c": "many", "d": 2.0}}
        )
        assert saved.population_by_species == {"a": 3, "d": 2}
        assert len(saved.fallbacks) == 2

    def test_population_not_a_mapping(self) -> None:
        saved = from_dict({"ecosystem.populationBySpecies": [1, 2]})
        assert saved.population_by_species is None

    def test_bad_resource_kind_skipped(self) -> None:
        saved = from_dict({"resources.countByKind": {"0": 3, "77": 1, "x": 2}})
        assert saved.resource_counts == {ResourceKind.MOTE: 3}

    def test_bad_saved_at(self) -> None:
        assert from_dict({"world.savedAt": "yesterday"}).saved_at is None


class TestDecode:
    def test_garbage_bytes(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="terrarium.persistence"):
            assert decode(b"\xff\xfe not json") == {}
        assert "unreadable save" in caplog.text

    def test_non_object_root(self) -> None:
        assert decode(b"[1, 2, 3]") == {}

    def test_truncated_json(self) -> None:
        assert decode(b'{"world.elapsedSeconds": 1') == {}


def test_key_constants() -> None:
    assert persistence.KEYS == (
        "world.elapsedSeconds",
        "world.season",
        "world.savedAt",
        "weather.current",
        "ecosystem.populationBySpecies",
        "resources.countByKind",
    )


HUGE = "1" + "0" * 400


class TestOversizedIntegers:
    """JSON integers too wide for a float fall back like any other bad value."""

    def test_elapsed(self) -> None:
        saved = from_dict(decode(f'{{"world.elapsedSeconds": {HUGE}}}'.encode()), CLOCK)
        assert saved.elapsed_seconds == 0.0
        assert saved.season is Season.SPRING
        assert saved.fallbacks == ("world.elapsedSeconds",)

    @pytest.mark.parametrize("key", ["world.season", "weather.current"])
    def test_ordinals(self, key: str) -> None:
        saved = from_dict(decode(f'{{"{key}": {HUGE}}}'.encode()))
        assert saved.fallbacks == (key,)

    def test_saved_at(self) -> None:
        saved = from_dict(decode(f'{{"world.savedAt": {HUGE}}}'.encode()))
        assert saved.saved_at is None
        assert saved.fallbacks == ("world.savedAt",)

    def test_population_count(self) -> None:
        raw = f'{{"ecosystem.populationBySpecies": {{"dew_beetle": {HUGE}, "moth_wisp": 2}}}}'
        saved = from_dict(decode(raw.encode()))
        assert saved.population_by_species == {"moth_wisp": 2}
        assert saved.fallbacks == ("ecosystem.populationBySpecies[dew_beetle]",)

    def test_resource_count(self) -> None:
        raw = f'{{"resources.countByKind": {{"0": {HUGE}, "1": 4}}}}'
        saved = from_dict(decode(raw.encode()))
        assert saved.resource_counts == {ResourceKind.FLOWER: 4}
        assert saved.fallbacks == ("resources.countByKind[0]",)
