"""Tests for terrarium.weather - WeatherEngine."""
from __future__ import annotations

import random

import pytest

from terrarium import signals
from terrarium.config import WeatherConfig
from terrarium.signals import SignalBus
from terrarium.types import ConfigurationError, Season, WeatherKind
from terrarium.weather import WeatherEngine, front_weight


def _only(kind: WeatherKind) -> dict[Season, dict[WeatherKind, float]]:
    return {s: {k: (1.0 if k is kind else 0.0) for k in WeatherKind} for s in Season}


def _engine(seed: int = 1, bus: SignalBus | None = None, **overrides) -> WeatherEngine:
    return WeatherEngine(WeatherConfig(**overrides), random.Random(seed), bus)


class TestTransitions:
    def test_starts_settled(self) -> None:
        w = _engine()
        assert w.current is WeatherKind.CLEAR
        assert w.target is WeatherKind.CLEAR
        assert w.transition_progress == 1.0
        assert not w.snapshot.transitioning

    def test_no_roll_before_interval(self) -> None:
        w = _engine(season_weights=_only(WeatherKind.STORMY))
        w.advance(119.0, Season.SPRING)
        assert w.target is WeatherKind.CLEAR

    def test_roll_starts_transition(self) -> None:
        w = _engine(season_weights=_only(WeatherKind.STORMY))
        w.advance(120.0, Season.SPRING)
        assert w.target is WeatherKind.STORMY
        assert w.current is WeatherKind.CLEAR
        assert w.transition_progress == 0.0

    def test_transition_completes_after_duration(self) -> None:
        bus = SignalBus()
        changed: list[WeatherKind] = []
        bus.subscribe(signals.WEATHER_CHANGED, lambda n, d: changed.append(d["weather"]))
        w = _engine(bus=bus, season_weights=_only(WeatherKind.MISTY))
        w.advance(120.0, Season.SPRING)
        for _ in range(31):
            w.advance(1.0, Season.SPRING)
        bus.flush()
        assert w.current is WeatherKind.MISTY
        assert w.transition_progress == 1.0
        assert changed == [WeatherKind.MISTY]
        assert w.changes == 1

    def test_progress_monotone_and_bounded(self) -> None:
        w = _engine(seed=7)
        last = w.transition_progress
        for _ in range(2000):
            w.advance(3.7, Season.AUTUMN)
            p = w.transition_progress
            assert 0.0 <= p <= 1.0
            if w.is_transitioning:
                assert p >= last or last == 1.0
            else:
                assert p == 1.0
                assert w.current is w.target
            last = p

    def test_transition_emits_progress(self) -> None:
        bus = SignalBus()
        seen: list[dict] = []
        bus.subscribe(signals.WEATHER_TRANSITION, lambda n, d: seen.append(d))
        w = _engine(bus=bus, season_weights=_only(WeatherKind.WINDY))
        w.advance(120.0, Season.SPRING)
        w.advance(15.0, Season.SPRING)
        bus.flush()
        assert seen[-1]["from_weather"] is WeatherKind.CLEAR
        assert seen[-1]["to_weather"] is WeatherKind.WINDY
        assert seen[-1]["progress"] == pytest.approx(0.5)

    def test_reroll_never_interrupts_transition(self) -> None:
        """Draws that fall due mid-transition do not change the target."""
        weights = {s: {k: 1.0 for k in WeatherKind} for s in Season}
        w = _engine(seed=3, season_weights=weights, transition_duration=500.0)
        while not w.is_transitioning:
            w.advance(120.0, Season.SPRING)
        target = w.target
        for _ in range(3):
            w.advance(120.0, Season.SPRING)
            assert w.target is target

    def test_same_draw_keeps_weather(self) -> None:
        """Drawing the current weather restarts the interval without a transition."""
        w = _engine(season_weights=_only(WeatherKind.CLEAR))
        w.advance(600.0, Season.WINTER)
        assert w.current is WeatherKind.CLEAR
        assert not w.is_transitioning

    def test_every_kind_settles_after_forced_change(self) -> None:
        for kind in WeatherKind:
            w = _engine(initial=kind)
            w.set_weather(WeatherKind.CLEAR if kind is not WeatherKind.CLEAR else WeatherKind.CALM)
            w.advance(30.0, Season.SPRING)
            assert not w.is_transitioning


class TestWind:
    def test_wind_blends_during_transition(self) -> None:
        w = _engine(season_weights=_only(WeatherKind.STORMY), wind_drift=0.0)
        w.advance(120.0, Season.SPRING)
        w.advance(15.0, Season.SPRING)
        snap = w.snapshot
        calm, stormy = 0.1, 1.5
        assert calm < snap.wind_strength < stormy

    def test_settled_wind_matches_kind(self) -> None:
        w = _engine(initial=WeatherKind.WINDY)
        assert w.snapshot.wind_strength == pytest.approx(0.8)


class TestLightning:
    def test_no_lightning_unless_stormy(self) -> None:
        w = _engine(season_weights=_only(WeatherKind.CLEAR))
        for _ in range(1000):
            w.advance(1.0, Season.SUMMER)
        assert w.strikes == 0

    def test_strike_rate_converges(self) -> None:
        """Strike count tracks chance_per_second times stormy seconds."""
        w = _engine(seed=11, initial=WeatherKind.STORMY, season_weights=_only(WeatherKind.STORMY))
        for _ in range(20_000):
            w.advance(1.0, Season.WINTER)
        expected = 0.05 * 20_000
        assert w.strikes == pytest.approx(expected, rel=0.15)

    def test_strike_notification(self) -> None:
        bus = SignalBus()
        strikes: list[str] = []
        bus.subscribe(signals.LIGHTNING_STRIKE, lambda n, d: strikes.append(n))
        w = _engine(bus=bus, initial=WeatherKind.STORMY, lightning_chance_per_second=1.0)
        w.advance(1.0, Season.SPRING)
        bus.flush()
        assert strikes == [signals.LIGHTNING_STRIKE]


class TestManual:
    def test_set_weather_instant(self) -> None:
        w = _engine()
        w.set_weather(WeatherKind.STORMY, instant=True)
        assert w.current is WeatherKind.STORMY
        assert w.transition_progress == 1.0

    def test_set_weather_transitions(self) -> None:
        w = _engine()
        w.set_weather(WeatherKind.MISTY)
        assert w.is_transitioning
        w.advance(30.0, Season.SPRING)
        assert w.current is WeatherKind.MISTY

    def test_restore_is_silent(self) -> None:
        bus = SignalBus()
        w = _engine(bus=bus)
        w.restore(WeatherKind.CALM)
        assert w.current is WeatherKind.CALM
        assert bus.pending() == 0


class TestConfig:
    def test_non_positive_reroll_interval(self) -> None:
        with pytest.raises(ConfigurationError):
            _engine(reroll_interval=0.0)

    def test_zero_weights(self) -> None:
        weights = {s: {k: 0.0 for k in WeatherKind} for s in Season}
        with pytest.raises(ConfigurationError):
            _engine(season_weights=weights)


class TestFrontWeight:
    def test_endpoints(self) -> None:
        assert front_weight(0.0) == 0.0
        assert front_weight(1.0) == 1.0

    def test_halfway(self) -> None:
        assert front_weight(0.5) == pytest.approx(0.5)

    def test_slow_start(self) -> None:
        """The first quarter of a transition carries well under a quarter of the change."""
        assert front_weight(0.25) == pytest.approx(0.15625)

    def test_monotone_and_clamped(self) -> None:
        samples = [front_weight(i / 40) for i in range(-4, 45)]
        assert samples == sorted(samples)
        assert samples[0] == 0.0
        assert samples[-1] == 1.0

    def test_precipitation_follows_front(self) -> None:
        w = _engine(season_weights=_only(WeatherKind.STORMY))
        w.advance(120.0, Season.SPRING)
        w.advance(7.5, Season.SPRING)
        assert w.transition_progress == pytest.approx(0.25)
        assert w.snapshot.precipitation == pytest.approx(0.15625)
        w.advance(7.5, Season.SPRING)
        assert w.snapshot.precipitation == pytest.approx(0.5)
