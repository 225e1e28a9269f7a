"""Tests for terrarium.clock - WorldClock and snapshot_at."""
from __future__ import annotations

import pytest

from terrarium import signals
from terrarium.clock import WorldClock, phase_for, snapshot_at
from terrarium.config import ClockConfig
from terrarium.signals import SignalBus
from terrarium.types import DayPhase, Season

CFG = ClockConfig(seconds_per_game_day=600.0, days_per_season=7)


def _recorder(bus: SignalBus) -> list[tuple[str, dict]]:
    seen: list[tuple[str, dict]] = []
    for name in (
        signals.TIME_OF_DAY_CHANGED,
        signals.PHASE_CHANGED,
        signals.DAY_CHANGED,
        signals.SEASON_CHANGED,
        signals.YEAR_CHANGED,
    ):
        bus.subscribe(name, lambda n, d: seen.append((n, d)))
    return seen


class TestPhaseBands:
    @pytest.mark.parametrize(
        "tod, phase",
        [
            (0.0, DayPhase.NIGHT),
            (0.19, DayPhase.NIGHT),
            (0.20, DayPhase.DAWN),
            (0.29, DayPhase.DAWN),
            (0.30, DayPhase.DAY),
            (0.69, DayPhase.DAY),
            (0.70, DayPhase.DUSK),
            (0.84, DayPhase.DUSK),
            (0.85, DayPhase.NIGHT),
            (0.999, DayPhase.NIGHT),
        ],
    )
    def test_band_boundaries(self, tod: float, phase: DayPhase) -> None:
        assert phase_for(tod, CFG) is phase

    def test_every_phase_reachable(self) -> None:
        """Sampling one day visits Night, Dawn, Day and Dusk."""
        seen = {snapshot_at(i * 6.0, CFG).phase for i in range(100)}
        assert seen == set(DayPhase)


class TestSnapshotAt:
    def test_origin(self) -> None:
        snap = snapshot_at(0.0, CFG)
        assert snap.day_index == 0
        assert snap.time_of_day == 0.0
        assert snap.season is Season.SPRING
        assert snap.year == 0

    def test_one_game_day(self) -> None:
        snap = snapshot_at(600.0, CFG)
        assert snap.day_index == 1
        assert snap.time_of_day == pytest.approx(0.0)
        assert snap.season is Season.SPRING

    def test_seasons_cycle_through_year(self) -> None:
        day = CFG.seconds_per_game_day
        per_season = CFG.days_per_season
        seasons = [snapshot_at(day * per_season * i, CFG).season for i in range(5)]
        assert seasons == [
            Season.SPRING, Season.SUMMER, Season.AUTUMN, Season.WINTER, Season.SPRING
        ]
        assert snapshot_at(day * per_season * 4, CFG).year == 1

    def test_time_of_day_in_unit_interval(self) -> None:
        for elapsed in (0.0, 0.1, 599.9999999, 600.0, 1e9 + 0.3):
            snap = snapshot_at(elapsed, CFG)
            assert 0.0 <= snap.time_of_day < 1.0

    def test_season_progress(self) -> None:
        half = CFG.seconds_per_game_day * CFG.days_per_season / 2
        assert snapshot_at(half, CFG).season_progress == pytest.approx(0.5)


class TestWorldClock:
    def test_split_advance_matches_single(self) -> None:
        """Splitting an advance lands on the same snapshot as one large advance."""
        a = WorldClock(CFG)
        b = WorldClock(CFG)
        a.advance(1234.5)
        b.advance(1000.0)
        b.advance(234.5)
        assert a.elapsed_seconds == pytest.approx(b.elapsed_seconds)
        assert a.snapshot.day_index == b.snapshot.day_index
        assert a.snapshot.phase is b.snapshot.phase
        assert a.snapshot.season is b.snapshot.season

    def test_negative_delta_is_noop(self) -> None:
        clock = WorldClock(CFG)
        clock.advance(-5.0)
        assert clock.elapsed_seconds == 0.0

    def test_zero_delta_emits_nothing(self) -> None:
        bus = SignalBus()
        clock = WorldClock(CFG, bus)
        clock.advance(0.0)
        assert bus.pending() == 0

    def test_small_step_emits_only_time_of_day(self) -> None:
        """Within a phase only the time of day changes."""
        bus = SignalBus()
        seen = _recorder(bus)
        clock = WorldClock(CFG, bus)
        clock.advance(1.0)
        bus.flush()
        assert [n for n, _ in seen] == [signals.TIME_OF_DAY_CHANGED]

    def test_day_rollover_emits_day_and_phase(self) -> None:
        bus = SignalBus()
        seen = _recorder(bus)
        clock = WorldClock(CFG, bus, elapsed_seconds=599.0)
        clock.advance(2.0)
        bus.flush()
        names = [n for n, _ in seen]
        assert signals.DAY_CHANGED in names
        assert signals.PHASE_CHANGED not in names  # night -> night
        day = next(d for n, d in seen if n == signals.DAY_CHANGED)
        assert day["day"] == 1

    def test_season_change_notification(self) -> None:
        bus = SignalBus()
        seen = _recorder(bus)
        season_len = CFG.seconds_per_game_day * CFG.days_per_season
        clock = WorldClock(CFG, bus, elapsed_seconds=season_len - 1)
        clock.advance(2.0)
        bus.flush()
        seasons = [d["season"] for n, d in seen if n == signals.SEASON_CHANGED]
        assert seasons == [Season.SUMMER]

    def test_year_change_notification(self) -> None:
        bus = SignalBus()
        seen = _recorder(bus)
        year_len = CFG.seconds_per_game_day * CFG.days_per_season * 4
        clock = WorldClock(CFG, bus, elapsed_seconds=year_len - 1)
        clock.advance(2.0)
        bus.flush()
        assert [d["year"] for n, d in seen if n == signals.YEAR_CHANGED] == [1]

    def test_restore_is_silent(self) -> None:
        bus = SignalBus()
        clock = WorldClock(CFG, bus)
        clock.restore(10_000.0)
        assert bus.pending() == 0
        assert clock.snapshot.elapsed_seconds == 10_000.0

    def test_invalid_config_rejected(self) -> None:
        from terrarium.types import ConfigurationError

        with pytest.raises(ConfigurationError):
            WorldClock(ClockConfig(seconds_per_game_day=0))
