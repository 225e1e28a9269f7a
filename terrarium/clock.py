"""WorldClock - day, phase, season and year derived from accumulated seconds."""

from __future__ import annotations

import math
from dataclasses import dataclass

from terrarium import signals
from terrarium.config import ClockConfig
from terrarium.signals import SignalBus
from terrarium.types import DayPhase, Season

_SEASONS = tuple(Season)


@dataclass(frozen=True, slots=True)
class WorldClockSnapshot:
    elapsed_seconds: float
    day_index: int
    time_of_day: float
    phase: DayPhase
    season: Season
    year: int
    season_progress: float


def phase_for(time_of_day: float, config: ClockConfig) -> DayPhase:
    if time_of_day < config.dawn_start:
        return DayPhase.NIGHT
    if time_of_day < config.day_start:
        return DayPhase.DAWN
    if time_of_day < config.dusk_start:
        return DayPhase.DAY
    if time_of_day < config.night_start:
        return DayPhase.DUSK
    return DayPhase.NIGHT


def snapshot_at(elapsed_seconds: float, config: ClockConfig) -> WorldClockSnapshot:
    """Compute the clock snapshot for an absolute elapsed time.

    Every derived field is a pure function of ``elapsed_seconds`` and the
    config, so two clocks that reached the same elapsed time by different
    step sizes agree exactly on the discrete fields.
    """
    days = elapsed_seconds / config.seconds_per_game_day
    day_index = math.floor(days)
    time_of_day = days - day_index
    if time_of_day >= 1.0:
        # float rounding at an exact day boundary
        day_index += 1
        time_of_day = 0.0
    days_per_year = config.days_per_season * len(_SEASONS)
    day_in_season = day_index % config.days_per_season
    return WorldClockSnapshot(
        elapsed_seconds=elapsed_seconds,
        day_index=day_index,
        time_of_day=time_of_day,
        phase=phase_for(time_of_day, config),
        season=_SEASONS[(day_index // config.days_per_season) % len(_SEASONS)],
        year=day_index // days_per_year,
        season_progress=(day_in_season + time_of_day) / config.days_per_season,
    )


class WorldClock:
    def __init__(
        self,
        config: ClockConfig,
        bus: SignalBus | None = None,
        elapsed_seconds: float = 0.0,
    ) -> None:
        config.validate()
        self._config = config
        self._bus = bus
        self._elapsed = max(0.0, elapsed_seconds)
        self._snapshot = snapshot_at(self._elapsed, config)

    @property
    def config(self) -> ClockConfig:
        return self._config

    @property
    def elapsed_seconds(self) -> float:
        return self._elapsed

    @property
    def snapshot(self) -> WorldClockSnapshot:
        return self._snapshot

    def advance(self, delta_seconds: float) -> WorldClockSnapshot:
        if delta_seconds <= 0:
            return self._snapshot
        self._elapsed += delta_seconds
        previous = self._snapshot
        self._snapshot = snapshot_at(self._elapsed, self._config)
        if self._bus is not None:
            self._publish_changes(previous, self._snapshot)
        return self._snapshot

    def restore(self, elapsed_seconds: float) -> None:
        """Reposition the clock without emitting notifications."""
        self._elapsed = max(0.0, elapsed_seconds)
        self._snapshot = snapshot_at(self._elapsed, self._config)

    def _publish_changes(self, old: WorldClockSnapshot, new: WorldClockSnapshot) -> None:
        bus = self._bus
        assert bus is not None
        bus.publish(signals.TIME_OF_DAY_CHANGED, time_of_day=new.time_of_day)
        if new.day_index != old.day_index:
            bus.publish(signals.DAY_CHANGED, day=new.day_index)
        if new.phase is not old.phase:
            bus.publish(signals.PHASE_CHANGED, phase=new.phase)
        if new.season is not old.season:
            bus.publish(signals.SEASON_CHANGED, season=new.season)
        if new.year != old.year:
            bus.publish(signals.YEAR_CHANGED, year=new.year)
