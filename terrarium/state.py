"""TerrariumState - the immutable world snapshot observers read."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from terrarium.clock import WorldClockSnapshot
from terrarium.ecosystem import EcosystemSnapshot
from terrarium.events import WorldEvent
from terrarium.resources import ResourceSnapshot
from terrarium.types import DayPhase, ResourceKind, Season, WeatherKind
from terrarium.vec import Vec2
from terrarium.weather import WeatherSnapshot


@dataclass(frozen=True, slots=True)
class TerrariumState:
    step_number: int
    elapsed_seconds: float
    day_index: int
    time_of_day: float
    phase: DayPhase
    season: Season
    year: int
    weather: WeatherKind
    weather_target: WeatherKind
    transition_progress: float
    wind_direction: Vec2
    wind_strength: float
    total_population: int
    per_species_counts: Mapping[str, int]
    resource_counts: Mapping[ResourceKind, int]
    active_event: WorldEvent | None = None
    active_events: tuple[WorldEvent, ...] = ()

    def population_of(self, species: str) -> int:
        return self.per_species_counts.get(species, 0)


def derive_state(
    step_number: int,
    clock: WorldClockSnapshot,
    weather: WeatherSnapshot,
    ecosystem: EcosystemSnapshot,
    resources: ResourceSnapshot,
    events: tuple[WorldEvent, ...] = (),
) -> TerrariumState:
    """Assemble a state from subsystem snapshots. Mappings are copied."""
    return TerrariumState(
        step_number=step_number,
        elapsed_seconds=clock.elapsed_seconds,
        day_index=clock.day_index,
        time_of_day=clock.time_of_day,
        phase=clock.phase,
        season=clock.season,
        year=clock.year,
        weather=weather.current,
        weather_target=weather.target,
        transition_progress=weather.transition_progress,
        wind_direction=weather.wind_direction,
        wind_strength=weather.wind_strength,
        total_population=ecosystem.total_population,
        per_species_counts=MappingProxyType(dict(ecosystem.per_species_counts)),
        resource_counts=MappingProxyType(dict(resources.counts_by_kind)),
        active_event=events[-1] if events else None,
        active_events=tuple(events),
    )
