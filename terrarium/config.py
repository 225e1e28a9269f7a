"""Tunable configuration for every simulation subsystem.

All sections are immutable dataclasses with working defaults. Call
``TerrariumConfig.validate()`` (engines do this on construction) to reject a
malformed setup before the first step runs.
"""
from __future__ import annotations

import dataclasses
import tomllib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

from terrarium.types import (
    ActivityPattern,
    BehaviorState,
    ConfigurationError,
    ResourceKind,
    Season,
    TrophicRole,
    WeatherKind,
    WorldEventKind,
)

E = TypeVar("E", bound=Enum)


@dataclass(frozen=True)
class ClockConfig:
    """Game-time tunables.

    Attributes:
        seconds_per_game_day: Simulated seconds in one full day cycle.
        days_per_season: Whole days before the season advances.
        dawn_start, day_start, dusk_start, night_start: Normalized phase
            band boundaries. Night wraps from ``night_start`` to ``dawn_start``.
    """

    seconds_per_game_day: float = 600.0
    days_per_season: int = 7
    dawn_start: float = 0.20
    day_start: float = 0.30
    dusk_start: float = 0.70
    night_start: float = 0.85

    def validate(self) -> None:
        if self.seconds_per_game_day <= 0:
            raise ConfigurationError("seconds_per_game_day must be positive")
        if self.days_per_season <= 0:
            raise ConfigurationError("days_per_season must be positive")
        bands = (self.dawn_start, self.day_start, self.dusk_start, self.night_start)
        if not 0.0 < bands[0] < bands[1] < bands[2] < bands[3] < 1.0:
            raise ConfigurationError(
                f"phase bands must be strictly increasing inside (0, 1), got {bands}"
            )


def _default_season_weights() -> dict[Season, dict[WeatherKind, float]]:
    W = WeatherKind
    return {
        Season.SPRING: {W.CLEAR: 3.0, W.WINDY: 2.0, W.STORMY: 1.0, W.CALM: 2.0, W.MISTY: 2.0},
        Season.SUMMER: {W.CLEAR: 4.0, W.WINDY: 1.0, W.STORMY: 1.5, W.CALM: 3.0, W.MISTY: 0.5},
        Season.AUTUMN: {W.CLEAR: 2.0, W.WINDY: 3.0, W.STORMY: 2.0, W.CALM: 1.0, W.MISTY: 2.0},
        Season.WINTER: {W.CLEAR: 1.0, W.WINDY: 2.0, W.STORMY: 3.0, W.CALM: 1.0, W.MISTY: 3.0},
    }


def _default_wind_strength() -> dict[WeatherKind, float]:
    return {
        WeatherKind.CLEAR: 0.1,
        WeatherKind.WINDY: 0.8,
        WeatherKind.STORMY: 1.5,
        WeatherKind.CALM: 0.0,
        WeatherKind.MISTY: 0.2,
    }


@dataclass(frozen=True)
class WeatherConfig:
    initial: WeatherKind = WeatherKind.CLEAR
    reroll_interval: float = 120.0
    transition_duration: float = 30.0
    lightning_chance_per_second: float = 0.05
    wind_drift: float = 0.05  # radians of direction random walk per second
    wind_strength: dict[WeatherKind, float] = field(default_factory=_default_wind_strength)
    season_weights: dict[Season, dict[WeatherKind, float]] = field(
        default_factory=_default_season_weights
    )

    def validate(self) -> None:
        if self.reroll_interval <= 0:
            raise ConfigurationError("reroll_interval must be positive")
        if self.transition_duration <= 0:
            raise ConfigurationError("transition_duration must be positive")
        if self.lightning_chance_per_second < 0:
            raise ConfigurationError("lightning_chance_per_second must be >= 0")
        _require_all(WeatherKind, self.wind_strength, "wind_strength")
        _require_all(Season, self.season_weights, "season_weights")
        for season, weights in self.season_weights.items():
            if any(w < 0 for w in weights.values()) or sum(weights.values()) <= 0:
                raise ConfigurationError(
                    f"season_weights[{season.name}] needs non-negative weights with a positive sum"
                )


def _per_kind(**values: float) -> dict[ResourceKind, float]:
    return {ResourceKind[name.upper()]: v for name, v in values.items()}


@dataclass(frozen=True)
class ResourceConfig:
    """Resource growth and spawn tunables.

    ``base_growth_rate`` is stage progress per second; a node at rate 0.05
    needs 20 seconds per stage under neutral multipliers.
    """

    max_nodes: int = 50
    regen_delay: float = 10.0
    field_radius: float = 20.0
    base_growth_rate: dict[ResourceKind, float] = field(
        default_factory=lambda: _per_kind(
            mote=0.08, flower=0.05, fruit=0.03, mushroom=0.04,
            crystal=0.01, nectar=0.02, spore=0.06,
        )
    )
    target_population: dict[ResourceKind, int] = field(
        default_factory=lambda: {
            ResourceKind.MOTE: 8, ResourceKind.FLOWER: 6, ResourceKind.FRUIT: 5,
            ResourceKind.MUSHROOM: 5, ResourceKind.CRYSTAL: 3,
            ResourceKind.NECTAR: 3, ResourceKind.SPORE: 5,
        }
    )
    nutrient_value: dict[ResourceKind, float] = field(
        default_factory=lambda: _per_kind(
            mote=10.0, flower=20.0, fruit=30.0, mushroom=25.0,
            crystal=40.0, nectar=50.0, spore=15.0,
        )
    )
    season_growth: dict[Season, float] = field(
        default_factory=lambda: {
            Season.SPRING: 1.2, Season.SUMMER: 1.0,
            Season.AUTUMN: 0.8, Season.WINTER: 0.4,
        }
    )
    season_spawn: dict[Season, float] = field(
        default_factory=lambda: {
            Season.SPRING: 1.5, Season.SUMMER: 1.2,
            Season.AUTUMN: 0.8, Season.WINTER: 0.3,
        }
    )
    # (kind, season) pairs that thrive; multiplies both growth and spawn target
    season_affinity: dict[tuple[ResourceKind, Season], float] = field(
        default_factory=lambda: {
            (ResourceKind.FLOWER, Season.SPRING): 2.0,
            (ResourceKind.FRUIT, Season.SUMMER): 2.0,
            (ResourceKind.MUSHROOM, Season.AUTUMN): 2.0,
            (ResourceKind.CRYSTAL, Season.WINTER): 1.5,
        }
    )
    weather_growth: dict[WeatherKind, float] = field(
        default_factory=lambda: {
            WeatherKind.CLEAR: 1.0, WeatherKind.STORMY: 1.3, WeatherKind.MISTY: 1.1,
            WeatherKind.CALM: 0.9, WeatherKind.WINDY: 0.8,
        }
    )

    def validate(self) -> None:
        if self.max_nodes <= 0:
            raise ConfigurationError("max_nodes must be positive")
        if self.regen_delay < 0:
            raise ConfigurationError("regen_delay must be >= 0")
        for name in ("base_growth_rate", "target_population", "nutrient_value"):
            table = getattr(self, name)
            _require_all(ResourceKind, table, name)
            if any(v < 0 for v in table.values()):
                raise ConfigurationError(f"{name} values must be >= 0")
        _require_all(Season, self.season_growth, "season_growth")
        _require_all(Season, self.season_spawn, "season_spawn")
        _require_all(WeatherKind, self.weather_growth, "weather_growth")
        for key, mult in self.season_affinity.items():
            if not (
                isinstance(key, tuple)
                and len(key) == 2
                and isinstance(key[0], ResourceKind)
                and isinstance(key[1], Season)
            ):
                raise ConfigurationError(
                    f"season_affinity key {key!r} must be a (ResourceKind, Season) pair"
                )
            if isinstance(mult, bool) or not isinstance(mult, (int, float)) or mult < 0:
                raise ConfigurationError(f"season_affinity[{key!r}] must be a number >= 0")


@dataclass(frozen=True)
class SpeciesConfig:
    name: str
    role: TrophicRole
    activity: ActivityPattern
    carrying_capacity: int
    initial_population: int
    hunger_rate: float = 0.5
    hunger_threshold: float = 60.0
    meal_value: float = 35.0
    starvation_penalty: float = 2.0
    health_regen: float = 0.5
    reproduction_threshold: float = 80.0
    reproduction_cost: float = 40.0
    reproduction_cooldown: float = 120.0
    lifespan: float = 3600.0  # <= 0 means immortal
    forage_rate: float = 0.2
    catch_rate: float = 0.05
    prey: tuple[str, ...] = ()


def _default_species() -> tuple[SpeciesConfig, ...]:
    return (
        SpeciesConfig("lumen_moss", TrophicRole.PRODUCER, ActivityPattern.DIURNAL,
                      carrying_capacity=30, initial_population=12, hunger_rate=0.3),
        SpeciesConfig("dew_beetle", TrophicRole.HERBIVORE, ActivityPattern.CREPUSCULAR,
                      carrying_capacity=20, initial_population=8),
        SpeciesConfig("moth_wisp", TrophicRole.HERBIVORE, ActivityPattern.NOCTURNAL,
                      carrying_capacity=16, initial_population=6),
        SpeciesConfig("glass_mantis", TrophicRole.PREDATOR, ActivityPattern.CATHEMERAL,
                      carrying_capacity=6, initial_population=2, hunger_rate=0.4,
                      meal_value=60.0, reproduction_cooldown=300.0,
                      prey=("dew_beetle", "moth_wisp")),
    )


def _default_activity_cost() -> dict[BehaviorState, float]:
    return {
        BehaviorState.IDLE: 0.2,
        BehaviorState.WANDERING: 0.5,
        BehaviorState.SEEKING_FOOD: 0.8,
        BehaviorState.FLEEING: 1.5,
        BehaviorState.RESTING: -2.0,
        BehaviorState.REPRODUCING: 1.0,
        BehaviorState.MIGRATING: 1.0,
    }


@dataclass(frozen=True)
class EcosystemConfig:
    species: tuple[SpeciesConfig, ...] = field(default_factory=_default_species)
    activity_cost: dict[BehaviorState, float] = field(default_factory=_default_activity_cost)
    critical_health_fraction: float = 0.2
    wander_timeout: float = 30.0
    idle_timeout: float = 10.0
    min_population_fraction: float = 0.25
    cull_per_step: int = 1
    migration_fraction: float = 0.6

    def species_named(self, name: str) -> SpeciesConfig:
        for sp in self.species:
            if sp.name == name:
                return sp
        raise KeyError(name)

    def validate(self) -> None:
        _require_all(BehaviorState, self.activity_cost, "activity_cost")
        if not 0.0 < self.critical_health_fraction < 1.0:
            raise ConfigurationError("critical_health_fraction must be in (0, 1)")
        if self.wander_timeout <= 0 or self.idle_timeout <= 0:
            raise ConfigurationError("wander_timeout and idle_timeout must be positive")
        if not 0.0 < self.min_population_fraction <= 1.0:
            raise ConfigurationError("min_population_fraction must be in (0, 1]")
        if self.cull_per_step < 1:
            raise ConfigurationError("cull_per_step must be at least 1")
        if not 0.0 <= self.migration_fraction <= 1.0:
            raise ConfigurationError("migration_fraction must be in [0, 1]")
        names = [sp.name for sp in self.species]
        if not names:
            raise ConfigurationError("at least one species is required")
        if len(set(names)) != len(names):
            raise ConfigurationError(f"duplicate species names in {names}")
        for sp in self.species:
            if sp.carrying_capacity <= 0:
                raise ConfigurationError(f"{sp.name}: carrying_capacity must be positive")
            if sp.carrying_capacity * self.min_population_fraction < 1:
                raise ConfigurationError(
                    f"{sp.name}: carrying_capacity * min_population_fraction must be >= 1 "
                    "or the species can never recover"
                )
            if not 0 <= sp.initial_population <= sp.carrying_capacity:
                raise ConfigurationError(
                    f"{sp.name}: initial_population must be within [0, carrying_capacity]"
                )
            for attr in ("hunger_threshold", "reproduction_threshold"):
                if not 0.0 < getattr(sp, attr) <= 100.0:
                    raise ConfigurationError(f"{sp.name}: {attr} must be in (0, 100]")
            if sp.hunger_rate < 0 or sp.starvation_penalty <= 0:
                raise ConfigurationError(
                    f"{sp.name}: hunger_rate must be >= 0 and starvation_penalty > 0"
                )
            unknown = set(sp.prey) - set(names)
            if unknown:
                raise ConfigurationError(f"{sp.name}: unknown prey species {sorted(unknown)}")
            if sp.prey and sp.role is not TrophicRole.PREDATOR:
                raise ConfigurationError(f"{sp.name}: only predators may list prey")


@dataclass(frozen=True)
class EventDef:
    """Configured trigger for one world event kind."""

    kind: WorldEventKind
    duration: float
    chance_per_second: float
    magnitude: float = 1.0
    cooldown: float = 300.0
    conditions: tuple[str, ...] = ()  # guard names, ALL must pass
    conflicts: tuple[WorldEventKind, ...] = ()


def _default_events() -> tuple[EventDef, ...]:
    K = WorldEventKind
    return (
        EventDef(K.METEOR_SHOWER, 60.0, 0.1 / 120, conditions=("night",),
                 conflicts=(K.AURORA_WAVE,)),
        EventDef(K.AURORA_WAVE, 120.0, 0.15 / 120, conditions=("night", "clear_skies"),
                 conflicts=(K.METEOR_SHOWER,)),
        EventDef(K.MIGRATION, 300.0, 0.08 / 120, conditions=("migration_season",)),
        EventDef(K.BLOOM, 180.0, 0.12 / 120, conditions=("growing_season",)),
        EventDef(K.SOLAR_FLARE, 30.0, 0.05 / 120, conditions=("daylight", "clear_skies")),
        EventDef(K.COSMIC_DRIFT, 240.0, 0.03 / 120, conditions=("still_air",)),
        EventDef(K.HARMONIC_RESONANCE, 90.0, 0.02 / 120,
                 conditions=("twilight", "still_air")),
    )


@dataclass(frozen=True)
class EventConfig:
    definitions: tuple[EventDef, ...] = field(default_factory=_default_events)
    max_concurrent: int = 2
    meteor_impact_rate: float = 0.5  # impacts per second at full intensity
    impact_radius: float = 20.0  # impacts land on a ring this far from the center
    ramp_fraction: float = 0.2

    def validate(self) -> None:
        if self.max_concurrent < 1:
            raise ConfigurationError("max_concurrent must be at least 1")
        if not 0.0 <= self.ramp_fraction <= 0.5:
            raise ConfigurationError("ramp_fraction must be in [0, 0.5]")
        if self.impact_radius < 0:
            raise ConfigurationError("impact_radius must be >= 0")
        seen: set[WorldEventKind] = set()
        for defn in self.definitions:
            if defn.kind in seen:
                raise ConfigurationError(f"duplicate event definition {defn.kind.name}")
            seen.add(defn.kind)
            if defn.duration <= 0:
                raise ConfigurationError(f"{defn.kind.name}: duration must be positive")
            if defn.chance_per_second < 0 or defn.magnitude < 0 or defn.cooldown < 0:
                raise ConfigurationError(
                    f"{defn.kind.name}: chance, magnitude and cooldown must be >= 0"
                )


@dataclass(frozen=True)
class ProgressionConfig:
    """Catch-up tunables.

    ``min_step_seconds`` floors the catch-up step size so short gaps are not
    sliced finer than live play would be. ``fidelity_warning_seconds`` is the
    coarsest step that is still considered full fidelity.
    """

    max_steps: int = 1000
    min_step_seconds: float = 1.0
    max_offline_seconds: float = 24 * 3600.0
    fidelity_warning_seconds: float = 120.0

    def validate(self) -> None:
        if self.max_steps < 1:
            raise ConfigurationError("max_steps must be at least 1")
        if self.min_step_seconds <= 0:
            raise ConfigurationError("min_step_seconds must be positive")
        if self.max_offline_seconds <= 0:
            raise ConfigurationError("max_offline_seconds must be positive")


@dataclass(frozen=True)
class TerrariumConfig:
    clock: ClockConfig = field(default_factory=ClockConfig)
    weather: WeatherConfig = field(default_factory=WeatherConfig)
    resources: ResourceConfig = field(default_factory=ResourceConfig)
    ecosystem: EcosystemConfig = field(default_factory=EcosystemConfig)
    events: EventConfig = field(default_factory=EventConfig)
    progression: ProgressionConfig = field(default_factory=ProgressionConfig)

    def validate(self) -> None:
        self.clock.validate()
        self.weather.validate()
        self.resources.validate()
        self.ecosystem.validate()
        self.events.validate()
        self.progression.validate()
        if self.events.impact_radius > self.resources.field_radius:
            raise ConfigurationError(
                f"impact_radius {self.events.impact_radius} lies outside the "
                f"resource field (radius {self.resources.field_radius})"
            )


def _require_all(enum_cls: type[Enum], table: dict[Any, Any], name: str) -> None:
    missing = [m.name for m in enum_cls if m not in table]
    if missing:
        raise ConfigurationError(f"{name} is missing entries for {missing}")


# --- TOML loading ---


def _enum(enum_cls: type[E], value: Any) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls[str(value).upper()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown {enum_cls.__name__} {value!r}"
        ) from None


def _enum_table(enum_cls: type[E], data: dict[str, Any]) -> dict[E, Any]:
    return {_enum(enum_cls, k): v for k, v in data.items()}


def _overlay(section: Any, data: dict[str, Any], converters: dict[str, Any]) -> Any:
    known = {f.name for f in dataclasses.fields(section)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(
            f"Unknown {type(section).__name__} keys {sorted(unknown)}"
        )
    changes = {}
    for key, value in data.items():
        convert = converters.get(key)
        try:
            changes[key] = convert(value) if convert is not None else value
        except (AttributeError, TypeError) as exc:
            raise ConfigurationError(
                f"Malformed {type(section).__name__}.{key}: {exc}"
            ) from exc
    return dataclasses.replace(section, **changes)


def _affinity_table(data: dict[str, Any]) -> dict[tuple[ResourceKind, Season], Any]:
    """Accept ``"flower.spring" = 2.0`` keys or a nested ``[flower] spring = 2.0``."""
    table: dict[tuple[ResourceKind, Season], Any] = {}
    for kind_key, value in data.items():
        if isinstance(value, dict):
            for season_key, mult in value.items():
                table[(_enum(ResourceKind, kind_key), _enum(Season, season_key))] = mult
            continue
        kind_name, dot, season_name = str(kind_key).partition(".")
        if not dot:
            raise ConfigurationError(
                f"season_affinity key {kind_key!r} must name a kind and a season, "
                f"e.g. \"flower.spring\""
            )
        table[(_enum(ResourceKind, kind_name), _enum(Season, season_name))] = value
    return table


def _species_from_dict(data: dict[str, Any]) -> SpeciesConfig:
    data = dict(data)
    try:
        data["role"] = _enum(TrophicRole, data["role"])
        data["activity"] = _enum(ActivityPattern, data["activity"])
        data["prey"] = tuple(data.get("prey", ()))
        return SpeciesConfig(**data)
    except (KeyError, TypeError) as exc:
        raise ConfigurationError(f"Malformed species entry {data!r}: {exc}") from exc


def _event_from_dict(data: dict[str, Any]) -> EventDef:
    data = dict(data)
    try:
        data["kind"] = _enum(WorldEventKind, data["kind"])
        data["conditions"] = tuple(data.get("conditions", ()))
        data["conflicts"] = tuple(
            _enum(WorldEventKind, k) for k in data.get("conflicts", ())
        )
        return EventDef(**data)
    except (KeyError, TypeError) as exc:
        raise ConfigurationError(f"Malformed event entry {data!r}: {exc}") from exc


def config_from_dict(data: dict[str, Any]) -> TerrariumConfig:
    """Overlay a nested mapping (as read from TOML) onto the defaults."""
    base = TerrariumConfig()
    unknown = set(data) - {f.name for f in dataclasses.fields(base)}
    if unknown:
        raise ConfigurationError(f"Unknown config sections {sorted(unknown)}")

    weather_conv = {
        "initial": lambda v: _enum(WeatherKind, v),
        "wind_strength": lambda v: _enum_table(WeatherKind, v),
        "season_weights": lambda v: {
            _enum(Season, s): _enum_table(WeatherKind, w) for s, w in v.items()
        },
    }
    def kind_table(v: dict[str, Any]) -> dict[ResourceKind, Any]:
        return _enum_table(ResourceKind, v)

    resource_conv = {
        "base_growth_rate": kind_table,
        "target_population": kind_table,
        "nutrient_value": kind_table,
        "season_affinity": _affinity_table,
        "season_growth": lambda v: _enum_table(Season, v),
        "season_spawn": lambda v: _enum_table(Season, v),
        "weather_growth": lambda v: _enum_table(WeatherKind, v),
    }
    eco_conv = {
        "species": lambda v: tuple(_species_from_dict(s) for s in v),
        "activity_cost": lambda v: _enum_table(BehaviorState, v),
    }

    config = TerrariumConfig(
        clock=_overlay(base.clock, data.get("clock", {}), {}),
        weather=_overlay(base.weather, data.get("weather", {}), weather_conv),
        resources=_overlay(base.resources, data.get("resources", {}), resource_conv),
        ecosystem=_overlay(base.ecosystem, data.get("ecosystem", {}), eco_conv),
        events=_overlay(
            base.events,
            data.get("events", {}),
            {"definitions": lambda v: tuple(_event_from_dict(e) for e in v)},
        ),
        progression=_overlay(base.progression, data.get("progression", {}), {}),
    )
    config.validate()
    return config


def load_config(path: str | Path) -> TerrariumConfig:
    """Read a TOML file and return a validated config."""
    with open(path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigurationError(f"Cannot parse {path}: {exc}") from exc
    return config_from_dict(data)
