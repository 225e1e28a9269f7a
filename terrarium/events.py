"""WorldEventScheduler - bounded-duration world events and their modifiers."""
from __future__ import annotations

import dataclasses
import math
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from terrarium import signals, vec
from terrarium.config import EventConfig, EventDef
from terrarium.signals import SignalBus
from terrarium.types import ConfigurationError, DayPhase, Season, WeatherKind, WorldEventKind

if TYPE_CHECKING:
    from terrarium.clock import WorldClockSnapshot
    from terrarium.weather import WeatherSnapshot

Guard = Callable[["WorldClockSnapshot", "WeatherSnapshot"], bool]


@dataclass(frozen=True, slots=True)
class EventModifiers:
    """Folded effect of all active events, read by the next step."""

    growth_multiplier: float = 1.0
    spawn_multiplier: float = 1.0
    hunger_multiplier: float = 1.0
    energy_bonus: float = 0.0  # energy per second
    migration: bool = False


NEUTRAL_MODIFIERS = EventModifiers()


@dataclass(frozen=True, slots=True)
class WorldEvent:
    kind: WorldEventKind
    duration: float
    remaining_seconds: float
    magnitude: float
    started_at: float

    @property
    def progress(self) -> float:
        return 1.0 - self.remaining_seconds / self.duration

    def intensity(self, ramp_fraction: float = 0.2) -> float:
        """Envelope rising over the first and falling over the last ramp fraction."""
        if ramp_fraction <= 0:
            return 1.0
        p = min(1.0, max(0.0, self.progress))
        if p < ramp_fraction:
            return p / ramp_fraction
        if p > 1.0 - ramp_fraction:
            return (1.0 - p) / ramp_fraction
        return 1.0


@dataclass(frozen=True, slots=True)
class EventChange:
    started: tuple[WorldEvent, ...] = ()
    ended: tuple[WorldEvent, ...] = ()


@dataclass(frozen=True)
class _Effect:
    growth: float = 0.0
    spawn: float = 0.0
    hunger: float = 0.0
    energy: float = 0.0


_EFFECTS: dict[WorldEventKind, _Effect] = {
    WorldEventKind.METEOR_SHOWER: _Effect(spawn=0.5),
    WorldEventKind.AURORA_WAVE: _Effect(energy=1.0),
    WorldEventKind.MIGRATION: _Effect(),
    WorldEventKind.BLOOM: _Effect(growth=2.0, spawn=1.0),
    WorldEventKind.SOLAR_FLARE: _Effect(growth=0.5, hunger=0.5),
    WorldEventKind.COSMIC_DRIFT: _Effect(hunger=-0.3),
    WorldEventKind.HARMONIC_RESONANCE: _Effect(growth=0.25, energy=2.0),
}


class EventGuards:
    """Maps guard name strings to eligibility predicates."""

    def __init__(self) -> None:
        self._guards: dict[str, Guard] = {}

    def register(self, name: str, fn: Guard) -> None:
        """Register a named guard. Overwrites if already registered."""
        self._guards[name] = fn

    def check(self, name: str, clock: WorldClockSnapshot, weather: WeatherSnapshot) -> bool:
        """Evaluate a guard. Raises KeyError if not registered."""
        return self._guards[name](clock, weather)

    def has(self, name: str) -> bool:
        return name in self._guards

    def names(self) -> list[str]:
        return list(self._guards)


def default_guards() -> EventGuards:
    guards = EventGuards()
    guards.register("night", lambda c, w: c.phase is DayPhase.NIGHT)
    guards.register("daylight", lambda c, w: c.phase is DayPhase.DAY)
    guards.register("twilight", lambda c, w: c.phase in (DayPhase.DAWN, DayPhase.DUSK))
    guards.register(
        "clear_skies", lambda c, w: w.current in (WeatherKind.CLEAR, WeatherKind.CALM)
    )
    guards.register(
        "still_air", lambda c, w: w.current not in (WeatherKind.WINDY, WeatherKind.STORMY)
    )
    guards.register("not_stormy", lambda c, w: w.current is not WeatherKind.STORMY)
    guards.register(
        "migration_season", lambda c, w: c.season in (Season.SPRING, Season.AUTUMN)
    )
    guards.register(
        "growing_season", lambda c, w: c.season in (Season.SPRING, Season.SUMMER)
    )
    return guards


class WorldEventScheduler:
    """Starts, counts down and ends world events.

    Per advance:
    1. Count down cooldowns
    2. Count down active events, end expired ones (cooldown starts)
    3. Emit meteor impacts for an active meteor shower
    4. One Bernoulli trial per eligible kind, in definition order
    """

    def __init__(
        self,
        config: EventConfig,
        rng: random.Random,
        bus: SignalBus | None = None,
        guards: EventGuards | None = None,
    ) -> None:
        config.validate()
        self._config = config
        self._rng = rng
        self._bus = bus
        self._guards = guards if guards is not None else default_guards()
        for defn in config.definitions:
            for name in defn.conditions:
                if not self._guards.has(name):
                    raise ConfigurationError(
                        f"{defn.kind.name}: unknown guard {name!r}"
                    )
        self._definitions: dict[WorldEventKind, EventDef] = {
            d.kind: d for d in config.definitions
        }
        self._active: dict[WorldEventKind, WorldEvent] = {}
        self._cooldowns: dict[WorldEventKind, float] = {}
        self._elapsed = 0.0

    # --- Queries ---

    def is_active(self, kind: WorldEventKind) -> bool:
        return kind in self._active

    def active_events(self) -> tuple[WorldEvent, ...]:
        return tuple(self._active.values())

    def active_event(self) -> WorldEvent | None:
        """The most recently started active event, if any."""
        if not self._active:
            return None
        return next(reversed(self._active.values()))

    def time_remaining(self, kind: WorldEventKind) -> float:
        event = self._active.get(kind)
        return event.remaining_seconds if event is not None else 0.0

    def on_cooldown(self, kind: WorldEventKind) -> bool:
        return kind in self._cooldowns

    def definition(self, kind: WorldEventKind) -> EventDef | None:
        return self._definitions.get(kind)

    def modifiers(self) -> EventModifiers:
        growth = spawn = hunger = 1.0
        energy = 0.0
        migration = False
        for event in self._active.values():
            effect = _EFFECTS[event.kind]
            s = event.magnitude * event.intensity(self._config.ramp_fraction)
            growth *= 1.0 + effect.growth * s
            spawn *= 1.0 + effect.spawn * s
            hunger *= max(0.0, 1.0 + effect.hunger * s)
            energy += effect.energy * s
            migration = migration or event.kind is WorldEventKind.MIGRATION
        return EventModifiers(growth, spawn, hunger, energy, migration)

    # --- Advance ---

    def advance(
        self,
        delta_seconds: float,
        clock: WorldClockSnapshot,
        weather: WeatherSnapshot,
    ) -> EventChange | None:
        self._elapsed = clock.elapsed_seconds
        if delta_seconds <= 0:
            return None

        for kind in list(self._cooldowns):
            self._cooldowns[kind] -= delta_seconds
            if self._cooldowns[kind] <= 0:
                del self._cooldowns[kind]

        ended: list[WorldEvent] = []
        for kind, event in list(self._active.items()):
            remaining = event.remaining_seconds - delta_seconds
            if remaining <= 0:
                ended.append(self._end(kind))
            else:
                self._active[kind] = dataclasses.replace(event, remaining_seconds=remaining)

        meteor = self._active.get(WorldEventKind.METEOR_SHOWER)
        if meteor is not None:
            self._roll_meteor_impact(meteor, delta_seconds)

        expired = {e.kind for e in ended}
        started: list[WorldEvent] = []
        for kind, defn in self._definitions.items():
            if len(self._active) >= self._config.max_concurrent:
                break
            if kind in expired or kind in self._active or kind in self._cooldowns:
                continue
            if any(c in self._active for c in defn.conflicts):
                continue
            if not all(self._guards.check(g, clock, weather) for g in defn.conditions):
                continue
            if self._rng.random() >= min(1.0, defn.chance_per_second * delta_seconds):
                continue
            started.append(self._start(defn, defn.magnitude))

        if not started and not ended:
            return None
        return EventChange(started=tuple(started), ended=tuple(ended))

    # --- Manual control ---

    def force_start(
        self, kind: WorldEventKind, magnitude: float | None = None
    ) -> WorldEvent | None:
        """Start ``kind`` regardless of guards. None if it is already active."""
        if kind in self._active:
            return None
        defn = self._definitions.get(kind)
        if defn is None:
            raise KeyError(kind)
        return self._start(defn, defn.magnitude if magnitude is None else magnitude)

    def end_all(self) -> tuple[WorldEvent, ...]:
        return tuple(self._end(kind) for kind in list(self._active))

    # --- Internal ---

    def _start(self, defn: EventDef, magnitude: float) -> WorldEvent:
        event = WorldEvent(
            kind=defn.kind,
            duration=defn.duration,
            remaining_seconds=defn.duration,
            magnitude=magnitude,
            started_at=self._elapsed,
        )
        self._active[defn.kind] = event
        self._publish(signals.WORLD_EVENT_STARTED, event=event)
        return event

    def _end(self, kind: WorldEventKind) -> WorldEvent:
        event = self._active.pop(kind)
        finished = dataclasses.replace(event, remaining_seconds=0.0)
        cooldown = self._definitions[kind].cooldown
        if cooldown > 0:
            self._cooldowns[kind] = cooldown
        self._publish(signals.WORLD_EVENT_ENDED, event=finished)
        return finished

    def _roll_meteor_impact(self, meteor: WorldEvent, delta_seconds: float) -> None:
        rate = self._config.meteor_impact_rate * meteor.intensity(self._config.ramp_fraction)
        if self._rng.random() < min(1.0, rate * delta_seconds):
            angle = self._rng.uniform(0.0, 2.0 * math.pi)
            self._publish(
                signals.METEOR_IMPACT,
                position=vec.from_angle(angle, self._config.impact_radius),
            )

    def _publish(self, signal_name: str, **data: object) -> None:
        if self._bus is not None:
            self._bus.publish(signal_name, **data)
