"""WeatherEngine - season-weighted weather with eased transitions."""
from __future__ import annotations

import math
import random
from dataclasses import dataclass

from terrarium import signals, vec
from terrarium.config import WeatherConfig
from terrarium.signals import SignalBus
from terrarium.types import Season, WeatherKind
from terrarium.vec import Vec2

_PRECIPITATION: dict[WeatherKind, float] = {
    WeatherKind.CLEAR: 0.0,
    WeatherKind.WINDY: 0.0,
    WeatherKind.STORMY: 1.0,
    WeatherKind.CALM: 0.0,
    WeatherKind.MISTY: 0.3,
}

_VISIBILITY: dict[WeatherKind, float] = {
    WeatherKind.CLEAR: 1.0,
    WeatherKind.WINDY: 0.9,
    WeatherKind.STORMY: 0.4,
    WeatherKind.CALM: 1.0,
    WeatherKind.MISTY: 0.3,
}


def front_weight(progress: float) -> float:
    """Share of the target weather felt at ``progress`` through a transition.

    Follows a smoothstep, flat at both ends and steepest halfway through.
    """
    p = min(1.0, max(0.0, progress))
    return p * p * (3.0 - 2.0 * p)


@dataclass(frozen=True, slots=True)
class WeatherSnapshot:
    current: WeatherKind
    target: WeatherKind
    transition_progress: float
    wind_direction: Vec2
    wind_strength: float
    wind: Vec2
    precipitation: float
    visibility: float

    @property
    def transitioning(self) -> bool:
        return self.current is not self.target


class WeatherEngine:
    """Probabilistic weather state machine.

    While idle, a season-weighted draw happens every ``reroll_interval``
    seconds. A draw that differs from the current weather starts a
    transition; a running transition is never interrupted by a draw.
    """

    def __init__(
        self,
        config: WeatherConfig,
        rng: random.Random,
        bus: SignalBus | None = None,
    ) -> None:
        config.validate()
        self._config = config
        self._rng = rng
        self._bus = bus
        self._current = config.initial
        self._target = config.initial
        self._progress = 1.0
        self._idle = 0.0
        self._wind_angle = rng.uniform(0.0, 2.0 * math.pi)
        self._changes = 0
        self._strikes = 0
        self._snapshot = self._build()

    @property
    def current(self) -> WeatherKind:
        return self._current

    @property
    def target(self) -> WeatherKind:
        return self._target

    @property
    def transition_progress(self) -> float:
        return self._progress

    @property
    def is_transitioning(self) -> bool:
        return self._current is not self._target

    @property
    def changes(self) -> int:
        """Completed weather changes since construction."""
        return self._changes

    @property
    def strikes(self) -> int:
        return self._strikes

    @property
    def snapshot(self) -> WeatherSnapshot:
        return self._snapshot

    def advance(self, delta_seconds: float, season: Season) -> WeatherSnapshot:
        if delta_seconds <= 0:
            return self._snapshot

        remaining = delta_seconds
        if not self.is_transitioning:
            remaining = self._roll_when_due(delta_seconds, season)
        if self.is_transitioning and remaining > 0:
            self._advance_transition(remaining)

        self._wind_angle += self._rng.gauss(
            0.0, self._config.wind_drift * math.sqrt(delta_seconds)
        )

        if self._current is WeatherKind.STORMY:
            chance = min(1.0, self._config.lightning_chance_per_second * delta_seconds)
            if self._rng.random() < chance:
                self._strikes += 1
                self._publish(signals.LIGHTNING_STRIKE)

        self._snapshot = self._build()
        return self._snapshot

    def set_weather(self, kind: WeatherKind, instant: bool = False) -> None:
        """Force the weather, either snapping or through a normal transition."""
        if instant:
            changed = kind is not self._current
            self._current = kind
            self._target = kind
            self._progress = 1.0
            self._idle = 0.0
            if changed:
                self._changes += 1
                self._publish(signals.WEATHER_CHANGED, weather=kind)
        elif kind is self._current:
            self._target = kind
            self._progress = 1.0
        else:
            self._target = kind
            self._progress = 0.0
        self._snapshot = self._build()

    def restore(self, kind: WeatherKind) -> None:
        """Settle on ``kind`` without emitting notifications."""
        self._current = kind
        self._target = kind
        self._progress = 1.0
        self._idle = 0.0
        self._snapshot = self._build()

    def wind_for(self, kind: WeatherKind) -> Vec2:
        return vec.from_angle(self._wind_angle, self._config.wind_strength[kind])

    # --- Internal ---

    def _roll_when_due(self, delta_seconds: float, season: Season) -> float:
        """Accumulate idle time and roll once if due. Returns unused seconds."""
        interval = self._config.reroll_interval
        self._idle += delta_seconds
        if self._idle < interval:
            return 0.0
        leftover = self._idle - interval
        self._idle = 0.0
        drawn = self._draw(season)
        if drawn is self._current:
            self._idle = leftover % interval
            return 0.0
        self._target = drawn
        self._progress = 0.0
        return leftover

    def _draw(self, season: Season) -> WeatherKind:
        weights = self._config.season_weights[season]
        kinds = list(WeatherKind)
        return self._rng.choices(kinds, weights=[weights.get(k, 0.0) for k in kinds])[0]

    def _advance_transition(self, seconds: float) -> None:
        self._progress = min(1.0, self._progress + seconds / self._config.transition_duration)
        self._publish(
            signals.WEATHER_TRANSITION,
            from_weather=self._current,
            to_weather=self._target,
            progress=self._progress,
        )
        if self._progress >= 1.0:
            self._current = self._target
            self._progress = 1.0
            self._idle = 0.0
            self._changes += 1
            self._publish(signals.WEATHER_CHANGED, weather=self._current)

    def _build(self) -> WeatherSnapshot:
        t = front_weight(self._progress)
        wind = vec.lerp(self.wind_for(self._current), self.wind_for(self._target), t)
        a, b = self._current, self._target
        return WeatherSnapshot(
            current=a,
            target=b,
            transition_progress=self._progress,
            wind_direction=vec.from_angle(self._wind_angle),
            wind_strength=vec.magnitude(wind),
            wind=wind,
            precipitation=_PRECIPITATION[a] + (_PRECIPITATION[b] - _PRECIPITATION[a]) * t,
            visibility=_VISIBILITY[a] + (_VISIBILITY[b] - _VISIBILITY[a]) * t,
        )

    def _publish(self, signal_name: str, **data: object) -> None:
        if self._bus is not None:
            self._bus.publish(signal_name, **data)
