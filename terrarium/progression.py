"""ProgressionClock - live ticking and bounded offline catch-up."""
from __future__ import annotations

import logging
import math
import os
import random
import time
from dataclasses import dataclass
from typing import Any, Mapping

from terrarium import persistence, signals
from terrarium.clock import WorldClock
from terrarium.config import TerrariumConfig
from terrarium.ecosystem import EcosystemEngine
from terrarium.events import NEUTRAL_MODIFIERS, EventModifiers, WorldEvent, WorldEventScheduler
from terrarium.resources import ResourceField
from terrarium.signals import Handler, SignalBus
from terrarium.state import TerrariumState, derive_state
from terrarium.types import StepContext
from terrarium.weather import WeatherEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CatchUpReport:
    requested_seconds: float
    simulated_seconds: float
    steps: int
    step_seconds: float
    days_simulated: int
    population_change: int
    weather_changes: int
    reduced_fidelity: bool


class ProgressionClock:
    """Owns every subsystem and advances them in a fixed order.

    One step runs WorldClock, WeatherEngine, ResourceField, EcosystemEngine
    (eaten nodes are taken from the field), then WorldEventScheduler. The
    event modifiers it produces are read by the following step.
    """

    def __init__(self, config: TerrariumConfig | None = None, seed: int | None = None) -> None:
        if config is None:
            config = TerrariumConfig()
        config.validate()
        if seed is None:
            seed = int.from_bytes(os.urandom(8))
        self._config = config
        self._seed = seed
        self._rng = random.Random(seed)
        self._bus = SignalBus()
        self._clock = WorldClock(config.clock, self._bus)
        self._weather = WeatherEngine(config.weather, self._rng, self._bus)
        self._resources = ResourceField(config.resources, self._rng, self._bus)
        self._ecosystem = EcosystemEngine(config.ecosystem, self._rng, self._bus)
        self._events = WorldEventScheduler(config.events, self._rng, self._bus)
        self._modifiers = NEUTRAL_MODIFIERS
        self._step_number = 0
        self._last_catch_up: CatchUpReport | None = None
        self._saved_at: float | None = None
        self._state = self._derive()

    # --- Properties ---

    @property
    def config(self) -> TerrariumConfig:
        return self._config

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def bus(self) -> SignalBus:
        return self._bus

    @property
    def clock(self) -> WorldClock:
        return self._clock

    @property
    def weather(self) -> WeatherEngine:
        return self._weather

    @property
    def resources(self) -> ResourceField:
        return self._resources

    @property
    def ecosystem(self) -> EcosystemEngine:
        return self._ecosystem

    @property
    def events(self) -> WorldEventScheduler:
        return self._events

    @property
    def modifiers(self) -> EventModifiers:
        return self._modifiers

    @property
    def step_number(self) -> int:
        return self._step_number

    @property
    def last_catch_up(self) -> CatchUpReport | None:
        return self._last_catch_up

    @property
    def saved_at(self) -> float | None:
        """Wall-clock time stored in the save this world was loaded from."""
        return self._saved_at

    # --- Queries ---

    def get_snapshot(self) -> TerrariumState:
        return self._state

    def get_active_event(self) -> WorldEvent | None:
        return self._events.active_event()

    def subscribe(self, signal_name: str, handler: Handler) -> None:
        self._bus.subscribe(signal_name, handler)

    def unsubscribe(self, signal_name: str, handler: Handler) -> None:
        self._bus.unsubscribe(signal_name, handler)

    # --- Driving ---

    def tick(self, frame_dt: float) -> TerrariumState:
        """Advance every subsystem by exactly ``frame_dt`` and notify observers."""
        if not math.isfinite(frame_dt):
            logger.warning("ignoring non-finite frame delta %r", frame_dt)
            return self._state
        dt = max(0.0, frame_dt)
        if dt == 0.0:
            return self._state
        self._run_step(self._context(dt))
        self._settle()
        return self._state

    def fast_forward(
        self, elapsed_real_seconds: float, max_steps: int | None = None
    ) -> TerrariumState:
        """Simulate an offline gap in at most ``max_steps`` coarse steps.

        Anything queued by direct subsystem calls since the last step is
        delivered first. Per-step notifications are then discarded, and
        observers receive one ``state_changed`` and one ``catch_up_completed``
        at the end.
        """
        cfg = self._config.progression
        if max_steps is None:
            max_steps = cfg.max_steps
        if max_steps < 1:
            raise ValueError(f"max_steps must be at least 1, got {max_steps}")
        self._settle()

        requested = elapsed_real_seconds if math.isfinite(elapsed_real_seconds) else 0.0
        gap = min(max(0.0, requested), cfg.max_offline_seconds)
        if gap < requested:
            logger.info(
                "offline gap of %.0fs truncated to %.0fs", requested, cfg.max_offline_seconds
            )
        if gap <= 0.0:
            self._last_catch_up = CatchUpReport(requested, 0.0, 0, 0.0, 0, 0, 0, False)
            return self._state

        step_seconds = max(cfg.min_step_seconds, gap / max_steps)
        steps = min(math.ceil(gap / step_seconds), max_steps)
        reduced = step_seconds > cfg.fidelity_warning_seconds
        if reduced:
            logger.warning(
                "catch-up of %.0fs needs %.1fs steps (fidelity limit %.1fs); "
                "results are reduced fidelity",
                gap, step_seconds, cfg.fidelity_warning_seconds,
            )
        logger.info("catching up %.1fs in %d steps of %.2fs", gap, steps, step_seconds)

        start = self._state
        start_changes = self._weather.changes
        simulated = 0.0
        self._bus.mute()
        try:
            for i in range(steps):
                dt = step_seconds if i < steps - 1 else gap - simulated
                self._run_step(self._context(dt))
                simulated += dt
        finally:
            self._bus.unmute()

        self._state = self._derive()
        report = CatchUpReport(
            requested_seconds=requested,
            simulated_seconds=simulated,
            steps=steps,
            step_seconds=step_seconds,
            days_simulated=self._state.day_index - start.day_index,
            population_change=self._state.total_population - start.total_population,
            weather_changes=self._weather.changes - start_changes,
            reduced_fidelity=reduced,
        )
        self._last_catch_up = report
        logger.info(
            "catch-up done: %d days, population %+d, %d weather changes",
            report.days_simulated, report.population_change, report.weather_changes,
        )
        self._bus.publish(signals.STATE_CHANGED, state=self._state)
        self._bus.publish(signals.CATCH_UP_COMPLETED, report=report)
        self._bus.flush()
        return self._state

    def _context(self, dt: float) -> StepContext:
        self._step_number += 1
        return StepContext(step_number=self._step_number, dt=dt)

    def _run_step(self, ctx: StepContext) -> None:
        dt = ctx.dt
        clock = self._clock.advance(dt)
        weather = self._weather.advance(dt, clock.season)
        resources = self._resources.advance(dt, clock.season, weather.current, self._modifiers)
        eco = self._ecosystem.advance(dt, clock, resources, self._modifiers)
        if eco.meals:
            self._resources.forage(eco.meals)
        change = self._events.advance(dt, clock, weather)
        if change is not None:
            for event in change.started:
                logger.debug("step %d: %s started", ctx.step_number, event.kind.name)
            for event in change.ended:
                logger.debug("step %d: %s ended", ctx.step_number, event.kind.name)
        self._modifiers = self._events.modifiers()

    def _settle(self) -> None:
        """Refresh the snapshot, announce it if it changed, then deliver the queue."""
        state = self._derive()
        if state != self._state:
            self._state = state
            self._bus.publish(signals.STATE_CHANGED, state=state)
        self._bus.flush()

    def _derive(self) -> TerrariumState:
        return derive_state(
            self._step_number,
            self._clock.snapshot,
            self._weather.snapshot,
            self._ecosystem.snapshot,
            self._resources.snapshot,
            self._events.active_events(),
        )

    # --- Persistence ---

    def save(self, saved_at: float | None = None) -> dict[str, Any]:
        """Aggregate counts under the flat save keys, stamped with wall-clock time."""
        state = self._state
        saved = persistence.SavedWorld(
            elapsed_seconds=state.elapsed_seconds,
            season=state.season,
            weather=state.weather,
            population_by_species=dict(state.per_species_counts),
            resource_counts=dict(state.resource_counts),
            saved_at=time.time() if saved_at is None else saved_at,
        )
        return persistence.to_dict(saved)

    @classmethod
    def load(
        cls,
        data: Mapping[str, Any],
        config: TerrariumConfig | None = None,
        seed: int | None = None,
    ) -> ProgressionClock:
        """Rebuild a world from a save mapping without emitting notifications."""
        world = cls(config, seed)
        saved = persistence.from_dict(data, world.config.clock)
        world._bus.mute()
        try:
            world._clock.restore(saved.elapsed_seconds)
            if saved.weather is not None:
                world._weather.restore(saved.weather)
            if saved.population_by_species is not None:
                world._ecosystem.restore(saved.population_by_species)
            if saved.resource_counts is not None:
                world._resources.restore(saved.resource_counts)
        finally:
            world._bus.unmute()
        world._saved_at = saved.saved_at
        world._state = world._derive()
        return world

    @classmethod
    def resume(
        cls,
        data: Mapping[str, Any],
        now: float | None = None,
        config: TerrariumConfig | None = None,
        seed: int | None = None,
    ) -> ProgressionClock:
        """Load a save, then catch up on the wall-clock time since it was written."""
        world = cls.load(data, config, seed)
        if world.saved_at is None:
            logger.info("save has no timestamp, skipping catch-up")
            return world
        if now is None:
            now = time.time()
        gap = now - world.saved_at
        if gap < 0:
            logger.warning("save timestamp is %.0fs in the future, skipping catch-up", -gap)
            return world
        world.fast_forward(gap)
        return world
