"""In-memory pub/sub bus with step-boundary flush semantics.

Subsystems ``publish`` while a step runs; nothing reaches subscribers until
the driver calls ``flush`` after the whole step has completed, so observers
never see a half-advanced world.
"""
from __future__ import annotations

from typing import Any, Callable

Handler = Callable[[str, dict[str, Any]], None]

TIME_OF_DAY_CHANGED = "time_of_day_changed"
PHASE_CHANGED = "phase_changed"
DAY_CHANGED = "day_changed"
SEASON_CHANGED = "season_changed"
YEAR_CHANGED = "year_changed"
WEATHER_CHANGED = "weather_changed"
WEATHER_TRANSITION = "weather_transition"
LIGHTNING_STRIKE = "lightning_strike"
WORLD_EVENT_STARTED = "world_event_started"
WORLD_EVENT_ENDED = "world_event_ended"
METEOR_IMPACT = "meteor_impact"
RESOURCE_SPAWNED = "resource_spawned"
RESOURCE_STAGE_CHANGED = "resource_stage_changed"
RESOURCE_TAKEN = "resource_taken"
CREATURE_BORN = "creature_born"
CREATURE_DIED = "creature_died"
SPECIES_EXTINCT = "species_extinct"
STATE_CHANGED = "state_changed"
CATCH_UP_COMPLETED = "catch_up_completed"


class SignalBus:
    """World notifications, queued during a step and delivered after it.

    While muted the bus discards what is published instead of queueing it.
    Offline catch-up runs muted so observers only see its summary.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Handler]] = {}
        self._queue: list[tuple[str, dict[str, Any]]] = []
        self._muted = False
        self._discarded = 0

    @property
    def is_muted(self) -> bool:
        return self._muted

    @property
    def discarded(self) -> int:
        """Notifications dropped while muted, since construction."""
        return self._discarded

    def subscribe(self, signal_name: str, handler: Handler) -> None:
        self._subscribers.setdefault(signal_name, []).append(handler)

    def unsubscribe(self, signal_name: str, handler: Handler) -> None:
        handlers = self._subscribers.get(signal_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, signal_name: str, **data: Any) -> None:
        if self._muted:
            self._discarded += 1
            return
        self._queue.append((signal_name, data))

    def pending(self) -> int:
        return len(self._queue)

    def mute(self) -> None:
        """Discard everything published until ``unmute``. The queue is kept."""
        self._muted = True

    def unmute(self) -> None:
        self._muted = False

    def flush(self) -> int:
        """Deliver queued notifications in publish order. Returns how many.

        A handler may publish; those land in the next flush. Handlers may
        unsubscribe themselves mid-delivery.
        """
        delivered, self._queue = self._queue, []
        for signal_name, data in delivered:
            for handler in list(self._subscribers.get(signal_name, ())):
                handler(signal_name, data)
        return len(delivered)
