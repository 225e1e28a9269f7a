"""Offline catch-up -- save a terrarium, then resume it hours later.

Demonstrates:
- Driving a world live with tick()
- Subscribing to notifications
- Saving aggregate state to bytes
- Resuming from a save and fast-forwarding the offline gap

Run: python -m examples.catch_up
"""

import logging

from terrarium import ProgressionClock, signals
from terrarium.persistence import decode, encode


def describe(world: ProgressionClock) -> str:
    s = world.get_snapshot()
    event = s.active_event.kind.name if s.active_event else "none"
    return (
        f"day {s.day_index:3d} {s.phase.name:5s} {s.season.name:6s} | "
        f"{s.weather.name:6s} | pop {s.total_population:3d} | "
        f"nodes {sum(s.resource_counts.values()):3d} | event {event}"
    )


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="  %(name)s: %(message)s")
    print("=== Catch-up ===\n")

    world = ProgressionClock(seed=2024)
    world.subscribe(
        signals.PHASE_CHANGED, lambda name, data: print(f"  -> {data['phase'].name}")
    )

    # Ten live minutes at 4 frames per second.
    for _ in range(10 * 60 * 4):
        world.tick(0.25)
    print(f"\nlive:    {describe(world)}")

    raw = encode(world.save(saved_at=0.0))
    print(f"saved {len(raw)} bytes\n")

    # The player comes back eight hours later.
    resumed = ProgressionClock.resume(decode(raw), now=8 * 3600.0, seed=7)
    report = resumed.last_catch_up
    print(f"\nresumed: {describe(resumed)}")
    print(
        f"caught up {report.simulated_seconds:.0f}s in {report.steps} steps "
        f"of {report.step_seconds:.1f}s, {report.days_simulated} days, "
        f"population {report.population_change:+d}"
    )


if __name__ == "__main__":
    main()
