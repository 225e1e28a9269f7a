"""Flat key-value save layout and its JSON byte encoding.

Only aggregate counts persist, so a reload is statistically similar to the
saved world, not identical. Reading is lenient: a missing or malformed key
falls back to its fresh-world default and is logged, never raised.
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Mapping

from terrarium.clock import snapshot_at
from terrarium.config import ClockConfig
from terrarium.types import ResourceKind, Season, WeatherKind

logger = logging.getLogger(__name__)

ELAPSED_SECONDS = "world.elapsedSeconds"
SEASON = "world.season"
SAVED_AT = "world.savedAt"
WEATHER = "weather.current"
POPULATION = "ecosystem.populationBySpecies"
RESOURCES = "resources.countByKind"

KEYS = (ELAPSED_SECONDS, SEASON, SAVED_AT, WEATHER, POPULATION, RESOURCES)


@dataclass(frozen=True)
class SavedWorld:
    """Decoded save. ``None`` fields mean "use the fresh-world default"."""

    elapsed_seconds: float = 0.0
    season: Season = Season.SPRING
    weather: WeatherKind | None = None
    population_by_species: dict[str, int] | None = None
    resource_counts: dict[ResourceKind, int] | None = None
    saved_at: float | None = None
    fallbacks: tuple[str, ...] = field(default=(), compare=False)


def to_dict(saved: SavedWorld) -> dict[str, Any]:
    data: dict[str, Any] = {
        ELAPSED_SECONDS: saved.elapsed_seconds,
        SEASON: saved.season.value,
    }
    if saved.weather is not None:
        data[WEATHER] = saved.weather.value
    if saved.population_by_species is not None:
        data[POPULATION] = dict(saved.population_by_species)
    if saved.resource_counts is not None:
        data[RESOURCES] = {str(k.value): n for k, n in saved.resource_counts.items()}
    if saved.saved_at is not None:
        data[SAVED_AT] = saved.saved_at
    return data


def from_dict(data: Mapping[str, Any], clock: ClockConfig | None = None) -> SavedWorld:
    """Read a save mapping, substituting defaults for anything unusable.

    The season is derived from the elapsed time when a clock config is
    given; the stored ordinal is only a cross-check.
    """
    fallbacks: list[str] = []

    elapsed = data.get(ELAPSED_SECONDS, 0.0)
    if not _is_number(elapsed) or elapsed < 0:
        _fallback(fallbacks, ELAPSED_SECONDS, elapsed, "0.0")
        elapsed = 0.0

    season = _ordinal(data, SEASON, Season, fallbacks)
    if clock is not None:
        derived = snapshot_at(float(elapsed), clock).season
        if season is not None and season is not derived:
            logger.warning(
                "saved season %s disagrees with elapsed time, using %s",
                season.name, derived.name,
            )
        season = derived

    weather = _ordinal(data, WEATHER, WeatherKind, fallbacks)

    population = data.get(POPULATION)
    if population is not None:
        population = _counts(population, str, fallbacks, POPULATION)

    resources = data.get(RESOURCES)
    if resources is not None:
        resources = _counts(
            resources, lambda k: ResourceKind(int(k)), fallbacks, RESOURCES
        )

    saved_at = data.get(SAVED_AT)
    if saved_at is not None and not _is_number(saved_at):
        _fallback(fallbacks, SAVED_AT, saved_at, "no offline gap")
        saved_at = None

    for key in KEYS:
        if key not in data and key != SAVED_AT:
            logger.info("save has no %s, using fresh-world default", key)

    return SavedWorld(
        elapsed_seconds=float(elapsed),
        season=season if season is not None else Season.SPRING,
        weather=weather,
        population_by_species=population,
        resource_counts=resources,
        saved_at=float(saved_at) if saved_at is not None else None,
        fallbacks=tuple(fallbacks),
    )


def encode(data: Mapping[str, Any]) -> bytes:
    return json.dumps(dict(data), sort_keys=True).encode("utf-8")


def decode(raw: bytes) -> dict[str, Any]:
    """Parse saved bytes. Unreadable input yields an empty mapping."""
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("unreadable save, starting a fresh world: %s", exc)
        return {}
    if not isinstance(data, dict):
        logger.warning(
            "save root is %s, not an object; starting a fresh world", type(data).__name__
        )
        return {}
    return data


# --- Internal ---


def _is_number(value: Any) -> bool:
    """True for finite ints and floats. JSON integers too wide for a float are not."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _fallback(fallbacks: list[str], key: str, value: Any, default: str) -> None:
    fallbacks.append(key)
    logger.warning("malformed %s=%r in save, using %s", key, value, default)


def _ordinal(data: Mapping[str, Any], key: str, enum_cls: Any, fallbacks: list[str]) -> Any:
    value = data.get(key)
    if value is None:
        return None
    try:
        if not _is_number(value) or int(value) != value:
            raise ValueError(value)
        return enum_cls(int(value))
    except ValueError:
        _fallback(fallbacks, key, value, "default")
        return None


def _counts(raw: Any, convert_key: Any, fallbacks: list[str], key: str) -> dict[Any, int] | None:
    if not isinstance(raw, dict):
        _fallback(fallbacks, key, raw, "default")
        return None
    counts: dict[Any, int] = {}
    for k, n in raw.items():
        try:
            parsed = convert_key(k)
        except ValueError:
            _fallback(fallbacks, f"{key}[{k}]", n, "skip")
            continue
        if not _is_number(n) or n < 0 or int(n) != n:
            _fallback(fallbacks, f"{key}[{k}]", n, "0")
            continue
        counts[parsed] = int(n)
    return counts
