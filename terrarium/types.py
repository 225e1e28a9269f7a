"""Shared enums, error types and the per-step context."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

AgentId = int
NodeId = int


class Season(Enum):
    SPRING = 0
    SUMMER = 1
    AUTUMN = 2
    WINTER = 3


class DayPhase(Enum):
    DAWN = 0
    DAY = 1
    DUSK = 2
    NIGHT = 3


class WeatherKind(Enum):
    CLEAR = 0
    WINDY = 1
    STORMY = 2
    CALM = 3
    MISTY = 4


class ResourceKind(Enum):
    MOTE = 0
    FLOWER = 1
    FRUIT = 2
    MUSHROOM = 3
    CRYSTAL = 4
    NECTAR = 5
    SPORE = 6


class GrowthStage(Enum):
    SEED = 0
    SPROUT = 1
    GROWING = 2
    MATURE = 3
    FLOWERING = 4
    DEPLETED = 5


class TrophicRole(Enum):
    PRODUCER = 0
    HERBIVORE = 1
    PREDATOR = 2


class ActivityPattern(Enum):
    DIURNAL = 0
    NOCTURNAL = 1
    CREPUSCULAR = 2
    CATHEMERAL = 3


class BehaviorState(Enum):
    IDLE = 0
    WANDERING = 1
    SEEKING_FOOD = 2
    FLEEING = 3
    RESTING = 4
    REPRODUCING = 5
    MIGRATING = 6


class WorldEventKind(Enum):
    METEOR_SHOWER = 0
    AURORA_WAVE = 1
    MIGRATION = 2
    BLOOM = 3
    SOLAR_FLARE = 4
    COSMIC_DRIFT = 5
    HARMONIC_RESONANCE = 6


@dataclass(frozen=True, slots=True)
class StepContext:
    """Which step is running and how many seconds it covers."""

    step_number: int
    dt: float


class TerrariumError(Exception):
    """Base class for terrarium errors."""


class ConfigurationError(TerrariumError, ValueError):
    """Raised when a tunable is missing or malformed. Blocks simulation start."""


@dataclass(frozen=True, slots=True)
class NotFound:
    """Typed absence returned when a resource node id is unknown or already taken."""

    node_id: NodeId
