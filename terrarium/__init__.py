"""terrarium - a persistent micro-ecosystem with live ticking and offline catch-up."""
from terrarium.clock import WorldClock, WorldClockSnapshot, snapshot_at
from terrarium.config import (
    ClockConfig,
    EcosystemConfig,
    EventConfig,
    EventDef,
    ProgressionConfig,
    ResourceConfig,
    SpeciesConfig,
    TerrariumConfig,
    WeatherConfig,
    config_from_dict,
    load_config,
)
from terrarium.ecosystem import CreatureAgent, EcosystemEngine, EcosystemSnapshot
from terrarium.events import (
    EventChange,
    EventGuards,
    EventModifiers,
    WorldEvent,
    WorldEventScheduler,
)
from terrarium.progression import CatchUpReport, ProgressionClock
from terrarium.resources import ResourceField, ResourceNode, ResourceSnapshot
from terrarium.signals import SignalBus
from terrarium.state import TerrariumState
from terrarium.types import (
    ActivityPattern,
    BehaviorState,
    ConfigurationError,
    DayPhase,
    GrowthStage,
    NotFound,
    ResourceKind,
    Season,
    StepContext,
    TerrariumError,
    TrophicRole,
    WeatherKind,
    WorldEventKind,
)
from terrarium.weather import WeatherEngine, WeatherSnapshot

__all__ = [
    "ProgressionClock",
    "CatchUpReport",
    "TerrariumState",
    "WorldClock",
    "WorldClockSnapshot",
    "snapshot_at",
    "WeatherEngine",
    "WeatherSnapshot",
    "ResourceField",
    "ResourceNode",
    "ResourceSnapshot",
    "EcosystemEngine",
    "EcosystemSnapshot",
    "CreatureAgent",
    "WorldEventScheduler",
    "WorldEvent",
    "EventChange",
    "EventGuards",
    "EventModifiers",
    "SignalBus",
    "TerrariumConfig",
    "ClockConfig",
    "WeatherConfig",
    "ResourceConfig",
    "EcosystemConfig",
    "SpeciesConfig",
    "EventConfig",
    "EventDef",
    "ProgressionConfig",
    "config_from_dict",
    "load_config",
    "Season",
    "DayPhase",
    "WeatherKind",
    "ResourceKind",
    "GrowthStage",
    "TrophicRole",
    "ActivityPattern",
    "BehaviorState",
    "WorldEventKind",
    "StepContext",
    "NotFound",
    "TerrariumError",
    "ConfigurationError",
]
