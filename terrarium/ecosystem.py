"""EcosystemEngine - creature needs, behavior policy, feeding and population control."""
from __future__ import annotations

import dataclasses
import logging
import math
import random
from collections import Counter
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping

from terrarium import signals
from terrarium.config import EcosystemConfig, SpeciesConfig
from terrarium.events import NEUTRAL_MODIFIERS, EventModifiers
from terrarium.signals import SignalBus
from terrarium.types import ActivityPattern, AgentId, BehaviorState, DayPhase, TrophicRole

if TYPE_CHECKING:
    from terrarium.clock import WorldClockSnapshot
    from terrarium.resources import ResourceSnapshot

logger = logging.getLogger(__name__)

NEED_MAX = 100.0

ACTIVE_PHASES: dict[ActivityPattern, frozenset[DayPhase]] = {
    ActivityPattern.DIURNAL: frozenset({DayPhase.DAWN, DayPhase.DAY}),
    ActivityPattern.NOCTURNAL: frozenset({DayPhase.DUSK, DayPhase.NIGHT}),
    ActivityPattern.CREPUSCULAR: frozenset({DayPhase.DAWN, DayPhase.DUSK}),
    ActivityPattern.CATHEMERAL: frozenset(DayPhase),
}

PHOTOSYNTHESIS_PHASES = frozenset({DayPhase.DAWN, DayPhase.DAY})


def is_active(pattern: ActivityPattern, phase: DayPhase) -> bool:
    return phase in ACTIVE_PHASES[pattern]


def _clamp(value: float) -> float:
    return max(0.0, min(NEED_MAX, value))


@dataclass
class CreatureAgent:
    agent_id: AgentId
    species: str
    role: TrophicRole
    activity: ActivityPattern
    behavior: BehaviorState = BehaviorState.IDLE
    health: float = NEED_MAX
    energy: float = NEED_MAX
    hunger: float = 0.0
    age: float = 0.0
    state_timer: float = 0.0
    reproduction_cooldown: float = 0.0
    migrant: bool = False


@dataclass(frozen=True, slots=True)
class EcosystemSnapshot:
    total_population: int
    per_species_counts: Mapping[str, int]
    behavior_counts: Mapping[BehaviorState, int]
    meals: int = 0
    births: int = 0
    deaths: int = 0


class EcosystemEngine:
    """Owns every CreatureAgent in an arena keyed by a stable integer id.

    Each advance runs, in agent id order: needs, aging and death, the
    behavior policy, feeding, one predation pass, reproduction, then the
    per-species population step (cull to capacity, auto-spawn to the floor).
    """

    def __init__(
        self,
        config: EcosystemConfig,
        rng: random.Random,
        bus: SignalBus | None = None,
    ) -> None:
        config.validate()
        self._config = config
        self._rng = rng
        self._bus = bus
        self._species: dict[str, SpeciesConfig] = {sp.name: sp for sp in config.species}
        self._agents: dict[AgentId, CreatureAgent] = {}
        self._next_id = 0
        self._migration_active = False
        for sp in config.species:
            for _ in range(sp.initial_population):
                self._add(sp)
        self._snapshot = self._build()

    # --- Queries ---

    @property
    def config(self) -> EcosystemConfig:
        return self._config

    @property
    def snapshot(self) -> EcosystemSnapshot:
        return self._snapshot

    def __len__(self) -> int:
        return len(self._agents)

    def agent(self, agent_id: AgentId) -> CreatureAgent | None:
        """Return a detached copy of an agent, or None."""
        found = self._agents.get(agent_id)
        return dataclasses.replace(found) if found is not None else None

    def agent_ids(self) -> list[AgentId]:
        return sorted(self._agents)

    def population(self, species: str) -> int:
        return sum(1 for a in self._agents.values() if a.species == species)

    def floor_for(self, species: str) -> int:
        """Auto-spawn threshold for ``species``."""
        sp = self._species[species]
        return math.floor(self._config.min_population_fraction * sp.carrying_capacity)

    # --- Advance ---

    def advance(
        self,
        delta_seconds: float,
        clock: WorldClockSnapshot,
        resources: ResourceSnapshot,
        modifiers: EventModifiers = NEUTRAL_MODIFIERS,
    ) -> EcosystemSnapshot:
        if delta_seconds <= 0:
            return self._snapshot
        dt = delta_seconds
        births = deaths = 0

        self._update_migration(modifiers.migration)
        hunted_species = self._hunted_species()

        for aid in sorted(self._agents):
            agent = self._agents[aid]
            sp = self._species[agent.species]
            self._update_needs(agent, sp, dt, modifiers)
            agent.age += dt
            if sp.lifespan > 0 and agent.age >= sp.lifespan:
                self._remove(aid, "old_age")
                deaths += 1
            elif agent.health <= 0.0:
                self._remove(aid, "starvation")
                deaths += 1

        for aid in sorted(self._agents):
            agent = self._agents[aid]
            self._choose_behavior(
                agent, self._species[agent.species], clock.phase, hunted_species, dt
            )

        meals = self._feed(dt, clock.phase, resources)
        deaths += self._predation_pass(dt)
        births += self._reproduce()
        culled, spawned = self._population_step()
        deaths += culled
        births += spawned

        self._snapshot = self._build(meals=meals, births=births, deaths=deaths)
        return self._snapshot

    def _update_migration(self, migration: bool) -> None:
        if migration and not self._migration_active:
            for aid in sorted(self._agents):
                agent = self._agents[aid]
                if agent.role is TrophicRole.HERBIVORE:
                    agent.migrant = self._rng.random() < self._config.migration_fraction
        elif not migration and self._migration_active:
            for agent in self._agents.values():
                agent.migrant = False
        self._migration_active = migration

    def _hunted_species(self) -> set[str]:
        hunted: set[str] = set()
        for agent in self._agents.values():
            if agent.role is TrophicRole.PREDATOR and agent.behavior is BehaviorState.SEEKING_FOOD:
                hunted.update(self._species[agent.species].prey)
        return hunted

    def _update_needs(
        self,
        agent: CreatureAgent,
        sp: SpeciesConfig,
        dt: float,
        modifiers: EventModifiers,
    ) -> None:
        agent.hunger = _clamp(agent.hunger + sp.hunger_rate * modifiers.hunger_multiplier * dt)
        cost = self._config.activity_cost[agent.behavior]
        agent.energy = _clamp(agent.energy - cost * dt + modifiers.energy_bonus * dt)
        if agent.hunger >= NEED_MAX:
            agent.health = _clamp(agent.health - sp.starvation_penalty * dt)
        else:
            agent.health = _clamp(agent.health + sp.health_regen * dt)
        agent.reproduction_cooldown = max(0.0, agent.reproduction_cooldown - dt)

    def _choose_behavior(
        self,
        agent: CreatureAgent,
        sp: SpeciesConfig,
        phase: DayPhase,
        hunted_species: set[str],
        dt: float,
    ) -> None:
        critical = agent.health < self._config.critical_health_fraction * NEED_MAX
        active = is_active(agent.activity, phase)
        hunted = agent.species in hunted_species

        if self._migration_active and agent.migrant and not critical:
            new = BehaviorState.MIGRATING
        elif critical:
            new = BehaviorState.FLEEING if hunted else BehaviorState.RESTING
        elif agent.hunger > sp.hunger_threshold and active:
            new = BehaviorState.SEEKING_FOOD
        elif (
            agent.energy > sp.reproduction_threshold
            and agent.reproduction_cooldown <= 0.0
            and not hunted
        ):
            new = BehaviorState.REPRODUCING
        elif not active or agent.energy <= 0.0:
            new = BehaviorState.RESTING
        elif agent.behavior is BehaviorState.WANDERING:
            timed_out = agent.state_timer + dt >= self._config.wander_timeout
            new = BehaviorState.IDLE if timed_out else BehaviorState.WANDERING
        elif agent.behavior is BehaviorState.IDLE:
            timed_out = agent.state_timer + dt >= self._config.idle_timeout
            new = BehaviorState.WANDERING if timed_out else BehaviorState.IDLE
        else:
            new = BehaviorState.WANDERING

        if new is agent.behavior:
            agent.state_timer += dt
        else:
            agent.behavior = new
            agent.state_timer = 0.0

    def _feed(self, dt: float, phase: DayPhase, resources: ResourceSnapshot) -> int:
        """Producers photosynthesize, herbivores graze. Returns nodes eaten.

        Grazers take edible nodes oldest first and are credited with that
        node's nutrient value.
        """
        nutrients = resources.edible_nutrients
        meals = 0
        for aid in sorted(self._agents):
            agent = self._agents[aid]
            if agent.behavior is not BehaviorState.SEEKING_FOOD:
                continue
            sp = self._species[agent.species]
            if agent.role is TrophicRole.PRODUCER:
                if phase in PHOTOSYNTHESIS_PHASES and self._rng.random() < min(1.0, sp.forage_rate * dt):
                    agent.hunger = _clamp(agent.hunger - sp.meal_value)
            elif agent.role is TrophicRole.HERBIVORE and meals < len(nutrients):
                chance = min(1.0, resources.abundance * sp.forage_rate * dt)
                if self._rng.random() < chance:
                    agent.hunger = _clamp(agent.hunger - nutrients[meals])
                    meals += 1
        return meals

    def _predation_pass(self, dt: float) -> int:
        hunters: set[AgentId] = set()
        kills = 0
        for aid in sorted(self._agents):
            predator = self._agents.get(aid)
            if predator is None or predator.role is not TrophicRole.PREDATOR:
                continue
            if predator.behavior is not BehaviorState.SEEKING_FOOD:
                continue
            hunters.add(aid)
            sp = self._species[predator.species]
            if self._rng.random() >= min(1.0, sp.catch_rate * dt):
                continue
            candidates = [
                a for a in self._agents.values()
                if a.species in sp.prey and a.agent_id not in hunters
            ]
            if not candidates:
                continue
            victim = min(candidates, key=lambda a: (a.health, a.agent_id))
            self._remove(victim.agent_id, "predation")
            predator.hunger = _clamp(predator.hunger - sp.meal_value)
            kills += 1
        return kills

    def _reproduce(self) -> int:
        born = 0
        counts = Counter(a.species for a in self._agents.values())
        for aid in sorted(self._agents):
            parent = self._agents[aid]
            if parent.behavior is not BehaviorState.REPRODUCING:
                continue
            sp = self._species[parent.species]
            if parent.reproduction_cooldown > 0.0 or counts[sp.name] >= sp.carrying_capacity:
                continue
            parent.energy = _clamp(parent.energy - sp.reproduction_cost)
            parent.reproduction_cooldown = sp.reproduction_cooldown
            child = self._add(sp)
            counts[sp.name] += 1
            born += 1
            self._publish(signals.CREATURE_BORN, agent_id=child.agent_id, species=sp.name)
        return born

    def _population_step(self) -> tuple[int, int]:
        culled = spawned = 0
        for sp in self._config.species:
            members = [a for a in self._agents.values() if a.species == sp.name]
            excess = len(members) - sp.carrying_capacity
            if excess > 0:
                members.sort(key=lambda a: (a.health, a.agent_id))
                for agent in members[: min(excess, self._config.cull_per_step)]:
                    self._remove(agent.agent_id, "starvation")
                    culled += 1
            floor = self.floor_for(sp.name)
            count = self.population(sp.name)
            if count < floor:
                logger.debug("auto-spawning %d %s", floor - count, sp.name)
                for _ in range(floor - count):
                    child = self._add(sp)
                    spawned += 1
                    self._publish(signals.CREATURE_BORN, agent_id=child.agent_id, species=sp.name)
        return culled, spawned

    # --- Public mutation contract ---

    def spawn(self, species: str) -> AgentId | None:
        """Add one agent with default needs. None when the species is at capacity."""
        sp = self._species[species]
        if self.population(species) >= sp.carrying_capacity:
            return None
        agent = self._add(sp)
        self._publish(signals.CREATURE_BORN, agent_id=agent.agent_id, species=species)
        self._snapshot = self._build()
        return agent.agent_id

    def kill(self, agent_id: AgentId, cause: str) -> bool:
        if agent_id not in self._agents:
            return False
        self._remove(agent_id, cause)
        self._snapshot = self._build()
        return True

    def restore(self, population_by_species: Mapping[str, int]) -> None:
        """Replace every agent with fresh ones matching saved counts, silently."""
        self._agents.clear()
        self._migration_active = False
        for name, count in population_by_species.items():
            sp = self._species.get(name)
            if sp is None:
                logger.warning("ignoring saved population for unknown species %r", name)
                continue
            for _ in range(min(max(0, count), sp.carrying_capacity)):
                self._add(sp)
        self._snapshot = self._build()

    # --- Internal ---

    def _add(self, sp: SpeciesConfig) -> CreatureAgent:
        agent = CreatureAgent(
            agent_id=self._next_id,
            species=sp.name,
            role=sp.role,
            activity=sp.activity,
        )
        self._agents[agent.agent_id] = agent
        self._next_id += 1
        return agent

    def _remove(self, agent_id: AgentId, cause: str) -> None:
        agent = self._agents.pop(agent_id)
        self._publish(
            signals.CREATURE_DIED, agent_id=agent_id, species=agent.species, cause=cause
        )
        if not any(a.species == agent.species for a in self._agents.values()):
            logger.info("species %s went extinct (%s)", agent.species, cause)
            self._publish(signals.SPECIES_EXTINCT, species=agent.species)

    def _build(self, meals: int = 0, births: int = 0, deaths: int = 0) -> EcosystemSnapshot:
        by_species = Counter(a.species for a in self._agents.values())
        by_behavior = Counter(a.behavior for a in self._agents.values())
        return EcosystemSnapshot(
            total_population=len(self._agents),
            per_species_counts=MappingProxyType(
                {sp.name: by_species[sp.name] for sp in self._config.species}
            ),
            behavior_counts=MappingProxyType({b: by_behavior[b] for b in BehaviorState}),
            meals=meals,
            births=births,
            deaths=deaths,
        )

    def _publish(self, signal_name: str, **data: object) -> None:
        if self._bus is not None:
            self._bus.publish(signal_name, **data)
