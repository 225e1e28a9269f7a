"""ResourceField - growth-stage state machines for harvestable resource nodes."""
from __future__ import annotations

import dataclasses
import math
import random
from collections import Counter
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from terrarium import signals, vec
from terrarium.config import ResourceConfig
from terrarium.events import NEUTRAL_MODIFIERS, EventModifiers
from terrarium.signals import SignalBus
from terrarium.types import GrowthStage, NodeId, NotFound, ResourceKind, Season, WeatherKind
from terrarium.vec import Vec2

NEXT_STAGE: dict[GrowthStage, GrowthStage] = {
    GrowthStage.SEED: GrowthStage.SPROUT,
    GrowthStage.SPROUT: GrowthStage.GROWING,
    GrowthStage.GROWING: GrowthStage.MATURE,
    GrowthStage.MATURE: GrowthStage.FLOWERING,
    GrowthStage.FLOWERING: GrowthStage.DEPLETED,
    GrowthStage.DEPLETED: GrowthStage.SEED,
}

EDIBLE_STAGES = frozenset({GrowthStage.MATURE, GrowthStage.FLOWERING})


@dataclass
class ResourceNode:
    node_id: NodeId
    kind: ResourceKind
    stage: GrowthStage = GrowthStage.SEED
    stage_progress: float = 0.0
    position: Vec2 = (0.0, 0.0)
    regen_elapsed: float = 0.0

    @property
    def edible(self) -> bool:
        return self.stage in EDIBLE_STAGES


@dataclass(frozen=True, slots=True)
class ResourceSnapshot:
    counts_by_kind: Mapping[ResourceKind, int]
    counts_by_stage: Mapping[GrowthStage, int]
    total: int
    edible: int
    # nutrient value of each edible node, in the order forage takes them
    edible_nutrients: tuple[float, ...]
    abundance: float


class ResourceField:
    """Owns every ResourceNode, keyed by a stable integer id.

    Nodes are only created by the spawn policy (or ``spawn``), and only
    removed through ``take``/``forage`` or ``clear``.
    """

    def __init__(
        self,
        config: ResourceConfig,
        rng: random.Random,
        bus: SignalBus | None = None,
    ) -> None:
        config.validate()
        self._config = config
        self._rng = rng
        self._bus = bus
        self._nodes: dict[NodeId, ResourceNode] = {}
        self._next_id = 0
        self._abundance_scale = max(1, sum(config.target_population.values()))
        self._snapshot = self._build()

    @property
    def snapshot(self) -> ResourceSnapshot:
        return self._snapshot

    def __len__(self) -> int:
        return len(self._nodes)

    def node(self, node_id: NodeId) -> ResourceNode | None:
        """Return a detached copy of a node, or None."""
        found = self._nodes.get(node_id)
        return dataclasses.replace(found) if found is not None else None

    def node_ids(self) -> list[NodeId]:
        return list(self._nodes)

    # --- Multipliers ---

    def season_multiplier(self, kind: ResourceKind, season: Season) -> float:
        affinity = self._config.season_affinity.get((kind, season), 1.0)
        return self._config.season_growth[season] * affinity

    def target_for(
        self, kind: ResourceKind, season: Season, modifiers: EventModifiers = NEUTRAL_MODIFIERS
    ) -> int:
        cfg = self._config
        affinity = cfg.season_affinity.get((kind, season), 1.0)
        scaled = cfg.target_population[kind] * cfg.season_spawn[season] * affinity
        return round(scaled * modifiers.spawn_multiplier)

    # --- Advance ---

    def advance(
        self,
        delta_seconds: float,
        season: Season,
        weather: WeatherKind,
        modifiers: EventModifiers = NEUTRAL_MODIFIERS,
    ) -> ResourceSnapshot:
        if delta_seconds <= 0:
            return self._snapshot
        weather_mult = self._config.weather_growth[weather]
        for node in list(self._nodes.values()):
            if node.stage is GrowthStage.DEPLETED:
                node.regen_elapsed += delta_seconds
                if node.regen_elapsed >= self._config.regen_delay:
                    self._set_stage(node, GrowthStage.SEED)
                continue
            rate = (
                self._config.base_growth_rate[node.kind]
                * self.season_multiplier(node.kind, season)
                * weather_mult
                * modifiers.growth_multiplier
            )
            node.stage_progress += rate * delta_seconds
            if node.stage_progress >= 1.0:
                self._set_stage(node, NEXT_STAGE[node.stage])

        self._spawn_shortfall(season, modifiers)
        self._snapshot = self._build()
        return self._snapshot

    def _set_stage(self, node: ResourceNode, stage: GrowthStage) -> None:
        old = node.stage
        node.stage = stage
        node.stage_progress = 0.0
        node.regen_elapsed = 0.0
        self._publish(
            signals.RESOURCE_STAGE_CHANGED,
            node_id=node.node_id,
            kind=node.kind,
            old_stage=old,
            new_stage=stage,
        )

    def _spawn_shortfall(self, season: Season, modifiers: EventModifiers) -> None:
        counts = Counter(n.kind for n in self._nodes.values())
        for kind in ResourceKind:
            shortfall = self.target_for(kind, season, modifiers) - counts[kind]
            for _ in range(shortfall):
                if self.spawn(kind) is None:
                    return

    # --- Public mutation contract ---

    def spawn(
        self,
        kind: ResourceKind,
        stage: GrowthStage = GrowthStage.SEED,
        stage_progress: float = 0.0,
    ) -> NodeId | None:
        """Create a node. Returns None when the field is at ``max_nodes``."""
        if len(self._nodes) >= self._config.max_nodes:
            return None
        node_id = self._next_id
        self._next_id += 1
        angle = self._rng.uniform(0.0, 2.0 * math.pi)
        node = ResourceNode(
            node_id=node_id,
            kind=kind,
            stage=stage,
            stage_progress=stage_progress,
            position=vec.from_angle(angle, self._config.field_radius),
        )
        self._nodes[node_id] = node
        self._publish(signals.RESOURCE_SPAWNED, node_id=node_id, kind=kind)
        self._snapshot = self._build()
        return node_id

    def take(self, node_id: NodeId) -> ResourceKind | NotFound:
        """Remove a node and return its kind, or NotFound if absent."""
        node = self._nodes.pop(node_id, None)
        if node is None:
            return NotFound(node_id)
        self._publish(signals.RESOURCE_TAKEN, node_id=node_id, kind=node.kind)
        self._snapshot = self._build()
        return node.kind

    def forage(self, count: int) -> list[ResourceKind]:
        """Take up to ``count`` edible nodes, oldest first."""
        if count <= 0:
            return []
        edible = [nid for nid, n in self._nodes.items() if n.edible][:count]
        taken: list[ResourceKind] = []
        for nid in edible:
            result = self.take(nid)
            if not isinstance(result, NotFound):
                taken.append(result)
        return taken

    def clear(self) -> None:
        self._nodes.clear()
        self._snapshot = self._build()

    def restore(self, counts_by_kind: Mapping[ResourceKind, int]) -> None:
        """Rebuild the field from aggregate counts at random growth stages."""
        self._nodes.clear()
        growing = [s for s in GrowthStage if s is not GrowthStage.DEPLETED]
        for kind in ResourceKind:
            for _ in range(counts_by_kind.get(kind, 0)):
                stage = self._rng.choice(growing)
                if self.spawn(kind, stage, self._rng.random()) is None:
                    break
        self._snapshot = self._build()

    # --- Internal ---

    def _build(self) -> ResourceSnapshot:
        by_kind = Counter(n.kind for n in self._nodes.values())
        by_stage = Counter(n.stage for n in self._nodes.values())
        edible_nodes = [n for n in self._nodes.values() if n.edible]
        return ResourceSnapshot(
            counts_by_kind=MappingProxyType({k: by_kind[k] for k in ResourceKind}),
            counts_by_stage=MappingProxyType({s: by_stage[s] for s in GrowthStage}),
            total=len(self._nodes),
            edible=len(edible_nodes),
            edible_nutrients=tuple(self._config.nutrient_value[n.kind] for n in edible_nodes),
            abundance=min(1.0, len(edible_nodes) / self._abundance_scale),
        )

    def _publish(self, signal_name: str, **data: object) -> None:
        if self._bus is not None:
            self._bus.publish(signal_name, **data)
