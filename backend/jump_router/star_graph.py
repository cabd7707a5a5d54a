from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict

from .logging_utils import log_event
from .settings import settings


class JumpPointType(str, Enum):
    NORMAL = "normal"
    UNCONFIRMED = "unconfirmed"
    UNDISCOVERED = "undiscovered"


@dataclass(frozen=True)
class StarSystem:
    id: str
    name: str
    position: tuple[float, float, float] = (0.0, 0.0, 0.0)
    faction: str = "unclaimed"
    tags: frozenset[str] = field(default_factory=frozenset)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class JumpPoint:
    id: str
    source: str
    destination: str
    type: JumpPointType = JumpPointType.NORMAL
    name: str = ""

    def __post_init__(self) -> None:
        if not self.source or not self.destination:
            raise ValueError(f"jump point {self.id!r} needs both a source and a destination")
        if self.source == self.destination:
            raise ValueError(f"jump point {self.id!r} connects {self.source!r} to itself")

    def is_unconfirmed(self) -> bool:
        return self.type in (JumpPointType.UNCONFIRMED, JumpPointType.UNDISCOVERED)


class Restrictions(BaseModel):
    """Which jump points a restricted search may use."""

    model_config = ConfigDict(frozen=True)

    avoid_unconfirmed: bool = False
    avoid_undiscovered: bool = False
    avoid_factions: frozenset[str] = frozenset()
    avoid_tags: frozenset[str] = frozenset()
    avoid_systems: frozenset[str] = frozenset()

    @classmethod
    def from_settings(cls) -> "Restrictions":
        return cls(
            avoid_unconfirmed=settings.avoid_unconfirmed,
            avoid_undiscovered=settings.avoid_undiscovered,
            avoid_factions=settings.avoid_faction_set,
            avoid_tags=settings.avoid_tag_set,
        )


MetricFn = Callable[["StarGraph", JumpPoint], float]


def _distance_metric(graph: StarGraph, jump_point: JumpPoint) -> float:
    return graph.length(jump_point)


def _time_metric(graph: StarGraph, jump_point: JumpPoint) -> float:
    return graph.length(jump_point) * float(settings.jump_time_per_length)


def _fuel_metric(graph: StarGraph, jump_point: JumpPoint) -> float:
    # Jumps are not known to consume fuel yet.
    return 0.0


METRICS: dict[str, MetricFn] = {
    "distance": _distance_metric,
    "time": _time_metric,
    "fuel": _fuel_metric,
}


@dataclass(frozen=True)
class StarGraph:
    """Read-only arena of systems and the jump points between them.

    Systems and jump points reference each other by id only; reciprocal jump
    points are found by scanning, never stored.
    """

    systems: Mapping[str, StarSystem]
    adjacency: Mapping[str, tuple[JumpPoint, ...]]
    edge_index: Mapping[tuple[str, str], JumpPoint]
    version: str = "unknown"
    source: str = "memory"

    def system(self, system_id: str) -> StarSystem | None:
        return self.systems.get(system_id)

    def contains(self, system: StarSystem) -> bool:
        return self.systems.get(system.id) == system

    def outgoing(self, system_id: str) -> tuple[JumpPoint, ...]:
        return self.adjacency.get(system_id, ())

    def jump_points(self) -> Iterator[JumpPoint]:
        for edges in self.adjacency.values():
            yield from edges

    def jump_point_between(self, source_id: str, destination_id: str) -> JumpPoint | None:
        return self.edge_index.get((source_id, destination_id))

    def length(self, jump_point: JumpPoint) -> float:
        src = self.systems[jump_point.source].position
        dst = self.systems[jump_point.destination].position
        return math.dist(src, dst)

    def weight(self, jump_point: JumpPoint, metric: str) -> float:
        fn = METRICS.get(metric)
        if fn is None:
            raise ValueError(f"unknown routing metric {metric!r}")
        return float(fn(self, jump_point))

    def allowed(self, jump_point: JumpPoint, restrictions: Restrictions | None) -> bool:
        if restrictions is None:
            return True
        if restrictions.avoid_unconfirmed and jump_point.type == JumpPointType.UNCONFIRMED:
            return False
        if restrictions.avoid_undiscovered and jump_point.type == JumpPointType.UNDISCOVERED:
            return False
        if jump_point.destination in restrictions.avoid_systems:
            return False
        destination = self.systems.get(jump_point.destination)
        if destination is None:
            return False
        if destination.faction in restrictions.avoid_factions:
            return False
        if destination.tags & restrictions.avoid_tags:
            return False
        return True

    def opposite(self, jump_point: JumpPoint) -> JumpPoint | None:
        for candidate in self.outgoing(jump_point.destination):
            if candidate.destination == jump_point.source:
                return candidate
        return None


def build_star_graph(
    systems: Iterable[StarSystem],
    jump_points: Iterable[JumpPoint],
    *,
    version: str = "unknown",
    source: str = "memory",
) -> StarGraph:
    system_map: dict[str, StarSystem] = {}
    for system in systems:
        system_map[system.id] = system

    adjacency_mut: dict[str, list[JumpPoint]] = {}
    edge_index: dict[tuple[str, str], JumpPoint] = {}
    dropped = 0
    for jump_point in jump_points:
        if jump_point.source not in system_map or jump_point.destination not in system_map:
            dropped += 1
            continue
        key = (jump_point.source, jump_point.destination)
        if key in edge_index:
            dropped += 1
            continue
        adjacency_mut.setdefault(jump_point.source, []).append(jump_point)
        edge_index[key] = jump_point

    if dropped:
        log_event(
            "star_graph_jump_points_dropped",
            dropped=dropped,
            graph_version=version,
            graph_source=source,
        )
    return StarGraph(
        systems=system_map,
        adjacency={key: tuple(edges) for key, edges in adjacency_mut.items()},
        edge_index=edge_index,
        version=version,
        source=source,
    )
