from __future__ import annotations

import heapq
from dataclasses import dataclass
from math import inf

from .route_errors import SegmentConfigError
from .settings import settings
from .star_graph import METRICS, Restrictions, StarGraph, StarSystem


@dataclass(frozen=True)
class RouteStep:
    system: StarSystem
    cost: float


class Dijkstra:
    """Single-pair shortest path over a StarGraph for one metric/restriction setup.

    The search keeps its frontier between queries: with early exit enabled it
    stops as soon as the configured end is finalized, and a query for any other
    target resumes the same search. Finalized entries never change afterwards,
    so results match a search that ran to completion.
    """

    def __init__(
        self,
        graph: StarGraph,
        start: StarSystem,
        end: StarSystem,
        *,
        restrictions: Restrictions | None = None,
        metric: str | None = None,
        apply_restrictions: bool | None = None,
    ) -> None:
        self.graph = graph
        self._validate(start, end)
        self._start = start
        self._end = end
        self.restrictions = restrictions if restrictions is not None else Restrictions.from_settings()
        self.metric = metric or settings.route_metric
        self.apply_restrictions = (
            settings.route_apply_restrictions if apply_restrictions is None else bool(apply_restrictions)
        )
        self._built = False
        self._distances: dict[str, float] = {}
        self._predecessors: dict[str, str | None] = {}
        self._finalized: set[str] = set()
        self._frontier: list[tuple[float, int, str]] = []
        self._sequence = 0
        self._last: RouteStep | None = None

    def __repr__(self) -> str:
        return f"Dijkstra({self._start.id!r} -> {self._end.id!r}, metric={self.metric!r})"

    def _validate(self, start: StarSystem | None, end: StarSystem | None) -> None:
        if start is None or end is None:
            raise SegmentConfigError("segment needs both a start and an end system")
        if start.id == end.id:
            raise SegmentConfigError(
                f"segment start and end are both {start.name!r}",
                details={"system_id": start.id},
            )
        for system in (start, end):
            if not self.graph.contains(system):
                raise SegmentConfigError(
                    f"system {system.name!r} is not part of the map",
                    details={"system_id": system.id},
                )

    @property
    def start(self) -> StarSystem:
        return self._start

    @property
    def end(self) -> StarSystem:
        return self._end

    def retargeted(self, start: StarSystem, end: StarSystem) -> Dijkstra:
        return Dijkstra(
            self.graph,
            start,
            end,
            restrictions=self.restrictions,
            metric=self.metric,
            apply_restrictions=self.apply_restrictions,
        )

    def destination(self) -> StarSystem:
        return self._end

    def build_graph(self, metric: str | None = None, apply_restrictions: bool | None = None) -> None:
        if metric is not None:
            if metric not in METRICS:
                raise ValueError(f"unknown routing metric {metric!r}")
            self.metric = metric
        if apply_restrictions is not None:
            self.apply_restrictions = bool(apply_restrictions)

        start_id = self._start.id
        self._distances = {start_id: 0.0}
        self._predecessors = {start_id: None}
        self._finalized = set()
        self._frontier = [(0.0, 0, start_id)]
        self._sequence = 0
        self._built = True
        self._settle(self._end.id if settings.solver_early_exit else None)

    def rebuild_graph(self) -> bool:
        before = self._fingerprint() if self._built else None
        self.build_graph(self.metric, self.apply_restrictions)
        return before is None or before != self._fingerprint()

    def _settle(self, target: str | None) -> None:
        restrictions = self.restrictions if self.apply_restrictions else None
        frontier = self._frontier
        while frontier:
            if target is not None and target in self._finalized:
                return
            cost, _seq, node = heapq.heappop(frontier)
            if node in self._finalized or cost > self._distances.get(node, inf):
                continue
            self._finalized.add(node)
            for jump_point in self.graph.outgoing(node):
                nxt = jump_point.destination
                if nxt in self._finalized:
                    continue
                if not self.graph.allowed(jump_point, restrictions):
                    continue
                edge_cost = self.graph.weight(jump_point, self.metric)
                if edge_cost < 0.0:
                    raise ValueError(f"negative weight on jump point {jump_point.id!r}")
                new_cost = cost + edge_cost
                if new_cost < self._distances.get(nxt, inf):
                    self._distances[nxt] = new_cost
                    self._predecessors[nxt] = node
                    self._sequence += 1
                    heapq.heappush(frontier, (new_cost, self._sequence, nxt))
            if node == target:
                return

    def _fingerprint(self) -> tuple[tuple[str, float], ...]:
        return tuple((step.system.id, step.cost) for step in self._walk(self._end.id))

    def _walk(self, target_id: str) -> list[RouteStep]:
        if not self._built:
            self.build_graph(self.metric, self.apply_restrictions)
        if target_id not in self._finalized:
            self._settle(target_id)
        if target_id not in self._finalized:
            return []
        steps: list[RouteStep] = []
        node: str | None = target_id
        while node is not None:
            steps.append(RouteStep(system=self.graph.systems[node], cost=self._distances[node]))
            node = self._predecessors[node]
        steps.reverse()
        return steps

    def route_array(self, end_override: StarSystem | None = None) -> list[RouteStep]:
        target = end_override if end_override is not None else self._end
        if self.graph.system(target.id) is None:
            steps: list[RouteStep] = []
        else:
            steps = self._walk(target.id)
        self._last = steps[-1] if steps else None
        return steps

    def last_node(self) -> RouteStep | None:
        return self._last
