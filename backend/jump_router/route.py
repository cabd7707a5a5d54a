from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from .dijkstra import Dijkstra, RouteStep
from .logging_utils import log_event
from .route_errors import (
    LookupIsolationFailure,
    RouteError,
    SegmentConfigError,
    SegmentUnreachable,
    StructuralEditRejected,
)
from .session_store import RouteSessionAdapter, SystemLookup
from .settings import settings
from .star_graph import Restrictions, StarGraph, StarSystem


@dataclass(frozen=True)
class SyncResult:
    ok: bool
    segments: tuple[Dijkstra, ...] = ()
    error: RouteError | None = None


RouteListener = Callable[[StarSystem], None]


def _ids(systems: Iterable[StarSystem]) -> list[str]:
    return [system.id for system in systems]


def _index_of(systems: Sequence[StarSystem], system: StarSystem) -> int | None:
    for index, candidate in enumerate(systems):
        if candidate.id == system.id:
            return index
    return None


class Route:
    """A start system, an ordered list of waypoints and one segment per waypoint.

    ``segments[i]`` always spans ``(start if i == 0 else waypoints[i - 1]) ->
    waypoints[i]``. Structural edits build candidate lists on copies and only
    commit them once every candidate segment has a path, so a failed edit
    leaves the route exactly as it was.
    """

    def __init__(
        self,
        graph: StarGraph,
        start: StarSystem | None = None,
        waypoints: Sequence[StarSystem | None] = (),
        *,
        metric: str | None = None,
        apply_restrictions: bool | None = None,
        restrictions: Restrictions | None = None,
        session: RouteSessionAdapter | None = None,
    ) -> None:
        self.graph = graph
        self.metric = metric or settings.route_metric
        self.apply_restrictions = (
            settings.route_apply_restrictions if apply_restrictions is None else bool(apply_restrictions)
        )
        self.restrictions = restrictions if restrictions is not None else Restrictions.from_settings()
        self.session = session

        self.start: StarSystem | None = None
        self.waypoints: list[StarSystem] = []
        self._segments: list[Dijkstra] = []
        self._error: RouteError | None = None
        self._rejection: StructuralEditRejected | None = None
        self._failure: RouteError | None = None
        self._listeners: list[RouteListener] = []

        clean_start, clean_waypoints = self._clean(start, waypoints)
        if clean_start is not None:
            self._apply(clean_start, clean_waypoints, (), action="init", persist=False)

    def __str__(self) -> str:
        parts = [] if self.start is None else [self.start.name]
        parts.extend(waypoint.name for waypoint in self.waypoints)
        return " > ".join(parts)

    @property
    def segments(self) -> tuple[Dijkstra, ...]:
        return tuple(self._segments)

    # Listeners ------------------------------------------------------------

    def add_listener(self, listener: RouteListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: RouteListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # Sync -----------------------------------------------------------------

    def _clean(
        self,
        start: StarSystem | None,
        waypoints: Iterable[StarSystem | None],
    ) -> tuple[StarSystem | None, list[StarSystem]]:
        if start is None or not self.graph.contains(start):
            return None, []
        return start, [system for system in waypoints if system is not None and self.graph.contains(system)]

    def _new_segment(self, start: StarSystem, end: StarSystem) -> Dijkstra:
        return Dijkstra(
            self.graph,
            start,
            end,
            restrictions=self.restrictions,
            metric=self.metric,
            apply_restrictions=self.apply_restrictions,
        )

    def _sync(
        self,
        start: StarSystem | None,
        waypoints: Sequence[StarSystem],
        seeds: Sequence[Dijkstra],
    ) -> SyncResult:
        segments: list[Dijkstra] = []
        for index, end in enumerate(waypoints):
            segment_start = start if index == 0 else waypoints[index - 1]
            seed = seeds[index] if index < len(seeds) else None
            try:
                if segment_start is None:
                    raise SegmentConfigError("route has waypoints but no start system")
                if seed is not None and seed.start.id == segment_start.id and seed.end.id == end.id:
                    segment = seed
                elif seed is not None:
                    segment = seed.retargeted(segment_start, end)
                else:
                    segment = self._new_segment(segment_start, end)
            except SegmentConfigError as exc:
                details = dict(exc.details or {})
                details["segment_index"] = index
                return SyncResult(ok=False, error=SegmentConfigError(exc.message, details=details))

            segment.restrictions = self.restrictions
            segment.build_graph(self.metric, self.apply_restrictions)
            if len(segment.route_array()) <= 1:
                return SyncResult(
                    ok=False,
                    error=SegmentUnreachable(
                        f"No route from {segment_start.name} to {end.name} available",
                        details={
                            "segment_index": index,
                            "start": segment_start.id,
                            "end": end.id,
                            "metric": self.metric,
                        },
                    ),
                )
            segments.append(segment)
        return SyncResult(ok=True, segments=tuple(segments))

    def _apply(
        self,
        start: StarSystem | None,
        waypoints: Sequence[StarSystem],
        seeds: Sequence[Dijkstra],
        *,
        action: str,
        persist: bool = True,
    ) -> bool:
        result = self._sync(start, waypoints, seeds)
        if not result.ok:
            self._error = result.error
            self._failure = result.error
            log_event(
                "route_sync_failed",
                level=logging.WARNING,
                action=action,
                reason_code=result.error.reason_code if result.error else "segment_unreachable",
                detail=str(result.error),
                candidate_start=start.id if start is not None else None,
                candidate_waypoints=_ids(waypoints),
            )
            return False

        self.start = start
        self.waypoints = list(waypoints)
        self._segments = list(result.segments)
        self._error = None
        log_event(
            "route_synced",
            level=logging.DEBUG,
            action=action,
            segment_count=len(self._segments),
            route=str(self),
        )
        if persist:
            self.store_to_session()
        return True

    def _reject(self, reason_code: str, message: str, **details: Any) -> bool:
        self._rejection = StructuralEditRejected(reason_code=reason_code, message=message, details=details or None)
        self._failure = self._rejection
        log_event(
            "route_edit_rejected",
            level=logging.WARNING,
            reason_code=reason_code,
            detail=message,
            route=str(self),
        )
        return False

    # Boundary lookup ------------------------------------------------------

    def _lookup_steps(self, index: int, segment: Dijkstra) -> list[RouteStep]:
        try:
            return segment.route_array()
        except Exception as exc:
            failure = LookupIsolationFailure(
                f"Error getting route array: {exc}",
                details={"segment_index": index},
            )
            log_event(
                "route_segment_lookup_failed",
                level=logging.ERROR,
                reason_code=failure.reason_code,
                detail=str(failure),
                segment_index=index,
            )
            return []

    def _find_segments(self, system: StarSystem) -> list[int]:
        """Indices of the segment(s) holding ``system``.

        Two indices when the system ends one segment and starts the next, one
        when it only lies on a single segment, none when it is not on the route.
        """
        containing: list[int] = []
        for index, segment in enumerate(self._segments):
            steps = self._lookup_steps(index, segment)
            if not any(step.system.id == system.id for step in steps):
                continue
            if steps[-1].system.id == system.id and index + 1 < len(self._segments):
                following = self._lookup_steps(index + 1, self._segments[index + 1])
                if following and following[0].system.id == system.id:
                    return [index, index + 1]
            containing.append(index)
        return containing[:1]

    def _is_boundary(self, system: StarSystem) -> bool:
        if self.start is not None and self.start.id == system.id:
            return True
        return system.id in _ids(self.waypoints)

    def _waypoint_index(self, system: StarSystem) -> int | None:
        return _index_of(self.waypoints, system)

    # Structural edits -----------------------------------------------------

    def _split_candidate(self, system: StarSystem) -> tuple[list[StarSystem], list[Dijkstra]] | None:
        if self._is_boundary(system):
            self._reject(
                "split_already_boundary",
                f"Can't split at '{system.name}', it already is a waypoint",
                system_id=system.id,
            )
            return None
        found = self._find_segments(system)
        if not found:
            self._reject(
                "split_not_found",
                f"Couldn't find a segment for waypoint '{system.name}'",
                system_id=system.id,
            )
            return None

        index = found[0]
        segment = self._segments[index]
        old_end = segment.end
        waypoints = list(self.waypoints)
        waypoints.insert(index, system)
        seeds = list(self._segments)
        seeds[index : index + 1] = [
            segment.retargeted(segment.start, system),
            segment.retargeted(system, old_end),
        ]
        return waypoints, seeds

    def split_at(self, system: StarSystem) -> bool:
        candidate = self._split_candidate(system)
        if candidate is None:
            return False
        waypoints, seeds = candidate
        return self._apply(self.start, waypoints, seeds, action="split")

    def remove_waypoint(self, system: StarSystem) -> bool:
        found = self._find_segments(system)
        if len(found) != 2 or self._waypoint_index(system) != found[0]:
            return self._reject(
                "remove_not_boundary",
                f"Can't remove waypoint '{system.name}', it is not a waypoint",
                system_id=system.id,
            )

        first, second = found
        segment_one = self._segments[first]
        segment_two = self._segments[second]
        seeds = list(self._segments)
        seeds[first : second + 1] = [segment_one.retargeted(segment_one.start, segment_two.end)]
        waypoints = list(self.waypoints)
        del waypoints[first]
        return self._apply(self.start, waypoints, seeds, action="remove")

    def move_waypoint(self, system: StarSystem, destination: StarSystem) -> bool:
        if system.id == destination.id:
            return self._reject("move_same_system", f"'{system.name}' is already there", system_id=system.id)

        if self._is_boundary(destination):
            return self._reject(
                "move_duplicate_system",
                f"'{destination.name}' is already part of the route",
                system_id=destination.id,
            )

        if not self.graph.contains(destination):
            return self._reject(
                "move_not_found",
                f"'{destination.name}' is not part of the map",
                system_id=destination.id,
            )

        # Moving the start; landing on a waypoint was already rejected above
        if self.start is not None and system.id == self.start.id:
            return self._apply(destination, self.waypoints, self._segments, action="move_start")

        # Moving a waypoint in place
        index = self._waypoint_index(system)
        if index is not None:
            waypoints = list(self.waypoints)
            waypoints[index] = destination
            return self._apply(self.start, waypoints, self._segments, action="move_waypoint")

        # Dragging a system in the middle of a segment: split there, then move
        if not self._find_segments(system):
            return self._reject(
                "move_not_found",
                f"'{system.name}' is not part of the route",
                system_id=system.id,
            )
        candidate = self._split_candidate(system)
        if candidate is None:
            return False
        waypoints, seeds = candidate
        index = _index_of(waypoints, system)
        if index is None:
            return self._reject("move_not_found", f"Couldn't find waypoint '{system.name}'", system_id=system.id)
        waypoints[index] = destination
        return self._apply(self.start, waypoints, seeds, action="move_interior")

    def set_route(self, start: StarSystem | None, *waypoints: StarSystem | None) -> bool:
        clean_start, clean_waypoints = self._clean(start, waypoints)
        ids = [] if clean_start is None else [clean_start.id, *_ids(clean_waypoints)]
        if len(set(ids)) != len(ids):
            return self._reject(
                "route_duplicate_system",
                "A route can't visit the same system twice",
                system_ids=ids,
            )
        return self._apply(clean_start, clean_waypoints, self._segments, action="set_route")

    def destroy(self) -> None:
        self.start = None
        self.waypoints = []
        self._segments = []
        self._error = None
        self.store_to_session()

    # Queries --------------------------------------------------------------

    def last_error(self) -> RouteError | None:
        return self._error

    def last_rejection(self) -> StructuralEditRejected | None:
        return self._rejection

    def last_failure(self) -> RouteError | None:
        """The most recent failed edit, whether rejected outright or by its sync pass."""
        return self._failure

    def current_route(self) -> list[RouteStep]:
        route: list[RouteStep] = []
        for segment in self._segments:
            segment.rebuild_graph()
            route.extend(segment.route_array())
        return route

    def is_set(self) -> bool:
        return len(self.current_route()) > 1

    def index_of_current_route(self, system: StarSystem) -> int | None:
        for index, step in enumerate(self.current_route()):
            if step.system.id == system.id:
                return index
        return None

    def alpha_of_system(self, system: StarSystem) -> float | None:
        """Progress of ``system`` along the route: 0.0 at the start, 1.0 at the end.

        ``None`` when the system is not on the route.
        """
        route = self.current_route()
        for index, step in enumerate(route):
            if step.system.id == system.id:
                return index / (len(route) - 1) if len(route) > 1 else 0.0
        return None

    def rebuild_current_route(self) -> list[StarSystem]:
        changed: list[StarSystem] = []
        self._error = None
        for index, segment in enumerate(list(self._segments)):
            if segment.rebuild_graph():
                destination = segment.destination()
                changed.append(destination)
                for listener in list(self._listeners):
                    listener(destination)
            if self._error is None and len(segment.route_array()) <= 1:
                self._error = SegmentUnreachable(
                    f"No route from {segment.start.name} to {segment.end.name} available",
                    details={"segment_index": index, "start": segment.start.id, "end": segment.end.id},
                )
        return changed

    def set_restrictions(self, restrictions: Restrictions) -> list[StarSystem]:
        self.restrictions = restrictions
        for segment in self._segments:
            segment.restrictions = restrictions
        return self.rebuild_current_route()

    # Session persistence --------------------------------------------------

    def store_to_session(self) -> None:
        if self.session is not None:
            self.session.store_route(self.start, self.waypoints)

    def restore_from_session(self, lookup: SystemLookup | None = None) -> bool:
        if self.session is None:
            return False
        loaded = self.session.load_route(lookup or self.graph.system)
        if loaded is None:
            return False
        start, waypoints = loaded
        restored = self.set_route(start, *waypoints)
        log_event(
            "route_restored_from_session",
            restored=restored,
            start=start.id if start is not None else None,
            waypoints=_ids(waypoints),
        )
        return restored
