from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from .dijkstra import RouteStep
from .route import Route
from .route_errors import RouteError
from .star_graph import Restrictions, StarSystem


class SystemSummary(BaseModel):
    id: str
    name: str
    faction: str
    position: tuple[float, float, float]
    tags: list[str] = []

    @classmethod
    def from_system(cls, system: StarSystem) -> "SystemSummary":
        return cls(
            id=system.id,
            name=system.name,
            faction=system.faction,
            position=system.position,
            tags=sorted(system.tags),
        )


class SystemListResponse(BaseModel):
    graph_version: str
    systems: list[SystemSummary]


class RouteStepOut(BaseModel):
    id: str
    name: str
    cost: float

    @classmethod
    def from_step(cls, step: RouteStep) -> "RouteStepOut":
        return cls(id=step.system.id, name=step.system.name, cost=round(step.cost, 6))


class RouteErrorOut(BaseModel):
    reason_code: str
    message: str

    @classmethod
    def from_error(cls, error: RouteError | None) -> "RouteErrorOut | None":
        if error is None:
            return None
        return cls(reason_code=error.reason_code, message=error.message)


class RouteResponse(BaseModel):
    start: str | None
    waypoints: list[str]
    summary: str
    metric: str
    is_set: bool
    steps: list[RouteStepOut]
    error: RouteErrorOut | None = None

    @classmethod
    def from_route(cls, route: Route) -> "RouteResponse":
        steps = route.current_route()
        return cls(
            start=route.start.id if route.start is not None else None,
            waypoints=[waypoint.id for waypoint in route.waypoints],
            summary=str(route),
            metric=route.metric,
            is_set=len(steps) > 1,
            steps=[RouteStepOut.from_step(step) for step in steps],
            error=RouteErrorOut.from_error(route.last_error()),
        )


class SetRouteRequest(BaseModel):
    start: str | None = None
    waypoints: list[str] = Field(default_factory=list)


class SystemRequest(BaseModel):
    system: str = Field(..., min_length=1)


class MoveWaypointRequest(BaseModel):
    system: str = Field(..., min_length=1)
    destination: str = Field(..., min_length=1)


class RestrictionsRequest(BaseModel):
    avoid_unconfirmed: bool = False
    avoid_undiscovered: bool = False
    avoid_factions: list[str] = Field(default_factory=list)
    avoid_tags: list[str] = Field(default_factory=list)
    avoid_systems: list[str] = Field(default_factory=list)

    @field_validator("avoid_factions", "avoid_tags")
    @classmethod
    def lowercase(cls, values: list[str]) -> list[str]:
        return [value.strip().lower() for value in values if value.strip()]

    def to_restrictions(self) -> Restrictions:
        return Restrictions(
            avoid_unconfirmed=self.avoid_unconfirmed,
            avoid_undiscovered=self.avoid_undiscovered,
            avoid_factions=frozenset(self.avoid_factions),
            avoid_tags=frozenset(self.avoid_tags),
            avoid_systems=frozenset(self.avoid_systems),
        )


class ProgressResponse(BaseModel):
    system: str
    index: int | None
    alpha: float | None
