from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from .logging_utils import log_event
from .map_loader import load_star_graph
from .models import (
    MoveWaypointRequest,
    ProgressResponse,
    RestrictionsRequest,
    RouteResponse,
    SetRouteRequest,
    SystemListResponse,
    SystemRequest,
    SystemSummary,
)
from .route import Route
from .route_errors import normalize_reason_code
from .route_sessions import RouteSession, RouteSessionRegistry
from .star_graph import StarGraph, StarSystem


@asynccontextmanager
async def lifespan(app: FastAPI):
    graph = load_star_graph()
    app.state.graph = graph
    app.state.sessions = RouteSessionRegistry(graph) if graph is not None else None
    yield


app = FastAPI(title="Jump Router", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def star_graph(request: Request) -> StarGraph:
    graph: StarGraph | None = getattr(request.app.state, "graph", None)
    if graph is None:
        raise HTTPException(status_code=503, detail="star map not loaded")
    return graph


def route_session(
    request: Request,
    x_session_id: Annotated[str, Header()],
) -> RouteSession:
    try:
        uuid.UUID(x_session_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="invalid session id") from e

    sessions: RouteSessionRegistry | None = getattr(request.app.state, "sessions", None)
    if sessions is None:
        raise HTTPException(status_code=503, detail="star map not loaded")
    return sessions.session(x_session_id)


GraphDep = Annotated[StarGraph, Depends(star_graph)]
SessionDep = Annotated[RouteSession, Depends(route_session)]


def _system_or_404(graph: StarGraph, system_id: str) -> StarSystem:
    system = graph.system(system_id)
    if system is None:
        raise HTTPException(status_code=404, detail=f"unknown system {system_id!r}")
    return system


def _edit_result(route: Route, ok: bool, *, action: str, t0: float) -> RouteResponse:
    log_event(
        "route_edit",
        action=action,
        ok=ok,
        route=str(route),
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    if not ok:
        error = route.last_failure()
        raise HTTPException(
            status_code=409,
            detail={
                "reason_code": normalize_reason_code(error.reason_code if error is not None else ""),
                "message": str(error) if error is not None else "route edit rejected",
            },
        )
    return RouteResponse.from_route(route)


@app.get("/health")
async def health(request: Request) -> dict[str, str | int]:
    graph: StarGraph | None = getattr(request.app.state, "graph", None)
    sessions: RouteSessionRegistry | None = getattr(request.app.state, "sessions", None)
    return {
        "status": "ok" if graph is not None else "degraded",
        "graph_version": graph.version if graph is not None else "unavailable",
        "sessions": len(sessions) if sessions is not None else 0,
    }


@app.get("/systems", response_model=SystemListResponse)
def list_systems(graph: GraphDep) -> SystemListResponse:
    systems = sorted(graph.systems.values(), key=lambda system: system.name.lower())
    return SystemListResponse(
        graph_version=graph.version,
        systems=[SystemSummary.from_system(system) for system in systems],
    )


@app.get("/route", response_model=RouteResponse)
def get_route(session: SessionDep) -> RouteResponse:
    with session as route:
        return RouteResponse.from_route(route)


@app.put("/route", response_model=RouteResponse)
def set_route(req: SetRouteRequest, session: SessionDep, graph: GraphDep) -> RouteResponse:
    t0 = time.perf_counter()
    start = _system_or_404(graph, req.start) if req.start else None
    waypoints = [_system_or_404(graph, system_id) for system_id in req.waypoints]
    with session as route:
        ok = route.set_route(start, *waypoints)
        return _edit_result(route, ok, action="set_route", t0=t0)


@app.post("/route/split", response_model=RouteResponse)
def split_route(req: SystemRequest, session: SessionDep, graph: GraphDep) -> RouteResponse:
    t0 = time.perf_counter()
    system = _system_or_404(graph, req.system)
    with session as route:
        ok = route.split_at(system)
        return _edit_result(route, ok, action="split", t0=t0)


@app.post("/route/remove", response_model=RouteResponse)
def remove_waypoint(req: SystemRequest, session: SessionDep, graph: GraphDep) -> RouteResponse:
    t0 = time.perf_counter()
    system = _system_or_404(graph, req.system)
    with session as route:
        ok = route.remove_waypoint(system)
        return _edit_result(route, ok, action="remove", t0=t0)


@app.post("/route/move", response_model=RouteResponse)
def move_waypoint(req: MoveWaypointRequest, session: SessionDep, graph: GraphDep) -> RouteResponse:
    t0 = time.perf_counter()
    system = _system_or_404(graph, req.system)
    destination = _system_or_404(graph, req.destination)
    with session as route:
        ok = route.move_waypoint(system, destination)
        return _edit_result(route, ok, action="move", t0=t0)


@app.put("/route/restrictions", response_model=RouteResponse)
def set_restrictions(req: RestrictionsRequest, session: SessionDep) -> RouteResponse:
    with session as route:
        changed = route.set_restrictions(req.to_restrictions())
        log_event(
            "route_restrictions_changed",
            route=str(route),
            changed_destinations=[system.id for system in changed],
        )
        return RouteResponse.from_route(route)


@app.get("/route/progress/{system_id}", response_model=ProgressResponse)
def route_progress(system_id: str, session: SessionDep, graph: GraphDep) -> ProgressResponse:
    system = _system_or_404(graph, system_id)
    with session as route:
        return ProgressResponse(
            system=system.id,
            index=route.index_of_current_route(system),
            alpha=route.alpha_of_system(system),
        )


@app.delete("/route", response_model=RouteResponse)
def clear_route(session: SessionDep) -> RouteResponse:
    with session as route:
        route.destroy()
        log_event("route_cleared", session_id=session.session_id)
        return RouteResponse.from_route(route)
