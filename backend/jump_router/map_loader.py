from __future__ import annotations

import json
import logging
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any

from .logging_utils import log_event
from .route_errors import RouteError, normalize_reason_code
from .settings import settings
from .star_graph import JumpPoint, JumpPointType, StarGraph, StarSystem, build_star_graph

_TYPE_ALIASES: dict[str, JumpPointType] = {
    "normal": JumpPointType.NORMAL,
    "unconf": JumpPointType.UNCONFIRMED,
    "unconfirmed": JumpPointType.UNCONFIRMED,
    "undisc": JumpPointType.UNDISCOVERED,
    "undiscovered": JumpPointType.UNDISCOVERED,
}


def _as_float(raw: object) -> float | None:
    if not isinstance(raw, (int, float, str, Decimal)) or isinstance(raw, bool):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _parse_position(raw: dict[str, Any]) -> tuple[float, float, float] | None:
    position = raw.get("position")
    if isinstance(position, (list, tuple)):
        if len(position) != 3:
            return None
        coords = [_as_float(value) for value in position]
    else:
        coords = [_as_float(raw.get(axis, 0.0)) for axis in ("x", "y", "z")]
    if any(value is None for value in coords):
        return None
    x, y, z = coords
    return (float(x), float(y), float(z))  # type: ignore[arg-type]


def _parse_system(raw: object) -> StarSystem | None:
    if not isinstance(raw, dict):
        return None
    system_id = raw.get("id")
    if system_id is None or str(system_id).strip() == "":
        return None
    position = _parse_position(raw)
    if position is None:
        return None
    tags_raw = raw.get("tags") or ()
    if isinstance(tags_raw, str):
        tags_raw = (tags_raw,)
    tags = frozenset(str(tag).strip().lower() for tag in tags_raw if str(tag).strip())
    name = str(raw.get("name") or system_id).strip()
    faction = str(raw.get("faction") or "unclaimed").strip().lower() or "unclaimed"
    return StarSystem(id=str(system_id), name=name, position=position, faction=faction, tags=tags)


def _parse_jump_point(raw: object) -> tuple[JumpPoint, bool] | None:
    if not isinstance(raw, dict):
        return None
    source = raw.get("source")
    destination = raw.get("destination")
    if source is None or destination is None:
        return None
    source, destination = str(source), str(destination)
    if source == destination:
        return None
    type_raw = str(raw.get("type", "undisc")).strip().lower()
    jump_type = _TYPE_ALIASES.get(type_raw, JumpPointType.UNDISCOVERED)
    jump_id = str(raw.get("id") or f"{source}->{destination}")
    name = str(raw.get("name") or "").strip()
    oneway = bool(raw.get("oneway", False))
    return JumpPoint(id=jump_id, source=source, destination=destination, type=jump_type, name=name), oneway


def parse_star_graph(payload: dict[str, Any], *, source: str = "memory") -> StarGraph:
    if not isinstance(payload, dict):
        raise RouteError(reason_code="map_data_invalid", message="map data must be a JSON object")

    systems: dict[str, StarSystem] = {}
    systems_seen = 0
    for raw_system in payload.get("systems") or ():
        systems_seen += 1
        system = _parse_system(raw_system)
        if system is not None:
            systems[system.id] = system
    if not systems:
        raise RouteError(
            reason_code="map_data_invalid",
            message="map data has no usable systems",
            details={"systems_seen": systems_seen},
        )

    jump_points: list[JumpPoint] = []
    declared: set[tuple[str, str]] = set()
    parsed: list[tuple[JumpPoint, bool]] = []
    jump_points_seen = 0
    for raw_jump_point in payload.get("jump_points") or ():
        jump_points_seen += 1
        result = _parse_jump_point(raw_jump_point)
        if result is None:
            continue
        parsed.append(result)
        declared.add((result[0].source, result[0].destination))

    for jump_point, oneway in parsed:
        if not jump_point.name and jump_point.source in systems and jump_point.destination in systems:
            jump_point = JumpPoint(
                id=jump_point.id,
                source=jump_point.source,
                destination=jump_point.destination,
                type=jump_point.type,
                name=f"[{systems[jump_point.source].name} to {systems[jump_point.destination].name}]",
            )
        jump_points.append(jump_point)
        if oneway or (jump_point.destination, jump_point.source) in declared:
            continue
        jump_points.append(
            JumpPoint(
                id=f"{jump_point.id}~reverse",
                source=jump_point.destination,
                destination=jump_point.source,
                type=jump_point.type,
                name=jump_point.name,
            )
        )

    graph = build_star_graph(
        systems.values(),
        jump_points,
        version=str(payload.get("version") or "unknown"),
        source=str(payload.get("source") or source),
    )
    log_event(
        "star_graph_loaded",
        graph_version=graph.version,
        graph_source=graph.source,
        systems_seen=systems_seen,
        systems_kept=len(graph.systems),
        jump_points_seen=jump_points_seen,
        jump_points_kept=len(graph.edge_index),
    )
    return graph


def _map_data_path() -> Path:
    return Path(settings.map_data_path)


@lru_cache(maxsize=1)
def load_star_graph() -> StarGraph | None:
    path = _map_data_path()
    if not path.exists():
        log_event("star_graph_unavailable", level=logging.WARNING, reason_code="map_data_unavailable", path=str(path))
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        return parse_star_graph(payload, source=str(path))
    except (OSError, ValueError) as exc:
        log_event(
            "star_graph_unavailable",
            level=logging.WARNING,
            reason_code=normalize_reason_code(getattr(exc, "reason_code", ""), default="map_data_invalid"),
            path=str(path),
            error=str(exc),
        )
        return None
