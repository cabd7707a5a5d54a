from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Sequence

from jump_router.map_loader import parse_star_graph
from jump_router.route import Route
from jump_router.route_errors import RouteError
from jump_router.settings import settings
from jump_router.star_graph import METRICS, Restrictions, StarGraph, StarSystem


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Plan a jump route through one or more waypoints on a star map."
    )
    parser.add_argument("--map", default=settings.map_data_path)
    parser.add_argument("--start", required=True, help="start system id")
    parser.add_argument("--via", action="append", required=True, help="waypoint system id (repeatable)")
    parser.add_argument("--metric", default=settings.route_metric, choices=sorted(METRICS))
    parser.add_argument("--no-restrictions", action="store_true")
    parser.add_argument("--avoid-unconfirmed", action="store_true")
    parser.add_argument("--avoid-undiscovered", action="store_true")
    return parser


def _resolve(graph: StarGraph, system_id: str) -> StarSystem:
    system = graph.system(system_id)
    if system is None:
        raise RouteError(reason_code="system_not_found", message=f"unknown system {system_id!r}")
    return system


def plan_route(
    graph: StarGraph,
    *,
    start_id: str,
    waypoint_ids: Sequence[str],
    metric: str,
    apply_restrictions: bool = True,
    restrictions: Restrictions | None = None,
) -> dict[str, Any]:
    route = Route(
        graph,
        metric=metric,
        apply_restrictions=apply_restrictions,
        restrictions=restrictions,
    )
    ok = route.set_route(_resolve(graph, start_id), *[_resolve(graph, system_id) for system_id in waypoint_ids])
    failure = route.last_failure()
    steps = route.current_route() if ok else []
    return {
        "ok": ok and len(steps) > 1,
        "route": str(route),
        "metric": metric,
        "graph_version": graph.version,
        "steps": [{"id": step.system.id, "name": step.system.name, "cost": round(step.cost, 6)} for step in steps],
        "total_cost": round(sum(segment.route_array()[-1].cost for segment in route.segments), 6),
        "error": None if failure is None else {"reason_code": failure.reason_code, "message": str(failure)},
    }


def _failed(args: argparse.Namespace, reason_code: str, message: str) -> dict[str, Any]:
    return {
        "ok": False,
        "route": " > ".join([args.start, *args.via]),
        "metric": args.metric,
        "graph_version": None,
        "steps": [],
        "total_cost": 0.0,
        "error": {"reason_code": reason_code, "message": message},
    }


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    restrictions = Restrictions(
        avoid_unconfirmed=bool(args.avoid_unconfirmed),
        avoid_undiscovered=bool(args.avoid_undiscovered),
    )
    try:
        graph = parse_star_graph(json.loads(Path(args.map).read_text(encoding="utf-8")), source=str(args.map))
        result = plan_route(
            graph,
            start_id=args.start,
            waypoint_ids=args.via,
            metric=args.metric,
            apply_restrictions=not args.no_restrictions,
            restrictions=restrictions,
        )
    except OSError as exc:
        result = _failed(args, "map_data_unavailable", str(exc))
    except RouteError as exc:
        result = _failed(args, exc.reason_code, exc.message)
    except ValueError as exc:
        result = _failed(args, "map_data_invalid", str(exc))
    print(json.dumps(result, indent=2))
    return 0 if result["ok"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
