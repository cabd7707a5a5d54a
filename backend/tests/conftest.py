from __future__ import annotations

import math
from collections.abc import Callable, Sequence

import pytest

from jump_router.settings import settings
from jump_router.star_graph import JumpPoint, JumpPointType, StarGraph, StarSystem, build_star_graph

Link = tuple[str, str] | tuple[str, str, JumpPointType]
GraphFactory = Callable[..., StarGraph]


def _make_graph(
    positions: dict[str, tuple[float, float, float]],
    links: Sequence[Link],
    *,
    oneway: bool = False,
    factions: dict[str, str] | None = None,
    tags: dict[str, frozenset[str]] | None = None,
) -> StarGraph:
    systems = [
        StarSystem(
            id=system_id,
            name=system_id.upper(),
            position=position,
            faction=(factions or {}).get(system_id, "uee"),
            tags=(tags or {}).get(system_id, frozenset()),
        )
        for system_id, position in positions.items()
    ]
    jump_points: list[JumpPoint] = []
    for link in links:
        src, dst = link[0], link[1]
        jump_type = link[2] if len(link) > 2 else JumpPointType.NORMAL  # type: ignore[misc]
        jump_points.append(JumpPoint(id=f"{src}-{dst}", source=src, destination=dst, type=jump_type))
        if not oneway:
            jump_points.append(JumpPoint(id=f"{dst}-{src}", source=dst, destination=src, type=jump_type))
    return build_star_graph(systems, jump_points, version="pytest", source="pytest")


@pytest.fixture
def graph_factory() -> GraphFactory:
    return _make_graph


@pytest.fixture
def diamond_graph() -> StarGraph:
    # A-B 2, B-D 2, A-C 1, C-D 1 under the distance metric
    return _make_graph(
        {
            "a": (0.0, 0.0, 0.0),
            "b": (1.0, math.sqrt(3.0), 0.0),
            "c": (1.0, 0.0, 0.0),
            "d": (2.0, 0.0, 0.0),
        },
        [("a", "b"), ("b", "d"), ("a", "c"), ("c", "d")],
    )


@pytest.fixture
def corridor_graph() -> StarGraph:
    # s0 ... s5 on a line, with a detour s2 - x - s4 and an isolated system z.
    return _make_graph(
        {
            "s0": (0.0, 0.0, 0.0),
            "s1": (1.0, 0.0, 0.0),
            "s2": (2.0, 0.0, 0.0),
            "s3": (3.0, 0.0, 0.0),
            "s4": (4.0, 0.0, 0.0),
            "s5": (5.0, 0.0, 0.0),
            "x": (3.0, 1.0, 0.0),
            "z": (9.0, 9.0, 9.0),
        },
        [
            ("s0", "s1"),
            ("s1", "s2"),
            ("s2", "s3", JumpPointType.UNCONFIRMED),
            ("s3", "s4"),
            ("s4", "s5"),
            ("s2", "x"),
            ("x", "s4"),
        ],
    )


@pytest.fixture(autouse=True)
def _routing_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "route_metric", "distance")
    monkeypatch.setattr(settings, "route_apply_restrictions", True)
    monkeypatch.setattr(settings, "solver_early_exit", True)
    monkeypatch.setattr(settings, "jump_time_per_length", 4.0)
    monkeypatch.setattr(settings, "avoid_unconfirmed", False)
    monkeypatch.setattr(settings, "avoid_undiscovered", False)
    monkeypatch.setattr(settings, "avoid_factions", "")
    monkeypatch.setattr(settings, "avoid_tags", "")
    monkeypatch.setattr(settings, "session_store", "memory")
