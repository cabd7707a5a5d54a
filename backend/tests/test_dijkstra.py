from __future__ import annotations

import math
import random

import pytest

from jump_router.dijkstra import Dijkstra
from jump_router.route_errors import SegmentConfigError
from jump_router.settings import settings
from jump_router.star_graph import METRICS, Restrictions, StarGraph, StarSystem


def _ids(steps) -> list[str]:
    return [step.system.id for step in steps]


def _brute_force_cost(graph: StarGraph, start: str, goal: str) -> float:
    best = math.inf

    def walk(node: str, cost: float, seen: set[str]) -> None:
        nonlocal best
        if cost >= best:
            return
        if node == goal:
            best = cost
            return
        for jump_point in graph.outgoing(node):
            if jump_point.destination in seen:
                continue
            seen.add(jump_point.destination)
            walk(jump_point.destination, cost + graph.weight(jump_point, "distance"), seen)
            seen.remove(jump_point.destination)

    walk(start, 0.0, {start})
    return best


def _random_graph(graph_factory, seed: int) -> StarGraph:
    rng = random.Random(seed)
    count = rng.randint(3, 8)
    positions = {
        f"n{i}": (rng.uniform(0.0, 10.0), rng.uniform(0.0, 10.0), rng.uniform(0.0, 10.0)) for i in range(count)
    }
    names = list(positions)
    links = [(a, b) for i, a in enumerate(names) for b in names[i + 1 :] if rng.random() < 0.4]
    return graph_factory(positions, links)


def test_diamond_prefers_the_cheaper_branch(diamond_graph) -> None:
    solver = Dijkstra(diamond_graph, diamond_graph.systems["a"], diamond_graph.systems["d"], metric="distance")
    solver.build_graph()

    steps = solver.route_array()

    assert _ids(steps) == ["a", "c", "d"]
    assert [step.cost for step in steps] == pytest.approx([0.0, 1.0, 2.0])
    assert solver.last_node() == steps[-1]
    assert solver.destination().id == "d"


def test_route_array_builds_lazily(diamond_graph) -> None:
    solver = Dijkstra(diamond_graph, diamond_graph.systems["a"], diamond_graph.systems["d"], metric="distance")

    assert _ids(solver.route_array()) == ["a", "c", "d"]


def test_ties_break_by_discovery_order(graph_factory) -> None:
    graph = graph_factory(
        {"a": (0.0, 0.0, 0.0), "b": (1.0, 0.0, 0.0), "c": (0.0, 1.0, 0.0), "d": (1.0, 1.0, 0.0)},
        [("a", "b"), ("a", "c"), ("b", "d"), ("c", "d")],
    )
    runs = []
    for _ in range(3):
        solver = Dijkstra(graph, graph.systems["a"], graph.systems["d"], metric="distance")
        solver.build_graph()
        runs.append(_ids(solver.route_array()))

    assert runs == [["a", "b", "d"]] * 3


def test_unreachable_target_returns_empty(corridor_graph) -> None:
    solver = Dijkstra(corridor_graph, corridor_graph.systems["s0"], corridor_graph.systems["z"], metric="distance")
    solver.build_graph()

    assert solver.route_array() == []
    assert solver.last_node() is None


def test_end_override_resumes_the_same_search(corridor_graph) -> None:
    solver = Dijkstra(corridor_graph, corridor_graph.systems["s0"], corridor_graph.systems["s2"], metric="distance")
    solver.build_graph()

    assert _ids(solver.route_array(corridor_graph.systems["s5"])) == ["s0", "s1", "s2", "s3", "s4", "s5"]
    assert _ids(solver.route_array()) == ["s0", "s1", "s2"]
    assert solver.route_array(StarSystem(id="nowhere", name="Nowhere")) == []


@pytest.mark.parametrize("seed", range(12))
def test_early_exit_matches_full_search(graph_factory, monkeypatch, seed: int) -> None:
    graph = _random_graph(graph_factory, seed)
    names = sorted(graph.systems)
    start, end = graph.systems[names[0]], graph.systems[names[-1]]

    results = {}
    for early_exit in (True, False):
        monkeypatch.setattr(settings, "solver_early_exit", early_exit)
        solver = Dijkstra(graph, start, end, metric="distance")
        solver.build_graph()
        results[early_exit] = {name: _ids(solver.route_array(graph.systems[name])) for name in names}

    assert results[True] == results[False]


@pytest.mark.parametrize("seed", range(12))
def test_costs_match_brute_force(graph_factory, seed: int) -> None:
    graph = _random_graph(graph_factory, seed)
    names = sorted(graph.systems)
    start = graph.systems[names[0]]

    for name in names[1:]:
        solver = Dijkstra(graph, start, graph.systems[name], metric="distance")
        steps = solver.route_array()
        expected = _brute_force_cost(graph, start.id, name)
        if math.isinf(expected):
            assert steps == []
            continue
        assert steps[0].system.id == start.id
        assert steps[-1].system.id == name
        assert steps[-1].cost == pytest.approx(expected)
        for prev, nxt in zip(steps, steps[1:]):
            jump_point = graph.jump_point_between(prev.system.id, nxt.system.id)
            assert jump_point is not None
            assert nxt.cost == pytest.approx(prev.cost + graph.weight(jump_point, "distance"))


def test_restrictions_reroute_and_apply_flag(corridor_graph) -> None:
    start, end = corridor_graph.systems["s0"], corridor_graph.systems["s5"]
    avoid = Restrictions(avoid_unconfirmed=True)

    restricted = Dijkstra(corridor_graph, start, end, restrictions=avoid, metric="distance", apply_restrictions=True)
    ignored = Dijkstra(corridor_graph, start, end, restrictions=avoid, metric="distance", apply_restrictions=False)

    assert _ids(restricted.route_array()) == ["s0", "s1", "s2", "x", "s4", "s5"]
    assert _ids(ignored.route_array()) == ["s0", "s1", "s2", "s3", "s4", "s5"]


def test_rebuild_graph_reports_changes(diamond_graph) -> None:
    solver = Dijkstra(diamond_graph, diamond_graph.systems["a"], diamond_graph.systems["d"], metric="distance")

    assert solver.rebuild_graph() is True
    assert solver.rebuild_graph() is False

    solver.restrictions = Restrictions(avoid_systems=frozenset({"c"}))
    assert solver.rebuild_graph() is True
    assert _ids(solver.route_array()) == ["a", "b", "d"]


def test_build_graph_switches_metric(diamond_graph) -> None:
    solver = Dijkstra(diamond_graph, diamond_graph.systems["a"], diamond_graph.systems["d"], metric="distance")
    solver.build_graph(metric="time")

    assert solver.metric == "time"
    assert solver.route_array()[-1].cost == pytest.approx(2.0 * settings.jump_time_per_length)
    with pytest.raises(ValueError):
        solver.build_graph(metric="warp")


def test_negative_weights_are_rejected(diamond_graph, monkeypatch) -> None:
    monkeypatch.setitem(METRICS, "refund", lambda graph, jump_point: -1.0)
    solver = Dijkstra(diamond_graph, diamond_graph.systems["a"], diamond_graph.systems["d"], metric="refund")

    with pytest.raises(ValueError, match="negative weight"):
        solver.build_graph()


def test_invalid_boundaries_raise_config_errors(diamond_graph) -> None:
    a = diamond_graph.systems["a"]
    with pytest.raises(SegmentConfigError) as excinfo:
        Dijkstra(diamond_graph, a, a)
    assert excinfo.value.reason_code == "segment_invalid"

    with pytest.raises(SegmentConfigError):
        Dijkstra(diamond_graph, a, StarSystem(id="ghost", name="Ghost"))
    with pytest.raises(SegmentConfigError):
        Dijkstra(diamond_graph, None, a)  # type: ignore[arg-type]


def test_retargeted_keeps_configuration(diamond_graph) -> None:
    avoid = Restrictions(avoid_systems=frozenset({"c"}))
    solver = Dijkstra(
        diamond_graph,
        diamond_graph.systems["a"],
        diamond_graph.systems["d"],
        restrictions=avoid,
        metric="time",
        apply_restrictions=False,
    )

    copy = solver.retargeted(diamond_graph.systems["b"], diamond_graph.systems["c"])

    assert copy is not solver
    assert (copy.start.id, copy.end.id) == ("b", "c")
    assert copy.restrictions == avoid
    assert copy.metric == "time"
    assert copy.apply_restrictions is False
    assert (solver.start.id, solver.end.id) == ("a", "d")
