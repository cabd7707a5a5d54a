from __future__ import annotations

import threading
import uuid
from types import SimpleNamespace

import jump_router.route_sessions as route_sessions
from jump_router.route_sessions import RouteSessionRegistry


def _sid() -> str:
    return str(uuid.uuid4())


def test_registry_is_bounded(corridor_graph) -> None:
    registry = RouteSessionRegistry(corridor_graph, max_entries=3)

    for _ in range(10):
        registry.session(_sid())

    assert len(registry) == 3
    assert registry.snapshot()["evictions"] == 7
    assert registry.snapshot()["max_entries"] == 3


def test_registry_evicts_least_recently_used(corridor_graph) -> None:
    registry = RouteSessionRegistry(corridor_graph, max_entries=2)
    first, second, third = _sid(), _sid(), _sid()

    first_entry = registry.session(first)
    second_entry = registry.session(second)
    assert registry.session(first) is first_entry

    registry.session(third)

    assert registry.session(first) is first_entry
    assert registry.session(second) is not second_entry


def test_evicted_sessions_are_restored_from_their_store(corridor_graph) -> None:
    registry = RouteSessionRegistry(corridor_graph, max_entries=1)
    session_id = _sid()
    systems = corridor_graph.systems

    entry = registry.session(session_id)
    with entry as route:
        assert route.set_route(systems["s0"], systems["s3"], systems["s5"])

    registry.session(_sid())
    restored = registry.session(session_id)

    assert restored is not entry
    assert restored.route.start.id == "s0"
    assert [waypoint.id for waypoint in restored.route.waypoints] == ["s3", "s5"]


def test_idle_sessions_expire(corridor_graph, monkeypatch) -> None:
    now = [1000.0]
    monkeypatch.setattr(route_sessions, "time", SimpleNamespace(time=lambda: now[0]))
    registry = RouteSessionRegistry(corridor_graph, ttl_s=10)
    idle, busy = _sid(), _sid()

    idle_entry = registry.session(idle)
    now[0] += 5
    busy_entry = registry.session(busy)
    now[0] += 8
    assert registry.session(busy) is busy_entry
    assert registry.session(idle) is not idle_entry
    assert len(registry) == 2

    now[0] += 30
    registry.session(_sid())
    assert len(registry) == 1


def test_edits_on_one_session_are_serialised(corridor_graph) -> None:
    registry = RouteSessionRegistry(corridor_graph)
    session_id = _sid()
    systems = corridor_graph.systems
    with registry.session(session_id) as route:
        route.set_route(systems["s0"], systems["s5"])

    errors: list[Exception] = []
    results: list[bool] = []

    def worker() -> None:
        try:
            for _ in range(25):
                with registry.session(session_id) as route:
                    results.append(route.split_at(systems["s3"]))
                    assert len(route.segments) == len(route.waypoints)
                    results.append(route.remove_waypoint(systems["s3"]))
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert all(results) and len(results) == 8 * 25 * 2
    with registry.session(session_id) as route:
        assert [waypoint.id for waypoint in route.waypoints] == ["s5"]
        assert len(route.segments) == 1
