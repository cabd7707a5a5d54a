from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from pathlib import Path
from threading import Lock
from typing import Protocol

from pydantic import BaseModel, ValidationError

from .logging_utils import log_event
from .settings import settings
from .star_graph import StarSystem

SESSION_ROUTE_KEY = "currentRoute"

SystemLookup = Callable[[str], StarSystem | None]


class SessionStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemorySessionStore:
    def __init__(self) -> None:
        self._lock = Lock()
        self._items: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._items


class JsonFileSessionStore:
    """Session values kept as one JSON object per session file."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        if not isinstance(raw, dict):
            return {}
        return {key: value for key, value in raw.items() if isinstance(key, str) and isinstance(value, str)}

    def _write(self, payload: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            payload = self._read()
            payload[key] = value
            self._write(payload)

    def delete(self, key: str) -> None:
        with self._lock:
            payload = self._read()
            if key in payload:
                del payload[key]
                self._write(payload)


# Outlives the registry's Route objects so evicted sessions can be restored.
_MEMORY_STORES: dict[str, InMemorySessionStore] = {}
_MEMORY_STORES_LOCK = Lock()


def session_store_for(session_id: str) -> SessionStore:
    if settings.session_store == "file":
        return JsonFileSessionStore(Path(settings.out_dir) / "sessions" / f"{session_id}.json")
    with _MEMORY_STORES_LOCK:
        store = _MEMORY_STORES.get(session_id)
        if store is None:
            store = InMemorySessionStore()
            _MEMORY_STORES[session_id] = store
        return store


class StoredRoute(BaseModel):
    start: str
    waypoints: list[str] = []


class RouteSessionAdapter:
    """Reads and writes the start/waypoint ids of a route in a session store."""

    def __init__(self, store: SessionStore, *, key: str = SESSION_ROUTE_KEY) -> None:
        self.store = store
        self.key = key

    def store_route(self, start: StarSystem | None, waypoints: Sequence[StarSystem]) -> None:
        if start is not None and waypoints:
            record = StoredRoute(start=start.id, waypoints=[waypoint.id for waypoint in waypoints])
            self.store.set(self.key, record.model_dump_json())
        else:
            self.store.delete(self.key)

    def load_route(self, lookup: SystemLookup) -> tuple[StarSystem | None, list[StarSystem]] | None:
        raw = self.store.get(self.key)
        if raw is None:
            return None
        try:
            record = StoredRoute.model_validate_json(raw)
        except ValidationError as exc:
            log_event(
                "session_route_invalid",
                level=logging.WARNING,
                reason_code="session_payload_invalid",
                key=self.key,
                error=str(exc),
            )
            return None

        start = lookup(record.start)
        waypoints: list[StarSystem] = []
        unresolved: list[str] = [] if start is not None else [record.start]
        for waypoint_id in record.waypoints:
            system = lookup(waypoint_id)
            if system is None:
                unresolved.append(waypoint_id)
                continue
            waypoints.append(system)
        if unresolved:
            log_event("session_route_ids_dropped", key=self.key, unresolved=unresolved)
        return start, waypoints
