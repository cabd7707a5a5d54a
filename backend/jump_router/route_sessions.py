from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from threading import Lock
from typing import Any

from .logging_utils import log_event
from .route import Route
from .session_store import RouteSessionAdapter, SessionStore, session_store_for
from .settings import settings
from .star_graph import StarGraph


@dataclass
class RouteSession:
    """A session's route plus the lock every edit and read of it runs under.

    ``with session as route:`` holds the lock for the body of the block.
    """

    session_id: str
    route: Route
    touched_at: float
    lock: Lock = field(default_factory=Lock, repr=False)

    def __enter__(self) -> Route:
        self.lock.acquire()
        return self.route

    def __exit__(self, *exc_info: Any) -> None:
        self.lock.release()


class RouteSessionRegistry:
    """One route per browser session, LRU-bounded and expired after ``ttl_s`` idle seconds.

    Evicted routes are rebuilt from their session store on the next request.
    """

    def __init__(
        self,
        graph: StarGraph,
        *,
        store_factory: Callable[[str], SessionStore] = session_store_for,
        ttl_s: int | None = None,
        max_entries: int | None = None,
    ) -> None:
        self.graph = graph
        self._store_factory = store_factory
        self._ttl_s = max(1, int(settings.route_session_ttl_s if ttl_s is None else ttl_s))
        self._max_entries = max(1, int(settings.route_session_max_entries if max_entries is None else max_entries))
        self._lock = Lock()
        self._items: OrderedDict[str, RouteSession] = OrderedDict()
        self._evictions = 0

    def _is_expired(self, entry: RouteSession, now: float) -> bool:
        return (now - entry.touched_at) > self._ttl_s

    def _evict(self, now: float) -> None:
        for session_id in [sid for sid, entry in self._items.items() if self._is_expired(entry, now)]:
            del self._items[session_id]
            self._evictions += 1
        while len(self._items) > self._max_entries:
            self._items.popitem(last=False)
            self._evictions += 1

    def session(self, session_id: str) -> RouteSession:
        now = time.time()
        with self._lock:
            entry = self._items.get(session_id)
            if entry is not None and not self._is_expired(entry, now):
                entry.touched_at = now
                self._items.move_to_end(session_id)
                return entry

            route = Route(self.graph, session=RouteSessionAdapter(self._store_factory(session_id)))
            restored = route.restore_from_session()
            entry = RouteSession(session_id=session_id, route=route, touched_at=now)
            self._items.pop(session_id, None)
            self._items[session_id] = entry
            self._evict(now)
            size = len(self._items)
        log_event("route_session_opened", session_id=session_id, restored=restored, sessions=size)
        return entry

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._items),
                "evictions": self._evictions,
                "ttl_s": self._ttl_s,
                "max_entries": self._max_entries,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
