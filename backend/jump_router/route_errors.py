from __future__ import annotations

from dataclasses import dataclass
from typing import Any

FROZEN_REASON_CODES: frozenset[str] = frozenset(
    {
        "segment_unreachable",
        "segment_invalid",
        "lookup_isolation_failure",
        "split_already_boundary",
        "split_not_found",
        "remove_not_boundary",
        "move_same_system",
        "move_duplicate_system",
        "move_not_found",
        "route_duplicate_system",
        "session_payload_invalid",
        "system_not_found",
        "map_data_unavailable",
        "map_data_invalid",
        "route_edit_rejected",
    }
)


@dataclass
class RouteError(ValueError):
    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class SegmentUnreachable(RouteError):
    """No allowed path between the two boundaries of a segment."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(reason_code="segment_unreachable", message=message, details=details)


class StructuralEditRejected(RouteError):
    """A split/remove/move/set request that would break the route's structure."""


class LookupIsolationFailure(RouteError):
    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(reason_code="lookup_isolation_failure", message=message, details=details)


class SegmentConfigError(RouteError):
    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(reason_code="segment_invalid", message=message, details=details)


def normalize_reason_code(reason_code: str, *, default: str = "route_edit_rejected") -> str:
    code = str(reason_code or "").strip()
    if code in FROZEN_REASON_CODES:
        return code
    return default
