from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


KNOWN_METRICS: frozenset[str] = frozenset({"distance", "time", "fuel"})


def _default_map_data_path() -> str:
    # The sample map ships next to the package so a fresh checkout can route.
    return str(Path(__file__).resolve().parents[1] / "data" / "star_map.json")


def _default_out_dir() -> str:
    return str(Path(__file__).resolve().parents[1] / "out")


def _split_csv(raw: str) -> frozenset[str]:
    return frozenset(part.strip().lower() for part in (raw or "").split(",") if part.strip())


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping config out of code for easy extension."""

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    out_dir: str = Field(default_factory=_default_out_dir, alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    map_data_path: str = Field(default_factory=_default_map_data_path, alias="MAP_DATA_PATH")

    # Route planning defaults
    route_metric: str = Field(default="time", alias="ROUTE_METRIC")
    route_apply_restrictions: bool = Field(default=True, alias="ROUTE_APPLY_RESTRICTIONS")
    # Rough guess: a jump takes four time units per unit of length.
    jump_time_per_length: float = Field(default=4.0, gt=0.0, alias="JUMP_TIME_PER_LENGTH")
    solver_early_exit: bool = Field(default=True, alias="SOLVER_EARLY_EXIT")

    # Restriction profile used when a route is created without one
    avoid_unconfirmed: bool = Field(default=False, alias="AVOID_UNCONFIRMED")
    avoid_undiscovered: bool = Field(default=False, alias="AVOID_UNDISCOVERED")
    avoid_factions: str = Field(default="", alias="AVOID_FACTIONS")
    avoid_tags: str = Field(default="", alias="AVOID_TAGS")

    session_store: str = Field(default="memory", alias="SESSION_STORE")
    route_session_ttl_s: int = Field(default=1800, ge=1, alias="ROUTE_SESSION_TTL_S")
    route_session_max_entries: int = Field(default=1024, ge=1, alias="ROUTE_SESSION_MAX_ENTRIES")

    @model_validator(mode="after")
    def _normalise(self) -> "Settings":
        metric = str(self.route_metric or "time").strip().lower()
        if metric not in KNOWN_METRICS:
            metric = "time"
        self.route_metric = metric
        store = str(self.session_store or "memory").strip().lower()
        if store not in {"memory", "file"}:
            store = "memory"
        self.session_store = store
        return self

    @property
    def avoid_faction_set(self) -> frozenset[str]:
        return _split_csv(self.avoid_factions)

    @property
    def avoid_tag_set(self) -> frozenset[str]:
        return _split_csv(self.avoid_tags)


settings = Settings()
