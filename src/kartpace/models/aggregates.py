"""Derived rollups over the lap log. Caches only: always rebuildable from laps."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from kartpace.models.lap import LapRecord

_AGGREGATE_CONFIG = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class KartAggregate(BaseModel):
    """Per-kart rollup keyed by the composite kart key."""

    model_config = _AGGREGATE_CONFIG

    kart_id: str
    kart_number: str | None = None
    kart_name: str | None = None
    total_laps: int = 0
    best_lap: int | None = None
    worst_lap: int | None = None
    total_time: int = 0
    drivers: list[str] = Field(default_factory=list)
    driver_history: dict[str, int] = Field(default_factory=dict)

    def add_lap(self, lap: LapRecord) -> None:
        self.total_laps += 1
        self.total_time += lap.lap_time_raw
        self.best_lap = lap.lap_time_raw if self.best_lap is None else min(self.best_lap, lap.lap_time_raw)
        self.worst_lap = lap.lap_time_raw if self.worst_lap is None else max(self.worst_lap, lap.lap_time_raw)
        if lap.driver_name not in self.driver_history:
            self.drivers.append(lap.driver_name)
        self.driver_history[lap.driver_name] = self.driver_history.get(lap.driver_name, 0) + 1
        # Display number and name follow the most recent lap (venue staff can renumber)
        self.kart_number = lap.kart_number
        if lap.kart_name:
            self.kart_name = lap.kart_name

    @property
    def average_time(self) -> float | None:
        if self.total_laps == 0:
            return None
        return self.total_time / self.total_laps


class DriverAggregate(BaseModel):
    """Per-driver rollup keyed by driver name."""

    model_config = _AGGREGATE_CONFIG

    driver_name: str
    total_laps: int = 0
    total_time: int = 0
    best_lap: int | None = None
    karts: list[str] = Field(default_factory=list)
    kart_history: dict[str, int] = Field(default_factory=dict)

    def add_lap(self, lap: LapRecord) -> None:
        self.total_laps += 1
        self.total_time += lap.lap_time_raw
        self.best_lap = lap.lap_time_raw if self.best_lap is None else min(self.best_lap, lap.lap_time_raw)
        if lap.kart_id not in self.kart_history:
            self.karts.append(lap.kart_id)
        self.kart_history[lap.kart_id] = self.kart_history.get(lap.kart_id, 0) + 1

    @property
    def average_time(self) -> float | None:
        if self.total_laps == 0:
            return None
        return self.total_time / self.total_laps

    @property
    def is_cross_kart(self) -> bool:
        """True when the driver has laps on two or more distinct karts."""
        return len(self.kart_history) >= 2


class SessionRecord(BaseModel):
    """Per-session bookkeeping used to order sessions for retention."""

    model_config = _AGGREGATE_CONFIG

    session_id: str
    first_lap_at: int
    last_lap_at: int
    lap_count: int = 0
    track_config_id: str | None = None

    def add_lap(self, lap: LapRecord) -> None:
        self.lap_count += 1
        self.first_lap_at = min(self.first_lap_at, lap.timestamp)
        self.last_lap_at = max(self.last_lap_at, lap.timestamp)
