"""Telemetry snapshot models (one frame of the live timing feed)."""

from __future__ import annotations

import math
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _coerce_raw_time(value: object) -> int | None:
    """Raw times are non-negative integer ms; anything else becomes None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return int(number)


def _coerce_identifier(value: object) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


class KartSnapshot(BaseModel):
    """Instantaneous race state for one kart."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kart_number: str | None = None
    kart_id: str | None = None
    kart_name: str | None = None
    name: str | None = None
    total_laps: int = 0
    last_time: str | None = None
    last_time_raw: int | None = None
    best_time: str | None = None
    best_time_raw: int | None = None
    pos: int | None = None
    gap: str | None = None
    interval: str | None = Field(default=None, alias="int")
    current_lap_start_timestamp: float | None = None
    track_configuration_id: str | None = None

    @field_validator("kart_number", "kart_id", "kart_name", "track_configuration_id", mode="before")
    @classmethod
    def _identifier(cls, value: object) -> str | None:
        return _coerce_identifier(value)

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, value: object) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("last_time_raw", "best_time_raw", mode="before")
    @classmethod
    def _raw_time(cls, value: object) -> int | None:
        return _coerce_raw_time(value)

    @field_validator("total_laps", mode="before")
    @classmethod
    def _lap_count(cls, value: object) -> int:
        return _coerce_raw_time(value) or 0

    @field_validator("pos", mode="before")
    @classmethod
    def _position(cls, value: object) -> int | None:
        return _coerce_raw_time(value)

    @field_validator("gap", "interval", "last_time", "best_time", mode="before")
    @classmethod
    def _text(cls, value: object) -> str | None:
        return None if value is None else str(value)

    @field_validator("current_lap_start_timestamp", mode="before")
    @classmethod
    def _timestamp(cls, value: object) -> float | None:
        if value is None or isinstance(value, bool) or value == "":
            return None
        try:
            number = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError, OverflowError):
            return None
        return number if math.isfinite(number) else None

    @property
    def base_kart_id(self) -> str | None:
        """Stable kart identifier, falling back to the display number."""
        return self.kart_id or self.kart_number


class SnapshotBatch(BaseModel):
    """One feed frame: session header plus a snapshot per kart."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    event_name: str | None = None
    session_name: str | None = None
    current_lap: int = 0
    total_laps: int | None = None
    time_left: str | None = None
    track_configuration_id: str | None = None
    timestamp: datetime | float | None = None
    runs: tuple[KartSnapshot, ...] = ()

    @field_validator("event_name", "session_name", "track_configuration_id", mode="before")
    @classmethod
    def _identifier(cls, value: object) -> str | None:
        return _coerce_identifier(value)

    @field_validator("current_lap", mode="before")
    @classmethod
    def _current_lap(cls, value: object) -> int:
        return _coerce_raw_time(value) or 0

    @field_validator("total_laps", mode="before")
    @classmethod
    def _total_laps(cls, value: object) -> int | None:
        return _coerce_raw_time(value)

    def track_config_for(self, run: KartSnapshot) -> str | None:
        """Track configuration for *run*, preferring the batch-level value."""
        return self.track_configuration_id or run.track_configuration_id
