"""Lap models: the live per-kart history entry and the immutable lap record."""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def kart_key(track_config_id: str | None, base_kart_id: str) -> str:
    """Composite kart key; the same display number on two layouts never collides."""
    if track_config_id is None:
        return base_kart_id
    return f"{track_config_id}_{base_kart_id}"


class LapHistoryEntry(BaseModel):
    """One lap in a kart's rolling live history (current session only)."""

    model_config = ConfigDict(frozen=True)

    lap_num: int
    time: str | None = None
    time_raw: int | None = None
    best_time_raw: int | None = None
    delta: int = 0
    position: int | None = None


class LapRecord(BaseModel):
    """A validated, completed lap. Immutable once appended to the lap log.

    Serialized with camelCase keys (``lapTimeRaw``, ``driverName``...) so that
    exported documents stay compatible with older kart-analysis exports.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    session_id: str
    kart_id: str
    base_kart_id: str
    kart_number: str
    kart_name: str | None = None
    driver_name: str
    lap_num: int
    lap_time: str | None = None
    lap_time_raw: int = Field(ge=0)
    timestamp: int
    position: int | None = None
    track_config_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _fill_legacy_keys(cls, data: Any) -> Any:
        """Older exports only carry ``kartNumber``; derive the kart keys from it."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        number = data.get("kartNumber", data.get("kart_number"))
        if number is not None:
            data.setdefault("kartNumber", str(number))
            data.pop("kart_number", None)
        track = data.get("trackConfigId", data.get("track_config_id"))
        base = data.get("baseKartId", data.get("base_kart_id")) or number
        if base is not None and "baseKartId" not in data and "base_kart_id" not in data:
            data["baseKartId"] = str(base)
        if "kartId" not in data and "kart_id" not in data and base is not None:
            data["kartId"] = kart_key(None if track is None else str(track), str(base))
        if "sessionId" not in data and "session_id" not in data:
            data["sessionId"] = "unknown"
        if "lapNum" not in data and "lap_num" not in data:
            data["lapNum"] = 0
        if "timestamp" not in data:
            data["timestamp"] = 0
        return data

    @field_validator(
        "session_id", "kart_id", "base_kart_id", "kart_number", "track_config_id",
        mode="before",
    )
    @classmethod
    def _as_text(cls, value: object) -> object:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("lap_time_raw", "timestamp", mode="before")
    @classmethod
    def _as_int(cls, value: object) -> object:
        if isinstance(value, float) and math.isfinite(value):
            return round(value)
        return value

    @property
    def lap_seconds(self) -> float:
        return self.lap_time_raw / 1000
