"""Serialized form of the lap log and its aggregates (import/export, persistence)."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from kartpace.engine_logging import get_logger
from kartpace.models.aggregates import DriverAggregate, KartAggregate, SessionRecord
from kartpace.models.lap import LapRecord


class AnalysisBundle(BaseModel):
    """``{"laps": [...], "karts": {...}, "drivers": {...}, "sessions": {...}}``.

    ``laps`` is authoritative; the three maps are caches that loaders rebuild.
    Records that no longer validate are dropped one by one, so a single bad
    entry never costs the rest of the log.
    """

    model_config = ConfigDict(populate_by_name=True)

    laps: list[LapRecord] = Field(default_factory=list)
    karts: dict[str, KartAggregate] = Field(default_factory=dict)
    drivers: dict[str, DriverAggregate] = Field(default_factory=dict)
    sessions: dict[str, SessionRecord] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _migrate(cls, data: Any) -> Any:
        """Fill defaults for bundles written by older versions or truncated saves."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not isinstance(data.get("laps"), list):
            data["laps"] = []
        for key in ("karts", "drivers", "sessions"):
            if not isinstance(data.get(key), dict):
                data[key] = {}

        data["laps"] = [
            lap for lap in (
                _validate(LapRecord, raw, f"lap record {index}")
                for index, raw in enumerate(data["laps"])
            )
            if lap is not None
        ]

        # Keyed maps may omit their own key field; restore it from the map key.
        data["karts"] = _validate_map(
            KartAggregate, data["karts"], lambda k, v: {"kartId": k, **_without_sentinels(v)},
        )
        data["drivers"] = _validate_map(
            DriverAggregate, data["drivers"], lambda k, v: {"driverName": k, **_without_sentinels(v)},
        )
        data["sessions"] = _validate_map(
            SessionRecord, data["sessions"], lambda k, v: {"sessionId": k, "firstLapAt": 0, "lastLapAt": 0, **v},
        )
        return data


def _validate(model: type[BaseModel], raw: Any, what: str) -> Any:
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        get_logger().warning("Dropping unreadable %s: %s", what, exc)
        return None


def _validate_map(model: type[BaseModel], entries: dict[str, Any], fill) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, raw in entries.items():
        if not isinstance(raw, dict):
            continue
        value = _validate(model, fill(key, raw), f"{model.__name__} {key!r}")
        if value is not None:
            result[key] = value
    return result


def _without_sentinels(values: dict[str, Any]) -> dict[str, Any]:
    """Drop the 'not yet set' markers older saves used for best/worst laps."""
    cleaned = dict(values)
    for key in ("bestLap", "worstLap", "best_lap", "worst_lap"):
        value = cleaned.get(key)
        if value is None:
            continue
        if isinstance(value, str) or value in (float("inf"), 0):
            cleaned[key] = None
    return cleaned
