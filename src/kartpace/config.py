"""Engine configuration: thresholds and policy knobs."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from kartpace import constants

if TYPE_CHECKING:
    from kartpace.storage import StorageService

_ENV_PREFIX = "KARTPACE_"


class EngineSettings(BaseModel):
    """Tunable engine policy. Defaults reproduce the venue-tested behaviour."""

    model_config = ConfigDict(frozen=True)

    lap_time_threshold_ms: int = Field(default=constants.LAP_TIME_THRESHOLD_MS, gt=0)
    stale_lap_threshold_s: int = Field(default=constants.STALE_LAP_THRESHOLD_S, gt=0)
    lap_history_limit: int = Field(default=constants.LAP_HISTORY_LIMIT, gt=0)
    # Session-restart heuristic: lap counter at or below restart_lap_threshold
    # while some kart already holds more than restart_history_threshold laps.
    restart_lap_threshold: int = Field(default=constants.RESTART_LAP_THRESHOLD, ge=0)
    restart_history_threshold: int = Field(default=constants.RESTART_HISTORY_THRESHOLD, ge=0)
    max_sessions: int = Field(default=constants.MAX_SESSIONS, gt=0)
    save_every_n_laps: int = Field(default=constants.SAVE_EVERY_N_LAPS, gt=0)
    auto_backup_interval_s: int = Field(default=constants.AUTO_BACKUP_INTERVAL_S, gt=0)
    max_recorded_sessions: int = Field(default=constants.MAX_RECORDED_SESSIONS, gt=0)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> EngineSettings:
        """Build settings from ``KARTPACE_<FIELD>`` environment variables."""
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        for name in cls.model_fields:
            value = env.get(f"{_ENV_PREFIX}{name.upper()}")
            if value is not None:
                overrides[name] = value
        return cls.model_validate(overrides)

    def merged(self, saved: dict[str, Any] | None) -> EngineSettings:
        """Return a copy with persisted values laid over these settings.

        Unknown keys are ignored and an invalid saved document falls back to
        the current settings, so a corrupt settings blob never blocks startup.
        """
        if not saved:
            return self
        known = {k: v for k, v in saved.items() if k in type(self).model_fields}
        try:
            return type(self).model_validate({**self.model_dump(), **known})
        except ValidationError:
            return self


def load_settings(storage: StorageService, defaults: EngineSettings | None = None) -> EngineSettings:
    """Defaults (or environment) with the persisted settings document laid over them."""
    base = defaults or EngineSettings.from_env()
    saved = storage.load_json(constants.STORAGE_KEYS["settings"])
    return base.merged(saved if isinstance(saved, dict) else None)


def save_settings(storage: StorageService, settings: EngineSettings) -> bool:
    return storage.save_json(constants.STORAGE_KEYS["settings"], settings.model_dump())
