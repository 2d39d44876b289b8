"""Session bests, best-lap celebrations and per-driver personal records."""

from __future__ import annotations

import time
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from kartpace.constants import LAP_TIME_THRESHOLD_MS
from kartpace.engine_logging import get_logger
from kartpace.lap_detector import LapEvent
from kartpace.models.snapshot import KartSnapshot
from kartpace.session_tracker import SessionState

_RECORD_CONFIG = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


class SessionBest(BaseModel):
    model_config = _RECORD_CONFIG

    kart_number: str | None = None
    name: str | None = None
    time: str | None = None
    time_raw: int


class PersonalRecord(BaseModel):
    """A driver's best lap across sessions (persisted under the personal records key)."""

    model_config = _RECORD_CONFIG

    best_lap: int
    best_lap_formatted: str | None = None
    kart_number: str | None = None
    timestamp: int = 0
    session_name: str | None = None


class GapToPersonalBest(BaseModel):
    model_config = ConfigDict(frozen=True)

    gap: int = 0
    formatted: str = "-"
    is_positive: bool = False


def update_session_best(
    runs: Iterable[KartSnapshot],
    current: SessionBest | None,
    threshold_ms: int = LAP_TIME_THRESHOLD_MS,
) -> SessionBest | None:
    """Fastest valid best lap seen this session."""
    best = current
    for run in runs:
        raw = run.best_time_raw
        if not raw or raw > threshold_ms:
            continue
        if best is None or raw < best.time_raw:
            best = SessionBest(kart_number=run.kart_number, name=run.name, time=run.best_time, time_raw=raw)
    return best


def check_best_lap_celebration(
    state: SessionState,
    kart_number: str,
    best_time_raw: int | None,
    threshold_ms: int = LAP_TIME_THRESHOLD_MS,
) -> bool:
    """True when the kart's best lap improves on the one seen last.

    The first best lap of a kart only primes the state.
    """
    if not best_time_raw or best_time_raw > threshold_ms:
        return False
    last = state.last_best_lap.get(kart_number)
    if last is None or best_time_raw < last:
        state.last_best_lap[kart_number] = best_time_raw
        return last is not None
    return False


def calculate_gap_to_personal_best(current_ms: int | None, best_ms: int | None) -> GapToPersonalBest:
    if not current_ms or not best_ms:
        return GapToPersonalBest()
    gap = current_ms - best_ms
    if gap > 0:
        return GapToPersonalBest(gap=gap, formatted=f"+{gap / 1000:.3f}", is_positive=True)
    if gap < 0:
        return GapToPersonalBest(gap=gap, formatted=f"{gap / 1000:.3f}")
    return GapToPersonalBest(formatted="0.000")


class PersonalRecords:
    """Best lap per driver name; used as a lap-event handler."""

    def __init__(
        self,
        records: dict[str, PersonalRecord] | None = None,
        threshold_ms: int = LAP_TIME_THRESHOLD_MS,
        clock=time.time,
    ) -> None:
        self.records: dict[str, PersonalRecord] = dict(records or {})
        self.threshold_ms = threshold_ms
        self._clock = clock
        self.dirty = False

    def __len__(self) -> int:
        return len(self.records)

    def get(self, driver_name: str | None) -> PersonalRecord | None:
        if not driver_name:
            return None
        return self.records.get(driver_name)

    def update(self, run: KartSnapshot, session_name: str | None = None) -> bool:
        """Record *run*'s last lap; True when it is a new personal best."""
        if not run.name or not run.last_time_raw or run.last_time_raw > self.threshold_ms:
            return False
        current = self.records.get(run.name)
        if current is not None and run.last_time_raw >= current.best_lap:
            return False
        self.records[run.name] = PersonalRecord(
            best_lap=run.last_time_raw,
            best_lap_formatted=run.last_time,
            kart_number=run.kart_number,
            timestamp=int(self._clock() * 1000),
            session_name=session_name,
        )
        self.dirty = True
        if current is not None:
            get_logger().info(
                "New personal best for %s: %d ms (was %d ms)",
                run.name, run.last_time_raw, current.best_lap,
            )
        return True

    def __call__(self, event: LapEvent) -> None:
        self.update(event.run)

    def to_dict(self) -> dict[str, dict]:
        return {name: record.model_dump(by_alias=True) for name, record in self.records.items()}

    @classmethod
    def from_dict(cls, payload: dict | None, threshold_ms: int = LAP_TIME_THRESHOLD_MS) -> PersonalRecords:
        """Load persisted records, skipping entries that no longer validate."""
        records: dict[str, PersonalRecord] = {}
        for name, raw in (payload or {}).items():
            try:
                records[name] = PersonalRecord.model_validate(raw)
            except ValueError:
                get_logger().warning("Skipping unreadable personal record for %r", name)
        return cls(records, threshold_ms=threshold_ms)
