"""Saved session history: the final frame of each completed session, newest first."""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from kartpace.constants import LAP_TIME_THRESHOLD_MS, MAX_RECORDED_SESSIONS, STORAGE_KEYS, UNKNOWN_TRACK
from kartpace.engine_logging import get_logger
from kartpace.models.lap import LapHistoryEntry
from kartpace.models.snapshot import KartSnapshot, SnapshotBatch
from kartpace.storage import StorageService

_HISTORY_CONFIG = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


class SessionWinner(BaseModel):
    model_config = _HISTORY_CONFIG

    name: str
    kart_number: str = "-"
    best_lap: str = "-"
    best_lap_raw: int | None = None


class SessionStats(BaseModel):
    model_config = _HISTORY_CONFIG

    total_drivers: int = 0
    total_laps: int = 0
    avg_lap_time: float | None = None


class SavedSession(BaseModel):
    model_config = _HISTORY_CONFIG

    session_id: str
    timestamp: int
    date: str
    start_time: str
    track_config_id: str = UNKNOWN_TRACK
    event_name: str = "Race Session"
    winner: SessionWinner
    session_data: SnapshotBatch
    stats: SessionStats = Field(default_factory=SessionStats)


def find_session_winner(
    runs: Sequence[KartSnapshot],
    threshold_ms: int = LAP_TIME_THRESHOLD_MS,
) -> SessionWinner:
    """Driver with the fastest valid best lap; the first one wins a tie."""
    if not runs:
        return SessionWinner(name="Unknown")
    valid = [r for r in runs if r.best_time_raw and r.best_time_raw <= threshold_ms]
    if not valid:
        return SessionWinner(name="No Winner")
    winner = min(valid, key=lambda r: r.best_time_raw)  # type: ignore[arg-type, return-value]
    return SessionWinner(
        name=winner.name or f"Driver {winner.kart_number}",
        kart_number=winner.kart_number or "-",
        best_lap=winner.best_time or "-",
        best_lap_raw=winner.best_time_raw,
    )


def calculate_session_stats(
    batch: SnapshotBatch,
    lap_history: Mapping[str, Sequence[LapHistoryEntry]] | None = None,
    threshold_ms: int = LAP_TIME_THRESHOLD_MS,
) -> SessionStats:
    times = [
        entry.time_raw
        for history in (lap_history or {}).values()
        for entry in history
        if entry.time_raw and entry.time_raw <= threshold_ms
    ]
    return SessionStats(
        total_drivers=len(batch.runs),
        total_laps=max((r.total_laps for r in batch.runs), default=0),
        avg_lap_time=sum(times) / len(times) if times else None,
    )


class SessionHistory:
    """Completed sessions kept under one storage key, capped and upserted by id."""

    def __init__(
        self,
        storage: StorageService,
        max_sessions: int = MAX_RECORDED_SESSIONS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage = storage
        self.max_sessions = max_sessions
        self._clock = clock

    def list_sessions(self) -> list[SavedSession]:
        """All saved sessions, newest first. Unreadable entries are skipped."""
        raw = self.storage.load_json(STORAGE_KEYS["session_history"], [])
        if not isinstance(raw, list):
            return []
        sessions: list[SavedSession] = []
        for item in raw:
            try:
                sessions.append(SavedSession.model_validate(item))
            except ValidationError as exc:
                get_logger().warning("Skipping unreadable saved session: %s", exc)
        sessions.sort(key=lambda s: s.timestamp, reverse=True)
        return sessions

    def save_completed_session(
        self,
        batch: SnapshotBatch,
        session_id: str,
        lap_history: Mapping[str, Sequence[LapHistoryEntry]] | None = None,
    ) -> SavedSession | None:
        """Store *batch* as the final state of *session_id*, replacing an earlier save."""
        if not batch.runs:
            get_logger().info("No session data to save for %s", session_id)
            return None

        now = datetime.fromtimestamp(self._clock())
        saved = SavedSession(
            session_id=session_id,
            timestamp=int(now.timestamp() * 1000),
            date=now.strftime("%b %d, %Y"),
            start_time=now.strftime("%H:%M"),
            track_config_id=batch.track_configuration_id
            or batch.runs[0].track_configuration_id
            or UNKNOWN_TRACK,
            event_name=batch.event_name or "Race Session",
            winner=find_session_winner(batch.runs),
            session_data=batch,
            stats=calculate_session_stats(batch, lap_history),
        )

        sessions = [s for s in self.list_sessions() if s.session_id != session_id]
        sessions.insert(0, saved)
        if not self._write(sessions[: self.max_sessions]):
            return None
        get_logger().info(
            "Session saved: %s %s - winner %s", saved.date, saved.start_time, saved.winner.name,
        )
        return saved

    def load_session(self, session_id: str) -> SavedSession | None:
        for session in self.list_sessions():
            if session.session_id == session_id:
                return session
        get_logger().warning("Saved session not found: %s", session_id)
        return None

    def delete_session(self, session_id: str) -> bool:
        sessions = self.list_sessions()
        remaining = [s for s in sessions if s.session_id != session_id]
        if len(remaining) == len(sessions):
            return False
        return self._write(remaining)

    def clear(self) -> bool:
        return self.storage.remove(STORAGE_KEYS["session_history"])

    def _write(self, sessions: list[SavedSession]) -> bool:
        return self.storage.save_json(
            STORAGE_KEYS["session_history"],
            [s.model_dump(mode="json", by_alias=True) for s in sessions],
        )
