"""Session boundary detection and per-session tracking state."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from kartpace import constants
from kartpace.engine_logging import get_logger
from kartpace.models.lap import LapHistoryEntry
from kartpace.models.snapshot import SnapshotBatch

if TYPE_CHECKING:
    from kartpace.records import SessionBest


class ChangeReason(str, Enum):
    """Why a batch does or does not start a new session."""

    SAME_SESSION = "same_session"
    FIRST_SESSION = "first_session"
    NEW_SESSION = "new_session"
    RESTART = "restart"


@dataclass(frozen=True)
class SessionChange:
    needs_reset: bool
    session_id: str
    reason: ChangeReason
    # Restart detected, but some kart is still ahead of the lap counter.
    suspect: bool = False


@dataclass
class SessionState:
    """Everything that belongs to the current session only.

    Reset on every session boundary. The lap log and aggregates live in the
    analysis store and are never touched by a reset.
    """

    lap_history: dict[str, list[LapHistoryEntry]] = field(default_factory=dict)
    position_history: dict[str, list[tuple[int, int | None]]] = field(default_factory=dict)
    gap_history: dict[str, list[tuple[float, float]]] = field(default_factory=dict)
    starting_positions: dict[str, int] = field(default_factory=dict)
    session_best: SessionBest | None = None
    last_best_lap: dict[str, int] = field(default_factory=dict)
    last_gap: dict[str, float] = field(default_factory=dict)
    last_position: dict[str, int] = field(default_factory=dict)

    def reset(self) -> None:
        self.lap_history = {}
        self.position_history = {}
        self.gap_history = {}
        self.starting_positions = {}
        self.session_best = None
        self.last_best_lap = {}
        self.last_gap = {}
        self.last_position = {}

    @property
    def is_empty(self) -> bool:
        return not self.lap_history


def session_key(batch: SnapshotBatch) -> str:
    """``EventName_SessionName_TrackConfig`` identifier for a batch."""
    track = batch.track_configuration_id or constants.UNKNOWN_TRACK
    event = batch.event_name or constants.UNKNOWN_TRACK
    session = batch.session_name or constants.DEFAULT_SESSION_NAME
    return f"{event}_{session}_{track}"


class SessionBoundaryDetector:
    """Decides whether a batch continues, replaces or restarts the current session.

    The restart rule is a heuristic: a lap counter that falls back to the
    start while karts already hold several laps usually means staff restarted
    the session under the same name. Both thresholds are policy, and restarts
    where a kart is still ahead of the lap counter are flagged as suspect.
    """

    def __init__(
        self,
        restart_lap_threshold: int = constants.RESTART_LAP_THRESHOLD,
        restart_history_threshold: int = constants.RESTART_HISTORY_THRESHOLD,
    ) -> None:
        self.restart_lap_threshold = restart_lap_threshold
        self.restart_history_threshold = restart_history_threshold

    def detect(
        self,
        batch: SnapshotBatch,
        current_session_id: str | None,
        lap_history: Mapping[str, Sequence[LapHistoryEntry]],
    ) -> SessionChange:
        logger = get_logger()
        new_id = session_key(batch)

        if current_session_id is None:
            return SessionChange(False, new_id, ChangeReason.FIRST_SESSION)

        if current_session_id != new_id:
            logger.info("New session detected: %s -> %s", current_session_id, new_id)
            return SessionChange(True, new_id, ChangeReason.NEW_SESSION)

        had_lap_data = any(
            len(history) > self.restart_history_threshold for history in lap_history.values()
        )
        if had_lap_data and batch.current_lap <= self.restart_lap_threshold:
            suspect = any(run.total_laps > self.restart_lap_threshold for run in batch.runs)
            if suspect:
                logger.warning(
                    "Session restart on %s while karts report more than %d laps; "
                    "restart heuristic may have misfired",
                    new_id, self.restart_lap_threshold,
                )
            else:
                logger.info("Session restart detected (lap counter reset): %s", new_id)
            return SessionChange(True, new_id, ChangeReason.RESTART, suspect=suspect)

        return SessionChange(False, new_id, ChangeReason.SAME_SESSION)
