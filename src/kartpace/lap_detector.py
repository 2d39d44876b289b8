"""Lap event detection: turns successive snapshots into discrete new-lap events."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from kartpace import constants
from kartpace.engine_logging import get_logger
from kartpace.models.lap import LapHistoryEntry
from kartpace.models.snapshot import KartSnapshot, SnapshotBatch
from kartpace.session_tracker import SessionState


@dataclass(frozen=True)
class LapEvent:
    """A kart's lap counter moved forward."""

    run: KartSnapshot
    lap_num: int
    entry: LapHistoryEntry
    track_config_id: str | None

    @property
    def kart_number(self) -> str:
        return self.run.kart_number  # type: ignore[return-value]


LapHandler = Callable[[LapEvent], None]


class LapEventDetector:
    """Compares each snapshot with the kart's live history and emits new laps.

    Handlers registered with :meth:`add_handler` are called synchronously, in
    registration order, once per emitted event.
    """

    def __init__(self, history_limit: int = constants.LAP_HISTORY_LIMIT) -> None:
        self.history_limit = history_limit
        self._handlers: list[LapHandler] = []

    def add_handler(self, handler: LapHandler) -> None:
        self._handlers.append(handler)

    def remove_handler(self, handler: LapHandler) -> None:
        self._handlers.remove(handler)

    def process(self, batch: SnapshotBatch, state: SessionState) -> list[LapEvent]:
        """Detect new laps in *batch*, updating *state* and notifying handlers."""
        events: list[LapEvent] = []
        for run in batch.runs:
            event = self._detect(run, batch, state)
            if event is not None:
                events.append(event)
                self._notify(event)
        return events

    def _detect(
        self, run: KartSnapshot, batch: SnapshotBatch, state: SessionState,
    ) -> LapEvent | None:
        if run.kart_number is None or run.last_time_raw is None:
            return None

        kart = run.kart_number
        history = state.lap_history.setdefault(kart, [])
        positions = state.position_history.setdefault(kart, [])

        if history and run.total_laps <= history[-1].lap_num:
            return None

        delta = 0
        if run.best_time_raw and run.last_time_raw:
            delta = run.last_time_raw - run.best_time_raw

        entry = LapHistoryEntry(
            lap_num=run.total_laps,
            time=run.last_time,
            time_raw=run.last_time_raw,
            best_time_raw=run.best_time_raw,
            delta=delta,
            position=run.pos,
        )
        history.append(entry)
        positions.append((run.total_laps, run.pos))
        if len(history) > self.history_limit:
            del history[: len(history) - self.history_limit]

        return LapEvent(
            run=run,
            lap_num=run.total_laps,
            entry=entry,
            track_config_id=batch.track_config_for(run),
        )

    def _notify(self, event: LapEvent) -> None:
        for handler in self._handlers:
            try:
                handler(event)
            except Exception:
                get_logger().exception(
                    "Lap handler %r failed for kart %s lap %d",
                    handler, event.kart_number, event.lap_num,
                )
