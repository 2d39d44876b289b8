"""Live timing engine: wires ingestion, analysis and persistence together."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from kartpace.config import EngineSettings, load_settings
from kartpace.engine_logging import get_logger, log_service_call
from kartpace.exceptions import SnapshotValidationError
from kartpace.history import SavedSession, SessionHistory
from kartpace.incidents import IncidentAnalysis, IncidentConfig, detect_incidents, history_from_records
from kartpace.lap_detector import LapEvent, LapEventDetector, LapHandler
from kartpace.models.aggregates import DriverAggregate, KartAggregate
from kartpace.models.lap import LapRecord
from kartpace.models.snapshot import SnapshotBatch
from kartpace.normalizer import normalize_batch
from kartpace.persistence import SaveScheduler
from kartpace.ranking import KartAnalysis
from kartpace.ranking import rank_karts as _rank_karts
from kartpace.records import PersonalRecords, check_best_lap_celebration, update_session_best
from kartpace.retention import EvictionResult
from kartpace.retention import evict_old_sessions as _evict_old_sessions
from kartpace.session_tracker import SessionBoundaryDetector, SessionChange, SessionState
from kartpace.storage import StorageService
from kartpace.store import AnalysisStore
from kartpace.trends import record_starting_positions


@dataclass(frozen=True)
class IngestResult:
    session: SessionChange
    events: tuple[LapEvent, ...] = ()
    recorded: tuple[LapRecord, ...] = ()
    eviction: EvictionResult | None = None


@dataclass
class Celebration:
    kart_number: str
    best_time_raw: int
    at: float


class LiveTimingEngine:
    """Single-timeline ingestion of snapshot batches plus the analysis query surface.

    With a :class:`StorageService` the engine loads its analysis data and
    settings on startup, saves in the background every few laps and records
    each completed session in the history. Replay engines never write history.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        storage: StorageService | None = None,
        store: AnalysisStore | None = None,
        replay: bool = False,
        incident_config: IncidentConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if settings is None:
            settings = load_settings(storage) if storage else EngineSettings.from_env()
        self.settings = settings
        self.storage = storage
        self.replay = replay
        self.incident_config = incident_config or IncidentConfig(max_lap_time_ms=settings.lap_time_threshold_ms)
        self._clock = clock

        if store is None:
            bundle = storage.load_analysis_bundle() if storage else None
            if bundle is not None:
                store = AnalysisStore.from_bundle(bundle, settings)
            else:
                store = AnalysisStore(settings=settings)
        self.store = store

        self.state = SessionState()
        self.current_session_id: str | None = None
        self.last_batch: SnapshotBatch | None = None
        self.suspect_sessions: list[str] = []
        self.celebrations: list[Celebration] = []

        self.boundary = SessionBoundaryDetector(
            settings.restart_lap_threshold, settings.restart_history_threshold,
        )
        self.detector = LapEventDetector(settings.lap_history_limit)
        self.personal_records = PersonalRecords.from_dict(
            storage.load_personal_records() if storage else None,
            threshold_ms=settings.lap_time_threshold_ms,
        )
        self.history = (
            SessionHistory(storage, settings.max_recorded_sessions, clock) if storage else None
        )
        self.scheduler = (
            SaveScheduler(storage, settings.save_every_n_laps, settings.auto_backup_interval_s)
            if storage else None
        )

        self.detector.add_handler(self._celebrate)
        self.detector.add_handler(self.personal_records)

    def __repr__(self) -> str:
        mode = "replay" if self.replay else "live"
        return f"LiveTimingEngine({mode}, session={self.current_session_id!r}, {self.store!r})"

    # ── Handlers ───────────────────────────────────────────────

    def add_lap_handler(self, handler: LapHandler) -> None:
        self.detector.add_handler(handler)

    def remove_lap_handler(self, handler: LapHandler) -> None:
        self.detector.remove_handler(handler)

    def _celebrate(self, event: LapEvent) -> None:
        raw = event.run.best_time_raw
        if check_best_lap_celebration(
            self.state, event.kart_number, raw, self.settings.lap_time_threshold_ms,
        ):
            self.celebrations.append(Celebration(event.kart_number, raw, self._clock()))  # type: ignore[arg-type]
            get_logger().info("New best lap for kart %s: %d ms", event.kart_number, raw)

    # ── Ingestion ──────────────────────────────────────────────

    def ingest(self, raw: Any) -> IngestResult | None:
        """Process one telemetry frame. Malformed frames are logged and skipped."""
        try:
            batch = normalize_batch(raw)
        except SnapshotValidationError as exc:
            get_logger().warning("Dropping malformed frame: %s", exc)
            return None

        now = self._clock()
        change = self.boundary.detect(batch, self.current_session_id, self.state.lap_history)
        if change.needs_reset:
            self._close_session()
        if change.suspect:
            self.suspect_sessions.append(change.session_id)
        self.current_session_id = change.session_id

        events = self.detector.process(batch, self.state)
        record_starting_positions(self.state, batch.runs)
        self.state.session_best = update_session_best(
            batch.runs, self.state.session_best, self.settings.lap_time_threshold_ms,
        )

        recorded: list[LapRecord] = []
        for event in events:
            record = self.store.record_lap(event, change.session_id, now)
            if record is None:
                continue
            recorded.append(record)
            if self.scheduler:
                self.scheduler.lap_recorded(self.store)

        eviction = None
        if recorded and len(self.store.sessions) > self.settings.max_sessions:
            eviction = _evict_old_sessions(self.store, self.settings.max_sessions)

        if self.scheduler:
            self.scheduler.maybe_auto_backup(self.store)
        if self.storage and self.personal_records.dirty:
            self.storage.save_personal_records(self.personal_records.to_dict())
            self.personal_records.dirty = False

        self.last_batch = batch
        return IngestResult(change, tuple(events), tuple(recorded), eviction)

    def ingest_all(self, frames: Iterable[Any]) -> list[IngestResult]:
        return [result for result in map(self.ingest, frames) if result is not None]

    def finish_session(self) -> SavedSession | None:
        """Record the current session in history without waiting for a new one."""
        return self._save_history()

    def _close_session(self) -> None:
        self._save_history()
        self.state.reset()

    def _save_history(self) -> SavedSession | None:
        if self.replay or self.history is None:
            return None
        if self.last_batch is None or self.current_session_id is None:
            return None
        return self.history.save_completed_session(
            self.last_batch, self.current_session_id, self.state.lap_history,
        )

    # ── Queries ────────────────────────────────────────────────

    def get_kart_aggregate(self, kart_id: str) -> KartAggregate | None:
        return self.store.get_kart(kart_id)

    def get_driver_aggregate(self, driver_name: str) -> DriverAggregate | None:
        return self.store.get_driver(driver_name)

    @log_service_call
    def rank_karts(self, track_config_id: str | None = None) -> list[KartAnalysis]:
        return _rank_karts(self.store, track_config_id)

    @log_service_call
    def get_incidents(self, kart_number: str) -> IncidentAnalysis:
        """Incidents for a kart: live session history first, else its logged laps."""
        history = self.state.lap_history.get(kart_number)
        if not history:
            laps = [
                lap for lap in self.store.lap_log
                if lap.kart_id == kart_number or lap.kart_number == kart_number
            ]
            history = history_from_records(laps)
        return detect_incidents(history, self.incident_config)

    # ── Maintenance ────────────────────────────────────────────

    @log_service_call
    def rebuild_aggregates(self) -> AnalysisStore:
        self.store.rebuild_aggregates()
        return self.store

    @log_service_call
    def evict_old_sessions(self, max_sessions: int | None = None) -> EvictionResult:
        return _evict_old_sessions(self.store, max_sessions)

    @log_service_call
    def export_json(self, indent: int | None = None) -> str:
        return self.store.export_json(indent)

    @log_service_call
    def import_json(self, document: str | bytes) -> AnalysisStore:
        """Replace all analysis data with an exported document."""
        self.store = AnalysisStore.import_json(document, self.settings)
        if self.scheduler:
            self.scheduler.schedule_save(self.store)
        return self.store

    @log_service_call
    def recover_from_backup(self) -> bool:
        """Restore analysis data from the newest usable backup."""
        if self.storage is None:
            return False
        bundle = self.storage.recover_analysis_bundle()
        if bundle is None:
            return False
        self.store = AnalysisStore.from_bundle(bundle, self.settings)
        if self.scheduler:
            self.scheduler.schedule_save(self.store)
        return True

    def clear_analysis_data(self) -> None:
        self.store = AnalysisStore(settings=self.settings)
        if self.storage:
            self.storage.clear_analysis_data()

    def save_now(self) -> bool:
        """Synchronously save analysis data and wait for pending saves."""
        if self.scheduler is None:
            return False
        self.scheduler.schedule_save(self.store)
        return self.scheduler.flush()

    def close(self) -> None:
        if self.scheduler:
            self.scheduler.close()
