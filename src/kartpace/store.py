"""Analysis store: the lap log plus the aggregate caches derived from it."""

from __future__ import annotations

import json
import time
from collections.abc import Iterable

from pydantic import ValidationError

from kartpace.aggregation import (
    apply_lap,
    apply_session,
    rebuild_aggregates,
    rebuild_sessions,
)
from kartpace.config import EngineSettings
from kartpace.engine_logging import get_logger
from kartpace.exceptions import ImportFormatError
from kartpace.lap_detector import LapEvent
from kartpace.lap_log import LapLog
from kartpace.models.aggregates import DriverAggregate, KartAggregate, SessionRecord
from kartpace.models.bundle import AnalysisBundle
from kartpace.models.lap import LapRecord, kart_key
from kartpace.timestamps import get_lap_age


class AnalysisStore:
    """Explicit owner of all cross-session state.

    Only the ingestion path appends laps; retention swaps in a pruned log and
    its rebuilt aggregates together, so readers never see the two disagree.
    """

    def __init__(
        self,
        laps: Iterable[LapRecord] = (),
        settings: EngineSettings | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.lap_log = LapLog(laps)
        self.karts: dict[str, KartAggregate] = {}
        self.drivers: dict[str, DriverAggregate] = {}
        self.sessions: dict[str, SessionRecord] = {}
        self.rebuild_aggregates()
        self.sessions = rebuild_sessions(self.lap_log)

    def __repr__(self) -> str:
        return (
            f"AnalysisStore(laps={len(self.lap_log)}, karts={len(self.karts)}, "
            f"drivers={len(self.drivers)}, sessions={len(self.sessions)})"
        )

    # ── Ingestion ──────────────────────────────────────────────

    def record_lap(
        self,
        event: LapEvent,
        session_id: str,
        now: float | None = None,
    ) -> LapRecord | None:
        """Append a lap for *event* and update the aggregates.

        Returns None when the lap is dropped: malformed identity, over the lap
        time threshold, or from a stale driver left over from an earlier session.
        """
        logger = get_logger()
        run = event.run
        current = time.time() if now is None else now

        base_id = run.base_kart_id
        if not run.name or base_id is None or run.last_time_raw is None:
            logger.warning(
                "Dropping lap %d: missing driver name or kart key (kart=%r, driver=%r)",
                event.lap_num, run.kart_number, run.name,
            )
            return None

        if run.last_time_raw > self.settings.lap_time_threshold_ms:
            logger.info(
                "Excluding lap %d of kart %s (%s): %d ms over threshold",
                event.lap_num, run.kart_number, run.name, run.last_time_raw,
            )
            return None

        age = get_lap_age(run, current)
        if age is not None and age > self.settings.stale_lap_threshold_s:
            logger.warning(
                "Excluding lap %d of kart %s: stale driver %s (lap started %ds ago)",
                event.lap_num, run.kart_number, run.name, age,
            )
            return None

        record = LapRecord(
            session_id=session_id,
            kart_id=kart_key(event.track_config_id, base_id),
            base_kart_id=base_id,
            kart_number=run.kart_number,
            kart_name=run.kart_name,
            driver_name=run.name,
            lap_num=event.lap_num,
            lap_time=run.last_time,
            lap_time_raw=run.last_time_raw,
            timestamp=int(current * 1000),
            position=run.pos,
            track_config_id=event.track_config_id,
        )
        self.lap_log.append(record)
        apply_lap(self.karts, self.drivers, record, self.settings.lap_time_threshold_ms)
        apply_session(self.sessions, record)
        return record

    # ── Rebuild / swap ─────────────────────────────────────────

    def rebuild_aggregates(self) -> None:
        """Discard kart and driver aggregates and fold them again from the log."""
        self.karts, self.drivers = rebuild_aggregates(
            self.lap_log, self.settings.lap_time_threshold_ms,
        )

    def replace_log(self, lap_log: LapLog) -> None:
        """Swap in a new log with freshly rebuilt aggregates in one step."""
        karts, drivers = rebuild_aggregates(lap_log, self.settings.lap_time_threshold_ms)
        sessions = rebuild_sessions(lap_log)
        self.lap_log, self.karts, self.drivers, self.sessions = lap_log, karts, drivers, sessions

    # ── Queries ────────────────────────────────────────────────

    def get_kart(self, kart_id: str) -> KartAggregate | None:
        return self.karts.get(kart_id)

    def get_driver(self, driver_name: str) -> DriverAggregate | None:
        return self.drivers.get(driver_name)

    def valid_laps(self) -> list[LapRecord]:
        """Laps that feed analysis (within the lap time threshold)."""
        threshold = self.settings.lap_time_threshold_ms
        return [lap for lap in self.lap_log if lap.lap_time_raw <= threshold]

    # ── Import / export ────────────────────────────────────────

    def to_bundle(self) -> AnalysisBundle:
        return AnalysisBundle(
            laps=list(self.lap_log),
            karts={k: v.model_copy(deep=True) for k, v in self.karts.items()},
            drivers={k: v.model_copy(deep=True) for k, v in self.drivers.items()},
            sessions={k: v.model_copy() for k, v in self.sessions.items()},
        )

    @classmethod
    def from_bundle(
        cls,
        bundle: AnalysisBundle,
        settings: EngineSettings | None = None,
    ) -> AnalysisStore:
        """Build a store from *bundle*'s laps; its cached maps are recomputed."""
        return cls(bundle.laps, settings=settings)

    def export_json(self, indent: int | None = None) -> str:
        return self.to_bundle().model_dump_json(by_alias=True, indent=indent)

    @classmethod
    def import_json(
        cls,
        document: str | bytes,
        settings: EngineSettings | None = None,
    ) -> AnalysisStore:
        """Load an exported document. Only ``laps`` is trusted."""
        try:
            payload = json.loads(document)
        except json.JSONDecodeError as exc:
            raise ImportFormatError(f"Not a JSON document: {exc}") from exc
        if not isinstance(payload, dict) or not isinstance(payload.get("laps"), list):
            raise ImportFormatError("Import document has no 'laps' array")
        try:
            bundle = AnalysisBundle.model_validate(payload)
        except ValidationError as exc:
            raise ImportFormatError(f"Invalid lap records: {exc}") from exc
        dropped = len(payload["laps"]) - len(bundle.laps)
        if dropped:
            raise ImportFormatError(
                f"Invalid lap records: {dropped} of {len(payload['laps'])} could not be read",
            )
        store = cls.from_bundle(bundle, settings=settings)
        get_logger().info("Imported %d laps (%d sessions)", len(store.lap_log), len(store.sessions))
        return store
