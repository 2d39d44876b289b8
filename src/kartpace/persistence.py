"""Background persistence of the analysis store.

Ingestion never waits for a save: every Nth lap the store is serialized on
the calling thread and the write is handed to a single background worker.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from kartpace.constants import AUTO_BACKUP_INTERVAL_S, SAVE_EVERY_N_LAPS
from kartpace.engine_logging import get_logger
from kartpace.storage import StorageService
from kartpace.store import AnalysisStore


class SaveScheduler:
    """Counts laps and schedules fire-and-forget saves of the analysis data."""

    def __init__(
        self,
        storage: StorageService,
        every_n_laps: int = SAVE_EVERY_N_LAPS,
        auto_backup_interval_s: float = AUTO_BACKUP_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.storage = storage
        self.every_n_laps = every_n_laps
        self.auto_backup_interval_s = auto_backup_interval_s
        self._clock = clock
        self._laps_since_save = 0
        self._last_backup = clock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="kartpace-save")
        self._pending: list[Future[bool]] = []
        self._lock = threading.Lock()

    def lap_recorded(self, store: AnalysisStore) -> Future[bool] | None:
        """Note one new lap; schedule a save when the cadence is reached."""
        self._laps_since_save += 1
        if self._laps_since_save < self.every_n_laps:
            return None
        self._laps_since_save = 0
        return self.schedule_save(store)

    def schedule_save(self, store: AnalysisStore) -> Future[bool]:
        payload = _snapshot(store)
        return self._submit(self.storage.save_analysis_data, payload, "analysis save")

    def maybe_auto_backup(self, store: AnalysisStore) -> Future[bool] | None:
        """Write the auto-backup once the backup interval has elapsed."""
        now = self._clock()
        if now - self._last_backup < self.auto_backup_interval_s:
            return None
        self._last_backup = now
        return self._submit(self.storage.save_auto_backup, _snapshot(store), "auto-backup")

    def flush(self, timeout: float | None = None) -> bool:
        """Wait for every scheduled save; True when all of them succeeded."""
        with self._lock:
            pending, self._pending = self._pending, []
        ok = True
        for future in pending:
            try:
                ok = future.result(timeout=timeout) and ok
            except Exception:
                get_logger().exception("Background save failed")
                ok = False
        return ok

    def close(self) -> None:
        self.flush()
        self._executor.shutdown(wait=True)

    def _submit(self, fn: Callable[[dict[str, Any]], bool], payload: dict[str, Any], what: str) -> Future[bool]:
        future = self._executor.submit(fn, payload)
        future.add_done_callback(lambda f: _report(f, what, len(payload.get("laps", []))))
        with self._lock:
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)
        return future


def _snapshot(store: AnalysisStore) -> dict[str, Any]:
    return store.to_bundle().model_dump(mode="json", by_alias=True)


def _report(future: Future[bool], what: str, lap_count: int) -> None:
    logger = get_logger()
    exc = future.exception()
    if exc is not None:
        logger.error("%s raised %s: %s", what, type(exc).__name__, exc)
    elif future.result():
        logger.debug("%s stored %d laps", what, lap_count)
    else:
        logger.warning("%s of %d laps failed", what, lap_count)
