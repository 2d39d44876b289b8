"""Aggregation: kart, driver and session rollups folded from lap records.

The incremental path (:func:`apply_lap`) and the full rebuild
(:func:`rebuild_aggregates`) share the same per-lap fold, so applying laps one
by one always ends in the same state as rebuilding from the whole log.
"""

from __future__ import annotations

from collections.abc import Iterable

from kartpace.constants import LAP_TIME_THRESHOLD_MS
from kartpace.models.aggregates import DriverAggregate, KartAggregate, SessionRecord
from kartpace.models.lap import LapRecord

KartMap = dict[str, KartAggregate]
DriverMap = dict[str, DriverAggregate]
SessionMap = dict[str, SessionRecord]


def is_valid_lap_time(raw_ms: int | None, threshold_ms: int = LAP_TIME_THRESHOLD_MS) -> bool:
    """Laps over the threshold are incidents or timing errors, not pace."""
    return raw_ms is not None and raw_ms <= threshold_ms


def apply_lap(
    karts: KartMap,
    drivers: DriverMap,
    lap: LapRecord,
    threshold_ms: int = LAP_TIME_THRESHOLD_MS,
) -> bool:
    """Fold one lap into the kart and driver maps. Returns False if filtered out."""
    if not is_valid_lap_time(lap.lap_time_raw, threshold_ms):
        return False
    kart = karts.get(lap.kart_id)
    if kart is None:
        kart = karts[lap.kart_id] = KartAggregate(kart_id=lap.kart_id)
    kart.add_lap(lap)

    driver = drivers.get(lap.driver_name)
    if driver is None:
        driver = drivers[lap.driver_name] = DriverAggregate(driver_name=lap.driver_name)
    driver.add_lap(lap)
    return True


def apply_session(sessions: SessionMap, lap: LapRecord) -> None:
    record = sessions.get(lap.session_id)
    if record is None:
        sessions[lap.session_id] = SessionRecord(
            session_id=lap.session_id,
            first_lap_at=lap.timestamp,
            last_lap_at=lap.timestamp,
            lap_count=1,
            track_config_id=lap.track_config_id,
        )
    else:
        record.add_lap(lap)


def rebuild_aggregates(
    laps: Iterable[LapRecord],
    threshold_ms: int = LAP_TIME_THRESHOLD_MS,
) -> tuple[KartMap, DriverMap]:
    """Recompute kart and driver aggregates from scratch.

    Pure: the result depends only on the laps and their order. Laps whose
    session has no session record still count.
    """
    karts: KartMap = {}
    drivers: DriverMap = {}
    for lap in laps:
        apply_lap(karts, drivers, lap, threshold_ms)
    return karts, drivers


def rebuild_sessions(laps: Iterable[LapRecord]) -> SessionMap:
    """Recompute session records (lap counts and first/last lap timestamps)."""
    sessions: SessionMap = {}
    for lap in laps:
        apply_session(sessions, lap)
    return sessions
