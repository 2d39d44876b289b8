"""Stale-driver detection from lap-start timestamps.

Venues sometimes forget to clear drivers from a previous session; their
frames keep arriving with a lap start far in the past.
"""

from __future__ import annotations

import time
from collections.abc import Iterable

from kartpace.constants import TIMESTAMP_THRESHOLDS
from kartpace.engine_logging import get_logger
from kartpace.formatters import format_lap_age
from kartpace.models.snapshot import KartSnapshot


def get_lap_age(run: KartSnapshot, now: float | None = None) -> int | None:
    """Seconds since the run's current lap started, or None without a timestamp."""
    if not run.current_lap_start_timestamp:
        return None
    current = time.time() if now is None else now
    return int(current - run.current_lap_start_timestamp)


def is_driver_stale(
    run: KartSnapshot,
    threshold_seconds: int = TIMESTAMP_THRESHOLDS["race_display"],
    now: float | None = None,
) -> bool:
    """True when the lap started more than *threshold_seconds* ago.

    Runs without a timestamp are treated as active.
    """
    age = get_lap_age(run, now)
    return age is not None and age > threshold_seconds


def filter_stale_drivers(
    runs: Iterable[KartSnapshot],
    threshold_seconds: int = TIMESTAMP_THRESHOLDS["race_display"],
    now: float | None = None,
    log_filtered: bool = True,
) -> list[KartSnapshot]:
    """Drop stale runs, logging each one that is removed."""
    active: list[KartSnapshot] = []
    for run in runs:
        if is_driver_stale(run, threshold_seconds, now):
            if log_filtered:
                get_logger().info(
                    "Filtering stale driver %s (kart %s), lap started %s",
                    run.name, run.kart_number, format_lap_age(get_lap_age(run, now)),
                )
            continue
        active.append(run)
    return active
