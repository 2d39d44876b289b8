"""Shared test fixtures and sample timing frames."""

from __future__ import annotations

import logging

import pytest

from kartpace.config import EngineSettings
from kartpace.models import KartSnapshot, LapRecord, SnapshotBatch
from kartpace.store import AnalysisStore

BASE_URL = "https://timing.example.com/api"

SAMPLE_RUN = {
    "kart_number": "7",
    "kart_id": None,
    "name": "Alice",
    "total_laps": 3,
    "last_time": "28.123",
    "last_time_raw": 28123,
    "best_time": "27.950",
    "best_time_raw": 27950,
    "pos": 1,
    "gap": "-",
    "int": "-",
    "current_lap_start_timestamp": None,
}

SAMPLE_FRAME = {
    "event_name": "Evening Race",
    "session_name": "Heat 1",
    "current_lap": 3,
    "total_laps": 12,
    "time_left": "08:12",
    "track_configuration_id": None,
    "runs": [
        SAMPLE_RUN,
        {**SAMPLE_RUN, "kart_number": "12", "name": "Bob", "last_time_raw": 29010,
         "last_time": "29.010", "best_time_raw": 28800, "best_time": "28.800", "pos": 2, "gap": "+1.234"},
    ],
}


# ── Logging ───────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _engine_log(tmp_path):
    """Reset the module-level logger and redirect log output to tmp_path."""
    import kartpace.engine_logging as mod

    old_logger = mod._logger
    old_dir = mod._LOG_DIR
    old_file = mod._LOG_FILE

    named_logger = logging.getLogger(mod.LOGGER_NAME)
    named_logger.handlers.clear()

    mod._logger = None
    mod._LOG_DIR = str(tmp_path / "logs")
    mod._LOG_FILE = str(tmp_path / "logs" / "engine.log")

    yield tmp_path / "logs" / "engine.log"

    for h in named_logger.handlers[:]:
        h.close()
        named_logger.removeHandler(h)
    mod._logger = old_logger
    mod._LOG_DIR = old_dir
    mod._LOG_FILE = old_file


# ── Factories ─────────────────────────────────────────────────────────────


def _make_run(
    kart_number: str = "7",
    total_laps: int = 1,
    last_time_raw: int | None = 30_000,
    name: str | None = "Alice",
    best_time_raw: int | None = None,
    pos: int | None = 1,
    kart_id: str | None = None,
    gap: str | None = "-",
    current_lap_start_timestamp: float | None = None,
) -> KartSnapshot:
    return KartSnapshot(
        kart_number=kart_number,
        kart_id=kart_id,
        name=name,
        total_laps=total_laps,
        last_time=None if last_time_raw is None else f"{last_time_raw / 1000:.3f}",
        last_time_raw=last_time_raw,
        best_time_raw=best_time_raw if best_time_raw is not None else last_time_raw,
        pos=pos,
        gap=gap,
        current_lap_start_timestamp=current_lap_start_timestamp,
    )


def _make_batch(
    runs: list[KartSnapshot],
    current_lap: int | None = None,
    event_name: str = "Evening Race",
    session_name: str = "Heat 1",
    track_configuration_id: str | None = None,
) -> SnapshotBatch:
    if current_lap is None:
        current_lap = max((r.total_laps for r in runs), default=0)
    return SnapshotBatch(
        event_name=event_name,
        session_name=session_name,
        current_lap=current_lap,
        track_configuration_id=track_configuration_id,
        runs=tuple(runs),
    )


def _make_lap(
    lap_time_raw: int = 30_000,
    driver_name: str = "Alice",
    kart: str = "7",
    session_id: str = "s1",
    lap_num: int = 1,
    timestamp: int = 1_000,
    track_config_id: str | None = None,
) -> LapRecord:
    kart_id = kart if track_config_id is None else f"{track_config_id}_{kart}"
    return LapRecord(
        session_id=session_id,
        kart_id=kart_id,
        base_kart_id=kart,
        kart_number=kart,
        driver_name=driver_name,
        lap_num=lap_num,
        lap_time_raw=lap_time_raw,
        timestamp=timestamp,
        track_config_id=track_config_id,
    )


@pytest.fixture
def make_run():
    return _make_run


@pytest.fixture
def make_batch():
    return _make_batch


@pytest.fixture
def make_lap():
    return _make_lap


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings()


@pytest.fixture
def two_kart_store() -> AnalysisStore:
    """Alice and Bob have each driven karts 1 and 2; kart 1 is the faster kart."""
    laps = [
        _make_lap(30_000, "Alice", "1", lap_num=1, timestamp=1_000),
        _make_lap(30_200, "Alice", "1", lap_num=2, timestamp=2_000),
        _make_lap(31_000, "Alice", "2", lap_num=3, timestamp=3_000),
        _make_lap(31_200, "Alice", "2", lap_num=4, timestamp=4_000),
        _make_lap(32_000, "Bob", "1", lap_num=1, timestamp=1_100),
        _make_lap(32_100, "Bob", "1", lap_num=2, timestamp=2_100),
        _make_lap(33_000, "Bob", "2", lap_num=3, timestamp=3_100),
        _make_lap(33_200, "Bob", "2", lap_num=4, timestamp=4_100),
    ]
    return AnalysisStore(laps)
