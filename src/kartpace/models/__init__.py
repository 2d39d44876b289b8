"""kartpace data models."""

from kartpace.models.aggregates import DriverAggregate, KartAggregate, SessionRecord
from kartpace.models.bundle import AnalysisBundle
from kartpace.models.lap import LapHistoryEntry, LapRecord, kart_key
from kartpace.models.snapshot import KartSnapshot, SnapshotBatch

__all__ = [
    "AnalysisBundle",
    "DriverAggregate",
    "KartAggregate",
    "KartSnapshot",
    "LapHistoryEntry",
    "LapRecord",
    "SessionRecord",
    "SnapshotBatch",
    "kart_key",
]
