"""kartpace: live kart timing ingestion, lap analysis and kart ranking."""

from kartpace.config import EngineSettings, load_settings, save_settings
from kartpace.engine import IngestResult, LiveTimingEngine
from kartpace.exceptions import (
    FeedAPIError,
    FeedConnectionError,
    FeedError,
    FeedTimeoutError,
    ImportFormatError,
    KartPaceError,
    SnapshotValidationError,
    StorageError,
)
from kartpace.feeds import AsyncHttpSnapshotFeed, HttpSnapshotFeed, ReplayFeed
from kartpace.models import (
    AnalysisBundle,
    DriverAggregate,
    KartAggregate,
    KartSnapshot,
    LapHistoryEntry,
    LapRecord,
    SessionRecord,
    SnapshotBatch,
)
from kartpace.storage import FileBlobStore, MemoryBlobStore, StorageService
from kartpace.store import AnalysisStore

__version__ = "0.1.0"

__all__ = [
    "AnalysisBundle",
    "AnalysisStore",
    "AsyncHttpSnapshotFeed",
    "DriverAggregate",
    "EngineSettings",
    "FeedAPIError",
    "FeedConnectionError",
    "FeedError",
    "FeedTimeoutError",
    "FileBlobStore",
    "HttpSnapshotFeed",
    "ImportFormatError",
    "IngestResult",
    "KartAggregate",
    "KartPaceError",
    "KartSnapshot",
    "LapHistoryEntry",
    "LapRecord",
    "LiveTimingEngine",
    "MemoryBlobStore",
    "ReplayFeed",
    "SessionRecord",
    "SnapshotBatch",
    "StorageError",
    "StorageService",
    "load_settings",
    "save_settings",
]
