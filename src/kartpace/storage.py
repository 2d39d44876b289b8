"""Key-value blob persistence for settings, analysis data and records.

Saves never raise into the engine: a failed write is logged and reported as
``False``. Loads fall back to a default when the blob is missing or corrupt.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from kartpace.constants import STORAGE_KEYS
from kartpace.engine_logging import get_logger
from kartpace.exceptions import StorageError
from kartpace.models.bundle import AnalysisBundle


class BlobStore(ABC):
    """Opaque blob storage keyed by name."""

    @abstractmethod
    def load(self, key: str) -> bytes | None: ...

    @abstractmethod
    def save(self, key: str, blob: bytes) -> bool: ...

    @abstractmethod
    def delete(self, key: str) -> bool: ...

    def size(self, key: str) -> int:
        blob = self.load(key)
        return 0 if blob is None else len(blob)


class MemoryBlobStore(BlobStore):
    """In-process store. An optional byte quota mimics browser storage limits."""

    def __init__(self, quota_bytes: int | None = None) -> None:
        self.quota_bytes = quota_bytes
        self._blobs: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def load(self, key: str) -> bytes | None:
        with self._lock:
            return self._blobs.get(key)

    def save(self, key: str, blob: bytes) -> bool:
        with self._lock:
            if self.quota_bytes is not None:
                used = sum(len(b) for k, b in self._blobs.items() if k != key)
                if used + len(blob) > self.quota_bytes:
                    return False
            self._blobs[key] = bytes(blob)
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._blobs.pop(key, None) is not None

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._blobs)


class FileBlobStore(BlobStore):
    """One ``<key>.json`` file per key under *directory*; writes are atomic."""

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def load(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Cannot read {path}: {exc}") from exc

    def save(self, key: str, blob: bytes) -> bool:
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(blob)
                os.replace(tmp, path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as exc:
            get_logger().error("Writing %s failed: %s", path, exc)
            return False
        return True

    def delete(self, key: str) -> bool:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            get_logger().error("Deleting %s failed: %s", self._path(key), exc)
            return False
        return True


class StorageService:
    """JSON documents over a :class:`BlobStore`, under the fixed storage keys."""

    def __init__(self, blobs: BlobStore, clock: Callable[[], float] = time.time) -> None:
        self.blobs = blobs
        self._clock = clock

    # ── Generic JSON access ────────────────────────────────────

    def load_json(self, key: str, default: Any = None) -> Any:
        try:
            blob = self.blobs.load(key)
        except StorageError as exc:
            get_logger().error("Error loading %s: %s", key, exc)
            return default
        if not blob:
            return default
        try:
            return json.loads(blob)
        except ValueError as exc:
            get_logger().error("Corrupt document under %s: %s", key, exc)
            return default

    def save_json(self, key: str, value: Any) -> bool:
        blob = json.dumps(value, separators=(",", ":")).encode("utf-8")
        try:
            ok = self.blobs.save(key, blob)
        except StorageError as exc:
            get_logger().error("Error saving %s: %s", key, exc)
            return False
        if not ok:
            get_logger().warning(
                "Saving %s (%d bytes) failed; storage may be full, consider exporting data",
                key, len(blob),
            )
        return ok

    def remove(self, key: str) -> bool:
        try:
            return self.blobs.delete(key)
        except StorageError as exc:
            get_logger().error("Error removing %s: %s", key, exc)
            return False

    # ── Personal records ───────────────────────────────────────

    def load_personal_records(self) -> dict[str, Any]:
        records = self.load_json(STORAGE_KEYS["personal_records"], {})
        return records if isinstance(records, dict) else {}

    def save_personal_records(self, records: dict[str, Any]) -> bool:
        return self.save_json(STORAGE_KEYS["personal_records"], records)

    # ── Kart analysis data ─────────────────────────────────────

    def load_analysis_bundle(self) -> AnalysisBundle:
        """The saved analysis bundle, migrated; empty only when nothing is stored.

        Unreadable records are dropped individually. When the whole document is
        unreadable, its blob is copied aside and the newest backup is used, so
        the next save cannot overwrite the only copy with an empty log.
        """
        key = STORAGE_KEYS["kart_analysis"]
        payload = self.load_json(key)
        bundle = self._bundle_from(payload)
        if bundle is not None:
            return bundle
        blob = self._raw(key)
        if not blob:
            return AnalysisBundle()
        get_logger().error("Saved analysis data under %s is unreadable; keeping a copy", key)
        self.blobs.save(STORAGE_KEYS["kart_analysis_unreadable"], blob)
        return self.recover_analysis_bundle() or AnalysisBundle()

    def save_analysis_data(self, payload: dict[str, Any]) -> bool:
        """Save *payload* (a serialized bundle) plus a timestamped recovery copy."""
        ok = self.save_json(STORAGE_KEYS["kart_analysis"], payload)
        self.save_json(STORAGE_KEYS["kart_analysis_backup"], self._backup_envelope(payload))
        return ok

    def save_auto_backup(self, payload: dict[str, Any]) -> bool:
        envelope = self._backup_envelope(payload)
        envelope["autoBackup"] = True
        ok = self.save_json(STORAGE_KEYS["kart_analysis_auto_backup"], envelope)
        if ok:
            get_logger().info("Auto-backup completed: %d laps saved", envelope["lapCount"])
        return ok

    def load_backup(self) -> dict[str, Any] | None:
        return self.load_json(STORAGE_KEYS["kart_analysis_backup"])

    def load_auto_backup(self) -> dict[str, Any] | None:
        return self.load_json(STORAGE_KEYS["kart_analysis_auto_backup"])

    def recover_analysis_bundle(self) -> AnalysisBundle | None:
        """Best available backup: the auto-backup first, then the save-time backup."""
        for name, envelope in (
            ("auto-backup", self.load_auto_backup()),
            ("backup", self.load_backup()),
        ):
            if not isinstance(envelope, dict):
                continue
            bundle = self._bundle_from(envelope.get("data"))
            if bundle is not None and bundle.laps:
                get_logger().info("Recovered %d laps from %s", len(bundle.laps), name)
                return bundle
        get_logger().warning("No usable analysis backup found")
        return None

    def clear_analysis_data(self) -> None:
        for key in (
            "kart_analysis", "kart_analysis_backup", "kart_analysis_auto_backup", "kart_analysis_unreadable",
        ):
            self.remove(STORAGE_KEYS[key])

    def clear_all(self) -> None:
        for key in STORAGE_KEYS.values():
            self.remove(key)

    def storage_info(self) -> dict[str, int]:
        """Stored size in bytes per storage key name, plus ``total``."""
        info: dict[str, int] = {}
        for name, key in STORAGE_KEYS.items():
            try:
                info[name] = self.blobs.size(key)
            except StorageError:
                info[name] = 0
        info["total"] = sum(info.values())
        return info

    def _backup_envelope(self, payload: dict[str, Any]) -> dict[str, Any]:
        laps = payload.get("laps") if isinstance(payload, dict) else None
        return {
            "data": payload,
            "timestamp": int(self._clock() * 1000),
            "lapCount": len(laps) if isinstance(laps, list) else 0,
        }

    def _raw(self, key: str) -> bytes | None:
        try:
            return self.blobs.load(key)
        except StorageError as exc:
            get_logger().error("Error loading %s: %s", key, exc)
            return None

    @staticmethod
    def _bundle_from(payload: Any) -> AnalysisBundle | None:
        if payload is None:
            return None
        try:
            return AnalysisBundle.model_validate(payload)
        except ValidationError as exc:
            get_logger().error("Discarding unreadable analysis data: %s", exc)
            return None
