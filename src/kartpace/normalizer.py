"""Snapshot normalizer: raw feed frames into validated snapshot batches."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from kartpace.engine_logging import get_logger
from kartpace.exceptions import SnapshotValidationError
from kartpace.models.snapshot import KartSnapshot, SnapshotBatch


def normalize_run(raw: Any) -> KartSnapshot | None:
    """Validate one kart entry.

    Returns None for entries that can never produce a lap: not a mapping,
    failed validation, no kart number, or no last-lap time.
    """
    if isinstance(raw, KartSnapshot):
        run = raw
    elif not isinstance(raw, dict):
        return None
    else:
        try:
            run = KartSnapshot.model_validate(raw)
        except ValidationError as exc:
            get_logger().warning("Dropping malformed run %r: %s", raw.get("kart_number"), exc)
            return None
    if run.kart_number is None:
        return None
    if run.last_time_raw is None:
        if isinstance(raw, dict) and raw.get("last_time_raw") is not None:
            get_logger().warning(
                "Dropping run %r: unusable last lap time %r", run.kart_number, raw["last_time_raw"],
            )
        return None
    return run


def normalize_batch(raw: Any) -> SnapshotBatch:
    """Validate a whole frame; accepts the bare frame or a ``{"data": frame}`` envelope.

    Runs that cannot produce laps are dropped; the rest of the batch survives.
    """
    if isinstance(raw, SnapshotBatch):
        return raw
    if not isinstance(raw, dict):
        raise SnapshotValidationError(f"Expected a mapping, got {type(raw).__name__}")
    if isinstance(raw.get("data"), dict) and "runs" not in raw:
        raw = raw["data"]

    raw_runs = raw.get("runs") or []
    if not isinstance(raw_runs, list):
        raise SnapshotValidationError("'runs' must be a list")
    runs = [run for run in (normalize_run(r) for r in raw_runs) if run is not None]

    header = {k: v for k, v in raw.items() if k != "runs"}
    try:
        return SnapshotBatch.model_validate({**header, "runs": runs})
    except ValidationError as exc:
        raise SnapshotValidationError(f"Invalid snapshot batch: {exc}") from exc
