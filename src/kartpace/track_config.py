"""Track configuration helpers. Lap times from different layouts are never compared."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable

from kartpace.constants import UNKNOWN_TRACK
from kartpace.models.lap import LapRecord
from kartpace.models.snapshot import SnapshotBatch

# Venue-specific layout names, keyed by track configuration id.
TRACK_NAMES: dict[str, str] = {}


def get_track_config_id(batch: SnapshotBatch | None) -> str:
    if batch is None or not batch.track_configuration_id:
        return UNKNOWN_TRACK
    return batch.track_configuration_id


def filter_laps_by_track_config(
    laps: Iterable[LapRecord],
    track_config_id: str | None = None,
) -> list[LapRecord]:
    """Laps on one layout; all laps when *track_config_id* is None."""
    if track_config_id is None:
        return list(laps)
    return [lap for lap in laps if lap.track_config_id == track_config_id]


def get_unique_track_configs(laps: Iterable[LapRecord]) -> list[str]:
    return sorted({lap.track_config_id for lap in laps if lap.track_config_id is not None})


def get_track_config_name(track_config_id: str | None) -> str:
    if track_config_id is None or track_config_id == UNKNOWN_TRACK:
        return "Unknown Track"
    return TRACK_NAMES.get(track_config_id, f"Track Config #{track_config_id}")


def group_laps_by_track_config(laps: Iterable[LapRecord]) -> dict[str, list[LapRecord]]:
    groups: dict[str, list[LapRecord]] = defaultdict(list)
    for lap in laps:
        groups[lap.track_config_id or UNKNOWN_TRACK].append(lap)
    return dict(groups)
