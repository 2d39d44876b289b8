"""Live race trends: gaps, pace, consistency and position changes.

All state lives in the caller's :class:`~kartpace.session_tracker.SessionState`
so a session reset clears every trend at once.
"""

from __future__ import annotations

import math
import re
import time
from collections.abc import Sequence
from dataclasses import dataclass

from kartpace.constants import GAP_HISTORY_LIMIT
from kartpace.models.lap import LapHistoryEntry
from kartpace.models.snapshot import KartSnapshot
from kartpace.session_tracker import SessionState

_GAP_PATTERN = re.compile(r"\+?(\d+(?:\.\d+)?)")

DELTA_BAND_S = 0.05
PACE_BAND_MS = 50
GAP_SLOPE_BAND = 0.01
PROXIMITY_THRESHOLD_S = 1.0


@dataclass(frozen=True)
class DeltaToLeader:
    value: float
    closing: bool
    opening: bool

    @property
    def text(self) -> str:
        return f"△ {self.value:.2f}s" if self.value < 0 else f"▽ +{self.value:.2f}s"


@dataclass(frozen=True)
class PaceTrend:
    value: float
    improving: bool
    declining: bool


@dataclass(frozen=True)
class GapTrend:
    rate: float
    closing: bool
    opening: bool
    stable: bool


def parse_gap(gap: str | float | None) -> float | None:
    """Seconds from a feed gap such as '+1.234'; None for '-', laps or blanks."""
    if gap is None or gap == "-" or gap == "":
        return None
    text = str(gap)
    if "lap" in text.lower():
        return None
    match = _GAP_PATTERN.search(text)
    if match is None:
        return None
    return float(match.group(1))


def track_gap_trend(
    state: SessionState,
    kart_number: str,
    gap: str | float | None,
    now: float | None = None,
    limit: int = GAP_HISTORY_LIMIT,
) -> list[tuple[float, float]]:
    """Record the kart's current gap, keeping the last *limit* points."""
    history = state.gap_history.setdefault(kart_number, [])
    value = parse_gap(gap)
    if value is None:
        return history
    history.append((time.time() if now is None else now, value))
    if len(history) > limit:
        del history[: len(history) - limit]
    return history


def calculate_delta_to_leader(
    state: SessionState,
    kart_number: str,
    gap: str | float | None,
) -> DeltaToLeader | None:
    """Change in gap to the leader since the previous update (negative = closing)."""
    value = parse_gap(gap)
    if value is None:
        return None
    previous = state.last_gap.get(kart_number)
    state.last_gap[kart_number] = value
    if previous is None:
        return None
    delta = value - previous
    return DeltaToLeader(
        value=delta,
        closing=delta < -DELTA_BAND_S,
        opening=delta > DELTA_BAND_S,
    )


def calculate_pace_trend(history: Sequence[LapHistoryEntry]) -> PaceTrend | None:
    """Compare the mean of the last two laps with the two before (last three laps)."""
    if len(history) < 3:
        return None
    first, middle, last = (entry.time_raw for entry in history[-3:])
    if first is None or middle is None or last is None:
        return None
    trend = (middle + last) / 2 - (first + middle) / 2
    return PaceTrend(value=trend, improving=trend < -PACE_BAND_MS, declining=trend > PACE_BAND_MS)


def calculate_gap_trend(gap_history: Sequence[tuple[float, float]]) -> GapTrend | None:
    """Least-squares slope of the last five gap readings (seconds per reading)."""
    if len(gap_history) < 5:
        return None
    recent = [gap for _, gap in gap_history[-5:]]
    n = len(recent)
    sum_x = sum(range(n))
    sum_y = sum(recent)
    sum_xy = sum(x * y for x, y in enumerate(recent))
    sum_xx = sum(x * x for x in range(n))
    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x * sum_x)
    return GapTrend(
        rate=slope,
        closing=slope < -GAP_SLOPE_BAND,
        opening=slope > GAP_SLOPE_BAND,
        stable=abs(slope) <= GAP_SLOPE_BAND,
    )


def calculate_consistency(lap_times: Sequence[int]) -> int:
    """0-100 score, 100 minus the coefficient of variation in percent."""
    if len(lap_times) < 3:
        return 0
    mean = sum(lap_times) / len(lap_times)
    std_dev = math.sqrt(sum((t - mean) ** 2 for t in lap_times) / len(lap_times))
    return round(max(0.0, 100 - std_dev / mean * 100))


def is_within_proximity(gap: str | float | None, threshold: float = PROXIMITY_THRESHOLD_S) -> bool:
    value = parse_gap(gap)
    return value is not None and value <= threshold


def record_starting_positions(state: SessionState, runs: Sequence[KartSnapshot]) -> dict[str, int]:
    """Remember each kart's first reported position in the session."""
    for run in runs:
        if run.kart_number and run.pos is not None:
            state.starting_positions.setdefault(run.kart_number, run.pos)
    return state.starting_positions


def position_change(state: SessionState, run: KartSnapshot) -> int | None:
    """Places gained since the start (positive) or lost (negative)."""
    if run.kart_number is None or run.pos is None:
        return None
    start = state.starting_positions.get(run.kart_number)
    if start is None:
        return None
    return start - run.pos
