"""Kart ranking: driver-normalized performance index, percentiles and confidence.

Faster drivers bias raw lap-time comparisons, so each lap is compared with
its own driver's average pace before karts are compared with each other.
"""

from __future__ import annotations

import functools
import math
import statistics
from bisect import bisect_right
from collections import defaultdict
from dataclasses import dataclass

from kartpace.models.lap import LapRecord
from kartpace.store import AnalysisStore
from kartpace.track_config import filter_laps_by_track_config

CROSS_KART_WEIGHT = 0.7
MIN_CROSS_KART_RATIOS = 3
TIE_BAND_MS = 10


@dataclass(frozen=True)
class NormalizedIndex:
    index: float
    percentage_faster: float
    lap_count: int
    driver_count: int
    cross_kart_driver_count: int


@dataclass(frozen=True)
class PercentileRanking:
    avg_percentile: float
    best_percentile: float
    worst_percentile: float


@dataclass(frozen=True)
class KartStats:
    total_laps: int
    best_lap_time: int | None
    worst_lap_time: int | None
    avg_lap_time: float | None
    std_dev: float
    consistency: float
    unique_driver_count: int
    drivers: tuple[str, ...]
    driver_history: dict[str, int]


@dataclass(frozen=True)
class Confidence:
    level: str
    score: int


@dataclass(frozen=True)
class KartAnalysis:
    kart_id: str
    kart_number: str
    kart_name: str
    normalized: NormalizedIndex
    percentile: PercentileRanking | None
    stats: KartStats
    confidence: Confidence


@dataclass(frozen=True)
class CrossKartDriver:
    driver_name: str
    karts_used: tuple[str, ...]
    total_laps: int
    avg_time: float


@dataclass(frozen=True)
class SummaryStats:
    total_laps: int
    total_karts: int
    total_drivers: int
    total_sessions: int
    cross_kart_drivers: tuple[CrossKartDriver, ...]


def _kart_laps(store: AnalysisStore, kart_id: str, track_config_id: str | None = None) -> list[LapRecord]:
    threshold = store.settings.lap_time_threshold_ms
    laps = filter_laps_by_track_config(store.lap_log.for_kart(kart_id), track_config_id)
    return [lap for lap in laps if lap.lap_time_raw <= threshold]


def calculate_normalized_index(
    kart_id: str,
    store: AnalysisStore,
    track_config_id: str | None = None,
) -> NormalizedIndex | None:
    """Average ratio of the kart's laps to each driver's own average pace.

    1.0 is driver-average pace; below 1.0 the kart is faster. Ratios from
    drivers who have driven several karts weigh 70% once there are at least
    three of them. Returns None when no lap qualifies.
    """
    kart = store.karts.get(kart_id)
    if kart is None or kart.total_laps == 0:
        return None

    laps = _kart_laps(store, kart_id, track_config_id)
    if not laps:
        return None

    ratios: list[float] = []
    cross_kart_ratios: list[float] = []
    cross_kart_drivers: set[str] = set()
    for lap in laps:
        driver = store.drivers.get(lap.driver_name)
        if driver is None or driver.total_laps == 0:
            continue
        driver_average = driver.total_time / driver.total_laps
        if driver_average == 0:
            continue
        ratio = lap.lap_time_raw / driver_average
        ratios.append(ratio)
        if driver.is_cross_kart:
            cross_kart_ratios.append(ratio)
            cross_kart_drivers.add(lap.driver_name)

    if not ratios:
        return None

    if len(cross_kart_ratios) >= MIN_CROSS_KART_RATIOS:
        index = (
            CROSS_KART_WEIGHT * statistics.fmean(cross_kart_ratios)
            + (1 - CROSS_KART_WEIGHT) * statistics.fmean(ratios)
        )
    else:
        index = statistics.fmean(ratios)

    return NormalizedIndex(
        index=index,
        percentage_faster=(1 - index) * 100,
        lap_count=len(laps),
        driver_count=len({lap.driver_name for lap in laps}),
        cross_kart_driver_count=len(cross_kart_drivers),
    )


def calculate_percentile_ranking(
    kart_id: str,
    store: AnalysisStore,
    track_config_id: str | None = None,
) -> PercentileRanking | None:
    """How often the kart's laps beat the rest of their session (0-100)."""
    laps = _kart_laps(store, kart_id, track_config_id)
    if not laps:
        return None

    threshold = store.settings.lap_time_threshold_ms
    session_times: dict[str, list[int]] = defaultdict(list)
    for lap in store.lap_log:
        if lap.lap_time_raw <= threshold:
            session_times[lap.session_id].append(lap.lap_time_raw)
    for times in session_times.values():
        times.sort()

    percentiles: list[float] = []
    for lap in laps:
        times = session_times[lap.session_id]
        slower = len(times) - bisect_right(times, lap.lap_time_raw)
        percentiles.append(slower / len(times) * 100)

    return PercentileRanking(
        avg_percentile=statistics.fmean(percentiles),
        best_percentile=max(percentiles),
        worst_percentile=min(percentiles),
    )


def get_kart_stats(
    kart_id: str,
    store: AnalysisStore,
    track_config_id: str | None = None,
) -> KartStats | None:
    """Lap statistics for a kart, optionally restricted to one track layout."""
    if kart_id not in store.karts:
        return None

    laps = _kart_laps(store, kart_id, track_config_id)
    driver_history: dict[str, int] = {}
    for lap in laps:
        driver_history[lap.driver_name] = driver_history.get(lap.driver_name, 0) + 1
    drivers = tuple(driver_history)

    if not laps:
        return KartStats(
            total_laps=0,
            best_lap_time=None,
            worst_lap_time=None,
            avg_lap_time=None,
            std_dev=0.0,
            consistency=0.0,
            unique_driver_count=0,
            drivers=drivers,
            driver_history=driver_history,
        )

    times = [lap.lap_time_raw for lap in laps]
    avg = sum(times) / len(times)
    std_dev = math.sqrt(sum((t - avg) ** 2 for t in times) / len(times))
    return KartStats(
        total_laps=len(times),
        best_lap_time=min(times),
        worst_lap_time=max(times),
        avg_lap_time=avg,
        std_dev=std_dev,
        consistency=max(0.0, 100 - std_dev / avg * 100),
        unique_driver_count=len(drivers),
        drivers=drivers,
        driver_history=driver_history,
    )


def _tiered(value: float, tiers: tuple[tuple[float, int], ...], default: int) -> int:
    for minimum, points in tiers:
        if value >= minimum:
            return points
    return default


def calculate_confidence(
    kart_id: str,
    store: AnalysisStore,
    normalized: NormalizedIndex | None = None,
    stats: KartStats | None = None,
    track_config_id: str | None = None,
) -> Confidence:
    """Additive 0-100 score from lap count, drivers, cross-kart drivers and consistency."""
    normalized = normalized or calculate_normalized_index(kart_id, store, track_config_id)
    stats = stats or get_kart_stats(kart_id, store, track_config_id)
    if normalized is None or stats is None:
        return Confidence(level="Low", score=0)

    score = (
        _tiered(normalized.lap_count, ((50, 30), (20, 20), (10, 10)), 5)
        + _tiered(normalized.driver_count, ((5, 30), (3, 20), (2, 10)), 5)
        + _tiered(normalized.cross_kart_driver_count, ((3, 20), (2, 15), (1, 10)), 0)
        + _tiered(stats.consistency, ((95, 20), (90, 15), (85, 10)), 5)
    )

    if score >= 70:
        level = "High"
    elif score >= 40:
        level = "Medium"
    else:
        level = "Low"
    return Confidence(level=level, score=score)


def _compare(a: KartAnalysis, b: KartAnalysis) -> float:
    """Average lap, then best lap (both with a 10 ms tie band), laps, confidence."""
    avg_diff = (a.stats.avg_lap_time or math.inf) - (b.stats.avg_lap_time or math.inf)
    if not math.isnan(avg_diff) and abs(avg_diff) > TIE_BAND_MS:
        return avg_diff

    best_diff = (a.stats.best_lap_time or math.inf) - (b.stats.best_lap_time or math.inf)
    if not math.isnan(best_diff) and abs(best_diff) > TIE_BAND_MS:
        return best_diff

    laps_diff = b.stats.total_laps - a.stats.total_laps
    if laps_diff != 0:
        return laps_diff

    return b.confidence.score - a.confidence.score


def rank_karts(store: AnalysisStore, track_config_id: str | None = None) -> list[KartAnalysis]:
    """Rank every kart with a usable normalized index, fastest first.

    Karts without one are left out rather than ranked last.
    """
    analyses: list[KartAnalysis] = []
    for kart_id, kart in store.karts.items():
        normalized = calculate_normalized_index(kart_id, store, track_config_id)
        if normalized is None:
            continue
        stats = get_kart_stats(kart_id, store, track_config_id)
        if stats is None:
            continue
        analyses.append(
            KartAnalysis(
                kart_id=kart_id,
                kart_number=kart.kart_number or kart_id,
                kart_name=kart.kart_name or kart.kart_number or kart_id,
                normalized=normalized,
                percentile=calculate_percentile_ranking(kart_id, store, track_config_id),
                stats=stats,
                confidence=calculate_confidence(kart_id, store, normalized, stats, track_config_id),
            )
        )
    analyses.sort(key=functools.cmp_to_key(_compare))
    return analyses


def find_cross_kart_drivers(store: AnalysisStore) -> list[CrossKartDriver]:
    """Drivers with laps on two or more karts, the backbone of normalization."""
    return [
        CrossKartDriver(
            driver_name=name,
            karts_used=tuple(driver.kart_history),
            total_laps=driver.total_laps,
            avg_time=driver.total_time / driver.total_laps,
        )
        for name, driver in store.drivers.items()
        if driver.is_cross_kart and driver.total_laps > 0
    ]


def get_summary_stats(store: AnalysisStore) -> SummaryStats:
    return SummaryStats(
        total_laps=len(store.lap_log),
        total_karts=len(store.karts),
        total_drivers=len(store.drivers),
        total_sessions=len(store.sessions),
        cross_kart_drivers=tuple(find_cross_kart_drivers(store)),
    )
