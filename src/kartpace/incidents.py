"""Incident detection: laps materially slower than the driver's own pace.

A slow lap only counts as an incident (crash, spin, off) when the driver
recovers on the following lap; otherwise it is just slow driving. The final
analysed lap is reported without a recovery check.
"""

from __future__ import annotations

import math
import statistics
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from kartpace.constants import LAP_TIME_THRESHOLD_MS
from kartpace.models.lap import LapHistoryEntry, LapRecord
from kartpace.models.snapshot import KartSnapshot

TRIM_FRACTION = 0.1


@dataclass(frozen=True)
class IncidentConfig:
    min_laps: int = 3
    incident_multiplier: float = 1.30
    severe_multiplier: float = 1.50
    max_lap_time_ms: int = LAP_TIME_THRESHOLD_MS
    # Laps at or under this are timing glitches, never incidents.
    min_lap_time_ms: int = 15_000
    recovery_multiplier: float = 1.15


@dataclass(frozen=True)
class Baseline:
    average: float
    median: float
    best: int
    worst: int


@dataclass(frozen=True)
class Incident:
    lap_number: int
    lap_time: int
    lap_time_formatted: str | None
    baseline: float
    delta: float
    delta_percent: float
    severity: int
    is_severe: bool
    recovery_lap: int | None
    recovery_time: int | None

    @property
    def time_lost(self) -> float:
        return self.delta


@dataclass(frozen=True)
class IncidentAnalysis:
    total_incidents: int = 0
    severe_incidents: int = 0
    minor_incidents: int = 0
    incident_rate: float = 0.0
    total_time_lost: float = 0.0
    incidents: tuple[Incident, ...] = field(default_factory=tuple)
    baseline: Baseline | None = None
    laps_analysed: int = 0


@dataclass(frozen=True)
class MostIncidents:
    kart_number: str
    name: str
    total_incidents: int
    severe_incidents: int
    incident_rate: float
    analysis: IncidentAnalysis


def _trimmed_mean(times: Sequence[int]) -> float:
    ordered = sorted(times)
    trim = math.floor(len(ordered) * TRIM_FRACTION)
    kept = ordered[trim:len(ordered) - trim]
    if not kept:
        return statistics.median(ordered)
    return statistics.fmean(kept)


def calculate_baseline(times: Sequence[int]) -> Baseline | None:
    """Trimmed mean (10% off each end), median, best and worst of *times*."""
    if not times:
        return None
    return Baseline(
        average=_trimmed_mean(times),
        median=statistics.median(times),
        best=min(times),
        worst=max(times),
    )


def calculate_severity(lap_time: float, baseline: float) -> int:
    """1 (minor) to 5 (major crash) from the ratio to baseline."""
    ratio = lap_time / baseline
    if ratio >= 2.0:
        return 5
    if ratio >= 1.7:
        return 4
    if ratio >= 1.5:
        return 3
    if ratio >= 1.4:
        return 2
    return 1


def detect_incidents(
    history: Sequence[LapHistoryEntry],
    config: IncidentConfig = IncidentConfig(),
) -> IncidentAnalysis:
    """Detect incidents in one kart's chronological lap history.

    The first lap (standing start) is never analysed. Each candidate lap is
    judged against the trimmed mean of the other analysed laps, so a single
    large outlier cannot inflate its own baseline.
    """
    if len(history) < config.min_laps:
        return IncidentAnalysis()

    laps = [
        entry for entry in history[1:]
        if entry.time_raw is not None
        and config.min_lap_time_ms < entry.time_raw <= config.max_lap_time_ms
    ]
    if len(laps) < 2:
        return IncidentAnalysis()

    times = [entry.time_raw for entry in laps]
    baseline = calculate_baseline(times)  # type: ignore[arg-type]

    incidents: list[Incident] = []
    for i, lap in enumerate(laps):
        lap_time: int = lap.time_raw  # type: ignore[assignment]
        reference = _trimmed_mean(times[:i] + times[i + 1:])
        if lap_time <= reference * config.incident_multiplier:
            continue

        next_lap = laps[i + 1] if i + 1 < len(laps) else None
        recovered = (
            next_lap is not None
            and next_lap.time_raw < lap_time * config.recovery_multiplier  # type: ignore[operator]
        )
        if not recovered and next_lap is not None:
            continue

        incidents.append(
            Incident(
                lap_number=lap.lap_num,
                lap_time=lap_time,
                lap_time_formatted=lap.time,
                baseline=reference,
                delta=lap_time - reference,
                delta_percent=round((lap_time / reference - 1) * 100, 1),
                severity=calculate_severity(lap_time, reference),
                is_severe=lap_time > reference * config.severe_multiplier,
                recovery_lap=next_lap.lap_num if next_lap else None,
                recovery_time=next_lap.time_raw if next_lap else None,
            )
        )

    severe = sum(1 for incident in incidents if incident.is_severe)
    return IncidentAnalysis(
        total_incidents=len(incidents),
        severe_incidents=severe,
        minor_incidents=len(incidents) - severe,
        incident_rate=round(len(incidents) / len(laps) * 100, 1),
        total_time_lost=sum(incident.delta for incident in incidents),
        incidents=tuple(incidents),
        baseline=baseline,
        laps_analysed=len(laps),
    )


def history_from_records(records: Iterable[LapRecord]) -> list[LapHistoryEntry]:
    """Lap-log records as a chronological history usable by :func:`detect_incidents`."""
    ordered = sorted(records, key=lambda r: (r.timestamp, r.lap_num))
    return [
        LapHistoryEntry(
            lap_num=r.lap_num,
            time=r.lap_time,
            time_raw=r.lap_time_raw,
            position=r.position,
        )
        for r in ordered
    ]


def detect_all_incidents(
    lap_history: Mapping[str, Sequence[LapHistoryEntry]],
    runs: Iterable[KartSnapshot],
    config: IncidentConfig = IncidentConfig(),
) -> dict[str, IncidentAnalysis]:
    """Incident analysis for every kart in *runs* that has live history."""
    result: dict[str, IncidentAnalysis] = {}
    for run in runs:
        if run.kart_number and run.kart_number in lap_history:
            result[run.kart_number] = detect_incidents(lap_history[run.kart_number], config)
    return result


def find_most_incidents(
    analyses: Mapping[str, IncidentAnalysis],
    runs: Iterable[KartSnapshot],
) -> MostIncidents | None:
    """The kart with the most incidents; the first one wins a tie."""
    names = {run.kart_number: run.name for run in runs}
    winner: MostIncidents | None = None
    for kart_number, analysis in analyses.items():
        best_so_far = winner.total_incidents if winner else 0
        if analysis.total_incidents > best_so_far:
            winner = MostIncidents(
                kart_number=kart_number,
                name=names.get(kart_number) or "Unknown",
                total_incidents=analysis.total_incidents,
                severe_incidents=analysis.severe_incidents,
                incident_rate=analysis.incident_rate,
                analysis=analysis,
            )
    return winner


def get_incident_summary(analysis: IncidentAnalysis | None) -> str:
    if analysis is None or analysis.total_incidents == 0:
        return "Clean session"
    severe, minor = analysis.severe_incidents, analysis.minor_incidents
    if severe and minor:
        return f"{severe} major, {minor} minor"
    if severe:
        return f"{severe} major incident{'s' if severe > 1 else ''}"
    return f"{minor} minor incident{'s' if minor > 1 else ''}"
