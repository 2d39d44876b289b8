"""Retention: evict the oldest sessions once the store holds too many."""

from __future__ import annotations

from dataclasses import dataclass, field

from kartpace.engine_logging import get_logger
from kartpace.store import AnalysisStore


@dataclass(frozen=True)
class EvictionResult:
    evicted_sessions: tuple[str, ...] = field(default_factory=tuple)
    laps_removed: int = 0

    @property
    def evicted(self) -> bool:
        return bool(self.evicted_sessions)


def sessions_to_evict(store: AnalysisStore, max_sessions: int) -> list[str]:
    """Oldest session ids by last-lap timestamp, enough to get back under the cap."""
    excess = len(store.sessions) - max_sessions
    if excess <= 0:
        return []
    ordered = sorted(store.sessions.values(), key=lambda s: (s.last_lap_at, s.session_id))
    return [s.session_id for s in ordered[:excess]]


def evict_old_sessions(store: AnalysisStore, max_sessions: int | None = None) -> EvictionResult:
    """Drop whole sessions beyond *max_sessions* and rebuild the aggregates.

    The pruned log, aggregates and session records are computed first and
    swapped into the store together.
    """
    cap = store.settings.max_sessions if max_sessions is None else max_sessions
    evicted = sessions_to_evict(store, cap)
    if not evicted:
        return EvictionResult()

    before = len(store.lap_log)
    store.replace_log(store.lap_log.without_sessions(set(evicted)))
    removed = before - len(store.lap_log)
    get_logger().info(
        "Evicted %d session(s) over cap %d, removed %d laps: %s",
        len(evicted), cap, removed, ", ".join(evicted),
    )
    return EvictionResult(evicted_sessions=tuple(evicted), laps_removed=removed)
