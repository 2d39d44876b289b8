"""The lap log: append-only, ordered record of every accepted lap."""

from __future__ import annotations

from collections.abc import Collection, Iterable, Iterator

from kartpace.models.lap import LapRecord


class LapLog:
    """Single source of truth for completed laps.

    Records are only ever appended. The one exception is retention, which
    removes whole sessions through :meth:`without_sessions`.
    """

    def __init__(self, records: Iterable[LapRecord] = ()) -> None:
        self._records: list[LapRecord] = list(records)

    def append(self, record: LapRecord) -> None:
        self._records.append(record)

    def __iter__(self) -> Iterator[LapRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, index: int) -> LapRecord:
        return self._records[index]

    def __repr__(self) -> str:
        return f"LapLog({len(self._records)} laps)"

    @property
    def records(self) -> tuple[LapRecord, ...]:
        return tuple(self._records)

    def for_kart(self, kart_id: str) -> list[LapRecord]:
        """Laps for a composite kart key."""
        return [r for r in self._records if r.kart_id == kart_id]

    def for_session(self, session_id: str) -> list[LapRecord]:
        return [r for r in self._records if r.session_id == session_id]

    def for_driver(self, driver_name: str) -> list[LapRecord]:
        return [r for r in self._records if r.driver_name == driver_name]

    def session_ids(self) -> list[str]:
        """Distinct session ids in first-seen order."""
        return list(dict.fromkeys(r.session_id for r in self._records))

    def without_sessions(self, session_ids: Collection[str]) -> LapLog:
        """A new log with every lap of *session_ids* removed."""
        return LapLog(r for r in self._records if r.session_id not in session_ids)
