"""Tests for aggregation folds, the lap log and the rebuild invariant."""

from __future__ import annotations

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from kartpace.aggregation import (
    apply_lap,
    is_valid_lap_time,
    rebuild_aggregates,
    rebuild_sessions,
)
from kartpace.lap_log import LapLog
from kartpace.models import LapRecord
from kartpace.store import AnalysisStore


def _dump(maps) -> dict:
    return {k: v.model_dump() for k, v in maps.items()}


property_settings = settings(
    max_examples=50,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)

lap_records = st.builds(
    LapRecord,
    session_id=st.sampled_from(["s1", "s2", "s3"]),
    kart_id=st.sampled_from(["1", "2", "3", "t2_1"]),
    base_kart_id=st.just("1"),
    kart_number=st.sampled_from(["1", "2", "3"]),
    driver_name=st.sampled_from(["Alice", "Bob", "Carol"]),
    lap_num=st.integers(min_value=1, max_value=40),
    lap_time_raw=st.integers(min_value=15_000, max_value=70_000),
    timestamp=st.integers(min_value=0, max_value=10_000_000),
)


class TestIsValidLapTime:
    def test_at_threshold(self) -> None:
        assert is_valid_lap_time(60_000) is True

    def test_over_threshold(self) -> None:
        assert is_valid_lap_time(60_001) is False

    def test_none(self) -> None:
        assert is_valid_lap_time(None) is False

    def test_custom_threshold(self) -> None:
        assert is_valid_lap_time(45_000, threshold_ms=40_000) is False


class TestApplyLap:
    def test_creates_kart_and_driver(self, make_lap) -> None:
        karts, drivers = {}, {}
        assert apply_lap(karts, drivers, make_lap(30_000)) is True
        assert karts["7"].total_laps == 1
        assert drivers["Alice"].kart_history == {"7": 1}

    def test_filters_slow_lap(self, make_lap) -> None:
        karts, drivers = {}, {}
        assert apply_lap(karts, drivers, make_lap(60_001)) is False
        assert karts == {}
        assert drivers == {}

    def test_driver_history_sums_to_total(self, make_lap) -> None:
        karts, drivers = {}, {}
        for name in ["Alice", "Bob", "Alice"]:
            apply_lap(karts, drivers, make_lap(30_000, driver_name=name))
        kart = karts["7"]
        assert sum(kart.driver_history.values()) == kart.total_laps == 3


class TestRebuild:
    def test_slow_lap_kept_in_log_but_not_aggregates(self, make_lap) -> None:
        store = AnalysisStore([make_lap(28_000), make_lap(60_001, lap_num=2)])
        assert len(store.lap_log) == 2
        assert store.karts["7"].total_laps == 1
        assert store.drivers["Alice"].best_lap == 28_000

    def test_lap_without_session_record_still_counts(self, make_lap) -> None:
        karts, _ = rebuild_aggregates([make_lap(30_000, session_id="orphan")])
        assert karts["7"].total_laps == 1

    def test_sessions_track_first_and_last(self, make_lap) -> None:
        sessions = rebuild_sessions([
            make_lap(timestamp=500), make_lap(timestamp=200), make_lap(timestamp=900),
        ])
        assert sessions["s1"].first_lap_at == 200
        assert sessions["s1"].last_lap_at == 900
        assert sessions["s1"].lap_count == 3

    @property_settings
    @given(st.lists(lap_records, max_size=40))
    def test_incremental_equals_rebuild(self, laps) -> None:
        karts, drivers = {}, {}
        for lap in laps:
            apply_lap(karts, drivers, lap)
        rebuilt_karts, rebuilt_drivers = rebuild_aggregates(laps)
        assert _dump(karts) == _dump(rebuilt_karts)
        assert _dump(drivers) == _dump(rebuilt_drivers)

    @property_settings
    @given(st.lists(lap_records, max_size=40))
    def test_rebuild_is_pure(self, laps) -> None:
        first = rebuild_aggregates(laps)
        second = rebuild_aggregates(laps)
        assert _dump(first[0]) == _dump(second[0])
        assert _dump(first[1]) == _dump(second[1])

    @property_settings
    @given(st.lists(lap_records, max_size=40))
    def test_survives_export_import(self, laps) -> None:
        store = AnalysisStore(laps)
        restored = AnalysisStore.import_json(store.export_json())
        assert _dump(restored.karts) == _dump(store.karts)
        assert _dump(restored.drivers) == _dump(store.drivers)
        assert _dump(restored.sessions) == _dump(store.sessions)

    @property_settings
    @given(st.lists(lap_records, max_size=40))
    def test_kart_totals_derivable_from_log(self, laps) -> None:
        karts, _ = rebuild_aggregates(laps)
        for key, kart in karts.items():
            expected = sum(1 for lap in laps if lap.kart_id == key and lap.lap_time_raw <= 60_000)
            assert kart.total_laps == expected
            assert kart.best_lap == min(
                lap.lap_time_raw for lap in laps if lap.kart_id == key and lap.lap_time_raw <= 60_000
            )

    @property_settings
    @given(st.lists(lap_records, max_size=40))
    def test_slow_laps_never_aggregated(self, laps) -> None:
        karts, drivers = rebuild_aggregates(laps)
        for kart in karts.values():
            assert kart.worst_lap is None or kart.worst_lap <= 60_000
        for driver in drivers.values():
            assert driver.total_time <= 60_000 * driver.total_laps


class TestLapLog:
    def test_queries(self, make_lap) -> None:
        log = LapLog([
            make_lap(session_id="s1"),
            make_lap(session_id="s2", driver_name="Bob", kart="9"),
            make_lap(session_id="s1", kart="9"),
        ])
        assert len(log.for_kart("9")) == 2
        assert len(log.for_session("s1")) == 2
        assert len(log.for_driver("Bob")) == 1
        assert log.session_ids() == ["s1", "s2"]

    def test_without_sessions_is_new_log(self, make_lap) -> None:
        log = LapLog([make_lap(session_id="s1"), make_lap(session_id="s2")])
        pruned = log.without_sessions({"s1"})
        assert len(pruned) == 1
        assert len(log) == 2
