"""Tests for snapshot, lap and bundle models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from kartpace.models import AnalysisBundle, KartAggregate, KartSnapshot, LapRecord, SnapshotBatch, kart_key

from tests.conftest import SAMPLE_FRAME, SAMPLE_RUN


class TestKartSnapshot:
    def test_parses_sample(self) -> None:
        run = KartSnapshot.model_validate(SAMPLE_RUN)
        assert run.kart_number == "7"
        assert run.last_time_raw == 28123
        assert run.interval == "-"

    def test_numeric_kart_number_becomes_text(self) -> None:
        run = KartSnapshot.model_validate({**SAMPLE_RUN, "kart_number": 7})
        assert run.kart_number == "7"

    def test_negative_raw_time_is_none(self) -> None:
        run = KartSnapshot.model_validate({**SAMPLE_RUN, "last_time_raw": -5})
        assert run.last_time_raw is None

    def test_garbage_raw_time_is_none(self) -> None:
        run = KartSnapshot.model_validate({**SAMPLE_RUN, "best_time_raw": "n/a"})
        assert run.best_time_raw is None

    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan"), 1e999, "Infinity", "NaN"])
    def test_non_finite_raw_time_is_none(self, value) -> None:
        run = KartSnapshot.model_validate({**SAMPLE_RUN, "last_time_raw": value, "pos": value})
        assert run.last_time_raw is None
        assert run.pos is None

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), "nan"])
    def test_non_finite_lap_start_is_none(self, value) -> None:
        run = KartSnapshot.model_validate({**SAMPLE_RUN, "current_lap_start_timestamp": value})
        assert run.current_lap_start_timestamp is None

    def test_blank_name_is_none(self) -> None:
        run = KartSnapshot.model_validate({**SAMPLE_RUN, "name": "   "})
        assert run.name is None

    def test_base_kart_id_prefers_stable_id(self) -> None:
        run = KartSnapshot.model_validate({**SAMPLE_RUN, "kart_id": "k-44"})
        assert run.base_kart_id == "k-44"

    def test_base_kart_id_falls_back_to_number(self) -> None:
        run = KartSnapshot.model_validate(SAMPLE_RUN)
        assert run.base_kart_id == "7"

    def test_frozen(self) -> None:
        run = KartSnapshot.model_validate(SAMPLE_RUN)
        with pytest.raises(ValidationError):
            run.name = "Mallory"  # type: ignore[misc]


class TestSnapshotBatch:
    def test_parses_frame(self) -> None:
        batch = SnapshotBatch.model_validate(SAMPLE_FRAME)
        assert batch.current_lap == 3
        assert len(batch.runs) == 2

    def test_track_config_prefers_batch_value(self) -> None:
        batch = SnapshotBatch.model_validate({**SAMPLE_FRAME, "track_configuration_id": 3})
        run = KartSnapshot.model_validate({**SAMPLE_RUN, "track_configuration_id": "9"})
        assert batch.track_config_for(run) == "3"

    def test_track_config_falls_back_to_run(self) -> None:
        batch = SnapshotBatch.model_validate(SAMPLE_FRAME)
        run = KartSnapshot.model_validate({**SAMPLE_RUN, "track_configuration_id": "9"})
        assert batch.track_config_for(run) == "9"


class TestKartKey:
    def test_without_track(self) -> None:
        assert kart_key(None, "7") == "7"

    def test_with_track(self) -> None:
        assert kart_key("2", "7") == "2_7"


class TestLapRecord:
    def test_camel_case_round_trip(self, make_lap) -> None:
        lap = make_lap(28_000)
        dumped = lap.model_dump(by_alias=True)
        assert dumped["lapTimeRaw"] == 28_000
        assert dumped["driverName"] == "Alice"
        assert LapRecord.model_validate(dumped) == lap

    def test_legacy_record_derives_keys(self) -> None:
        lap = LapRecord.model_validate(
            {"kartNumber": 7, "driverName": "Alice", "lapTimeRaw": 28000.4, "timestamp": 5}
        )
        assert lap.kart_id == "7"
        assert lap.base_kart_id == "7"
        assert lap.session_id == "unknown"
        assert lap.lap_time_raw == 28000

    def test_legacy_record_with_track(self) -> None:
        lap = LapRecord.model_validate(
            {"kartNumber": "7", "driverName": "Alice", "lapTimeRaw": 28000, "trackConfigId": 4}
        )
        assert lap.kart_id == "4_7"

    def test_lap_seconds(self, make_lap) -> None:
        assert make_lap(28_500).lap_seconds == 28.5


class TestKartAggregate:
    def test_add_lap_tracks_best_and_worst(self, make_lap) -> None:
        kart = KartAggregate(kart_id="7")
        kart.add_lap(make_lap(30_000))
        kart.add_lap(make_lap(29_000, driver_name="Bob"))
        assert kart.best_lap == 29_000
        assert kart.worst_lap == 30_000
        assert kart.drivers == ["Alice", "Bob"]
        assert kart.average_time == 29_500

    def test_empty_average(self) -> None:
        assert KartAggregate(kart_id="7").average_time is None


class TestAnalysisBundle:
    def test_missing_collections_default_to_empty(self) -> None:
        bundle = AnalysisBundle.model_validate({"laps": None})
        assert bundle.laps == []
        assert bundle.karts == {}
        assert bundle.drivers == {}
        assert bundle.sessions == {}

    def test_infinite_best_lap_becomes_none(self) -> None:
        bundle = AnalysisBundle.model_validate(
            {"karts": {"7": {"totalLaps": 0, "bestLap": float("inf"), "worstLap": 0}}}
        )
        assert bundle.karts["7"].best_lap is None
        assert bundle.karts["7"].worst_lap is None
        assert bundle.karts["7"].kart_id == "7"

    def test_string_sentinel_becomes_none(self) -> None:
        bundle = AnalysisBundle.model_validate({"drivers": {"Alice": {"bestLap": "Infinity"}}})
        assert bundle.drivers["Alice"].best_lap is None

    def test_bad_lap_dropped_rest_kept(self, make_lap, _engine_log) -> None:
        good = [make_lap(30_000 + i, lap_num=i).model_dump(by_alias=True) for i in range(3)]
        bundle = AnalysisBundle.model_validate({"laps": [*good, {"kartNumber": "7", "lapTimeRaw": 30_000}]})
        assert [lap.lap_time_raw for lap in bundle.laps] == [30_000, 30_001, 30_002]
        assert "Dropping unreadable lap record 3" in _engine_log.read_text()

    @pytest.mark.parametrize("raw_time", [-5, float("inf"), float("nan")])
    def test_out_of_range_lap_time_dropped(self, make_lap, raw_time) -> None:
        bad = {**make_lap().model_dump(by_alias=True), "lapTimeRaw": raw_time}
        bundle = AnalysisBundle.model_validate({"laps": [make_lap().model_dump(by_alias=True), bad]})
        assert len(bundle.laps) == 1

    def test_bad_kart_entry_dropped(self) -> None:
        bundle = AnalysisBundle.model_validate(
            {"karts": {"7": {"totalLaps": 2}, "8": {"totalLaps": "lots"}, "9": "junk"}}
        )
        assert set(bundle.karts) == {"7"}
