"""Tests for engine_logging.py: the service decorator and file logging."""

from __future__ import annotations

import logging

import pytest

from kartpace.engine_logging import LOGGER_NAME, get_logger, log_service_call


class _FakeService:
    """Minimal class to exercise the logging decorator."""

    @log_service_call
    def list_karts(self, track: str) -> list[str]:
        return ["1", "2"]

    @log_service_call
    def compute(self, data: list) -> dict:
        return {"result": len(data)}

    @log_service_call
    def failing(self, kart: str) -> None:
        raise RuntimeError("service error")


@pytest.fixture
def service():
    return _FakeService()


class TestLogServiceCall:
    def test_returns_result(self, service) -> None:
        assert service.compute([1, 2, 3]) == {"result": 3}

    def test_logs_call_and_ok(self, service, _engine_log) -> None:
        service.list_karts("a")
        content = _engine_log.read_text()
        assert "CALL: _FakeService.list_karts('a')" in content
        assert "OK: _FakeService.list_karts('a') -> 2 items" in content

    def test_logs_keyword_arguments(self, service, _engine_log) -> None:
        service.list_karts(track="b")
        assert "CALL: _FakeService.list_karts(track='b')" in _engine_log.read_text()

    def test_logs_failure(self, service, _engine_log) -> None:
        with pytest.raises(RuntimeError, match="service error"):
            service.failing("7")
        content = _engine_log.read_text()
        assert "FAIL: _FakeService.failing('7') -> RuntimeError: service error" in content

    def test_line_format(self, service, _engine_log) -> None:
        service.compute([])
        first = _engine_log.read_text().splitlines()[0]
        assert " | INFO | CALL: " in first

    def test_preserves_function_name(self, service) -> None:
        assert service.compute.__name__ == "compute"


class TestGetLogger:
    def test_is_cached(self) -> None:
        assert get_logger() is get_logger()

    def test_does_not_propagate(self) -> None:
        logger = get_logger()
        assert logger.name == LOGGER_NAME
        assert logger.propagate is False

    def test_engine_warnings_and_calls_share_one_file(self, _engine_log) -> None:
        from kartpace.engine import LiveTimingEngine

        engine = LiveTimingEngine()
        engine.ingest("junk")
        engine.rank_karts("a")
        engine.close()
        content = _engine_log.read_text()
        assert _engine_log.name == "engine.log"
        assert "WARNING | Dropping malformed frame" in content
        assert "CALL: LiveTimingEngine.rank_karts('a')" in content

    def test_creates_log_directory(self, tmp_path) -> None:
        import kartpace.engine_logging as mod

        new_dir = tmp_path / "nested" / "logs"
        mod._LOG_DIR = str(new_dir)
        mod._LOG_FILE = str(new_dir / "engine.log")
        mod._logger = None
        logging.getLogger(LOGGER_NAME).handlers.clear()

        _FakeService().compute([])

        assert (new_dir / "engine.log").exists()
