"""
Tests for structured logging and the request tracing middleware.
"""

import json
import logging
from unittest.mock import MagicMock

import pytest
import structlog


@pytest.fixture(autouse=True)
def _clean_context():
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


class TestConfigureLogging:

    def test_console_and_json_modes(self):
        """Both renderers configure without error."""
        from core.logging import configure_logging

        configure_logging(json_logs=False, log_level="DEBUG")
        configure_logging(json_logs=True, log_level="INFO")

    def test_root_level(self):
        from core.logging import configure_logging

        configure_logging(log_level="warning")
        assert logging.getLogger().level == logging.WARNING

    def test_quiet_loggers(self):
        from core.logging import QUIET_LOGGERS, configure_logging

        configure_logging(log_level="DEBUG")
        for name in QUIET_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_processor_chain_ends_in_renderer(self):
        from core.logging import build_processors

        assert isinstance(build_processors(json_logs=True)[-1], structlog.processors.JSONRenderer)
        assert isinstance(build_processors(json_logs=False)[-1], structlog.dev.ConsoleRenderer)

    def test_timestamp_optional(self):
        from core.logging import build_processors

        with_ts = build_processors(json_logs=True)
        without_ts = build_processors(json_logs=True, include_timestamp=False)
        assert len(with_ts) == len(without_ts) + 1
        assert isinstance(with_ts[0], structlog.processors.TimeStamper)

    def test_json_events_carry_service_and_context(self, capsys):
        from core.logging import bind_context, configure_logging, get_logger

        configure_logging(json_logs=True, log_level="INFO", service="personalization-test")
        bind_context(session_id="s-1")
        get_logger("json_test").info("Slot personalized", slot_type="hero")

        lines = [line for line in capsys.readouterr().out.splitlines() if line.strip()]
        if lines:
            event = json.loads(lines[-1])
            assert event["event"] == "Slot personalized"
            assert event["service"] == "personalization-test"
            assert event["session_id"] == "s-1"
            assert event["slot_type"] == "hero"


class TestContextBinding:

    def test_bind_and_clear(self):
        from core.logging import bind_context, clear_context

        bind_context(session_id="s-123", request_id="abc")
        ctx = structlog.contextvars.get_contextvars()
        assert ctx["session_id"] == "s-123"
        assert ctx["request_id"] == "abc"

        clear_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_unbind_keeps_other_fields(self):
        from core.logging import bind_context, unbind_context

        bind_context(request_id="abc", test_id="ab_1", session_id="xyz")
        unbind_context("session_id")

        assert structlog.contextvars.get_contextvars() == {"request_id": "abc", "test_id": "ab_1"}


class TestLoggerMixin:

    def test_logger_available_on_instances(self):
        from core.logging import LoggerMixin, configure_logging

        configure_logging(json_logs=False)

        class SlotWorker(LoggerMixin):
            def work(self):
                self.logger.info("Working", slot_type="cta")
                return True

        assert SlotWorker().work()


class TestLogBudget:
    """Tests for the latency budget context manager."""

    def test_records_elapsed_time(self):
        from core.logging import log_budget

        logger = MagicMock()
        with log_budget(logger, "assemble_page", 10_000) as timing:
            pass

        assert timing["elapsed_ms"] >= 0.0
        logger.warning.assert_not_called()

    def test_warns_when_over_budget(self):
        from core.logging import log_budget

        logger = MagicMock()
        with log_budget(logger, "interest_vector", -1, session_id="s1"):
            pass

        logger.warning.assert_called_once()
        kwargs = logger.warning.call_args.kwargs
        assert kwargs["operation"] == "interest_vector"
        assert kwargs["session_id"] == "s1"

    def test_elapsed_set_when_block_raises(self):
        from core.logging import log_budget

        with pytest.raises(RuntimeError):
            with log_budget(MagicMock(), "slot", 10_000) as timing:
                raise RuntimeError("boom")

        assert "elapsed_ms" in timing


class TestRequestTracingMiddleware:

    @pytest.fixture
    def traced_client(self):
        from fastapi import FastAPI
        from fastapi.testclient import TestClient

        from core.middleware import RequestTracingMiddleware

        app = FastAPI()
        app.add_middleware(RequestTracingMiddleware, slow_request_ms=10_000)

        @app.get("/context")
        async def context():
            return structlog.contextvars.get_contextvars()

        return TestClient(app)

    def test_generates_request_id(self, traced_client):
        response = traced_client.get("/context")
        request_id = response.headers["X-Request-ID"]

        assert len(request_id) == 8
        assert response.json()["request_id"] == request_id
        assert "X-Session-ID" not in response.headers

    def test_session_from_header_or_query(self, traced_client):
        by_header = traced_client.get("/context", headers={"X-Session-ID": "s-9"})
        by_query = traced_client.get("/context", params={"session_id": "s-7"})

        assert by_header.json()["session_id"] == "s-9"
        assert by_header.headers["X-Session-ID"] == "s-9"
        assert by_query.json()["session_id"] == "s-7"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
