"""Tests for structlog configuration."""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from convergectl.config.logging import configure_logging, host_logger


class TestConfigureLogging:
    def test_verbose_enables_debug(self) -> None:
        configure_logging(verbose=True, log_json=False)
        assert logging.getLogger("convergectl").level == logging.DEBUG
        assert logging.getLogger().level == logging.WARNING

    def test_non_verbose_sets_warning(self) -> None:
        configure_logging(verbose=False, log_json=False)
        assert logging.getLogger("convergectl").level == logging.WARNING

    def test_json_mode_output(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)
        structlog.get_logger("convergectl.test").warning("json test", answer=42)
        parsed = json.loads(capfd.readouterr().err.strip())
        assert parsed["event"] == "json test"
        assert parsed["answer"] == 42
        assert parsed["level"] == "warning"
        assert parsed["logger"] == "convergectl.test"
        assert "timestamp" in parsed

    def test_stdlib_logger_gets_structured_fields(
        self, capfd: pytest.CaptureFixture[str]
    ) -> None:
        configure_logging(verbose=True, log_json=True)
        logging.getLogger("convergectl.services.reconcile").debug("command:x failed")
        parsed = json.loads(capfd.readouterr().err.strip())
        assert parsed["event"] == "command:x failed"
        assert parsed["level"] == "debug"

    def test_host_logger_binds_host(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=False, log_json=True)
        host_logger("web1").warning("dispatch failed", exit_code=3)
        parsed = json.loads(capfd.readouterr().err.strip())
        assert parsed["host"] == "web1"
        assert parsed["exit_code"] == 3
        assert parsed["logger"] == "convergectl.dispatch"

    def test_prepared_tags_hostname(
        self, capfd: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("socket.gethostname", lambda: "web7")
        configure_logging(log_json=True, prepared=True)
        try:
            logging.getLogger("convergectl.services.reconcile").warning("item failed")
            parsed = json.loads(capfd.readouterr().err.strip())
        finally:
            structlog.contextvars.clear_contextvars()
        assert parsed["host"] == "web7"

    def test_contextvars_reset_between_runs(self, capfd: pytest.CaptureFixture[str]) -> None:
        structlog.contextvars.bind_contextvars(host="stale")
        configure_logging(log_json=True)
        logging.getLogger("convergectl").warning("fresh")
        assert "host" not in json.loads(capfd.readouterr().err.strip())
