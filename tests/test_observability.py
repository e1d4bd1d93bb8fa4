"""
Tests for logging setup and the CLI's log-level resolution.
"""

import logging
from pathlib import Path

import pytest

from lotadeploy.core.observability.logging_config import SeverityFormatter, _parse_level, setup_logging
from lotadeploy.main import _log_level


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestParseLevel:
    def test_names(self):
        assert _parse_level("debug") == logging.DEBUG
        assert _parse_level("ERROR") == logging.ERROR

    def test_fallback(self):
        assert _parse_level(None) == logging.WARNING
        assert _parse_level("chatty") == logging.WARNING


class TestSetupLogging:
    def test_console_level(self):
        setup_logging(level="INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    def test_file_handler_lowers_root_level(self, tmp_path: Path):
        log_file = tmp_path / "deploy.log"
        setup_logging(level="WARNING", log_file=str(log_file), log_file_level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        logging.getLogger("lotadeploy.test").debug("probe output")
        for handler in root.handlers:
            handler.flush()
        assert "probe output" in log_file.read_text()

    def test_severity_marker(self):
        formatter = SeverityFormatter("%(severity)s %(message)s")
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "Build failed", None, None)
        assert formatter.format(record) == "❌ Build failed"


class TestLogLevelPrecedence:
    def test_debug_wins(self):
        assert _log_level(verbose=True, quiet=True, debug=True) == "DEBUG"

    def test_verbose_over_quiet(self):
        assert _log_level(verbose=True, quiet=True, debug=False) == "INFO"

    def test_quiet(self):
        assert _log_level(verbose=False, quiet=True, debug=False) == "ERROR"

    def test_env_var(self, monkeypatch):
        monkeypatch.setenv("LOTADEPLOY_LOG_LEVEL", "DEBUG")
        assert _log_level(verbose=False, quiet=False, debug=False) == "DEBUG"

    def test_default(self, monkeypatch):
        monkeypatch.delenv("LOTADEPLOY_LOG_LEVEL", raising=False)
        assert _log_level(verbose=False, quiet=False, debug=False) == "WARNING"
