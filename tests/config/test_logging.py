"""Tests for structlog configuration."""

from __future__ import annotations

import json
import logging
from collections.abc import Generator
from pathlib import Path

import pytest
import structlog

from relcascade import Database, RelcascadeSettings
from relcascade.config.logging import configure_logging


@pytest.fixture(autouse=True)
def _restore_logging() -> Generator[None]:
    """Restore root logger state after each test."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    pkg = logging.getLogger("relcascade")
    pkg_level = pkg.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    pkg.setLevel(pkg_level)


class TestConfigureLogging:
    def test_verbose_enables_debug(self) -> None:
        configure_logging(verbose=True, log_json=False)
        assert logging.getLogger("relcascade").level == logging.DEBUG
        assert logging.getLogger().level == logging.WARNING

    def test_non_verbose_sets_warning(self) -> None:
        configure_logging(verbose=False, log_json=False)
        assert logging.getLogger("relcascade").level == logging.WARNING

    def test_json_mode_output(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)
        log = structlog.get_logger("relcascade.test")
        log.warning("json test", answer=42)
        parsed = json.loads(capfd.readouterr().err.strip())
        assert parsed["event"] == "json test"
        assert parsed["answer"] == 42
        assert parsed["level"] == "warning"
        assert parsed["logger"] == "relcascade.test"
        assert "timestamp" in parsed

    def test_cascade_debug_lines_are_structured(
        self, capfd: pytest.CaptureFixture[str]
    ) -> None:
        configure_logging(verbose=True, log_json=True)

        logging.getLogger("relcascade.cascade.writer").debug("Wrote %s key=%r", "Customer", 1)

        parsed = json.loads(capfd.readouterr().err.strip())
        assert parsed["event"] == "Wrote Customer key=1"
        assert parsed["level"] == "debug"
        assert parsed["logger"] == "relcascade.cascade.writer"

    def test_third_party_debug_is_suppressed(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)

        logging.getLogger("sqlalchemy.engine").info("SELECT 1")
        logging.getLogger("aiosqlite").debug("executing")

        assert capfd.readouterr().err == ""

    def test_idempotent_calls(self) -> None:
        """Multiple configure_logging calls don't stack handlers."""
        configure_logging(verbose=True, log_json=False)
        configure_logging(verbose=True, log_json=True)
        assert len(logging.getLogger().handlers) == 1


class TestSettingsLogging:
    def _settings(self, tmp_path: Path, **flags: bool) -> RelcascadeSettings:
        return RelcascadeSettings(database={"url": f"sqlite:///{tmp_path / 'log.db'}"}, **flags)

    def test_verbose_settings_configure_logging(self, tmp_path: Path) -> None:
        db = Database.from_settings(self._settings(tmp_path, verbose=True))
        db.dispose()
        assert logging.getLogger("relcascade").level == logging.DEBUG
        assert len(logging.getLogger().handlers) == 1

    def test_json_settings_render_json(
        self, tmp_path: Path, capfd: pytest.CaptureFixture[str]
    ) -> None:
        db = Database.from_settings(self._settings(tmp_path, log_json=True))
        db.dispose()
        capfd.readouterr()
        logging.getLogger("relcascade.test").warning("ready")
        assert json.loads(capfd.readouterr().err.strip())["event"] == "ready"

    def test_default_settings_leave_logging_alone(self, tmp_path: Path) -> None:
        root = logging.getLogger()
        handlers = root.handlers[:]
        db = Database.from_settings(self._settings(tmp_path))
        db.dispose()
        assert root.handlers == handlers
