"""
Unit tests for nodeswitch/logging_config.py

Tests cover:
- Logging setup and initialization
- File and console handler configuration
- Default log location
- Reset functionality
"""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from nodeswitch.logging_config import default_log_file, get_logger, reset_logging, setup_logging


@pytest.fixture(autouse=True)
def reset_logging_state():
    """Reset logging state before and after each test."""
    reset_logging()
    yield
    reset_logging()


@pytest.fixture
def temp_log_file(tmp_path):
    return tmp_path / "test_nodeswitch.log"


@pytest.mark.unit
class TestLoggingSetup:
    """Tests for setup_logging()."""

    def test_creates_log_file(self, temp_log_file):
        """setup_logging creates the log file."""
        setup_logging(log_file=temp_log_file)
        assert temp_log_file.is_file()

    def test_creates_parent_directories(self, tmp_path):
        """Nested log directories are created."""
        log_file = tmp_path / "nested" / "dir" / "nodeswitch.log"
        setup_logging(log_file=log_file)
        assert log_file.exists()

    def test_configures_handlers(self, temp_log_file):
        """Root logger gets one rotating file handler and one console handler."""
        setup_logging(log_file=temp_log_file, log_level="DEBUG", console_level="ERROR")

        root_logger = logging.getLogger()
        assert root_logger.level == logging.DEBUG
        assert len(root_logger.handlers) == 2
        file_handlers = [h for h in root_logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].level == logging.DEBUG
        console = [h for h in root_logger.handlers if h not in file_handlers][0]
        assert console.level == logging.ERROR

    def test_second_call_is_ignored(self, temp_log_file, tmp_path):
        """Repeated setup does not duplicate handlers."""
        setup_logging(log_file=temp_log_file)
        setup_logging(log_file=tmp_path / "other.log")
        assert len(logging.getLogger().handlers) == 2
        assert not (tmp_path / "other.log").exists()

    def test_messages_reach_file(self, temp_log_file):
        """INFO messages are written with the detailed format."""
        setup_logging(log_file=temp_log_file)
        get_logger("nodeswitch.test").info("hello from test")
        for handler in logging.getLogger().handlers:
            handler.flush()

        content = temp_log_file.read_text(encoding="utf-8")
        assert "nodeswitch.test - INFO - hello from test" in content


@pytest.mark.unit
class TestDefaults:
    """Tests for default locations and lazy initialization."""

    def test_default_log_file_in_data_dir(self, temp_data_dir):
        """Default log file lives under the data dir."""
        assert default_log_file() == temp_data_dir / "logs" / "nodeswitch.log"

    def test_get_logger_initializes(self, temp_data_dir):
        """get_logger sets up logging on first use."""
        logger = get_logger("nodeswitch.lazy")
        assert logger.name == "nodeswitch.lazy"
        assert len(logging.getLogger().handlers) == 2
        assert (temp_data_dir / "logs" / "nodeswitch.log").exists()


@pytest.mark.unit
class TestReset:
    """Tests for reset_logging()."""

    def test_reset_removes_handlers(self, temp_log_file):
        """reset_logging clears handlers and allows setup again."""
        setup_logging(log_file=temp_log_file)
        reset_logging()
        assert logging.getLogger().handlers == []

        setup_logging(log_file=temp_log_file)
        assert len(logging.getLogger().handlers) == 2
