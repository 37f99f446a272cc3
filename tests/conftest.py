"""
Pytest configuration and shared fixtures for nodeswitch tests.

This file is automatically loaded by pytest and provides reusable fixtures
for all tests in the test suite.
"""

import inspect
import os
import sys
import tempfile
from pathlib import Path
from typing import Callable, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

# Keep the default log file and settings out of the real user data dir. Must run
# before any nodeswitch module is imported.
os.environ.setdefault("NODESWITCH_DATA_DIR", tempfile.mkdtemp(prefix="nodeswitch-tests-"))


# ==================== Path Fixtures ====================


@pytest.fixture
def temp_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """
    Point NODESWITCH_DATA_DIR at an empty temporary directory.

    Returns:
        Path to the temporary data directory
    """
    data_dir = tmp_path / "nodeswitch-data"
    data_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("NODESWITCH_DATA_DIR", str(data_dir))
    return data_dir


@pytest.fixture
def python_exe() -> str:
    """The running interpreter, used as a portable child process in runner tests."""
    return sys.executable


# ==================== Runner Fixtures ====================


@pytest.fixture
def mock_runner() -> MagicMock:
    """
    A ProcessRunner stand-in with AsyncMock run() and stream().

    Example:
        def test_list(mock_runner):
            mock_runner.run.return_value = "* v20.11.0 default"
            backend = FnmBackend(executable="/usr/bin/fnm", runner=mock_runner)
    """
    from nodeswitch.process_runner import ProcessRunner

    runner = MagicMock(spec=ProcessRunner)
    runner.run = AsyncMock(return_value="")
    runner.stream = AsyncMock(return_value="")
    return runner


@pytest.fixture
def fake_stream() -> Callable[..., Callable]:
    """
    Build a replacement for ProcessRunner.stream that replays lines.

    Example:
        mock_runner.stream.side_effect = fake_stream(["Installing Node v20.11.0"])
    """

    def build(lines: List[str], error: Optional[BaseException] = None) -> Callable:
        async def stream(executable, args, on_line, timeout=None, env=None):
            for line in lines:
                result = on_line(line)
                if inspect.isawaitable(result):
                    await result
            if error is not None:
                raise error
            return "\n".join(lines)

        return stream

    return build


# ==================== Sample Data Fixtures ====================


@pytest.fixture
def sample_schedule() -> dict:
    """A trimmed nodejs/Release schedule.json."""
    return {
        "v0.12": {"start": "2015-02-06", "end": "2016-12-31"},
        "v18": {
            "start": "2022-04-19",
            "lts": "2022-10-25",
            "maintenance": "2023-10-18",
            "end": "2025-04-30",
            "codename": "Hydrogen",
        },
        "v20": {
            "start": "2023-04-18",
            "lts": "2023-10-24",
            "maintenance": "2024-10-22",
            "end": "2026-04-30",
            "codename": "Iron",
        },
        "v21": {
            "start": "2023-10-17",
            "maintenance": "2024-04-01",
            "end": "2024-06-01",
        },
        "v22": {
            "start": "2024-04-24",
            "lts": "2024-10-29",
            "maintenance": "2025-10-21",
            "end": "2027-04-30",
            "codename": "Jod",
        },
    }


@pytest.fixture
def sample_release() -> dict:
    """A GitHub releases/latest payload for nodeswitch."""
    return {
        "tag_name": "v0.2.0",
        "html_url": "https://github.com/nodeswitch/nodeswitch/releases/tag/v0.2.0",
        "body": "Bug fixes",
        "assets": [
            {
                "name": "nodeswitch-0.2.0-linux-x64.zip",
                "browser_download_url": "https://example.invalid/nodeswitch-0.2.0-linux-x64.zip",
                "size": 1234,
                "digest": "sha256:" + "ab" * 32,
            },
            {
                "name": "nodeswitch-0.2.0-linux-arm64.zip",
                "browser_download_url": "https://example.invalid/nodeswitch-0.2.0-linux-arm64.zip",
                "size": 1200,
                "digest": "sha256:" + "cd" * 32,
            },
        ],
    }


# ==================== Markers ====================


def pytest_configure(config):
    """
    Register custom pytest markers.

    This is called by pytest during initialization and allows us to define
    custom markers that can be used to categorize tests.
    """
    config.addinivalue_line("markers", "unit: Unit tests with mocked external dependencies")
    config.addinivalue_line("markers", "integration: Tests that spawn real processes or touch disk")
    config.addinivalue_line("markers", "slow: Tests that take longer than 1 second")


# ==================== Cleanup Fixtures ====================


@pytest.fixture(autouse=True)
def stop_writers():
    """Flush and stop any debounced writers a test created."""
    yield
    from nodeswitch.write_queue import shutdown_writers

    shutdown_writers()
