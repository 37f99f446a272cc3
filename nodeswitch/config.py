"""
Centralized configuration for nodeswitch.

This module provides configuration constants for process execution, network
operations, remote endpoints and on-disk persistence.
"""

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ProcessConfig:
    """Timeouts for backend subprocesses."""

    QUICK_TIMEOUT_SEC: float = 10
    LIST_TIMEOUT_SEC: float = 30
    REMOTE_TIMEOUT_SEC: float = 60
    INSTALL_TIMEOUT_SEC: float = 600
    BACKEND_INSTALL_TIMEOUT_SEC: float = 300

    # Number of trailing output lines kept for error messages from streamed commands
    ERROR_TAIL_LINES: int = 20


@dataclass(frozen=True)
class NetworkConfig:
    """Network-related configuration."""

    REQUEST_TIMEOUT_SEC: float = 10
    CONNECT_TIMEOUT_SEC: float = 10
    DOWNLOAD_TIMEOUT_SEC: float = 30
    DOWNLOAD_RETRY_ATTEMPTS: int = 2
    DOWNLOAD_RETRY_BASE_DELAY_SEC: float = 2.0
    USER_AGENT: str = "nodeswitch"
    ERROR_BODY_SNIPPET_CHARS: int = 160


@dataclass(frozen=True)
class EndpointsConfig:
    """Remote URLs used by the update service and backend installers."""

    GITHUB_API: str = "https://api.github.com"
    APP_REPO: str = "nodeswitch/nodeswitch"
    NODE_SCHEDULE_URL: str = "https://raw.githubusercontent.com/nodejs/Release/main/schedule.json"
    NODE_DIST_INDEX_URL: str = "https://nodejs.org/dist/index.json"
    FNM_INSTALL_SCRIPT_URL: str = "https://fnm.vercel.app/install"
    NVM_INSTALL_SCRIPT_URL: str = "https://raw.githubusercontent.com/nvm-sh/nvm/v0.40.1/install.sh"


@dataclass(frozen=True)
class PersistenceConfig:
    """Write-coalescing and file layout configuration."""

    QUIET_PERIOD_SEC: float = 0.25
    SETTINGS_FILE_NAME: str = "settings.json"
    CACHE_FILE_NAME: str = "cache.json"
    LOGS_DIR_NAME: str = "logs"
    LOG_FILE_NAME: str = "nodeswitch.log"
    DATA_DIR_ENV: str = "NODESWITCH_DATA_DIR"


# Global configuration instances (frozen/immutable)
PROCESS = ProcessConfig()
NETWORK = NetworkConfig()
ENDPOINTS = EndpointsConfig()
PERSISTENCE = PersistenceConfig()


def data_dir() -> Path:
    """
    Return the directory nodeswitch stores settings, cache and logs in.

    ``NODESWITCH_DATA_DIR`` overrides the default. Otherwise this is
    ``%LOCALAPPDATA%/nodeswitch`` on Windows and ``$XDG_STATE_HOME/nodeswitch``
    (``~/.local/state/nodeswitch``) elsewhere.
    """
    override = os.environ.get(PERSISTENCE.DATA_DIR_ENV)
    if override:
        return Path(override)
    if os.name == "nt":
        base = os.environ.get("LOCALAPPDATA")
        if base:
            return Path(base) / "nodeswitch"
    state_home = os.environ.get("XDG_STATE_HOME")
    if state_home:
        return Path(state_home) / "nodeswitch"
    return Path.home() / ".local" / "state" / "nodeswitch"
