"""
User settings.

AppSettings is what the rest of the program reads: which backend to use, path
overrides, the node dist mirror and shell integration flags. Saving goes through
the debounced write queue so rapid changes collapse into one write.
"""

from __future__ import annotations

import copy
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from nodeswitch.backends.base import BackendKind
from nodeswitch.config import PERSISTENCE, data_dir
from nodeswitch.exceptions import UnsupportedError
from nodeswitch.json_store import read_json, write_json
from nodeswitch.logging_config import get_logger
from nodeswitch.models import ShellInitOptions
from nodeswitch.write_queue import get_writer

logger = get_logger(__name__)

_STRING_FIELDS = ("backend", "fnm_path", "nvm_path", "fnm_dir", "node_dist_mirror", "wsl_distro")
_DIGEST_FIELDS = ("fnm_install_sha256", "nvm_install_sha256")
_SHA256_HEX_RE = re.compile(r"^[0-9a-fA-F]{64}$")


@dataclass
class AppSettings:
    backend: str = BackendKind.default().value
    fnm_path: Optional[str] = None
    nvm_path: Optional[str] = None
    fnm_dir: Optional[str] = None
    node_dist_mirror: Optional[str] = None
    wsl_distro: Optional[str] = None
    # Pinned SHA-256 of each backend's install script
    fnm_install_sha256: Optional[str] = None
    nvm_install_sha256: Optional[str] = None
    check_app_updates: bool = True
    shell_options: ShellInitOptions = field(default_factory=ShellInitOptions)

    @property
    def backend_kind(self) -> BackendKind:
        """Configured backend; falls back to the default for unknown names."""
        try:
            return BackendKind.from_name(self.backend)
        except UnsupportedError:
            logger.warning(f"Unknown backend {self.backend!r} in settings, using default")
            return BackendKind.default()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> AppSettings:
        """Build settings from JSON data. Unknown keys and mistyped values are ignored."""
        settings = cls()
        if not isinstance(data, dict):
            return settings

        for name in _STRING_FIELDS:
            value = data.get(name)
            if isinstance(value, str) and value:
                setattr(settings, name, value)
        for name in _DIGEST_FIELDS:
            value = data.get(name)
            if isinstance(value, str) and _SHA256_HEX_RE.match(value):
                setattr(settings, name, value.lower())
            elif value is not None:
                logger.warning(f"Ignoring invalid {name} in settings")
        if isinstance(data.get("check_app_updates"), bool):
            settings.check_app_updates = data["check_app_updates"]

        shell = data.get("shell_options")
        if isinstance(shell, dict):
            defaults = ShellInitOptions()
            settings.shell_options = ShellInitOptions(
                **{
                    key: shell[key] if isinstance(shell.get(key), bool) else getattr(defaults, key)
                    for key in ("use_on_cd", "resolve_engines", "corepack_enabled")
                }
            )
        return settings


def settings_path() -> Path:
    return data_dir() / PERSISTENCE.SETTINGS_FILE_NAME


def load_settings(path: Optional[Path] = None) -> AppSettings:
    """Load settings, returning defaults when the file is missing or invalid."""
    return AppSettings.from_dict(read_json(path or settings_path(), default={}))


def save_settings(settings: AppSettings, path: Optional[Path] = None) -> None:
    """Write settings immediately."""
    write_json(path or settings_path(), settings.to_dict())


def enqueue_settings_save(settings: AppSettings, path: Optional[Path] = None) -> None:
    """Queue a settings save; rapid successive calls produce a single write."""
    target = path or settings_path()
    writer = get_writer(f"settings:{target}", lambda value: save_settings(value, target))
    writer.push(copy.deepcopy(settings))
