"""
nvm backend.

Three environments share this provider:

- Unix: nvm is a shell function, so every command sources nvm.sh inside
  ``bash -c`` with NVM_DIR set.
- Windows: nvm-windows is a real executable (nvm.exe) with different syntax.
- WSL: the Unix form, wrapped in ``wsl.exe -d <distro> --exec``.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path, PurePosixPath
from typing import AsyncIterator, Dict, List, Optional, Sequence

from nodeswitch.backends.base import BackendKind, BackendProvider
from nodeswitch.config import ENDPOINTS, PROCESS
from nodeswitch.detection import (
    detect_in_wsl,
    find_executable,
    in_path,
    probe_version,
    run_install_script,
    wsl_argv,
)
from nodeswitch.exceptions import CommandFailedError, UnsupportedError
from nodeswitch.http_client import AsyncHttpClient
from nodeswitch.logging_config import get_logger
from nodeswitch.models import (
    BackendDetection,
    DetectionStatus,
    InstalledVersion,
    InstallProgress,
    ManagerCapabilities,
    NodeVersion,
    RemoteVersion,
    ShellInitOptions,
)
from nodeswitch.parsers import nvm as nvm_parser
from nodeswitch.parsers.common import parse_current
from nodeswitch.process_runner import ProcessRunner

logger = get_logger(__name__)

NVM_SCRIPT_NAME = "nvm.sh"
WSL_SEARCH_PATHS = ("$HOME/.nvm/nvm.sh",)
WINDOWS_GITHUB_REPO = "coreybutler/nvm-windows"

# $1 is NVM_DIR; the remaining arguments go to nvm
_UNIX_WRAPPER = (
    'export NVM_DIR="$1"; shift; '
    '[ -s "$NVM_DIR/nvm.sh" ] && \\. "$NVM_DIR/nvm.sh"; '
    'nvm "$@"'
)
_UNIX_ENV = {"TERM": "dumb", "NO_COLOR": "1"}


def nvm_unix_argv(nvm_dir: str, args: Sequence[str]) -> List[str]:
    """argv that sources nvm.sh from ``nvm_dir`` and runs ``nvm args``."""
    return ["bash", "-c", _UNIX_WRAPPER, "bash", nvm_dir, *args]


def find_nvm_dir(override: Optional[str] = None) -> Optional[str]:
    """
    Locate an nvm installation directory (one containing nvm.sh).

    Order: explicit override (the directory or its nvm.sh), NVM_DIR, ~/.nvm.
    """
    candidates: List[Path] = []
    if override:
        path = Path(override).expanduser()
        candidates.append(path.parent if path.name == NVM_SCRIPT_NAME else path)
    env_dir = os.environ.get("NVM_DIR")
    if env_dir:
        candidates.append(Path(env_dir))
    candidates.append(Path.home() / ".nvm")

    for candidate in candidates:
        if (candidate / NVM_SCRIPT_NAME).is_file():
            return str(candidate)
    return None


def nvm_windows_candidates() -> List[Path]:
    candidates = []
    for var, sub in (("NVM_HOME", None), ("APPDATA", "nvm")):
        base = os.environ.get(var)
        if base:
            root = Path(base) / sub if sub else Path(base)
            candidates.append(root / "nvm.exe")
    return candidates


class NvmBackend(BackendProvider):
    """
    Drives nvm.sh (Unix, WSL) or nvm.exe (Windows).

    Args:
        executable: Path to nvm.sh (Unix/WSL) or nvm.exe (Windows)
        distro: WSL distribution to run in, or None for the native OS
        windows: Force the nvm-windows dialect; defaults to the host platform
        install_script_sha256: Pinned digest of the nvm install script
    """

    kind = BackendKind.NVM
    DISPLAY_NAME = "nvm (Node Version Manager)"
    SHELL_CONFIG_MARKER = "NVM_DIR"
    GITHUB_REPO = "nvm-sh/nvm"

    def __init__(
        self,
        executable: Optional[str] = None,
        distro: Optional[str] = None,
        runner: Optional[ProcessRunner] = None,
        windows: Optional[bool] = None,
        install_script_sha256: Optional[str] = None,
    ) -> None:
        super().__init__(executable=executable, distro=distro, runner=runner)
        self.install_script_sha256 = install_script_sha256
        if windows is None:
            windows = sys.platform == "win32"
        self.windows = windows and distro is None
        if self.windows:
            self.GITHUB_REPO = WINDOWS_GITHUB_REPO

    def capabilities(self) -> ManagerCapabilities:
        if self.windows:
            return ManagerCapabilities(
                supports_lts_filter=True,
                supports_use_version=True,
                supports_arch_selection=True,
            )
        return ManagerCapabilities(
            supports_lts_filter=True,
            supports_use_version=True,
            supports_shell_integration=True,
            supports_self_update=True,
        )

    @property
    def nvm_dir(self) -> Optional[str]:
        """Directory holding nvm.sh (Unix/WSL only)."""
        if self.windows or not self.executable:
            return None
        if self.distro is not None:
            return str(PurePosixPath(self.executable).parent)
        return str(Path(self.executable).parent)

    @property
    def data_dir(self) -> Optional[str]:
        if self.windows:
            return str(Path(self.executable).parent) if self.executable else None
        return self.nvm_dir

    def _env(self) -> Dict[str, str]:
        return {} if self.windows else dict(_UNIX_ENV)

    def _argv(self, args: Sequence[str]) -> List[str]:
        executable = self._require_executable()
        if self.windows:
            return [executable, *args]
        argv = nvm_unix_argv(self.nvm_dir or "", args)
        if self.distro is None:
            return argv
        env_args = [f"{key}={value}" for key, value in _UNIX_ENV.items()]
        return wsl_argv(self.distro, ["env", *env_args, *argv])

    def _version_arg(self, version: NodeVersion) -> str:
        if self.windows and not version.is_alias:
            return f"{version.major}.{version.minor}.{version.patch}"
        return str(version)

    def bind(self, detection: BackendDetection) -> NvmBackend:
        return NvmBackend(
            executable=detection.path,
            distro=detection.distro,
            runner=self.runner,
            windows=self.windows,
            install_script_sha256=self.install_script_sha256,
        )

    async def detect(self) -> BackendDetection:
        if self.windows:
            path = find_executable("nvm", self.executable, nvm_windows_candidates())
            if path is None:
                logger.info("nvm-windows not found")
                return BackendDetection.not_found()
            version = await probe_version(self.runner, [path, "version"])
            return BackendDetection(
                DetectionStatus.FOUND,
                path=path,
                version=version,
                in_path=in_path("nvm", path),
                data_dir=str(Path(path).parent),
            )

        nvm_dir = find_nvm_dir(self.executable)
        if nvm_dir is None:
            logger.info("nvm not found")
            return BackendDetection.not_found()

        version = await probe_version(
            self.runner, nvm_unix_argv(nvm_dir, ["--version"]), env=_UNIX_ENV
        )
        logger.info(f"Detected nvm {version or '(unknown version)'} in {nvm_dir}")
        return BackendDetection(
            DetectionStatus.FOUND,
            path=str(Path(nvm_dir) / NVM_SCRIPT_NAME),
            version=version,
            in_path="NVM_DIR" in os.environ,
            data_dir=nvm_dir,
        )

    async def detect_in_wsl(self, distro: str) -> BackendDetection:
        env_args = [f"{key}={value}" for key, value in _UNIX_ENV.items()]

        def version_argv(path: str) -> List[str]:
            nvm_dir = str(PurePosixPath(path).parent)
            return ["env", *env_args, *nvm_unix_argv(nvm_dir, ["--version"])]

        detection = await detect_in_wsl(self.runner, distro, WSL_SEARCH_PATHS, version_argv)
        if detection.found and detection.path:
            return BackendDetection(
                detection.status,
                path=detection.path,
                version=detection.version,
                data_dir=str(PurePosixPath(detection.path).parent),
                distro=distro,
            )
        return detection

    def install_backend(self, client: AsyncHttpClient) -> AsyncIterator[InstallProgress]:
        if self.windows:
            raise UnsupportedError("install_backend for nvm-windows", backend=self.name)
        if self.distro is not None:
            raise UnsupportedError("install_backend in WSL", backend=self.name)
        # PROFILE=/dev/null keeps the script away from shell config files
        env = {"PROFILE": "/dev/null"}
        if self.nvm_dir:
            env["NVM_DIR"] = self.nvm_dir
        return run_install_script(
            self.runner,
            client,
            ENDPOINTS.NVM_INSTALL_SCRIPT_URL,
            self.install_script_sha256,
            env=env,
            backend=self.name,
        )

    async def list_installed(self) -> List[InstalledVersion]:
        if self.windows:
            return nvm_parser.parse_windows_list(await self._run(["list"]))
        return nvm_parser.parse_unix_list(await self._run(["ls", "--no-colors"]))

    async def list_remote(self) -> List[RemoteVersion]:
        if self.windows:
            output = await self._run(["list", "available"], timeout=PROCESS.REMOTE_TIMEOUT_SEC)
            return nvm_parser.parse_windows_list_available(output)
        output = await self._run(["ls-remote", "--no-colors"], timeout=PROCESS.REMOTE_TIMEOUT_SEC)
        return nvm_parser.parse_unix_list_remote(output)

    async def list_remote_lts(self) -> List[RemoteVersion]:
        if self.windows:
            return await super().list_remote_lts()
        output = await self._run(
            ["ls-remote", "--lts", "--no-colors"], timeout=PROCESS.REMOTE_TIMEOUT_SEC
        )
        return nvm_parser.parse_unix_list_remote(output)

    async def current_version(self) -> Optional[NodeVersion]:
        if self.windows:
            for entry in await self.list_installed():
                if entry.is_default:
                    return entry.version
            return None
        output = await self._run(["current"], timeout=PROCESS.QUICK_TIMEOUT_SEC)
        return parse_current(output, backend=self.name)

    async def default_version(self) -> Optional[NodeVersion]:
        if self.windows:
            return await super().default_version()
        try:
            output = await self._run(["alias", "default"], timeout=PROCESS.QUICK_TIMEOUT_SEC)
        except CommandFailedError as e:
            logger.debug(f"No default alias: {e}")
            return None
        return nvm_parser.parse_alias_target(output)

    def _install_args(self, version: NodeVersion) -> List[str]:
        return ["install", self._version_arg(version)]

    def parse_progress_line(self, line: str) -> Optional[InstallProgress]:
        if self.windows:
            return nvm_parser.parse_windows_progress_line(line)
        return nvm_parser.parse_unix_progress_line(line)

    def _set_default_args(self, version: NodeVersion) -> List[str]:
        if self.windows:
            return ["use", self._version_arg(version)]
        return ["alias", "default", self._version_arg(version)]

    def shell_init_command(self, shell: str, options: ShellInitOptions) -> Optional[str]:
        if self.windows:
            return None
        if shell.lower() not in ("bash", "zsh"):
            return None
        nvm_dir = self.nvm_dir or "$HOME/.nvm"
        return f'export NVM_DIR="{nvm_dir}"\n[ -s "$NVM_DIR/nvm.sh" ] && \\. "$NVM_DIR/nvm.sh"'
