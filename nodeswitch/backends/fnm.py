"""fnm (Fast Node Manager) backend."""

from __future__ import annotations

import os
import shutil
import sys
from pathlib import Path
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
from nodeswitch.exceptions import (
    CommandFailedError,
    InstallFailedError,
    IoError,
    NodeSwitchError,
    NotFoundError,
    UnsupportedError,
)
from nodeswitch.http_client import AsyncHttpClient
from nodeswitch.logging_config import get_logger
from nodeswitch.models import (
    BackendDetection,
    DetectionStatus,
    InstalledVersion,
    InstallPhase,
    InstallProgress,
    ManagerCapabilities,
    NodeVersion,
    RemoteVersion,
    ShellInitOptions,
)
from nodeswitch.parsers import fnm as fnm_parser
from nodeswitch.parsers.common import parse_current
from nodeswitch.process_runner import ProcessRunner
from nodeswitch.progress import LineSink, run_with_progress

logger = get_logger(__name__)

WSL_SEARCH_PATHS = (
    "$HOME/.local/share/fnm/fnm",
    "$HOME/.cargo/bin/fnm",
    "/usr/local/bin/fnm",
    "/usr/bin/fnm",
    "$HOME/.fnm/fnm",
)

WINGET_PACKAGE = "Schniz.fnm"


def fnm_candidates() -> List[Path]:
    """Well-known fnm install locations for this platform."""
    home = Path.home()
    candidates = [
        home / ".local" / "share" / "fnm" / "fnm",
        home / ".fnm" / "fnm",
        home / ".local" / "bin" / "fnm",
        home / ".cargo" / "bin" / "fnm",
    ]
    if sys.platform == "darwin":
        candidates.append(Path("/opt/homebrew/bin/fnm"))
    if sys.platform == "win32":
        local_app_data = os.environ.get("LOCALAPPDATA")
        if local_app_data:
            candidates.append(Path(local_app_data) / "fnm" / "fnm.exe")
    else:
        candidates += [Path("/usr/local/bin/fnm"), Path("/usr/bin/fnm")]
    return candidates


def find_fnm_dir() -> Optional[str]:
    """
    Locate fnm's data directory.

    FNM_DIR wins when it exists. Otherwise the first candidate holding a
    node-versions directory, then the first candidate that exists at all.
    """
    env_dir = os.environ.get("FNM_DIR")
    if env_dir and Path(env_dir).is_dir():
        return env_dir

    home = Path.home()
    candidates = []
    xdg_data = os.environ.get("XDG_DATA_HOME")
    if xdg_data:
        candidates.append(Path(xdg_data) / "fnm")
    candidates += [home / ".local" / "share" / "fnm", home / ".fnm"]
    if sys.platform == "win32":
        for var in ("APPDATA", "LOCALAPPDATA"):
            base = os.environ.get(var)
            if base:
                candidates.append(Path(base) / "fnm")

    for candidate in candidates:
        if (candidate / "node-versions").is_dir():
            return str(candidate)
    for candidate in candidates:
        if candidate.is_dir():
            return str(candidate)
    return None


class FnmBackend(BackendProvider):
    """Drives the fnm executable directly."""

    kind = BackendKind.FNM
    DISPLAY_NAME = "fnm (Fast Node Manager)"
    SHELL_CONFIG_MARKER = "fnm env"
    GITHUB_REPO = "Schniz/fnm"

    def __init__(
        self,
        executable: Optional[str] = None,
        fnm_dir: Optional[str] = None,
        node_dist_mirror: Optional[str] = None,
        distro: Optional[str] = None,
        runner: Optional[ProcessRunner] = None,
        install_script_sha256: Optional[str] = None,
    ) -> None:
        super().__init__(executable=executable, distro=distro, runner=runner)
        self.fnm_dir = fnm_dir
        self.node_dist_mirror = node_dist_mirror
        self.install_script_sha256 = install_script_sha256

    def capabilities(self) -> ManagerCapabilities:
        return ManagerCapabilities(
            supports_lts_filter=True,
            supports_use_version=True,
            supports_shell_integration=True,
            supports_auto_switch=True,
            supports_corepack=True,
            supports_resolve_engines=True,
            supports_self_update=True,
            supports_arch_selection=True,
        )

    @property
    def data_dir(self) -> Optional[str]:
        return self.fnm_dir

    def _env(self) -> Dict[str, str]:
        env = {}
        if self.fnm_dir:
            env["FNM_DIR"] = self.fnm_dir
        if self.node_dist_mirror:
            env["FNM_NODE_DIST_MIRROR"] = self.node_dist_mirror
        return env

    def _argv(self, args: Sequence[str]) -> List[str]:
        argv = [self._require_executable(), *args]
        if self.distro is None:
            return argv
        # Windows environment variables do not cross into WSL
        env_args = [f"{key}={value}" for key, value in self._env().items()]
        if env_args:
            argv = ["env", *env_args, *argv]
        return wsl_argv(self.distro, argv)

    def bind(self, detection: BackendDetection) -> FnmBackend:
        return FnmBackend(
            executable=detection.path,
            fnm_dir=detection.data_dir or self.fnm_dir,
            node_dist_mirror=self.node_dist_mirror,
            distro=detection.distro,
            runner=self.runner,
            install_script_sha256=self.install_script_sha256,
        )

    async def detect(self) -> BackendDetection:
        path = find_executable("fnm", override=self.executable, candidates=fnm_candidates())
        if path is None:
            logger.info("fnm not found")
            return BackendDetection.not_found()

        version = await probe_version(self.runner, [path, "--version"], prefix="fnm ")
        detection = BackendDetection(
            DetectionStatus.FOUND,
            path=path,
            version=version,
            in_path=in_path("fnm", path),
            data_dir=self.fnm_dir or find_fnm_dir(),
        )
        logger.info(f"Detected fnm {version or '(unknown version)'} at {path}")
        return detection

    async def detect_in_wsl(self, distro: str) -> BackendDetection:
        return await detect_in_wsl(
            self.runner, distro, WSL_SEARCH_PATHS, lambda path: [path, "--version"], "fnm "
        )

    def install_backend(self, client: AsyncHttpClient) -> AsyncIterator[InstallProgress]:
        if self.distro is not None:
            raise UnsupportedError("install_backend in WSL", backend=self.name)
        if sys.platform == "win32":
            return self._install_with_winget()
        return run_install_script(
            self.runner,
            client,
            ENDPOINTS.FNM_INSTALL_SCRIPT_URL,
            self.install_script_sha256,
            script_args=["--skip-shell"],
            backend=self.name,
        )

    def _install_with_winget(self) -> AsyncIterator[InstallProgress]:
        winget = shutil.which("winget")
        if winget is None:
            raise NotFoundError("winget is required to install fnm on Windows", backend=self.name)
        args = [
            "install",
            "--id",
            WINGET_PACKAGE,
            "--exact",
            "--accept-source-agreements",
            "--accept-package-agreements",
        ]

        async def command(sink: LineSink) -> None:
            await self.runner.stream(
                winget, args, sink, timeout=PROCESS.BACKEND_INSTALL_TIMEOUT_SEC
            )

        async def finish() -> InstallProgress:
            return InstallProgress(InstallPhase.DONE, percent=100.0, message="fnm installed")

        def translate(error: NodeSwitchError) -> NodeSwitchError:
            if isinstance(error, IoError):
                return NotFoundError(error.detail, backend=self.name)
            if isinstance(error, CommandFailedError):
                return InstallFailedError(error.stderr, backend=self.name)
            return error

        return run_with_progress(command, fnm_parser.parse_progress_line, finish, translate)

    async def list_installed(self) -> List[InstalledVersion]:
        entries = fnm_parser.parse_list(await self._run(["list"]))
        if self.fnm_dir and self.distro is None:
            for entry in entries:
                entry.install_path = str(
                    Path(self.fnm_dir) / "node-versions" / str(entry.version) / "installation"
                )
        return entries

    async def list_remote(self) -> List[RemoteVersion]:
        output = await self._run(["list-remote"], timeout=PROCESS.REMOTE_TIMEOUT_SEC)
        return fnm_parser.parse_list_remote(output)

    async def list_remote_lts(self) -> List[RemoteVersion]:
        output = await self._run(["list-remote", "--lts"], timeout=PROCESS.REMOTE_TIMEOUT_SEC)
        return fnm_parser.parse_list_remote(output)

    async def current_version(self) -> Optional[NodeVersion]:
        output = await self._run(["current"], timeout=PROCESS.QUICK_TIMEOUT_SEC)
        return parse_current(output, backend=self.name)

    def _install_args(self, version: NodeVersion) -> List[str]:
        if version.alias == "latest":
            return ["install", "--latest"]
        if version.alias == "lts":
            return ["install", "--lts"]
        return ["install", self._version_arg(version)]

    def parse_progress_line(self, line: str) -> Optional[InstallProgress]:
        return fnm_parser.parse_progress_line(line)

    def _set_default_args(self, version: NodeVersion) -> List[str]:
        return ["default", self._version_arg(version)]

    def shell_init_command(self, shell: str, options: ShellInitOptions) -> Optional[str]:
        flags = ""
        if options.use_on_cd:
            flags += " --use-on-cd"
        if options.resolve_engines:
            flags += " --resolve-engines"
        if options.corepack_enabled:
            flags += " --corepack-enabled"

        shell = shell.lower()
        if shell in ("bash", "zsh"):
            return f'eval "$(fnm env{flags})"'
        if shell == "fish":
            return f"fnm env{flags} | source"
        if shell in ("powershell", "pwsh"):
            return f"fnm env{flags} | Out-String | Invoke-Expression"
        return None
