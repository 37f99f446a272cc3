"""
Backend provider interface.

A BackendProvider drives one external Node version manager. Providers keep no
mutable state: the executable path and environment they run in are fixed at
construction, and ``bind()`` returns a new provider for a detection result.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import AsyncIterator, Dict, List, Optional, Sequence

from nodeswitch.config import PROCESS
from nodeswitch.exceptions import (
    CommandFailedError,
    InstallFailedError,
    IoError,
    NodeSwitchError,
    NotFoundError,
    ParseError,
    UnsupportedError,
    VersionNotFoundError,
)
from nodeswitch.http_client import AsyncHttpClient
from nodeswitch.logging_config import get_logger
from nodeswitch.models import (
    BackendDetection,
    BackendInfo,
    BackendUpdate,
    InstalledVersion,
    InstallPhase,
    InstallProgress,
    ManagerCapabilities,
    NodeVersion,
    RemoteVersion,
    ShellInitOptions,
)
from nodeswitch.process_runner import ProcessRunner
from nodeswitch.progress import LineSink, run_with_progress
from nodeswitch.updates import check_backend_update

logger = get_logger(__name__)


class BackendKind(Enum):
    """Supported backend variants."""

    FNM = "fnm"
    NVM = "nvm"

    @classmethod
    def default(cls) -> BackendKind:
        return cls.FNM

    @classmethod
    def from_name(cls, name: str) -> BackendKind:
        try:
            return cls(name.strip().lower())
        except ValueError as e:
            raise UnsupportedError(f"unknown backend {name!r}") from e


class BackendProvider(ABC):
    """Uniform async interface over fnm and nvm."""

    kind: BackendKind
    DISPLAY_NAME: str
    SHELL_CONFIG_MARKER: str
    GITHUB_REPO: str

    def __init__(
        self,
        executable: Optional[str] = None,
        distro: Optional[str] = None,
        runner: Optional[ProcessRunner] = None,
    ) -> None:
        self.executable = executable
        self.distro = distro
        self.runner = runner or ProcessRunner(backend=self.name)

    @property
    def name(self) -> str:
        return self.kind.value

    # ---- static description ----

    @abstractmethod
    def capabilities(self) -> ManagerCapabilities:
        """Static feature flags for this variant."""

    @property
    def data_dir(self) -> Optional[str]:
        return None

    @property
    def info(self) -> BackendInfo:
        return BackendInfo(
            name=self.name,
            display_name=self.DISPLAY_NAME,
            capabilities=self.capabilities(),
            shell_config_marker=self.SHELL_CONFIG_MARKER,
            github_repo=self.GITHUB_REPO,
            executable=self.executable,
            data_dir=self.data_dir,
        )

    # ---- detection and setup ----

    @abstractmethod
    async def detect(self) -> BackendDetection:
        """Probe the native environment for the backend."""

    @abstractmethod
    async def detect_in_wsl(self, distro: str) -> BackendDetection:
        """Probe a WSL distribution for the backend."""

    @abstractmethod
    def bind(self, detection: BackendDetection) -> BackendProvider:
        """Return a provider that runs the executable ``detection`` found."""

    @abstractmethod
    def install_backend(self, client: AsyncHttpClient) -> AsyncIterator[InstallProgress]:
        """Install or upgrade the backend tool itself."""

    # ---- command plumbing ----

    @abstractmethod
    def _argv(self, args: Sequence[str]) -> List[str]:
        """Full argv for a backend subcommand."""

    def _env(self) -> Dict[str, str]:
        return {}

    def _require_executable(self) -> str:
        if not self.executable:
            raise NotFoundError(f"{self.name} executable not configured", backend=self.name)
        return self.executable

    async def _run(self, args: Sequence[str], timeout: float = PROCESS.LIST_TIMEOUT_SEC) -> str:
        argv = self._argv(args)
        try:
            return await self.runner.run(argv[0], argv[1:], timeout=timeout, env=self._env())
        except IoError as e:
            if e.not_found:
                raise NotFoundError(e.detail, backend=self.name) from e
            raise

    def _version_arg(self, version: NodeVersion) -> str:
        return str(version)

    # ---- queries ----

    @abstractmethod
    async def list_installed(self) -> List[InstalledVersion]: ...

    @abstractmethod
    async def list_remote(self) -> List[RemoteVersion]: ...

    async def list_remote_lts(self) -> List[RemoteVersion]:
        return [entry for entry in await self.list_remote() if entry.is_lts]

    @abstractmethod
    async def current_version(self) -> Optional[NodeVersion]: ...

    async def default_version(self) -> Optional[NodeVersion]:
        for entry in await self.list_installed():
            if entry.is_default:
                return entry.version
        return None

    # ---- mutations ----

    @abstractmethod
    def _install_args(self, version: NodeVersion) -> List[str]: ...

    @abstractmethod
    def parse_progress_line(self, line: str) -> Optional[InstallProgress]: ...

    @abstractmethod
    def _set_default_args(self, version: NodeVersion) -> List[str]: ...

    def _use_args(self, version: NodeVersion) -> List[str]:
        return ["use", self._version_arg(version)]

    def _uninstall_args(self, version: NodeVersion) -> List[str]:
        return ["uninstall", self._version_arg(version)]

    def install(self, version: NodeVersion) -> AsyncIterator[InstallProgress]:
        """
        Install a Node version, yielding progress.

        Ends with DONE carrying the installed entry from a fresh listing, or with
        FAILED followed by InstallFailedError / CommandTimeoutError / ParseError.
        """
        argv = self._argv(self._install_args(version))
        logger.info(f"Installing Node {version} with {self.name}")

        async def command(sink: LineSink) -> None:
            await self.runner.stream(
                argv[0], argv[1:], sink, timeout=PROCESS.INSTALL_TIMEOUT_SEC, env=self._env()
            )

        async def finish() -> InstallProgress:
            installed = await self._find_installed(version)
            return InstallProgress(
                InstallPhase.DONE,
                percent=100.0,
                message=f"Installed Node {installed.version}",
                installed=installed,
            )

        def translate(error: NodeSwitchError) -> NodeSwitchError:
            if isinstance(error, CommandFailedError):
                return InstallFailedError(error.stderr, version=str(version), backend=self.name)
            if isinstance(error, IoError):
                return InstallFailedError(error.detail, version=str(version), backend=self.name)
            return error

        return run_with_progress(command, self.parse_progress_line, finish, translate)

    async def _find_installed(self, version: NodeVersion) -> InstalledVersion:
        installed = await self.list_installed()
        numeric = [entry for entry in installed if not entry.version.is_alias]
        if version.is_alias:
            if numeric:
                return max(numeric, key=lambda entry: entry.version.key)
        else:
            for entry in numeric:
                if entry.version == version:
                    return entry
        raise ParseError(
            f"Installed version {version} missing from {self.name} listing", backend=self.name
        )

    async def ensure_installed(self, version: NodeVersion) -> None:
        """Raise VersionNotFoundError unless ``version`` is installed. Aliases pass."""
        if version.is_alias:
            return
        installed = await self.list_installed()
        if not any(entry.version == version for entry in installed):
            raise VersionNotFoundError(str(version), backend=self.name)

    async def set_active(self, version: NodeVersion) -> None:
        """Make ``version`` the default for new shells."""
        await self.ensure_installed(version)
        await self._run(self._set_default_args(version), timeout=PROCESS.QUICK_TIMEOUT_SEC)
        logger.info(f"Default Node version set to {version} ({self.name})")

    set_default = set_active

    async def use_version(self, version: NodeVersion) -> None:
        if not self.capabilities().supports_use_version:
            raise UnsupportedError("use_version", backend=self.name)
        await self.ensure_installed(version)
        await self._run(self._use_args(version), timeout=PROCESS.QUICK_TIMEOUT_SEC)

    async def uninstall(self, version: NodeVersion) -> None:
        await self.ensure_installed(version)
        await self._run(self._uninstall_args(version), timeout=PROCESS.LIST_TIMEOUT_SEC)
        logger.info(f"Uninstalled Node {version} ({self.name})")

    # ---- updates and shell ----

    async def check_for_update(
        self, client: AsyncHttpClient, current_version: str
    ) -> Optional[BackendUpdate]:
        """
        Compare the installed tool version with its latest GitHub release.

        Raises:
            NetworkError: The release could not be fetched
            ParseError: The release payload could not be read
        """
        logger.info(f"Checking {self.GITHUB_REPO} for a newer {self.name} than {current_version}")
        return await check_backend_update(client, self.GITHUB_REPO, current_version)

    @abstractmethod
    def shell_init_command(self, shell: str, options: ShellInitOptions) -> Optional[str]:
        """Shell snippet that activates the backend, or None if the shell is unsupported."""
