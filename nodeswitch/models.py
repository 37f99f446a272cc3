"""
Data models for nodeswitch.

Node versions, installed/remote listings, install progress, backend metadata and
release information. Everything here is a plain value; nothing performs I/O.
"""

from __future__ import annotations

import functools
import re
import sys
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Generic, Iterable, List, Optional, Protocol, TypeVar

from nodeswitch.exceptions import ParseError

_NUMERIC_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")
_ALIAS_RE = re.compile(r"^[A-Za-z][A-Za-z0-9/_*.\-]*$")


@functools.total_ordering
@dataclass(frozen=True)
class NodeVersion:
    """
    A Node.js version: either numeric (major.minor.patch) or a named alias.

    Aliases ("latest", "lts", "lts/iron") are resolved by the backend tool, never
    here. Ordering is defined only between numeric versions; comparing against an
    alias raises TypeError.
    """

    major: int = 0
    minor: int = 0
    patch: int = 0
    alias: Optional[str] = None

    def __post_init__(self) -> None:
        if self.alias is None and min(self.major, self.minor, self.patch) < 0:
            raise ValueError("Version components must be non-negative")

    @classmethod
    def parse(cls, text: str) -> NodeVersion:
        """
        Parse version text such as "v20.11.0", "20.11.0" or "lts/iron".

        Raises:
            ParseError: If the text is neither X.Y.Z nor a valid alias
        """
        raw = text.strip()
        if not raw:
            raise ParseError("Empty version string", text)

        candidate = raw
        if candidate[0] in "vV" and len(candidate) > 1 and candidate[1].isdigit():
            candidate = candidate[1:]

        match = _NUMERIC_RE.match(candidate)
        if match:
            major, minor, patch = (int(part) for part in match.groups())
            return cls(major, minor, patch)

        if candidate[0].isdigit():
            raise ParseError("Expected X.Y.Z format", text)
        if _ALIAS_RE.match(candidate):
            return cls(alias=candidate)
        raise ParseError("Invalid version", text)

    @classmethod
    def try_parse(cls, text: str) -> Optional[NodeVersion]:
        """Parse a version, returning None instead of raising."""
        try:
            return cls.parse(text)
        except ParseError:
            return None

    @property
    def is_alias(self) -> bool:
        return self.alias is not None

    @property
    def key(self) -> tuple[int, int, int]:
        """Numeric sort key. Raises TypeError for aliases."""
        if self.alias is not None:
            raise TypeError(f"Alias {self.alias!r} has no numeric ordering")
        return (self.major, self.minor, self.patch)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, NodeVersion):
            return NotImplemented
        return self.key < other.key

    def __str__(self) -> str:
        if self.alias is not None:
            return self.alias
        return f"v{self.major}.{self.minor}.{self.patch}"


class _HasVersion(Protocol):
    version: NodeVersion


T = TypeVar("T", bound=_HasVersion)


@dataclass
class InstalledVersion:
    """A Node version present on disk, as reported by the backend."""

    version: NodeVersion
    is_default: bool = False
    install_path: Optional[str] = None
    arch: Optional[str] = None
    lts_codename: Optional[str] = None


@dataclass
class RemoteVersion:
    """A Node version available for installation."""

    version: NodeVersion
    lts_codename: Optional[str] = None
    is_lts: bool = False
    is_latest: bool = False


@dataclass
class VersionGroup(Generic[T]):
    """Versions sharing a major number, newest first."""

    major: int
    versions: List[T] = field(default_factory=list)

    @property
    def latest(self) -> Optional[T]:
        return self.versions[0] if self.versions else None

    @classmethod
    def from_versions(cls, items: Iterable[T]) -> List[VersionGroup[T]]:
        """
        Group versions by major number.

        Groups are ordered by major descending and versions inside each group
        descending. Alias entries carry no major and are left out.
        """
        by_major: dict[int, List[T]] = {}
        for item in items:
            if item.version.is_alias:
                continue
            by_major.setdefault(item.version.major, []).append(item)

        return [
            cls(major, sorted(by_major[major], key=lambda i: i.version.key, reverse=True))
            for major in sorted(by_major, reverse=True)
        ]


class InstallPhase(Enum):
    """Phases reported while a Node version (or a backend) installs."""

    IDLE = "idle"
    RESOLVING = "resolving"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    LINKING = "linking"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (InstallPhase.DONE, InstallPhase.FAILED)


@dataclass(frozen=True)
class InstallProgress:
    """One progress update from an install stream."""

    phase: InstallPhase
    percent: Optional[float] = None
    message: str = ""
    installed: Optional[InstalledVersion] = None


@dataclass(frozen=True)
class ManagerCapabilities:
    """Static feature flags for a backend variant."""

    supports_lts_filter: bool = False
    supports_use_version: bool = False
    supports_shell_integration: bool = False
    supports_auto_switch: bool = False
    supports_corepack: bool = False
    supports_resolve_engines: bool = False
    supports_self_update: bool = False
    supports_arch_selection: bool = False


@dataclass(frozen=True)
class BackendInfo:
    """Static description of a backend variant plus the executable in use."""

    name: str
    display_name: str
    capabilities: ManagerCapabilities
    shell_config_marker: str
    github_repo: str
    executable: Optional[str] = None
    data_dir: Optional[str] = None


class DetectionStatus(Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    FOUND_IN_WSL = "found_in_wsl"


@dataclass(frozen=True)
class BackendDetection:
    """Outcome of probing for a backend executable."""

    status: DetectionStatus
    path: Optional[str] = None
    version: Optional[str] = None
    in_path: bool = False
    data_dir: Optional[str] = None
    distro: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.status is not DetectionStatus.NOT_FOUND

    @classmethod
    def not_found(cls, distro: Optional[str] = None) -> BackendDetection:
        return cls(DetectionStatus.NOT_FOUND, distro=distro)


@dataclass(frozen=True)
class BackendUpdate:
    current_version: str
    latest_version: str
    release_url: str


@dataclass(frozen=True)
class ShellInitOptions:
    """Flags forwarded to the backend's shell integration snippet."""

    use_on_cd: bool = True
    resolve_engines: bool = True
    corepack_enabled: bool = False


@dataclass
class Environment:
    """
    One execution context for a backend: the native OS, or a WSL distribution.

    Owned by the caller's session; backends never store it.
    """

    distro: Optional[str] = None
    backend_path: Optional[str] = None
    active_version: Optional[NodeVersion] = None
    default_version: Optional[NodeVersion] = None

    @property
    def is_wsl(self) -> bool:
        return self.distro is not None

    @property
    def display_name(self) -> str:
        if self.distro is not None:
            return f"WSL: {self.distro}"
        if sys.platform == "darwin":
            return "macOS"
        if sys.platform.startswith("win"):
            return "Windows"
        return "Linux"


@dataclass(frozen=True)
class AppUpdate:
    """A newer nodeswitch release."""

    current_version: str
    latest_version: str
    release_url: str
    release_notes: Optional[str] = None
    download_url: Optional[str] = None
    download_size: Optional[int] = None
    download_sha256: Optional[str] = None


@dataclass(frozen=True)
class ReleaseLine:
    """Lifecycle dates for one Node major line."""

    major: int
    start: date
    end: date
    lts: Optional[date] = None
    maintenance: Optional[date] = None
    codename: Optional[str] = None

    def is_active(self, today: date) -> bool:
        return self.start <= today < self.end

    def is_eol(self, today: date) -> bool:
        return today >= self.end

    def is_lts(self, today: date) -> bool:
        return self.lts is not None and self.lts <= today < self.end


@dataclass
class ReleaseSchedule:
    """Node release lines keyed by major number."""

    lines: dict[int, ReleaseLine] = field(default_factory=dict)

    def is_eol(self, major: int, today: Optional[date] = None) -> bool:
        """True if the line has reached end of life. Unknown majors are not EOL."""
        line = self.lines.get(major)
        return line is not None and line.is_eol(today or date.today())

    def is_active(self, major: int, today: Optional[date] = None) -> bool:
        line = self.lines.get(major)
        return line is not None and line.is_active(today or date.today())

    def codename(self, major: int) -> Optional[str]:
        line = self.lines.get(major)
        return line.codename if line else None

    def active_lts_majors(self, today: Optional[date] = None) -> List[int]:
        today = today or date.today()
        return sorted((m for m, line in self.lines.items() if line.is_lts(today)), reverse=True)


@dataclass(frozen=True)
class VersionMeta:
    """Per-version metadata from the Node.js distribution index."""

    date: Optional[str] = None
    security: bool = False
    npm: Optional[str] = None
    v8: Optional[str] = None
    openssl: Optional[str] = None
    lts_codename: Optional[str] = None
