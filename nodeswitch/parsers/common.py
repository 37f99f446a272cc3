"""Helpers shared by the fnm and nvm output parsers."""

from __future__ import annotations

import re
from typing import Callable, Generic, Iterable, List, Optional, TypeVar

from packaging.version import InvalidVersion, Version

from nodeswitch.exceptions import ParseError
from nodeswitch.models import InstalledVersion, InstallPhase, InstallProgress, NodeVersion

E = TypeVar("E")

# A "candidate" line looks like it was meant to carry a version
CANDIDATE_RE = re.compile(r"\d+\.\d+")
PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%")
VERSION_IN_TEXT_RE = re.compile(r"v?(\d+\.\d+\.\d+)")

# Outputs that mean "nothing is active"
NO_VERSION_MARKERS = frozenset({"", "none", "system", "n/a"})


class ListingAccumulator(Generic[E]):
    """
    Collects parsed entries and rejected candidate lines for one listing.

    A listing only fails when it produced no entries and at least one line
    looked like data but could not be parsed. Noise-only input is an empty
    listing.
    """

    def __init__(self, what: str, backend: Optional[str] = None) -> None:
        self.what = what
        self.backend = backend
        self.entries: List[E] = []
        self.rejected: List[str] = []

    def add(self, entry: E) -> None:
        self.entries.append(entry)

    def reject(self, line: str) -> None:
        self.rejected.append(line)

    def finish(self) -> List[E]:
        if not self.entries and self.rejected:
            raise ParseError(
                f"Unrecognized {self.what} output", self.rejected[0], backend=self.backend
            )
        return self.entries


def iter_lines(text: str) -> Iterable[str]:
    """Yield stripped, non-blank lines."""
    for raw in text.splitlines():
        line = raw.strip()
        if line:
            yield line


def is_candidate(line: str) -> bool:
    return bool(CANDIDATE_RE.search(line))


def parse_version_token(token: str) -> Optional[NodeVersion]:
    """
    Parse a listing token that should be a numeric version.

    Returns None for tokens that are not version-like at all (noise); raises
    ParseError for version-like tokens that fail strict parsing.
    """
    stripped = token.lstrip("vV")
    if not stripped or not stripped[0].isdigit():
        return None
    return NodeVersion.parse(token)


def keep_last_default(entries: List[InstalledVersion]) -> List[InstalledVersion]:
    """Clear every default flag except the last one set."""
    last = None
    for index, entry in enumerate(entries):
        if entry.is_default:
            last = index
    for index, entry in enumerate(entries):
        entry.is_default = index == last
    return entries


def parse_current(text: str, backend: Optional[str] = None) -> Optional[NodeVersion]:
    """Parse the output of a `current` command. "none" and "system" mean no version."""
    line = next(iter_lines(text), "")
    token = line.split()[0] if line else ""
    if token.lower() in NO_VERSION_MARKERS:
        return None
    try:
        return NodeVersion.parse(token)
    except ParseError as e:
        raise ParseError("Unrecognized current version output", text, backend=backend) from e


def parse_tool_version(text: str, prefix: str = "") -> Optional[str]:
    """
    Parse a backend's own version string ("fnm 1.37.1", "0.40.1").

    Returns the normalized version, or None when the output is not a version.
    """
    line = next(iter_lines(text), "")
    if prefix and line.startswith(prefix):
        line = line[len(prefix) :].strip()
    line = line.lstrip("vV")
    try:
        return str(Version(line))
    except InvalidVersion:
        return None


def clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, value))


def match_progress(
    line: str,
    failure_markers: Iterable[str],
    keyword_phases: Iterable[tuple[str, InstallPhase]],
    extra: Optional[Callable[[str], Optional[InstallProgress]]] = None,
) -> Optional[InstallProgress]:
    """
    Map one line of install output to a progress value.

    Failure markers are checked first, then keywords in order, then a bare
    percentage. Unrecognized lines give None.
    """
    text = line.strip()
    if not text:
        return None
    lowered = text.lower()

    for marker in failure_markers:
        if marker in lowered:
            return InstallProgress(InstallPhase.FAILED, message=text)

    for keyword, phase in keyword_phases:
        if keyword in lowered:
            percent = None
            if phase is InstallPhase.DOWNLOADING:
                percent = extract_percent(text)
            return InstallProgress(phase, percent=percent, message=text)

    percent = extract_percent(text)
    if percent is not None:
        return InstallProgress(InstallPhase.DOWNLOADING, percent=percent, message=text)

    if extra is not None:
        return extra(text)
    return None


def extract_percent(text: str) -> Optional[float]:
    match = PERCENT_RE.search(text)
    if match is None:
        return None
    return clamp_percent(float(match.group(1)))
