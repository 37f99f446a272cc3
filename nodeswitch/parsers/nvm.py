"""
Parsers for nvm output.

nvm on Unix is the nvm.sh shell function; nvm on Windows is nvm-windows
(nvm.exe). The two print different formats, so each has its own functions.

    nvm ls (unix)              ->     v20.11.0 *
                               default -> 20 (-> v20.11.0)
    nvm ls-remote (unix)       v20.11.0   (Latest LTS: Iron)
    nvm list (windows)         * 20.11.0 (Currently using 64-bit executable)
    nvm list available         |   CURRENT    |     LTS      |  OLD STABLE  | OLD UNSTABLE |
"""

from __future__ import annotations

import re
from typing import List, Optional

from nodeswitch.exceptions import ParseError
from nodeswitch.models import (
    InstalledVersion,
    InstallPhase,
    InstallProgress,
    NodeVersion,
    RemoteVersion,
)
from nodeswitch.parsers.common import (
    VERSION_IN_TEXT_RE,
    ListingAccumulator,
    is_candidate,
    iter_lines,
    keep_last_default,
    match_progress,
    parse_version_token,
)

BACKEND = "nvm"

_LTS_LABEL_RE = re.compile(r"\((Latest\s+)?LTS:\s*([^)]+)\)", re.IGNORECASE)
_ARCH_RE = re.compile(r"(\d+)-bit")
_WINDOWS_COLUMNS = ("CURRENT", "LTS", "OLD STABLE", "OLD UNSTABLE")

_UNIX_FAILURE_MARKERS = (
    "not found",
    "error",
    "binary download failed",
    "checksums do not match",
    "nvm: install",
)
_UNIX_KEYWORD_PHASES = (
    ("downloading and installing", InstallPhase.RESOLVING),
    ("downloading", InstallPhase.DOWNLOADING),
    ("computing checksum", InstallPhase.EXTRACTING),
    ("checksums matched", InstallPhase.EXTRACTING),
    ("now using node", InstallPhase.LINKING),
    ("creating default alias", InstallPhase.LINKING),
)

_WINDOWS_FAILURE_MARKERS = ("error", "could not", "not available", "failed", "invalid")
_WINDOWS_KEYWORD_PHASES = (
    ("downloading", InstallPhase.DOWNLOADING),
    ("extracting", InstallPhase.EXTRACTING),
    ("installation complete", InstallPhase.LINKING),
    ("installed successfully", InstallPhase.LINKING),
)


def _strip_markers(line: str) -> str:
    """Drop the `->` current marker and trailing `*` from an nvm listing line."""
    body = line
    if body.startswith("->"):
        body = body[2:]
    body = body.strip()
    if body.endswith("*"):
        body = body[:-1].rstrip()
    return body


def _is_alias_line(line: str) -> bool:
    first = line.split()[0]
    return "->" in line and not first.startswith("->") and not first.lstrip("vV")[:1].isdigit()


def parse_alias_target(text: str) -> Optional[NodeVersion]:
    """
    Resolve an alias line such as `default -> 20 (-> v20.11.0)`.

    The last full version on the line wins. Returns None when the alias points
    nowhere resolvable (N/A, partial versions without a resolution).
    """
    found = None
    for line in iter_lines(text):
        if "->" not in line:
            continue
        tail = line.rsplit("->", 1)[-1]
        matches = VERSION_IN_TEXT_RE.findall(tail) or VERSION_IN_TEXT_RE.findall(line)
        if matches:
            found = NodeVersion.parse(matches[-1])
    return found


def parse_unix_list(text: str) -> List[InstalledVersion]:
    """
    Parse `nvm ls`.

    The default comes from the `default ->` alias line when it resolves to an
    installed version; otherwise the `->` current entry is treated as default.
    """
    acc: ListingAccumulator[InstalledVersion] = ListingAccumulator("nvm ls", BACKEND)
    current_index: Optional[int] = None
    default_version: Optional[NodeVersion] = None
    saw_default_alias = False

    for line in iter_lines(text):
        if _is_alias_line(line):
            if line.split()[0] == "default":
                saw_default_alias = True
                target = parse_alias_target(line)
                if target is not None:
                    default_version = target
            continue

        body = _strip_markers(line)
        tokens = body.split()
        if not tokens or tokens[0] in ("system", "N/A"):
            continue
        try:
            version = parse_version_token(tokens[0])
        except ParseError:
            acc.reject(line)
            continue
        if version is None:
            if is_candidate(line):
                acc.reject(line)
            continue

        if line.startswith("->"):
            current_index = len(acc.entries)
        acc.add(InstalledVersion(version=version))

    entries = acc.finish()
    if saw_default_alias:
        for entry in entries:
            entry.is_default = default_version is not None and entry.version == default_version
    elif current_index is not None:
        entries[current_index].is_default = True
    return keep_last_default(entries)


def parse_unix_current_marker(text: str) -> Optional[NodeVersion]:
    """Return the version marked `->` in `nvm ls` output."""
    for line in iter_lines(text):
        if line.startswith("->") and not _is_alias_line(line):
            tokens = _strip_markers(line).split()
            if tokens:
                try:
                    return parse_version_token(tokens[0])
                except ParseError:
                    return None
    return None


def parse_unix_list_remote(text: str) -> List[RemoteVersion]:
    """Parse `nvm ls-remote`; `(LTS: X)` and `(Latest LTS: X)` set the LTS flags."""
    acc: ListingAccumulator[RemoteVersion] = ListingAccumulator("nvm ls-remote", BACKEND)

    for line in iter_lines(text):
        body = _strip_markers(line)
        tokens = body.split()
        if not tokens:
            continue
        try:
            version = parse_version_token(tokens[0])
        except ParseError:
            acc.reject(line)
            continue
        if version is None:
            if is_candidate(line):
                acc.reject(line)
            continue

        label = _LTS_LABEL_RE.search(body)
        acc.add(
            RemoteVersion(
                version=version,
                lts_codename=label.group(2).strip() if label else None,
                is_lts=label is not None,
                is_latest=bool(label and label.group(1)),
            )
        )

    return acc.finish()


def parse_windows_list(text: str) -> List[InstalledVersion]:
    """
    Parse nvm-windows `nvm list`.

    A `*` token anywhere on the line marks the default (in-use) version.
    "No installations recognized." is an empty listing.
    """
    acc: ListingAccumulator[InstalledVersion] = ListingAccumulator("nvm list", BACKEND)

    for line in iter_lines(text):
        tokens = [t for t in line.split() if t != "*"]
        if not tokens:
            continue
        try:
            version = parse_version_token(tokens[0])
        except ParseError:
            acc.reject(line)
            continue
        if version is None:
            if is_candidate(line):
                acc.reject(line)
            continue

        arch = _ARCH_RE.search(line)
        acc.add(
            InstalledVersion(
                version=version,
                is_default="*" in line.split(),
                arch=f"{arch.group(1)}-bit" if arch else None,
            )
        )

    return keep_last_default(acc.finish())


def parse_windows_list_available(text: str) -> List[RemoteVersion]:
    """
    Parse the nvm-windows `nvm list available` table.

    Entries are emitted column by column in table order. LTS column entries are
    flagged LTS and the first CURRENT entry is flagged latest.
    """
    acc: ListingAccumulator[RemoteVersion] = ListingAccumulator("nvm list available", BACKEND)
    columns = list(_WINDOWS_COLUMNS)
    by_column: dict[int, List[RemoteVersion]] = {}

    for line in iter_lines(text):
        if not line.startswith("|"):
            if is_candidate(line) and "http" not in line:
                acc.reject(line)
            continue
        cells = [cell.strip() for cell in line.strip("|").split("|")]
        if any(cell.upper() in _WINDOWS_COLUMNS for cell in cells):
            columns = [cell.upper() for cell in cells]
            continue
        if all(set(cell) <= set("-: ") for cell in cells):
            continue

        for index, cell in enumerate(cells):
            if not cell:
                continue
            try:
                version = parse_version_token(cell)
            except ParseError:
                acc.reject(line)
                continue
            if version is None:
                acc.reject(line)
                continue
            column = columns[index] if index < len(columns) else ""
            by_column.setdefault(index, []).append(
                RemoteVersion(version=version, is_lts=column == "LTS")
            )

    for index in sorted(by_column):
        entries = by_column[index]
        column = columns[index] if index < len(columns) else ""
        if column == "CURRENT" and entries:
            entries[0].is_latest = True
        for entry in entries:
            acc.add(entry)

    return acc.finish()


def parse_unix_progress_line(line: str) -> Optional[InstallProgress]:
    """Map a line of nvm.sh install output to a progress value, or None."""
    return match_progress(line, _UNIX_FAILURE_MARKERS, _UNIX_KEYWORD_PHASES)


def parse_windows_progress_line(line: str) -> Optional[InstallProgress]:
    """Map a line of nvm-windows install output to a progress value, or None."""
    return match_progress(line, _WINDOWS_FAILURE_MARKERS, _WINDOWS_KEYWORD_PHASES)
