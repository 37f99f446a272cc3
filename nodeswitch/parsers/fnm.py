"""
Parsers for fnm command output.

    fnm list           * v20.11.0 default, lts-iron
    fnm list-remote    v20.11.0 (Iron)
    fnm install        Installing Node v20.11.0 (x64)
"""

from __future__ import annotations

import re
from typing import List, Optional

from nodeswitch.exceptions import ParseError
from nodeswitch.models import InstalledVersion, InstallPhase, InstallProgress, RemoteVersion
from nodeswitch.parsers.common import (
    ListingAccumulator,
    clamp_percent,
    is_candidate,
    iter_lines,
    keep_last_default,
    match_progress,
    parse_version_token,
)

BACKEND = "fnm"

_LABEL_RE = re.compile(r"\(([^)]+)\)")
_SIZE_RATIO_RE = re.compile(
    r"(\d+(?:\.\d+)?)\s*([KMG]i?B|B)\s*/\s*(\d+(?:\.\d+)?)\s*([KMG]i?B|B)", re.IGNORECASE
)
_UNITS = {"b": 1, "kb": 1e3, "kib": 1024, "mb": 1e6, "mib": 1024**2, "gb": 1e9, "gib": 1024**3}

_FAILURE_MARKERS = ("error:", "can't find", "cannot find", "not found")
_KEYWORD_PHASES = (
    ("installing node", InstallPhase.RESOLVING),
    ("resolving", InstallPhase.RESOLVING),
    ("downloading", InstallPhase.DOWNLOADING),
    ("extracting", InstallPhase.EXTRACTING),
    ("linking", InstallPhase.LINKING),
    ("using node", InstallPhase.LINKING),
)


def parse_list(text: str) -> List[InstalledVersion]:
    """Parse `fnm list`. The `default` alias marks the default version."""
    acc: ListingAccumulator[InstalledVersion] = ListingAccumulator("fnm list", BACKEND)

    for line in iter_lines(text):
        body = line[1:].strip() if line.startswith("*") else line
        tokens = body.replace(",", " ").split()
        if not tokens or tokens[0] == "system":
            continue
        try:
            version = parse_version_token(tokens[0])
        except ParseError:
            acc.reject(line)
            continue
        if version is None:
            if line.startswith("*") or is_candidate(line):
                acc.reject(line)
            continue

        aliases = tokens[1:]
        codename = None
        for alias in aliases:
            if alias.startswith("lts-") and alias != "lts-latest":
                codename = alias[len("lts-") :].capitalize()
        acc.add(
            InstalledVersion(
                version=version,
                is_default="default" in aliases,
                lts_codename=codename,
            )
        )

    return keep_last_default(acc.finish())


def parse_list_remote(text: str) -> List[RemoteVersion]:
    """Parse `fnm list-remote`; a parenthesized label is the LTS codename."""
    acc: ListingAccumulator[RemoteVersion] = ListingAccumulator("fnm list-remote", BACKEND)

    for line in iter_lines(text):
        tokens = line.split()
        try:
            version = parse_version_token(tokens[0])
        except ParseError:
            acc.reject(line)
            continue
        if version is None:
            if is_candidate(line):
                acc.reject(line)
            continue

        label = _LABEL_RE.search(line)
        codename = label.group(1).strip() if label else None
        acc.add(RemoteVersion(version=version, lts_codename=codename, is_lts=codename is not None))

    return acc.finish()


def _size_ratio_progress(line: str) -> Optional[InstallProgress]:
    match = _SIZE_RATIO_RE.search(line)
    if match is None:
        return None
    done = float(match.group(1)) * _UNITS[match.group(2).lower()]
    total = float(match.group(3)) * _UNITS[match.group(4).lower()]
    if total <= 0:
        return None
    return InstallProgress(
        InstallPhase.DOWNLOADING, percent=clamp_percent(done / total * 100), message=line
    )


def parse_progress_line(line: str) -> Optional[InstallProgress]:
    """Map a line of `fnm install` output to a progress value, or None."""
    return match_progress(line, _FAILURE_MARKERS, _KEYWORD_PHASES, extra=_size_ratio_progress)
