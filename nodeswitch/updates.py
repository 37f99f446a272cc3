"""
Update and release information service.

- nodeswitch self-update check against its GitHub releases
- backend (fnm / nvm) update check against the tool's GitHub releases
- Node.js release schedule (schedule.json) and dist metadata (index.json)

Nothing here retries or caches; callers decide how often to ask. Transport
failures and non-success statuses raise NetworkError, undecodable payloads
raise ParseError.
"""

from __future__ import annotations

import platform
import re
import sys
from datetime import date
from typing import Any, Dict, Optional

from packaging.version import InvalidVersion, Version

from nodeswitch.config import ENDPOINTS
from nodeswitch.exceptions import ParseError
from nodeswitch.http_client import AsyncHttpClient
from nodeswitch.logging_config import get_logger
from nodeswitch.models import AppUpdate, BackendUpdate, ReleaseLine, ReleaseSchedule, VersionMeta

logger = get_logger(__name__)

_SHA256_DIGEST_RE = re.compile(r"^sha256:([0-9a-f]{64})$", re.IGNORECASE)
_GITHUB_HEADERS = {"Accept": "application/vnd.github+json"}
_MACHINE_ARCH = {"x86_64": "x64", "amd64": "x64", "arm64": "arm64", "aarch64": "arm64"}


def normalize_version(text: str) -> str:
    """Strip a leading v and pad partial numeric versions ("1.2" -> "1.2.0")."""
    value = text.strip().lstrip("vV")
    parts = value.split(".")
    if all(part.isdigit() for part in parts) and len(parts) < 3:
        parts += ["0"] * (3 - len(parts))
        value = ".".join(parts)
    return value


def is_newer_version(latest: str, current: str) -> bool:
    """
    True if ``latest`` is a newer release than ``current``.

    Versions that cannot be parsed fall back to a plain inequality check.
    """
    latest_norm = normalize_version(latest)
    current_norm = normalize_version(current)
    try:
        return Version(latest_norm) > Version(current_norm)
    except InvalidVersion:
        logger.debug(f"Unparseable version comparing {latest!r} with {current!r}")
        return latest_norm != current_norm


def parse_sha256_digest(digest: Optional[str]) -> Optional[str]:
    """Extract the hex hash from a GitHub asset digest ("sha256:<64 hex>")."""
    if not digest:
        return None
    match = _SHA256_DIGEST_RE.match(digest.strip())
    return match.group(1).lower() if match else None


def platform_asset_suffix() -> Optional[str]:
    """Release asset suffix for the running platform, or None if unsupported."""
    arch = _MACHINE_ARCH.get(platform.machine().lower())
    if arch is None:
        return None
    if sys.platform.startswith("linux"):
        return f"linux-{arch}.zip"
    if sys.platform == "darwin":
        return f"macos-{arch}.zip"
    # Windows builds are published for x64 only
    if sys.platform == "win32" and arch == "x64":
        return "windows-x64.msi"
    return None


def _release_url(repo: str) -> str:
    return f"{ENDPOINTS.GITHUB_API}/repos/{repo}/releases/latest"


async def fetch_latest_release(client: AsyncHttpClient, repo: str) -> Dict[str, Any]:
    """
    Fetch the latest GitHub release of ``repo``.

    Raises:
        NetworkError: Transport failure or non-success status
        ParseError: The payload is not a release object
    """
    data = await client.get_json(_release_url(repo), headers=_GITHUB_HEADERS)
    if not isinstance(data, dict) or not isinstance(data.get("tag_name"), str):
        raise ParseError(f"Unexpected release payload for {repo}")
    return data


async def check_for_app_update(
    client: AsyncHttpClient,
    current_version: str,
    repo: str = ENDPOINTS.APP_REPO,
) -> Optional[AppUpdate]:
    """
    Check whether a newer nodeswitch release exists.

    Returns:
        AppUpdate when the latest release is newer, otherwise None
    """
    release = await fetch_latest_release(client, repo)
    latest = release["tag_name"].lstrip("vV")
    current = current_version.lstrip("vV")

    if not is_newer_version(latest, current):
        logger.info(f"nodeswitch is up to date ({current})")
        return None

    download_url = download_size = download_sha256 = None
    suffix = platform_asset_suffix()
    if suffix:
        expected_name = f"nodeswitch-{latest}-{suffix}"
        for asset in release.get("assets") or []:
            if isinstance(asset, dict) and asset.get("name") == expected_name:
                download_url = asset.get("browser_download_url")
                download_size = asset.get("size")
                download_sha256 = parse_sha256_digest(asset.get("digest"))
                break

    logger.info(f"nodeswitch update available: {current} -> {latest}")
    return AppUpdate(
        current_version=current,
        latest_version=latest,
        release_url=release.get("html_url") or f"https://github.com/{repo}/releases/latest",
        release_notes=release.get("body"),
        download_url=download_url,
        download_size=download_size,
        download_sha256=download_sha256,
    )


async def check_backend_update(
    client: AsyncHttpClient,
    repo: str,
    current_version: str,
) -> Optional[BackendUpdate]:
    """Check a backend tool's GitHub releases for a version newer than the installed one."""
    release = await fetch_latest_release(client, repo)
    latest = release["tag_name"].lstrip("vV")
    current = current_version.lstrip("vV")
    if not is_newer_version(latest, current):
        return None
    return BackendUpdate(
        current_version=current,
        latest_version=latest,
        release_url=release.get("html_url") or f"https://github.com/{repo}/releases/latest",
    )


def _parse_date(value: Any) -> Optional[date]:
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def parse_release_schedule(data: Any) -> ReleaseSchedule:
    """
    Build a ReleaseSchedule from nodejs/Release schedule.json.

    Keys look like "v20". Pre-1.0 lines ("v0.12") and entries without start and
    end dates are skipped.
    """
    if not isinstance(data, dict):
        raise ParseError("Release schedule is not an object")

    schedule = ReleaseSchedule()
    for key, entry in data.items():
        major_text = str(key).lstrip("vV")
        if not major_text.isdigit() or not isinstance(entry, dict):
            continue
        start = _parse_date(entry.get("start"))
        end = _parse_date(entry.get("end"))
        if start is None or end is None:
            logger.debug(f"Skipping schedule entry {key}: missing dates")
            continue
        major = int(major_text)
        schedule.lines[major] = ReleaseLine(
            major=major,
            start=start,
            end=end,
            lts=_parse_date(entry.get("lts")),
            maintenance=_parse_date(entry.get("maintenance")),
            codename=entry.get("codename") or None,
        )
    return schedule


async def fetch_release_schedule(client: AsyncHttpClient) -> ReleaseSchedule:
    data = await client.get_json(ENDPOINTS.NODE_SCHEDULE_URL)
    schedule = parse_release_schedule(data)
    logger.info(f"Fetched release schedule ({len(schedule.lines)} lines)")
    return schedule


def parse_version_metadata(data: Any) -> Dict[str, VersionMeta]:
    """Build a version -> VersionMeta map from nodejs.org/dist/index.json."""
    if not isinstance(data, list):
        raise ParseError("Version index is not a list")

    metadata: Dict[str, VersionMeta] = {}
    for entry in data:
        if not isinstance(entry, dict) or not isinstance(entry.get("version"), str):
            continue
        lts = entry.get("lts")
        metadata[entry["version"]] = VersionMeta(
            date=entry.get("date"),
            security=bool(entry.get("security")),
            npm=entry.get("npm"),
            v8=entry.get("v8"),
            openssl=entry.get("openssl"),
            lts_codename=lts if isinstance(lts, str) else None,
        )
    return metadata


async def fetch_version_metadata(client: AsyncHttpClient) -> Dict[str, VersionMeta]:
    data = await client.get_json(ENDPOINTS.NODE_DIST_INDEX_URL)
    return parse_version_metadata(data)
