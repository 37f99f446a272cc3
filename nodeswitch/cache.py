"""
Disk cache of remote data.

Holds the last fetched remote version list, release schedule and dist metadata
so the CLI can show something before the network answers. Saved through the
debounced write queue.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from nodeswitch.config import PERSISTENCE, data_dir
from nodeswitch.exceptions import ParseError
from nodeswitch.json_store import read_json, write_json
from nodeswitch.logging_config import get_logger
from nodeswitch.models import NodeVersion, ReleaseSchedule, RemoteVersion, VersionMeta
from nodeswitch.updates import parse_release_schedule, parse_version_metadata
from nodeswitch.write_queue import get_writer

logger = get_logger(__name__)

CACHE_FORMAT_VERSION = 1


def get_iso_timestamp() -> str:
    """Current UTC time in ISO 8601 format."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class CacheSnapshot:
    backend: Optional[str] = None
    remote_versions: List[RemoteVersion] = field(default_factory=list)
    release_schedule: Optional[ReleaseSchedule] = None
    version_metadata: Dict[str, VersionMeta] = field(default_factory=dict)
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        schedule = None
        if self.release_schedule is not None:
            schedule = {
                f"v{major}": {
                    "start": line.start.isoformat(),
                    "end": line.end.isoformat(),
                    "lts": line.lts.isoformat() if line.lts else None,
                    "maintenance": line.maintenance.isoformat() if line.maintenance else None,
                    "codename": line.codename,
                }
                for major, line in self.release_schedule.lines.items()
            }
        return {
            "format": CACHE_FORMAT_VERSION,
            "backend": self.backend,
            "updated_at": self.updated_at,
            "remote_versions": [
                {
                    "version": str(entry.version),
                    "lts_codename": entry.lts_codename,
                    "is_lts": entry.is_lts,
                    "is_latest": entry.is_latest,
                }
                for entry in self.remote_versions
            ],
            "release_schedule": schedule,
            "version_metadata": [
                {"version": version, **asdict(meta), "lts": meta.lts_codename or False}
                for version, meta in self.version_metadata.items()
            ],
        }

    @classmethod
    def from_dict(cls, data: Any) -> CacheSnapshot:
        """Decode a cache file. Anything malformed yields an empty snapshot."""
        if not isinstance(data, dict) or data.get("format") != CACHE_FORMAT_VERSION:
            return cls()
        try:
            remote = [
                RemoteVersion(
                    version=NodeVersion.parse(item["version"]),
                    lts_codename=item.get("lts_codename"),
                    is_lts=bool(item.get("is_lts")),
                    is_latest=bool(item.get("is_latest")),
                )
                for item in data.get("remote_versions") or []
            ]
            schedule_data = data.get("release_schedule")
            schedule = parse_release_schedule(schedule_data) if schedule_data else None
            metadata = parse_version_metadata(data.get("version_metadata") or [])
        except (ParseError, KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable cache: {e}")
            return cls()

        return cls(
            backend=data.get("backend"),
            remote_versions=remote,
            release_schedule=schedule,
            version_metadata=metadata,
            updated_at=data.get("updated_at"),
        )


def cache_path() -> Path:
    return data_dir() / PERSISTENCE.CACHE_FILE_NAME


def load_cache(path: Optional[Path] = None) -> CacheSnapshot:
    return CacheSnapshot.from_dict(read_json(path or cache_path()))


def save_cache(snapshot: CacheSnapshot, path: Optional[Path] = None) -> None:
    write_json(path or cache_path(), snapshot.to_dict())


def enqueue_cache_save(snapshot: CacheSnapshot, path: Optional[Path] = None) -> None:
    """Queue a cache save, stamping the snapshot with the current time."""
    target = path or cache_path()
    snapshot.updated_at = get_iso_timestamp()
    writer = get_writer(f"cache:{target}", lambda value: save_cache(value, target))
    writer.push(snapshot)
