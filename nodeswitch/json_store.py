"""JSON file helpers with atomic writes."""

import json
import shutil
from pathlib import Path
from typing import Any

from nodeswitch.exceptions import IoError
from nodeswitch.logging_config import get_logger

logger = get_logger(__name__)


def read_json(file_path: Path, default: Any = None) -> Any:
    """
    Read a JSON file.

    Args:
        file_path: Path to JSON file
        default: Returned when the file is missing or unreadable

    Returns:
        Parsed JSON data or default value
    """
    if not file_path.exists():
        return default

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
        logger.warning(f"Error reading {file_path}: {e}")
        return default


def write_json(file_path: Path, data: Any) -> None:
    """
    Write a JSON file atomically (write to temp file, then rename).

    Raises:
        IoError: If the file could not be written
    """
    file_path.parent.mkdir(parents=True, exist_ok=True)
    temp_file = file_path.with_suffix(".tmp")
    try:
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        # Atomic rename (overwrites existing file)
        shutil.move(str(temp_file), str(file_path))
    except OSError as e:
        temp_file.unlink(missing_ok=True)
        raise IoError(f"Error writing {file_path}: {e}") from e
    logger.debug(f"Wrote {file_path}")
