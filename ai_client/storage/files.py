"""
File helpers for state persistence.

Provides private directory creation and atomic JSON writes.
"""

import json
import os
from pathlib import Path
from typing import Any


def ensure_directory(path: Path) -> Path:
    """Create ``path`` (owner-only) if it doesn't exist.

    Args:
        path: Directory to create

    Returns:
        The directory path
    """
    path.mkdir(mode=0o700, parents=True, exist_ok=True)
    return path


def atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON to ``path`` via a temp file and rename.

    The rename is atomic on POSIX, so a crash mid-write leaves either the
    old file or the new one, never a truncated file.

    Args:
        path: Destination file
        data: JSON-serialisable data

    Raises:
        OSError: If the file cannot be written
    """
    temp_path = path.with_name(path.name + ".tmp")
    fd = os.open(str(temp_path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)
        os.replace(temp_path, path)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise


def read_json(path: Path) -> Any:
    """Read and parse a JSON file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        json.JSONDecodeError: If the content is not valid JSON
    """
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)
