"""Shared file helpers for the core modules.

Provides a corruption-tolerant JSON reader (falling back to numbered
backups) and a line reader for the proxy list.
"""

import json
import logging
import os
from typing import Any, List, Optional

logger = logging.getLogger(__name__)


def safe_json_read(
    filepath: str, max_backups: int = 3,
) -> Optional[Any]:
    """Read JSON with fallback to backups if corrupted.

    Tries the primary file first, then checks numbered backup files
    (e.g. ``file.json.backup.1``, ``file.json.backup.2``) in order
    until a valid JSON file is found.

    Args:
        filepath: Path to the primary JSON file.
        max_backups: Maximum number of backup files to check
            (default ``3``).

    Returns:
        Parsed JSON value on success, or ``None`` if all files are
        missing or corrupted.
    """
    paths = [filepath] + [
        f"{filepath}.backup.{i}"
        for i in range(1, max_backups + 1)
    ]
    for path in paths:
        if not os.path.exists(path):
            continue
        try:
            with open(path, "r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, ValueError) as e:
            logger.warning("Could not read JSON from %s: %s", path, e)
            continue
    return None


def read_lines(filepath: str) -> List[str]:
    """Return stripped, non-empty lines of *filepath*.

    Lines starting with ``#`` are treated as comments.  A missing or
    unreadable file yields an empty list.
    """
    try:
        with open(filepath, "r", encoding="utf-8") as fh:
            raw = fh.read()
    except OSError as e:
        logger.error("Error reading file %s: %s", filepath, e)
        return []
    return [
        line.strip() for line in raw.splitlines()
        if line.strip() and not line.strip().startswith("#")
    ]
