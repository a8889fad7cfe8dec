"""
File-system helpers for job run artifacts.

Page images and result snapshots live under
``RUNS_DIR/<YYYY-MM-DD>/<job_id>/`` and are written once.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any


def ensure_parent(path: str | Path) -> None:
    """Create the parent directory of ``path`` if it is missing."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def write_bytes_once(path: str | Path, data: bytes) -> bool:
    """
    Write ``data`` to ``path`` only if the file does not exist yet.

    Uses exclusive-create mode so two workers handling a redelivered job
    cannot overwrite each other's artifact.

    Returns:
      True when the file was written, False when it already existed.
    """
    ensure_parent(path)
    try:
        with open(path, "xb") as f:
            f.write(data)
    except FileExistsError:
        return False
    return True


def write_json(path: str | Path, obj: dict[str, Any]) -> None:
    """Write a JSON mapping using UTF-8 and indentation."""
    ensure_parent(path)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, ensure_ascii=False, indent=2, default=str)


def read_json(path: str | Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)
