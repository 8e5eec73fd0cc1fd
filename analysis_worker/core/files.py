"""File helpers shared by the config, version, log and env stores."""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any
from uuid import uuid4

from analysis_worker.core.errors import ValidationError

_SAFE_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def safe_child(base: Path, segment: str) -> Path:
    """Join a single path segment under ``base`` and reject traversal attempts.

    Args:
        base: Directory the result must stay inside.
        segment: One path component, typically an analysis id.

    Returns:
        ``base / segment``.

    Raises:
        ValidationError: If the segment is empty, contains separators or
            resolves outside ``base``.
    """
    value = (segment or "").strip()
    if not value or value in {".", ".."} or not _SAFE_SEGMENT_RE.match(value):
        raise ValidationError(f"Invalid identifier: {segment!r}")
    return base / value


def read_text_exact(path: Path) -> str:
    """Read UTF-8 text with line endings left untouched."""
    with path.open("r", encoding="utf-8", newline="") as handle:
        return handle.read()


def write_text_atomic(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` via a sibling temp file and ``os.replace``.

    Line endings are written as given.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.{uuid4().hex[:8]}.tmp")
    try:
        with tmp_path.open("w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def write_json_atomic(path: Path, payload: Any) -> None:
    write_text_atomic(path, json.dumps(payload, indent=2) + "\n")


def read_json(path: Path) -> Any:
    """Read a JSON document. Raises FileNotFoundError when absent."""
    return json.loads(path.read_text(encoding="utf-8"))
