# tripplanner/utils/file_io.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — file_io utilities
---------------------------------------
Helpers for reading/writing small JSON documents (one per trip).

Goals:
- Use atomic writes (temp file + rename) so a reader never sees a
  half-written trip document.
- Reads are strict: a missing file raises FileNotFoundError and a corrupt
  one raises ValueError, so the store can tell "no trip" from "broken trip".
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)


def read_json(path: Path) -> Dict[str, Any]:
    """
    Read a JSON object from `path`.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    OSError
        If the file exists but cannot be read.
    ValueError
        If the content is not valid JSON or not a JSON object.
    """
    text = path.read_text(encoding="utf-8")

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.warning("read_json: invalid JSON in %s: %s", path, exc)
        raise ValueError(f"invalid JSON in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object in {path}, got {type(data).__name__}")
    return data


def write_json_atomic(path: Path, data: Dict[str, Any]) -> None:
    """
    Write JSON to disk atomically:

    - ensures parent directory exists
    - writes to a uniquely named temporary file next to the target
    - fsyncs and renames the temp file over the final path

    If anything fails, an exception is raised so the caller can decide
    how to respond.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.error("write_json_atomic: failed to create dir %s: %s", path.parent, exc)
        raise

    tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")

    try:
        json_text = json.dumps(data, ensure_ascii=False, indent=2)
        with tmp_path.open("w", encoding="utf-8") as fh:
            fh.write(json_text)
            fh.flush()
            os.fsync(fh.fileno())
        tmp_path.replace(path)
    except OSError as exc:
        logger.error("write_json_atomic: failed to write %s: %s", path, exc)
        tmp_path.unlink(missing_ok=True)
        raise
