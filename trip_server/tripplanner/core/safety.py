# tripplanner/core/safety.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — Safety helpers
------------------------------------
Central place for:
- Cleaning / normalizing user text (destination, chat messages) before it
  reaches the state machine or the model.
- Clamping model reply text before it goes into the transcript.

These functions are *pure* (no network, no I/O) so they are easy to test.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class SanitizedTextResult:
    """
    Result of sanitize_user_text().

    Attributes
    ----------
    original:
        Original raw text from the client (may be None -> "").
    sanitized:
        Cleaned version used by the state machine + model.
    too_long:
        True if the cleaned text is longer than the allowed maximum.
        Unlike chat replies, user input is rejected rather than cut.
    too_short:
        True if sanitized text is empty (or effectively empty).
    """
    original: str
    sanitized: str
    too_long: bool
    too_short: bool


# ---------------------------------------------------------------------------
# User text sanitization
# ---------------------------------------------------------------------------

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitize_user_text(
    raw_text: Optional[str],
    max_chars: int,
    *,
    collapse_newlines: bool = True,
) -> SanitizedTextResult:
    """
    Clean up user text before it touches the state machine or the LLM.

    Steps:
    - Convert None -> "" so callers never see None.
    - Remove control characters (non-printable).
    - Collapse whitespace. With collapse_newlines=False, line breaks in
      chat messages are kept and only runs of spaces/tabs are collapsed.
    - Trim leading/trailing whitespace.
    """
    original = raw_text if isinstance(raw_text, str) else ""

    cleaned = _CONTROL_CHARS_RE.sub("", original)

    if collapse_newlines:
        cleaned = " ".join(cleaned.split())
    else:
        lines = [" ".join(line.split()) for line in cleaned.splitlines()]
        cleaned = "\n".join(line for line in lines if line)

    sanitized = cleaned.strip()
    too_short = len(sanitized) == 0
    too_long = len(sanitized) > max_chars

    if too_long:
        logger.debug(
            "sanitize_user_text: text has %d chars (limit=%d)",
            len(sanitized),
            max_chars,
        )

    return SanitizedTextResult(
        original=original,
        sanitized=sanitized,
        too_long=too_long,
        too_short=too_short,
    )


# ---------------------------------------------------------------------------
# Reply text clamping
# ---------------------------------------------------------------------------

def clamp_reply_text(reply_text: str, limit: int) -> str:
    """
    Ensure a model reply is not too long for the transcript / UI.

    Behavior:
    - If limit <= 0: returns an empty string.
    - If reply length <= limit: returns as-is.
    - If too long: cuts to (limit - 3) and appends "..." if possible.
    """
    text = reply_text if isinstance(reply_text, str) else str(reply_text or "")

    if limit <= 0:
        logger.warning("clamp_reply_text: limit <= 0, returning empty string.")
        return ""

    if len(text) <= limit:
        return text

    if limit > 3:
        clamped = text[: limit - 3].rstrip() + "..."
    else:
        clamped = text[:limit]

    logger.debug(
        "clamp_reply_text: truncated reply from %d to %d chars (limit=%d)",
        len(text),
        len(clamped),
        limit,
    )
    return clamped
