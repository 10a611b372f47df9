# tripplanner/core/prompts.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — Prompt building and output parsing
--------------------------------------------------------
This module turns trip state into chat messages for the model backends,
and model text back into structured data:

- build_itinerary_messages(): system + user prompt asking for JSON days
- build_reply_messages(): itinerary context + truncated transcript
- truncate_transcript(): oldest whole turns dropped first
- parse_itinerary(): last JSON object in the text -> List[DayPlan]

Nothing here does I/O; providers.client wires it to the backends.
"""

from __future__ import annotations

import json
import logging
import re
import textwrap
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from tripplanner.core.errors import ModelError
from tripplanner.models.trip import ChatRole, ChatTurn, DayPlan

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Prompt text
# ---------------------------------------------------------------------------

ITINERARY_SYSTEM_PROMPT = textwrap.dedent(
    """\
    You are a friendly, practical travel planner. You write realistic
    day-by-day itineraries: group nearby sights on the same day, leave
    time for meals and travel, and keep each activity short.

    Answer with ONE JSON object and nothing else, in this shape:
    {
      "days": [
        {"day": 1, "summary": "...", "activities": ["...", "..."]}
      ]
    }
    """
)

REPLY_SYSTEM_PROMPT = textwrap.dedent(
    """\
    You are a friendly travel agent chatting with a traveller about the
    itinerary below. Answer in plain text (no JSON), in a few short
    paragraphs at most. Stay consistent with the itinerary; it cannot be
    regenerated, but you can suggest changes the traveller could make.
    """
)


def build_itinerary_messages(destination: str, duration_days: int) -> List[Dict[str, str]]:
    user_prompt = "\n".join(
        [
            f"DESTINATION: {destination}",
            f"DURATION_DAYS: {duration_days}",
            f"Return exactly {duration_days} days, numbered 1 to {duration_days}.",
        ]
    )
    return [
        {"role": "system", "content": ITINERARY_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def format_itinerary(destination: str, itinerary: Sequence[DayPlan]) -> str:
    """Render the itinerary as compact text for the reply prompt."""
    lines = [f"Trip to {destination}, {len(itinerary)} days:"]
    for day in itinerary:
        lines.append(f"Day {day.day_number}: {day.summary}")
        for activity in day.activities:
            lines.append(f"  - {activity}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Transcript context
# ---------------------------------------------------------------------------


def truncate_transcript(
    transcript: Sequence[ChatTurn],
    *,
    max_turns: int,
    max_chars: int,
) -> List[ChatTurn]:
    """
    Return the newest turns that fit the budget, in original order.

    - Error-marked Agent turns are placeholders, not real replies, so
      they are never sent back to the model.
    - Turns are dropped whole, oldest first; a turn is never split.
    - The newest turn is always kept (it is the question being answered).
    """
    usable = [t for t in transcript if not t.is_error]
    if not usable:
        return []

    kept: List[ChatTurn] = [usable[-1]]
    used_chars = len(usable[-1].text)

    for turn in reversed(usable[:-1]):
        if len(kept) >= max_turns:
            break
        if used_chars + len(turn.text) > max_chars:
            break
        kept.append(turn)
        used_chars += len(turn.text)

    kept.reverse()
    if len(kept) < len(usable):
        logger.debug(
            "truncate_transcript: kept %d of %d turns (%d chars)",
            len(kept),
            len(usable),
            used_chars,
        )
    return kept


def build_reply_messages(
    destination: str,
    itinerary: Sequence[DayPlan],
    transcript: Sequence[ChatTurn],
    *,
    max_turns: int,
    max_chars: int,
) -> List[Dict[str, str]]:
    """
    Messages for a chat reply:
    - system prompt + itinerary text
    - truncated transcript as user/assistant turns (ends with the question)
    """
    system = REPLY_SYSTEM_PROMPT + "\n" + format_itinerary(destination, itinerary)
    messages: List[Dict[str, str]] = [{"role": "system", "content": system}]

    for turn in truncate_transcript(transcript, max_turns=max_turns, max_chars=max_chars):
        role = "user" if turn.role is ChatRole.USER else "assistant"
        messages.append({"role": role, "content": turn.text})
    return messages


# ---------------------------------------------------------------------------
# JSON extraction from model output
# ---------------------------------------------------------------------------

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def _extract_final_json_block(text: str) -> Optional[Dict[str, Any]]:
    """
    Extract the last top-level JSON object from the model's raw text.

    Models sometimes wrap the object in ```json fences or add a sentence
    before/after it; nested objects inside it are fine.
    """
    if not text:
        return None

    cleaned = _FENCE_RE.sub("", text)
    decoder = json.JSONDecoder()
    found: Optional[Dict[str, Any]] = None

    pos = cleaned.find("{")
    while pos != -1:
        try:
            obj, end = decoder.raw_decode(cleaned, pos)
        except json.JSONDecodeError:
            pos = cleaned.find("{", pos + 1)
            continue
        if isinstance(obj, dict):
            found = obj
        pos = cleaned.find("{", end)

    return found


def _coerce_activity(item: Any) -> Optional[str]:
    if isinstance(item, str):
        text = item.strip()
    elif isinstance(item, dict):
        text = str(item.get("name") or item.get("activity") or item.get("description") or "").strip()
    else:
        return None
    return text or None


def parse_itinerary(text: str) -> List[DayPlan]:
    """
    Parse model output into day plans, sorted by day number.

    Raises ModelError if no usable JSON object is found or a day is
    malformed. Length checks against the trip are done by the caller.
    """
    obj = _extract_final_json_block(text)
    if obj is None:
        raise ModelError("No JSON object found in itinerary output.")

    raw_days = obj.get("days")
    if raw_days is None:
        raw_days = obj.get("itinerary")
    if not isinstance(raw_days, list) or not raw_days:
        raise ModelError("Itinerary JSON has no 'days' list.")

    plans: List[DayPlan] = []
    for index, raw in enumerate(raw_days, start=1):
        if not isinstance(raw, dict):
            raise ModelError(f"Itinerary day #{index} is not an object.")

        number = raw.get("day", raw.get("day_number", index))
        summary = str(raw.get("summary") or raw.get("title") or "").strip()
        if not summary:
            raise ModelError(f"Itinerary day #{index} has no summary.")

        raw_activities = raw.get("activities") or []
        if not isinstance(raw_activities, list):
            raw_activities = [raw_activities]
        activities = [a for a in (_coerce_activity(i) for i in raw_activities) if a]

        try:
            plans.append(
                DayPlan(day_number=number, summary=summary, activities=activities)
            )
        except PydanticValidationError as exc:
            raise ModelError(f"Itinerary day #{index} is invalid: {exc}") from exc

    plans.sort(key=lambda p: p.day_number)
    return plans


def clean_reply(text: str) -> str:
    """Strip stray code fences / whitespace from a chat reply."""
    cleaned = text.strip()
    if cleaned.startswith("```") and cleaned.endswith("```"):
        cleaned = cleaned.strip("`").strip()
    if not cleaned:
        raise ModelError("Model returned an empty reply.")
    return cleaned
