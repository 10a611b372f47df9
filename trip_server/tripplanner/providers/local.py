# tripplanner/providers/local.py
# -*- coding: utf-8 -*-
"""

Trip Planner Server — Local Provider (Ollama)

"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from tripplanner.core.config import Settings, settings
from tripplanner.core.errors import ModelError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def call_local_model(
    messages: List[Dict[str, str]],
    *,
    json_mode: bool = False,
    cfg: Optional[Settings] = None,
    timeout: Optional[float] = None,
) -> str:
    """
    Call a local Ollama model via HTTP.

    `timeout` overrides cfg.local_timeout_s (the caller's remaining budget).

    Expected config:
        cfg.local_ollama_url   e.g. "http://localhost:11434/api/chat"
        cfg.local_ollama_model e.g. "llama3.2:latest"

    Raises
    ------
    ModelError
        If the backend is disabled, misconfigured, or the HTTP/JSON fails.
    """
    cfg = cfg or settings

    if not cfg.local_enabled:
        raise ModelError("Local backend is disabled in config.")

    base_url = cfg.local_ollama_url
    model = cfg.local_ollama_model

    if not base_url or not model:
        raise ModelError(
            "Local backend (Ollama) is not configured. "
            "Set LOCAL_OLLAMA_URL and LOCAL_OLLAMA_MODEL in your .env "
            "or disable it."
        )

    # Ollama /api/chat streams by default; stream=false gives one JSON object.
    payload: Dict[str, Any] = {
        "model": model,
        "messages": messages,
        "stream": False,
        "options": {"temperature": cfg.local_temperature},
    }
    if json_mode:
        payload["format"] = "json"

    try:
        resp = requests.post(base_url, json=payload, timeout=timeout if timeout is not None else cfg.local_timeout_s)
    except requests.RequestException as exc:
        raise ModelError(f"Ollama HTTP error: {exc}") from exc

    if resp.status_code != 200:
        text_preview = resp.text[:200].replace("\n", " ")
        raise ModelError(f"Ollama HTTP {resp.status_code}: {text_preview}")

    try:
        data = resp.json()
    except ValueError as exc:
        raise ModelError("Ollama returned non-JSON response.") from exc

    # /api/chat (stream=false):
    #   {"model": "...", "message": {"role": "assistant", "content": "..."}, "done": true}
    if not isinstance(data, dict):
        raise ModelError("Ollama returned an unexpected JSON shape.")

    message = data.get("message") or {}
    content = message.get("content") if isinstance(message, dict) else None

    if not isinstance(content, str) or not content.strip():
        raise ModelError("Ollama returned empty content.")

    return content.strip()
