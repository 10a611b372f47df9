# tripplanner/providers/online.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — Online Provider (OpenRouter)
--------------------------------------------------
This module is the ONLY place that knows how to talk to OpenRouter.

Responsibilities:
- Build the HTTP request (URL, headers, JSON payload).
- Parse the response and return assistant text.
- Turn every HTTP / JSON / content problem into ModelError.

It is used by providers.client.LLMModelClient, which walks
online_model_candidates in priority order and falls back to the local
backend if every candidate raises ModelError.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from tripplanner.core.config import Settings, settings
from tripplanner.core.errors import ModelError

logger = logging.getLogger(__name__)


def _build_openrouter_payload(
    messages: List[Dict[str, str]],
    model_name: str,
    *,
    json_mode: bool = False,
) -> Dict[str, Any]:
    """
    Build the JSON payload for OpenRouter.

    Parameters
    ----------
    messages:
        List of {"role": "system"|"user"|"assistant", "content": "..."} dicts.
    model_name:
        Any OpenRouter model ID, e.g. "meta-llama/llama-3.3-70b-instruct:free".
    json_mode:
        Ask for a JSON object response (itinerary generation). Models that
        ignore response_format still get the JSON instructions in the prompt.
    """
    payload: Dict[str, Any] = {
        "model": model_name,
        "messages": messages,
    }
    if json_mode:
        payload["response_format"] = {"type": "json_object"}
    return payload


def call_online_model(
    messages: List[Dict[str, str]],
    model_name: str,
    *,
    json_mode: bool = False,
    cfg: Optional[Settings] = None,
    timeout: Optional[float] = None,
) -> str:
    """
    Call an online model via OpenRouter and return the assistant's text.

    `timeout` overrides cfg.online_timeout_s (the caller's remaining budget).

    Raises
    ------
    ModelError
        If the backend is disabled, misconfigured, or the HTTP/JSON fails.
    """
    cfg = cfg or settings

    if not cfg.online_enabled:
        raise ModelError("Online backend is disabled in config.")

    api_key = cfg.online_api_key
    if not api_key:
        raise ModelError("Online backend API key is missing.")

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    payload = _build_openrouter_payload(messages, model_name, json_mode=json_mode)

    try:
        resp = requests.post(
            cfg.online_base_url,
            headers=headers,
            json=payload,
            timeout=timeout if timeout is not None else cfg.online_timeout_s,
        )
    except requests.RequestException as exc:
        raise ModelError(f"Online HTTP error: {exc}") from exc

    if resp.status_code != 200:
        text_preview = resp.text[:200].replace("\n", " ")
        raise ModelError(f"Online HTTP {resp.status_code}: {text_preview}")

    try:
        data = resp.json()
    except ValueError as exc:
        raise ModelError("Online backend returned non-JSON response.") from exc

    try:
        # OpenAI/OpenRouter-style: choices[0].message.content
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ModelError(
            "Online response JSON missing choices[0].message.content"
        ) from exc

    if not isinstance(content, str) or not content.strip():
        raise ModelError("Online backend returned empty content.")

    return content.strip()
