# tripplanner/core/config.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — Configuration
-----------------------------------
Central configuration for the trip planner, including:

- app metadata
- API host/port
- filesystem paths (trip documents)
- itinerary / chat limits
- model backends (online OpenRouter, local Ollama, offline templates)
- retry / timeout policy for model calls and store writes
- session registry idle eviction

"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

# This file is: trip_server/tripplanner/core/config.py
APP_DIR: Path = Path(__file__).resolve().parents[1]   # .../trip_server/tripplanner
ROOT_DIR: Path = APP_DIR.parent                       # .../trip_server

DATA_DIR: Path = ROOT_DIR / "data" / "trips"


# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """
    Global configuration for the trip planner server.

    This class is instantiated once at import time as `settings`
    and used everywhere in the codebase. Tests build their own
    instances and pass them in explicitly.
    """

    model_config = SettingsConfigDict(
        env_file=ROOT_DIR / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- App / server basics -----------------------------------------------
    app_name: str = "Trip Planner Server"
    environment: Literal["development", "production", "test"] = "development"
    debug: bool = True

    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # --- Filesystem paths ---------------------------------------------------
    # One JSON document per trip id lives in this directory.
    data_dir: Path = DATA_DIR

    # --- Trip limits --------------------------------------------------------
    max_trip_days: int = 14
    max_destination_chars: int = 120
    max_message_chars: int = 1000
    max_reply_chars: int = 4000

    # Context budget for chat replies (oldest whole turns dropped first)
    max_context_turns: int = 20
    max_context_chars: int = 12000

    # --- Retry policy -------------------------------------------------------
    model_max_attempts: int = 3
    model_attempt_timeout_s: float = 45.0
    model_backoff_base_s: float = 0.5
    model_backoff_max_s: float = 8.0

    # Timeout (seconds) for a single Trip Store read or write
    store_timeout_s: float = 5.0

    # --- Session registry ---------------------------------------------------
    session_idle_timeout_s: float = 900.0
    session_sweep_interval_s: float = 60.0

    # --- Backend toggles ----------------------------------------------------
    online_enabled: bool = True     # OpenRouter chat completions
    local_enabled: bool = True      # Ollama HTTP
    template_enabled: bool = False  # Offline templates (dev only)

    # --- Online backend (OpenRouter) ---------------------------------------
    online_base_url: str = "https://openrouter.ai/api/v1/chat/completions"

    # ENV: ONLINE_API_KEY=sk-or-v1-...
    online_api_key: str | None = Field(
        default=None,
        description="API key for the online backend (env: ONLINE_API_KEY).",
    )

    # Priority-ordered model list (first → last).
    online_model_candidates: list[str] = [
        "meta-llama/llama-3.3-70b-instruct:free",
        "deepseek/deepseek-chat-v3-0324:free",
    ]

    # Timeout (seconds) for online HTTP calls
    online_timeout_s: float = 40.0

    # --- Local backend (Ollama HTTP) ---------------------------------------
    #
    # Configuration comes from:
    #   LOCAL_OLLAMA_URL   (e.g. http://localhost:11434/api/chat)
    #   LOCAL_OLLAMA_MODEL (e.g. llama3.2:latest)
    #
    local_ollama_url: str | None = Field(
        default=None,
        description=(
            "Ollama chat endpoint, e.g. http://localhost:11434/api/chat "
            "(env: LOCAL_OLLAMA_URL)."
        ),
    )
    local_ollama_model: str | None = Field(
        default=None,
        description="Ollama model name (env: LOCAL_OLLAMA_MODEL).",
    )
    local_timeout_s: float = 60.0
    local_temperature: float = 0.7


# Single global settings instance used by the rest of the app.
settings = Settings()
