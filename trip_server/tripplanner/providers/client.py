# tripplanner/providers/client.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — Model Client
----------------------------------
Stateless adapter between the coordinator and the model backends.

    generate_itinerary(destination, duration_days) -> List[DayPlan]
    generate_reply(destination, itinerary, transcript) -> str

Each call walks the backend chain once:

    1) online models (OpenRouter), in online_model_candidates order
    2) local model (Ollama)
    3) offline templates (only if template_enabled)

and raises ModelError if every backend fails or the output cannot be
parsed. Retries, timeouts and trip ids are the coordinator's business;
this module knows nothing about persistence.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from tripplanner.core import prompts
from tripplanner.core.config import Settings, settings
from tripplanner.core.errors import ModelError
from tripplanner.core.safety import clamp_reply_text
from tripplanner.core.state_machine import check_day_plans
from tripplanner.core.types import ModelCallResult
from tripplanner.models.trip import ChatTurn, DayPlan
from tripplanner.providers.local import call_local_model
from tripplanner.providers.online import call_online_model
from tripplanner.providers.templates import template_itinerary, template_reply

logger = logging.getLogger(__name__)


class ModelClient(Protocol):
    async def generate_itinerary(self, destination: str, duration_days: int) -> List[DayPlan]:
        ...

    async def generate_reply(
        self,
        destination: str,
        itinerary: Sequence[DayPlan],
        transcript: Sequence[ChatTurn],
    ) -> str:
        ...


class LLMModelClient:
    """
    ModelClient backed by the configured HTTP backends.

    The backends use blocking `requests`, so each call runs in a worker
    thread and the event loop keeps serving other trips meanwhile.
    """

    def __init__(self, cfg: Optional[Settings] = None, *, attempt_budget_s: Optional[float] = None) -> None:
        self.cfg = cfg or settings
        # Wall-clock budget for one call; matches the retry attempt timeout.
        self.attempt_budget_s = (
            attempt_budget_s if attempt_budget_s is not None else self.cfg.model_attempt_timeout_s
        )

    def _deadline(self) -> float:
        return time.monotonic() + self.attempt_budget_s

    # ------------------------------------------------------------------
    # Backend chain
    # ------------------------------------------------------------------

    def _remaining(self, deadline: float, backend_timeout: float) -> float:
        """Backend HTTP timeout capped by what is left of the attempt."""
        return min(backend_timeout, deadline - time.monotonic())

    def _complete(
        self,
        messages: List[Dict[str, str]],
        *,
        json_mode: bool,
        template: Callable[[], str],
        deadline: float,
    ) -> ModelCallResult:
        """
        Walk the backend chain once.

        Every HTTP call gets at most the time left until `deadline`, so a
        worker thread never outlives the attempt that started it by more
        than one socket timeout.
        """
        cfg = self.cfg
        failures: List[str] = []

        if cfg.online_enabled and cfg.online_api_key:
            model_list = cfg.online_model_candidates or []
            if not model_list:
                logger.warning(
                    "Online backend is enabled and API key is set, but no "
                    "online_model_candidates configured; skipping it."
                )
            for model_name in model_list:
                timeout = self._remaining(deadline, cfg.online_timeout_s)
                if timeout <= 0:
                    failures.append(f"{model_name}: attempt deadline reached")
                    break
                try:
                    text = call_online_model(
                        messages, model_name, json_mode=json_mode, cfg=cfg, timeout=timeout
                    )
                    return ModelCallResult(
                        text=text,
                        backend="online",
                        raw={"provider": "openrouter", "model": model_name},
                    )
                except ModelError as exc:
                    logger.warning("Online model %s failed: %s", model_name, exc)
                    failures.append(f"{model_name}: {exc}")

        if cfg.local_enabled and cfg.local_ollama_url:
            timeout = self._remaining(deadline, cfg.local_timeout_s)
            if timeout <= 0:
                failures.append("ollama: attempt deadline reached")
            else:
                try:
                    text = call_local_model(messages, json_mode=json_mode, cfg=cfg, timeout=timeout)
                    return ModelCallResult(
                        text=text,
                        backend="local",
                        raw={"provider": "ollama", "model": cfg.local_ollama_model},
                    )
                except ModelError as exc:
                    logger.warning("Local model failed: %s", exc)
                    failures.append(f"ollama: {exc}")

        if cfg.template_enabled:
            return ModelCallResult(text=template(), backend="template", raw={})

        if not failures:
            raise ModelError("No model backend is configured.")
        raise ModelError("All model backends failed: " + "; ".join(failures))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_itinerary(self, destination: str, duration_days: int) -> List[DayPlan]:
        messages = prompts.build_itinerary_messages(destination, duration_days)
        result = await asyncio.to_thread(
            self._complete,
            messages,
            json_mode=True,
            template=lambda: template_itinerary(destination, duration_days),
            deadline=self._deadline(),
        )
        logger.info("Itinerary for %r generated by backend=%s %r", destination, result.backend, result.raw)

        plans = prompts.parse_itinerary(result.text)
        check_day_plans(plans, duration_days)
        return plans

    async def generate_reply(
        self,
        destination: str,
        itinerary: Sequence[DayPlan],
        transcript: Sequence[ChatTurn],
    ) -> str:
        messages = prompts.build_reply_messages(
            destination,
            itinerary,
            transcript,
            max_turns=self.cfg.max_context_turns,
            max_chars=self.cfg.max_context_chars,
        )
        question = transcript[-1].text if transcript else ""
        result = await asyncio.to_thread(
            self._complete,
            messages,
            json_mode=False,
            template=lambda: template_reply(destination, question),
            deadline=self._deadline(),
        )
        logger.debug("Reply generated by backend=%s %r", result.backend, result.raw)
        return clamp_reply_text(prompts.clean_reply(result.text), self.cfg.max_reply_chars)
