# tripplanner/core/types.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — Shared type helpers
-----------------------------------------
Small shared type definitions used across the core:

- BackendLabel    : which backend produced the text
- ModelCallResult : result of a single model call (before parsing)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Literal

# Which backend produced the text
BackendLabel = Literal["online", "local", "template"]


@dataclass
class ModelCallResult:
    """
    Result of a single completed model call, BEFORE parsing.

    Attributes
    ----------
    text:
        Full text returned by the model.
    backend:
        "online" | "local" | "template"
    raw:
        Optional backend metadata (e.g. model name, provider).
    """
    text: str
    backend: BackendLabel
    raw: Dict[str, Any] = field(default_factory=dict)
