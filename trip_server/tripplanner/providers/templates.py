# tripplanner/providers/templates.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — Offline template backend
----------------------------------------------
A *fully offline*, deterministic backend for local development and demos.

Design goals:
- NEVER depends on network or models.
- Produces output in exactly the format the real models are asked for,
  so it goes through the same parsing path.
- Disabled by default (settings.template_enabled); when enabled it is
  the last backend in the chain.
"""

from __future__ import annotations

import json
import logging

logger = logging.getLogger(__name__)

_DAY_THEMES = [
    ("Arrival and first impressions", ["Check in and drop bags", "Walk the old town", "Dinner near the hotel"]),
    ("Landmarks", ["Visit the best-known landmark early", "Lunch at a local market", "Museum in the afternoon"]),
    ("Neighbourhoods", ["Explore a residential district", "Coffee stop", "Sunset viewpoint"]),
    ("Day trip", ["Morning train out of the city", "Guided tour", "Return for a late dinner"]),
    ("Food and culture", ["Cooking class or food tour", "Gallery visit", "Live music or theatre"]),
    ("Slow day", ["Late breakfast", "Park or waterfront walk", "Souvenir shopping"]),
]


def template_itinerary(destination: str, duration_days: int) -> str:
    """Return an itinerary JSON document for `duration_days` days."""
    days = []
    for n in range(1, duration_days + 1):
        if n == duration_days and duration_days > 1:
            title, activities = "Departure", ["Pack and check out", "Last stroll", "Head to the station or airport"]
        else:
            title, activities = _DAY_THEMES[(n - 1) % len(_DAY_THEMES)]
        days.append(
            {
                "day": n,
                "summary": f"{title} in {destination}",
                "activities": list(activities),
            }
        )
    return json.dumps({"days": days}, ensure_ascii=False)


def template_reply(destination: str, message: str) -> str:
    """Return a short, safe reply to a chat message."""
    text = (message or "").strip().lower()

    if "pack" in text:
        return (
            f"For {destination}, pack comfortable walking shoes, a light layer "
            "for the evenings, a reusable water bottle and a power adapter."
        )
    if "weather" in text:
        return (
            f"I can't check live weather for {destination} right now. "
            "Look at a forecast a few days before you leave."
        )
    if "budget" in text or "cost" in text:
        return (
            "Public transport and markets keep costs down. "
            "Book the bigger attractions ahead to avoid surprises."
        )
    return (
        f"Good question about your {destination} trip. "
        "The itinerary above is a starting point; ask me about any day."
    )
