# tripplanner/models/trip_request.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — Request payloads
--------------------------------------
Canonical request bodies for the HTTP endpoints:

- CreateTripRequest : POST /trips
- ChatMessageRequest: POST /trips/{trip_id}/chat

Only shape is checked here. Range checks (max days, text length) are
done by the coordinator so every caller gets the same ValidationError.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from tripplanner.models.trip import ChatTurn


class CreateTripRequest(BaseModel):
    """
    Request body for POST /trips.

    Fields
    ------
    destination:
        Free-text destination, e.g. "Kyoto".
    days:
        Trip length in days.
    trip_id:
        Optional client-chosen id. Re-sending the same id returns the
        existing trip instead of generating a new one.
    """

    destination: str = Field(
        ...,
        description="Free-text destination.",
        examples=["Kyoto"],
    )
    days: int = Field(
        ...,
        description="Trip length in days.",
        examples=[3],
    )
    trip_id: Optional[str] = Field(
        default=None,
        description="Optional client-chosen trip id for idempotent retries.",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"destination": "Kyoto", "days": 3},
                {"destination": "Lisbon", "days": 5, "trip_id": "my-lisbon-trip"},
            ]
        }
    }


class ChatMessageRequest(BaseModel):
    """Request body for POST /trips/{trip_id}/chat."""

    message: str = Field(
        ...,
        description="User message about the itinerary.",
        examples=["What should I pack?"],
    )


class TranscriptResponse(BaseModel):
    """Response body for GET /trips/{trip_id}/messages."""

    trip_id: str
    messages: List[ChatTurn] = Field(default_factory=list)
