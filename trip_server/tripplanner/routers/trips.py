# tripplanner/routers/trips.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — /trips router
-----------------------------------
HTTP boundary for the three trip commands plus the transcript view.

Flow:
  POST /trips                    (CreateTripRequest JSON)
    -> SessionRegistry.create_trip -> TripCoordinator.create
       - validates destination / days
       - persists a PENDING trip, generates the itinerary (with retries)
       - persists READY or FAILED
    -> 201 Trip JSON (the trip id is the handle for later retrieval)

  GET  /trips/{trip_id}           -> Trip JSON
  POST /trips/{trip_id}/chat      (ChatMessageRequest JSON) -> Trip JSON
  GET  /trips/{trip_id}/messages  -> transcript only

Taxonomy errors (TripError) are turned into JSON responses by the
exception handler registered in main.py.
"""

from __future__ import annotations

import logging
from typing import Awaitable, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Request

from tripplanner.core.errors import TripError
from tripplanner.models.trip import Trip
from tripplanner.models.trip_request import (
    ChatMessageRequest,
    CreateTripRequest,
    TranscriptResponse,
)
from tripplanner.runtime_state import SessionRegistry

router = APIRouter(prefix="/trips", tags=["trips"])
logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_registry(request: Request) -> SessionRegistry:
    """The registry lives on app.state so tests can inject their own."""
    return request.app.state.registry


async def _guarded(request: Request, label: str, call: Awaitable[T]) -> T:
    try:
        return await call
    except TripError:
        raise
    except Exception as exc:  # pragma: no cover - defensive guard
        # In development, we want the full stack trace to see the bug.
        logger.exception("Unhandled exception in %s", label)
        if request.app.state.settings.debug:
            raise

        # In production we hide internal details from the client.
        raise HTTPException(
            status_code=500,
            detail=f"Internal server error in {label}.",
        ) from exc


@router.post("", response_model=Trip, status_code=201)
async def create_trip_endpoint(
    body: CreateTripRequest,
    request: Request,
    registry: SessionRegistry = Depends(get_registry),
) -> Trip:
    logger.info(
        "[/trips] create destination=%r days=%s trip_id=%s",
        body.destination,
        body.days,
        body.trip_id,
    )
    trip = await _guarded(
        request,
        "POST /trips",
        registry.create_trip(body.destination, body.days, trip_id=body.trip_id),
    )
    logger.info("[/trips] trip=%s status=%s", trip.id, trip.status.value)
    return trip


@router.get("/{trip_id}", response_model=Trip)
async def get_trip_endpoint(
    trip_id: str,
    request: Request,
    registry: SessionRegistry = Depends(get_registry),
) -> Trip:
    return await _guarded(request, "GET /trips/{id}", registry.get_trip(trip_id))


@router.post("/{trip_id}/chat", response_model=Trip)
async def chat_endpoint(
    trip_id: str,
    body: ChatMessageRequest,
    request: Request,
    registry: SessionRegistry = Depends(get_registry),
) -> Trip:
    logger.info("[/trips/chat] trip=%s message (%d chars)", trip_id, len(body.message))
    logger.debug("[/trips/chat] trip=%s text=%r", trip_id, body.message)
    trip = await _guarded(
        request,
        "POST /trips/{id}/chat",
        registry.send_chat_message(trip_id, body.message),
    )
    last = trip.transcript[-1] if trip.transcript else None
    if last is not None and last.is_error:
        logger.warning("[/trips/chat] trip=%s reply failed (%s)", trip_id, last.error)
    return trip


@router.get("/{trip_id}/messages", response_model=TranscriptResponse)
async def messages_endpoint(
    trip_id: str,
    request: Request,
    registry: SessionRegistry = Depends(get_registry),
) -> TranscriptResponse:
    messages = await _guarded(request, "GET /trips/{id}/messages", registry.get_messages(trip_id))
    return TranscriptResponse(trip_id=trip_id, messages=messages)
