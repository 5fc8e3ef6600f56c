"""FastAPI route definitions for the clinic chat agent API."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request

from clinic_agent.agent import (
    ConfigurationError,
    InvalidConversationError,
    ProvidersExhaustedError,
)
from clinic_agent.api.schemas import (
    BookingRequest,
    BookingResponse,
    ChatRequest,
    ChatResponse,
    HealthResponse,
    ServiceOut,
    ServicesResponse,
)
from clinic_agent.config import CLINIC_UTC_OFFSET
from clinic_agent.models import ConversationTurn, Role
from clinic_agent.services.supabase_client import SupabaseAPIError
from clinic_agent.tools.booking import build_form_appointments

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_agent(request: Request):
    """Retrieve the agent built during the FastAPI lifespan (see ``server.py``)."""
    agent = getattr(request.app.state, "agent", None)
    if agent is None:
        raise HTTPException(
            status_code=503,
            detail="The assistant is still starting up. Please try again in a moment.",
        )
    return agent


def _get_store(request: Request):
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(
            status_code=503,
            detail="The clinic database is not configured.",
        )
    return store


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse()


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, http_request: Request):
    """Answer the latest message of a conversation.

    The client sends the whole history on every call; nothing is kept
    server-side between turns.  ``agent.reply()`` blocks on the model
    providers and the database, so it runs in a worker thread.

    Rate-limited providers are not an error here: the agent answers with a
    degraded "call us" message and this route returns 200.
    """
    request_id = getattr(http_request.state, "request_id", "?")

    if not any(m.role == "user" and m.content.strip() for m in request.messages):
        raise HTTPException(status_code=400, detail="Messages are required.")

    agent = _get_agent(http_request)
    history = [ConversationTurn(role=Role(m.role), content=m.content) for m in request.messages]

    try:
        reply = await asyncio.to_thread(
            agent.reply,
            history,
            user_id=request.user_id,
            session_id=request.session_id,
        )
        return ChatResponse(content=reply)

    except InvalidConversationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except ConfigurationError as e:
        logger.error("[%s] Chat unavailable: %s", request_id, e)
        raise HTTPException(
            status_code=500,
            detail="The assistant is not configured. Please contact the clinic.",
        ) from e
    except ProvidersExhaustedError as e:
        logger.error("[%s] %s", request_id, e)
        raise HTTPException(
            status_code=503,
            detail="Failed to generate a response. Please try again later.",
        ) from e
    except Exception as e:
        # Full traceback stays in the server log; the client gets a
        # generic message.
        logger.exception("[%s] Error processing chat request", request_id)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from e


@router.get("/services", response_model=ServicesResponse)
async def list_services(http_request: Request):
    store = _get_store(http_request)
    try:
        services = await asyncio.to_thread(store.list_services)
    except SupabaseAPIError as e:
        logger.error("Failed to fetch services: %s", e)
        raise HTTPException(status_code=500, detail="Failed to fetch services") from e
    return ServicesResponse(services=[ServiceOut(id=s.id, name=s.name) for s in services])


@router.post("/appointments/book", response_model=BookingResponse)
async def book_appointment(request: BookingRequest, http_request: Request):
    """Create the appointment(s) submitted through the website booking form."""
    if not all([request.service_id, request.date, request.time, request.name, request.phone]):
        raise HTTPException(status_code=400, detail="Missing required fields")

    store = _get_store(http_request)

    try:
        records = build_form_appointments(
            service_id=request.service_id,
            date=request.date,
            time=request.time,
            name=request.name,
            phone=request.phone,
            email=request.email,
            recurrence=request.recurrence or "none",
            sessions=request.sessions or 1,
            utc_offset=CLINIC_UTC_OFFSET,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid booking: {e}") from e

    try:
        rows = await asyncio.to_thread(store.create_appointments, records)
    except SupabaseAPIError as e:
        logger.error("Booking error: %s", e)
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to create appointment", "details": str(e)},
        ) from e

    return BookingResponse(count=len(rows), appointments=rows)
