"""Pydantic schemas for the FastAPI endpoints.

Request bodies use the camelCase keys the website already sends
(``userId``, ``serviceId`` …); snake_case is accepted too.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Full conversation so far, oldest message first."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage] = Field(default_factory=list)
    user_id: str | None = Field(None, alias="userId", max_length=100)
    session_id: str | None = Field(None, alias="sessionId", max_length=100)


class ChatResponse(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str


class BookingRequest(BaseModel):
    """Submission of the website's booking form.

    Required fields are checked in the route (missing ones answer 400, as
    the website expects) rather than by the schema.
    """

    model_config = ConfigDict(populate_by_name=True)

    service_id: str | None = Field(None, alias="serviceId")
    date: str | None = None
    time: str | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    recurrence: Literal["none", "weekly", "monthly"] | None = None
    sessions: int | None = Field(None, ge=1, le=52)


class BookingResponse(BaseModel):
    success: bool = True
    count: int
    appointments: list[dict]


class ServiceOut(BaseModel):
    id: str
    name: str


class ServicesResponse(BaseModel):
    services: list[ServiceOut]


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = "clinic-chat-agent"
