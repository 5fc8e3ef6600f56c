"""Shared test fixtures for the clinic chat agent test suite."""

from __future__ import annotations

import os
from unittest.mock import MagicMock

import pytest
from langchain_core.messages import AIMessage

from clinic_agent.models import AppointmentRecord, ServiceRef
from clinic_agent.services.model_gateway import Provider
from clinic_agent.services.supabase_client import SupabaseAPIError


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    ``clinic_agent.config`` reads the environment at import time.
    """
    os.environ.setdefault("OPENROUTER_API_KEY", "test-openrouter-key-123")
    os.environ.setdefault("CLINIC_PHONE", "+91 90000 00000")
    os.environ.setdefault("METRICS_ENABLED", "false")


# ── Fakes ────────────────────────────────────────────────────────────


class FakeStore:
    """In-memory stand-in for SupabaseClient."""

    def __init__(self, services: list[ServiceRef] | None = None, fail_with: str | None = None):
        self.services = services or []
        self.fail_with = fail_with
        self.appointments: list[AppointmentRecord] = []
        self.chat_logs: list[dict] = []

    def list_services(self) -> list[ServiceRef]:
        return list(self.services)

    def create_appointments(self, records: list[AppointmentRecord]) -> list[dict]:
        if self.fail_with:
            raise SupabaseAPIError(self.fail_with, status_code=409)
        self.appointments.extend(records)
        return [{"id": f"appt-{i}", **r.to_row()} for i, r in enumerate(records, 1)]

    def create_appointment(self, record: AppointmentRecord) -> dict:
        return self.create_appointments([record])[0]

    def append_chat_log(self, row: dict) -> None:
        self.chat_logs.append(row)


class RecordingChatLog:
    """Synchronous ConversationLogger double that keeps what was emitted."""

    def __init__(self):
        self.entries: list[dict] = []

    def emit(self, turn, *, user_id=None, session_id=None, metadata=None):
        self.entries.append(
            {"turn": turn, "user_id": user_id, "session_id": session_id, "metadata": metadata}
        )


def make_provider(provider_id: str, *, reply: str | None = None, error: Exception | None = None) -> Provider:
    """A provider whose chat model returns *reply* or raises *error*."""
    model = MagicMock()
    if error is not None:
        model.invoke.side_effect = error
    else:
        model.invoke.return_value = AIMessage(content=reply or "")
    return Provider(provider_id=provider_id, model=model)


class RateLimitedError(Exception):
    """Mimics an SDK error carrying HTTP 429."""

    status_code = 429


# ── Fixtures ─────────────────────────────────────────────────────────


CATALOG = [
    ServiceRef(id="svc-yoga", name="Therapeutic Yoga"),
    ServiceRef(id="svc-hydro", name="Hydrotherapy"),
    ServiceRef(id="svc-mud", name="Mud Therapy"),
]


@pytest.fixture
def fake_store():
    return FakeStore(services=list(CATALOG))


@pytest.fixture
def chat_log():
    return RecordingChatLog()


@pytest.fixture
def mock_http_response():
    """Factory fixture for creating mock httpx responses."""

    def _make(data, status_code: int = 200):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = str(data)
        mock.content = b"" if data is None else str(data).encode()
        return mock

    return _make
