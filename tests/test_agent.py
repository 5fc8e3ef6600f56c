"""Tests for the dialogue orchestrator.

Covers:
  - input and configuration errors
  - the plain "still gathering details" path
  - end-to-end chat booking, with and without an appointment store
  - degraded reply vs. exhaustion error
  - best-effort conversation logging
  - database transport failures absorbed into the reply
"""

from __future__ import annotations

import json
from unittest.mock import patch

import httpx
import pytest

from clinic_agent.agent import (
    AgentConfig,
    ClinicAgent,
    ConfigurationError,
    InvalidConversationError,
    ProvidersExhaustedError,
)
from clinic_agent.models import ConversationTurn, Role
from clinic_agent.prompts import DEGRADED_REPLY, NO_BOOKING_BACKEND_REPLY
from clinic_agent.services.supabase_client import SupabaseClient
from tests.conftest import FakeStore, RateLimitedError, make_provider

PHONE = "+91 11111 22222"

BOOKING_REPLY = (
    "Perfect, I'm booking that for you now.\n\n"
    "```json\n"
    '{"kind": "create_appointment", "patientName": "Asha Rao", '
    '"serviceName": "Hydrotherapy", "date": "2026-02-10", "time": "3pm", '
    '"phone": "9998887776"}\n'
    "```"
)


def _history(*user_and_assistant: str) -> list[ConversationTurn]:
    turns = []
    for i, content in enumerate(user_and_assistant):
        role = Role.USER if i % 2 == 0 else Role.ASSISTANT
        turns.append(ConversationTurn(role=role, content=content))
    return turns


BOOKING_HISTORY = _history(
    "I'd like to book Hydrotherapy",
    "Of course! May I have your name, preferred date and time, and phone number?",
    "Asha Rao, 2026-02-10 at 3pm, phone 9998887776",
)


def _agent(providers, *, store=None, chat_log=None) -> ClinicAgent:
    return ClinicAgent(
        AgentConfig(
            providers=providers,
            appointment_store=store,
            service_catalog=store,
            chat_log=chat_log,
            clinic_phone=PHONE,
            utc_offset="+05:30",
        )
    )


# ── Input / configuration ────────────────────────────────────────────


class TestRejectedTurns:
    def test_empty_history_is_rejected(self):
        provider = make_provider("A", reply="hi")
        with pytest.raises(InvalidConversationError):
            _agent([provider]).reply([])
        provider.model.invoke.assert_not_called()

    def test_history_without_user_content_is_rejected(self):
        provider = make_provider("A", reply="hi")
        history = [
            ConversationTurn(role=Role.ASSISTANT, content="Namaste!"),
            ConversationTurn(role=Role.USER, content="   "),
        ]
        with pytest.raises(InvalidConversationError):
            _agent([provider]).reply(history)
        provider.model.invoke.assert_not_called()

    def test_no_providers_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            _agent([]).reply(_history("Hello"))


# ── Conversation without an action ──────────────────────────────────


class TestGatheringDetails:
    def test_reply_is_returned_verbatim(self, fake_store):
        provider = make_provider("A", reply="Which date would suit you?")
        reply = _agent([provider], store=fake_store).reply(_history("Book yoga please"))
        assert reply == "Which date would suit you?"
        assert fake_store.appointments == []

    def test_system_prompt_is_prepended(self):
        provider = make_provider("A", reply="Hello!")
        _agent([provider]).reply(_history("Hi"))

        sent = provider.model.invoke.call_args[0][0]
        assert sent[0].type == "system"
        assert "create_appointment" in sent[0].content
        assert PHONE in sent[0].content
        assert sent[-1].type == "human"
        assert sent[-1].content == "Hi"

    def test_history_order_is_preserved(self):
        provider = make_provider("A", reply="ok")
        _agent([provider]).reply(_history("one", "two", "three"))
        sent = provider.model.invoke.call_args[0][0]
        assert [m.content for m in sent[1:]] == ["one", "two", "three"]
        assert [m.type for m in sent[1:]] == ["human", "ai", "human"]

    def test_only_recent_turns_reach_the_model(self):
        provider = make_provider("A", reply="ok")
        agent = ClinicAgent(AgentConfig(providers=[provider], max_history_turns=3))
        history = _history(*[f"turn {i}" for i in range(121)])

        agent.reply(history)

        sent = provider.model.invoke.call_args[0][0]
        assert sent[0].type == "system"
        assert [m.content for m in sent[1:]] == ["turn 118", "turn 119", "turn 120"]

    def test_stray_fences_are_stripped(self):
        provider = make_provider("A", reply="Our hours:\n```\nMon-Sat 9-7\n```")
        reply = _agent([provider]).reply(_history("When are you open?"))
        assert "```" not in reply
        assert "Mon-Sat 9-7" in reply


# ── Chat booking ─────────────────────────────────────────────────────


class TestChatBooking:
    def test_end_to_end_booking(self, fake_store):
        provider = make_provider("google/gemini", reply=BOOKING_REPLY)

        reply = _agent([provider], store=fake_store).reply(BOOKING_HISTORY)

        assert len(fake_store.appointments) == 1
        record = fake_store.appointments[0]
        assert record.start_time == "2026-02-10T15:00:00+05:30"
        assert record.end_time == record.start_time
        assert record.status == "confirmed"
        assert record.service_id == "svc-hydro"
        assert record.patient_name == "Asha Rao"
        assert record.patient_phone == "9998887776"
        assert "google/gemini" in record.notes

        assert "Asha Rao" in reply
        assert "Hydrotherapy" in reply
        assert "9998887776" in reply
        assert "15:00" in reply
        assert "```" not in reply
        assert "{" not in reply

    def test_unknown_service_books_with_null_service_id(self):
        store = FakeStore(services=[])
        provider = make_provider("A", reply=BOOKING_REPLY)

        reply = _agent([provider], store=store).reply(BOOKING_HISTORY)

        assert len(store.appointments) == 1
        assert store.appointments[0].service_id is None
        assert "Hydrotherapy" in reply

    def test_no_store_means_no_write_and_apology(self):
        provider = make_provider("A", reply=BOOKING_REPLY)

        reply = _agent([provider], store=None).reply(BOOKING_HISTORY)

        assert reply == NO_BOOKING_BACKEND_REPLY.format(clinic_phone=PHONE)
        assert "```" not in reply

    def test_storage_failure_is_reported_in_reply(self):
        store = FakeStore(fail_with="duplicate key value violates unique constraint")
        provider = make_provider("A", reply=BOOKING_REPLY)

        reply = _agent([provider], store=store).reply(BOOKING_HISTORY)

        assert store.appointments == []
        assert "couldn't complete your booking" in reply
        assert "duplicate key value" in reply
        assert PHONE in reply

    def test_malformed_block_is_not_booked(self, fake_store):
        provider = make_provider("A", reply='Booking now.\n```json\n{"kind": "create_appointment"\n```')

        reply = _agent([provider], store=fake_store).reply(BOOKING_HISTORY)

        assert fake_store.appointments == []
        assert reply == "Booking now."


# ── Provider exhaustion ──────────────────────────────────────────────


class TestExhaustion:
    def test_rate_limit_then_failure_gives_degraded_reply(self):
        a = make_provider("A", error=RateLimitedError("429 Too Many Requests"))
        b = make_provider("B", error=RuntimeError("down"))

        reply = _agent([a, b]).reply(_history("Hello"))

        assert reply == DEGRADED_REPLY.format(clinic_phone=PHONE)

    def test_failure_without_rate_limit_raises(self):
        a = make_provider("A", error=RuntimeError("down"))
        b = make_provider("B", error=ValueError("bad response"))

        with pytest.raises(ProvidersExhaustedError) as exc_info:
            _agent([a, b]).reply(_history("Hello"))
        assert exc_info.value.rate_limited is False

    def test_failover_reaches_second_provider(self, fake_store):
        a = make_provider("A", error=RuntimeError("down"))
        b = make_provider("B", reply=BOOKING_REPLY)

        _agent([a, b], store=fake_store).reply(BOOKING_HISTORY)

        assert "(B)" in fake_store.appointments[0].notes


# ── Conversation logging ─────────────────────────────────────────────


class TestConversationLogging:
    def test_user_turn_and_reply_are_logged(self, chat_log):
        provider = make_provider("A", reply="Namaste!")

        _agent([provider], chat_log=chat_log).reply(
            _history("Hi"), user_id="user-1", session_id="sess-1",
        )

        assert [e["turn"].role for e in chat_log.entries] == [Role.USER, Role.ASSISTANT]
        assert chat_log.entries[0]["turn"].content == "Hi"
        assert chat_log.entries[1]["turn"].content == "Namaste!"
        assert all(e["user_id"] == "user-1" for e in chat_log.entries)
        assert all(e["session_id"] == "sess-1" for e in chat_log.entries)
        assert chat_log.entries[1]["metadata"] == {
            "provider": "A",
            "action": None,
            "booking_status": "none",
        }

    def test_booking_metadata_is_logged(self, fake_store, chat_log):
        provider = make_provider("A", reply=BOOKING_REPLY)

        _agent([provider], store=fake_store, chat_log=chat_log).reply(BOOKING_HISTORY)

        metadata = chat_log.entries[-1]["metadata"]
        assert metadata["action"] == "create_appointment"
        assert metadata["booking_status"] == "created"

    def test_logging_failure_does_not_break_the_turn(self):
        class ExplodingLog:
            def emit(self, *args, **kwargs):
                raise RuntimeError("log store down")

        provider = make_provider("A", reply="Still here!")
        reply = _agent([provider], chat_log=ExplodingLog()).reply(_history("Hi"))
        assert reply == "Still here!"


# ── Database transport failures ──────────────────────────────────────


def _supabase_on(handler) -> SupabaseClient:
    """A real SupabaseClient whose HTTP traffic goes to *handler*."""
    store = SupabaseClient(url="https://example.supabase.co", service_role_key="k")
    store._client = httpx.Client(
        base_url="https://example.supabase.co/rest/v1",
        transport=httpx.MockTransport(handler),
    )
    return store


@pytest.fixture
def no_backoff():
    with (
        patch("clinic_agent.services.supabase_client.time.sleep"),
        patch("clinic_agent.services.supabase_client.metrics"),
    ):
        yield


class TestDatabaseTransportFailures:
    def test_dropped_insert_is_reported_in_reply(self, no_backoff):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json=[{"id": "svc-hydro", "name": "Hydrotherapy"}])
            raise httpx.ReadError("connection reset by peer", request=request)

        provider = make_provider("A", reply=BOOKING_REPLY)
        reply = _agent([provider], store=_supabase_on(handler)).reply(BOOKING_HISTORY)

        assert "couldn't complete your booking" in reply
        assert "connection reset" in reply
        assert PHONE in reply

    def test_catalog_outage_still_books_without_service_id(self, no_backoff):
        inserted = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                raise httpx.RemoteProtocolError("peer closed connection", request=request)
            rows = json.loads(request.content)
            inserted.extend(rows)
            return httpx.Response(201, json=[{"id": "appt-1", **rows[0]}])

        provider = make_provider("A", reply=BOOKING_REPLY)
        reply = _agent([provider], store=_supabase_on(handler)).reply(BOOKING_HISTORY)

        assert len(inserted) == 1
        assert inserted[0]["service_id"] is None
        assert inserted[0]["start_time"] == "2026-02-10T15:00:00+05:30"
        assert "Hydrotherapy" in reply
