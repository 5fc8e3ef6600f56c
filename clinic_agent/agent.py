"""LangGraph dialogue orchestrator for the clinic chat receptionist.

Architecture:
  Every chat request carries the full history, so a turn is a single,
  stateless run of a small StateGraph (compiled once, no checkpointer):

    1. **generate**: system prompt + history go through the
                      :class:`ModelGateway` failover loop; the reply is
                      split into visible text and an optional booking intent
    2. **book**    : resolve the service, normalise the time, write the
                      appointment, replace the reply with a confirmation or
                      a failure message
    3. **decline** : an intent arrived but no appointment store is
                      configured; reply with a "please call us" apology

  Routing:
    generate → (no intent?)           → END
    generate → (intent, store?)       → book    → END
    generate → (intent, no store?)    → decline → END

  The latest user turn and the final reply are handed to the conversation
  logger without waiting for the write.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from langchain_core.messages import AIMessage, AnyMessage, HumanMessage, SystemMessage
from langgraph.graph import END, StateGraph
from typing_extensions import TypedDict

from clinic_agent import config
from clinic_agent.models import (
    BookingIntent,
    ConversationTurn,
    ResolvedBooking,
    Role,
)
from clinic_agent.prompts import (
    BOOKING_CONFIRMED_REPLY,
    BOOKING_FAILED_REPLY,
    DEGRADED_REPLY,
    NO_BOOKING_BACKEND_REPLY,
    get_system_prompt,
)
from clinic_agent.services.chat_log import ConversationLogger
from clinic_agent.services.model_gateway import (
    ModelGateway,
    Provider,
    ProvidersExhaustedError,
    build_providers,
)
from clinic_agent.services.supabase_client import SupabaseClient
from clinic_agent.tools.actions import extract_action
from clinic_agent.tools.booking import AppointmentStore, BookingExecutor
from clinic_agent.tools.service_resolver import ServiceCatalog, ServiceResolver
from clinic_agent.tools.time_normalizer import normalize_time

logger = logging.getLogger(__name__)

__all__ = [
    "AgentConfig",
    "ClinicAgent",
    "ConfigurationError",
    "InvalidConversationError",
    "ProvidersExhaustedError",
    "create_clinic_agent",
]


class InvalidConversationError(ValueError):
    """The request carried no user-authored message."""


class ConfigurationError(RuntimeError):
    """The deployment has no model provider credentials."""


# ── Configuration value object ───────────────────────────────────────


@dataclass(frozen=True)
class AgentConfig:
    """Everything the orchestrator depends on, passed in explicitly.

    ``appointment_store`` is the write collaborator; without it the agent
    still chats but cannot book.  ``service_catalog`` and ``chat_log`` are
    optional as well.
    """

    providers: Sequence[Provider] = field(default_factory=tuple)
    appointment_store: AppointmentStore | None = None
    service_catalog: ServiceCatalog | None = None
    chat_log: ConversationLogger | None = None
    clinic_name: str = config.CLINIC_NAME
    clinic_phone: str = config.CLINIC_PHONE
    utc_offset: str = config.CLINIC_UTC_OFFSET
    max_history_turns: int = config.MAX_HISTORY_TURNS


# ── State schema ─────────────────────────────────────────────────────


class TurnState(TypedDict, total=False):
    """State for one turn.

    ``booking_status`` is one of ``none``, ``degraded``, ``created``,
    ``failed`` or ``no_backend`` and only feeds the chat-log metadata.
    """

    prompt: list[AnyMessage]
    reply: str
    provider_id: str | None
    intent: BookingIntent | None
    booking_status: str


# ── Nodes ────────────────────────────────────────────────────────────


def _make_generate_node(gateway: ModelGateway, clinic_phone: str):
    def generate_node(state: TurnState) -> dict:
        try:
            completion = gateway.complete(state["prompt"])
        except ProvidersExhaustedError as exc:
            if not exc.rate_limited:
                raise
            logger.warning("Providers rate limited, sending degraded reply")
            return {
                "reply": DEGRADED_REPLY.format(clinic_phone=clinic_phone),
                "provider_id": None,
                "intent": None,
                "booking_status": "degraded",
            }

        text, intent = extract_action(completion.content)
        if intent is not None:
            logger.info("Model %s emitted a create_appointment action", completion.provider_id)
        return {
            "reply": text,
            "provider_id": completion.provider_id,
            "intent": intent,
            "booking_status": "none",
        }

    return generate_node


def _make_book_node(resolver: ServiceResolver, executor: BookingExecutor, clinic_phone: str):
    def book_node(state: TurnState) -> dict:
        intent = state["intent"]
        service = resolver.resolve(intent.service_name)
        booking = ResolvedBooking(
            patient_name=intent.patient_name,
            service_name=service.name if service else intent.service_name,
            service_id=service.id if service else None,
            date=intent.date,
            time=normalize_time(intent.time),
            phone=intent.phone,
            provenance=state.get("provider_id") or "unknown model",
        )

        outcome = executor.execute(booking)
        if outcome.success:
            reply = BOOKING_CONFIRMED_REPLY.format(
                patient_name=booking.patient_name,
                service_name=booking.service_name,
                date=booking.date,
                time=booking.time,
                phone=booking.phone,
            )
            return {"reply": reply, "booking_status": "created"}

        reply = BOOKING_FAILED_REPLY.format(error=outcome.error, clinic_phone=clinic_phone)
        return {"reply": reply, "booking_status": "failed"}

    return book_node


def _make_decline_node(clinic_phone: str):
    def decline_node(state: TurnState) -> dict:
        logger.warning("Booking action received but no appointment store is configured")
        return {
            "reply": NO_BOOKING_BACKEND_REPLY.format(clinic_phone=clinic_phone),
            "booking_status": "no_backend",
        }

    return decline_node


def _make_action_router(can_book: bool):
    def route_after_generate(state: TurnState) -> str:
        if state.get("intent") is None:
            return END
        return "book" if can_book else "decline"

    return route_after_generate


# ── Orchestrator ─────────────────────────────────────────────────────


def to_langchain_messages(history: Sequence[ConversationTurn]) -> list[AnyMessage]:
    return [
        HumanMessage(content=turn.content) if turn.role is Role.USER else AIMessage(content=turn.content)
        for turn in history
    ]


class ClinicAgent:
    """Answers one chat turn at a time.  Safe to share between threads."""

    def __init__(self, agent_config: AgentConfig):
        self._config = agent_config
        self._gateway = ModelGateway(agent_config.providers)
        self._resolver = ServiceResolver(agent_config.service_catalog)
        self._executor = (
            BookingExecutor(agent_config.appointment_store, agent_config.utc_offset)
            if agent_config.appointment_store is not None
            else None
        )
        self._graph = self._build_graph()

    @property
    def config(self) -> AgentConfig:
        return self._config

    def _build_graph(self):
        graph = StateGraph(TurnState)

        graph.add_node("generate", _make_generate_node(self._gateway, self._config.clinic_phone))
        graph.add_node("decline", _make_decline_node(self._config.clinic_phone))
        if self._executor is not None:
            graph.add_node(
                "book",
                _make_book_node(self._resolver, self._executor, self._config.clinic_phone),
            )

        graph.set_entry_point("generate")
        targets = {END: END, "decline": "decline"}
        if self._executor is not None:
            targets["book"] = "book"
            graph.add_edge("book", END)
        graph.add_conditional_edges(
            "generate", _make_action_router(self._executor is not None), targets,
        )
        graph.add_edge("decline", END)

        compiled = graph.compile()
        logger.debug(
            "Clinic agent compiled: providers: %d, booking: %s",
            len(self._config.providers), "enabled" if self._executor else "disabled",
        )
        return compiled

    def _emit(
        self,
        turn: ConversationTurn,
        user_id: str | None,
        session_id: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        chat_log = self._config.chat_log
        if chat_log is None:
            return
        try:
            chat_log.emit(turn, user_id=user_id, session_id=session_id, metadata=metadata)
        except Exception as exc:
            logger.warning("Could not queue chat log entry: %s", exc)

    def reply(
        self,
        history: Sequence[ConversationTurn],
        *,
        user_id: str | None = None,
        session_id: str | None = None,
    ) -> str:
        """Produce the assistant reply for *history* (oldest turn first).

        Only the last ``max_history_turns`` turns are sent to the model;
        older ones are dropped, never rejected.

        Raises:
            InvalidConversationError: no user message in *history*.
            ConfigurationError: no model provider is configured.
            ProvidersExhaustedError: every provider failed and none of them
                was rate limited.
        """
        latest_user = next(
            (t for t in reversed(history) if t.role is Role.USER and t.content.strip()),
            None,
        )
        if latest_user is None:
            raise InvalidConversationError("The conversation has no user message.")
        if not self._config.providers:
            raise ConfigurationError("No model provider is configured.")

        self._emit(latest_user, user_id, session_id)

        system = SystemMessage(
            content=get_system_prompt(self._config.clinic_name, self._config.clinic_phone)
        )
        recent = list(history)[-self._config.max_history_turns :]
        result = self._graph.invoke({"prompt": [system, *to_langchain_messages(recent)]})

        reply = result["reply"]
        intent = result.get("intent")
        self._emit(
            ConversationTurn(role=Role.ASSISTANT, content=reply),
            user_id,
            session_id,
            metadata={
                "provider": result.get("provider_id"),
                "action": intent.kind if intent is not None else None,
                "booking_status": result.get("booking_status", "none"),
            },
        )
        return reply


# ── Factory ──────────────────────────────────────────────────────────


def create_clinic_agent(store: SupabaseClient | None = None) -> ClinicAgent:
    """Build the agent from environment configuration.

    *store* doubles as appointment store, service catalog and chat-log
    backend.  Passing ``None`` yields a chat-only agent.
    """
    agent_config = AgentConfig(
        providers=build_providers(),
        appointment_store=store,
        service_catalog=store,
        chat_log=ConversationLogger(store) if store is not None else None,
    )
    if not agent_config.providers:
        logger.warning("No model provider credentials found; /api/chat will return 500")
    return ClinicAgent(agent_config)
