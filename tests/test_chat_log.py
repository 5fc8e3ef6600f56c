"""Tests for the background conversation logger."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import MagicMock

from clinic_agent.models import ConversationTurn, Role
from clinic_agent.services.chat_log import ConversationLogger

TURN = ConversationTurn(
    role=Role.USER,
    content="I'd like to book yoga",
    timestamp=datetime(2026, 2, 1, 10, 0, tzinfo=UTC),
)


class TestConversationLogger:
    def test_row_shape(self):
        row = ConversationLogger.to_row(
            TURN, user_id="u1", session_id="s1", metadata={"provider": "A"},
        )
        assert row == {
            "user_id": "u1",
            "session_id": "s1",
            "role": "user",
            "content": "I'd like to book yoga",
            "metadata": {"provider": "A"},
            "created_at": "2026-02-01T10:00:00+00:00",
        }

    def test_emit_writes_in_background(self, fake_store):
        logger_ = ConversationLogger(fake_store)
        future = logger_.emit(TURN, session_id="s1")
        future.result(timeout=5)
        logger_.shutdown()

        assert len(fake_store.chat_logs) == 1
        assert fake_store.chat_logs[0]["session_id"] == "s1"
        assert fake_store.chat_logs[0]["metadata"] == {}

    def test_store_failure_is_swallowed(self):
        store = MagicMock()
        store.append_chat_log.side_effect = RuntimeError("db down")
        logger_ = ConversationLogger(store)

        future = logger_.emit(TURN)
        logger_.shutdown()
        assert isinstance(future.exception(), RuntimeError)

    def test_emit_after_shutdown_returns_none(self, fake_store):
        logger_ = ConversationLogger(fake_store)
        logger_.shutdown()
        assert logger_.emit(TURN) is None
        assert fake_store.chat_logs == []
