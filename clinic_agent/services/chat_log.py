"""Best-effort, non-blocking conversation log.

:meth:`ConversationLogger.emit` hands the write to a small thread pool and
returns immediately.  A failed write is logged locally and dropped; it never
reaches the chat response.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Protocol

from clinic_agent.models import ConversationTurn

logger = logging.getLogger(__name__)


class ChatLogStore(Protocol):
    def append_chat_log(self, row: dict[str, Any]) -> None: ...


def _log_failure(future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.warning("Chat log write failed: %s", exc)


class ConversationLogger:
    def __init__(self, store: ChatLogStore, max_workers: int = 2) -> None:
        self._store = store
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="chat-log")

    @staticmethod
    def to_row(
        turn: ConversationTurn,
        *,
        user_id: str | None,
        session_id: str | None,
        metadata: dict[str, Any] | None,
    ) -> dict[str, Any]:
        return {
            "user_id": user_id,
            "session_id": session_id,
            "role": turn.role.value,
            "content": turn.content,
            "metadata": metadata or {},
            "created_at": turn.timestamp.isoformat(),
        }

    def emit(
        self,
        turn: ConversationTurn,
        *,
        user_id: str | None = None,
        session_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Future | None:
        """Queue *turn* for writing.  Never raises, never blocks on the write."""
        try:
            row = self.to_row(turn, user_id=user_id, session_id=session_id, metadata=metadata)
            future = self._pool.submit(self._store.append_chat_log, row)
        except RuntimeError as exc:
            # Pool already shut down (process exiting).
            logger.warning("Chat log dropped: %s", exc)
            return None
        future.add_done_callback(_log_failure)
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)
