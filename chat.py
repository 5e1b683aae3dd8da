"""Session-scoped conversation memory for the chat endpoint."""

from __future__ import annotations

import logging
import os
import threading
from collections import OrderedDict

from llm_client import SYSTEM_MESSAGE

CHAT_MAX_TURNS = int(os.getenv("CHAT_MAX_TURNS", "40"))
CHAT_MAX_SESSIONS = int(os.getenv("CHAT_MAX_SESSIONS", "1000"))

LOGGER = logging.getLogger(__name__)


class ConversationStore:
    """In-memory conversations keyed by session id.

    Each conversation starts with the system instruction turn exactly once.
    Only the most recent ``max_turns`` turns after it are kept, and only the
    ``max_sessions`` most recently used sessions are remembered.
    """

    def __init__(self, max_turns: int = CHAT_MAX_TURNS, max_sessions: int = CHAT_MAX_SESSIONS) -> None:
        self.max_turns = max_turns
        self.max_sessions = max_sessions
        self._conversations: OrderedDict[str, list[dict[str, str]]] = OrderedDict()
        self._lock = threading.Lock()

    def extend(self, session_id: str, messages: list[dict[str, str]]) -> list[dict[str, str]]:
        """Append incoming turns and return the history to send to the model."""
        with self._lock:
            conversation = self._conversations.get(session_id)
            if conversation is None:
                conversation = [dict(SYSTEM_MESSAGE)]
                LOGGER.info("Started conversation for session=%s", session_id)
            self._store(session_id, conversation + [dict(m) for m in messages])
            return list(self._conversations[session_id])

    def record_reply(self, session_id: str, content: str) -> None:
        with self._lock:
            conversation = self._conversations.get(session_id) or [dict(SYSTEM_MESSAGE)]
            self._store(session_id, conversation + [{"role": "assistant", "content": content}])

    def _store(self, session_id: str, conversation: list[dict[str, str]]) -> None:
        self._conversations[session_id] = self._trim(conversation)
        self._conversations.move_to_end(session_id)
        while len(self._conversations) > max(self.max_sessions, 1):
            evicted, _ = self._conversations.popitem(last=False)
            LOGGER.info("Evicted least recently used conversation session=%s", evicted)

    def _trim(self, conversation: list[dict[str, str]]) -> list[dict[str, str]]:
        system, turns = conversation[0], conversation[1:]
        if len(turns) > self.max_turns:
            turns = turns[-self.max_turns:] if self.max_turns > 0 else []
        return [system] + turns
