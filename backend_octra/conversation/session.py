"""
Per-user conversation state for multi-step chat flows (send, import, auto-cycle setup).

A session is an explicit object with an expires_at deadline; every read checks
the deadline, and advance() pushes it out by the registry TTL. Nothing here
talks to the network or the store.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable

from backend_octra.octra_logging import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SEC = 300.0


@dataclass
class ConversationSession:
    user_id: str
    step: str
    data: dict[str, Any] = field(default_factory=dict, repr=False)
    expires_at: float = 0.0

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class SessionRegistry:
    def __init__(
        self,
        ttl_sec: float = DEFAULT_TTL_SEC,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_sec <= 0:
            raise ValueError("ttl_sec must be positive")
        self._ttl = ttl_sec
        self._clock = clock
        self._sessions: dict[str, ConversationSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def open(self, user_id: str, step: str, data: dict[str, Any] | None = None) -> ConversationSession:
        """Start a flow for user_id, replacing any flow already in progress."""
        session = ConversationSession(
            user_id=str(user_id),
            step=step,
            data=dict(data or {}),
            expires_at=self._clock() + self._ttl,
        )
        self._sessions[session.user_id] = session
        return session

    def get(self, user_id: str) -> ConversationSession | None:
        user_id = str(user_id)
        session = self._sessions.get(user_id)
        if session is None:
            return None
        if session.is_expired(self._clock()):
            del self._sessions[user_id]
            logger.debug("conversation_session_expired", user_id=user_id, step=session.step)
            return None
        return session

    def advance(self, user_id: str, step: str, **data: Any) -> ConversationSession:
        session = self.get(user_id)
        if session is None:
            raise KeyError(f"No active session for {user_id}")
        session.step = step
        session.data.update(data)
        session.expires_at = self._clock() + self._ttl
        return session

    def close(self, user_id: str) -> ConversationSession | None:
        return self._sessions.pop(str(user_id), None)

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [uid for uid, s in self._sessions.items() if s.is_expired(now)]
        for uid in expired:
            del self._sessions[uid]
        if expired:
            logger.debug("conversation_sessions_purged", count=len(expired))
        return len(expired)
