"""
Conversation Context Store

Keeps the last few turns of each session so follow-up queries can refine
earlier ones. History is a bounded FIFO per session, and idle sessions are
dropped wholesale after a TTL.
"""

import asyncio
import logging
import time
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Optional, Tuple

from ..common.config import ContextConfig
from ..common.schemas import ConversationTurn

logger = logging.getLogger("discovery.retriever.context_store")


@dataclass
class _Session:
    turns: Deque[ConversationTurn]
    last_active: float
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class ConversationContextStore:
    """
    Per-session turn history.

    Sessions expire when nothing has been appended for ``idle_ttl`` seconds.
    Expiry is checked lazily on access; purge_expired() sweeps everything.
    Callers that read, search and append within one turn should hold
    ``session(session_id)`` so turns of the same session never interleave.
    """

    def __init__(
        self,
        window_size: int = 5,
        idle_ttl: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if window_size <= 0:
            raise ValueError(f"window_size must be positive, got {window_size}")
        if idle_ttl <= 0:
            raise ValueError(f"idle_ttl must be positive, got {idle_ttl}")
        self.window_size = window_size
        self.idle_ttl = idle_ttl
        self._clock = clock
        self._sessions: Dict[str, _Session] = {}

    @classmethod
    def from_config(
        cls, config: ContextConfig, clock: Optional[Callable[[], float]] = None
    ) -> "ConversationContextStore":
        return cls(
            window_size=config.window_size,
            idle_ttl=config.idle_ttl,
            clock=clock or time.monotonic,
        )

    def get(self, session_id: str) -> Tuple[ConversationTurn, ...]:
        """Recent turns for the session, oldest first. Empty if unknown or expired."""
        entry = self._live(session_id)
        if entry is None:
            return ()
        return tuple(entry.turns)

    def append(self, session_id: str, turn: ConversationTurn) -> None:
        """Record a completed turn. The oldest turn is evicted past the window."""
        self.purge_expired()
        now = self._clock()
        entry = self._sessions.get(session_id)
        if entry is None:
            entry = _Session(turns=deque(maxlen=self.window_size), last_active=now)
            self._sessions[session_id] = entry
        entry.turns.append(turn)
        entry.last_active = now

    @asynccontextmanager
    async def session(self, session_id: str):
        """Hold the session's lock for the duration of one turn."""
        self.purge_expired()
        entry = self._live(session_id)
        if entry is None:
            entry = _Session(turns=deque(maxlen=self.window_size), last_active=self._clock())
            self._sessions[session_id] = entry
        async with entry.lock:
            yield

    def purge_expired(self) -> int:
        """Drop every idle session. Returns how many were removed."""
        now = self._clock()
        expired = [sid for sid, entry in self._sessions.items() if self._is_expired(entry, now)]
        removed = 0
        for session_id in expired:
            if self._expire(session_id, now):
                removed += 1
        if removed:
            logger.debug("Purged %d idle sessions", removed)
        return removed

    def active_session_count(self) -> int:
        now = self._clock()
        return sum(1 for entry in self._sessions.values() if not self._is_expired(entry, now))

    def clear(self) -> None:
        self._sessions.clear()

    def _is_expired(self, entry: _Session, now: float) -> bool:
        return now - entry.last_active >= self.idle_ttl

    def _live(self, session_id: str) -> Optional[_Session]:
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        now = self._clock()
        if self._is_expired(entry, now) and self._expire(session_id, now):
            return None
        return entry

    def _expire(self, session_id: str, now: float) -> bool:
        """Forget an idle session. True if the entry itself was removed."""
        entry = self._sessions[session_id]
        if entry.lock.locked():
            # a turn is in flight; keep its lock, drop the stale history
            entry.turns.clear()
            entry.last_active = now
            return False
        del self._sessions[session_id]
        return True
