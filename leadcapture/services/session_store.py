"""
In-process session store - independent ChatSession instances keyed by session handle.
Lives on app.state; there is no module-level session registry.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from leadcapture.agents.session import ChatSession

logger = logging.getLogger(__name__)


class SessionStore:
    def __init__(self, idle_timeout_minutes: int = 30, max_idle_multiplier: int = 4):
        self._sessions: dict[str, ChatSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self.idle_timeout_minutes = idle_timeout_minutes
        # Idle sessions are reset in place on their next message; only long-abandoned ones are evicted
        self.eviction_minutes = idle_timeout_minutes * max_idle_multiplier

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def create(self, generation_available: bool = True, now: Optional[datetime] = None) -> ChatSession:
        session = ChatSession(now=now, generation_available=generation_available)
        self._sessions[session.session_id] = session
        self._locks[session.session_id] = asyncio.Lock()
        logger.info(
            "Session created (phase=%s, active=%d)", session.phase.value, len(self._sessions),
            extra={"session_id": session.session_id},
        )
        return session

    def get(self, session_id: str) -> Optional[ChatSession]:
        return self._sessions.get(session_id)

    def lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    def discard(self, session_id: str) -> bool:
        self._locks.pop(session_id, None)
        return self._sessions.pop(session_id, None) is not None

    def prune_idle(self, now: Optional[datetime] = None) -> int:
        """Evict sessions abandoned far beyond the idle timeout. Returns the number evicted."""
        now = now or datetime.now(timezone.utc)
        stale = [
            sid for sid, session in self._sessions.items()
            if session.is_idle(now, self.eviction_minutes)
            and not self._locks.get(sid, asyncio.Lock()).locked()
        ]
        for sid in stale:
            self.discard(sid)
        if stale:
            logger.info("Pruned %d abandoned sessions", len(stale))
        return len(stale)
