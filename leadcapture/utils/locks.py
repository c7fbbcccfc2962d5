"""
Per-session locks - one conversation is advanced by one handler at a time.
A second message for the same session waits for the first chain to finish.
"""
import asyncio
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

LOCK_WAIT_SECONDS = 60


class LockTimeoutError(Exception):
    """Raised when a session lock cannot be acquired within the wait window."""
    pass


@asynccontextmanager
async def session_lock(lock: asyncio.Lock, session_id: str, wait: float = LOCK_WAIT_SECONDS):
    """
    Hold a session's lock for the duration of the block.

    Usage:
        async with session_lock(store.lock_for(sid), sid):
            # advance the conversation safely
    """
    try:
        await asyncio.wait_for(lock.acquire(), timeout=wait)
    except asyncio.TimeoutError:
        logger.warning("Session lock timed out", extra={"session_id": session_id})
        raise LockTimeoutError(f"Could not acquire lock for session {session_id[:8]}*** within {wait}s")
    try:
        yield
    finally:
        lock.release()
