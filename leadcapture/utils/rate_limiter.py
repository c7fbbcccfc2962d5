"""
Per-session rate limiter.
Sliding one-minute window plus a lifetime cap on messages per session.
The caller owns the session, so window state lives on the ChatSession itself.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_PER_MINUTE_LIMIT = 5
DEFAULT_SESSION_LIMIT = 30
WINDOW_SECONDS = 60

RATE_LIMIT_MESSAGE = "You're sending messages a little quickly. Please wait {retry_after} seconds and try again."
SESSION_LIMIT_MESSAGE = (
    "We've reached the message limit for this conversation. "
    "Please email {contact_email} and our team will pick it up from here."
)


def check_rate_limit(
    session,
    now: datetime,
    per_minute: int = DEFAULT_PER_MINUTE_LIMIT,
    per_session: int = DEFAULT_SESSION_LIMIT,
    window: int = WINDOW_SECONDS,
) -> tuple[bool, Optional[int]]:
    """
    Check and record one message for a session.

    Returns: (allowed: bool, retry_after_seconds: int | None)
    retry_after is None when the lifetime cap is hit (waiting will not help).
    Rejected messages are not counted.
    """
    if session.message_count >= per_session:
        logger.warning(
            "Session message cap reached: count=%d limit=%d", session.message_count, per_session,
            extra={"session_id": session.session_id, "error_code": "session_cap"},
        )
        return False, None

    window_start = now - timedelta(seconds=window)
    session.recent_message_times = [t for t in session.recent_message_times if t > window_start]

    if len(session.recent_message_times) >= per_minute:
        oldest = session.recent_message_times[0]
        retry_after = int((oldest + timedelta(seconds=window) - now).total_seconds())
        logger.warning(
            "Rate limit exceeded: count=%d limit=%d", len(session.recent_message_times), per_minute,
            extra={"session_id": session.session_id, "error_code": "rate_limited"},
        )
        return False, max(retry_after, 1)

    session.recent_message_times.append(now)
    session.message_count += 1
    return True, None
