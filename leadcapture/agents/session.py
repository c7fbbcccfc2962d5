"""
Conversation session - everything one intake conversation owns.

Phase machine:
  collecting → confirming → submitted
  confirming → updating → confirming | collecting
  confirming → confirming (inline correction, summary repeated)
  unavailable: entered at session start when no generation provider is configured. Terminal.
  submitted: terminal. Further messages get the "already completed" reply.

The session handle (session_id) is stable for the lifetime of the object.
The conversation token sent to external services is regenerated on every reset.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from leadcapture.schemas.lead import ConversationTurn, FieldCollectionStatus, LeadData

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    COLLECTING = "collecting"
    CONFIRMING = "confirming"
    UPDATING = "updating"
    SUBMITTED = "submitted"
    UNAVAILABLE = "unavailable"


VALID_TRANSITIONS = {
    Phase.COLLECTING: [Phase.CONFIRMING],
    Phase.CONFIRMING: [Phase.CONFIRMING, Phase.UPDATING, Phase.SUBMITTED],
    Phase.UPDATING: [Phase.CONFIRMING, Phase.COLLECTING],
    Phase.SUBMITTED: [],  # Terminal
    Phase.UNAVAILABLE: [],  # Terminal
}


class InvalidTransitionError(Exception):
    """Raised when a phase change is not allowed by VALID_TRANSITIONS."""

    def __init__(self, current: Phase, target: Phase):
        self.current = current
        self.target = target
        super().__init__(f"Invalid phase transition: {current.value} -> {target.value}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_conversation_token() -> str:
    return uuid.uuid4().hex


class ChatSession:
    """Mutable per-conversation state. Owned by the conductor, one instance per visitor."""

    def __init__(
        self,
        session_id: Optional[str] = None,
        now: Optional[datetime] = None,
        generation_available: bool = True,
    ):
        self.session_id = session_id or uuid.uuid4().hex
        self._reset_state(now or _utcnow())
        if not generation_available:
            self.phase = Phase.UNAVAILABLE

    def _reset_state(self, now: datetime) -> None:
        self.conversation_token = new_conversation_token()
        self.created_at = now
        self.last_activity_at = now
        self.message_count = 0
        self.recent_message_times: list[datetime] = []
        self.phase = Phase.COLLECTING
        self.lead = LeadData()
        self.status = FieldCollectionStatus()
        self.history: list[ConversationTurn] = []
        self.submission_latched = False
        self.submitted_lead_id: Optional[str] = None

    def reset(self, now: Optional[datetime] = None, generation_available: bool = True) -> None:
        """Start over: fresh token, empty lead, collecting phase, latch cleared."""
        previous = self.conversation_token
        self._reset_state(now or _utcnow())
        if not generation_available:
            self.phase = Phase.UNAVAILABLE
        logger.info(
            "Session reset (previous token %s)", previous[:8],
            extra={"session_id": self.session_id, "conversation_token": self.conversation_token},
        )

    def transition(self, target: Phase) -> None:
        if target not in VALID_TRANSITIONS[self.phase]:
            raise InvalidTransitionError(self.phase, target)
        logger.debug(
            "Phase %s -> %s", self.phase.value, target.value,
            extra={"session_id": self.session_id, "phase": target.value},
        )
        self.phase = target

    def is_idle(self, now: datetime, timeout_minutes: int) -> bool:
        return now - self.last_activity_at > timedelta(minutes=timeout_minutes)

    def touch(self, now: datetime) -> None:
        self.last_activity_at = now

    def record_turn(self, role: str, content: str, now: Optional[datetime] = None) -> ConversationTurn:
        turn = ConversationTurn(role=role, content=content, timestamp=now or _utcnow())
        self.history.append(turn)
        return turn

    def recent_history(self, limit: int) -> list[ConversationTurn]:
        if limit <= 0:
            return []
        return self.history[-limit:]

    def snapshot(self) -> dict:
        """Read-only view for the API. No conversation token, no transcript."""
        return {
            "session_id": self.session_id,
            "phase": self.phase.value,
            "message_count": self.message_count,
            "lead": self.lead.field_values(),
            "collected": self.status.model_dump(),
            "missing_fields": self.status.missing(),
            "reference_number": self.lead.reference_number or None,
            "submitted": self.phase == Phase.SUBMITTED,
            "created_at": self.created_at.isoformat(),
            "last_activity_at": self.last_activity_at.isoformat(),
        }
