"""
Conductor - orchestrates one inbound chat message through the intake pipeline.

Order of work for every message:
  idle reset → unavailable guard → submitted guard → rate limit → input gate → phase handler

Phase handlers:
  collecting: heuristic extraction + knowledge retrieval + generation. The model decides
              when to present the confirmation summary.
  confirming: corrective / affirmative / inline correction, handled locally (no generation).
  updating:   explicit field correction, handled locally. A question goes back to collecting.

CRITICAL: a generation failure never advances conversation state. The user can simply retry.
"""
import logging
import re
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

from leadcapture.agents.extractor import HeuristicExtractor, apply_updates, merge_updates
from leadcapture.agents.generation import generate_reply
from leadcapture.agents.session import ChatSession, Phase
from leadcapture.schemas.lead import FIELD_LABELS, LEAD_FIELDS, LeadData
from leadcapture.services.ai import is_generation_configured
from leadcapture.services.retrieval import augment
from leadcapture.services.submission import generate_reference_number, submit_lead
from leadcapture.utils.input_gate import check_message
from leadcapture.utils.metrics import Timer, response_time_bucket
from leadcapture.utils.rate_limiter import (
    RATE_LIMIT_MESSAGE,
    SESSION_LIMIT_MESSAGE,
    check_rate_limit,
)

logger = logging.getLogger(__name__)

CONFIRM_QUICK_REPLIES = ["Yes, looks good! ✅", "I need to update something 📝"]
STARTER_QUICK_REPLIES = [
    "I need an AI chatbot",
    "Help me build an MVP",
    "I'm looking for a fractional CTO",
]

GREETING_MESSAGE = (
    "Hi! I'm the {business_name} assistant. Tell me a little about your project "
    "and I'll make sure the right person gets back to you."
)
UNAVAILABLE_MESSAGE = (
    "Our AI assistant is currently unavailable. Please email {contact_email} "
    "and our team will get back to you."
)
COMPLETED_MESSAGE = (
    "Thank you! This consultation has been completed and your details have been passed "
    "to our team. To start a new inquiry, please refresh the page."
)
GENERATION_ERROR_MESSAGE = (
    "I'm sorry, I'm having trouble responding right now. Please try again in a moment, "
    "or email us directly at {contact_email}."
)
UPDATE_PROMPT = (
    "No problem! What would you like to update? Just tell me the field and the correct value, "
    'for example "email is jane@company.com" or "timeline is next month".'
)
UPDATE_REPROMPT = (
    "I couldn't tell which detail to change. Which field would you like to update: "
    "name, company, email, phone, project type, timeline or budget?"
)
CONFIRM_REPROMPT = (
    'Just to check: are these details correct? Reply "yes" to submit, '
    "or tell me what to change."
)

# Corrective is checked first: "not correct" must never read as "correct"
CORRECTIVE_PATTERN = re.compile(
    r"\b(?:update|change|wrong|incorrect|fix|edit|mistake)\b|📝"
    # A negated affirmative ("not quite right", "doesn't look good") is a rejection
    r"|\b(?:not|isn't|aren't|doesn't)(?:\s+\w+){0,2}\s+(?:right|good|correct|perfect)\b"
    r"|^\W*no\b",
    re.IGNORECASE,
)
AFFIRMATIVE_PATTERN = re.compile(
    r"\b(?:yes|yep|yeah|yup|correct|good|right|perfect|confirm(?:ed)?|submit|all good|looks good)\b|✅|👍",
    re.IGNORECASE,
)


@lru_cache()
def _get_extractor() -> HeuristicExtractor:
    from leadcapture.config import get_settings
    return HeuristicExtractor(get_settings().name_denylist)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def classify_confirmation(text: str) -> Optional[str]:
    """Return "corrective", "affirmative" or None for a reply to the confirmation summary."""
    if CORRECTIVE_PATTERN.search(text):
        return "corrective"
    if AFFIRMATIVE_PATTERN.search(text):
        return "affirmative"
    return None


def render_summary(lead: LeadData) -> str:
    """Plain-text confirmation summary of the captured fields."""
    lines = ["Here's what I have so far:", ""]
    for field in LEAD_FIELDS:
        lines.append(f"• {FIELD_LABELS[field]}: {getattr(lead, field) or '[Not provided]'}")
    if lead.reference_number:
        lines.append("")
        lines.append(f"Reference Number: {lead.reference_number}")
    lines.append("")
    lines.append("Is this information correct?")
    return "\n".join(lines)


def _result(
    session: ChatSession,
    timer: Timer,
    status: str,
    messages: list[str],
    quick_replies: Optional[list[str]] = None,
) -> dict:
    response_ms = timer.stop()
    logger.info(
        "Turn handled: status=%s (%s)", status, response_time_bucket(response_ms),
        extra={"session_id": session.session_id, "phase": session.phase.value},
    )
    return {
        "session_id": session.session_id,
        "status": status,
        "phase": session.phase.value,
        "messages": messages,
        "quick_replies": quick_replies or [],
        "reference_number": session.lead.reference_number or None,
        "response_ms": response_ms,
    }


def start_session(store) -> tuple[ChatSession, dict]:
    """
    Create a session and its opening turn.
    With no generation provider configured the session starts (and stays) unavailable.
    """
    from leadcapture.config import get_settings
    settings = get_settings()
    timer = Timer().start()

    session = store.create(generation_available=is_generation_configured())
    if session.phase == Phase.UNAVAILABLE:
        logger.warning(
            "No generation provider configured; session opened as unavailable",
            extra={"session_id": session.session_id, "error_code": "generation_unconfigured"},
        )
        message = UNAVAILABLE_MESSAGE.format(contact_email=settings.contact_email)
        return session, _result(session, timer, "unavailable", [message])

    greeting = GREETING_MESSAGE.format(business_name=settings.business_name)
    session.record_turn("assistant", greeting)
    return session, _result(session, timer, "started", [greeting], STARTER_QUICK_REPLIES)


async def handle_message(
    session: ChatSession,
    text: str,
    now: Optional[datetime] = None,
) -> dict:
    """
    Process one inbound user message for a session.

    Returns: {"session_id", "status", "phase", "messages", "quick_replies",
              "reference_number", "response_ms"}
    Caller is responsible for serializing calls per session.
    """
    from leadcapture.config import get_settings
    settings = get_settings()
    timer = Timer().start()
    now = now or _utcnow()
    text = (text or "").strip()

    # Idle sessions start over transparently
    if session.is_idle(now, settings.session_idle_timeout_minutes):
        logger.info(
            "Session idle beyond %d minutes; resetting", settings.session_idle_timeout_minutes,
            extra={"session_id": session.session_id},
        )
        session.reset(now, generation_available=is_generation_configured())
    session.touch(now)

    if session.phase == Phase.UNAVAILABLE:
        message = UNAVAILABLE_MESSAGE.format(contact_email=settings.contact_email)
        return _result(session, timer, "unavailable", [message])

    if session.phase == Phase.SUBMITTED:
        return _result(session, timer, "already_submitted", [COMPLETED_MESSAGE])

    allowed, retry_after = check_rate_limit(
        session, now,
        per_minute=settings.max_messages_per_minute,
        per_session=settings.max_messages_per_session,
    )
    if not allowed:
        if retry_after is None:
            message = SESSION_LIMIT_MESSAGE.format(contact_email=settings.contact_email)
        else:
            message = RATE_LIMIT_MESSAGE.format(retry_after=retry_after)
        return _result(session, timer, "rate_limited", [message])

    gate = check_message(
        text,
        min_length=settings.min_message_length,
        max_length=settings.max_message_length,
        spam_keywords=settings.spam_keywords,
    )
    if not gate["allowed"]:
        logger.info(
            "Message rejected by input gate: %s", gate["reason"],
            extra={"session_id": session.session_id},
        )
        return _result(session, timer, "rejected", [gate["message"]])

    if session.phase == Phase.CONFIRMING:
        return await _handle_confirming(session, text, now, timer)
    if session.phase == Phase.UPDATING:
        return await _handle_updating(session, text, now, timer)
    return await _handle_collecting(session, text, now, timer)


async def _handle_collecting(
    session: ChatSession,
    text: str,
    now: datetime,
    timer: Timer,
) -> dict:
    from leadcapture.config import get_settings
    settings = get_settings()
    token = session.conversation_token

    heuristic = _get_extractor().extract(text, session.lead, session.status)

    # Prompt sees this turn's heuristic finds; session state only changes on success
    provisional_lead = session.lead.model_copy()
    provisional_status = session.status.model_copy()
    apply_updates(provisional_lead, provisional_status, heuristic)

    retrieval = await augment(text, session.history, token)
    generation = await generate_reply(
        text,
        session.recent_history(settings.history_window),
        provisional_lead,
        provisional_status,
        knowledge_context=retrieval.context,
        conversation_token=token,
    )

    if generation.error:
        logger.error(
            "Reply generation failed; state unchanged: %s", generation.error,
            extra={"session_id": session.session_id, "error_code": "generation_failed"},
        )
        message = GENERATION_ERROR_MESSAGE.format(contact_email=settings.contact_email)
        return _result(session, timer, "error", [message])

    model_updates = generation.structured.updates() if generation.structured else {}
    changed = apply_updates(session.lead, session.status, merge_updates(heuristic, model_updates))
    if generation.structured and generation.structured.score is not None:
        session.lead.model_score = generation.structured.score
    if changed:
        logger.info(
            "Captured fields: %s", ",".join(changed),
            extra={"session_id": session.session_id, "phase": session.phase.value},
        )

    session.record_turn("user", text, now)
    if session.phase == Phase.UPDATING and not generation.confirmation_requested:
        session.transition(Phase.COLLECTING)

    if generation.confirmation_requested:
        if not session.lead.reference_number:
            session.lead.reference_number = generate_reference_number(settings.reference_prefix, now)
        session.transition(Phase.CONFIRMING)
        message = generation.message or render_summary(session.lead)
        if session.lead.reference_number not in message:
            message = f"{message}\n\nReference Number: {session.lead.reference_number}"
        session.record_turn("assistant", message, now)
        return _result(session, timer, "confirming", [message], CONFIRM_QUICK_REPLIES)

    session.record_turn("assistant", generation.message, now)
    return _result(session, timer, "collecting", [generation.message])


async def _handle_confirming(
    session: ChatSession,
    text: str,
    now: datetime,
    timer: Timer,
) -> dict:
    intent = classify_confirmation(text)
    session.record_turn("user", text, now)

    if intent == "affirmative":
        return await _submit(session, now, timer)

    # Inline correction: "change the budget to 50k" applies directly
    updates = _get_extractor().extract_update(text, session.lead)
    changed = apply_updates(session.lead, session.status, updates)
    if updates:
        session.transition(Phase.CONFIRMING)
        return _reply_with_summary(session, now, timer, changed)

    if intent == "corrective":
        session.transition(Phase.UPDATING)
        session.record_turn("assistant", UPDATE_PROMPT, now)
        return _result(session, timer, "updating", [UPDATE_PROMPT])

    session.record_turn("assistant", CONFIRM_REPROMPT, now)
    return _result(session, timer, "confirming", [CONFIRM_REPROMPT], CONFIRM_QUICK_REPLIES)


async def _handle_updating(
    session: ChatSession,
    text: str,
    now: datetime,
    timer: Timer,
) -> dict:
    updates = _get_extractor().extract_update(text, session.lead)
    if updates:
        session.record_turn("user", text, now)
        changed = apply_updates(session.lead, session.status, updates)
        session.transition(Phase.CONFIRMING)
        return _reply_with_summary(session, now, timer, changed)

    # A question mid-update goes back to the assistant; the phase moves only once a reply exists
    if text.endswith("?"):
        return await _handle_collecting(session, text, now, timer)

    session.record_turn("user", text, now)
    if classify_confirmation(text) == "affirmative":
        session.transition(Phase.CONFIRMING)
        return _reply_with_summary(session, now, timer, [])

    session.record_turn("assistant", UPDATE_REPROMPT, now)
    return _result(session, timer, "updating", [UPDATE_REPROMPT])


def _reply_with_summary(
    session: ChatSession,
    now: datetime,
    timer: Timer,
    changed: list[str],
) -> dict:
    summary = render_summary(session.lead)
    if changed:
        labels = ", ".join(FIELD_LABELS[field].lower() for field in changed)
        summary = f"Thanks, I've updated your {labels}.\n\n{summary}"
    session.record_turn("assistant", summary, now)
    return _result(session, timer, "confirming", [summary], CONFIRM_QUICK_REPLIES)


async def _submit(session: ChatSession, now: datetime, timer: Timer) -> dict:
    submission = await submit_lead(session)

    if submission.status == "duplicate":
        return _result(session, timer, "already_submitted", [submission.message])

    if submission.status == "invalid_email":
        session.transition(Phase.UPDATING)
        session.record_turn("assistant", submission.message, now)
        return _result(session, timer, "updating", [submission.message])

    session.transition(Phase.SUBMITTED)
    session.record_turn("assistant", submission.message, now)
    return _result(session, timer, "submitted", [submission.message])
