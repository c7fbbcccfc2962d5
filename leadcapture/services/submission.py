"""
Submission pipeline - exactly-once hand-off of a confirmed lead.

CRITICAL: the submission latch is set synchronously, before the first await.
A second call for the same session (double click, replayed request) sees the
latch and short-circuits with a friendly "already submitted" result.

Order of work:
1. Validate email, set latch, finalise score / qualified / reference / summary
2. Primary store (SQLAlchemy). On failure the sheet webhook runs as a background side channel.
3. Local JSON-lines backup of the attempt, whatever the remote outcome
4. Admin notification as a background side channel when score >= notification_threshold

Side-channel failures are logged and never change the result returned to the user.
"""
import asyncio
import logging
import secrets
import time
from datetime import datetime, timezone
from typing import Optional

from leadcapture.database import async_session_factory
from leadcapture.integrations.sheet_webhook import get_sheet_webhook
from leadcapture.schemas.lead import SubmissionResult
from leadcapture.services.lead_store import save_lead
from leadcapture.services.lead_summary import summarize_conversation
from leadcapture.services.notifications import notify_high_value_lead
from leadcapture.services.scoring import is_qualified, score_breakdown, score_lead
from leadcapture.utils.backup import record_submission_attempt
from leadcapture.utils.email_validation import is_valid_email_format

logger = logging.getLogger(__name__)

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"

ALREADY_SUBMITTED_MESSAGE = (
    "Your details have already been submitted, so there's nothing more you need to do. "
    "Our team will be in touch soon."
)
INVALID_EMAIL_MESSAGE = (
    "Before I pass this on, I need a valid email address so our team can reach you. "
    "What's the best email for you?"
)

# Background side-channel tasks (fallback webhook, notification)
_background_tasks: set[asyncio.Task] = set()


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_reference_number(prefix: str = "AMP", now: Optional[datetime] = None) -> str:
    """AMP-<base36 millisecond timestamp><2 random chars>, e.g. AMP-LZ3K8Q2AX7."""
    ts = now or datetime.now(timezone.utc)
    millis = int(ts.timestamp() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(2))
    return f"{prefix}-{_to_base36(millis)}{suffix}"


def completion_message(lead, business_name: str) -> str:
    """Thank-you text shown once the lead is submitted."""
    if lead.qualified:
        return (
            f"Perfect! Your information has been submitted.\n\n"
            f"Reference Number: {lead.reference_number}\n\n"
            f"Thank you, {lead.name or 'there'}! Based on our conversation, {business_name} "
            f"can definitely help with your project. Our team will reach out to you at "
            f"{lead.email} within 24 hours to discuss next steps."
        )
    return (
        f"Thank you for your interest in {business_name}!\n\n"
        f"Reference Number: {lead.reference_number}\n\n"
        f"We've received your information and our team will review your requirements. "
        f"We'll contact you at {lead.email} soon with the best way forward."
    )


def _spawn(coro, label: str) -> asyncio.Task:
    task = asyncio.create_task(_run_side_channel(coro, label))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


async def _run_side_channel(coro, label: str) -> None:
    try:
        await coro
    except Exception as e:
        logger.error("%s side channel failed: %s", label, str(e))


async def drain_background_tasks(timeout: float = 10.0) -> None:
    """Wait for pending side channels (shutdown, tests)."""
    loop = asyncio.get_running_loop()
    tasks = [task for task in _background_tasks if task.get_loop() is loop]
    if not tasks:
        return
    done, pending = await asyncio.wait(tasks, timeout=timeout)
    if pending:
        logger.warning("%d side-channel tasks still pending after %.1fs", len(pending), timeout)


async def submit_lead(session) -> SubmissionResult:
    """
    Submit the session's lead exactly once.

    Returns SubmissionResult with status submitted, duplicate or invalid_email.
    A primary-store failure still returns status=submitted (the lead is in the
    backup and, when configured, handed to the fallback webhook).
    """
    from leadcapture.config import get_settings
    settings = get_settings()
    lead = session.lead

    if session.submission_latched:
        logger.info(
            "Duplicate submission short-circuited",
            extra={"session_id": session.session_id, "reference_number": lead.reference_number},
        )
        return SubmissionResult(
            status="duplicate",
            message=ALREADY_SUBMITTED_MESSAGE,
            reference_number=lead.reference_number,
            score=lead.score,
            qualified=lead.qualified,
            lead_id=session.submitted_lead_id,
        )

    if not is_valid_email_format(lead.email):
        return SubmissionResult(status="invalid_email", message=INVALID_EMAIL_MESSAGE)

    # Latch before any await
    session.submission_latched = True

    lead.score = score_lead(lead)
    lead.qualified = is_qualified(lead.score, settings.qualified_threshold)
    if not lead.reference_number:
        lead.reference_number = generate_reference_number(settings.reference_prefix)
    lead.summary = summarize_conversation(session.history)

    token = session.conversation_token
    history = list(session.recent_history(settings.persisted_history_limit))
    snapshot = lead.model_copy()
    start = time.monotonic()

    lead_id = None
    error = None
    try:
        async with async_session_factory() as db:
            saved = await save_lead(db, token, snapshot, history, session.status)
        lead_id = saved["lead_id"]
        lead.reference_number = saved["reference_number"] or lead.reference_number
    except Exception as e:
        error = str(e)
        logger.error(
            "Primary lead store failed: %s", error,
            extra={"reference_number": lead.reference_number, "error_code": "primary_store_failed"},
        )

    fallback_dispatched = False
    if lead_id is None:
        webhook = get_sheet_webhook()
        if webhook is not None:
            _spawn(webhook.append_lead(snapshot, token), "Sheet webhook")
            fallback_dispatched = True
        else:
            logger.warning("No fallback webhook configured; lead kept in local backup only")

    outcome = "stored" if lead_id else ("fallback" if fallback_dispatched else "failed")
    await record_submission_attempt(
        settings.submission_backup_path, token, snapshot.model_dump(), outcome, error,
    )

    notification_dispatched = False
    if lead.score >= settings.notification_threshold:
        _spawn(
            notify_high_value_lead(snapshot, history, score_breakdown(snapshot)),
            "Admin notification",
        )
        notification_dispatched = True

    session.submitted_lead_id = lead_id
    logger.info(
        "Lead submitted: score=%d qualified=%s outcome=%s (%dms)",
        lead.score, lead.qualified, outcome, int((time.monotonic() - start) * 1000),
        extra={"session_id": session.session_id, "reference_number": lead.reference_number},
    )

    return SubmissionResult(
        status="submitted",
        message=completion_message(lead, settings.business_name),
        reference_number=lead.reference_number,
        score=lead.score,
        qualified=lead.qualified,
        lead_id=lead_id,
        stored=lead_id is not None,
        fallback_dispatched=fallback_dispatched,
        notification_dispatched=notification_dispatched,
        error=error,
    )
