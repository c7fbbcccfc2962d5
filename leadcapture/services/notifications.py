"""
Notification service - admin email for high-value leads.

Triggered by the submission pipeline when score >= notification_threshold.
Runs as a background side channel: a failed send is logged and never affects
the submission result shown to the user.
"""
import asyncio
import html
import logging
from typing import Optional

from leadcapture.schemas.lead import FIELD_LABELS, ConversationTurn, LeadData
from leadcapture.utils.logging import mask_email

logger = logging.getLogger(__name__)

# (minimum score, label, priority), highest first
TEMPERATURE_BANDS = [
    (85, "HOT", "IMMEDIATE"),
    (70, "WARM", "HIGH"),
    (50, "QUALIFIED", "MEDIUM"),
]
COLD = ("COLD", "LOW")


def lead_temperature(score: int) -> dict:
    for minimum, label, priority in TEMPERATURE_BANDS:
        if score >= minimum:
            return {"label": label, "priority": priority}
    return {"label": COLD[0], "priority": COLD[1]}


def build_subject(lead: LeadData) -> str:
    temp = lead_temperature(lead.score)
    return (
        f"{temp['label']} Lead: {lead.name or 'Unknown'} - "
        f"{lead.company or 'No Company'} (Score: {lead.score})"
    )


def render_text(lead: LeadData, history: list[ConversationTurn], breakdown: Optional[dict] = None) -> str:
    temp = lead_temperature(lead.score)
    lines = [
        f"New {temp['label']} lead - priority {temp['priority']}",
        f"Reference: {lead.reference_number}",
        f"Score: {lead.score}/100 ({'qualified' if lead.qualified else 'not qualified'})",
    ]
    if breakdown:
        lines.append(
            f"  timeline {breakdown['timeline']} / budget {breakdown['budget']} / "
            f"completeness {breakdown['completeness']}"
        )
    lines.append("")
    for field, value in lead.field_values().items():
        lines.append(f"{FIELD_LABELS[field]}: {value or '-'}")
    if lead.summary:
        lines.extend(["", "Summary:", lead.summary])
    if history:
        lines.extend(["", "Conversation:"])
        for turn in history:
            speaker = "Prospect" if turn.role == "user" else "Assistant"
            lines.append(f"{speaker}: {turn.content}")
    return "\n".join(lines)


def render_html(lead: LeadData, history: list[ConversationTurn]) -> str:
    temp = lead_temperature(lead.score)
    rows = "".join(
        f"<tr><td style=\"padding:4px 12px 4px 0;color:#666;\">{FIELD_LABELS[field]}</td>"
        f"<td style=\"padding:4px 0;\">{html.escape(value) or '-'}</td></tr>"
        for field, value in lead.field_values().items()
    )
    turns = "".join(
        f"<div style=\"margin:8px 0;padding:8px;border-radius:6px;"
        f"background:{'#f0f0f0' if turn.role == 'user' else '#e8f4ff'};\">"
        f"<strong>{'Prospect' if turn.role == 'user' else 'Assistant'}:</strong><br>"
        f"{html.escape(turn.content).replace(chr(10), '<br>')}</div>"
        for turn in history
    )
    summary = html.escape(lead.summary).replace("\n", "<br>") if lead.summary else ""
    return f"""
    <div style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 640px; margin: 0 auto; padding: 24px;">
      <h2 style="margin: 0 0 4px;">{temp['label']} lead &middot; score {lead.score}/100</h2>
      <p style="margin: 0 0 16px; color: #666;">Reference {html.escape(lead.reference_number)} &middot; priority {temp['priority']}</p>
      <table style="border-collapse: collapse; font-size: 14px;">{rows}</table>
      <h3 style="margin: 24px 0 8px;">Summary</h3>
      <p style="font-size: 14px; line-height: 1.5;">{summary}</p>
      <h3 style="margin: 24px 0 8px;">Conversation</h3>
      {turns}
    </div>
    """


async def send_email(to_email: str, subject: str, html_content: str, text_content: str) -> dict:
    """
    Send an email via SendGrid.

    Returns: {"message_id": str|None, "status": str, "error": str|None}
    """
    from leadcapture.config import get_settings
    settings = get_settings()

    if not settings.sendgrid_api_key:
        logger.warning("SendGrid not configured; admin email skipped")
        return {"message_id": None, "status": "skipped", "error": "SendGrid not configured"}

    try:
        from sendgrid import SendGridAPIClient
        from sendgrid.helpers.mail import Mail, Email, To, Content

        message = Mail(
            from_email=Email(settings.sendgrid_from_email, settings.sendgrid_from_name),
            to_emails=To(to_email),
            subject=subject,
        )
        message.content = [
            Content("text/plain", text_content),
            Content("text/html", html_content),
        ]

        sg = SendGridAPIClient(api_key=settings.sendgrid_api_key)
        # Offload synchronous SendGrid SDK call to thread pool
        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(None, lambda: sg.send(message))
        message_id = response.headers.get("X-Message-Id", "")

        logger.info("Admin email sent: to=%s subject=%s", mask_email(to_email), subject[:40])
        return {"message_id": message_id, "status": "sent", "error": None}

    except Exception as e:
        logger.error("Admin email failed: to=%s error=%s", mask_email(to_email), str(e))
        return {"message_id": None, "status": "error", "error": str(e)}


async def notify_high_value_lead(
    lead: LeadData,
    history: list[ConversationTurn],
    breakdown: Optional[dict] = None,
) -> bool:
    """Email the admin about a high-scoring lead. Returns True if the email went out."""
    from leadcapture.config import get_settings
    settings = get_settings()

    recipient = settings.notification_recipient or settings.contact_email
    if not recipient:
        logger.warning("No notification recipient configured")
        return False

    try:
        result = await send_email(
            to_email=recipient,
            subject=build_subject(lead),
            html_content=render_html(lead, history),
            text_content=render_text(lead, history, breakdown),
        )
    except Exception as e:
        logger.error(
            "Exception sending admin notification: %s", str(e),
            extra={"reference_number": lead.reference_number},
        )
        return False

    if result.get("error"):
        logger.error(
            "Failed to send admin notification: %s", result["error"],
            extra={"reference_number": lead.reference_number},
        )
        return False
    return True
