"""
Spreadsheet webhook - fallback store used when the primary database write fails.
Posts one flat row per lead. Fire-and-forget: no response contract is relied on.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from leadcapture.schemas.lead import LeadData

logger = logging.getLogger(__name__)


def build_row(lead: LeadData, conversation_token: str) -> dict:
    """Fixed-column record. Every key is always present so spreadsheet columns never shift."""
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "referenceNumber": lead.reference_number,
        "sessionId": conversation_token,
        "name": lead.name or "",
        "company": lead.company or "",
        "email": lead.email or "",
        "phone": lead.phone or "",
        "projectType": lead.project_type or "",
        "timeline": lead.timeline or "",
        "budget": lead.budget or "",
        "score": lead.score,
        "qualified": lead.qualified,
        "summary": lead.summary or "",
        "source": "chat",
    }


class SheetWebhook:
    """Append-only spreadsheet sink reached through a web-app webhook."""

    def __init__(self, url: str, timeout: float = 10):
        self.url = url
        self.timeout = timeout

    async def append_lead(self, lead: LeadData, conversation_token: str) -> bool:
        if not self.url:
            logger.warning("Sheet webhook not configured; fallback skipped")
            return False

        row = build_row(lead, conversation_token)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.post(
                    self.url,
                    json=row,
                    headers={"X-Session-ID": conversation_token},
                )
            logger.info(
                "Sheet webhook append: status=%d", response.status_code,
                extra={"reference_number": lead.reference_number},
            )
            return response.status_code < 400
        except httpx.HTTPError as e:
            logger.error(
                "Sheet webhook append failed: %s", str(e),
                extra={"reference_number": lead.reference_number},
            )
            return False


def get_sheet_webhook() -> Optional[SheetWebhook]:
    from leadcapture.config import get_settings
    settings = get_settings()
    if not settings.sheet_webhook_url:
        return None
    return SheetWebhook(settings.sheet_webhook_url, settings.sheet_webhook_timeout_seconds)
