"""
Look up a submitted lead by the reference number the prospect was given.
Contact details are masked in the output.

Usage:
    python scripts/check_lead.py AMP-M1ABCDEF2G
    python scripts/check_lead.py AMP-M1ABCDEF2G --transcript
"""
import argparse
import asyncio
import logging
from typing import Optional

from leadcapture.database import async_session_factory, dispose_engine
from leadcapture.services.lead_store import get_lead_by_reference
from leadcapture.utils.logging import mask_email, mask_phone

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def format_lead(lead, transcript: bool = False) -> str:
    lines = [
        f"Reference: {lead.reference_number}",
        f"Name: {lead.name or 'Not provided'}",
        f"Company: {lead.company or 'Not provided'}",
        f"Email: {mask_email(lead.email)}",
        f"Phone: {mask_phone(lead.phone)}",
        f"Project: {lead.project_type or 'Not specified'}",
        f"Timeline: {lead.timeline or 'Not specified'}",
        f"Budget: {lead.budget or 'Not specified'}",
        f"Score: {lead.score} ({'qualified' if lead.qualified else 'not qualified'})",
        f"Created: {lead.created_at.isoformat() if lead.created_at else '-'}",
    ]
    if transcript:
        lines.append("")
        for message in lead.messages:
            speaker = "Prospect" if message.role == "user" else "Assistant"
            lines.append(f"{speaker}: {message.content}")
    return "\n".join(lines)


async def lookup_lead(reference_number: str, transcript: bool = False, session_factory=None) -> Optional[str]:
    factory = session_factory or async_session_factory
    async with factory() as db:
        lead = await get_lead_by_reference(db, reference_number)
        if lead is None:
            return None
        if transcript:
            await db.refresh(lead, ["messages"])
        return format_lead(lead, transcript)


async def main():
    parser = argparse.ArgumentParser(description="Look up a lead by reference number")
    parser.add_argument("reference_number")
    parser.add_argument("--transcript", action="store_true", help="Include the stored conversation")
    args = parser.parse_args()

    try:
        output = await lookup_lead(args.reference_number, args.transcript)
    finally:
        await dispose_engine()

    if output is None:
        logger.warning("No lead found for %s", args.reference_number)
        return
    print(output)


if __name__ == "__main__":
    asyncio.run(main())
