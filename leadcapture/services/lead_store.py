"""
Primary lead store - persists a confirmed lead and its recent transcript.
The unique conversation_token column makes a replayed write fail instead of duplicating.
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadcapture.models.conversation import ConversationMessage
from leadcapture.models.lead import Lead
from leadcapture.schemas.lead import ConversationTurn, FieldCollectionStatus, LeadData

logger = logging.getLogger(__name__)


async def save_lead(
    db: AsyncSession,
    conversation_token: str,
    lead: LeadData,
    history: list[ConversationTurn],
    status: Optional[FieldCollectionStatus] = None,
) -> dict:
    """
    Insert the lead and its transcript in one transaction.

    Returns: {"lead_id": str, "reference_number": str}
    Raises on any database error; the caller decides on fallback.
    """
    record = Lead(
        conversation_token=conversation_token,
        reference_number=lead.reference_number,
        name=lead.name or None,
        company=lead.company or None,
        email=lead.email,
        phone=lead.phone or None,
        project_type=lead.project_type or None,
        timeline=lead.timeline or None,
        budget=lead.budget or None,
        score=lead.score,
        qualified=lead.qualified,
        model_score=lead.model_score,
        summary=lead.summary or None,
        qualification_data={
            "collected": status.model_dump() if status else {},
            "message_count": len(history),
        },
    )
    db.add(record)
    await db.flush()

    for turn in history:
        db.add(ConversationMessage(
            lead_id=record.id,
            conversation_token=conversation_token,
            role=turn.role,
            content=turn.content,
            created_at=turn.timestamp,
        ))
    await db.commit()

    logger.info(
        "Lead stored: id=%s messages=%d", str(record.id)[:8], len(history),
        extra={"reference_number": record.reference_number, "conversation_token": conversation_token},
    )
    return {"lead_id": str(record.id), "reference_number": record.reference_number}


async def get_lead_by_reference(db: AsyncSession, reference_number: str) -> Optional[Lead]:
    result = await db.execute(select(Lead).where(Lead.reference_number == reference_number))
    return result.scalar_one_or_none()
