"""
Tests for leadcapture/services/lead_store.py - primary lead store.
"""
import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from leadcapture.models.conversation import ConversationMessage
from leadcapture.schemas.lead import ConversationTurn, FieldCollectionStatus, LeadData
from leadcapture.services.lead_store import get_lead_by_reference, save_lead


def _lead(reference="AMP-TEST01"):
    return LeadData(
        name="Adrian",
        email="adrian@oncore.com.au",
        budget="$50k",
        score=65,
        qualified=True,
        reference_number=reference,
    )


HISTORY = [
    ConversationTurn(role="assistant", content="Hi! How can I help?"),
    ConversationTurn(role="user", content="I'm Adrian, budget $50k"),
]


class TestSaveLead:
    @pytest.mark.asyncio
    async def test_persists_lead_and_transcript(self, db):
        result = await save_lead(db, "tok-1", _lead(), HISTORY, FieldCollectionStatus(name=True, email=True))

        lead = await get_lead_by_reference(db, "AMP-TEST01")
        assert lead is not None
        assert str(lead.id) == result["lead_id"]
        assert lead.company is None
        assert lead.qualification_data["collected"]["name"] is True
        assert lead.qualification_data["message_count"] == 2

        messages = (await db.execute(
            select(ConversationMessage).where(ConversationMessage.conversation_token == "tok-1")
        )).scalars().all()
        assert sorted(m.role for m in messages) == ["assistant", "user"]

    @pytest.mark.asyncio
    async def test_replayed_token_rejected(self, db):
        await save_lead(db, "tok-1", _lead("AMP-ONE"), HISTORY)

        with pytest.raises(IntegrityError):
            await save_lead(db, "tok-1", _lead("AMP-TWO"), HISTORY)

    @pytest.mark.asyncio
    async def test_unknown_reference(self, db):
        assert await get_lead_by_reference(db, "AMP-MISSING") is None
