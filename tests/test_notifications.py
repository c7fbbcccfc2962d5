"""
Tests for leadcapture/services/notifications.py - admin email for high-value leads.
"""
import pytest
from unittest.mock import AsyncMock, patch

from leadcapture.schemas.lead import ConversationTurn, LeadData
from leadcapture.services.notifications import (
    build_subject,
    lead_temperature,
    notify_high_value_lead,
    render_html,
    render_text,
    send_email,
)


def _lead(**overrides):
    fields = {
        "name": "Adrian",
        "company": "OnCore Services",
        "email": "adrian@oncore.com.au",
        "project_type": "AI Chatbot",
        "timeline": "ASAP",
        "budget": "$50k",
        "score": 90,
        "qualified": True,
        "reference_number": "AMP-TEST01",
    }
    fields.update(overrides)
    return LeadData(**fields)


HISTORY = [
    ConversationTurn(role="assistant", content="Hi! How can I help?"),
    ConversationTurn(role="user", content="We need a <chatbot> for support"),
]


# ---------------------------------------------------------------------------
# Temperature bands and rendering
# ---------------------------------------------------------------------------


class TestLeadTemperature:
    @pytest.mark.parametrize("score,label,priority", [
        (100, "HOT", "IMMEDIATE"),
        (85, "HOT", "IMMEDIATE"),
        (84, "WARM", "HIGH"),
        (70, "WARM", "HIGH"),
        (55, "QUALIFIED", "MEDIUM"),
        (49, "COLD", "LOW"),
        (0, "COLD", "LOW"),
    ])
    def test_bands(self, score, label, priority):
        assert lead_temperature(score) == {"label": label, "priority": priority}


class TestRendering:
    def test_subject(self):
        assert build_subject(_lead()) == "HOT Lead: Adrian - OnCore Services (Score: 90)"

    def test_subject_placeholders(self):
        subject = build_subject(_lead(name="", company="", score=60))
        assert subject == "QUALIFIED Lead: Unknown - No Company (Score: 60)"

    def test_text_lists_fields_and_transcript(self):
        text = render_text(_lead(), HISTORY, {"timeline": 30, "budget": 30, "completeness": 100})

        assert "Reference: AMP-TEST01" in text
        assert "Phone: -" in text
        assert "timeline 30 / budget 30 / completeness 100" in text
        assert "Prospect: We need a <chatbot> for support" in text
        assert "Assistant: Hi! How can I help?" in text

    def test_html_escapes_user_content(self):
        body = render_html(_lead(), HISTORY)

        assert "&lt;chatbot&gt;" in body
        assert "<chatbot>" not in body
        assert "HOT lead" in body


# ---------------------------------------------------------------------------
# send_email / notify_high_value_lead
# ---------------------------------------------------------------------------


class TestSendEmail:
    @pytest.mark.asyncio
    async def test_skipped_without_key(self, test_settings):
        result = await send_email("admin@example.com", "subject", "<p>x</p>", "x")

        assert result["status"] == "skipped"
        assert result["error"]


class TestNotifyHighValueLead:
    @pytest.mark.asyncio
    async def test_sends_to_recipient(self, test_settings):
        with patch("leadcapture.services.notifications.send_email", new_callable=AsyncMock) as mock_send:
            mock_send.return_value = {"message_id": "m1", "status": "sent", "error": None}

            result = await notify_high_value_lead(_lead(), HISTORY)

        assert result is True
        kwargs = mock_send.call_args.kwargs
        assert kwargs["to_email"] == "admin@example.com"
        assert kwargs["subject"].startswith("HOT Lead")

    @pytest.mark.asyncio
    async def test_send_error_returns_false(self, test_settings):
        with patch("leadcapture.services.notifications.send_email", new_callable=AsyncMock) as mock_send:
            mock_send.return_value = {"message_id": None, "status": "error", "error": "403"}

            assert await notify_high_value_lead(_lead(), HISTORY) is False

    @pytest.mark.asyncio
    async def test_exception_returns_false(self, test_settings):
        with patch(
            "leadcapture.services.notifications.send_email",
            new_callable=AsyncMock, side_effect=RuntimeError("boom"),
        ):
            assert await notify_high_value_lead(_lead(), HISTORY) is False

    @pytest.mark.asyncio
    async def test_no_recipient(self, test_settings):
        test_settings.notification_recipient = ""
        test_settings.contact_email = ""
        with patch("leadcapture.services.notifications.send_email", new_callable=AsyncMock) as mock_send:
            assert await notify_high_value_lead(_lead(), HISTORY) is False
        mock_send.assert_not_called()
