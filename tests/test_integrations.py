"""
Tests for leadcapture/integrations/sheet_webhook.py - fallback spreadsheet sink.
"""
import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from leadcapture.integrations.sheet_webhook import SheetWebhook, build_row, get_sheet_webhook
from leadcapture.schemas.lead import LeadData


def _make_http_client(status_code=200, side_effect=None):
    client = AsyncMock()
    if side_effect is not None:
        client.post = AsyncMock(side_effect=side_effect)
    else:
        response = MagicMock()
        response.status_code = status_code
        client.post = AsyncMock(return_value=response)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


LEAD = LeadData(
    name="Adrian",
    email="adrian@oncore.com.au",
    budget="$50k",
    score=80,
    qualified=True,
    reference_number="AMP-TEST01",
)


class TestBuildRow:
    def test_fixed_columns(self):
        row = build_row(LEAD, "tok-1")

        assert list(row) == [
            "timestamp", "referenceNumber", "sessionId", "name", "company", "email", "phone",
            "projectType", "timeline", "budget", "score", "qualified", "summary", "source",
        ]
        assert row["sessionId"] == "tok-1"
        assert row["company"] == ""
        assert row["score"] == 80
        assert row["source"] == "chat"


class TestAppendLead:
    @pytest.mark.asyncio
    async def test_posts_row(self):
        client = _make_http_client(200)
        with patch("leadcapture.integrations.sheet_webhook.httpx.AsyncClient", return_value=client):
            result = await SheetWebhook("https://sheet.example/exec").append_lead(LEAD, "tok-1")

        assert result is True
        call = client.post.call_args
        assert call.args[0] == "https://sheet.example/exec"
        assert call.kwargs["json"]["referenceNumber"] == "AMP-TEST01"
        assert call.kwargs["headers"] == {"X-Session-ID": "tok-1"}

    @pytest.mark.asyncio
    async def test_error_status_is_false(self):
        client = _make_http_client(500)
        with patch("leadcapture.integrations.sheet_webhook.httpx.AsyncClient", return_value=client):
            assert await SheetWebhook("https://sheet.example/exec").append_lead(LEAD, "tok-1") is False

    @pytest.mark.asyncio
    async def test_transport_error_is_false(self):
        client = _make_http_client(side_effect=httpx.ConnectError("refused"))
        with patch("leadcapture.integrations.sheet_webhook.httpx.AsyncClient", return_value=client):
            assert await SheetWebhook("https://sheet.example/exec").append_lead(LEAD, "tok-1") is False

    @pytest.mark.asyncio
    async def test_blank_url_skips(self):
        with patch("leadcapture.integrations.sheet_webhook.httpx.AsyncClient") as mock_client:
            assert await SheetWebhook("").append_lead(LEAD, "tok-1") is False
        mock_client.assert_not_called()


class TestGetSheetWebhook:
    def test_none_when_unconfigured(self, test_settings):
        assert get_sheet_webhook() is None

    def test_configured(self, test_settings):
        test_settings.sheet_webhook_url = "https://sheet.example/exec"
        webhook = get_sheet_webhook()

        assert isinstance(webhook, SheetWebhook)
        assert webhook.url == "https://sheet.example/exec"
        assert webhook.timeout == 10
