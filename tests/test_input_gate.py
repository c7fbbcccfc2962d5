"""
Tests for leadcapture/utils/input_gate.py and leadcapture/utils/rate_limiter.py.
"""
import pytest
from datetime import datetime, timedelta, timezone

from leadcapture.agents.session import ChatSession
from leadcapture.utils.input_gate import check_message
from leadcapture.utils.rate_limiter import check_rate_limit

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Input gate
# ---------------------------------------------------------------------------


class TestCheckMessage:
    def test_normal_message_allowed(self):
        result = check_message("Hi, I'm Adrian from OnCore Services")
        assert result == {"allowed": True, "reason": None, "message": None}

    def test_phone_number_allowed(self):
        assert check_message("0431 481 111 111")["allowed"] is True

    def test_too_short(self):
        result = check_message("a")
        assert result["allowed"] is False
        assert result["reason"] == "too_short"

    def test_too_long(self):
        result = check_message("x " * 300, max_length=500)
        assert result["reason"] == "too_long"
        assert "500" in result["message"]

    def test_spam_keyword(self):
        result = check_message("cheap viagra here", spam_keywords=["viagra"])
        assert result["reason"] == "spam"

    def test_spam_keyword_needs_word_boundary(self):
        assert check_message("we do casinos no", spam_keywords=["casino"])["allowed"] is True

    def test_special_characters(self):
        assert check_message("#^*~#^*~")["reason"] == "special_chars"

    def test_character_flood(self):
        assert check_message("hellooooooo")["reason"] == "flood"
        assert check_message("!!!!!!")["reason"] == "flood"

    @pytest.mark.parametrize("text", ["✅", "📝", "Yes, looks good! ✅", "I need to update something 📝"])
    def test_quick_replies_always_pass(self, text):
        assert check_message(text)["allowed"] is True


# ---------------------------------------------------------------------------
# Rate limiter
# ---------------------------------------------------------------------------


class TestRateLimit:
    def test_per_minute_limit(self):
        session = ChatSession(now=T0)
        for i in range(5):
            assert check_rate_limit(session, T0 + timedelta(seconds=i)) == (True, None)

        allowed, retry_after = check_rate_limit(session, T0 + timedelta(seconds=5))

        assert allowed is False
        assert 1 <= retry_after <= 60
        assert session.message_count == 5

    def test_window_slides(self):
        session = ChatSession(now=T0)
        for i in range(5):
            check_rate_limit(session, T0 + timedelta(seconds=i))
        allowed, _ = check_rate_limit(session, T0 + timedelta(seconds=61))
        assert allowed is True

    def test_session_cap(self):
        session = ChatSession(now=T0)
        session.message_count = 30
        assert check_rate_limit(session, T0) == (False, None)
