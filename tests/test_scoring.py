"""
Tests for leadcapture/services/scoring.py - deterministic 0-100 lead score.
"""
import pytest

from leadcapture.schemas.lead import LeadData
from leadcapture.services.scoring import (
    budget_points,
    completeness_points,
    is_qualified,
    parse_budget_amount,
    score_breakdown,
    score_lead,
    timeline_points,
)


def _make_lead(**overrides):
    defaults = {
        "name": "Adrian",
        "company": "OnCore Services",
        "email": "adrian@oncore.com.au",
        "phone": "0431481227",
        "project_type": "AI Chatbot",
        "timeline": "ASAP",
        "budget": "$50k",
    }
    defaults.update(overrides)
    return LeadData(**defaults)


class TestTimelinePoints:
    @pytest.mark.parametrize("timeline,points", [
        ("ASAP", 30),
        ("Within 1 month", 25),
        ("1-3 months", 20),
        ("3-6 months", 10),
        ("Just researching", 5),
        ("2-3 months", 10),
        ("urgently needed", 30),
        ("", 0),
    ])
    def test_buckets(self, timeline, points):
        assert timeline_points(timeline) == points


class TestBudget:
    @pytest.mark.parametrize("budget,amount", [
        ("$75k", 75_000),
        ("$75,000", 75_000),
        ("50k-100k", 50_000),
        ("$1.5m", 1_500_000),
        ("25", 25_000),
        ("$500", 500),
    ])
    def test_parse_amount(self, budget, amount):
        assert parse_budget_amount(budget) == pytest.approx(amount)

    def test_no_number(self):
        assert parse_budget_amount("flexible") is None

    @pytest.mark.parametrize("budget,points", [
        ("$150k", 30),
        ("$75,000", 28),
        ("$50k", 25),
        ("$25k", 20),
        ("$10k", 15),
        ("$500", 10),
        ("flexible", 5),
        ("", 0),
    ])
    def test_tiers(self, budget, points):
        assert budget_points(budget) == points


class TestCompleteness:
    def test_all_fields(self):
        assert completeness_points(_make_lead()) == 50

    def test_invalid_email_scores_nothing(self):
        assert completeness_points(_make_lead(email="not-an-email")) == 35

    def test_short_project_type_scores_nothing(self):
        assert completeness_points(_make_lead(project_type="App")) == 40


class TestScoreLead:
    def test_capped_at_100(self):
        assert score_lead(_make_lead()) == 100

    def test_mid_range_lead(self):
        lead = _make_lead(company="", phone="", timeline="1-3 months", budget="$25k", project_type="Workflow Automation")
        assert score_lead(lead) == 75

    def test_empty_lead(self):
        assert score_lead(LeadData()) == 0

    def test_deterministic(self):
        lead = _make_lead(timeline="3-6 months", budget="flexible")
        assert score_lead(lead) == score_lead(lead.model_copy())

    def test_breakdown_matches_total(self):
        lead = _make_lead(timeline="Just researching", budget="")
        breakdown = score_breakdown(lead)
        assert breakdown == {"timeline": 5, "budget": 0, "completeness": 50, "total": 55}


class TestIsQualified:
    def test_threshold(self):
        assert is_qualified(60) is True
        assert is_qualified(59) is False

    def test_custom_threshold(self):
        assert is_qualified(65, threshold=70) is False
