"""
Lead scoring - pure, deterministic 0-100 score computed from a finished LeadData.

Reads only the lead's field values, never extractor state, so the same lead
always scores the same no matter how its fields were collected.

Breakdown (additive, capped at 100):
- Timeline: ASAP 30, Within 1 month 25, 1-3 months 20, 3-6 months 10,
  Just researching 5, any other text 10, empty 0.
- Budget: >=100k 30, >=75k 28, >=50k 25, >=25k 20, >=10k 15, smaller amount 10,
  non-numeric text 5, empty 0.
- Completeness: name +10, company +10, valid email +15, phone +5, project type +10.
"""
import re
from typing import Optional

from leadcapture.schemas.lead import LeadData
from leadcapture.utils.email_validation import is_valid_email_format

MAX_SCORE = 100
QUALIFIED_THRESHOLD = 60

TIMELINE_POINTS = {
    "asap": 30,
    "within 1 month": 25,
    "1-3 months": 20,
    "3-6 months": 10,
    "just researching": 5,
}
OTHER_TIMELINE_POINTS = 10

# Free-text timelines written by the model ("ASAP - need this urgently")
_ASAP_WORDS = re.compile(r"\b(?:asap|urgent(?:ly)?|immediately)\b", re.IGNORECASE)
_RESEARCH_WORDS = re.compile(r"\b(?:researching|exploring)\b", re.IGNORECASE)

# (minimum dollars, points), highest first
BUDGET_TIERS = [
    (100_000, 30),
    (75_000, 28),
    (50_000, 25),
    (25_000, 20),
    (10_000, 15),
]
SMALL_BUDGET_POINTS = 10
UNPARSED_BUDGET_POINTS = 5

_BUDGET_NUMBER = re.compile(r"(\$)?\s*(\d[\d,]*(?:\.\d+)?)\s*(k|m|million|thousand)?\b", re.IGNORECASE)

COMPLETENESS_POINTS = {
    "name": 10,
    "company": 10,
    "email": 15,
    "phone": 5,
    "project_type": 10,
}


def timeline_points(timeline: str) -> int:
    value = (timeline or "").strip()
    if not value:
        return 0
    bucket = TIMELINE_POINTS.get(value.lower())
    if bucket is not None:
        return bucket
    if _ASAP_WORDS.search(value):
        return TIMELINE_POINTS["asap"]
    if _RESEARCH_WORDS.search(value):
        return TIMELINE_POINTS["just researching"]
    return OTHER_TIMELINE_POINTS


def parse_budget_amount(budget: str) -> Optional[float]:
    """
    Dollar amount of the first number in a budget string.

    "$75k" -> 75000, "$75,000" -> 75000, "50k-100k" -> 50000, "$1.5m" -> 1500000.
    Bare figures below 1000 are read as thousands ("25" -> 25000) unless
    written with a dollar sign ("$500" -> 500).
    Returns None when no number is present.
    """
    match = _BUDGET_NUMBER.search(budget or "")
    if not match:
        return None

    amount = float(match.group(2).replace(",", ""))
    suffix = (match.group(3) or "").lower()

    if suffix in ("k", "thousand"):
        return amount * 1_000
    if suffix in ("m", "million"):
        return amount * 1_000_000
    if amount >= 1_000 or match.group(1):
        return amount
    return amount * 1_000


def budget_points(budget: str) -> int:
    value = (budget or "").strip()
    if not value:
        return 0

    amount = parse_budget_amount(value)
    if amount is None:
        return UNPARSED_BUDGET_POINTS

    for minimum, points in BUDGET_TIERS:
        if amount >= minimum:
            return points
    return SMALL_BUDGET_POINTS


def completeness_points(lead: LeadData) -> int:
    points = 0
    if len(lead.name.strip()) > 1:
        points += COMPLETENESS_POINTS["name"]
    if len(lead.company.strip()) > 1:
        points += COMPLETENESS_POINTS["company"]
    if is_valid_email_format(lead.email):
        points += COMPLETENESS_POINTS["email"]
    if lead.phone.strip():
        points += COMPLETENESS_POINTS["phone"]
    if len(lead.project_type.strip()) > 5:
        points += COMPLETENESS_POINTS["project_type"]
    return points


def score_lead(lead: LeadData) -> int:
    """Score a lead 0-100. Same lead in, same score out."""
    total = (
        timeline_points(lead.timeline)
        + budget_points(lead.budget)
        + completeness_points(lead)
    )
    return min(total, MAX_SCORE)


def is_qualified(score: int, threshold: int = QUALIFIED_THRESHOLD) -> bool:
    return score >= threshold


def score_breakdown(lead: LeadData) -> dict:
    """Per-component points, used in the admin notification."""
    return {
        "timeline": timeline_points(lead.timeline),
        "budget": budget_points(lead.budget),
        "completeness": completeness_points(lead),
        "total": score_lead(lead),
    }
