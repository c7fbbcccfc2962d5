"""
Lead schemas - the collected record, per-field collection flags, the model's
hidden structured-data block, transcript turns, and pipeline results.
"""
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, Field

# Collected fields, in the order they are presented back to the user
LEAD_FIELDS = ("name", "company", "email", "phone", "project_type", "timeline", "budget")

FIELD_LABELS = {
    "name": "Name",
    "company": "Company",
    "email": "Email",
    "phone": "Phone",
    "project_type": "Project Type",
    "timeline": "Timeline",
    "budget": "Budget",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeadData(BaseModel):
    """Facts collected about the prospect. Empty string means not yet known, never None."""
    name: str = ""
    company: str = ""
    email: str = ""
    phone: str = ""
    project_type: str = ""
    timeline: str = ""
    budget: str = ""

    # Derived at submission
    score: int = 0
    qualified: bool = False
    reference_number: str = ""
    summary: str = ""
    model_score: Optional[int] = Field(default=None, description="Score written by the model; audit only")

    def field_values(self) -> dict[str, str]:
        return {field: getattr(self, field) for field in LEAD_FIELDS}


class FieldCollectionStatus(BaseModel):
    """True once a field has been populated by either extraction path."""
    name: bool = False
    company: bool = False
    email: bool = False
    phone: bool = False
    project_type: bool = False
    timeline: bool = False
    budget: bool = False

    def missing(self) -> list[str]:
        return [field for field in LEAD_FIELDS if not getattr(self, field)]

    def all_collected(self) -> bool:
        return not self.missing()


class StructuredData(BaseModel):
    """Hidden block the model appends to its reply: <!--STRUCTURED_DATA: {...} -->"""
    name: Optional[str] = None
    company: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    project_type: Optional[str] = None
    timeline: Optional[str] = None
    budget: Optional[str] = None
    score: Optional[int] = None

    def updates(self) -> dict[str, str]:
        """Non-empty field values, ready to merge into a LeadData."""
        result = {}
        for field in LEAD_FIELDS:
            value = getattr(self, field)
            if value and value.strip():
                result[field] = value.strip()
        return result


class ConversationTurn(BaseModel):
    role: str = Field(..., description="user or assistant")
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)


class KnowledgeSource(BaseModel):
    """One knowledge-base passage returned by vector search."""
    title: str = "Untitled"
    content: str = ""
    similarity: float = 0.0


class RetrievalResult(BaseModel):
    context: Optional[str] = None
    sources: list[KnowledgeSource] = Field(default_factory=list)


class SubmissionResult(BaseModel):
    """Outcome of submit_lead(). status: submitted, duplicate, invalid_email."""
    status: str
    message: str = ""
    reference_number: str = ""
    score: int = 0
    qualified: bool = False
    lead_id: Optional[str] = None
    stored: bool = False
    fallback_dispatched: bool = False
    notification_dispatched: bool = False
    error: Optional[str] = None
