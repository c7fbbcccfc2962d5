"""
API request/response schemas for the chat endpoints.
"""
from typing import Optional
from pydantic import BaseModel, Field


class MessageRequest(BaseModel):
    # Length policy is enforced by the input gate so rejections get a friendly reply
    text: str = Field(..., max_length=10000)


class ChatReplyResponse(BaseModel):
    session_id: str
    status: str
    phase: str
    messages: list[str]
    quick_replies: list[str] = Field(default_factory=list)
    reference_number: Optional[str] = None
    response_ms: int = 0


class SessionSnapshotResponse(BaseModel):
    session_id: str
    phase: str
    message_count: int
    lead: dict[str, str]
    collected: dict[str, bool]
    missing_fields: list[str]
    reference_number: Optional[str] = None
    submitted: bool = False
    created_at: str
    last_activity_at: str
