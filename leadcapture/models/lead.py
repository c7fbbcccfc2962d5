"""
Lead model - one row per confirmed intake conversation.
Written once by the submission pipeline; conversation_token is unique so a
replayed submission can never create a second row.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Integer, Boolean, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from leadcapture.database import Base


class Lead(Base):
    __tablename__ = "leads"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    conversation_token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    reference_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)

    # Collected fields
    name: Mapped[Optional[str]] = mapped_column(String(200))
    company: Mapped[Optional[str]] = mapped_column(String(200))
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(40))
    project_type: Mapped[Optional[str]] = mapped_column(String(100))
    timeline: Mapped[Optional[str]] = mapped_column(String(100))
    budget: Mapped[Optional[str]] = mapped_column(String(100))

    # Scoring
    score: Mapped[int] = mapped_column(Integer, default=0)
    qualified: Mapped[bool] = mapped_column(Boolean, default=False)
    model_score: Mapped[Optional[int]] = mapped_column(Integer)  # audit only, never the recorded score

    summary: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default="new")  # new, contacted, closed
    qualification_data: Mapped[Optional[dict]] = mapped_column(JSONB, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    messages: Mapped[list["ConversationMessage"]] = relationship(
        back_populates="lead", lazy="select", order_by="ConversationMessage.created_at"
    )

    __table_args__ = (
        Index("ix_leads_created_at", "created_at"),
        Index("ix_leads_score", "score"),
    )

    def __repr__(self) -> str:
        return f"<Lead {self.reference_number} score={self.score}>"
