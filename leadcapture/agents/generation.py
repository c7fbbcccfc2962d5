"""
Generation glue - builds the consultation prompt, calls the AI service, and
post-processes the reply (hidden structured data, confirmation intent).

The model is asked to:
- collect name, company, email, phone, project type, timeline and budget naturally
- present a confirmation summary once everything is known
- append a hidden <!--STRUCTURED_DATA: {...} --> block with all 8 fields
- append <!--CONFIRMATION_REQUEST--> when it is asking the user to confirm

Confirmation is detected by phrase matching on the visible reply; the explicit
marker is accepted as an equivalent signal.
"""
import logging
import re
from typing import Optional

from pydantic import BaseModel, Field

from leadcapture.agents.extractor import parse_structured_data
from leadcapture.schemas.lead import (
    FIELD_LABELS,
    ConversationTurn,
    FieldCollectionStatus,
    LeadData,
    StructuredData,
)
from leadcapture.services.ai import generate_response

logger = logging.getLogger(__name__)

CONFIRMATION_MARKER = "<!--CONFIRMATION_REQUEST-->"
_CONFIRMATION_MARKER_PATTERN = re.compile(r"<!--\s*CONFIRMATION_REQUEST\s*-->", re.IGNORECASE)

CONFIRMATION_PHRASES = (
    "is this correct",
    "is this information correct",
    "is everything correct",
    "if that's everything correct",
    "if that's correct",
    "if everything looks correct",
    "does everything look correct",
    "i'll pass these details",
)


SYSTEM_PROMPT = """You are a consultation assistant for {business_name}, a consultancy specialising in rapid prototyping, AI integration, workflow automation, fractional technical leadership and product strategy.

HOW TO RUN THE CONVERSATION:
1. Understand their need first. Reflect it back in their own words before asking for anything.
2. Gather details progressively and naturally, one or two questions at a time:
   - Who they are: name and company
   - How to reach them: email (essential) and phone ("And could you share a phone number for follow-up?")
   - The project: what they need, timeline, and budget if they are comfortable sharing it
3. Extraction rules:
   - People often send several details at once ("OnCore Services. adrian@oncore.com 0431481227"). Acknowledge all of them.
   - Never re-ask for something already given. Accept details in any order.
   - "I am not sure" is NOT a name. Only treat something as a name when it clearly is one.
4. Confirmation:
   - Only once you know every detail, say so and present a clean summary of what you captured.
   - End the summary with: "If that's everything correct, I'll pass these details to our team and they'll be in touch shortly about your [project type]."
   - Append the marker <!--CONFIRMATION_REQUEST--> whenever you are asking the user to confirm.
   - Never promise that someone will contact them before they confirm.
5. Hidden structured data:
   Whenever you present a confirmation summary, append this block at the very end, with ALL eight keys in this order:
   <!--STRUCTURED_DATA: {{"name": "", "company": "", "email": "", "phone": "", "projectType": "", "timeline": "", "budget": "", "score": 0}} -->
   - Check the whole conversation for a phone number. Use "" for anything not provided.
   - timeline is one of: ASAP, Within 1 month, 1-3 months, 3-6 months, Just researching.
   - score is your 1-100 assessment of budget size, urgency, fit with our services and decision-making authority.
6. Tone: consultative and warm, never salesy. Avoid the words "lead", "qualify" and "sales". Talk about "your project" and "your requirements".
7. If you cannot help with something, suggest emailing {contact_email}.

SERVICES TO HIGHLIGHT WHEN RELEVANT:
- Rapid MVP development (weeks, not quarters)
- AI integration and automation
- Fractional CTO / CPO services
- Technical specifications and architecture
- Product management and strategy
"""

_COLLECTED_SECTION = """
DETAILS ALREADY CAPTURED (do not ask for these again):
{collected}
"""

_MISSING_SECTION = """
[Context: still need to collect: {missing}. Work these into the conversation naturally.]
"""


class GenerationResult(BaseModel):
    """One generated assistant turn after post-processing."""
    message: str = Field(default="", description="User-visible reply, hidden blocks stripped")
    structured: Optional[StructuredData] = None
    confirmation_requested: bool = False
    provider: str = "none"
    model: str = "none"
    cost_usd: float = 0.0
    latency_ms: int = 0
    error: Optional[str] = None


def detect_confirmation_intent(reply: str) -> bool:
    """True when the generated reply is asking the user to confirm the captured details."""
    if not reply:
        return False
    if _CONFIRMATION_MARKER_PATTERN.search(reply):
        return True
    normalized = reply.lower().replace("’", "'").replace("‘", "'")
    return any(phrase in normalized for phrase in CONFIRMATION_PHRASES)


def build_system_prompt(
    lead: LeadData,
    status: FieldCollectionStatus,
    knowledge_context: Optional[str] = None,
    business_name: str = "our company",
    contact_email: str = "",
) -> str:
    prompt = SYSTEM_PROMPT.format(
        business_name=business_name,
        contact_email=contact_email or "our team",
    )

    collected = [
        f"- {FIELD_LABELS[field]}: {value}"
        for field, value in lead.field_values().items()
        if value
    ]
    if collected:
        prompt += _COLLECTED_SECTION.format(collected="\n".join(collected))

    missing = status.missing()
    if missing:
        prompt += _MISSING_SECTION.format(
            missing=", ".join(FIELD_LABELS[field].lower() for field in missing)
        )

    if knowledge_context:
        prompt += "\n" + knowledge_context + "\n"
    return prompt


def build_messages(history: list[ConversationTurn], utterance: str) -> list[dict]:
    """Prior turns (already windowed by the caller) followed by the current user turn."""
    messages = [{"role": turn.role, "content": turn.content} for turn in history]
    messages.append({"role": "user", "content": utterance})
    return messages


def _strip_markers(text: str) -> str:
    return _CONFIRMATION_MARKER_PATTERN.sub("", text).strip()


async def generate_reply(
    utterance: str,
    history: list[ConversationTurn],
    lead: LeadData,
    status: FieldCollectionStatus,
    knowledge_context: Optional[str] = None,
    conversation_token: Optional[str] = None,
) -> GenerationResult:
    """
    Produce the next assistant turn for the collecting phase.
    Never raises: provider failures come back as GenerationResult.error.
    """
    from leadcapture.config import get_settings
    settings = get_settings()

    system_prompt = build_system_prompt(
        lead, status, knowledge_context,
        business_name=settings.business_name,
        contact_email=settings.contact_email,
    )
    messages = build_messages(history, utterance)

    ai_result = await generate_response(
        system_prompt=system_prompt,
        messages=messages,
        conversation_token=conversation_token,
    )

    if ai_result.get("error"):
        logger.error(
            "Generation failed: %s", ai_result["error"],
            extra={"provider": ai_result.get("provider"), "error_code": "generation_failed"},
        )
        return GenerationResult(error=ai_result["error"])

    raw = ai_result.get("content") or ""
    if not raw.strip():
        logger.error("Generation returned an empty reply", extra={"provider": ai_result.get("provider")})
        return GenerationResult(error="Empty response from AI provider")

    confirmation = detect_confirmation_intent(raw)
    structured, cleaned = parse_structured_data(raw)
    cleaned = _strip_markers(cleaned)

    return GenerationResult(
        message=cleaned,
        structured=structured,
        confirmation_requested=confirmation,
        provider=ai_result.get("provider", "none"),
        model=ai_result.get("model", "none"),
        cost_usd=ai_result.get("cost_usd", 0.0),
        latency_ms=ai_result.get("latency_ms", 0),
    )
