"""
Retrieval augmentation - pulls trusted knowledge-base passages into the generation prompt.

Flow: utterance -> (skip if trivial) -> OpenAI embedding -> PostgREST RPC
`search_knowledge(query_embedding, match_threshold, match_count)` -> formatted context block.

CRITICAL: retrieval must never block the conversation. Every failure path
returns RetrievalResult(context=None, sources=[]).
"""
import logging
import re
from typing import Optional

import httpx

from leadcapture.schemas.lead import ConversationTurn, KnowledgeSource, RetrievalResult

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 10
SHORT_FOLLOWUP_WORDS = 4

_TRIVIAL_UTTERANCE = re.compile(
    r"^(?:hi|hello|hey|hiya|thanks|thank you|cheers|ok|okay|bye|goodbye|yes|no|yep|nope)[\s!.?]*$",
    re.IGNORECASE,
)

CONTEXT_HEADER = "=== KNOWLEDGE BASE CONTEXT (AUTHORITATIVE) ==="
CONTEXT_FOOTER = "=== END KNOWLEDGE BASE CONTEXT ==="
CONTEXT_INSTRUCTION = (
    "The passages above come from the company's own knowledge base. Treat them as the "
    "authoritative source for facts about our services, pricing approach, team and past work, "
    "and prefer them over your general knowledge whenever they disagree. Do not invent details "
    "that are not supported by these passages."
)


def is_trivial(utterance: str) -> bool:
    text = (utterance or "").strip()
    return len(text) < MIN_QUERY_LENGTH or bool(_TRIVIAL_UTTERANCE.match(text))


def build_query(utterance: str, history: Optional[list[ConversationTurn]] = None) -> str:
    """Short follow-ups ("what about pricing?") borrow the previous user turn for context."""
    query = utterance.strip()
    if len(query.split()) >= SHORT_FOLLOWUP_WORDS or not history:
        return query
    for turn in reversed(history):
        if turn.role == "user" and turn.content.strip() and turn.content.strip() != query:
            return f"{turn.content.strip()} {query}"
    return query


async def search_knowledge(query: str, conversation_token: Optional[str] = None) -> Optional[list[KnowledgeSource]]:
    """
    Similarity search against the knowledge base.
    Returns None when not configured or on any transport/service failure.
    """
    from leadcapture.config import get_settings
    from leadcapture.services.ai import create_embedding
    settings = get_settings()

    if not settings.knowledge_base_url or not settings.knowledge_base_key:
        return None

    embedding = await create_embedding(query, conversation_token=conversation_token)
    if embedding is None:
        return None

    url = f"{settings.knowledge_base_url.rstrip('/')}/rest/v1/rpc/{settings.knowledge_search_rpc}"
    headers = {
        "apikey": settings.knowledge_base_key,
        "Authorization": f"Bearer {settings.knowledge_base_key}",
        "Content-Type": "application/json",
    }
    if conversation_token:
        headers["X-Session-ID"] = conversation_token
    payload = {
        "query_embedding": embedding,
        "match_threshold": settings.knowledge_match_threshold,
        "match_count": settings.knowledge_match_count,
    }

    try:
        async with httpx.AsyncClient(timeout=settings.knowledge_timeout_seconds) as client:
            response = await client.post(url, json=payload, headers=headers)
        if response.status_code >= 300:
            logger.warning(
                "Knowledge search returned %d: %s",
                response.status_code, response.text[:200],
            )
            return None
        rows = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Knowledge search failed: %s", str(e))
        return None

    if not isinstance(rows, list):
        logger.warning("Knowledge search returned unexpected payload: %s", type(rows).__name__)
        return None

    sources = []
    for row in rows[: settings.knowledge_match_count]:
        if not isinstance(row, dict):
            continue
        try:
            similarity = float(row.get("similarity") or 0.0)
        except (TypeError, ValueError):
            similarity = 0.0
        if similarity < settings.knowledge_match_threshold:
            continue
        sources.append(KnowledgeSource(
            title=row.get("title") or "Untitled",
            content=row.get("content") or "",
            similarity=similarity,
        ))
    return sources


def format_knowledge_context(sources: list[KnowledgeSource]) -> Optional[str]:
    """Render passages as a delimited, authoritative block. None if there is nothing to show."""
    passages = [s for s in sources if s.content.strip()]
    if not passages:
        return None

    lines = [CONTEXT_HEADER, ""]
    for source in passages:
        lines.append(f"[{source.title} - {round(source.similarity * 100)}% relevant]:")
        lines.append(source.content.strip())
        lines.append("")
    lines.append(CONTEXT_INSTRUCTION)
    lines.append(CONTEXT_FOOTER)
    return "\n".join(lines)


async def augment(
    utterance: str,
    history: Optional[list[ConversationTurn]] = None,
    conversation_token: Optional[str] = None,
) -> RetrievalResult:
    """Knowledge context for one utterance. Never raises."""
    if is_trivial(utterance):
        return RetrievalResult()

    try:
        sources = await search_knowledge(build_query(utterance, history), conversation_token)
    except Exception as e:
        logger.error("Retrieval augmentation failed: %s", str(e))
        return RetrievalResult()

    if not sources:
        return RetrievalResult()

    logger.info(
        "Retrieved %d knowledge passages (top=%.2f)",
        len(sources), max(s.similarity for s in sources),
    )
    return RetrievalResult(context=format_knowledge_context(sources), sources=sources)
