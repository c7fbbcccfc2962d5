"""
AI service - OpenAI primary, Anthropic fallback.
Hard per-provider timeout on ALL AI calls. A failed call returns an error result, never raises.
Tracks cost, latency, and token usage for every call.
"""
import logging
import re
import time
from typing import Optional

logger = logging.getLogger(__name__)

# Cost per million tokens (input/output)
COST_TABLE = {
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "claude-haiku-4-5-20251001": {"input": 1.00, "output": 5.00},
    "claude-sonnet-4-5-20250929": {"input": 3.00, "output": 15.00},
    "text-embedding-ada-002": {"input": 0.10, "output": 0.0},
}


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Calculate cost in USD for a given model and token count."""
    costs = COST_TABLE.get(model, {"input": 1.0, "output": 5.0})
    return (input_tokens * costs["input"] + output_tokens * costs["output"]) / 1_000_000


def _sanitize_output_text(text: str) -> str:
    """Remove hidden reasoning blocks returned by some providers."""
    if not text:
        return ""
    cleaned = re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL | re.IGNORECASE)
    return cleaned.strip()


def _error_result(error_msg: str) -> dict:
    """Return a standardized error result dict."""
    return {
        "content": "",
        "provider": "none",
        "model": "none",
        "latency_ms": 0,
        "cost_usd": 0.0,
        "input_tokens": 0,
        "output_tokens": 0,
        "error": error_msg,
    }


def is_generation_configured() -> bool:
    """True if at least one generation provider has credentials."""
    from leadcapture.config import get_settings
    settings = get_settings()
    return bool(settings.openai_api_key or settings.anthropic_api_key)


async def generate_response(
    system_prompt: str,
    messages: list[dict],
    max_tokens: Optional[int] = None,
    temperature: Optional[float] = None,
    conversation_token: Optional[str] = None,
) -> dict:
    """
    Generate the next assistant turn. OpenAI primary, Anthropic fallback.

    Args:
        system_prompt: System instructions (persona, rules, knowledge context)
        messages: Ordered [{"role": "user"|"assistant", "content": str}] turns, oldest first
        max_tokens: Override default max tokens
        temperature: Override configured temperature
        conversation_token: Opaque per-conversation id forwarded to the provider

    Returns:
        {
            "content": str,
            "provider": str,
            "model": str,
            "latency_ms": int,
            "cost_usd": float,
            "input_tokens": int,
            "output_tokens": int,
            "error": str|None,
        }
    """
    from leadcapture.config import get_settings
    settings = get_settings()

    if not messages:
        return _error_result("No messages to respond to")

    temp = settings.generation_temperature if temperature is None else temperature

    if settings.openai_api_key:
        try:
            return await _generate_openai(
                system_prompt, messages, max_tokens, temp, conversation_token,
            )
        except Exception as e:
            logger.error("OpenAI failed: %s", str(e), extra={"provider": "openai"})

    if settings.anthropic_api_key:
        try:
            return await _generate_anthropic(
                system_prompt, messages, max_tokens, temp, conversation_token,
            )
        except Exception as e:
            logger.error("Anthropic fallback failed: %s", str(e), extra={"provider": "anthropic"})

    return _error_result("No AI provider available (check API keys)")


def _anthropic_turns(messages: list[dict]) -> list[dict]:
    """Anthropic requires the first turn to be from the user and roles to alternate."""
    turns: list[dict] = []
    for message in messages:
        role = "assistant" if message.get("role") == "assistant" else "user"
        if not turns and role == "assistant":
            continue
        if turns and turns[-1]["role"] == role:
            turns[-1]["content"] += "\n\n" + message["content"]
        else:
            turns.append({"role": role, "content": message["content"]})
    return turns


async def _generate_openai(
    system_prompt: str,
    messages: list[dict],
    max_tokens: Optional[int],
    temperature: float,
    conversation_token: Optional[str],
) -> dict:
    """Generate response using OpenAI chat completions."""
    from openai import AsyncOpenAI
    from leadcapture.config import get_settings
    settings = get_settings()

    model = settings.openai_model
    client = AsyncOpenAI(
        api_key=settings.openai_api_key,
        base_url=(settings.openai_base_url or None),
        timeout=settings.openai_timeout_seconds,
    )

    kwargs = {}
    if conversation_token:
        kwargs["user"] = conversation_token
        kwargs["extra_headers"] = {"X-Session-ID": conversation_token}

    start = time.monotonic()
    response = await client.chat.completions.create(
        model=model,
        max_tokens=max_tokens or settings.openai_max_tokens,
        temperature=temperature,
        messages=[{"role": "system", "content": system_prompt}] + list(messages),
        **kwargs,
    )
    latency_ms = int((time.monotonic() - start) * 1000)

    content = response.choices[0].message.content if response.choices else ""
    content = _sanitize_output_text(content)
    input_tokens = response.usage.prompt_tokens if response.usage else 0
    output_tokens = response.usage.completion_tokens if response.usage else 0

    return {
        "content": content,
        "provider": "openai",
        "model": model,
        "latency_ms": latency_ms,
        "cost_usd": calculate_cost(model, input_tokens, output_tokens),
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "error": None,
    }


async def _generate_anthropic(
    system_prompt: str,
    messages: list[dict],
    max_tokens: Optional[int],
    temperature: float,
    conversation_token: Optional[str],
) -> dict:
    """Generate response using Anthropic Claude API."""
    from anthropic import AsyncAnthropic
    from leadcapture.config import get_settings
    settings = get_settings()

    model = settings.anthropic_model
    client = AsyncAnthropic(
        api_key=settings.anthropic_api_key,
        timeout=settings.anthropic_timeout_seconds,
    )

    kwargs = {}
    if conversation_token:
        kwargs["metadata"] = {"user_id": conversation_token}

    start = time.monotonic()
    response = await client.messages.create(
        model=model,
        max_tokens=max_tokens or settings.anthropic_max_tokens,
        temperature=temperature,
        system=system_prompt,
        messages=_anthropic_turns(messages),
        **kwargs,
    )
    latency_ms = int((time.monotonic() - start) * 1000)

    content = ""
    for block in response.content:
        if block.type == "text":
            content += block.text
    content = _sanitize_output_text(content)

    input_tokens = response.usage.input_tokens if response.usage else 0
    output_tokens = response.usage.output_tokens if response.usage else 0

    return {
        "content": content,
        "provider": "anthropic",
        "model": model,
        "latency_ms": latency_ms,
        "cost_usd": calculate_cost(model, input_tokens, output_tokens),
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "error": None,
    }


async def create_embedding(text: str, conversation_token: Optional[str] = None) -> Optional[list[float]]:
    """Embed text with the configured OpenAI embedding model. None on any failure."""
    from openai import AsyncOpenAI
    from leadcapture.config import get_settings
    settings = get_settings()

    if not settings.openai_api_key:
        return None

    try:
        client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=(settings.openai_base_url or None),
            timeout=settings.openai_timeout_seconds,
        )
        kwargs = {}
        if conversation_token:
            kwargs["user"] = conversation_token
        response = await client.embeddings.create(
            model=settings.openai_embedding_model,
            input=text,
            **kwargs,
        )
        return list(response.data[0].embedding)
    except Exception as e:
        logger.warning("Embedding request failed: %s", str(e), extra={"provider": "openai"})
        return None
