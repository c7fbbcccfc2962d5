"""
Input gate - rejects malformed or out-of-policy messages before they reach generation.

Checks, in order: length bounds, spam keywords, special-character ratio, repeated-character flood.
Quick-reply tokens (✅ 📝) always pass.
"""
import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

MAX_SPECIAL_CHAR_RATIO = 0.6
QUICK_REPLY_TOKENS = ("✅", "📝", "👍")

# Same non-digit, non-space character five or more times in a row ("!!!!!", "aaaaa")
_FLOOD_PATTERN = re.compile(r"([^\d\s])\1{4,}")
_SPECIAL_CHAR = re.compile(r"[^\w\s.,!?'\"@()$%&+\-:;/]")

REJECTION_MESSAGES = {
    "too_short": "Could you tell me a little more?",
    "too_long": "That message is a bit long. Could you keep it under {max_length} characters?",
    "spam": "Sorry, I can't help with that. Is there something about your project I can help with?",
    "special_chars": "I couldn't quite read that. Could you rephrase it in plain text?",
    "flood": "I couldn't quite read that. Could you rephrase it in plain text?",
}


def check_message(
    text: str,
    min_length: int = 2,
    max_length: int = 500,
    spam_keywords: Optional[list[str]] = None,
) -> dict:
    """
    Validate one inbound message.

    Returns: {"allowed": bool, "reason": str|None, "message": str|None}
    """
    stripped = (text or "").strip()

    if any(token in stripped for token in QUICK_REPLY_TOKENS):
        return {"allowed": True, "reason": None, "message": None}

    if len(stripped) < min_length:
        return _reject("too_short")
    if len(stripped) > max_length:
        return _reject("too_long", max_length=max_length)

    lowered = stripped.lower()
    for keyword in spam_keywords or []:
        if re.search(rf"\b{re.escape(keyword.lower())}\b", lowered):
            logger.warning("Message rejected: spam keyword", extra={"error_code": "spam"})
            return _reject("spam")

    specials = len(_SPECIAL_CHAR.findall(stripped))
    if specials / len(stripped) > MAX_SPECIAL_CHAR_RATIO:
        return _reject("special_chars")

    if _FLOOD_PATTERN.search(stripped):
        return _reject("flood")

    return {"allowed": True, "reason": None, "message": None}


def _reject(reason: str, **fmt) -> dict:
    return {
        "allowed": False,
        "reason": reason,
        "message": REJECTION_MESSAGES[reason].format(**fmt),
    }
