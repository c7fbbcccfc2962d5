"""
Conversation summary - a short plain-text digest stored with every lead
and shown at the top of the admin notification.
"""
import re

from leadcapture.schemas.lead import ConversationTurn

PREVIEW_CHARS = 150

# (pattern over all user text, key point), checked in order
KEY_POINT_RULES = [
    (re.compile(r"automat", re.IGNORECASE), "Interested in automation"),
    (re.compile(r"\bai\b|artificial intelligence|machine learning", re.IGNORECASE), "AI implementation needed"),
    (re.compile(r"integrat", re.IGNORECASE), "System integration required"),
    (re.compile(r"customer service|\bsupport\b", re.IGNORECASE), "Customer service focus"),
    (re.compile(r"\bloans?\b|financ|fintech", re.IGNORECASE), "Financial services industry"),
    (re.compile(r"urgent|\basap\b|immediately", re.IGNORECASE), "Urgent timeline"),
]
_BUDGET_MENTION = re.compile(r"budget", re.IGNORECASE)
_BUDGET_FIGURE = re.compile(r"\d+\s*k\b|\d+,000", re.IGNORECASE)


def _preview(text: str) -> str:
    text = " ".join(text.split())
    if len(text) <= PREVIEW_CHARS:
        return text
    return text[:PREVIEW_CHARS] + "..."


def key_points(history: list[ConversationTurn]) -> list[str]:
    user_text = " ".join(turn.content for turn in history if turn.role == "user")
    points = [label for pattern, label in KEY_POINT_RULES if pattern.search(user_text)]
    if _BUDGET_MENTION.search(user_text) and _BUDGET_FIGURE.search(user_text):
        points.append("Budget specified")
    return points


def summarize_conversation(history: list[ConversationTurn]) -> str:
    user_turns = [turn for turn in history if turn.role == "user"]
    if not history:
        return "No conversation history available."
    if not user_turns:
        return "No user messages in conversation."

    lines = [f"The prospect exchanged {len(user_turns)} messages with the assistant."]

    points = key_points(history)
    if points:
        lines.append("")
        lines.append("Key points discussed:")
        lines.extend(f"- {point}" for point in points)

    lines.append("")
    lines.append(f'First message: "{_preview(user_turns[0].content)}"')
    if len(user_turns) > 1:
        lines.append(f'Last message: "{_preview(user_turns[-1].content)}"')
    return "\n".join(lines)
