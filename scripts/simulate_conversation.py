"""
Play a scripted intake conversation against a running server.

Usage:
    python scripts/simulate_conversation.py
    python scripts/simulate_conversation.py --base-url http://localhost:8000 --no-confirm
    python scripts/simulate_conversation.py --message "Hi, I'm Jane from Acme Pty Ltd"
"""
import argparse
import asyncio
import logging

import httpx

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BASE_URL = "http://localhost:8000"

DEFAULT_SCRIPT = [
    "Hi, I'm Adrian from OnCore Services. We need an AI chatbot for customer support.",
    "adrian@oncore.com.au, 0431 481 227",
    "We'd like to launch within 1-3 months and the budget is around $50k",
]


async def run_conversation(base_url: str, script: list[str], confirm: bool) -> dict:
    """Open a session, send each scripted message, then confirm if asked to."""
    async with httpx.AsyncClient(base_url=base_url, timeout=60) as client:
        resp = await client.post("/api/v1/chat/sessions")
        resp.raise_for_status()
        opening = resp.json()
        session_id = opening["session_id"]
        for line in opening["messages"]:
            logger.info("assistant> %s", line)

        reply = opening
        for text in script:
            logger.info("user> %s", text)
            resp = await client.post(f"/api/v1/chat/sessions/{session_id}/messages", json={"text": text})
            resp.raise_for_status()
            reply = resp.json()
            for line in reply["messages"]:
                logger.info("assistant> %s", line)
            if reply["phase"] in ("confirming", "unavailable"):
                break

        if confirm and reply["phase"] == "confirming":
            text = reply["quick_replies"][0] if reply["quick_replies"] else "Yes, looks good!"
            logger.info("user> %s", text)
            resp = await client.post(f"/api/v1/chat/sessions/{session_id}/messages", json={"text": text})
            resp.raise_for_status()
            reply = resp.json()
            for line in reply["messages"]:
                logger.info("assistant> %s", line)

        snapshot = (await client.get(f"/api/v1/chat/sessions/{session_id}")).json()
        logger.info(
            "Final phase=%s reference=%s lead=%s",
            snapshot["phase"], snapshot["reference_number"], snapshot["lead"],
        )
        return snapshot


async def main():
    parser = argparse.ArgumentParser(description="Simulate a chat intake conversation")
    parser.add_argument("--base-url", default=BASE_URL)
    parser.add_argument("--message", action="append", help="Replace the default script (repeatable)")
    parser.add_argument("--no-confirm", action="store_true", help="Stop at the confirmation summary")
    args = parser.parse_args()

    await run_conversation(args.base_url, args.message or DEFAULT_SCRIPT, confirm=not args.no_confirm)


if __name__ == "__main__":
    asyncio.run(main())
