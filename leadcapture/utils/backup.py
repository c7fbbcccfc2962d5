"""
Local submission backup - append-only JSON lines, one record per submission attempt.
Written whatever the remote outcome, so a lead is never silently lost.
"""
import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from leadcapture.utils.logging import get_correlation_id

logger = logging.getLogger(__name__)


def _append_line(path: Path, line: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fh:
        fh.write(line + "\n")


async def record_submission_attempt(
    path: str,
    conversation_token: str,
    lead: dict,
    outcome: str,
    error: Optional[str] = None,
) -> bool:
    """
    Append one attempt to the backup file.
    outcome: stored, fallback, failed
    """
    entry = {
        "recorded_at": datetime.now(timezone.utc).isoformat(),
        "conversation_token": conversation_token,
        "correlation_id": get_correlation_id(),
        "outcome": outcome,
        "error": error,
        "lead": lead,
    }
    try:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, _append_line, Path(path), json.dumps(entry, default=str))
        return True
    except OSError as e:
        logger.error("Submission backup write failed: %s", str(e))
        return False


def read_submission_backup(path: str) -> list[dict]:
    """Load every backed-up attempt (used by scripts and tests)."""
    file_path = Path(path)
    if not file_path.exists():
        return []
    entries = []
    with file_path.open(encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if line:
                entries.append(json.loads(line))
    return entries
