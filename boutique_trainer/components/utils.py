import json
import re
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict

FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL | re.IGNORECASE)


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def new_session_id(prefix: str = "session") -> str:
    """
    Time-based session id.

    The millisecond timestamp keeps ids sortable by start time, the random
    suffix keeps two sessions started in the same millisecond apart.
    """
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def strip_code_fences(text: str) -> str:
    """Return the body of a ```json ... ``` block if the text holds one, else the stripped text."""
    if not text:
        return ""
    match = FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of a model reply.

    Accepts plain JSON, JSON wrapped in a Markdown fence, or JSON preceded or
    followed by prose (the outermost {...} span is tried).

    Raises:
        ValueError: if no JSON object can be recovered
    """
    body = strip_code_fences(text)
    try:
        parsed = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        start = body.find("{")
        end = body.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("no JSON object found in model reply")
        try:
            parsed = json.loads(body[start:end + 1])
        except json.JSONDecodeError as e:
            raise ValueError(f"invalid JSON in model reply: {e}") from e

    if not isinstance(parsed, dict):
        raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
    return parsed
