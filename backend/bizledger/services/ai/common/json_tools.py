"""Lenient JSON recovery for LLM replies (code fences, chatter, trailing text)."""

from __future__ import annotations

import json
import logging
import re

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)

_PAIRS = {"{": "}", "[": "]"}


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or *text* unchanged."""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text


def extract_json(text: str) -> dict | list | None:
    """Return the first JSON object or array found in *text*, else ``None``.

    Tries the whole (fence-stripped) reply first, then scans for an opening
    ``{`` / ``[`` and parses the balanced span that starts there.
    """
    if not text or not text.strip():
        return None

    body = strip_code_fences(text.strip())

    try:
        return json.loads(body)
    except ValueError:
        pass

    for start, ch in enumerate(body):
        if ch not in _PAIRS:
            continue
        span = _balanced_span(body, start)
        if span is None:
            continue
        try:
            return json.loads(span)
        except ValueError:
            logger.debug("Skipping unparsable JSON span at offset %d", start)
            continue

    return None


def _balanced_span(text: str, start: int) -> str | None:
    """Return ``text[start:end]`` where the bracket opened at *start* closes."""
    opener = text[start]
    closer = _PAIRS[opener]
    depth = 0
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        ch = text[i]

        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    return None
