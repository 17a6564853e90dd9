"""Pull a JSON value out of free-form model output.

Models asked for "JSON only" still wrap it in prose or ``` fences now and then,
so we scan for the first balanced {...} or [...] and parse just that.
"""

import json
from typing import Any, Optional

from ..errors import ParseFailure

_OPENERS = {"{": "}", "[": "]"}


def find_balanced_json(text: str) -> Optional[str]:
    """
    Returns the first balanced JSON object/array substring, or None.
    Brackets inside string literals are ignored.
    """
    start = -1
    stack = []
    in_string = False
    escaped = False

    for i, ch in enumerate(text):
        if start == -1:
            if ch in _OPENERS:
                start = i
                stack.append(_OPENERS[ch])
            continue

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
        elif ch in _OPENERS:
            stack.append(_OPENERS[ch])
        elif ch in ("}", "]"):
            if not stack or ch != stack[-1]:
                # Mismatched closer: restart the scan after the bad opener
                return find_balanced_json(text[start + 1:])
            stack.pop()
            if not stack:
                return text[start:i + 1]

    if start != -1:
        # Opener never closed; maybe a later value is complete
        return find_balanced_json(text[start + 1:])
    return None


def extract_json(text: str) -> Any:
    """
    Parses `text` as JSON, falling back to the first balanced substring.
    Raises ParseFailure when nothing parseable is found.
    """
    stripped = (text or "").strip()
    if not stripped:
        raise ParseFailure("Model returned empty output.", raw=text or "")

    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        pass

    candidate = find_balanced_json(stripped)
    if candidate is None:
        raise ParseFailure("Model did not return JSON.", raw=stripped)

    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ParseFailure(f"Model returned malformed JSON: {e}", raw=stripped) from e
