"""Best-effort recovery of JSON payloads from free-form LLM text."""

from __future__ import annotations

import json
import re

from reconcile_engine.exceptions import MalformedOutputError

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def strip_fences(text: str) -> str:
    match = _FENCE_RE.search(text)
    return match.group(1).strip() if match else text.strip()


def extract_json_fragment(text: str) -> str | None:
    """Return the first balanced {...} or [...] block, honoring string literals.

    An unbalanced block is returned up to the end of the text.
    """
    start = -1
    for i, ch in enumerate(text):
        if ch in "{[":
            start = i
            break
    if start < 0:
        return None

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
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return text[start:]


def repair_json(fragment: str) -> str:
    """Remove trailing commas and close any brackets left open."""
    repaired = _TRAILING_COMMA_RE.sub(r"\1", fragment)

    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in repaired:
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
        elif ch == "{":
            stack.append("}")
        elif ch == "[":
            stack.append("]")
        elif ch in "}]" and stack:
            stack.pop()

    if in_string:
        repaired += '"'
    repaired = repaired.rstrip().rstrip(",")
    return repaired + "".join(reversed(stack))


def parse_json_response(text: str):
    """Parse an LLM response into a JSON value, repairing common damage.

    Raises MalformedOutputError when nothing usable can be recovered.
    """
    if not text or not text.strip():
        raise MalformedOutputError("Empty LLM response")

    cleaned = strip_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    fragment = extract_json_fragment(cleaned)
    if fragment is None:
        raise MalformedOutputError("No JSON object or array in LLM response")

    for candidate in (fragment, repair_json(fragment)):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    raise MalformedOutputError("Unrecoverable JSON in LLM response")
