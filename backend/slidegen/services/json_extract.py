from __future__ import annotations

import json
import re
from typing import Any


_FENCE_STRIP_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def extract_json_object(text_block: str | None) -> str | None:
    """Return the first balanced ``{...}`` substring of ``text_block``.

    Braces inside string literals (including escaped quotes) do not count
    towards the depth. Returns ``None`` when no object closes.
    """
    raw = str(text_block or "")
    start = raw.find("{")
    while start >= 0:
        depth = 0
        in_string = False
        escaped = False
        for idx in range(start, len(raw)):
            char = raw[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return raw[start : idx + 1]
        # Unbalanced from this opening brace; try the next one.
        start = raw.find("{", start + 1)
    return None


def repair_json_candidate(text_block: str) -> str:
    out: list[str] = []
    in_string = False
    escaped = False
    for char in str(text_block):
        if escaped:
            out.append(char)
            escaped = False
            continue
        if char == "\\":
            out.append(char)
            escaped = True
            continue
        if char == '"':
            out.append(char)
            in_string = not in_string
            continue
        if in_string and char in ("\r", "\n"):
            out.append("\\n")
            continue
        out.append(char)
    repaired = "".join(out)
    return re.sub(r",(\s*[}\]])", r"\1", repaired)


def parse_json_object(text_block: str | None) -> dict[str, Any] | None:
    """Parse provider text into a dict, tolerating fences, prose and trailing commas."""
    raw = str(text_block or "").strip()
    if not raw:
        return None
    try:
        payload = json.loads(raw)
        if isinstance(payload, dict):
            return payload
    except ValueError:
        pass

    candidates: list[str] = []
    cleaned = _FENCE_STRIP_RE.sub("", raw).strip()
    if cleaned and cleaned != raw:
        candidates.append(cleaned)
    extracted = extract_json_object(cleaned or raw)
    if extracted and extracted not in candidates:
        candidates.append(extracted)

    for candidate in candidates:
        for attempt in (candidate, repair_json_candidate(candidate)):
            try:
                payload = json.loads(attempt)
            except ValueError:
                continue
            if isinstance(payload, dict):
                return payload
    return None
