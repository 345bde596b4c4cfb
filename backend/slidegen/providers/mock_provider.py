from __future__ import annotations

import json
import re
from typing import Any

from slidegen.providers.base import BaseLLMProvider, CompletionRequest
from slidegen.services.fallbacks import create_fallback_content, create_fallback_title, generate_fallback_image_prompt
from slidegen.services.json_extract import extract_json_object
from slidegen.services.validation import safe_validate_slide_spec


_LINE_RE = re.compile(r"^(?P<key>[A-Z_]+): (?P<value>.*)$", re.MULTILINE)


def _prompt_fields(text: str) -> dict[str, str]:
    return {match.group("key"): match.group("value") for match in _LINE_RE.finditer(text)}


def _current_slide(fields: dict[str, str]) -> dict[str, Any]:
    raw = extract_json_object(fields.get("CURRENT_SLIDE", ""))
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


class MockProvider(BaseLLMProvider):
    """Offline provider answering every stage with deterministic JSON."""

    name = "mock"
    default_model = "mock-slide-v1"
    fallback_model = "mock-slide-v1-fallback"

    def __init__(self) -> None:
        self.calls: list[CompletionRequest] = []

    async def complete(self, request: CompletionRequest) -> str:
        self.calls.append(request)
        user = next((row["content"] for row in reversed(request.messages) if row.get("role") == "user"), "")
        fields = _prompt_fields(user)
        task = fields.get("TASK", "").lower()

        if "image prompt for each" in task:
            slides = json.loads(fields.get("SLIDES", "[]") or "[]")
            return json.dumps(
                {
                    "imagePrompts": [
                        generate_fallback_image_prompt(
                            safe_validate_slide_spec(
                                {"title": row.get("title") or "Slide", "layout": row.get("layout") or "title-bullets"}
                            ).data
                        )
                        for row in slides
                    ]
                }
            )

        current = _current_slide(fields)
        if "image generation prompt" in task:
            spec = safe_validate_slide_spec(current).data
            current["imagePrompt"] = generate_fallback_image_prompt(spec)
            return json.dumps(current)
        if current:
            return json.dumps(current)

        brief = fields.get("BRIEF", "Untitled topic")
        bullets, paragraph = create_fallback_content(brief)
        return json.dumps(
            {
                "title": create_fallback_title(brief),
                "layout": "title-bullets",
                "bullets": bullets,
                "paragraph": paragraph,
                "notes": f"Offline draft generated for: {brief}",
            }
        )
