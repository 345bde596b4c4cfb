from __future__ import annotations

import logging
import re
from typing import Any

from slidegen.schemas import SlideSpec, missing_layout_fields
from slidegen.services.sanitizer import infer_layout
from slidegen.services.validation import validate_slide_spec


logger = logging.getLogger("slidegen.pipeline")

FALLBACK_NOTICE = "FALLBACK CONTENT NOTICE"
FALLBACK_SOURCES = ["Structured fallback content generation", "Prompt analysis system"]

_KEY_TERMS_RE = re.compile(
    r"\b(?:revenue|growth|performance|results|analysis|strategy|improvement|increase|decrease)\b|\d+%|\$[\d,]+",
    re.IGNORECASE,
)

# (keywords, bullets, paragraph); first match wins.
_CONTENT_TEMPLATES: list[tuple[tuple[str, ...], list[str], str]] = [
    (
        ("revenue", "sales", "growth"),
        ["Revenue performance & key metrics", "Growth trends & opportunities", "Strategic recommendations"],
        "This slide focuses on revenue and growth analysis: performance metrics, market trends, and strategic opportunities.",
    ),
    (
        ("team", "people", "organization"),
        ["Team structure & roles", "Core responsibilities", "Collaboration strategies"],
        "This slide outlines team structure, roles, and collaboration patterns to achieve objectives efficiently.",
    ),
    (
        ("data", "analytics", "metrics"),
        ["KPIs & analysis", "Insights and trends", "Data-informed next steps"],
        "This slide presents KPIs and insights that inform strategic decision-making and prioritization.",
    ),
    (
        ("strategy", "plan", "roadmap"),
        ["Objectives & initiatives", "Timeline & milestones", "Success metrics"],
        "This slide frames strategic objectives, implementation approach, milestones, and success measurement criteria.",
    ),
    (
        ("problem", "challenge", "issue"),
        ["Root-cause analysis", "Impact assessment", "Mitigation strategies"],
        "This slide identifies key challenges, explores root causes, and proposes practical mitigation strategies.",
    ),
]
_GENERIC_BULLETS = ["Key points & objectives", "Current status updates", "Next steps & owners"]
_GENERIC_PARAGRAPH = "This slide summarizes key points, current status, and actionable next steps to maintain momentum."

_IMAGE_THEMES: list[tuple[tuple[str, ...], str]] = [
    (("team", "people", "collaboration"), "diverse team collaborating in a modern office, natural lighting, candid perspective"),
    (("data", "analytics", "chart"), "clean data dashboard aesthetics, subtle graphs, depth-of-field, neutral palette"),
    (("growth", "success", "increase"), "symbolic upward momentum, abstract ascending lines and arrows, optimistic composition"),
    (("technology", "digital", "innovation"), "sleek technology interface visuals, soft bokeh lights, futuristic yet business-credible"),
    (("strategy", "plan", "roadmap"), "strategic planning ambience, table with documents, subtle roadmap iconography"),
]
_GENERIC_IMAGE_THEME = "clean corporate environment, minimalist modern office, balanced negative space"


def create_fallback_title(prompt: str) -> str:
    title = prompt.strip()
    if len(title) > 60:
        key_terms = [match.group(0) for match in _KEY_TERMS_RE.finditer(title)]
        title = f"{' '.join(key_terms[:3])} Overview" if key_terms else title[:57] + "..."
    return title[:1].upper() + title[1:]


def create_fallback_content(prompt: str) -> tuple[list[str], str]:
    lowered = prompt.lower()
    for keywords, bullets, paragraph in _CONTENT_TEMPLATES:
        if any(word in lowered for word in keywords):
            return list(bullets), paragraph
    return list(_GENERIC_BULLETS), _GENERIC_PARAGRAPH


def choose_fallback_layout(prompt: str) -> str:
    lowered = prompt.lower()
    if any(word in lowered for word in ("data", "chart", "metrics")):
        return "title-paragraph"
    return "title-bullets"


def fallback_notes(prompt: str) -> str:
    return (
        f"{FALLBACK_NOTICE}: This slide was generated via structured fallback because the AI service "
        "could not produce a valid response.\n\n"
        f'ORIGINAL REQUEST: "{prompt.strip()}"\n\n'
        "PRESENTATION GUIDANCE:\n"
        "- Use the bullets as a scaffold and add domain examples\n"
        "- Include data or proof points where possible\n"
        "- Tailor to the audience's priorities\n\n"
        "RECOMMENDED ACTIONS:\n"
        "- Refine messaging with concrete outcomes\n"
        "- Re-run generation when the AI service is available"
    )


def create_fallback_spec(prompt: str, previous: SlideSpec | None = None) -> SlideSpec:
    """Network-free slide for when content generation exhausts every model attempt."""
    bullets, paragraph = create_fallback_content(prompt)
    payload: dict[str, Any] = {
        "title": create_fallback_title(prompt),
        "layout": choose_fallback_layout(prompt),
        "bullets": bullets,
        "paragraph": paragraph,
        "notes": fallback_notes(prompt),
        "sources": list(FALLBACK_SOURCES),
    }
    if previous is not None and previous.design is not None:
        payload["design"] = previous.design.model_dump(by_alias=True, exclude_none=True)
    return validate_slide_spec(payload)


def generate_fallback_image_prompt(spec: SlideSpec | None) -> str:
    title = spec.title if spec is not None else "Business Presentation"
    body = ""
    layout = "title-bullets"
    accent = None
    if spec is not None:
        body = spec.paragraph or " ".join(spec.bullets or [])
        layout = spec.layout
        accent = spec.design.accent_color if spec.design is not None else None

    haystack = f"{title} {body} {layout}".lower()
    theme = next(
        (phrase for keywords, phrase in _IMAGE_THEMES if any(word in haystack for word in keywords)),
        _GENERIC_IMAGE_THEME,
    )
    hint = f", hint of {accent}" if accent else ""
    return f"Professional business slide background, {theme}{hint}, high resolution, editorial style, no text in image"


def append_note(spec: SlideSpec, note: str) -> SlideSpec:
    notes = f"{spec.notes}\n\n{note}" if spec.notes else note
    return spec.model_copy(update={"notes": notes})


def degrade_layout(previous: SlideSpec, reason: str | None = None) -> SlideSpec:
    """Keep the previous slide; its layout stays when the content fills it, else one is inferred."""
    payload = previous.to_payload()
    safe_layout = previous.layout
    if missing_layout_fields(payload, safe_layout):
        safe_layout = infer_layout(payload)
    degraded = previous.model_copy(update={"layout": safe_layout})
    detail = f" ({reason})" if reason else ""
    logger.warning(
        "layout_degraded from=%s to=%s reason=%s",
        previous.layout,
        safe_layout,
        reason,
    )
    return append_note(
        degraded,
        f"{FALLBACK_NOTICE}: layout refinement was unavailable{detail}; a safe {safe_layout} layout was applied.",
    )


def degrade_image_prompt(previous: SlideSpec, reason: str | None = None) -> SlideSpec:
    prompt = generate_fallback_image_prompt(previous)
    updated = previous.model_copy(update={"image_prompt": prompt})
    detail = f" ({reason})" if reason else ""
    return append_note(
        updated,
        f"{FALLBACK_NOTICE}: the image prompt was generated heuristically{detail}.",
    )
