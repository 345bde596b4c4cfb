from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from slidegen.schemas import LAYOUT_CONTENT_FIELDS, SHARED_FIELDS, SlideSide, SlideSpec, missing_layout_fields
from slidegen.services.sanitizer import infer_layout


logger = logging.getLogger("slidegen.pipeline")

ELLIPSIS = "…"


@dataclass(frozen=True)
class ContentBudget:
    max_bullets: int
    max_bullet_chars: int
    max_paragraph_chars: int


CONTENT_BUDGETS: dict[str, ContentBudget] = {
    "short": ContentBudget(max_bullets=3, max_bullet_chars=80, max_paragraph_chars=300),
    "medium": ContentBudget(max_bullets=5, max_bullet_chars=120, max_paragraph_chars=600),
    "long": ContentBudget(max_bullets=7, max_bullet_chars=160, max_paragraph_chars=1000),
}


def truncate_text(text: str, limit: int) -> str:
    """Cut ``text`` to at most ``limit`` characters on a word boundary, ending in an ellipsis."""
    if len(text) <= limit:
        return text
    if limit <= len(ELLIPSIS):
        return ELLIPSIS[:limit]
    room = limit - len(ELLIPSIS)
    cut = text[:room]
    if not text[room].isspace():
        boundary = cut.rfind(" ")
        if boundary > room // 2:
            cut = cut[:boundary]
    return cut.rstrip(" ,;:.-") + ELLIPSIS


def _budget_bullets(bullets: list[str] | None, budget: ContentBudget) -> list[str] | None:
    if bullets is None:
        return None
    return [truncate_text(row, budget.max_bullet_chars) for row in bullets[: budget.max_bullets]]


def _budget_paragraph(paragraph: str | None, budget: ContentBudget) -> str | None:
    if paragraph is None:
        return None
    return truncate_text(paragraph, budget.max_paragraph_chars)


def _budget_side(side: SlideSide | None, budget: ContentBudget) -> SlideSide | None:
    if side is None:
        return None
    return side.model_copy(
        update={
            "bullets": _budget_bullets(side.bullets, budget),
            "paragraph": _budget_paragraph(side.paragraph, budget),
        }
    )


def apply_content_budget(spec: SlideSpec, content_length: str = "medium") -> SlideSpec:
    """Trim bullets and paragraphs to the preset for ``content_length``; no model call."""
    budget = CONTENT_BUDGETS.get(content_length, CONTENT_BUDGETS["medium"])
    return spec.model_copy(
        update={
            "bullets": _budget_bullets(spec.bullets, budget),
            "paragraph": _budget_paragraph(spec.paragraph, budget),
            "left": _budget_side(spec.left, budget),
            "right": _budget_side(spec.right, budget),
        }
    )


def conform_to_layout(spec: SlideSpec, *, request_id: str | None = None) -> SlideSpec:
    """Make the populated fields match what the declared layout can render.

    A layout whose required fields are missing is replaced by one inferred
    from the content; fields the final layout does not use are dropped.
    """
    payload = spec.to_payload()
    layout = spec.layout
    missing = missing_layout_fields(payload, layout)
    if missing:
        inferred = infer_layout(payload)
        logger.warning(
            "layout_conform_reinferred request=%s declared=%s inferred=%s missing=%s",
            request_id or "n/a",
            layout,
            inferred,
            ",".join(missing),
        )
        layout = inferred

    allowed = SHARED_FIELDS | LAYOUT_CONTENT_FIELDS[layout]
    dropped = [key for key in payload if key not in allowed]
    if not dropped and layout == spec.layout:
        return spec
    if dropped:
        logger.info(
            "layout_conform_dropped request=%s layout=%s dropped=%s",
            request_id or "n/a",
            layout,
            ",".join(dropped),
        )
    update: dict[str, Any] = {
        name: None for name, field in SlideSpec.model_fields.items() if field.alias in dropped
    }
    update["layout"] = layout
    return spec.model_copy(update=update)
