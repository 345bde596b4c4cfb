from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from slidegen.errors import ValidationError
from slidegen.schemas import TOP_LEVEL_KEYS, SlideSpec, ValidationResult


logger = logging.getLogger("slidegen.pipeline")


def _format_loc(loc: tuple[Any, ...]) -> str:
    parts: list[str] = []
    for item in loc:
        if isinstance(item, int):
            parts.append(f"[{item}]")
        elif parts:
            parts.append(f".{item}")
        else:
            parts.append(str(item))
    return "".join(parts) or "root"


def format_validation_errors(exc: PydanticValidationError) -> list[str]:
    messages: list[str] = []
    for err in exc.errors(include_url=False):
        path = _format_loc(tuple(err.get("loc") or ()))
        kind = err.get("type")
        if kind == "extra_forbidden":
            messages.append(f"{path}: Unexpected field")
            continue
        msg = str(err.get("msg") or "invalid value")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, ") :]
        messages.append(f"{path}: {msg}")
    return messages


def safe_validate_slide_spec(candidate: Any) -> ValidationResult:
    """Validate ``candidate`` against the SlideSpec shape without raising."""
    if isinstance(candidate, SlideSpec):
        return ValidationResult(success=True, data=candidate)
    if not isinstance(candidate, dict):
        return ValidationResult(
            success=False,
            errors=[f"root: expected a JSON object, got {type(candidate).__name__}"],
        )
    try:
        spec = SlideSpec.model_validate(candidate)
    except PydanticValidationError as exc:
        return ValidationResult(success=False, errors=format_validation_errors(exc))
    return ValidationResult(success=True, data=spec)


def validate_slide_spec(candidate: Any) -> SlideSpec:
    result = safe_validate_slide_spec(candidate)
    if not result.success or result.data is None:
        raise ValidationError("Slide spec failed validation", result.errors)
    return result.data


def build_minimal_viable_spec(candidate: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Keep title and layout plus every optional field that validates on its own.

    Returns the reduced payload and the names of the fields that were dropped.
    """
    base = {"title": candidate.get("title"), "layout": candidate.get("layout")}
    kept = dict(base)
    dropped: list[str] = []
    for key in TOP_LEVEL_KEYS:
        if key in base or key not in candidate:
            continue
        candidate_payload = {**base, key: candidate[key]}
        if safe_validate_slide_spec(candidate_payload).success:
            kept[key] = candidate[key]
        else:
            dropped.append(key)
    if dropped:
        logger.warning(
            "minimal_viable_spec_dropped_fields title=%s layout=%s dropped=%s",
            base.get("title"),
            base.get("layout"),
            ",".join(dropped),
        )
    return kept, dropped
