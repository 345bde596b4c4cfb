from __future__ import annotations

import logging
import re
from typing import Any

from slidegen.schemas import SLIDE_LAYOUTS, TOP_LEVEL_KEYS, normalize_hex_color
from slidegen.services.json_extract import parse_json_object


logger = logging.getLogger("slidegen.pipeline")

DEFAULT_LAYOUT = "title-paragraph"
UNTITLED = "Untitled Slide"

_LAYOUT_ALIASES: dict[str, str] = {
    "bullets": "title-bullets",
    "bullet": "title-bullets",
    "title-bullet": "title-bullets",
    "bullet-points": "title-bullets",
    "list": "title-bullets",
    "agenda": "title-bullets",
    "paragraph": "title-paragraph",
    "text": "title-paragraph",
    "title-text": "title-paragraph",
    "content": "title-paragraph",
    "two-columns": "two-column",
    "twocolumn": "two-column",
    "2-column": "two-column",
    "columns": "two-column",
    "comparison": "comparison-table",
    "table": "comparison-table",
    "process": "process-flow",
    "flow": "process-flow",
    "steps": "process-flow",
    "image": "image-right",
    "image-full": "image-right",
    "data-visualization": "chart",
    "graph": "chart",
    "testimonial": "quote",
    "metrics": "metrics-dashboard",
    "dashboard": "metrics-dashboard",
    "mixed": "mixed-content",
    "section-divider": "title",
    "title-only": "title",
    "thanks": "thank-you",
    "thankyou": "thank-you",
    "closing": "thank-you",
}

_KEY_ALIASES: dict[str, str] = {
    "content_items": "contentItems",
    "image_prompt": "imagePrompt",
    "comparison_table": "comparisonTable",
    "process_steps": "processSteps",
    "speakerNotes": "notes",
    "speaker_notes": "notes",
    "bulletPoints": "bullets",
    "bullet_points": "bullets",
    "points": "bullets",
    "body": "paragraph",
    "text": "paragraph",
    "steps": "processSteps",
    "references": "sources",
    "citations": "sources",
}

_ENVELOPE_KEYS = ("slide", "slideSpec", "slide_spec", "spec", "data", "result", "output")
_TITLE_ALIASES = ("heading", "header", "slideTitle", "slide_title", "headline")
_BULLET_TEXT_KEYS = ("text", "content", "point", "item", "title", "label", "value")
_CONTENT_ITEM_TYPES = frozenset({"text", "bullet", "number", "icon", "metric"})
_EMPHASIS = frozenset({"normal", "bold", "italic", "highlight"})
_IMAGE_STYLES = frozenset({"photo", "illustration", "isometric"})
_CHART_TYPE_ALIASES = {"column": "bar", "bar": "bar", "line": "line", "area": "line", "pie": "pie", "doughnut": "pie", "donut": "pie"}
_NUMBER_RE = re.compile(r"^-?\d+(?:\.\d+)?$")


def _clean_str(value: Any) -> str | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        cleaned = value.strip()
        return cleaned or None
    return None


def _text_from_entry(value: Any, keys: tuple[str, ...] = _BULLET_TEXT_KEYS) -> str | None:
    text = _clean_str(value)
    if text is not None:
        return text
    if isinstance(value, dict):
        for key in keys:
            text = _clean_str(value.get(key))
            if text is not None:
                return text
        strings = [row for row in value.values() if isinstance(row, str) and row.strip()]
        if len(strings) == 1:
            return strings[0].strip()
    return None


def _coerce_string_list(value: Any, keys: tuple[str, ...] = _BULLET_TEXT_KEYS) -> list[str] | None:
    if isinstance(value, str):
        value = [line.strip(" -•*\t") for line in value.splitlines()]
    if not isinstance(value, list):
        return None
    out: list[str] = []
    for entry in value:
        text = _text_from_entry(entry, keys)
        if text:
            out.append(text)
    return out


def _coerce_paragraph(value: Any) -> str | None:
    if isinstance(value, list):
        parts = [_text_from_entry(row) for row in value]
        joined = " ".join(part for part in parts if part)
        return joined or None
    return _clean_str(value)


def normalize_layout(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    key = re.sub(r"[\s_]+", "-", value.strip().lower())
    if key in SLIDE_LAYOUTS:
        return key
    return _LAYOUT_ALIASES.get(key)


def infer_layout(payload: dict[str, Any]) -> str:
    if payload.get("bullets"):
        return "title-bullets"
    if payload.get("paragraph"):
        return "title-paragraph"
    if isinstance(payload.get("left"), dict) and isinstance(payload.get("right"), dict):
        return "two-column"
    return DEFAULT_LAYOUT


def _sanitize_side(value: Any) -> dict[str, Any] | None:
    if isinstance(value, str) and value.strip():
        return {"paragraph": value.strip()}
    if not isinstance(value, dict):
        return None
    side: dict[str, Any] = {}
    title = _clean_str(value.get("title"))
    if title is None:
        title = _clean_str(value.get("heading")) or _clean_str(value.get("header"))
    if title is not None:
        side["title"] = title
    bullets = _coerce_string_list(value.get("bullets", value.get("points")))
    if bullets is not None:
        side["bullets"] = bullets
    paragraph = _coerce_paragraph(value.get("paragraph", value.get("text")))
    if paragraph is not None:
        side["paragraph"] = paragraph
    return side


def _sanitize_content_items(value: Any) -> list[dict[str, Any]] | None:
    if not isinstance(value, list):
        return None
    items: list[dict[str, Any]] = []
    for entry in value:
        if isinstance(entry, str):
            if entry.strip():
                items.append({"type": "text", "content": entry.strip()})
            continue
        if not isinstance(entry, dict):
            continue
        content = _text_from_entry(entry, ("content", "text", "value", "label"))
        if not content:
            continue
        item_type = str(entry.get("type") or "text").strip().lower()
        item: dict[str, Any] = {
            "type": item_type if item_type in _CONTENT_ITEM_TYPES else "text",
            "content": content,
        }
        emphasis = str(entry.get("emphasis") or "").strip().lower()
        if emphasis in _EMPHASIS:
            item["emphasis"] = emphasis
        color = normalize_hex_color(entry.get("color"))
        if color:
            item["color"] = color
        icon_name = _clean_str(entry.get("iconName", entry.get("icon_name", entry.get("icon"))))
        if icon_name:
            item["iconName"] = icon_name
        items.append(item)
    return items


def _coerce_number(value: Any) -> float | int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        cleaned = value.strip().replace(",", "").rstrip("%").lstrip("$")
        if _NUMBER_RE.match(cleaned):
            number = float(cleaned)
            return int(number) if number.is_integer() and "." not in cleaned else number
    return None


def _sanitize_chart(value: Any) -> dict[str, Any] | None:
    if not isinstance(value, dict):
        return None
    chart_type = _CHART_TYPE_ALIASES.get(str(value.get("type") or "bar").strip().lower())
    if chart_type is None:
        return None
    categories = _coerce_string_list(value.get("categories", value.get("labels")))
    raw_series = value.get("series")
    if isinstance(raw_series, dict):
        raw_series = [raw_series]
    if not isinstance(raw_series, list):
        data = value.get("data")
        raw_series = [{"name": "Series 1", "data": data}] if isinstance(data, list) else []
    series: list[dict[str, Any]] = []
    for idx, row in enumerate(raw_series):
        if not isinstance(row, dict):
            continue
        data = row.get("data", row.get("values"))
        if not isinstance(data, list):
            continue
        numbers = [_coerce_number(point) for point in data]
        if any(point is None for point in numbers):
            continue
        name = _clean_str(row.get("name", row.get("label"))) or f"Series {idx + 1}"
        series.append({"name": name, "data": numbers})
    if categories is None or not series:
        return None
    return {"type": chart_type, "categories": categories, "series": series}


def _sanitize_timeline(value: Any) -> list[dict[str, Any]] | None:
    if not isinstance(value, list):
        return None
    entries: list[dict[str, Any]] = []
    for row in value:
        if not isinstance(row, dict):
            continue
        date = _clean_str(row.get("date", row.get("period", row.get("year"))))
        title = _clean_str(row.get("title", row.get("event", row.get("label"))))
        if not date or not title:
            continue
        entry: dict[str, Any] = {"date": date, "title": title}
        description = _coerce_paragraph(row.get("description"))
        if description:
            entry["description"] = description
        if isinstance(row.get("milestone"), bool):
            entry["milestone"] = row["milestone"]
        entries.append(entry)
    return entries


def _sanitize_table(value: Any) -> dict[str, Any] | None:
    if not isinstance(value, dict):
        return None
    columns = _coerce_string_list(value.get("columns", value.get("headers")))
    if not columns:
        return None
    rows: list[list[str]] = []
    for row in value.get("rows") or []:
        if isinstance(row, dict):
            row = [row.get(col, "") for col in columns]
        if not isinstance(row, list):
            continue
        rows.append([_clean_str(cell) or "" for cell in row])
    return {"columns": columns, "rows": rows}


def _sanitize_process_steps(value: Any) -> list[dict[str, Any]] | None:
    if not isinstance(value, list):
        return None
    steps: list[dict[str, Any]] = []
    for row in value:
        if isinstance(row, str):
            if row.strip():
                steps.append({"title": row.strip()})
            continue
        if not isinstance(row, dict):
            continue
        title = _clean_str(row.get("title", row.get("name", row.get("label"))))
        if not title:
            continue
        step: dict[str, Any] = {"title": title}
        description = _coerce_paragraph(row.get("description"))
        if description:
            step["description"] = description
        steps.append(step)
    return steps


def _sanitize_design(value: Any) -> dict[str, Any] | None:
    if not isinstance(value, dict):
        return None
    design: dict[str, Any] = {}
    theme = _clean_str(value.get("theme"))
    if theme:
        design["theme"] = theme
    brand = value.get("brand") if isinstance(value.get("brand"), dict) else {}
    accent = normalize_hex_color(value.get("accentColor", value.get("accent", brand.get("accent"))))
    if accent:
        design["accentColor"] = accent
    background = _clean_str(value.get("backgroundStyle", value.get("background")))
    if background:
        design["backgroundStyle"] = background
    image_style = str(value.get("imageStyle") or "").strip().lower()
    if image_style in _IMAGE_STYLES:
        design["imageStyle"] = image_style
    return design


def _unwrap_envelope(payload: dict[str, Any]) -> dict[str, Any]:
    for _ in range(3):
        if "title" in payload or "layout" in payload:
            return payload
        slides = payload.get("slides")
        if isinstance(slides, list) and slides and isinstance(slides[0], dict):
            payload = slides[0]
            continue
        inner = next((payload[key] for key in _ENVELOPE_KEYS if isinstance(payload.get(key), dict)), None)
        if inner is None:
            return payload
        payload = inner
    return payload


def _has_content(payload: dict[str, Any]) -> bool:
    return any(payload.get(key) for key in TOP_LEVEL_KEYS if key not in {"title", "layout"})


_FIELD_SANITIZERS = {
    "bullets": _coerce_string_list,
    "paragraph": _coerce_paragraph,
    "left": _sanitize_side,
    "right": _sanitize_side,
    "contentItems": _sanitize_content_items,
    "imagePrompt": _coerce_paragraph,
    "notes": lambda value: "\n".join(value) if isinstance(value, list) and all(isinstance(v, str) for v in value) else _clean_str(value),
    "sources": lambda value: _coerce_string_list(value, ("url", "title", "name", "text", "source")),
    "chart": _sanitize_chart,
    "timeline": _sanitize_timeline,
    "comparisonTable": _sanitize_table,
    "processSteps": _sanitize_process_steps,
    "design": _sanitize_design,
}


def sanitize_ai_response(raw: Any) -> dict[str, Any]:
    """Best-effort repair of provider output into SlideSpec shape. Never raises."""
    try:
        return _sanitize(raw)
    except Exception as exc:  # noqa: BLE001 - recovery must not raise
        logger.warning("sanitize_failed reason=%s", exc)
        return {}


def _sanitize(raw: Any) -> dict[str, Any]:
    if isinstance(raw, str):
        raw = parse_json_object(raw) or {}
    if isinstance(raw, list):
        raw = next((row for row in raw if isinstance(row, dict)), {})
    if not isinstance(raw, dict):
        return {}

    payload = _unwrap_envelope(raw)
    renamed: dict[str, Any] = {}
    for key, value in payload.items():
        target = _KEY_ALIASES.get(key, key)
        if target in renamed and key != target:
            continue
        renamed[target] = value

    out: dict[str, Any] = {}
    for key in TOP_LEVEL_KEYS:
        if key in ("title", "layout") or renamed.get(key) is None:
            continue
        cleaned = _FIELD_SANITIZERS[key](renamed[key])
        if cleaned is not None:
            out[key] = cleaned

    title = _clean_str(renamed.get("title"))
    if title is None:
        title = next((t for t in (_clean_str(renamed.get(alias)) for alias in _TITLE_ALIASES) if t), None)
    if title is None and _has_content(out):
        title = UNTITLED
    layout = normalize_layout(renamed.get("layout")) or infer_layout(out)

    result: dict[str, Any] = {}
    if title is not None:
        result["title"] = title
    result["layout"] = layout
    result.update(out)
    return result
