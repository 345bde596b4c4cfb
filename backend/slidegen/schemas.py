from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from slidegen.cancellation import CancellationToken


SLIDE_LAYOUTS: tuple[str, ...] = (
    "title",
    "title-bullets",
    "title-paragraph",
    "two-column",
    "image-right",
    "image-left",
    "quote",
    "chart",
    "timeline",
    "process-flow",
    "comparison-table",
    "before-after",
    "problem-solution",
    "mixed-content",
    "metrics-dashboard",
    "thank-you",
)

SlideLayout = Literal[
    "title",
    "title-bullets",
    "title-paragraph",
    "two-column",
    "image-right",
    "image-left",
    "quote",
    "chart",
    "timeline",
    "process-flow",
    "comparison-table",
    "before-after",
    "problem-solution",
    "mixed-content",
    "metrics-dashboard",
    "thank-you",
]

TOP_LEVEL_KEYS: tuple[str, ...] = (
    "title",
    "layout",
    "bullets",
    "paragraph",
    "left",
    "right",
    "contentItems",
    "imagePrompt",
    "notes",
    "sources",
    "chart",
    "timeline",
    "comparisonTable",
    "processSteps",
    "design",
)

# Fields that are not tied to any layout and survive layout conformance.
SHARED_FIELDS: frozenset[str] = frozenset({"title", "layout", "notes", "sources", "design", "imagePrompt"})

LAYOUT_CONTENT_FIELDS: dict[str, frozenset[str]] = {
    "title": frozenset({"paragraph"}),
    "title-bullets": frozenset({"bullets", "paragraph"}),
    "title-paragraph": frozenset({"paragraph"}),
    "two-column": frozenset({"left", "right"}),
    "image-right": frozenset({"bullets", "paragraph"}),
    "image-left": frozenset({"bullets", "paragraph"}),
    "quote": frozenset({"paragraph"}),
    "chart": frozenset({"chart", "bullets", "paragraph"}),
    "timeline": frozenset({"timeline"}),
    "process-flow": frozenset({"processSteps", "paragraph"}),
    "comparison-table": frozenset({"comparisonTable", "paragraph"}),
    "before-after": frozenset({"left", "right"}),
    "problem-solution": frozenset({"left", "right"}),
    "mixed-content": frozenset({"contentItems", "bullets", "paragraph"}),
    "metrics-dashboard": frozenset({"contentItems", "chart", "paragraph"}),
    "thank-you": frozenset({"paragraph"}),
}

REQUIRED_LAYOUT_FIELDS: dict[str, tuple[str, ...]] = {
    "chart": ("chart",),
    "timeline": ("timeline",),
    "process-flow": ("processSteps",),
    "comparison-table": ("comparisonTable",),
    "two-column": ("left", "right"),
    "before-after": ("left", "right"),
    "problem-solution": ("left", "right"),
    "mixed-content": ("contentItems",),
    "metrics-dashboard": ("contentItems",),
}


def missing_layout_fields(payload: dict[str, Any], layout: str) -> list[str]:
    """Required fields of ``layout`` that are absent or empty in ``payload``."""
    return [
        field
        for field in REQUIRED_LAYOUT_FIELDS.get(layout, ())
        if payload.get(field) is None or payload.get(field) == [] or payload.get(field) == {}
    ]

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def normalize_hex_color(value: Any) -> str | None:
    """Return ``#RRGGBB`` for 3- or 6-digit hex input, ``None`` otherwise."""
    if not isinstance(value, str):
        return None
    match = _HEX_RE.match(value.strip())
    if not match:
        return None
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return "#" + digits.upper()


def _hex_color(value: str) -> str:
    normalized = normalize_hex_color(value)
    if normalized is None:
        raise ValueError(f"Invalid color '{value}': expected 3- or 6-digit hex")
    return normalized


def _non_blank(value: str) -> str:
    if not value:
        raise ValueError("must be a non-empty string")
    return value


HexColor = Annotated[str, AfterValidator(_hex_color)]
NonBlankStr = Annotated[str, AfterValidator(_non_blank)]


class SpecModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        strict=True,
        frozen=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )


class SlideSide(SpecModel):
    title: str | None = None
    bullets: list[NonBlankStr] | None = None
    paragraph: str | None = None


class ContentItem(SpecModel):
    type: Literal["text", "bullet", "number", "icon", "metric"]
    content: NonBlankStr
    emphasis: Literal["normal", "bold", "italic", "highlight"] | None = None
    color: HexColor | None = None
    icon_name: str | None = None


class ChartSeries(SpecModel):
    name: str
    data: list[float]


class ChartSpec(SpecModel):
    type: Literal["bar", "line", "pie"]
    categories: list[str]
    series: list[ChartSeries] = Field(min_length=1)

    @model_validator(mode="after")
    def _check_series_shape(self) -> "ChartSpec":
        if self.type == "pie":
            if len(self.series) != 1:
                raise ValueError(f"pie chart requires exactly one series, got {len(self.series)}")
            return self
        expected = len(self.categories)
        for idx, row in enumerate(self.series):
            if len(row.data) != expected:
                raise ValueError(
                    f"series[{idx}].data has {len(row.data)} values but there are {expected} categories"
                )
        return self


class TimelineEntry(SpecModel):
    date: NonBlankStr
    title: NonBlankStr
    description: str | None = None
    milestone: bool | None = None


class ComparisonTable(SpecModel):
    columns: list[str] = Field(min_length=1)
    rows: list[list[str]]

    @model_validator(mode="after")
    def _check_row_width(self) -> "ComparisonTable":
        width = len(self.columns)
        for idx, row in enumerate(self.rows):
            if len(row) != width:
                raise ValueError(f"rows[{idx}] has {len(row)} cells but there are {width} columns")
        return self


class ProcessStep(SpecModel):
    title: NonBlankStr
    description: str | None = None


class DesignHints(SpecModel):
    theme: str | None = None
    accent_color: HexColor | None = None
    background_style: str | None = None
    image_style: Literal["photo", "illustration", "isometric"] | None = None


class SlideSpec(SpecModel):
    title: NonBlankStr
    layout: SlideLayout
    bullets: list[NonBlankStr] | None = None
    paragraph: str | None = None
    left: SlideSide | None = None
    right: SlideSide | None = None
    content_items: list[ContentItem] | None = None
    image_prompt: str | None = None
    notes: str | None = None
    sources: list[NonBlankStr] | None = None
    chart: ChartSpec | None = None
    timeline: list[TimelineEntry] | None = None
    comparison_table: ComparisonTable | None = None
    process_steps: list[ProcessStep] | None = None
    design: DesignHints | None = None

    def to_payload(self) -> dict[str, Any]:
        """Wire form: camelCase keys, unset fields omitted."""
        return self.model_dump(by_alias=True, exclude_none=True)


class PipelineStage(str, Enum):
    CONTENT_GENERATION = "content_generation"
    LAYOUT_REFINEMENT = "layout_refinement"
    IMAGE_PROMPT_GENERATION = "image_prompt_generation"
    FINAL_REFINEMENT = "final_refinement"


class BrandHints(BaseModel):
    primary_color: str | None = None
    secondary_color: str | None = None
    font: str | None = None
    logo_url: str | None = None

    @field_validator("primary_color", "secondary_color")
    @classmethod
    def _normalize_color(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _hex_color(value)


class GenerationParams(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    prompt: str = Field(min_length=3, max_length=4000)
    audience: str | None = None
    tone: Literal[
        "professional",
        "casual",
        "persuasive",
        "educational",
        "inspiring",
        "authoritative",
        "friendly",
        "urgent",
        "confident",
        "analytical",
        "executive",
        "technical",
    ] | None = None
    content_length: Literal["short", "medium", "long"] = "medium"
    with_image: bool = False
    brand: BrandHints | None = None
    language: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    timeout_seconds: float | None = Field(default=None, gt=0)
    max_tokens: int | None = Field(default=None, gt=0)
    cancel_token: CancellationToken | None = Field(default=None, exclude=True, repr=False)

    @field_validator("prompt")
    @classmethod
    def _strip_prompt(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 3:
            raise ValueError("prompt must contain at least 3 non-whitespace characters")
        return value

    def for_slide(self, index: int, total: int) -> "GenerationParams":
        return self.model_copy(
            update={"prompt": f"{self.prompt} - Slide {index + 1} of {total}", "with_image": False}
        )


class CallOverrides(BaseModel):
    model_config = ConfigDict(frozen=True)

    temperature: float | None = None
    max_tokens: int | None = None
    timeout_seconds: float | None = None


class ValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    data: SlideSpec | None = None
    errors: list[str] = Field(default_factory=list)


class AnalysisEntity(BaseModel):
    text: str
    type: Literal["person", "organization", "location", "product", "concept"] = "concept"
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)


class VisualElement(BaseModel):
    type: Literal["chart", "image", "diagram", "timeline", "table"] = "image"
    relevance: float = Field(default=0.7, ge=0.0, le=1.0)
    description: str = ""


class ContentAnalysis(BaseModel):
    category: Literal["business", "technical", "creative", "educational", "scientific"] = "business"
    complexity: Literal["simple", "moderate", "complex", "expert"] = "moderate"
    sentiment: Literal["positive", "neutral", "negative", "mixed"] = "neutral"
    keywords: list[str] = Field(default_factory=list)
    entities: list[AnalysisEntity] = Field(default_factory=list)
    suggested_layouts: list[str] = Field(default_factory=list)
    visual_elements: list[VisualElement] = Field(default_factory=list)
    tone_alignment: float = Field(default=0.85, ge=0.0, le=1.0)
    audience_alignment: float = Field(default=0.85, ge=0.0, le=1.0)
    heuristic: bool = False
