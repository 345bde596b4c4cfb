from __future__ import annotations

import json
from typing import Any

from slidegen.schemas import SLIDE_LAYOUTS, ContentAnalysis, GenerationParams, PipelineStage, SlideSpec


SYSTEM_PROMPT = (
    "You are a presentation architect who turns a brief into one slide for a business deck. "
    "Write specific, outcome-focused content in active voice; prefer realistic ranges over invented precision. "
    "Respond with a single JSON object that matches the slide schema exactly. "
    "Do not wrap the JSON in markdown fences and do not add commentary or extra keys."
)

SLIDE_SCHEMA_HINT = {
    "title": "string, 15-60 characters, required",
    "layout": "one of: " + ", ".join(SLIDE_LAYOUTS),
    "bullets": ["string"],
    "paragraph": "string",
    "left": {"title": "string", "bullets": ["string"], "paragraph": "string"},
    "right": {"title": "string", "bullets": ["string"], "paragraph": "string"},
    "contentItems": [
        {
            "type": "text|bullet|number|icon|metric",
            "content": "string",
            "emphasis": "normal|bold|italic|highlight",
            "color": "#RRGGBB",
            "iconName": "string",
        }
    ],
    "chart": {"type": "bar|line|pie", "categories": ["string"], "series": [{"name": "string", "data": [0]}]},
    "timeline": [{"date": "string", "title": "string", "description": "string", "milestone": False}],
    "comparisonTable": {"columns": ["string"], "rows": [["string"]]},
    "processSteps": [{"title": "string", "description": "string"}],
    "imagePrompt": "string",
    "notes": "string",
    "sources": ["string"],
    "design": {
        "theme": "string",
        "accentColor": "#RRGGBB",
        "backgroundStyle": "string",
        "imageStyle": "photo|illustration|isometric",
    },
}

CONTENT_LENGTH_GUIDANCE = {
    "short": "Keep it tight: at most 3 bullets of roughly 10 words each, or a paragraph under 300 characters.",
    "medium": "Use 4-5 bullets of 12-20 words each, or a paragraph under 600 characters.",
    "long": "Use up to 7 detailed bullets, or a paragraph under 1000 characters with supporting detail.",
}

LAYOUT_GUIDANCE = {
    "title-bullets": "Key points or recommendations that scan quickly.",
    "title-paragraph": "Narrative explanation or a single argument.",
    "two-column": "Side-by-side comparison; fill both left and right.",
    "before-after": "Current state on the left, future state on the right.",
    "problem-solution": "Problem on the left, solution on the right.",
    "chart": "Quantitative trend or share; chart series must align with categories.",
    "metrics-dashboard": "Several headline metrics as contentItems of type metric.",
    "timeline": "Chronological milestones with dates.",
    "process-flow": "Sequential steps in processSteps.",
    "comparison-table": "Options compared across attributes; every row matches the columns.",
    "quote": "One memorable statement in paragraph.",
    "image-right": "Visual-led story with supporting bullets; set imagePrompt.",
    "image-left": "Visual-led story with supporting bullets; set imagePrompt.",
    "mixed-content": "A blend of short text, numbers and icons as contentItems.",
    "title": "Section opener with a short subtitle paragraph.",
    "thank-you": "Closing slide with a short call to action.",
}


def _audience_brief(params: GenerationParams) -> dict[str, Any]:
    brief: dict[str, Any] = {
        "audience": params.audience or "general business audience",
        "tone": params.tone or "professional",
        "content_length": params.content_length,
    }
    if params.language:
        brief["language"] = params.language
    if params.brand is not None:
        brand = params.brand.model_dump(exclude_none=True)
        if brand:
            brief["brand"] = brand
    return brief


def _spec_context(spec: SlideSpec | dict[str, Any] | None) -> str:
    if spec is None:
        return "{}"
    payload = spec.to_payload() if isinstance(spec, SlideSpec) else spec
    return json.dumps(payload, ensure_ascii=False)


def build_content_prompt(params: GenerationParams, analysis: ContentAnalysis | None = None) -> str:
    lines = [
        "TASK: Write the content for one slide.",
        f"BRIEF: {params.prompt}",
        f"CONTEXT: {json.dumps(_audience_brief(params), ensure_ascii=False)}",
        f"LENGTH: {CONTENT_LENGTH_GUIDANCE[params.content_length]}",
    ]
    if analysis is not None:
        lines.append(
            "ANALYSIS: "
            + json.dumps(
                {
                    "category": analysis.category,
                    "complexity": analysis.complexity,
                    "keywords": analysis.keywords[:8],
                    "suggested_layouts": analysis.suggested_layouts[:3],
                },
                ensure_ascii=False,
            )
        )
    lines.extend(
        [
            "Pick the layout that best fits the material and populate only the fields that layout uses.",
            "Add speaker notes that expand on the slide in two or three sentences.",
            f"SCHEMA: {json.dumps(SLIDE_SCHEMA_HINT, ensure_ascii=False)}",
        ]
    )
    return "\n".join(lines)


def build_layout_prompt(params: GenerationParams, partial: SlideSpec | dict[str, Any]) -> str:
    return "\n".join(
        [
            "TASK: Choose the best layout for this slide and reshape its content to fit that layout.",
            f"BRIEF: {params.prompt}",
            f"CURRENT_SLIDE: {_spec_context(partial)}",
            f"LAYOUT_GUIDE: {json.dumps(LAYOUT_GUIDANCE, ensure_ascii=False)}",
            "Keep the title and the substance of the content. Move content into the fields the new layout needs "
            "(for example a chart layout needs chart, two-column needs left and right).",
            "Return the complete slide as JSON.",
        ]
    )


def build_image_prompt(params: GenerationParams, partial: SlideSpec | dict[str, Any]) -> str:
    style = "professional photography"
    if isinstance(partial, SlideSpec) and partial.design and partial.design.image_style:
        style = partial.design.image_style
    return "\n".join(
        [
            "TASK: Write an image generation prompt that supports this slide visually.",
            f"BRIEF: {params.prompt}",
            f"CONTEXT: {json.dumps(_audience_brief(params), ensure_ascii=False)}",
            f"CURRENT_SLIDE: {_spec_context(partial)}",
            f"STYLE: {style}",
            "The imagePrompt must be 20-200 characters, concrete, and must not ask for any text inside the image.",
            "Return the complete slide as JSON with imagePrompt set; leave the other fields unchanged.",
        ]
    )


def build_refinement_prompt(params: GenerationParams, partial: SlideSpec | dict[str, Any]) -> str:
    return "\n".join(
        [
            "TASK: Polish this slide for a final review.",
            f"BRIEF: {params.prompt}",
            f"CONTEXT: {json.dumps(_audience_brief(params), ensure_ascii=False)}",
            f"LENGTH: {CONTENT_LENGTH_GUIDANCE[params.content_length]}",
            f"CURRENT_SLIDE: {_spec_context(partial)}",
            "Tighten wording, fix grammar, keep the layout and every populated field. "
            "Do not invent new sections. Keep imagePrompt and notes if present.",
            "Return the complete slide as JSON.",
        ]
    )


def build_batch_image_prompt(params: GenerationParams, specs: list[SlideSpec]) -> str:
    summaries = [
        {"slideIndex": idx, "title": spec.title, "layout": spec.layout}
        for idx, spec in enumerate(specs)
    ]
    return "\n".join(
        [
            f"TASK: Write one image prompt for each of the {len(specs)} slides below so the deck looks cohesive.",
            f"TOPIC: {params.prompt}",
            f"CONTEXT: {json.dumps(_audience_brief(params), ensure_ascii=False)}",
            f"SLIDES: {json.dumps(summaries, ensure_ascii=False)}",
            "Keep one visual style across every prompt. Each prompt is 20-200 characters and asks for no text in the image.",
            'Return JSON exactly shaped as {"imagePrompts": ["...", "..."]} with one entry per slide, in slide order.',
        ]
    )


def build_stage_prompt(
    stage: PipelineStage,
    params: GenerationParams,
    previous: SlideSpec | None = None,
    analysis: ContentAnalysis | None = None,
) -> str:
    if stage == PipelineStage.CONTENT_GENERATION:
        return build_content_prompt(params, analysis)
    if previous is None:
        raise ValueError(f"stage {stage.value} requires the previous slide spec")
    if stage == PipelineStage.LAYOUT_REFINEMENT:
        return build_layout_prompt(params, previous)
    if stage == PipelineStage.IMAGE_PROMPT_GENERATION:
        return build_image_prompt(params, previous)
    return build_refinement_prompt(params, previous)


def build_messages(
    user_prompt: str,
    previous: SlideSpec | None = None,
    system_prompt: str = SYSTEM_PROMPT,
) -> list[dict[str, str]]:
    messages = [{"role": "system", "content": system_prompt}]
    if previous is not None:
        messages.append({"role": "assistant", "content": _spec_context(previous)})
    messages.append({"role": "user", "content": user_prompt})
    return messages


ANALYSIS_SYSTEM_PROMPT = (
    "You are a content analyst for presentation design and audience psychology. "
    "Respond only with a strict JSON object matching the requested shape."
)


def build_analysis_prompt(params: GenerationParams) -> str:
    shape = {
        "category": "business|technical|creative|educational|scientific",
        "complexity": "simple|moderate|complex|expert",
        "sentiment": "positive|neutral|negative|mixed",
        "keywords": ["keyword"],
        "entities": [{"text": "entity", "type": "person|organization|location|product|concept", "confidence": 0.9}],
        "suggestedLayouts": ["title-bullets"],
        "visualElements": [{"type": "chart|image|diagram|timeline|table", "relevance": 0.8, "description": "string"}],
        "toneAlignment": 0.9,
        "audienceAlignment": 0.85,
    }
    return "\n".join(
        [
            "TASK: Analyse this presentation brief before any slide is written.",
            f"BRIEF: {params.prompt}",
            f"CONTEXT: {json.dumps(_audience_brief(params), ensure_ascii=False)}",
            f"LAYOUTS: {', '.join(SLIDE_LAYOUTS)}",
            f"SHAPE: {json.dumps(shape, ensure_ascii=False)}",
        ]
    )
