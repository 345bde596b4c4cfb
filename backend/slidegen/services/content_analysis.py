from __future__ import annotations

import logging
import re
from typing import Any

from slidegen.agent.executor import ModelCallExecutor
from slidegen.config import Settings, settings
from slidegen.errors import SlideGenerationError
from slidegen.providers.base import BaseLLMProvider
from slidegen.schemas import SLIDE_LAYOUTS, ContentAnalysis, GenerationParams
from slidegen.services.cache import CachedCaller, cache_key
from slidegen.services.prompt_templates import ANALYSIS_SYSTEM_PROMPT, build_analysis_prompt
from slidegen.services.trace import preview_text


logger = logging.getLogger("slidegen.analysis")

_CATEGORIES = ("business", "technical", "creative", "educational", "scientific")
_COMPLEXITY = ("simple", "moderate", "complex", "expert")
_SENTIMENT = ("positive", "neutral", "negative", "mixed")
_ENTITY_TYPES = ("person", "organization", "location", "product", "concept")
_VISUAL_TYPES = ("chart", "image", "diagram", "timeline", "table")

_CATEGORY_WORDS: list[tuple[str, frozenset[str]]] = [
    ("business", frozenset({"sales", "revenue", "profit", "market", "strategy", "business"})),
    ("technical", frozenset({"api", "database", "algorithm", "software", "system", "architecture"})),
    ("creative", frozenset({"design", "brand", "creative", "visual", "art", "marketing"})),
    ("educational", frozenset({"learn", "teach", "education", "training", "course", "lesson"})),
]
_STOP_WORDS = frozenset(
    "the a an and or but in on at to for of with by from that this is are be as it we you they".split()
)


def _clamp(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return min(1.0, max(0.0, number))


def _pick(value: Any, allowed: tuple[str, ...], default: str) -> str:
    return value if isinstance(value, str) and value in allowed else default


def coerce_content_analysis(raw: Any) -> ContentAnalysis:
    """Force arbitrary model output into a ContentAnalysis with safe defaults."""
    data = raw if isinstance(raw, dict) else {}
    entities = []
    for row in data.get("entities") or []:
        if not isinstance(row, dict) or not str(row.get("text") or "").strip():
            continue
        entities.append(
            {
                "text": str(row["text"]).strip(),
                "type": _pick(row.get("type"), _ENTITY_TYPES, "concept"),
                "confidence": _clamp(row.get("confidence"), 0.8),
            }
        )
    visuals = []
    for row in (data.get("visualElements") or [])[:6]:
        if not isinstance(row, dict):
            continue
        visuals.append(
            {
                "type": _pick(row.get("type"), _VISUAL_TYPES, "image"),
                "relevance": _clamp(row.get("relevance"), 0.7),
                "description": str(row.get("description") or ""),
            }
        )
    layouts = [str(row) for row in (data.get("suggestedLayouts") or []) if str(row) in SLIDE_LAYOUTS][:6]
    keywords = data.get("keywords")
    return ContentAnalysis(
        category=_pick(data.get("category"), _CATEGORIES, "business"),
        complexity=_pick(data.get("complexity"), _COMPLEXITY, "moderate"),
        sentiment=_pick(data.get("sentiment"), _SENTIMENT, "neutral"),
        keywords=[str(row) for row in keywords][:12] if isinstance(keywords, list) else [],
        entities=entities,
        suggested_layouts=layouts or ["title-bullets", "two-column"],
        visual_elements=visuals or [{"type": "image", "relevance": 0.7, "description": "Supporting visual content"}],
        tone_alignment=_clamp(data.get("toneAlignment"), 0.85),
        audience_alignment=_clamp(data.get("audienceAlignment"), 0.85),
    )


def heuristic_content_analysis(params: GenerationParams) -> ContentAnalysis:
    words = [row for row in re.split(r"\W+", params.prompt.lower()) if row]
    category = next((name for name, vocab in _CATEGORY_WORDS if any(word in vocab for word in words)), "business")
    complexity = "moderate"
    audience = (params.audience or "").lower()
    if audience in {"executives", "executive"} or params.content_length == "short":
        complexity = "simple"
    elif audience == "technical" or params.content_length == "long":
        complexity = "complex"
    return ContentAnalysis(
        category=category,
        complexity=complexity,
        sentiment="neutral",
        keywords=[word for word in words if len(word) > 3 and word not in _STOP_WORDS][:8],
        suggested_layouts=["title-bullets", "two-column"],
        visual_elements=[{"type": "image", "relevance": 0.7, "description": "Supporting visual content"}],
        tone_alignment=0.8,
        audience_alignment=0.8,
        heuristic=True,
    )


class ContentAnalyzer:
    """Pre-generation analysis with a TTL cache and in-flight request coalescing."""

    def __init__(
        self,
        provider: BaseLLMProvider,
        executor: ModelCallExecutor | None = None,
        *,
        config: Settings = settings,
        cache: CachedCaller[ContentAnalysis] | None = None,
    ):
        self.provider = provider
        self.executor = executor or ModelCallExecutor()
        self.config = config
        self.cache = cache or CachedCaller(config.analysis_cache_ttl_seconds)

    @staticmethod
    def key_for(params: GenerationParams) -> str:
        return "analysis:" + cache_key(params.model_dump(mode="json", exclude={"cancel_token"}))

    async def analyze(self, params: GenerationParams) -> ContentAnalysis:
        return await self.cache.get_or_create(self.key_for(params), lambda: self._analyze(params))

    async def _analyze(self, params: GenerationParams) -> ContentAnalysis:
        if self.provider.name == "mock":
            return heuristic_content_analysis(params)
        messages = [
            {"role": "system", "content": ANALYSIS_SYSTEM_PROMPT},
            {"role": "user", "content": build_analysis_prompt(params)},
        ]
        try:
            raw = await self.executor.execute(
                self.provider,
                self.provider.default_model,
                messages,
                temperature=0.2,
                max_tokens=1200,
                timeout_seconds=self.config.ai_timeout_seconds,
                cancel_token=params.cancel_token,
                label="content_analysis",
            )
        except SlideGenerationError as exc:
            logger.warning(
                "content_analysis_fallback kind=%s reason=%s",
                exc.kind,
                preview_text(str(exc), 200),
            )
            return heuristic_content_analysis(params)
        analysis = coerce_content_analysis(raw)
        logger.info(
            "content_analysis_done category=%s complexity=%s layouts=%s",
            analysis.category,
            analysis.complexity,
            ",".join(analysis.suggested_layouts[:3]),
        )
        return analysis
