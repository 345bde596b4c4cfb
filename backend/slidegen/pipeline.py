from __future__ import annotations

import logging
import uuid
from time import perf_counter

from slidegen.agent.planner import build_stage_plan
from slidegen.agent.retry import RetryOrchestrator
from slidegen.config import Settings, settings
from slidegen.schemas import CallOverrides, ContentAnalysis, GenerationParams, PipelineStage, SlideSpec
from slidegen.services.budgeting import apply_content_budget, conform_to_layout
from slidegen.services.content_analysis import ContentAnalyzer
from slidegen.services.prompt_templates import build_stage_prompt
from slidegen.services.trace import log_step, preview_text
from slidegen.services.usage import UsageTracker


logger = logging.getLogger("slidegen.pipeline")


def overrides_from_params(params: GenerationParams) -> CallOverrides:
    return CallOverrides(
        temperature=params.temperature,
        max_tokens=params.max_tokens,
        timeout_seconds=params.timeout_seconds,
    )


def finalize_spec(spec: SlideSpec, params: GenerationParams, *, request_id: str | None = None) -> SlideSpec:
    return apply_content_budget(conform_to_layout(spec, request_id=request_id), params.content_length)


class SlidePipeline:
    """Runs the generation stages for one slide, strictly in order."""

    def __init__(
        self,
        orchestrator: RetryOrchestrator,
        analyzer: ContentAnalyzer | None = None,
        *,
        config: Settings = settings,
        usage: UsageTracker | None = None,
    ):
        self.orchestrator = orchestrator
        self.analyzer = analyzer
        self.config = config
        self.usage = usage

    async def analyze(self, params: GenerationParams) -> ContentAnalysis | None:
        if self.analyzer is None or not self.config.enable_content_analysis:
            return None
        return await self.analyzer.analyze(params)

    async def run_stages(
        self,
        params: GenerationParams,
        stages: list[PipelineStage],
        *,
        analysis: ContentAnalysis | None = None,
        previous: SlideSpec | None = None,
        request_id: str | None = None,
    ) -> SlideSpec:
        overrides = overrides_from_params(params)
        spec = previous
        for stage in stages:
            started = perf_counter()
            prompt = build_stage_prompt(stage, params, spec, analysis)
            spec = await self.orchestrator.run_with_retry(
                prompt,
                stage,
                spec,
                overrides,
                brief=params.prompt,
                cancel_token=params.cancel_token,
                request_id=request_id,
            )
            log_step(
                "stage_complete",
                request_id=request_id,
                step=stage.value,
                duration_sec=round(perf_counter() - started, 2),
                layout=spec.layout,
            )
        if spec is None:
            raise ValueError("no stages were run")
        return spec

    async def generate(self, params: GenerationParams, *, request_id: str | None = None) -> SlideSpec:
        request_id = request_id or uuid.uuid4().hex[:12]
        started = perf_counter()
        log_step(
            "slide_generation_start",
            request_id=request_id,
            prompt=preview_text(params.prompt),
            with_image=params.with_image,
            content_length=params.content_length,
        )
        try:
            analysis = await self.analyze(params)
            spec = await self.run_stages(
                params,
                build_stage_plan(with_image=params.with_image),
                analysis=analysis,
                request_id=request_id,
            )
        finally:
            if self.usage is not None:
                self.usage.finish(request_id, "slide_generation")
        spec = finalize_spec(spec, params, request_id=request_id)
        log_step(
            "slide_generation_done",
            request_id=request_id,
            duration_sec=round(perf_counter() - started, 2),
            layout=spec.layout,
            title=preview_text(spec.title, 80),
        )
        return spec
