from __future__ import annotations

import asyncio
import logging
import uuid
from time import perf_counter
from typing import Any, Awaitable, Callable, TypeVar

from slidegen.agent.executor import ModelCallExecutor
from slidegen.agent.planner import build_batch_stage_plan
from slidegen.config import Settings, settings
from slidegen.errors import SlideGenerationError, ValidationError
from slidegen.pipeline import SlidePipeline, finalize_spec, overrides_from_params
from slidegen.providers.base import BaseLLMProvider
from slidegen.schemas import GenerationParams, PipelineStage, SlideSpec
from slidegen.services.fallbacks import degrade_image_prompt
from slidegen.services.prompt_templates import build_batch_image_prompt, build_image_prompt, build_messages
from slidegen.services.trace import log_step, preview_text
from slidegen.services.usage import UsageTracker


logger = logging.getLogger("slidegen.batch")

T = TypeVar("T")


def batch_image_max_tokens(slide_count: int) -> int:
    return max(400, min(1200, 80 * slide_count))


def parse_batch_image_prompts(raw: Any, expected: int) -> list[str]:
    """Accept ``{"imagePrompts": [...]}`` with exactly ``expected`` non-empty prompts."""
    rows = raw.get("imagePrompts") if isinstance(raw, dict) else None
    if not isinstance(rows, list):
        raise ValidationError("Batch image response has no imagePrompts array", ["imagePrompts: missing"])
    prompts: list[str] = []
    for row in rows:
        if isinstance(row, dict):
            row = row.get("imagePrompt") or row.get("prompt")
        text = str(row).strip() if isinstance(row, str) else ""
        if not text:
            raise ValidationError("Batch image response has an empty prompt", ["imagePrompts: empty entry"])
        prompts.append(text)
    if len(prompts) != expected:
        raise ValidationError(
            f"Batch image response has {len(prompts)} prompts for {expected} slides",
            [f"imagePrompts: expected {expected} entries, got {len(prompts)}"],
        )
    return prompts


async def run_bounded(count: int, limit: int, work: Callable[[int], Awaitable[T]]) -> list[T]:
    """Run ``work(i)`` for every index with at most ``limit`` in flight; results keep index order.

    Each worker claims the next unclaimed index until none remain. The first
    failure cancels the remaining workers and propagates.
    """
    results: list[Any] = [None] * count
    next_index = 0

    async def worker() -> None:
        nonlocal next_index
        while next_index < count:
            idx = next_index
            next_index += 1
            results[idx] = await work(idx)

    workers = [asyncio.create_task(worker()) for _ in range(max(1, min(limit, count)))]
    try:
        await asyncio.gather(*workers)
    except BaseException:
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        raise
    return results


class BatchCoordinator:
    """Fans one request out to N slides under a fixed concurrency limit."""

    def __init__(
        self,
        pipeline: SlidePipeline,
        provider: BaseLLMProvider,
        executor: ModelCallExecutor | None = None,
        *,
        config: Settings = settings,
        concurrency: int | None = None,
        usage: UsageTracker | None = None,
    ):
        self.pipeline = pipeline
        self.usage = usage
        self.provider = provider
        self.executor = executor or ModelCallExecutor()
        self.config = config
        self.concurrency = max(1, concurrency or config.batch_concurrency)

    async def generate(
        self,
        params: GenerationParams,
        slide_count: int,
        *,
        request_id: str | None = None,
    ) -> list[SlideSpec]:
        if slide_count < 1:
            raise ValueError("slide_count must be at least 1")
        request_id = request_id or uuid.uuid4().hex[:12]
        started = perf_counter()
        log_step(
            "batch_generation_start",
            request_id=request_id,
            target=logger,
            slide_count=slide_count,
            concurrency=self.concurrency,
            with_image=params.with_image,
        )

        async def build_slide(idx: int) -> SlideSpec:
            # Identical across workers, so concurrent lookups share one analysis call.
            analysis = await self.pipeline.analyze(params)
            slide_params = params.for_slide(idx, slide_count)
            return await self.pipeline.run_stages(
                slide_params,
                build_batch_stage_plan(),
                analysis=analysis,
                request_id=f"{request_id}:{idx + 1}",
            )

        try:
            specs = await run_bounded(slide_count, self.concurrency, build_slide)
            if params.with_image:
                specs = await self._attach_image_prompts(params, specs, request_id)
        finally:
            if self.usage is not None:
                self.usage.finish(request_id, "batch_generation")

        finished = [finalize_spec(spec, params, request_id=request_id) for spec in specs]
        log_step(
            "batch_generation_done",
            request_id=request_id,
            target=logger,
            slide_count=len(finished),
            duration_sec=round(perf_counter() - started, 2),
        )
        return finished

    async def _attach_image_prompts(
        self,
        params: GenerationParams,
        specs: list[SlideSpec],
        request_id: str,
    ) -> list[SlideSpec]:
        try:
            prompts = await self._batch_image_prompts(params, specs, request_id)
        except SlideGenerationError as exc:
            log_step(
                "batch_image_fallback",
                request_id=request_id,
                target=logger,
                level=logging.WARNING,
                kind=exc.kind,
                reason=preview_text(str(exc), 200),
            )
            return await self._per_slide_image_prompts(params, specs, request_id)
        log_step("batch_image_done", request_id=request_id, target=logger, slide_count=len(prompts))
        return [spec.model_copy(update={"image_prompt": prompt}) for spec, prompt in zip(specs, prompts)]

    async def _batch_image_prompts(
        self,
        params: GenerationParams,
        specs: list[SlideSpec],
        request_id: str | None = None,
    ) -> list[str]:
        overrides = overrides_from_params(params)
        raw = await self.executor.execute(
            self.provider,
            self.provider.default_model,
            build_messages(build_batch_image_prompt(params, specs)),
            temperature=overrides.temperature if overrides.temperature is not None else self.config.ai_temperature,
            max_tokens=batch_image_max_tokens(len(specs)),
            timeout_seconds=overrides.timeout_seconds or self.config.ai_timeout_seconds,
            cancel_token=params.cancel_token,
            label="batch_image_prompts",
            request_id=request_id,
        )
        return parse_batch_image_prompts(raw, len(specs))

    async def _per_slide_image_prompts(
        self,
        params: GenerationParams,
        specs: list[SlideSpec],
        request_id: str,
    ) -> list[SlideSpec]:
        overrides = overrides_from_params(params)

        async def image_for(idx: int) -> SlideSpec:
            spec = specs[idx]
            slide_params = params.for_slide(idx, len(specs))
            try:
                return await self.pipeline.orchestrator.run_with_retry(
                    build_image_prompt(slide_params, spec),
                    PipelineStage.IMAGE_PROMPT_GENERATION,
                    spec,
                    overrides,
                    brief=slide_params.prompt,
                    cancel_token=params.cancel_token,
                    request_id=f"{request_id}:{idx + 1}",
                )
            except SlideGenerationError as exc:
                return degrade_image_prompt(spec, exc.kind)

        return await run_bounded(len(specs), self.concurrency, image_for)
