from __future__ import annotations

import asyncio
import random
from typing import Any, Awaitable, Callable

from slidegen.agent.executor import ModelCallExecutor
from slidegen.agent.retry import RetryOrchestrator, RetryPolicy
from slidegen.batch import BatchCoordinator
from slidegen.config import Settings, settings
from slidegen.pipeline import SlidePipeline
from slidegen.providers.base import BaseLLMProvider
from slidegen.providers.factory import get_provider, get_secondary_providers
from slidegen.schemas import GenerationParams, SlideSpec, ValidationResult
from slidegen.services.content_analysis import ContentAnalyzer
from slidegen.services.usage import UsageTracker
from slidegen.services.validation import safe_validate_slide_spec as _safe_validate


class SlideGenerationEngine:
    """Owns the provider, executor, orchestrator, analysis cache, usage tracker and coordinators."""

    def __init__(
        self,
        provider: BaseLLMProvider | None = None,
        *,
        config: Settings = settings,
        executor: ModelCallExecutor | None = None,
        secondary_providers: list[BaseLLMProvider] | None = None,
        policy: RetryPolicy | None = None,
        analyzer: ContentAnalyzer | None = None,
        usage: UsageTracker | None = None,
        batch_concurrency: int | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self.config = config
        self.provider = provider or get_provider()
        self.usage = usage or UsageTracker(config.ai_cost_per_1k_tokens)
        self.executor = executor or ModelCallExecutor(self.usage)
        if secondary_providers is None:
            secondary_providers = get_secondary_providers(self.provider)
        self.orchestrator = RetryOrchestrator(
            self.provider,
            self.executor,
            config=config,
            policy=policy,
            secondary_providers=secondary_providers,
            sleep=sleep,
            rng=rng,
        )
        self.analyzer = analyzer or ContentAnalyzer(self.provider, self.executor, config=config)
        self.pipeline = SlidePipeline(self.orchestrator, self.analyzer, config=config, usage=self.usage)
        self.batch = BatchCoordinator(
            self.pipeline,
            self.provider,
            self.executor,
            config=config,
            concurrency=batch_concurrency,
            usage=self.usage,
        )

    async def generate_slide_spec(self, params: GenerationParams) -> SlideSpec:
        return await self.pipeline.generate(params)

    async def generate_batch_slide_specs(self, params: GenerationParams, slide_count: int) -> list[SlideSpec]:
        return await self.batch.generate(params, slide_count)

    @staticmethod
    def safe_validate_slide_spec(candidate: Any) -> ValidationResult:
        return _safe_validate(candidate)

    async def aclose(self) -> None:
        providers = [self.provider, *self.orchestrator.secondary_providers]
        for provider in providers:
            await provider.aclose()


_default_engine: SlideGenerationEngine | None = None


def get_engine() -> SlideGenerationEngine:
    global _default_engine
    if _default_engine is None:
        _default_engine = SlideGenerationEngine()
    return _default_engine


async def generate_slide_spec(params: GenerationParams) -> SlideSpec:
    return await get_engine().generate_slide_spec(params)


async def generate_batch_slide_specs(params: GenerationParams, slide_count: int) -> list[SlideSpec]:
    return await get_engine().generate_batch_slide_specs(params, slide_count)


def safe_validate_slide_spec(candidate: Any) -> ValidationResult:
    return _safe_validate(candidate)
