from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from slidegen.agent.executor import ModelCallExecutor
from slidegen.cancellation import CancellationToken
from slidegen.config import Settings, settings
from slidegen.errors import (
    AIGenerationError,
    MalformedResponseError,
    RateLimitError,
    SlideGenerationError,
    ValidationError,
    analyze_validation_errors,
    is_retryable,
)
from slidegen.providers.base import BaseLLMProvider
from slidegen.schemas import CallOverrides, PipelineStage, SlideSpec
from slidegen.services.fallbacks import create_fallback_spec, degrade_image_prompt, degrade_layout
from slidegen.services.prompt_templates import build_messages
from slidegen.services.sanitizer import sanitize_ai_response
from slidegen.services.trace import CallAttempt, log_step, preview_text
from slidegen.services.validation import build_minimal_viable_spec, safe_validate_slide_spec


logger = logging.getLogger("slidegen.pipeline")


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    retry_delay_seconds: float = 0.4
    max_backoff_seconds: float = 8.0
    jitter_ratio: float = 0.1

    @classmethod
    def from_settings(cls, config: Settings) -> "RetryPolicy":
        return cls(
            max_retries=max(1, config.ai_max_retries),
            retry_delay_seconds=max(0.0, config.ai_retry_delay_seconds),
            max_backoff_seconds=max(0.0, config.ai_max_backoff_seconds),
        )

    def backoff(self, attempt: int, rng: Callable[[], float] = random.random) -> float:
        """Delay after failed ``attempt`` (1-based), jitter at most ``jitter_ratio`` of the base."""
        base = self.retry_delay_seconds * (2 ** (attempt - 1))
        jitter = rng() * self.jitter_ratio * base
        return min(base + jitter, self.max_backoff_seconds)


def accept_slide_payload(raw: Any) -> SlideSpec:
    """Sanitize, validate, and fall back to the minimal viable spec before giving up."""
    sanitized = sanitize_ai_response(raw)
    result = safe_validate_slide_spec(sanitized)
    if result.success and result.data is not None:
        return result.data

    minimal, dropped = build_minimal_viable_spec(sanitized)
    retry = safe_validate_slide_spec(minimal)
    if retry.success and retry.data is not None:
        return retry.data

    analysis = analyze_validation_errors(result.errors)
    raise ValidationError(
        f"Slide spec rejected after recovery: {analysis['message'] or 'invalid shape'}",
        result.errors + [f"dropped: {name}" for name in dropped],
    )


class RetryOrchestrator:
    """Backoff on the primary model, one fallback-model attempt, then the stage's degrade path.

    A ValidationError on a primary attempt is escalated at once as AIGenerationError.
    """

    def __init__(
        self,
        provider: BaseLLMProvider,
        executor: ModelCallExecutor | None = None,
        *,
        config: Settings = settings,
        policy: RetryPolicy | None = None,
        secondary_providers: list[BaseLLMProvider] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self.provider = provider
        self.executor = executor or ModelCallExecutor()
        self.config = config
        self.policy = policy or RetryPolicy.from_settings(config)
        self.secondary_providers = list(secondary_providers or [])
        self._sleep = sleep
        self._rng = rng

    def _call_options(self, overrides: CallOverrides | None) -> dict[str, Any]:
        overrides = overrides or CallOverrides()
        return {
            "temperature": overrides.temperature if overrides.temperature is not None else self.config.ai_temperature,
            "max_tokens": overrides.max_tokens or self.config.ai_max_tokens,
            "timeout_seconds": overrides.timeout_seconds or self.config.ai_timeout_seconds,
        }

    async def _attempt(
        self,
        call: CallAttempt,
        provider: BaseLLMProvider,
        messages: list[dict[str, str]],
        stage: PipelineStage,
        options: dict[str, Any],
        cancel_token: CancellationToken | None,
        request_id: str | None,
    ) -> SlideSpec:
        log_step(
            "stage_attempt_start",
            request_id=request_id,
            step=call.step_name,
            attempt=call.attempt,
            provider=call.provider,
            model=call.model,
        )
        raw = await self.executor.execute(
            provider,
            call.model,
            messages,
            cancel_token=cancel_token,
            label=call.label(),
            request_id=request_id,
            **options,
        )
        spec = accept_slide_payload(raw)
        if stage == PipelineStage.IMAGE_PROMPT_GENERATION and not spec.image_prompt:
            raise MalformedResponseError("Image stage response has no imagePrompt")
        log_step(
            "stage_attempt_done",
            request_id=request_id,
            step=call.step_name,
            attempt=call.attempt,
            layout=spec.layout,
            title=preview_text(spec.title, 80),
        )
        return spec

    def _retry_delay(self, attempt: int, exc: SlideGenerationError) -> float:
        delay = self.policy.backoff(attempt, self._rng)
        if isinstance(exc, RateLimitError) and exc.retry_after is not None:
            delay = max(delay, min(exc.retry_after, self.policy.max_backoff_seconds))
        return delay

    async def run_with_retry(
        self,
        prompt: str,
        stage: PipelineStage,
        previous: SlideSpec | None = None,
        overrides: CallOverrides | None = None,
        *,
        brief: str | None = None,
        cancel_token: CancellationToken | None = None,
        request_id: str | None = None,
    ) -> SlideSpec:
        step = stage.value
        options = self._call_options(overrides)
        messages = build_messages(prompt, previous)
        attempt = 0
        last_error: SlideGenerationError | None = None
        stopped = False

        def cancelled() -> bool:
            return cancel_token is not None and cancel_token.cancelled

        for primary_attempt in range(1, self.policy.max_retries + 1):
            if cancelled():
                stopped = True
                break
            attempt += 1
            call = CallAttempt(step, attempt, self.provider.default_model, self.provider.name)
            try:
                return await self._attempt(call, self.provider, messages, stage, options, cancel_token, request_id)
            except SlideGenerationError as exc:
                last_error = exc
                log_step(
                    "stage_attempt_error",
                    request_id=request_id,
                    level=logging.WARNING,
                    step=step,
                    attempt=attempt,
                    kind=exc.kind,
                    retryable=is_retryable(exc),
                    reason=preview_text(str(exc), 200),
                )
                if isinstance(exc, ValidationError):
                    raise self._validation_failure(stage, attempt, exc, request_id) from exc
                if not is_retryable(exc):
                    stopped = True
                    break
                if primary_attempt < self.policy.max_retries and not cancelled():
                    await self._sleep(self._retry_delay(primary_attempt, exc))

        if not stopped:
            alternates: list[tuple[BaseLLMProvider, str]] = []
            if self.provider.fallback_model:
                alternates.append((self.provider, self.provider.fallback_model))
            alternates.extend((row, row.default_model) for row in self.secondary_providers)
            for provider, model in alternates:
                if cancelled():
                    break
                attempt += 1
                call = CallAttempt(step, attempt, model, provider.name)
                try:
                    spec = await self._attempt(call, provider, messages, stage, options, cancel_token, request_id)
                    log_step("stage_fallback_model_used", request_id=request_id, step=step, provider=provider.name, model=model)
                    return spec
                except SlideGenerationError as exc:
                    last_error = exc
                    log_step(
                        "stage_attempt_error",
                        request_id=request_id,
                        level=logging.WARNING,
                        step=step,
                        attempt=attempt,
                        provider=provider.name,
                        model=model,
                        kind=exc.kind,
                        reason=preview_text(str(exc), 200),
                    )
                    if not is_retryable(exc):
                        break

        return self._degrade(stage, attempt, last_error, previous, brief or prompt, request_id)

    def _validation_failure(
        self,
        stage: PipelineStage,
        attempt: int,
        exc: ValidationError,
        request_id: str | None,
    ) -> AIGenerationError:
        log_step(
            "stage_failed",
            request_id=request_id,
            level=logging.ERROR,
            step=stage.value,
            attempts=attempt,
            reason=exc.kind,
            errors=len(exc.validation_errors),
        )
        return AIGenerationError(
            f"Validation failed in {stage.value}: {exc.message}",
            step=stage.value,
            attempt=attempt,
            original_error=exc,
        )

    def _degrade(
        self,
        stage: PipelineStage,
        attempts: int,
        cause: SlideGenerationError | None,
        previous: SlideSpec | None,
        brief: str,
        request_id: str | None,
    ) -> SlideSpec:
        reason = cause.kind if cause is not None else "cancelled"
        if stage == PipelineStage.CONTENT_GENERATION:
            log_step("stage_degraded", request_id=request_id, level=logging.WARNING, step=stage.value, attempts=attempts, reason=reason)
            return create_fallback_spec(brief, previous)
        if stage == PipelineStage.LAYOUT_REFINEMENT and previous is not None:
            log_step("stage_degraded", request_id=request_id, level=logging.WARNING, step=stage.value, attempts=attempts, reason=reason)
            return degrade_layout(previous, reason)
        if stage == PipelineStage.IMAGE_PROMPT_GENERATION and previous is not None:
            log_step("stage_degraded", request_id=request_id, level=logging.WARNING, step=stage.value, attempts=attempts, reason=reason)
            return degrade_image_prompt(previous, reason)

        log_step("stage_failed", request_id=request_id, level=logging.ERROR, step=stage.value, attempts=attempts, reason=reason)
        raise AIGenerationError(
            f"Step '{stage.value}' failed after {attempts} attempt(s)",
            step=stage.value,
            attempt=attempts,
            original_error=cause,
        )
