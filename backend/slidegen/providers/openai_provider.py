from __future__ import annotations

import logging
from time import perf_counter

import openai
from openai import AsyncOpenAI

from slidegen.config import settings
from slidegen.errors import (
    CallTimeoutError,
    ContentFilterError,
    MalformedResponseError,
    NetworkError,
    RateLimitError,
    SlideGenerationError,
    ValidationError,
)
from slidegen.providers.base import BaseLLMProvider, CompletionRequest, looks_like_content_filter, retry_after_from_headers
from slidegen.services.trace import preview_text
from slidegen.services.usage import usage_from_response


logger = logging.getLogger("slidegen.providers")


class OpenAIProvider(BaseLLMProvider):
    name = "openai"

    def __init__(self, api_key: str, *, model: str | None = None, fallback_model: str | None = None, client=None):
        self.default_model = model or settings.openai_model
        self.fallback_model = fallback_model or settings.openai_fallback_model
        # Retries are owned by the orchestrator.
        self.client = client or AsyncOpenAI(api_key=api_key, max_retries=0)

    async def complete(self, request: CompletionRequest) -> str:
        started = perf_counter()
        logger.info(
            "openai_request_start label=%s model=%s input_chars=%d max_tokens=%d",
            request.label,
            request.model,
            sum(len(row.get("content", "")) for row in request.messages),
            request.max_tokens,
        )
        kwargs = {
            "model": request.model,
            "messages": request.messages,
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = await self.client.chat.completions.create(**kwargs)
        request.metadata["usage"] = usage_from_response(response)

        choice = response.choices[0] if response.choices else None
        if choice is not None and choice.finish_reason == "content_filter":
            raise ContentFilterError("OpenAI response was blocked by the content filter", filtered_content=None)
        text = ((choice.message.content if choice is not None else None) or "").strip()
        if not text:
            raise MalformedResponseError("OpenAI returned an empty completion")
        logger.info(
            "openai_request_done label=%s duration_sec=%.2f output_chars=%d output_preview=%s",
            request.label,
            perf_counter() - started,
            len(text),
            preview_text(text, 220),
        )
        return text

    def map_error(self, exc: BaseException) -> SlideGenerationError:
        if isinstance(exc, SlideGenerationError):
            return exc
        if isinstance(exc, openai.APITimeoutError):
            return CallTimeoutError(f"OpenAI request timed out: {exc}")
        if isinstance(exc, openai.RateLimitError):
            return RateLimitError(
                f"OpenAI rate limit: {exc}",
                retry_after=retry_after_from_headers(getattr(exc.response, "headers", None)),
            )
        if isinstance(exc, openai.APIConnectionError):
            return NetworkError(f"OpenAI connection failed: {exc}")
        if isinstance(exc, openai.APIStatusError):
            status = exc.status_code
            code = str(getattr(exc, "code", "") or "")
            message = str(exc)
            if looks_like_content_filter(message, code):
                return ContentFilterError(f"OpenAI refused the request: {message}", filtered_content=message)
            if status == 429 or code == "insufficient_quota":
                return RateLimitError(
                    f"OpenAI quota exhausted: {message}",
                    retry_after=retry_after_from_headers(exc.response.headers),
                )
            if status >= 500:
                return NetworkError(f"OpenAI server error {status}: {message}", status_code=status)
            return ValidationError(f"OpenAI rejected the request ({status}): {message}", [message])
        return NetworkError(f"OpenAI request failed: {exc}")

    async def aclose(self) -> None:
        await self.client.close()
