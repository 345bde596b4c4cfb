from __future__ import annotations

import logging
from time import perf_counter

import anthropic
from anthropic import AsyncAnthropic

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

_JSON_ONLY_SUFFIX = "\n\nReturn only the JSON object."


def split_messages(messages: list[dict[str, str]]) -> tuple[str, list[dict[str, str]]]:
    """System text plus a user-first conversation, as the Messages API requires."""
    system_parts = [row["content"] for row in messages if row.get("role") == "system"]
    turns = [
        {"role": row["role"], "content": row["content"]}
        for row in messages
        if row.get("role") in ("user", "assistant")
    ]
    if turns and turns[0]["role"] == "assistant":
        prior = turns.pop(0)
        context = f"Current slide JSON:\n{prior['content']}"
        if turns and turns[0]["role"] == "user":
            turns[0] = {"role": "user", "content": f"{context}\n\n{turns[0]['content']}"}
        else:
            turns.insert(0, {"role": "user", "content": context})
    return "\n\n".join(system_parts), turns


class AnthropicProvider(BaseLLMProvider):
    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        *,
        model: str | None = None,
        fallback_model: str | None = None,
        base_url: str | None = None,
        name: str | None = None,
        client=None,
    ):
        if name:
            self.name = name
        self.default_model = model or settings.anthropic_model
        self.fallback_model = fallback_model or settings.anthropic_fallback_model
        kwargs = {"api_key": api_key, "max_retries": 0}
        if base_url:
            kwargs["base_url"] = base_url
        self.client = client or AsyncAnthropic(**kwargs)

    async def complete(self, request: CompletionRequest) -> str:
        system, turns = split_messages(request.messages)
        if request.json_mode and turns and turns[-1]["role"] == "user":
            turns[-1] = {"role": "user", "content": turns[-1]["content"] + _JSON_ONLY_SUFFIX}
        started = perf_counter()
        logger.info(
            "%s_request_start label=%s model=%s input_chars=%d max_tokens=%d",
            self.name,
            request.label,
            request.model,
            len(system) + sum(len(row["content"]) for row in turns),
            request.max_tokens,
        )
        response = await self.client.messages.create(
            model=request.model,
            max_tokens=request.max_tokens,
            temperature=request.temperature,
            system=system,
            messages=turns,
        )
        request.metadata["usage"] = usage_from_response(response)
        text = "".join(block.text for block in response.content if hasattr(block, "text")).strip()
        if getattr(response, "stop_reason", None) == "refusal":
            raise ContentFilterError(f"{self.name} refused to answer", filtered_content=text or None)
        if not text:
            raise MalformedResponseError(f"{self.name} returned an empty completion")
        logger.info(
            "%s_request_done label=%s duration_sec=%.2f output_chars=%d output_preview=%s",
            self.name,
            request.label,
            perf_counter() - started,
            len(text),
            preview_text(text, 220),
        )
        return text

    def map_error(self, exc: BaseException) -> SlideGenerationError:
        if isinstance(exc, SlideGenerationError):
            return exc
        if isinstance(exc, anthropic.APITimeoutError):
            return CallTimeoutError(f"{self.name} request timed out: {exc}")
        if isinstance(exc, anthropic.RateLimitError):
            return RateLimitError(
                f"{self.name} rate limit: {exc}",
                retry_after=retry_after_from_headers(getattr(exc.response, "headers", None)),
            )
        if isinstance(exc, anthropic.APIConnectionError):
            return NetworkError(f"{self.name} connection failed: {exc}")
        if isinstance(exc, anthropic.APIStatusError):
            status = exc.status_code
            message = str(exc)
            if looks_like_content_filter(message):
                return ContentFilterError(f"{self.name} refused the request: {message}", filtered_content=message)
            if status == 429:
                return RateLimitError(message, retry_after=retry_after_from_headers(exc.response.headers))
            # 529 is Anthropic's "overloaded".
            if status >= 500:
                return NetworkError(f"{self.name} server error {status}: {message}", status_code=status)
            return ValidationError(f"{self.name} rejected the request ({status}): {message}", [message])
        return NetworkError(f"{self.name} request failed: {exc}")

    async def aclose(self) -> None:
        await self.client.close()
