from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from time import perf_counter
from typing import Any

from slidegen.cancellation import CancellationToken
from slidegen.errors import CallTimeoutError, MalformedResponseError, SlideGenerationError
from slidegen.providers.base import BaseLLMProvider, CompletionRequest
from slidegen.services.json_extract import parse_json_object
from slidegen.services.trace import preview_text
from slidegen.services.usage import UsageTracker


logger = logging.getLogger("slidegen.providers")


async def _cancel_and_drain(tasks: set[asyncio.Task]) -> None:
    for task in tasks:
        task.cancel()
    for task in tasks:
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await task


def parse_model_json(text: str) -> dict[str, Any]:
    try:
        payload = json.loads(text)
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        return payload
    extracted = parse_json_object(text)
    if extracted is not None:
        return extracted
    raise MalformedResponseError("Model response did not contain a JSON object", preview_text(text, 120))


class ModelCallExecutor:
    """One bounded, cancellable call to one provider/model, parsed to a dict."""

    def __init__(self, usage: UsageTracker | None = None):
        self.usage = usage

    async def execute(
        self,
        provider: BaseLLMProvider,
        model: str,
        messages: list[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
        timeout_seconds: float,
        cancel_token: CancellationToken | None = None,
        label: str = "completion",
        request_id: str | None = None,
    ) -> dict[str, Any]:
        text = await self.complete_text(
            provider,
            CompletionRequest(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                label=label,
                request_id=request_id,
            ),
            timeout_seconds=timeout_seconds,
            cancel_token=cancel_token,
        )
        return parse_model_json(text)

    async def complete_text(
        self,
        provider: BaseLLMProvider,
        request: CompletionRequest,
        *,
        timeout_seconds: float,
        cancel_token: CancellationToken | None = None,
    ) -> str:
        if cancel_token is not None and cancel_token.cancelled:
            raise CallTimeoutError(f"request cancelled before dispatch: {cancel_token.reason}")

        started = perf_counter()
        call_task = asyncio.ensure_future(provider.complete(request))
        waiters: set[asyncio.Task] = {call_task}
        cancel_task = None
        if cancel_token is not None:
            cancel_task = asyncio.ensure_future(cancel_token.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout_seconds, return_when=asyncio.FIRST_COMPLETED)
        finally:
            await _cancel_and_drain({task for task in waiters if not task.done()})

        if call_task in done:
            try:
                text = call_task.result()
            except SlideGenerationError:
                raise
            except asyncio.TimeoutError as exc:
                raise CallTimeoutError(f"{provider.name} call timed out", timeout_seconds) from exc
            except Exception as exc:
                mapped = provider.map_error(exc)
                logger.warning(
                    "model_call_error label=%s provider=%s model=%s duration_sec=%.2f kind=%s reason=%s",
                    request.label,
                    provider.name,
                    request.model,
                    perf_counter() - started,
                    mapped.kind,
                    preview_text(str(exc), 200),
                )
                raise mapped from exc
            if self.usage is not None:
                self.usage.record(
                    request.request_id,
                    label=request.label,
                    provider=provider.name,
                    model=request.model,
                    usage=request.metadata.get("usage"),
                )
            return text

        if cancel_task is not None and cancel_task in done:
            raise CallTimeoutError(f"request aborted: {cancel_token.reason}", timeout_seconds)
        raise CallTimeoutError(
            f"{provider.name} call exceeded {timeout_seconds:.1f}s (label={request.label})",
            timeout_seconds,
        )
