from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from slidegen.errors import NetworkError, SlideGenerationError


@dataclass
class CompletionRequest:
    model: str
    messages: list[dict[str, str]]
    temperature: float = 0.7
    max_tokens: int = 1400
    json_mode: bool = True
    label: str = "completion"
    request_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


def retry_after_from_headers(headers: Any) -> float | None:
    """Seconds from ``retry-after-ms`` / ``retry-after`` headers, if present."""
    if headers is None:
        return None
    try:
        raw_ms = headers.get("retry-after-ms")
        if raw_ms is not None:
            return max(0.0, float(raw_ms) / 1000.0)
        raw = headers.get("retry-after")
        if raw is not None:
            return max(0.0, float(raw))
    except (TypeError, ValueError):
        return None
    return None


def looks_like_content_filter(message: str, code: str | None = None) -> bool:
    lowered = f"{code or ''} {message}".lower()
    return any(token in lowered for token in ("content_filter", "content_policy", "content policy", "safety system"))


class BaseLLMProvider:
    """One chat-completion backend.

    Subclasses implement :meth:`complete` returning the raw response text and
    :meth:`map_error` translating SDK exceptions into the engine's error types.
    Token counts, when the backend reports them, go in ``request.metadata["usage"]``.
    """

    name = "base"
    default_model = ""
    fallback_model: str | None = None

    async def complete(self, request: CompletionRequest) -> str:
        raise NotImplementedError

    def map_error(self, exc: BaseException) -> SlideGenerationError:
        if isinstance(exc, SlideGenerationError):
            return exc
        return NetworkError(f"{self.name} request failed: {exc}")

    async def aclose(self) -> None:
        return None
