from __future__ import annotations

from typing import Any


class SlideGenerationError(Exception):
    """Base class for every failure the engine raises on purpose."""

    kind = "error"
    retryable = True

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SlideGenerationError):
    """Output that does not fit the slide shape after recovery, or a request the
    provider rejected (a 4xx that is not a rate limit).

    Never retried; an attempt loop escalates it as-is.
    """

    kind = "validation"
    retryable = False

    def __init__(self, message: str, validation_errors: list[str] | None = None):
        super().__init__(message)
        self.validation_errors = list(validation_errors or [])


class MalformedResponseError(SlideGenerationError):
    """Empty completion or text with no JSON object in it. Retried like a transient failure."""

    kind = "malformed_response"

    def __init__(self, message: str, response_preview: str | None = None):
        super().__init__(message)
        self.response_preview = response_preview


class CallTimeoutError(SlideGenerationError, TimeoutError):
    kind = "timeout"

    def __init__(self, message: str, timeout_seconds: float | None = None):
        super().__init__(message)
        self.timeout_seconds = timeout_seconds


class RateLimitError(SlideGenerationError):
    kind = "rate_limit"

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class ContentFilterError(SlideGenerationError):
    kind = "content_filter"
    retryable = False

    def __init__(self, message: str, filtered_content: str | None = None):
        super().__init__(message)
        self.filtered_content = filtered_content


class NetworkError(SlideGenerationError):
    kind = "network"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AIGenerationError(SlideGenerationError):
    """Terminal failure of one pipeline step after retries and fallbacks."""

    kind = "generation"
    retryable = False

    def __init__(self, message: str, step: str, attempt: int, original_error: BaseException | None = None):
        super().__init__(message)
        self.step = step
        self.attempt = attempt
        self.original_error = original_error

    def __str__(self) -> str:
        cause = f" cause={self.original_error!r}" if self.original_error is not None else ""
        return f"{self.message} (step={self.step} attempts={self.attempt}){cause}"


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, SlideGenerationError):
        return bool(exc.retryable)
    return True


_ERROR_CATEGORIES: list[tuple[str, tuple[str, ...], str]] = [
    ("missing_title", ("title",), "The slide has no usable title."),
    ("invalid_layout", ("layout",), "The layout is not one of the supported layout names."),
    ("chart_shape", ("chart",), "Chart data does not line up with its categories or series."),
    ("table_shape", ("comparisonTable",), "Comparison table rows do not match the column count."),
    ("timeline_shape", ("timeline",), "Timeline entries are missing dates or titles."),
    ("color_format", ("color", "Color"), "A colour value is not a 3- or 6-digit hex code."),
    ("unexpected_field", ("Unexpected",), "The response contains fields the slide format does not allow."),
]


def analyze_validation_errors(errors: list[str]) -> dict[str, Any]:
    """Group raw validator messages into categories for logs and traces."""
    categories: list[str] = []
    hints: list[str] = []
    for category, needles, hint in _ERROR_CATEGORIES:
        if any(any(needle in err for needle in needles) for err in errors):
            categories.append(category)
            hints.append(hint)
    if not categories and errors:
        categories.append("other")
        hints.append("The response did not match the slide format.")
    return {
        "categories": categories,
        "message": " ".join(hints),
        "count": len(errors),
    }
