from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from slidegen.services.trace import log_step


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            self.prompt_tokens + other.prompt_tokens,
            self.completion_tokens + other.completion_tokens,
        )


def _usage_field(usage: Any, *names: str) -> int:
    for name in names:
        value = getattr(usage, name, None)
        if value is None and hasattr(usage, "get"):
            value = usage.get(name)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return max(0, int(value))
    return 0


def usage_from_response(response: Any) -> TokenUsage | None:
    """Token counts from an SDK response; OpenAI and Anthropic name them differently."""
    usage = getattr(response, "usage", None)
    if usage is None:
        return None
    return TokenUsage(
        prompt_tokens=_usage_field(usage, "prompt_tokens", "input_tokens"),
        completion_tokens=_usage_field(usage, "completion_tokens", "output_tokens"),
    )


@dataclass
class UsageSummary:
    calls: int = 0
    usage: TokenUsage = field(default_factory=TokenUsage)
    estimated_cost_usd: float = 0.0


@dataclass(frozen=True)
class UsageRecord:
    request_id: str | None
    label: str
    provider: str
    model: str
    usage: TokenUsage


class UsageTracker:
    """Per-request token accounting with a flat per-1K-token cost estimate.

    Records for a request are kept until :meth:`finish`, which logs the
    totals and forgets them. Batch slides use ``<request>:<n>`` ids and are
    summed under their parent request. Calls without a request id (shared
    content analysis) only count towards ``lifetime``.
    """

    def __init__(self, cost_per_1k_tokens: float = 0.0):
        self.cost_per_1k_tokens = cost_per_1k_tokens
        self._records: list[UsageRecord] = []
        self.lifetime = UsageSummary()

    def estimate_cost(self, usage: TokenUsage) -> float:
        return round(usage.total_tokens * self.cost_per_1k_tokens / 1000.0, 6)

    def record(
        self,
        request_id: str | None,
        *,
        label: str,
        provider: str,
        model: str,
        usage: TokenUsage | None,
    ) -> UsageRecord:
        row = UsageRecord(request_id, label, provider, model, usage or TokenUsage())
        if request_id is not None:
            self._records.append(row)
        self.lifetime.calls += 1
        self.lifetime.usage = self.lifetime.usage + row.usage
        self.lifetime.estimated_cost_usd = self.estimate_cost(self.lifetime.usage)
        return row

    @staticmethod
    def _belongs(row: UsageRecord, request_id: str) -> bool:
        return row.request_id == request_id or (row.request_id or "").startswith(f"{request_id}:")

    def records(self, request_id: str) -> list[UsageRecord]:
        return [row for row in self._records if self._belongs(row, request_id)]

    def summary(self, request_id: str) -> UsageSummary:
        rows = self.records(request_id)
        total = TokenUsage()
        for row in rows:
            total = total + row.usage
        return UsageSummary(calls=len(rows), usage=total, estimated_cost_usd=self.estimate_cost(total))

    def finish(self, request_id: str, operation: str = "generation") -> UsageSummary:
        summary = self.summary(request_id)
        self._records = [row for row in self._records if not self._belongs(row, request_id)]
        log_step(
            "usage_summary",
            request_id=request_id,
            operation=operation,
            calls=summary.calls,
            prompt_tokens=summary.usage.prompt_tokens,
            completion_tokens=summary.usage.completion_tokens,
            total_tokens=summary.usage.total_tokens,
            estimated_cost_usd=summary.estimated_cost_usd,
        )
        return summary
