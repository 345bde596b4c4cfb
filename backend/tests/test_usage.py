"""
Tests for token usage accounting and per-request cost summaries.
"""

from types import SimpleNamespace

import pytest

from conftest import ScriptedProvider
from slidegen.agent.executor import ModelCallExecutor
from slidegen.engine import SlideGenerationEngine
from slidegen.providers.anthropic_provider import AnthropicProvider
from slidegen.providers.base import CompletionRequest
from slidegen.providers.openai_provider import OpenAIProvider
from slidegen.schemas import GenerationParams
from slidegen.services.usage import TokenUsage, UsageTracker, usage_from_response


MESSAGES = [{"role": "system", "content": "sys"}, {"role": "user", "content": "TASK: x"}]


class MeteredProvider(ScriptedProvider):
    """Scripted provider that reports a fixed token count per call."""

    def __init__(self, responses, usage: TokenUsage, **kwargs):
        super().__init__(responses, **kwargs)
        self.usage = usage

    async def complete(self, request: CompletionRequest) -> str:
        text = await super().complete(request)
        request.metadata["usage"] = self.usage
        return text


class TestUsageFromResponse:
    def test_openai_names(self):
        """Test prompt/completion token names are read."""
        response = SimpleNamespace(usage=SimpleNamespace(prompt_tokens=120, completion_tokens=30, total_tokens=150))
        assert usage_from_response(response) == TokenUsage(120, 30)

    def test_anthropic_names(self):
        """Test input/output token names are read."""
        response = SimpleNamespace(usage=SimpleNamespace(input_tokens=80, output_tokens=20))
        assert usage_from_response(response).total_tokens == 100

    def test_dict_usage(self):
        """Test a dict-shaped usage block is accepted."""
        response = SimpleNamespace(usage={"prompt_tokens": 5, "completion_tokens": 7})
        assert usage_from_response(response) == TokenUsage(5, 7)

    def test_missing_usage(self):
        """Test responses without usage report nothing."""
        assert usage_from_response(SimpleNamespace()) is None


class TestUsageTracker:
    def test_summary_and_cost(self):
        """Test totals and the per-1K-token estimate for one request."""
        tracker = UsageTracker(cost_per_1k_tokens=0.03)
        tracker.record("r1", label="content_generation#1", provider="openai", model="m", usage=TokenUsage(700, 300))
        tracker.record("r1", label="layout_refinement#1", provider="openai", model="m", usage=TokenUsage(900, 100))
        tracker.record("r2", label="content_generation#1", provider="openai", model="m", usage=TokenUsage(10, 10))

        summary = tracker.summary("r1")

        assert summary.calls == 2
        assert summary.usage == TokenUsage(1600, 400)
        assert summary.estimated_cost_usd == pytest.approx(0.06)

    def test_batch_slides_roll_up_to_parent(self):
        """Test slide-scoped ids are summed under their batch request."""
        tracker = UsageTracker()
        tracker.record("batch", label="batch_image_prompts", provider="p", model="m", usage=TokenUsage(50, 50))
        tracker.record("batch:1", label="content_generation#1", provider="p", model="m", usage=TokenUsage(10, 0))
        tracker.record("batch:2", label="content_generation#1", provider="p", model="m", usage=TokenUsage(10, 0))
        tracker.record("batched", label="content_generation#1", provider="p", model="m", usage=TokenUsage(999, 0))

        assert tracker.summary("batch").usage.total_tokens == 120
        assert tracker.summary("batch").calls == 3

    def test_finish_forgets_request(self, caplog):
        """Test finishing logs the totals and drops the request's records."""
        tracker = UsageTracker(cost_per_1k_tokens=0.03)
        tracker.record("r1", label="x", provider="p", model="m", usage=TokenUsage(1000, 0))

        with caplog.at_level("INFO", logger="slidegen.pipeline"):
            summary = tracker.finish("r1", "slide_generation")

        assert summary.usage.total_tokens == 1000
        assert tracker.records("r1") == []
        assert tracker.lifetime.calls == 1
        assert "usage_summary" in caplog.text
        assert "total_tokens=1000" in caplog.text

    def test_unattributed_calls_count_only_lifetime(self):
        """Test calls without a request id are not kept per request."""
        tracker = UsageTracker()
        tracker.record(None, label="content_analysis", provider="p", model="m", usage=TokenUsage(3, 4))
        assert tracker.lifetime.usage == TokenUsage(3, 4)
        assert tracker._records == []

    def test_missing_usage_counts_the_call(self):
        """Test a call without reported tokens still counts as a call."""
        tracker = UsageTracker()
        tracker.record("r1", label="x", provider="mock", model="m", usage=None)
        assert tracker.summary("r1").calls == 1
        assert tracker.summary("r1").usage.total_tokens == 0


class TestUsageWiring:
    async def test_executor_records_reported_usage(self, valid_spec_payload):
        """Test the executor records what the provider reported under the request id."""
        tracker = UsageTracker()
        provider = MeteredProvider([valid_spec_payload], TokenUsage(40, 60))

        await ModelCallExecutor(tracker).execute(
            provider,
            provider.default_model,
            MESSAGES,
            temperature=0.7,
            max_tokens=400,
            timeout_seconds=1.0,
            label="content_generation#1@scripted/primary-model",
            request_id="abc",
        )

        [row] = tracker.records("abc")
        assert row.usage == TokenUsage(40, 60)
        assert row.provider == "scripted"
        assert row.label.startswith("content_generation#1")

    async def test_openai_provider_reports_usage(self):
        """Test the OpenAI provider copies SDK usage onto the request."""

        async def create(**kwargs):
            message = SimpleNamespace(content='{"title": "T", "layout": "title"}')
            return SimpleNamespace(
                choices=[SimpleNamespace(finish_reason="stop", message=message)],
                usage=SimpleNamespace(prompt_tokens=11, completion_tokens=22),
            )

        client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
        request = CompletionRequest(model="gpt-test", messages=MESSAGES)
        await OpenAIProvider("sk-test", client=client).complete(request)
        assert request.metadata["usage"] == TokenUsage(11, 22)

    async def test_anthropic_provider_reports_usage(self):
        """Test the Anthropic provider copies SDK usage onto the request."""

        async def create(**kwargs):
            return SimpleNamespace(
                content=[SimpleNamespace(text='{"title": "T", "layout": "title"}')],
                stop_reason="end_turn",
                usage=SimpleNamespace(input_tokens=9, output_tokens=3),
            )

        client = SimpleNamespace(messages=SimpleNamespace(create=create))
        request = CompletionRequest(model="c-1", messages=MESSAGES)
        await AnthropicProvider("sk-ant-test", client=client).complete(request)
        assert request.metadata["usage"] == TokenUsage(9, 3)

    async def test_engine_summarises_each_generation(self, test_settings, fake_sleep, valid_spec_payload):
        """Test every stage call is attributed to the request and cleared once it finishes."""
        tracker = UsageTracker(cost_per_1k_tokens=0.03)
        provider = MeteredProvider([valid_spec_payload], TokenUsage(100, 50))
        engine = SlideGenerationEngine(
            provider, config=test_settings, secondary_providers=[], usage=tracker, sleep=fake_sleep
        )

        await engine.generate_slide_spec(GenerationParams(prompt="Revenue recap"))

        assert engine.usage is tracker
        assert tracker.lifetime.calls == len(provider.calls) == 3
        assert tracker.lifetime.usage == TokenUsage(300, 150)
        assert tracker._records == []

    async def test_batch_summary_covers_every_slide(self, test_settings, fake_sleep, valid_spec_payload):
        """Test a batch run attributes its slides' calls and clears them at the end."""
        tracker = UsageTracker()
        provider = MeteredProvider([valid_spec_payload], TokenUsage(10, 10))
        engine = SlideGenerationEngine(
            provider, config=test_settings, secondary_providers=[], usage=tracker, sleep=fake_sleep, batch_concurrency=2
        )

        await engine.generate_batch_slide_specs(GenerationParams(prompt="Revenue recap"), 2)

        assert tracker.lifetime.calls == len(provider.calls) == 4
        assert tracker._records == []
