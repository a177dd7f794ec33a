"""
Tests for pricing and cost aggregation.

Tests cover:
- Per-call cost computation (cached tokens, flex tier, unknown models)
- Pricing table loading
- Per-stage and run-level aggregation
"""

import pytest

from caselaw_review.ai import compute_cost, get_pricing
from caselaw_review.config import MODEL_PRICING, load_pricing
from caselaw_review.costs import CostBreakdown, CostRecord, TokenUsage, aggregate_costs


def _record(stage, prompt=1000, completion=100, cached=0, total_cost=0.01):
    return CostRecord(
        stage=stage,
        model="m",
        tier="standard",
        usage=TokenUsage(prompt, completion, cached, prompt + completion),
        cost=CostBreakdown(input_cost=total_cost / 2, output_cost=total_cost / 2, total_cost=total_cost),
    )


class TestComputeCost:
    """Test cost of a single call."""

    def test_cached_tokens_billed_at_cached_rate(self):
        pricing = {"standard": {"gpt-5.1": {"input": 1.0, "cached_input": 0.1, "output": 10.0}}}
        usage = TokenUsage(prompt_tokens=1_000_000, completion_tokens=500_000, cached_tokens=200_000, total_tokens=1_500_000)

        cost = compute_cost(usage, "gpt-5.1", "standard", pricing)

        assert cost.input_cost == pytest.approx(0.8)
        assert cost.cached_input_cost == pytest.approx(0.02)
        assert cost.output_cost == pytest.approx(5.0)
        assert cost.total_cost == pytest.approx(5.82)

    def test_unknown_model_uses_default_pricing_for_tier(self):
        assert get_pricing("x-ai/grok-4.1-fast", "flex") == MODEL_PRICING["flex"]["gpt-5.1"]
        assert get_pricing("x-ai/grok-4.1-fast", "standard") == MODEL_PRICING["standard"]["gpt-5.1"]

    def test_flex_is_cheaper_than_standard(self):
        usage = TokenUsage(prompt_tokens=10_000, completion_tokens=1_000, total_tokens=11_000)
        flex = compute_cost(usage, "gpt-5.1", "flex")
        standard = compute_cost(usage, "gpt-5.1", "standard")
        assert flex.total_cost < standard.total_cost

    def test_zero_usage_gives_zero_fields(self):
        cost = compute_cost(TokenUsage(), "gpt-5.1", "standard")
        assert cost == CostBreakdown(0.0, 0.0, 0.0, 0.0)


class TestLoadPricing:
    """Test the YAML price table."""

    def test_missing_file_falls_back_to_builtin(self, tmp_path):
        pricing = load_pricing(tmp_path / "absent.yaml")
        assert pricing["standard"]["gpt-5.1"]["input"] > 0
        assert "flex" in pricing

    def test_yaml_file_is_read_and_frozen(self, tmp_path):
        path = tmp_path / "pricing.yaml"
        path.write_text(
            "pricing:\n  standard:\n    custom-model:\n      input: 2\n      cached_input: 0.5\n      output: 8\n",
            encoding="utf-8",
        )
        pricing = load_pricing(path)
        assert pricing["standard"]["custom-model"]["output"] == 8.0
        with pytest.raises(TypeError):
            pricing["standard"]["custom-model"]["output"] = 1.0


class TestAggregateCosts:
    """Test per-stage and total statistics."""

    def test_stage_sums_and_total(self):
        records = [_record(0), _record(0, cached=100), _record(1, total_cost=0.02)]

        stats = aggregate_costs(records, scheduled_stages=[0, 1])

        stage0 = stats.get_stage(0)
        assert stage0.calls == 2
        assert stage0.tokens.input == 1000 + 900
        assert stage0.tokens.cached_input == 100
        assert stage0.cost.total == pytest.approx(0.02)
        assert stats.total.cost.total == pytest.approx(0.04)
        assert stats.total.tokens.total == 3 * 1100

    def test_scheduled_stage_without_calls_is_zero_filled(self):
        stats = aggregate_costs([_record(0)], scheduled_stages=[0, 1, 2])

        assert [entry.stage for entry in stats.stages] == [0, 1, 2]
        assert stats.get_stage(2).calls == 0
        assert stats.get_stage(2).model is None
        assert stats.get_stage(1).cost.total == 0.0

    def test_record_for_unscheduled_stage_rejected(self):
        with pytest.raises(ValueError, match="unscheduled stage 3"):
            aggregate_costs([_record(3)], scheduled_stages=[0, 1])

    def test_total_equals_sum_of_stage_entries(self):
        records = [_record(stage, prompt=100 * (stage + 1)) for stage in (0, 0, 1, 3, 4)]
        stats = aggregate_costs(records, scheduled_stages=[0, 1, 2, 3, 4])

        assert stats.total.tokens.input == sum(entry.tokens.input for entry in stats.stages)
        assert stats.total.cost.total == pytest.approx(sum(entry.cost.total for entry in stats.stages))

    def test_to_dict_uses_camel_case(self):
        data = aggregate_costs([_record(0, cached=10)], scheduled_stages=[0]).to_dict()

        step = data["steps"][0]
        assert step["step"] == 0
        assert step["stepName"] == "Legal position extraction"
        assert step["model"] == "x-ai/grok-4.1-fast"
        assert step["tokens"]["cachedInput"] == 10
        assert "cachedInput" in data["total"]["cost"]
