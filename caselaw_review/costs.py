"""
Token and cost accounting.

Every successful model call produces one CostRecord tagged with the stage
that issued it. aggregate_costs() folds those records into one
StageCostStatistics per scheduled stage and a run-level total.

Usage:
    records = [CostRecord(stage=0, model="x-ai/grok-4.1-fast", tier="standard",
                          usage=usage, cost=cost)]
    stats = aggregate_costs(records, scheduled_stages=[0, 1])
    print(stats.total.cost.total)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from caselaw_review.config import STAGE_MODELS, STAGE_NAMES


@dataclass(frozen=True)
class TokenUsage:
    """Usage metadata reported by the provider for one call."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cached_tokens: int = 0
    total_tokens: int = 0

    @property
    def input_tokens(self) -> int:
        """Prompt tokens billed at the full input rate."""
        return self.prompt_tokens - self.cached_tokens


@dataclass(frozen=True)
class CostBreakdown:
    """USD cost of one call."""
    input_cost: float = 0.0
    cached_input_cost: float = 0.0
    output_cost: float = 0.0
    total_cost: float = 0.0


@dataclass(frozen=True)
class CostRecord:
    """Usage and cost of one call, tagged with the issuing stage."""
    stage: int
    model: str
    tier: str
    usage: TokenUsage
    cost: CostBreakdown


@dataclass
class TokenTotals:
    input: int = 0
    cached_input: int = 0
    output: int = 0
    total: int = 0

    def add(self, other: TokenTotals) -> None:
        self.input += other.input
        self.cached_input += other.cached_input
        self.output += other.output
        self.total += other.total

    def to_dict(self) -> dict:
        return {
            "input": self.input,
            "cachedInput": self.cached_input,
            "output": self.output,
            "total": self.total,
        }


@dataclass
class CostTotals:
    input: float = 0.0
    cached_input: float = 0.0
    output: float = 0.0
    total: float = 0.0

    def add(self, other: CostTotals) -> None:
        self.input += other.input
        self.cached_input += other.cached_input
        self.output += other.output
        self.total += other.total

    def to_dict(self) -> dict:
        return {
            "input": self.input,
            "cachedInput": self.cached_input,
            "output": self.output,
            "total": self.total,
        }


@dataclass
class StageCostStatistics:
    """
    Summed usage and cost for one pipeline stage.

    Attributes:
        stage: Stage index (0-4)
        stage_name: Human-readable stage name
        model: Model configured for the stage (None for stage 2)
        calls: Number of completed model calls
        tokens: Token sums by kind
        cost: Cost sums by kind
    """
    stage: int
    stage_name: str
    model: str | None = None
    calls: int = 0
    tokens: TokenTotals = field(default_factory=TokenTotals)
    cost: CostTotals = field(default_factory=CostTotals)

    def to_dict(self) -> dict:
        return {
            "step": self.stage,
            "stepName": self.stage_name,
            "model": self.model,
            "calls": self.calls,
            "tokens": self.tokens.to_dict(),
            "cost": self.cost.to_dict(),
        }


@dataclass
class RunTotals:
    tokens: TokenTotals = field(default_factory=TokenTotals)
    cost: CostTotals = field(default_factory=CostTotals)

    def to_dict(self) -> dict:
        return {"tokens": self.tokens.to_dict(), "cost": self.cost.to_dict()}


@dataclass
class RunCostStatistics:
    """Per-stage statistics plus their field-wise sum."""
    stages: list[StageCostStatistics] = field(default_factory=list)
    total: RunTotals = field(default_factory=RunTotals)

    def get_stage(self, stage: int) -> StageCostStatistics | None:
        """Get the statistics entry for a stage index."""
        for entry in self.stages:
            if entry.stage == stage:
                return entry
        return None

    def to_dict(self) -> dict:
        return {
            "steps": [entry.to_dict() for entry in self.stages],
            "total": self.total.to_dict(),
        }


def aggregate_costs(
    records: Iterable[CostRecord],
    scheduled_stages: Iterable[int],
) -> RunCostStatistics:
    """
    Fold per-call cost records into per-stage and run-level totals.

    Args:
        records: One CostRecord per completed model call
        scheduled_stages: Stages that ran (or started) in this run. Each gets
            an entry, all-zero if it made no calls.

    Returns:
        RunCostStatistics with stages in ascending order

    Raises:
        ValueError: If a record belongs to a stage that was not scheduled
    """
    by_stage: dict[int, StageCostStatistics] = {}
    for stage in sorted(set(scheduled_stages)):
        by_stage[stage] = StageCostStatistics(
            stage=stage,
            stage_name=STAGE_NAMES.get(stage, f"Stage {stage}"),
            model=STAGE_MODELS.get(stage),
        )

    for record in records:
        entry = by_stage.get(record.stage)
        if entry is None:
            raise ValueError(f"Cost record for unscheduled stage {record.stage}")

        entry.calls += 1
        entry.tokens.add(TokenTotals(
            input=record.usage.input_tokens,
            cached_input=record.usage.cached_tokens,
            output=record.usage.completion_tokens,
            total=record.usage.total_tokens,
        ))
        entry.cost.add(CostTotals(
            input=record.cost.input_cost,
            cached_input=record.cost.cached_input_cost,
            output=record.cost.output_cost,
            total=record.cost.total_cost,
        ))

    stats = RunCostStatistics(stages=list(by_stage.values()))
    for entry in stats.stages:
        stats.total.tokens.add(entry.tokens)
        stats.total.cost.add(entry.cost)
    return stats
