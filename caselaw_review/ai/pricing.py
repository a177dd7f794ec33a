"""
Cost computation from usage metadata and the (model, tier) price table.
"""

from collections.abc import Mapping

from caselaw_review.config import DEFAULT_PRICING_MODEL, MODEL_PRICING
from caselaw_review.costs import CostBreakdown, TokenUsage

TIER_STANDARD = "standard"
TIER_FLEX = "flex"

TOKENS_PER_PRICE_UNIT = 1_000_000


def get_pricing(model: str, tier: str, pricing: Mapping = MODEL_PRICING) -> Mapping[str, float]:
    """
    Look up per-1M-token prices for a model on a tier.

    Unknown models are billed at DEFAULT_PRICING_MODEL rates for the same
    tier rather than failing.
    """
    tier_table = pricing.get(tier) or pricing[TIER_STANDARD]
    return tier_table.get(model) or tier_table[DEFAULT_PRICING_MODEL]


def compute_cost(
    usage: TokenUsage,
    model: str,
    tier: str,
    pricing: Mapping = MODEL_PRICING,
) -> CostBreakdown:
    """
    Compute the USD cost of one call.

    Input tokens are prompt tokens minus cached tokens; cached tokens are
    billed at the cached-input rate.

    Args:
        usage: Token usage reported by the provider
        model: Model that actually served the request
        tier: Tier that actually served the request ("standard" or "flex")
        pricing: Price table (defaults to the configured table)

    Returns:
        CostBreakdown with all four fields populated
    """
    prices = get_pricing(model, tier, pricing)

    input_cost = usage.input_tokens / TOKENS_PER_PRICE_UNIT * prices['input']
    cached_input_cost = usage.cached_tokens / TOKENS_PER_PRICE_UNIT * prices['cached_input']
    output_cost = usage.completion_tokens / TOKENS_PER_PRICE_UNIT * prices['output']

    return CostBreakdown(
        input_cost=input_cost,
        cached_input_cost=cached_input_cost,
        output_cost=output_cost,
        total_cost=input_cost + cached_input_cost + output_cost,
    )
