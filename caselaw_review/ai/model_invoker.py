"""
Model Invoker - one request/response exchange with the LLM provider.

Owns the tier retry/fallback policy:

1. Flex tier (when requested): up to FLEX_MAX_ATTEMPTS requests. A 429
   "resource unavailable" answer is retried after FLEX_RETRY_DELAYS_SECONDS;
   any other error, or running out of attempts, downgrades the same request
   to the standard tier.
2. Standard tier: one request. If the provider reports the model as
   unavailable, FALLBACK_MODEL is substituted and the request is sent once
   more.
3. Anything else becomes an InvocationError chained to the provider error.

Cost is computed from the usage metadata with the price table of the model
and tier that actually served the request.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass

from caselaw_review.config import (
    FALLBACK_MODEL,
    FLEX_MAX_ATTEMPTS,
    FLEX_RETRY_DELAYS_SECONDS,
    LLM_TEMPERATURE,
    MODEL_PRICING,
)
from caselaw_review.costs import CostBreakdown, CostRecord, TokenUsage
from caselaw_review.exceptions import InvocationError, ProviderError
from caselaw_review.logging_config import debug_log, warning

from .chat_client import ChatClient, ChatCompletion
from .pricing import TIER_FLEX, TIER_STANDARD, compute_cost

SleepFunction = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class InvocationResult:
    """
    Outcome of a successful invocation.

    Attributes:
        content: Model output text (never empty)
        usage: Token usage reported by the provider
        cost: Cost computed for the model/tier that served the request
        model: Model that actually answered (may be the fallback model)
        tier_used: "flex" or "standard"
        fell_back_to_standard_tier: Flex was requested but standard answered
        attempts: Total number of requests issued
    """
    content: str
    usage: TokenUsage
    cost: CostBreakdown
    model: str
    tier_used: str
    fell_back_to_standard_tier: bool = False
    attempts: int = 1

    def cost_record(self, stage: int) -> CostRecord:
        """Tag this call's usage and cost with the issuing stage."""
        return CostRecord(
            stage=stage,
            model=self.model,
            tier=self.tier_used,
            usage=self.usage,
            cost=self.cost,
        )


class ModelInvoker:
    """
    Sends system/user prompt pairs to a ChatClient with retry and fallback.

    The ChatClient is constructed by the caller and shared; the invoker
    itself holds no mutable state and is safe to use from concurrent tasks.

    Example:
        invoker = ModelInvoker(client)
        result = await invoker.invoke(system, user, "deepseek/deepseek-v3.2",
                                      use_degraded_tier=True)
        print(result.tier_used, result.cost.total_cost)
    """

    def __init__(
        self,
        client: ChatClient,
        fallback_model: str = FALLBACK_MODEL,
        temperature: float = LLM_TEMPERATURE,
        flex_max_attempts: int = FLEX_MAX_ATTEMPTS,
        retry_delays: Sequence[float] = FLEX_RETRY_DELAYS_SECONDS,
        sleep: SleepFunction = asyncio.sleep,
        pricing: Mapping = MODEL_PRICING,
    ):
        """
        Args:
            client: Provider client shared for the process lifetime
            fallback_model: Model substituted when the requested one is unavailable
            temperature: Sampling temperature for every request
            flex_max_attempts: Flex requests before downgrading to standard
            retry_delays: Backoff (seconds) after each capacity rejection
            sleep: Awaitable used for backoff delays (injectable for tests)
            pricing: Price table used for cost computation
        """
        self.client = client
        self.fallback_model = fallback_model
        self.temperature = temperature
        self.flex_max_attempts = flex_max_attempts
        self.retry_delays = tuple(retry_delays)
        self._sleep = sleep
        self.pricing = pricing

    async def invoke(
        self,
        system_prompt: str,
        user_content: str,
        model: str,
        use_degraded_tier: bool = False,
    ) -> InvocationResult:
        """
        Run one exchange under the retry/fallback policy.

        Args:
            system_prompt: System instruction (non-empty)
            user_content: User message (non-empty)
            model: Requested model identifier
            use_degraded_tier: Try the cheaper flex tier first

        Returns:
            InvocationResult describing the response that was accepted

        Raises:
            InvocationError: If no usable response could be obtained
        """
        if not system_prompt or not system_prompt.strip():
            raise InvocationError("System prompt is empty")
        if not user_content or not user_content.strip():
            raise InvocationError("User content is empty")

        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content},
        ]

        completion: ChatCompletion | None = None
        used_model = model
        tier_used = TIER_STANDARD
        fell_back = False
        attempts = 0

        if use_degraded_tier:
            completion, attempts = await self._invoke_flex(model, messages)
            if completion is None:
                fell_back = True
            else:
                tier_used = TIER_FLEX

        if completion is None:
            completion, used_model, standard_attempts = await self._invoke_standard(model, messages)
            attempts += standard_attempts

        if not completion.content or not completion.content.strip():
            raise InvocationError(f"Empty completion from model {used_model}")
        if completion.usage is None:
            raise InvocationError(f"No token usage reported by model {used_model}")

        cost = compute_cost(completion.usage, used_model, tier_used, self.pricing)
        debug_log(
            f"[INVOKER] {used_model} ({tier_used}) attempts={attempts} "
            f"tokens={completion.usage.total_tokens} cost=${cost.total_cost:.6f}"
        )

        return InvocationResult(
            content=completion.content,
            usage=completion.usage,
            cost=cost,
            model=used_model,
            tier_used=tier_used,
            fell_back_to_standard_tier=fell_back,
            attempts=attempts,
        )

    async def _invoke_flex(
        self,
        model: str,
        messages: list[dict[str, str]],
    ) -> tuple[ChatCompletion | None, int]:
        """
        Try the flex tier with backoff on capacity rejections.

        Returns:
            (completion or None if the request must be downgraded, attempts made)
        """
        attempts = 0
        for attempt in range(self.flex_max_attempts):
            attempts += 1
            try:
                completion = await self.client.create(
                    model=model,
                    messages=messages,
                    temperature=self.temperature,
                    service_tier=TIER_FLEX,
                )
                return completion, attempts
            except ProviderError as e:
                if e.is_capacity_exhausted and attempt < self.flex_max_attempts - 1:
                    delay = self.retry_delays[min(attempt, len(self.retry_delays) - 1)]
                    warning(
                        f"Flex tier: resource unavailable for {model} "
                        f"(attempt {attempt + 1}/{self.flex_max_attempts}), retrying in {delay:g}s"
                    )
                    await self._sleep(delay)
                    continue
                if e.is_capacity_exhausted:
                    warning(f"Flex tier: all {self.flex_max_attempts} attempts exhausted for {model}, switching to standard tier")
                else:
                    warning(f"Flex tier: error {e.status or 'unknown'} for {model}, switching to standard tier")
                return None, attempts
            except Exception as e:
                warning(f"Flex tier: unexpected error for {model} ({e}), switching to standard tier")
                return None, attempts

        return None, attempts

    async def _invoke_standard(
        self,
        model: str,
        messages: list[dict[str, str]],
    ) -> tuple[ChatCompletion, str, int]:
        """
        Send a standard-tier request, substituting the fallback model once.

        Returns:
            (completion, model that answered, attempts made)
        """
        try:
            completion = await self.client.create(
                model=model,
                messages=messages,
                temperature=self.temperature,
            )
            return completion, model, 1
        except ProviderError as e:
            if not e.is_model_unavailable or model == self.fallback_model:
                raise InvocationError(f"Model call failed for {model}: {e}") from e
            warning(f"Model {model} is unavailable, using {self.fallback_model}")
        except Exception as e:
            raise InvocationError(f"Model call failed for {model}: {e}") from e

        try:
            completion = await self.client.create(
                model=self.fallback_model,
                messages=messages,
                temperature=self.temperature,
            )
        except Exception as e:
            raise InvocationError(f"Fallback model {self.fallback_model} failed: {e}") from e
        return completion, self.fallback_model, 2
