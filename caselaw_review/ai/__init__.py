"""
LLM access for the Case-Law Review pipeline.

Components:
    ChatClient - Abstract provider interface (async)
    OpenAICompatibleClient - httpx client for /chat/completions endpoints
    ModelInvoker - Flex-tier retry and model fallback policy
    compute_cost - USD cost of one call from its usage metadata

Usage:
    from caselaw_review.ai import OpenAICompatibleClient, ModelInvoker

    async with OpenAICompatibleClient() as client:
        invoker = ModelInvoker(client)
        result = await invoker.invoke(system_prompt, user_content, model)
"""

from .chat_client import ChatClient, ChatCompletion, OpenAICompatibleClient, parse_usage
from .model_invoker import InvocationResult, ModelInvoker
from .pricing import TIER_FLEX, TIER_STANDARD, compute_cost, get_pricing

__all__ = [
    'ChatClient',
    'ChatCompletion',
    'OpenAICompatibleClient',
    'parse_usage',
    'InvocationResult',
    'ModelInvoker',
    'TIER_FLEX',
    'TIER_STANDARD',
    'compute_cost',
    'get_pricing',
]
