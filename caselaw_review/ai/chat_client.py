"""
Chat completion clients.

ChatClient is the seam between the pipeline and the LLM provider. The
pipeline only ever talks to a ChatClient instance that its caller built once
and passed in; tests substitute a scripted fake.

OpenAICompatibleClient speaks the OpenAI chat-completions wire format over
httpx, which covers OpenAI itself as well as OpenRouter-style gateways.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from caselaw_review.config import LLM_API_BASE, LLM_API_KEY, LLM_TIMEOUT_SECONDS
from caselaw_review.costs import TokenUsage
from caselaw_review.exceptions import ProviderError
from caselaw_review.logging_config import debug_log


@dataclass(frozen=True)
class ChatCompletion:
    """
    One provider response.

    Attributes:
        content: Text of the first choice ("" if the provider sent none)
        usage: Token usage, or None if the provider omitted it
        model: Model identifier echoed by the provider
    """
    content: str
    usage: TokenUsage | None
    model: str = ""


class ChatClient(ABC):
    """Abstract base class for chat completion providers."""

    @abstractmethod
    async def create(
        self,
        model: str,
        messages: list[dict[str, str]],
        temperature: float,
        service_tier: str | None = None,
    ) -> ChatCompletion:
        """
        Send one chat completion request.

        Raises:
            ProviderError: On any HTTP error status or transport failure
        """

    async def aclose(self) -> None:
        """Release network resources. No-op by default."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False


def parse_usage(usage: dict[str, Any] | None) -> TokenUsage | None:
    """
    Convert a provider usage object into TokenUsage.

    Cached prompt tokens are reported either at the top level
    (cached_tokens) or under prompt_tokens_details depending on provider.
    """
    if not usage:
        return None

    cached = usage.get("cached_tokens")
    if cached is None:
        details = usage.get("prompt_tokens_details") or {}
        cached = details.get("cached_tokens")

    return TokenUsage(
        prompt_tokens=int(usage.get("prompt_tokens") or 0),
        completion_tokens=int(usage.get("completion_tokens") or 0),
        cached_tokens=int(cached or 0),
        total_tokens=int(usage.get("total_tokens") or 0),
    )


class OpenAICompatibleClient(ChatClient):
    """
    Async client for OpenAI-compatible /chat/completions endpoints.

    One httpx.AsyncClient is created per instance and reused for every
    request, so a single instance should be shared for the process lifetime.

    Example:
        async with OpenAICompatibleClient(api_key="sk-...") as client:
            completion = await client.create(
                model="gpt-5.1",
                messages=[{"role": "user", "content": "Hello"}],
                temperature=0.7,
            )
    """

    def __init__(
        self,
        api_key: str = LLM_API_KEY,
        base_url: str = LLM_API_BASE,
        timeout: float = LLM_TIMEOUT_SECONDS,
        http_client: httpx.AsyncClient | None = None,
    ):
        if not api_key:
            raise ValueError("OPENAI_API_KEY is not set in the environment")

        self.base_url = base_url.rstrip("/")
        self._http = http_client or httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(max_connections=30, max_keepalive_connections=20),
        )
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    async def aclose(self) -> None:
        await self._http.aclose()

    async def create(
        self,
        model: str,
        messages: list[dict[str, str]],
        temperature: float,
        service_tier: str | None = None,
    ) -> ChatCompletion:
        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        if service_tier:
            payload["service_tier"] = service_tier

        try:
            response = await self._http.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers=self._headers,
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"Request to {self.base_url} failed: {e}") from e

        if response.status_code >= 400:
            raise self._error_from_response(response)

        data = response.json()
        choices = data.get("choices") or []
        content = ""
        if choices:
            content = (choices[0].get("message") or {}).get("content") or ""

        debug_log(
            f"[CHAT CLIENT] {model} tier={service_tier or 'standard'} "
            f"-> {len(content)} chars"
        )
        return ChatCompletion(
            content=content,
            usage=parse_usage(data.get("usage")),
            model=data.get("model", model),
        )

    @staticmethod
    def _error_from_response(response: httpx.Response) -> ProviderError:
        """Build a ProviderError from an error response body."""
        message = response.text
        code = None
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            err = body["error"]
            message = err.get("message") or message
            code = err.get("code") or err.get("type")

        return ProviderError(
            f"HTTP {response.status_code}: {message}",
            status=response.status_code,
            code=str(code) if code is not None else None,
        )
