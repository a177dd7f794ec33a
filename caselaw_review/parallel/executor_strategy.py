"""
Concurrency strategies for the async task runner.

Separates "what to run concurrently" from "how much concurrency is allowed".
The pipeline uses BoundedConcurrencyStrategy in production; tests can inject
SequentialStrategy to get one task at a time in submission order.

Usage:
    strategy = BoundedConcurrencyStrategy(max_workers=10)
    result = await strategy.execute(process_document, document)
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from caselaw_review.config import MAX_CONCURRENT_CALLS

T = TypeVar('T')


class ExecutorStrategy(ABC):
    """
    Abstract strategy for running one coroutine-producing task.

    Attributes:
        max_workers: Number of tasks allowed to run at the same time.
    """

    max_workers: int

    @abstractmethod
    async def execute(self, fn: Callable[[Any], Awaitable[T]], item: Any) -> T:
        """
        Run fn(item) under the strategy's concurrency limit.

        Args:
            fn: Async function to execute.
            item: Argument to pass to the function.

        Returns:
            Whatever fn returns; exceptions propagate unchanged.
        """


class BoundedConcurrencyStrategy(ExecutorStrategy):
    """
    Runs tasks concurrently with at most max_workers in flight.

    Most of a task's time is spent awaiting the LLM provider, so the limit
    protects the provider's rate limits rather than local resources.
    """

    def __init__(self, max_workers: int = MAX_CONCURRENT_CALLS):
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.max_workers = max_workers
        self._semaphore = asyncio.Semaphore(max_workers)

    async def execute(self, fn: Callable[[Any], Awaitable[T]], item: Any) -> T:
        async with self._semaphore:
            return await fn(item)


class SequentialStrategy(BoundedConcurrencyStrategy):
    """
    One task at a time, in submission order.

    Same interface as BoundedConcurrencyStrategy; used for deterministic
    tests and debugging.
    """

    def __init__(self):
        super().__init__(max_workers=1)
