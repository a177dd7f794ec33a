"""
Async task runner for barrier-style stage execution.

Every pipeline stage that fans out over documents runs through
AsyncTaskRunner.run(): all tasks are started, the call returns once every
one of them has finished (the barrier), and results come back in
submission order. A failing task never aborts its siblings; its exception is
captured on its TaskResult.

Usage:
    runner = AsyncTaskRunner(
        strategy=BoundedConcurrencyStrategy(max_workers=10),
        on_task_complete=lambda task_result: print(f"{task_result.task_id} done"),
    )

    items = [(doc.file_name, doc) for doc in documents]
    results = await runner.run(extract_position, items)

    for result in results:
        if result.success:
            print(f"{result.task_id}: {result.result}")
        else:
            print(f"{result.task_id} failed: {result.error}")
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from caselaw_review.exceptions import PipelineCancelled
from caselaw_review.logging_config import debug_log

from .executor_strategy import BoundedConcurrencyStrategy, ExecutorStrategy


@dataclass
class TaskResult:
    """
    Result of one task execution.

    Attributes:
        task_id: Identifier for the task (e.g., file name).
        success: True if the task completed without exception.
        result: Return value of the task function (if success=True).
        error: Exception raised by the task (if success=False).
    """
    task_id: str
    success: bool
    result: Any = None
    error: Exception | None = None


class AsyncTaskRunner:
    """
    Runs async tasks under an ExecutorStrategy and waits for all of them.

    - Results are returned in submission order
    - Exceptions are captured per task; asyncio.CancelledError is not an
      Exception and propagates to the caller
    - on_task_complete fires once per finished task, success or failure
    - cancel() makes tasks that have not started yet finish immediately
      with PipelineCancelled

    Args:
        strategy: ExecutorStrategy controlling concurrency. Defaults to
                  BoundedConcurrencyStrategy().
        on_task_complete: Optional callback invoked with each TaskResult.
    """

    def __init__(
        self,
        strategy: ExecutorStrategy | None = None,
        on_task_complete: Callable[[TaskResult], None] | None = None,
    ):
        self.strategy = strategy or BoundedConcurrencyStrategy()
        self.on_task_complete = on_task_complete
        self._cancel_event = asyncio.Event()

    async def run(
        self,
        fn: Callable[[Any], Awaitable[Any]],
        items: list[tuple[str, Any]],
    ) -> list[TaskResult]:
        """
        Run fn over every payload and wait for all tasks.

        Args:
            fn: Async function called with each payload.
            items: List of (task_id, payload) tuples.

        Returns:
            List of TaskResult objects in the order of items.
        """
        if not items:
            return []

        debug_log(f"[TASK RUNNER] Starting {len(items)} tasks (max_workers={self.strategy.max_workers})")
        results = await asyncio.gather(*(
            self._run_one(fn, task_id, payload) for task_id, payload in items
        ))

        failed = sum(1 for result in results if not result.success)
        debug_log(f"[TASK RUNNER] Barrier reached: {len(results) - failed} succeeded, {failed} failed")
        return list(results)

    async def _run_one(
        self,
        fn: Callable[[Any], Awaitable[Any]],
        task_id: str,
        payload: Any,
    ) -> TaskResult:
        async def guarded(item: Any) -> Any:
            if self._cancel_event.is_set():
                raise PipelineCancelled(f"Task {task_id} cancelled before start")
            return await fn(item)

        try:
            value = await self.strategy.execute(guarded, payload)
            task_result = TaskResult(task_id=task_id, success=True, result=value)
        except Exception as e:
            debug_log(f"[TASK RUNNER] Task {task_id} failed: {type(e).__name__}: {e}")
            task_result = TaskResult(task_id=task_id, success=False, error=e)

        if self.on_task_complete:
            self.on_task_complete(task_result)
        return task_result

    def cancel(self):
        """Signal cancellation; tasks already running continue to completion."""
        self._cancel_event.set()

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation has been requested."""
        return self._cancel_event.is_set()
