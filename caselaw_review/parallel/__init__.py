"""
Async concurrency utilities for the Case-Law Review pipeline.

Components:
    ExecutorStrategy - Abstract base class defining the execution interface
    BoundedConcurrencyStrategy - Semaphore-limited concurrent execution (production)
    SequentialStrategy - One task at a time (testing/debugging)
    AsyncTaskRunner - Barrier-style task orchestration with callbacks
    TaskResult - Dataclass for task execution results

Usage Example:
    from caselaw_review.parallel import AsyncTaskRunner, BoundedConcurrencyStrategy

    runner = AsyncTaskRunner(strategy=BoundedConcurrencyStrategy(max_workers=10))
    results = await runner.run(process_doc, [(doc.file_name, doc) for doc in docs])
"""

from .executor_strategy import (
    BoundedConcurrencyStrategy,
    ExecutorStrategy,
    SequentialStrategy,
)
from .task_runner import AsyncTaskRunner, TaskResult

__all__ = [
    # Strategies
    'ExecutorStrategy',
    'BoundedConcurrencyStrategy',
    'SequentialStrategy',
    # Task runner
    'AsyncTaskRunner',
    'TaskResult',
]
