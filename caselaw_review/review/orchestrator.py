"""
Review Pipeline Orchestrator.

Coordinates the full pipeline from uploaded rulings to the case-law review:
0. EXTRACT: per-document conversion and legal position extraction (concurrent)
1. CARD: per-document case card (concurrent, survivors of stage 0 only)
2. GROUP: cluster the cards (single cluster)
3. SKELETON: one call over all cards
4. SYNTHESIZE: one call producing the Markdown review

Stages 0 and 1 end with a barrier: every document finishes (or fails)
before the next stage starts. A document that fails stays in the result
with its error and takes no further part. Stages 3 and 4 are shared by all
documents, so their failure ends the run.

This is the main entry point for producing a review.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import replace
from functools import partial
from typing import Any

from caselaw_review.ai import ChatClient, ModelInvoker
from caselaw_review.config import MAX_CONCURRENT_CALLS, STAGE_MODELS, STAGE_NAMES, USE_FLEX_TIER
from caselaw_review.costs import CostRecord, aggregate_costs
from caselaw_review.exceptions import AggregateRunError, StageError
from caselaw_review.extraction import DocumentConverter, MammothConverter
from caselaw_review.logging_config import Timer, debug_log, error, info, warning
from caselaw_review.parallel import AsyncTaskRunner, BoundedConcurrencyStrategy, ExecutorStrategy, TaskResult
from caselaw_review.prompting import PromptLoader

from .grouping import GroupingStrategy, SingleClusterGrouping
from .result_types import CaseCard, DocumentResult, PipelineResult, SourceDocument
from .result_writer import ResultWriter
from .stages import (
    CASE_CARD_ERROR_PREFIX,
    STAGE_BUILD_CARD,
    STAGE_EXTRACT_POSITION,
    STAGE_GROUP,
    STAGE_SKELETON,
    STAGE_SYNTHESIZE,
    DocumentOutcome,
    StageContext,
    build_case_card,
    build_review_skeleton,
    extract_position,
    synthesize_review,
)

NO_DOCUMENTS_ERROR = "No documents provided"
ALL_DOCUMENTS_FAILED_ERROR = "All documents failed during legal position extraction"
NO_CASE_CARDS_ERROR = "No case cards could be built"
CANCELLED_ERROR = "Processing cancelled"

# Progress callback signature: (stage_index: int, completed: int, total: int, message: str)
ProgressCallback = Callable[[int, int, int, str], None]


class _RunState:
    """Cost records, scheduled stages and stop flag of one run."""

    def __init__(self):
        self.records: list[CostRecord] = []
        self.scheduled: list[int] = []
        self.result = PipelineResult()
        self.stop_event = asyncio.Event()
        self.active_runner: AsyncTaskRunner | None = None

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def request_stop(self) -> None:
        self.stop_event.set()
        if self.active_runner is not None:
            self.active_runner.cancel()

    def schedule(self, stage: int) -> None:
        self.scheduled.append(stage)

    def finish(self, error_message: str | None = None) -> PipelineResult:
        self.result.error = error_message
        self.result.cost_statistics = aggregate_costs(self.records, self.scheduled)
        return self.result


class ReviewPipeline:
    """
    Main coordinator for case-law review generation.

    The ChatClient is built once by the caller and shared; the pipeline
    never creates its own provider connection.

    Example:
        async with OpenAICompatibleClient() as client:
            pipeline = ReviewPipeline(client, result_writer=ResultWriter())
            result = await pipeline.run(documents, progress_callback=print_progress)

        if result.success:
            print(result.review)
    """

    def __init__(
        self,
        client: ChatClient,
        converter: DocumentConverter | None = None,
        prompt_loader: PromptLoader | None = None,
        result_writer: ResultWriter | None = None,
        grouping: GroupingStrategy | None = None,
        use_flex: bool = USE_FLEX_TIER,
        stage_models: Mapping[int, str] = STAGE_MODELS,
        max_concurrent_calls: int = MAX_CONCURRENT_CALLS,
        strategy_factory: Callable[[], ExecutorStrategy] | None = None,
        invoker: ModelInvoker | None = None,
    ):
        """
        Initialize the pipeline.

        Args:
            client: Shared provider client
            converter: Document converter (MammothConverter if None)
            prompt_loader: Stage template loader (default prompts dir if None)
            result_writer: Persistence sink; None disables saving
            grouping: Stage 2 strategy (SingleClusterGrouping if None)
            use_flex: Request the flex tier first on every call
            stage_models: Model per stage index
            max_concurrent_calls: Concurrency bound for stages 0 and 1
            strategy_factory: Builds the ExecutorStrategy for each fan-out stage
            invoker: Preconfigured ModelInvoker (built from client if None)
        """
        self.client = client
        self.invoker = invoker or ModelInvoker(client)
        self.converter = converter or MammothConverter()
        self.prompt_loader = prompt_loader or PromptLoader()
        self.result_writer = result_writer
        self.grouping = grouping or SingleClusterGrouping()
        self.use_flex = use_flex
        self.stage_models = stage_models
        self.strategy_factory = strategy_factory or partial(BoundedConcurrencyStrategy, max_concurrent_calls)

        self._active_runs: set[_RunState] = set()
        self._last_run: _RunState | None = None

        debug_log(
            f"[ReviewPipeline] Initialized (flex={use_flex}, "
            f"max_concurrent_calls={max_concurrent_calls})"
        )

    def stop(self) -> None:
        """
        Request cancellation of every run in progress on this pipeline.

        Documents already being processed finish their current call; each run
        ends at its next stage barrier with error "Processing cancelled".
        A stop requested while no run is in progress has no effect.
        """
        info(f"Stop requested ({len(self._active_runs)} runs in progress)")
        for state in list(self._active_runs):
            state.request_stop()

    @property
    def is_stopped(self) -> bool:
        """True if the most recently started run was asked to stop."""
        return self._last_run is not None and self._last_run.stopped

    async def run(
        self,
        documents: list[SourceDocument],
        progress_callback: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> PipelineResult:
        """
        Produce a review from a batch of rulings.

        Concurrent calls on one pipeline are independent: each run has its
        own stop flag and cost records.

        Args:
            documents: Uploaded documents, in display order
            progress_callback: Optional callback(stage_index, completed, total, message)
            timeout: Wall-clock budget in seconds; None for no limit

        Returns:
            PipelineResult. Run-level failures are reported in result.error;
            this method does not raise for them.

        Raises:
            asyncio.TimeoutError: If timeout elapses before the run finishes
        """
        state = _RunState()
        self._active_runs.add(state)
        self._last_run = state
        try:
            if timeout is None:
                return await self._run(documents, progress_callback, state)
            return await asyncio.wait_for(self._run(documents, progress_callback, state), timeout)
        finally:
            self._active_runs.discard(state)

    async def _run(
        self,
        documents: list[SourceDocument],
        callback: ProgressCallback | None,
        state: _RunState,
    ) -> PipelineResult:
        if not documents:
            return state.finish(NO_DOCUMENTS_ERROR)

        context = StageContext(
            invoker=self.invoker,
            prompts=self.prompt_loader,
            converter=self.converter,
            stage_models=self.stage_models,
            use_flex=self.use_flex,
        )
        info(f"Starting review of {len(documents)} documents")

        # Stage 0: legal positions
        has_survivors = await self._phase_extract(documents, context, callback, state)
        if state.stopped:
            return self._end(state, CANCELLED_ERROR)
        if not has_survivors:
            return self._end(state, ALL_DOCUMENTS_FAILED_ERROR)

        # Stage 1: case cards
        cards = await self._phase_cards(context, callback, state)
        if state.stopped:
            return self._end(state, CANCELLED_ERROR)
        if not cards:
            return self._end(state, NO_CASE_CARDS_ERROR)

        # Stage 2: grouping
        state.schedule(STAGE_GROUP)
        self._notify_progress(callback, STAGE_GROUP, 0, 1, "Grouping case cards...")
        state.result.case_cards = self.grouping.group(cards)
        self._notify_progress(callback, STAGE_GROUP, 1, 1, f"{len(state.result.case_cards)} cards in one group")
        if state.stopped:
            return self._end(state, CANCELLED_ERROR)

        # Stages 3 and 4: shared artifacts
        try:
            await self._phase_skeleton(context, callback, state)
            if state.stopped:
                return self._end(state, CANCELLED_ERROR)
            await self._phase_synthesize(context, callback, state)
        except AggregateRunError as e:
            return self._end(state, str(e))

        await self._save(state)

        result = state.finish()
        info(
            f"Review complete: {len(result.case_cards)}/{len(result.documents)} documents, "
            f"total cost ${result.cost_statistics.total.cost.total:.4f}"
        )
        return result

    def _end(self, state: _RunState, message: str) -> PipelineResult:
        if message == CANCELLED_ERROR:
            warning(message)
        else:
            error(f"Review run failed: {message}")
        return state.finish(message)

    async def _run_stage(
        self,
        stage: int,
        stage_fn: Callable[..., Any],
        items: list[tuple[str, Any]],
        context: StageContext,
        callback: ProgressCallback | None,
        state: _RunState,
    ) -> list[TaskResult]:
        """Fan a per-document stage out over items and wait for all of them."""
        total = len(items)
        completed = 0

        def on_task_complete(task_result: TaskResult):
            nonlocal completed
            completed += 1
            status = "done" if task_result.success else "failed"
            self._notify_progress(callback, stage, completed, total, f"{task_result.task_id}: {status}")

        runner = AsyncTaskRunner(strategy=self.strategy_factory(), on_task_complete=on_task_complete)
        if state.stopped:
            runner.cancel()
        state.active_runner = runner
        try:
            with Timer(f"Stage {stage} ({STAGE_NAMES[stage]})"):
                return await runner.run(partial(stage_fn, context=context), items)
        finally:
            state.active_runner = None

    async def _phase_extract(
        self,
        documents: list[SourceDocument],
        context: StageContext,
        callback: ProgressCallback | None,
        state: _RunState,
    ) -> bool:
        """
        Stage 0 over every document.

        Returns:
            True if at least one document has a usable legal position
        """
        state.schedule(STAGE_EXTRACT_POSITION)
        self._notify_progress(
            callback, STAGE_EXTRACT_POSITION, 0, len(documents), "Extracting legal positions..."
        )

        task_results = await self._run_stage(
            STAGE_EXTRACT_POSITION,
            extract_position,
            [(doc.file_name, doc) for doc in documents],
            context,
            callback,
            state,
        )

        for doc, task_result in zip(documents, task_results):
            outcome = self._outcome_or_error(
                task_result, DocumentResult(file_name=doc.file_name), error_prefix=""
            )
            state.result.documents.append(outcome.document)
            state.records.extend(outcome.cost_records)

        survivors = sum(1 for doc in state.result.documents if self._has_position(doc))
        debug_log(f"[ReviewPipeline] Stage 0: {survivors}/{len(documents)} documents usable")
        return survivors > 0

    async def _phase_cards(
        self,
        context: StageContext,
        callback: ProgressCallback | None,
        state: _RunState,
    ) -> list[CaseCard]:
        """
        Stage 1 over the survivors of stage 0.

        Results are merged back by position; failed documents are untouched.

        Returns:
            Case cards in document order
        """
        documents = state.result.documents
        positions = [i for i, doc in enumerate(documents) if self._has_position(doc)]

        state.schedule(STAGE_BUILD_CARD)
        self._notify_progress(callback, STAGE_BUILD_CARD, 0, len(positions), "Building case cards...")

        task_results = await self._run_stage(
            STAGE_BUILD_CARD,
            build_case_card,
            [(documents[i].file_name, documents[i]) for i in positions],
            context,
            callback,
            state,
        )

        for position, task_result in zip(positions, task_results):
            outcome = self._outcome_or_error(
                task_result, documents[position], error_prefix=CASE_CARD_ERROR_PREFIX
            )
            documents[position] = outcome.document
            state.records.extend(outcome.cost_records)

        cards = [doc.case_card for doc in documents if doc.case_card is not None and not doc.has_error]
        debug_log(f"[ReviewPipeline] Stage 1: {len(cards)}/{len(positions)} case cards built")
        return cards

    async def _phase_skeleton(
        self,
        context: StageContext,
        callback: ProgressCallback | None,
        state: _RunState,
    ) -> None:
        state.schedule(STAGE_SKELETON)
        self._notify_progress(callback, STAGE_SKELETON, 0, 1, "Building review skeleton...")

        try:
            with Timer(f"Stage {STAGE_SKELETON} ({STAGE_NAMES[STAGE_SKELETON]})"):
                outcome = await build_review_skeleton(
                    state.result.case_cards, state.result.documents, context
                )
        except StageError as e:
            state.records.extend(e.cost_records)
            raise AggregateRunError(str(e), aggregate_costs(state.records, state.scheduled)) from e

        state.records.extend(outcome.cost_records)
        state.result.review_skeleton = outcome.skeleton
        self._notify_progress(callback, STAGE_SKELETON, 1, 1, "Review skeleton ready")

    async def _phase_synthesize(
        self,
        context: StageContext,
        callback: ProgressCallback | None,
        state: _RunState,
    ) -> None:
        state.schedule(STAGE_SYNTHESIZE)
        self._notify_progress(callback, STAGE_SYNTHESIZE, 0, 1, "Writing the review...")

        try:
            with Timer(f"Stage {STAGE_SYNTHESIZE} ({STAGE_NAMES[STAGE_SYNTHESIZE]})"):
                outcome = await synthesize_review(
                    state.result.review_skeleton,
                    state.result.case_cards,
                    state.result.documents,
                    context,
                )
        except StageError as e:
            state.records.extend(e.cost_records)
            raise AggregateRunError(str(e), aggregate_costs(state.records, state.scheduled)) from e

        state.records.extend(outcome.cost_records)
        state.result.review = outcome.review
        self._notify_progress(callback, STAGE_SYNTHESIZE, 1, 1, "Review ready")

    async def _save(self, state: _RunState) -> None:
        """Persist the run; a failure is reported in save_error, the review is kept."""
        if self.result_writer is None:
            return
        result = state.result
        try:
            result.output_dir = await self.result_writer.save(
                result.documents, result.review_skeleton, result.review
            )
        except Exception as e:
            result.save_error = f"Could not save results: {e}"
            error(result.save_error)

    @staticmethod
    def _has_position(doc: DocumentResult) -> bool:
        return not doc.has_error and doc.legal_position is not None

    @staticmethod
    def _outcome_or_error(
        task_result: TaskResult,
        fallback: DocumentResult,
        error_prefix: str,
    ) -> DocumentOutcome:
        """Unwrap a task's DocumentOutcome, or mark the document failed."""
        if task_result.success:
            return task_result.result
        return DocumentOutcome(document=replace(fallback, error=f"{error_prefix}{task_result.error}"))

    def _notify_progress(
        self,
        callback: ProgressCallback | None,
        stage: int,
        completed: int,
        total: int,
        message: str,
    ) -> None:
        """Send progress update if callback provided."""
        if callback:
            try:
                callback(stage, completed, total, message)
            except Exception as e:
                debug_log(f"[ReviewPipeline] Progress callback error: {e}")
