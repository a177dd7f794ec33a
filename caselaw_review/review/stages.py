"""
Stage functions of the review pipeline.

    S0 extract_position      SourceDocument  -> DocumentResult (markdown, legal position)
    S1 build_case_card       DocumentResult  -> DocumentResult (case card)
    S2 (grouping.py)         cards           -> cards
    S3 build_review_skeleton cards           -> ReviewSkeleton
    S4 synthesize_review     skeleton, cards -> Markdown review

S0 and S1 run once per document and capture failures on the returned
DocumentResult. S3 and S4 run once per run and raise StageError.

Every outcome carries the CostRecord of each call that returned, including
calls whose output could not be parsed afterwards.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from caselaw_review.ai import InvocationResult, ModelInvoker
from caselaw_review.config import STAGE_MODELS, USE_FLEX_TIER
from caselaw_review.costs import CostRecord
from caselaw_review.exceptions import StageError
from caselaw_review.extraction import DocumentConverter, extract_json, extract_json_span
from caselaw_review.logging_config import debug_log, warning
from caselaw_review.prompting import PromptLoader, PromptTemplate

from .result_types import CaseCard, DocumentResult, LegalPosition, ReviewSkeleton, SourceDocument

STAGE_EXTRACT_POSITION = 0
STAGE_BUILD_CARD = 1
STAGE_GROUP = 2
STAGE_SKELETON = 3
STAGE_SYNTHESIZE = 4

NO_LEGAL_POSITION_ERROR = "No legal position available to build a case card"
CASE_CARD_ERROR_PREFIX = "Case card failed: "


@dataclass
class StageContext:
    """
    Collaborators shared by every stage of one run.

    Attributes:
        invoker: ModelInvoker wrapping the caller's ChatClient
        prompts: Loader for the stepN templates
        converter: Source document converter
        stage_models: Model per stage index
        use_flex: Request the flex tier first on every call
    """
    invoker: ModelInvoker
    prompts: PromptLoader
    converter: DocumentConverter
    stage_models: Mapping[int, str] = field(default_factory=lambda: STAGE_MODELS)
    use_flex: bool = USE_FLEX_TIER

    def model_for(self, stage: int) -> str:
        return self.stage_models[stage]

    async def invoke(self, stage: int, template: PromptTemplate, payload: str) -> InvocationResult:
        """Send one stage request: template system text, template user text + payload."""
        return await self.invoker.invoke(
            template.system_prompt,
            template.compose(payload),
            self.model_for(stage),
            use_degraded_tier=self.use_flex,
        )


@dataclass
class DocumentOutcome:
    """Result of a per-document stage."""
    document: DocumentResult
    cost_records: list[CostRecord] = field(default_factory=list)


@dataclass
class SkeletonOutcome:
    skeleton: ReviewSkeleton
    cost_records: list[CostRecord] = field(default_factory=list)


@dataclass
class ReviewOutcome:
    review: str
    cost_records: list[CostRecord] = field(default_factory=list)


def _json_block(data: Any) -> str:
    return f"```json\n{json.dumps(data, ensure_ascii=False, indent=2)}\n```"


async def extract_position(document: SourceDocument, context: StageContext) -> DocumentOutcome:
    """
    S0: convert a ruling and extract its ten-level legal position.

    Args:
        document: Uploaded source document
        context: Shared stage collaborators

    Returns:
        DocumentOutcome whose document either holds the legal position or an error
    """
    result = DocumentResult(file_name=document.file_name)
    records: list[CostRecord] = []

    try:
        result.markdown = await context.converter.convert(document.content)
        template = context.prompts.load(STAGE_EXTRACT_POSITION)

        invocation = await context.invoke(STAGE_EXTRACT_POSITION, template, result.markdown)
        records.append(invocation.cost_record(STAGE_EXTRACT_POSITION))

        data, raw_json = extract_json_span(invocation.content)
        result.legal_position = LegalPosition.from_dict(data)
        result.legal_position_raw = raw_json
        result.case_number = result.legal_position.case_number
    except Exception as e:
        result.legal_position = None
        result.error = str(e)
        warning(f"Legal position extraction failed for {document.file_name}: {e}")
        return DocumentOutcome(document=result, cost_records=records)

    debug_log(
        f"[STAGE 0] {document.file_name}: {len(result.markdown)} chars, "
        f"case number '{result.case_number}'"
    )
    return DocumentOutcome(document=result, cost_records=records)


async def build_case_card(document: DocumentResult, context: StageContext) -> DocumentOutcome:
    """
    S1: compress a legal position into a case card.

    A document that already failed is returned unchanged. A document without
    a legal position gets an explicit error and no model call is made.
    """
    if document.has_error:
        return DocumentOutcome(document=document)
    if document.legal_position is None:
        return DocumentOutcome(document=replace(document, error=NO_LEGAL_POSITION_ERROR))

    records: list[CostRecord] = []
    try:
        template = context.prompts.load(STAGE_BUILD_CARD)
        payload = _json_block(document.legal_position.to_dict())

        invocation = await context.invoke(STAGE_BUILD_CARD, template, payload)
        records.append(invocation.cost_record(STAGE_BUILD_CARD))

        data, raw_json = extract_json_span(invocation.content)
    except Exception as e:
        warning(f"Case card failed for {document.file_name}: {e}")
        return DocumentOutcome(
            document=replace(document, error=f"{CASE_CARD_ERROR_PREFIX}{e}"),
            cost_records=records,
        )

    card = CaseCard.from_dict(data, source_file=document.file_name)
    if not card.case_number and document.case_number:
        card.case_number = document.case_number

    debug_log(f"[STAGE 1] {document.file_name}: {len(card.key_findings)} key findings")
    return DocumentOutcome(
        document=replace(document, case_card=card, case_card_raw=raw_json),
        cost_records=records,
    )


def card_context(cards: list[CaseCard], documents: list[DocumentResult]) -> list[dict[str, Any]]:
    """
    Serialize cards with their 1-based index, file name and case number.

    File name and case number come from the document the card was built
    from (card.source_file), so cards stay attached to the right ruling
    when earlier documents failed.
    """
    documents_by_name = {doc.file_name: doc for doc in documents}
    entries = []
    for index, card in enumerate(cards, start=1):
        source = documents_by_name.get(card.source_file)
        entry: dict[str, Any] = {
            "index": index,
            "fileName": card.source_file or f"Document {index}",
        }
        entry.update(card.to_dict())
        entry["caseNumber"] = card.case_number or (source.case_number if source else "")
        entries.append(entry)
    return entries


def _drop_unknown_case_indices(skeleton: ReviewSkeleton, card_count: int) -> None:
    for approach in skeleton.approaches:
        valid = [i for i in approach.case_indices if 1 <= i <= card_count]
        if len(valid) != len(approach.case_indices):
            dropped = sorted(set(approach.case_indices) - set(valid))
            warning(f"Approach '{approach.name}' references unknown cases {dropped}; ignoring them")
            approach.case_indices = valid


async def build_review_skeleton(
    cards: list[CaseCard],
    documents: list[DocumentResult],
    context: StageContext,
) -> SkeletonOutcome:
    """
    S3: aggregate all case cards into a review skeleton.

    Raises:
        StageError: If there are no cards, the call fails or the output is
            not a JSON object. cost_records on the error hold any completed call.
    """
    if not cards:
        raise StageError(STAGE_SKELETON, "No case cards to build a review skeleton from")

    records: list[CostRecord] = []
    try:
        template = context.prompts.load(STAGE_SKELETON)
        payload = _json_block(card_context(cards, documents))

        invocation = await context.invoke(STAGE_SKELETON, template, payload)
        records.append(invocation.cost_record(STAGE_SKELETON))

        skeleton = ReviewSkeleton.from_dict(extract_json(invocation.content))
    except Exception as e:
        raise StageError(STAGE_SKELETON, f"Review skeleton failed: {e}", cost_records=records) from e

    _drop_unknown_case_indices(skeleton, len(cards))
    debug_log(f"[STAGE 3] Skeleton with {len(skeleton.approaches)} approaches for {len(cards)} cards")
    return SkeletonOutcome(skeleton=skeleton, cost_records=records)


async def synthesize_review(
    skeleton: ReviewSkeleton,
    cards: list[CaseCard],
    documents: list[DocumentResult],
    context: StageContext,
) -> ReviewOutcome:
    """
    S4: write the Markdown review from the skeleton and the cards.

    Raises:
        StageError: If the call fails.
    """
    records: list[CostRecord] = []
    try:
        template = context.prompts.load(STAGE_SYNTHESIZE)
        payload = (
            f"## Review skeleton:\n{_json_block(skeleton.to_dict())}\n\n"
            f"## Case cards:\n{_json_block(card_context(cards, documents))}"
        )

        invocation = await context.invoke(STAGE_SYNTHESIZE, template, payload)
        records.append(invocation.cost_record(STAGE_SYNTHESIZE))
    except Exception as e:
        raise StageError(STAGE_SYNTHESIZE, f"Review synthesis failed: {e}", cost_records=records) from e

    review = invocation.content.strip()
    debug_log(f"[STAGE 4] Review: {len(review.split())} words")
    return ReviewOutcome(review=review, cost_records=records)
