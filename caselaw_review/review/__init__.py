"""
Case-Law Review Package.

Turns a batch of court rulings into one synthesized case-law review using
a five-stage fan-out/fan-in pipeline:

1. EXTRACT (per document): docx -> Markdown -> ten-level legal position
2. CARD (per document): legal position -> case card
3. GROUP: all cards into one cluster
4. SKELETON: cards -> review skeleton (one call)
5. SYNTHESIZE: skeleton + cards -> Markdown review (one call)

Usage:
    from caselaw_review.ai import OpenAICompatibleClient
    from caselaw_review.review import ReviewPipeline, ResultWriter, SourceDocument

    async with OpenAICompatibleClient() as client:
        pipeline = ReviewPipeline(client, result_writer=ResultWriter())
        result = await pipeline.run([
            SourceDocument("ruling-1.docx", data1),
            SourceDocument("ruling-2.docx", data2),
        ])
    print(result.review)
"""

from .grouping import GroupingStrategy, SingleClusterGrouping
from .orchestrator import ProgressCallback, ReviewPipeline
from .result_types import (
    Approach,
    CaseCard,
    Discrepancies,
    DocumentResult,
    LegalPosition,
    PipelineResult,
    ReviewSkeleton,
    SourceDocument,
    Trends,
)
from .result_writer import ResultWriter
from .stages import (
    StageContext,
    build_case_card,
    build_review_skeleton,
    extract_position,
    synthesize_review,
)

__all__ = [
    # Data model
    "SourceDocument",
    "LegalPosition",
    "CaseCard",
    "Approach",
    "Discrepancies",
    "Trends",
    "ReviewSkeleton",
    "DocumentResult",
    "PipelineResult",
    # Stages
    "StageContext",
    "extract_position",
    "build_case_card",
    "build_review_skeleton",
    "synthesize_review",
    "GroupingStrategy",
    "SingleClusterGrouping",
    # Orchestration and persistence
    "ReviewPipeline",
    "ProgressCallback",
    "ResultWriter",
]
