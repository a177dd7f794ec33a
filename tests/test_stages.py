"""
Tests for the stage functions.

Tests cover:
- S0 legal position extraction and per-document error capture
- S1 case card construction, case number injection, explicit errors
- S2 single-cluster grouping
- S3 skeleton with card context and index filtering
- S4 review synthesis
- Cost records kept when parsing fails
"""

import asyncio
import json

import pytest

from caselaw_review.ai import ModelInvoker
from caselaw_review.exceptions import ProviderError, StageError
from caselaw_review.review import (
    CaseCard,
    DocumentResult,
    LegalPosition,
    ReviewSkeleton,
    SingleClusterGrouping,
    SourceDocument,
    StageContext,
    build_case_card,
    build_review_skeleton,
    extract_position,
    synthesize_review,
)
from caselaw_review.review.stages import NO_LEGAL_POSITION_ERROR, card_context

from conftest import (
    SKELETON_JSON,
    FakeChatClient,
    case_card_json,
    legal_position_json,
    make_completion,
)


@pytest.fixture
def make_context(prompt_loader, fake_converter, recording_sleep):
    def factory(responses, use_flex=False):
        client = FakeChatClient(responses)
        context = StageContext(
            invoker=ModelInvoker(client, sleep=recording_sleep),
            prompts=prompt_loader,
            converter=fake_converter,
            use_flex=use_flex,
        )
        return context, client
    return factory


def _document_with_position(file_name, case_number="A40-1/2024"):
    position = LegalPosition.from_dict(json.loads(legal_position_json(case_number)))
    return DocumentResult(
        file_name=file_name,
        case_number=case_number,
        markdown="text",
        legal_position=position,
    )


class TestExtractPosition:
    """Test stage 0."""

    def test_success(self, make_context):
        raw = "```json\n" + legal_position_json(" A40-1/2024 ") + "\n```"
        context, client = make_context([make_completion(raw)])

        outcome = asyncio.run(extract_position(SourceDocument("a.docx", b"RULING A"), context))

        doc = outcome.document
        assert doc.error is None
        assert doc.markdown == "RULING A"
        assert doc.case_number == "A40-1/2024"
        assert doc.legal_position.level(7)["holding_short"] == "Claim granted"
        assert doc.legal_position.level(9) == {}
        assert doc.legal_position_raw.startswith("{")
        assert len(outcome.cost_records) == 1
        assert outcome.cost_records[0].stage == 0

    def test_request_composition(self, make_context):
        context, client = make_context([make_completion(legal_position_json("1"))])

        asyncio.run(extract_position(SourceDocument("a.docx", b"RULING A"), context))

        call = client.calls[0]
        assert call["model"] == "x-ai/grok-4.1-fast"
        assert call["messages"][0]["content"] == "System for step 0."
        assert call["messages"][1]["content"] == "User for step 0.\n\nRULING A"

    def test_conversion_failure_captured(self, make_context):
        context, client = make_context([])

        outcome = asyncio.run(extract_position(SourceDocument("bad.docx", b"CORRUPT"), context))

        assert outcome.document.has_error
        assert "not a docx" in outcome.document.error
        assert outcome.document.legal_position is None
        assert outcome.cost_records == []
        assert client.calls == []

    def test_malformed_output_keeps_cost_record(self, make_context):
        context, _ = make_context([make_completion("I cannot help with that.")])

        outcome = asyncio.run(extract_position(SourceDocument("a.docx", b"RULING"), context))

        assert outcome.document.has_error
        assert outcome.document.legal_position is None
        assert len(outcome.cost_records) == 1

    def test_invocation_failure_captured(self, make_context):
        context, _ = make_context([ProviderError("HTTP 401: bad key", status=401)])

        outcome = asyncio.run(extract_position(SourceDocument("a.docx", b"RULING"), context))

        assert "bad key" in outcome.document.error
        assert outcome.cost_records == []


class TestBuildCaseCard:
    """Test stage 1."""

    def test_case_number_injected_when_model_omits_it(self, make_context):
        context, client = make_context([make_completion(case_card_json(case_number=""))])

        outcome = asyncio.run(build_case_card(_document_with_position("a.docx"), context))

        card = outcome.document.case_card
        assert card.case_number == "A40-1/2024"
        assert card.source_file == "a.docx"
        assert card.key_findings == ["Late delivery is a breach"]
        assert outcome.document.error is None
        assert client.calls[0]["model"] == "google/gemini-2.5-flash-lite-preview-09-2025"

    def test_payload_is_fenced_legal_position(self, make_context):
        context, client = make_context([make_completion(case_card_json("X"))])

        asyncio.run(build_case_card(_document_with_position("a.docx"), context))

        user = client.calls[0]["messages"][1]["content"]
        assert user.startswith("User for step 1.\n\n```json\n")
        assert user.endswith("\n```")
        assert '"case_number": "A40-1/2024"' in user

    def test_model_case_number_kept(self, make_context):
        context, _ = make_context([make_completion(case_card_json(case_number="B-7"))])

        outcome = asyncio.run(build_case_card(_document_with_position("a.docx"), context))

        assert outcome.document.case_card.case_number == "B-7"

    def test_missing_legal_position_is_explicit_error(self, make_context):
        context, client = make_context([])

        outcome = asyncio.run(build_case_card(DocumentResult(file_name="a.docx"), context))

        assert outcome.document.error == NO_LEGAL_POSITION_ERROR
        assert client.calls == []

    def test_failed_card_prefixed_and_costed(self, make_context):
        context, _ = make_context([make_completion("not json")])
        original = _document_with_position("a.docx")

        outcome = asyncio.run(build_case_card(original, context))

        assert outcome.document.error.startswith("Case card failed: ")
        assert outcome.document.legal_position is original.legal_position
        assert len(outcome.cost_records) == 1
        assert original.error is None


class TestGrouping:
    def test_single_cluster_is_identity(self):
        cards = [CaseCard(summary="a"), CaseCard(summary="b")]
        assert SingleClusterGrouping().group(cards) == cards


class TestCardContext:
    """Test card serialization for stages 3 and 4."""

    def test_file_names_follow_card_source_not_position(self):
        documents = [
            DocumentResult(file_name="failed.docx", error="boom"),
            _document_with_position("b.docx", case_number="B-2"),
        ]
        cards = [CaseCard(case_number="", summary="b", source_file="b.docx")]

        entries = card_context(cards, documents)

        assert entries == [{
            "index": 1,
            "fileName": "b.docx",
            "caseNumber": "B-2",
            "summary": "b",
            "keyFindings": [],
            "appliedNorms": "",
            "result": "",
        }]


class TestBuildReviewSkeleton:
    """Test stage 3."""

    def test_success_and_out_of_range_indices_dropped(self, make_context):
        skeleton_data = json.loads(SKELETON_JSON)
        skeleton_data["approaches"][0]["caseIndices"] = [1, 2, 7, 0]
        context, client = make_context([make_completion(json.dumps(skeleton_data))])
        cards = [
            CaseCard(case_number="A-1", source_file="a.docx"),
            CaseCard(case_number="B-2", source_file="b.docx"),
        ]

        outcome = asyncio.run(build_review_skeleton(cards, [], context))

        assert outcome.skeleton.legal_question == "Liability for late delivery"
        assert outcome.skeleton.approaches[0].case_indices == [1, 2]
        assert len(outcome.cost_records) == 1
        assert client.calls[0]["model"] == "deepseek/deepseek-v3.2"
        assert '"index": 2' in client.calls[0]["messages"][1]["content"]

    def test_no_cards_raises(self, make_context):
        context, _ = make_context([])
        with pytest.raises(StageError) as exc_info:
            asyncio.run(build_review_skeleton([], [], context))
        assert exc_info.value.stage == 3

    def test_malformed_skeleton_raises_with_cost_records(self, make_context):
        context, _ = make_context([make_completion("no skeleton today")])
        with pytest.raises(StageError) as exc_info:
            asyncio.run(build_review_skeleton([CaseCard(source_file="a.docx")], [], context))
        assert exc_info.value.stage == 3
        assert len(exc_info.value.cost_records) == 1
        assert str(exc_info.value).startswith("Review skeleton failed: ")


class TestSynthesizeReview:
    """Test stage 4."""

    def test_review_text_returned(self, make_context):
        context, client = make_context([make_completion("\n# Review\n\nBody\n")])
        skeleton = ReviewSkeleton.from_dict(json.loads(SKELETON_JSON))

        outcome = asyncio.run(synthesize_review(skeleton, [CaseCard(source_file="a.docx")], [], context))

        assert outcome.review == "# Review\n\nBody"
        user = client.calls[0]["messages"][1]["content"]
        assert "## Review skeleton:\n```json" in user
        assert "## Case cards:\n```json" in user
        assert client.calls[0]["model"] == "google/gemini-2.5-flash-preview-09-2025"

    def test_failure_raises_stage_error(self, make_context):
        context, _ = make_context([ProviderError("HTTP 500: down", status=500)])
        with pytest.raises(StageError) as exc_info:
            asyncio.run(synthesize_review(ReviewSkeleton(), [CaseCard()], [], context))
        assert exc_info.value.stage == 4
        assert exc_info.value.cost_records == []

    def test_flex_flag_forwarded(self, make_context):
        context, client = make_context([make_completion("review")], use_flex=True)
        asyncio.run(synthesize_review(ReviewSkeleton(), [CaseCard()], [], context))
        assert client.calls[0]["service_tier"] == "flex"
