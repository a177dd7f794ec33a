"""
Data model for the Case-Law Review pipeline.

Model output is parsed leniently: missing fields become empty values and
scalar values where a list is expected are wrapped. Wire keys (what the
model returns and what callers receive) are camelCase; attributes are
snake_case.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from caselaw_review.costs import RunCostStatistics

LEGAL_POSITION_LEVELS = 10
LEVEL_KEYS = tuple(f"level{n}" for n in range(1, LEGAL_POSITION_LEVELS + 1))


def _ensure_list(value: Any) -> list:
    """Ensure value is a list."""
    if isinstance(value, list):
        return value
    if value is None:
        return []
    return [value]


def _ensure_string_list(value: Any) -> list[str]:
    """Ensure value is a list of non-empty strings."""
    return [str(item) for item in _ensure_list(value) if item]


def _ensure_int_list(value: Any) -> list[int]:
    """Keep the integer-like entries of a list."""
    indices = []
    for item in _ensure_list(value):
        if isinstance(item, bool):
            continue
        try:
            indices.append(int(item))
        except (TypeError, ValueError):
            continue
    return indices


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


@dataclass(frozen=True)
class SourceDocument:
    """One uploaded court ruling."""
    file_name: str
    content: bytes


@dataclass
class LegalPosition:
    """
    Ten-level structured analysis of one ruling.

    Levels are kept as plain dicts; their named contents (branch, parties,
    claims, norms, facts, reasoning, holding, risks) are whatever the model
    returned. Unknown top-level keys are preserved in extra.
    """
    levels: dict[str, dict] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LegalPosition:
        levels = {}
        for key in LEVEL_KEYS:
            value = data.get(key)
            levels[key] = value if isinstance(value, dict) else {}
        extra = {k: v for k, v in data.items() if k not in LEVEL_KEYS}
        return cls(levels=levels, extra=extra)

    def level(self, number: int) -> dict:
        """Get level 1..10 (empty dict when absent)."""
        return self.levels.get(f"level{number}", {})

    @property
    def case_number(self) -> str:
        return _text(self.level(1).get("case_number")).strip()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {key: self.levels.get(key, {}) for key in LEVEL_KEYS}
        data.update(self.extra)
        return data


@dataclass
class CaseCard:
    """
    Compressed summary of one case.

    Attributes:
        case_number: Case number as printed in the ruling (may be empty)
        summary: Facts and subject of the dispute in one or two lines
        key_findings: Key legal conclusions
        applied_norms: Applied norms in one or two lines
        result: Outcome of the claim
        source_file: File name of the document the card was built from
    """
    case_number: str = ""
    summary: str = ""
    key_findings: list[str] = field(default_factory=list)
    applied_norms: str = ""
    result: str = ""
    source_file: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any], source_file: str = "") -> CaseCard:
        return cls(
            case_number=_text(data.get("caseNumber")).strip(),
            summary=_text(data.get("summary")),
            key_findings=_ensure_string_list(data.get("keyFindings")),
            applied_norms=_text(data.get("appliedNorms")),
            result=_text(data.get("result")),
            source_file=source_file,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "caseNumber": self.case_number,
            "summary": self.summary,
            "keyFindings": list(self.key_findings),
            "appliedNorms": self.applied_norms,
            "result": self.result,
        }


@dataclass
class Approach:
    """One line of judicial reasoning, with the cases that illustrate it."""
    name: str = ""
    description: str = ""
    applicable_facts: str = ""
    case_indices: list[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Approach:
        return cls(
            name=_text(data.get("name")),
            description=_text(data.get("description")),
            applicable_facts=_text(data.get("applicableFacts")),
            case_indices=_ensure_int_list(data.get("caseIndices")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "applicableFacts": self.applicable_facts,
            "caseIndices": list(self.case_indices),
        }


@dataclass
class Discrepancies:
    norm_interpretation: str = ""
    evidence_requirements: str = ""
    fact_assessment: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Discrepancies:
        data = data if isinstance(data, dict) else {}
        return cls(
            norm_interpretation=_text(data.get("normInterpretation")),
            evidence_requirements=_text(data.get("evidenceRequirements")),
            fact_assessment=_text(data.get("factAssessment")),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "normInterpretation": self.norm_interpretation,
            "evidenceRequirements": self.evidence_requirements,
            "factAssessment": self.fact_assessment,
        }


@dataclass
class Trends:
    dominant_approach: str = ""
    time_shifts: str = ""
    higher_courts: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Trends:
        data = data if isinstance(data, dict) else {}
        return cls(
            dominant_approach=_text(data.get("dominantApproach")),
            time_shifts=_text(data.get("timeShifts")),
            higher_courts=_text(data.get("higherCourts")),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "dominantApproach": self.dominant_approach,
            "timeShifts": self.time_shifts,
            "higherCourts": self.higher_courts,
        }


@dataclass
class ReviewSkeleton:
    """Structured outline of the review built from all case cards."""
    legal_question: str = ""
    normative_base: list[str] = field(default_factory=list)
    approaches: list[Approach] = field(default_factory=list)
    discrepancies: Discrepancies = field(default_factory=Discrepancies)
    trends: Trends = field(default_factory=Trends)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReviewSkeleton:
        return cls(
            legal_question=_text(data.get("legalQuestion")),
            normative_base=_ensure_string_list(data.get("normativeBase")),
            approaches=[
                Approach.from_dict(item)
                for item in _ensure_list(data.get("approaches"))
                if isinstance(item, dict)
            ],
            discrepancies=Discrepancies.from_dict(data.get("discrepancies")),
            trends=Trends.from_dict(data.get("trends")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "legalQuestion": self.legal_question,
            "normativeBase": list(self.normative_base),
            "approaches": [approach.to_dict() for approach in self.approaches],
            "discrepancies": self.discrepancies.to_dict(),
            "trends": self.trends.to_dict(),
        }


@dataclass
class DocumentResult:
    """
    Per-document record carried through stages 0 and 1.

    Once error is set the record is terminal: later stages skip it, but it
    stays in PipelineResult.documents.

    Attributes:
        file_name: Name of the source document
        case_number: Case number extracted in stage 0
        markdown: Converted document text
        legal_position_raw: JSON text recovered from the stage 0 response
        legal_position: Parsed ten-level position
        case_card: Card built in stage 1
        case_card_raw: JSON text recovered from the stage 1 response
        error: Failure message, None while the document is healthy
    """
    file_name: str
    case_number: str = ""
    markdown: str = ""
    legal_position_raw: str = ""
    legal_position: LegalPosition | None = None
    case_card: CaseCard | None = None
    case_card_raw: str = ""
    error: str | None = None

    @property
    def has_error(self) -> bool:
        return self.error is not None

    def to_status(self) -> dict[str, Any]:
        """Two-state view for callers: usable or failed with a message."""
        return {
            "fileName": self.file_name,
            "hasError": self.has_error,
            "error": self.error,
        }


@dataclass
class PipelineResult:
    """
    Everything a run produced.

    review is "" when the run did not reach stage 4. error is the run-level
    failure (no survivors, skeleton/review failure, cancellation); a failed
    save leaves error unset and is reported in save_error instead.
    """
    documents: list[DocumentResult] = field(default_factory=list)
    case_cards: list[CaseCard] = field(default_factory=list)
    review_skeleton: ReviewSkeleton | None = None
    review: str = ""
    cost_statistics: RunCostStatistics = field(default_factory=RunCostStatistics)
    error: str | None = None
    save_error: str | None = None
    output_dir: Path | None = None

    @property
    def success(self) -> bool:
        return self.error is None and bool(self.review)

    def to_response(self) -> dict[str, Any]:
        """
        Caller-facing payload.

        Failed runs carry the error, document statuses and cost statistics;
        successful runs add the review, cards and skeleton.
        """
        response: dict[str, Any] = {
            "documents": [doc.to_status() for doc in self.documents],
            "costStatistics": self.cost_statistics.to_dict(),
        }
        if self.error is not None:
            response["error"] = self.error
            return response

        response.update({
            "success": True,
            "review": self.review,
            "caseCards": [card.to_dict() for card in self.case_cards],
            "reviewSkeleton": self.review_skeleton.to_dict() if self.review_skeleton else None,
        })
        if self.save_error is not None:
            response["saveError"] = self.save_error
        if self.output_dir is not None:
            response["outputDir"] = str(self.output_dir)
        return response
