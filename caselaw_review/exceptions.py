"""
Exception hierarchy for the Case-Law Review pipeline.

Per-document failures (ConversionError, InvocationError, MalformedOutputError
raised in stages 0 and 1) are captured on the affected DocumentResult. The
same errors raised by the cohort-wide stages 3 and 4 abort the run and reach
the caller as an AggregateRunError.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from caselaw_review.costs import CostRecord, RunCostStatistics


class CaseLawReviewError(Exception):
    """Base class for all pipeline errors."""


class ConversionError(CaseLawReviewError):
    """A source document could not be converted to text."""


class ProviderError(CaseLawReviewError):
    """
    The LLM provider rejected a request or could not be reached.

    Attributes:
        status: HTTP status code, or None for transport failures
        code: Provider error code (e.g. "resource_unavailable"), if any
    """

    def __init__(self, message: str, status: int | None = None, code: str | None = None):
        super().__init__(message)
        self.status = status
        self.code = code

    @property
    def is_capacity_exhausted(self) -> bool:
        """True when the flex tier has no capacity for this request."""
        if self.status != 429:
            return False
        text = str(self).lower()
        return (
            self.code == "resource_unavailable"
            or "resource unavailable" in text
            or "resource_unavailable" in text
        )

    @property
    def is_model_unavailable(self) -> bool:
        """True when the requested model does not exist or is not served."""
        return self.status == 404 or self.code == "model_not_found"


class InvocationError(CaseLawReviewError):
    """The model call failed irrecoverably after the retry/fallback policy."""


class MalformedOutputError(CaseLawReviewError):
    """
    The model answered but no valid JSON object could be recovered.

    Attributes:
        snippet: First 500 characters of the offending text
    """

    SNIPPET_LENGTH = 500

    def __init__(self, message: str, raw_text: str = ""):
        self.snippet = (raw_text or "")[:self.SNIPPET_LENGTH]
        super().__init__(f"{message}. First {self.SNIPPET_LENGTH} characters of response: {self.snippet}")


class StageError(CaseLawReviewError):
    """
    A cohort-wide stage (skeleton or review synthesis) failed.

    Attributes:
        stage: Stage index (3 or 4)
        cost_records: Records of calls that completed before the failure
    """

    def __init__(self, stage: int, message: str, cost_records: list[CostRecord] | None = None):
        super().__init__(message)
        self.stage = stage
        self.cost_records = list(cost_records or [])


class AggregateRunError(CaseLawReviewError):
    """
    The run could not produce a review.

    Raised when no document survived a stage barrier or when a shared
    artifact stage failed. Carries the cost statistics accumulated so far.
    """

    def __init__(self, message: str, cost_statistics: RunCostStatistics | None = None):
        super().__init__(message)
        self.cost_statistics = cost_statistics


class PipelineCancelled(CaseLawReviewError):
    """The run was stopped by ReviewPipeline.stop() between stages."""
