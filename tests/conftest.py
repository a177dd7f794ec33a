"""
Shared fixtures and fakes for the Case-Law Review tests.

The pipeline only talks to the outside world through ChatClient,
DocumentConverter and the invoker's sleep function; the fakes below
replace all three so tests run offline and without real delays.
"""

import json
import os
import sys
import tempfile
from pathlib import Path

import pytest

# Keep logs out of the source tree; must be set before caselaw_review.config is imported
os.environ.setdefault("CASELAW_REVIEW_HOME", tempfile.mkdtemp(prefix="caselaw-review-tests-"))

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from caselaw_review.ai import ChatClient, ChatCompletion
from caselaw_review.costs import TokenUsage
from caselaw_review.exceptions import ConversionError
from caselaw_review.extraction import DocumentConverter
from caselaw_review.prompting import PromptLoader


def make_completion(
    content: str,
    prompt_tokens: int = 1000,
    completion_tokens: int = 200,
    cached_tokens: int = 0,
    model: str = "",
) -> ChatCompletion:
    """Build a ChatCompletion with consistent usage numbers."""
    return ChatCompletion(
        content=content,
        usage=TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            cached_tokens=cached_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        ),
        model=model,
    )


class FakeChatClient(ChatClient):
    """
    Scripted ChatClient.

    Either pops the next entry from responses, or asks handler(call) for
    one. An entry that is an exception is raised instead of returned.
    Every request is recorded in calls.
    """

    def __init__(self, responses=None, handler=None):
        self.responses = list(responses or [])
        self.handler = handler
        self.calls = []

    async def create(self, model, messages, temperature, service_tier=None):
        call = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "service_tier": service_tier,
        }
        self.calls.append(call)

        if self.handler is not None:
            outcome = self.handler(call)
        else:
            outcome = self.responses.pop(0)

        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeConverter(DocumentConverter):
    """Decodes bytes as UTF-8; content starting with b"CORRUPT" fails."""

    async def convert(self, content: bytes) -> str:
        if content.startswith(b"CORRUPT"):
            raise ConversionError("Could not convert document: not a docx file")
        return content.decode("utf-8")


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def legal_position_json(case_number: str, holding: str = "Claim granted") -> str:
    return json.dumps({
        "level1": {"branch": "civil", "dispute_category": "supply", "case_number": case_number},
        "level2": {"parties": "Buyer v. Seller", "relationship_type": "contract"},
        "level7": {"holding_short": holding, "applicability_scope": "", "result": "granted"},
    })


def case_card_json(case_number: str = "", summary: str = "Supply dispute") -> str:
    return json.dumps({
        "caseNumber": case_number,
        "summary": summary,
        "keyFindings": ["Late delivery is a breach"],
        "appliedNorms": "Civil Code art. 506",
        "result": "granted",
    })


SKELETON_JSON = json.dumps({
    "legalQuestion": "Liability for late delivery",
    "normativeBase": ["Civil Code art. 506"],
    "approaches": [
        {"name": "Strict", "description": "Seller always liable", "applicableFacts": "Any delay", "caseIndices": [1, 2]},
    ],
    "discrepancies": {"normInterpretation": "", "evidenceRequirements": "", "factAssessment": ""},
    "trends": {"dominantApproach": "Strict", "timeShifts": "", "higherCourts": ""},
})


@pytest.fixture
def fake_converter():
    return FakeConverter()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def prompt_dir(tmp_path):
    """Minimal step0..step4 templates with distinguishable text."""
    directory = tmp_path / "prompts"
    directory.mkdir()
    for stage in range(5):
        (directory / f"step{stage}.md").write_text(
            f"## SYSTEM PROMPT\n\nSystem for step {stage}.\n\n---\n\n"
            f"## USER PROMPT\n\nUser for step {stage}.\n\n---\n",
            encoding="utf-8",
        )
    return directory


@pytest.fixture
def prompt_loader(prompt_dir):
    return PromptLoader(prompt_dir)
