"""
Tests for the caselaw-review command line.

The provider client and the pipeline are replaced so no network access
or real documents are needed.
"""

import asyncio
import json

import pytest

from caselaw_review import main as cli
from caselaw_review.review import CaseCard, DocumentResult, PipelineResult

from conftest import FakeChatClient


class StubPipeline:
    """Stands in for ReviewPipeline and returns a preset result."""

    result = PipelineResult()
    instances = []

    def __init__(self, client, **kwargs):
        self.client = client
        self.kwargs = kwargs
        self.documents = None
        self.timeout = None
        StubPipeline.instances.append(self)

    async def run(self, documents, progress_callback=None, timeout=None):
        self.documents = documents
        self.timeout = timeout
        return self.result


@pytest.fixture
def stub_pipeline(monkeypatch):
    StubPipeline.instances = []
    monkeypatch.setattr(cli, "OpenAICompatibleClient", FakeChatClient)
    monkeypatch.setattr(cli, "ReviewPipeline", StubPipeline)
    return StubPipeline


@pytest.fixture
def ruling_file(tmp_path):
    path = tmp_path / "ruling.docx"
    path.write_bytes(b"docx bytes")
    return path


class TestParser:
    def test_defaults(self):
        args = cli.build_parser().parse_args(["a.docx", "b.docx"])
        assert args.files == ["a.docx", "b.docx"]
        assert args.no_save is False
        assert args.json is False

    def test_files_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])


class TestMain:
    """Test exit codes and output of main()."""

    def test_review_printed(self, stub_pipeline, ruling_file, capsys, monkeypatch):
        monkeypatch.setattr(
            stub_pipeline, "result",
            PipelineResult(documents=[DocumentResult(file_name="ruling.docx")], review="# Review"),
        )

        exit_code = cli.main([str(ruling_file), "--no-save", "--timeout", "30"])

        assert exit_code == 0
        assert capsys.readouterr().out.strip() == "# Review"
        pipeline = stub_pipeline.instances[0]
        assert pipeline.documents[0].file_name == "ruling.docx"
        assert pipeline.documents[0].content == b"docx bytes"
        assert pipeline.kwargs["result_writer"] is None
        assert pipeline.timeout == 30.0

    def test_json_output(self, stub_pipeline, ruling_file, capsys, monkeypatch):
        monkeypatch.setattr(
            stub_pipeline, "result",
            PipelineResult(review="# Review", case_cards=[CaseCard(case_number="A-1")]),
        )

        exit_code = cli.main([str(ruling_file), "--no-save", "--json"])

        assert exit_code == 0
        response = json.loads(capsys.readouterr().out)
        assert response["success"] is True
        assert response["caseCards"][0]["caseNumber"] == "A-1"

    def test_failed_run_exit_code(self, stub_pipeline, ruling_file, monkeypatch, capsys):
        monkeypatch.setattr(stub_pipeline, "result", PipelineResult(error="No case cards could be built"))

        exit_code = cli.main([str(ruling_file), "--no-save"])

        assert exit_code == 1
        assert "No case cards could be built" in capsys.readouterr().err

    def test_missing_file(self, stub_pipeline, tmp_path):
        exit_code = cli.main([str(tmp_path / "missing.docx")])

        assert exit_code == 2
        assert stub_pipeline.instances == []

    def test_missing_api_key(self, monkeypatch, ruling_file, capsys):
        def no_key_client():
            raise ValueError("OPENAI_API_KEY is not set in the environment")

        monkeypatch.setattr(cli, "OpenAICompatibleClient", no_key_client)

        exit_code = cli.main([str(ruling_file), "--no-save"])

        assert exit_code == 2
        assert "OPENAI_API_KEY" in capsys.readouterr().err

    def test_run_timeout_exit_code(self, monkeypatch, ruling_file, capsys):
        async def slow_review(args):
            raise asyncio.TimeoutError()

        monkeypatch.setattr(cli, "run_review", slow_review)

        exit_code = cli.main([str(ruling_file), "--no-save", "--timeout", "0.01"])

        assert exit_code == 1
        assert "did not finish within 0.01 seconds" in capsys.readouterr().err
