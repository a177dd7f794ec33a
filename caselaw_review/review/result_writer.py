"""
Persistence of a finished run.

Layout under the output directory:

    <timestamp>-<suffix>/
        <document stem>/markdown.md
        <document stem>/legal-position.json
        <document stem>/case-card.json      (when a card was built)
        review-skeleton.json
        review.md

Only documents without an error are written. Each run gets its own
directory, so concurrent runs never write to the same files.
"""

import asyncio
import json
import re
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from caselaw_review.config import OUTPUT_DIR
from caselaw_review.logging_config import debug_log, info

from .result_types import DocumentResult, ReviewSkeleton

_DOCX_SUFFIX = re.compile(r"\.docx?$", re.IGNORECASE)
_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|]')


def document_stem(file_name: str) -> str:
    """Directory name for a document: file name without .doc/.docx, path-safe."""
    stem = _UNSAFE_CHARS.sub("_", _DOCX_SUFFIX.sub("", file_name)).strip()
    # "." and ".." would resolve outside the run directory
    if not stem.strip("."):
        return "document"
    return stem


def _dump_json(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)


class ResultWriter:
    """
    Writes run artifacts to a timestamped directory.

    Example:
        writer = ResultWriter(Path("processed"))
        run_dir = await writer.save(documents, skeleton, review)
    """

    def __init__(self, output_dir: Path = OUTPUT_DIR):
        self.output_dir = Path(output_dir)

    def new_run_dir(self) -> Path:
        timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S-%f")
        return self.output_dir / f"{timestamp}-{uuid.uuid4().hex[:8]}"

    async def save(
        self,
        documents: list[DocumentResult],
        skeleton: ReviewSkeleton | None,
        review: str,
    ) -> Path:
        """
        Persist documents, skeleton and review.

        Returns:
            The run directory

        Raises:
            OSError: If any file cannot be written
        """
        return await asyncio.to_thread(self._save_sync, documents, skeleton, review)

    def _save_sync(
        self,
        documents: list[DocumentResult],
        skeleton: ReviewSkeleton | None,
        review: str,
    ) -> Path:
        run_dir = self.new_run_dir()
        run_dir.mkdir(parents=True, exist_ok=False)

        used_stems: set[str] = set()
        saved = 0
        for doc in documents:
            if doc.has_error:
                continue

            stem = document_stem(doc.file_name)
            candidate, counter = stem, 2
            while candidate in used_stems:
                candidate = f"{stem}-{counter}"
                counter += 1
            used_stems.add(candidate)

            doc_dir = run_dir / candidate
            doc_dir.mkdir(parents=True, exist_ok=True)
            (doc_dir / "markdown.md").write_text(doc.markdown, encoding="utf-8")

            position_text = (
                _dump_json(doc.legal_position.to_dict())
                if doc.legal_position is not None
                else doc.legal_position_raw
            )
            (doc_dir / "legal-position.json").write_text(position_text, encoding="utf-8")

            if doc.case_card is not None:
                (doc_dir / "case-card.json").write_text(
                    _dump_json(doc.case_card.to_dict()), encoding="utf-8"
                )
            saved += 1

        if skeleton is not None:
            (run_dir / "review-skeleton.json").write_text(_dump_json(skeleton.to_dict()), encoding="utf-8")
        (run_dir / "review.md").write_text(review, encoding="utf-8")

        debug_log(f"[RESULT WRITER] {saved} documents written to {run_dir}")
        info(f"Results saved to {run_dir}")
        return run_dir
