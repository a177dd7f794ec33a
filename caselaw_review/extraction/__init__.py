"""
Extraction Package

- Document conversion: source .docx bytes -> Markdown text
- JSON extraction: recover the JSON object from an LLM response
"""

from caselaw_review.extraction.document_converter import DocumentConverter, MammothConverter
from caselaw_review.extraction.json_extractor import (
    extract_json,
    extract_json_span,
    find_json_object,
    strip_fences,
)

__all__ = [
    'DocumentConverter',
    'MammothConverter',
    'extract_json',
    'extract_json_span',
    'find_json_object',
    'strip_fences',
]
