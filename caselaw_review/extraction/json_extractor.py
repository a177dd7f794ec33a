"""
Structured-Output Extractor

Recovers the JSON object embedded in an LLM response. Models wrap their
answer in Markdown fences, prepend commentary, or append notes after the
object; all of that is stripped before parsing.

Procedure:
1. Fences: take the interior of a ```json block if present, else of any
   ``` block, else the whole text.
2. Object span: the first balanced {...} span, tracked with a depth counter
   that ignores braces inside string literals. Truncated output with no
   balanced span falls back to the first '{' .. last '}' range.
3. json.loads the span. If it fails, steps 2-3 are repeated on the
   unfenced text.
"""

import json
import re
from typing import Any

from caselaw_review.exceptions import MalformedOutputError
from caselaw_review.logging_config import debug_log

_JSON_FENCE = re.compile(r"```json\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_ANY_FENCE = re.compile(r"```[^\n`]*\n?(.*?)```", re.DOTALL)


def strip_fences(raw_text: str) -> str:
    """Return the interior of the first fenced code block, preferring ```json."""
    match = _JSON_FENCE.search(raw_text)
    if match is None:
        match = _ANY_FENCE.search(raw_text)
    if match is None:
        return raw_text
    return match.group(1).strip()


def find_json_object(text: str) -> str | None:
    """
    Locate the first JSON object in text.

    Args:
        text: Text that may contain a JSON object among other content

    Returns:
        The object's source text, or None if the text has no '{'
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        char = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:pos + 1]

    # Unbalanced (usually truncated output)
    end = text.rfind("}")
    if end <= start:
        return None
    return text[start:end + 1]


def _candidate_spans(raw_text: str) -> list[str]:
    """Object spans to try: inside the fence first, then in the raw text."""
    spans: list[str] = []
    for text in (strip_fences(raw_text), raw_text):
        span = find_json_object(text)
        if span is not None and span not in spans:
            spans.append(span)
    return spans


def extract_json_span(raw_text: str) -> tuple[dict[str, Any], str]:
    """
    Parse the JSON object contained in an LLM response.

    A ``` run inside a string value ends the fence early, so when the fenced
    span does not parse the object is looked for in the unfenced text.

    Args:
        raw_text: Raw model output

    Returns:
        (parsed object, source text of the object)

    Raises:
        MalformedOutputError: If no JSON object can be recovered
    """
    if not raw_text or not raw_text.strip():
        raise MalformedOutputError("Empty response", raw_text)

    spans = _candidate_spans(raw_text)
    if not spans:
        raise MalformedOutputError("No JSON object found in response", raw_text)

    last_error: json.JSONDecodeError | None = None
    for span in spans:
        try:
            return json.loads(span), span
        except json.JSONDecodeError as e:
            debug_log(f"[JSON EXTRACTOR] Parse failed at line {e.lineno} col {e.colno}: {e.msg}")
            last_error = e

    raise MalformedOutputError(f"Invalid JSON in response ({last_error.msg})", raw_text) from last_error


def extract_json(raw_text: str) -> dict[str, Any]:
    """Parse the JSON object contained in an LLM response (see extract_json_span)."""
    return extract_json_span(raw_text)[0]
