"""
Document conversion (docx -> Markdown).

DocumentConverter is the interface the pipeline depends on; MammothConverter
is the default implementation. mammoth is synchronous, so conversion runs in
a worker thread to keep the event loop free while other documents proceed.
"""

import asyncio
import io
from abc import ABC, abstractmethod

import mammoth

from caselaw_review.exceptions import ConversionError
from caselaw_review.logging_config import debug_log, warning


class DocumentConverter(ABC):
    """Abstract base class for source document converters."""

    @abstractmethod
    async def convert(self, content: bytes) -> str:
        """
        Convert raw document bytes to Markdown text.

        Raises:
            ConversionError: If the document cannot be converted
        """


class MammothConverter(DocumentConverter):
    """Converts .docx files to Markdown with mammoth."""

    async def convert(self, content: bytes) -> str:
        if not content:
            raise ConversionError("Document is empty")
        return await asyncio.to_thread(self._convert_sync, content)

    def _convert_sync(self, content: bytes) -> str:
        try:
            result = mammoth.convert_to_markdown(io.BytesIO(content))
        except Exception as e:
            raise ConversionError(f"Could not convert document: {e}") from e

        for message in result.messages:
            warning(f"Document conversion: {message.message}")

        debug_log(f"[CONVERTER] Converted {len(content)} bytes -> {len(result.value)} chars")
        return result.value
