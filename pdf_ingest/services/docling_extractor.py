# =============================================================================
# PDF Extractor — Docling Document Conversion
# =============================================================================
#
# Production implementation of the PdfExtractor protocol. Docling converts
# the PDF (layout analysis, table structure, optional OCR) and the result
# is exported as markdown, which is what gets stored on the task and
# written to the extracted-texts directory.
#
# Workers call `extract()` from a thread (asyncio.to_thread), so several
# conversions may run at once when concurrency > 1.
# =============================================================================

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Any

from docling.datamodel.base_models import InputFormat
from docling.datamodel.pipeline_options import PdfPipelineOptions
from docling.document_converter import DocumentConverter, PdfFormatOption

from pdf_ingest.errors import ExtractionError
from pdf_ingest.services.extraction import ExtractionOutput, file_metadata

logger = logging.getLogger(__name__)


class DoclingExtractor:
    """
    Extract markdown text from PDFs with Docling.

    The DocumentConverter loads its layout models on first use, which takes
    a few seconds, so one converter is created lazily and reused for every
    document.
    """

    def __init__(self, *, do_ocr: bool = True, do_table_structure: bool = True) -> None:
        self._do_ocr = do_ocr
        self._do_table_structure = do_table_structure
        self._converter: DocumentConverter | None = None
        self._init_lock = threading.Lock()

    def _get_converter(self) -> DocumentConverter:
        with self._init_lock:
            if self._converter is None:
                logger.info(
                    "Initializing Docling DocumentConverter "
                    "(first use, may take a few seconds)..."
                )
                pipeline_options = PdfPipelineOptions()
                pipeline_options.do_table_structure = self._do_table_structure
                pipeline_options.do_ocr = self._do_ocr

                self._converter = DocumentConverter(
                    format_options={
                        InputFormat.PDF: PdfFormatOption(
                            pipeline_options=pipeline_options,
                        ),
                    }
                )
                logger.info("Docling DocumentConverter initialized")
            return self._converter

    def extract(self, file_path: str) -> ExtractionOutput:
        """
        Convert one PDF.

        Raises:
            ExtractionError: the file is missing, Docling fails, or the
                document has no pages.
        """
        path = Path(file_path)
        if not path.is_file():
            raise ExtractionError(f"File not found: {file_path}")

        logger.info("Extracting text from %s", path.name)
        converter = self._get_converter()
        started = time.monotonic()

        try:
            result = converter.convert(str(path))
        except Exception as exc:
            raise ExtractionError(f"Docling failed to parse '{path.name}': {exc}") from exc

        document = result.document
        text = document.export_to_markdown()
        page_count = len(document.pages)
        if page_count < 1:
            raise ExtractionError(f"No pages found in '{path.name}'")

        duration_ms = int((time.monotonic() - started) * 1000)
        metadata: dict[str, Any] = {
            **file_metadata(path),
            "processing_duration_ms": duration_ms,
            "text_length": len(text),
            "conversion_status": str(getattr(result.status, "value", result.status)),
        }
        title = getattr(document, "name", None)
        if title:
            metadata["title"] = title

        logger.info(
            "Extracted '%s': %d pages, %d chars in %d ms",
            path.name, page_count, len(text), duration_ms,
        )
        return ExtractionOutput(text=text, page_count=page_count, metadata=metadata)
