# =============================================================================
# Extraction Collaborator — Interface
# =============================================================================
#
# Queue workers hand a file path to an extractor and get back the document
# text, page count and metadata, or an ExtractionError.
#
# The queue engine depends only on the `PdfExtractor` protocol defined here;
# the Docling-backed implementation lives in docling_extractor.py and is
# imported only when the application builds its default service.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

PDF_SIGNATURE = b"%PDF"


@dataclass
class ExtractionOutput:
    """What an extractor hands back to the queue worker."""

    text: str
    page_count: int
    metadata: dict[str, Any] = field(default_factory=dict)


class PdfExtractor(Protocol):
    """Anything that turns a PDF path into an ExtractionOutput."""

    def extract(self, file_path: str) -> ExtractionOutput: ...


def validate_pdf(file_path: str | Path) -> bool:
    """Return True if the file exists and starts with the %PDF signature."""
    path = Path(file_path)
    try:
        with path.open("rb") as fh:
            return fh.read(len(PDF_SIGNATURE)) == PDF_SIGNATURE
    except OSError as exc:
        logger.warning("PDF validation failed for %s: %s", path, exc)
        return False


def file_metadata(path: Path) -> dict[str, Any]:
    """Filesystem timestamps for a file, as ISO-8601 strings."""
    stats = path.stat()
    return {
        "created_at": datetime.fromtimestamp(stats.st_ctime, UTC).isoformat(),
        "modified_at": datetime.fromtimestamp(stats.st_mtime, UTC).isoformat(),
    }


def extracted_text_filename(pdf_path: str | Path) -> str:
    """Name of the markdown export written for an uploaded PDF."""
    return f"{Path(pdf_path).stem}_extracted.md"
