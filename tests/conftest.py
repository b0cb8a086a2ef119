# =============================================================================
# Shared Test Fixtures
# =============================================================================
#
# Fake extractors stand in for Docling so the suite runs without model
# downloads. Every fixture writes under pytest's tmp_path.
# =============================================================================

import threading
import time
from pathlib import Path

import pytest

from pdf_ingest.errors import ExtractionError
from pdf_ingest.services.extraction import ExtractionOutput
from pdf_ingest.services.task_store import JsonTaskStore

PDF_BYTES = b"%PDF-1.4\n1 0 obj << /Type /Catalog >> endobj\ntrailer << >>\n%%EOF\n"


class FakeExtractor:
    """Returns canned output immediately; fails for names in `fail_on`."""

    def __init__(self, page_count: int = 2, fail_on: set[str] | None = None):
        self.page_count = page_count
        self.fail_on = set(fail_on or ())
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def extract(self, file_path: str) -> ExtractionOutput:
        name = Path(file_path).name
        with self._lock:
            self.calls.append(name)
        if name in self.fail_on:
            raise ExtractionError(f"Cannot parse {name}")
        return ExtractionOutput(
            text=f"# {name}\n\nExtracted text.",
            page_count=self.page_count,
            metadata={"source": "fake"},
        )


class BlockingExtractor:
    """
    Blocks every call until `release` is set and records how many calls
    were running at once. Calls give up after `max_wait` seconds so a
    failing test never hangs the thread pool.
    """

    def __init__(self, max_wait: float = 10.0):
        self.release = threading.Event()
        self.max_wait = max_wait
        self.active = 0
        self.max_active = 0
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def extract(self, file_path: str) -> ExtractionOutput:
        name = Path(file_path).name
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.calls.append(name)
        try:
            if not self.release.wait(self.max_wait):
                raise ExtractionError(f"{name} was never released")
            return ExtractionOutput(text=f"text of {name}", page_count=1)
        finally:
            with self._lock:
                self.active -= 1


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Poll `predicate` from synchronous code (e.g. against a TestClient)."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def make_pdf(tmp_path):
    """Factory writing a minimal PDF file and returning its path."""
    pdf_dir = tmp_path / "pdfs"
    pdf_dir.mkdir()

    def _make(name: str = "doc.pdf", content: bytes = PDF_BYTES) -> Path:
        path = pdf_dir / name
        path.write_bytes(content)
        return path

    return _make


@pytest.fixture
def db_path(tmp_path) -> Path:
    return tmp_path / "db" / "database.json"


@pytest.fixture
def store(db_path) -> JsonTaskStore:
    return JsonTaskStore(db_path)
