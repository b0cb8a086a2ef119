#!/usr/bin/env python3
"""
Generate a handful of small multi-page PDFs for exercising the queue.

Each document has a different page count, so uploading them together
shows several tasks moving through pending → processing → completed at
different speeds.

Usage:
    python scripts/generate_sample_pdf.py
    curl -F "pdf=@data/samples/quarterly_report.pdf" \
         -F "pdf=@data/samples/meeting_minutes.pdf" http://localhost:5000/upload

Output:
    data/samples/*.pdf
"""

from pathlib import Path

from fpdf import FPDF

SAMPLES: dict[str, tuple[str, list[tuple[str, list[str]]]]] = {
    "quarterly_report.pdf": (
        "Northwind Traders - Quarterly Report",
        [
            ("Summary", [
                "Revenue for the quarter was 4.2 million, up 8% on the prior "
                "quarter. Gross margin held at 41%.",
                "Operating expenses rose 3%, driven by warehouse staffing.",
            ]),
            ("Regional Results", [
                "North: 1.6 million. South: 1.1 million. East: 0.9 million. "
                "West: 0.6 million.",
                "The West region opened two new distribution points.",
            ]),
            ("Outlook", [
                "Management expects revenue between 4.3 and 4.5 million next "
                "quarter, subject to freight costs.",
            ]),
        ],
    ),
    "meeting_minutes.pdf": (
        "Platform Team - Meeting Minutes",
        [
            ("Attendees", ["Operations, Platform, Support."]),
            ("Decisions", [
                "Move the nightly import to 02:00 UTC.",
                "Retire the legacy upload endpoint at the end of the month.",
            ]),
        ],
    ),
    "single_page_memo.pdf": (
        "Internal Memo",
        [
            ("Notice", [
                "The office will be closed on Friday for maintenance. "
                "Remote access remains available.",
            ]),
        ],
    ),
}


class SampleDocument(FPDF):
    """PDF with a running title and page numbers."""

    def __init__(self, title: str):
        super().__init__()
        self.doc_title = title

    def header(self):
        self.set_font("Helvetica", "B", 10)
        self.set_text_color(100, 100, 100)
        self.cell(0, 8, self.doc_title, 0, 1, "C")
        self.line(10, self.get_y(), 200, self.get_y())
        self.ln(4)

    def footer(self):
        self.set_y(-15)
        self.set_font("Helvetica", "I", 8)
        self.set_text_color(150, 150, 150)
        self.cell(0, 10, f"Page {self.page_no()}/{{nb}} | Sample data", 0, 0, "C")

    def section_title(self, title: str):
        self.set_font("Helvetica", "B", 14)
        self.set_text_color(0, 0, 0)
        self.ln(6)
        self.cell(0, 10, title, 0, 1)
        self.ln(2)

    def body_text(self, text: str):
        self.set_font("Helvetica", "", 10)
        self.set_text_color(30, 30, 30)
        self.multi_cell(0, 5.5, text)
        self.ln(2)


def generate_samples(output_dir: Path = Path("data/samples")) -> list[Path]:
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for filename, (title, sections) in SAMPLES.items():
        pdf = SampleDocument(title)
        pdf.alias_nb_pages()
        pdf.set_auto_page_break(auto=True, margin=20)
        # One section per page.
        for heading, paragraphs in sections:
            pdf.add_page()
            pdf.section_title(heading)
            for paragraph in paragraphs:
                pdf.body_text(paragraph)

        output_path = output_dir / filename
        pdf.output(str(output_path))
        print(f"Generated: {output_path} ({output_path.stat().st_size:,} bytes)")
        written.append(output_path)
    return written


if __name__ == "__main__":
    generate_samples()
