"""
pdf_export.py — Generate a PDF report from a stored Analysis record.

Usage:
    from pdf_export import build_pdf
    pdf_bytes = build_pdf(analysis_dict)
"""

from __future__ import annotations

from datetime import datetime
from fpdf import FPDF

# ---------------------------------------------------------------------------
# Latin-1 sanitiser: Helvetica only supports Latin-1 (no emoji / Unicode)
# ---------------------------------------------------------------------------
_REPLACEMENTS = {
    "\u2026": "...",   # ellipsis
    "\u2018": "'",     # left single quote
    "\u2019": "'",     # right single quote
    "\u201c": '"',     # left double quote
    "\u201d": '"',     # right double quote
    "\u2013": "-",     # en dash
    "\u2014": "--",    # em dash
    "\u2022": "*",     # bullet
    "\u2192": "->",    # arrow
}

def _s(text) -> str:
    """Return a Latin-1-safe, single-line string for fpdf cell() calls."""
    t = str(text)
    for char, repl in _REPLACEMENTS.items():
        t = t.replace(char, repl)
    t = t.replace("\n", " ").replace("\r", " ").replace("\t", " ")
    return t.encode("latin-1", errors="replace").decode("latin-1")

# ---------------------------------------------------------------------------
# Colour palette
# ---------------------------------------------------------------------------
NAVY       = (15,  23,  42)   # headings / cover
BLUE       = (37,  99, 235)   # section titles
LIGHT_BLUE = (219, 234, 254)  # section title bg
GRAY_LINE  = (226, 232, 240)  # dividers
GRAY_TEXT  = (100, 116, 139)  # secondary text
GREEN      = (22, 163,  74)   # present
RED        = (220,  38,  38)  # missing
WHITE      = (255, 255, 255)

TAG_LABELS = [
    ("title",       "Title"),
    ("description", "Meta description"),
    ("keywords",    "Meta keywords"),
    ("canonical",   "Canonical"),
    ("metaRobots",  "Meta robots"),
    ("h1",          "H1"),
]


# ---------------------------------------------------------------------------
# PDF subclass with helpers
# ---------------------------------------------------------------------------

class AnalysisReport(FPDF):
    def __init__(self, analysis: dict):
        super().__init__()
        self.analysis = analysis
        self.set_margins(18, 18, 18)
        self.set_auto_page_break(auto=True, margin=22)

    def header(self):
        if self.page_no() == 1:
            return
        self.set_font("Helvetica", "B", 8)
        self.set_text_color(*GRAY_TEXT)
        self.cell(0, 6, _s(f"SEO Analysis  |  {self.analysis.get('url', '')}"), align="L")
        self.ln(1)
        self.set_draw_color(*GRAY_LINE)
        self.line(self.l_margin, self.get_y(), self.w - self.r_margin, self.get_y())
        self.ln(4)

    def footer(self):
        self.set_y(-16)
        self.set_font("Helvetica", "", 8)
        self.set_text_color(*GRAY_TEXT)
        self.cell(0, 6, f"Page {self.page_no()} of {{nb}}", align="C")

    def section_title(self, title: str):
        self.ln(4)
        self.set_fill_color(*LIGHT_BLUE)
        self.set_text_color(*BLUE)
        self.set_font("Helvetica", "B", 12)
        self.cell(0, 9, _s(f"  {title}"), fill=True, new_x="LMARGIN", new_y="NEXT")
        self.ln(3)

    def body(self, text: str):
        self.set_font("Helvetica", "", 9)
        self.set_text_color(*NAVY)
        self.multi_cell(0, 5, _s(text))
        self.set_x(self.l_margin)

    def bullet(self, text: str, color=NAVY, indent: int = 4):
        x = self.l_margin + indent
        self.set_x(x)
        self.set_text_color(*color)
        self.set_font("Helvetica", "B", 9)
        self.cell(4, 5, "-")
        self.set_font("Helvetica", "", 9)
        self.multi_cell(self.w - self.r_margin - x - 4, 5, _s(text))
        self.set_x(self.l_margin)

    def kv(self, key: str, value, missing_label: str = "missing"):
        """Key: value line; empty values are flagged in red."""
        self.set_font("Helvetica", "B", 9)
        self.set_text_color(*GRAY_TEXT)
        self.cell(40, 5, _s(f"{key}:"))
        self.set_font("Helvetica", "", 9)
        if value:
            self.set_text_color(*NAVY)
            self.multi_cell(0, 5, _s(value))
        else:
            self.set_text_color(*RED)
            self.multi_cell(0, 5, _s(f"({missing_label})"))
        self.set_x(self.l_margin)


# ---------------------------------------------------------------------------
# Section renderers
# ---------------------------------------------------------------------------

def _cover(pdf: AnalysisReport):
    pdf.add_page()

    pdf.set_fill_color(*NAVY)
    pdf.rect(0, 0, pdf.w, 52, "F")

    pdf.set_xy(18, 16)
    pdf.set_font("Helvetica", "B", 22)
    pdf.set_text_color(*WHITE)
    pdf.cell(0, 10, "SEO Analysis Report", new_x="LMARGIN", new_y="NEXT")

    pdf.set_x(18)
    pdf.set_font("Helvetica", "", 11)
    pdf.set_text_color(148, 163, 184)
    pdf.cell(0, 8, _s(pdf.analysis.get("url", "")), new_x="LMARGIN", new_y="NEXT")

    ts = pdf.analysis.get("createdAt") or ""
    try:
        date_str = datetime.fromisoformat(ts).strftime("%B %d, %Y")
    except ValueError:
        date_str = ts[:10]

    pdf.set_xy(18, 58)
    for key, val in (("Analysis ID", pdf.analysis.get("id", "")), ("Date", date_str)):
        pdf.set_font("Helvetica", "B", 9)
        pdf.set_text_color(*GRAY_TEXT)
        pdf.cell(32, 6, _s(f"{key}:"))
        pdf.set_font("Helvetica", "", 9)
        pdf.set_text_color(*NAVY)
        pdf.cell(0, 6, _s(str(val)), new_x="LMARGIN", new_y="NEXT")


def _extracted_tags(pdf: AnalysisReport):
    tags = pdf.analysis.get("extractedTags") or {}
    pdf.section_title("Extracted Tags")
    for key, label in TAG_LABELS:
        pdf.kv(label, tags.get(key))
    h2s = tags.get("h2") or []
    pdf.kv("H2 headings", f"{len(h2s)} found" if h2s else None, missing_label="none")
    for h2 in h2s:
        pdf.bullet(h2)


def _suggestions(pdf: AnalysisReport):
    sugg = pdf.analysis.get("aiSuggestions") or {}
    pdf.section_title("AI Suggestions")
    if not sugg:
        pdf.body("No AI suggestions have been generated for this analysis yet.")
        return

    assessment = sugg.get("overallAssessment")
    if assessment:
        pdf.body(str(assessment))
        pdf.ln(2)

    missing = sugg.get("missingTags") or []
    if isinstance(missing, list) and missing:
        pdf.set_font("Helvetica", "B", 9)
        pdf.set_text_color(*NAVY)
        pdf.cell(0, 6, "Missing tags", new_x="LMARGIN", new_y="NEXT")
        for tag in missing:
            pdf.bullet(str(tag), color=RED)
        pdf.ln(2)

    improvements = sugg.get("improvementSuggestions") or []
    if isinstance(improvements, list) and improvements:
        pdf.set_font("Helvetica", "B", 9)
        pdf.set_text_color(*NAVY)
        pdf.cell(0, 6, "Improvements", new_x="LMARGIN", new_y="NEXT")
        for item in improvements:
            if isinstance(item, dict):
                pdf.bullet(f"{item.get('tag', '')}: {item.get('suggestion', '')}", color=GREEN)
            else:
                pdf.bullet(str(item), color=GREEN)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_pdf(analysis: dict) -> bytes:
    """
    Build a PDF report from an Analysis record dict.
    Returns raw PDF bytes ready to send as an HTTP response.
    """
    pdf = AnalysisReport(analysis)
    pdf.alias_nb_pages()

    _cover(pdf)
    _extracted_tags(pdf)
    _suggestions(pdf)

    return bytes(pdf.output())
