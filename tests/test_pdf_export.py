"""Tests for the PDF report builder."""

from pdf_export import _s, build_pdf

from conftest import CLEAN_SUGGESTIONS

RECORD = {
    "id": 7,
    "url": "https://example.com/pricing",
    "rawHtml": "<title>Pricing</title>",
    "extractedTags": {
        "title": "Pricing",
        "description": "Plans for every team",
        "keywords": None,
        "canonical": "https://example.com/pricing",
        "metaRobots": "index,follow",
        "h1": "Simple pricing",
        "h2": ["Starter", "Business", "Enterprise"],
    },
    "aiSuggestions": CLEAN_SUGGESTIONS,
    "createdAt": "2024-05-01T12:30:00",
    "userId": 1,
}


def test_full_record_renders():
    pdf = build_pdf(RECORD)
    assert isinstance(pdf, bytes)
    assert pdf.startswith(b"%PDF")


def test_record_without_suggestions_renders():
    record = {**RECORD, "aiSuggestions": {}, "extractedTags": {"title": None, "h2": []}}
    assert build_pdf(record).startswith(b"%PDF")


def test_unexpected_suggestion_shapes_render():
    record = {
        **RECORD,
        "aiSuggestions": {
            "overallAssessment": "Good — mostly “fine” \U0001F680",
            "missingTags": "not-a-list",
            "improvementSuggestions": ["plain string", {"tag": "h1"}],
        },
        "createdAt": "not-a-date",
    }
    assert build_pdf(record).startswith(b"%PDF")


def test_sanitiser_maps_to_latin1():
    assert _s("a — b\n…") == "a -- b ..."
    assert _s("\U0001F680") == "?"
