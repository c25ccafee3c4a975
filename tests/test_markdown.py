from __future__ import annotations

from legal_ocr.services.markdown import (
    clean_markdown,
    normalize_pages,
    ocr_response_to_markdown,
    reflow_paragraphs,
)


def test_pages_are_ordered_by_index_and_blank_pages_dropped():
    pages = [
        {"index": 2, "markdown": "Third"},
        {"index": 0, "markdown": "First"},
        {"index": 1, "markdown": "  \n "},
        {"index": 3, "markdown": None},
    ]
    assert normalize_pages(pages) == "First\n\nThird"


def test_normalize_pages_handles_missing_input():
    assert normalize_pages(None) == ""
    assert normalize_pages([]) == ""


def test_clean_markdown_collapses_long_blank_runs():
    assert clean_markdown("a\n\n\n\n\nb\n") == "a\n\nb"
    assert clean_markdown("a\n \n\t\n  \n\nb") == "a\n\nb"


def test_clean_markdown_keeps_two_blank_lines():
    assert clean_markdown("  a\n\n\nb  ") == "a\n\n\nb"


def test_reflow_merges_soft_breaks_and_keeps_structure():
    source = "\n".join(
        [
            "This agreement is made",
            "  between the parties",
            "",
            "# Article 1",
            "- first item",
            "2. second item",
            "| a | b |",
            "> quoted",
            "![img-0.jpeg](img-0.jpeg)",
            "```",
            "keep   this",
            "as is",
            "```",
            "closing line",
            "continues",
        ]
    )
    assert reflow_paragraphs(source).split("\n") == [
        "This agreement is made between the parties",
        "",
        "# Article 1",
        "- first item",
        "2. second item",
        "| a | b |",
        "> quoted",
        "![img-0.jpeg](img-0.jpeg)",
        "```",
        "keep   this",
        "as is",
        "```",
        "closing line continues",
    ]


def test_ocr_response_to_markdown_pipeline():
    payload = {
        "pages": [
            {"index": 1, "markdown": "Page two\n\n\n\n\n"},
            {"index": 0, "markdown": "# Title\nline one\nline two"},
        ]
    }
    assert ocr_response_to_markdown(payload) == "# Title\nline one\nline two\n\nPage two"
    assert ocr_response_to_markdown(payload, reflow=True) == "# Title\nline one line two\n\nPage two"


def test_ocr_response_to_markdown_rejects_non_mapping():
    assert ocr_response_to_markdown(None) == ""
    assert ocr_response_to_markdown({"pages": []}) == ""


def test_normalize_pages_ignores_malformed_entries():
    pages = [None, "stray", {"index": "two", "markdown": "Odd index"}, {"index": 1, "markdown": "Second"}]

    assert normalize_pages(pages) == "Odd index\n\nSecond"
    assert ocr_response_to_markdown({"pages": {"index": 0, "markdown": "not a list"}}) == ""
    assert ocr_response_to_markdown({"pages": [None]}) == ""
