"""Turn provider OCR page responses into one clean Markdown document."""
from __future__ import annotations

import re
from typing import Any, Iterable, List, Mapping

_EXCESS_BLANK_LINES = re.compile(r"\n(?:[ \t]*\n){3,}")
_LIST_ITEM = re.compile(r"^\s*(?:[-*+]|\d+[.)、])\s+")
_SPECIAL_PREFIXES = ("#", "|", ">", "![")
_FENCE = "```"


def _page_index(page: Mapping[str, Any]) -> int:
    try:
        return int(page.get("index") or 0)
    except (TypeError, ValueError):
        return 0


def normalize_pages(pages: Iterable[Mapping[str, Any]] | None) -> str:
    """Sort pages by ``index``, drop empty fragments and join with a blank line.

    Entries that are not objects are ignored, as is a ``pages`` value that is
    not a list.
    """
    if not isinstance(pages, (list, tuple)):
        return ""
    usable = [page for page in pages if isinstance(page, Mapping)]
    ordered = sorted(usable, key=_page_index)
    fragments = [str(page.get("markdown") or "") for page in ordered]
    return "\n\n".join(fragment for fragment in fragments if fragment.strip())


def clean_markdown(markdown: str) -> str:
    """Collapse more than two consecutive blank lines to one and trim."""
    return _EXCESS_BLANK_LINES.sub("\n\n", markdown).strip()


def _is_structural(line: str) -> bool:
    stripped = line.lstrip()
    return stripped.startswith(_SPECIAL_PREFIXES) or bool(_LIST_ITEM.match(line))


def reflow_paragraphs(markdown: str) -> str:
    """Merge layout-induced soft line breaks into single paragraphs.

    Headings, list items, table rows, blockquotes, image placeholders and fenced
    code are kept verbatim; each of them flushes the pending paragraph first.
    """
    output: List[str] = []
    buffer: List[str] = []
    in_fence = False

    def flush() -> None:
        if buffer:
            output.append(" ".join(buffer))
            buffer.clear()

    for line in markdown.split("\n"):
        if line.lstrip().startswith(_FENCE):
            flush()
            in_fence = not in_fence
            output.append(line)
            continue
        if in_fence:
            output.append(line)
            continue
        if not line.strip():
            flush()
            output.append("")
            continue
        if _is_structural(line):
            flush()
            output.append(line)
            continue
        buffer.append(line.strip())
    flush()
    return "\n".join(output)


def ocr_response_to_markdown(payload: Mapping[str, Any] | None, *, reflow: bool = False) -> str:
    """Full pipeline shared by the synchronous and batch paths."""
    if not isinstance(payload, Mapping):
        return ""
    combined = normalize_pages(payload.get("pages"))
    if reflow:
        combined = reflow_paragraphs(combined)
    return clean_markdown(combined)


__all__ = [
    "clean_markdown",
    "normalize_pages",
    "ocr_response_to_markdown",
    "reflow_paragraphs",
]
