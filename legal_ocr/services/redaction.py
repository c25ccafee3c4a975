"""Rule-driven identification and reversible replacement of sensitive spans."""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from legal_ocr.errors import ValidationError
from legal_ocr.utils.logging_utils import structured_log

from .interfaces import MetricsClient
from .redaction_rules import DEFAULT_RULES, RedactionRule

LOG = logging.getLogger("redaction")

REPORT_TITLE = "# 脱敏替换比对表"
REPORT_HEADER = "| 类型 | 原文内容 | 脱敏标记 |"


@dataclass(slots=True, frozen=True)
class RedactionMatch:
    id: str
    category: str
    original: str
    start_index: int
    end_index: int
    replacement: str
    is_selected: bool = True


def _span(rule: RedactionRule, pattern_groups: int, match) -> Tuple[int, int, str]:
    if rule.use_capture_group and pattern_groups >= 1 and match.group(1):
        return match.start(1), match.end(1), match.group(1)
    return match.start(), match.end(), match.group(0)


def identify(text: str, rules: Sequence[RedactionRule] | None = None) -> List[RedactionMatch]:
    """Find non-overlapping sensitive spans, earlier rules taking priority.

    The same ``(category, original)`` pair always receives the same label.
    """
    rules = DEFAULT_RULES if rules is None else rules
    accepted: List[RedactionMatch] = []
    counters: Dict[str, int] = {}
    labels: Dict[Tuple[str, str], str] = {}

    for rule in rules:
        for pattern in rule.compiled:
            for found in pattern.finditer(text):
                start, end, original = _span(rule, pattern.groups, found)
                if end <= start:
                    continue
                if any(start < other.end_index and end > other.start_index for other in accepted):
                    continue
                key = (rule.category, original)
                label = labels.get(key)
                if label is None:
                    counters[rule.category] = counters.get(rule.category, 0) + 1
                    label = rule.label(counters[rule.category])
                    labels[key] = label
                accepted.append(
                    RedactionMatch(
                        id=f"{rule.category}-{start}",
                        category=rule.category,
                        original=original,
                        start_index=start,
                        end_index=end,
                        replacement=label,
                    )
                )
    accepted.sort(key=lambda match: match.start_index)
    return accepted


def apply_redactions(text: str, matches: Iterable[RedactionMatch]) -> str:
    """Substitute selected matches back to front so offsets stay valid."""
    result = text
    selected = sorted((m for m in matches if m.is_selected), key=lambda m: m.start_index, reverse=True)
    for match in selected:
        result = result[: match.start_index] + match.replacement + result[match.end_index :]
    return result


def _cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ")


def compare_report(matches: Iterable[RedactionMatch]) -> str:
    """Markdown audit table with one row per selected match."""
    lines = [REPORT_TITLE, "", REPORT_HEADER, "| --- | --- | --- |"]
    for match in matches:
        if match.is_selected:
            lines.append(f"| {match.category} | {_cell(match.original)} | {match.replacement} |")
    return "\n".join(lines) + "\n"


def toggle_match(matches: Sequence[RedactionMatch], match_id: str) -> List[RedactionMatch]:
    """Flip ``is_selected`` for one match; it stays in the list either way."""
    return [replace(m, is_selected=not m.is_selected) if m.id == match_id else m for m in matches]


def remove_match(matches: Sequence[RedactionMatch], match_id: str) -> List[RedactionMatch]:
    return [m for m in matches if m.id != match_id]


def count_by_category(matches: Iterable[RedactionMatch]) -> Dict[str, int]:
    return dict(Counter(match.category for match in matches))


def filter_by_category(matches: Iterable[RedactionMatch], category: str | None) -> List[RedactionMatch]:
    if not category or category == "all":
        return list(matches)
    return [match for match in matches if match.category == category]


def match_to_dict(match: RedactionMatch) -> Dict[str, Any]:
    return asdict(match)


def match_from_dict(payload: Mapping[str, Any], text_length: int | None = None) -> RedactionMatch:
    try:
        match = RedactionMatch(
            id=str(payload["id"]),
            category=str(payload["category"]),
            original=str(payload.get("original") or ""),
            start_index=int(payload["start_index"]),
            end_index=int(payload["end_index"]),
            replacement=str(payload["replacement"]),
            is_selected=bool(payload.get("is_selected", True)),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid redaction match: {exc}") from exc
    if match.start_index < 0 or match.end_index < match.start_index:
        raise ValidationError(f"Invalid offsets for match {match.id}")
    if text_length is not None and match.end_index > text_length:
        raise ValidationError(f"Match {match.id} is outside the document")
    return match


def validate_non_overlapping(matches: Sequence[RedactionMatch]) -> None:
    ordered = sorted(matches, key=lambda m: m.start_index)
    for previous, current in zip(ordered, ordered[1:]):
        if current.start_index < previous.end_index:
            raise ValidationError(f"Matches {previous.id} and {current.id} overlap")


class RedactionSession:
    """A document plus its editable match list."""

    def __init__(
        self,
        text: str,
        rules: Sequence[RedactionRule] | None = None,
        *,
        metrics: MetricsClient | None = None,
    ) -> None:
        self.text = text
        self.matches = identify(text, rules)
        if metrics is not None:
            metrics.increment("redaction_matches_total", len(self.matches), stage="redaction")
        structured_log(
            LOG,
            logging.INFO,
            "redaction_identified",
            match_count=len(self.matches),
            category_count=len(count_by_category(self.matches)),
            text_length=len(text),
        )

    def toggle(self, match_id: str) -> None:
        self.matches = toggle_match(self.matches, match_id)

    def remove(self, match_id: str) -> None:
        self.matches = remove_match(self.matches, match_id)

    def select_all(self, selected: bool = True) -> None:
        self.matches = [replace(m, is_selected=selected) for m in self.matches]

    @property
    def selected(self) -> List[RedactionMatch]:
        return [m for m in self.matches if m.is_selected]

    def redacted_text(self) -> str:
        return apply_redactions(self.text, self.matches)

    def report(self) -> str:
        return compare_report(self.matches)


__all__ = [
    "REPORT_HEADER",
    "REPORT_TITLE",
    "RedactionMatch",
    "RedactionSession",
    "apply_redactions",
    "compare_report",
    "count_by_category",
    "filter_by_category",
    "identify",
    "match_from_dict",
    "match_to_dict",
    "remove_match",
    "toggle_match",
    "validate_non_overlapping",
]
