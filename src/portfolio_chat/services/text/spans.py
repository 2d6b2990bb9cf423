"""Inline formatting tokenizer for message display.

A single left-to-right pass: at each position every pattern is searched and
the nearest match wins; on a tie the earlier pattern in ``SPAN_PATTERNS``
wins. Spans never overlap and concatenating their source text gives back the
input.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal


SpanKind = Literal["normal", "bold", "italic", "code", "link", "email", "url"]

SPAN_PATTERNS: tuple[tuple[SpanKind, re.Pattern[str]], ...] = (
    ("bold", re.compile(r"\*\*(.+?)\*\*")),
    ("italic", re.compile(r"(?<!\*)\*(?!\*)(.+?)(?<!\*)\*(?!\*)")),
    ("code", re.compile(r"`(.+?)`")),
    ("link", re.compile(r"\[(.*?)\]\((.*?)\)")),
    ("email", re.compile(r"\b([A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")),
    ("url", re.compile(r"(https?://[^\s)\]]+)")),
)


@dataclass(frozen=True)
class TextSpan:
    kind: SpanKind
    text: str
    source: str
    target: str | None = None


def _span_from_match(kind: SpanKind, match: re.Match[str]) -> TextSpan:
    source = match.group(0)
    if kind == "link":
        return TextSpan(kind, match.group(1), source, target=match.group(2))
    if kind == "email":
        return TextSpan(kind, match.group(1), source, target=f"mailto:{match.group(1)}")
    if kind == "url":
        return TextSpan(kind, match.group(1), source, target=match.group(1))
    return TextSpan(kind, match.group(1), source)


def tokenize_spans(text: str) -> list[TextSpan]:
    """Segment ``text`` into formatted spans."""
    if not isinstance(text, str):
        text = "" if text is None else str(text)

    spans: list[TextSpan] = []
    pos = 0
    while pos < len(text):
        best: tuple[SpanKind, re.Match[str]] | None = None
        for kind, pattern in SPAN_PATTERNS:
            match = pattern.search(text, pos)
            if match is None:
                continue
            if best is None or match.start() < best[1].start():
                best = (kind, match)

        if best is None:
            spans.append(TextSpan("normal", text[pos:], text[pos:]))
            break

        kind, match = best
        if match.start() > pos:
            before = text[pos : match.start()]
            spans.append(TextSpan("normal", before, before))
        spans.append(_span_from_match(kind, match))
        pos = match.end()
    return spans
