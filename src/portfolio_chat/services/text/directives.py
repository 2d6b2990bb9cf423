"""Inline directive extraction.

The backend embeds control tags in answer text::

    [format:contact]Reach me here[data:{name:'Bob'}][/format]

``extract_directives`` separates them from the prose. It is called on every
accumulation step, so a directive that has only partly arrived (no closing
bracket yet) is left in the text untouched until the rest streams in.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from portfolio_chat.schemas.messages import ContentFormat


FORMAT_TAG_RE = re.compile(r"\[format:(text|table|contact|pdf)\]", re.IGNORECASE)
FORMAT_CLOSE_RE = re.compile(r"\[/format\]", re.IGNORECASE)
DATA_OPEN_RE = re.compile(r"\[data:", re.IGNORECASE)

# A single quote opens a string only right after one of these.
_STRUCTURAL_CHARS = frozenset(":[{,")


@dataclass(frozen=True)
class DataDirective:
    start: int
    end: int
    payload: str


@dataclass(frozen=True)
class DirectiveParts:
    text: str
    format: ContentFormat = "text"
    raw_data: str | None = None
    has_format_tag: bool = False


def _scan_payload_end(text: str, pos: int) -> int | None:
    """Return the index of the ``]`` closing a data directive body.

    Square brackets are depth-counted outside quoted strings, so arrays inside
    the payload do not end the directive early. ``None`` means the directive
    has not fully arrived.
    """
    depth = 1
    quote: str | None = None
    escaped = False
    prev_significant = ""

    for i in range(pos, len(text)):
        char = text[i]
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if quote is not None:
            if char == quote:
                quote = None
                prev_significant = char
            continue
        if char == '"' or (char == "'" and prev_significant in _STRUCTURAL_CHARS):
            quote = char
        elif char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return i
        if not char.isspace():
            prev_significant = char
    return None


def find_data_directive(text: str) -> DataDirective | None:
    """Locate the first complete ``[data:...]`` directive in ``text``."""
    match = DATA_OPEN_RE.search(text)
    if match is None:
        return None
    end = _scan_payload_end(text, match.end())
    if end is None:
        return None
    return DataDirective(
        start=match.start(),
        end=end + 1,
        payload=text[match.end() : end],
    )


def extract_directives(text: str) -> DirectiveParts:
    """Split ``text`` into visible prose, format kind and raw data payload."""
    if not isinstance(text, str):
        text = "" if text is None else str(text)

    cleaned = text
    fmt: ContentFormat = "text"
    has_format_tag = False

    format_match = FORMAT_TAG_RE.search(cleaned)
    if format_match:
        fmt = format_match.group(1).lower()  # type: ignore[assignment]
        has_format_tag = True
        cleaned = cleaned[: format_match.start()] + cleaned[format_match.end() :]
    cleaned = FORMAT_CLOSE_RE.sub("", cleaned)

    raw_data: str | None = None
    directive = find_data_directive(cleaned)
    if directive is not None:
        raw_data = directive.payload.strip()
        cleaned = cleaned[: directive.start] + cleaned[directive.end :]

    return DirectiveParts(
        text=cleaned.strip(),
        format=fmt,
        raw_data=raw_data,
        has_format_tag=has_format_tag,
    )
