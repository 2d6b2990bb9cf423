"""Removal of content the model re-emits across stream chunks.

Deduplication runs over the whole accumulated buffer after every chunk. The
seen-sets live inside a single call, so nothing leaks between messages or
conversations, and running it on its own output changes nothing.
"""

from __future__ import annotations

import re

from portfolio_chat.core.config import get_settings


# Sentence boundary: terminal punctuation run followed by whitespace.
SENTENCE_BOUNDARY_RE = re.compile(r"([.!?]+\s+)")
# Markdown bullet of the form ``* **label**: text.`` (or ending at a newline)
BULLET_RE = re.compile(r"\* \*\*[^*\n]+\*\*:[^\n]*?(?:\.|\n)")

_TERMINAL_PUNCTUATION = (".", "!", "?")


def split_sentences(text: str) -> list[tuple[str, str]]:
    """Split ``text`` into ``(body, delimiter)`` units.

    Joining every ``body + delimiter`` reproduces ``text`` exactly. Only the
    last unit can have an empty delimiter.
    """
    parts = SENTENCE_BOUNDARY_RE.split(text)
    units: list[tuple[str, str]] = []
    for i in range(0, len(parts), 2):
        delimiter = parts[i + 1] if i + 1 < len(parts) else ""
        units.append((parts[i], delimiter))
    return units


def remove_repeated_sentences(text: str, min_segment_length: int = 5) -> str:
    """Drop every sentence whose body already appeared earlier in ``text``.

    Bodies shorter than ``min_segment_length`` are always kept. The trailing
    unterminated segment is kept too: it may still be growing.
    """
    seen: set[str] = set()
    kept: list[str] = []
    for body, delimiter in split_sentences(text):
        if delimiter and len(body) >= min_segment_length:
            if body in seen:
                continue
            seen.add(body)
        kept.append(body + delimiter)
    return "".join(kept)


def remove_repeated_bullets(text: str) -> str:
    """Keep only the first occurrence of each identical Markdown bullet."""
    seen: set[str] = set()
    pieces: list[str] = []
    pos = 0
    for match in BULLET_RE.finditer(text):
        bullet = match.group(0)
        if bullet in seen:
            pieces.append(text[pos : match.start()])
            pos = match.end()
        else:
            seen.add(bullet)
    pieces.append(text[pos:])
    return "".join(pieces)


def deduplicate(
    text: str,
    *,
    min_length: int | None = None,
    min_segment_length: int | None = None,
) -> str:
    """Remove repeated sentences and bullets from an accumulated buffer."""
    settings = get_settings()
    min_length = settings.DEDUP_MIN_LENGTH if min_length is None else min_length
    min_segment_length = (
        settings.DEDUP_MIN_SEGMENT_LENGTH
        if min_segment_length is None
        else min_segment_length
    )
    if not text or len(text) < min_length:
        return text

    # Dropping a bullet can splice two fragments into a sentence seen earlier,
    # so repeat until neither pass changes anything. Each pass only shrinks.
    while True:
        result = remove_repeated_bullets(
            remove_repeated_sentences(text, min_segment_length)
        )
        if result == text:
            return result
        text = result


def _complete_sentences(text: str) -> list[str] | None:
    """Normalized sentences of ``text``, or None if any is unterminated."""
    sentences: list[str] = []
    for body, delimiter in split_sentences(text):
        sentence = (body + delimiter).strip()
        if not sentence:
            continue
        if not sentence.endswith(_TERMINAL_PUNCTUATION):
            return None
        sentences.append(sentence)
    return sentences


def is_reemitted_chunk(
    buffer: str, chunk: str, min_segment_length: int | None = None
) -> bool:
    """True when ``chunk`` only repeats complete sentences already in ``buffer``."""
    if min_segment_length is None:
        min_segment_length = get_settings().DEDUP_MIN_SEGMENT_LENGTH
    if not buffer or len(chunk.strip()) < min_segment_length:
        return False

    chunk_sentences = _complete_sentences(chunk)
    if not chunk_sentences:
        return False

    known = {
        sentence
        for body, delimiter in split_sentences(buffer)
        if (sentence := (body + delimiter).strip())
        and sentence.endswith(_TERMINAL_PUNCTUATION)
    }
    return all(sentence in known for sentence in chunk_sentences)


class Deduplicator:
    """Per-message accumulation with re-emission suppression."""

    def __init__(
        self,
        min_length: int | None = None,
        min_segment_length: int | None = None,
    ) -> None:
        settings = get_settings()
        self.min_length = (
            settings.DEDUP_MIN_LENGTH if min_length is None else min_length
        )
        self.min_segment_length = (
            settings.DEDUP_MIN_SEGMENT_LENGTH
            if min_segment_length is None
            else min_segment_length
        )
        self.dropped_chunks = 0

    def accumulate(self, buffer: str, chunk: str) -> str:
        """Append ``chunk`` to ``buffer`` and deduplicate the result."""
        if is_reemitted_chunk(buffer, chunk, self.min_segment_length):
            self.dropped_chunks += 1
            return buffer
        return deduplicate(
            buffer + chunk,
            min_length=self.min_length,
            min_segment_length=self.min_segment_length,
        )
