"""Incremental framing of a ``text/event-stream`` body.

Records are separated by a blank line. Inside a record, ``:`` lines are
heartbeats, ``event:`` names the record and ``data:`` carries the payload.
Records without data are dropped; nothing here raises on malformed input.
"""

from __future__ import annotations

import codecs
import logging
import re
from collections.abc import AsyncIterable, AsyncIterator

from portfolio_chat.schemas.chat_streaming import StreamEvent


logger = logging.getLogger(__name__)

RECORD_SEPARATOR = "\n\n"
EVENT_LINE_RE = re.compile(r"^event:\s*(.+)$")
DATA_LINE_RE = re.compile(r"^data:\s*(.+)$")
DEFAULT_EVENT_NAME = "message"


def parse_record(record: str) -> StreamEvent | None:
    """Turn one blank-line-delimited record into an event, if it has data."""
    name: str | None = None
    data_lines: list[str] = []

    for line in record.split("\n"):
        if not line or line.startswith(":"):
            continue
        event_match = EVENT_LINE_RE.match(line)
        if event_match:
            name = event_match.group(1).strip()
            continue
        data_match = DATA_LINE_RE.match(line)
        if data_match:
            data_lines.append(data_match.group(1))

    if not data_lines:
        if name is not None:
            logger.debug("Skipping SSE record '%s' without data", name)
        return None
    return StreamEvent(name=name or DEFAULT_EVENT_NAME, payload="\n".join(data_lines))


class SseFramer:
    """Stateful SSE parser fed with raw chunks as they arrive.

    UTF-8 is decoded incrementally so a multi-byte character split across two
    network chunks is reassembled instead of being mangled.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.records_seen = 0
        self.records_skipped = 0

    def _drain(self, final: bool) -> list[StreamEvent]:
        self._buffer = self._buffer.replace("\r\n", "\n")
        *records, self._buffer = self._buffer.split(RECORD_SEPARATOR)
        if final and self._buffer.strip():
            records.append(self._buffer)
            self._buffer = ""

        events: list[StreamEvent] = []
        for record in records:
            if not record.strip():
                continue
            self.records_seen += 1
            event = parse_record(record)
            if event is None:
                self.records_skipped += 1
                continue
            events.append(event)
        return events

    def feed(self, chunk: bytes | str) -> list[StreamEvent]:
        """Consume a chunk and return the events it completed."""
        if isinstance(chunk, bytes):
            self._buffer += self._decoder.decode(chunk)
        else:
            self._buffer += chunk
        return self._drain(final=False)

    def flush(self) -> list[StreamEvent]:
        """Finish decoding and emit a trailing record left unterminated."""
        self._buffer += self._decoder.decode(b"", final=True)
        return self._drain(final=True)


async def iter_sse_events(
    chunks: AsyncIterable[bytes | str],
) -> AsyncIterator[StreamEvent]:
    """Yield events from an async byte stream in arrival order.

    The iterator simply ends when the body is exhausted; callers treat that
    as an implicit ``done``.
    """
    framer = SseFramer()
    async for chunk in chunks:
        for event in framer.feed(chunk):
            yield event
    for event in framer.flush():
        yield event
    if framer.records_skipped:
        logger.debug(
            "SSE stream ended: %d records, %d skipped",
            framer.records_seen,
            framer.records_skipped,
        )
