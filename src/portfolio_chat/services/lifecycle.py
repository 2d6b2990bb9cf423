"""State machine for one in-flight assistant message.

::

    pending --first event--> streaming --done / end of stream--> complete
       |                         |
       +------ failure ----------+------------------------------> error

``complete`` and ``error`` are terminal. Each transition builds a new
immutable ``Message`` and hands it to the publisher; the accumulation buffer
never leaves this object.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import StrEnum

from pydantic import ValidationError

from portfolio_chat.core.error_handler import structured_logger
from portfolio_chat.core.exceptions import error_message_for
from portfolio_chat.schemas.chat_streaming import DonePayload, StreamEvent
from portfolio_chat.schemas.messages import Message, StructuredContent
from portfolio_chat.services.message_processor import (
    ProcessedContent,
    build_structured_content,
    settle_content,
    unescape_transport,
)
from portfolio_chat.services.text.contact import find_contact_signal
from portfolio_chat.services.text.dedup import Deduplicator


logger = logging.getLogger(__name__)

Publisher = Callable[[Message], None]


class LifecycleState(StrEnum):
    PENDING = "pending"
    STREAMING = "streaming"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_STATES = frozenset({LifecycleState.COMPLETE, LifecycleState.ERROR})


class MessageLifecycle:
    """Owns the buffer and published snapshots of a single AI answer."""

    def __init__(
        self,
        publish: Publisher | None = None,
        *,
        deduplicator: Deduplicator | None = None,
    ) -> None:
        self._publish_fn = publish
        self._dedup = deduplicator or Deduplicator()
        self._buffer = ""
        self._contact_latched = False
        self._chunks = 0
        self._processed = ProcessedContent(content=StructuredContent())
        self.state = LifecycleState.PENDING
        self._message = Message(
            sender="ai", content=StructuredContent(), is_streaming=True
        )

    @property
    def message(self) -> Message:
        return self._message

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def contact_latched(self) -> bool:
        return self._contact_latched

    @property
    def is_settled(self) -> bool:
        return self.state in TERMINAL_STATES

    def _publish(self, message: Message) -> Message:
        self._message = message
        if self._publish_fn is not None:
            self._publish_fn(message)
        return message

    def start(self) -> Message:
        """Publish the empty placeholder the UI renders while waiting."""
        return self._publish(self._message)

    def mark_streaming(self) -> None:
        if self.state == LifecycleState.PENDING:
            self.state = LifecycleState.STREAMING

    def apply(self, event: StreamEvent) -> Message:
        """Apply one stream event in arrival order."""
        if self.is_settled:
            logger.debug("Ignoring '%s' event after settle", event.name)
            return self._message

        self.mark_streaming()
        if event.name == "message":
            return self._on_chunk(event.payload)
        if event.name == "done":
            return self._on_done(event.payload)
        logger.debug("Ignoring unknown stream event '%s'", event.name)
        return self._message

    def _on_chunk(self, payload: str) -> Message:
        chunk = unescape_transport(payload)
        self._chunks += 1
        self._buffer = self._dedup.accumulate(self._buffer, chunk)

        if not self._contact_latched:
            marker = find_contact_signal(chunk, self._buffer)
            if marker is not None:
                self._contact_latched = True
                structured_logger.info(
                    "Contact card latch triggered", chunk_index=self._chunks
                )

        self._processed = build_structured_content(
            self._buffer,
            forced_format="contact" if self._contact_latched else None,
        )
        return self._publish(
            self._message.model_copy(
                update={
                    "content": self._processed.content,
                    "parse_error": self._processed.parse_error,
                }
            )
        )

    def _on_done(self, payload: str) -> Message:
        try:
            done = DonePayload.model_validate_json(payload)
        except ValidationError:
            logger.debug("Ignoring done event with unreadable payload")
            return self._message
        if not done.done:
            logger.debug("Ignoring done event without done=true")
            return self._message
        return self.complete()

    def _settle(self) -> Message:
        settled = settle_content(self._processed)
        self.state = LifecycleState.COMPLETE
        structured_logger.info(
            "Answer settled",
            format=settled.content.format,
            content_length=len(settled.content.text),
            chunk_count=self._chunks,
            dropped_chunks=self._dedup.dropped_chunks,
            has_parse_error=settled.parse_error is not None,
        )
        return self._publish(
            self._message.model_copy(
                update={
                    "content": settled.content,
                    "parse_error": settled.parse_error,
                    "is_streaming": False,
                    "is_error": False,
                }
            )
        )

    def complete(self) -> Message:
        """Freeze the last published content as the final answer."""
        if self.is_settled:
            return self._message
        return self._settle()

    def stop(self) -> Message:
        """Settle after a user-requested stop, keeping the partial answer."""
        if self.is_settled:
            return self._message
        structured_logger.info("Answer stopped by user", chunk_count=self._chunks)
        return self._settle()

    def fail(self, exc: BaseException) -> Message:
        """Discard partial content and settle with an error message."""
        if self.is_settled:
            return self._message
        self.state = LifecycleState.ERROR
        self._buffer = ""
        structured_logger.warning(
            "Answer failed",
            error_code=getattr(exc, "error_code", type(exc).__name__),
            chunk_count=self._chunks,
        )
        return self._publish(
            self._message.model_copy(
                update={
                    "content": StructuredContent(text=error_message_for(exc)),
                    "parse_error": None,
                    "is_streaming": False,
                    "is_error": True,
                }
            )
        )
