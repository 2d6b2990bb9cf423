"""Conversation message schemas.

Messages are immutable snapshots: every lifecycle transition publishes a new
``Message`` value instead of mutating the one the renderer already holds.
"""

from __future__ import annotations

import itertools
import threading
import time
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


Sender = Literal["user", "ai"]
ContentFormat = Literal["text", "table", "contact", "pdf"]

CONTENT_FORMATS: frozenset[str] = frozenset({"text", "table", "contact", "pdf"})

_id_lock = threading.Lock()
_last_id = 0
_id_sequence = itertools.count()


def new_message_id() -> str:
    """Return a unique id that sorts in creation order."""
    global _last_id
    with _id_lock:
        _last_id = max(time.time_ns(), _last_id + 1)
        return f"{_last_id:020d}-{next(_id_sequence)}"


def utc_timestamp() -> str:
    return datetime.now(UTC).isoformat()


class StructuredContent(BaseModel):
    """Message body with a display format and an optional typed payload."""

    text: str = ""
    format: ContentFormat = "text"
    data: Any = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def has_error_data(self) -> bool:
        return isinstance(self.data, dict) and "error" in self.data


class Message(BaseModel):
    """One entry in a conversation.

    ``is_streaming`` and ``is_error`` are never both true.
    """

    id: str = Field(default_factory=new_message_id)
    sender: Sender
    content: str | StructuredContent
    timestamp: str = Field(default_factory=utc_timestamp)
    is_streaming: bool = False
    is_error: bool = False
    parse_error: str | None = None

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def _streaming_excludes_error(self) -> Message:
        if self.is_streaming and self.is_error:
            raise ValueError("a message cannot be streaming and errored at once")
        return self

    @property
    def text(self) -> str:
        """Visible text regardless of content shape."""
        if isinstance(self.content, StructuredContent):
            return self.content.text
        return self.content

    @property
    def format(self) -> ContentFormat:
        if isinstance(self.content, StructuredContent):
            return self.content.format
        return "text"

    @property
    def data(self) -> Any:
        if isinstance(self.content, StructuredContent):
            return self.content.data
        return None

    def to_wire(self) -> dict[str, Any]:
        """Serialize with the camelCase field names the front end expects."""
        return self.model_dump(by_alias=True, mode="json")
