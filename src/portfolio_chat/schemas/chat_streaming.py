"""Schemas for the chat answer stream and auxiliary endpoints."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


MAX_QUESTION_LENGTH = 4000


class ResponseStyle(StrEnum):
    """Answer tone requested from the backend."""

    NORMAL = "NORMAL"
    FORMAL = "FORMAL"
    EXPLANATORY = "EXPLANATORY"
    MINIMALIST = "MINIMALIST"
    HR = "HR"


class StreamEvent(BaseModel):
    """One framed record of the answer stream.

    ``name`` is ``message`` or ``done`` for the events the lifecycle acts on;
    other names are passed through and ignored downstream.
    """

    name: str | None = "message"
    payload: str = ""

    model_config = ConfigDict(frozen=True, extra="forbid")

    def to_sse(self) -> str:
        """Serialize back to the wire format (used by the replay server)."""
        lines = []
        if self.name:
            lines.append(f"event: {self.name}")
        lines.append(f"data: {self.payload}")
        return "\n".join(lines) + "\n\n"


class DonePayload(BaseModel):
    """Payload of the terminal ``done`` event."""

    done: bool = False

    model_config = ConfigDict(extra="ignore")


class ChatStreamRequest(BaseModel):
    """Request payload for streaming an assistant answer."""

    message: str = Field(..., min_length=1, max_length=MAX_QUESTION_LENGTH)
    style: ResponseStyle = ResponseStyle.NORMAL

    model_config = ConfigDict(extra="forbid")


class RemainingResponse(BaseModel):
    """Daily message allowance reported by the backend."""

    remaining: int


class HistoryMessage(BaseModel):
    """A stored message as returned by the history endpoint."""

    id: str | int | None = None
    sender: str
    content: Any = ""
    timestamp: str | None = None

    model_config = ConfigDict(extra="ignore")


class MessageHistoryResponse(BaseModel):
    """Response for fetching conversation history."""

    messages: list[HistoryMessage] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")
