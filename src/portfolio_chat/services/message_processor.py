"""Turn raw answer text (or stored content of any shape) into structured content."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from portfolio_chat.schemas.chat_streaming import HistoryMessage
from portfolio_chat.schemas.messages import (
    CONTENT_FORMATS,
    ContentFormat,
    Message,
    StructuredContent,
    new_message_id,
    utc_timestamp,
)
from portfolio_chat.services.text.cleaners import clean_response_text
from portfolio_chat.services.text.contact import default_contact_data
from portfolio_chat.services.text.directives import extract_directives
from portfolio_chat.services.text.json_repair import repair_json


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessedContent:
    content: StructuredContent
    parse_error: str | None = None


def unescape_transport(payload: str) -> str:
    """Undo the ``\\n``/``\\r`` escaping applied to stream payloads."""
    return payload.replace("\\n", "\n").replace("\\r", "\r")


def build_structured_content(
    text: str,
    *,
    forced_format: ContentFormat | None = None,
) -> ProcessedContent:
    """Extract directives from ``text`` and parse any data payload.

    ``forced_format`` overrides whatever format tag the text carries; the
    lifecycle uses it once the contact latch has fired.
    """
    parts = extract_directives(text)
    fmt: ContentFormat = forced_format or parts.format

    data: Any = None
    parse_error: str | None = None
    if parts.raw_data is not None:
        result = repair_json(parts.raw_data)
        data = result.value
        parse_error = result.error

    if forced_format == "contact" and (parse_error or not isinstance(data, dict)):
        data = default_contact_data()
        parse_error = None

    return ProcessedContent(
        content=StructuredContent(text=parts.text, format=fmt, data=data),
        parse_error=parse_error,
    )


def settle_content(processed: ProcessedContent) -> ProcessedContent:
    """Fill the data slot of a non-text message that never received one."""
    content = processed.content
    if content.format == "text" or content.data is not None:
        return processed
    if content.format == "contact":
        return ProcessedContent(
            content=content.model_copy(update={"data": default_contact_data()}),
            parse_error=processed.parse_error,
        )
    message = f"No data provided for {content.format} content"
    return ProcessedContent(
        content=content.model_copy(update={"data": {"error": message}}),
        parse_error=processed.parse_error or message,
    )


def process_completed_response(text: str) -> ProcessedContent:
    """Full treatment for a finished answer loaded from storage."""
    processed = settle_content(build_structured_content(text))
    cleaned = clean_response_text(processed.content.text)
    return ProcessedContent(
        content=processed.content.model_copy(update={"text": cleaned}),
        parse_error=processed.parse_error,
    )


def _format_or_text(value: Any) -> ContentFormat:
    if isinstance(value, str) and value.lower() in CONTENT_FORMATS:
        return value.lower()  # type: ignore[return-value]
    return "text"


def _process_mapping(value: dict[str, Any]) -> ProcessedContent:
    text = value.get("text")
    if text is None:
        logger.warning("Unexpected message content shape: keys=%s", sorted(value))
        return ProcessedContent(
            content=StructuredContent(
                text="Message format error: " + json.dumps(value, default=str)
            )
        )

    text = text if isinstance(text, str) else str(text)
    if "format" in value:
        data = value.get("data")
        content = StructuredContent(
            text=text, format=_format_or_text(value["format"]), data=data
        )
        if data is None:
            # Stored text may still carry its data directive
            extracted = build_structured_content(text)
            if extracted.content.data is not None:
                content = content.model_copy(
                    update={
                        "text": extracted.content.text,
                        "data": extracted.content.data,
                    }
                )
                return ProcessedContent(
                    content=content, parse_error=extracted.parse_error
                )
        return ProcessedContent(content=content)

    extracted = build_structured_content(text)
    if extracted.content.data is None and value.get("data") is not None:
        return ProcessedContent(
            content=extracted.content.model_copy(update={"data": value["data"]})
        )
    return extracted


def process_message(value: Any) -> ProcessedContent:
    """Coerce content of any shape into structured content. Never raises."""
    try:
        if isinstance(value, StructuredContent):
            return ProcessedContent(content=value)
        if isinstance(value, str):
            return build_structured_content(value)
        if isinstance(value, dict):
            return _process_mapping(value)
        return ProcessedContent(
            content=StructuredContent(text="" if value is None else str(value))
        )
    except (ValidationError, TypeError, ValueError) as exc:
        logger.warning("Failed to process message content: %s", type(exc).__name__)
        return ProcessedContent(
            content=StructuredContent(
                text=value if isinstance(value, str) else "Error processing message",
                data={"error": str(exc)},
            ),
            parse_error=str(exc),
        )


def _normalize_timestamp(raw: str | None) -> str:
    if not raw:
        return utc_timestamp()
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return utc_timestamp()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.isoformat()


def normalize_history_message(item: HistoryMessage) -> Message:
    """Convert a stored message into a settled ``Message``."""
    message_id = str(item.id) if item.id is not None else new_message_id()
    timestamp = _normalize_timestamp(item.timestamp)

    if item.sender.lower() == "user":
        content = item.content
        if isinstance(content, dict) and "text" in content:
            content = content["text"]
        return Message(
            id=message_id,
            sender="user",
            content="" if content is None else str(content),
            timestamp=timestamp,
        )

    if isinstance(item.content, str):
        processed = process_completed_response(item.content)
    else:
        processed = settle_content(process_message(item.content))
    return Message(
        id=message_id,
        sender="ai",
        content=processed.content,
        timestamp=timestamp,
        parse_error=processed.parse_error,
    )
