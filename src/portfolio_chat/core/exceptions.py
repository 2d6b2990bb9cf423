"""Error taxonomy for the chat client.

Transport errors end a conversation turn and carry a stable ``error_code``
for log tagging plus user-facing copy for the settled error message. Content
problems (malformed SSE records, unparseable data directives) never surface
as exceptions; they are recovered where they occur.
"""

from __future__ import annotations

from dataclasses import dataclass


class DomainError(Exception):
    """Base class for domain-specific errors."""

    pass


class TurnInProgressError(DomainError):
    """Raised when a message is submitted while another answer is streaming."""

    pass


class InvalidQuestionError(DomainError):
    """Raised when a question is empty or too long to send."""

    pass


class BackendResponseError(DomainError):
    """Raised when an auxiliary endpoint returns a payload we cannot use."""

    pass


GENERIC_ERROR_TEXT = (
    "Sorry, something went wrong while generating a response. Please try again."
)


@dataclass(slots=True)
class ChatTransportError(Exception):
    """Base class for failures that terminate a conversation turn."""

    message: str
    error_code: str
    user_message: str = GENERIC_ERROR_TEXT

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.error_code}: {self.message}"


class StreamTimeoutError(ChatTransportError):
    def __init__(self, message: str = "Answer stream timed out") -> None:
        super().__init__(
            message=message,
            error_code="timeout",
            user_message=(
                "The response took too long to arrive. Please try again in a moment."
            ),
        )


class ServiceUnavailableError(ChatTransportError):
    def __init__(self, message: str = "Chat service is unreachable") -> None:
        super().__init__(
            message=message,
            error_code="service_unavailable",
            user_message=(
                "The assistant is temporarily unavailable. "
                "It may be waking up, please try again shortly."
            ),
        )


class RateLimitedError(ChatTransportError):
    def __init__(self, message: str = "Daily message limit reached") -> None:
        super().__init__(
            message=message,
            error_code="rate_limited",
            user_message=(
                "You've reached your daily limit. Please try again tomorrow."
            ),
        )


class UnexpectedStatusError(ChatTransportError):
    def __init__(self, status_code: int, message: str | None = None) -> None:
        super().__init__(
            message=message or f"Unexpected HTTP status {status_code}",
            error_code="http_error",
        )
        self.status_code = status_code


class MissingBodyError(ChatTransportError):
    def __init__(self, message: str = "Response carried no event stream") -> None:
        super().__init__(message=message, error_code="missing_body")


class StreamAbortedError(ChatTransportError):
    def __init__(self, message: str = "Answer stream was aborted") -> None:
        super().__init__(
            message=message,
            error_code="aborted",
            user_message="The response was interrupted. Please try again.",
        )


def error_message_for(exc: BaseException) -> str:
    """Return the user-facing copy for a turn-ending failure."""
    if isinstance(exc, ChatTransportError):
        return exc.user_message
    return GENERIC_ERROR_TEXT
