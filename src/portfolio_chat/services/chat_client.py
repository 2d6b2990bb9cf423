"""HTTP client for the portfolio chat backend."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from enum import StrEnum
from types import TracebackType

import httpx
from pydantic import ValidationError

from portfolio_chat.core.config import Settings, get_settings
from portfolio_chat.core.exceptions import (
    BackendResponseError,
    ChatTransportError,
    MissingBodyError,
    RateLimitedError,
    ServiceUnavailableError,
    StreamAbortedError,
    StreamTimeoutError,
    UnexpectedStatusError,
)
from portfolio_chat.schemas.chat_streaming import (
    ChatStreamRequest,
    MessageHistoryResponse,
    RemainingResponse,
    ResponseStyle,
    StreamEvent,
)
from portfolio_chat.schemas.messages import Message
from portfolio_chat.services.message_processor import normalize_history_message
from portfolio_chat.services.stream.framer import iter_sse_events


logger = logging.getLogger(__name__)

STREAM_PATH = "/api/chat/stream"
REMAINING_PATH = "/api/remaining"
HISTORY_PATH = "/api/conversation/history"
CLEAR_PATH = "/api/conversation/clear"
HEALTH_PATH = "/api/health"

EVENT_STREAM_TYPE = "text/event-stream"
UNAVAILABLE_STATUSES = frozenset({502, 503, 504})


class HealthProbe(StrEnum):
    HEALTHY = "healthy"
    WARMING = "warming"  # reachable but not ready, or probe timed out
    UNREACHABLE = "unreachable"  # connection could not be made at all


def raise_for_status(response: httpx.Response) -> None:
    """Map a non-2xx response to the transport error taxonomy."""
    if response.is_success:
        return
    status = response.status_code
    if status == 429:
        raise RateLimitedError()
    if status in UNAVAILABLE_STATUSES:
        raise ServiceUnavailableError(f"Backend returned {status}")
    raise UnexpectedStatusError(status)


def translate_http_error(exc: httpx.HTTPError) -> ChatTransportError:
    """Map an httpx failure to the transport error taxonomy."""
    if isinstance(exc, httpx.TimeoutException):
        return StreamTimeoutError(f"Request timed out: {type(exc).__name__}")
    if isinstance(exc, httpx.ConnectError):
        return ServiceUnavailableError(f"Connection failed: {type(exc).__name__}")
    return StreamAbortedError(f"Transport failure: {type(exc).__name__}")


class ChatApiClient:
    """Async client for the answer stream and the auxiliary endpoints.

    Pass ``transport`` to route requests somewhere other than the network
    (``httpx.ASGITransport`` for the replay server, ``httpx.MockTransport``
    in tests).
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._client = httpx.AsyncClient(
            base_url=base_url or self.settings.API_URL,
            transport=transport,
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(self.settings.AUX_TIMEOUT_SECONDS),
        )

    async def __aenter__(self) -> ChatApiClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def stream_answer(
        self, message: str, style: ResponseStyle = ResponseStyle.NORMAL
    ) -> AsyncGenerator[StreamEvent, None]:
        """POST the question and yield framed events as they arrive.

        Raises ``ChatTransportError`` subclasses for transport failures only;
        malformed records are skipped by the framer.
        """
        request = ChatStreamRequest(message=message, style=style)
        try:
            async with self._client.stream(
                "POST",
                STREAM_PATH,
                json=request.model_dump(mode="json"),
                headers={"Accept": EVENT_STREAM_TYPE},
                timeout=httpx.Timeout(self.settings.STREAM_TIMEOUT_SECONDS),
            ) as response:
                raise_for_status(response)
                content_type = response.headers.get("content-type", "")
                if EVENT_STREAM_TYPE not in content_type:
                    raise MissingBodyError(
                        f"Expected {EVENT_STREAM_TYPE}, got '{content_type or 'none'}'"
                    )
                async for event in iter_sse_events(response.aiter_bytes()):
                    yield event
        except httpx.HTTPError as exc:
            raise translate_http_error(exc) from exc

    async def _get_json(self, path: str) -> object:
        try:
            response = await self._client.get(path)
        except httpx.HTTPError as exc:
            raise translate_http_error(exc) from exc
        raise_for_status(response)
        try:
            return response.json()
        except ValueError as exc:
            raise BackendResponseError(f"{path} returned invalid JSON") from exc

    async def get_remaining(self) -> int:
        """Messages left today, as reported by the backend."""
        payload = await self._get_json(REMAINING_PATH)
        try:
            return RemainingResponse.model_validate(payload).remaining
        except ValidationError as exc:
            raise BackendResponseError("Unexpected remaining-count payload") from exc

    async def get_history(self) -> list[Message]:
        """Stored conversation, normalized into settled messages.

        A 404 means the visitor has no history yet.
        """
        try:
            payload = await self._get_json(HISTORY_PATH)
        except UnexpectedStatusError as exc:
            if exc.status_code == 404:
                return []
            raise
        try:
            history = MessageHistoryResponse.model_validate(payload)
        except ValidationError as exc:
            raise BackendResponseError("Unexpected history payload") from exc
        return [normalize_history_message(item) for item in history.messages]

    async def clear_history(self) -> bool:
        try:
            response = await self._client.post(CLEAR_PATH)
        except httpx.HTTPError as exc:
            logger.warning("Clearing history failed: %s", type(exc).__name__)
            return False
        if not response.is_success:
            logger.warning(
                "Clearing history failed with status %d", response.status_code
            )
            return False
        return True

    async def probe_health(self) -> HealthProbe:
        try:
            response = await self._client.get(
                HEALTH_PATH,
                timeout=httpx.Timeout(self.settings.HEALTH_PROBE_TIMEOUT_SECONDS),
            )
        except httpx.TimeoutException:
            return HealthProbe.WARMING
        except httpx.TransportError as exc:
            logger.info("Health probe could not connect: %s", type(exc).__name__)
            return HealthProbe.UNREACHABLE
        return HealthProbe.HEALTHY if response.is_success else HealthProbe.WARMING

    async def wait_for_backend(
        self,
        on_attempt: Callable[[int, float], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> bool:
        """Poll the health endpoint while a cold backend starts.

        Returns True once healthy. Returns False when attempts run out or the
        host cannot be reached at all; callers proceed either way.
        """
        interval = self.settings.HEALTH_POLL_INTERVAL_SECONDS
        max_attempts = self.settings.HEALTH_MAX_ATTEMPTS
        for attempt in range(1, max_attempts + 1):
            probe = await self.probe_health()
            if probe == HealthProbe.HEALTHY:
                return True
            if probe == HealthProbe.UNREACHABLE:
                return False
            if on_attempt is not None:
                on_attempt(attempt, attempt * interval)
            if attempt < max_attempts:
                await sleep(interval)
        logger.warning("Backend still warming after %d attempts", max_attempts)
        return False
