"""Conversation turn runner: one question in, one settled answer out."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import aclosing

from pydantic import ValidationError

from portfolio_chat.core.config import Settings, get_settings
from portfolio_chat.core.error_handler import structured_logger, turn_context
from portfolio_chat.core.exceptions import (
    ChatTransportError,
    InvalidQuestionError,
    StreamAbortedError,
    StreamTimeoutError,
)
from portfolio_chat.schemas.chat_streaming import (
    MAX_QUESTION_LENGTH,
    ChatStreamRequest,
    ResponseStyle,
)
from portfolio_chat.schemas.messages import Message
from portfolio_chat.schemas.quota import QuotaStatus
from portfolio_chat.services.chat_client import ChatApiClient
from portfolio_chat.services.conversation import Conversation
from portfolio_chat.services.lifecycle import MessageLifecycle


logger = logging.getLogger(__name__)


class ChatSession:
    """Drives answer streams for one conversation.

    Only one turn runs at a time. ``stop()`` cancels the read and keeps the
    partial answer; any other interruption settles the answer as an error.
    """

    def __init__(
        self,
        client: ChatApiClient,
        conversation: Conversation | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.client = client
        self.conversation = conversation or Conversation()
        self.settings = settings or get_settings()
        self._task: asyncio.Task[Message] | None = None
        self._stop_requested = False

    @property
    def is_busy(self) -> bool:
        return self.conversation.is_busy

    async def send(
        self, text: str, style: ResponseStyle = ResponseStyle.NORMAL
    ) -> Message:
        """Ask a question and wait for the settled answer.

        Raises ``InvalidQuestionError`` for an empty or oversized question and
        ``TurnInProgressError`` if an answer is already streaming.
        """
        try:
            ChatStreamRequest(message=text, style=style)
        except ValidationError as exc:
            raise InvalidQuestionError(
                f"Questions must be 1 to {MAX_QUESTION_LENGTH} characters"
            ) from exc

        lifecycle = self.conversation.begin_turn(text)
        self._stop_requested = False
        with turn_context():
            # The task copies the context, so its log lines share the turn id
            self._task = asyncio.create_task(self._run_turn(lifecycle, text, style))
            try:
                return await self._task
            except asyncio.CancelledError:
                # Covers a task cancelled before its first step
                self._settle_cancelled(lifecycle)
                if self._stop_requested:
                    return lifecycle.message
                raise
            finally:
                self._task = None

    def stop(self) -> None:
        """Cancel the in-flight read, keeping what has been shown so far."""
        if self._task is not None and not self._task.done():
            logger.debug("Stop requested for in-flight turn")
            self._stop_requested = True
            self._task.cancel()

    def _settle_cancelled(self, lifecycle: MessageLifecycle) -> None:
        if self._stop_requested:
            lifecycle.stop()
        else:
            lifecycle.fail(StreamAbortedError("Turn cancelled"))

    async def _run_turn(
        self, lifecycle: MessageLifecycle, text: str, style: ResponseStyle
    ) -> Message:
        started = time.monotonic()
        structured_logger.info(
            "Turn started", style=style.value, question_length=len(text)
        )
        try:
            async with asyncio.timeout(self.settings.STREAM_TIMEOUT_SECONDS):
                events = self.client.stream_answer(text, style)
                async with aclosing(events):
                    async for event in events:
                        lifecycle.apply(event)
                        if lifecycle.is_settled:
                            break
        except asyncio.CancelledError:
            self._settle_cancelled(lifecycle)
            raise
        except TimeoutError:
            lifecycle.fail(StreamTimeoutError())
        except ChatTransportError as exc:
            lifecycle.fail(exc)
        except Exception as exc:
            structured_logger.exception(
                "Unexpected error during turn", error_type=type(exc).__name__
            )
            lifecycle.fail(exc)
        else:
            # End of body without a done event counts as completion
            lifecycle.complete()

        structured_logger.info(
            "Turn finished",
            state=lifecycle.state.value,
            elapsed_ms=round((time.monotonic() - started) * 1000),
        )
        return lifecycle.message

    async def load_history(self) -> tuple[Message, ...]:
        """Replace the local conversation with the stored one."""
        messages = await self.client.get_history()
        self.conversation.replace_history(messages)
        return self.conversation.messages

    async def clear_history(self) -> bool:
        cleared = await self.client.clear_history()
        if cleared:
            self.conversation.clear()
        return cleared

    async def quota(self) -> QuotaStatus:
        remaining = await self.client.get_remaining()
        return QuotaStatus.from_remaining(remaining)
