"""Conversation history as a sequence of immutable snapshots."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from portfolio_chat.core.exceptions import TurnInProgressError
from portfolio_chat.schemas.messages import Message
from portfolio_chat.services.lifecycle import MessageLifecycle
from portfolio_chat.services.text.dedup import Deduplicator


Listener = Callable[[tuple[Message, ...]], None]


class Conversation:
    """Ordered messages of one chat plus the single in-flight answer.

    Readers get tuples; every change swaps in a new tuple and notifies the
    listeners with it.
    """

    def __init__(self, messages: Iterable[Message] = ()) -> None:
        self._messages: tuple[Message, ...] = tuple(messages)
        self._listeners: list[Listener] = []
        self._active: MessageLifecycle | None = None

    @property
    def messages(self) -> tuple[Message, ...]:
        return self._messages

    @property
    def active_lifecycle(self) -> MessageLifecycle | None:
        if self._active is not None and self._active.is_settled:
            self._active = None
        return self._active

    @property
    def is_busy(self) -> bool:
        return self.active_lifecycle is not None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_messages(self, messages: tuple[Message, ...]) -> None:
        self._messages = messages
        for listener in list(self._listeners):
            listener(messages)

    def _upsert(self, message: Message) -> None:
        for index, existing in enumerate(self._messages):
            if existing.id == message.id:
                self._set_messages(
                    self._messages[:index] + (message,) + self._messages[index + 1 :]
                )
                return
        self._set_messages((*self._messages, message))

    def begin_turn(
        self, text: str, *, deduplicator: Deduplicator | None = None
    ) -> MessageLifecycle:
        """Record the user's message and open the AI answer placeholder."""
        if self.is_busy:
            raise TurnInProgressError("An answer is already streaming")

        self._upsert(Message(sender="user", content=text))
        lifecycle = MessageLifecycle(publish=self._upsert, deduplicator=deduplicator)
        self._active = lifecycle
        lifecycle.start()
        return lifecycle

    def replace_history(self, messages: Iterable[Message]) -> None:
        """Swap in a stored history; not allowed mid-answer."""
        if self.is_busy:
            raise TurnInProgressError("Cannot replace history while streaming")
        self._set_messages(tuple(messages))

    def clear(self) -> None:
        self.replace_history(())
