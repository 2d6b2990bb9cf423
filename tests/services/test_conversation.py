"""Tests for conversation snapshots and the single-turn guard."""

import pytest

from portfolio_chat.core.exceptions import TurnInProgressError
from portfolio_chat.schemas.chat_streaming import StreamEvent
from portfolio_chat.schemas.messages import Message
from portfolio_chat.services.conversation import Conversation


def test_begin_turn_adds_question_and_placeholder():
    conversation = Conversation()
    snapshots: list[tuple[Message, ...]] = []
    conversation.subscribe(snapshots.append)

    lifecycle = conversation.begin_turn("What do you build?")

    user, ai = conversation.messages
    assert user.sender == "user"
    assert user.text == "What do you build?"
    assert ai.id == lifecycle.message.id
    assert ai.is_streaming is True
    assert len(snapshots) == 2
    assert conversation.is_busy is True


def test_updates_replace_the_answer_in_place():
    conversation = Conversation()
    lifecycle = conversation.begin_turn("hi")

    lifecycle.apply(StreamEvent(payload="Hello"))
    lifecycle.apply(StreamEvent(payload=" there"))

    assert len(conversation.messages) == 2
    assert conversation.messages[-1].text == "Hello there"


def test_second_turn_is_rejected_while_streaming():
    conversation = Conversation()
    conversation.begin_turn("first")

    with pytest.raises(TurnInProgressError):
        conversation.begin_turn("second")


def test_new_turn_allowed_after_settle():
    conversation = Conversation()
    conversation.begin_turn("first").complete()

    assert conversation.is_busy is False
    conversation.begin_turn("second")
    assert len(conversation.messages) == 4


def test_history_cannot_be_replaced_mid_answer():
    conversation = Conversation()
    conversation.begin_turn("first")

    with pytest.raises(TurnInProgressError):
        conversation.replace_history([])


def test_snapshots_are_not_mutated_by_later_updates():
    conversation = Conversation()
    lifecycle = conversation.begin_turn("hi")
    before = conversation.messages

    lifecycle.apply(StreamEvent(payload="Hello"))

    assert before[-1].text == ""
    assert conversation.messages[-1].text == "Hello"


def test_unsubscribe_stops_notifications():
    conversation = Conversation()
    seen: list[tuple[Message, ...]] = []
    unsubscribe = conversation.subscribe(seen.append)
    unsubscribe()

    conversation.begin_turn("hi")
    conversation.active_lifecycle.complete()
    conversation.clear()

    assert seen == []
    assert conversation.messages == ()
