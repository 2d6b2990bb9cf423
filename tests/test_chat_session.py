"""End-to-end conversation turns against the replay backend."""

import asyncio

import pytest

from portfolio_chat.core.config import Settings
from portfolio_chat.core.exceptions import (
    GENERIC_ERROR_TEXT,
    InvalidQuestionError,
    RateLimitedError,
    ServiceUnavailableError,
    StreamAbortedError,
    StreamTimeoutError,
    TurnInProgressError,
)
from portfolio_chat.schemas.chat_streaming import ResponseStyle, StreamEvent
from portfolio_chat.services.chat_session import ChatSession


class ScriptedClient:
    """Stand-in for ``ChatApiClient.stream_answer`` driven by a script.

    Each step is an event to yield, an exception to raise, or ``HANG`` to
    block until cancelled.
    """

    HANG = object()

    def __init__(self, *steps):
        self.steps = steps
        self.reached_hang = asyncio.Event()

    async def stream_answer(self, message, style=ResponseStyle.NORMAL):
        for step in self.steps:
            if step is self.HANG:
                self.reached_hang.set()
                await asyncio.Event().wait()
            elif isinstance(step, BaseException):
                raise step
            else:
                yield step


@pytest.fixture
def session(api_client) -> ChatSession:
    return ChatSession(api_client)


@pytest.mark.asyncio
async def test_greeting_turn_completes_with_deduplicated_text(session):
    message = await session.send("Hi there")

    assert message.is_streaming is False
    assert message.is_error is False
    assert message.text == (
        "Hello! I'm the portfolio assistant. I can talk about projects, skills\n"
        "and experience. What would you like to know?"
    )
    assert [m.sender for m in session.conversation.messages] == ["user", "ai"]
    assert session.is_busy is False


@pytest.mark.asyncio
async def test_contact_turn_renders_card(session, replay_backend):
    message = await session.send("How can I contact you?", ResponseStyle.FORMAL)

    assert message.format == "contact"
    assert message.text == "You can reach me through the form."
    assert message.data["socialLinks"][0]["platform"] == "GitHub"
    assert message.parse_error is None
    assert replay_backend.requests[-1].style == ResponseStyle.FORMAL


@pytest.mark.asyncio
async def test_every_streaming_snapshot_is_published(session):
    snapshots = []
    session.conversation.subscribe(lambda messages: snapshots.append(messages[-1]))

    final = await session.send("Hi there")

    streaming = [m for m in snapshots if m.sender == "ai" and m.is_streaming]
    assert len(streaming) >= 2
    assert snapshots[-1] == final
    assert len({m.id for m in streaming}) == 1


@pytest.mark.asyncio
async def test_rate_limited_turn_settles_as_error(session, replay_backend):
    replay_backend.remaining = 0

    message = await session.send("Hi there")

    assert message.is_error is True
    assert message.text == RateLimitedError().user_message


@pytest.mark.asyncio
async def test_quota_and_history_round_trip(session):
    await session.send("Hi there")

    quota = await session.quota()
    assert (quota.remaining, quota.level) == (14, "ok")

    messages = await session.load_history()
    assert [m.sender for m in messages] == ["user", "ai"]

    assert await session.clear_history() is True
    assert session.conversation.messages == ()


@pytest.mark.asyncio
async def test_stop_keeps_partial_answer():
    client = ScriptedClient(StreamEvent(payload="Partial answer"), ScriptedClient.HANG)
    session = ChatSession(client)

    turn = asyncio.create_task(session.send("hi"))
    await client.reached_hang.wait()
    session.stop()
    message = await turn

    assert message.text == "Partial answer"
    assert message.is_error is False
    assert message.is_streaming is False
    assert session.is_busy is False


@pytest.mark.asyncio
async def test_abort_settles_as_error():
    client = ScriptedClient(
        StreamEvent(payload="[format:table]Rows[data:{rows:[1]}]"),
        ScriptedClient.HANG,
    )
    session = ChatSession(client)

    turn = asyncio.create_task(session.send("hi"))
    await client.reached_hang.wait()
    turn.cancel()
    with pytest.raises(asyncio.CancelledError):
        await turn

    message = session.conversation.messages[-1]
    assert message.is_error is True
    assert message.is_streaming is False
    assert message.text == StreamAbortedError().user_message
    assert message.data is None


@pytest.mark.asyncio
async def test_timeout_settles_as_error():
    client = ScriptedClient(StreamEvent(payload="Thinking"), ScriptedClient.HANG)
    session = ChatSession(client, settings=Settings(STREAM_TIMEOUT_SECONDS=0.05))

    message = await session.send("hi")

    assert message.is_error is True
    assert message.text == StreamTimeoutError().user_message


@pytest.mark.asyncio
async def test_transport_error_mid_stream_discards_partial():
    client = ScriptedClient(StreamEvent(payload="Half"), ServiceUnavailableError())
    session = ChatSession(client)

    message = await session.send("hi")

    assert message.is_error is True
    assert message.text == ServiceUnavailableError().user_message


@pytest.mark.asyncio
async def test_end_of_body_without_done_completes():
    session = ChatSession(ScriptedClient(StreamEvent(payload="All done.")))

    message = await session.send("hi")

    assert message.is_error is False
    assert message.text == "All done."


@pytest.mark.asyncio
async def test_second_send_while_streaming_is_rejected():
    client = ScriptedClient(StreamEvent(payload="Working"), ScriptedClient.HANG)
    session = ChatSession(client)

    turn = asyncio.create_task(session.send("first"))
    await client.reached_hang.wait()

    with pytest.raises(TurnInProgressError):
        await session.send("second")

    session.stop()
    await turn
    assert [m.text for m in session.conversation.messages] == ["first", "Working"]


@pytest.mark.asyncio
@pytest.mark.parametrize("question", ["", "x" * 4001])
async def test_invalid_question_is_rejected_before_the_turn_starts(
    session, replay_backend, question
):
    with pytest.raises(InvalidQuestionError):
        await session.send(question)

    assert session.conversation.messages == ()
    assert session.is_busy is False
    assert replay_backend.requests == []

    message = await session.send("Hi there")
    assert message.is_error is False


@pytest.mark.asyncio
async def test_unexpected_stream_error_settles_as_error():
    client = ScriptedClient(StreamEvent(payload="Half"), RuntimeError("boom"))
    session = ChatSession(client)

    message = await session.send("hi")

    assert message.is_error is True
    assert message.is_streaming is False
    assert message.text == GENERIC_ERROR_TEXT
    assert session.is_busy is False


@pytest.mark.asyncio
async def test_stop_before_the_stream_starts_still_settles():
    client = ScriptedClient(StreamEvent(payload="Never shown"))
    session = ChatSession(client)

    turn = asyncio.create_task(session.send("hi"))
    # One step: send has scheduled the turn task, which has not run yet
    await asyncio.sleep(0)
    session.stop()
    message = await turn

    assert message.is_streaming is False
    assert message.is_error is False
    assert session.is_busy is False
    assert session.conversation.messages[-1] == message


@pytest.mark.asyncio
async def test_cancel_before_the_stream_starts_settles_as_error():
    session = ChatSession(ScriptedClient(StreamEvent(payload="Never shown")))

    turn = asyncio.create_task(session.send("hi"))
    await asyncio.sleep(0)
    turn.cancel()
    with pytest.raises(asyncio.CancelledError):
        await turn

    message = session.conversation.messages[-1]
    assert message.is_error is True
    assert message.text == StreamAbortedError().user_message
    assert session.is_busy is False
