"""Tests for the terminal client."""

import io
from unittest.mock import patch

import httpx
import pytest

from portfolio_chat.cli import StreamPrinter, main, render_data, render_text
from portfolio_chat.dev.replay_server import ReplayBackend, create_app
from portfolio_chat.schemas.messages import Message, StructuredContent
from portfolio_chat.services.chat_client import ChatApiClient


@pytest.fixture
def backend() -> ReplayBackend:
    return ReplayBackend()


@pytest.fixture
def replay_cli(backend):
    """Point the CLI at an in-process replay backend."""

    def build(base_url=None):
        transport = httpx.ASGITransport(app=create_app(backend))
        return ChatApiClient("http://testserver", transport=transport)

    with patch("portfolio_chat.cli.ChatApiClient", side_effect=build):
        yield


def test_render_text_plain_and_color():
    assert render_text("**Hi** [site](https://x.io)") == "Hi site (https://x.io)"
    assert render_text("**Hi**", color=True) == "\033[1mHi\033[22m"


def test_render_contact_card():
    message = Message(
        sender="ai",
        content=StructuredContent(
            text="Reach out",
            format="contact",
            data={
                "title": "Contact Form",
                "recipientName": "Sam",
                "recipientPosition": "Engineer",
                "socialLinks": [{"platform": "GitHub", "url": "https://g.io/sam"}],
            },
        ),
    )

    assert render_data(message) == [
        "  Contact Form",
        "  Sam, Engineer",
        "  GitHub: https://g.io/sam",
    ]


def test_stream_printer_writes_deltas_then_reprints_rewrites():
    out = io.StringIO()
    printer = StreamPrinter(out)

    def streaming(text):
        return Message(
            id="m1",
            sender="ai",
            content=StructuredContent(text=text),
            is_streaming=True,
        )

    printer((streaming("Hello"),))
    printer((streaming("Hello world"),))
    printer((streaming("Hello worl[data:"),))
    printer.finish(Message(id="m1", sender="ai", content=StructuredContent(text="Bye")))

    assert out.getvalue() == "Hello world\n\nBye\n"


def test_remaining_command(replay_cli, backend, capsys):
    backend.remaining = 3

    assert main(["--no-color", "remaining"]) == 0

    out = capsys.readouterr().out
    assert "3/15 messages left today" in out
    assert "running low" in out


def test_ask_command_streams_answer(replay_cli, capsys):
    assert main(["--no-color", "ask", "Hi there", "--style", "MINIMALIST"]) == 0

    out = capsys.readouterr().out
    assert "Hello! I'm the portfolio assistant." in out
    assert out.rstrip().endswith("What would you like to know?")


def test_ask_command_reports_rate_limit(replay_cli, backend, capsys):
    backend.remaining = 0

    assert main(["--no-color", "ask", "Hi there"]) == 1
    assert "daily limit" in capsys.readouterr().out


def test_history_command_without_conversation(replay_cli, capsys):
    assert main(["--no-color", "history"]) == 0
    assert "No conversation yet." in capsys.readouterr().out


def test_ask_command_rejects_empty_question(replay_cli, backend, capsys):
    assert main(["--no-color", "ask", ""]) == 2

    assert "1 to 4000 characters" in capsys.readouterr().err
    assert backend.requests == []
