"""
Portfolio Chat: terminal client

Streams answers from the portfolio chat backend and renders them in the
terminal, plus the housekeeping calls the web front end makes.

Usage:
    # Ask a question, streaming the answer as it arrives
    portfolio-chat ask "What projects have you worked on?" --style FORMAL

    # Wait for a cold backend before asking
    portfolio-chat ask "How can I contact you?" --wait

    # Stored conversation, daily allowance, reset, warm-up check
    portfolio-chat history
    portfolio-chat remaining
    portfolio-chat clear
    portfolio-chat health

Ctrl+C while an answer streams stops it and keeps what has arrived.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
from collections.abc import Sequence
from typing import Any, TextIO

from portfolio_chat.core.error_handler import setup_logging
from portfolio_chat.core.exceptions import (
    BackendResponseError,
    InvalidQuestionError,
    ChatTransportError,
    error_message_for,
)
from portfolio_chat.schemas.chat_streaming import ResponseStyle
from portfolio_chat.schemas.messages import Message
from portfolio_chat.schemas.quota import QuotaStatus
from portfolio_chat.services.chat_client import ChatApiClient
from portfolio_chat.services.chat_session import ChatSession
from portfolio_chat.services.text.spans import TextSpan, tokenize_spans


logger = logging.getLogger(__name__)

# (open, close) escape codes per span kind
ANSI_STYLES: dict[str, tuple[str, str]] = {
    "bold": ("\033[1m", "\033[22m"),
    "italic": ("\033[3m", "\033[23m"),
    "code": ("\033[36m", "\033[39m"),
    "link": ("\033[4m", "\033[24m"),
    "email": ("\033[4m", "\033[24m"),
    "url": ("\033[4m", "\033[24m"),
}


def _render_span(span: TextSpan, color: bool) -> str:
    text = span.text
    if span.kind != "normal" and color:
        opener, closer = ANSI_STYLES[span.kind]
        text = f"{opener}{text}{closer}"
    if span.kind == "link" and span.target:
        text = f"{text} ({span.target})"
    return text


def render_text(text: str, color: bool = False) -> str:
    """Turn inline Markdown into terminal text."""
    return "".join(_render_span(span, color) for span in tokenize_spans(text))


def render_data(message: Message) -> list[str]:
    """Lines describing the structured payload of a settled answer."""
    data: Any = message.data
    lines: list[str] = []
    if message.format == "contact" and isinstance(data, dict):
        lines.append(f"  {data.get('title', 'Contact')}")
        recipient = data.get("recipientName")
        if recipient:
            position = data.get("recipientPosition")
            lines.append(f"  {recipient}, {position}" if position else f"  {recipient}")
        for link in data.get("socialLinks") or []:
            if isinstance(link, dict):
                lines.append(f"  {link.get('platform', '?')}: {link.get('url', '')}")
    elif message.format != "text" and data is not None:
        lines.append(json.dumps(data, indent=2, ensure_ascii=False))
    if message.parse_error:
        lines.append(f"  (could not read attached data: {message.parse_error})")
    return lines


class StreamPrinter:
    """Conversation listener that echoes an answer while it streams.

    Deltas are written as plain text. Deduplication can rewrite text that was
    already shown, so the settled answer is reprinted whenever it no longer
    extends what is on screen.
    """

    def __init__(self, out: TextIO, color: bool = False) -> None:
        self.out = out
        self.color = color
        self._message_id: str | None = None
        self._shown = ""

    def __call__(self, messages: tuple[Message, ...]) -> None:
        if not messages:
            return
        message = messages[-1]
        if message.sender != "ai" or not message.is_streaming:
            return
        if message.id != self._message_id:
            self._message_id = message.id
            self._shown = ""
        text = message.text
        if text.startswith(self._shown) and len(text) > len(self._shown):
            self.out.write(text[len(self._shown) :])
            self.out.flush()
            self._shown = text

    def finish(self, message: Message) -> None:
        if message.is_error:
            if self._shown:
                self.out.write("\n")
            self.out.write(f"{message.text}\n")
            return
        if message.text != self._shown:
            if self._shown:
                self.out.write("\n\n")
            self.out.write(render_text(message.text, self.color))
        self.out.write("\n")
        for line in render_data(message):
            self.out.write(f"{line}\n")
        self.out.flush()


def _report_warmup(attempt: int, elapsed: float) -> None:
    logger.info("Backend warming up (attempt %d, %.0fs elapsed)", attempt, elapsed)


async def _ask(args: argparse.Namespace, client: ChatApiClient) -> int:
    if args.wait:
        await client.wait_for_backend(on_attempt=_report_warmup)

    session = ChatSession(client)
    printer = StreamPrinter(sys.stdout, color=args.color)
    session.conversation.subscribe(printer)

    loop = asyncio.get_running_loop()
    # Signal handlers are unavailable on some platforms (Windows)
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, session.stop)
    try:
        message = await session.send(args.question, ResponseStyle(args.style))
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)

    printer.finish(message)
    return 1 if message.is_error else 0


async def _history(args: argparse.Namespace, client: ChatApiClient) -> int:
    session = ChatSession(client)
    messages = await session.load_history()
    if not messages:
        print("No conversation yet.")
        return 0
    for message in messages:
        speaker = "You" if message.sender == "user" else "AI"
        print(f"{speaker}: {render_text(message.text, args.color)}")
        for line in render_data(message):
            print(line)
    return 0


async def _clear(args: argparse.Namespace, client: ChatApiClient) -> int:
    if await client.clear_history():
        print("Conversation cleared.")
        return 0
    print("Could not clear the conversation.")
    return 1


async def _remaining(args: argparse.Namespace, client: ChatApiClient) -> int:
    status = QuotaStatus.from_remaining(await client.get_remaining())
    print(f"{status.remaining}/{status.total} messages left today")
    if status.message:
        print(status.message)
    return 0


async def _health(args: argparse.Namespace, client: ChatApiClient) -> int:
    if await client.wait_for_backend(on_attempt=_report_warmup):
        print("Backend is ready.")
        return 0
    print("Backend did not become ready.")
    return 1


COMMANDS = {
    "ask": _ask,
    "history": _history,
    "clear": _clear,
    "remaining": _remaining,
    "health": _health,
}


async def _run(args: argparse.Namespace) -> int:
    async with ChatApiClient(args.api_url) as client:
        try:
            return await COMMANDS[args.command](args, client)
        except (ChatTransportError, BackendResponseError) as e:
            logger.error("Request failed: %s", e)
            print(error_message_for(e), file=sys.stderr)
            return 1
        except InvalidQuestionError as e:
            print(e, file=sys.stderr)
            return 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="portfolio-chat",
        description="Chat with the portfolio assistant from the terminal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            '  %(prog)s ask "What do you work on?" --style EXPLANATORY\n'
            "  %(prog)s remaining\n"
        ),
    )
    parser.add_argument(
        "--api-url",
        type=str,
        default=None,
        help="Backend base URL (overrides API_URL)",
    )
    parser.add_argument(
        "--color",
        action=argparse.BooleanOptionalAction,
        default=sys.stdout.isatty(),
        help="Render inline formatting with ANSI escapes",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    ask = subparsers.add_parser("ask", help="Ask a question and stream the answer")
    ask.add_argument("question", type=str, help="Question to ask")
    ask.add_argument(
        "--style",
        choices=[style.value for style in ResponseStyle],
        default=ResponseStyle.NORMAL.value,
        help="Answer style (default: NORMAL)",
    )
    ask.add_argument(
        "--wait",
        action="store_true",
        default=False,
        help="Poll the health endpoint until the backend is ready",
    )

    subparsers.add_parser("history", help="Show the stored conversation")
    subparsers.add_parser("clear", help="Delete the stored conversation")
    subparsers.add_parser("remaining", help="Show today's remaining messages")
    subparsers.add_parser("health", help="Wait for the backend to become ready")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    setup_logging()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
