"""Stand-in chat backend that replays canned answer streams (dev only).

Serves the same routes as the real backend so the client can be exercised
without a model behind it. Tests mount the app with ``httpx.ASGITransport``;
``python -m portfolio_chat.dev.replay_server`` runs it under uvicorn.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Sequence
from dataclasses import dataclass, field
from typing import Annotated, Any

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from portfolio_chat.core.config import get_settings
from portfolio_chat.schemas.chat_streaming import (
    ChatStreamRequest,
    MessageHistoryResponse,
    RemainingResponse,
    StreamEvent,
)
from portfolio_chat.schemas.messages import new_message_id, utc_timestamp
from portfolio_chat.services.message_processor import unescape_transport
from portfolio_chat.services.stream.framer import SseFramer


logger = logging.getLogger(__name__)

DONE_RECORD = StreamEvent(name="done", payload='{"done": true}').to_sse()

# Fragments are raw wire text; a record may be split across fragments.
GREETING_TRANSCRIPT: tuple[str, ...] = (
    ": keep-alive\n\n",
    "event: message\ndata: Hello! I'm the portfolio assistant. \n\n",
    "event: message\ndata: I can talk about projects, skills\\nand experience. \n\n",
    # Re-emitted by the model; the client drops it
    "event: message\ndata: I can talk about projects, skills\\nand experience. \n\n",
    "event: message\ndata: What would you like to ",
    "know?\n\n",
    DONE_RECORD,
)

CONTACT_TRANSCRIPT: tuple[str, ...] = (
    "event: message\ndata: [format:contact]You can reach me through the form. \n\n",
    ": keep-alive\n\n",
    "event: message\ndata: [data:{title:'Contact Form', "
    "recipientName:'Portfolio Owner', ",
    "socialLinks:[{platform:'GitHub', url:'https://github.com/portfolio-owner', "
    "icon:'github'}]}][/format]\n\n",
    DONE_RECORD,
)


@dataclass
class ReplayBackend:
    """Mutable state behind the replay routes.

    ``transcripts`` are consumed in order, one per question; when they run
    out, questions mentioning "contact" get the contact card and everything
    else gets the greeting. ``warmup_probes`` health checks answer 503 before
    the backend reports healthy.
    """

    transcripts: list[Sequence[str]] = field(default_factory=list)
    remaining: int = field(default_factory=lambda: get_settings().DAILY_MESSAGE_LIMIT)
    warmup_probes: int = 0
    fragment_delay: float = 0.0
    history: list[dict[str, Any]] = field(default_factory=list)
    requests: list[ChatStreamRequest] = field(default_factory=list)

    def next_transcript(self, message: str) -> Sequence[str]:
        if self.transcripts:
            return self.transcripts.pop(0)
        if "contact" in message.lower():
            return CONTACT_TRANSCRIPT
        return GREETING_TRANSCRIPT

    def record_exchange(self, question: str, fragments: Sequence[str]) -> None:
        framer = SseFramer()
        events = [event for fragment in fragments for event in framer.feed(fragment)]
        events.extend(framer.flush())
        answer = "".join(
            unescape_transport(event.payload)
            for event in events
            if event.name == "message"
        )
        for sender, content in (("user", question), ("ai", answer)):
            self.history.append(
                {
                    "id": new_message_id(),
                    "sender": sender,
                    "content": content,
                    "timestamp": utc_timestamp(),
                }
            )


def get_backend(request: Request) -> ReplayBackend:
    return request.app.state.backend


BackendDep = Annotated[ReplayBackend, Depends(get_backend)]

router = APIRouter()


@router.get("/health")
def health_check(backend: BackendDep) -> JSONResponse:
    """Report 503 while the simulated cold start lasts."""
    if backend.warmup_probes > 0:
        backend.warmup_probes -= 1
        return JSONResponse(status_code=503, content={"status": "starting"})
    return JSONResponse(content={"status": "healthy"})


@router.get("/remaining", response_model=RemainingResponse)
def get_remaining(backend: BackendDep) -> RemainingResponse:
    return RemainingResponse(remaining=max(backend.remaining, 0))


@router.get("/conversation/history", response_model=MessageHistoryResponse)
def get_history(backend: BackendDep) -> MessageHistoryResponse | JSONResponse:
    if not backend.history:
        return JSONResponse(
            status_code=404, content={"detail": "No conversation found"}
        )
    return MessageHistoryResponse.model_validate({"messages": backend.history})


@router.post("/conversation/clear")
def clear_history(backend: BackendDep) -> dict[str, bool]:
    backend.history.clear()
    return {"success": True}


@router.post("/chat/stream", response_class=StreamingResponse, response_model=None)
async def stream_chat(
    payload: ChatStreamRequest, backend: BackendDep
) -> StreamingResponse | JSONResponse:
    """Replay the next transcript as a ``text/event-stream`` body."""
    if backend.remaining <= 0:
        return JSONResponse(
            status_code=429, content={"detail": "Daily message limit reached"}
        )

    backend.remaining -= 1
    backend.requests.append(payload)
    fragments = backend.next_transcript(payload.message)
    backend.record_exchange(payload.message, fragments)
    logger.info(
        "Replaying %d fragments (style=%s)", len(fragments), payload.style.value
    )

    async def event_stream() -> AsyncGenerator[str, None]:
        for fragment in fragments:
            if backend.fragment_delay:
                await asyncio.sleep(backend.fragment_delay)
            yield fragment

    return StreamingResponse(event_stream(), media_type="text/event-stream")


def create_app(backend: ReplayBackend | None = None) -> FastAPI:
    app = FastAPI(title="Portfolio Chat Replay Backend", version="0.1.0")
    app.state.backend = backend or ReplayBackend()
    app.include_router(router, prefix="/api")
    return app


def main() -> None:
    """Serve the replay backend on the port the client expects by default."""
    logging.basicConfig(level=logging.INFO)
    app = create_app(ReplayBackend(fragment_delay=0.2))
    logger.info("Starting replay backend at http://127.0.0.1:5189")
    uvicorn.run(app, host="127.0.0.1", port=5189)


if __name__ == "__main__":
    main()
