"""Streaming client for the portfolio chat backend.

Common entry points are re-exported here so callers can write
``from portfolio_chat import ChatSession``. The `F401` noqa suppresses
unused-import warnings for the explicit re-exports.
"""

from .schemas.chat_streaming import ResponseStyle  # noqa: F401
from .schemas.messages import Message, StructuredContent  # noqa: F401
from .services.chat_client import ChatApiClient  # noqa: F401
from .services.chat_session import ChatSession  # noqa: F401
from .services.conversation import Conversation  # noqa: F401
