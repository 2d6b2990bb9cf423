"""Turn-scoped structured logging for the chat client.

Every conversation turn gets its own correlation id, carried across awaits in
a ContextVar, so the log lines of one answer stream can be grepped together.
Keyword data passed to ``structured_logger`` is redacted by key name and long
strings are clipped; message text itself is never meant to reach the logs.
"""

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

from pythonjsonlogger.jsonlogger import JsonFormatter

from portfolio_chat.core.config import get_settings
from portfolio_chat.core.security_config import is_sensitive_key


_turn_id_var: ContextVar[str | None] = ContextVar("turn_id", default=None)

MAX_LOGGED_VALUE_LENGTH = 200

logger = logging.getLogger(__name__)


def get_correlation_id() -> str:
    """Return the current turn id, creating one if none is set."""
    turn_id = _turn_id_var.get()
    if not turn_id:
        turn_id = uuid.uuid4().hex[:12]
        _turn_id_var.set(turn_id)
    return turn_id


def set_correlation_id(correlation_id: str | None) -> None:
    _turn_id_var.set(correlation_id)


@contextmanager
def turn_context(turn_id: str | None = None) -> Iterator[str]:
    """Bind a fresh correlation id for the duration of one turn."""
    token = _turn_id_var.set(turn_id or uuid.uuid4().hex[:12])
    try:
        yield get_correlation_id()
    finally:
        _turn_id_var.reset(token)


class StructuredLogger:
    """Logger facade that tags lines with the turn id and scrubs extra data."""

    def __init__(self, logger_name: str):
        self.logger = logging.getLogger(logger_name)

    def _emit(
        self,
        level: int,
        message: str,
        fields: dict[str, Any],
        exc_info: bool = False,
    ) -> None:
        if not self.logger.isEnabledFor(level):
            return
        turn_id = get_correlation_id()
        clean = self._sanitize_data(fields)

        if get_settings().ENVIRONMENT == "production":
            # JsonFormatter lifts `extra` keys into the emitted object
            self.logger.log(
                level,
                message,
                extra={"correlation_id": turn_id, **clean},
                exc_info=exc_info,
            )
            return

        rendered = "".join(f" {key}={value}" for key, value in clean.items())
        self.logger.log(
            level,
            f"[{turn_id}] {message}{rendered}",
            extra={"structured_data": {"correlation_id": turn_id, **clean}},
            exc_info=exc_info,
        )

    def _sanitize_data(self, data: dict[str, Any]) -> dict[str, Any]:
        """Redact sensitive keys, recursing into nested containers."""
        if not isinstance(data, dict):
            return {}
        return {
            key: (
                "[REDACTED]" if is_sensitive_key(key) else self._sanitize_value(value)
            )
            for key, value in data.items()
        }

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, dict):
            return self._sanitize_data(value)
        if isinstance(value, list | tuple):
            return [self._sanitize_value(item) for item in value]
        if isinstance(value, str) and len(value) > MAX_LOGGED_VALUE_LENGTH:
            return value[:MAX_LOGGED_VALUE_LENGTH] + "..."
        return value

    def debug(self, message: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._emit(logging.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._emit(logging.WARNING, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._emit(logging.ERROR, message, fields)

    def exception(self, message: str, **fields: Any) -> None:
        """Log at error level with the active traceback attached."""
        self._emit(logging.ERROR, message, fields, exc_info=True)


structured_logger = StructuredLogger("portfolio_chat")


def setup_logging() -> None:
    """Attach one stderr handler to the root logger; later calls are no-ops.

    stdout is left to the CLI's rendered answers.
    """
    settings = get_settings()
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    level = logging.DEBUG if settings.ENVIRONMENT == "development" else logging.INFO
    formatter: logging.Formatter
    if settings.ENVIRONMENT == "production":
        formatter = JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
        )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    # httpx logs every request at INFO
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
