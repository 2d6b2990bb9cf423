"""Best-effort parser for the near-JSON payloads of data directives.

The model that writes ``[data:...]`` directives routinely emits JavaScript
object literals, single quotes, trailing commas and truncated payloads. The
repair pipeline short-circuits on the first step that yields valid JSON:

1. direct parse
2. syntactic repairs (unquoted keys, single-quoted strings, unquoted or
   bracketed ``Email`` values, trailing commas, missing commas between
   adjacent objects)
3. closing unmatched braces/brackets, then a second parse
4. canonical contact payload when the text is recognisably a contact card
5. ``{"error": ...}`` placeholder

``repair_json`` never raises.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from portfolio_chat.services.text.contact import (
    default_contact_data,
    looks_like_contact_payload,
)


logger = logging.getLogger(__name__)

_UNQUOTED_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z0-9_$]+)\s*:")
_SINGLE_QUOTED_RE = re.compile(r"([:\[{,]\s*)'([^']*)'")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_MISSING_COMMA_RE = re.compile(r"}(\s*{)")
# "Email": [addr] and "Email": addr, written by the model for contact cards
_EMAIL_LIST_RE = re.compile(r'"Email":\s*\[([^\],]+)\]')
_EMAIL_BARE_RE = re.compile(
    r'"Email":\s*(?!null\b|true\b|false\b)([^\s",}\[{][^,}]*?)\s*(?=[,}])'
)

# Stands in for \' while single quotes are rewritten.
_ESCAPED_QUOTE_PLACEHOLDER = "\x00SQ\x00"

_CLOSERS = {"{": "}", "[": "]"}


@dataclass(frozen=True)
class RepairResult:
    """Outcome of a repair attempt.

    ``error`` is set when ``value`` is the ``{"error": ...}`` placeholder;
    ``fallback`` marks the canned contact card standing in for a lost payload.
    """

    value: Any
    error: str | None = None
    repaired: bool = False
    fallback: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


def _try_parse(text: str) -> tuple[bool, Any, str | None]:
    try:
        return True, json.loads(text), None
    except (json.JSONDecodeError, TypeError) as exc:
        return False, None, str(exc)


def _quote_single_quoted(match: re.Match[str]) -> str:
    prefix, body = match.group(1), match.group(2)
    return prefix + '"' + body.replace('"', '\\"') + '"'


def _quote_email(match: re.Match[str]) -> str:
    return '"Email": ' + json.dumps(match.group(1).strip().strip('"'))


def apply_syntax_repairs(text: str) -> str:
    """Rewrite common JavaScript-literal habits into JSON syntax."""
    cleaned = text.strip()
    cleaned = _UNQUOTED_KEY_RE.sub(r'\1"\2":', cleaned)

    cleaned = cleaned.replace("\\'", _ESCAPED_QUOTE_PLACEHOLDER)
    cleaned = _SINGLE_QUOTED_RE.sub(_quote_single_quoted, cleaned)
    cleaned = cleaned.replace(_ESCAPED_QUOTE_PLACEHOLDER, "'")

    cleaned = _EMAIL_LIST_RE.sub(_quote_email, cleaned)
    cleaned = _EMAIL_BARE_RE.sub(_quote_email, cleaned)

    cleaned = _TRAILING_COMMA_RE.sub(r"\1", cleaned)
    cleaned = _MISSING_COMMA_RE.sub(r"},\1", cleaned)
    return cleaned


def balance_brackets(text: str) -> str:
    """Append closers for unmatched ``{`` and ``[`` in nesting order.

    Counts every brace and bracket, including ones inside string literals.
    Surplus closers are left alone.
    """
    stack: list[str] = []
    for char in text:
        if char in _CLOSERS:
            stack.append(char)
        elif char in ("}", "]") and stack:
            stack.pop()
    return text + "".join(_CLOSERS[opener] for opener in reversed(stack))


def repair_json(raw: Any) -> RepairResult:
    """Parse ``raw`` as JSON, repairing it where possible."""
    if raw is None:
        return RepairResult(value={"error": "No data payload"}, error="No data payload")
    if not isinstance(raw, str):
        raw = str(raw)

    ok, value, parse_error = _try_parse(raw)
    if ok:
        return RepairResult(value=value)

    candidate = apply_syntax_repairs(raw)
    ok, value, _ = _try_parse(candidate)
    if ok:
        return RepairResult(value=value, repaired=True)

    candidate = balance_brackets(candidate)
    ok, value, parse_error = _try_parse(candidate)
    if ok:
        return RepairResult(value=value, repaired=True)

    if looks_like_contact_payload(raw):
        logger.info("Data payload unrepairable; using default contact card")
        return RepairResult(value=default_contact_data(), repaired=True, fallback=True)

    message = f"Could not parse JSON data: {parse_error}"
    logger.warning("Data payload unrepairable (%d chars)", len(raw))
    return RepairResult(value={"error": message}, error=message)
