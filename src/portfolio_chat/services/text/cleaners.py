"""Cosmetic cleanup of answer text.

Runs on visible prose only, after directives have been extracted; data
payloads never pass through here.
"""

from __future__ import annotations

import re


_TRAILING_ARTIFACTS_RE = re.compile(r"[}\]]+\s*$")
_DANGLING_FORMAT_CLOSE_RE = re.compile(r"\[/format\]?", re.IGNORECASE)
_FORMAT_TAG_RE = re.compile(r"\[format:(?:text|table|contact|pdf)\]", re.IGNORECASE)

_BARE_GITHUB_LINK_RE = re.compile(r"(\s|^)github\.com/([^)\s]+)\)")
_GITHUB_NO_PROTOCOL_RE = re.compile(r"\[([^\]]+)\]\(github\.com/([^)]+)\)")
_NO_PROTOCOL_LINK_RE = re.compile(r"\[([^\]]+)\]\((?!https?://|mailto:|/|#)([^)\s]+)\)")
_EXTRA_CLOSERS_RE = re.compile(r"\[([^\]]+)\]\(([^)]+)\)[)}\]]+")


def _add_protocol(match: re.Match[str]) -> str:
    label, target = match.group(1), match.group(2)
    if "@" in target:
        return f"[{label}](mailto:{target})"
    return f"[{label}](https://{target})"


def fix_malformed_links(text: str) -> str:
    """Repair Markdown links the model commonly gets wrong."""
    if not text:
        return text

    cleaned = _BARE_GITHUB_LINK_RE.sub(r"\1[\2](https://github.com/\2)", text)
    cleaned = _GITHUB_NO_PROTOCOL_RE.sub(r"[\1](https://github.com/\2)", cleaned)
    cleaned = _NO_PROTOCOL_LINK_RE.sub(_add_protocol, cleaned)
    return _EXTRA_CLOSERS_RE.sub(r"[\1](\2)", cleaned)


def clean_response_text(text: str) -> str:
    """Strip leftover tag fragments and JSON debris, then fix links."""
    if not text:
        return text

    cleaned = _FORMAT_TAG_RE.sub("", text)
    cleaned = _DANGLING_FORMAT_CLOSE_RE.sub("", cleaned)
    cleaned = _TRAILING_ARTIFACTS_RE.sub("", cleaned)
    return fix_malformed_links(cleaned).strip()
