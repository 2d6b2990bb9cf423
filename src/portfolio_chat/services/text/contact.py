"""Contact card defaults and detection.

Detection is a substring heuristic over text produced by our own backend. It
is not a structural signal and must not be used on untrusted input to make
security decisions.
"""

from __future__ import annotations

from typing import Any

from portfolio_chat.core.config import get_settings


# Markers that identify a (possibly mangled) contact payload inside a data
# directive, "Email:" being a card written as prose. Checked only after JSON
# repair has failed.
CONTACT_PAYLOAD_MARKERS: tuple[str, ...] = ("socialLinks", "Contact Form", "Email:")


def default_contact_data() -> dict[str, Any]:
    """Canonical contact card payload, built fresh on every call."""
    settings = get_settings()
    return {
        "title": settings.CONTACT_FORM_TITLE,
        "recipientName": settings.CONTACT_RECIPIENT_NAME,
        "recipientPosition": settings.CONTACT_RECIPIENT_POSITION,
        "emailSubject": settings.CONTACT_EMAIL_SUBJECT,
        "socialLinks": [
            {
                "platform": "LinkedIn",
                "url": settings.CONTACT_LINKEDIN_URL,
                "icon": "linkedin",
            },
            {
                "platform": "GitHub",
                "url": settings.CONTACT_GITHUB_URL,
                "icon": "github",
            },
            {
                "platform": "Email",
                "url": settings.CONTACT_EMAIL,
                "icon": "mail",
            },
        ],
    }


def looks_like_contact_payload(raw: str) -> bool:
    return any(marker in raw for marker in CONTACT_PAYLOAD_MARKERS)


def find_contact_signal(*texts: str) -> str | None:
    """Return the first contact keyword found in any of ``texts``."""
    keywords = get_settings().contact_keywords
    for text in texts:
        if not text:
            continue
        for keyword in keywords:
            if keyword in text:
                return keyword
    return None
