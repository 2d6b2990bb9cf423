"""Which structured log fields get replaced with ``[REDACTED]``.

Matching is case-insensitive and by substring, so camelCase wire keys such as
``recipientName`` or ``contactEmail`` are caught by the same entries as their
snake_case counterparts.
"""

CREDENTIAL_KEYS: frozenset[str] = frozenset(
    {"password", "secret", "token", "authorization", "api_key", "cookie", "bearer"}
)

# Fields of the contact card payload
CONTACT_CARD_KEYS: frozenset[str] = frozenset(
    {"email", "phone", "address", "recipient"}
)

# The visitor's own words never go to the logs; lengths are fine
CONVERSATION_KEYS: frozenset[str] = frozenset(
    {"message_text", "prompt", "question_text"}
)

SENSITIVE_KEYS: frozenset[str] = (
    CREDENTIAL_KEYS | CONTACT_CARD_KEYS | CONVERSATION_KEYS
)


def is_sensitive_key(key: str) -> bool:
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)
