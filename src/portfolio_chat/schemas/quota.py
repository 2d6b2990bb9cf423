"""Daily message quota presentation."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

from portfolio_chat.core.config import get_settings


QuotaLevel = Literal["ok", "low", "exhausted"]

LOW_QUOTA_MESSAGE = "You're running low on messages for today."
EXHAUSTED_QUOTA_MESSAGE = "You've reached your daily limit. Please try again tomorrow."


class QuotaStatus(BaseModel):
    """Remaining-message count with the banner copy the UI shows for it.

    The backend owns the accounting; ``remaining`` is taken as given.
    """

    remaining: int
    total: int
    level: QuotaLevel
    percentage: float
    message: str | None = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_remaining(cls, remaining: int, total: int | None = None) -> QuotaStatus:
        settings = get_settings()
        total = total if total is not None else settings.DAILY_MESSAGE_LIMIT
        percentage = (remaining / total) * 100 if total > 0 else 0.0
        percentage = max(0.0, min(100.0, percentage))

        if remaining <= 0:
            return cls(
                remaining=remaining,
                total=total,
                level="exhausted",
                percentage=percentage,
                message=EXHAUSTED_QUOTA_MESSAGE,
            )
        if remaining <= settings.LOW_QUOTA_THRESHOLD:
            return cls(
                remaining=remaining,
                total=total,
                level="low",
                percentage=percentage,
                message=LOW_QUOTA_MESSAGE,
            )
        return cls(remaining=remaining, total=total, level="ok", percentage=percentage)
