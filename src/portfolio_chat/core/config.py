"""Client settings for the portfolio chat backend."""

import json
import os
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env"), env_file_encoding="utf-8")

    # App
    APP_NAME: str = "portfolio-chat"
    ENVIRONMENT: str = "development"  # development | production | test

    # Backend
    API_URL: str = "http://localhost:5189"

    # Timeouts (seconds)
    STREAM_TIMEOUT_SECONDS: float = 30.0
    AUX_TIMEOUT_SECONDS: float = 60.0
    HEALTH_PROBE_TIMEOUT_SECONDS: float = 5.0
    HEALTH_POLL_INTERVAL_SECONDS: float = 5.0
    HEALTH_MAX_ATTEMPTS: int = 12

    # Deduplication thresholds (characters)
    DEDUP_MIN_LENGTH: int = 50
    DEDUP_MIN_SEGMENT_LENGTH: int = 5

    # Daily quota display
    DAILY_MESSAGE_LIMIT: int = 15
    LOW_QUOTA_THRESHOLD: int = 5

    # Contact card defaults
    CONTACT_FORM_TITLE: str = "Contact Form"
    CONTACT_RECIPIENT_NAME: str = "Portfolio Owner"
    CONTACT_RECIPIENT_POSITION: str = "Software Engineer"
    CONTACT_EMAIL: str = "contact@example.com"
    CONTACT_EMAIL_SUBJECT: str = "Contact from Portfolio Website"
    CONTACT_LINKEDIN_URL: str = "https://linkedin.com/in/portfolio-owner"
    CONTACT_GITHUB_URL: str = "https://github.com/portfolio-owner"

    # Substrings that switch a streaming answer to the contact card.
    # Accept list or CSV/JSON string from env; normalized to list[str].
    CONTACT_KEYWORDS: list[str] | str = [
        "Email:",
        "[format:contact]",
        "Contact Form",
        "socialLinks",
    ]

    @field_validator("API_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator(
        "STREAM_TIMEOUT_SECONDS",
        "AUX_TIMEOUT_SECONDS",
        "HEALTH_PROBE_TIMEOUT_SECONDS",
        "HEALTH_POLL_INTERVAL_SECONDS",
    )
    @classmethod
    def positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @field_validator("CONTACT_KEYWORDS", mode="before")
    @classmethod
    def assemble_contact_keywords(cls, v: object) -> list[str]:
        """Allow list, CSV string, or JSON array string for contact keywords."""
        if isinstance(v, list):
            return [str(i).strip() for i in v if str(i).strip()]
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return []
            if s.startswith("["):
                try:
                    parsed = json.loads(s)
                except json.JSONDecodeError as e:
                    raise ValueError(
                        "CONTACT_KEYWORDS must be a CSV list or JSON array string"
                    ) from e
                if not isinstance(parsed, list):
                    raise ValueError("CONTACT_KEYWORDS JSON must be a list")
                return [str(i).strip() for i in parsed if str(i).strip()]
            return [i.strip() for i in s.split(",") if i.strip()]
        raise ValueError("Invalid CONTACT_KEYWORDS type; expected str or list[str]")

    @property
    def contact_keywords(self) -> list[str]:
        """Keywords plus the configured contact email address."""
        keywords = (
            self.CONTACT_KEYWORDS
            if isinstance(self.CONTACT_KEYWORDS, list)
            else self.assemble_contact_keywords(self.CONTACT_KEYWORDS)
        )
        if self.CONTACT_EMAIL and self.CONTACT_EMAIL not in keywords:
            return [*keywords, self.CONTACT_EMAIL]
        return list(keywords)


@lru_cache
def get_settings() -> Settings:
    env = os.getenv("ENVIRONMENT", "development").lower()
    if env not in {"development", "production", "test"}:
        raise ValueError("ENVIRONMENT must be 'development', 'production', or 'test'")

    if env == "production":
        env_file = ".env.prod"
    elif env == "development":
        env_file = ".env.dev"
    else:
        # test environment - no env file needed, use defaults
        env_file = ""

    # `_env_file` is a runtime-only kwarg of pydantic-settings.
    return Settings(_env_file=env_file or None)  # type: ignore[call-arg]
