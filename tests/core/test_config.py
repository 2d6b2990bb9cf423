"""Tests for environment-driven client settings."""

import pytest
from pydantic import ValidationError

from portfolio_chat.core.config import Settings, get_settings


def test_defaults_match_backend_contract():
    settings = get_settings()

    assert settings.ENVIRONMENT == "test"
    assert settings.API_URL == "http://localhost:5189"
    assert settings.STREAM_TIMEOUT_SECONDS == 30.0
    assert settings.AUX_TIMEOUT_SECONDS == 60.0
    assert settings.DEDUP_MIN_LENGTH == 50
    assert settings.DEDUP_MIN_SEGMENT_LENGTH == 5
    assert settings.DAILY_MESSAGE_LIMIT == 15


def test_settings_are_cached():
    assert get_settings() is get_settings()


def test_api_url_trailing_slash_stripped(monkeypatch):
    monkeypatch.setenv("API_URL", "https://chat.example.com/ ")
    assert get_settings().API_URL == "https://chat.example.com"


def test_contact_keywords_from_csv(monkeypatch):
    monkeypatch.setenv("CONTACT_KEYWORDS", "Reach me, Email: ,")
    settings = get_settings()
    assert settings.CONTACT_KEYWORDS == ["Reach me", "Email:"]


def test_contact_keywords_from_json(monkeypatch):
    monkeypatch.setenv("CONTACT_KEYWORDS", '["socialLinks", "Contact Form"]')
    assert get_settings().CONTACT_KEYWORDS == ["socialLinks", "Contact Form"]


def test_contact_keywords_include_contact_email():
    settings = Settings(CONTACT_EMAIL="me@example.org", CONTACT_KEYWORDS=["Email:"])
    assert settings.contact_keywords == ["Email:", "me@example.org"]


def test_contact_keywords_reject_malformed_json():
    with pytest.raises(ValidationError):
        Settings(CONTACT_KEYWORDS='["unterminated"')


def test_non_positive_timeout_rejected():
    with pytest.raises(ValidationError):
        Settings(STREAM_TIMEOUT_SECONDS=0)


def test_unknown_environment_rejected(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "staging")
    with pytest.raises(ValueError, match="ENVIRONMENT"):
        get_settings()
