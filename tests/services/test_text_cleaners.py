"""Tests for answer-text cleanup, contact detection and display spans."""

import pytest

from portfolio_chat.services.text.cleaners import (
    clean_response_text,
    fix_malformed_links,
)
from portfolio_chat.services.text.contact import (
    default_contact_data,
    find_contact_signal,
    looks_like_contact_payload,
)
from portfolio_chat.services.text.spans import tokenize_spans


class TestCleaners:
    def test_bare_github_link_becomes_markdown(self):
        assert fix_malformed_links("See github.com/me/repo) for code") == (
            "See [me/repo](https://github.com/me/repo) for code"
        )

    def test_github_link_without_protocol(self):
        assert fix_malformed_links("[repo](github.com/me/repo)") == (
            "[repo](https://github.com/me/repo)"
        )

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("[site](example.com)", "[site](https://example.com)"),
            ("[mail](me@example.com)", "[mail](mailto:me@example.com)"),
            ("[ok](https://a.io)", "[ok](https://a.io)"),
        ],
    )
    def test_missing_protocol(self, raw, expected):
        assert fix_malformed_links(raw) == expected

    def test_extra_closers_are_removed(self):
        assert fix_malformed_links("[x](https://a.io))") == "[x](https://a.io)"

    def test_trailing_json_artifacts_and_tags_are_stripped(self):
        assert clean_response_text("Here you go.[/format]}") == "Here you go."
        assert clean_response_text("[format:text]Hi there ]") == "Hi there"

    def test_empty_text(self):
        assert clean_response_text("") == ""


class TestContactDetection:
    def test_keyword_found_in_any_text(self):
        assert find_contact_signal("nothing here", "Email: me@x.io") == "Email:"
        assert find_contact_signal("nothing here", "") is None

    def test_configured_email_is_a_signal(self):
        assert find_contact_signal("write to contact@example.com") == (
            "contact@example.com"
        )

    def test_custom_keywords_from_env(self, monkeypatch):
        monkeypatch.setenv("CONTACT_KEYWORDS", "Reach me")
        assert find_contact_signal("Reach me any time") == "Reach me"
        assert find_contact_signal("Email: a@b.io") is None

    def test_payload_markers(self):
        assert looks_like_contact_payload("{socialLinks: [")
        assert looks_like_contact_payload("Email: a@b.io")
        assert not looks_like_contact_payload('{"Email": "a@b.io"}')
        assert not looks_like_contact_payload("{rows: [")

    def test_default_card_is_fresh_each_call(self):
        card = default_contact_data()
        card["socialLinks"].clear()

        assert len(default_contact_data()["socialLinks"]) == 3


class TestSpans:
    def test_spans_cover_input_exactly(self):
        text = "Use **bold** and *it* with `code` at [site](https://x.io)."
        spans = tokenize_spans(text)

        assert "".join(span.source for span in spans) == text
        assert [span.kind for span in spans] == [
            "normal",
            "bold",
            "normal",
            "italic",
            "normal",
            "code",
            "normal",
            "link",
            "normal",
        ]

    def test_link_target(self):
        (span,) = tokenize_spans("[site](https://x.io)")
        assert (span.kind, span.text, span.target) == ("link", "site", "https://x.io")

    def test_email_and_url(self):
        spans = tokenize_spans("mail me@x.io or visit https://x.io now")
        kinds = {span.kind: span for span in spans}

        assert kinds["email"].target == "mailto:me@x.io"
        assert kinds["url"].text == "https://x.io"

    def test_nearest_match_wins(self):
        spans = tokenize_spans("`**not bold**`")
        assert [span.kind for span in spans] == ["code"]

    def test_empty_input(self):
        assert tokenize_spans("") == []
