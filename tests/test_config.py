"""Tests for mailpoll.config."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from mailpoll.config import (
    DeliveryConfig,
    ImapConfig,
    LoggingConfig,
    PollerConfig,
    RetryConfig,
)


class TestDeliveryConfig:
    def test_defaults(self):
        cfg = DeliveryConfig()
        assert cfg.mailbox == "INBOX"
        assert cfg.pattern == ""
        assert cfg.outbox == ""
        assert cfg.errbox == ""
        assert cfg.short_sleep_seconds == 1.0
        assert cfg.long_sleep_seconds == 300.0
        assert cfg.digest_algorithm == "sha1"
        assert cfg.include_seen is False

    def test_empty_mailbox_falls_back_to_inbox(self):
        assert DeliveryConfig(mailbox="").mailbox == "INBOX"

    @pytest.mark.parametrize(
        ("outbox", "errbox", "expected"),
        [
            ("", "", False),
            ("Processed", "", False),
            ("", "Failed", False),
            ("Processed", "Failed", True),
        ],
    )
    def test_include_seen_needs_both_boxes(self, outbox: str, errbox: str, expected: bool):
        assert DeliveryConfig(outbox=outbox, errbox=errbox).include_seen is expected

    def test_digest_algorithm_normalized(self):
        assert DeliveryConfig(digest_algorithm="SHA256").digest_algorithm == "sha256"

    def test_unknown_digest_algorithm(self):
        with pytest.raises(ValidationError):
            DeliveryConfig(digest_algorithm="crc32")

    def test_variable_length_digest_algorithm_rejected(self):
        with pytest.raises(ValidationError, match="no fixed digest size"):
            DeliveryConfig(digest_algorithm="shake_128")

    def test_negative_sleep_rejected(self):
        with pytest.raises(ValidationError):
            DeliveryConfig(long_sleep_seconds=-1)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DELIVERY_MAILBOX", "Orders")
        monkeypatch.setenv("DELIVERY_OUTBOX", "Orders/Done")
        monkeypatch.setenv("DELIVERY_LONG_SLEEP_SECONDS", "60")
        cfg = DeliveryConfig()
        assert cfg.mailbox == "Orders"
        assert cfg.outbox == "Orders/Done"
        assert cfg.long_sleep_seconds == 60.0


class TestRetryConfig:
    def test_defaults(self):
        cfg = RetryConfig()
        assert cfg.max_attempts == 3
        assert cfg.initial_wait_seconds == 1.0
        assert cfg.max_wait_seconds == 10.0
        assert cfg.multiplier == 2.0

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "7")
        cfg = RetryConfig()
        assert cfg.max_attempts == 7

    def test_at_least_one_attempt(self):
        with pytest.raises(ValidationError):
            RetryConfig(max_attempts=0)


class TestImapConfig:
    def test_required_fields(self, monkeypatch):
        monkeypatch.delenv("IMAP_HOST", raising=False)
        with pytest.raises(ValidationError):
            ImapConfig()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("IMAP_HOST", "mail.example.com")
        monkeypatch.setenv("IMAP_USERNAME", "bot")
        monkeypatch.setenv("IMAP_PASSWORD", "s3cret")
        monkeypatch.setenv("IMAP_TIMEOUT_SECONDS", "15")
        cfg = ImapConfig()
        assert cfg.host == "mail.example.com"
        assert cfg.port == 993
        assert cfg.use_ssl is True
        assert cfg.password.get_secret_value() == "s3cret"
        assert "s3cret" not in repr(cfg)
        assert cfg.timeout_seconds == 15.0


class TestPollerConfig:
    def test_nested_defaults(self):
        cfg = PollerConfig()
        assert cfg.name == "mailpoll"
        assert cfg.health_port == 8080
        assert isinstance(cfg.delivery, DeliveryConfig)
        assert isinstance(cfg.retry, RetryConfig)
        assert isinstance(cfg.logging, LoggingConfig)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("POLLER_NAME", "invoices")
        monkeypatch.setenv("POLLER_HEALTH_PORT", "9999")
        monkeypatch.setenv("LOG_JSON_OUTPUT", "false")
        cfg = PollerConfig()
        assert cfg.name == "invoices"
        assert cfg.health_port == 9999
        assert cfg.logging.json_output is False
