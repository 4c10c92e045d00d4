"""Poller configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars,
which is the natural config mechanism in Kubernetes.
"""

from __future__ import annotations

import hashlib

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings

from .staging import new_hasher

DEFAULT_MAILBOX = "INBOX"


class DeliveryConfig(BaseSettings):
    """What to poll, where to relocate processed messages, and how long to sleep."""

    model_config = {"env_prefix": "DELIVERY_"}

    mailbox: str = Field(default=DEFAULT_MAILBOX, description="Mailbox to poll")
    pattern: str = Field(
        default="",
        description="Only pick messages whose subject contains this text (empty = all)",
    )
    outbox: str = Field(
        default="",
        description="Mailbox to move successfully delivered messages to (empty = leave in place)",
    )
    errbox: str = Field(
        default="",
        description="Mailbox to move rejected messages to (empty = leave in place)",
    )
    short_sleep_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Sleep after a round that delivered at least one message",
    )
    long_sleep_seconds: float = Field(
        default=300.0,
        ge=0,
        description="Sleep after an empty or failed round",
    )
    spool_max_memory_bytes: int = Field(
        default=1024 * 1024,
        ge=0,
        description="Message bodies larger than this are spooled to a temporary file",
    )
    digest_algorithm: str = Field(
        default="sha1",
        description="hashlib algorithm used for the content digest passed to the callback",
    )

    @field_validator("mailbox")
    @classmethod
    def default_mailbox(cls, value: str) -> str:
        return value or DEFAULT_MAILBOX

    @field_validator("digest_algorithm")
    @classmethod
    def known_algorithm(cls, value: str) -> str:
        value = value.lower()
        if value not in hashlib.algorithms_available:
            raise ValueError(f"unsupported digest algorithm: {value}")
        new_hasher(value)
        return value

    @property
    def include_seen(self) -> bool:
        """List already-seen messages too.

        Only when both relocation boxes are set: every processed message
        then leaves the polled mailbox, so relocation does the dedup.
        """
        return bool(self.outbox and self.errbox)


class RetryConfig(BaseSettings):
    """Retry / backoff settings for the per-round connect, driven by Tenacity."""

    model_config = {"env_prefix": "RETRY_"}

    max_attempts: int = Field(default=3, ge=1, description="Connect attempts per round")
    initial_wait_seconds: float = Field(
        default=1.0,
        description="Initial backoff wait in seconds",
    )
    max_wait_seconds: float = Field(
        default=10.0,
        description="Maximum backoff wait in seconds",
    )
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")


class ImapConfig(BaseSettings):
    """IMAP server connection settings."""

    model_config = {"env_prefix": "IMAP_"}

    host: str = Field(description="IMAP server hostname")
    port: int = Field(default=993, description="IMAP server port")
    use_ssl: bool = Field(default=True, description="Use SSL/TLS connection")
    username: str = Field(description="IMAP login username")
    password: SecretStr = Field(description="IMAP login password")
    timeout_seconds: float | None = Field(
        default=60.0,
        description="Socket timeout for every IMAP command (None = block forever)",
    )


class LoggingConfig(BaseSettings):
    """structlog output settings."""

    model_config = {"env_prefix": "LOG_"}

    level: str = Field(default="INFO", description="Root log level name")
    json_output: bool = Field(
        default=True,
        description="JSON lines (True) or human-friendly console output (False)",
    )


class PollerConfig(BaseSettings):
    """Root configuration for a poller process.

    Nested configs are populated from their own env-var prefixes.
    """

    model_config = {"env_prefix": "POLLER_"}

    name: str = Field(default="mailpoll", description="Poller name used in logs and health output")
    health_port: int = Field(default=8080, description="Port for K8s health probe endpoints")

    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
