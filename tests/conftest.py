"""Shared test fixtures for the mailpoll test suite."""

from __future__ import annotations

from typing import IO

import pytest

from mailpoll.config import DeliveryConfig, ImapConfig, PollerConfig, RetryConfig
from mailpoll.staging import MessageStage

from tests.fakes import FakeMailbox


@pytest.fixture
def delivery_config() -> DeliveryConfig:
    return DeliveryConfig(
        mailbox="INBOX",
        short_sleep_seconds=0.0,
        long_sleep_seconds=0.0,
    )


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(
        max_attempts=3,
        initial_wait_seconds=0.01,
        max_wait_seconds=0.1,
        multiplier=2.0,
    )


@pytest.fixture
def imap_config() -> ImapConfig:
    return ImapConfig(
        host="imap.test.com",
        port=993,
        use_ssl=True,
        username="testuser",
        password="testpass",
        timeout_seconds=5.0,
    )


@pytest.fixture
def poller_config(delivery_config: DeliveryConfig, retry_config: RetryConfig) -> PollerConfig:
    return PollerConfig(
        name="mailpoll-test",
        health_port=18080,
        delivery=delivery_config,
        retry=retry_config,
    )


@pytest.fixture
def stage() -> MessageStage:
    return MessageStage(max_memory_bytes=64)


@pytest.fixture
def mailbox() -> FakeMailbox:
    box = FakeMailbox()
    box.add("1", b"From: a@example.com\r\nSubject: invoice 1\r\n\r\nfirst", subject="invoice 1")
    box.add("2", b"From: b@example.com\r\nSubject: hello\r\n\r\nsecond", subject="hello")
    box.add("3", b"From: c@example.com\r\nSubject: invoice 3\r\n\r\nthird", subject="invoice 3")
    return box


class Recorder:
    """Delivery callback that records what it saw and rejects chosen UIDs."""

    def __init__(self, reject: set[str] | None = None) -> None:
        self.reject = reject or set()
        self.seen: list[tuple[str, bytes, bytes]] = []
        self.bodies: list[IO[bytes]] = []

    def __call__(self, body: IO[bytes], uid: str, digest: bytes) -> None:
        self.bodies.append(body)
        self.seen.append((uid, body.read(), digest))
        if uid in self.reject:
            raise ValueError(f"cannot handle {uid}")

    @property
    def uids(self) -> list[str]:
        return [uid for uid, _, _ in self.seen]


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
