"""MailboxSession — the structural interface every mailbox backend satisfies."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import Candidate


class BodyWriter(Protocol):
    """Anything a message body can be streamed into."""

    def write(self, data: bytes, /) -> int: ...


@runtime_checkable
class MailboxSession(Protocol):
    """Remote mailbox capability consumed by the delivery loop.

    :class:`~mailpoll.imap_session.ImapSession` is the production
    implementation; tests use an in-memory fake.  Neither inherits from
    this class, they only have to provide the same coroutines.

    A session is connected once per round and closed at the end of it.
    Per-call timeouts belong to the implementation.
    """

    async def connect(self) -> None:
        """Open the connection and authenticate."""
        ...

    async def close(self, expunge: bool = True) -> None:
        """Close the connection; with *expunge*, purge messages flagged for deletion."""
        ...

    async def list(self, mailbox: str, pattern: str, include_seen: bool) -> list[Candidate]:
        """Return candidates in *mailbox* whose subject contains *pattern*.

        An empty *pattern* matches everything.  Unless *include_seen* is
        true only unseen messages are returned.
        """
        ...

    async def read_body(self, dst: BodyWriter, uid: Candidate) -> int:
        """Stream the full body of *uid* into *dst*; return the byte count.

        Must not mark the message as seen.
        """
        ...

    async def mark(self, uid: Candidate, seen: bool) -> None:
        """Set or clear the seen flag of *uid*."""
        ...

    async def move(self, uid: Candidate, mailbox: str) -> None:
        """Relocate *uid* to *mailbox*."""
        ...
