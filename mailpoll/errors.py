"""Exception hierarchy for the mail poller."""

from __future__ import annotations


class MailPollError(Exception):
    """Base class for all mailpoll errors."""


class SessionError(MailPollError):
    """A mailbox session command failed or returned a non-OK status."""


class ConnectError(SessionError):
    """Connecting to the mailbox server failed; the round cannot proceed."""


class ListError(SessionError):
    """Listing candidate messages failed; the round cannot proceed."""


class StagingError(MailPollError):
    """A staged message was used out of order (write after finish, read before finish, use after close)."""
