"""IMAP mailbox session wrapping stdlib imaplib with asyncio.to_thread."""

from __future__ import annotations

import asyncio
import imaplib
import re

import structlog

from .config import ImapConfig
from .errors import ConnectError, SessionError
from .models import Candidate
from .session import BodyWriter

logger = structlog.get_logger()

_CHUNK_SIZE = 64 * 1024
_SEEN = r"(\Seen)"
_ATOM_SPECIALS = re.compile(r'[\s(){%*"\\\]]')


def _quote(value: str) -> str:
    """Quote a mailbox name or search string unless it is a plain atom."""
    if value and not _ATOM_SPECIALS.search(value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _check(command: str, typ: str, data: list) -> list:
    if typ != "OK":
        raise SessionError(f"{command} failed: {typ} {data!r}")
    return data


class ImapSession:
    """Production :class:`~mailpoll.session.MailboxSession` over IMAP.

    All blocking ``imaplib`` operations are wrapped with
    ``asyncio.to_thread()`` to avoid blocking the event loop.  Every
    command honours ``ImapConfig.timeout_seconds`` through the socket
    timeout.
    """

    def __init__(self, config: ImapConfig) -> None:
        self._config = config
        self._conn: imaplib.IMAP4_SSL | imaplib.IMAP4 | None = None
        self._selected: str | None = None

    def __repr__(self) -> str:
        return f"ImapSession({self._config.username}@{self._config.host}:{self._config.port})"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Connect and login."""
        try:
            await asyncio.to_thread(self._connect_sync)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise ConnectError(f"connect to {self!r}: {exc}") from exc
        logger.info("imap_connected", host=self._config.host, port=self._config.port)

    def _connect_sync(self) -> None:
        if self._config.use_ssl:
            conn = imaplib.IMAP4_SSL(
                self._config.host,
                self._config.port,
                timeout=self._config.timeout_seconds,
            )
        else:
            conn = imaplib.IMAP4(
                self._config.host,
                self._config.port,
                timeout=self._config.timeout_seconds,
            )
        try:
            conn.login(self._config.username, self._config.password.get_secret_value())
        except Exception:
            conn.shutdown()
            raise
        self._conn = conn
        self._selected = None

    async def close(self, expunge: bool = True) -> None:
        """Leave the selected mailbox (purging deletions with *expunge*) and logout."""
        if self._conn is None:
            return
        try:
            await asyncio.to_thread(self._close_sync, expunge)
        finally:
            self._conn = None
            self._selected = None
        logger.info("imap_disconnected", expunged=expunge)

    def _close_sync(self, expunge: bool) -> None:
        conn = self._require_conn()
        try:
            if self._selected is not None:
                # CLOSE silently expunges \Deleted messages; UNSELECT does not.
                if expunge:
                    _check("CLOSE", *conn.close())
                else:
                    _check("UNSELECT", *conn.unselect())
        finally:
            conn.logout()

    # ------------------------------------------------------------------
    # Listing and retrieval
    # ------------------------------------------------------------------

    async def list(self, mailbox: str, pattern: str, include_seen: bool) -> list[Candidate]:
        return await asyncio.to_thread(self._list_sync, mailbox, pattern, include_seen)

    def _list_sync(self, mailbox: str, pattern: str, include_seen: bool) -> list[Candidate]:
        conn = self._select(mailbox)
        criteria = ["ALL" if include_seen else "UNSEEN"]
        if pattern:
            if pattern.isascii():
                criteria += ["SUBJECT", _quote(pattern)]
            else:
                # The literal is sent after the last argument.
                conn.literal = pattern.encode("utf-8")
                criteria = ["CHARSET", "UTF-8", *criteria, "SUBJECT"]
        data = _check("SEARCH", *conn.uid("SEARCH", None, *criteria))
        if not data or not data[0]:
            return []
        uids = [uid.decode() for uid in data[0].split()]
        logger.debug("imap_search_complete", mailbox=mailbox, criteria=criteria, found=len(uids))
        return uids

    async def read_body(self, dst: BodyWriter, uid: Candidate) -> int:
        return await asyncio.to_thread(self._read_body_sync, dst, uid)

    def _read_body_sync(self, dst: BodyWriter, uid: Candidate) -> int:
        conn = self._require_conn()
        # BODY.PEEK leaves \Seen alone; only a successful delivery sets it.
        data = _check("FETCH", *conn.uid("FETCH", uid, "(BODY.PEEK[])"))
        raw = next((part[1] for part in data if isinstance(part, tuple)), None)
        if raw is None:
            raise SessionError(f"message {uid} not found")

        view = memoryview(raw)
        total = 0
        for start in range(0, len(view), _CHUNK_SIZE):
            total += dst.write(bytes(view[start : start + _CHUNK_SIZE]))
        return total

    # ------------------------------------------------------------------
    # Flags and relocation
    # ------------------------------------------------------------------

    async def mark(self, uid: Candidate, seen: bool) -> None:
        await asyncio.to_thread(self._store_sync, uid, "+FLAGS" if seen else "-FLAGS", _SEEN)

    def _store_sync(self, uid: Candidate, mode: str, flags: str) -> None:
        conn = self._require_conn()
        _check("STORE", *conn.uid("STORE", uid, mode, flags))

    async def move(self, uid: Candidate, mailbox: str) -> None:
        await asyncio.to_thread(self._move_sync, uid, mailbox)

    def _move_sync(self, uid: Candidate, mailbox: str) -> None:
        conn = self._require_conn()
        dest = _quote(mailbox)
        if "MOVE" in conn.capabilities:
            _check("MOVE", *conn.uid("MOVE", uid, dest))
            return
        # No MOVE extension: copy, then flag for deletion; CLOSE expunges it.
        _check("COPY", *conn.uid("COPY", uid, dest))
        _check("STORE", *conn.uid("STORE", uid, "+FLAGS.SILENT", r"(\Deleted)"))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_conn(self) -> imaplib.IMAP4:
        if self._conn is None:
            raise SessionError("not connected")
        return self._conn

    def _select(self, mailbox: str) -> imaplib.IMAP4:
        conn = self._require_conn()
        if self._selected != mailbox:
            _check("SELECT", *conn.select(_quote(mailbox)))
            self._selected = mailbox
        return conn
