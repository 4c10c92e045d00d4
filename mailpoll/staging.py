"""Message staging: spool a streamed body into a re-readable buffer while hashing it."""

from __future__ import annotations

import hashlib
import tempfile
from typing import IO

import structlog

from .errors import StagingError
from .models import Candidate

logger = structlog.get_logger()


def new_hasher(name: str) -> hashlib._Hash:
    """Return a fresh hash object for *name*.

    Raises :class:`ValueError` for unknown names and for variable-length
    (SHAKE) algorithms, whose digest needs an explicit length.
    """
    hasher = hashlib.new(name)
    if hasher.digest_size == 0:
        raise ValueError(f"digest algorithm {name} has no fixed digest size")
    return hasher


class StagedMessage:
    """One message body, buffered and digested on the same write path.

    The session streams the body into :meth:`write`.  After
    :meth:`finish` the body is readable (and seekable) from offset zero
    and :attr:`digest` covers exactly the bytes it holds.  :meth:`close`
    releases the spool; it is idempotent.
    """

    def __init__(self, uid: Candidate, spool: IO[bytes], hasher: hashlib._Hash) -> None:
        self.uid = uid
        self._spool = spool
        self._hasher = hasher
        self._size = 0
        self._digest: bytes | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Writer side
    # ------------------------------------------------------------------

    def write(self, data: bytes) -> int:
        if self._closed:
            raise StagingError(f"message {self.uid} already released")
        if self._digest is not None:
            raise StagingError(f"message {self.uid} already finished staging")
        n = self._spool.write(data)
        self._hasher.update(data)
        self._size += n
        return n

    def finish(self) -> None:
        """Freeze the digest and rewind the body for the reader."""
        if self._closed:
            raise StagingError(f"message {self.uid} already released")
        if self._digest is None:
            self._spool.flush()
            self._digest = self._hasher.digest()
        self._spool.seek(0)

    # ------------------------------------------------------------------
    # Reader side
    # ------------------------------------------------------------------

    @property
    def finished(self) -> bool:
        return self._digest is not None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def size(self) -> int:
        return self._size

    @property
    def body(self) -> IO[bytes]:
        self._check_readable()
        return self._spool

    @property
    def digest(self) -> bytes:
        self._check_readable()
        assert self._digest is not None
        return self._digest

    @property
    def hexdigest(self) -> str:
        return self.digest.hex()

    def _check_readable(self) -> None:
        if self._closed:
            raise StagingError(f"message {self.uid} already released")
        if self._digest is None:
            raise StagingError(f"message {self.uid} is still being staged")

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._spool.close()
        logger.debug("staged_message_released", uid=self.uid, size=self._size)

    def __enter__(self) -> StagedMessage:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class MessageStage:
    """Factory for :class:`StagedMessage` spools.

    Bodies stay in memory up to *max_memory_bytes* and roll over to a
    temporary file beyond that.
    """

    def __init__(self, *, max_memory_bytes: int = 1024 * 1024, digest_algorithm: str = "sha1") -> None:
        self._max_memory_bytes = max_memory_bytes
        self._digest_algorithm = digest_algorithm
        new_hasher(digest_algorithm)

    @property
    def digest_algorithm(self) -> str:
        return self._digest_algorithm

    def open(self, uid: Candidate) -> StagedMessage:
        spool = tempfile.SpooledTemporaryFile(
            max_size=self._max_memory_bytes,
            mode="w+b",
            prefix=f"mailpoll-{uid}-",
        )
        return StagedMessage(uid, spool, new_hasher(self._digest_algorithm))
