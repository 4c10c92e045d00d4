"""Tests for mailpoll.staging."""

from __future__ import annotations

import hashlib

import pytest

from mailpoll.errors import StagingError
from mailpoll.staging import MessageStage, new_hasher


def _stage_bytes(stage: MessageStage, payload: bytes, chunk: int = 7):
    staged = stage.open("42")
    for start in range(0, len(payload), chunk):
        staged.write(payload[start : start + chunk])
    staged.finish()
    return staged


class TestDigest:
    def test_digest_matches_hashlib(self, stage: MessageStage):
        payload = b"Subject: hi\r\n\r\nbody"
        with _stage_bytes(stage, payload) as staged:
            assert staged.digest == hashlib.sha1(payload).digest()
            assert staged.hexdigest == hashlib.sha1(payload).hexdigest()
            assert staged.size == len(payload)

    def test_same_bytes_same_digest(self, stage: MessageStage):
        payload = b"x" * 1000
        with _stage_bytes(stage, payload, chunk=3) as a, _stage_bytes(stage, payload, chunk=250) as b:
            assert a.digest == b.digest

    def test_configurable_algorithm(self):
        stage = MessageStage(digest_algorithm="sha256")
        with _stage_bytes(stage, b"abc") as staged:
            assert staged.digest == hashlib.sha256(b"abc").digest()

    def test_unknown_algorithm_rejected(self):
        with pytest.raises(ValueError):
            MessageStage(digest_algorithm="no-such-hash")

    @pytest.mark.parametrize("name", ["shake_128", "shake_256"])
    def test_variable_length_algorithm_rejected(self, name: str):
        with pytest.raises(ValueError, match="no fixed digest size"):
            MessageStage(digest_algorithm=name)

    def test_new_hasher_is_fresh(self):
        a = new_hasher("sha1")
        a.update(b"abc")
        assert new_hasher("sha1").digest() == hashlib.sha1(b"").digest()

    def test_empty_body(self, stage: MessageStage):
        with _stage_bytes(stage, b"") as staged:
            assert staged.size == 0
            assert staged.body.read() == b""
            assert staged.digest == hashlib.sha1(b"").digest()


class TestRereadable:
    def test_body_starts_at_offset_zero(self, stage: MessageStage):
        with _stage_bytes(stage, b"hello world") as staged:
            assert staged.body.tell() == 0
            assert staged.body.read() == b"hello world"

    def test_seek_then_reread(self, stage: MessageStage):
        with _stage_bytes(stage, b"hello world") as staged:
            assert staged.body.read(5) == b"hello"
            staged.body.seek(0)
            assert staged.body.read() == b"hello world"

    def test_large_body_spills_to_disk(self):
        stage = MessageStage(max_memory_bytes=16)
        payload = bytes(range(256)) * 8
        with _stage_bytes(stage, payload, chunk=100) as staged:
            assert staged.size == len(payload)
            assert staged.body.read() == payload
            staged.body.seek(100)
            assert staged.body.read(4) == payload[100:104]
            assert staged.digest == hashlib.sha1(payload).digest()


class TestLifecycle:
    def test_read_before_finish_raises(self, stage: MessageStage):
        with stage.open("1") as staged:
            staged.write(b"partial")
            with pytest.raises(StagingError):
                staged.body
            with pytest.raises(StagingError):
                staged.digest

    def test_write_after_finish_raises(self, stage: MessageStage):
        with _stage_bytes(stage, b"done") as staged:
            with pytest.raises(StagingError):
                staged.write(b"more")

    def test_close_releases_spool_once(self, stage: MessageStage):
        staged = _stage_bytes(stage, b"data")
        body = staged.body
        staged.close()
        assert staged.closed
        assert body.closed
        staged.close()  # idempotent
        assert staged.closed

    def test_context_manager_closes_on_error(self, stage: MessageStage):
        with pytest.raises(RuntimeError):
            with stage.open("1") as staged:
                staged.write(b"abc")
                raise RuntimeError("boom")
        assert staged.closed

    def test_use_after_close_raises(self, stage: MessageStage):
        staged = _stage_bytes(stage, b"data")
        staged.close()
        with pytest.raises(StagingError):
            staged.body
        with pytest.raises(StagingError):
            staged.write(b"x")
        with pytest.raises(StagingError):
            staged.finish()

    def test_finish_twice_rewinds(self, stage: MessageStage):
        with _stage_bytes(stage, b"again") as staged:
            digest = staged.digest
            staged.body.read()
            staged.finish()
            assert staged.body.read() == b"again"
            assert staged.digest == digest
