"""The delivery loop: poll a mailbox, hand each message to a callback, relocate it.

:func:`run_round` performs one list-fetch-deliver-relocate cycle,
:func:`run_once` is the single-shot entry point and
:func:`delivery_loop` repeats rounds with a short/long sleep policy until
the cancellation event is set.

Delivery is at-least-once: a message is marked seen only after the
callback returned without raising, so anything else is listed again in
the next round (unless it was moved to the error mailbox).
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import IO

import structlog

from .config import DeliveryConfig, RetryConfig
from .errors import ConnectError, ListError
from .models import Candidate, DeliveryOutcome, RoundResult
from .retry import with_retry
from .session import MailboxSession
from .staging import MessageStage

logger = structlog.get_logger()

# deliver(body, uid, digest); raising means the message was rejected.
DeliverFunc = Callable[[IO[bytes], Candidate, bytes], Awaitable[None] | None]
RoundHook = Callable[[RoundResult], None]


def stage_from_config(config: DeliveryConfig) -> MessageStage:
    return MessageStage(
        max_memory_bytes=config.spool_max_memory_bytes,
        digest_algorithm=config.digest_algorithm,
    )


# ----------------------------------------------------------------------
# One round
# ----------------------------------------------------------------------


@asynccontextmanager
async def _connected(session: MailboxSession, retry: RetryConfig | None) -> AsyncIterator[None]:
    """Connect for the duration of one round; always close with expunge."""
    connect = session.connect
    if retry is not None:
        connect = with_retry(retry)(connect)
    try:
        await connect()
    except ConnectError:
        raise
    except Exception as exc:
        raise ConnectError(f"connect to {session!r}: {exc}") from exc
    try:
        yield
    finally:
        try:
            await session.close(expunge=True)
        except Exception as exc:
            logger.warning("session_close_failed", error=str(exc))


async def _call_deliver(deliver: DeliverFunc, body: IO[bytes], uid: Candidate, digest: bytes) -> None:
    result = deliver(body, uid, digest)
    if inspect.isawaitable(result):
        await result


async def _stage_and_deliver(
    session: MailboxSession,
    deliver: DeliverFunc,
    stage: MessageStage,
    uid: Candidate,
) -> DeliveryOutcome:
    with stage.open(uid) as staged:
        try:
            size = await session.read_body(staged, uid)
            staged.finish()
        except Exception as exc:
            logger.error("message_read_failed", error=str(exc))
            return DeliveryOutcome.UNREADABLE

        logger.debug("message_staged", size=size, digest=staged.hexdigest)
        try:
            await _call_deliver(deliver, staged.body, uid, staged.digest)
        except Exception as exc:
            logger.error("delivery_rejected", error=str(exc), error_type=type(exc).__name__)
            return DeliveryOutcome.REJECTED
    return DeliveryOutcome.DELIVERED


async def _relocate(session: MailboxSession, uid: Candidate, outcome: DeliveryOutcome, config: DeliveryConfig) -> None:
    """Best-effort housekeeping after a delivery attempt; failures are only logged."""
    if outcome is DeliveryOutcome.REJECTED:
        if config.errbox:
            try:
                await session.move(uid, config.errbox)
            except Exception as exc:
                logger.error("move_failed", destination=config.errbox, error=str(exc))
        return

    try:
        await session.mark(uid, True)
    except Exception as exc:
        logger.error("mark_seen_failed", error=str(exc))

    if config.outbox:
        try:
            await session.move(uid, config.outbox)
        except Exception as exc:
            logger.error("move_failed", destination=config.outbox, error=str(exc))


async def run_round(
    session: MailboxSession,
    deliver: DeliverFunc,
    config: DeliveryConfig,
    *,
    stage: MessageStage | None = None,
    retry: RetryConfig | None = None,
) -> RoundResult:
    """Run exactly one poll-fetch-deliver-relocate cycle.

    Only a connect or listing failure ends up in ``RoundResult.error``;
    such a round processes no candidate.  Every per-message failure is
    logged and the round moves on to the next candidate.
    """
    stage = stage or stage_from_config(config)
    result = RoundResult()

    try:
        async with _connected(session, retry):
            try:
                uids = await session.list(config.mailbox, config.pattern, config.include_seen)
            except Exception as exc:
                raise ListError(f"list {session!r}/{config.mailbox}: {exc}") from exc

            result.candidates = len(uids)
            for uid in uids:
                with structlog.contextvars.bound_contextvars(uid=uid, mailbox=config.mailbox):
                    outcome = await _stage_and_deliver(session, deliver, stage, uid)
                    result.count(outcome)
                    if outcome is not DeliveryOutcome.UNREADABLE:
                        await _relocate(session, uid, outcome, config)
    except ConnectError as exc:
        logger.error("connect_failed", error=str(exc))
        result.error = exc
    except ListError as exc:
        logger.error("list_failed", pattern=config.pattern, error=str(exc))
        result.error = exc

    return result


async def run_once(
    session: MailboxSession,
    deliver: DeliverFunc,
    config: DeliveryConfig | None = None,
    *,
    stage: MessageStage | None = None,
    retry: RetryConfig | None = None,
) -> RoundResult:
    """Do one round of reading and delivery, without looping.

    For callers that schedule rounds themselves.
    """
    return await run_round(session, deliver, config or DeliveryConfig(), stage=stage, retry=retry)


# ----------------------------------------------------------------------
# The loop
# ----------------------------------------------------------------------


def next_sleep(result: RoundResult, config: DeliveryConfig) -> float:
    """Short sleep after a productive round, long after an empty or failed one."""
    if result.ok and result.delivered > 0:
        return config.short_sleep_seconds
    return config.long_sleep_seconds


async def _sleep(delay: float, cancel: asyncio.Event) -> None:
    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay)
    except TimeoutError:
        pass


async def delivery_loop(
    session: MailboxSession,
    deliver: DeliverFunc,
    cancel: asyncio.Event,
    config: DeliveryConfig | None = None,
    *,
    stage: MessageStage | None = None,
    retry: RetryConfig | None = None,
    on_round: RoundHook | None = None,
) -> None:
    """Run rounds until *cancel* is set.

    *cancel* is checked between rounds only; a round in progress always
    runs to completion.  A set event also cuts the current sleep short
    and no further round is started.  Errors never end the loop, they
    only select the long sleep.
    """
    config = config or DeliveryConfig()
    stage = stage or stage_from_config(config)

    while True:
        result = await run_round(session, deliver, config, stage=stage, retry=retry)
        if result.error is not None:
            logger.error("delivery_round_failed", delivered=result.delivered, error=str(result.error))
        else:
            logger.info(
                "delivery_round_complete",
                delivered=result.delivered,
                candidates=result.candidates,
                rejected=result.rejected,
                unreadable=result.unreadable,
            )
        if on_round is not None:
            on_round(result)

        if cancel.is_set():
            logger.info("delivery_loop_cancelled")
            return

        await _sleep(next_sleep(result, config), cancel)
        if cancel.is_set():
            logger.info("delivery_loop_cancelled")
            return
