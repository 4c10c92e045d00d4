"""Graceful shutdown: SIGTERM / SIGINT set the poller's cancellation event."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Iterable

import structlog

logger = structlog.get_logger()

DEFAULT_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def install_signal_handlers(
    cancel: asyncio.Event,
    signals: Iterable[signal.Signals] = DEFAULT_SIGNALS,
) -> None:
    """Register handlers that set *cancel* when one of *signals* arrives.

    Call this once from the running event loop.  The delivery loop only
    looks at the event between rounds, so the round in progress finishes
    first.  Repeated signals are logged and otherwise ignored.
    """
    loop = asyncio.get_running_loop()

    def _handle(sig: signal.Signals) -> None:
        if cancel.is_set():
            logger.info("shutdown_already_requested", signal=sig.name)
            return
        logger.info("shutdown_signal_received", signal=sig.name)
        cancel.set()

    for sig in signals:
        loop.add_signal_handler(sig, _handle, sig)
