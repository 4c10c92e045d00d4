"""MailPoller — wires up logging, signals and health probes around the delivery loop."""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime

import structlog
import uvicorn

from .config import PollerConfig
from .delivery import DeliverFunc, delivery_loop, run_once, stage_from_config
from .health import create_health_app
from .logging import setup_logging
from .models import PollerStatus, RoundResult, RoundSummary
from .session import MailboxSession
from .shutdown import install_signal_handlers

logger = structlog.get_logger()


class MailPoller:
    """A durable background poller for one mailbox.

    ``run()`` starts the following concurrently via
    :class:`asyncio.TaskGroup` and returns once shutdown was requested
    (SIGTERM / SIGINT or :meth:`stop`) and the current round finished:

    * the delivery loop
    * a FastAPI health server (for K8s probes)

    Usage::

        poller = MailPoller(PollerConfig(), ImapSession(ImapConfig()), deliver)
        asyncio.run(poller.run())
    """

    def __init__(self, config: PollerConfig, session: MailboxSession, deliver: DeliverFunc) -> None:
        self.config = config
        self.session = session
        self.deliver = deliver
        self.status: PollerStatus = PollerStatus.STARTING
        self.start_time: float = time.monotonic()

        self._stage = stage_from_config(config.delivery)
        self._cancel = asyncio.Event()
        self._rounds = 0
        self._delivered_total = 0
        self._failed_rounds = 0
        self._last_round: RoundSummary | None = None

    # ------------------------------------------------------------------
    # Round bookkeeping
    # ------------------------------------------------------------------

    def record_round(self, result: RoundResult) -> None:
        """Update counters and status after every round."""
        self._rounds += 1
        self._delivered_total += result.delivered
        self._last_round = RoundSummary.from_result(result, datetime.now(UTC))
        if result.ok:
            self.status = PollerStatus.RUNNING
        else:
            self._failed_rounds += 1
            self.status = PollerStatus.DEGRADED

    def health_details(self) -> dict[str, object]:
        delivery = self.config.delivery
        return {
            "mailbox": delivery.mailbox,
            "pattern": delivery.pattern,
            "outbox": delivery.outbox or None,
            "errbox": delivery.errbox or None,
            "rounds": self._rounds,
            "failed_rounds": self._failed_rounds,
            "delivered_total": self._delivered_total,
            "last_round": self._last_round.model_dump(mode="json") if self._last_round else None,
        }

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def stop(self) -> None:
        """Ask the loop to exit after the current round.  Safe to call repeatedly."""
        if not self._cancel.is_set():
            logger.info("poller_stop_requested", poller=self.config.name)
        self._cancel.set()

    async def run_once(self) -> RoundResult:
        """Run a single round outside the loop and record it."""
        result = await run_once(
            self.session,
            self.deliver,
            self.config.delivery,
            stage=self._stage,
            retry=self.config.retry,
        )
        self.record_round(result)
        return result

    # ------------------------------------------------------------------
    # Subsystems
    # ------------------------------------------------------------------

    async def _run_delivery_loop(self) -> None:
        logger.info(
            "delivery_loop_started",
            mailbox=self.config.delivery.mailbox,
            pattern=self.config.delivery.pattern,
            include_seen=self.config.delivery.include_seen,
        )
        try:
            await delivery_loop(
                self.session,
                self.deliver,
                self._cancel,
                self.config.delivery,
                stage=self._stage,
                retry=self.config.retry,
                on_round=self.record_round,
            )
        finally:
            self.status = PollerStatus.STOPPING
            # The health server waits on the same event.
            self._cancel.set()
            logger.info("delivery_loop_stopped", rounds=self._rounds)

    async def _run_health_server(self) -> None:
        """Serve the health app until the cancellation event fires."""
        app = create_health_app(self)
        config = uvicorn.Config(
            app,
            host="0.0.0.0",
            port=self.config.health_port,
            log_level="warning",
        )
        server = uvicorn.Server(config)

        serve_task = asyncio.create_task(server.serve())
        await self._cancel.wait()
        server.should_exit = True
        await serve_task

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Start all subsystems and run until shutdown."""
        setup_logging(self.config.logging, poller_name=self.config.name)
        install_signal_handlers(self._cancel)
        self.start_time = time.monotonic()

        logger.info("poller_starting", poller=self.config.name)

        try:
            async with asyncio.TaskGroup() as tg:
                tg.create_task(self._run_delivery_loop())
                tg.create_task(self._run_health_server())
        except* Exception:
            logger.exception("poller_task_group_error", poller=self.config.name)
        finally:
            self.status = PollerStatus.STOPPED
            logger.info("poller_stopped", poller=self.config.name, delivered_total=self._delivered_total)
