"""FastAPI health endpoints for Kubernetes liveness and readiness probes."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .models import HealthStatus, PollerStatus

if TYPE_CHECKING:
    from .poller import MailPoller

# A failed round is retried after the long sleep; the process is still alive.
_LIVE_STATUSES = (PollerStatus.STARTING, PollerStatus.RUNNING, PollerStatus.DEGRADED)


def create_health_app(poller: MailPoller) -> FastAPI:
    """Build a minimal FastAPI app with ``/health`` and ``/ready`` routes.

    ``/health`` is the liveness probe and stays green while rounds fail;
    ``/ready`` only reports ready when the last round succeeded.
    """
    app = FastAPI(title=f"{poller.config.name} health", docs_url=None, redoc_url=None)

    @app.get("/health")
    async def health() -> JSONResponse:
        status = HealthStatus(
            poller_name=poller.config.name,
            status=poller.status,
            uptime_seconds=time.monotonic() - poller.start_time,
            details=poller.health_details(),
        )
        code = 200 if poller.status in _LIVE_STATUSES else 503
        return JSONResponse(content=status.model_dump(mode="json"), status_code=code)

    @app.get("/ready")
    async def ready() -> JSONResponse:
        is_ready = poller.status == PollerStatus.RUNNING
        return JSONResponse(
            content={"ready": is_ready},
            status_code=200 if is_ready else 503,
        )

    return app
