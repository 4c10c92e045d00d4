"""Data models for the delivery loop."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

# Server-assigned message identifier (an IMAP UID).  Only stable within
# one connected session.
Candidate = str


class DeliveryOutcome(str, Enum):
    """What happened to one candidate within a round."""

    DELIVERED = "delivered"
    REJECTED = "rejected"
    UNREADABLE = "unreadable"


@dataclass
class RoundResult:
    """Outcome of one list-fetch-deliver-relocate cycle.

    ``error`` holds the connect or listing failure that aborted the round.
    Per-message failures are counted but never stored here.
    """

    delivered: int = 0
    error: Exception | None = None
    candidates: int = 0
    rejected: int = 0
    unreadable: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def count(self, outcome: DeliveryOutcome) -> None:
        if outcome is DeliveryOutcome.DELIVERED:
            self.delivered += 1
        elif outcome is DeliveryOutcome.REJECTED:
            self.rejected += 1
        else:
            self.unreadable += 1


class PollerStatus(str, Enum):
    """Runtime status of a poller instance."""

    STARTING = "starting"
    RUNNING = "running"
    DEGRADED = "degraded"
    STOPPING = "stopping"
    STOPPED = "stopped"


class HealthStatus(BaseModel):
    """Response model for the /health K8s probe endpoint."""

    poller_name: str = Field(description="Name of the poller")
    status: PollerStatus = Field(description="Current poller status")
    uptime_seconds: float = Field(description="Seconds since the poller started")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Round statistics (last round time, delivered totals, last error)",
    )


class RoundSummary(BaseModel):
    """Serializable view of the most recent round, reported by /health."""

    finished_at: datetime
    delivered: int
    candidates: int
    rejected: int
    unreadable: int
    error: str | None = None

    @classmethod
    def from_result(cls, result: RoundResult, finished_at: datetime) -> RoundSummary:
        return cls(
            finished_at=finished_at,
            delivered=result.delivered,
            candidates=result.candidates,
            rejected=result.rejected,
            unreadable=result.unreadable,
            error=str(result.error) if result.error is not None else None,
        )
