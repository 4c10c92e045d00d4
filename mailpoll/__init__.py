"""mailpoll — at-least-once mailbox polling and delivery.

Public API re-exported here for convenience::

    from mailpoll import DeliveryConfig, ImapSession, MailPoller, run_once
"""

from .config import DeliveryConfig, ImapConfig, LoggingConfig, PollerConfig, RetryConfig
from .delivery import DeliverFunc, delivery_loop, next_sleep, run_once, run_round
from .errors import ConnectError, ListError, MailPollError, SessionError, StagingError
from .health import create_health_app
from .imap_session import ImapSession
from .logging import setup_logging
from .models import Candidate, DeliveryOutcome, HealthStatus, PollerStatus, RoundResult
from .poller import MailPoller
from .retry import with_retry
from .session import BodyWriter, MailboxSession
from .shutdown import install_signal_handlers
from .staging import MessageStage, StagedMessage

__all__ = [
    "BodyWriter",
    "Candidate",
    "ConnectError",
    "DeliverFunc",
    "DeliveryConfig",
    "DeliveryOutcome",
    "HealthStatus",
    "ImapConfig",
    "ImapSession",
    "ListError",
    "LoggingConfig",
    "MailPollError",
    "MailPoller",
    "MailboxSession",
    "MessageStage",
    "PollerConfig",
    "PollerStatus",
    "RetryConfig",
    "RoundResult",
    "SessionError",
    "StagedMessage",
    "StagingError",
    "create_health_app",
    "delivery_loop",
    "install_signal_handlers",
    "next_sleep",
    "run_once",
    "run_round",
    "setup_logging",
    "with_retry",
]
