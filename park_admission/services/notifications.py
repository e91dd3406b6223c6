"""
Transfer events for the external notification collaborator.

The workflow publishes one TransferEvent per committed state change. This module
does not format or deliver user-facing messages; subscribers do. A subscriber
that raises is logged and skipped, and never undoes the committed transition.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable

import structlog

logger = structlog.get_logger(__name__)

TRANSFER_CREATED = "transfer.created"
TRANSFER_ACCEPTED = "transfer.accepted"
TRANSFER_DECLINED = "transfer.declined"
TRANSFER_EXPIRED = "transfer.expired"


@dataclass(frozen=True)
class TransferEvent:
    type: str
    transfer_id: str
    reservation_id: str
    initiator_id: str
    target_user_id: str

    def to_dict(self) -> dict[str, str]:
        """Wire form consumed by the notification collaborator."""
        return {
            "type": self.type,
            "transferId": self.transfer_id,
            "reservationId": self.reservation_id,
            "initiatorId": self.initiator_id,
            "targetUserId": self.target_user_id,
        }


TransferEventHandler = Callable[[TransferEvent], None]


def log_transfer_event(event: TransferEvent) -> None:
    logger.info("transfer_event_published", **event.to_dict())


class TransferNotifier:
    """Fan-out of TransferEvents to subscribed handlers, in subscription order."""

    def __init__(self) -> None:
        self._handlers: list[TransferEventHandler] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: TransferEventHandler) -> None:
        with self._lock:
            self._handlers.append(handler)

    def unsubscribe(self, handler: TransferEventHandler) -> None:
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def publish(self, event: TransferEvent) -> None:
        with self._lock:
            handlers = list(self._handlers)

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "transfer_event_handler_failed",
                    event_type=event.type,
                    transfer_id=event.transfer_id,
                    handler=getattr(handler, "__name__", repr(handler)),
                )


# Global notifier; the default handler only logs
transfer_notifier = TransferNotifier()
transfer_notifier.subscribe(log_transfer_event)
