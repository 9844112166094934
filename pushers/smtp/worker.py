"""
Delivery worker for the SMTP channel.

One worker thread per channel pulls event records off the hand-off queue,
formats them and submits them to the relay, strictly one at a time. Delivery
is at-most-once: a record whose body comes out empty, or whose submission
fails, is logged and dropped. Nothing is retried or requeued.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable
from enum import Enum
from typing import Any, Optional, Protocol

from ..base import EventRecord
from .config import SmtpConfig
from .formatter import MessageFormatter
from .transport import ComposedMessage, DeliveryFailure

logger = logging.getLogger(__name__)

# Wake-up marker put on the queue when the channel closes. It carries no
# record; the worker only uses it to re-check whether it may stop.
STOP = object()


class Transport(Protocol):
    def send(self, message: ComposedMessage) -> None:
        """Submit one message; raise DeliveryFailure if the relay is unusable."""


class WorkerState(Enum):
    """Worker status enumeration"""
    IDLE = "idle"
    FORMATTING = "formatting"
    SENDING = "sending"
    STOPPED = "stopped"


class DeliveryWorker:
    """
    Background loop that turns queued records into sent emails.

    Attributes:
        state: Current WorkerState.
        delivered: Records handed to the relay successfully.
        dropped: Records dropped because their body was empty.
        failed: Records dropped because submission (or anything else) failed.
        last_heartbeat: time.monotonic() of the last idle tick or record.
    """

    def __init__(
        self,
        requests: "queue.Queue[Any]",
        config: SmtpConfig,
        formatter: MessageFormatter,
        transport: Transport,
        tick_interval: Optional[float] = 1.0,
        name: str = "smtp-delivery",
        drained: Optional[Callable[[], bool]] = None,
    ):
        self._requests = requests
        self.config = config
        self.formatter = formatter
        self.transport = transport
        self.tick_interval = tick_interval
        self._drained = drained if drained is not None else requests.empty
        self._stopping = threading.Event()

        self.state = WorkerState.IDLE
        self.delivered = 0
        self.dropped = 0
        self.failed = 0
        self.last_heartbeat = time.monotonic()

        self._thread = threading.Thread(target=self.run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        """Ask the loop to exit once there is nothing left to deliver."""
        self._stopping.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the loop to exit. Returns True once the worker has stopped."""
        self._thread.join(timeout)
        return not self._thread.is_alive()

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def stats(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "delivered": self.delivered,
            "dropped": self.dropped,
            "failed": self.failed,
        }

    def run(self) -> None:
        """
        Main loop: wait for a record or a tick until asked to stop.

        After `stop`, the loop keeps delivering until `drained` reports that
        no record is queued or still being handed over. The tick only
        refreshes `last_heartbeat`.
        """
        while True:
            if self._stopping.is_set() and self._drained():
                break
            try:
                item = self._requests.get(timeout=self.tick_interval)
            except queue.Empty:
                self.last_heartbeat = time.monotonic()
                logger.debug("Delivery worker idle", extra=self.stats())
                continue

            try:
                if item is not STOP:
                    self.process(item)
            finally:
                self._requests.task_done()

        self.state = WorkerState.STOPPED
        logger.info("SMTP delivery worker stopped", extra=self.stats())

    def process(self, record: EventRecord) -> bool:
        """
        Format and submit a single record.

        Returns:
            bool: True if the relay accepted the message, False if the record
                was dropped. Never raises.
        """
        self.last_heartbeat = time.monotonic()
        try:
            self.state = WorkerState.FORMATTING
            body = self.formatter.format(record)
            if not body:
                self.dropped += 1
                logger.info("Empty email body, event dropped", extra={"fields": sorted(record)})
                return False

            self.state = WorkerState.SENDING
            message = ComposedMessage(
                sender=self.config.sender,
                recipients=self.config.recipients,
                subject=self.config.subject,
                body=body,
            )
            self.transport.send(message)
        except DeliveryFailure as e:
            self.failed += 1
            logger.error(
                f"Delivery failed, event dropped: {e}",
                extra={"smtp_host": self.config.server, "recipients": list(self.config.recipients)},
            )
            return False
        except Exception as e:
            self.failed += 1
            logger.error(f"Unexpected error while delivering event: {e}", exc_info=True)
            return False
        finally:
            self.state = WorkerState.IDLE

        self.delivered += 1
        logger.info(
            "Email sent",
            extra={"smtp_host": self.config.server, "recipients": list(self.config.recipients)},
        )
        return True


__all__ = ["DeliveryWorker", "STOP", "Transport", "WorkerState"]
