from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Optional

from ..base import Event, snapshot_event
from .config import ConfigOption, SmtpConfig, build_config
from .formatter import MessageFormatter
from .transport import MailTransport
from .worker import STOP, DeliveryWorker, Transport, WorkerState

logger = logging.getLogger(__name__)


class ChannelClosedError(RuntimeError):
    """Raised by `send` once the channel has been closed."""


class SmtpChannel:
    """
    Best-effort email channel.

    Events passed to `send` are queued and delivered by a single background
    worker, in the order they were sent. Delivery is fire-and-forget and
    at-most-once: `send` never reports the outcome, and a message that fails
    to format or to reach the relay is logged and dropped. There is no retry
    and no on-disk spool, so callers must not rely on this channel for
    durable delivery.

    The hand-off queue is bounded (`queue_size`, default 1): when the worker
    falls behind, `send` blocks, which slows producers down instead of
    buffering without limit. A `queue_size` of 0 makes the queue unbounded.
    """

    def __init__(
        self,
        config: SmtpConfig,
        transport: Optional[Transport] = None,
        queue_size: int = 1,
        tick_interval: Optional[float] = 1.0,
    ) -> None:
        self.config = config
        self._requests: "queue.Queue[Any]" = queue.Queue(maxsize=queue_size)
        self._lock = threading.Lock()
        self._closed = False
        # Producers that passed the closed check but may still be blocked in put().
        self._in_flight = 0

        self.worker = DeliveryWorker(
            self._requests,
            config,
            MessageFormatter(config.template),
            transport if transport is not None else MailTransport(config),
            tick_interval=tick_interval,
            drained=self._drained,
        )
        self.worker.start()
        logger.info(
            "SMTP channel started",
            extra={
                "smtp_host": config.server,
                "recipients_count": len(config.recipients),
                "templated": config.template is not None,
                "queue_size": queue_size,
            },
        )

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def state(self) -> WorkerState:
        return self.worker.state

    def send(self, event: Event) -> None:
        """
        Queue an event for delivery.

        Only text keys of the event are kept. Blocks only while the hand-off
        queue is full. A send that is already waiting when `close` is called
        still gets its record delivered.

        Args:
            event: A mapping, or an iterable of (key, value) pairs.

        Raises:
            ChannelClosedError: If `close` has already been called.
        """
        record = snapshot_event(event)
        with self._lock:
            if self._closed:
                raise ChannelClosedError("SMTP channel: send on closed channel")
            self._in_flight += 1
        try:
            self._requests.put(record)
        finally:
            with self._lock:
                self._in_flight -= 1
                if self._closed and self._in_flight == 0:
                    self._wake_worker()

    def close(self, timeout: Optional[float] = None) -> bool:
        """
        Stop accepting events and let the worker drain the queue.

        Records already queued are still delivered; the worker then stops.
        Never blocks on a full queue, so `timeout` bounds the whole call.
        Calling `close` again only waits for the worker.

        Args:
            timeout: Seconds to wait for the worker; None waits until it exits.

        Returns:
            bool: True if the worker has stopped.
        """
        with self._lock:
            if not self._closed:
                self._closed = True
                self.worker.stop()
                self._wake_worker()

        stopped = self.worker.join(timeout)
        if not stopped:
            logger.warning(
                "SMTP delivery worker still busy after close timeout",
                extra={"timeout": timeout, **self.worker.stats()},
            )
        return stopped

    def _drained(self) -> bool:
        with self._lock:
            return self._in_flight == 0 and self._requests.empty()

    def _wake_worker(self) -> None:
        # Called with the lock held. A full queue means the worker is busy
        # and re-checks on its own.
        try:
            self._requests.put_nowait(STOP)
        except queue.Full:
            pass

    def __enter__(self) -> "SmtpChannel":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(server='{self.config.server}', state='{self.state.value}')"


def new_smtp_channel(
    *options: ConfigOption,
    transport: Optional[Transport] = None,
    queue_size: int = 1,
    tick_interval: Optional[float] = 1.0,
) -> SmtpChannel:
    """
    Build a ready SMTP channel from configuration options.

    Options are applied in order (later ones win), the result is validated,
    and only then is the delivery worker started. Delivery is best-effort:
    see `SmtpChannel`.

    Args:
        *options: Functions such as `with_settings(...)` or `with_env()`.
        transport: Replacement for the SMTP transport (mainly for tests).
        queue_size: Hand-off queue bound; 0 for unbounded.
        tick_interval: Seconds between idle heartbeats; None disables them.

    Returns:
        SmtpChannel: A started channel.

    Raises:
        ConfigurationError: If a required setting is missing.
        TemplateError: If the body template does not parse.

    Example:
        >>> channel = new_smtp_channel(with_settings({
        ...     "server": "mail.example.com", "username": "u", "password": "p",
        ...     "subject": "Alert", "from": "a@example.com", "to": ["b@example.com"],
        ... }))
        >>> channel.send({"msg": "intrusion"})
        >>> channel.close()
    """
    config = build_config(*options)
    return SmtpChannel(config, transport=transport, queue_size=queue_size, tick_interval=tick_interval)


__all__ = ["ChannelClosedError", "SmtpChannel", "new_smtp_channel"]
