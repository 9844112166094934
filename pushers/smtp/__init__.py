"""SMTP pusher.

Relays events as email through an authenticated SMTP relay. Delivery is
best-effort and at-most-once: events are queued, formatted and submitted by
one background worker, and failures are logged, never retried.

Main components:
- SmtpChannel / new_smtp_channel: facade that validates config and owns the worker
- DeliveryWorker: background loop (queue -> formatter -> transport)
- MessageFormatter: JSON or Jinja2 body rendering
- MailTransport: smtplib submission client
"""

from .channel import ChannelClosedError, SmtpChannel, new_smtp_channel
from .config import ConfigurationError, SmtpConfig, with_env, with_settings
from .formatter import FormattingFailure, MessageFormatter, TemplateError
from .transport import ComposedMessage, DeliveryFailure, MailTransport
from .worker import DeliveryWorker, WorkerState

__all__ = [
    "ChannelClosedError",
    "ComposedMessage",
    "ConfigurationError",
    "DeliveryFailure",
    "DeliveryWorker",
    "FormattingFailure",
    "MailTransport",
    "MessageFormatter",
    "SmtpChannel",
    "SmtpConfig",
    "TemplateError",
    "WorkerState",
    "new_smtp_channel",
    "with_env",
    "with_settings",
]
