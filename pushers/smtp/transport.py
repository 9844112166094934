from __future__ import annotations

import logging
import smtplib
import ssl
from collections.abc import Sequence
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any, Optional

from .config import SmtpConfig

logger = logging.getLogger(__name__)

# RFC 5321 text line limit, excluding CRLF.
MAX_LINE_LENGTH = 998


class DeliveryFailure(Exception):
    """Raised when a message could not be handed to the relay."""


@dataclass(frozen=True)
class ComposedMessage:
    """
    One outgoing email, built per delivery attempt.
    """

    sender: str
    recipients: Sequence[str]
    subject: str
    body: str

    def to_email(self) -> EmailMessage:
        """Build a plain-text message with To/From/Subject headers and the body."""
        email = EmailMessage()
        email["To"] = ", ".join(self.recipients)
        email["From"] = self.sender
        email["Subject"] = self.subject
        email.set_content(self.body, cte=self._transfer_encoding())
        return email

    def _transfer_encoding(self) -> Optional[str]:
        # Bodies go out unencoded unless a line exceeds the SMTP limit; then
        # the stdlib picks quoted-printable or base64.
        if any(len(line.encode("utf-8")) > MAX_LINE_LENGTH for line in self.body.splitlines()):
            return None
        return "7bit" if self.body.isascii() else "8bit"


class MailTransport:
    """
    SMTP submission client for a single relay.

    Each call to `send` opens its own session: connect, optional STARTTLS,
    login, submit, quit. No connection is kept between messages.
    """

    def __init__(self, config: SmtpConfig) -> None:
        self.host = config.server
        self.port = config.port
        self.username = config.username
        self.password = config.password
        self.use_tls = config.use_tls
        self.timeout = config.timeout

    def send(self, message: ComposedMessage) -> None:
        """
        Submit a message to every recipient in one transaction.

        Args:
            message: The message to send.

        Raises:
            DeliveryFailure: On any connection, TLS, authentication or relay
                error. The original exception is chained.
        """
        email = message.to_email()
        logger.debug(
            "Submitting email",
            extra={
                "smtp_host": self.host,
                "smtp_port": self.port,
                "sender": message.sender,
                "recipients": list(message.recipients),
            },
        )
        try:
            with smtplib.SMTP(self.host, self.port, **self._connect_kwargs()) as server:
                if self.use_tls:
                    self._maybe_starttls(server)
                server.login(self.username, self.password)
                server.send_message(email, from_addr=message.sender, to_addrs=list(message.recipients))
        except (smtplib.SMTPException, OSError) as err:
            raise DeliveryFailure(f"Failed to send email via {self.host}:{self.port}: {err}") from err

    def _connect_kwargs(self) -> dict[str, Any]:
        if self.timeout is None:
            return {}
        return {"timeout": self.timeout}

    def _maybe_starttls(self, server: smtplib.SMTP) -> None:
        """
        Upgrade the session with STARTTLS if the relay offers it.

        Relays that do not advertise STARTTLS are used as-is, which is what
        plain submission to a local or trusted relay expects.
        """
        server.ehlo()
        if server.has_extn("starttls"):
            context = ssl.create_default_context()
            server.starttls(context=context)
            server.ehlo()


__all__ = ["ComposedMessage", "DeliveryFailure", "MailTransport"]
