"""
Configuration for the SMTP channel.

`SmtpConfig` is validated once, when it is built, and is immutable afterwards:
a config object that exists is a complete one. Settings reach it either as a
plain mapping (`SmtpConfig.from_dict`, usually one entry of channels.yml) or
through option functions applied in order by `new_smtp_channel`.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from jinja2 import Template

from .formatter import compile_template

logger = logging.getLogger(__name__)

SUBMISSION_PORT = 587
DEFAULT_SECRET_PATH = "/run/secrets/smtp_password"

ConfigOption = Callable[[dict[str, Any]], None]


class ConfigurationError(ValueError):
    """Raised when a required SMTP channel setting is missing or invalid."""


@dataclass(frozen=True)
class SmtpConfig:
    """
    Validated settings for one SMTP channel.

    Attributes:
        server: Relay host name, e.g. mail.example.com.
        username: Login for the relay.
        password: Password for the relay. Never logged.
        subject: Subject line used for every message.
        sender: Envelope and header From address (`from` in config files).
        recipients: Recipient addresses (`to`); the first entry is required.
        body_template: Optional Jinja2 source for the message body.
        port: Submission port on the relay.
        use_tls: Upgrade with STARTTLS when the relay advertises it.
        timeout: Socket timeout in seconds; None waits indefinitely.
        template: Template compiled from `body_template`, or None.
    """

    server: str
    username: str
    password: str = field(repr=False)
    subject: str
    sender: str
    recipients: tuple[str, ...]
    body_template: str = ""
    port: int = SUBMISSION_PORT
    use_tls: bool = True
    timeout: Optional[float] = None
    template: Optional[Template] = field(init=False, default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "recipients", tuple(self.recipients or ()))
        self.validate()
        if self.body_template:
            # Compiled exactly once; raises TemplateError on bad syntax.
            object.__setattr__(self, "template", compile_template(self.body_template))

    def validate(self) -> None:
        """
        Check that every required setting is present.

        Raises:
            ConfigurationError: On the first missing setting, in the order
                server, username, password, subject, from, to.
        """
        if not self.server:
            raise ConfigurationError("SMTP channel: mail server not set, ex: mail.google.com")
        if not self.username:
            raise ConfigurationError("SMTP channel: username not set, ex: abc@example.com")
        if not self.password:
            raise ConfigurationError("SMTP channel: password not set")
        if not self.subject:
            raise ConfigurationError("SMTP channel: email subject not set, ex: Honeypot alerts")
        if not self.sender:
            raise ConfigurationError("SMTP channel: from address not set, ex: alert@example.com")
        if not self.recipients or not self.recipients[0]:
            raise ConfigurationError(
                'SMTP channel: at least the first recipient must be set, '
                'ex: ["admin1@example.com", "admin2@example.com"]'
            )
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"SMTP channel: port out of range: {self.port}")

    @classmethod
    def from_dict(cls, settings: Mapping[str, Any]) -> "SmtpConfig":
        """
        Build a config from configuration-surface keys.

        Recognised keys: server, username, password, subject, from, to,
        body_template, port, use_tls, timeout. `to` may be a list or a
        comma-separated string.

        Raises:
            ConfigurationError: If a required key is missing or a value has
                the wrong shape.
            TemplateError: If `body_template` does not parse.
        """
        return cls(
            server=_as_text(settings.get("server")),
            username=_as_text(settings.get("username")),
            password=_as_raw_text(settings.get("password")),
            subject=_as_text(settings.get("subject")),
            sender=_as_text(settings.get("from")),
            recipients=_parse_recipients(settings.get("to")),
            body_template=_as_raw_text(settings.get("body_template")),
            port=_parse_port(settings.get("port", SUBMISSION_PORT)),
            use_tls=_parse_bool(settings.get("use_tls", True)),
            timeout=_parse_timeout(settings.get("timeout")),
        )


def _as_text(value: Any) -> str:
    return "" if value is None else str(value).strip()


# Passwords and templates are used byte for byte.
def _as_raw_text(value: Any) -> str:
    return "" if value is None else str(value)


def _parse_recipients(value: Any) -> tuple[str, ...]:
    """
    Normalise the `to` setting into a tuple of addresses.

    Whitespace around addresses is trimmed. Empty entries are kept in place
    so that an empty first entry is still reported as missing.
    """
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(r.strip() for r in value.split(",")) if value.strip() else ()
    if isinstance(value, Sequence):
        return tuple(_as_text(r) for r in value)
    raise ConfigurationError(f"SMTP channel: `to` must be a list of addresses, got: {value!r}")


def _parse_port(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as err:
        raise ConfigurationError(f"SMTP channel: port must be numeric, got: {value}") from err


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _parse_timeout(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as err:
        raise ConfigurationError(f"SMTP channel: timeout must be numeric, got: {value}") from err


def with_settings(settings: Mapping[str, Any]) -> ConfigOption:
    """Option that merges explicit settings over whatever was applied before."""

    def apply(target: dict[str, Any]) -> None:
        target.update(settings)

    return apply


_ENV_KEYS = {
    "SERVER": "server",
    "USERNAME": "username",
    "PASSWORD": "password",
    "SUBJECT": "subject",
    "FROM": "from",
    "TO": "to",
    "BODY_TEMPLATE": "body_template",
    "PORT": "port",
    "USE_TLS": "use_tls",
    "TIMEOUT": "timeout",
}


def with_env(prefix: str = "SMTP_", secret_path: str = DEFAULT_SECRET_PATH) -> ConfigOption:
    """
    Option that fills settings from environment variables.

    Each variable that is set (e.g. SMTP_SERVER, SMTP_TO) overrides the
    corresponding key. When no password has been provided by the environment
    or an earlier option, the Docker secret file at `secret_path` is read.

    Args:
        prefix: Prefix of the environment variable names.
        secret_path: Location of the password secret file.
    """

    def apply(target: dict[str, Any]) -> None:
        for suffix, key in _ENV_KEYS.items():
            value = os.getenv(prefix + suffix)
            if value is not None:
                target[key] = value
        if not target.get("password"):
            password = _read_secret(secret_path)
            if password:
                target["password"] = password

    return apply


def _read_secret(secret_path: str) -> Optional[str]:
    """
    Read a password from a Docker secret file.

    Returns:
        str | None: The stripped file contents, or None if the file is absent.

    Note:
        Attempts UTF-8 first, falls back to UTF-16 if needed.
    """
    path = Path(secret_path)
    if not path.exists():
        return None
    try:
        return path.read_text(encoding="utf-8").strip()
    except UnicodeDecodeError:
        logger.debug("Secret file is not UTF-8, retrying as UTF-16", extra={"secret_path": secret_path})
        return path.read_text(encoding="utf-16").strip()


def build_config(*options: ConfigOption) -> SmtpConfig:
    """
    Apply option functions in order, then validate.

    Raises:
        ConfigurationError: If the resulting settings are incomplete.
        TemplateError: If the body template does not parse.
    """
    settings: dict[str, Any] = {}
    for option in options:
        option(settings)
    return SmtpConfig.from_dict(settings)


__all__ = [
    "ConfigOption",
    "ConfigurationError",
    "SmtpConfig",
    "SUBMISSION_PORT",
    "build_config",
    "with_env",
    "with_settings",
]
