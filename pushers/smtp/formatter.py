"""
Message body formatting for the SMTP channel.

Without a template, the event record is serialized as canonical JSON. With a
template, the record is rendered through Jinja2: every field is a top-level
variable and the whole record is also reachable as `event`. Templates written
with leading-dot field references (`{{.src_ip}}`) are accepted as well, and a
bare `{{.}}` stands for the whole record.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from typing import Any, Optional

import jinja2
from jinja2 import Environment, StrictUndefined, Template

logger = logging.getLogger(__name__)

# `{{.name}}` / `{{- .name }}` -> `{{name}}`
_LEADING_DOT = re.compile(r"(\{\{-?\s*)\.(?=[A-Za-z_])")
# `{{.}}` / `{{ . | length }}` -> `{{event}}`
_WHOLE_RECORD = re.compile(r"(\{\{-?\s*)\.(?=\s*(?:-?\}\}|\|))")

_environment = Environment(
    undefined=StrictUndefined,
    keep_trailing_newline=True,
    autoescape=False,
)


class TemplateError(ValueError):
    """Raised when a body template does not parse."""


class FormattingFailure(Exception):
    """Raised when an event record cannot be turned into a message body."""


def compile_template(source: str) -> Template:
    """
    Compile a body template.

    Args:
        source: Jinja2 template text; leading-dot references are rewritten
            to plain variable names first.

    Returns:
        Template: The compiled template, ready to render any number of times.

    Raises:
        TemplateError: If the source has a syntax error.
    """
    try:
        source = _WHOLE_RECORD.sub(r"\1event", source)
        return _environment.from_string(_LEADING_DOT.sub(r"\1", source))
    except jinja2.TemplateSyntaxError as err:
        raise TemplateError(
            f"SMTP channel: body template does not parse (line {err.lineno}): {err.message}"
        ) from err


class MessageFormatter:
    """
    Turns event records into message bodies.
    """

    def __init__(self, template: Optional[Template] = None):
        self.template = template

    def render(self, record: Mapping[str, Any]) -> str:
        """
        Produce the body for one record.

        Raises:
            FormattingFailure: If the record is not JSON-encodable (no template)
                or the template fails while rendering.
        """
        if self.template is None:
            try:
                return json.dumps(dict(record), sort_keys=True, separators=(",", ":"), ensure_ascii=False)
            except (TypeError, ValueError) as err:
                raise FormattingFailure(f"Failed to serialize event to JSON: {err}") from err

        try:
            return self.template.render({"event": record, **record})
        except Exception as err:
            raise FormattingFailure(f"Failed to render email body: {err}") from err

    def format(self, record: Mapping[str, Any]) -> str:
        """
        Produce the body for one record, or an empty string on failure.

        An empty result means the record must not be delivered. The failure
        is logged here.
        """
        try:
            return self.render(record)
        except FormattingFailure as err:
            logger.error(
                f"{err}",
                extra={"fields": sorted(record), "templated": self.template is not None},
            )
            return ""


__all__ = ["FormattingFailure", "MessageFormatter", "TemplateError", "compile_template"]
