from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Protocol, Union

logger = logging.getLogger(__name__)

EventRecord = dict[str, Any]

# Anything a producer may hand to a channel: a mapping, or an iterable of
# (key, value) pairs.
Event = Union[Mapping[Any, Any], Iterable[tuple[Any, Any]]]


class Channel(Protocol):
    """
    Protocol for a notification channel implementation.

    Channels are fire-and-forget: `send` hands the event over and returns
    without reporting whether delivery succeeded.
    """

    def send(self, event: Event) -> None:
        """Hand the event over to this channel."""

    def close(self) -> None:
        """Stop accepting events and release the channel's resources."""


def snapshot_event(event: Event) -> EventRecord:
    """
    Copy an event's fields into a fresh EventRecord.

    Only text keys are kept; pairs with any other key type are skipped.

    Args:
        event: A mapping, or an iterable yielding (key, value) pairs.

    Returns:
        EventRecord: A new dict owned by the caller.
    """
    pairs = event.items() if isinstance(event, Mapping) else event
    return {key: value for key, value in pairs if isinstance(key, str)}


class Dispatcher:
    """
    Fans events out to one or more channels.
    """

    def __init__(self, channels: Sequence[Channel]):
        self._channels = list(channels)

    @property
    def channels(self) -> list[Channel]:
        return list(self._channels)

    def dispatch(self, event: Event) -> None:
        """
        Send an event to every configured channel.

        If one channel raises, the error is logged and the event is still
        offered to the remaining channels.

        Args:
            event: The event to hand to each channel.
        """
        record = snapshot_event(event)
        for channel in self._channels:
            try:
                channel.send(record)
            except Exception as e:
                channel_name = channel.__class__.__name__
                logger.error(
                    f"Channel {channel_name} failed to accept event: {e}",
                    exc_info=True
                )

    def close(self) -> None:
        """Close every channel, logging (not raising) individual failures."""
        for channel in self._channels:
            try:
                channel.close()
            except Exception as e:
                channel_name = channel.__class__.__name__
                logger.error(
                    f"Channel {channel_name} failed to close: {e}",
                    exc_info=True
                )
