"""
Pushers - Main Entry Point

Host process for notification channels. Reads events as JSON lines (one
object per line) and forwards each one to every enabled channel listed in
the channels configuration file.

Usage:
    python -m pushers.main [OPTIONS]

Options:
    --config PATH         Channels configuration file (default: config/channels.yml)
    --events PATH         JSON-lines file to read events from (default: stdin)
    --verbose             Enable debug logging
    --help                Show this message and exit

Examples:
    # Relay alerts produced by a detector:
    detector --json | python -m pushers.main --config config/channels.yml

    # Replay a saved batch of events:
    python -m pushers.main --events events.jsonl --verbose

Exit Codes:
    0: Success
    1: Some input lines were not valid JSON objects (they were skipped)
    2: Fatal error (missing or invalid configuration, etc.)

Delivery is best-effort: a zero exit code means every event was handed to
the channels, not that every email reached its recipients.
"""

import argparse
import json
import logging
import sys
from collections.abc import Callable, Iterable
from typing import Optional

from dotenv import load_dotenv

from .base import Channel, Dispatcher
from .config import ChannelEntry, load_channels_config
from .smtp import new_smtp_channel, with_env, with_settings

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# Channel type name -> constructor. The constructor receives configuration
# options and returns a started channel.
CHANNEL_FACTORIES: dict[str, Callable[..., Channel]] = {
    "smtp": new_smtp_channel,
}


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description='Relay JSON events to configured notification channels',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument(
        '--config',
        type=str,
        help='Channels configuration file (default: config/channels.yml)',
        default=None
    )

    parser.add_argument(
        '--events',
        type=str,
        help='JSON-lines file with one event per line (default: stdin)',
        default=None
    )

    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable debug logging'
    )

    return parser.parse_args(argv)


def build_channels(
    entries: Iterable[ChannelEntry],
    factories: Optional[dict[str, Callable[..., Channel]]] = None,
) -> list[Channel]:
    """
    Construct every enabled channel.

    Settings from the file are applied first; if the entry names an
    `env_prefix`, matching environment variables override them.

    Raises:
        ValueError: If an entry names an unknown channel type, or a channel
            rejects its configuration. Channels built before the failure are
            closed again.
    """
    factories = factories if factories is not None else CHANNEL_FACTORIES
    channels: list[Channel] = []
    try:
        for entry in entries:
            if not entry.enabled:
                logger.info(f"Channel '{entry.name}' disabled, skipping")
                continue

            factory = factories.get(entry.type)
            if factory is None:
                raise ValueError(
                    f"Channel '{entry.name}' has unknown type '{entry.type}' "
                    f"(known: {', '.join(sorted(factories))})"
                )

            options = [with_settings(entry.settings)]
            if entry.env_prefix:
                options.append(with_env(prefix=entry.env_prefix))
            channels.append(factory(*options))
            logger.info(f"Channel '{entry.name}' started", extra={'channel_type': entry.type})
    except Exception:
        for channel in channels:
            channel.close()
        raise
    return channels


def run_pusher(dispatcher: Dispatcher, lines: Iterable[str]) -> dict[str, int]:
    """
    Main relay loop.

    Args:
        dispatcher: Dispatcher wrapping the started channels
        lines: Input lines, each holding one JSON object

    Returns:
        Statistics dictionary with counts of dispatched and invalid lines
    """
    stats = {'dispatched': 0, 'invalid': 0}

    for line_no, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning(f"Line {line_no}: invalid JSON, skipping: {e}")
            stats['invalid'] += 1
            continue
        if not isinstance(event, dict):
            logger.warning(f"Line {line_no}: expected a JSON object, got {type(event).__name__}")
            stats['invalid'] += 1
            continue

        dispatcher.dispatch(event)
        stats['dispatched'] += 1

    return stats


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the pushers CLI.

    Returns:
        int: Exit code (0 success, 1 invalid input lines, 2 fatal error)
    """
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stderr)
        ]
    )

    try:
        entries = load_channels_config(args.config)
        channels = build_channels(entries)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Failed to start channels: {e}")
        return 2

    if not channels:
        logger.error("No enabled channels configured")
        return 2

    dispatcher = Dispatcher(channels)
    try:
        if args.events:
            with open(args.events, encoding='utf-8') as handle:
                stats = run_pusher(dispatcher, handle)
        else:
            stats = run_pusher(dispatcher, sys.stdin)
    except OSError as e:
        logger.error(f"Failed to read events: {e}")
        return 2
    finally:
        dispatcher.close()

    logger.info("Relay finished", extra=stats)
    return 1 if stats['invalid'] else 0


if __name__ == '__main__':
    sys.exit(main())
