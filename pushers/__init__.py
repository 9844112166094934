"""Notification pushers.

This package relays events from a monitoring/detection pipeline to external
notification channels:
- base: Channel protocol, event snapshots and the fan-out Dispatcher
- config: channels.yml loader used by the host entry point
- smtp: best-effort email channel (queue, delivery worker, formatter, transport)
- main: command-line host that wires configured channels together
"""

__version__ = "0.1.0"
