"""
Pytest configuration and shared fixtures

This file contains test fixtures that can be used across all tests.
Fixtures are reusable components that set up test preconditions.

Learn more: https://docs.pytest.org/en/stable/fixture.html
"""

import threading

import pytest

from pushers.smtp.transport import ComposedMessage, DeliveryFailure


class RecordingTransport:
    """
    In-memory stand-in for MailTransport.

    Records every message it is asked to send. Calls whose 1-based number is
    in `fail_on` raise DeliveryFailure instead, like an unreachable relay.
    """

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls = 0
        self.messages: list[ComposedMessage] = []
        self._lock = threading.Lock()

    def send(self, message: ComposedMessage) -> None:
        with self._lock:
            self.calls += 1
            if self.calls in self.fail_on:
                raise DeliveryFailure("Failed to send email via mail.example.com:587: [Errno 111] Connection refused")
            self.messages.append(message)

    @property
    def bodies(self) -> list[str]:
        return [message.body for message in self.messages]


@pytest.fixture(scope="function")
def smtp_settings() -> dict:
    """
    Provide a complete, valid SMTP channel configuration.

    Scope: function (created fresh for each test, so tests may mutate it)

    Returns:
        dict: Settings using the configuration-surface keys
    """
    return {
        "server": "mail.example.com",
        "username": "u",
        "password": "p",
        "subject": "Alert",
        "from": "a@example.com",
        "to": ["b@example.com"],
    }


@pytest.fixture(scope="function")
def recording_transport() -> RecordingTransport:
    """Provide a transport that records messages instead of sending them."""
    return RecordingTransport()


@pytest.fixture(scope="function")
def sample_event() -> dict:
    """
    Provide a typical detection event.

    Returns:
        dict: Event fields as produced by a honeypot sensor
    """
    return {
        "category": "ssh",
        "type": "password-authentication",
        "source-ip": "203.0.113.7",
        "source-port": 52144,
        "ssh.username": "root",
        "ssh.password": "123456",
        "success": False,
    }


# Mark tests based on their type for selective running
def pytest_configure(config):
    """
    Register custom pytest markers.

    This allows us to run specific test categories:
    - pytest -m unit        (run only unit tests)
    - pytest -m integration (run only integration tests)
    - pytest -m "not slow"  (skip slow tests)
    """
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test (isolated, fast)"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (uses local sockets)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running (>1 second)"
    )
