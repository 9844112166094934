"""Pushers Test Suite.

This package contains unit and integration tests for the pushers project.

Test Structure:
- unit/: Unit tests for individual functions and classes
- integration/: Tests that exercise a real smtplib client over local sockets
"""
