"""
Test fixtures for linkio testing.

Provides a fake reactor, substitutable transports, collectors and a pty
pair for testing connections without hardware dependencies.
"""

from .fakes import (
    FakeReactor,
    FakeConnection,
    FailingConnection,
    MessageCollector,
    wait_for,
)
from .virtual_ports import (
    virtual_serial_pair,
    read_available,
)

__all__ = [
    'FakeReactor',
    'FakeConnection',
    'FailingConnection',
    'MessageCollector',
    'wait_for',
    'virtual_serial_pair',
    'read_available',
]
