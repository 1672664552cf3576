# -*- coding: utf-8 -*-

"""
Pytest configuration and fixtures for linkio tests.
"""
import pytest

from unittest.mock import Mock, patch

from linkio.codec import MavlinkV1Codec
from linkio.reactor import EventLoopService
from linkio.registry import ChannelRegistry

from .fixtures.fakes import FakeReactor
from .fixtures.fakes import MessageCollector
from .fixtures.virtual_ports import virtual_serial_pair  # noqa: F401


@pytest.fixture
def registry():
    """Private channel registry, so tests never touch the process pool."""
    return ChannelRegistry()

@pytest.fixture
def reactor():
    """Real reactor thread, stopped after the test."""
    service = EventLoopService(name='linkio-test-reactor')
    service.start()
    yield service
    service.stop()

@pytest.fixture
def fake_reactor():
    """Inline reactor recording watcher registrations."""
    return FakeReactor()

@pytest.fixture
def codec():
    return MavlinkV1Codec()

@pytest.fixture
def collector():
    return MessageCollector()

@pytest.fixture
def mock_serial():
    """Mock serial port for testing."""
    with patch('serial.serial_for_url') as mock:
        instance = Mock()
        instance.is_open = True
        instance.fileno.return_value = 42
        instance.in_waiting = 0
        instance.read.return_value = b""
        instance.write.side_effect = lambda data: len(data)
        instance.close.return_value = None
        mock.return_value = instance
        yield instance
