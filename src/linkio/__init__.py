# -*- coding: utf-8 -*-

"""
Linkio - telemetry links over serial, UDP and TCP

Features:
- One descriptor string per endpoint (serial, udp, tcp, tcp-listen)
- Fixed pool of channel ids shared by all connections
- Single background reactor thread for all I/O
- Pluggable frame codec, MAVLink v1 by default
"""

from .factory import open_connection
from .factory import open_url

from .connection import Connection
from .serial_link import SerialConnection
from .udp import UdpConnection
from .tcp import TcpClientConnection
from .tcp import TcpServerConnection
from .tcp import TcpPeerConnection

from .descriptor import parse
from .descriptor import SerialDescriptor
from .descriptor import UdpDescriptor
from .descriptor import TcpDescriptor
from .descriptor import TcpListenDescriptor

from .registry import ChannelRegistry
from .registry import MAX_CHANNELS
from .registry import default_registry

from .reactor import EventLoopService
from .reactor import default_reactor

from .codec import Message
from .codec import MavlinkV1Codec
from .codec import CRC_EXTRA
from .codec import CodecError
from .codec import NeedMoreBytes
from .codec import CrcMismatch
from .codec import UnknownMessage

from .exceptions import LinkioError
from .exceptions import InvalidDescriptor
from .exceptions import ResourceExhausted
from .exceptions import TransportError
from .exceptions import PlatformNotSupportedError

__version__ = "0.1.0"
__license__ = "MIT"

__all__ = [
    # High-level API
    'open_connection',
    'open_url',
    'parse',

    # Connections
    'Connection',
    'SerialConnection',
    'UdpConnection',
    'TcpClientConnection',
    'TcpServerConnection',
    'TcpPeerConnection',

    # Descriptors
    'SerialDescriptor',
    'UdpDescriptor',
    'TcpDescriptor',
    'TcpListenDescriptor',

    # Shared services
    'ChannelRegistry',
    'MAX_CHANNELS',
    'default_registry',
    'EventLoopService',
    'default_reactor',

    # Codec
    'Message',
    'MavlinkV1Codec',
    'CRC_EXTRA',
    'CodecError',
    'NeedMoreBytes',
    'CrcMismatch',
    'UnknownMessage',

    # Exceptions
    'LinkioError',
    'InvalidDescriptor',
    'ResourceExhausted',
    'TransportError',
    'PlatformNotSupportedError',
]
