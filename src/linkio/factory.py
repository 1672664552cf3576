# -*- coding: utf-8 -*-

"""
Connection factory: descriptor in, open connection out.
"""
import logging

from typing import Mapping
from typing import Optional
from typing import Type
from typing import Union

from .codec import Codec
from .connection import Connection
from .descriptor import Descriptor
from .descriptor import parse
from .exceptions import InvalidDescriptor
from .reactor import EventLoopService
from .registry import ChannelRegistry
from .serial_link import SerialConnection
from .tcp import TcpClientConnection
from .tcp import TcpServerConnection
from .udp import UdpConnection

DEFAULT_PEER_ID = 1
DEFAULT_COMPONENT_ID = 240

TRANSPORTS: Mapping[str, Type[Connection]] = {
    'serial': SerialConnection,
    'udp': UdpConnection,
    'tcp': TcpClientConnection,
    'tcp-listen': TcpServerConnection,
}

log = logging.getLogger('linkio.factory')


def open_connection(
    descriptor: Union[str, Descriptor],
    peer_id: int = DEFAULT_PEER_ID,
    component_id: int = DEFAULT_COMPONENT_ID,
    *,
    registry: Optional[ChannelRegistry] = None,
    reactor: Optional[EventLoopService] = None,
    codec: Optional[Codec] = None,
    transports: Optional[Mapping[str, Type[Connection]]] = None
) -> Connection:
    """
    Open a connection for an endpoint descriptor.

    This is the main entry point for most use cases.

    Args:
        descriptor: Descriptor text (e.g. ``'udp://:14555@:14550'``) or an
                    already parsed descriptor
        peer_id: Default peer id, overridden by ``?ids=``
        component_id: Default component id, overridden by ``?ids=``
        registry: Channel registry (default: process registry)
        reactor: Event-loop service (default: process reactor)
        codec: Frame codec (default: MavlinkV1Codec)
        transports: Replacement for the scheme -> class table

    Returns:
        The open Connection

    Raises:
        InvalidDescriptor: If the descriptor is malformed
        ResourceExhausted: If no channel is free
        TransportError: If the OS resource can not be acquired

    Example:
        >>> conn = open_connection('tcp://localhost:5760?ids=1,240')
        >>> conn.subscribe(lambda msg, channel: print(channel, msg))
        >>> conn.send(Message(0, heartbeat_payload))
    """
    if isinstance(descriptor, str):
        descriptor = parse(descriptor)

    table = TRANSPORTS if transports is None else transports
    try:
        transport_cls = table[descriptor.scheme]
    except (KeyError, AttributeError):
        raise InvalidDescriptor(f"No transport for descriptor {descriptor!r}")

    if descriptor.peer_id is not None:
        peer_id = descriptor.peer_id
    if descriptor.component_id is not None:
        component_id = descriptor.component_id

    conn = transport_cls.from_descriptor(
        descriptor, peer_id, component_id,
        registry=registry,
        reactor=reactor,
        codec=codec
    )

    try:
        conn.open()
    except Exception as e:
        log.error("Failed to open %s: %s", descriptor, e)
        try:
            conn.close()
        except Exception:
            log.exception("Failed to clean up %s", descriptor)
        raise

    return conn


# Convenient aliases
open_url = open_connection
