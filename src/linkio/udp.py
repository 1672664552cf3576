# -*- coding: utf-8 -*-

"""
UDP connection.

Bound to a local address; datagrams go to a fixed remote, or, when the remote
host is empty, to whoever sent the last datagram.
"""
import logging
import socket

from typing import Optional
from typing import Tuple

from .connection import Connection
from .descriptor import UDP_BIND
from .descriptor import UDP_REMOTE
from .descriptor import UdpDescriptor
from .exceptions import TransportError

MAX_DATAGRAM = 65535

log = logging.getLogger('linkio.udp')


class UdpConnection(Connection):

    name = 'udp'

    def __init__(
            self,
            peer_id: int,
            component_id: int,
            bind_host: str = UDP_BIND[0],
            bind_port: int = UDP_BIND[1],
            remote_host: str = UDP_REMOTE[0],
            remote_port: int = UDP_REMOTE[1],
            **kwargs
        ):
        super().__init__(peer_id, component_id, **kwargs)

        self._bind = (bind_host, bind_port)
        self._remote: Optional[Tuple[str, int]] = None
        self._fixed_remote = bool(remote_host)
        if remote_host:
            self._remote = (remote_host, remote_port)
        self._sock: Optional[socket.socket] = None

    @classmethod
    def from_descriptor(cls, descriptor: UdpDescriptor, peer_id: int, component_id: int, **kwargs):
        return cls(
            peer_id, component_id,
            descriptor.bind_host, descriptor.bind_port,
            descriptor.remote_host, descriptor.remote_port,
            **kwargs
        )

    @property
    def local_address(self) -> Optional[Tuple[str, int]]:
        """Bound address, with the real port when bound to port 0"""
        if self._sock is None:
            return None
        return self._sock.getsockname()[:2]

    @property
    def remote_address(self) -> Optional[Tuple[str, int]]:
        return self._remote

    def _open(self):
        try:
            family = socket.getaddrinfo(*self._bind, type=socket.SOCK_DGRAM)[0][0]
            self._sock = socket.socket(family, socket.SOCK_DGRAM)
            self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._sock.bind(self._bind)
            self._sock.setblocking(False)
        except OSError as e:
            log.error("udp: bind to %s:%d failed: %s", *self._bind, e)
            raise TransportError(self.name, e) from e

        log.debug("udp: bind %s:%d, remote %s", *self.local_address, self._remote)

    def _fileno(self) -> int:
        return self._sock.fileno()

    def _read(self) -> bytes:
        data, addr = self._sock.recvfrom(MAX_DATAGRAM)
        addr = addr[:2]
        if not self._fixed_remote and addr != self._remote:
            log.info("udp: channel %d: remote address %s:%d", self._channel, *addr)
            self._remote = addr
        return data

    def _send(self, data: bytes) -> int:
        if self._remote is None:
            log.debug("udp: channel %d: no remote yet, %d bytes dropped", self._channel, len(data))
            return len(data)
        return self._sock.sendto(data, self._remote)

    def _release(self):
        if self._sock is not None:
            self._sock.close()
