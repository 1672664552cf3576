# -*- coding: utf-8 -*-

"""
TCP connections: client, listening server and the server's accepted peers.

Every accepted peer gets its own channel id, so per-peer decode state and
sequence numbers stay isolated. Messages from peers reach the server's
handlers tagged with the peer's channel.
"""
import logging
import socket

from typing import List
from typing import Optional
from typing import Tuple

from .connection import Connection
from .connection import READ_SIZE
from .descriptor import TCP_CLIENT
from .descriptor import TCP_LISTEN
from .descriptor import TcpDescriptor
from .descriptor import TcpListenDescriptor
from .exceptions import ResourceExhausted
from .exceptions import TransportError

CONNECT_TIMEOUT = 5.0
LISTEN_BACKLOG = 8

log = logging.getLogger('linkio.tcp')


def _set_nodelay(sock: socket.socket):
    try:
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    except OSError:
        pass


class _StreamConnection(Connection):
    """Connection over a connected stream socket"""

    _sock: Optional[socket.socket] = None
    _eof = False

    @property
    def remote_address(self) -> Optional[Tuple[str, int]]:
        if self._sock is None:
            return None
        try:
            return self._sock.getpeername()[:2]
        except OSError:
            return None

    def _fileno(self) -> int:
        return self._sock.fileno()

    def _read(self) -> bytes:
        data = self._sock.recv(READ_SIZE)
        if not data:
            self._eof = True
            raise TransportError(self.name, message='connection closed by peer')
        return data

    def _send(self, data: bytes) -> int:
        return self._sock.send(data)

    def _release(self):
        if self._sock is not None:
            self._sock.close()


class TcpClientConnection(_StreamConnection):
    """
    Client side of a TCP link.

    ``open()`` connects synchronously (bounded by CONNECT_TIMEOUT) so that
    refused or unreachable servers fail the factory call.
    """

    name = 'tcp'

    def __init__(
            self,
            peer_id: int,
            component_id: int,
            host: str = TCP_CLIENT[0],
            port: int = TCP_CLIENT[1],
            **kwargs
        ):
        super().__init__(peer_id, component_id, **kwargs)
        self._server = (host, port)

    @classmethod
    def from_descriptor(cls, descriptor: TcpDescriptor, peer_id: int, component_id: int, **kwargs):
        return cls(peer_id, component_id, descriptor.host, descriptor.port, **kwargs)

    @property
    def server_address(self) -> Tuple[str, int]:
        return self._server

    def _open(self):
        try:
            self._sock = socket.create_connection(self._server, timeout=CONNECT_TIMEOUT)
            _set_nodelay(self._sock)
            self._sock.setblocking(False)
        except OSError as e:
            log.error("tcp: connect to %s:%d failed: %s", *self._server, e)
            raise TransportError(self.name, e) from e

        log.debug("tcp: connected to %s:%d", *self._server)


class TcpPeerConnection(_StreamConnection):
    """A peer accepted by TcpServerConnection"""

    name = 'tcp-peer'

    def __init__(self, server: 'TcpServerConnection', sock: socket.socket, address: Tuple[str, int]):
        super().__init__(
            server.peer_id,
            server.component_id,
            registry=server.registry,
            reactor=server.reactor,
            codec=server._codec
        )
        self._server = server
        self._sock = sock
        self._address = address

    @property
    def address(self) -> Tuple[str, int]:
        return self._address

    @property
    def server(self) -> 'TcpServerConnection':
        return self._server

    def _open(self):
        # accepted socket is ready to use
        pass

    def _dispatch(self, message, channel):
        super()._dispatch(message, channel)
        self._server._dispatch(message, channel)

    def _report(self, error, channel):
        with self._lock:
            own = bool(self._error_handlers)
        # without own handlers the listener logs it
        if own:
            super()._report(error, channel)
        self._server._report(error, channel)

    def _fatal_error(self, error: TransportError):
        if self._eof:
            log.info("tcp-listen: peer %s:%d on channel %d disconnected",
                     *self._address, self._channel)
            self.close()
            return
        super()._fatal_error(error)

    def close(self):
        try:
            super().close()
        finally:
            self._server._forget(self)


class TcpServerConnection(Connection):
    """
    Listening TCP socket.

    ``send()`` broadcasts to every connected peer.
    """

    name = 'tcp-listen'

    def __init__(
            self,
            peer_id: int,
            component_id: int,
            host: str = TCP_LISTEN[0],
            port: int = TCP_LISTEN[1],
            **kwargs
        ):
        super().__init__(peer_id, component_id, **kwargs)
        self._bind = (host, port)
        self._sock: Optional[socket.socket] = None
        self._peers: List[TcpPeerConnection] = []

    @classmethod
    def from_descriptor(cls, descriptor: TcpListenDescriptor, peer_id: int, component_id: int, **kwargs):
        return cls(peer_id, component_id, descriptor.host, descriptor.port, **kwargs)

    @property
    def local_address(self) -> Optional[Tuple[str, int]]:
        if self._sock is None:
            return None
        return self._sock.getsockname()[:2]

    @property
    def peers(self) -> Tuple[TcpPeerConnection, ...]:
        with self._lock:
            return tuple(self._peers)

    def _open(self):
        try:
            family = socket.getaddrinfo(*self._bind, type=socket.SOCK_STREAM)[0][0]
            self._sock = socket.socket(family, socket.SOCK_STREAM)
            self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._sock.bind(self._bind)
            self._sock.listen(LISTEN_BACKLOG)
            self._sock.setblocking(False)
        except OSError as e:
            log.error("tcp-listen: bind to %s:%d failed: %s", *self._bind, e)
            raise TransportError(self.name, e) from e

        log.debug("tcp-listen: listening on %s:%d", *self.local_address)

    def _fileno(self) -> int:
        return self._sock.fileno()

    def _read_ready(self):
        """Accept one pending peer"""
        if self._closed:
            return

        try:
            sock, address = self._sock.accept()
        except (BlockingIOError, InterruptedError):
            return
        except ConnectionAbortedError as e:
            log.warning("tcp-listen: accept aborted: %s", e)
            return
        except OSError as e:
            self._fatal_error(TransportError(self.name, e))
            return

        self._accepted(sock, address[:2])

    def _accepted(self, sock: socket.socket, address: Tuple[str, int]):
        sock.setblocking(False)
        _set_nodelay(sock)

        try:
            peer = TcpPeerConnection(self, sock, address)
        except ResourceExhausted:
            log.warning("tcp-listen: no free channel, rejecting peer %s:%d", *address)
            sock.close()
            return

        with self._lock:
            self._peers.append(peer)

        log.info("tcp-listen: peer %s:%d accepted on channel %d", *address, peer.channel)
        peer.open()

    def _forget(self, peer: TcpPeerConnection):
        with self._lock:
            if peer in self._peers:
                self._peers.remove(peer)

    def _write(self, data: bytes):
        if self._closed:
            return
        for peer in self.peers:
            peer._write(data)

    def _release(self):
        if self._sock is not None:
            self._sock.close()

    def close(self):
        super().close()
        for peer in self.peers:
            peer.close()
