# -*- coding: utf-8 -*-

"""
Connection base class.

A connection owns one channel id, one identity pair and one OS resource. The
transport subclasses only acquire/release the resource and move raw bytes;
everything else lives here:

- inbound bytes are fed through the codec, decoded messages are pushed to the
  subscribed handlers on the reactor thread
- outbound data is queued on the reactor thread and drained when the resource
  is writable
- ``close()`` unregisters the watchers, releases the resource and returns the
  channel id, exactly once
"""
import concurrent.futures
import logging
import threading

from typing import Any
from typing import Callable
from typing import List
from typing import Optional
from typing import Union

from .codec import Codec
from .codec import CodecError
from .codec import MavlinkV1Codec
from .codec import Message
from .codec import NeedMoreBytes
from .codec import UnknownMessage
from .exceptions import TransportError
from .reactor import EventLoopService
from .reactor import default_reactor
from .registry import ChannelRegistry
from .registry import default_registry

READ_SIZE = 4096
CLOSE_TIMEOUT = 2.0

MessageHandler = Callable[[Message, int], Any]
ErrorHandler = Callable[[Exception, int], Any]

log = logging.getLogger('linkio.connection')


class Connection:
    """
    Common part of every transport.

    Subclasses implement:

    - ``_open()``: acquire the OS resource, raise TransportError on failure
    - ``_fileno()``: descriptor to watch
    - ``_read()``: one non-blocking read, returns bytes (``b''`` if nothing)
    - ``_send(data)``: one non-blocking write, returns bytes written
    - ``_release()``: close the OS resource
    """

    name = 'connection'

    def __init__(
            self,
            peer_id: int,
            component_id: int,
            *,
            registry: Optional[ChannelRegistry] = None,
            reactor: Optional[EventLoopService] = None,
            codec: Optional[Codec] = None
        ):
        self._registry = registry or default_registry()
        self._channel = self._registry.allocate()

        self._peer_id = peer_id
        self._component_id = component_id
        self._reactor = reactor or default_reactor()
        self._codec = codec or MavlinkV1Codec()

        self._lock = threading.Lock()
        self._closed = False
        self._opened = False
        self._handlers: List[MessageHandler] = []
        self._error_handlers: List[ErrorHandler] = []

        # Reactor thread only
        self._rx_buffer = bytearray()
        self._write_buffer: List[bytes] = []
        self._write_buffer_size = 0
        self._reader_active = False
        self._writer_active = False
        self._seq = 0

    @property
    def channel(self) -> int:
        return self._channel

    @property
    def peer_id(self) -> int:
        return self._peer_id

    @property
    def component_id(self) -> int:
        return self._component_id

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def reactor(self) -> EventLoopService:
        return self._reactor

    @property
    def registry(self) -> ChannelRegistry:
        return self._registry

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(channel={self._channel}, "
                f"ids=[{self._peer_id}, {self._component_id}], closed={self._closed})")

    def __enter__(self) -> 'Connection':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # --- lifecycle -----------------------------------------------------------

    def open(self):
        """
        Acquire the OS resource and start watching it.

        Raises:
            TransportError: If the resource can not be acquired
        """
        if self._closed:
            raise TransportError(self.name, message='connection is closed')
        if self._opened:
            return

        self._open()
        self._opened = True
        self._reactor.call_soon(self._start_reading)
        log.info("%s: channel %d opened", self, self._channel)

    def close(self):
        """Release everything; further calls are no-ops"""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        try:
            self._detach()
        finally:
            try:
                self._release()
            finally:
                self._registry.release(self._channel)
                log.info("%s: channel %d closed", self.name, self._channel)

    def _detach(self):
        """Remove the watchers on the reactor thread, within CLOSE_TIMEOUT"""
        if not self._reactor.is_running:
            return

        future = self._reactor.call(self._stop_io)
        try:
            future.result(CLOSE_TIMEOUT)
        except concurrent.futures.TimeoutError:
            log.warning("%s: reactor did not confirm close within %s s", self.name, CLOSE_TIMEOUT)

    def _stop_io(self):
        self._remove_reader()
        self._remove_writer()
        if self._write_buffer_size:
            log.debug("%s: dropping %d unsent bytes", self.name, self._write_buffer_size)
        self._write_buffer.clear()
        self._write_buffer_size = 0

    # --- handlers ------------------------------------------------------------

    def subscribe(self, handler: MessageHandler) -> Callable[[], None]:
        """
        Register ``handler(message, channel)`` for decoded messages.

        Handlers run on the reactor thread, in byte-arrival order.
        Returns a callable that removes the handler again.
        """
        with self._lock:
            self._handlers.append(handler)

        def unsubscribe():
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return unsubscribe

    on_receive = subscribe

    def on_error(self, handler: ErrorHandler) -> Callable[[], None]:
        """Register ``handler(error, channel)`` for asynchronous errors"""
        with self._lock:
            self._error_handlers.append(handler)

        def unsubscribe():
            with self._lock:
                if handler in self._error_handlers:
                    self._error_handlers.remove(handler)

        return unsubscribe

    def _dispatch(self, message: Message, channel: int):
        with self._lock:
            handlers = tuple(self._handlers)

        for handler in handlers:
            try:
                handler(message, channel)
            except Exception:
                log.exception("%s: message handler %r failed", self.name, handler)

    def _report(self, error: Exception, channel: int):
        with self._lock:
            handlers = tuple(self._error_handlers)

        if not handlers:
            log.error("%s: channel %d: %s", self.name, channel, error)
            return

        for handler in handlers:
            try:
                handler(error, channel)
            except Exception:
                log.exception("%s: error handler %r failed", self.name, handler)

    # --- receive path (reactor thread) ---------------------------------------

    def _start_reading(self):
        if self._closed or self._reader_active:
            return
        self._reactor.loop.add_reader(self._fileno(), self._read_ready)
        self._reader_active = True

    def _remove_reader(self):
        if self._reader_active:
            try:
                self._reactor.loop.remove_reader(self._fileno())
            except (OSError, ValueError):
                pass
            self._reader_active = False

    def _read_ready(self):
        """Handle incoming data - called when data is available"""
        if self._closed:
            return

        try:
            data = self._read()
        except (BlockingIOError, InterruptedError):
            return
        except TransportError as e:
            self._fatal_error(e)
            return
        except OSError as e:
            self._fatal_error(TransportError(self.name, e))
            return

        if data:
            self._data_received(data)

    def _data_received(self, data: bytes):
        self._rx_buffer.extend(data)

        while self._rx_buffer and not self._closed:
            try:
                message, consumed = self._codec.decode(self._rx_buffer)
            except NeedMoreBytes as e:
                del self._rx_buffer[:e.consumed]
                break
            except UnknownMessage as e:
                del self._rx_buffer[:max(e.consumed, 1)]
                log.debug("%s: channel %d: %s, frame dropped", self.name, self._channel, e)
                continue
            except CodecError as e:
                # CrcMismatch and friends go to the error handlers as they are
                del self._rx_buffer[:max(e.consumed, 1)]
                self._report(e, self._channel)
                continue

            del self._rx_buffer[:max(consumed, 1)]
            self._dispatch(message, self._channel)

    # --- send path -----------------------------------------------------------

    def send(self, data: Union[bytes, bytearray, memoryview, Message]):
        """
        Queue ``data`` for transmission and return immediately.

        A Message is encoded with this connection's identity and the next
        sequence number. Encode and write failures are reported via
        ``on_error()``.
        """
        if self._closed:
            log.debug("%s: send on closed channel %d dropped", self.name, self._channel)
            return

        if isinstance(data, Message):
            self._reactor.call_soon(self._send_message, data)
        else:
            self._reactor.call_soon(self._write, bytes(data))

    def _send_message(self, message: Message):
        try:
            data = self._codec.encode(Message(
                message.msgid,
                message.payload,
                self._peer_id,
                self._component_id,
                self._seq
            ))
        except (CodecError, ValueError) as e:
            # message is lost, sequence number is not consumed
            self._report(e, self._channel)
            return

        self._seq = (self._seq + 1) & 0xFF
        self._write(data)

    def _write(self, data: bytes):
        if self._closed or not data:
            return

        self._write_buffer.append(data)
        self._write_buffer_size += len(data)
        self._write_ready()

    def _ensure_writer(self):
        if not self._writer_active:
            self._reactor.loop.add_writer(self._fileno(), self._write_ready)
            self._writer_active = True

    def _remove_writer(self):
        if self._writer_active:
            try:
                self._reactor.loop.remove_writer(self._fileno())
            except (OSError, ValueError):
                pass
            self._writer_active = False

    def _write_ready(self):
        """Drain the write buffer until the resource would block"""
        while self._write_buffer and not self._closed:
            data = self._write_buffer[0]
            try:
                written = self._send(data)
            except (BlockingIOError, InterruptedError):
                break
            except TransportError as e:
                self._fatal_error(e)
                return
            except OSError as e:
                self._fatal_error(TransportError(self.name, e))
                return

            if written >= len(data):
                self._write_buffer.pop(0)
                self._write_buffer_size -= len(data)
            else:
                self._write_buffer[0] = data[written:]
                self._write_buffer_size -= written
                break

        if self._write_buffer and not self._closed:
            self._ensure_writer()
        else:
            self._remove_writer()

    def get_write_buffer_size(self) -> int:
        return self._write_buffer_size

    def _fatal_error(self, error: TransportError):
        """Report an unrecoverable I/O failure and close"""
        if self._closed:
            return
        log.debug("%s: fatal error on channel %d: %s", self.name, self._channel, error)
        self._report(error, self._channel)
        self.close()

    # --- transport hooks -----------------------------------------------------

    def _open(self):
        raise NotImplementedError

    def _fileno(self) -> int:
        raise NotImplementedError

    def _read(self) -> bytes:
        raise NotImplementedError

    def _send(self, data: bytes) -> int:
        raise NotImplementedError

    def _release(self):
        raise NotImplementedError
