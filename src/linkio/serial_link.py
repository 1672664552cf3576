# -*- coding: utf-8 -*-

"""
Serial port connection.

- POSIX: true async using the port's file descriptor
- Windows, or ports without a descriptor (``loop://``, ``rfc2217://``):
  polling task on the reactor loop
"""
import asyncio
import contextlib
import logging
import os
import serial

from typing import Optional

from .connection import Connection
from .connection import READ_SIZE
from .descriptor import DEFAULT_BAUDRATE
from .descriptor import SerialDescriptor
from .exceptions import PlatformNotSupportedError
from .exceptions import TransportError

POLL_INTERVAL = 0.005  # 5ms for responsiveness

log = logging.getLogger('linkio.serial')


class SerialConnection(Connection):
    """Connection over a serial device opened with pyserial"""

    name = 'serial'

    def __init__(
            self,
            peer_id: int,
            component_id: int,
            path: str,
            baudrate: int = DEFAULT_BAUDRATE,
            **kwargs
        ):
        super().__init__(peer_id, component_id, **kwargs)

        self._path = path
        self._baudrate = baudrate
        self._serial: Optional[serial.SerialBase] = None
        self._polling = False
        self._poll_task: Optional[asyncio.Task] = None

    @classmethod
    def from_descriptor(cls, descriptor: SerialDescriptor, peer_id: int, component_id: int, **kwargs):
        return cls(peer_id, component_id, descriptor.path, descriptor.baudrate, **kwargs)

    @property
    def path(self) -> str:
        return self._path

    @property
    def baudrate(self) -> int:
        return self._baudrate

    @property
    def serial(self) -> Optional[serial.SerialBase]:
        return self._serial

    def _open(self):
        if os.name not in ('posix', 'nt'):
            raise TransportError(self.name, PlatformNotSupportedError(
                f'Platform {os.name} not supported for async serial'
            ))

        try:
            self._serial = serial.serial_for_url(
                self._path,
                baudrate=self._baudrate,
                timeout=0,
                write_timeout=0
            )
        except (serial.SerialException, ValueError) as e:
            log.error("Failed to open %s at %d baud: %s", self._path, self._baudrate, e)
            raise TransportError(self.name, e) from e

        # FTDI adapters buffer 16ms by default
        with contextlib.suppress(AttributeError, NotImplementedError, ValueError, OSError):
            self._serial.set_low_latency_mode(True)

        self._polling = os.name == 'nt' or not self._has_fileno()
        log.debug("%s: %s at %d baud (%s)", self.name, self._path, self._baudrate,
                  'polling' if self._polling else 'fd watcher')

    def _has_fileno(self) -> bool:
        try:
            self._serial.fileno()
        except (OSError, NotImplementedError, AttributeError):
            return False
        return True

    def _fileno(self) -> int:
        return self._serial.fileno()

    def _read(self) -> bytes:
        return self._serial.read(READ_SIZE)

    def _send(self, data: bytes) -> int:
        written = self._serial.write(data)
        return len(data) if written is None else written

    def _release(self):
        if self._serial is not None and self._serial.is_open:
            self._serial.close()

    def _start_reading(self):
        if not self._polling:
            super()._start_reading()
        elif not self._closed and self._poll_task is None:
            self._poll_task = self._reactor.loop.create_task(self._poll_loop())

    def _remove_reader(self):
        super()._remove_reader()
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()

    def _ensure_writer(self):
        # the poll loop drains the write buffer
        if not self._polling:
            super()._ensure_writer()

    async def _poll_loop(self):
        """Polling loop for ports without a usable descriptor"""
        try:
            while not self._closed:
                if self._serial.in_waiting > 0:
                    self._read_ready()

                if self._write_buffer and not self._closed:
                    self._write_ready()

                await asyncio.sleep(POLL_INTERVAL)
        except asyncio.CancelledError:
            pass
        except (serial.SerialException, OSError) as e:
            if not self._closed:
                self._fatal_error(TransportError(self.name, e))
