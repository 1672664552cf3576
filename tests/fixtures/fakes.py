"""
Fakes for linkio testing.

Provides a synchronous stand-in for the reactor, a substitutable transport
and a thread-safe message collector, so connection logic can be tested
without hardware or sockets.
"""
import concurrent.futures
import threading
import time

from unittest.mock import Mock

from linkio.connection import Connection
from linkio.exceptions import TransportError


class FakeReactor:
    """Runs every hand-off inline and records watcher calls on ``loop``"""

    def __init__(self):
        self.loop = Mock()
        self.is_running = True

    def start(self):
        pass

    def in_loop_thread(self):
        return True

    def call_soon(self, callback, *args):
        callback(*args)

    def call(self, callback, *args):
        future = concurrent.futures.Future()
        future.set_result(callback(*args))
        return future


class FakeConnection(Connection):
    """Transport without an OS resource; counts acquire/release"""

    name = 'fake'

    def __init__(self, peer_id, component_id, **kwargs):
        super().__init__(peer_id, component_id, **kwargs)
        self.acquired = 0
        self.released = 0
        self.sent = []
        self.incoming = b''

    @classmethod
    def from_descriptor(cls, descriptor, peer_id, component_id, **kwargs):
        conn = cls(peer_id, component_id, **kwargs)
        conn.descriptor = descriptor
        return conn

    def _open(self):
        self.acquired += 1

    def _fileno(self):
        return 99

    def _read(self):
        data, self.incoming = self.incoming, b''
        return data

    def _send(self, data):
        self.sent.append(bytes(data))
        return len(data)

    def _release(self):
        self.released += 1


class FailingConnection(FakeConnection):
    """Transport whose OS resource can never be acquired"""

    def _open(self):
        raise TransportError(self.name, OSError(19, 'No such device'))


class MessageCollector:
    """Handler collecting ``(item, channel)`` pairs from the reactor thread"""

    def __init__(self):
        self.items = []
        self._cond = threading.Condition()

    def __call__(self, item, channel):
        with self._cond:
            self.items.append((item, channel))
            self._cond.notify_all()

    def wait(self, count=1, timeout=2.0):
        with self._cond:
            return self._cond.wait_for(lambda: len(self.items) >= count, timeout)


def wait_for(predicate, timeout=2.0, interval=0.01):
    """Poll ``predicate`` until true or ``timeout`` expires"""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
