# -*- coding: utf-8 -*-

"""
Shared event-loop service.

One asyncio selector loop on one background thread drives every connection.
Readiness watchers (``add_reader``/``add_writer``) are only touched on that
thread; other threads hand work over with ``call_soon()`` or ``call()``, which
wake the selector through the loop's self-pipe.
"""
import asyncio
import concurrent.futures
import logging
import threading

from typing import Any
from typing import Callable
from typing import Coroutine
from typing import Optional

log = logging.getLogger('linkio.reactor')


class EventLoopService:
    """
    Background reactor thread.

    ``start()`` is idempotent and returns once the loop is running. ``stop()``
    is the shutdown hook; a stopped service may be started again.
    """

    def __init__(self, name: str = 'linkio-reactor'):
        self._name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        """The running loop, starting the service if needed"""
        self.start()
        return self._loop

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self):
        with self._lock:
            if self.is_running:
                return

            # Selector loop: add_reader() is required for fd watchers,
            # ProactorEventLoop (Windows default) does not provide it
            loop = asyncio.SelectorEventLoop()
            started = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(loop, started),
                name=self._name,
                daemon=True
            )
            self._loop = loop
            self._thread = thread
            thread.start()
            started.wait()

    def _run(self, loop: asyncio.AbstractEventLoop, started: threading.Event):
        asyncio.set_event_loop(loop)
        loop.call_soon(started.set)
        try:
            log.debug("EV: starting loop %s", self._name)
            loop.run_forever()
        finally:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(
                    asyncio.gather(*pending, return_exceptions=True)
                )
            loop.close()
            log.debug("EV: loop %s stopped", self._name)

    def stop(self, timeout: Optional[float] = 5.0):
        """Stop the loop and join its thread"""
        with self._lock:
            loop, thread = self._loop, self._thread
            if thread is None or not thread.is_alive():
                return

            loop.call_soon_threadsafe(loop.stop)
            if thread is not threading.current_thread():
                thread.join(timeout)
                if thread.is_alive():
                    log.warning("EV: loop %s did not stop within %s s", self._name, timeout)

    def in_loop_thread(self) -> bool:
        thread = self._thread
        return thread is not None and thread.ident == threading.get_ident()

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> asyncio.Handle:
        """Schedule ``callback`` on the reactor thread (safe from any thread)"""
        return self.loop.call_soon_threadsafe(callback, *args)

    def call(self, callback: Callable[..., Any], *args: Any) -> concurrent.futures.Future:
        """
        Run ``callback`` on the reactor thread.

        Returns a future resolved with its result or exception. Runs inline
        when called from the reactor thread itself.
        """
        future: concurrent.futures.Future = concurrent.futures.Future()

        def run():
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(callback(*args))
            except Exception as e:
                future.set_exception(e)

        if self.in_loop_thread():
            run()
        else:
            self.call_soon(run)
        return future

    def submit(self, coro: Coroutine) -> concurrent.futures.Future:
        """Run a coroutine on the reactor loop"""
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def __repr__(self) -> str:
        state = 'running' if self.is_running else 'stopped'
        return f"{self.__class__.__name__}({self._name!r}, {state})"


_default_reactor: Optional[EventLoopService] = None
_default_lock = threading.Lock()


def default_reactor() -> EventLoopService:
    """Process-wide reactor, created and started on first use"""
    global _default_reactor

    with _default_lock:
        if _default_reactor is None:
            _default_reactor = EventLoopService()
        reactor = _default_reactor

    reactor.start()
    return reactor
