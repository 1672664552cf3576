# -*- coding: utf-8 -*-

"""
Channel registry.

Every live connection owns exactly one channel id from a fixed pool. The pool
width matches the channel field of the wire protocol, so it is small and
bounded.
"""
import logging
import threading

from typing import Optional
from typing import Set
from typing import Tuple

from .exceptions import ResourceExhausted

MAX_CHANNELS = 16

log = logging.getLogger('linkio.registry')


class ChannelRegistry:
    """
    Thread-safe pool of channel ids ``0 .. max_channels - 1``.

    Connections are created and destroyed from arbitrary threads, so every
    access to the allocated set happens under one lock.
    """

    def __init__(self, max_channels: int = MAX_CHANNELS):
        if max_channels <= 0:
            raise ValueError(f"max_channels must be > 0, got {max_channels}")

        self._max_channels = max_channels
        self._allocated: Set[int] = set()
        self._lock = threading.Lock()

    @property
    def max_channels(self) -> int:
        return self._max_channels

    @property
    def allocated(self) -> Tuple[int, ...]:
        """Snapshot of the ids currently in use"""
        with self._lock:
            return tuple(sorted(self._allocated))

    def allocate(self) -> int:
        """
        Reserve the lowest free channel id.

        Raises:
            ResourceExhausted: If every id is in use
        """
        with self._lock:
            for channel in range(self._max_channels):
                if channel not in self._allocated:
                    self._allocated.add(channel)
                    log.debug("Allocate new channel: %d", channel)
                    return channel

        log.error("Channel overrun: all %d channels in use", self._max_channels)
        raise ResourceExhausted(
            f"All {self._max_channels} channels are in use"
        )

    def release(self, channel: int):
        """Return ``channel`` to the pool"""
        with self._lock:
            if channel not in self._allocated:
                raise ValueError(f"Channel {channel} is not allocated")
            self._allocated.remove(channel)

        log.debug("Freeing channel: %d", channel)

    def available(self) -> int:
        with self._lock:
            return self._max_channels - len(self._allocated)

    def __contains__(self, channel: int) -> bool:
        with self._lock:
            return channel in self._allocated

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(max_channels={self._max_channels}, available={self.available()})"


_default_registry: Optional[ChannelRegistry] = None
_default_lock = threading.Lock()


def default_registry() -> ChannelRegistry:
    """Process-wide registry used when none is injected"""
    global _default_registry

    with _default_lock:
        if _default_registry is None:
            _default_registry = ChannelRegistry()
        return _default_registry
