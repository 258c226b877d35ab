"""Media backend interface and the live signal capture taps attach to."""

from __future__ import annotations

from abc import ABC, abstractmethod
from concurrent.futures import Future
from typing import Callable, Optional

import numpy as np

from wavetuner.constants import DEFAULT_BLOCK_SIZE, DEFAULT_CHANNELS, DEFAULT_SAMPLE_RATE
from wavetuner.events import StreamEvent

BlockListener = Callable[[np.ndarray], None]
EventListener = Callable[[StreamEvent], None]


class LiveSignal:
    """Fan-out of decoded PCM blocks to attached listeners.

    Blocks are float32 arrays of shape ``(block_size, channels)`` in
    ``[-1.0, 1.0]``, emitted in strict arrival order.
    """

    def __init__(
        self,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        channels: int = DEFAULT_CHANNELS,
        block_size: int = DEFAULT_BLOCK_SIZE,
    ):
        self.sample_rate = sample_rate
        self.channels = channels
        self.block_size = block_size
        self._listeners: list[BlockListener] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def connect(self, listener: BlockListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def disconnect(self, listener: BlockListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, block: np.ndarray) -> None:
        # Copy so a listener detaching mid-emit doesn't skip its neighbour.
        for listener in list(self._listeners):
            listener(block)


class StreamBackend(ABC):
    """Host media capability: decode a URL and play it on the output device.

    Events (including PCM ``Block`` events) are delivered to the listener set
    with ``set_listener``, possibly from a backend thread.
    """

    sample_rate: int = DEFAULT_SAMPLE_RATE
    channels: int = DEFAULT_CHANNELS
    block_size: int = DEFAULT_BLOCK_SIZE

    def __init__(self):
        self._listener: Optional[EventListener] = None

    def set_listener(self, listener: Optional[EventListener]) -> None:
        self._listener = listener

    def _emit(self, event: StreamEvent) -> None:
        if self._listener is not None:
            self._listener(event)

    @abstractmethod
    def load(self, url: str) -> Future:
        """Start connecting to *url*.

        Returns a future resolved once the stream can play, or failed with
        ``StreamUnavailable``. The caller never blocks on it.
        """
        ...

    @abstractmethod
    def play(self) -> None:
        """Start (or resume) audio output. Raises if output cannot start."""
        ...

    @abstractmethod
    def pause(self) -> None:
        ...

    @abstractmethod
    def stop(self) -> None:
        """Tear down the current source entirely."""
        ...

    @abstractmethod
    def set_volume(self, volume: float) -> None:
        """Apply the effective output gain (0.0 - 1.0)."""
        ...
