"""Scripted stream backend for testing without network or audio hardware."""

from __future__ import annotations

from concurrent.futures import Future
from typing import Optional

import numpy as np

from wavetuner.constants import DEFAULT_BLOCK_SIZE, DEFAULT_CHANNELS, DEFAULT_SAMPLE_RATE
from wavetuner.errors import StreamUnavailable
from wavetuner.events import Block, CanPlay, LoadStarted, Paused, Playing, StreamError, Waiting
from wavetuner.playback.base import StreamBackend


class MockStreamBackend(StreamBackend):
    """A backend whose stream lifecycle is driven explicitly by the test.

    ``load()`` only announces ``LoadStarted``; the test then calls
    ``ready()``, ``stall()``, ``fail()`` or ``feed()`` to simulate what the
    network and decoder would do.
    """

    def __init__(
        self,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        channels: int = DEFAULT_CHANNELS,
        block_size: int = DEFAULT_BLOCK_SIZE,
        autoplay_error: Optional[Exception] = None,
    ):
        super().__init__()
        self.sample_rate = sample_rate
        self.channels = channels
        self.block_size = block_size
        self.autoplay_error = autoplay_error
        self.loads: list[str] = []
        self.volume: float = 1.0
        self.url: Optional[str] = None
        self.loaded = False
        self.playing = False
        self._play_requested = False
        self._pending: Optional[Future] = None

    def load(self, url: str) -> Future:
        self.url = url
        self.loads.append(url)
        self.loaded = False
        self.playing = False
        self._play_requested = False
        self._pending = Future()
        self._emit(LoadStarted(url))
        return self._pending

    def play(self) -> None:
        if self.autoplay_error is not None:
            raise self.autoplay_error
        self._play_requested = True
        if self.loaded and not self.playing:
            self.playing = True
            self._emit(Playing())

    def pause(self) -> None:
        self._play_requested = False
        if self.playing:
            self.playing = False
            self._emit(Paused())

    def stop(self) -> None:
        self.url = None
        self.loaded = False
        self.playing = False
        self._play_requested = False
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    def set_volume(self, volume: float) -> None:
        self.volume = volume

    # -- scripting --

    def ready(self) -> None:
        """Simulate enough data arriving to start output."""
        self.loaded = True
        self._emit(CanPlay())
        if self._pending is not None and not self._pending.done():
            self._pending.set_result(self.url)
        if self._play_requested and not self.playing:
            self.playing = True
            self._emit(Playing())

    def stall(self) -> None:
        self._emit(Waiting())

    def recover(self) -> None:
        if self.playing:
            self._emit(Playing())

    def fail(self, reason: str = "connection reset") -> None:
        self.loaded = False
        self.playing = False
        if self._pending is not None and not self._pending.done():
            self._pending.set_exception(StreamUnavailable(reason))
        self._emit(StreamError(reason))

    def feed(self, samples: np.ndarray) -> None:
        self._emit(Block(samples))

    def feed_blocks(self, count: int, value: float = 0.0) -> None:
        """Emit *count* constant-valued blocks of the declared shape."""
        for _ in range(count):
            self.feed(np.full((self.block_size, self.channels), value, dtype=np.float32))
