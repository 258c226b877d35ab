"""Message types delivered from the media backend into the event loop."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class StreamEvent:
    """Base class for stream lifecycle events."""


@dataclass(frozen=True)
class LoadStarted(StreamEvent):
    url: str


@dataclass(frozen=True)
class CanPlay(StreamEvent):
    """Enough data has arrived to start output."""


@dataclass(frozen=True)
class Waiting(StreamEvent):
    """Output ran dry; the stream is rebuffering."""


@dataclass(frozen=True)
class Playing(StreamEvent):
    pass


@dataclass(frozen=True)
class Paused(StreamEvent):
    pass


@dataclass(frozen=True)
class StreamError(StreamEvent):
    reason: str


@dataclass(frozen=True, eq=False)
class Block(StreamEvent):
    """One tick of decoded audio: float32, shape (block_size, channels)."""

    samples: np.ndarray
