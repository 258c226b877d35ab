"""Live stream playback."""

from wavetuner.playback.base import LiveSignal, StreamBackend
from wavetuner.playback.controller import PlaybackController, PlaybackState, PlaybackStatus
from wavetuner.playback.mock_backend import MockStreamBackend

__all__ = [
    "LiveSignal",
    "StreamBackend",
    "PlaybackController",
    "PlaybackState",
    "PlaybackStatus",
    "MockStreamBackend",
]
