"""Capture tap between the live signal and an encode sink."""

from __future__ import annotations

from typing import Callable, Optional

import numpy as np

from wavetuner.playback.base import LiveSignal
from wavetuner.recorder.encoder import EncodeSink

FramesCallback = Callable[[list[bytes]], None]
ErrorCallback = Callable[[Exception], None]


def to_int16(block: np.ndarray) -> np.ndarray:
    """Normalize float samples to int16: ``clamp(s, -1, 1) * 32767``, truncated toward zero."""
    return (np.clip(block, -1.0, 1.0) * 32767.0).astype(np.int16)


class CaptureTap:
    """Forwards every live block, converted to int16, into an ``EncodeSink``.

    The tap holds non-owning references to the signal and the sink. Encoded
    frames go to *on_frames* in block-arrival order; encoder errors go to
    *on_error* and detach the tap.
    """

    def __init__(self, on_frames: FramesCallback, on_error: Optional[ErrorCallback] = None):
        self._on_frames = on_frames
        self._on_error = on_error
        self._signal: Optional[LiveSignal] = None
        self._sink: Optional[EncodeSink] = None
        self.blocks_captured = 0

    @property
    def attached(self) -> bool:
        return self._signal is not None

    def attach(self, signal: LiveSignal, sink: EncodeSink) -> None:
        if self._signal is not None:
            raise RuntimeError("Capture tap already attached")
        self._signal = signal
        self._sink = sink
        self.blocks_captured = 0
        signal.connect(self._on_block)

    def detach(self) -> None:
        if self._signal is None:
            return
        self._signal.disconnect(self._on_block)
        self._signal = None
        self._sink = None

    def _on_block(self, block: np.ndarray) -> None:
        sink = self._sink
        if sink is None:
            return
        try:
            frames = sink.push(to_int16(block))
        except Exception as e:
            self.detach()
            if self._on_error is None:
                raise
            self._on_error(e)
            return
        self.blocks_captured += 1
        if frames:
            self._on_frames(frames)
