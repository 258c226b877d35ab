"""MP3 encode sink built on LAME (via lameenc)."""

from __future__ import annotations

from typing import Any, Callable, Optional

import numpy as np

from wavetuner.constants import DEFAULT_BLOCK_SIZE, SUPPORTED_SAMPLE_RATES, VALID_BITRATES
from wavetuner.errors import InvalidBlockSize, UnsupportedRate

EncoderFactory = Callable[[int, int, int], Any]

LAME_QUALITY = 2  # 0 = best/slowest, 9 = worst/fastest


def lame_encoder(channels: int, sample_rate: int, bitrate_kbps: int):
    """Create a configured ``lameenc.Encoder``."""
    import lameenc

    encoder = lameenc.Encoder()
    encoder.set_bit_rate(bitrate_kbps)
    encoder.set_in_sample_rate(sample_rate)
    encoder.set_channels(channels)
    encoder.set_quality(LAME_QUALITY)
    encoder.silence()
    return encoder


class EncodeSink:
    """Stateful encoder that turns fixed-size int16 PCM blocks into MP3 frames.

    Blocks must be int16 arrays of shape ``(block_size, channels)``; their
    C-order bytes are the interleaved PCM the encoder consumes. Output is
    returned as a list of byte chunks whose concatenation, in call order,
    is the MP3 bitstream.
    """

    def __init__(self, encoder: Any, channels: int, sample_rate: int, bitrate_kbps: int, block_size: int):
        self._encoder = encoder
        self.channels = channels
        self.sample_rate = sample_rate
        self.bitrate_kbps = bitrate_kbps
        self.block_size = block_size
        self._flushed = False

    @classmethod
    def open(
        cls,
        channels: int = 2,
        sample_rate: int = 44100,
        bitrate_kbps: int = 192,
        block_size: int = DEFAULT_BLOCK_SIZE,
        encoder_factory: Optional[EncoderFactory] = None,
    ) -> EncodeSink:
        if sample_rate not in SUPPORTED_SAMPLE_RATES:
            raise UnsupportedRate(f"Encoder does not support {sample_rate} Hz input")
        if bitrate_kbps not in VALID_BITRATES:
            raise ValueError(
                f"Invalid bitrate: {bitrate_kbps}. Choose from: {', '.join(str(b) for b in VALID_BITRATES)}"
            )
        if channels not in (1, 2):
            raise ValueError(f"channels must be 1 or 2, got {channels}")

        factory = encoder_factory or lame_encoder
        encoder = factory(channels, sample_rate, bitrate_kbps)
        return cls(encoder, channels, sample_rate, bitrate_kbps, block_size)

    @property
    def flushed(self) -> bool:
        return self._flushed

    def push(self, block: np.ndarray) -> list[bytes]:
        if self._flushed:
            raise RuntimeError("Encoder already flushed")
        expected = (self.block_size, self.channels)
        if block.dtype != np.int16 or block.shape != expected:
            raise InvalidBlockSize(
                f"Expected int16 block of shape {expected}, got {block.dtype} {block.shape}"
            )
        data = self._encoder.encode(np.ascontiguousarray(block).tobytes())
        return [bytes(data)] if data else []

    def flush(self) -> list[bytes]:
        """Drain trailing frames. A second call returns an empty list."""
        if self._flushed:
            return []
        self._flushed = True
        data = self._encoder.flush()
        return [bytes(data)] if data else []
