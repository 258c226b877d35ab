"""Tests for the MP3 encode sink."""

import numpy as np
import pytest

from wavetuner.errors import InvalidBlockSize, UnsupportedRate
from wavetuner.recorder import EncodeSink

BLOCK = 256


def _sink(factory, **kwargs):
    return EncodeSink.open(block_size=BLOCK, encoder_factory=factory, **kwargs)


def _blocks(count, channels=2):
    """Distinct int16 blocks so any reordering changes the byte stream."""
    return [
        np.full((BLOCK, channels), i, dtype=np.int16) + np.arange(BLOCK, dtype=np.int16)[:, None]
        for i in range(count)
    ]


def test_passes_format_to_encoder(encoder_factory):
    _sink(encoder_factory, channels=1, sample_rate=48000, bitrate_kbps=320)
    encoder = encoder_factory.created[0]
    assert (encoder.channels, encoder.sample_rate, encoder.bitrate) == (1, 48000, 320)


def test_unsupported_rate(encoder_factory):
    with pytest.raises(UnsupportedRate, match="96000"):
        _sink(encoder_factory, sample_rate=96000)
    assert encoder_factory.created == []


def test_invalid_bitrate(encoder_factory):
    with pytest.raises(ValueError, match="Invalid bitrate"):
        _sink(encoder_factory, bitrate_kbps=256)


def test_invalid_channels(encoder_factory):
    with pytest.raises(ValueError, match="channels"):
        _sink(encoder_factory, channels=6)


def test_frames_preserve_block_order(encoder_factory):
    sink = _sink(encoder_factory)
    blocks = _blocks(7)

    out = []
    for block in blocks:
        out.extend(sink.push(block))
    out.extend(sink.flush())

    assert b"".join(out) == b"".join(b.tobytes() for b in blocks)


def test_push_may_emit_nothing(encoder_factory):
    sink = _sink(encoder_factory)
    assert sink.push(_blocks(1)[0]) == []


def test_wrong_shape(encoder_factory):
    sink = _sink(encoder_factory)
    with pytest.raises(InvalidBlockSize, match="shape"):
        sink.push(np.zeros((BLOCK - 1, 2), dtype=np.int16))


def test_wrong_dtype(encoder_factory):
    sink = _sink(encoder_factory)
    with pytest.raises(InvalidBlockSize):
        sink.push(np.zeros((BLOCK, 2), dtype=np.float32))


def test_non_contiguous_block_is_interleaved(encoder_factory):
    sink = _sink(encoder_factory)
    planar = np.arange(BLOCK * 2, dtype=np.int16).reshape(2, BLOCK)
    block = planar.T  # Fortran-ordered view
    sink.push(block)
    assert encoder_factory.created[0].pushed[0] == np.ascontiguousarray(block).tobytes()


def test_second_flush_is_empty(encoder_factory):
    sink = _sink(encoder_factory)
    sink.push(_blocks(1)[0])
    assert sink.flush() != []
    assert sink.flush() == []
    assert encoder_factory.created[0].flush_calls == 1
    assert sink.flushed


def test_push_after_flush(encoder_factory):
    sink = _sink(encoder_factory)
    sink.flush()
    with pytest.raises(RuntimeError, match="already flushed"):
        sink.push(_blocks(1)[0])


def test_lame_encodes_mp3():
    pytest.importorskip("lameenc")
    sink = EncodeSink.open(channels=2, sample_rate=44100, bitrate_kbps=128, block_size=4096)

    t = np.arange(4096 * 10) / 44100
    tone = (np.sin(2 * np.pi * 440 * t) * 12000).astype(np.int16)
    stereo = np.stack([tone, tone], axis=1)

    out = []
    for i in range(10):
        out.extend(sink.push(stereo[i * 4096:(i + 1) * 4096]))
    out.extend(sink.flush())
    data = b"".join(out)

    assert len(data) > 1000
    # MPEG audio frame sync: eleven set bits.
    assert data[0] == 0xFF and data[1] & 0xE0 == 0xE0
