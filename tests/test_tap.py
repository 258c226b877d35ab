"""Tests for the capture tap and sample conversion."""

import numpy as np
import pytest

from wavetuner.errors import InvalidBlockSize
from wavetuner.playback import LiveSignal
from wavetuner.recorder import CaptureTap, EncodeSink, to_int16

BLOCK = 256


@pytest.fixture
def signal():
    return LiveSignal(sample_rate=44100, channels=2, block_size=BLOCK)


@pytest.fixture
def sink(encoder_factory):
    return EncodeSink.open(block_size=BLOCK, encoder_factory=encoder_factory)


def test_scales_and_truncates():
    block = np.array([[0.5, -0.5], [0.0, 1.0]], dtype=np.float32)
    assert to_int16(block).tolist() == [[16383, -16383], [0, 32767]]


def test_clamps():
    block = np.array([[1.5, -2.0]], dtype=np.float32)
    assert to_int16(block).tolist() == [[32767, -32767]]


def test_dtype():
    assert to_int16(np.zeros((4, 2), dtype=np.float32)).dtype == np.int16


def test_attach_and_detach(signal, sink):
    tap = CaptureTap(on_frames=lambda frames: None)
    tap.attach(signal, sink)
    assert tap.attached
    assert signal.listener_count == 1
    tap.detach()
    assert not tap.attached
    assert signal.listener_count == 0


def test_detach_when_not_attached():
    CaptureTap(on_frames=lambda frames: None).detach()


def test_attach_twice(signal, sink):
    tap = CaptureTap(on_frames=lambda frames: None)
    tap.attach(signal, sink)
    with pytest.raises(RuntimeError, match="already attached"):
        tap.attach(signal, sink)


def test_forwards_converted_blocks_in_order(signal, sink, encoder_factory):
    frames = []
    tap = CaptureTap(on_frames=frames.extend)
    tap.attach(signal, sink)

    blocks = [np.full((BLOCK, 2), v, dtype=np.float32) for v in (0.1, 0.2, 0.3)]
    for block in blocks:
        signal.emit(block)
    frames.extend(sink.flush())

    assert tap.blocks_captured == 3
    assert b"".join(frames) == b"".join(to_int16(b).tobytes() for b in blocks)


def test_no_blocks_after_detach(signal, sink, encoder_factory):
    tap = CaptureTap(on_frames=lambda frames: None)
    tap.attach(signal, sink)
    tap.detach()
    signal.emit(np.zeros((BLOCK, 2), dtype=np.float32))
    assert encoder_factory.created[0].pushed == []


def test_encoder_error_detaches_and_reports(signal, sink):
    errors = []
    tap = CaptureTap(on_frames=lambda frames: None, on_error=errors.append)
    tap.attach(signal, sink)

    signal.emit(np.zeros((BLOCK * 2, 2), dtype=np.float32))

    assert len(errors) == 1
    assert isinstance(errors[0], InvalidBlockSize)
    assert not tap.attached
    assert signal.listener_count == 0


def test_encoder_error_without_handler_raises(signal, sink):
    tap = CaptureTap(on_frames=lambda frames: None)
    tap.attach(signal, sink)
    with pytest.raises(InvalidBlockSize):
        signal.emit(np.zeros((3, 2), dtype=np.float32))
    assert not tap.attached
